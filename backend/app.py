import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080


def parse_bind(argv: list[str]) -> tuple[str, int]:
    """Bind address from ``host:port`` in argv[1], else HOST/PORT, else the default."""
    if len(argv) > 1 and argv[1].strip():
        host, sep, port = argv[1].strip().rpartition(":")
        if not sep:
            return argv[1].strip(), DEFAULT_PORT
        return host or DEFAULT_HOST, int(port)
    host = os.environ.get("HOST", DEFAULT_HOST)
    port = int(os.environ.get("PORT", str(DEFAULT_PORT)))
    return host, port


def main() -> None:
    load_dotenv(Path(__file__).resolve().parents[1] / ".env")

    env_async_mode = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()
    if (
        not sys.platform.startswith("win")
        and sys.version_info < (3, 13)
        and env_async_mode in ("", "eventlet")
    ):
        import eventlet

        eventlet.monkey_patch()

    try:
        from backend.wordwolf.config import Config
        from backend.wordwolf.server import create_app
    except ImportError:  # pragma: no cover
        from wordwolf.config import Config
        from wordwolf.server import create_app

    logging.basicConfig(
        level=Config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app, socketio = create_app()
    host, port = parse_bind(sys.argv)
    debug = os.environ.get("FLASK_DEBUG", "0") == "1"

    allow_unsafe_werkzeug = os.environ.get("ALLOW_UNSAFE_WERKZEUG", "1") == "1"
    use_reloader = os.environ.get("FLASK_USE_RELOADER", "0") == "1"

    logging.getLogger(__name__).info("listening on %s:%d", host, port)
    socketio.run(
        app,
        host=host,
        port=port,
        debug=debug,
        allow_unsafe_werkzeug=allow_unsafe_werkzeug,
        use_reloader=use_reloader,
    )


if __name__ == "__main__":
    main()
