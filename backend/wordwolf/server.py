from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from flask import Flask, jsonify, send_from_directory
from flask_cors import CORS
from flask_socketio import SocketIO
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import Config
from .errors import GameError
from .game import service
from .game.timers import start_sweeper
from .realtime.handlers import register_socketio_handlers
from .routes.events import bp as events_bp
from .routes.health import bp as health_bp
from .routes.player import bp as player_bp
from .routes.rooms import bp as rooms_bp

logger = logging.getLogger(__name__)


def _async_mode() -> str:
    env_async_mode = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()
    if env_async_mode:
        return env_async_mode
    # eventlet misbehaves on Windows and on Python >= 3.13.
    if sys.platform.startswith("win") or sys.version_info >= (3, 13):
        return "threading"
    return "eventlet"


def create_app(run_sweeper: bool = True) -> tuple[Flask, SocketIO]:
    dist_dir = Path(__file__).resolve().parents[2] / "frontend" / "dist"

    app = Flask(__name__, static_folder=None)
    app.config.from_object(Config)

    if app.config.get("TRUST_PROXY_HEADERS", False):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    cors_origins = app.config.get("CORS_ORIGINS", "*")
    CORS(app, resources={r"/*": {"origins": cors_origins}})

    socketio = SocketIO(
        app,
        cors_allowed_origins=cors_origins,
        async_mode=_async_mode(),
    )

    app.register_blueprint(health_bp)
    app.register_blueprint(rooms_bp)
    app.register_blueprint(player_bp)
    app.register_blueprint(events_bp)

    register_socketio_handlers(socketio)

    @app.errorhandler(GameError)
    def handle_game_error(err: GameError):
        return jsonify(err.to_dict()), err.status

    @app.errorhandler(HTTPException)
    def handle_http_error(err: HTTPException):
        return jsonify({"error": err.name.lower().replace(" ", "_"), "message": err.description}), err.code

    @app.errorhandler(Exception)
    def handle_unexpected(err: Exception):
        logger.exception("unhandled error")
        return jsonify({"error": "internal_error", "message": "サーバーエラーが発生しました"}), 500

    @app.get("/")
    def index():
        if (dist_dir / "index.html").exists():
            return send_from_directory(dist_dir, "index.html")
        return jsonify({"ok": True, "service": "wordwolf"})

    if dist_dir.exists():
        @app.get("/<path:path>")
        def static_proxy(path: str):
            file_path = dist_dir / path
            if file_path.exists() and file_path.is_file():
                return send_from_directory(dist_dir, path)
            return send_from_directory(dist_dir, "index.html")

    if run_sweeper:
        start_sweeper(
            socketio,
            service.registry(),
            interval=app.config["SWEEP_INTERVAL_SEC"],
            empty_room_ttl=app.config["EMPTY_ROOM_TTL_SEC"],
        )

    return app, socketio
