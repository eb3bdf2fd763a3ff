import logging

try:
    from backend.wordwolf.config import Config
    from backend.wordwolf.server import create_app
except ImportError:  # pragma: no cover
    from wordwolf.config import Config
    from wordwolf.server import create_app

logging.basicConfig(level=Config.LOG_LEVEL)

app, socketio = create_app()
