import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Room defaults (used when /room/create omits a field)
    DEFAULT_MAX_PLAYERS = int(os.environ.get("DEFAULT_MAX_PLAYERS", "4"))
    DEFAULT_WOLF_COUNT = int(os.environ.get("DEFAULT_WOLF_COUNT", "1"))
    DEFAULT_DISCUSSION_SEC = int(os.environ.get("DEFAULT_DISCUSSION_SEC", "180"))
    DEFAULT_VOTING_SEC = int(os.environ.get("DEFAULT_VOTING_SEC", "10"))
    DEFAULT_SPEAK_BUDGET = int(os.environ.get("DEFAULT_SPEAK_BUDGET", "3"))

    # "last" overwrites a player's earlier keyword, "first" rejects the resubmission
    KEYWORD_POLICY = os.environ.get("KEYWORD_POLICY", "last").strip().lower()

    # Push streams
    SINK_QUEUE_SIZE = int(os.environ.get("SINK_QUEUE_SIZE", "64"))
    SSE_KEEPALIVE_SEC = float(os.environ.get("SSE_KEEPALIVE_SEC", "15"))

    # Background sweeper
    SWEEP_INTERVAL_SEC = float(os.environ.get("SWEEP_INTERVAL_SEC", "1.0"))
    EMPTY_ROOM_TTL_SEC = int(os.environ.get("EMPTY_ROOM_TTL_SEC", "600"))
