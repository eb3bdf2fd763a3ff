from __future__ import annotations

KEEPALIVE = ": keepalive\n\n"


def format_sse(message: str) -> str:
    # Multi-line payloads need one "data:" field per line.
    lines = message.splitlines() or [""]
    return "".join(f"data: {line}\n" for line in lines) + "\n"
