from __future__ import annotations

from typing import Any

from flask import Request

from ..errors import InvalidInput


def payload(request: Request) -> dict[str, Any]:
    """Request body as a dict, whether it was sent as JSON or as a form."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def text(data: dict[str, Any], *keys: str, default: str = "") -> str:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return str(value).strip()
    return default


def required(data: dict[str, Any], *keys: str) -> str:
    value = text(data, *keys)
    if not value:
        raise InvalidInput(f"{keys[0]}が必要です")
    return value


def integer(data: dict[str, Any], key: str, default: int) -> int:
    raw = data.get(key)
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
        raise InvalidInput(f"{key}は整数で指定してください")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise InvalidInput(f"{key}は整数で指定してください") from None


def flag(data: dict[str, Any], key: str, default: bool = False) -> bool:
    raw = data.get(key)
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in ("1", "true", "yes", "on")


def validate_name(name: str) -> str:
    n = (name or "").strip()
    if not n or len(n) > 16:
        raise InvalidInput("名前は1〜16文字にしてください")
    # Avoid obvious HTML/script injection; "|" is the chat line separator.
    if any(ch in "<>|" for ch in n):
        raise InvalidInput("名前に使えない文字が含まれています")
    # No control characters.
    if any(ord(ch) < 32 for ch in n):
        raise InvalidInput("名前に使えない文字が含まれています")
    return n
