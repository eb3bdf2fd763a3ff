"""Errors raised by the room coordinator.

Every error carries a stable machine ``code`` for clients, the HTTP status the
web layer answers with, and a Japanese ``message`` meant for display.
"""
from __future__ import annotations


class GameError(Exception):
    code = "game_error"
    status = 400
    default_message = "操作できません"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidPhase(GameError):
    code = "invalid_phase"
    default_message = "今はその操作はできません"


class NotFound(GameError):
    code = "not_found"
    status = 404
    default_message = "見つかりません"


class RoomFull(GameError):
    code = "room_full"
    status = 403
    default_message = "満員です"


class DuplicateSubmission(GameError):
    code = "duplicate_submission"
    default_message = "キーワードは提出済みです"


class InsufficientKeywords(GameError):
    code = "insufficient_keywords"
    default_message = "異なるキーワードが2つ以上必要です。もう一度提出してください"


class InvalidConfig(GameError):
    code = "invalid_config"
    default_message = "部屋の設定が正しくありません"


class AlreadyExists(GameError):
    code = "already_exists"
    status = 403
    default_message = "既に存在します"


class InvalidInput(GameError):
    code = "invalid_input"
    default_message = "入力が正しくありません"
