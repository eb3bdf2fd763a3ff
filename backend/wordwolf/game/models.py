from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..errors import InvalidConfig


class Role(str, Enum):
    CITIZEN = "Citizen"
    WOLF = "Wolf"

    @property
    def label(self) -> str:
        return "ワードウルフ" if self is Role.WOLF else "市民"


class Phase(str, Enum):
    LOBBY = "Lobby"
    KEYWORD_SUBMISSION = "KeywordSubmission"
    DISCUSSION = "Discussion"
    VOTING = "Voting"
    RESULT = "Result"


# Preset genres; any other non-empty text is a custom genre shown verbatim.
PRESET_GENRES: dict[str, str] = {
    "Food": "食べ物",
    "Animal": "動物",
    "Place": "場所",
    "Object": "物",
}

# Drawn from when a room has no fixed genre.
RANDOM_GENRES: tuple[str, ...] = (
    "フルーツ", "スポーツ", "都道府県", "お菓子", "ジュース", "麺類",
    "料理", "文房具", "家具", "色", "乗り物",
)


def genre_label(genre: str | None) -> str:
    if not genre:
        return ""
    return PRESET_GENRES.get(genre, genre)


@dataclass
class Player:
    id: str
    name: str
    remaining_speak: int = 0
    role: Role | None = None
    keyword: str | None = None
    alive: bool = True
    vote_target: str | None = None

    @property
    def is_wolf(self) -> bool:
        return self.role is Role.WOLF

    def assign(self, role: Role, keyword: str) -> None:
        # role and keyword always move together
        self.role = role
        self.keyword = keyword

    def clear_round(self) -> None:
        self.role = None
        self.keyword = None
        self.alive = True
        self.vote_target = None


@dataclass(frozen=True)
class RoomConfig:
    room_name: str
    max_players: int = 4
    wolf_count: int = 1
    theme_genre: str | None = None
    discussion_seconds: int = 180
    voting_seconds: int = 10
    speak_budget: int = 3
    require_confirm: bool = False

    @property
    def max_wolves(self) -> int:
        return max(0, (self.max_players - 1) // 2)

    def validate(self) -> None:
        if self.max_players < 3:
            raise InvalidConfig("最低3人必要です")
        if self.wolf_count < 1:
            raise InvalidConfig("最低1人のワードウルフが必要です")
        if self.wolf_count > self.max_wolves:
            raise InvalidConfig(
                f"{self.max_players}人部屋では最大{self.max_wolves}人のワードウルフまでです（少数派を保つため）"
            )
        if self.discussion_seconds <= 0:
            raise InvalidConfig("議論時間は1秒以上にしてください")
        if self.voting_seconds <= 0:
            raise InvalidConfig("投票時間は1秒以上にしてください")
        if self.speak_budget < 1:
            raise InvalidConfig("発言回数は1回以上にしてください")
