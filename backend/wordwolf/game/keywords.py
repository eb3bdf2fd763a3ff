from __future__ import annotations

import random

from ..errors import DuplicateSubmission, InsufficientKeywords, InvalidInput, InvalidPhase

KEYWORD_MAX_LEN = 32

POLICY_LAST_WRITE_WINS = "last"
POLICY_FIRST_WRITE_WINS = "first"

# Seeded once per process; rooms share it unless a test injects its own.
_rng = random.Random()


def shared_rng() -> random.Random:
    return _rng


class KeywordPool:
    """Collects one keyword per player and draws the (citizen, wolf) pair."""

    def __init__(self, policy: str = POLICY_LAST_WRITE_WINS, rng: random.Random | None = None) -> None:
        if policy not in (POLICY_LAST_WRITE_WINS, POLICY_FIRST_WRITE_WINS):
            raise ValueError(f"unknown keyword policy: {policy!r}")
        self.policy = policy
        self.rng = rng or _rng
        self.submissions: dict[str, str] = {}
        self.selected: tuple[str, str] | None = None
        self.expected = 0

    def reset(self, expected: int) -> None:
        self.submissions = {}
        self.selected = None
        self.expected = expected

    def clear_submissions(self) -> None:
        self.submissions = {}

    @property
    def submitted_count(self) -> int:
        return len(self.submissions)

    @property
    def complete(self) -> bool:
        return self.expected > 0 and len(self.submissions) >= self.expected

    def has_submitted(self, player_id: str) -> bool:
        return player_id in self.submissions

    def submit(self, player_id: str, word: str) -> str:
        if self.selected is not None:
            raise InvalidPhase("お題は既に決定しています")

        w = (word or "").strip()
        if not w:
            raise InvalidInput("キーワードを入力してください")
        if len(w) > KEYWORD_MAX_LEN:
            raise InvalidInput(f"キーワードは{KEYWORD_MAX_LEN}文字以内にしてください")

        if self.policy == POLICY_FIRST_WRITE_WINS and player_id in self.submissions:
            raise DuplicateSubmission()

        self.submissions[player_id] = w
        return w

    def try_draw(self, active_count: int | None = None) -> tuple[str, str] | None:
        """Draw the pair once every active player has submitted.

        Returns None while submissions are still missing and the cached pair
        on repeated calls. Raises InsufficientKeywords when fewer than two
        distinct keywords were submitted; the submissions are kept so the
        caller decides whether to ask for a resubmission.
        """
        if self.selected is not None:
            return self.selected

        needed = self.expected if active_count is None else active_count
        if needed <= 0 or len(self.submissions) < needed:
            return None

        # Player order makes the draw reproducible under a seeded rng.
        entries = [self.submissions[pid] for pid in sorted(self.submissions)]
        if len(set(entries)) < 2:
            raise InsufficientKeywords()

        citizen_word = self.rng.choice(entries)
        wolf_word = self.rng.choice([w for w in entries if w != citizen_word])
        self.selected = (citizen_word, wolf_word)
        return self.selected

    def word_for(self, player_id: str, wolf_ids: set[str] | frozenset[str]) -> str | None:
        if self.selected is None:
            return None
        citizen_word, wolf_word = self.selected
        return wolf_word if player_id in wolf_ids else citizen_word
