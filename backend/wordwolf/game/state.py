"""Per-phase room state.

The room holds exactly one of these variants at a time, so a field that only
makes sense in one phase (the ready set, the vote set, the verdict) cannot
outlive it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Union

from ..errors import InvalidPhase
from .models import Phase


@dataclass
class Lobby:
    phase: ClassVar[Phase] = Phase.LOBBY
    ready: set[str] = field(default_factory=set)


@dataclass
class KeywordSubmission:
    phase: ClassVar[Phase] = Phase.KEYWORD_SUBMISSION
    # Player count when the phase began; the draw waits for this many keywords.
    active_players: int = 0
    assigned: bool = False
    confirmed: set[str] = field(default_factory=set)


@dataclass
class Discussion:
    phase: ClassVar[Phase] = Phase.DISCUSSION
    started_at: float = 0.0


@dataclass
class Voting:
    phase: ClassVar[Phase] = Phase.VOTING
    voted: set[str] = field(default_factory=set)


@dataclass
class Result:
    phase: ClassVar[Phase] = Phase.RESULT
    executed_id: str | None = None
    citizens_won: bool = False
    vote_count: int = 0
    tally: dict[str, int] = field(default_factory=dict)


RoomState = Union[Lobby, KeywordSubmission, Discussion, Voting, Result]

# Forward edges of one game; reset back to Lobby is handled separately.
TRANSITIONS: dict[Phase, frozenset[Phase]] = {
    Phase.LOBBY: frozenset({Phase.KEYWORD_SUBMISSION}),
    Phase.KEYWORD_SUBMISSION: frozenset({Phase.DISCUSSION}),
    Phase.DISCUSSION: frozenset({Phase.VOTING}),
    Phase.VOTING: frozenset({Phase.RESULT}),
    Phase.RESULT: frozenset(),
}


def check_transition(current: Phase, target: Phase) -> None:
    if target not in TRANSITIONS[current]:
        raise InvalidPhase(f"{current.value} から {target.value} へは進めません")


def require(state: RoomState, *phases: Phase) -> None:
    if state.phase not in phases:
        raise InvalidPhase()
