from __future__ import annotations

import random
from collections import Counter
from dataclasses import dataclass, field

from .models import Role


@dataclass
class VoteResult:
    executed_id: str | None
    vote_count: int = 0
    breakdown: dict[str, int] = field(default_factory=dict)


def pick_wolves(player_ids: list[str], wolf_count: int, rng: random.Random) -> frozenset[str]:
    """Choose ``wolf_count`` distinct players uniformly at random."""
    if wolf_count < 1:
        raise ValueError("Need at least 1 wolf")
    if wolf_count >= len(player_ids):
        raise ValueError("Wolf count must be less than player count")

    return frozenset(rng.sample(sorted(player_ids), wolf_count))


def role_for(player_id: str, wolf_ids: frozenset[str]) -> Role:
    return Role.WOLF if player_id in wolf_ids else Role.CITIZEN


def tally_votes(votes: dict[str, str]) -> VoteResult:
    """Count ``voter -> target`` votes; ties go to the lowest player id."""
    if not votes:
        return VoteResult(executed_id=None)

    counts = Counter(votes.values())
    top = max(counts.values())
    executed_id = min(pid for pid, c in counts.items() if c == top)
    return VoteResult(executed_id=executed_id, vote_count=top, breakdown=dict(counts))


def citizens_won(executed_id: str | None, wolf_ids: frozenset[str]) -> bool:
    # Single-round rule: citizens win only by executing a wolf.
    return executed_id is not None and executed_id in wolf_ids
