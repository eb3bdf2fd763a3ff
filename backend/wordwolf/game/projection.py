from __future__ import annotations

import json
from typing import TYPE_CHECKING

from ..errors import InvalidPhase
from .state import KeywordSubmission, Lobby, Result, Voting

if TYPE_CHECKING:
    from .room import Room


def encode(payload: dict) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def public_state(room: Room, viewer_id: str | None = None) -> dict:
    """Broadcast-safe view of a room.

    Topics and votes are only filled in for ``viewer_id`` until the result is
    out; wolf and execution fields exist only in the Result phase.
    """
    state = room.state
    reveal = isinstance(state, Result)

    players = {}
    for p in sorted(room.players.values(), key=lambda p: p.id):
        visible = reveal or p.id == viewer_id
        entry = {
            "id": p.id,
            "name": p.name,
            "alive": p.alive,
            "remaining_speak": p.remaining_speak,
            "vote": p.vote_target if visible else None,
            "topic": p.keyword if visible else None,
        }
        if isinstance(state, Lobby):
            entry["ready"] = p.id in state.ready
        elif isinstance(state, KeywordSubmission):
            entry["submitted"] = room.pool.has_submitted(p.id)
            entry["confirmed"] = p.id in state.confirmed
        elif isinstance(state, Voting):
            entry["voted"] = p.id in state.voted
        players[p.id] = entry

    payload = {
        "type": "state",
        "room_id": room.id,
        "room_name": room.config.room_name,
        "phase": room.phase.value,
        "players": players,
        "player_count": len(room.players),
        "max_players": room.config.max_players,
        "wolf_count": room.config.wolf_count,
        "max_speak": room.config.speak_budget,
        "genre": room.genre_label,
        "remaining_time": room.remaining_discussion_sec,
        "voting_time": room.remaining_voting_sec,
        "is_villager_win": state.citizens_won if reveal else None,
        "game_id": room.generation,
    }

    if isinstance(state, KeywordSubmission):
        payload["submitted_count"] = room.pool.submitted_count
        payload["keywords_decided"] = state.assigned
        payload["require_confirm"] = room.config.require_confirm
    elif isinstance(state, Voting):
        payload["voted_count"] = len(state.voted)

    if reveal:
        wolves = sorted(room.wolf_ids)
        payload["wolf_id"] = wolves[0] if wolves else None
        payload["wolf_ids"] = wolves
        payload["executed_id"] = state.executed_id
        payload["vote_count"] = state.vote_count
        payload["tally"] = dict(sorted(state.tally.items()))

    return payload


def player_list(room: Room) -> list[dict]:
    return [
        {"id": p.id, "name": p.name, "alive": p.alive}
        for p in sorted(room.players.values(), key=lambda p: p.id)
    ]


def player_theme(room: Room, player_id: str) -> dict:
    player = room.get_player(player_id)
    if player.keyword is None or player.role is None:
        raise InvalidPhase("お題がまだ決まっていません")
    return {"theme": player.keyword, "role": player.role.value}


def timer_view(room: Room) -> dict:
    return {"phase": room.phase.value, "remaining": room.remaining_time()}


def room_summary(room: Room) -> dict:
    return {
        "room_id": room.id,
        "room_name": room.config.room_name,
        "phase": room.phase.value,
        "player_count": len(room.players),
        "max_players": room.config.max_players,
        "wolf_count": room.config.wolf_count,
        "genre": room.genre_label,
    }
