from __future__ import annotations

import logging

from ..config import Config
from ..errors import GameError
from . import projection
from .hub import Sink
from .models import Phase, RoomConfig
from .registry import RoomRegistry
from .room import Room

logger = logging.getLogger(__name__)


def _make_room(room_id: str, config: RoomConfig) -> Room:
    return Room(room_id, config, keyword_policy=Config.KEYWORD_POLICY)


_registry = RoomRegistry(room_factory=_make_room)


def registry() -> RoomRegistry:
    return _registry


# ── rooms ─────────────────────────────────────────────────────────────────


def create_room(room_id: str | None, config: RoomConfig) -> dict:
    room = _registry.create(room_id, config)
    with room.lock:
        return projection.room_summary(room)


def delete_room(room_id: str) -> None:
    _registry.delete(room_id)


def list_rooms() -> list[dict]:
    summaries = []
    for room in _registry.list_rooms():
        with room.lock:
            if not room.closed:
                summaries.append(projection.room_summary(room))
    return sorted(summaries, key=lambda s: s["room_id"])


def room_public_state(room_id: str, viewer_id: str | None = None) -> dict:
    return _registry.with_room(room_id, lambda room: room.public_state(viewer_id=viewer_id))


def room_players(room_id: str) -> list[dict]:
    return _registry.with_room(room_id, projection.player_list)


def room_timer(room_id: str) -> dict:
    return _registry.with_room(room_id, projection.timer_view)


def player_theme(room_id: str, player_id: str) -> dict:
    return _registry.with_room(room_id, lambda room: projection.player_theme(room, player_id))


# ── push streams ──────────────────────────────────────────────────────────


def subscribe(room_id: str, sink: Sink) -> None:
    _registry.with_room(room_id, lambda room: room.subscribe(sink))


def unsubscribe(room_id: str, sink_key: str) -> None:
    try:
        _registry.with_room(room_id, lambda room: room.unsubscribe(sink_key))
    except GameError:
        # Room already gone; its sinks were closed with it.
        return


def detach_sink(sink_key: str) -> list[str]:
    """Drop a sink from whichever rooms hold it.

    A player bound to the sink is removed as well while the room is still in
    the lobby. Returns the ids of the rooms that held the sink.
    """
    touched = []
    for room in _registry.list_rooms():
        with room.lock:
            if room.closed or sink_key not in room.hub:
                continue
            sink = room.unsubscribe(sink_key)
            touched.append(room.id)
            pid = sink.player_id if sink is not None else None
            if pid and room.phase is Phase.LOBBY and pid in room.players and not room.hub.player_sinks(pid):
                logger.info("room %s: %s lost its last connection in the lobby", room.id, pid)
                room.leave(pid)
    return touched


# ── commands ──────────────────────────────────────────────────────────────


def join(room_id: str, player_id: str, name: str) -> dict:
    player = _registry.with_room(room_id, lambda room: room.join(player_id, name))
    return {"id": player.id, "name": player.name}


def leave(room_id: str, player_id: str) -> None:
    _registry.with_room(room_id, lambda room: room.leave(player_id))


def mark_ready(room_id: str, player_id: str) -> bool:
    return _registry.with_room(room_id, lambda room: room.mark_ready(player_id))


def submit_keyword(room_id: str, player_id: str, keyword: str) -> str:
    return _registry.with_room(room_id, lambda room: room.submit_keyword(player_id, keyword))


def confirm_keyword(room_id: str, player_id: str) -> bool:
    return _registry.with_room(room_id, lambda room: room.confirm_keyword(player_id))


def speak(room_id: str, player_id: str) -> int:
    return _registry.with_room(room_id, lambda room: room.speak(player_id))


def chat(room_id: str, text: str, player_id: str | None = None, player_name: str | None = None) -> str:
    return _registry.with_room(
        room_id, lambda room: room.chat(text, player_id=player_id, player_name=player_name)
    )


def start_vote(room_id: str) -> None:
    _registry.with_room(room_id, lambda room: room.start_vote())


def vote(room_id: str, voter_id: str, target_id: str) -> bool:
    return _registry.with_room(room_id, lambda room: room.vote(voter_id, target_id))


def reset(room_id: str) -> None:
    _registry.with_room(room_id, lambda room: room.reset())
