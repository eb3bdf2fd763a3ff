from __future__ import annotations

import logging
import uuid
from threading import RLock
from typing import Callable, TypeVar

from ..errors import AlreadyExists, InvalidInput, NotFound
from .models import RoomConfig
from .room import Room

logger = logging.getLogger(__name__)

T = TypeVar("T")

ROOM_ID_MAX_LEN = 32


class RoomRegistry:
    """Name-keyed map of rooms.

    Lock order is registry first, then room. The registry lock only guards the
    map itself and is always released before a room's lock is taken, so a
    slow room never blocks lookups of other rooms.
    """

    def __init__(self, room_factory: Callable[[str, RoomConfig], Room] = Room) -> None:
        self._lock = RLock()
        self._rooms: dict[str, Room] = {}
        self._room_factory = room_factory

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)

    def create(self, room_id: str | None, config: RoomConfig) -> Room:
        rid = (room_id or "").strip()
        if len(rid) > ROOM_ID_MAX_LEN:
            raise InvalidInput(f"部屋IDは{ROOM_ID_MAX_LEN}文字以内にしてください")

        with self._lock:
            if not rid:
                rid = uuid.uuid4().hex[:8]
                while rid in self._rooms:
                    rid = uuid.uuid4().hex[:8]
            elif rid in self._rooms:
                raise AlreadyExists(f"部屋「{rid}」は既に存在します")

            room = self._room_factory(rid, config)
            self._rooms[rid] = room

        logger.info("room %s created (%s, max=%d, wolves=%d)", rid, config.room_name, config.max_players, config.wolf_count)
        return room

    def exists(self, room_id: str) -> bool:
        with self._lock:
            return room_id in self._rooms

    def get(self, room_id: str) -> Room:
        with self._lock:
            room = self._rooms.get(room_id)
        if room is None:
            raise NotFound(f"部屋「{room_id}」が見つかりません")
        return room

    def list_rooms(self) -> list[Room]:
        with self._lock:
            return list(self._rooms.values())

    def ids(self) -> list[str]:
        with self._lock:
            return sorted(self._rooms)

    def delete(self, room_id: str) -> None:
        with self._lock:
            room = self._rooms.pop(room_id, None)
        if room is None:
            raise NotFound(f"部屋「{room_id}」が見つかりません")

        with room.lock:
            room.close()
        logger.info("room %s deleted", room_id)

    def clear(self) -> None:
        with self._lock:
            rooms, self._rooms = list(self._rooms.values()), {}
        for room in rooms:
            with room.lock:
                room.close()

    def with_room(self, room_id: str, op: Callable[[Room], T]) -> T:
        """Run ``op`` against the room while holding the room's lock."""
        room = self.get(room_id)
        with room.lock:
            if room.closed:
                raise NotFound(f"部屋「{room_id}」が見つかりません")
            return op(room)

    def tick_all(self) -> None:
        for room in self.list_rooms():
            with room.lock:
                if not room.closed:
                    room.tick_timers()

    def reap_empty(self, ttl: float, now: float) -> list[str]:
        expired = []
        # Idle check and removal both run under registry lock, then room lock.
        with self._lock:
            for room_id, room in list(self._rooms.items()):
                with room.lock:
                    if room.idle_seconds(now) >= ttl:
                        del self._rooms[room_id]
                        room.close()
                        expired.append(room_id)
        for room_id in expired:
            logger.info("room %s removed after %.0fs without players", room_id, ttl)
        return expired
