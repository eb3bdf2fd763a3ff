from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from .models import Phase

if TYPE_CHECKING:
    from flask_socketio import SocketIO

    from .registry import RoomRegistry
    from .room import Room

logger = logging.getLogger(__name__)


@dataclass
class PhaseTimer:
    """Countdown for one timed phase of one game instance.

    A timer is never cancelled from outside. It compares the room's generation
    and phase on every tick and retires itself once either has moved on.
    """

    phase: Phase
    generation: int

    def tick(self, room: Room) -> bool:
        if room.generation != self.generation:
            logger.debug("room %s: %s timer retired (stale generation)", room.id, self.phase.value)
            return False
        if room.phase is not self.phase:
            logger.debug("room %s: %s timer retired (phase is %s)", room.id, self.phase.value, room.phase.value)
            return False

        remaining = room.countdown(self.phase)
        if remaining > 0:
            return True

        logger.info("room %s: %s time is up", room.id, self.phase.value)
        room.expire(self.phase)
        return False


class Sweeper:
    """Ticks every room once per interval from a single background task."""

    def __init__(
        self,
        registry: RoomRegistry,
        interval: float = 1.0,
        empty_room_ttl: float = 0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.interval = interval
        self.empty_room_ttl = empty_room_ttl
        self._sleep = sleep
        self._clock = clock
        self._stopped = False

    def stop(self) -> None:
        self._stopped = True

    def tick_once(self) -> None:
        self.registry.tick_all()
        if self.empty_room_ttl > 0:
            self.registry.reap_empty(self.empty_room_ttl, now=self._clock())

    def run(self) -> None:
        logger.info("sweeper started (interval=%.2fs)", self.interval)
        while not self._stopped:
            try:
                self.tick_once()
            except Exception:
                logger.exception("sweeper tick failed")
            self._sleep(self.interval)
        logger.info("sweeper stopped")


def start_sweeper(socketio: SocketIO, registry: RoomRegistry, interval: float, empty_room_ttl: float) -> Sweeper:
    sweeper = Sweeper(registry, interval=interval, empty_room_ttl=empty_room_ttl, sleep=socketio.sleep)
    socketio.start_background_task(sweeper.run)
    return sweeper
