"""Per-room fan-out of push messages.

The hub is only touched while the owning room's lock is held, so it keeps no
lock of its own. Sinks must never block: a sink that cannot take a message is
treated as gone and pruned.
"""
from __future__ import annotations

import logging
import queue
import uuid
from typing import Iterator, Protocol

logger = logging.getLogger(__name__)


class Sink(Protocol):
    key: str
    player_id: str | None

    def send(self, message: str) -> bool: ...

    def close(self) -> None: ...


class QueueSink:
    """Bounded in-memory sink drained by a streaming HTTP response."""

    _CLOSED = object()

    def __init__(self, player_id: str | None = None, maxsize: int = 64) -> None:
        self.key = uuid.uuid4().hex
        self.player_id = player_id or None
        self.closed = False
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)

    def send(self, message: str) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            self.closed = True
            return False
        return True

    def close(self) -> None:
        self.closed = True
        try:
            self._queue.put_nowait(self._CLOSED)
        except queue.Full:
            # The reader notices ``closed`` once it has drained the backlog.
            pass

    def messages(self, keepalive: float) -> Iterator[str | None]:
        """Yield queued messages in order; ``None`` marks an idle keepalive."""
        while True:
            try:
                item = self._queue.get(timeout=keepalive)
            except queue.Empty:
                if self.closed:
                    return
                yield None
                continue
            if item is self._CLOSED:
                return
            yield item


class BroadcastHub:
    def __init__(self, room_id: str) -> None:
        self.room_id = room_id
        self._sinks: dict[str, Sink] = {}

    def __len__(self) -> int:
        return len(self._sinks)

    def __contains__(self, key: str) -> bool:
        return key in self._sinks

    def add(self, sink: Sink) -> None:
        self._sinks[sink.key] = sink
        logger.debug("room %s: sink %s attached (player=%s, total=%d)",
                     self.room_id, sink.key, sink.player_id, len(self._sinks))

    def remove(self, key: str) -> Sink | None:
        sink = self._sinks.pop(key, None)
        if sink is not None:
            sink.close()
            logger.debug("room %s: sink %s detached (total=%d)", self.room_id, key, len(self._sinks))
        return sink

    def player_sinks(self, player_id: str) -> list[Sink]:
        return [s for s in self._sinks.values() if s.player_id == player_id]

    def _deliver(self, sink: Sink, message: str) -> bool:
        try:
            ok = sink.send(message)
        except Exception:
            logger.warning("room %s: sink %s raised on send", self.room_id, sink.key, exc_info=True)
            ok = False
        if not ok:
            self.remove(sink.key)
            logger.debug("room %s: pruned dead sink %s", self.room_id, sink.key)
        return ok

    def broadcast(self, message: str) -> int:
        delivered = 0
        for sink in list(self._sinks.values()):
            if self._deliver(sink, message):
                delivered += 1
        return delivered

    def send_to(self, key: str, message: str) -> bool:
        sink = self._sinks.get(key)
        if sink is None:
            return False
        return self._deliver(sink, message)

    def send_to_player(self, player_id: str, message: str) -> int:
        delivered = 0
        for sink in self.player_sinks(player_id):
            if self._deliver(sink, message):
                delivered += 1
        return delivered

    def close_all(self) -> None:
        for key in list(self._sinks):
            self.remove(key)
