from __future__ import annotations

import uuid

from flask_socketio import SocketIO


class SocketIOSink:
    """Hub sink that forwards every message to one Socket.IO connection."""

    def __init__(self, socketio: SocketIO, sid: str, player_id: str | None = None, namespace: str = "/") -> None:
        self.key = uuid.uuid4().hex
        self.sid = sid
        self.player_id = player_id or None
        self.namespace = namespace
        self.closed = False
        self._socketio = socketio

    def send(self, message: str) -> bool:
        if self.closed:
            return False
        if not self._socketio.server.manager.is_connected(self.sid, self.namespace):
            self.closed = True
            return False
        self._socketio.emit("message", message, to=self.sid, namespace=self.namespace)
        return True

    def close(self) -> None:
        self.closed = True
