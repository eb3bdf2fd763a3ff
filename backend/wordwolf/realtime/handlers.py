from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from threading import RLock
from typing import Any, Callable

from flask import request
from flask_socketio import SocketIO, emit

from ..errors import GameError, InvalidInput, NotFound
from ..game import service
from ..utils import forms
from .sinks import SocketIOSink

logger = logging.getLogger(__name__)


@dataclass
class _Binding:
    room_id: str
    sink_key: str
    player_id: str | None = None


# sid -> the room stream that socket is subscribed to
_bindings: dict[str, _Binding] = {}
_lock = RLock()


def _get_binding(sid: str) -> _Binding:
    with _lock:
        binding = _bindings.get(sid)
    if binding is None:
        raise NotFound("部屋に接続していません")
    return binding


def _require_player(binding: _Binding) -> str:
    if not binding.player_id:
        raise NotFound("参加してから操作してください")
    return binding.player_id


def _unbind(sid: str) -> _Binding | None:
    with _lock:
        binding = _bindings.pop(sid, None)
    if binding is not None:
        service.unsubscribe(binding.room_id, binding.sink_key)
    return binding


def register_socketio_handlers(socketio: SocketIO) -> None:
    def _bind(room_id: str, player_id: str | None) -> _Binding:
        sid = request.sid
        _unbind(sid)
        sink = SocketIOSink(socketio, sid, player_id=player_id, namespace=request.namespace)
        service.subscribe(room_id, sink)
        binding = _Binding(room_id=room_id, sink_key=sink.key, player_id=player_id)
        with _lock:
            _bindings[sid] = binding
        return binding

    def acked(handler: Callable[[dict[str, Any]], dict | None]):
        """Turn a GameError into a ``room:error`` emit plus an error ack."""

        @functools.wraps(handler)
        def wrapper(data=None):
            try:
                result = handler(data if isinstance(data, dict) else {})
            except GameError as err:
                body = {"ok": False, **err.to_dict()}
                emit("room:error", body)
                return body
            return {"ok": True, **(result or {})}

        return wrapper

    @socketio.on("room:subscribe")
    @acked
    def room_subscribe(payload):
        room_id = forms.required(payload, "roomId")
        player_id = forms.text(payload, "playerId") or None
        _bind(room_id, player_id)

    @socketio.on("room:join")
    @acked
    def room_join(payload):
        room_id = forms.required(payload, "roomId")
        player_id = forms.required(payload, "playerId")
        name = forms.validate_name(forms.text(payload, "name"))

        player = service.join(room_id, player_id, name)
        _bind(room_id, player_id)
        return {"player": player}

    @socketio.on("room:leave")
    @acked
    def room_leave(payload):
        binding = _get_binding(request.sid)
        service.leave(binding.room_id, _require_player(binding))
        _unbind(request.sid)

    @socketio.on("room:ready")
    @acked
    def room_ready(payload):
        binding = _get_binding(request.sid)
        return {"started": service.mark_ready(binding.room_id, _require_player(binding))}

    @socketio.on("keyword:submit")
    @acked
    def keyword_submit(payload):
        binding = _get_binding(request.sid)
        keyword = service.submit_keyword(binding.room_id, _require_player(binding), forms.text(payload, "keyword"))
        return {"keyword": keyword}

    @socketio.on("keyword:confirm")
    @acked
    def keyword_confirm(payload):
        binding = _get_binding(request.sid)
        return {"discussionStarted": service.confirm_keyword(binding.room_id, _require_player(binding))}

    @socketio.on("player:speak")
    @acked
    def player_speak(payload):
        binding = _get_binding(request.sid)
        return {"remainingSpeak": service.speak(binding.room_id, _require_player(binding))}

    @socketio.on("chat:message")
    @acked
    def chat_message(payload):
        binding = _get_binding(request.sid)
        text = forms.text(payload, "text")
        if not text:
            raise InvalidInput("メッセージが空です")
        service.chat(binding.room_id, text, player_id=_require_player(binding))

    @socketio.on("vote:start")
    @acked
    def vote_start(payload):
        binding = _get_binding(request.sid)
        service.start_vote(binding.room_id)

    @socketio.on("vote:submit")
    @acked
    def vote_submit(payload):
        binding = _get_binding(request.sid)
        target_id = forms.required(payload, "targetId")
        return {"finished": service.vote(binding.room_id, _require_player(binding), target_id)}

    @socketio.on("room:reset")
    @acked
    def room_reset(payload):
        binding = _get_binding(request.sid)
        service.reset(binding.room_id)

    @socketio.on("disconnect")
    def on_disconnect(*args):
        with _lock:
            binding = _bindings.pop(request.sid, None)
        if binding is None:
            return
        rooms = service.detach_sink(binding.sink_key)
        logger.debug("socket %s disconnected from %s", request.sid, rooms or binding.room_id)
