from __future__ import annotations

import logging

from flask import Blueprint, Response, current_app, request, stream_with_context

from ..game import service
from ..game.hub import QueueSink
from ..utils import forms
from ..utils.sse import KEEPALIVE, format_sse

logger = logging.getLogger(__name__)

bp = Blueprint("events", __name__)


@bp.get("/events")
def events():
    room_id = forms.required(request.args, "room_id")
    player_id = forms.text(request.args, "id", "player_id") or None

    sink = QueueSink(player_id=player_id, maxsize=current_app.config["SINK_QUEUE_SIZE"])
    # Registers and queues the initial projection, or raises NotFound before streaming.
    service.subscribe(room_id, sink)
    keepalive = current_app.config["SSE_KEEPALIVE_SEC"]
    logger.debug("room %s: SSE stream opened (player=%s)", room_id, player_id)

    def stream():
        try:
            for message in sink.messages(keepalive):
                yield KEEPALIVE if message is None else format_sse(message)
        finally:
            service.unsubscribe(room_id, sink.key)
            logger.debug("room %s: SSE stream closed (player=%s)", room_id, player_id)

    return Response(
        stream_with_context(stream()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
