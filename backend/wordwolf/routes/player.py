from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..game import service
from ..utils import forms

bp = Blueprint("player", __name__)


@bp.get("/player/theme")
def player_theme():
    room_id = forms.required(request.args, "room_id")
    player_id = forms.required(request.args, "player_id")
    return jsonify(service.player_theme(room_id, player_id))
