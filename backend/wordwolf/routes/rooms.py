from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..game import service
from ..game.models import RoomConfig
from ..utils import forms

bp = Blueprint("rooms", __name__)


def _room_config(data: dict) -> RoomConfig:
    cfg = current_app.config
    genre = forms.text(data, "genre") or None
    return RoomConfig(
        room_name=forms.text(data, "room_name") or "ワードウルフ",
        max_players=forms.integer(data, "max_players", cfg["DEFAULT_MAX_PLAYERS"]),
        wolf_count=forms.integer(data, "wolf_count", cfg["DEFAULT_WOLF_COUNT"]),
        theme_genre=genre,
        discussion_seconds=forms.integer(data, "discussion_time", cfg["DEFAULT_DISCUSSION_SEC"]),
        voting_seconds=forms.integer(data, "voting_time", cfg["DEFAULT_VOTING_SEC"]),
        speak_budget=forms.integer(data, "max_speak", cfg["DEFAULT_SPEAK_BUDGET"]),
        require_confirm=forms.flag(data, "require_confirm"),
    )


@bp.post("/room/create")
def create_room():
    data = forms.payload(request)
    summary = service.create_room(forms.text(data, "room_id"), _room_config(data))
    return jsonify({"ok": True, "room": summary}), 201


@bp.get("/room/list")
def list_rooms():
    return jsonify({"rooms": service.list_rooms()})


@bp.get("/room/state")
def room_state():
    room_id = forms.required(request.args, "room_id")
    viewer = forms.text(request.args, "player_id", "id") or None
    return jsonify(service.room_public_state(room_id, viewer_id=viewer))


@bp.get("/room/players")
def room_players():
    return jsonify(service.room_players(forms.required(request.args, "room_id")))


@bp.get("/room/timer")
def room_timer():
    return jsonify(service.room_timer(forms.required(request.args, "room_id")))


@bp.post("/room/join")
def join():
    data = forms.payload(request)
    name = forms.validate_name(forms.text(data, "player_name", "name"))
    player = service.join(forms.required(data, "room_id"), forms.required(data, "player_id"), name)
    return jsonify({"ok": True, "player": player})


@bp.post("/room/leave")
def leave():
    data = forms.payload(request)
    service.leave(forms.required(data, "room_id"), forms.required(data, "player_id"))
    return jsonify({"ok": True})


@bp.post("/room/ready")
def ready():
    data = forms.payload(request)
    started = service.mark_ready(forms.required(data, "room_id"), forms.required(data, "player_id"))
    return jsonify({"ok": True, "started": started})


@bp.post("/room/keyword")
def submit_keyword():
    data = forms.payload(request)
    keyword = service.submit_keyword(
        forms.required(data, "room_id"),
        forms.required(data, "player_id"),
        forms.text(data, "keyword"),
    )
    return jsonify({"ok": True, "keyword": keyword})


@bp.post("/room/theme/confirm")
def confirm_theme():
    data = forms.payload(request)
    opened = service.confirm_keyword(forms.required(data, "room_id"), forms.required(data, "player_id"))
    return jsonify({"ok": True, "discussion_started": opened})


@bp.post("/room/speak")
def speak():
    data = forms.payload(request)
    remaining = service.speak(forms.required(data, "room_id"), forms.required(data, "player_id"))
    return jsonify({"ok": True, "remaining_speak": remaining})


def _chat_name(data: dict) -> str | None:
    if forms.text(data, "player_id"):
        return None
    return forms.validate_name(forms.text(data, "player_name"))


@bp.post("/room/chat")
def chat():
    data = forms.payload(request)
    line = service.chat(
        forms.required(data, "room_id"),
        forms.text(data, "message"),
        player_id=forms.text(data, "player_id") or None,
        player_name=_chat_name(data),
    )
    return jsonify({"ok": True, "line": line})


@bp.post("/room/start-vote")
def start_vote():
    data = forms.payload(request)
    service.start_vote(forms.required(data, "room_id"))
    return jsonify({"ok": True})


@bp.post("/room/vote")
def vote():
    data = forms.payload(request)
    finished = service.vote(
        forms.required(data, "room_id"),
        forms.required(data, "voter_id"),
        forms.required(data, "target_id"),
    )
    return jsonify({"ok": True, "finished": finished})


@bp.post("/room/reset")
def reset():
    data = forms.payload(request)
    service.reset(forms.required(data, "room_id"))
    return jsonify({"ok": True})


@bp.post("/room/delete")
def delete_room():
    data = forms.payload(request)
    service.delete_room(forms.required(data, "room_id"))
    return jsonify({"ok": True})
