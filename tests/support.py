from __future__ import annotations

import json
import random
import uuid

from backend.wordwolf.game.models import RoomConfig
from backend.wordwolf.game.room import Room


class RecordingSink:
    def __init__(self, player_id=None, fail=False):
        self.key = uuid.uuid4().hex
        self.player_id = player_id
        self.fail = fail
        self.closed = False
        self.messages: list[str] = []

    def send(self, message):
        if self.fail or self.closed:
            return False
        self.messages.append(message)
        return True

    def close(self):
        self.closed = True

    def decoded(self):
        return [json.loads(m) for m in self.messages if not m.startswith("CHAT|")]

    def of_type(self, kind):
        return [m for m in self.decoded() if m.get("type") == kind]

    def last_state(self):
        return self.of_type("state")[-1]


def make_room(room_id="r1", seed=7, **overrides) -> Room:
    params = dict(room_name="テスト部屋", max_players=3, wolf_count=1, discussion_seconds=60, voting_seconds=10)
    params.update(overrides)
    policy = params.pop("keyword_policy", "last")
    return Room(room_id, RoomConfig(**params), keyword_policy=policy, rng=random.Random(seed))


def fill_and_ready(room: Room, player_ids=("p1", "p2", "p3")) -> None:
    for pid in player_ids:
        room.join(pid, f"name-{pid}")
    for pid in player_ids:
        room.mark_ready(pid)


def start_discussion(room: Room, words=None) -> None:
    fill_and_ready(room)
    words = words or {"p1": "apple", "p2": "banana", "p3": "grape"}
    for pid, word in words.items():
        room.submit_keyword(pid, word)
