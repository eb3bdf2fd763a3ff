"""The per-room game coordinator.

A ``Room`` owns its players, keyword pool, phase state and broadcast hub.
Every method below expects the caller to hold ``room.lock``; the registry's
``with_room`` is the normal way in. Each successful command ends by pushing
the public projection to every sink.
"""
from __future__ import annotations

import json
import logging
import random
import threading
import time
from typing import Callable

from ..errors import AlreadyExists, GameError, InsufficientKeywords, InvalidInput, InvalidPhase, NotFound, RoomFull
from . import projection
from .hub import BroadcastHub, Sink
from .keywords import POLICY_LAST_WRITE_WINS, KeywordPool, shared_rng
from .models import RANDOM_GENRES, Phase, Player, RoomConfig, genre_label
from .rules import citizens_won, pick_wolves, role_for, tally_votes
from .state import Discussion, KeywordSubmission, Lobby, Result, RoomState, Voting, check_transition, require
from .timers import PhaseTimer

logger = logging.getLogger(__name__)

NAME_MAX_LEN = 16
CHAT_MAX_LEN = 200


class RoomLock:
    """Re-entrant room lock that remembers a crash inside its critical section.

    An unexpected exception escaping while the lock is held marks it poisoned.
    The next acquisition logs a warning and carries on with whatever state the
    room was left in.
    """

    def __init__(self, room_id: str) -> None:
        self.room_id = room_id
        self.poisoned = False
        self._lock = threading.RLock()

    def __enter__(self) -> RoomLock:
        self._lock.acquire()
        if self.poisoned:
            logger.warning("room %s: lock was poisoned by an earlier failure, recovering", self.room_id)
            self.poisoned = False
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc_type is not None and not issubclass(exc_type, GameError):
                self.poisoned = True
                logger.error("room %s: %s raised inside the room lock", self.room_id, exc_type.__name__)
        finally:
            self._lock.release()
        return False


def _display_name(raw: str | None) -> str:
    name = (raw or "").strip()
    if not name or len(name) > NAME_MAX_LEN:
        raise InvalidInput(f"名前は1〜{NAME_MAX_LEN}文字にしてください")
    # "|" separates the fields of a chat line; "<" and ">" keep markup out.
    if any(ch in "<>|" or ord(ch) < 32 for ch in name):
        raise InvalidInput("名前に使えない文字が含まれています")
    return name


def _notice(message: str) -> str:
    return json.dumps({"type": "notice", "message": message}, ensure_ascii=False)


class Room:
    def __init__(
        self,
        room_id: str,
        config: RoomConfig,
        *,
        keyword_policy: str = POLICY_LAST_WRITE_WINS,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        config.validate()

        self.id = room_id
        self.config = config
        self.rng = rng or shared_rng()
        self.clock = clock
        self.lock = RoomLock(room_id)
        self.hub = BroadcastHub(room_id)

        self.players: dict[str, Player] = {}
        self.pool = KeywordPool(keyword_policy, self.rng)
        self.state: RoomState = Lobby()
        self.wolf_ids: frozenset[str] = frozenset()
        self.genre: str | None = config.theme_genre
        self.generation = self.rng.randint(1, 1 << 20)
        self.remaining_discussion_sec = config.discussion_seconds
        self.remaining_voting_sec = config.voting_seconds

        self._timers: list[PhaseTimer] = []
        self._empty_since: float | None = None
        self.closed = False

    # ── queries ────────────────────────────────────────────────────────────

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def is_full(self) -> bool:
        return len(self.players) >= self.config.max_players

    @property
    def genre_label(self) -> str:
        return genre_label(self.genre)

    def active_players(self) -> list[Player]:
        return [p for p in sorted(self.players.values(), key=lambda p: p.id) if p.alive]

    def get_player(self, player_id: str) -> Player:
        player = self.players.get(player_id)
        if player is None:
            raise NotFound("参加してから操作してください")
        return player

    def remaining_time(self) -> int | None:
        if self.phase is Phase.DISCUSSION:
            return self.remaining_discussion_sec
        if self.phase is Phase.VOTING:
            return self.remaining_voting_sec
        return None

    def public_state(self, viewer_id: str | None = None) -> dict:
        return projection.public_state(self, viewer_id=viewer_id)

    def idle_seconds(self, now: float) -> float:
        """How long the room has had neither players nor listeners."""
        if self.players or len(self.hub):
            self._empty_since = None
            return 0.0
        if self._empty_since is None:
            self._empty_since = now
        return now - self._empty_since

    # ── push helpers ───────────────────────────────────────────────────────

    def broadcast_state(self) -> None:
        self.hub.broadcast(projection.encode(self.public_state()))

    def notify(self, message: str) -> None:
        self.hub.broadcast(_notice(message))

    def subscribe(self, sink: Sink) -> None:
        if self.closed:
            raise NotFound("部屋が見つかりません")
        self.hub.add(sink)
        self.hub.send_to(sink.key, projection.encode(self.public_state(viewer_id=sink.player_id)))

    def unsubscribe(self, key: str) -> Sink | None:
        return self.hub.remove(key)

    # ── lobby ──────────────────────────────────────────────────────────────

    def join(self, player_id: str, name: str) -> Player:
        require(self.state, Phase.LOBBY)

        pid = (player_id or "").strip()
        if not pid:
            raise InvalidInput("プレイヤーIDが必要です")
        display = _display_name(name)
        if pid in self.players:
            raise AlreadyExists("そのIDは既に参加しています")
        if self.is_full:
            raise RoomFull()

        player = Player(id=pid, name=display, remaining_speak=self.config.speak_budget)
        self.players[pid] = player
        logger.info("room %s: %s (%s) joined, %d/%d", self.id, pid, display, len(self.players), self.config.max_players)

        self.notify(f"{display}さんが参加しました")
        self.broadcast_state()
        return player

    def leave(self, player_id: str) -> None:
        require(self.state, Phase.LOBBY)
        player = self.get_player(player_id)

        del self.players[player.id]
        self.state.ready.discard(player.id)
        logger.info("room %s: %s left", self.id, player.id)

        self.notify(f"{player.name}さんが退出しました")
        self._maybe_start_game()
        self.broadcast_state()

    def mark_ready(self, player_id: str) -> bool:
        """Returns True when this call started the game."""
        require(self.state, Phase.LOBBY)
        player = self.get_player(player_id)

        if player.id in self.state.ready:
            return False

        self.state.ready.add(player.id)
        started = self._maybe_start_game()
        self.broadcast_state()
        return started

    def _maybe_start_game(self) -> bool:
        if not isinstance(self.state, Lobby) or not self.players:
            return False
        if self.state.ready != set(self.players):
            return False

        count = len(self.players)
        wolves = self.config.wolf_count
        if count <= wolves:
            self.notify(
                f"あと{wolves + 1 - count}人必要です（現在{count}人、ワードウルフ{wolves}人）。"
                f"部屋ID「{self.id}」を他のプレイヤーに共有してください！"
            )
            return False

        self._enter_keyword_submission()
        return True

    # ── transitions ────────────────────────────────────────────────────────

    def _bump_generation(self) -> None:
        self.generation += self.rng.randint(1, 1 << 16)

    def _enter_keyword_submission(self) -> None:
        check_transition(self.phase, Phase.KEYWORD_SUBMISSION)

        self._bump_generation()
        self._timers = []
        self.wolf_ids = frozenset()
        for p in self.players.values():
            p.clear_round()
            p.remaining_speak = self.config.speak_budget

        active = self.active_players()
        self.pool.reset(expected=len(active))
        self.genre = self.config.theme_genre or self.rng.choice(RANDOM_GENRES)
        self.remaining_discussion_sec = self.config.discussion_seconds
        self.remaining_voting_sec = self.config.voting_seconds
        self.state = KeywordSubmission(active_players=len(active))

        logger.info("room %s: game %d started with %d players, genre=%s",
                    self.id, self.generation, len(active), self.genre_label)
        self.notify(f"全員準備完了！ゲームを開始します。ジャンル「{self.genre_label}」のキーワードを提出してください")

    def _assign_roles_and_keywords(self) -> None:
        active = self.active_players()
        self.wolf_ids = pick_wolves([p.id for p in active], self.config.wolf_count, self.rng)
        for p in active:
            p.assign(role_for(p.id, self.wolf_ids), self.pool.word_for(p.id, self.wolf_ids))

        self.state.assigned = True
        logger.info("room %s: roles assigned (%d wolves)", self.id, len(self.wolf_ids))

        for p in active:
            self.hub.send_to_player(
                p.id, json.dumps({"type": "your_topic", "topic": p.keyword}, ensure_ascii=False)
            )

    def _enter_discussion(self) -> None:
        check_transition(self.phase, Phase.DISCUSSION)

        for p in self.players.values():
            p.remaining_speak = self.config.speak_budget
        self.remaining_discussion_sec = self.config.discussion_seconds
        self.state = Discussion(started_at=self.clock())
        self._timers.append(PhaseTimer(Phase.DISCUSSION, self.generation))

        minutes, seconds = divmod(self.config.discussion_seconds, 60)
        logger.info("room %s: discussion started (%ds)", self.id, self.config.discussion_seconds)
        self.notify(f"ディスカッションを開始します。制限時間: {minutes}分{seconds}秒")

    def _enter_voting(self) -> None:
        check_transition(self.phase, Phase.VOTING)

        for p in self.players.values():
            p.vote_target = None
        self.remaining_voting_sec = self.config.voting_seconds
        self.state = Voting()
        self._timers.append(PhaseTimer(Phase.VOTING, self.generation))

        logger.info("room %s: voting started (%ds)", self.id, self.config.voting_seconds)
        self.notify("投票フェーズが始まりました！ワードウルフだと思う人に投票してください。")

    def _finish(self) -> None:
        check_transition(self.phase, Phase.RESULT)

        votes = {p.id: p.vote_target for p in self.active_players() if p.vote_target is not None}
        result = tally_votes(votes)
        won = citizens_won(result.executed_id, self.wolf_ids)

        executed = self.players.get(result.executed_id) if result.executed_id else None
        if executed is not None:
            executed.alive = False

        self.state = Result(
            executed_id=result.executed_id,
            citizens_won=won,
            vote_count=result.vote_count,
            tally=result.breakdown,
        )
        logger.info("room %s: game %d finished, executed=%s citizens_won=%s",
                    self.id, self.generation, result.executed_id, won)

        if executed is not None:
            self.notify(f"{executed.name}さんが{result.vote_count}票で脱落しました")
        if won:
            self.notify("ゲーム終了！市民の勝利です！ワードウルフを見つけました！")
        else:
            self.notify("ゲーム終了！ワードウルフの勝利です！市民を騙すことに成功しました！")

    # ── keyword submission ─────────────────────────────────────────────────

    def submit_keyword(self, player_id: str, word: str) -> str:
        require(self.state, Phase.KEYWORD_SUBMISSION)
        player = self.get_player(player_id)
        if self.state.assigned:
            raise InvalidPhase("お題は既に決定しています")

        accepted = self.pool.submit(player.id, word)
        logger.debug("room %s: keyword from %s (%d/%d)",
                     self.id, player.id, self.pool.submitted_count, self.state.active_players)

        try:
            pair = self.pool.try_draw(self.state.active_players)
        except InsufficientKeywords:
            self.pool.clear_submissions()
            logger.info("room %s: keywords were not distinct, asking for resubmission", self.id)
            self.notify("キーワードが全員同じでした。別のキーワードをもう一度提出してください")
            self.broadcast_state()
            raise

        if pair is not None:
            self._assign_roles_and_keywords()
            if not self.config.require_confirm:
                self._enter_discussion()

        self.broadcast_state()
        return accepted

    def confirm_keyword(self, player_id: str) -> bool:
        """Returns True when this confirmation opened the discussion."""
        require(self.state, Phase.KEYWORD_SUBMISSION)
        player = self.get_player(player_id)
        if not self.state.assigned:
            raise InvalidPhase("お題がまだ決まっていません")
        if player.id in self.state.confirmed:
            return False

        self.state.confirmed.add(player.id)
        opened = False
        if self.state.confirmed >= {p.id for p in self.active_players()}:
            self._enter_discussion()
            opened = True

        self.broadcast_state()
        return opened

    # ── discussion ─────────────────────────────────────────────────────────

    def speak(self, player_id: str) -> int:
        require(self.state, Phase.DISCUSSION)
        player = self.get_player(player_id)

        if player.remaining_speak > 0:
            player.remaining_speak -= 1
            self.broadcast_state()
        return player.remaining_speak

    def chat(self, text: str, *, player_id: str | None = None, player_name: str | None = None) -> str:
        require(self.state, Phase.DISCUSSION)

        if player_id:
            name = self.get_player(player_id).name
        else:
            name = _display_name(player_name)

        body = (text or "").strip()
        if not body:
            raise InvalidInput("メッセージが空です")
        if len(body) > CHAT_MAX_LEN:
            raise InvalidInput(f"メッセージは{CHAT_MAX_LEN}文字以内にしてください")

        line = f"CHAT|{name}|{body}"
        self.hub.broadcast(line)
        return line

    def start_vote(self) -> None:
        require(self.state, Phase.DISCUSSION)
        self._enter_voting()
        self.broadcast_state()

    # ── voting ─────────────────────────────────────────────────────────────

    def vote(self, voter_id: str, target_id: str) -> bool:
        """Returns True when this vote completed the round."""
        require(self.state, Phase.VOTING)

        voter = self.players.get(voter_id)
        if voter is None:
            raise NotFound("参加してから投票してください")
        if not voter.alive:
            raise InvalidPhase("脱落したプレイヤーは投票できません")
        if target_id not in self.players:
            raise NotFound("投票先が見つかりません")

        voter.vote_target = target_id
        self.state.voted.add(voter.id)

        finished = False
        if self.state.voted >= {p.id for p in self.active_players()}:
            self._finish()
            finished = True

        self.broadcast_state()
        return finished

    # ── timers ─────────────────────────────────────────────────────────────

    def countdown(self, phase: Phase) -> int:
        if phase is Phase.DISCUSSION:
            self.remaining_discussion_sec = max(0, self.remaining_discussion_sec - 1)
            return self.remaining_discussion_sec
        if phase is Phase.VOTING:
            self.remaining_voting_sec = max(0, self.remaining_voting_sec - 1)
            return self.remaining_voting_sec
        raise ValueError(f"{phase.value} has no timer")

    def expire(self, phase: Phase) -> None:
        if phase is Phase.DISCUSSION:
            self._enter_voting()
        elif phase is Phase.VOTING:
            self._finish()

    def tick_timers(self) -> bool:
        """Advance every armed timer by one second.

        Returns True when at least one timer was live, in which case the new
        projection has been broadcast.
        """
        armed, self._timers = self._timers, []
        live = False
        survivors = []
        for timer in armed:
            if timer.generation == self.generation and timer.phase is self.phase:
                live = True
            if timer.tick(self):
                survivors.append(timer)
        # Timers armed by an expiry during this tick start counting next time.
        self._timers = survivors + self._timers

        if live:
            self.broadcast_state()
        return live

    # ── lifecycle ──────────────────────────────────────────────────────────

    def reset(self) -> None:
        self._bump_generation()
        self._timers = []
        self.players = {}
        self.pool.reset(expected=0)
        self.wolf_ids = frozenset()
        self.genre = self.config.theme_genre
        self.remaining_discussion_sec = self.config.discussion_seconds
        self.remaining_voting_sec = self.config.voting_seconds
        self.state = Lobby()

        logger.info("room %s: reset, generation=%d", self.id, self.generation)
        self.hub.broadcast(json.dumps({"type": "reset"}))
        self.broadcast_state()

    def close(self) -> None:
        self._bump_generation()
        self._timers = []
        self.closed = True
        self.hub.close_all()
