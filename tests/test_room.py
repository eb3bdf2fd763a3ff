import threading
import unittest

from backend.wordwolf.errors import (
    AlreadyExists,
    DuplicateSubmission,
    InsufficientKeywords,
    InvalidInput,
    InvalidPhase,
    NotFound,
    RoomFull,
)
from backend.wordwolf.game.models import Phase, Role

from support import RecordingSink, fill_and_ready, make_room, start_discussion

RESULT_ONLY_KEYS = {"wolf_id", "wolf_ids", "executed_id", "vote_count", "tally"}


class LobbyTests(unittest.TestCase):
    def test_join_broadcasts_notice_and_state(self):
        room = make_room()
        sink = RecordingSink()
        room.subscribe(sink)
        room.join("p1", "アリス")

        self.assertEqual(sink.of_type("notice")[-1]["message"], "アリスさんが参加しました")
        state = sink.last_state()
        self.assertEqual(state["phase"], "Lobby")
        self.assertEqual(list(state["players"]), ["p1"])

    def test_join_rejections(self):
        room = make_room()
        room.join("p1", "a")
        room.join("p2", "b")
        with self.assertRaises(AlreadyExists):
            room.join("p1", "again")
        with self.assertRaises(InvalidInput):
            room.join("p9", "")
        room.join("p3", "c")
        for pid in ("p1", "p2", "p3"):
            room.mark_ready(pid)
        # game started, so joining is closed
        with self.assertRaises(InvalidPhase):
            room.join("p4", "d")

    def test_room_full(self):
        room = make_room()
        for pid in ("p1", "p2", "p3"):
            room.join(pid, pid)
        with self.assertRaises(RoomFull):
            room.join("p4", "p4")

    def test_double_ready_is_a_no_op(self):
        room = make_room(max_players=4)
        room.join("p1", "a")
        room.join("p2", "b")
        sink = RecordingSink()
        room.subscribe(sink)
        room.mark_ready("p1")
        count = len(sink.messages)
        self.assertFalse(room.mark_ready("p1"))
        self.assertEqual(len(sink.messages), count)
        self.assertIs(room.phase, Phase.LOBBY)

    def test_all_ready_but_too_few_players(self):
        room = make_room()
        sink = RecordingSink()
        room.subscribe(sink)
        room.join("p1", "a")
        self.assertFalse(room.mark_ready("p1"))
        self.assertIs(room.phase, Phase.LOBBY)
        self.assertIn("あと1人必要です", sink.of_type("notice")[-1]["message"])

    def test_leave_can_start_the_game(self):
        room = make_room(max_players=4)
        for pid in ("p1", "p2", "p3", "p4"):
            room.join(pid, pid)
        for pid in ("p1", "p2", "p3"):
            room.mark_ready(pid)
        self.assertIs(room.phase, Phase.LOBBY)
        room.leave("p4")
        self.assertIs(room.phase, Phase.KEYWORD_SUBMISSION)
        self.assertNotIn("p4", room.players)

    def test_leave_unknown_player(self):
        room = make_room()
        with self.assertRaises(NotFound):
            room.leave("ghost")


class HappyPathTests(unittest.TestCase):
    def test_three_players_one_wolf(self):
        room = make_room()
        watcher = RecordingSink()
        personal = {pid: RecordingSink(pid) for pid in ("p1", "p2", "p3")}
        room.subscribe(watcher)
        for sink in personal.values():
            room.subscribe(sink)

        fill_and_ready(room)
        self.assertIs(room.phase, Phase.KEYWORD_SUBMISSION)

        room.submit_keyword("p1", "apple")
        room.submit_keyword("p2", "banana")
        self.assertIs(room.phase, Phase.KEYWORD_SUBMISSION)
        room.submit_keyword("p3", "grape")

        self.assertIs(room.phase, Phase.DISCUSSION)
        self.assertEqual(room.remaining_discussion_sec, 60)
        self.assertEqual(len(room.wolf_ids), 1)
        wolves = [p for p in room.players.values() if p.role is Role.WOLF]
        self.assertEqual([p.id for p in wolves], list(room.wolf_ids))

        citizen_word, wolf_word = room.pool.selected
        self.assertNotEqual(citizen_word, wolf_word)
        for pid, sink in personal.items():
            topics = sink.of_type("your_topic")
            self.assertEqual(len(topics), 1)
            expected = wolf_word if pid in room.wolf_ids else citizen_word
            self.assertEqual(topics[0]["topic"], expected)
        # private keyword never goes to a sink that is not the player's own
        self.assertEqual(watcher.of_type("your_topic"), [])

        room.start_vote()
        self.assertIs(room.phase, Phase.VOTING)
        self.assertFalse(room.vote("p1", "p2"))
        self.assertFalse(room.vote("p2", "p2"))
        self.assertTrue(room.vote("p3", "p2"))

        self.assertIs(room.phase, Phase.RESULT)
        self.assertEqual(room.state.executed_id, "p2")
        self.assertEqual(room.state.citizens_won, "p2" in room.wolf_ids)
        self.assertFalse(room.players["p2"].alive)

        final = watcher.last_state()
        self.assertEqual(final["executed_id"], "p2")
        self.assertEqual(final["vote_count"], 3)
        self.assertEqual(final["wolf_ids"], sorted(room.wolf_ids))
        self.assertEqual(final["is_villager_win"], room.state.citizens_won)

    def test_no_result_fields_before_result(self):
        room = make_room()
        watcher = RecordingSink()
        room.subscribe(watcher)
        start_discussion(room)
        room.start_vote()
        room.vote("p1", "p3")

        for state in watcher.of_type("state"):
            self.assertNotEqual(state["phase"], "Result")
            self.assertFalse(RESULT_ONLY_KEYS & set(state))
            for entry in state["players"].values():
                self.assertIsNone(entry["topic"])
                self.assertIsNone(entry["vote"])

    def test_viewer_sees_only_own_topic(self):
        room = make_room()
        start_discussion(room)
        state = room.public_state(viewer_id="p1")
        self.assertEqual(state["players"]["p1"]["topic"], room.players["p1"].keyword)
        self.assertIsNone(state["players"]["p2"]["topic"])

    def test_vote_change_before_quorum(self):
        room = make_room()
        start_discussion(room)
        room.start_vote()
        room.vote("p1", "p2")
        room.vote("p1", "p3")
        room.vote("p2", "p3")
        room.vote("p3", "p1")
        self.assertEqual(room.state.executed_id, "p3")
        self.assertEqual(room.state.vote_count, 2)

    def test_vote_after_quorum_does_not_change_outcome(self):
        room = make_room()
        start_discussion(room)
        room.start_vote()
        for voter in ("p1", "p2", "p3"):
            room.vote(voter, "p1")
        with self.assertRaises(InvalidPhase):
            room.vote("p2", "p3")
        self.assertEqual(room.state.executed_id, "p1")

    def test_vote_validation(self):
        room = make_room()
        start_discussion(room)
        with self.assertRaises(InvalidPhase):
            room.vote("p1", "p2")
        room.start_vote()
        with self.assertRaises(NotFound):
            room.vote("ghost", "p2")
        with self.assertRaises(NotFound):
            room.vote("p1", "ghost")


class TwoWolfTests(unittest.TestCase):
    def test_wolves_share_one_word(self):
        ids = ("p1", "p2", "p3", "p4", "p5")
        room = make_room(max_players=5, wolf_count=2)
        personal = {pid: RecordingSink(pid) for pid in ids}
        for sink in personal.values():
            room.subscribe(sink)

        fill_and_ready(room, ids)
        for pid, word in zip(ids, ("a", "b", "a", "b", "c")):
            room.submit_keyword(pid, word)
        self.assertIs(room.phase, Phase.DISCUSSION)

        citizen_word, wolf_word = room.pool.selected
        self.assertNotEqual(citizen_word, wolf_word)
        wolves = sorted(p.id for p in room.players.values() if p.role is Role.WOLF)
        self.assertEqual(len(wolves), 2)
        self.assertEqual(wolves, sorted(room.wolf_ids))

        for pid in ids:
            expected = wolf_word if pid in room.wolf_ids else citizen_word
            self.assertEqual(room.players[pid].keyword, expected)
            topics = personal[pid].of_type("your_topic")
            self.assertEqual([t["topic"] for t in topics], [expected])

        room.start_vote()
        for pid in ids:
            room.vote(pid, wolves[0])
        result = room.public_state()
        self.assertEqual(result["wolf_ids"], wolves)
        self.assertEqual(result["wolf_id"], wolves[0])
        self.assertTrue(result["is_villager_win"])


class KeywordSubmissionTests(unittest.TestCase):
    def test_identical_keywords_ask_for_resubmission(self):
        room = make_room()
        sink = RecordingSink()
        room.subscribe(sink)
        fill_and_ready(room)
        room.submit_keyword("p1", "apple")
        room.submit_keyword("p2", "apple")
        with self.assertRaises(InsufficientKeywords):
            room.submit_keyword("p3", "apple")

        self.assertIs(room.phase, Phase.KEYWORD_SUBMISSION)
        self.assertEqual(room.pool.submitted_count, 0)
        self.assertIn("全員同じ", sink.of_type("notice")[-1]["message"])

        for pid, word in (("p1", "apple"), ("p2", "apple"), ("p3", "pear")):
            room.submit_keyword(pid, word)
        self.assertIs(room.phase, Phase.DISCUSSION)

    def test_first_write_policy(self):
        room = make_room(keyword_policy="first")
        fill_and_ready(room)
        room.submit_keyword("p1", "apple")
        with self.assertRaises(DuplicateSubmission):
            room.submit_keyword("p1", "melon")

    def test_last_write_policy(self):
        room = make_room()
        fill_and_ready(room)
        room.submit_keyword("p1", "apple")
        room.submit_keyword("p1", "melon")
        self.assertEqual(room.pool.submissions["p1"], "melon")

    def test_submit_outside_phase(self):
        room = make_room()
        room.join("p1", "a")
        with self.assertRaises(InvalidPhase):
            room.submit_keyword("p1", "apple")

    def test_confirm_step(self):
        room = make_room(require_confirm=True)
        start_discussion(room)
        self.assertIs(room.phase, Phase.KEYWORD_SUBMISSION)
        self.assertTrue(room.state.assigned)

        self.assertFalse(room.confirm_keyword("p1"))
        self.assertFalse(room.confirm_keyword("p1"))
        self.assertFalse(room.confirm_keyword("p2"))
        self.assertTrue(room.confirm_keyword("p3"))
        self.assertIs(room.phase, Phase.DISCUSSION)

    def test_confirm_before_assignment(self):
        room = make_room(require_confirm=True)
        fill_and_ready(room)
        with self.assertRaises(InvalidPhase):
            room.confirm_keyword("p1")

    def test_random_genre_when_unset(self):
        room = make_room()
        fill_and_ready(room)
        self.assertTrue(room.genre_label)

    def test_preset_genre_label(self):
        room = make_room(theme_genre="Food")
        fill_and_ready(room)
        self.assertEqual(room.public_state()["genre"], "食べ物")


class DiscussionTests(unittest.TestCase):
    def test_speak_credits_run_out(self):
        room = make_room(speak_budget=2)
        start_discussion(room)
        self.assertEqual(room.speak("p1"), 1)
        self.assertEqual(room.speak("p1"), 0)
        self.assertEqual(room.speak("p1"), 0)
        self.assertEqual(room.players["p2"].remaining_speak, 2)

    def test_chat_line(self):
        room = make_room()
        sink = RecordingSink()
        room.subscribe(sink)
        start_discussion(room)
        line = room.chat("こんにちは", player_id="p1")
        self.assertEqual(line, "CHAT|name-p1|こんにちは")
        self.assertEqual(sink.messages[-1], line)
        self.assertEqual(room.chat("hi", player_name="guest"), "CHAT|guest|hi")

    def test_chat_outside_discussion(self):
        room = make_room()
        room.join("p1", "a")
        with self.assertRaises(InvalidPhase):
            room.chat("hello", player_id="p1")

    def test_chat_needs_text(self):
        room = make_room()
        start_discussion(room)
        with self.assertRaises(InvalidInput):
            room.chat("   ", player_id="p1")

    def test_chat_text_may_contain_separator(self):
        room = make_room()
        start_discussion(room)
        line = room.chat("hi|there", player_id="p1")
        self.assertEqual(line.split("|", 2), ["CHAT", "name-p1", "hi|there"])

    def test_guest_chat_name_is_checked(self):
        room = make_room()
        sink = RecordingSink()
        room.subscribe(sink)
        start_discussion(room)
        count = len(sink.messages)
        for bad in ("<script>x", "a|b", "x" * 17, "tab\tname", ""):
            with self.assertRaises(InvalidInput):
                room.chat("hi", player_name=bad)
        self.assertEqual(len(sink.messages), count)

    def test_join_rejects_separator_in_name(self):
        room = make_room()
        with self.assertRaises(InvalidInput):
            room.join("p1", "a|b")
        self.assertEqual(room.players, {})


class ResetTests(unittest.TestCase):
    def test_reset_after_result(self):
        room = make_room()
        sink = RecordingSink()
        room.subscribe(sink)
        start_discussion(room)
        room.start_vote()
        for voter in ("p1", "p2", "p3"):
            room.vote(voter, "p2")
        before = room.generation

        room.reset()

        self.assertGreater(room.generation, before)
        self.assertIs(room.phase, Phase.LOBBY)
        self.assertEqual(room.players, {})
        self.assertEqual(room.wolf_ids, frozenset())
        self.assertEqual(room.remaining_discussion_sec, 60)
        self.assertEqual(room.remaining_voting_sec, 10)

        decoded = sink.decoded()
        self.assertEqual(decoded[-2], {"type": "reset"})
        state = decoded[-1]
        self.assertEqual(state["phase"], "Lobby")
        self.assertEqual(state["players"], {})
        self.assertFalse(RESULT_ONLY_KEYS & set(state))
        self.assertEqual(state["game_id"], room.generation)

    def test_reset_mid_game_lets_players_rejoin(self):
        room = make_room()
        start_discussion(room)
        room.reset()
        fill_and_ready(room)
        self.assertIs(room.phase, Phase.KEYWORD_SUBMISSION)

    def test_generation_grows_on_every_game(self):
        room = make_room()
        seen = [room.generation]
        fill_and_ready(room)
        seen.append(room.generation)
        room.reset()
        seen.append(room.generation)
        self.assertEqual(seen, sorted(set(seen)))


class LockTests(unittest.TestCase):
    def test_poisoned_lock_recovers(self):
        room = make_room()
        with self.assertRaises(RuntimeError):
            with room.lock:
                raise RuntimeError("boom")
        self.assertTrue(room.lock.poisoned)

        with self.assertLogs("backend.wordwolf.game.room", level="WARNING"):
            with room.lock:
                room.join("p1", "a")
        self.assertFalse(room.lock.poisoned)

    def test_game_errors_do_not_poison(self):
        room = make_room()
        with self.assertRaises(NotFound):
            with room.lock:
                room.get_player("nobody")
        self.assertFalse(room.lock.poisoned)

    def test_concurrent_joins_respect_capacity(self):
        room = make_room(max_players=5, wolf_count=2)
        errors = []

        def join(i):
            try:
                with room.lock:
                    room.join(f"p{i}", f"n{i}")
            except RoomFull as err:
                errors.append(err)

        threads = [threading.Thread(target=join, args=(i,)) for i in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(room.players), 5)
        self.assertEqual(len(errors), 5)


if __name__ == "__main__":
    unittest.main()
