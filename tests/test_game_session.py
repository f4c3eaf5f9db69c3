"""
Unit tests for the game session runtime: scoring, hints, timer and reporting.
"""
import asyncio
import random
import shutil
import unittest
from unittest.mock import AsyncMock, Mock

from logic_games.data_manager import DataManager
from logic_games.game_session import GameSession, SessionPhase
from logic_games.models import Game, GameMetadata, Question
from logic_games.score_reporter import ScoreDeliveryError, ScoreReporter
from tests.test_fixtures import FailingListener, RecordingListener, TestFixtures


async def settle(seconds: float = 0.02):
    """Let scheduled auto-advance tasks run."""
    await asyncio.sleep(seconds)


def correct_position(session: GameSession) -> int:
    return session.current_question.correct_position


def wrong_position(session: GameSession) -> int:
    question = session.current_question
    return (question.correct_position + 1) % len(question.randomized_options)


class GameSessionTestCase(unittest.IsolatedAsyncioTestCase):
    """Shared setup: a mocked store holding the sample game and a mocked reporter."""

    def setUp(self):
        self.game = TestFixtures.create_sample_game()
        self.store = Mock(spec=DataManager)
        self.store.find_game.return_value = self.game
        self.reporter = Mock(spec=ScoreReporter)
        self.reporter.submit = AsyncMock(return_value={})
        self.listener = RecordingListener()
        self.session = self.create_session()

    def create_session(self, **setting_overrides) -> GameSession:
        return GameSession(
            store=self.store,
            reporter=self.reporter,
            settings=TestFixtures.create_fast_settings(**setting_overrides),
            listener=self.listener,
            session_key="12345",
            rng=random.Random(11)
        )

    async def asyncTearDown(self):
        await self.session.shutdown()

    async def start(self) -> None:
        self.assertTrue(await self.session.load_game(self.game.id))
        self.assertTrue(await self.session.start_session())


class TestSessionLoading(GameSessionTestCase):
    """Test cases for loading and starting games."""

    async def test_load_game_found(self):
        loaded = await self.session.load_game("game_logic_1")

        self.assertTrue(loaded)
        self.assertEqual(self.session.phase, SessionPhase.READY)
        self.assertIs(self.session.game, self.game)
        self.assertIsNone(self.session.state)

    async def test_load_game_not_found(self):
        self.store.find_game.return_value = None

        loaded = await self.session.load_game("missing")

        self.assertFalse(loaded)
        self.assertEqual(self.session.phase, SessionPhase.NOT_FOUND)
        self.assertIn("missing", self.session.error_message)
        self.assertFalse(await self.session.start_session())
        self.assertIsNone(self.session.state)

    async def test_load_game_malformed(self):
        self.store.find_game.side_effect = ValueError("Game x has malformed question data")

        loaded = await self.session.load_game("x")

        self.assertFalse(loaded)
        self.assertEqual(self.session.phase, SessionPhase.INVALID)
        self.assertIn("malformed", self.session.error_message)

    async def test_start_without_game(self):
        self.assertFalse(await self.session.start_session())
        self.assertEqual(self.session.phase, SessionPhase.IDLE)

    async def test_start_session_initial_state(self):
        await self.start()
        state = self.session.state

        self.assertEqual(self.session.phase, SessionPhase.PLAYING)
        self.assertEqual(state.current_index, 0)
        self.assertEqual(state.time_remaining, 120)
        self.assertFalse(state.hint_visible)
        self.assertFalse(state.answered)
        self.assertIsNone(state.selected_answer)
        self.assertEqual(state.scores, [])
        self.assertEqual(len(state.randomized_questions), 3)
        self.assertTrue(self.session.timer_running)
        self.assertEqual(self.listener.events, [("question_started", 0)])

    async def test_start_session_with_explicit_game(self):
        self.assertTrue(await self.session.start_session(self.game))
        self.assertEqual(self.session.phase, SessionPhase.PLAYING)

    async def test_default_time_budget_when_game_sets_none(self):
        self.game.metadata.time_per_question = None
        self.session = self.create_session(default_time_per_question=45)

        await self.start()

        self.assertEqual(self.session.state.time_remaining, 45)

    async def test_invalid_correct_index_fails_closed(self):
        bad_game = Game(
            id="bad",
            name="Bad",
            questions=[Question(id=1, question="?", options=["a", "b"], correct=3)],
            metadata=GameMetadata(category="c", difficulty="d", total_questions=1)
        )

        started = await self.session.start_session(bad_game)

        self.assertFalse(started)
        self.assertEqual(self.session.phase, SessionPhase.INVALID)
        self.assertIsNone(self.session.state)
        self.assertIn("out of range", self.session.error_message)
        self.assertFalse(self.session.timer_running)

    async def test_game_without_questions_is_invalid(self):
        empty_game = Game(
            id="empty", name="Empty", questions=[],
            metadata=GameMetadata(category="c", difficulty="d", total_questions=0)
        )

        self.assertFalse(await self.session.start_session(empty_game))
        self.assertEqual(self.session.phase, SessionPhase.INVALID)


class TestMalformedDocument(unittest.IsolatedAsyncioTestCase):
    """Test cases for hand-edited game documents that must fail closed."""

    def setUp(self):
        self.temp_dir = TestFixtures.create_temp_directory()
        document = TestFixtures.create_sample_document()
        games = document["main_subjects"][0]["main_subject_context"][0]["sub_subject_context"]
        upload = TestFixtures.create_valid_game_upload()
        games.append({"id": "game_metadata_list", "name": "List Metadata",
                      "questions": upload["questions"], "metadata": ["x"]})
        games.append({"id": "game_string_timer", "name": "String Timer",
                      "questions": upload["questions"],
                      "metadata": {**upload["metadata"], "timePerQuestion": "2"}})
        games.append({"id": "game_questions_object", "name": "Questions Object",
                      "questions": {"id": 1}, "metadata": upload["metadata"]})
        games.append("not a game")
        document["main_subjects"].insert(0, ["not", "a", "subject"])
        document["main_subjects"][1]["main_subject_context"].append(42)

        data_file = TestFixtures.write_json(self.temp_dir / "game_data.json", document)
        self.store = DataManager(str(data_file))
        self.session = GameSession(
            store=self.store,
            settings=TestFixtures.create_fast_settings(),
            session_key="malformed",
            rng=random.Random(3)
        )

    async def asyncTearDown(self):
        await self.session.shutdown()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    async def test_metadata_that_is_not_an_object(self):
        self.assertFalse(await self.session.load_game("game_metadata_list"))

        self.assertEqual(self.session.phase, SessionPhase.INVALID)
        self.assertIn("metadata", self.session.error_message)
        self.assertFalse(await self.session.start_session())

    async def test_time_per_question_that_is_not_a_number(self):
        self.assertFalse(await self.session.load_game("game_string_timer"))

        self.assertEqual(self.session.phase, SessionPhase.INVALID)
        self.assertIn("timePerQuestion", self.session.error_message)

    async def test_questions_that_are_not_a_list(self):
        self.assertFalse(await self.session.load_game("game_questions_object"))
        self.assertEqual(self.session.phase, SessionPhase.INVALID)

    async def test_malformed_hierarchy_entries_are_skipped(self):
        self.assertTrue(await self.session.load_game("game_logic_1"))
        self.assertTrue(await self.session.start_session())
        self.assertEqual(self.session.phase, SessionPhase.PLAYING)

        self.assertFalse(await self.session.load_game("missing"))
        self.assertEqual(self.session.phase, SessionPhase.NOT_FOUND)
        self.assertEqual(self.store.get_main_subjects(), ["Logic", "Math"])
        self.assertEqual(self.store.get_game_count(), 8)


class TestAnswering(GameSessionTestCase):
    """Test cases for answer scoring and question transitions."""

    async def test_correct_answer_scores_full_points(self):
        await self.start()

        entry = await self.session.select_answer(correct_position(self.session))

        self.assertTrue(entry.correct)
        self.assertEqual(entry.points, 10)
        self.assertFalse(entry.used_hint)
        self.assertEqual(entry.question_id, 1)
        self.assertTrue(self.session.state.answered)
        self.assertFalse(self.session.timer_running)

    async def test_correct_answer_auto_advances(self):
        await self.start()
        await self.session.select_answer(correct_position(self.session))
        self.assertTrue(self.session.has_pending_advance)

        await settle()
        state = self.session.state

        self.assertEqual(state.current_index, 1)
        self.assertFalse(state.answered)
        self.assertFalse(state.hint_visible)
        self.assertIsNone(state.selected_answer)
        self.assertEqual(state.time_remaining, 120)
        self.assertTrue(self.session.timer_running)

    async def test_correct_answer_with_hint_scores_half(self):
        await self.start()
        self.assertTrue(await self.session.request_hint())

        entry = await self.session.select_answer(correct_position(self.session))

        self.assertEqual(entry.points, 5)
        self.assertTrue(entry.used_hint)

    async def test_incorrect_answer_waits_for_continue(self):
        await self.start()

        entry = await self.session.select_answer(wrong_position(self.session))
        await settle()

        self.assertFalse(entry.correct)
        self.assertEqual(entry.points, 0)
        self.assertEqual(self.session.state.current_index, 0)
        self.assertFalse(self.session.has_pending_advance)

        self.assertTrue(await self.session.continue_after_incorrect())
        self.assertEqual(self.session.state.current_index, 1)

    async def test_continue_not_allowed_after_correct_answer(self):
        await self.start()
        self.assertFalse(await self.session.continue_after_incorrect())

        self.session.settings.advance_delay = 10.0
        await self.session.select_answer(correct_position(self.session))
        self.assertFalse(await self.session.continue_after_incorrect())

    async def test_second_answer_is_ignored(self):
        await self.start()
        self.session.settings.advance_delay = 10.0

        first = await self.session.select_answer(wrong_position(self.session))
        second = await self.session.select_answer(correct_position(self.session))

        self.assertIsNotNone(first)
        self.assertIsNone(second)
        self.assertEqual(len(self.session.state.scores), 1)
        self.assertEqual(self.session.state.selected_answer, wrong_position(self.session))

    async def test_out_of_range_answer_is_ignored(self):
        await self.start()

        self.assertIsNone(await self.session.select_answer(99))
        self.assertFalse(self.session.state.answered)

    async def test_answer_uses_display_position(self):
        """The displayed option text at the chosen position decides correctness."""
        await self.start()
        question = self.session.current_question
        position = question.randomized_options.index(question.question.options[question.question.correct])

        entry = await self.session.select_answer(position)

        self.assertTrue(entry.correct)

    async def test_advance_requires_resolved_question(self):
        await self.start()

        self.assertFalse(await self.session.advance())
        self.assertEqual(self.session.state.current_index, 0)


class TestHints(GameSessionTestCase):
    """Test cases for hint visibility."""

    async def test_hint_is_sticky_and_notified_once(self):
        await self.start()

        self.assertTrue(await self.session.request_hint())
        self.assertTrue(await self.session.request_hint())

        self.assertTrue(self.session.state.hint_visible)
        self.assertEqual(self.listener.names().count("hint_shown"), 1)

    async def test_hint_after_answer_is_refused(self):
        await self.start()
        self.session.settings.advance_delay = 10.0
        await self.session.select_answer(wrong_position(self.session))

        self.assertFalse(await self.session.request_hint())
        self.assertFalse(self.session.state.hint_visible)

    async def test_hint_resets_on_next_question(self):
        await self.start()
        await self.session.request_hint()
        await self.session.select_answer(correct_position(self.session))
        await settle()

        self.assertEqual(self.session.state.current_index, 1)
        self.assertFalse(self.session.state.hint_visible)

    async def test_question_without_hint(self):
        no_hint_game = Game(
            id="plain", name="Plain",
            questions=[Question(id=1, question="?", options=["a", "b"], correct=0)],
            metadata=GameMetadata(category="c", difficulty="d", total_questions=1)
        )
        await self.session.start_session(no_hint_game)

        self.assertFalse(await self.session.request_hint())


class TestTimer(GameSessionTestCase):
    """Test cases for the per-question countdown."""

    def setUp(self):
        super().setUp()
        self.game.metadata.time_per_question = 0.05  # 3 seconds

    async def test_tick_decrements_and_notifies(self):
        await self.start()

        keep_running = await self.session.tick()

        self.assertTrue(keep_running)
        self.assertEqual(self.session.state.time_remaining, 2)
        self.assertIn(("timer_tick", 2), self.listener.events)

    async def test_expiry_records_zero_and_advances(self):
        await self.start()
        await self.session.request_hint()

        for _ in range(3):
            await self.session.tick()

        state = self.session.state
        self.assertEqual(len(state.scores), 1)
        entry = state.scores[0]
        self.assertFalse(entry.correct)
        self.assertEqual(entry.points, 0)
        self.assertTrue(entry.used_hint)
        self.assertEqual(state.current_index, 1)
        self.assertEqual(state.time_remaining, 3)
        self.assertFalse(state.hint_visible)
        self.assertIn("time_expired", self.listener.names())

    async def test_tick_after_answer_is_ignored(self):
        await self.start()
        self.session.settings.advance_delay = 10.0
        await self.session.select_answer(wrong_position(self.session))

        self.assertFalse(await self.session.tick())
        self.assertEqual(self.session.state.time_remaining, 3)
        self.assertEqual(len(self.session.state.scores), 1)

    async def test_on_time_expired_after_answer_is_ignored(self):
        await self.start()
        self.session.settings.advance_delay = 10.0
        await self.session.select_answer(wrong_position(self.session))

        self.assertIsNone(await self.session.on_time_expired())
        self.assertEqual(len(self.session.state.scores), 1)

    async def test_expiry_on_last_question_shows_report(self):
        await self.start()
        for _ in range(3):
            for _ in range(3):
                await self.session.tick()

        self.assertEqual(self.session.phase, SessionPhase.REPORT)
        summary = self.session.summary
        self.assertEqual(summary.total_points, 0)
        self.assertEqual(summary.questions_attempted, 3)
        self.assertEqual(summary.incorrect_answers, 3)

    async def test_real_timer_runs_game_out(self):
        self.session = self.create_session(tick_interval=0.005)
        await self.start()

        for _ in range(200):
            if self.session.phase == SessionPhase.REPORT:
                break
            await asyncio.sleep(0.01)

        self.assertEqual(self.session.phase, SessionPhase.REPORT)
        self.assertEqual([entry.points for entry in self.session.summary.entries], [0, 0, 0])
        self.assertFalse(self.session.timer_running)


class TestSessionCompletion(GameSessionTestCase):
    """Test cases for the report and for ending sessions."""

    async def test_all_correct_scores_thirty(self):
        await self.start()

        for _ in range(3):
            await self.session.select_answer(correct_position(self.session))
            await settle()

        self.assertEqual(self.session.phase, SessionPhase.REPORT)
        summary = self.session.summary
        self.assertEqual(summary.total_points, 30)
        self.assertEqual(summary.max_possible_score, 30)
        self.assertEqual(summary.correct_answers, 3)
        self.assertEqual(summary.question_points, [10, 10, 10])
        self.assertEqual(self.listener.names()[-1], "report_ready")

    async def test_mixed_scoring(self):
        await self.start()

        await self.session.select_answer(correct_position(self.session))
        await settle()
        await self.session.request_hint()
        await self.session.select_answer(correct_position(self.session))
        await settle()
        await self.session.select_answer(wrong_position(self.session))
        await self.session.continue_after_incorrect()

        summary = self.session.summary
        self.assertEqual(summary.question_points, [10, 5, 0])
        self.assertEqual(summary.total_points, 15)

    async def test_end_after_report_submits_summary(self):
        await self.start()
        for _ in range(3):
            await self.session.select_answer(correct_position(self.session))
            await settle()

        result = await self.session.end_session()

        self.assertTrue(result['success'])
        self.assertTrue(result['delivered'])
        self.assertIsNone(result['warning'])
        self.reporter.submit.assert_awaited_once()
        submitted = self.reporter.submit.await_args.args[0]
        self.assertEqual(submitted.total_points, 30)
        self.assertEqual(submitted.questions_attempted, 3)
        self.assertIsNone(self.session.state)
        self.assertEqual(self.session.phase, SessionPhase.READY)

    async def test_end_midway_reports_partial_and_restart_is_fresh(self):
        await self.start()
        await self.session.select_answer(correct_position(self.session))
        await settle()

        result = await self.session.end_session()

        summary = result['summary']
        self.assertEqual(summary.questions_attempted, 1)
        self.assertEqual(summary.total_questions, 3)
        self.assertEqual(summary.total_points, 10)
        self.assertFalse(self.session.timer_running)
        self.reporter.submit.assert_awaited_once()

        self.assertTrue(await self.session.start_session())
        self.assertEqual(self.session.state.current_index, 0)
        self.assertEqual(self.session.state.scores, [])

    async def test_end_without_attempts_skips_reporting(self):
        await self.start()

        result = await self.session.end_session()

        self.assertTrue(result['success'])
        self.assertFalse(result['delivered'])
        self.reporter.submit.assert_not_awaited()
        self.assertIsNone(self.session.state)

    async def test_end_with_nothing_running(self):
        result = await self.session.end_session()
        self.assertFalse(result['success'])

    async def test_reporter_failure_is_a_warning(self):
        self.reporter.submit.side_effect = ScoreDeliveryError("disk full")
        await self.start()
        await self.session.select_answer(wrong_position(self.session))

        result = await self.session.end_session()

        self.assertTrue(result['success'])
        self.assertFalse(result['delivered'])
        self.assertIsNotNone(result['warning'])
        self.assertIsNone(self.session.state)
        self.assertEqual(self.listener.names()[-1], "session_ended")

    async def test_end_cancels_pending_advance(self):
        await self.start()
        self.session.settings.advance_delay = 0.05
        await self.session.select_answer(correct_position(self.session))

        await self.session.end_session()
        await settle(0.1)

        self.assertIsNone(self.session.state)
        self.assertEqual(self.listener.names().count("question_started"), 1)

    async def test_stale_advance_does_not_touch_restarted_session(self):
        await self.start()
        self.session.settings.advance_delay = 0.05
        await self.session.select_answer(correct_position(self.session))

        self.assertTrue(await self.session.start_session())
        await settle(0.1)

        self.assertEqual(self.session.state.current_index, 0)
        self.assertFalse(self.session.state.answered)

    async def test_listener_failures_do_not_change_state(self):
        self.listener = FailingListener()
        self.session = self.create_session()
        await self.start()

        for _ in range(3):
            await self.session.select_answer(correct_position(self.session))
            await settle()

        self.assertEqual(self.session.phase, SessionPhase.REPORT)
        self.assertEqual(self.session.summary.total_points, 30)

    async def test_progress_snapshot(self):
        await self.start()
        await self.session.request_hint()

        progress = self.session.get_progress()

        self.assertEqual(progress['phase'], 'playing')
        self.assertEqual(progress['current_question'], 1)
        self.assertEqual(progress['total_questions'], 3)
        self.assertTrue(progress['hint_visible'])
        self.assertEqual(progress['points'], 0)


if __name__ == '__main__':
    unittest.main()
