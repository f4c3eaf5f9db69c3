"""
Game session runtime for the Logic Games Bot.
Drives one player through a game: randomized options, per-question countdown,
hints, scoring and the final score report.
"""
import logging
import random
import time
from enum import Enum
from functools import partial
from typing import Any, Dict, Optional

from .data_manager import DataManager
from .game_engine import (
    CountdownTimer,
    DelayedAction,
    InvalidQuestionError,
    TimerLifecycleLogger,
    randomize_game,
)
from .models import (
    Game,
    RandomizedQuestion,
    ScoreEntry,
    SessionSettings,
    SessionState,
    SessionSummary,
)
from .score_reporter import ScoreReporter

logger = logging.getLogger(__name__)


class SessionPhase(Enum):
    """Enumeration of possible game session phases."""
    IDLE = "idle"
    READY = "ready"
    PLAYING = "playing"
    REPORT = "report"
    NOT_FOUND = "not_found"
    INVALID = "invalid"


class SessionListener:
    """
    Receives session events for presentation.

    Every hook is optional. Exceptions raised by a hook are logged and never
    change session state.
    """

    async def on_question_started(self, session: "GameSession") -> None:
        pass

    async def on_timer_tick(self, session: "GameSession", remaining: int) -> None:
        pass

    async def on_hint_shown(self, session: "GameSession") -> None:
        pass

    async def on_answer_resolved(self, session: "GameSession", entry: ScoreEntry) -> None:
        pass

    async def on_time_expired(self, session: "GameSession", entry: ScoreEntry) -> None:
        pass

    async def on_report_ready(self, session: "GameSession", summary: SessionSummary) -> None:
        pass

    async def on_session_ended(self, session: "GameSession", result: Dict[str, Any]) -> None:
        pass


class GameSession:
    """
    Owns the lifecycle of one quiz attempt.

    At most one SessionState exists per instance. It is created by
    start_session() and discarded by end_session() or by starting again.
    Every question transition cancels the running countdown and any pending
    auto-advance before arming new ones, so a late callback can never act on a
    question that has moved on.
    """

    def __init__(
        self,
        store: DataManager,
        reporter: Optional[ScoreReporter] = None,
        settings: Optional[SessionSettings] = None,
        listener: Optional[SessionListener] = None,
        session_key: str = "default",
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the session runtime.

        Args:
            store: Document store the game is read from
            reporter: Sink for the summary when the session ends
            settings: Timer, delay and scoring settings
            listener: Receiver of session events
            session_key: Identifier used in logs (the Discord channel id)
            rng: Random generator for option order
        """
        self.store = store
        self.reporter = reporter
        self.settings = settings or SessionSettings()
        self.listener = listener or SessionListener()
        self.session_key = str(session_key)
        self._rng = rng or random.Random()

        self._phase = SessionPhase.IDLE
        self._game: Optional[Game] = None
        self._state: Optional[SessionState] = None
        self._error_message: Optional[str] = None
        self._timer: Optional[CountdownTimer] = None
        self._pending_advance: Optional[DelayedAction] = None

    # ------------------------------------------------------------------
    # Read-only accessors

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def game(self) -> Optional[Game]:
        return self._game

    @property
    def state(self) -> Optional[SessionState]:
        return self._state

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    @property
    def summary(self) -> Optional[SessionSummary]:
        return self._state.summary if self._state else None

    @property
    def current_question(self) -> Optional[RandomizedQuestion]:
        state = self._state
        if state is None or state.showing_report:
            return None
        if not 0 <= state.current_index < len(state.randomized_questions):
            return None
        return state.randomized_questions[state.current_index]

    @property
    def total_questions(self) -> int:
        return self._game.question_count if self._game else 0

    @property
    def time_budget(self) -> int:
        """Seconds allowed per question for the loaded game."""
        minutes = self._game.metadata.time_per_question if self._game else None
        if minutes:
            return int(round(minutes * 60))
        return self.settings.default_time_per_question

    @property
    def has_pending_advance(self) -> bool:
        return self._pending_advance is not None and self._pending_advance.is_pending

    @property
    def timer_running(self) -> bool:
        return self._timer is not None and self._timer.is_running

    # ------------------------------------------------------------------
    # Loading and starting

    async def load_game(self, game_id: str) -> bool:
        """
        Fetch a game from the document store.

        A missing game moves the session to NOT_FOUND and a malformed one to
        INVALID; neither raises.

        Args:
            game_id: Identifier of the game

        Returns:
            True if the game was loaded and is ready to start
        """
        self._cancel_scheduled()
        self._state = None
        self._error_message = None

        try:
            game = self.store.find_game(game_id)
        except ValueError as e:
            self._game = None
            self._fail_invalid(str(e))
            return False

        if game is None:
            self._game = None
            self._phase = SessionPhase.NOT_FOUND
            self._error_message = f"Game '{game_id}' was not found."
            logger.warning(
                f"Session {self.session_key}: game '{game_id}' not found",
                extra={
                    'event_type': 'session_game_not_found',
                    'session_key': self.session_key,
                    'game_id': game_id,
                    'timestamp': time.time()
                }
            )
            return False

        self._game = game
        self._phase = SessionPhase.READY
        logger.info(f"Session {self.session_key}: loaded game '{game.id}' with {game.question_count} questions")
        return True

    async def start_session(self, game: Optional[Game] = None) -> bool:
        """
        Begin a fresh attempt.

        Randomizes every question, discards any previous state and arms the
        countdown for the first question.

        Args:
            game: Game to play; the loaded game is used if None

        Returns:
            True if the session is now playing
        """
        if game is not None:
            self._game = game
            self._error_message = None
        elif self._phase in (SessionPhase.NOT_FOUND, SessionPhase.INVALID):
            logger.warning(f"Session {self.session_key}: cannot start in phase {self._phase.value}")
            return False

        if self._game is None:
            logger.warning(f"Session {self.session_key}: start requested with no game loaded")
            return False

        self._cancel_scheduled()
        self._state = None

        if not self._game.questions:
            self._fail_invalid(f"Game '{self._game.id}' has no questions.")
            return False

        try:
            randomized = randomize_game(self._game, self._rng)
        except InvalidQuestionError as e:
            self._fail_invalid(str(e))
            return False

        self._state = SessionState(
            randomized_questions=randomized,
            time_remaining=self.time_budget
        )
        self._phase = SessionPhase.PLAYING
        self._error_message = None

        logger.info(
            f"Session {self.session_key}: started game '{self._game.id}'",
            extra={
                'event_type': 'session_started',
                'session_key': self.session_key,
                'game_id': self._game.id,
                'total_questions': self._game.question_count,
                'time_per_question': self.time_budget,
                'timestamp': time.time()
            }
        )

        self._arm_timer()
        await self._notify('on_question_started')
        return True

    def _fail_invalid(self, message: str) -> None:
        self._phase = SessionPhase.INVALID
        self._error_message = message
        logger.error(
            f"Session {self.session_key}: invalid game data: {message}",
            extra={
                'event_type': 'session_invalid_data',
                'session_key': self.session_key,
                'timestamp': time.time()
            }
        )

    # ------------------------------------------------------------------
    # Player actions

    async def select_answer(self, randomized_index: int) -> Optional[ScoreEntry]:
        """
        Resolve the current question with the option at a display position.

        Ignored when the question is already answered or nothing is playing.
        A correct answer advances automatically after the configured delay;
        an incorrect one waits for continue_after_incorrect().

        Args:
            randomized_index: Display position chosen by the player

        Returns:
            The recorded ScoreEntry, or None if the call was ignored
        """
        state = self._state
        question = self.current_question
        if self._phase != SessionPhase.PLAYING or state is None or question is None or state.answered:
            logger.debug(f"Session {self.session_key}: answer ignored, question not open")
            return None

        if not 0 <= randomized_index < len(question.randomized_options):
            logger.warning(f"Session {self.session_key}: answer index {randomized_index} out of range")
            return None

        original_index = question.randomized_to_original[randomized_index]
        is_correct = original_index == question.question.correct
        if is_correct:
            points = self.settings.points_with_hint if state.hint_visible else self.settings.points_without_hint
        else:
            points = 0

        entry = ScoreEntry(
            question_id=question.id,
            points=points,
            used_hint=state.hint_visible,
            correct=is_correct,
            time_remaining=state.time_remaining
        )
        state.selected_answer = randomized_index
        state.answered = True
        state.scores.append(entry)
        self._cancel_timer()

        logger.info(
            f"Session {self.session_key}: question {state.current_index + 1} answered, "
            f"correct={is_correct}, points={points}",
            extra={
                'event_type': 'answer_resolved',
                'session_key': self.session_key,
                'question_id': question.id,
                'correct': is_correct,
                'points': points,
                'used_hint': state.hint_visible,
                'timestamp': time.time()
            }
        )

        if is_correct:
            self._pending_advance = DelayedAction(
                self.settings.advance_delay,
                partial(self._advance_if_current, state, state.generation),
                self.session_key
            )
            self._pending_advance.start()

        await self._notify('on_answer_resolved', entry)
        return entry

    async def request_hint(self) -> bool:
        """
        Reveal the hint of the current question.

        Once shown the hint stays visible for that question and halves the
        points of a correct answer.

        Returns:
            True if the hint is visible after the call
        """
        state = self._state
        question = self.current_question
        if self._phase != SessionPhase.PLAYING or state is None or question is None or state.answered:
            return False
        if not question.question.hint:
            return False
        if state.hint_visible:
            return True

        state.hint_visible = True
        logger.debug(f"Session {self.session_key}: hint shown for question {question.id}")
        await self._notify('on_hint_shown')
        return True

    async def continue_after_incorrect(self) -> bool:
        """
        Move on after an incorrect answer once the solution has been read.

        Returns:
            True if the session advanced
        """
        state = self._state
        if self._phase != SessionPhase.PLAYING or state is None or not state.answered:
            return False
        if not state.scores or state.scores[-1].correct:
            return False
        return await self.advance()

    # ------------------------------------------------------------------
    # Timer

    async def tick(self) -> bool:
        """
        Count the current question down by one second.

        Returns:
            True while the countdown should keep running
        """
        if self._state is None:
            return False
        return await self._tick(self._state, self._state.generation)

    async def _tick(self, state: SessionState, generation: int) -> bool:
        if (self._state is not state or state.generation != generation
                or state.answered or state.showing_report or self._phase != SessionPhase.PLAYING):
            TimerLifecycleLogger.log_stale_callback(
                self.session_key, f"tick for generation {generation} ignored"
            )
            return False

        state.time_remaining = max(0, state.time_remaining - 1)
        TimerLifecycleLogger.log_timer_update(self.session_key, state.time_remaining)
        await self._notify('on_timer_tick', state.time_remaining)

        if state.time_remaining <= 0:
            await self.on_time_expired()
            return False
        return True

    async def on_time_expired(self) -> Optional[ScoreEntry]:
        """
        Resolve the current question as unanswered when its time is up.

        Records a 0 point incorrect entry keeping the hint flag, then advances.

        Returns:
            The recorded ScoreEntry, or None if the question was already resolved
        """
        state = self._state
        question = self.current_question
        if self._phase != SessionPhase.PLAYING or state is None or question is None or state.answered:
            return None

        entry = ScoreEntry(
            question_id=question.id,
            points=0,
            used_hint=state.hint_visible,
            correct=False,
            time_remaining=0
        )
        state.time_remaining = 0
        state.answered = True
        state.scores.append(entry)
        self._cancel_timer()

        logger.info(
            f"Session {self.session_key}: time expired on question {state.current_index + 1}",
            extra={
                'event_type': 'question_time_expired',
                'session_key': self.session_key,
                'question_id': question.id,
                'timestamp': time.time()
            }
        )

        await self._notify('on_time_expired', entry)
        await self.advance()
        return entry

    # ------------------------------------------------------------------
    # Transitions

    async def _advance_if_current(self, state: SessionState, generation: int) -> None:
        if self._state is not state or state.generation != generation:
            TimerLifecycleLogger.log_stale_callback(
                self.session_key, f"auto-advance for generation {generation} ignored"
            )
            return
        await self.advance()

    async def advance(self) -> bool:
        """
        Move past the resolved current question.

        Opens the next question with a fresh countdown, or freezes the summary
        and shows the report after the last one.

        Returns:
            True if the session moved on
        """
        state = self._state
        if self._phase != SessionPhase.PLAYING or state is None:
            return False
        if not state.answered:
            logger.warning(f"Session {self.session_key}: advance ignored, current question unresolved")
            return False

        self._cancel_scheduled()

        if state.current_index < len(state.randomized_questions) - 1:
            state.current_index += 1
            state.selected_answer = None
            state.hint_visible = False
            state.answered = False
            state.time_remaining = self.time_budget
            state.generation += 1

            logger.debug(f"Session {self.session_key}: advanced to question {state.current_index + 1}")
            self._arm_timer()
            await self._notify('on_question_started')
            return True

        state.showing_report = True
        state.generation += 1
        state.summary = SessionSummary.from_entries(
            self._game, state.scores, self.settings.points_without_hint
        )
        self._phase = SessionPhase.REPORT

        logger.info(
            f"Session {self.session_key}: game '{self._game.id}' finished with "
            f"{state.summary.total_points}/{state.summary.max_possible_score} points",
            extra={
                'event_type': 'session_report_ready',
                'session_key': self.session_key,
                'game_id': self._game.id,
                'total_points': state.summary.total_points,
                'timestamp': time.time()
            }
        )
        await self._notify('on_report_ready', state.summary)
        return True

    async def end_session(self) -> Dict[str, Any]:
        """
        Tear the attempt down and report what was played.

        Cancels the countdown and any pending auto-advance, discards the
        session state, then hands the summary to the score reporter.
        Reporting is best effort: a failure is logged and returned as a
        warning.

        Returns:
            Dictionary with success flag, summary, delivery status and warning
        """
        state = self._state
        if state is None:
            return {
                'success': False,
                'message': "No session in progress",
                'summary': None,
                'delivered': False,
                'warning': None
            }

        self._cancel_scheduled()
        game = self._game
        summary = state.summary or SessionSummary.from_entries(
            game, state.scores, self.settings.points_without_hint
        )
        self._state = None
        self._phase = SessionPhase.READY

        result = {
            'success': True,
            'message': f"Session for '{game.name}' ended",
            'summary': summary,
            'delivered': False,
            'warning': None
        }

        if summary.questions_attempted == 0:
            logger.info(f"Session {self.session_key}: ended before any question was attempted, nothing to report")
        elif self.reporter is None:
            logger.debug(f"Session {self.session_key}: no score reporter configured")
        else:
            try:
                await self.reporter.submit(summary)
                result['delivered'] = True
            except Exception as e:
                logger.warning(
                    f"Session {self.session_key}: failed to save score: {e}",
                    extra={
                        'event_type': 'score_delivery_failed',
                        'session_key': self.session_key,
                        'game_id': game.id,
                        'timestamp': time.time()
                    }
                )
                result['warning'] = "Your score could not be saved, but your game has ended."

        logger.info(
            f"Session {self.session_key}: ended, {summary.questions_attempted}/"
            f"{summary.total_questions} questions attempted",
            extra={
                'event_type': 'session_ended',
                'session_key': self.session_key,
                'game_id': game.id,
                'delivered': result['delivered'],
                'timestamp': time.time()
            }
        )
        await self._notify('on_session_ended', result)
        return result

    async def shutdown(self) -> None:
        """Cancel scheduled work without reporting."""
        self._cancel_scheduled()
        self._state = None

    # ------------------------------------------------------------------
    # Scheduling helpers

    def _arm_timer(self) -> None:
        state = self._state
        self._cancel_timer()
        self._timer = CountdownTimer(self.session_key, self.settings.tick_interval)
        self._timer.start(state.time_remaining, partial(self._tick, state, state.generation))

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _cancel_scheduled(self) -> None:
        self._cancel_timer()
        if self._pending_advance is not None:
            self._pending_advance.cancel()
            self._pending_advance = None

    async def _notify(self, hook: str, *args: Any) -> None:
        try:
            await getattr(self.listener, hook)(self, *args)
        except Exception as e:
            logger.error(f"Session {self.session_key}: listener {hook} failed: {e}", exc_info=True)

    # ------------------------------------------------------------------

    def get_progress(self) -> Dict[str, Any]:
        """
        Get progress information for the session.

        Returns:
            Dictionary with phase, position, timer and score so far
        """
        state = self._state
        progress = {
            'phase': self._phase.value,
            'game_id': self._game.id if self._game else None,
            'game_name': self._game.name if self._game else None,
            'total_questions': self.total_questions,
            'error_message': self._error_message
        }
        if state is not None:
            progress.update({
                'current_question': min(state.current_index + 1, len(state.randomized_questions)),
                'time_remaining': state.time_remaining,
                'hint_visible': state.hint_visible,
                'answered': state.answered,
                'questions_attempted': len(state.scores),
                'points': sum(entry.points for entry in state.scores)
            })
        return progress
