"""
Game engine primitives for the Logic Games Bot.
Handles option randomization, the per-question countdown and delayed actions.
"""
import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, List, Optional

from .models import Game, Question, RandomizedQuestion

# Set up logger for timer operations
logger = logging.getLogger(__name__)

MAX_OPTIONS = 20  # one answer button per option, four rows of five


class InvalidQuestionError(ValueError):
    """Raised when a question cannot be played (bad options or correct index)."""

    def __init__(self, question_id: Any, reason: str):
        self.question_id = question_id
        self.reason = reason
        super().__init__(f"Invalid question {question_id}: {reason}")


def validate_question(question: Question) -> None:
    """
    Check the option and correct-index invariants of a question.

    Raises:
        InvalidQuestionError: If the question cannot be randomized safely
    """
    options = question.options
    if not isinstance(options, (list, tuple)) or not options:
        raise InvalidQuestionError(question.id, "options list is empty")
    if len(options) < 2:
        raise InvalidQuestionError(question.id, "at least 2 options are required")
    if len(options) > MAX_OPTIONS:
        raise InvalidQuestionError(question.id, f"at most {MAX_OPTIONS} options are supported")
    if not isinstance(question.correct, int) or isinstance(question.correct, bool):
        raise InvalidQuestionError(question.id, "correct index must be an integer")
    if not 0 <= question.correct < len(options):
        raise InvalidQuestionError(
            question.id,
            f"correct index {question.correct} is out of range for {len(options)} options"
        )


def randomize_options(question: Question, rng: Optional[random.Random] = None) -> RandomizedQuestion:
    """
    Produce a uniformly random ordering of a question's options.

    Repeatedly draws one index from the pool of remaining original indices,
    appends that option to the display list and records the position in both
    directions.

    Args:
        question: Question to randomize
        rng: Optional random generator, module level random is used if None

    Returns:
        RandomizedQuestion with both index maps

    Raises:
        InvalidQuestionError: If the question fails validation
    """
    validate_question(question)
    rng = rng or random

    option_count = len(question.options)
    available_indices = list(range(option_count))
    randomized_options: List[str] = []
    original_to_randomized = [0] * option_count
    randomized_to_original = [0] * option_count

    while available_indices:
        pick = rng.randrange(len(available_indices))
        original_index = available_indices.pop(pick)
        new_index = len(randomized_options)

        randomized_options.append(question.options[original_index])
        original_to_randomized[original_index] = new_index
        randomized_to_original[new_index] = original_index

    return RandomizedQuestion(
        question=question,
        randomized_options=randomized_options,
        original_to_randomized=original_to_randomized,
        randomized_to_original=randomized_to_original,
    )


def randomize_game(game: Game, rng: Optional[random.Random] = None) -> List[RandomizedQuestion]:
    """Randomize every question of a game, failing on the first invalid one."""
    return [randomize_options(question, rng) for question in game.questions]


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_created(session_key: str, duration: int) -> None:
        """Log countdown creation."""
        logger.debug(
            f"Timer lifecycle: CREATED - Session {session_key}, Duration {duration}s",
            extra={
                'event_type': 'timer_created',
                'session_key': session_key,
                'duration': duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(session_key: str, remaining_time: int) -> None:
        """Log timer update events (throttled to avoid spam)."""
        if remaining_time % 10 == 0 or remaining_time <= 5:
            logger.debug(
                f"Timer lifecycle: UPDATE - Session {session_key}, Remaining {remaining_time}s",
                extra={
                    'event_type': 'timer_update',
                    'session_key': session_key,
                    'remaining_time': remaining_time,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_completion(session_key: str, completion_type: str) -> None:
        """Log timer completion (natural expiry or cancellation)."""
        logger.info(
            f"Timer lifecycle: COMPLETED - Session {session_key}, Type {completion_type}",
            extra={
                'event_type': 'timer_completed',
                'session_key': session_key,
                'completion_type': completion_type,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(session_key: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log timer state transitions."""
        logger.debug(
            f"Timer lifecycle: STATE_TRANSITION - Session {session_key}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'session_key': session_key,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(session_key: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Session {session_key}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'session_key': session_key,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_stale_callback(session_key: str, details: str) -> None:
        """Log a scheduled callback that arrived after its question moved on."""
        logger.warning(
            f"Timer lifecycle: STALE_CALLBACK - Session {session_key}: {details}",
            extra={
                'event_type': 'timer_stale_callback',
                'session_key': session_key,
                'details': details,
                'timestamp': time.time()
            }
        )


class CountdownTimer:
    """
    Once-per-interval ticker for a single question.

    A timer is armed for exactly one question and never re-used; the owner
    cancels it and creates a new one on every transition.
    """

    def __init__(self, session_key: str = None, tick_interval: float = 1.0):
        """Initialize the timer."""
        self._task: Optional[asyncio.Task] = None
        self._is_cancelled = False
        self._session_key = session_key
        self._tick_interval = tick_interval
        self._tick_count = 0

    def start(self, duration: int, tick_callback: Callable[[], Awaitable[bool]]) -> asyncio.Task:
        """
        Start ticking as a background task.

        Args:
            duration: Nominal duration in seconds, used for logging
            tick_callback: Awaited once per interval; returning False stops the timer

        Returns:
            The asyncio task running the countdown
        """
        if self._task is not None:
            raise RuntimeError(f"Timer for session {self._session_key} already started")

        TimerLifecycleLogger.log_timer_created(self._session_key, duration)
        self._task = asyncio.create_task(self._run(tick_callback))
        return self._task

    async def _run(self, tick_callback: Callable[[], Awaitable[bool]]) -> None:
        try:
            while not self._is_cancelled:
                await asyncio.sleep(self._tick_interval)
                if self._is_cancelled:
                    break
                self._tick_count += 1
                keep_running = await tick_callback()
                if not keep_running:
                    break

            TimerLifecycleLogger.log_timer_completion(
                self._session_key,
                "cancelled" if self._is_cancelled else "finished"
            )
        except asyncio.CancelledError:
            self._is_cancelled = True
            TimerLifecycleLogger.log_timer_completion(self._session_key, "asyncio_cancelled")
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                self._session_key,
                "countdown_execution_error",
                str(e),
                "tick"
            )

    def cancel(self) -> None:
        """Cancel the countdown. Safe to call from inside the tick callback."""
        if self._is_cancelled:
            return
        self._is_cancelled = True

        if self._task and not self._task.done() and self._task is not _current_task():
            self._task.cancel()
            TimerLifecycleLogger.log_timer_state_transition(
                self._session_key, "running", "cancelled", "task cancelled"
            )
        else:
            TimerLifecycleLogger.log_timer_state_transition(
                self._session_key, "running", "cancelled", "no pending task"
            )

    @property
    def is_cancelled(self) -> bool:
        return self._is_cancelled

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._is_cancelled

    @property
    def tick_count(self) -> int:
        return self._tick_count


class DelayedAction:
    """A cancellable one-shot coroutine scheduled after a fixed delay."""

    def __init__(self, delay: float, callback: Callable[[], Awaitable[Any]], session_key: str = None):
        self._delay = delay
        self._callback = callback
        self._session_key = session_key
        self._task: Optional[asyncio.Task] = None
        self._is_cancelled = False

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self._run())
        return self._task

    async def _run(self) -> None:
        try:
            await asyncio.sleep(self._delay)
            if not self._is_cancelled:
                await self._callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                self._session_key,
                "delayed_action_error",
                str(e),
                "delayed_action"
            )

    def cancel(self) -> None:
        self._is_cancelled = True
        if self._task and not self._task.done() and self._task is not _current_task():
            self._task.cancel()

    @property
    def is_pending(self) -> bool:
        return self._task is not None and not self._task.done() and not self._is_cancelled


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
