"""
Game session controller for the Logic Games Bot.
Manages active game sessions per Discord channel.
"""
import logging
import random
import time
from typing import Any, Dict, Optional

from .config_manager import ConfigManager
from .data_manager import DataManager
from .game_session import GameSession, SessionListener, SessionPhase
from .score_reporter import ScoreReporter, score_percentage


class GameControllerError(Exception):
    """Base exception for game controller errors."""
    pass


class SessionConflictError(GameControllerError):
    """Raised when attempting to create a session that conflicts with existing session."""
    pass


class SessionNotFoundError(GameControllerError):
    """Raised when attempting to operate on a non-existent session."""
    pass


class GameNotFoundError(GameControllerError):
    """Raised when the requested game id is not in the document."""
    pass


class InvalidGameError(GameControllerError):
    """Raised when the requested game cannot be played because its data is malformed."""
    pass


class GameController:
    """
    Orchestrates game sessions across Discord channels.

    Each channel has at most one GameSession. Sessions are independent of
    each other; the only shared state is the document store and the score
    report file.
    """

    def __init__(
        self,
        data_manager: DataManager,
        config_manager: ConfigManager,
        score_reporter: Optional[ScoreReporter] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the game controller.

        Args:
            data_manager: Document store the games are read from
            config_manager: Source of session settings
            score_reporter: Sink for finished sessions
            rng: Random generator shared by all sessions
        """
        self.logger = logging.getLogger(__name__)
        self.data_manager = data_manager
        self.config_manager = config_manager
        self.score_reporter = score_reporter
        self._rng = rng

        # Active sessions mapped by channel ID
        self._active_sessions: Dict[int, GameSession] = {}

        self.logger.info("GameController initialized")

    def get_session(self, channel_id: int) -> Optional[GameSession]:
        return self._active_sessions.get(channel_id)

    def has_active_session(self, channel_id: int) -> bool:
        """
        Check if a channel has a game being played.

        Args:
            channel_id: Discord channel identifier

        Returns:
            True if a question is currently open or pending in the channel
        """
        session = self._active_sessions.get(channel_id)
        return session is not None and session.phase == SessionPhase.PLAYING

    async def start_game(
        self,
        channel_id: int,
        game_id: str,
        listener: Optional[SessionListener] = None
    ) -> Dict[str, Any]:
        """
        Start a game in a channel.

        A finished game still showing its report is ended (and reported)
        first; a game still being played is a conflict.

        Args:
            channel_id: Discord channel identifier
            game_id: Identifier of the game to play
            listener: Receiver of session events for this channel

        Returns:
            Dictionary with operation results and error information
        """
        try:
            if self.has_active_session(channel_id):
                raise SessionConflictError(f"Game already running in channel {channel_id}")

            if channel_id in self._active_sessions:
                await self.end_game(channel_id)

            session = GameSession(
                store=self.data_manager,
                reporter=self.score_reporter,
                settings=self.config_manager.get_session_settings(),
                listener=listener,
                session_key=str(channel_id),
                rng=self._rng
            )

            if not await session.load_game(game_id):
                if session.phase == SessionPhase.NOT_FOUND:
                    raise GameNotFoundError(session.error_message)
                raise InvalidGameError(session.error_message)

            # Registered before the first question is shown so its buttons resolve
            self._active_sessions[channel_id] = session
            if not await session.start_session():
                del self._active_sessions[channel_id]
                raise InvalidGameError(session.error_message)

            self.logger.info(
                f"Started game '{game_id}' for channel {channel_id}",
                extra={
                    'event_type': 'game_started',
                    'channel_id': channel_id,
                    'game_id': game_id,
                    'timestamp': time.time()
                }
            )
            return {
                'success': True,
                'message': f"Game '{session.game.name}' started",
                'session_info': self.get_session_progress(channel_id)
            }

        except Exception as e:
            return self._handle_session_error(channel_id, e, "start_game")

    async def select_answer(self, channel_id: int, randomized_index: int) -> Dict[str, Any]:
        """
        Submit an answer for the current question of a channel.

        Args:
            channel_id: Discord channel identifier
            randomized_index: Display position of the chosen option

        Returns:
            Dictionary with the recorded entry or the reason it was ignored
        """
        try:
            session = self._require_session(channel_id)
            entry = await session.select_answer(randomized_index)
            if entry is None:
                return {
                    'success': False,
                    'message': "Answer ignored, question is not open",
                    'user_message': "ℹ️ This question has already been answered"
                }
            return {
                'success': True,
                'message': f"Answer recorded: {'correct' if entry.correct else 'incorrect'}",
                'entry': entry,
                'correct': entry.correct,
                'points': entry.points,
                'session_info': self.get_session_progress(channel_id)
            }
        except Exception as e:
            return self._handle_session_error(channel_id, e, "select_answer")

    async def request_hint(self, channel_id: int) -> Dict[str, Any]:
        try:
            session = self._require_session(channel_id)
            if not await session.request_hint():
                return {
                    'success': False,
                    'message': "Hint not available",
                    'user_message': "ℹ️ No hint is available for this question right now"
                }
            question = session.current_question
            return {
                'success': True,
                'message': "Hint shown",
                'hint': question.question.hint if question else "",
                'session_info': self.get_session_progress(channel_id)
            }
        except Exception as e:
            return self._handle_session_error(channel_id, e, "request_hint")

    async def continue_game(self, channel_id: int) -> Dict[str, Any]:
        """
        Continue to the next question after an incorrect answer.

        Args:
            channel_id: Discord channel identifier

        Returns:
            Dictionary with operation results
        """
        try:
            session = self._require_session(channel_id)
            if not await session.continue_after_incorrect():
                return {
                    'success': False,
                    'message': "Nothing to continue",
                    'user_message': "ℹ️ There is no incorrect answer waiting to be continued"
                }
            return {
                'success': True,
                'message': "Advanced to the next step",
                'session_info': self.get_session_progress(channel_id)
            }
        except Exception as e:
            return self._handle_session_error(channel_id, e, "continue_game")

    async def restart_game(self, channel_id: int) -> Dict[str, Any]:
        """
        Report the current attempt and play the same game again.

        Args:
            channel_id: Discord channel identifier

        Returns:
            Dictionary with the end result and the new session info
        """
        try:
            session = self._require_session(channel_id)
            end_result = await session.end_session()
            if not await session.start_session():
                del self._active_sessions[channel_id]
                raise InvalidGameError(session.error_message)
            return {
                'success': True,
                'message': f"Game '{session.game.name}' restarted",
                'warning': end_result.get('warning'),
                'session_info': self.get_session_progress(channel_id)
            }
        except Exception as e:
            return self._handle_session_error(channel_id, e, "restart_game")

    async def end_game(self, channel_id: int) -> Dict[str, Any]:
        """
        End the game of a channel and report its score.

        Args:
            channel_id: Discord channel identifier

        Returns:
            Dictionary with the session summary, delivery status and warning
        """
        session = self._active_sessions.get(channel_id)
        if session is None:
            return {
                'success': False,
                'message': "No game to end in this channel",
                'user_message': "ℹ️ No game is running in this channel"
            }

        try:
            result = await session.end_session()
        finally:
            self._active_sessions.pop(channel_id, None)

        summary = result.get('summary')
        if summary is not None:
            result['percentage'] = score_percentage(summary)
        result['user_message'] = result.get('warning') or "✅ Game ended"

        self.logger.info(
            f"Ended game for channel {channel_id}, score delivered: {result.get('delivered')}",
            extra={
                'event_type': 'game_ended',
                'channel_id': channel_id,
                'delivered': result.get('delivered'),
                'timestamp': time.time()
            }
        )
        return result

    def get_session_progress(self, channel_id: int) -> Optional[Dict[str, Any]]:
        """
        Get progress information for a channel's session.

        Args:
            channel_id: Discord channel identifier

        Returns:
            Dictionary with progress info, None if the channel has no session
        """
        session = self._active_sessions.get(channel_id)
        if session is None:
            return None

        progress = session.get_progress()
        progress['time_budget'] = session.time_budget
        return progress

    def get_all_active_sessions(self) -> Dict[int, Dict[str, Any]]:
        """
        Get information about all sessions.

        Returns:
            Dictionary mapping channel IDs to session progress info
        """
        return {
            channel_id: self.get_session_progress(channel_id)
            for channel_id in self._active_sessions
        }

    def get_session_status_summary(self, channel_id: int) -> str:
        session_info = self.get_session_progress(channel_id)
        if session_info is None:
            return "No game session in this channel."

        status_parts = [f"Game: {session_info['game_name']}"]
        if session_info['phase'] == SessionPhase.REPORT.value:
            status_parts.append("Status: Finished")
        else:
            status_parts.append(
                f"Progress: {session_info.get('current_question', 0)}/{session_info['total_questions']}"
            )
            status_parts.append(f"Time left: {session_info.get('time_remaining', 0)}s")
        status_parts.append(f"Points: {session_info.get('points', 0)}")
        return " | ".join(status_parts)

    async def shutdown(self) -> None:
        """Cancel the timers of every session without reporting."""
        for channel_id, session in list(self._active_sessions.items()):
            await session.shutdown()
            self.logger.debug(f"Shut down session for channel {channel_id}")
        self._active_sessions.clear()
        self.logger.info("GameController shut down")

    def _require_session(self, channel_id: int) -> GameSession:
        session = self._active_sessions.get(channel_id)
        if session is None:
            raise SessionNotFoundError(f"No game session in channel {channel_id}")
        return session

    def _handle_session_error(self, channel_id: int, error: Exception, operation: str) -> Dict[str, Any]:
        """
        Log a session error and turn it into a result dictionary.

        Args:
            channel_id: Discord channel identifier
            error: The exception that occurred
            operation: Description of the operation that failed

        Returns:
            Dictionary with error handling results
        """
        if isinstance(error, GameControllerError):
            self.logger.warning(f"{operation} failed for channel {channel_id}: {error}")
        else:
            self.logger.error(f"Error in {operation} for channel {channel_id}: {error}", exc_info=True)

        return {
            'success': False,
            'error': str(error),
            'operation': operation,
            'user_message': self._get_user_friendly_error_message(error, operation)
        }

    def _get_user_friendly_error_message(self, error: Exception, operation: str) -> str:
        if isinstance(error, SessionConflictError):
            return "❌ A game is already running in this channel. End it first with `/end`."

        elif isinstance(error, SessionNotFoundError):
            return "❌ No game is running in this channel. Start one with `/play`."

        elif isinstance(error, GameNotFoundError):
            return f"❌ {error} Use `/games` to browse available games."

        elif isinstance(error, InvalidGameError):
            return f"❌ This game cannot be played because its data is invalid: {error}"

        else:
            return f"❌ An unexpected error occurred during {operation}. Please try again."
