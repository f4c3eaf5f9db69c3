"""
Configuration manager for Logic Games Bot settings and parameters.
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List

from .models import SessionSettings


class ConfigManager:
    """Manages bot configuration settings and game session parameters."""

    # Default configuration values
    DEFAULT_TIME_PER_QUESTION = 120  # seconds, when a game has no timePerQuestion
    DEFAULT_ADVANCE_DELAY = 1.5
    DEFAULT_POINTS_WITHOUT_HINT = 10
    DEFAULT_POINTS_WITH_HINT = 5
    DEFAULT_GAME_DATA_FILE = "./data/game_data.json"
    DEFAULT_SCORE_REPORT_FILE = "./data/score_report.json"

    # Validation limits
    MIN_TIME_PER_QUESTION = 10
    MAX_TIME_PER_QUESTION = 3600  # 1 hour
    MIN_ADVANCE_DELAY = 0.0
    MAX_ADVANCE_DELAY = 10.0

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._settings = SessionSettings(
            default_time_per_question=self.DEFAULT_TIME_PER_QUESTION,
            advance_delay=self.DEFAULT_ADVANCE_DELAY,
            points_without_hint=self.DEFAULT_POINTS_WITHOUT_HINT,
            points_with_hint=self.DEFAULT_POINTS_WITH_HINT
        )
        self._game_data_file = self.DEFAULT_GAME_DATA_FILE
        self._score_report_file = self.DEFAULT_SCORE_REPORT_FILE

    def get_session_settings(self) -> SessionSettings:
        """
        Get a copy of the current session settings.

        Returns:
            SessionSettings object with current configuration
        """
        return SessionSettings(
            default_time_per_question=self._settings.default_time_per_question,
            advance_delay=self._settings.advance_delay,
            tick_interval=self._settings.tick_interval,
            points_without_hint=self._settings.points_without_hint,
            points_with_hint=self._settings.points_with_hint
        )

    def set_default_time_per_question(self, seconds: int) -> Dict[str, Any]:
        """
        Set the fallback time budget for games that do not declare one.

        Args:
            seconds: Time per question in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(seconds, int) or isinstance(seconds, bool):
            error_msg = f"Time per question must be an integer, got {type(seconds).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(seconds).__name__}"
            }

        if seconds < self.MIN_TIME_PER_QUESTION:
            error_msg = f"Time per question must be at least {self.MIN_TIME_PER_QUESTION} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too short: Minimum is {self.MIN_TIME_PER_QUESTION} seconds"
            }

        if seconds > self.MAX_TIME_PER_QUESTION:
            error_msg = f"Time per question cannot exceed {self.MAX_TIME_PER_QUESTION} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too long: Maximum is {self.MAX_TIME_PER_QUESTION} seconds ({self.MAX_TIME_PER_QUESTION // 60} minutes)"
            }

        self._settings.default_time_per_question = seconds
        self.logger.info(f"Default time per question set to {seconds} seconds")
        return {
            'success': True,
            'message': f"Default time per question set to {seconds} seconds",
            'user_message': f"✅ Games without their own timer now allow {seconds} seconds per question"
        }

    def get_default_time_per_question(self) -> int:
        return self._settings.default_time_per_question

    def set_advance_delay(self, delay: float) -> Dict[str, Any]:
        """
        Set the pause between a correct answer and the next question.

        Args:
            delay: Delay in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(delay, (int, float)) or isinstance(delay, bool):
            error_msg = f"Advance delay must be a number, got {type(delay).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(delay).__name__}"
            }

        if not self.MIN_ADVANCE_DELAY <= delay <= self.MAX_ADVANCE_DELAY:
            error_msg = (f"Advance delay must be between {self.MIN_ADVANCE_DELAY} "
                         f"and {self.MAX_ADVANCE_DELAY} seconds")
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Delay out of range: use {self.MIN_ADVANCE_DELAY:g}-{self.MAX_ADVANCE_DELAY:g} seconds"
            }

        self._settings.advance_delay = float(delay)
        self.logger.info(f"Advance delay set to {delay} seconds")
        return {
            'success': True,
            'message': f"Advance delay set to {delay} seconds",
            'user_message': f"✅ Next question appears {delay:g}s after a correct answer"
        }

    def get_advance_delay(self) -> float:
        return self._settings.advance_delay

    def set_data_file(self, key: str, path: str) -> Dict[str, Any]:
        """
        Set one of the JSON file locations ('game_data_file' or 'score_report_file').

        Args:
            key: Which file setting to change
            path: New file path

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if key not in ('game_data_file', 'score_report_file'):
            error_msg = f"Unknown file setting: {key}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Unknown file setting: {key}"
            }

        if not isinstance(path, str) or not path.strip():
            error_msg = f"{key} must be a non-empty path string"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ File path cannot be empty"
            }

        try:
            normalized_path = str(Path(path).resolve())
        except (OSError, ValueError) as e:
            error_msg = f"Invalid file path format: {e}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid path format: {path}"
            }

        # Reject system directories
        system_dirs = ['/bin', '/usr', '/etc', '/sys', '/proc', 'C:\\Windows', 'C:\\Program Files']
        if any(normalized_path.startswith(sys_dir) for sys_dir in system_dirs):
            error_msg = f"Cannot use system directory: {normalized_path}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Cannot use system directory: {path}"
            }

        if key == 'game_data_file':
            self._game_data_file = normalized_path
        else:
            self._score_report_file = normalized_path

        self.logger.info(f"{key} set to {normalized_path}")
        return {
            'success': True,
            'message': f"{key} set to {normalized_path}",
            'user_message': f"✅ {key} set to {normalized_path}"
        }

    def get_game_data_file(self) -> str:
        return self._game_data_file

    def get_score_report_file(self) -> str:
        return self._score_report_file

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the 'game' section of a config.json document.

        Args:
            config: Parsed configuration document

        Returns:
            List of error messages for settings that were rejected
        """
        errors = []
        game_config = config.get('game', {}) if config else {}

        results = []
        if 'game_data_file' in game_config:
            results.append(self.set_data_file('game_data_file', game_config['game_data_file']))
        if 'score_report_file' in game_config:
            results.append(self.set_data_file('score_report_file', game_config['score_report_file']))
        if 'default_time_per_question' in game_config:
            results.append(self.set_default_time_per_question(game_config['default_time_per_question']))
        if 'advance_delay' in game_config:
            results.append(self.set_advance_delay(game_config['advance_delay']))

        for result in results:
            if not result['success']:
                errors.append(result['error'])

        if errors:
            self.logger.warning(f"Rejected {len(errors)} configuration values, keeping defaults for them")
        else:
            self.logger.info("Configuration applied successfully")
        return errors

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        seconds = self._settings.default_time_per_question
        if (not isinstance(seconds, int) or
                seconds < self.MIN_TIME_PER_QUESTION or
                seconds > self.MAX_TIME_PER_QUESTION):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid time per question: {seconds}")

        delay = self._settings.advance_delay
        if not isinstance(delay, (int, float)) or not self.MIN_ADVANCE_DELAY <= delay <= self.MAX_ADVANCE_DELAY:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid advance delay: {delay}")

        if not 0 <= self._settings.points_with_hint <= self._settings.points_without_hint:
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid points: {self._settings.points_with_hint} with hint, "
                f"{self._settings.points_without_hint} without"
            )

        for label, path in (("game data file", self._game_data_file),
                            ("score report file", self._score_report_file)):
            if not isinstance(path, str) or not path.strip():
                validation_result["valid"] = False
                validation_result["issues"].append(f"Invalid {label}: {path}")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        return (
            f"Game Settings:\n"
            f"• Default timer: {self._settings.default_time_per_question} seconds per question\n"
            f"• Advance delay: {self._settings.advance_delay:g} seconds\n"
            f"• Points: {self._settings.points_without_hint} "
            f"({self._settings.points_with_hint} with hint)\n"
            f"• Game data: {self._game_data_file}\n"
            f"• Score report: {self._score_report_file}"
        )

    def get_configuration_health_check(self) -> Dict[str, Any]:
        """
        Perform a health check of the configuration.

        Returns:
            Dictionary with health status and recommendations
        """
        health_check = {
            'healthy': True,
            'warnings': [],
            'errors': [],
            'recommendations': []
        }

        validation_result = self.validate_settings()
        if not validation_result['valid']:
            health_check['healthy'] = False
            health_check['errors'].extend(f"❌ {issue}" for issue in validation_result['issues'])

        data_dir = Path(self._game_data_file).parent
        if not data_dir.exists():
            health_check['warnings'].append(f"⚠️ Data directory does not exist: {data_dir}")
            health_check['recommendations'].append(
                "The data directory will be created when the game document is first written."
            )
        elif not os.access(data_dir, os.W_OK):
            health_check['healthy'] = False
            health_check['errors'].append(f"❌ Cannot write to data directory: {data_dir}")
            health_check['recommendations'].append("Check file permissions for the data directory.")

        if self._settings.default_time_per_question < 30:
            health_check['warnings'].append(
                f"⚠️ Short default timer ({self._settings.default_time_per_question}s) "
                "may not leave enough time for logic questions"
            )

        return health_check
