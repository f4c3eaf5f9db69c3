"""
Score reporting for the Logic Games Bot.
Persists finished session summaries and formats the score report.
"""
import asyncio
import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import SessionSummary

logger = logging.getLogger(__name__)

BAR_CHAR = "█"
EMPTY_BAR_CHAR = "░"


class ScoreDeliveryError(Exception):
    """Raised when a session summary could not be stored."""
    pass


class ScoreReporter:
    """
    Write-only sink for session summaries.

    Each submission is appended to {"scores": [...]} in a JSON file together
    with an ISO-8601 submission timestamp. The file is rewritten through a
    temporary file, one submission at a time.
    """

    def __init__(self, score_file: str = "./data/score_report.json"):
        """
        Initialize the reporter.

        Args:
            score_file: Path to the JSON score report file
        """
        self.score_file = Path(score_file)
        self._write_lock = threading.Lock()

    async def submit(self, summary: SessionSummary) -> Dict[str, Any]:
        """
        Store a session summary.

        Args:
            summary: Frozen summary of the finished or abandoned session

        Returns:
            The stored record including its timestamp

        Raises:
            ScoreDeliveryError: If the score file cannot be read or written
        """
        record = {
            **summary.to_report_dict(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        await asyncio.to_thread(self._append_record, record)
        logger.info(
            f"Stored score for game '{summary.game_id}': {summary.total_points} points, "
            f"{summary.questions_attempted}/{summary.total_questions} attempted"
        )
        return record

    def _append_record(self, record: Dict[str, Any]) -> None:
        # Runs in worker threads; the read-modify-write must not interleave
        with self._write_lock:
            temp_file = self.score_file.with_name(self.score_file.name + ".tmp")
            try:
                score_data = self._read_scores()
                score_data["scores"].append(record)
                self.score_file.parent.mkdir(parents=True, exist_ok=True)
                with open(temp_file, 'w', encoding='utf-8') as f:
                    json.dump(score_data, f, indent=2, ensure_ascii=False)
                os.replace(temp_file, self.score_file)
            except (OSError, ValueError) as e:
                raise ScoreDeliveryError(f"Failed to save score to {self.score_file}: {e}") from e

    def _read_scores(self) -> Dict[str, Any]:
        if not self.score_file.exists():
            return {"scores": []}

        with open(self.score_file, 'r', encoding='utf-8') as f:
            contents = f.read()
        if not contents.strip():
            return {"scores": []}

        score_data = json.loads(contents)
        if not isinstance(score_data, dict) or not isinstance(score_data.get("scores"), list):
            raise ValueError("score file has no 'scores' array")
        return score_data

    def get_scores(self, game_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Read back stored score records.

        Args:
            game_id: Only return records for this game if given

        Returns:
            List of stored records, oldest first
        """
        try:
            scores = self._read_scores()["scores"]
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read score report {self.score_file}: {e}")
            return []

        if game_id is None:
            return scores
        return [score for score in scores if score.get("game_id") == game_id]


def score_grade(total_points: int, max_possible_score: int) -> str:
    """Headline for the score report based on the percentage scored."""
    if max_possible_score <= 0:
        return "Keep Practicing!"

    percentage = (total_points / max_possible_score) * 100
    if percentage >= 90:
        return "Outstanding!"
    if percentage >= 80:
        return "Excellent!"
    if percentage >= 70:
        return "Great Job!"
    if percentage >= 60:
        return "Good Effort!"
    return "Keep Practicing!"


def score_percentage(summary: SessionSummary) -> float:
    if summary.max_possible_score <= 0:
        return 0.0
    return round(summary.total_points / summary.max_possible_score * 100, 1)


def render_points_chart(question_points: List[int], max_points: int = 10, width: int = 10) -> str:
    """
    Render per-question points as a text bar chart.

    Args:
        question_points: Points per attempted question, in order
        max_points: Points of a full bar
        width: Characters of a full bar

    Returns:
        One line per question, e.g. "Q1 ██████████ 10"
    """
    if not question_points:
        return "No questions attempted"

    lines = []
    for number, points in enumerate(question_points, start=1):
        filled = round(width * points / max_points) if max_points > 0 else 0
        filled = max(0, min(width, filled))
        lines.append(f"Q{number:<2} {BAR_CHAR * filled}{EMPTY_BAR_CHAR * (width - filled)} {points}")
    return "\n".join(lines)
