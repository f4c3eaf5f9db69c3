"""
Core data models for the Logic Games Bot.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class SessionSettings:
    """Configuration settings for a game session."""
    default_time_per_question: int = 120  # seconds, used when a game sets none
    advance_delay: float = 1.5
    tick_interval: float = 1.0
    points_without_hint: int = 10
    points_with_hint: int = 5


@dataclass(frozen=True)
class Question:
    """Represents a single multiple choice question of a logic game."""
    id: int
    question: str
    options: List[str]
    correct: int
    hint: str = ""
    solution: str = ""

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Question":
        return Question(
            id=data["id"],
            question=data["question"],
            options=list(data["options"]) if isinstance(data["options"], (list, tuple)) else data["options"],
            correct=data["correct"],
            hint=data.get("hint", ""),
            solution=data.get("solution", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "question": self.question,
            "options": list(self.options),
            "correct": self.correct,
            "hint": self.hint,
            "solution": self.solution,
        }


@dataclass(frozen=True)
class RandomizedQuestion:
    """
    A question with its options in a per-session random order.

    Both maps are bijections over range(len(options)):
    original_to_randomized[i] is the display position of original option i,
    randomized_to_original[p] is the original index shown at position p.
    """
    question: Question
    randomized_options: List[str]
    original_to_randomized: List[int]
    randomized_to_original: List[int]

    @property
    def id(self) -> int:
        return self.question.id

    @property
    def correct_position(self) -> int:
        """Display position of the correct option."""
        return self.original_to_randomized[self.question.correct]


@dataclass
class GameMetadata:
    """Descriptive settings of a game."""
    category: str
    difficulty: str
    total_questions: int
    instructions: str = ""
    time_per_question: Optional[float] = None  # minutes
    total_time: Optional[float] = None
    passing_score: Optional[float] = None
    scoring_criteria: Optional[str] = None
    evaluation_criteria: Dict[str, float] = field(default_factory=dict)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "GameMetadata":
        return GameMetadata(
            category=data.get("category", ""),
            difficulty=data.get("difficulty", ""),
            total_questions=data.get("totalQuestions", 0),
            instructions=data.get("instructions", ""),
            time_per_question=data.get("timePerQuestion"),
            total_time=data.get("totalTime"),
            passing_score=data.get("passingScore"),
            scoring_criteria=data.get("scoringCriteria"),
            evaluation_criteria=dict(data.get("evaluationCriteria") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "category": self.category,
            "difficulty": self.difficulty,
            "totalQuestions": self.total_questions,
            "instructions": self.instructions,
        }
        if self.time_per_question is not None:
            data["timePerQuestion"] = self.time_per_question
        if self.total_time is not None:
            data["totalTime"] = self.total_time
        if self.passing_score is not None:
            data["passingScore"] = self.passing_score
        if self.scoring_criteria is not None:
            data["scoringCriteria"] = self.scoring_criteria
        if self.evaluation_criteria:
            data["evaluationCriteria"] = dict(self.evaluation_criteria)
        return data


@dataclass
class Game:
    """One playable set of questions plus metadata."""
    id: str
    name: str
    questions: List[Question]
    metadata: GameMetadata
    main_subject: str = ""
    sub_subject: str = ""

    @property
    def question_count(self) -> int:
        return len(self.questions)


@dataclass(frozen=True)
class ScoreEntry:
    """Scoring outcome for a single answered or expired question."""
    question_id: int
    points: int
    used_hint: bool
    correct: bool
    time_remaining: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "points": self.points,
            "used_hint": self.used_hint,
            "correct": self.correct,
            "time_remaining": self.time_remaining,
        }


@dataclass(frozen=True)
class SessionSummary:
    """Frozen result of a session, handed to the score reporter."""
    game_id: str
    game_name: str
    total_points: int
    correct_answers: int
    incorrect_answers: int
    question_points: List[int]
    max_possible_score: int
    questions_attempted: int
    total_questions: int
    entries: List[ScoreEntry]

    @staticmethod
    def from_entries(game: Game, entries: List[ScoreEntry], points_per_question: int) -> "SessionSummary":
        entries = list(entries)
        correct = sum(1 for entry in entries if entry.correct)
        return SessionSummary(
            game_id=game.id,
            game_name=game.name,
            total_points=sum(entry.points for entry in entries),
            correct_answers=correct,
            incorrect_answers=len(entries) - correct,
            question_points=[entry.points for entry in entries],
            max_possible_score=game.question_count * points_per_question,
            questions_attempted=len(entries),
            total_questions=game.question_count,
            entries=entries,
        )

    def to_report_dict(self) -> Dict[str, Any]:
        """Payload accepted by the score reporter."""
        return {
            "game_id": self.game_id,
            "game_name": self.game_name,
            "total_score": self.total_points,
            "scores": [entry.to_dict() for entry in self.entries],
            "questions_attempted": self.questions_attempted,
            "total_questions": self.total_questions,
        }


@dataclass
class SessionState:
    """Mutable state of one quiz attempt. Discarded when the attempt ends."""
    randomized_questions: List[RandomizedQuestion]
    time_remaining: int
    current_index: int = 0
    selected_answer: Optional[int] = None
    hint_visible: bool = False
    answered: bool = False
    started: bool = True
    showing_report: bool = False
    scores: List[ScoreEntry] = field(default_factory=list)
    summary: Optional[SessionSummary] = None
    generation: int = 0
