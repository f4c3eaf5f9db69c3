"""
Data manager for the game document: subjects, games and questions in one JSON file.
"""
import json
import logging
import random
import string
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from .game_engine import MAX_OPTIONS
from .models import Game, GameMetadata, Question

REQUIRED_QUESTION_FIELDS = {
    "id": int,
    "question": str,
    "options": list,
    "correct": int,
    "hint": str,
    "solution": str,
}


def _objects(items: Any) -> List[Dict[str, Any]]:
    """Entries of a hierarchy list that are JSON objects; anything else is skipped."""
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


class DataManager:
    """
    Reads and rewrites the game document.

    The document is a three level hierarchy:
    main subject -> sub subject -> games. The whole file is read on every
    lookup and rewritten wholesale on every change; the last writer wins.
    """

    def __init__(self, data_file: str = "./data/game_data.json"):
        """
        Initialize DataManager with the game document path.

        Args:
            data_file: Path to the JSON game document
        """
        self.data_file = Path(data_file)
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []  # Track loading errors for user feedback

    def load_document(self) -> Dict[str, Any]:
        """
        Load the game document, resetting it when missing or unreadable.

        A missing, empty, unparsable or structurally wrong file is replaced by
        an empty document and rewritten to disk.

        Returns:
            The parsed document
        """
        self.load_errors.clear()

        if not self.data_file.exists():
            self.logger.info(f"Game document not found, creating {self.data_file}")
            return self._reset_document()

        try:
            file_contents = self.data_file.read_text(encoding='utf-8')
        except OSError as e:
            self.logger.error(f"Failed to read game document {self.data_file}: {e}")
            self.load_errors.append(f"Failed to read {self.data_file}: {e}")
            return {"main_subjects": []}

        if not file_contents.strip():
            self.logger.warning(f"Game document {self.data_file} is empty, resetting")
            self.load_errors.append("Game document was empty")
            return self._reset_document()

        try:
            data = json.loads(file_contents)
        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in {self.data_file}: {e}")
            self.load_errors.append(f"Invalid JSON in game document: {e}")
            return self._reset_document()

        if not isinstance(data, dict) or not isinstance(data.get("main_subjects"), list):
            self.logger.error(f"Game document {self.data_file} has no 'main_subjects' array, resetting")
            self.load_errors.append("Game document has no 'main_subjects' array")
            return self._reset_document()

        return data

    def save_document(self, data: Dict[str, Any]) -> None:
        """
        Write the whole document back to disk.

        Raises:
            OSError: If the file cannot be written
        """
        self.data_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.data_file, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def _reset_document(self) -> Dict[str, Any]:
        data = {"main_subjects": []}
        try:
            self.save_document(data)
        except OSError as e:
            self.logger.error(f"Failed to initialise game document {self.data_file}: {e}")
            self.load_errors.append(f"Failed to write {self.data_file}: {e}")
        return data

    def get_hierarchy(self) -> List[Dict[str, Any]]:
        """Return the main subject entries that are well formed objects."""
        return _objects(self.load_document()["main_subjects"])

    def get_main_subjects(self) -> List[str]:
        """Unique main subject names, in document order."""
        names: List[str] = []
        for main in self.get_hierarchy():
            name = main.get("main_subject")
            if isinstance(name, str) and name and name not in names:
                names.append(name)
        return names

    def get_sub_subjects(self, main_subject: str) -> List[str]:
        """Unique sub subject names under a main subject."""
        names: List[str] = []
        for main in self.get_hierarchy():
            if main.get("main_subject") != main_subject:
                continue
            for sub in _objects(main.get("main_subject_context")):
                name = sub.get("sub_subject")
                if isinstance(name, str) and name and name not in names:
                    names.append(name)
        return names

    def get_games(self, main_subject: str, sub_subject: str) -> List[Dict[str, Any]]:
        """Raw game entries of one sub subject."""
        for main in self.get_hierarchy():
            if main.get("main_subject") != main_subject:
                continue
            for sub in _objects(main.get("main_subject_context")):
                if sub.get("sub_subject") == sub_subject:
                    return _objects(sub.get("sub_subject_context"))
        return []

    def search_games(self, term: str = "") -> List[Dict[str, Any]]:
        """
        Filter the hierarchy by a case-insensitive search term.

        A main subject matching the term is kept whole. Otherwise only sub
        subjects that match, or that hold a game whose name or category
        matches, are kept.

        Args:
            term: Search text, empty keeps everything

        Returns:
            Filtered copy of the main subject list
        """
        hierarchy = self.get_hierarchy()
        needle = (term or "").strip().lower()
        if not needle:
            return hierarchy

        results = []
        for main in hierarchy:
            if needle in _text(main.get("main_subject")).lower():
                results.append(main)
                continue

            matching_subs = []
            for sub in _objects(main.get("main_subject_context")):
                if needle in _text(sub.get("sub_subject")).lower():
                    matching_subs.append(sub)
                    continue
                games = []
                for game in _objects(sub.get("sub_subject_context")):
                    metadata = game.get("metadata")
                    category = metadata.get("category") if isinstance(metadata, dict) else None
                    if needle in _text(game.get("name")).lower() or needle in _text(category).lower():
                        games.append(game)
                if games:
                    matching_subs.append({**sub, "sub_subject_context": games})

            if matching_subs:
                results.append({**main, "main_subject_context": matching_subs})

        return results

    def _iter_games(self):
        """Yield (main subject, sub subject, raw game) for every game entry."""
        for main in self.get_hierarchy():
            for sub in _objects(main.get("main_subject_context")):
                for game_data in _objects(sub.get("sub_subject_context")):
                    yield main, sub, game_data

    def find_game(self, game_id: str) -> Optional[Game]:
        """
        Look a game up by identifier.

        Args:
            game_id: Game identifier

        Returns:
            Parsed Game, or None if no game has that identifier

        Raises:
            ValueError: If the game entry is malformed
        """
        for main, sub, game_data in self._iter_games():
            if game_data.get("id") == game_id:
                return self._parse_game(
                    game_data,
                    _text(main.get("main_subject")),
                    _text(sub.get("sub_subject"))
                )
        self.logger.info(f"Game '{game_id}' not found in {self.data_file}")
        return None

    def game_exists(self, game_id: str) -> bool:
        return any(game_data.get("id") == game_id for _, _, game_data in self._iter_games())

    def _parse_game(self, game_data: Dict[str, Any], main_subject: str, sub_subject: str) -> Game:
        """
        Build a Game from a raw entry.

        Questions are read from the explicit 'questions' key only. Option and
        correct-index checks are left to the session, which fails closed.

        Raises:
            ValueError: If the metadata or a question entry is malformed
        """
        game_id = game_data["id"]

        metadata_data = game_data.get("metadata")
        if metadata_data is None:
            metadata_data = {}
        if not isinstance(metadata_data, dict):
            raise ValueError(f"Game {game_id} has malformed metadata: expected an object")
        time_per_question = metadata_data.get("timePerQuestion")
        if time_per_question is not None and (
                not isinstance(time_per_question, (int, float)) or isinstance(time_per_question, bool)
                or time_per_question <= 0):
            raise ValueError(
                f"Game {game_id} has malformed metadata: timePerQuestion must be a positive number of minutes"
            )

        questions_data = game_data.get("questions")
        if questions_data is None:
            questions_data = []
        if not isinstance(questions_data, list):
            raise ValueError(f"Game {game_id} has malformed question data: 'questions' must be a list")

        try:
            questions = [Question.from_dict(question_data) for question_data in questions_data]
            metadata = GameMetadata.from_dict(metadata_data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ValueError(f"Game {game_id} has malformed data: {e!r}") from e

        name = game_data.get("name")
        return Game(
            id=game_id,
            name=name if isinstance(name, str) and name else str(game_id),
            questions=questions,
            metadata=metadata,
            main_subject=main_subject,
            sub_subject=sub_subject
        )

    def validate_game_structure(self, data: Any) -> List[str]:
        """
        Validate an authored game before it is stored.

        Expected structure:
        {
            "questions": [
                {"id": int, "question": str, "options": [str, ...],
                 "correct": int, "hint": str, "solution": str}
            ],
            "metadata": {"category": str, "difficulty": str,
                         "totalQuestions": number, "instructions": str}
        }

        Args:
            data: Parsed JSON data to validate

        Returns:
            List of problems found, empty if the game is valid
        """
        issues: List[str] = []

        if not isinstance(data, dict):
            return ["Game data must be a JSON object"]

        metadata = data.get("metadata")
        if not isinstance(metadata, dict):
            issues.append("Game data must contain a 'metadata' object")
        else:
            for key in ("category", "difficulty", "instructions"):
                if not metadata.get(key) or not isinstance(metadata.get(key), str):
                    issues.append(f"metadata.{key} must be a non-empty string")
            total = metadata.get("totalQuestions")
            if not isinstance(total, (int, float)) or isinstance(total, bool):
                issues.append("metadata.totalQuestions must be a number")
            time_per_question = metadata.get("timePerQuestion")
            if time_per_question is not None and (
                    not isinstance(time_per_question, (int, float)) or isinstance(time_per_question, bool)
                    or time_per_question <= 0):
                issues.append("metadata.timePerQuestion must be a positive number of minutes")

        questions = data.get("questions")
        if not isinstance(questions, list):
            issues.append("Game data must contain a 'questions' array")
            return issues
        if not questions:
            issues.append("'questions' array cannot be empty")
            return issues

        seen_ids = set()
        for i, question_data in enumerate(questions):
            if not isinstance(question_data, dict):
                issues.append(f"Question {i} must be an object")
                continue

            for field_name, field_type in REQUIRED_QUESTION_FIELDS.items():
                value = question_data.get(field_name)
                if not isinstance(value, field_type) or isinstance(value, bool):
                    issues.append(f"Question {i} '{field_name}' must be {field_type.__name__}")

            options = question_data.get("options")
            correct = question_data.get("correct")
            if isinstance(options, list):
                if len(options) < 2:
                    issues.append(f"Question {i} needs at least 2 options")
                elif len(options) > MAX_OPTIONS:
                    issues.append(f"Question {i} has more than {MAX_OPTIONS} options")
                elif not all(isinstance(option, str) for option in options):
                    issues.append(f"Question {i} options must be strings")
                elif isinstance(correct, int) and not 0 <= correct < len(options):
                    issues.append(f"Question {i} 'correct' index {correct} is out of range")

            question_id = question_data.get("id")
            if isinstance(question_id, int):
                if question_id in seen_ids:
                    issues.append(f"Question {i} reuses id {question_id}")
                seen_ids.add(question_id)

        return issues

    @staticmethod
    def generate_game_id() -> str:
        """Unique id of the form game_<ms timestamp>_<6 base36 chars>."""
        alphabet = string.digits + string.ascii_lowercase
        suffix = ''.join(random.choice(alphabet) for _ in range(6))
        return f"game_{int(time.time() * 1000)}_{suffix}"

    def add_game(
        self,
        main_subject: str,
        sub_subject: str,
        game_name: str,
        game_data: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Store a new game under main subject -> sub subject.

        Subjects are created on demand. The game receives a generated id.

        Args:
            main_subject: Main subject name, existing or new
            sub_subject: Sub subject name, existing or new
            game_name: Display name of the game
            game_data: Parsed game JSON with 'questions' and 'metadata'

        Returns:
            Dictionary with success status, game id and user-friendly message
        """
        for label, value in (("Main subject", main_subject), ("Sub subject", sub_subject),
                             ("Game name", game_name)):
            if not isinstance(value, str) or not value.strip():
                return {
                    'success': False,
                    'error': f"{label} is required",
                    'user_message': f"❌ {label} is required"
                }

        issues = self.validate_game_structure(game_data)
        if issues:
            self.logger.error(f"Rejected game '{game_name}': {issues}")
            return {
                'success': False,
                'error': "Invalid game data structure",
                'issues': issues,
                'user_message': "❌ Invalid game data structure:\n" + "\n".join(f"• {issue}" for issue in issues[:10])
            }

        data = self.load_document()

        existing_main = next(
            (ms for ms in _objects(data["main_subjects"]) if ms.get("main_subject") == main_subject.strip()),
            None
        )
        if existing_main is None:
            existing_main = {"main_subject": main_subject.strip(), "main_subject_context": []}
            data["main_subjects"].append(existing_main)
            self.logger.info(f"Added new main subject: {main_subject.strip()}")
        if not isinstance(existing_main.get("main_subject_context"), list):
            existing_main["main_subject_context"] = []

        sub_subjects = _objects(existing_main["main_subject_context"])
        existing_sub = next(
            (ss for ss in sub_subjects if ss.get("sub_subject") == sub_subject.strip()),
            None
        )
        if existing_sub is None:
            existing_sub = {"sub_subject": sub_subject.strip(), "sub_subject_context": []}
            existing_main["main_subject_context"].append(existing_sub)
            self.logger.info(f"Added new sub subject: {sub_subject.strip()}")
        if not isinstance(existing_sub.get("sub_subject_context"), list):
            existing_sub["sub_subject_context"] = []

        game_id = self.generate_game_id()
        new_game = {
            "id": game_id,
            "name": game_name.strip(),
            "questions": game_data["questions"],
            "metadata": game_data["metadata"]
        }
        existing_sub["sub_subject_context"].append(new_game)

        try:
            self.save_document(data)
        except OSError as e:
            self.logger.error(f"Failed to save game '{game_name}': {e}")
            return {
                'success': False,
                'error': f"Failed to save game: {e}",
                'user_message': "❌ Failed to save game"
            }

        self.logger.info(f"Saved game '{game_name}' as {game_id} under {main_subject}/{sub_subject}")
        return {
            'success': True,
            'game_id': game_id,
            'message': f"Game '{game_name}' saved as {game_id}",
            'user_message': f"✅ Game **{game_name.strip()}** saved successfully (id `{game_id}`)"
        }

    def get_game_count(self) -> int:
        return sum(1 for _ in self._iter_games())

    def get_load_errors(self) -> List[str]:
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the game document.

        Returns:
            Dictionary with document statistics and status
        """
        main_subjects = self.get_main_subjects()
        return {
            'total_games': self.get_game_count(),
            'main_subjects': main_subjects,
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors(),
            'data_file': str(self.data_file)
        }
