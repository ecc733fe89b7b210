"""
Data manager for loading, decoding and validating the question file.
"""
import json
import os
import re
import logging
from typing import Any, Dict, List, Optional
from pathlib import Path
from urllib.parse import unquote

from .models import Question
from .quiz_engine import QuizEngine


class QuestionLoadError(ValueError):
    """Raised when questions cannot be loaded or fail validation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


# A "%" that does not start a two-digit hex escape
_MALFORMED_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def decode_text(value: str) -> str:
    """
    Decode a percent-encoded text field.

    Raises:
        ValueError: If the text holds a malformed escape or the escapes are not valid UTF-8
    """
    match = _MALFORMED_ESCAPE.search(value)
    if match:
        raise ValueError(f"malformed percent-escape at position {match.start()}")
    return unquote(value, errors="strict")


class DataManager:
    """Manages loading and validation of the JSON question file."""

    MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB limit

    def __init__(self, question_file: str = "./quizzes/questions.json", engine: Optional[QuizEngine] = None):
        """
        Initialize DataManager with the question file path.

        Args:
            question_file: Path to the JSON question file
            engine: Quiz engine used to shuffle the options of each question
        """
        self.question_file = Path(question_file)
        self.engine = engine or QuizEngine()
        self.loaded_questions: List[Question] = []
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []  # Track loading errors for user feedback

    def load_questions(self) -> List[Question]:
        """
        Load, decode and validate the question file.

        Returns:
            List of prepared Question objects with shuffled options

        Raises:
            QuestionLoadError: If the file cannot be read or any record is invalid
        """
        self.loaded_questions = []
        self.load_errors.clear()

        try:
            data = self._load_single_file(self.question_file)
            records = self._extract_records(data)

            errors = self.validate_question_records(records)
            if errors:
                raise QuestionLoadError(
                    f"Invalid question data in {self.question_file}",
                    errors
                )
        except QuestionLoadError as e:
            self.load_errors.extend(e.errors or [str(e)])
            self.logger.error(f"Failed to load questions from {self.question_file}: {e}")
            for error in e.errors:
                self.logger.error(f"  {error}")
            raise

        self.loaded_questions = self.prepare_questions(records)
        self.logger.info(f"Loaded {len(self.loaded_questions)} questions from {self.question_file}")
        return self.loaded_questions

    def _load_single_file(self, file_path: Path) -> Any:
        """
        Load and parse a single JSON file.

        Raises:
            QuestionLoadError: If the file is missing, unreadable, too large or not JSON
        """
        if not file_path.exists():
            raise QuestionLoadError(f"Question file not found: {file_path}")

        if not os.access(file_path, os.R_OK):
            raise QuestionLoadError(f"Permission denied: Cannot read {file_path}")

        file_size = file_path.stat().st_size
        if file_size > self.MAX_FILE_SIZE:
            raise QuestionLoadError(
                f"File too large ({file_size / 1024 / 1024:.1f}MB). "
                f"Maximum size is {self.MAX_FILE_SIZE / 1024 / 1024}MB"
            )

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise QuestionLoadError(f"Invalid JSON in {file_path}: {e}") from e
        except OSError as e:
            raise QuestionLoadError(f"Failed to read question file {file_path}: {e}") from e

    def _extract_records(self, data: Any) -> List[Any]:
        """Accept either a bare list of records or an object with a 'results' list."""
        if isinstance(data, dict):
            if "results" not in data:
                raise QuestionLoadError("Question data must be an array or contain a 'results' key")
            data = data["results"]

        if not isinstance(data, list):
            raise QuestionLoadError("Question records must be an array")

        return data

    def validate_question_records(self, records: List[Any]) -> List[str]:
        """
        Validate raw question records.

        Expected structure of each record:
        {
            "question": str,
            "correct_answer": str,
            "incorrect_answers": [str, ...]
        }

        Args:
            records: Raw records as read from the file

        Returns:
            List of error messages, empty when all records are valid
        """
        errors = []

        if not records:
            errors.append("Question list cannot be empty")
            return errors

        seen_questions = set()
        for i, record in enumerate(records):
            if not isinstance(record, dict):
                errors.append(f"Question {i} must be an object")
                continue

            # Check required fields
            missing = [key for key in ("question", "correct_answer", "incorrect_answers") if key not in record]
            if missing:
                errors.append(f"Question {i} missing {', '.join(repr(key) for key in missing)} field")
                continue

            if not isinstance(record["question"], str):
                errors.append(f"Question {i} 'question' field must be a non-empty string")
                continue

            if not isinstance(record["correct_answer"], str):
                errors.append(f"Question {i} 'correct_answer' field must be a non-empty string")
                continue

            incorrect = record["incorrect_answers"]
            if not isinstance(incorrect, list) or not all(isinstance(answer, str) for answer in incorrect):
                errors.append(f"Question {i} 'incorrect_answers' field must be an array of strings")
                continue

            if not incorrect:
                errors.append(f"Question {i} needs at least one incorrect answer")
                continue

            try:
                question_text = decode_text(record["question"])
                answers = [decode_text(record["correct_answer"])] + [decode_text(answer) for answer in incorrect]
            except ValueError as e:
                errors.append(f"Question {i} has invalid percent-encoding: {e}")
                continue

            # Blank checks apply to the decoded text, "%20" is still blank
            if not question_text.strip():
                errors.append(f"Question {i} 'question' field must be a non-empty string")
                continue

            if not answers[0].strip():
                errors.append(f"Question {i} 'correct_answer' field must be a non-empty string")
                continue

            if not all(answer.strip() for answer in answers[1:]):
                errors.append(f"Question {i} has a blank incorrect answer")
                continue

            if len(set(answers)) != len(answers):
                errors.append(f"Question {i} has duplicate answer options")

            if question_text in seen_questions:
                errors.append(f"Question {i} duplicates an earlier question: {question_text!r}")
            seen_questions.add(question_text)

        return errors

    def prepare_questions(self, records: List[Dict[str, Any]]) -> List[Question]:
        """
        Decode validated records into Question objects with shuffled options.

        Args:
            records: Validated question records

        Returns:
            List of Question objects
        """
        questions = []

        for record in records:
            question = self.engine.build_question(
                text=decode_text(record["question"]),
                correct_text=decode_text(record["correct_answer"]),
                incorrect_texts=[decode_text(answer) for answer in record["incorrect_answers"]]
            )
            questions.append(question)

        return questions

    def get_questions(self) -> List[Question]:
        """Return the questions from the last successful load."""
        return list(self.loaded_questions)

    def get_question_count(self) -> int:
        """Number of questions from the last successful load."""
        return len(self.loaded_questions)

    def get_load_errors(self) -> List[str]:
        """
        Get list of errors encountered during the last load operation.

        Returns:
            List of error messages
        """
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        """Check if there were any errors during the last load operation."""
        return len(self.load_errors) > 0

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the loading operation.

        Returns:
            Dictionary with loading statistics and status
        """
        return {
            'total_questions': len(self.loaded_questions),
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors(),
            'question_file': str(self.question_file)
        }
