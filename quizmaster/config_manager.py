"""
Configuration manager for quiz runner settings and parameters.
"""
import logging
from typing import Optional, Dict, Any
from pathlib import Path

from .models import QuizSettings


class ConfigManager:
    """Manages quiz configuration settings."""

    # Default configuration values
    DEFAULT_TIMER_DURATION = 20
    DEFAULT_ADVANCE_DELAY = 1.0
    DEFAULT_TICK_INTERVAL = 1.0
    DEFAULT_QUESTION_COUNT = None  # Use all questions by default
    DEFAULT_RANDOM_ORDER = False
    DEFAULT_QUESTION_FILE = "./quizzes/questions.json"

    # Validation limits
    MIN_TIMER_DURATION = 5
    MAX_TIMER_DURATION = 300  # 5 minutes
    MIN_ADVANCE_DELAY = 0.0
    MAX_ADVANCE_DELAY = 10.0
    MIN_QUESTION_COUNT = 1
    MAX_QUESTION_COUNT = 100

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._global_settings = QuizSettings(
            timer_duration=self.DEFAULT_TIMER_DURATION,
            advance_delay=self.DEFAULT_ADVANCE_DELAY,
            tick_interval=self.DEFAULT_TICK_INTERVAL
        )
        self._question_file = self.DEFAULT_QUESTION_FILE

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get current quiz settings.

        Returns:
            A copy of the current QuizSettings
        """
        return QuizSettings(
            timer_duration=self._global_settings.timer_duration,
            advance_delay=self._global_settings.advance_delay,
            tick_interval=self._global_settings.tick_interval,
            question_count=self._global_settings.question_count,
            random_order=self._global_settings.random_order
        )

    def set_timer_duration(self, duration: int) -> Dict[str, Any]:
        """
        Set the countdown length for each question.

        Args:
            duration: Timer duration in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(duration, bool) or not isinstance(duration, int):
            error_msg = f"Timer duration must be an integer, got {type(duration).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(duration).__name__}"
            }

        if duration < self.MIN_TIMER_DURATION:
            error_msg = f"Timer duration must be at least {self.MIN_TIMER_DURATION} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too short: Minimum is {self.MIN_TIMER_DURATION} seconds"
            }

        if duration > self.MAX_TIMER_DURATION:
            error_msg = f"Timer duration cannot exceed {self.MAX_TIMER_DURATION} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too long: Maximum is {self.MAX_TIMER_DURATION} seconds ({self.MAX_TIMER_DURATION // 60} minutes)"
            }

        self._global_settings.timer_duration = duration
        self.logger.info(f"Timer duration set to {duration} seconds")
        return {
            'success': True,
            'message': f"Timer duration set to {duration} seconds",
            'user_message': f"✅ Timer set to {duration} seconds"
        }

    def get_timer_duration(self) -> int:
        return self._global_settings.timer_duration

    def set_advance_delay(self, delay: float) -> Dict[str, Any]:
        """
        Set the pause between a manual answer and the next question.

        Args:
            delay: Delay in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(delay, bool) or not isinstance(delay, (int, float)):
            error_msg = f"Advance delay must be a number, got {type(delay).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(delay).__name__}"
            }

        if not self.MIN_ADVANCE_DELAY <= delay <= self.MAX_ADVANCE_DELAY:
            error_msg = (
                f"Advance delay must be between {self.MIN_ADVANCE_DELAY} "
                f"and {self.MAX_ADVANCE_DELAY} seconds"
            )
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {error_msg}"
            }

        self._global_settings.advance_delay = float(delay)
        self.logger.info(f"Advance delay set to {delay} seconds")
        return {
            'success': True,
            'message': f"Advance delay set to {delay} seconds",
            'user_message': f"✅ Next question appears {delay} seconds after an answer"
        }

    def get_advance_delay(self) -> float:
        return self._global_settings.advance_delay

    def set_question_count(self, count: Optional[int]) -> Dict[str, Any]:
        """
        Set the number of questions for quizzes with detailed error reporting.

        Args:
            count: Number of questions, or None to use all questions

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if count is None:
            self._global_settings.question_count = None
            self.logger.info("Question count set to use all available questions")
            return {
                'success': True,
                'message': "Question count set to use all available questions",
                'user_message': "✅ Will use all available questions"
            }

        # Type validation
        if isinstance(count, bool) or not isinstance(count, int):
            error_msg = f"Question count must be an integer, got {type(count).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(count).__name__}"
            }

        # Range validation
        if count < self.MIN_QUESTION_COUNT:
            error_msg = f"Question count must be at least {self.MIN_QUESTION_COUNT}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too few questions: Minimum is {self.MIN_QUESTION_COUNT}"
            }

        if count > self.MAX_QUESTION_COUNT:
            error_msg = f"Question count cannot exceed {self.MAX_QUESTION_COUNT}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too many questions: Maximum is {self.MAX_QUESTION_COUNT}"
            }

        self._global_settings.question_count = count
        self.logger.info(f"Question count set to {count}")
        return {
            'success': True,
            'message': f"Question count set to {count}",
            'user_message': f"✅ Question count set to {count}"
        }

    def get_question_count(self) -> Optional[int]:
        return self._global_settings.question_count

    def set_random_order(self, random_order: bool) -> Dict[str, Any]:
        """
        Set whether questions should be presented in random order.

        Args:
            random_order: True for random order, False for file order

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(random_order, bool):
            error_msg = f"Random order must be a boolean, got {type(random_order).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected true/false, got {type(random_order).__name__}"
            }

        self._global_settings.random_order = random_order
        order_type = "random" if random_order else "sequential"
        self.logger.info(f"Question order set to {order_type}")

        return {
            'success': True,
            'message': f"Question order set to {order_type}",
            'user_message': f"✅ Questions will be presented in {order_type} order"
        }

    def get_random_order(self) -> bool:
        return self._global_settings.random_order

    def set_question_file(self, question_file: str) -> Dict[str, Any]:
        """
        Set the path of the JSON question file.

        Args:
            question_file: Path to the question file

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(question_file, str):
            error_msg = f"Question file must be a string, got {type(question_file).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a path string, got {type(question_file).__name__}"
            }

        if not question_file.strip():
            error_msg = "Question file cannot be empty"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Question file path cannot be empty"
            }

        if Path(question_file).suffix.lower() != ".json":
            error_msg = f"Question file must be a .json file: {question_file}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Not a JSON file: {question_file}"
            }

        self._question_file = question_file
        self.logger.info(f"Question file set to {question_file}")
        return {
            'success': True,
            'message': f"Question file set to {question_file}",
            'user_message': f"✅ Question file set to {question_file}"
        }

    def get_question_file(self) -> str:
        return self._question_file

    def apply_config(self, quiz_config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply the 'quiz' section of the configuration file.

        Invalid values are reported and the corresponding defaults are kept.

        Args:
            quiz_config: Mapping read from the configuration file

        Returns:
            Dictionary with success status and the list of rejected settings
        """
        setters = {
            'question_file': self.set_question_file,
            'timer_duration': self.set_timer_duration,
            'advance_delay': self.set_advance_delay,
            'question_count': self.set_question_count,
            'random_order': self.set_random_order,
        }

        errors = []
        for key, setter in setters.items():
            if key not in quiz_config:
                continue
            result = setter(quiz_config[key])
            if not result['success']:
                errors.append(f"{key}: {result['error']}")

        unknown = sorted(set(quiz_config) - set(setters))
        for key in unknown:
            self.logger.warning(f"Ignoring unknown quiz setting '{key}'")

        return {
            'success': not errors,
            'errors': errors
        }

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._global_settings = QuizSettings(
            timer_duration=self.DEFAULT_TIMER_DURATION,
            advance_delay=self.DEFAULT_ADVANCE_DELAY,
            tick_interval=self.DEFAULT_TICK_INTERVAL,
            question_count=self.DEFAULT_QUESTION_COUNT,
            random_order=self.DEFAULT_RANDOM_ORDER
        )
        self._question_file = self.DEFAULT_QUESTION_FILE
        self.logger.info("All settings reset to default values")

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        settings = self._global_settings
        question_count_str = (
            str(settings.question_count)
            if settings.question_count is not None
            else "all available"
        )

        order_str = "random" if settings.random_order else "sequential"

        return (
            f"Quiz Settings:\n"
            f"• Questions: {question_count_str}\n"
            f"• Order: {order_str}\n"
            f"• Timer: {settings.timer_duration} seconds\n"
            f"• Next question after: {settings.advance_delay:g} seconds\n"
            f"• Question File: {self._question_file}"
        )
