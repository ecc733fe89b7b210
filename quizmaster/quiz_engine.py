"""
Quiz engine core logic for the quiz runner.
Handles option shuffling, question selection and the per-question countdown.
"""
import random
import asyncio
import logging
import time
from typing import Iterable, List, Optional, Callable, Any, Tuple
from quizmaster.models import Option, Question, QuizSettings

# Set up logger for timer operations
logger = logging.getLogger(__name__)


class TimerLifecycleLogger:
    """Structured logging for countdown lifecycle events."""

    @staticmethod
    def log_timer_start(session_id: str, generation: int, interval: float) -> None:
        """Log countdown start for a question generation."""
        logger.info(
            f"Timer lifecycle: COUNTDOWN_START - Session {session_id}, Generation {generation}",
            extra={
                'event_type': 'timer_countdown_start',
                'session_id': session_id,
                'generation': generation,
                'interval': interval,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(session_id: str, remaining_time: int, total_duration: int) -> None:
        """Log countdown updates (throttled to avoid spam)."""
        # Log only at specific intervals to avoid log spam
        if remaining_time % 10 == 0 or remaining_time <= 5:
            progress_percent = ((total_duration - remaining_time) / total_duration) * 100 if total_duration else 100.0
            logger.debug(
                f"Timer lifecycle: UPDATE - Session {session_id}, Remaining {remaining_time}s ({progress_percent:.1f}% complete)",
                extra={
                    'event_type': 'timer_update',
                    'session_id': session_id,
                    'remaining_time': remaining_time,
                    'total_duration': total_duration,
                    'progress_percent': progress_percent,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_completion(session_id: str, completion_type: str, ticks: int) -> None:
        """Log countdown completion (expiry or cancellation)."""
        logger.info(
            f"Timer lifecycle: COMPLETED - Session {session_id}, Type {completion_type}, Ticks {ticks}",
            extra={
                'event_type': 'timer_completed',
                'session_id': session_id,
                'completion_type': completion_type,
                'ticks': ticks,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(session_id: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log countdown state transitions."""
        logger.debug(
            f"Timer lifecycle: STATE_TRANSITION - Session {session_id}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'session_id': session_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(session_id: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Session {session_id}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'session_id': session_id,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_race_condition_detected(session_id: str, details: str) -> None:
        """Log stale ticks and advances that arrive for a superseded question."""
        logger.warning(
            f"Timer lifecycle: RACE_CONDITION - Session {session_id}: {details}",
            extra={
                'event_type': 'timer_race_condition',
                'session_id': session_id,
                'details': details,
                'timestamp': time.time()
            }
        )


class QuizTimer:
    """
    Drives the countdown for the active question.

    Each countdown is bound to a generation number. Starting a new countdown
    supersedes the previous one, and ticks are only ever delivered for the
    generation the countdown was started with.
    """

    def __init__(
        self,
        tick_callback: Callable[[int], Any],
        interval: float = 1.0,
        session_id: str = None
    ):
        """
        Initialize the timer.

        Args:
            tick_callback: Called once per interval with the countdown's generation
            interval: Seconds between ticks
            session_id: Identifier used in log records
        """
        self._tick_callback = tick_callback
        self._interval = interval
        self._session_id = session_id
        self._task: Optional[asyncio.Task] = None
        self._generation: Optional[int] = None
        self._is_cancelled = True
        self._tick_count = 0

        logger.debug(
            f"QuizTimer instance created for session {session_id}",
            extra={
                'event_type': 'timer_instance_created',
                'session_id': session_id,
                'timestamp': time.time()
            }
        )

    def start(self, generation: int) -> None:
        """
        Start ticking for the given question generation.

        Must be called from a running event loop. Any countdown that is still
        running is cancelled first.
        """
        self.cancel()
        self._generation = generation
        self._is_cancelled = False
        self._tick_count = 0
        self._task = asyncio.get_running_loop().create_task(self._run(generation))
        TimerLifecycleLogger.log_timer_start(self._session_id, generation, self._interval)

    async def _run(self, generation: int) -> None:
        try:
            while self._is_current(generation):
                await asyncio.sleep(self._interval)
                if not self._is_current(generation):
                    break
                self._tick_count += 1
                self._tick_callback(generation)

            TimerLifecycleLogger.log_timer_completion(self._session_id, "stopped", self._tick_count)
        except asyncio.CancelledError:
            TimerLifecycleLogger.log_timer_completion(
                self._session_id,
                "asyncio_cancelled",
                self._tick_count
            )
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                self._session_id,
                "countdown_execution_error",
                str(e),
                "run"
            )
            raise

    def _is_current(self, generation: int) -> bool:
        return not self._is_cancelled and self._generation == generation

    def cancel(self) -> bool:
        """
        Cancel the running countdown.

        Returns:
            True if a running countdown task was cancelled, False otherwise
        """
        was_running = self.is_running
        self._is_cancelled = True
        if self._task and not self._task.done():
            self._task.cancel()

        TimerLifecycleLogger.log_timer_state_transition(
            self._session_id,
            "running" if was_running else "idle",
            "cancelled",
            f"generation {self._generation}"
        )
        return was_running

    @property
    def is_running(self) -> bool:
        """Check if a countdown is currently active."""
        return not self._is_cancelled and self._task is not None and not self._task.done()

    @property
    def is_cancelled(self) -> bool:
        """Check if timer is cancelled."""
        return self._is_cancelled

    @property
    def generation(self) -> Optional[int]:
        """Generation of the most recently started countdown."""
        return self._generation

    @property
    def tick_count(self) -> int:
        """Number of ticks delivered by the current countdown."""
        return self._tick_count


def shuffle_options(
    correct_text: str,
    incorrect_texts: Iterable[str],
    rng: Optional[random.Random] = None
) -> Tuple[Option, ...]:
    """
    Build the option list for a question in uniformly random order.

    Args:
        correct_text: Text of the correct answer
        incorrect_texts: Texts of the incorrect answers
        rng: Random source, defaults to the module-level generator

    Returns:
        Tuple of options with exactly one marked correct
    """
    options = [Option(text=text, is_correct=False) for text in incorrect_texts]
    options.append(Option(text=correct_text, is_correct=True))

    # random.shuffle is an in-place Fisher-Yates shuffle
    (rng or random).shuffle(options)
    return tuple(options)


class QuizEngine:
    """Prepares questions: option shuffling, selection and ordering."""

    def __init__(self, rng: Optional[random.Random] = None):
        """
        Initialize the quiz engine.

        Args:
            rng: Random source shared by option and question shuffling
        """
        self._rng = rng or random.Random()

    def build_question(self, text: str, correct_text: str, incorrect_texts: Iterable[str]) -> Question:
        """Create a question whose options are shuffled once, at creation time."""
        return Question(
            text=text,
            options=shuffle_options(correct_text, incorrect_texts, self._rng)
        )

    def select_questions(self, questions: List[Question], settings: QuizSettings) -> List[Question]:
        """
        Select and order questions based on quiz settings.

        Args:
            questions: List of available questions
            settings: Quiz configuration settings

        Returns:
            List of selected and ordered questions

        Raises:
            ValueError: If questions list is empty
        """
        if not questions:
            raise ValueError("Cannot select questions from empty list")

        # Make a copy to avoid modifying the original list
        selected_questions = questions.copy()

        # Apply random ordering if enabled
        if settings.random_order:
            selected_questions = self.shuffle_questions(selected_questions)

        # Limit question count if specified
        if settings.question_count is not None:
            selected_questions = self.limit_question_count(selected_questions, settings.question_count)

        return selected_questions

    def shuffle_questions(self, questions: List[Question]) -> List[Question]:
        """
        Shuffle questions randomly.

        Args:
            questions: List of questions to shuffle

        Returns:
            New list with questions in random order
        """
        shuffled = questions.copy()
        self._rng.shuffle(shuffled)
        return shuffled

    def limit_question_count(self, questions: List[Question], count: int) -> List[Question]:
        """
        Limit the number of questions to the specified count.

        Note:
            If count is greater than available questions, returns all questions.
            If count is less than 1, returns empty list.
        """
        if count < 1:
            return []

        return questions[:count]
