"""
Quiz session controller for the quiz runner.
Owns the session state machine: question progression, timed auto-submission,
answer recording and scoring.
"""
import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from .models import AnsweredRecord, NO_ANSWER, Question, QuizSession, QuizSettings, SessionState
from .quiz_engine import QuizTimer, TimerLifecycleLogger
from .data_manager import QuestionLoadError


class SessionPhase(Enum):
    """Enumeration of quiz session phases."""
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"


def validate_questions(questions: Sequence[Question]) -> List[str]:
    """
    Check that prepared questions can be scored.

    Returns:
        List of problems found, empty when the questions are usable
    """
    issues = []

    if not questions:
        issues.append("Question list cannot be empty")
        return issues

    for i, question in enumerate(questions):
        if not question.text.strip():
            issues.append(f"Question {i} has no text")
        if any(not option.text.strip() for option in question.options):
            issues.append(f"Question {i} has an option with no text")
        if len(question.options) < 2:
            issues.append(f"Question {i} must have at least two options")
        correct_count = sum(1 for option in question.options if option.is_correct)
        if correct_count != 1:
            issues.append(f"Question {i} must have exactly one correct option, found {correct_count}")
        texts = [option.text for option in question.options]
        if len(set(texts)) != len(texts):
            issues.append(f"Question {i} has duplicate option texts")

    return issues


class QuizController:
    """
    Runs one quiz session.

    All transitions are synchronous and run on a single event loop, so they
    never interleave. A submission takes the answer lock before doing anything
    else; any submission or tick that arrives while the lock is held, or after
    the quiz has finished, is discarded. The deferred advance to the next
    question and every countdown are tagged with a generation number so that
    work scheduled for an earlier question or an earlier run is ignored.
    """

    def __init__(
        self,
        questions: Sequence[Question],
        settings: Optional[QuizSettings] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        countdown: Optional[Any] = None,
        on_state_change: Optional[Callable[[SessionState], Any]] = None,
        on_feedback: Optional[Callable[[bool], Any]] = None,
        session_id: str = "default"
    ):
        """
        Initialize the quiz controller.

        Args:
            questions: Prepared questions, options already shuffled
            settings: Quiz settings, defaults to QuizSettings()
            loop: Event loop used to schedule the advance, defaults to the running loop
            countdown: Countdown driver, defaults to a QuizTimer ticking into timer_tick
            on_state_change: Called with a SessionState snapshot after every transition
            on_feedback: Called with the correctness of each manually submitted answer
            session_id: Identifier used in log records

        Raises:
            QuestionLoadError: If the questions are empty or malformed
        """
        self.logger = logging.getLogger(__name__)
        self.session_id = session_id

        issues = validate_questions(questions)
        if issues:
            self.logger.error(
                f"Refusing to start session {session_id}: {len(issues)} question problem(s)",
                extra={
                    'event_type': 'session_load_failed',
                    'session_id': session_id,
                    'issues': issues,
                    'timestamp': time.time()
                }
            )
            raise QuestionLoadError("Questions failed validation", issues)

        self.settings = settings or QuizSettings()
        self._questions = list(questions)
        self._loop = loop
        self._countdown = countdown or QuizTimer(
            self.timer_tick,
            interval=self.settings.tick_interval,
            session_id=session_id
        )
        self._on_state_change = on_state_change
        self._on_feedback = on_feedback

        self._generation = 0
        self._pending_advance: Optional[asyncio.Handle] = None
        self._started = False
        self._session = self._new_session()

        self.logger.info(
            f"QuizController initialized for session {session_id} with {len(self._questions)} questions"
        )

    def _new_session(self) -> QuizSession:
        return QuizSession(
            questions=list(self._questions),
            seconds_remaining=self.settings.timer_duration
        )

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """Snapshot of the current session state."""
        return self._session.snapshot()

    @property
    def phase(self) -> SessionPhase:
        return SessionPhase.FINISHED if self._session.is_finished else SessionPhase.IN_PROGRESS

    @property
    def generation(self) -> int:
        """Generation of the active question; changes on every advance and restart."""
        return self._generation

    @property
    def current_question(self) -> Optional[Question]:
        """Question being asked, or None once the quiz has finished."""
        if self._session.is_finished:
            return None
        return self._session.questions[self._session.current_index]

    @property
    def answer_log(self) -> List[AnsweredRecord]:
        return list(self._session.answer_log)

    @property
    def is_started(self) -> bool:
        return self._started

    def get_session_progress(self) -> Dict[str, Any]:
        """
        Get progress information for the session.

        Returns:
            Dictionary with question position, score and countdown state
        """
        session = self._session
        total = len(session.questions)
        duration = self.settings.timer_duration
        return {
            'question_number': min(session.current_index + 1, total),
            'total_questions': total,
            'score': session.score,
            'seconds_remaining': session.seconds_remaining,
            'timer_duration': duration,
            'time_percent': (session.seconds_remaining / duration) * 100 if duration else 0.0,
            'is_answer_locked': session.is_answer_locked,
            'is_finished': session.is_finished
        }

    def get_quiz_completion_info(self) -> Optional[Dict[str, Any]]:
        """
        Get the final summary of a finished quiz.

        Returns:
            Dictionary with score and answer log, None while the quiz is running
        """
        session = self._session
        if not session.is_finished:
            return None

        return {
            'score': session.score,
            'total_questions': len(session.questions),
            'answers': list(session.answer_log),
            'timeouts': sum(1 for record in session.answer_log if record.chosen_answer_text == NO_ANSWER)
        }

    def validate_session_state(self) -> Dict[str, Any]:
        """
        Check the session invariants.

        Returns:
            Dictionary with a 'valid' flag and the list of violated invariants
        """
        session = self._session
        issues = []
        total = len(session.questions)

        if not 0 <= session.current_index <= total:
            issues.append(f"current_index {session.current_index} outside 0..{total}")

        if (session.current_index == total) != session.is_finished:
            issues.append("is_finished does not match current_index")

        expected_log = session.current_index + (1 if session.is_answer_locked else 0)
        if session.is_finished:
            expected_log = total
        if len(session.answer_log) != expected_log:
            issues.append(f"answer log has {len(session.answer_log)} records, expected {expected_log}")

        correct = sum(1 for record in session.answer_log if record.was_correct)
        if session.score != correct:
            issues.append(f"score {session.score} does not match {correct} correct answers")

        for i, record in enumerate(session.answer_log):
            if i < total and record.question_text != session.questions[i].text:
                issues.append(f"answer log entry {i} is for the wrong question")

        if not 0 <= session.seconds_remaining <= self.settings.timer_duration:
            issues.append(f"seconds_remaining {session.seconds_remaining} out of range")

        return {
            'valid': not issues,
            'issues': issues
        }

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the countdown for the current question."""
        self._started = True
        if not self._session.is_finished and not self._session.is_answer_locked:
            self._countdown.start(self._generation)
        self._emit_state_change()

    def submit_answer(self, selected_text: Optional[str], is_correct: bool, is_timeout: bool = False) -> bool:
        """
        Submit the answer for the current question.

        Args:
            selected_text: Text of the chosen option, None on timeout
            is_correct: Whether the chosen option is the correct one
            is_timeout: True when the countdown ran out

        Returns:
            True if the submission was accepted, False if it was discarded
        """
        accepted = self._accept_answer(selected_text, is_correct, is_timeout)
        if accepted:
            self._emit_state_change()
        return accepted

    def select_option(self, index: int) -> bool:
        """
        Submit the option at the given position of the current question.

        Returns:
            True if the submission was accepted, False if it was discarded

        Raises:
            IndexError: If the index does not name an option of the current question
        """
        question = self.current_question
        if question is None or self._session.is_answer_locked:
            return self._reject_submission("option selected while locked or finished")

        if not 0 <= index < len(question.options):
            raise IndexError(f"Option {index} does not exist for question {self._session.current_index}")

        option = question.options[index]
        return self.submit_answer(option.text, option.is_correct)

    def timer_tick(self, generation: Optional[int] = None) -> bool:
        """
        Advance the countdown by one step.

        Args:
            generation: Generation the tick was issued for, None for the current one

        Returns:
            True if the tick changed the session, False if it was ignored
        """
        if generation is not None and generation != self._generation:
            TimerLifecycleLogger.log_race_condition_detected(
                self.session_id,
                f"Ignoring tick for generation {generation}, current generation is {self._generation}"
            )
            return False

        session = self._session
        if session.is_finished or session.is_answer_locked:
            return False

        if session.seconds_remaining <= 1:
            self._accept_answer(None, False, is_timeout=True)
            session.seconds_remaining = 0
        else:
            session.seconds_remaining -= 1

        TimerLifecycleLogger.log_timer_update(
            self.session_id,
            session.seconds_remaining,
            self.settings.timer_duration
        )
        self._emit_state_change()
        return True

    def restart(self) -> None:
        """Reset the session to its initial state, keeping the prepared questions."""
        self._cancel_pending_work()
        self._generation += 1
        self._session = self._new_session()

        self.logger.info(
            f"Session {self.session_id} restarted",
            extra={
                'event_type': 'session_restarted',
                'session_id': self.session_id,
                'generation': self._generation,
                'timestamp': time.time()
            }
        )

        if self._started:
            self._countdown.start(self._generation)
        self._emit_state_change()

    def close(self) -> None:
        """Tear down the session, cancelling the countdown and any pending advance."""
        self._cancel_pending_work()
        self._generation += 1
        self._started = False
        self.logger.info(
            f"Session {self.session_id} closed",
            extra={
                'event_type': 'session_closed',
                'session_id': self.session_id,
                'timestamp': time.time()
            }
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _accept_answer(self, selected_text: Optional[str], is_correct: bool, is_timeout: bool) -> bool:
        session = self._session
        if session.is_finished or session.is_answer_locked:
            return self._reject_submission("answer already submitted" if session.is_answer_locked else "quiz finished")

        session.is_answer_locked = True
        self._countdown.cancel()

        was_correct = bool(is_correct) and not is_timeout
        if was_correct:
            session.score += 1

        question = session.questions[session.current_index]
        record = AnsweredRecord(
            question_text=question.text,
            chosen_answer_text=NO_ANSWER if is_timeout else (selected_text or ""),
            correct_answer_text=question.correct_option.text,
            was_correct=was_correct
        )
        session.answer_log.append(record)

        self.logger.info(
            f"Answer recorded for question {session.current_index + 1}/{len(session.questions)} "
            f"in session {self.session_id}: {'correct' if was_correct else 'timeout' if is_timeout else 'wrong'}",
            extra={
                'event_type': 'answer_recorded',
                'session_id': self.session_id,
                'question_index': session.current_index,
                'was_correct': was_correct,
                'is_timeout': is_timeout,
                'score': session.score,
                'timestamp': time.time()
            }
        )

        if not is_timeout:
            self._notify(self._on_feedback, was_correct)

        self._schedule_advance(0 if is_timeout else self.settings.advance_delay)
        return True

    def _reject_submission(self, reason: str) -> bool:
        self.logger.debug(
            f"Submission discarded for session {self.session_id}: {reason}",
            extra={
                'event_type': 'submission_discarded',
                'session_id': self.session_id,
                'reason': reason,
                'timestamp': time.time()
            }
        )
        return False

    def _schedule_advance(self, delay: float) -> None:
        loop = self._loop or asyncio.get_running_loop()
        if delay <= 0:
            self._pending_advance = loop.call_soon(self._advance, self._generation)
        else:
            self._pending_advance = loop.call_later(delay, self._advance, self._generation)

    def _advance(self, generation: int) -> None:
        if generation != self._generation:
            TimerLifecycleLogger.log_race_condition_detected(
                self.session_id,
                f"Ignoring advance for generation {generation}, current generation is {self._generation}"
            )
            return

        self._pending_advance = None
        session = self._session
        session.current_index += 1
        session.is_answer_locked = False

        if session.current_index >= len(session.questions):
            session.current_index = len(session.questions)
            session.is_finished = True
            self._countdown.cancel()
            self.logger.info(
                f"Quiz completed for session {self.session_id}: "
                f"score {session.score}/{len(session.questions)}",
                extra={
                    'event_type': 'session_finished',
                    'session_id': self.session_id,
                    'score': session.score,
                    'total_questions': len(session.questions),
                    'timestamp': time.time()
                }
            )
        else:
            self._generation += 1
            session.seconds_remaining = self.settings.timer_duration
            self.logger.debug(
                f"Advanced to question {session.current_index + 1} for session {self.session_id}"
            )
            if self._started:
                self._countdown.start(self._generation)

        self._emit_state_change()

    def _cancel_pending_work(self) -> None:
        if self._pending_advance is not None:
            self._pending_advance.cancel()
            self._pending_advance = None
        self._countdown.cancel()

    def _emit_state_change(self) -> None:
        self._notify(self._on_state_change, self._session.snapshot())

    def _notify(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            self.logger.error(
                f"Notification callback failed for session {self.session_id}: {e}",
                exc_info=True
            )
