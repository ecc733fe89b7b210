"""
Core data models for the quiz runner.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


NO_ANSWER = "No Answer"


@dataclass(frozen=True)
class Option:
    """A single answer choice."""
    text: str
    is_correct: bool = False


@dataclass(frozen=True)
class Question:
    """Represents a single multiple-choice question with its options in display order."""
    text: str
    options: Tuple[Option, ...] = ()

    @property
    def correct_option(self) -> Optional[Option]:
        """Return the correct option, or None unless exactly one is marked correct."""
        correct = [option for option in self.options if option.is_correct]
        return correct[0] if len(correct) == 1 else None


@dataclass(frozen=True)
class AnsweredRecord:
    """Outcome of one question, appended to the answer log."""
    question_text: str
    chosen_answer_text: str
    correct_answer_text: str
    was_correct: bool


@dataclass
class QuizSettings:
    """Configuration settings for a quiz session."""
    timer_duration: int = 20
    advance_delay: float = 1.0
    tick_interval: float = 1.0
    question_count: Optional[int] = None
    random_order: bool = False


@dataclass(frozen=True)
class SessionState:
    """Read-only snapshot of a quiz session handed to the presentation layer."""
    questions: Tuple[Question, ...]
    current_index: int
    score: int
    seconds_remaining: int
    is_answer_locked: bool
    is_finished: bool
    answer_log: Tuple[AnsweredRecord, ...]


@dataclass
class QuizSession:
    """Mutable session record owned by the quiz controller."""
    questions: List[Question]
    current_index: int = 0
    score: int = 0
    seconds_remaining: int = 20
    is_answer_locked: bool = False
    is_finished: bool = False
    answer_log: List[AnsweredRecord] = field(default_factory=list)

    def snapshot(self) -> SessionState:
        return SessionState(
            questions=tuple(self.questions),
            current_index=self.current_index,
            score=self.score,
            seconds_remaining=self.seconds_remaining,
            is_answer_locked=self.is_answer_locked,
            is_finished=self.is_finished,
            answer_log=tuple(self.answer_log),
        )
