"""
Quiz Master: timed multiple-choice quiz sessions.
"""
from .models import AnsweredRecord, NO_ANSWER, Option, Question, QuizSettings, SessionState
from .data_manager import DataManager, QuestionLoadError
from .quiz_controller import QuizController, SessionPhase
from .quiz_engine import QuizEngine, QuizTimer, shuffle_options

__version__ = "0.1.0"
