"""
Unit tests for DataManager class.
"""
import json
import random
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from quizmaster.data_manager import DataManager, QuestionLoadError, decode_text
from quizmaster.quiz_engine import QuizEngine
from quizmaster.models import Question
from tests.test_fixtures import QuizFixtures


class TestDataManager(unittest.TestCase):
    """Test cases for DataManager functionality."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.question_file = Path(self.temp_dir) / "questions.json"
        self.data_manager = DataManager(str(self.question_file), engine=QuizEngine(random.Random(3)))

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def write(self, data):
        return QuizFixtures.write_question_file(self.temp_dir, data)

    def test_decode_text(self):
        """Test percent-encoded text is decoded."""
        self.assertEqual(decode_text("What%20is%2010%20%2B%205%3F"), "What is 10 + 5?")
        self.assertEqual(decode_text("Caf%C3%A9"), "Café")
        self.assertEqual(decode_text("Plain text"), "Plain text")

    def test_decode_text_rejects_malformed_input(self):
        """Test incomplete escapes and invalid UTF-8 raise instead of decoding."""
        for value in ("Broken%E0%A4%A%", "100%", "%zz", "A%FF", "%E0%A4"):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    decode_text(value)

    def test_malformed_encoding_fails_load(self):
        """Test badly encoded text is a load error, not replacement characters."""
        self.write([{
            "question": "Broken%E0%A4%A%",
            "correct_answer": "A%FF",
            "incorrect_answers": ["B"]
        }])

        with self.assertRaises(QuestionLoadError) as context:
            self.data_manager.load_questions()

        self.assertEqual(len(context.exception.errors), 1)
        self.assertIn("invalid percent-encoding", context.exception.errors[0])

    def test_blank_text_after_decoding_fails_load(self):
        """Test text that decodes to whitespace counts as empty."""
        records = [
            {"question": "%20%20", "correct_answer": "A", "incorrect_answers": ["B"]},
            {"question": "Q2", "correct_answer": "%20", "incorrect_answers": ["B"]},
            {"question": "Q3", "correct_answer": "A", "incorrect_answers": ["%09"]},
        ]

        errors = self.data_manager.validate_question_records(records)

        self.assertEqual(errors, [
            "Question 0 'question' field must be a non-empty string",
            "Question 1 'correct_answer' field must be a non-empty string",
            "Question 2 has a blank incorrect answer",
        ])

    def test_load_valid_list(self):
        """Test loading a bare list of records."""
        self.write(QuizFixtures.create_valid_records())

        questions = self.data_manager.load_questions()

        self.assertEqual(len(questions), 3)
        self.assertTrue(all(isinstance(q, Question) for q in questions))
        self.assertEqual(questions[0].text, "What is the capital of Japan?")
        self.assertEqual(questions[1].text, "What is 10 + 5?")
        self.assertEqual(questions[0].correct_option.text, "Tokyo")
        self.assertEqual(len(questions[2].options), 2)
        self.assertFalse(self.data_manager.has_load_errors())
        self.assertEqual(self.data_manager.get_question_count(), 3)

    def test_load_results_object(self):
        """Test loading the object form with a 'results' key."""
        self.write({"response_code": 0, "results": QuizFixtures.create_valid_records()})

        questions = self.data_manager.load_questions()

        self.assertEqual(len(questions), 3)

    def test_loaded_questions_keep_file_order(self):
        """Test questions are returned in file order with one correct option each."""
        records = QuizFixtures.create_valid_records()
        self.write(records)

        questions = self.data_manager.load_questions()

        self.assertEqual([q.text for q in questions], [decode_text(r["question"]) for r in records])
        for question in questions:
            self.assertEqual(sum(1 for o in question.options if o.is_correct), 1)

    def test_incorrect_answers_are_decoded(self):
        """Test every option text is decoded."""
        self.write([{
            "question": "Who%20wrote%20it%3F",
            "correct_answer": "William%20Shakespeare",
            "incorrect_answers": ["Jane%20Austen"]
        }])

        question = self.data_manager.load_questions()[0]

        self.assertEqual({o.text for o in question.options}, {"William Shakespeare", "Jane Austen"})

    def test_missing_file(self):
        """Test a missing file is a load error."""
        with self.assertRaises(QuestionLoadError) as context:
            self.data_manager.load_questions()

        self.assertIn("not found", str(context.exception))
        self.assertTrue(self.data_manager.has_load_errors())

    def test_invalid_json(self):
        """Test a file that is not JSON is a load error."""
        with open(self.question_file, 'w', encoding='utf-8') as f:
            f.write("{ invalid json }")

        with self.assertRaises(QuestionLoadError) as context:
            self.data_manager.load_questions()

        self.assertIn("Invalid JSON", str(context.exception))

    def test_object_without_results(self):
        """Test an object without a 'results' key is rejected."""
        self.write({"quiz": QuizFixtures.create_valid_records()})

        with self.assertRaises(QuestionLoadError):
            self.data_manager.load_questions()

    def test_invalid_records_rejected(self):
        """Test each malformed record list fails to load."""
        for records in QuizFixtures.create_invalid_records():
            with self.subTest(records=records):
                self.write(records)

                with self.assertRaises(QuestionLoadError) as context:
                    self.data_manager.load_questions()

                self.assertTrue(context.exception.errors)
                self.assertEqual(self.data_manager.get_questions(), [])

    def test_validation_reports_every_problem(self):
        """Test validation collects errors for all bad records."""
        records = [
            {"question": "Fine?", "correct_answer": "Yes", "incorrect_answers": ["No"]},
            {"question": "No wrong answers", "correct_answer": "A", "incorrect_answers": []},
            {"question": 42, "correct_answer": "A", "incorrect_answers": ["B"]},
        ]

        errors = self.data_manager.validate_question_records(records)

        self.assertEqual(len(errors), 2)
        self.assertTrue(errors[0].startswith("Question 1"))
        self.assertTrue(errors[1].startswith("Question 2"))

    def test_file_too_large(self):
        """Test oversized files are refused before parsing."""
        self.write(QuizFixtures.create_valid_records())

        with patch.object(DataManager, 'MAX_FILE_SIZE', 10):
            with self.assertRaises(QuestionLoadError) as context:
                self.data_manager.load_questions()

        self.assertIn("too large", str(context.exception))

    def test_failed_reload_clears_previous_questions(self):
        """Test a failed load does not leave stale questions behind."""
        self.write(QuizFixtures.create_valid_records())
        self.data_manager.load_questions()

        self.write([])
        with self.assertRaises(QuestionLoadError):
            self.data_manager.load_questions()

        self.assertEqual(self.data_manager.get_question_count(), 0)

    def test_loading_summary(self):
        """Test the loading summary reports errors and counts."""
        self.write([])
        with self.assertRaises(QuestionLoadError):
            self.data_manager.load_questions()

        summary = self.data_manager.get_loading_summary()

        self.assertEqual(summary['total_questions'], 0)
        self.assertTrue(summary['has_errors'])
        self.assertEqual(summary['error_count'], 1)
        self.assertEqual(summary['question_file'], str(self.question_file))

    def test_bundled_question_file_is_valid(self):
        """Test the question file shipped with the project loads cleanly."""
        bundled = Path(__file__).resolve().parent.parent / "quizzes" / "questions.json"
        with open(bundled, encoding='utf-8') as f:
            records = json.load(f)

        self.assertEqual(DataManager(str(bundled)).validate_question_records(records), [])
        self.assertEqual(len(DataManager(str(bundled)).load_questions()), len(records))


if __name__ == '__main__':
    unittest.main()
