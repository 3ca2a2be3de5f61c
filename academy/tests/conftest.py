"""
Shared fixtures for the quiz engine tests.
"""

import datetime

import pytest

from academy.assessments.quiz.memory_repository import MemoryQuizRepository
from academy.assessments.quiz.models import Question, Quiz
from academy.assessments.quiz.service import QuizAssessmentService

NOW = datetime.datetime(2026, 3, 2, 9, 0, 0)


class FakeClock:
    """Controllable clock for expiry tests."""

    def __init__(self, now: datetime.datetime = NOW):
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += datetime.timedelta(**kwargs)


def build_questions(quiz_id: str):
    """One question of every type; 15 points in total."""
    return [
        Question.create(quiz_id, "Which letter is second?", "mcq",
                        options=["A", "B", "C", "D"], correct_answer="B",
                        points=2, order=1, explanation="B follows A", question_id="q-mcq"),
        Question.create(quiz_id, "Pick the vowels", "multiple_answer",
                        options=["A", "B", "E"], correct_answer=["A", "E"],
                        points=2, order=2, question_id="q-multi"),
        Question.create(quiz_id, "Water is wet", "true_false",
                        correct_answer=True, points=1, order=3, question_id="q-tf"),
        Question.create(quiz_id, "Judge each statement", "multiple_true_false",
                        sub_statements=[
                            {"text": "2 + 2 = 4", "is_true": True, "points": 1},
                            {"text": "The sun is cold", "is_true": False, "points": 2},
                            {"text": "Ice floats", "is_true": True, "points": 1},
                        ],
                        order=4, question_id="q-mtf"),
        Question.create(quiz_id, "Capitals of France and Germany", "fill_blanks",
                        correct_answer=["Paris", "Berlin"], points=2, order=5, question_id="q-fill"),
        Question.create(quiz_id, "Match the numbers", "matching",
                        correct_answer={"one": "1", "two": "2"}, points=1, order=6, question_id="q-match"),
        Question.create(quiz_id, "Explain photosynthesis", "descriptive",
                        points=3, order=7, question_id="q-desc"),
    ]


CORRECT_ANSWERS = {
    "q-mcq": "B",
    "q-multi": ["E", "A"],
    "q-tf": True,
    "q-mtf": [True, False, True],
    "q-fill": [" paris", "BERLIN "],
    "q-match": {"two": "2", "one": "1"},
    "q-desc": "Plants turn light into sugar.",
}


def make_quiz(quiz_id: str = "quiz-1", **overrides) -> Quiz:
    settings = dict(
        id=quiz_id,
        title="General knowledge",
        category="science",
        time_limit=10,
        passing_score=60,
        created_by="instructor-1",
        questions=build_questions(quiz_id),
        created_at=NOW,
        updated_at=NOW,
    )
    settings.update(overrides)
    return Quiz(**settings)


@pytest.fixture
def quiz() -> Quiz:
    return make_quiz()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository(quiz) -> MemoryQuizRepository:
    return MemoryQuizRepository(initial_quizzes=[quiz])


@pytest.fixture
def service(repository, clock) -> QuizAssessmentService:
    return QuizAssessmentService(repository, clock=clock)
