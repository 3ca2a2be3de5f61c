"""
Quiz Assessment Module

Quizzes, their questions and the attempts students make at them.
"""

from academy.assessments.quiz.answers import QuestionType, SubStatement
from academy.assessments.quiz.attempts import Attempt, AttemptStatus
from academy.assessments.quiz.models import Question, Quiz, QuizDifficulty, RejectionReason

__all__ = [
    'Attempt',
    'AttemptStatus',
    'Question',
    'QuestionType',
    'Quiz',
    'QuizDifficulty',
    'RejectionReason',
    'SubStatement',
]
