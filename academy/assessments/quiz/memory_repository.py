"""
Memory Quiz Repository Module

This module provides an in-memory implementation of the QuizRepository
interface for development and testing purposes.
"""

import asyncio
import copy
from typing import Dict, List, Optional, Tuple

from academy.assessments.quiz.attempts import Attempt, AttemptStatus
from academy.assessments.quiz.models import Question, Quiz
from academy.assessments.quiz.repository import QuizFilter, QuizRepository
from academy.common.error_handling import (
    AttemptNotFoundError,
    AttemptStateConflictError,
    DuplicateQuestionOrderError,
)
from academy.common.logger import app_logger
from academy.common.utils import utcnow

logger = app_logger.getChild("quiz.memory_repository")


class MemoryQuizRepository(QuizRepository):
    """
    In-memory implementation of the QuizRepository.

    Entities are copied on the way in and out, so callers never mutate the
    stored state directly. Attempt writes are serialized by a lock and follow
    the same conditional rule as the SQL implementation.
    """

    def __init__(self, initial_quizzes: Optional[List[Quiz]] = None):
        self._quizzes: Dict[str, Quiz] = {}
        self._attempts: Dict[str, Attempt] = {}
        self._lock = asyncio.Lock()

        for quiz in initial_quizzes or []:
            self._quizzes[quiz.id] = copy.deepcopy(quiz)

    async def get_quiz(self, quiz_id: str) -> Optional[Quiz]:
        quiz = self._quizzes.get(quiz_id)
        return copy.deepcopy(quiz) if quiz else None

    async def save_quiz(self, quiz: Quiz) -> Quiz:
        stored = copy.deepcopy(quiz)
        existing = self._quizzes.get(quiz.id)
        if existing is not None:
            stored.questions = existing.questions
        self._quizzes[quiz.id] = stored
        return quiz

    async def delete_quiz(self, quiz_id: str) -> bool:
        return self._quizzes.pop(quiz_id, None) is not None

    async def list_quizzes(self, filters: QuizFilter, limit: int, offset: int = 0) -> Tuple[List[Quiz], int]:
        now = filters.now or utcnow()
        search = filters.search.lower() if filters.search else None

        def matches(quiz: Quiz) -> bool:
            if search and not any(
                search in text.lower() for text in (quiz.title, quiz.description, quiz.category)
            ):
                return False
            if filters.category and quiz.category != filters.category:
                return False
            if filters.difficulty and quiz.difficulty is not filters.difficulty:
                return False
            if filters.available_only and not quiz.is_available(now):
                return False
            return True

        found = [q for q in self._quizzes.values() if matches(q)]
        found.sort(key=lambda q: q.id)
        found.sort(key=lambda q: q.created_at, reverse=True)
        return [copy.deepcopy(q) for q in found[offset:offset + limit]], len(found)

    async def add_question(self, question: Question) -> Question:
        quiz = self._quizzes[question.quiz_id]
        if any(q.order == question.order for q in quiz.questions):
            raise DuplicateQuestionOrderError(quiz.id, question.order)
        quiz.questions.append(copy.deepcopy(question))
        quiz.questions.sort(key=lambda q: q.order)
        return question

    async def update_question(self, question: Question) -> Question:
        quiz = self._quizzes[question.quiz_id]
        if any(q.order == question.order and q.id != question.id for q in quiz.questions):
            raise DuplicateQuestionOrderError(quiz.id, question.order)
        quiz.questions = sorted(
            [copy.deepcopy(question) if q.id == question.id else q for q in quiz.questions],
            key=lambda q: q.order
        )
        return question

    async def delete_question(self, question_id: str) -> bool:
        for quiz in self._quizzes.values():
            remaining = [q for q in quiz.questions if q.id != question_id]
            if len(remaining) != len(quiz.questions):
                quiz.questions = remaining
                return True
        return False

    async def add_attempt(self, attempt: Attempt) -> Attempt:
        async with self._lock:
            self._attempts[attempt.id] = copy.deepcopy(attempt)
        return attempt

    async def get_attempt(self, attempt_id: str) -> Optional[Attempt]:
        attempt = self._attempts.get(attempt_id)
        return copy.deepcopy(attempt) if attempt else None

    async def update_attempt(self, attempt: Attempt, transition: str) -> Attempt:
        async with self._lock:
            stored = self._attempts.get(attempt.id)
            if stored is None:
                raise AttemptNotFoundError(attempt.id)
            if stored.status is not AttemptStatus.IN_PROGRESS or stored.version != attempt.version:
                logger.warning(
                    f"Lost update on attempt {attempt.id} during {transition} (stored status {stored.status.value})"
                )
                raise AttemptStateConflictError(attempt.id, stored.status.value, transition)

            attempt.version += 1
            self._attempts[attempt.id] = copy.deepcopy(attempt)
        return attempt

    async def list_attempts(
        self,
        quiz_id: Optional[str] = None,
        student_id: Optional[str] = None,
        status: Optional[AttemptStatus] = None
    ) -> List[Attempt]:
        found = [
            a for a in self._attempts.values()
            if (quiz_id is None or a.quiz_id == quiz_id)
            and (student_id is None or a.student_id == student_id)
            and (status is None or a.status is status)
        ]
        found.sort(key=lambda a: (a.started_at, a.id))
        return [copy.deepcopy(a) for a in found]

    async def count_attempts(self, quiz_id: str, student_id: Optional[str] = None) -> int:
        return sum(
            1 for a in self._attempts.values()
            if a.quiz_id == quiz_id and (student_id is None or a.student_id == student_id)
        )
