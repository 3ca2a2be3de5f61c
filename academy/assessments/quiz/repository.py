"""
Quiz Repository Module

This module defines the repository interface for quizzes, questions and
attempts, and its SQLAlchemy implementation.

Attempt writes are conditional: a write only lands if the stored attempt is
still in progress and still carries the version that was read. A lost race
surfaces as AttemptStateConflictError, so a retried completion can never
score twice or overwrite a terminal attempt.
"""

import abc
import datetime
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Tuple

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from academy.assessments.quiz.attempts import Attempt, AttemptStatus
from academy.assessments.quiz.database_models import AttemptRecord, QuestionRecord, QuizRecord
from academy.assessments.quiz.models import Question, Quiz, QuizDifficulty
from academy.common.error_handling import (
    AcademyError,
    AttemptNotFoundError,
    AttemptStateConflictError,
    DatabaseError,
    DuplicateQuestionOrderError,
)
from academy.common.logger import app_logger
from academy.common.utils import utcnow

logger = app_logger.getChild("quiz.repository")


@dataclass
class QuizFilter:
    """Filters for quiz listings."""
    search: Optional[str] = None
    category: Optional[str] = None
    difficulty: Optional[QuizDifficulty] = None
    available_only: bool = False
    now: Optional[datetime.datetime] = None


class QuizRepository(abc.ABC):
    """
    Abstract base class for quiz repositories.

    This interface defines the contract for storing quizzes, their questions
    and the attempts made at them.
    """

    @abc.abstractmethod
    async def get_quiz(self, quiz_id: str) -> Optional[Quiz]:
        """Get a quiz, with its questions, by ID."""

    @abc.abstractmethod
    async def save_quiz(self, quiz: Quiz) -> Quiz:
        """Insert a quiz or update its metadata. Questions are stored separately."""

    @abc.abstractmethod
    async def delete_quiz(self, quiz_id: str) -> bool:
        """Delete a quiz and its questions. Returns False if it did not exist."""

    @abc.abstractmethod
    async def list_quizzes(self, filters: QuizFilter, limit: int, offset: int = 0) -> Tuple[List[Quiz], int]:
        """
        List quizzes matching the filters, newest first.

        Returns:
            The page of quizzes and the total number of matches
        """

    @abc.abstractmethod
    async def add_question(self, question: Question) -> Question:
        """Insert a question into its quiz."""

    @abc.abstractmethod
    async def update_question(self, question: Question) -> Question:
        """Overwrite a stored question."""

    @abc.abstractmethod
    async def delete_question(self, question_id: str) -> bool:
        """Delete a question. Returns False if it did not exist."""

    @abc.abstractmethod
    async def add_attempt(self, attempt: Attempt) -> Attempt:
        """Insert a new attempt."""

    @abc.abstractmethod
    async def get_attempt(self, attempt_id: str) -> Optional[Attempt]:
        """Get an attempt by ID."""

    @abc.abstractmethod
    async def update_attempt(self, attempt: Attempt, transition: str) -> Attempt:
        """
        Persist an attempt read at ``attempt.version``.

        The write succeeds only if the stored attempt is still in progress at
        that version; the version is then incremented.

        Raises:
            AttemptNotFoundError: If the attempt does not exist
            AttemptStateConflictError: If the stored attempt moved on
        """

    @abc.abstractmethod
    async def list_attempts(
        self,
        quiz_id: Optional[str] = None,
        student_id: Optional[str] = None,
        status: Optional[AttemptStatus] = None
    ) -> List[Attempt]:
        """List attempts matching every given criterion, oldest first."""

    @abc.abstractmethod
    async def count_attempts(self, quiz_id: str, student_id: Optional[str] = None) -> int:
        """Count attempts at a quiz, optionally for one student."""


def quiz_to_domain(record: QuizRecord, with_questions: bool = True) -> Quiz:
    return Quiz(
        id=record.id,
        title=record.title,
        description=record.description or "",
        category=record.category or "",
        difficulty=record.difficulty,
        time_limit=record.time_limit,
        passing_score=record.passing_score,
        is_active=record.is_active,
        start_date=record.start_date,
        end_date=record.end_date,
        is_randomized=record.is_randomized,
        show_answers_after=record.show_answers_after,
        allow_retake=record.allow_retake,
        max_attempts=record.max_attempts,
        created_by=record.created_by,
        questions=[question_to_domain(q) for q in record.questions] if with_questions else [],
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def question_to_domain(record: QuestionRecord) -> Question:
    question = Question.create(
        quiz_id=record.quiz_id,
        question_text=record.question_text,
        question_type=record.question_type,
        options=record.options,
        correct_answer=record.correct_answer,
        sub_statements=record.sub_statements,
        points=record.points,
        order=record.order,
        explanation=record.explanation,
        is_required=record.is_required,
        question_id=record.id,
    )
    question.created_at = record.created_at
    question.updated_at = record.updated_at
    return question


def attempt_to_domain(record: AttemptRecord) -> Attempt:
    return Attempt(
        id=record.id,
        quiz_id=record.quiz_id,
        student_id=record.student_id,
        status=record.status,
        started_at=record.started_at,
        completed_at=record.completed_at,
        time_taken=record.time_taken,
        score=record.score,
        total_score=record.total_score,
        percentage=record.percentage,
        is_passed=record.is_passed,
        answers=dict(record.answers or {}),
        manual_scores=dict(record.manual_scores or {}),
        feedback=record.feedback,
        version=record.version,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _quiz_columns(quiz: Quiz) -> dict:
    return {
        "title": quiz.title,
        "description": quiz.description,
        "category": quiz.category,
        "difficulty": quiz.difficulty.value,
        "time_limit": quiz.time_limit,
        "passing_score": quiz.passing_score,
        "is_active": quiz.is_active,
        "start_date": quiz.start_date,
        "end_date": quiz.end_date,
        "is_randomized": quiz.is_randomized,
        "show_answers_after": quiz.show_answers_after,
        "allow_retake": quiz.allow_retake,
        "max_attempts": quiz.max_attempts,
        "created_by": quiz.created_by,
        "created_at": quiz.created_at,
        "updated_at": quiz.updated_at,
    }


def _question_columns(question: Question) -> dict:
    return {
        "quiz_id": question.quiz_id,
        "question_text": question.question_text,
        "question_type": question.question_type.value,
        "options": list(question.options),
        "correct_answer": question.correct_answer,
        "sub_statements": [s.to_dict() for s in question.sub_statements] or None,
        "points": question.points,
        "order": question.order,
        "explanation": question.explanation,
        "is_required": question.is_required,
        "created_at": question.created_at,
        "updated_at": question.updated_at,
    }


def _attempt_columns(attempt: Attempt) -> dict:
    return {
        "status": attempt.status.value,
        "started_at": attempt.started_at,
        "completed_at": attempt.completed_at,
        "time_taken": attempt.time_taken,
        "score": attempt.score,
        "total_score": attempt.total_score,
        "percentage": attempt.percentage,
        "is_passed": attempt.is_passed,
        "answers": attempt.answers,
        "manual_scores": attempt.manual_scores,
        "feedback": attempt.feedback,
        "updated_at": attempt.updated_at,
    }


class SQLAlchemyQuizRepository(QuizRepository):
    """Quiz repository backed by an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _async_session_scope(self) -> AsyncIterator[AsyncSession]:
        """
        Provide an async transactional scope around a series of operations.
        """
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except AcademyError:
            await session.rollback()
            raise
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database error in quiz repository: {str(e)}")
            raise DatabaseError(f"Database error in quiz repository: {str(e)}", cause=e)
        finally:
            await session.close()

    async def get_quiz(self, quiz_id: str) -> Optional[Quiz]:
        async with self._async_session_scope() as session:
            record = await session.get(QuizRecord, quiz_id)
            return quiz_to_domain(record) if record else None

    async def save_quiz(self, quiz: Quiz) -> Quiz:
        async with self._async_session_scope() as session:
            record = await session.get(QuizRecord, quiz.id)
            if record is None:
                session.add(QuizRecord(id=quiz.id, **_quiz_columns(quiz)))
                for question in quiz.questions:
                    session.add(QuestionRecord(id=question.id, **_question_columns(question)))
            else:
                for name, value in _quiz_columns(quiz).items():
                    setattr(record, name, value)
        return quiz

    async def delete_quiz(self, quiz_id: str) -> bool:
        async with self._async_session_scope() as session:
            record = await session.get(QuizRecord, quiz_id)
            if record is None:
                return False
            await session.delete(record)
            return True

    async def list_quizzes(self, filters: QuizFilter, limit: int, offset: int = 0) -> Tuple[List[Quiz], int]:
        conditions = []
        if filters.search:
            pattern = f"%{filters.search}%"
            conditions.append(or_(
                QuizRecord.title.ilike(pattern),
                QuizRecord.description.ilike(pattern),
                QuizRecord.category.ilike(pattern),
            ))
        if filters.category:
            conditions.append(QuizRecord.category == filters.category)
        if filters.difficulty:
            conditions.append(QuizRecord.difficulty == filters.difficulty.value)
        if filters.available_only:
            now = filters.now or utcnow()
            conditions.append(QuizRecord.is_active.is_(True))
            conditions.append(or_(QuizRecord.start_date.is_(None), QuizRecord.start_date <= now))
            conditions.append(or_(QuizRecord.end_date.is_(None), QuizRecord.end_date >= now))

        async with self._async_session_scope() as session:
            total = await session.scalar(select(func.count()).select_from(QuizRecord).where(*conditions))
            stmt = (
                select(QuizRecord)
                .where(*conditions)
                .order_by(QuizRecord.created_at.desc(), QuizRecord.id)
                .limit(limit)
                .offset(offset)
            )
            records = (await session.scalars(stmt)).all()
            return [quiz_to_domain(r) for r in records], total or 0

    async def add_question(self, question: Question) -> Question:
        try:
            async with self._async_session_scope() as session:
                session.add(QuestionRecord(id=question.id, **_question_columns(question)))
        except DatabaseError as e:
            if isinstance(e.cause, IntegrityError):
                raise DuplicateQuestionOrderError(question.quiz_id, question.order)
            raise
        return question

    async def update_question(self, question: Question) -> Question:
        try:
            async with self._async_session_scope() as session:
                await session.execute(
                    update(QuestionRecord)
                    .where(QuestionRecord.id == question.id)
                    .values(**_question_columns(question))
                )
        except DatabaseError as e:
            if isinstance(e.cause, IntegrityError):
                raise DuplicateQuestionOrderError(question.quiz_id, question.order)
            raise
        return question

    async def delete_question(self, question_id: str) -> bool:
        async with self._async_session_scope() as session:
            result = await session.execute(delete(QuestionRecord).where(QuestionRecord.id == question_id))
            return result.rowcount > 0

    async def add_attempt(self, attempt: Attempt) -> Attempt:
        async with self._async_session_scope() as session:
            session.add(AttemptRecord(
                id=attempt.id,
                quiz_id=attempt.quiz_id,
                student_id=attempt.student_id,
                version=attempt.version,
                created_at=attempt.created_at,
                **_attempt_columns(attempt)
            ))
        return attempt

    async def get_attempt(self, attempt_id: str) -> Optional[Attempt]:
        async with self._async_session_scope() as session:
            record = await session.get(AttemptRecord, attempt_id)
            return attempt_to_domain(record) if record else None

    async def update_attempt(self, attempt: Attempt, transition: str) -> Attempt:
        async with self._async_session_scope() as session:
            result = await session.execute(
                update(AttemptRecord)
                .where(
                    AttemptRecord.id == attempt.id,
                    AttemptRecord.status == AttemptStatus.IN_PROGRESS.value,
                    AttemptRecord.version == attempt.version,
                )
                .values(version=AttemptRecord.version + 1, **_attempt_columns(attempt))
            )

            if result.rowcount == 0:
                current = await session.scalar(
                    select(AttemptRecord.status).where(AttemptRecord.id == attempt.id)
                )
                if current is None:
                    raise AttemptNotFoundError(attempt.id)
                logger.warning(f"Lost update on attempt {attempt.id} during {transition} (stored status {current})")
                raise AttemptStateConflictError(attempt.id, current, transition)

        attempt.version += 1
        return attempt

    async def list_attempts(
        self,
        quiz_id: Optional[str] = None,
        student_id: Optional[str] = None,
        status: Optional[AttemptStatus] = None
    ) -> List[Attempt]:
        stmt = select(AttemptRecord)
        if quiz_id is not None:
            stmt = stmt.where(AttemptRecord.quiz_id == quiz_id)
        if student_id is not None:
            stmt = stmt.where(AttemptRecord.student_id == student_id)
        if status is not None:
            stmt = stmt.where(AttemptRecord.status == status.value)
        stmt = stmt.order_by(AttemptRecord.started_at, AttemptRecord.id)

        async with self._async_session_scope() as session:
            records = (await session.scalars(stmt)).all()
            return [attempt_to_domain(r) for r in records]

    async def count_attempts(self, quiz_id: str, student_id: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(AttemptRecord).where(AttemptRecord.quiz_id == quiz_id)
        if student_id is not None:
            stmt = stmt.where(AttemptRecord.student_id == student_id)

        async with self._async_session_scope() as session:
            return await session.scalar(stmt) or 0
