"""
SQLAlchemy ORM models for quizzes.

This module defines the database models of the quiz engine:
- QuizRecord: A quiz and its settings
- QuestionRecord: A question owned by a quiz
- AttemptRecord: A student's attempt at a quiz
"""

from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, JSON, String, Text
)
from sqlalchemy.orm import relationship
from sqlalchemy.schema import UniqueConstraint

from academy.assessments.quiz.attempts import AttemptStatus
from academy.common.utils import utcnow
from academy.database.base import ModelBase


class QuizRecord(ModelBase):
    """Model for quizzes."""
    __tablename__ = "quizzes"

    id = Column(String(36), primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(String(100), nullable=False, default="", index=True)
    difficulty = Column(String(20), nullable=False, default="medium", index=True)
    time_limit = Column(Integer, nullable=True)
    passing_score = Column(Integer, nullable=False, default=50)
    is_active = Column(Boolean, nullable=False, default=True)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    is_randomized = Column(Boolean, nullable=False, default=False)
    show_answers_after = Column(Boolean, nullable=False, default=False)
    allow_retake = Column(Boolean, nullable=False, default=False)
    max_attempts = Column(Integer, nullable=True)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    questions = relationship(
        "QuestionRecord",
        back_populates="quiz",
        cascade="all, delete-orphan",
        order_by="QuestionRecord.order",
        lazy="selectin",
    )


class QuestionRecord(ModelBase):
    """Model for quiz questions."""
    __tablename__ = "quiz_questions"

    id = Column(String(36), primary_key=True)
    quiz_id = Column(String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    question_text = Column(Text, nullable=False)
    question_type = Column(String(30), nullable=False)
    options = Column(JSON, nullable=True)
    correct_answer = Column(JSON, nullable=True)
    sub_statements = Column(JSON, nullable=True)
    points = Column(Integer, nullable=False, default=1)
    order = Column(Integer, nullable=False)
    explanation = Column(Text, nullable=True)
    is_required = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    quiz = relationship("QuizRecord", back_populates="questions")

    __table_args__ = (
        UniqueConstraint("quiz_id", "order", name="uq_quiz_questions_quiz_id_order"),
    )


class AttemptRecord(ModelBase):
    """
    Model for quiz attempts.

    ``version`` is bumped on every write; terminal transitions are only
    persisted when the stored version still matches the one that was read.
    """
    __tablename__ = "quiz_attempts"

    id = Column(String(36), primary_key=True)
    quiz_id = Column(String(36), ForeignKey("quizzes.id"), nullable=False, index=True)
    student_id = Column(String(255), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=AttemptStatus.IN_PROGRESS.value, index=True)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    time_taken = Column(Integer, nullable=False, default=0)
    score = Column(Float, nullable=False, default=0.0)
    total_score = Column(Float, nullable=False, default=0.0)
    percentage = Column(Float, nullable=False, default=0.0)
    is_passed = Column(Boolean, nullable=False, default=False)
    answers = Column(JSON, nullable=False, default=dict)
    manual_scores = Column(JSON, nullable=False, default=dict)
    feedback = Column(Text, nullable=True)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_quiz_attempts_quiz_student", quiz_id, student_id),
    )