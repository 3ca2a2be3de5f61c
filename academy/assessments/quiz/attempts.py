"""
Quiz Attempts

This module implements a student's attempt at a quiz as a small state machine:
an attempt starts in progress and ends in exactly one terminal state
(completed, abandoned or timed out). Scoring happens on completion, against
the questions of the quiz as they are at that moment.
"""

import uuid
import enum
import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional

from academy.assessments.quiz.answers import QuestionType, is_answered
from academy.assessments.quiz.models import Question, Quiz
from academy.common.error_handling import (
    AttemptNotExpiredError,
    AttemptStateConflictError,
    InvalidQuizError,
)
from academy.common.utils import format_duration, serialize_datetime, utcnow


class AttemptStatus(enum.Enum):
    """Status of a quiz attempt."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self is not AttemptStatus.IN_PROGRESS

    @property
    def label(self) -> str:
        return {
            AttemptStatus.IN_PROGRESS: "In Progress",
            AttemptStatus.COMPLETED: "Completed",
            AttemptStatus.ABANDONED: "Abandoned",
            AttemptStatus.TIMED_OUT: "Timed Out",
        }[self]


GRADE_BANDS = (
    (90, "A+"),
    (80, "A"),
    (70, "B"),
    (60, "C"),
    (50, "D"),
)


def grade_for(percentage: float) -> str:
    """Letter grade for a percentage."""
    for threshold, grade in GRADE_BANDS:
        if percentage >= threshold:
            return grade
    return "F"


@dataclass(frozen=True)
class ScoreSummary:
    """Aggregated result of scoring a set of answers."""
    score: float
    total_score: float
    percentage: float
    is_passed: bool


def score_answers(
    questions: Iterable[Question],
    answers: Mapping[str, Any],
    passing_score: int,
    manual_scores: Optional[Mapping[str, float]] = None
) -> ScoreSummary:
    """
    Score an answers map against the given questions.

    Missing answers score zero. Answers keyed by ids that match no question
    are ignored. Manual scores apply to descriptive questions only.

    Args:
        questions: Questions of the quiz at scoring time
        answers: Question id to submitted payload
        passing_score: Pass threshold in percent
        manual_scores: Question id to grader-assigned points

    Returns:
        The score summary
    """
    manual_scores = manual_scores or {}
    score = 0.0
    total_score = 0.0

    for question in questions:
        total_score += question.max_points
        manual = manual_scores.get(question.id) if question.question_type is QuestionType.DESCRIPTIVE else None
        score += question.calculate_score(answers.get(question.id), manual)

    percentage = round(score / total_score * 100, 2) if total_score > 0 else 0.0

    return ScoreSummary(
        score=score,
        total_score=total_score,
        percentage=percentage,
        is_passed=percentage >= passing_score,
    )


@dataclass
class Attempt:
    """
    One student's pass through a quiz.

    Every transition requires the attempt to be in progress; a terminal
    attempt is never re-opened.
    """

    id: str
    quiz_id: str
    student_id: str
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    started_at: datetime.datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime.datetime] = None
    time_taken: int = 0
    score: float = 0.0
    total_score: float = 0.0
    percentage: float = 0.0
    is_passed: bool = False
    answers: Dict[str, Any] = field(default_factory=dict)
    feedback: Optional[str] = None
    manual_scores: Dict[str, float] = field(default_factory=dict)
    version: int = 0
    created_at: datetime.datetime = field(default_factory=utcnow)
    updated_at: datetime.datetime = field(default_factory=utcnow)

    def __post_init__(self):
        """Initialize and validate attempt data."""
        if not self.id:
            self.id = str(uuid.uuid4())

        if not self.student_id:
            raise ValueError("Student ID is required")

        if isinstance(self.status, str):
            try:
                self.status = AttemptStatus(self.status)
            except ValueError:
                raise ValueError(f"Invalid attempt status: {self.status}")

        for name in ("started_at", "completed_at", "created_at", "updated_at"):
            value = getattr(self, name)
            if isinstance(value, str):
                setattr(self, name, datetime.datetime.fromisoformat(value))

        if self.answers is None:
            self.answers = {}
        if self.manual_scores is None:
            self.manual_scores = {}

    @classmethod
    def start(cls, quiz: Quiz, student_id: str, now: Optional[datetime.datetime] = None) -> 'Attempt':
        """
        Create a new in-progress attempt.

        Whether the student may start is decided by the caller
        (``Quiz.can_be_attempted_by``).
        """
        if quiz is None:
            raise InvalidQuizError("Cannot start an attempt without a quiz")
        now = now or utcnow()
        return cls(
            id=str(uuid.uuid4()),
            quiz_id=quiz.id,
            student_id=student_id,
            started_at=now,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_in_progress(self) -> bool:
        return self.status is AttemptStatus.IN_PROGRESS

    @property
    def grade(self) -> str:
        return grade_for(self.percentage)

    @property
    def time_taken_formatted(self) -> str:
        return format_duration(self.time_taken)

    @property
    def status_label(self) -> str:
        return self.status.label

    def deadline(self, quiz: Quiz) -> Optional[datetime.datetime]:
        if not quiz.is_timed:
            return None
        return self.started_at + datetime.timedelta(minutes=quiz.time_limit)

    def is_expired(self, quiz: Quiz, now: Optional[datetime.datetime] = None) -> bool:
        """True if the quiz is timed and its time limit has elapsed since the start."""
        deadline = self.deadline(quiz)
        if deadline is None:
            return False
        return (now or utcnow()) > deadline

    def remaining_time(self, quiz: Quiz, now: Optional[datetime.datetime] = None) -> int:
        """Whole seconds left before the deadline; 0 for untimed quizzes or once past it."""
        deadline = self.deadline(quiz)
        if deadline is None:
            return 0
        remaining = (deadline - (now or utcnow())).total_seconds()
        return max(0, int(remaining))

    def can_be_resumed(self, quiz: Quiz, now: Optional[datetime.datetime] = None) -> bool:
        return self.is_in_progress and not self.is_expired(quiz, now)

    def progress_percentage(self, quiz: Quiz) -> float:
        """Share of the quiz's questions that have a non-empty answer, rounded to 1 decimal."""
        if quiz.total_questions == 0:
            return 0.0
        question_ids = {question.id for question in quiz.questions}
        answered = sum(1 for key, value in self.answers.items() if key in question_ids and is_answered(value))
        return round(answered / quiz.total_questions * 100, 1)

    def _require_in_progress(self, transition: str) -> None:
        if not self.is_in_progress:
            raise AttemptStateConflictError(self.id, self.status.value, transition)

    def _elapsed_seconds(self, now: datetime.datetime) -> int:
        return max(0, int((now - self.started_at).total_seconds()))

    def _apply_score(self, summary: ScoreSummary) -> None:
        self.score = summary.score
        self.total_score = summary.total_score
        self.percentage = summary.percentage
        self.is_passed = summary.is_passed

    def record_answers(self, answers: Mapping[str, Any], now: Optional[datetime.datetime] = None) -> None:
        """
        Merge a batch of answers into the stored answers map.

        Raises:
            AttemptStateConflictError: If the attempt is no longer in progress
        """
        self._require_in_progress("save_answers")
        self.answers = {**self.answers, **dict(answers)}
        self.updated_at = now or utcnow()

    def complete(
        self,
        quiz: Quiz,
        answers: Optional[Mapping[str, Any]] = None,
        now: Optional[datetime.datetime] = None,
        manual_scores: Optional[Mapping[str, float]] = None
    ) -> ScoreSummary:
        """
        Complete the attempt and score it.

        Submitted answers are merged over the answers saved so far and stored
        verbatim. Manual scores for descriptive questions are kept so the
        per-question results can show them.

        Args:
            quiz: The attempted quiz, with its current questions
            answers: Final batch of answers
            now: Completion time
            manual_scores: Grader-assigned points for descriptive questions

        Returns:
            The score summary

        Raises:
            AttemptStateConflictError: If the attempt is no longer in progress
        """
        self._require_in_progress("complete")
        now = now or utcnow()

        if answers:
            self.answers = {**self.answers, **dict(answers)}

        self.manual_scores = {
            question.id: float(manual_scores[question.id])
            for question in quiz.questions
            if question.question_type is QuestionType.DESCRIPTIVE and question.id in (manual_scores or {})
        }
        summary = score_answers(quiz.questions, self.answers, quiz.passing_score, self.manual_scores)
        self._apply_score(summary)
        self.status = AttemptStatus.COMPLETED
        self.completed_at = now
        self.time_taken = self._elapsed_seconds(now)
        self.updated_at = now
        return summary

    def abandon(self, now: Optional[datetime.datetime] = None) -> None:
        """
        Abandon the attempt without scoring it.

        Raises:
            AttemptStateConflictError: If the attempt is no longer in progress
        """
        self._require_in_progress("abandon")
        now = now or utcnow()
        self.status = AttemptStatus.ABANDONED
        self.completed_at = now
        self.time_taken = self._elapsed_seconds(now)
        self.updated_at = now

    def timeout(self, quiz: Quiz, now: Optional[datetime.datetime] = None,
                score_saved_answers: bool = False) -> None:
        """
        Time out an expired attempt.

        The time taken is the full time limit. When ``score_saved_answers`` is
        set, the answers saved before the deadline are scored.

        Raises:
            AttemptStateConflictError: If the attempt is no longer in progress
            AttemptNotExpiredError: If the deadline has not passed
        """
        self._require_in_progress("timeout")
        now = now or utcnow()
        if not self.is_expired(quiz, now):
            raise AttemptNotExpiredError(self.id, self.remaining_time(quiz, now))

        if score_saved_answers:
            self._apply_score(score_answers(quiz.questions, self.answers, quiz.passing_score))

        self.status = AttemptStatus.TIMED_OUT
        self.completed_at = now
        self.time_taken = quiz.time_limit * 60
        self.updated_at = now

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert attempt to dictionary format.

        Returns:
            Dictionary representation of the attempt
        """
        return {
            "id": self.id,
            "quiz_id": self.quiz_id,
            "student_id": self.student_id,
            "status": self.status.value,
            "status_label": self.status_label,
            "started_at": serialize_datetime(self.started_at),
            "completed_at": serialize_datetime(self.completed_at),
            "time_taken": self.time_taken,
            "time_taken_formatted": self.time_taken_formatted,
            "score": self.score,
            "total_score": self.total_score,
            "percentage": self.percentage,
            "is_passed": self.is_passed,
            "grade": self.grade,
            "answers": self.answers,
            "feedback": self.feedback,
            "manual_scores": self.manual_scores,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Attempt':
        """Create an attempt from dictionary data."""
        data = {k: v for k, v in data.items()
                if k not in ("status_label", "time_taken_formatted", "grade")}
        return cls(**data)
