"""
Quiz Models

This module defines the core domain models of the quiz engine: quizzes and
their questions. Attempts live in ``attempts`` since they form their own
state machine.
"""

import uuid
import enum
import random
import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from academy.assessments.quiz.answers import (
    AnswerKey,
    MultipleTrueFalseKey,
    QuestionType,
    SubStatement,
    build_answer_key,
    check_key_against_options,
    coerce_question_type,
    parse_submitted_answer,
)
from academy.assessments.quiz import validation
from academy.common.error_handling import (
    DuplicateQuestionOrderError,
    InvalidQuestionError,
    InvalidQuizError,
    QuestionNotFoundError,
)
from academy.common.utils import safe_divide, serialize_datetime, utcnow


class QuizDifficulty(enum.Enum):
    """Difficulty level of a quiz."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class RejectionReason(enum.Enum):
    """Why a student may not start a new attempt."""
    NOT_AVAILABLE = "not_available"
    MAX_ATTEMPTS_REACHED = "max_attempts_reached"


CHOICE_BASED_TYPES = frozenset({
    QuestionType.MCQ,
    QuestionType.MULTIPLE_ANSWER,
    QuestionType.MULTIPLE_TRUE_FALSE,
})

TEXT_BASED_TYPES = frozenset({
    QuestionType.FILL_BLANKS,
    QuestionType.DESCRIPTIVE,
})


def _parse_datetime(value: Any) -> Optional[datetime.datetime]:
    """Parse a datetime, normalizing aware values to naive UTC."""
    if isinstance(value, str):
        try:
            value = datetime.datetime.fromisoformat(value)
        except ValueError:
            raise InvalidQuizError(f"Invalid datetime value: {value!r}")
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
        return value
    raise InvalidQuizError(f"Invalid datetime value: {value!r}")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class Question:
    """
    A single assessable item of a quiz.

    The correct answer is held as a typed answer key whose shape depends on
    the question type; scoring is delegated to the validation module.
    """

    id: str
    quiz_id: str
    question_text: str
    answer_key: AnswerKey
    options: Tuple[str, ...] = ()
    points: int = 1
    order: int = 1
    explanation: Optional[str] = None
    is_required: bool = True
    created_at: datetime.datetime = field(default_factory=utcnow)
    updated_at: datetime.datetime = field(default_factory=utcnow)

    def __post_init__(self):
        """Validate question invariants."""
        if not self.id:
            self.id = str(uuid.uuid4())

        if not isinstance(self.question_text, str) or not self.question_text.strip():
            raise InvalidQuestionError("Question text is required")

        if self.options is None:
            self.options = ()
        if not isinstance(self.options, (list, tuple)) or not all(isinstance(o, str) for o in self.options):
            raise InvalidQuestionError("Options must be a list of strings")
        self.options = tuple(self.options)

        if not _is_int(self.points) or self.points < 1:
            raise InvalidQuestionError("Points must be a positive integer", details={"points": self.points})

        if not _is_int(self.order) or self.order < 1:
            raise InvalidQuestionError("Order must be a positive integer", details={"order": self.order})

        check_key_against_options(self.answer_key, self.options)

    @classmethod
    def create(
        cls,
        quiz_id: str,
        question_text: str,
        question_type: Any,
        options: Optional[Sequence[str]] = None,
        correct_answer: Any = None,
        sub_statements: Optional[Iterable[Any]] = None,
        points: int = 1,
        order: int = 1,
        explanation: Optional[str] = None,
        is_required: bool = True,
        question_id: Optional[str] = None,
    ) -> 'Question':
        """
        Create a question from its wire-format definition.

        Raises:
            InvalidQuestionError: If the definition breaks a shape invariant
        """
        key = build_answer_key(question_type, correct_answer, sub_statements)
        return cls(
            id=question_id or str(uuid.uuid4()),
            quiz_id=quiz_id,
            question_text=question_text,
            answer_key=key,
            options=tuple(options or ()),
            points=points,
            order=order,
            explanation=explanation,
            is_required=is_required,
        )

    @property
    def question_type(self) -> QuestionType:
        return self.answer_key.question_type

    @property
    def type_label(self) -> str:
        return self.question_type.label

    @property
    def correct_answer(self) -> Any:
        """Correct answer in its wire form."""
        return self.answer_key.to_wire()

    @property
    def sub_statements(self) -> Tuple[SubStatement, ...]:
        if isinstance(self.answer_key, MultipleTrueFalseKey):
            return self.answer_key.statements
        return ()

    @property
    def max_points(self) -> float:
        return validation.max_points(self.answer_key, self.points)

    @property
    def is_choice_based(self) -> bool:
        return self.question_type in CHOICE_BASED_TYPES

    @property
    def is_text_based(self) -> bool:
        return self.question_type in TEXT_BASED_TYPES

    def validate(self, answer: Any) -> bool:
        """Whether the answer is fully correct (for descriptive: whether it was answered)."""
        return validation.validate_answer(self.answer_key, answer)

    def calculate_score(self, answer: Any, manual_score: Optional[float] = None) -> float:
        """Points earned by the answer."""
        return validation.calculate_score(self.answer_key, answer, self.points, manual_score)

    def parse_answer(self, raw: Any) -> Any:
        """Check a submitted payload against this question's answer shape."""
        return parse_submitted_answer(self.answer_key, raw, question_id=self.id)

    def options_for_display(self, randomize: bool = False, seed: Optional[str] = None) -> List[str]:
        """
        Options in presentation order.

        When ``randomize`` is set the options are shuffled with a generator
        seeded by ``seed``, so the same presentation always sees the same order.
        """
        options = list(self.options)
        if randomize:
            random.Random(f"{seed}:{self.id}").shuffle(options)
        return options

    def with_changes(self, changes: Dict[str, Any]) -> 'Question':
        """
        Build a validated copy of this question with the given fields replaced.

        Identity, owning quiz and creation time are preserved.
        """
        data = self.to_dict()
        data.update({k: v for k, v in changes.items() if k not in ("id", "quiz_id", "created_at")})

        if "question_type" in changes and coerce_question_type(changes["question_type"]) is not self.question_type:
            # A new type invalidates the old key unless a new one is given
            for stale in ("correct_answer", "sub_statements"):
                if stale not in changes:
                    data.pop(stale, None)

        question = Question.from_dict(data)
        question.updated_at = utcnow()
        return question

    def to_dict(self, reveal_answers: bool = True, randomize: bool = False,
                seed: Optional[str] = None) -> Dict[str, Any]:
        """
        Convert question to dictionary format.

        Args:
            reveal_answers: Include the correct answer, explanation and
                sub-statement truth values
            randomize: Shuffle options for display
            seed: Seed for the shuffle

        Returns:
            Dictionary representation of the question
        """
        result = {
            "id": self.id,
            "quiz_id": self.quiz_id,
            "question_text": self.question_text,
            "question_type": self.question_type.value,
            "type_label": self.type_label,
            "options": self.options_for_display(randomize, seed),
            "points": self.points,
            "max_points": self.max_points,
            "order": self.order,
            "is_required": self.is_required,
        }

        if self.sub_statements:
            result["sub_statements"] = [s.to_dict(reveal_answer=reveal_answers) for s in self.sub_statements]

        if reveal_answers:
            result["correct_answer"] = self.correct_answer
            result["explanation"] = self.explanation
            result["created_at"] = serialize_datetime(self.created_at)
            result["updated_at"] = serialize_datetime(self.updated_at)

        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Question':
        """
        Create a question from dictionary data.

        Args:
            data: Dictionary in the format produced by ``to_dict``

        Returns:
            New question instance
        """
        question = cls.create(
            quiz_id=data["quiz_id"],
            question_text=data.get("question_text"),
            question_type=data.get("question_type"),
            options=data.get("options"),
            correct_answer=data.get("correct_answer"),
            sub_statements=data.get("sub_statements"),
            points=data.get("points", 1),
            order=data.get("order", 1),
            explanation=data.get("explanation"),
            is_required=data.get("is_required", True),
            question_id=data.get("id"),
        )
        for name in ("created_at", "updated_at"):
            value = data.get(name)
            if value is not None:
                setattr(question, name, _parse_datetime(value))
        return question


@dataclass
class Quiz:
    """
    A named, timed collection of questions.

    Holds the availability window, pass threshold and retake policy that
    decide whether a student may start an attempt.
    """

    id: str
    title: str
    description: str = ""
    category: str = ""
    difficulty: QuizDifficulty = QuizDifficulty.MEDIUM
    time_limit: Optional[int] = None
    passing_score: int = 50
    is_active: bool = True
    start_date: Optional[datetime.datetime] = None
    end_date: Optional[datetime.datetime] = None
    is_randomized: bool = False
    show_answers_after: bool = False
    allow_retake: bool = False
    max_attempts: Optional[int] = None
    created_by: Optional[str] = None
    questions: List[Question] = field(default_factory=list)
    created_at: datetime.datetime = field(default_factory=utcnow)
    updated_at: datetime.datetime = field(default_factory=utcnow)

    def __post_init__(self):
        """Validate quiz invariants."""
        if not self.id:
            self.id = str(uuid.uuid4())

        if not isinstance(self.title, str) or not self.title.strip():
            raise InvalidQuizError("Quiz title is required")

        self.description = self.description or ""
        self.category = self.category or ""

        if isinstance(self.difficulty, str):
            try:
                self.difficulty = QuizDifficulty(self.difficulty)
            except ValueError:
                raise InvalidQuizError(f"Invalid difficulty: {self.difficulty}")

        if not _is_int(self.passing_score) or not 0 <= self.passing_score <= 100:
            raise InvalidQuizError(
                "Passing score must be an integer between 0 and 100",
                details={"passing_score": self.passing_score}
            )

        if self.time_limit is not None and (not _is_int(self.time_limit) or self.time_limit < 1):
            raise InvalidQuizError("Time limit must be a positive number of minutes",
                                   details={"time_limit": self.time_limit})

        if self.max_attempts is not None and (not _is_int(self.max_attempts) or self.max_attempts < 1):
            raise InvalidQuizError("Max attempts must be a positive integer",
                                   details={"max_attempts": self.max_attempts})

        self.start_date = _parse_datetime(self.start_date)
        self.end_date = _parse_datetime(self.end_date)
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise InvalidQuizError("End date must be after start date")

        self.questions = sorted(self.questions, key=lambda q: q.order)

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def total_points(self) -> float:
        return sum(question.max_points for question in self.questions)

    @property
    def is_timed(self) -> bool:
        return self.time_limit is not None

    def is_available(self, now: Optional[datetime.datetime] = None) -> bool:
        """
        Check whether the quiz is open.

        Args:
            now: Reference time (defaults to current UTC time)

        Returns:
            True if the quiz is active and now falls inside its window
        """
        now = now or utcnow()
        if not self.is_active:
            return False
        if self.start_date is not None and self.start_date > now:
            return False
        if self.end_date is not None and self.end_date < now:
            return False
        return True

    def rejection_reason(self, prior_attempts: int,
                         now: Optional[datetime.datetime] = None) -> Optional[RejectionReason]:
        """Why a student with ``prior_attempts`` attempts may not start, or None if they may."""
        if not self.is_available(now):
            return RejectionReason.NOT_AVAILABLE
        if self.max_attempts is not None and prior_attempts >= self.max_attempts:
            return RejectionReason.MAX_ATTEMPTS_REACHED
        return None

    def can_be_attempted_by(self, prior_attempts: int, now: Optional[datetime.datetime] = None) -> bool:
        return self.rejection_reason(prior_attempts, now) is None

    def next_question_order(self) -> int:
        if not self.questions:
            return 1
        return max(question.order for question in self.questions) + 1

    def get_question(self, question_id: str) -> Optional[Question]:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None

    def questions_by_id(self) -> Dict[str, Question]:
        return {question.id: question for question in self.questions}

    def _check_order_free(self, order: int, ignore_id: Optional[str] = None) -> None:
        for question in self.questions:
            if question.order == order and question.id != ignore_id:
                raise DuplicateQuestionOrderError(self.id, order)

    def add_question(self, question: Question) -> Question:
        """
        Add a question to the quiz.

        Raises:
            InvalidQuestionError: If the question belongs to another quiz
            DuplicateQuestionOrderError: If another question already uses its order
        """
        if question.quiz_id != self.id:
            raise InvalidQuestionError("Question belongs to another quiz",
                                       details={"quiz_id": question.quiz_id})
        self._check_order_free(question.order)
        self.questions.append(question)
        self.questions.sort(key=lambda q: q.order)
        return question

    def replace_question(self, question: Question) -> Question:
        """Replace a stored question with an updated version of itself."""
        if self.get_question(question.id) is None:
            raise QuestionNotFoundError(question.id, self.id)
        self._check_order_free(question.order, ignore_id=question.id)
        self.questions = sorted(
            [question if q.id == question.id else q for q in self.questions],
            key=lambda q: q.order
        )
        return question

    def remove_question(self, question_id: str) -> Question:
        question = self.get_question(question_id)
        if question is None:
            raise QuestionNotFoundError(question_id, self.id)
        self.questions = [q for q in self.questions if q.id != question_id]
        return question

    def average_score(self, attempts: Iterable[Any]) -> float:
        """Mean percentage of the completed attempts, rounded to 1 decimal."""
        percentages = [a.percentage for a in attempts if a.status.value == "completed"]
        return round(safe_divide(sum(percentages), len(percentages)), 1)

    def with_changes(self, changes: Dict[str, Any]) -> 'Quiz':
        """Build a validated copy of this quiz with the given metadata replaced."""
        data = self.to_dict()
        data.update({k: v for k, v in changes.items() if k not in ("id", "questions", "created_at")})
        data["questions"] = self.questions
        quiz = Quiz.from_dict(data)
        quiz.updated_at = utcnow()
        return quiz

    def to_dict(self, include_questions: bool = False, reveal_answers: bool = True,
                seed: Optional[str] = None) -> Dict[str, Any]:
        """
        Convert quiz to dictionary format.

        Args:
            include_questions: Include the serialized questions
            reveal_answers: Include correct answers in the serialized questions
            seed: Option shuffle seed, used when the quiz is randomized

        Returns:
            Dictionary representation of the quiz
        """
        result = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "difficulty": self.difficulty.value,
            "time_limit": self.time_limit,
            "passing_score": self.passing_score,
            "is_active": self.is_active,
            "start_date": serialize_datetime(self.start_date),
            "end_date": serialize_datetime(self.end_date),
            "is_randomized": self.is_randomized,
            "show_answers_after": self.show_answers_after,
            "allow_retake": self.allow_retake,
            "max_attempts": self.max_attempts,
            "created_by": self.created_by,
            "total_questions": self.total_questions,
            "total_points": self.total_points,
            "created_at": serialize_datetime(self.created_at),
            "updated_at": serialize_datetime(self.updated_at),
        }

        if include_questions:
            result["questions"] = [
                q.to_dict(reveal_answers=reveal_answers, randomize=self.is_randomized, seed=seed)
                for q in self.questions
            ]

        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Quiz':
        """
        Create a quiz from dictionary data.

        Questions may be given as Question instances or dictionaries.
        """
        data = dict(data)
        data.setdefault("id", "")
        for derived in ("total_questions", "total_points"):
            data.pop(derived, None)

        questions = []
        for item in data.pop("questions", None) or []:
            questions.append(item if isinstance(item, Question) else Question.from_dict(item))

        for name in ("created_at", "updated_at"):
            if data.get(name) is None:
                data.pop(name, None)
            else:
                data[name] = _parse_datetime(data[name])

        return cls(questions=questions, **data)
