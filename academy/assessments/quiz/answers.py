"""
Answer Shapes

Each question type carries its own correct-answer definition. This module
defines one immutable key type per question type, builds keys from the wire
format used by authors, and checks submitted payloads against the shape their
question declares before they ever reach the validator.
"""

import enum
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from academy.common.error_handling import AnswerShapeError, InvalidQuestionError
from academy.common.utils import parse_strict_bool


class QuestionType(enum.Enum):
    """Question types supported by the quiz engine."""
    MCQ = "mcq"
    MULTIPLE_ANSWER = "multiple_answer"
    TRUE_FALSE = "true_false"
    MULTIPLE_TRUE_FALSE = "multiple_true_false"
    FILL_BLANKS = "fill_blanks"
    MATCHING = "matching"
    DESCRIPTIVE = "descriptive"

    @property
    def label(self) -> str:
        """Human readable name of the question type."""
        return _TYPE_LABELS[self]


_TYPE_LABELS = {
    QuestionType.MCQ: "Multiple Choice",
    QuestionType.MULTIPLE_ANSWER: "Multiple Answer",
    QuestionType.TRUE_FALSE: "True/False",
    QuestionType.MULTIPLE_TRUE_FALSE: "Multiple True/False",
    QuestionType.FILL_BLANKS: "Fill in the Blanks",
    QuestionType.MATCHING: "Matching",
    QuestionType.DESCRIPTIVE: "Descriptive",
}


@dataclass(frozen=True)
class SubStatement:
    """An independently scored true/false clause of a multiple true/false question."""
    text: str
    is_true: bool
    points: int = 1

    def to_dict(self, reveal_answer: bool = True) -> Dict[str, Any]:
        result = {"text": self.text, "points": self.points}
        if reveal_answer:
            result["is_true"] = self.is_true
        return result


@dataclass(frozen=True)
class SingleChoiceKey:
    question_type: ClassVar[QuestionType] = QuestionType.MCQ
    answer: str

    def to_wire(self) -> Any:
        return self.answer


@dataclass(frozen=True)
class MultiChoiceKey:
    question_type: ClassVar[QuestionType] = QuestionType.MULTIPLE_ANSWER
    answers: Tuple[str, ...]

    def to_wire(self) -> Any:
        return list(self.answers)


@dataclass(frozen=True)
class TrueFalseKey:
    question_type: ClassVar[QuestionType] = QuestionType.TRUE_FALSE
    answer: bool

    def to_wire(self) -> Any:
        return self.answer


@dataclass(frozen=True)
class MultipleTrueFalseKey:
    question_type: ClassVar[QuestionType] = QuestionType.MULTIPLE_TRUE_FALSE
    statements: Tuple[SubStatement, ...]

    @property
    def total_points(self) -> int:
        return sum(statement.points for statement in self.statements)

    def to_wire(self) -> Any:
        return [statement.is_true for statement in self.statements]


@dataclass(frozen=True)
class FillBlanksKey:
    question_type: ClassVar[QuestionType] = QuestionType.FILL_BLANKS
    blanks: Tuple[str, ...]

    def to_wire(self) -> Any:
        return list(self.blanks)


@dataclass(frozen=True)
class MatchingKey:
    question_type: ClassVar[QuestionType] = QuestionType.MATCHING
    pairs: Tuple[Tuple[str, str], ...]

    @property
    def mapping(self) -> Dict[str, str]:
        return dict(self.pairs)

    def to_wire(self) -> Any:
        return self.mapping


@dataclass(frozen=True)
class DescriptiveKey:
    question_type: ClassVar[QuestionType] = QuestionType.DESCRIPTIVE

    def to_wire(self) -> Any:
        return None


AnswerKey = Union[
    SingleChoiceKey,
    MultiChoiceKey,
    TrueFalseKey,
    MultipleTrueFalseKey,
    FillBlanksKey,
    MatchingKey,
    DescriptiveKey,
]


def _is_string_list(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def coerce_question_type(value: Union[str, QuestionType]) -> QuestionType:
    """Convert a wire value to a QuestionType, rejecting unknown types."""
    if isinstance(value, QuestionType):
        return value
    try:
        return QuestionType(value)
    except ValueError:
        raise InvalidQuestionError(f"Unknown question type: {value!r}")


def build_sub_statements(raw: Optional[Iterable[Any]]) -> Tuple[SubStatement, ...]:
    """
    Build sub-statements from their wire form.

    Accepts SubStatement instances or mappings with ``text``, ``is_true``
    and ``points`` keys.
    """
    if raw is None:
        return ()

    statements: List[SubStatement] = []
    for index, item in enumerate(raw):
        if isinstance(item, SubStatement):
            statement = item
        elif isinstance(item, Mapping):
            statement = SubStatement(
                text=item.get("text"),
                is_true=parse_strict_bool(item.get("is_true")),
                points=item.get("points", 1),
            )
        else:
            raise InvalidQuestionError(f"Sub-statement {index} must be an object")

        if not isinstance(statement.text, str) or not statement.text.strip():
            raise InvalidQuestionError(f"Sub-statement {index} needs non-empty text")
        if not isinstance(statement.is_true, bool):
            raise InvalidQuestionError(f"Sub-statement {index} needs a boolean is_true")
        if not _is_int(statement.points) or statement.points < 1:
            raise InvalidQuestionError(f"Sub-statement {index} needs positive integer points")
        statements.append(statement)

    return tuple(statements)


def _build_matching_pairs(raw: Any) -> Tuple[Tuple[str, str], ...]:
    if isinstance(raw, Mapping):
        items = list(raw.items())
    elif isinstance(raw, (list, tuple)):
        items = []
        for entry in raw:
            if isinstance(entry, Mapping) and "left" in entry and "right" in entry:
                items.append((entry["left"], entry["right"]))
            elif isinstance(entry, (list, tuple)) and len(entry) == 2:
                items.append((entry[0], entry[1]))
            else:
                raise InvalidQuestionError("Matching pairs must be [left, right] or {left, right}")
    else:
        raise InvalidQuestionError("Matching answer must be a mapping or a list of pairs")

    if not items:
        raise InvalidQuestionError("Matching question needs at least one pair")
    if not all(isinstance(left, str) and isinstance(right, str) for left, right in items):
        raise InvalidQuestionError("Matching pairs must contain strings")
    if len({left for left, _ in items}) != len(items):
        raise InvalidQuestionError("Matching pairs must have unique left-hand items")

    return tuple(items)


def build_answer_key(
    question_type: Union[str, QuestionType],
    correct_answer: Any = None,
    sub_statements: Optional[Iterable[Any]] = None,
) -> AnswerKey:
    """
    Build the typed answer key for a question from its wire form.

    Args:
        question_type: The declared question type
        correct_answer: Correct answer in the shape of that type
        sub_statements: Sub-statements (multiple true/false only)

    Returns:
        The immutable answer key

    Raises:
        InvalidQuestionError: If the correct answer does not fit the type
    """
    question_type = coerce_question_type(question_type)

    if question_type is QuestionType.MCQ:
        if not isinstance(correct_answer, str) or not correct_answer:
            raise InvalidQuestionError("Single choice question needs one correct option")
        return SingleChoiceKey(answer=correct_answer)

    if question_type is QuestionType.MULTIPLE_ANSWER:
        if not _is_string_list(correct_answer) or not correct_answer:
            raise InvalidQuestionError("Multiple answer question needs a list of correct options")
        if len(set(correct_answer)) != len(correct_answer):
            raise InvalidQuestionError("Multiple answer correct options must be unique")
        return MultiChoiceKey(answers=tuple(correct_answer))

    if question_type is QuestionType.TRUE_FALSE:
        parsed = parse_strict_bool(correct_answer)
        if parsed is None:
            raise InvalidQuestionError("True/false question needs a boolean correct answer")
        return TrueFalseKey(answer=parsed)

    if question_type is QuestionType.MULTIPLE_TRUE_FALSE:
        statements = build_sub_statements(sub_statements)
        if not statements:
            raise InvalidQuestionError("Multiple true/false question needs at least one sub-statement")
        return MultipleTrueFalseKey(statements=statements)

    if question_type is QuestionType.FILL_BLANKS:
        if not _is_string_list(correct_answer) or not correct_answer:
            raise InvalidQuestionError("Fill in the blanks question needs a list of accepted answers")
        if any(not blank.strip() for blank in correct_answer):
            raise InvalidQuestionError("Fill in the blanks answers must not be empty")
        return FillBlanksKey(blanks=tuple(correct_answer))

    if question_type is QuestionType.MATCHING:
        return MatchingKey(pairs=_build_matching_pairs(correct_answer))

    return DescriptiveKey()


def check_key_against_options(key: AnswerKey, options: Sequence[str]) -> None:
    """
    Check that a choice-based key only references defined options.

    Raises:
        InvalidQuestionError: If an option is missing or a correct answer is not an option
    """
    if not isinstance(key, (SingleChoiceKey, MultiChoiceKey)):
        return

    if not options:
        raise InvalidQuestionError(f"{key.question_type.label} question needs options")

    if isinstance(key, SingleChoiceKey):
        if key.answer not in options:
            raise InvalidQuestionError(
                "Correct answer must be one of the options",
                details={"correct_answer": key.answer}
            )
        return

    missing = [answer for answer in key.answers if answer not in options]
    if missing:
        raise InvalidQuestionError(
            "Every correct answer must be one of the options",
            details={"missing": missing}
        )


def parse_submitted_answer(key: AnswerKey, raw: Any, question_id: Optional[str] = None) -> Any:
    """
    Check a submitted payload against the shape its question declares.

    ``None`` means the question was left unanswered and is always accepted.
    Anything else must match the question type exactly; payloads are rejected,
    never coerced into shape.

    Args:
        key: The question's answer key
        raw: The submitted payload as received on the wire
        question_id: Question identifier used in error reports

    Returns:
        The payload itself, once checked

    Raises:
        AnswerShapeError: If the payload does not fit the question type
    """
    if raw is None:
        return None

    question_type = key.question_type.value

    def reject(reason: str) -> AnswerShapeError:
        return AnswerShapeError(question_id, question_type, reason)

    if isinstance(key, (SingleChoiceKey, DescriptiveKey)):
        if not isinstance(raw, str):
            raise reject("expected a string")

    elif isinstance(key, MultiChoiceKey):
        if not _is_string_list(raw):
            raise reject("expected a list of strings")

    elif isinstance(key, TrueFalseKey):
        if parse_strict_bool(raw) is None:
            raise reject("expected true or false")

    elif isinstance(key, MultipleTrueFalseKey):
        if not isinstance(raw, (list, tuple)) or not all(isinstance(item, bool) for item in raw):
            raise reject("expected a list of booleans")
        if len(raw) != len(key.statements):
            raise reject(f"expected {len(key.statements)} values, got {len(raw)}")

    elif isinstance(key, FillBlanksKey):
        if not _is_string_list(raw):
            raise reject("expected a list of strings")
        if len(raw) != len(key.blanks):
            raise reject(f"expected {len(key.blanks)} blanks, got {len(raw)}")

    elif isinstance(key, MatchingKey):
        if not isinstance(raw, Mapping) or not all(
            isinstance(left, str) and isinstance(right, str) for left, right in raw.items()
        ):
            raise reject("expected a mapping of strings")

    return raw


def is_answered(value: Any) -> bool:
    """Whether an answers-map entry counts as answered for progress tracking."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True
