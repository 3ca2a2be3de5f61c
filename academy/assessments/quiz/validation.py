"""
Question Validator

Pure functions that judge a submitted answer against a question's answer key.
Every function here is total: malformed or mismatched input evaluates to
"incorrect" (and zero points) instead of raising.
"""

import math
from typing import Any, Callable, Dict, List, Optional, Union

from academy.assessments.quiz.answers import (
    AnswerKey,
    DescriptiveKey,
    FillBlanksKey,
    MatchingKey,
    MultiChoiceKey,
    MultipleTrueFalseKey,
    QuestionType,
    SingleChoiceKey,
    TrueFalseKey,
)
from academy.common.utils import parse_strict_bool

Number = Union[int, float]


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def validate_single_choice(key: SingleChoiceKey, answer: Any) -> bool:
    return isinstance(answer, str) and answer == key.answer


def validate_multi_choice(key: MultiChoiceKey, answer: Any) -> bool:
    if not isinstance(answer, (list, tuple, set, frozenset)):
        return False
    if not all(isinstance(item, str) for item in answer):
        return False
    return sorted(answer) == sorted(key.answers)


def validate_true_false(key: TrueFalseKey, answer: Any) -> bool:
    parsed = parse_strict_bool(answer)
    return parsed is not None and parsed == key.answer


def statement_matches(key: MultipleTrueFalseKey, answer: Any) -> Optional[List[bool]]:
    """
    Compare a multiple true/false answer positionally with the sub-statements.

    Returns:
        One flag per sub-statement, or None if the answer has the wrong arity
    """
    if not _is_sequence(answer) or len(answer) != len(key.statements):
        return None
    return [
        isinstance(value, bool) and value == statement.is_true
        for value, statement in zip(answer, key.statements)
    ]


def validate_multiple_true_false(key: MultipleTrueFalseKey, answer: Any) -> bool:
    matches = statement_matches(key, answer)
    return matches is not None and all(matches)


def _normalize_blank(value: str) -> str:
    return value.strip().lower()


def validate_fill_blanks(key: FillBlanksKey, answer: Any) -> bool:
    if not _is_sequence(answer) or len(answer) != len(key.blanks):
        return False
    return all(
        isinstance(given, str) and _normalize_blank(given) == _normalize_blank(expected)
        for given, expected in zip(answer, key.blanks)
    )


def validate_matching(key: MatchingKey, answer: Any) -> bool:
    return isinstance(answer, dict) and answer == key.mapping


def validate_descriptive(key: DescriptiveKey, answer: Any) -> bool:
    # Only checks that something was written; grading is manual.
    return isinstance(answer, str) and bool(answer.strip())


_VALIDATORS: Dict[QuestionType, Callable[[Any, Any], bool]] = {
    QuestionType.MCQ: validate_single_choice,
    QuestionType.MULTIPLE_ANSWER: validate_multi_choice,
    QuestionType.TRUE_FALSE: validate_true_false,
    QuestionType.MULTIPLE_TRUE_FALSE: validate_multiple_true_false,
    QuestionType.FILL_BLANKS: validate_fill_blanks,
    QuestionType.MATCHING: validate_matching,
    QuestionType.DESCRIPTIVE: validate_descriptive,
}


def validate_answer(key: AnswerKey, answer: Any) -> bool:
    """
    Decide whether an answer is fully correct for the given key.

    Args:
        key: The question's answer key
        answer: Submitted answer in its wire form

    Returns:
        True if the answer is correct, False otherwise (including malformed input)
    """
    if answer is None:
        return False
    return _VALIDATORS[key.question_type](key, answer)


def max_points(key: AnswerKey, points: Number) -> Number:
    """
    Maximum achievable points for a question.

    Multiple true/false questions are worth the sum of their sub-statement
    points; every other type is worth the question's own points.
    """
    if isinstance(key, MultipleTrueFalseKey):
        return key.total_points
    return points


def calculate_score(
    key: AnswerKey,
    answer: Any,
    points: Number,
    manual_score: Optional[Number] = None
) -> float:
    """
    Calculate the points earned by an answer.

    Multiple true/false answers earn the points of each sub-statement answered
    correctly. Descriptive answers earn the manually assigned score clamped to
    the question's points, or nothing when ungraded or not a finite number.
    Every other type earns all of its points or none.

    Args:
        key: The question's answer key
        answer: Submitted answer in its wire form
        points: Points the question is worth
        manual_score: Grader-assigned score (descriptive questions only)

    Returns:
        Points earned, between 0 and max_points(key, points)
    """
    if isinstance(key, DescriptiveKey):
        if isinstance(manual_score, bool) or not isinstance(manual_score, (int, float)):
            return 0.0
        if not math.isfinite(manual_score):
            return 0.0
        return float(min(max(manual_score, 0), points))

    if answer is None:
        return 0.0

    if isinstance(key, MultipleTrueFalseKey):
        matches = statement_matches(key, answer)
        if matches is None:
            return 0.0
        return float(sum(
            statement.points
            for statement, matched in zip(key.statements, matches)
            if matched
        ))

    return float(points) if validate_answer(key, answer) else 0.0
