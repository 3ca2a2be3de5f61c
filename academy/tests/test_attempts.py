"""
Tests for the attempt state machine and scoring.
"""

import datetime

import pytest

from academy.assessments.quiz.attempts import Attempt, AttemptStatus, grade_for, score_answers
from academy.assessments.quiz.models import Question
from academy.common.error_handling import AttemptNotExpiredError, AttemptStateConflictError
from academy.tests.conftest import CORRECT_ANSWERS, NOW, make_quiz


def later(**kwargs) -> datetime.datetime:
    return NOW + datetime.timedelta(**kwargs)


@pytest.fixture
def attempt(quiz):
    return Attempt.start(quiz, "student-1", NOW)


class TestScoring:
    def test_all_correct_except_ungraded_descriptive(self, quiz, attempt):
        summary = attempt.complete(quiz, CORRECT_ANSWERS, later(minutes=3))

        assert summary.score == 12.0
        assert summary.total_score == 15.0
        assert attempt.percentage == 80.0
        assert attempt.is_passed
        assert attempt.status is AttemptStatus.COMPLETED
        assert attempt.completed_at == later(minutes=3)
        assert attempt.time_taken == 180
        assert attempt.grade == "A"

    def test_manual_score_for_descriptive(self, quiz, attempt):
        attempt.complete(quiz, CORRECT_ANSWERS, later(minutes=1), manual_scores={"q-desc": 3, "q-mcq": 10})
        assert attempt.score == 15.0
        assert attempt.percentage == 100.0

    def test_missing_answers_score_zero(self, quiz, attempt):
        attempt.complete(quiz, {"q-tf": True}, later(minutes=1))
        assert attempt.score == 1.0
        assert attempt.percentage == 6.67
        assert not attempt.is_passed

    def test_unknown_keys_are_kept_but_not_scored(self, quiz, attempt):
        attempt.complete(quiz, {"q-tf": True, "ghost": "boo"}, later(minutes=1))
        assert attempt.answers["ghost"] == "boo"
        assert attempt.score == 1.0

    def test_final_answers_merge_over_saved_ones(self, quiz, attempt):
        attempt.record_answers({"q-mcq": "A", "q-tf": True}, later(minutes=1))
        attempt.complete(quiz, {"q-mcq": "B"}, later(minutes=2))
        assert attempt.answers == {"q-mcq": "B", "q-tf": True}
        assert attempt.score == 3.0

    def test_percentage_is_rounded_to_two_decimals(self):
        quiz = make_quiz(questions=[], passing_score=30)
        for order in (1, 2, 3):
            quiz.add_question(Question.create(quiz.id, f"Q{order}", "true_false",
                                              correct_answer=True, order=order, question_id=f"q{order}"))
        summary = score_answers(quiz.questions, {"q1": True}, quiz.passing_score)
        assert summary.percentage == 33.33
        assert summary.is_passed

    def test_empty_quiz(self):
        quiz = make_quiz(questions=[])
        attempt = Attempt.start(quiz, "student-1", NOW)
        attempt.complete(quiz, {}, later(seconds=5))
        assert attempt.total_score == 0
        assert attempt.percentage == 0.0
        assert not attempt.is_passed

    def test_scoring_uses_questions_at_completion_time(self, quiz, attempt):
        quiz.remove_question("q-desc")
        attempt.complete(quiz, CORRECT_ANSWERS, later(minutes=1))
        assert attempt.total_score == 12.0
        assert attempt.percentage == 100.0

    def test_rescoring_is_idempotent(self, quiz):
        first = score_answers(quiz.questions, CORRECT_ANSWERS, quiz.passing_score)
        second = score_answers(quiz.questions, CORRECT_ANSWERS, quiz.passing_score)
        assert first == second


class TestTransitions:
    def test_complete_twice_conflicts(self, quiz, attempt):
        attempt.complete(quiz, CORRECT_ANSWERS, later(minutes=1))
        with pytest.raises(AttemptStateConflictError) as exc_info:
            attempt.complete(quiz, {}, later(minutes=2))
        assert exc_info.value.current_status == "completed"
        assert attempt.score == 12.0

    def test_abandon(self, quiz, attempt):
        attempt.record_answers({"q-mcq": "B"}, later(minutes=1))
        attempt.abandon(later(minutes=2))
        assert attempt.status is AttemptStatus.ABANDONED
        assert attempt.time_taken == 120
        assert attempt.score == 0.0
        assert attempt.status_label == "Abandoned"

    @pytest.mark.parametrize("finish", ["complete", "abandon", "timeout"])
    def test_terminal_states_are_final(self, quiz, attempt, finish):
        if finish == "complete":
            attempt.complete(quiz, {}, later(minutes=1))
        elif finish == "abandon":
            attempt.abandon(later(minutes=1))
        else:
            attempt.timeout(quiz, later(minutes=11))

        with pytest.raises(AttemptStateConflictError):
            attempt.abandon(later(minutes=20))
        with pytest.raises(AttemptStateConflictError):
            attempt.complete(quiz, {}, later(minutes=20))
        with pytest.raises(AttemptStateConflictError):
            attempt.timeout(quiz, later(minutes=20))
        with pytest.raises(AttemptStateConflictError):
            attempt.record_answers({"q-tf": True}, later(minutes=20))

    def test_timeout_requires_expiry(self, quiz, attempt):
        with pytest.raises(AttemptNotExpiredError) as exc_info:
            attempt.timeout(quiz, later(minutes=5))
        assert exc_info.value.details["remaining_seconds"] == 300
        assert attempt.is_in_progress

    def test_timeout_uses_full_time_limit(self, quiz, attempt):
        attempt.record_answers(CORRECT_ANSWERS, later(minutes=2))
        attempt.timeout(quiz, later(minutes=45))
        assert attempt.status is AttemptStatus.TIMED_OUT
        assert attempt.time_taken == 600
        assert attempt.completed_at == later(minutes=45)
        assert attempt.score == 0.0

    def test_timeout_can_score_saved_answers(self, quiz, attempt):
        attempt.record_answers(CORRECT_ANSWERS, later(minutes=2))
        attempt.timeout(quiz, later(minutes=11), score_saved_answers=True)
        assert attempt.score == 12.0
        assert attempt.percentage == 80.0

    def test_untimed_quiz_never_times_out(self):
        quiz = make_quiz(time_limit=None)
        attempt = Attempt.start(quiz, "student-1", NOW)
        assert not attempt.is_expired(quiz, later(days=30))
        with pytest.raises(AttemptNotExpiredError):
            attempt.timeout(quiz, later(days=30))


class TestDerivedState:
    def test_remaining_time(self, quiz, attempt):
        assert attempt.remaining_time(quiz, later(minutes=4)) == 360
        assert attempt.remaining_time(quiz, later(minutes=10)) == 0
        assert attempt.remaining_time(quiz, later(minutes=12)) == 0
        assert attempt.remaining_time(make_quiz(time_limit=None), later(minutes=1)) == 0

    def test_expiry_is_strictly_after_deadline(self, quiz, attempt):
        assert not attempt.is_expired(quiz, later(minutes=10))
        assert attempt.is_expired(quiz, later(minutes=10, seconds=1))

    def test_can_be_resumed(self, quiz, attempt):
        assert attempt.can_be_resumed(quiz, later(minutes=9))
        assert not attempt.can_be_resumed(quiz, later(minutes=11))
        attempt.abandon(later(minutes=1))
        assert not attempt.can_be_resumed(quiz, later(minutes=2))

    def test_progress_percentage(self, quiz, attempt):
        assert attempt.progress_percentage(quiz) == 0.0
        attempt.record_answers({"q-mcq": "B", "q-tf": False, "q-desc": "  ", "ghost": "x"}, later(minutes=1))
        assert attempt.progress_percentage(quiz) == 28.6

    def test_progress_of_empty_quiz(self):
        quiz = make_quiz(questions=[])
        assert Attempt.start(quiz, "student-1", NOW).progress_percentage(quiz) == 0.0

    @pytest.mark.parametrize("percentage,grade", [
        (100, "A+"), (90, "A+"), (89.99, "A"), (80, "A"), (70, "B"),
        (60, "C"), (50, "D"), (49.99, "F"), (0, "F"),
    ])
    def test_grade_bands(self, percentage, grade):
        assert grade_for(percentage) == grade

    def test_time_taken_formatted(self, quiz, attempt):
        attempt.abandon(later(minutes=2, seconds=5))
        assert attempt.time_taken_formatted == "2m 5s"
        assert Attempt(id="x", quiz_id=quiz.id, student_id="s", time_taken=45).time_taken_formatted == "45s"

    def test_dict_round_trip(self, quiz, attempt):
        attempt.complete(quiz, CORRECT_ANSWERS, later(minutes=3))
        restored = Attempt.from_dict(attempt.to_dict())
        assert restored.status is AttemptStatus.COMPLETED
        assert restored.percentage == attempt.percentage
        assert restored.completed_at == attempt.completed_at


class TestScenarios:
    @pytest.fixture
    def two_question_quiz(self):
        quiz = make_quiz(questions=[], passing_score=60, time_limit=30)
        quiz.add_question(Question.create(quiz.id, "First", "mcq", options=["x", "y"], correct_answer="x",
                                          points=5, order=1, question_id="first"))
        quiz.add_question(Question.create(quiz.id, "Second", "true_false", correct_answer=False,
                                          points=5, order=2, question_id="second"))
        return quiz

    def test_half_right_fails(self, two_question_quiz):
        attempt = Attempt.start(two_question_quiz, "student-1", NOW)
        attempt.complete(two_question_quiz, {"first": "x", "second": True}, later(minutes=1))
        assert (attempt.score, attempt.total_score, attempt.percentage) == (5.0, 10.0, 50.0)
        assert not attempt.is_passed

    def test_all_right_passes(self, two_question_quiz):
        attempt = Attempt.start(two_question_quiz, "student-1", NOW)
        attempt.complete(two_question_quiz, {"first": "x", "second": "false"}, later(minutes=1))
        assert attempt.percentage == 100.0
        assert attempt.is_passed

    def test_pass_boundary_is_inclusive(self, two_question_quiz):
        at_boundary = score_answers(two_question_quiz.questions, {"first": "x"}, passing_score=50)
        assert at_boundary.percentage == 50.0
        assert at_boundary.is_passed

    def test_weighted_statements(self):
        quiz = make_quiz(questions=[])
        quiz.add_question(Question.create(quiz.id, "Judge", "multiple_true_false", order=1, question_id="mtf",
                                          sub_statements=[{"text": "a", "is_true": True, "points": 2},
                                                          {"text": "b", "is_true": False, "points": 3}]))
        scores = [
            score_answers(quiz.questions, {"mtf": answer}, quiz.passing_score).score
            for answer in ([True, False], [False, False], [True, True])
        ]
        assert scores == [5.0, 3.0, 2.0]

    def test_expiry_after_time_limit(self, two_question_quiz):
        attempt = Attempt.start(two_question_quiz, "student-1", NOW)
        remaining = [attempt.remaining_time(two_question_quiz, later(minutes=m)) for m in (0, 10, 29, 30, 31)]
        assert remaining == sorted(remaining, reverse=True)
        assert attempt.is_expired(two_question_quiz, later(minutes=31))
        assert remaining[-1] == 0

    def test_stored_score_survives_question_edits(self, two_question_quiz):
        attempt = Attempt.start(two_question_quiz, "student-1", NOW)
        attempt.complete(two_question_quiz, {"first": "x", "second": False}, later(minutes=1))

        two_question_quiz.replace_question(two_question_quiz.get_question("first").with_changes({"points": 50}))
        assert attempt.total_score == 10.0
        assert attempt.percentage == 100.0
