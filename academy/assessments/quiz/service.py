"""
Quiz Assessment Service

This module orchestrates the quiz engine: authoring quizzes and questions,
running a student's attempt through its lifecycle and aggregating quiz
statistics. All rules live in the domain models; this layer loads, checks
preconditions, applies a transition and persists the result.
"""

import math
import uuid
import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from academy.assessments.quiz.attempts import Attempt, AttemptStatus
from academy.assessments.quiz.models import Question, Quiz, QuizDifficulty, RejectionReason
from academy.assessments.quiz.repository import QuizFilter, QuizRepository
from academy.common.error_handling import (
    AttemptExpiredError,
    AttemptNotFoundError,
    AttemptStateConflictError,
    InvalidQuizError,
    MaxAttemptsReachedError,
    QuestionNotFoundError,
    QuizInUseError,
    QuizNotFoundError,
    QuizUnavailableError,
    ValidationError,
)
from academy.common.logger import LoggerAdapter, app_logger, log_execution_time
from academy.common.utils import safe_divide, utcnow

logger = app_logger.getChild("quiz.service")

QUIZ_FIELDS = (
    "title", "description", "category", "difficulty", "time_limit", "passing_score",
    "is_active", "start_date", "end_date", "is_randomized", "show_answers_after",
    "allow_retake", "max_attempts",
)

QUESTION_FIELDS = (
    "question_text", "question_type", "options", "correct_answer", "sub_statements",
    "points", "order", "explanation", "is_required",
)


class QuizAssessmentService:
    """
    Service for quizzes and quiz attempts.

    Passing ``student_id`` to an attempt operation restricts it to that
    student's own attempts; an attempt owned by someone else is reported as
    not found.
    """

    def __init__(
        self,
        repository: QuizRepository,
        score_timed_out_attempts: bool = False,
        page_size: int = 15,
        clock: Callable[[], datetime.datetime] = utcnow
    ):
        """
        Initialize the quiz assessment service.

        Args:
            repository: Store for quizzes, questions and attempts
            score_timed_out_attempts: Score answers saved before the deadline on timeout
            page_size: Default page size of quiz listings
            clock: Source of the current UTC time
        """
        self.repository = repository
        self.score_timed_out_attempts = score_timed_out_attempts
        self.page_size = page_size
        self.clock = clock

    # Quizzes

    async def create_quiz(self, data: Mapping[str, Any], created_by: Optional[str] = None) -> Quiz:
        """
        Create a quiz, optionally with an initial list of questions.

        Questions without an explicit order are numbered after the ones before them.

        Raises:
            InvalidQuizError: If the quiz settings break an invariant
            InvalidQuestionError: If a question definition is invalid
        """
        quiz_data = {k: v for k, v in data.items() if k in QUIZ_FIELDS}
        quiz = Quiz(
            id=str(uuid.uuid4()),
            title=quiz_data.pop("title", ""),
            created_by=created_by,
            **quiz_data
        )

        for question_data in data.get("questions") or []:
            question_data = dict(question_data)
            if question_data.get("order") is None:
                question_data["order"] = quiz.next_question_order()
            quiz.add_question(self._build_question(quiz.id, question_data))

        await self.repository.save_quiz(quiz)
        logger.info(f"Created quiz {quiz.id} with {quiz.total_questions} questions")
        return quiz

    async def get_quiz(self, quiz_id: str) -> Quiz:
        quiz = await self.repository.get_quiz(quiz_id)
        if quiz is None:
            raise QuizNotFoundError(quiz_id)
        return quiz

    async def update_quiz(self, quiz_id: str, changes: Mapping[str, Any]) -> Quiz:
        """
        Update quiz settings.

        Raises:
            QuizNotFoundError: If the quiz does not exist
            InvalidQuizError: If the new settings break an invariant
        """
        quiz = await self.get_quiz(quiz_id)
        updated = quiz.with_changes({k: v for k, v in changes.items() if k in QUIZ_FIELDS})
        await self.repository.save_quiz(updated)
        logger.info(f"Updated quiz {quiz_id}")
        return updated

    async def delete_quiz(self, quiz_id: str) -> None:
        """
        Delete a quiz and its questions.

        Raises:
            QuizNotFoundError: If the quiz does not exist
            QuizInUseError: If any attempt references the quiz
        """
        await self.get_quiz(quiz_id)
        attempt_count = await self.repository.count_attempts(quiz_id)
        if attempt_count > 0:
            raise QuizInUseError(
                "Cannot delete a quiz that has attempts; deactivate it instead",
                details={"quiz_id": quiz_id, "attempts": attempt_count}
            )
        await self.repository.delete_quiz(quiz_id)
        logger.info(f"Deleted quiz {quiz_id}")

    async def list_quizzes(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        difficulty: Optional[str] = None,
        available_only: bool = False,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> Tuple[List[Quiz], int]:
        """
        List quizzes, newest first.

        Returns:
            The requested page and the total number of matching quizzes
        """
        if difficulty is not None:
            try:
                difficulty = QuizDifficulty(difficulty)
            except ValueError:
                raise InvalidQuizError(f"Invalid difficulty: {difficulty}")

        filters = QuizFilter(
            search=search,
            category=category,
            difficulty=difficulty,
            available_only=available_only,
            now=self.clock(),
        )
        return await self.repository.list_quizzes(filters, limit or self.page_size, offset)

    async def get_quiz_stats(self, quiz_id: str) -> Dict[str, Any]:
        """
        Aggregate attempt statistics for a quiz.

        Returns:
            Attempt counts, average score and time of completed attempts, and pass rate
        """
        quiz = await self.get_quiz(quiz_id)
        attempts = await self.repository.list_attempts(quiz_id=quiz_id)
        completed = [a for a in attempts if a.status is AttemptStatus.COMPLETED]
        passed = [a for a in completed if a.is_passed]

        return {
            "quiz_id": quiz_id,
            "total_attempts": len(attempts),
            "completed_attempts": len(completed),
            "passed_attempts": len(passed),
            "average_score": quiz.average_score(attempts),
            "average_time": round(safe_divide(sum(a.time_taken for a in completed), len(completed)), 1),
            "pass_rate": round(safe_divide(len(passed), len(completed)) * 100, 1),
        }

    # Questions

    def _build_question(self, quiz_id: str, data: Mapping[str, Any]) -> Question:
        fields = {k: v for k, v in data.items() if k in QUESTION_FIELDS}
        if fields.get("points") is None:
            fields.pop("points", None)
        return Question.create(
            quiz_id=quiz_id,
            question_text=fields.pop("question_text", ""),
            question_type=fields.pop("question_type", None),
            **fields
        )

    async def add_question(self, quiz_id: str, data: Mapping[str, Any]) -> Question:
        """
        Add a question to a quiz.

        The question is placed after the last one unless an order is given.

        Raises:
            QuizNotFoundError: If the quiz does not exist
            InvalidQuestionError: If the definition breaks a shape invariant
            DuplicateQuestionOrderError: If the order is already taken
        """
        quiz = await self.get_quiz(quiz_id)
        data = dict(data)
        if data.get("order") is None:
            data["order"] = quiz.next_question_order()

        question = quiz.add_question(self._build_question(quiz_id, data))
        await self.repository.add_question(question)
        logger.info(f"Added {question.question_type.value} question {question.id} to quiz {quiz_id}")
        return question

    async def update_question(self, quiz_id: str, question_id: str, changes: Mapping[str, Any]) -> Question:
        """
        Update a question; the full definition is re-validated.

        Raises:
            QuestionNotFoundError: If the question is not part of the quiz
            InvalidQuestionError: If the result breaks a shape invariant
            DuplicateQuestionOrderError: If the new order is already taken
        """
        quiz = await self.get_quiz(quiz_id)
        question = quiz.get_question(question_id)
        if question is None:
            raise QuestionNotFoundError(question_id, quiz_id)

        updated = question.with_changes({k: v for k, v in changes.items() if k in QUESTION_FIELDS})
        quiz.replace_question(updated)
        await self.repository.update_question(updated)
        logger.info(f"Updated question {question_id} of quiz {quiz_id}")
        return updated

    async def delete_question(self, quiz_id: str, question_id: str) -> None:
        """
        Delete a question.

        Raises:
            QuestionNotFoundError: If the question is not part of the quiz
            QuizInUseError: If the quiz has attempts in progress
        """
        quiz = await self.get_quiz(quiz_id)
        if quiz.get_question(question_id) is None:
            raise QuestionNotFoundError(question_id, quiz_id)

        in_progress = await self.repository.list_attempts(quiz_id=quiz_id, status=AttemptStatus.IN_PROGRESS)
        if in_progress:
            raise QuizInUseError(
                "Cannot delete a question while attempts are in progress",
                details={"quiz_id": quiz_id, "question_id": question_id, "in_progress": len(in_progress)}
            )

        await self.repository.delete_question(question_id)
        logger.info(f"Deleted question {question_id} of quiz {quiz_id}")

    # Attempts

    async def can_be_attempted_by(self, quiz_id: str, student_id: str) -> bool:
        """Whether the student may start a new attempt at the quiz now."""
        quiz = await self.get_quiz(quiz_id)
        prior_attempts = await self.repository.count_attempts(quiz_id, student_id)
        return quiz.can_be_attempted_by(prior_attempts, self.clock())

    async def _load_attempt(self, attempt_id: str, student_id: Optional[str]) -> Tuple[Attempt, Quiz]:
        attempt = await self.repository.get_attempt(attempt_id)
        if attempt is None or (student_id is not None and attempt.student_id != student_id):
            raise AttemptNotFoundError(attempt_id)
        quiz = await self.get_quiz(attempt.quiz_id)
        return attempt, quiz

    def _check_answers(self, quiz: Quiz, answers: Mapping[str, Any]) -> Dict[str, Any]:
        # Keys that match no question are kept verbatim and score nothing
        if not isinstance(answers, Mapping):
            raise ValidationError("Answers must be a mapping of question id to answer")
        questions = quiz.questions_by_id()
        for question_id, raw in answers.items():
            question = questions.get(question_id)
            if question is not None:
                question.parse_answer(raw)
        return dict(answers)

    async def _timeout(self, attempt: Attempt, quiz: Quiz, now: datetime.datetime) -> Attempt:
        attempt.timeout(quiz, now, score_saved_answers=self.score_timed_out_attempts)
        await self.repository.update_attempt(attempt, "timeout")
        LoggerAdapter(logger, {"attempt": attempt.id, "student": attempt.student_id}).info("Attempt timed out")
        return attempt

    async def start_attempt(self, quiz_id: str, student_id: str) -> Attempt:
        """
        Start an attempt, or resume the student's attempt in progress.

        An in-progress attempt whose time is up is timed out first and a new
        attempt is started if the retake policy allows it.

        Raises:
            QuizNotFoundError: If the quiz does not exist
            QuizUnavailableError: If the quiz is inactive or outside its window
            MaxAttemptsReachedError: If the student has no attempts left
        """
        quiz = await self.get_quiz(quiz_id)
        now = self.clock()
        log = LoggerAdapter(logger, {"quiz": quiz_id, "student": student_id})

        if not quiz.is_available(now):
            log.info("Rejected attempt start: quiz not available")
            raise QuizUnavailableError(quiz_id)

        in_progress = await self.repository.list_attempts(
            quiz_id=quiz_id, student_id=student_id, status=AttemptStatus.IN_PROGRESS
        )
        for existing in in_progress:
            if existing.can_be_resumed(quiz, now):
                log.info(f"Resuming attempt {existing.id}")
                return existing
            await self._timeout(existing, quiz, now)

        prior_attempts = await self.repository.count_attempts(quiz_id, student_id)
        if quiz.rejection_reason(prior_attempts, now) is RejectionReason.MAX_ATTEMPTS_REACHED:
            log.info(f"Rejected attempt start: {prior_attempts} prior attempts")
            raise MaxAttemptsReachedError(quiz_id, student_id, quiz.max_attempts)

        attempt = Attempt.start(quiz, student_id, now)
        await self.repository.add_attempt(attempt)
        log.info(f"Started attempt {attempt.id}")
        return attempt

    async def get_attempt(self, attempt_id: str, student_id: Optional[str] = None) -> Attempt:
        attempt, _ = await self._load_attempt(attempt_id, student_id)
        return attempt

    async def list_attempts(self, quiz_id: str, student_id: Optional[str] = None) -> List[Attempt]:
        await self.get_quiz(quiz_id)
        return await self.repository.list_attempts(quiz_id=quiz_id, student_id=student_id)

    async def save_answers(
        self,
        attempt_id: str,
        answers: Mapping[str, Any],
        student_id: Optional[str] = None
    ) -> Attempt:
        """
        Save a batch of answers to an attempt in progress.

        Raises:
            AnswerShapeError: If an answer does not fit its question's type
            AttemptExpiredError: If the time is up (the attempt is timed out)
            AttemptStateConflictError: If the attempt is no longer in progress
        """
        attempt, quiz = await self._load_attempt(attempt_id, student_id)
        now = self.clock()

        if attempt.is_in_progress and attempt.is_expired(quiz, now):
            await self._timeout(attempt, quiz, now)
            raise AttemptExpiredError(attempt_id)

        attempt.record_answers(self._check_answers(quiz, answers), now)
        await self.repository.update_attempt(attempt, "save_answers")
        return attempt

    @log_execution_time(logger)
    async def complete_attempt(
        self,
        attempt_id: str,
        answers: Optional[Mapping[str, Any]] = None,
        student_id: Optional[str] = None,
        manual_scores: Optional[Mapping[str, float]] = None
    ) -> Attempt:
        """
        Complete and score an attempt.

        Expiry is re-checked here: a submission that arrives after the
        deadline times the attempt out instead of scoring it.

        Args:
            attempt_id: Attempt to complete
            answers: Final answers, merged over the saved ones
            student_id: Owner of the attempt
            manual_scores: Points for descriptive questions, from an external grader

        Raises:
            AnswerShapeError: If an answer does not fit its question's type
            AttemptExpiredError: If the time is up (the attempt is timed out)
            AttemptStateConflictError: If the attempt is no longer in progress
        """
        attempt, quiz = await self._load_attempt(attempt_id, student_id)
        now = self.clock()
        checked = self._check_answers(quiz, answers or {})

        if attempt.is_in_progress and attempt.is_expired(quiz, now):
            await self._timeout(attempt, quiz, now)
            raise AttemptExpiredError(attempt_id)

        for question_id, value in (manual_scores or {}).items():
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ValidationError(
                    "Manual scores must be finite numbers",
                    details={"question_id": question_id}
                )

        summary = attempt.complete(quiz, checked, now, manual_scores)
        await self.repository.update_attempt(attempt, "complete")
        LoggerAdapter(logger, {"attempt": attempt.id, "student": attempt.student_id}).info(
            f"Attempt completed with {summary.score}/{summary.total_score} ({summary.percentage}%)"
        )
        return attempt

    async def abandon_attempt(self, attempt_id: str, student_id: Optional[str] = None) -> Attempt:
        """
        Abandon an attempt without scoring it.

        Raises:
            AttemptStateConflictError: If the attempt is no longer in progress
        """
        attempt, _ = await self._load_attempt(attempt_id, student_id)
        attempt.abandon(self.clock())
        await self.repository.update_attempt(attempt, "abandon")
        LoggerAdapter(logger, {"attempt": attempt.id, "student": attempt.student_id}).info("Attempt abandoned")
        return attempt

    async def timeout_attempt(self, attempt_id: str, student_id: Optional[str] = None) -> Attempt:
        """
        Time out an attempt whose deadline has passed.

        Raises:
            AttemptNotExpiredError: If the deadline has not passed
            AttemptStateConflictError: If the attempt is no longer in progress
        """
        attempt, quiz = await self._load_attempt(attempt_id, student_id)
        return await self._timeout(attempt, quiz, self.clock())

    async def expire_overdue_attempts(self, now: Optional[datetime.datetime] = None) -> int:
        """
        Time out every in-progress attempt whose deadline has passed.

        Returns:
            Number of attempts timed out
        """
        now = now or self.clock()
        quizzes: Dict[str, Optional[Quiz]] = {}
        expired = 0

        for attempt in await self.repository.list_attempts(status=AttemptStatus.IN_PROGRESS):
            if attempt.quiz_id not in quizzes:
                quizzes[attempt.quiz_id] = await self.repository.get_quiz(attempt.quiz_id)
            quiz = quizzes[attempt.quiz_id]
            if quiz is None or not attempt.is_expired(quiz, now):
                continue
            try:
                await self._timeout(attempt, quiz, now)
            except AttemptStateConflictError as e:
                # Finished or saved by its student since the listing
                LoggerAdapter(logger, {"attempt": attempt.id}).warning(f"Skipped overdue attempt: {e}")
                continue
            expired += 1

        if expired:
            logger.info(f"Timed out {expired} overdue attempts")
        return expired

    async def get_attempt_view(self, attempt_id: str, student_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Build the student-facing view of an attempt.

        In-progress attempts include the questions without their answers.
        Score fields appear once the attempt has been scored; correct answers
        and explanations only when the quiz reveals them after completion.
        """
        attempt, quiz = await self._load_attempt(attempt_id, student_id)
        now = self.clock()

        view = {
            "id": attempt.id,
            "quiz_id": quiz.id,
            "quiz_title": quiz.title,
            "student_id": attempt.student_id,
            "status": attempt.status.value,
            "status_label": attempt.status_label,
            "started_at": attempt.started_at,
            "completed_at": attempt.completed_at,
            "time_limit": quiz.time_limit,
            "remaining_time": attempt.remaining_time(quiz, now) if attempt.is_in_progress else 0,
            "is_expired": attempt.is_in_progress and attempt.is_expired(quiz, now),
            "can_be_resumed": attempt.can_be_resumed(quiz, now),
            "progress_percentage": attempt.progress_percentage(quiz),
            "total_questions": quiz.total_questions,
            "answers": attempt.answers,
        }

        if attempt.is_in_progress:
            view["questions"] = [
                q.to_dict(reveal_answers=False, randomize=quiz.is_randomized, seed=attempt.id)
                for q in quiz.questions
            ]
            return view

        view["time_taken"] = attempt.time_taken
        view["time_taken_formatted"] = attempt.time_taken_formatted

        if attempt.status in (AttemptStatus.COMPLETED, AttemptStatus.TIMED_OUT):
            view.update(
                score=attempt.score,
                total_score=attempt.total_score,
                percentage=attempt.percentage,
                is_passed=attempt.is_passed,
                grade=attempt.grade,
                feedback=attempt.feedback,
            )

        if quiz.show_answers_after and attempt.status is AttemptStatus.COMPLETED:
            view["results"] = [
                {
                    **q.to_dict(reveal_answers=True),
                    "given_answer": attempt.answers.get(q.id),
                    "is_correct": q.validate(attempt.answers.get(q.id)),
                    "points_earned": q.calculate_score(attempt.answers.get(q.id), attempt.manual_scores.get(q.id)),
                }
                for q in quiz.questions
            ]

        return view
