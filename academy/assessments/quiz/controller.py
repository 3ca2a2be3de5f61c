"""
Quiz Controller

This module implements the API controller for quizzes, providing endpoints
for authoring quizzes and questions and for running attempts.

Identity comes from the bearer token; an attempt can only be seen or
changed by the student who owns it.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status

from academy.assessments.quiz.models import Quiz
from academy.assessments.quiz.schemas import (
    CompleteAttemptRequest,
    QuestionCreate,
    QuestionUpdate,
    QuizCreate,
    QuizListResponse,
    QuizStatsResponse,
    QuizUpdate,
    SaveAnswersRequest,
)
from academy.assessments.quiz.service import QuizAssessmentService
from academy.common.auth import get_current_user_id
from academy.common.logger import app_logger

logger = app_logger.getChild("quiz.controller")

router = APIRouter()


def get_quiz_service(request: Request) -> QuizAssessmentService:
    """Dependency providing the application's quiz service."""
    return request.app.state.quiz_service


def _quiz_view(quiz: Quiz, user_id: str, include_questions: bool = True) -> Dict[str, Any]:
    # Authors see answer keys; everyone else sees the student-facing view
    return quiz.to_dict(include_questions=include_questions, reveal_answers=quiz.created_by == user_id)


# Attempts

@router.get("/attempts/{attempt_id}")
async def get_attempt(
    attempt_id: str,
    user_id: str = Depends(get_current_user_id),
    service: QuizAssessmentService = Depends(get_quiz_service)
):
    """Get an attempt with its remaining time, progress and, once scored, its result."""
    return await service.get_attempt_view(attempt_id, student_id=user_id)


@router.put("/attempts/{attempt_id}/answers")
async def save_answers(
    attempt_id: str,
    payload: SaveAnswersRequest,
    user_id: str = Depends(get_current_user_id),
    service: QuizAssessmentService = Depends(get_quiz_service)
):
    """Save answers to an attempt in progress."""
    await service.save_answers(attempt_id, payload.answers, student_id=user_id)
    return await service.get_attempt_view(attempt_id, student_id=user_id)


@router.post("/attempts/{attempt_id}/complete")
async def complete_attempt(
    attempt_id: str,
    payload: Optional[CompleteAttemptRequest] = None,
    user_id: str = Depends(get_current_user_id),
    service: QuizAssessmentService = Depends(get_quiz_service)
):
    """Complete and score an attempt."""
    answers = payload.answers if payload else None
    await service.complete_attempt(attempt_id, answers, student_id=user_id)
    return await service.get_attempt_view(attempt_id, student_id=user_id)


@router.post("/attempts/{attempt_id}/abandon")
async def abandon_attempt(
    attempt_id: str,
    user_id: str = Depends(get_current_user_id),
    service: QuizAssessmentService = Depends(get_quiz_service)
):
    """Abandon an attempt without scoring it."""
    await service.abandon_attempt(attempt_id, student_id=user_id)
    return await service.get_attempt_view(attempt_id, student_id=user_id)


@router.post("/attempts/{attempt_id}/timeout")
async def timeout_attempt(
    attempt_id: str,
    user_id: str = Depends(get_current_user_id),
    service: QuizAssessmentService = Depends(get_quiz_service)
):
    """Time out an attempt whose deadline has passed."""
    await service.timeout_attempt(attempt_id, student_id=user_id)
    return await service.get_attempt_view(attempt_id, student_id=user_id)


# Quizzes

@router.get("", response_model=QuizListResponse)
async def list_quizzes(
    search: Optional[str] = Query(None, description="Matches title or description"),
    category: Optional[str] = None,
    difficulty: Optional[str] = None,
    available: bool = Query(False, description="Only quizzes that can be taken now"),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    service: QuizAssessmentService = Depends(get_quiz_service)
):
    """List quizzes, newest first."""
    per_page = per_page or service.page_size
    quizzes, total = await service.list_quizzes(
        search=search,
        category=category,
        difficulty=difficulty,
        available_only=available,
        limit=per_page,
        offset=(page - 1) * per_page,
    )
    return QuizListResponse(
        items=[quiz.to_dict() for quiz in quizzes],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_quiz(
    payload: QuizCreate,
    user_id: str = Depends(get_current_user_id),
    service: QuizAssessmentService = Depends(get_quiz_service)
):
    """Create a quiz, optionally with its questions."""
    quiz = await service.create_quiz(payload.model_dump(exclude_none=True), created_by=user_id)
    return _quiz_view(quiz, user_id)


@router.get("/{quiz_id}")
async def get_quiz(
    quiz_id: str,
    user_id: str = Depends(get_current_user_id),
    service: QuizAssessmentService = Depends(get_quiz_service)
):
    """Get a quiz with its questions; answers are only shown to the author."""
    quiz = await service.get_quiz(quiz_id)
    return _quiz_view(quiz, user_id)


@router.patch("/{quiz_id}")
async def update_quiz(
    quiz_id: str,
    payload: QuizUpdate,
    user_id: str = Depends(get_current_user_id),
    service: QuizAssessmentService = Depends(get_quiz_service)
):
    """Update quiz settings."""
    quiz = await service.update_quiz(quiz_id, payload.model_dump(exclude_unset=True))
    return _quiz_view(quiz, user_id)


@router.delete("/{quiz_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_quiz(
    quiz_id: str,
    user_id: str = Depends(get_current_user_id),
    service: QuizAssessmentService = Depends(get_quiz_service)
):
    """Delete a quiz that has never been attempted."""
    await service.delete_quiz(quiz_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{quiz_id}/stats", response_model=QuizStatsResponse)
async def get_quiz_stats(
    quiz_id: str,
    user_id: str = Depends(get_current_user_id),
    service: QuizAssessmentService = Depends(get_quiz_service)
):
    """Attempt statistics of a quiz."""
    return await service.get_quiz_stats(quiz_id)


# Questions

@router.post("/{quiz_id}/questions", status_code=status.HTTP_201_CREATED)
async def add_question(
    quiz_id: str,
    payload: QuestionCreate,
    user_id: str = Depends(get_current_user_id),
    service: QuizAssessmentService = Depends(get_quiz_service)
):
    """Add a question to a quiz."""
    question = await service.add_question(quiz_id, payload.model_dump())
    return question.to_dict()


@router.patch("/{quiz_id}/questions/{question_id}")
async def update_question(
    quiz_id: str,
    question_id: str,
    payload: QuestionUpdate,
    user_id: str = Depends(get_current_user_id),
    service: QuizAssessmentService = Depends(get_quiz_service)
):
    """Update a question."""
    question = await service.update_question(quiz_id, question_id, payload.model_dump(exclude_unset=True))
    return question.to_dict()


@router.delete("/{quiz_id}/questions/{question_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_question(
    quiz_id: str,
    question_id: str,
    user_id: str = Depends(get_current_user_id),
    service: QuizAssessmentService = Depends(get_quiz_service)
):
    """Delete a question while no attempt is in progress."""
    await service.delete_question(quiz_id, question_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Attempts of a quiz

@router.post("/{quiz_id}/attempts", status_code=status.HTTP_201_CREATED)
async def start_attempt(
    quiz_id: str,
    user_id: str = Depends(get_current_user_id),
    service: QuizAssessmentService = Depends(get_quiz_service)
):
    """Start an attempt, or resume the one in progress."""
    attempt = await service.start_attempt(quiz_id, user_id)
    return await service.get_attempt_view(attempt.id, student_id=user_id)


@router.get("/{quiz_id}/attempts")
async def list_attempts(
    quiz_id: str,
    user_id: str = Depends(get_current_user_id),
    service: QuizAssessmentService = Depends(get_quiz_service)
) -> List[Dict[str, Any]]:
    """List attempts at a quiz: all of them for its author, otherwise the caller's own."""
    quiz = await service.get_quiz(quiz_id)
    student_id = None if quiz.created_by == user_id else user_id
    attempts = await service.list_attempts(quiz_id, student_id=student_id)
    return [attempt.to_dict() for attempt in attempts]
