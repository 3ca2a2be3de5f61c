"""
Request and response models for the quiz API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SubStatementSchema(BaseModel):
    text: str = Field(..., min_length=1, description="Statement shown to the student")
    is_true: bool = Field(..., description="Whether the statement is true")
    points: int = Field(1, ge=1, description="Points for judging this statement correctly")


class QuestionCreate(BaseModel):
    question_text: str = Field(..., min_length=1)
    question_type: str = Field(..., description="mcq, multiple_answer, true_false, multiple_true_false, "
                                                "fill_blanks, matching or descriptive")
    options: Optional[List[str]] = None
    correct_answer: Any = Field(None, description="Correct answer in the shape of the question type")
    sub_statements: Optional[List[SubStatementSchema]] = None
    points: int = Field(1, ge=1)
    order: Optional[int] = Field(None, ge=1, description="Defaults to after the last question")
    explanation: Optional[str] = None
    is_required: bool = True


class QuestionUpdate(BaseModel):
    question_text: Optional[str] = Field(None, min_length=1)
    question_type: Optional[str] = None
    options: Optional[List[str]] = None
    correct_answer: Any = None
    sub_statements: Optional[List[SubStatementSchema]] = None
    points: Optional[int] = Field(None, ge=1)
    order: Optional[int] = Field(None, ge=1)
    explanation: Optional[str] = None
    is_required: Optional[bool] = None


class QuizCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    category: str = ""
    difficulty: str = Field("medium", description="easy, medium or hard")
    time_limit: Optional[int] = Field(None, ge=1, description="Minutes; omit for an untimed quiz")
    passing_score: int = Field(50, ge=0, le=100)
    is_active: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_randomized: bool = False
    show_answers_after: bool = False
    allow_retake: bool = False
    max_attempts: Optional[int] = Field(None, ge=1)
    questions: Optional[List[QuestionCreate]] = None


class QuizUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = None
    difficulty: Optional[str] = None
    time_limit: Optional[int] = Field(None, ge=1)
    passing_score: Optional[int] = Field(None, ge=0, le=100)
    is_active: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_randomized: Optional[bool] = None
    show_answers_after: Optional[bool] = None
    allow_retake: Optional[bool] = None
    max_attempts: Optional[int] = Field(None, ge=1)


class SaveAnswersRequest(BaseModel):
    answers: Dict[str, Any] = Field(..., description="Question id to answer; null leaves a question unanswered")


class CompleteAttemptRequest(BaseModel):
    answers: Optional[Dict[str, Any]] = Field(None, description="Final answers, merged over the saved ones")


class QuizListResponse(BaseModel):
    items: List[Dict[str, Any]]
    total: int
    page: int
    per_page: int


class QuizStatsResponse(BaseModel):
    quiz_id: str
    total_attempts: int
    completed_attempts: int
    passed_attempts: int
    average_score: float
    average_time: float
    pass_rate: float
