"""
Error Handling System for the academy quiz engine

This module provides the error framework shared by the domain, service and
API layers:
1. Custom exception hierarchy separating precondition, state-conflict,
   validation, not-found and database failures
2. Structured error information for logging and reporting
3. Error response generation and HTTP status mapping for the API
"""

import logging
import traceback
from enum import Enum
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for errors"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCode(Enum):
    """Standard error codes for the quiz engine"""
    # General errors
    UNKNOWN_ERROR = "unknown_error"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND_ERROR = "not_found_error"

    # Quiz definition errors
    INVALID_QUIZ = "invalid_quiz"
    INVALID_QUESTION = "invalid_question"
    DUPLICATE_QUESTION_ORDER = "duplicate_question_order"
    QUIZ_NOT_FOUND = "quiz_not_found"
    QUESTION_NOT_FOUND = "question_not_found"
    ATTEMPT_NOT_FOUND = "attempt_not_found"

    # Precondition errors
    NOT_AVAILABLE = "not_available"
    MAX_ATTEMPTS_REACHED = "max_attempts_reached"
    MALFORMED_ANSWER = "malformed_answer"
    ATTEMPT_NOT_EXPIRED = "attempt_not_expired"

    # State conflicts
    ATTEMPT_STATE_CONFLICT = "attempt_state_conflict"
    ATTEMPT_EXPIRED = "attempt_expired"
    QUIZ_IN_USE = "quiz_in_use"

    # Database errors
    DATABASE_ERROR = "database_error"


class ErrorInfo(BaseModel):
    """Structured information about an error"""
    model_config = ConfigDict(use_enum_values=True)

    code: ErrorCode
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)
    severity: ErrorSeverity = ErrorSeverity.ERROR
    details: Optional[Dict[str, Any]] = None
    exception_type: Optional[str] = None
    exception_message: Optional[str] = None
    stack_trace: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None

    @field_validator('stack_trace', mode='before')
    @classmethod
    def validate_stack_trace(cls, v):
        """Format stack trace if it's a string"""
        if isinstance(v, str):
            return v.splitlines()
        return v


class AcademyError(Exception):
    """Base exception class for all quiz engine errors"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.severity = severity
        self.details = details or {}
        self.cause = cause
        self.context = context or {}
        self.timestamp = datetime.now()

    def to_error_info(self, include_stack_trace: bool = False) -> ErrorInfo:
        """Convert the exception to an ErrorInfo object"""
        stack_trace = None
        if include_stack_trace:
            stack_trace = traceback.format_exc().splitlines()

        details = dict(self.details)
        if self.cause is not None:
            details["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause)
            }

        return ErrorInfo(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            severity=self.severity,
            details=details,
            exception_type=type(self).__name__,
            exception_message=str(self),
            stack_trace=stack_trace,
            context=self.context
        )

    def to_dict(self, include_stack_trace: bool = False) -> Dict[str, Any]:
        """Convert the exception to a dictionary"""
        return self.to_error_info(include_stack_trace).model_dump(mode="json")

    def __str__(self) -> str:
        base_str = f"{self.code.value}: {self.message}"
        if self.details:
            base_str += f" (details: {self.details})"
        if self.cause:
            base_str += f" caused by {type(self.cause).__name__}: {str(self.cause)}"
        return base_str


# Validation errors

class ValidationError(AcademyError):
    """Error raised when input validation fails"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=code,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause,
            context=context
        )


class InvalidQuizError(ValidationError):
    """Error raised when quiz metadata violates its invariants"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.INVALID_QUIZ, details=details)


class InvalidQuestionError(ValidationError):
    """Error raised when a question definition violates its type's shape rules"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.INVALID_QUESTION, details=details)


class DuplicateQuestionOrderError(ValidationError):
    """Error raised when a question order is already taken within a quiz"""

    def __init__(self, quiz_id: str, order: int):
        super().__init__(
            f"Quiz {quiz_id} already has a question at order {order}",
            code=ErrorCode.DUPLICATE_QUESTION_ORDER,
            details={"quiz_id": quiz_id, "order": order}
        )


# Not found errors

class NotFoundError(AcademyError):
    """Error raised when a requested resource is not found"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.NOT_FOUND_ERROR,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=code,
            severity=ErrorSeverity.WARNING,
            details=details,
            context=context
        )


class QuizNotFoundError(NotFoundError):
    def __init__(self, quiz_id: str):
        super().__init__(
            f"Quiz with ID {quiz_id} not found",
            code=ErrorCode.QUIZ_NOT_FOUND,
            details={"quiz_id": quiz_id}
        )


class QuestionNotFoundError(NotFoundError):
    def __init__(self, question_id: str, quiz_id: Optional[str] = None):
        details = {"question_id": question_id}
        if quiz_id is not None:
            details["quiz_id"] = quiz_id
        super().__init__(
            f"Question with ID {question_id} not found",
            code=ErrorCode.QUESTION_NOT_FOUND,
            details=details
        )


class AttemptNotFoundError(NotFoundError):
    def __init__(self, attempt_id: str):
        super().__init__(
            f"Attempt with ID {attempt_id} not found",
            code=ErrorCode.ATTEMPT_NOT_FOUND,
            details={"attempt_id": attempt_id}
        )


# Precondition errors

class PreconditionError(AcademyError):
    """
    Base class for requests rejected before any state is created.

    These are reported to the caller immediately and never retried.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(
            message=message,
            code=code,
            severity=ErrorSeverity.INFO,
            details=details,
            cause=cause
        )


class QuizUnavailableError(PreconditionError):
    def __init__(self, quiz_id: str):
        super().__init__(
            f"Quiz {quiz_id} is not available",
            code=ErrorCode.NOT_AVAILABLE,
            details={"quiz_id": quiz_id}
        )


class MaxAttemptsReachedError(PreconditionError):
    def __init__(self, quiz_id: str, student_id: str, max_attempts: int):
        super().__init__(
            f"Student {student_id} has used all {max_attempts} attempts for quiz {quiz_id}",
            code=ErrorCode.MAX_ATTEMPTS_REACHED,
            details={"quiz_id": quiz_id, "student_id": student_id, "max_attempts": max_attempts}
        )


class AnswerShapeError(PreconditionError):
    """Error raised when an answer payload does not match its question's type"""

    def __init__(self, question_id: Optional[str], question_type: str, reason: str):
        super().__init__(
            f"Malformed {question_type} answer for question {question_id}: {reason}",
            code=ErrorCode.MALFORMED_ANSWER,
            details={"question_id": question_id, "question_type": question_type, "reason": reason}
        )


class AttemptNotExpiredError(PreconditionError):
    def __init__(self, attempt_id: str, remaining_seconds: int):
        super().__init__(
            f"Attempt {attempt_id} has not expired yet",
            code=ErrorCode.ATTEMPT_NOT_EXPIRED,
            details={"attempt_id": attempt_id, "remaining_seconds": remaining_seconds}
        )


# State conflicts

class StateConflictError(AcademyError):
    """
    Base class for operations that conflict with a record's current state.

    Kept distinct from PreconditionError so that a client can tell
    "you already finished" from "you can't start".
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.ATTEMPT_STATE_CONFLICT,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=code,
            severity=ErrorSeverity.WARNING,
            details=details
        )


class AttemptStateConflictError(StateConflictError):
    def __init__(self, attempt_id: str, current_status: str, transition: str):
        super().__init__(
            f"Cannot {transition} attempt {attempt_id} in status '{current_status}'",
            details={
                "attempt_id": attempt_id,
                "current_status": current_status,
                "transition": transition
            }
        )
        self.current_status = current_status


class AttemptExpiredError(StateConflictError):
    """Raised when completion arrives after the deadline; the attempt is timed out instead"""

    def __init__(self, attempt_id: str):
        super().__init__(
            f"Attempt {attempt_id} expired before completion and was timed out",
            code=ErrorCode.ATTEMPT_EXPIRED,
            details={"attempt_id": attempt_id}
        )


class QuizInUseError(StateConflictError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.QUIZ_IN_USE, details=details)


# Infrastructure errors

class DatabaseError(AcademyError):
    """Error raised when the store fails; the caller retries the whole operation"""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(
            message=f"Database error: {message}",
            code=ErrorCode.DATABASE_ERROR,
            severity=ErrorSeverity.ERROR,
            cause=cause
        )


def convert_exception(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None
) -> AcademyError:
    """
    Convert a standard exception to an AcademyError.

    Args:
        exception: The exception to convert
        context: Additional context information

    Returns:
        An AcademyError wrapping the original exception
    """
    if isinstance(exception, AcademyError):
        if context:
            exception.context.update(context)
        return exception

    if isinstance(exception, ValueError):
        return ValidationError(str(exception), cause=exception, context=context)

    return AcademyError(
        message=str(exception) or type(exception).__name__,
        code=ErrorCode.UNKNOWN_ERROR,
        cause=exception,
        context=context
    )


_HTTP_STATUS_BY_TYPE = (
    (NotFoundError, 404),
    (StateConflictError, 409),
    (QuizUnavailableError, 403),
    (MaxAttemptsReachedError, 403),
    (PreconditionError, 422),
    (ValidationError, 422),
    (DatabaseError, 500),
)


def http_status_for(error: Exception) -> int:
    """Map an error to the HTTP status code the API reports for it."""
    for error_type, status_code in _HTTP_STATUS_BY_TYPE:
        if isinstance(error, error_type):
            return status_code
    return 500


def error_response(
    error: Union[AcademyError, Exception],
    include_details: bool = True,
    include_stack_trace: bool = False
) -> Dict[str, Any]:
    """
    Generate a standardized API error response.

    Args:
        error: The error to generate a response for
        include_details: Whether to include error details
        include_stack_trace: Whether to include stack trace

    Returns:
        Standardized error response dictionary
    """
    if not isinstance(error, AcademyError):
        error = convert_exception(error)

    error_info = error.to_error_info(include_stack_trace=include_stack_trace)

    response = {
        "status": "error",
        "code": error_info.code,
        "message": error_info.message
    }

    if include_details and error_info.details:
        response["details"] = error_info.details

    return response


def log_error(
    error: Union[AcademyError, Exception],
    level: Optional[int] = None,
    include_stack_trace: bool = False,
    context: Optional[Dict[str, Any]] = None
) -> None:
    """
    Log an error with standardized format.

    Args:
        error: The error to log
        level: Logging level (derived from the error severity when omitted)
        include_stack_trace: Whether to include stack trace
        context: Additional context to include
    """
    error = convert_exception(error, context=context)

    if level is None:
        level = getattr(logging, error.severity.value.upper(), logging.ERROR)

    message = f"ERROR [{error.code.value}]: {error.message}"

    if error.context:
        context_str = ", ".join(f"{k}={v}" for k, v in error.context.items())
        message += f" (context: {context_str})"

    if error.cause:
        message += f" caused by {type(error.cause).__name__}: {str(error.cause)}"

    if include_stack_trace:
        message += f"\n{traceback.format_exc()}"

    logger.log(level, message)
