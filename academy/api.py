"""
Central API router and exception handlers for the academy quiz engine.

This module provides:
- A central router that includes the quiz router under the versioned prefix
- Exception handlers that render errors in the standard error format
"""

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from academy.assessments.quiz.router import router as quiz_router
from academy.common.error_handling import AcademyError, error_response, http_status_for, log_error
from academy.common.logger import app_logger

logger = app_logger.getChild("api")

main_router = APIRouter()
main_router.include_router(quiz_router, prefix="/quizzes", tags=["quizzes"])


async def academy_exception_handler(request: Request, exc: AcademyError) -> JSONResponse:
    """
    Render a domain error with the HTTP status its category maps to.

    Args:
        request: The incoming request
        exc: The raised error

    Returns:
        A JSON response in the standard error format
    """
    status_code = http_status_for(exc)
    if status_code >= 500:
        log_error(exc, include_stack_trace=True, context={"path": request.url.path})
    else:
        logger.info(f"{request.method} {request.url.path} -> {status_code} {exc.code.value}")
    return JSONResponse(status_code=status_code, content=error_response(exc))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle request validation errors and return a standardized response.

    Args:
        request: The incoming request
        exc: The validation exception

    Returns:
        A JSON response with error details
    """
    error_details = []
    for error in exc.errors():
        error_details.append({
            "location": list(error.get("loc", [])),
            "message": error.get("msg", "Unknown validation error"),
            "type": error.get("type", "")
        })

    return JSONResponse(
        status_code=422,
        content={
            "status": "error",
            "code": "validation_error",
            "message": "Validation error",
            "details": {"errors": error_details}
        }
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AcademyError, academy_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
