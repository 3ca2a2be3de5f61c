"""
Main application entry point for the academy quiz engine.

Usage:
    - ASGI server: uvicorn academy.main:app
    - Direct: python -m academy.main
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from academy.api import main_router, register_exception_handlers
from academy.assessments.quiz.repository import SQLAlchemyQuizRepository
from academy.assessments.quiz.service import QuizAssessmentService
from academy.common.logger import app_logger, configure_logger
from academy.config import Settings, settings as default_settings
from academy.database.init_db import close_database, get_session_factory, initialize_database

logger = app_logger.getChild("main")


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[QuizAssessmentService] = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Application settings (defaults to the environment)
        service: Pre-built quiz service; when given, no database is initialized

    Returns:
        Configured FastAPI application
    """
    settings = settings or default_settings
    configure_logger(
        name="academy",
        level=settings.LOG_LEVEL,
        use_json=settings.LOG_JSON,
        log_file=settings.LOG_FILE or None,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize the store on startup and dispose of it on shutdown."""
        if service is not None:
            app.state.quiz_service = service
            logger.info("Application startup complete (provided service)")
            yield
            return

        await initialize_database(
            database_url=settings.DATABASE_URL,
            echo=settings.SQL_ECHO,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            create_tables=settings.AUTO_CREATE_SCHEMA,
        )
        app.state.quiz_service = QuizAssessmentService(
            SQLAlchemyQuizRepository(get_session_factory()),
            score_timed_out_attempts=settings.SCORE_TIMED_OUT_ATTEMPTS,
            page_size=settings.QUIZ_LIST_PAGE_SIZE,
        )
        logger.info("Application startup complete")
        try:
            yield
        finally:
            await close_database()
            logger.info("Application shutdown complete")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Quiz and assessment engine for the academy administration system",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(main_router, prefix=settings.API_V1_STR)

    @app.get("/")
    async def root():
        return {"name": settings.PROJECT_NAME, "status": "ok"}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("academy.main:app", host="0.0.0.0", port=8000, reload=False)
