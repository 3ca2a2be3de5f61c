"""
Quiz Router

This module exports the router from the quiz controller module.
"""

from academy.assessments.quiz.controller import router
from academy.common.logger import app_logger

logger = app_logger.getChild("quiz.router")
logger.debug(f"Quiz router loaded with {len(router.routes)} routes")

__all__ = ['router']
