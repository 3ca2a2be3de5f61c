"""
Academy Quiz Engine

The quiz and assessment engine of the academy administration system:
quizzes with heterogeneous question types, timed student attempts,
per-question answer validation and final scoring.
"""

__version__ = "1.0.0"
