"""Adaptive tutoring and assessment engine"""
from .config import EngineConfig
from .errors import (
    ConfigurationError,
    InvalidTransitionError,
    OutOfRangeError,
    RepositoryError,
    TutoringEngineError,
)
from .question import Answer, Difficulty, GradedAnswer, Question
from .repository import InMemoryPerformanceRepository, PerformanceRepository, SupabasePerformanceRepository
from .session_orchestrator import AnswerOutcome, TutoringSessionOrchestrator

__all__ = [
    "EngineConfig",
    "TutoringEngineError",
    "ConfigurationError",
    "OutOfRangeError",
    "InvalidTransitionError",
    "RepositoryError",
    "Answer",
    "Difficulty",
    "GradedAnswer",
    "Question",
    "PerformanceRepository",
    "InMemoryPerformanceRepository",
    "SupabasePerformanceRepository",
    "AnswerOutcome",
    "TutoringSessionOrchestrator",
]
