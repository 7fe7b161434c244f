"""
Engine Configuration

Every threshold the engine uses lives here as a named, overridable default.

The numbers are the values the product shipped with; none of them has been
calibrated, so treat them as placeholders rather than tuned constants.
Override per component, or load a few common knobs from the environment
(`.env` is honoured) with `EngineConfig.from_env()`.
"""

import os
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from adaptive_tutor.errors import ConfigurationError
from adaptive_tutor.question import Difficulty


class PerformanceConfig(BaseModel):
    """Sliding window and mastery bookkeeping."""
    window_size: int = Field(default=10, ge=1)
    mastery_gain_unassisted: int = Field(default=2, ge=0)
    mastery_gain_assisted: int = Field(default=1, ge=0)
    mastery_loss: int = Field(default=1, ge=0)
    initial_mastery: int = Field(default=50, ge=0, le=100)
    initial_difficulty: Difficulty = Difficulty.MEDIUM
    struggling_threshold: float = Field(default=0.40, ge=0.0, le=1.0)
    strength_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    tag_min_answers: int = Field(default=3, ge=1)
    # Reported while the window is empty
    neutral_accuracy: float = Field(default=0.75, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_tag_thresholds(self):
        if self.struggling_threshold >= self.strength_threshold:
            raise ValueError("struggling_threshold must be below strength_threshold")
        return self


class ScaffoldingConfig(BaseModel):
    """Hint selection and struggle detection."""
    # Attempt numbers at which the hint and then the worked example unlock
    hint_attempt: int = Field(default=2, ge=1)
    worked_example_attempt: int = Field(default=3, ge=1)
    # hints_usage_rate at or above this skips the level-1 nudge
    hint_reliance_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    struggle_lookback: int = Field(default=3, ge=1)
    struggle_avg_hints: float = Field(default=2.0, ge=0.0)
    struggle_avg_time_ms: int = Field(default=60000, ge=0)
    low_mastery: int = Field(default=30, ge=0, le=100)
    high_mastery: int = Field(default=70, ge=0, le=100)

    @model_validator(mode="after")
    def _check_ladder(self):
        if self.hint_attempt >= self.worked_example_attempt:
            raise ValueError("hint_attempt must come before worked_example_attempt")
        return self


class DifficultyConfig(BaseModel):
    """ZPD adjustment rules."""
    mastery_streak: int = Field(default=3, ge=1)
    mastery_accuracy: float = Field(default=0.8, ge=0.0, le=1.0)
    struggle_consecutive_wrong: int = Field(default=2, ge=1)
    struggle_accuracy: float = Field(default=0.4, ge=0.0, le=1.0)
    struggle_min_window: int = Field(default=3, ge=1)


class InterventionConfig(BaseModel):
    """Real-time intervention thresholds."""
    celebration_streak: int = Field(default=3, ge=1)
    encouragement_streak: int = Field(default=2, ge=1)
    break_emotion_level: float = Field(default=0.7, ge=0.0, le=1.0)
    topic_switch_emotion_level: float = Field(default=0.5, ge=0.0, le=1.0)
    break_consecutive_wrong: int = Field(default=3, ge=1)
    topic_switch_consecutive_wrong: int = Field(default=2, ge=1)
    baseline_time_ms: int = Field(default=30000, ge=1)
    stuck_multiplier: float = Field(default=2.0, gt=0.0)
    intervention_attempts: int = Field(default=2, ge=1)
    break_session_minutes: int = Field(default=30, ge=1)
    break_consecutive_wrong_long: int = Field(default=4, ge=1)
    topic_switch_min_attempts: int = Field(default=5, ge=0)
    topic_switch_max_accuracy: float = Field(default=0.4, ge=0.0, le=1.0)

    @property
    def stuck_after_ms(self) -> float:
        return self.baseline_time_ms * self.stuck_multiplier


def _default_difficulty_bonus() -> Dict[Difficulty, int]:
    # Advanced carries no bonus; the table stops at hard
    return {
        Difficulty.BEGINNER: 0,
        Difficulty.EASY: 5,
        Difficulty.MEDIUM: 10,
        Difficulty.HARD: 20,
        Difficulty.ADVANCED: 0,
    }


class RewardConfig(BaseModel):
    """XP constants."""
    base_xp: int = Field(default=10, ge=0)
    difficulty_bonus: Dict[Difficulty, int] = Field(default_factory=_default_difficulty_bonus)
    speed_bonus: int = Field(default=5, ge=0)
    speed_threshold_ms: int = Field(default=10000, ge=0)
    consecutive_bonus: int = Field(default=3, ge=0)
    xp_per_level: int = Field(default=100, ge=1)

    @field_validator("difficulty_bonus")
    @classmethod
    def _fill_missing_levels(cls, value: Dict[Difficulty, int]) -> Dict[Difficulty, int]:
        merged = {level: 0 for level in Difficulty}
        merged.update(value)
        return merged


class SessionConfig(BaseModel):
    """Session orchestration."""
    # Incorrect answers below this count are retries on the same question
    max_attempts_per_question: int = Field(default=3, ge=1)
    default_session_size: int = Field(default=5, ge=1)


class EngineConfig(BaseModel):
    """Aggregate configuration handed to the orchestrator."""
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    scaffolding: ScaffoldingConfig = Field(default_factory=ScaffoldingConfig)
    difficulty: DifficultyConfig = Field(default_factory=DifficultyConfig)
    interventions: InterventionConfig = Field(default_factory=InterventionConfig)
    rewards: RewardConfig = Field(default_factory=RewardConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)

    @classmethod
    def build(cls, **overrides) -> "EngineConfig":
        """Validate overrides, surfacing problems as ConfigurationError."""
        try:
            return cls.model_validate(overrides)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid engine configuration: {e}") from e

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "EngineConfig":
        """
        Build a config from environment variables.

        Recognised variables: TUTOR_WINDOW_SIZE, TUTOR_MAX_ATTEMPTS,
        TUTOR_XP_PER_LEVEL, TUTOR_BASELINE_TIME_MS. Anything unset keeps its default.
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        overrides: Dict[str, Dict[str, str]] = {}
        env_map = {
            "TUTOR_WINDOW_SIZE": ("performance", "window_size"),
            "TUTOR_MAX_ATTEMPTS": ("session", "max_attempts_per_question"),
            "TUTOR_XP_PER_LEVEL": ("rewards", "xp_per_level"),
            "TUTOR_BASELINE_TIME_MS": ("interventions", "baseline_time_ms"),
        }
        for env_name, (section, key) in env_map.items():
            raw = os.getenv(env_name)
            if raw:
                overrides.setdefault(section, {})[key] = raw

        return cls.build(**overrides)
