"""
Automatic Difficulty Adaptation

Keeps each student inside their zone of proximal development by moving the
topic difficulty one step up after a mastery streak, one step down when they
struggle, and holding it otherwise.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from adaptive_tutor.config import DifficultyConfig
from adaptive_tutor.performance_state import StudentPerformanceState, apply_difficulty
from adaptive_tutor.question import Difficulty

logger = logging.getLogger(__name__)

REASON_MASTERY = "mastery streak"
REASON_STRUGGLE = "struggle detected"
REASON_STEADY = "steady state"


@dataclass(frozen=True)
class DifficultyDecision:
    """Result of a difficulty check."""
    level: Difficulty
    previous: Difficulty
    changed: bool
    reason: str
    direction: Optional[str] = None  # "increase", "decrease", or None

    @classmethod
    def hold(cls, level: Difficulty, reason: str = REASON_STEADY) -> "DifficultyDecision":
        return cls(level=level, previous=level, changed=False, reason=reason)


class DifficultyAdapter:
    """
    Adjusts difficulty based on the student's performance window.

    Algorithm (first matching rule wins):
    - streak >= 3 and accuracy >= 0.8 -> one level up
    - last two answers wrong, or accuracy < 0.4 over >= 3 answers -> one level down
    - otherwise hold

    The check is a pure read of the state, so calling it twice without a new
    answer in between gives the same decision.
    """

    def __init__(self, config: Optional[DifficultyConfig] = None):
        self.config = config or DifficultyConfig()

    def next_difficulty(self, state: StudentPerformanceState) -> DifficultyDecision:
        """
        Decide the next difficulty level.

        Args:
            state: Student's performance state for the topic

        Returns:
            DifficultyDecision with the level to use next
        """
        current = state.current_difficulty

        if self._is_mastery_streak(state):
            new_level = self._raise_difficulty(current)
            return self._decision(current, new_level, REASON_MASTERY, "increase")

        if self._is_struggling(state):
            new_level = self._lower_difficulty(current)
            return self._decision(current, new_level, REASON_STRUGGLE, "decrease")

        return self._decision(current, current, REASON_STEADY, None)

    def _is_mastery_streak(self, state: StudentPerformanceState) -> bool:
        return (
            state.current_streak >= self.config.mastery_streak
            and state.accuracy_rate >= self.config.mastery_accuracy
        )

    def _is_struggling(self, state: StudentPerformanceState) -> bool:
        needed = self.config.struggle_consecutive_wrong
        last = state.recent_answers[-needed:]
        if len(last) == needed and not any(a.correct for a in last):
            return True
        return (
            len(state.recent_answers) >= self.config.struggle_min_window
            and state.accuracy_rate < self.config.struggle_accuracy
        )

    def _decision(
        self,
        current: Difficulty,
        new_level: Difficulty,
        reason: str,
        direction: Optional[str]
    ) -> DifficultyDecision:
        changed = new_level is not current
        return DifficultyDecision(
            level=new_level,
            previous=current,
            changed=changed,
            reason=reason,
            direction=direction if changed else None,
        )

    def _raise_difficulty(self, current: Difficulty) -> Difficulty:
        """Raise difficulty level."""
        return current.step_up()

    def _lower_difficulty(self, current: Difficulty) -> Difficulty:
        """Lower difficulty level."""
        return current.step_down()

    def apply_adjustment(
        self,
        state: StudentPerformanceState,
        decision: DifficultyDecision
    ) -> StudentPerformanceState:
        """
        Apply a difficulty decision to a performance state.

        Args:
            state: StudentPerformanceState the decision was computed from
            decision: DifficultyDecision result

        Returns:
            The state at the decided level (the same object if nothing changed)
        """
        if not decision.changed:
            return state

        logger.info(
            f"📊 [DifficultyAdapter] {state.user_id[:20]}/{state.topic}: "
            f"{decision.previous.value} → {decision.level.value} ({decision.reason})"
        )
        return apply_difficulty(state, decision.level)
