"""
Scaffolding Selector

Chooses the next piece of help for a question: nothing on the first try, a
hint from the second, the worked example from the third on (both attempt
numbers come from `ScaffoldingConfig`). When there is
nothing left to give, the result is flagged `exhausted` so the caller can
escalate (usually to a break suggestion). That flag is a normal return
value, never an exception.

Selection is a pure function of (question, attempt number, performance state).
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

from adaptive_tutor.config import ScaffoldingConfig
from adaptive_tutor.errors import OutOfRangeError
from adaptive_tutor.performance_state import StudentPerformanceState
from adaptive_tutor.question import GradedAnswer, Hint, Question, WorkedExample

logger = logging.getLogger(__name__)


class ScaffoldingLevel(Enum):
    """How much support a student should get by default."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class HintResult:
    """
    Outcome of a scaffolding lookup.

    `revealed` is the ordered run of hints to show, ending with `hint`.
    A level-2 hint always arrives with the level-1 hint in front of it.
    """
    hint: Optional[Hint] = None
    revealed: Tuple[Hint, ...] = ()
    worked_example: Optional[WorkedExample] = None
    exhausted: bool = False

    @property
    def has_help(self) -> bool:
        return self.hint is not None or self.worked_example is not None

    @classmethod
    def none(cls) -> "HintResult":
        return cls()

    @classmethod
    def exhausted_signal(cls) -> "HintResult":
        return cls(exhausted=True)


class ScaffoldingSelector:
    """Progressive disclosure of hints and worked examples."""

    def __init__(self, config: Optional[ScaffoldingConfig] = None):
        self.config = config or ScaffoldingConfig()

    def next_hint(
        self,
        question: Question,
        attempt_number: int,
        state: StudentPerformanceState
    ) -> HintResult:
        """
        Get the help appropriate for this attempt.

        Args:
            question: Question being attempted
            attempt_number: 1-based attempt counter for the question
            state: Student's performance on the question's topic (read only)

        Returns:
            HintResult with a hint, a worked example, nothing, or the exhausted flag

        Raises:
            OutOfRangeError: If attempt_number is negative
        """
        if attempt_number < 0:
            raise OutOfRangeError(f"attempt_number must be >= 0, got {attempt_number}")

        if attempt_number < self.config.hint_attempt:
            return HintResult.none()

        if attempt_number < self.config.worked_example_attempt:
            return self._hint_for(question, state)

        if question.scaffolding.worked_example is not None:
            return HintResult(worked_example=question.scaffolding.worked_example)

        logger.debug(f"🔍 [Scaffolding] No worked example for '{question.id}' - scaffolding exhausted")
        return HintResult.exhausted_signal()

    def _hint_for(self, question: Question, state: StudentPerformanceState) -> HintResult:
        hints = question.scaffolding.hints
        if not hints:
            return HintResult.exhausted_signal()

        # Students who lean on hints get pointed more directly
        target_level = 2 if state.hints_usage_rate >= self.config.hint_reliance_threshold else 1
        revealed = question.scaffolding.hints_up_to(target_level)
        if not revealed:
            # Lowest authored hint is above the target; start from it
            revealed = hints[:1]
        return HintResult(hint=revealed[-1], revealed=revealed)

    # ------------------------------------------------------------------
    # Struggle heuristics
    # ------------------------------------------------------------------

    def is_struggling(self, recent_answers: Sequence[GradedAnswer]) -> bool:
        """Heavy hint use or very slow answers over the last few questions."""
        if len(recent_answers) < 2:
            return False
        window = list(recent_answers)[-self.config.struggle_lookback:]
        avg_hints = sum(a.hints_used for a in window) / len(window)
        avg_time = sum(a.time_spent_ms for a in window) / len(window)
        return avg_hints > self.config.struggle_avg_hints or avg_time > self.config.struggle_avg_time_ms

    def should_show_worked_example(
        self,
        question: Question,
        attempt_number: int,
        recent_answers: Sequence[GradedAnswer] = ()
    ) -> bool:
        """Worked example after enough attempts, one attempt earlier for struggling students."""
        if question.scaffolding.worked_example is None:
            return False
        if attempt_number >= self.config.worked_example_attempt:
            return True
        return attempt_number >= self.config.hint_attempt and self.is_struggling(recent_answers)

    def optimal_scaffolding_level(
        self,
        mastery_level: int,
        recent_answers: Sequence[GradedAnswer] = ()
    ) -> ScaffoldingLevel:
        if mastery_level < self.config.low_mastery:
            return ScaffoldingLevel.HIGH
        if self.is_struggling(recent_answers):
            return ScaffoldingLevel.HIGH
        if mastery_level < self.config.high_mastery:
            return ScaffoldingLevel.MEDIUM
        return ScaffoldingLevel.LOW

    @staticmethod
    def encouragement_key(hints_used: int, correct: bool) -> str:
        """Message key for the feedback line shown after an answer."""
        if correct and hints_used == 0:
            return "feedback.solved_independently"
        if correct and hints_used == 1:
            return "feedback.used_hint_wisely"
        if correct:
            return "feedback.stuck_with_it"
        if hints_used == 0:
            return "feedback.try_a_hint_next_time"
        return "feedback.keep_practicing"
