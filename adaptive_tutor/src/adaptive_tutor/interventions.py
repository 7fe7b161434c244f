"""
Real-Time Intervention Engine

Decides how the tutor reacts after every answer and on explicit frustration
signals: encouragement, a hint, a worked example, a break, or a topic switch,
each with a priority.

The engine only touches the session's emotional state, intervention counter
and intervention phase. Performance state is read, never written.
Message text is produced elsewhere; interventions carry message keys.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from adaptive_tutor.config import InterventionConfig
from adaptive_tutor.errors import OutOfRangeError
from adaptive_tutor.performance_state import StudentPerformanceState
from adaptive_tutor.question import Hint, Question, WorkedExample
from adaptive_tutor.scaffolding import ScaffoldingSelector
from adaptive_tutor.session_state import (
    EmotionalState,
    InterventionPhase,
    TutoringSession,
)

logger = logging.getLogger(__name__)


class InterventionType(Enum):
    ENCOURAGEMENT = "encouragement"
    HINT = "hint"
    WORKED_EXAMPLE = "worked-example"
    BREAK_SUGGESTION = "break-suggestion"
    TOPIC_SWITCH = "topic-switch"


class Priority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return ["low", "medium", "high", "urgent"].index(self.value)


@dataclass(frozen=True)
class Intervention:
    type: InterventionType
    message_key: str
    priority: Priority
    hint: Optional[Hint] = None
    worked_example: Optional[WorkedExample] = None

    def to_dict(self):
        return {
            "type": self.type.value,
            "message_key": self.message_key,
            "priority": self.priority.value,
            "hint_id": self.hint.id if self.hint else None,
            "has_worked_example": self.worked_example is not None,
        }


def more_urgent(first: Optional[Intervention], second: Optional[Intervention]) -> Optional[Intervention]:
    """Pick the higher-priority intervention; ties keep the first."""
    if first is None:
        return second
    if second is None:
        return first
    return second if second.priority.rank > first.priority.rank else first


CELEBRATIONS = {
    "perfect_score": "celebration.perfect_score",
    "level_up": "celebration.level_up",
    "streak_5": "celebration.streak_5",
    "fast_learner": "celebration.fast_learner",
    "no_hints": "celebration.no_hints",
    "comeback": "celebration.comeback",
}


class InterventionEngine:
    """
    Intervention state machine.

    Struggle path:  IDLE -> STRUGGLING -> HINTED | WORKED_EXAMPLE | BREAK_SUGGESTED | TOPIC_SWITCH_SUGGESTED
    Mastery path:   IDLE -> MASTERING -> CELEBRATED
    `resolve()` returns to IDLE once the question advances.
    """

    def __init__(
        self,
        config: Optional[InterventionConfig] = None,
        scaffolding: Optional[ScaffoldingSelector] = None
    ):
        self.config = config or InterventionConfig()
        self.scaffolding = scaffolding or ScaffoldingSelector()

    def on_struggle(
        self,
        session: TutoringSession,
        question: Question,
        attempts: int,
        state: StudentPerformanceState
    ) -> Intervention:
        """
        React to a wrong answer on `question`.

        Args:
            session: Active session (emotional state and counters are updated)
            question: Question the student is stuck on
            attempts: Number of attempts made so far on the question
            state: Student's performance state (read only)
        """
        if attempts < 0:
            raise OutOfRangeError(f"attempts must be >= 0, got {attempts}")

        ladder = self.scaffolding.config
        if attempts < ladder.hint_attempt:
            session.intervention_phase = InterventionPhase.STRUGGLING
            return Intervention(InterventionType.ENCOURAGEMENT, "struggle.try_again", Priority.LOW)

        if attempts < ladder.worked_example_attempt:
            help_ = self.scaffolding.next_hint(question, attempts, state)
            session.interventions_used += 1
            session.intervention_phase = InterventionPhase.HINTED
            return Intervention(
                InterventionType.HINT,
                "struggle.hint" if help_.hint else "struggle.hint_generic",
                Priority.MEDIUM,
                hint=help_.hint,
            )

        help_ = self.scaffolding.next_hint(question, attempts, state)
        session.interventions_used += 1
        session.emotional_state = EmotionalState.FRUSTRATED

        if help_.worked_example is not None:
            session.intervention_phase = InterventionPhase.WORKED_EXAMPLE
            return Intervention(
                InterventionType.WORKED_EXAMPLE,
                "struggle.worked_example",
                Priority.HIGH,
                worked_example=help_.worked_example,
            )

        # Scaffolding exhausted
        session.intervention_phase = InterventionPhase.BREAK_SUGGESTED
        return Intervention(InterventionType.BREAK_SUGGESTION, "struggle.take_break", Priority.HIGH)

    def on_mastery(self, session: TutoringSession, streak: int) -> Intervention:
        """React to a correct answer given the student's current streak."""
        session.intervention_phase = InterventionPhase.MASTERING

        if streak >= self.config.celebration_streak:
            session.emotional_state = EmotionalState.EXCITED
            session.intervention_phase = InterventionPhase.CELEBRATED
            return Intervention(InterventionType.ENCOURAGEMENT, "mastery.celebrate_streak", Priority.HIGH)

        session.emotional_state = EmotionalState.CONFIDENT
        if streak >= self.config.encouragement_streak:
            return Intervention(InterventionType.ENCOURAGEMENT, "mastery.on_a_roll", Priority.MEDIUM)

        return Intervention(InterventionType.ENCOURAGEMENT, "mastery.correct", Priority.LOW)

    def on_frustration(
        self,
        session: TutoringSession,
        emotion_level: float,
        consecutive_wrong: int
    ) -> Intervention:
        """
        React to a frustration signal.

        Args:
            session: Active session
            emotion_level: Frustration estimate on a 0-1 scale
            consecutive_wrong: Current run of wrong answers
        """
        session.emotional_state = EmotionalState.FRUSTRATED

        if (emotion_level > self.config.break_emotion_level
                or consecutive_wrong >= self.config.break_consecutive_wrong):
            session.interventions_used += 1
            session.intervention_phase = InterventionPhase.BREAK_SUGGESTED
            return Intervention(InterventionType.BREAK_SUGGESTION, "frustration.take_break", Priority.URGENT)

        if (emotion_level > self.config.topic_switch_emotion_level
                or consecutive_wrong >= self.config.topic_switch_consecutive_wrong):
            session.interventions_used += 1
            session.intervention_phase = InterventionPhase.TOPIC_SWITCH_SUGGESTED
            return Intervention(InterventionType.TOPIC_SWITCH, "frustration.switch_topic", Priority.HIGH)

        session.intervention_phase = InterventionPhase.STRUGGLING
        return Intervention(InterventionType.ENCOURAGEMENT, "frustration.keep_going", Priority.MEDIUM)

    def resolve(self, session: TutoringSession) -> None:
        """Return the state machine to IDLE (called when the question advances)."""
        session.intervention_phase = InterventionPhase.IDLE

    def needs_intervention(
        self,
        question: Question,
        time_spent_ms: int,
        hints_used: int,
        attempts: int
    ) -> bool:
        """True if the student looks stuck on `question`."""
        if time_spent_ms > self.config.stuck_after_ms:
            return True
        if attempts >= self.config.intervention_attempts:
            return True
        # A question without authored hints has none to exhaust
        if question.hint_count and hints_used >= question.hint_count:
            return True
        return False

    def should_suggest_break(
        self,
        session_minutes: float,
        consecutive_wrong: int,
        emotion_level: float
    ) -> bool:
        if session_minutes > self.config.break_session_minutes:
            return True
        if emotion_level > self.config.break_emotion_level:
            return True
        return consecutive_wrong >= self.config.break_consecutive_wrong_long

    def should_switch_topic(self, topic_attempts: int, topic_accuracy: float) -> bool:
        return (
            topic_attempts > self.config.topic_switch_min_attempts
            and topic_accuracy < self.config.topic_switch_max_accuracy
        )

    @staticmethod
    def celebration_key(achievement: str) -> str:
        return CELEBRATIONS.get(achievement, "celebration.generic")

    @staticmethod
    def session_summary_key(session: TutoringSession) -> str:
        """Message key for the end-of-session wrap-up."""
        if session.emotional_state is EmotionalState.EXCITED:
            return "summary.excited_independent" if session.interventions_used == 0 else "summary.excited_progress"
        if session.emotional_state is EmotionalState.CONFIDENT:
            return "summary.confident_with_hints" if session.interventions_used > 0 else "summary.confident_independent"
        if session.emotional_state is EmotionalState.FRUSTRATED:
            return "summary.worked_hard"
        return "summary.good_session"
