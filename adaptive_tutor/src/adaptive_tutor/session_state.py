"""
Tutoring Session State

Explicit state structure and transitions for one practice session:

    NOT_STARTED -> IN_PROGRESS -> COMPLETED
                               -> ABANDONED

Terminal states are final. The session is owned by exactly one orchestrator
call at a time; it is never shared through module-level globals.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from adaptive_tutor.errors import ConfigurationError, InvalidTransitionError
from adaptive_tutor.question import Difficulty, GradedAnswer, Question


class SessionStatus(Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.ABANDONED)


class EmotionalState(Enum):
    NEUTRAL = "neutral"
    CONFIDENT = "confident"
    EXCITED = "excited"
    FRUSTRATED = "frustrated"


class InterventionPhase(Enum):
    """Where the intervention state machine currently sits."""
    IDLE = "idle"
    STRUGGLING = "struggling"
    HINTED = "hinted"
    WORKED_EXAMPLE = "worked_example"
    BREAK_SUGGESTED = "break_suggested"
    TOPIC_SWITCH_SUGGESTED = "topic_switch_suggested"
    MASTERING = "mastering"
    CELEBRATED = "celebrated"


@dataclass
class DifficultyChange:
    """A difficulty adjustment made during the session."""
    question_number: int
    from_level: Difficulty
    to_level: Difficulty
    reason: str


@dataclass
class TutoringSession:
    """
    State for one quiz/practice session.

    `answers` holds finalized answers only; retries on the current question
    are counted in `attempts`, which resets whenever the question advances.
    """
    user_id: str
    topic: str
    questions: List[Question] = field(default_factory=list)
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    answers: List[GradedAnswer] = field(default_factory=list)
    current_index: int = 0
    attempts: int = 0
    interventions_used: int = 0
    emotional_state: EmotionalState = EmotionalState.NEUTRAL
    intervention_phase: InterventionPhase = InterventionPhase.IDLE
    status: SessionStatus = SessionStatus.NOT_STARTED
    difficulty_adjustments: List[DifficultyChange] = field(default_factory=list)
    reward_summary: Optional[Any] = None  # SessionRewardSummary once completed
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    end_reason: Optional[str] = None

    @property
    def current_question(self) -> Optional[Question]:
        if self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    @property
    def question_ids(self) -> List[str]:
        return [q.id for q in self.questions]

    @property
    def correct_answers(self) -> int:
        return sum(1 for a in self.answers if a.correct)

    @property
    def is_finished(self) -> bool:
        return len(self.answers) == len(self.questions)

    def elapsed_minutes(self, now: Optional[datetime] = None) -> float:
        if not self.started_at:
            return 0.0
        end = self.ended_at or now or datetime.now()
        return (end - self.started_at).total_seconds() / 60.0

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def require_status(self, *allowed: SessionStatus) -> None:
        if self.status not in allowed:
            raise InvalidTransitionError(
                f"Session {self.session_id} is {self.status.value}; "
                f"expected {' or '.join(s.value for s in allowed)}"
            )

    def transition_to_in_progress(self, now: Optional[datetime] = None) -> None:
        """Start the session. Requires a non-empty question list with unique ids."""
        self.require_status(SessionStatus.NOT_STARTED)
        if not self.questions:
            raise ConfigurationError("A tutoring session needs at least one question")
        ids = self.question_ids
        if len(set(ids)) != len(ids):
            raise ConfigurationError(f"Duplicate question ids in session: {ids}")
        self.status = SessionStatus.IN_PROGRESS
        self.started_at = now or datetime.now()

    def advance(self, answer: GradedAnswer) -> None:
        """Record a finalized answer and move to the next question."""
        self.require_status(SessionStatus.IN_PROGRESS)
        self.answers.append(answer)
        self.current_index += 1
        self.attempts = 0

    def transition_to_completed(self, now: Optional[datetime] = None) -> None:
        self.require_status(SessionStatus.IN_PROGRESS)
        if not self.is_finished:
            raise InvalidTransitionError(
                f"Session {self.session_id} has {len(self.answers)}/{len(self.questions)} answers"
            )
        self.status = SessionStatus.COMPLETED
        self.ended_at = now or datetime.now()
        self.end_reason = "completed"

    def transition_to_abandoned(self, reason: str = "user_exit", now: Optional[datetime] = None) -> None:
        """Stop before completion (timeout or user exit). Never grants rewards."""
        self.require_status(SessionStatus.NOT_STARTED, SessionStatus.IN_PROGRESS)
        self.status = SessionStatus.ABANDONED
        self.ended_at = now or datetime.now()
        self.end_reason = reason

    def summary(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "topic": self.topic,
            "status": self.status.value,
            "questions": len(self.questions),
            "answered": len(self.answers),
            "correct": self.correct_answers,
            "interventions_used": self.interventions_used,
            "emotional_state": self.emotional_state.value,
            "difficulty_adjustments": len(self.difficulty_adjustments),
        }
