"""
Session Orchestrator

Sequences the engine components across one practice session:

    answer -> grade -> performance update -> difficulty check
           -> scaffolding / intervention -> advance
    (last answer) -> complete -> rewards

Incorrect answers below `max_attempts_per_question` are retries: the student
stays on the question, scaffolding escalates, and performance is not touched.
A correct answer or the final allowed attempt finalizes the question.

All work for one (student, topic) runs under that key's lock. Reward progress
is shared by a student's topics and is updated under a per-student lock. It is
saved before the session turns COMPLETED, so a failed save leaves the session
in progress and `complete_session` can be retried. Nothing is kept in module
globals; state lives in the session object and the repository.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from adaptive_tutor.config import EngineConfig
from adaptive_tutor.difficulty_adapter import DifficultyAdapter, DifficultyDecision
from adaptive_tutor.errors import (
    ConfigurationError,
    InvalidTransitionError,
    OutOfRangeError,
    TutoringEngineError,
)
from adaptive_tutor.grading import AnswerGrader
from adaptive_tutor.interventions import Intervention, InterventionEngine, more_urgent
from adaptive_tutor.logger import get_logger
from adaptive_tutor.performance_state import StudentPerformanceState, record_answer
from adaptive_tutor.question import Answer, Difficulty, GradedAnswer, Question
from adaptive_tutor.question_selector import AdaptiveQuestionSelector
from adaptive_tutor.repository import InMemoryPerformanceRepository, KeyedLocks, PerformanceRepository
from adaptive_tutor.rewards import LearnerProgress, RewardCalculator, SessionRewardSummary
from adaptive_tutor.scaffolding import HintResult, ScaffoldingSelector
from adaptive_tutor.session_state import DifficultyChange, SessionStatus, TutoringSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class AnswerOutcome:
    """Everything the UI needs after one answer event."""
    correct: bool
    finalized: bool
    difficulty: DifficultyDecision
    status: SessionStatus
    intervention: Optional[Intervention] = None
    hint: HintResult = field(default_factory=HintResult)
    needs_help: bool = False
    attempts: int = 0
    next_question: Optional[Question] = None
    reward_summary: Optional[SessionRewardSummary] = None

    @classmethod
    def fallback(cls, status: SessionStatus) -> "AnswerOutcome":
        """Mid-difficulty, no-intervention default used when the engine fails."""
        return cls(
            correct=False,
            finalized=False,
            difficulty=DifficultyDecision.hold(Difficulty.MEDIUM, reason="fallback"),
            status=status,
        )


class TutoringSessionOrchestrator:
    """
    Runs tutoring sessions against a performance repository.

    Usage:
        orchestrator = TutoringSessionOrchestrator(InMemoryPerformanceRepository())
        session = orchestrator.start_session("student-1", "fractions", questions)
        outcome = orchestrator.submit_answer(session, Answer("q1", 2, time_spent_ms=4000))
    """

    def __init__(
        self,
        repository: Optional[PerformanceRepository] = None,
        config: Optional[EngineConfig] = None,
        reward_calculator: Optional[RewardCalculator] = None
    ):
        self.repository = repository or InMemoryPerformanceRepository()
        self.config = config or EngineConfig()
        self.grader = AnswerGrader()
        self.scaffolding = ScaffoldingSelector(self.config.scaffolding)
        self.difficulty = DifficultyAdapter(self.config.difficulty)
        self.interventions = InterventionEngine(self.config.interventions, self.scaffolding)
        self.rewards = reward_calculator or RewardCalculator(self.config.rewards)
        self.selector = AdaptiveQuestionSelector()
        self._locks = KeyedLocks()
        self._progress_locks = KeyedLocks()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start_session(
        self,
        user_id: str,
        topic: str,
        questions: Sequence[Question],
        now: Optional[datetime] = None
    ) -> TutoringSession:
        """
        Create a session and move it to IN_PROGRESS.

        Raises:
            ConfigurationError: Empty question list, duplicate ids, or a
                question from another topic
        """
        session = TutoringSession(user_id=user_id, topic=topic, questions=list(questions))
        for question in session.questions:
            if question.topic != topic:
                raise ConfigurationError(
                    f"Question '{question.id}' belongs to topic '{question.topic}', not '{topic}'"
                )
        session.transition_to_in_progress(now)

        logger.info("🎓 [Orchestrator] Session started", data={
            "session_id": session.session_id,
            "user_id": user_id[:20],
            "topic": topic,
            "questions": len(session.questions),
        })
        return session

    def start_adaptive_session(
        self,
        user_id: str,
        topic: str,
        bank: Sequence[Question],
        count: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> TutoringSession:
        """Pick questions from `bank` at the learner's current level, then start."""
        state = self.get_state(user_id, topic)
        on_topic = [q for q in bank if q.topic == topic]
        size = count or self.config.session.default_session_size
        questions = self.selector.build_session_questions(on_topic, state, size)
        return self.start_session(user_id, topic, questions, now)

    def abandon(
        self,
        session: TutoringSession,
        reason: str = "user_exit",
        now: Optional[datetime] = None
    ) -> TutoringSession:
        """Stop a session early. No rewards are computed."""
        session.transition_to_abandoned(reason, now)
        logger.info("🚪 [Orchestrator] Session abandoned", data={
            "session_id": session.session_id,
            "reason": reason,
            "answered": len(session.answers),
            "questions": len(session.questions),
        })
        return session

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    def submit_answer(self, session: TutoringSession, answer: Answer) -> AnswerOutcome:
        """
        Process one answer event.

        Raises:
            InvalidTransitionError: Session is not in progress
            OutOfRangeError: Answer is not for the current question
                (the session is left unchanged)
            RepositoryError: State could not be loaded or saved
        """
        session.require_status(SessionStatus.IN_PROGRESS)
        question = session.current_question
        if answer.question_id not in session.question_ids:
            raise OutOfRangeError(
                f"Question '{answer.question_id}' is not part of session {session.session_id}"
            )
        if question is None or answer.question_id != question.id:
            raise OutOfRangeError(
                f"Expected an answer for '{question.id if question else None}', got '{answer.question_id}'"
            )

        with self._locks.lock_for((session.user_id, session.topic)):
            graded = self.grader.grade(question, answer)
            state = self.get_state(session.user_id, session.topic)
            attempt_number = session.attempts + 1
            needs_help = self.interventions.needs_intervention(
                question, answer.time_spent_ms, answer.hints_used, attempt_number
            )

            if not graded.correct and attempt_number < self.config.session.max_attempts_per_question:
                return self._retry(session, question, state, attempt_number, needs_help)

            return self._finalize(session, question, graded, state, attempt_number, needs_help)

    def submit_answer_safely(self, session: TutoringSession, answer: Answer) -> AnswerOutcome:
        """`submit_answer` that degrades to the fallback outcome instead of raising."""
        try:
            return self.submit_answer(session, answer)
        except TutoringEngineError as e:
            logger.error("Answer processing failed, using fallback", error=e, data={
                "session_id": session.session_id,
                "question_id": answer.question_id,
            })
            return AnswerOutcome.fallback(session.status)

    def _retry(
        self,
        session: TutoringSession,
        question: Question,
        state: StudentPerformanceState,
        attempt_number: int,
        needs_help: bool
    ) -> AnswerOutcome:
        session.attempts = attempt_number
        intervention = self.interventions.on_struggle(session, question, attempt_number, state)
        hint = self.scaffolding.next_hint(question, attempt_number, state)

        logger.debug(f"🔁 [Orchestrator] Retry {attempt_number} on '{question.id}' → {intervention.type.value}")
        return AnswerOutcome(
            correct=False,
            finalized=False,
            difficulty=DifficultyDecision.hold(state.current_difficulty),
            status=session.status,
            intervention=intervention,
            hint=hint,
            needs_help=needs_help,
            attempts=attempt_number,
            next_question=question,
        )

    def _finalize(
        self,
        session: TutoringSession,
        question: Question,
        graded: GradedAnswer,
        state: StudentPerformanceState,
        attempt_number: int,
        needs_help: bool
    ) -> AnswerOutcome:
        updated = record_answer(state, graded, self.config.performance)
        decision = self.difficulty.next_difficulty(updated)
        updated = self.difficulty.apply_adjustment(updated, decision)
        self.repository.save(session.user_id, session.topic, updated)

        if decision.changed:
            session.difficulty_adjustments.append(DifficultyChange(
                question_number=len(session.answers) + 1,
                from_level=decision.previous,
                to_level=decision.level,
                reason=decision.reason,
            ))

        hint = HintResult.none()
        if graded.correct:
            intervention = self.interventions.on_mastery(session, updated.current_streak)
        else:
            intervention = self.interventions.on_struggle(session, question, attempt_number, updated)
            hint = self.scaffolding.next_hint(question, attempt_number, updated)
            consecutive_wrong = updated.consecutive_wrong
            if consecutive_wrong >= self.config.interventions.topic_switch_consecutive_wrong:
                frustration = self.interventions.on_frustration(session, 0.0, consecutive_wrong)
                intervention = more_urgent(intervention, frustration)

        session.advance(graded)
        self.interventions.resolve(session)

        reward_summary = None
        if session.is_finished:
            reward_summary = self._complete(session, graded.timestamp)

        return AnswerOutcome(
            correct=graded.correct,
            finalized=True,
            difficulty=decision,
            status=session.status,
            intervention=intervention,
            hint=hint,
            needs_help=needs_help,
            attempts=attempt_number,
            next_question=session.current_question,
            reward_summary=reward_summary,
        )

    def complete_session(self, session: TutoringSession, now: Optional[datetime] = None) -> SessionRewardSummary:
        """
        Grant rewards for a session whose questions are all answered.

        `submit_answer` calls this on the last answer. Call it directly to
        retry after the progress save failed.

        Raises:
            InvalidTransitionError: Session is not in progress or still has
                unanswered questions
            RepositoryError: Progress could not be loaded or saved (the
                session stays in progress)
        """
        with self._locks.lock_for((session.user_id, session.topic)):
            if now is None and session.answers:
                now = session.answers[-1].timestamp
            return self._complete(session, now)

    def _complete(self, session: TutoringSession, now: Optional[datetime]) -> SessionRewardSummary:
        session.require_status(SessionStatus.IN_PROGRESS)
        if not session.is_finished:
            raise InvalidTransitionError(
                f"Session {session.session_id} has {len(session.answers)}/{len(session.questions)} answers"
            )

        # Progress is per student and shared by all of their topics
        with self._progress_locks.lock_for(session.user_id):
            progress = self.repository.load_progress(session.user_id) or LearnerProgress(student_id=session.user_id)
            summary, progress = self.rewards.compute_session_rewards(session.answers, progress, now=now)
            self.repository.save_progress(session.user_id, progress)

        session.transition_to_completed(now)
        session.reward_summary = summary

        logger.success("Session completed", data={
            "session_id": session.session_id,
            "correct": f"{session.correct_answers}/{len(session.questions)}",
            "xp": summary.xp,
            "level": summary.level,
            "badges": list(summary.badges_earned),
        })
        return summary

    # ------------------------------------------------------------------
    # Signals and lookups
    # ------------------------------------------------------------------

    def report_frustration(self, session: TutoringSession, emotion_level: float) -> Intervention:
        """Handle an explicit frustration signal (emotion selector, long idle, ...)."""
        session.require_status(SessionStatus.IN_PROGRESS)
        if not 0.0 <= emotion_level <= 1.0:
            raise OutOfRangeError(f"emotion_level must be within 0-1, got {emotion_level}")

        with self._locks.lock_for((session.user_id, session.topic)):
            state = self.get_state(session.user_id, session.topic)
            intervention = self.interventions.on_frustration(session, emotion_level, state.consecutive_wrong)

        logger.info(f"😣 [Orchestrator] Frustration {emotion_level:.2f} → {intervention.type.value}")
        return intervention

    def current_hint(self, session: TutoringSession) -> HintResult:
        """Scaffolding for the current question at the session's attempt count."""
        session.require_status(SessionStatus.IN_PROGRESS)
        question = session.current_question
        state = self.get_state(session.user_id, session.topic)
        return self.scaffolding.next_hint(question, session.attempts, state)

    def get_state(self, user_id: str, topic: str) -> StudentPerformanceState:
        """Stored state for the pair, or a fresh one for a first-time learner."""
        state = self.repository.load(user_id, topic)
        if state is None:
            state = StudentPerformanceState.initial(user_id, topic, self.config.performance)
        return state
