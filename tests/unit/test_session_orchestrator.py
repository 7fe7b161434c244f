"""
Unit Tests for Session Orchestrator

Tests the session state machine end to end against the in-memory repository.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from adaptive_tutor.config import EngineConfig
from adaptive_tutor.difficulty_adapter import REASON_MASTERY, REASON_STRUGGLE
from adaptive_tutor.errors import ConfigurationError, InvalidTransitionError, OutOfRangeError, RepositoryError
from adaptive_tutor.interventions import InterventionType, Priority
from adaptive_tutor.performance_state import StudentPerformanceState, apply_difficulty
from adaptive_tutor.question import Answer, Difficulty
from adaptive_tutor.repository import InMemoryPerformanceRepository
from adaptive_tutor.rewards import RewardCalculator
from adaptive_tutor.session_orchestrator import AnswerOutcome, TutoringSessionOrchestrator
from adaptive_tutor.session_state import InterventionPhase, SessionStatus

CORRECT = 1
WRONG = 0


class CountingRewardCalculator(RewardCalculator):
    def __init__(self):
        super().__init__()
        self.calls = 0

    def compute_session_rewards(self, *args, **kwargs):
        self.calls += 1
        return super().compute_session_rewards(*args, **kwargs)


class FailingRepository(InMemoryPerformanceRepository):
    def save(self, student_id, topic, state):
        raise RepositoryError("database unavailable")


class FlakyProgressRepository(InMemoryPerformanceRepository):
    """Fails the first `failures` progress saves."""

    def __init__(self, failures=1):
        super().__init__()
        self.failures = failures

    def save_progress(self, student_id, progress):
        if self.failures:
            self.failures -= 1
            raise RepositoryError("progress table unavailable")
        super().save_progress(student_id, progress)


class SlowProgressRepository(InMemoryPerformanceRepository):
    """Widens the read-modify-write window on progress."""

    def load_progress(self, student_id):
        progress = super().load_progress(student_id)
        time.sleep(0.1)
        return progress


class TestSessionOrchestrator:
    """Test suite for TutoringSessionOrchestrator."""

    @pytest.fixture
    def repository(self):
        return InMemoryPerformanceRepository()

    @pytest.fixture
    def orchestrator(self, repository):
        return TutoringSessionOrchestrator(repository)

    @pytest.fixture
    def questions(self, make_question):
        return [make_question(qid=f"q{i}") for i in range(1, 4)]

    @pytest.fixture
    def session(self, orchestrator, questions):
        return orchestrator.start_session("student-1", "fractions", questions)

    def answer_all(self, orchestrator, session, value=CORRECT, time_spent_ms=7000):
        outcomes = []
        for question in list(session.questions):
            outcomes.append(orchestrator.submit_answer(session, Answer(question.id, value, time_spent_ms)))
        return outcomes

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def test_start_session(self, session):
        assert session.status is SessionStatus.IN_PROGRESS
        assert session.current_question.id == "q1"
        assert session.started_at is not None

    def test_empty_question_list_rejected(self, orchestrator):
        with pytest.raises(ConfigurationError):
            orchestrator.start_session("student-1", "fractions", [])

    def test_duplicate_question_ids_rejected(self, orchestrator, make_question):
        with pytest.raises(ConfigurationError):
            orchestrator.start_session("student-1", "fractions", [make_question(), make_question()])

    def test_question_from_other_topic_rejected(self, orchestrator, make_question):
        with pytest.raises(ConfigurationError):
            orchestrator.start_session("student-1", "fractions", [make_question(topic="decimals")])

    def test_three_correct_in_a_row(self, orchestrator, repository, session):
        """Three fast correct answers on medium: streak 3, hard next, 81 XP at level 1."""
        outcomes = self.answer_all(orchestrator, session)

        state = repository.load("student-1", "fractions")
        assert state.current_streak == 3
        assert state.current_difficulty is Difficulty.HARD

        last = outcomes[-1]
        assert last.difficulty.level is Difficulty.HARD
        assert last.difficulty.reason == REASON_MASTERY
        assert last.intervention.message_key == "mastery.celebrate_streak"
        assert last.status is SessionStatus.COMPLETED
        assert last.reward_summary.xp == 81
        assert last.reward_summary.level == 1
        assert last.next_question is None

        assert session.status is SessionStatus.COMPLETED
        assert session.reward_summary is last.reward_summary
        assert repository.load_progress("student-1").xp == 81

        assert len(session.difficulty_adjustments) == 1
        assert session.difficulty_adjustments[0].question_number == 3
        assert session.difficulty_adjustments[0].to_level is Difficulty.HARD

    def test_two_wrong_in_a_row_on_easy(self, repository, make_question):
        """Two wrong answers on easy: streak 0, beginner next, topic switch at high priority."""
        config = EngineConfig.build(session={"max_attempts_per_question": 1})
        orchestrator = TutoringSessionOrchestrator(repository, config)
        repository.save(
            "student-1", "fractions",
            apply_difficulty(StudentPerformanceState.initial("student-1", "fractions"), Difficulty.EASY),
        )
        session = orchestrator.start_session(
            "student-1", "fractions", [make_question(qid=f"q{i}", difficulty="easy") for i in range(1, 4)]
        )

        orchestrator.submit_answer(session, Answer("q1", WRONG, 9000))
        outcome = orchestrator.submit_answer(session, Answer("q2", WRONG, 9000))

        state = repository.load("student-1", "fractions")
        assert state.current_streak == 0
        assert outcome.difficulty.level is Difficulty.BEGINNER
        assert outcome.difficulty.reason == REASON_STRUGGLE
        assert outcome.intervention.type is InterventionType.TOPIC_SWITCH
        assert outcome.intervention.priority is Priority.HIGH

        explicit = orchestrator.report_frustration(session, 0.5)
        assert explicit.type is InterventionType.TOPIC_SWITCH
        assert explicit.priority is Priority.HIGH

    def test_rewards_computed_exactly_once(self, repository, questions):
        calculator = CountingRewardCalculator()
        orchestrator = TutoringSessionOrchestrator(repository, reward_calculator=calculator)
        session = orchestrator.start_session("student-1", "fractions", questions)

        self.answer_all(orchestrator, session)

        assert calculator.calls == 1
        with pytest.raises(InvalidTransitionError):
            orchestrator.submit_answer(session, Answer("q3", CORRECT, 1000))
        assert calculator.calls == 1

    def test_abandon_grants_no_rewards(self, orchestrator, repository, session):
        orchestrator.submit_answer(session, Answer("q1", CORRECT, 3000))
        orchestrator.abandon(session, reason="timeout")

        assert session.status is SessionStatus.ABANDONED
        assert session.end_reason == "timeout"
        assert session.reward_summary is None
        assert repository.load_progress("student-1") is None

    def test_terminal_states_are_final(self, orchestrator, session):
        orchestrator.abandon(session)

        with pytest.raises(InvalidTransitionError):
            orchestrator.submit_answer(session, Answer("q1", CORRECT, 3000))
        with pytest.raises(InvalidTransitionError):
            orchestrator.abandon(session)
        with pytest.raises(InvalidTransitionError):
            session.transition_to_completed()

    def test_completed_session_cannot_be_abandoned(self, orchestrator, session):
        self.answer_all(orchestrator, session)
        with pytest.raises(InvalidTransitionError):
            orchestrator.abandon(session)

    # ------------------------------------------------------------------
    # Retries
    # ------------------------------------------------------------------

    def test_wrong_answer_retries_same_question(self, orchestrator, repository, session):
        outcome = orchestrator.submit_answer(session, Answer("q1", WRONG, 5000))

        assert outcome.finalized is False
        assert outcome.attempts == 1
        assert outcome.next_question.id == "q1"
        assert outcome.intervention.type is InterventionType.ENCOURAGEMENT
        assert session.answers == []
        assert session.intervention_phase is InterventionPhase.STRUGGLING
        # Performance is only updated by finalized answers
        assert repository.load("student-1", "fractions") is None

    def test_scaffolding_escalates_over_attempts(self, orchestrator, session):
        orchestrator.submit_answer(session, Answer("q1", WRONG, 5000))
        second = orchestrator.submit_answer(session, Answer("q1", WRONG, 5000))

        assert second.intervention.type is InterventionType.HINT
        assert second.hint.hint.level == 1
        assert second.needs_help is True
        assert orchestrator.current_hint(session).hint.level == 1

        third = orchestrator.submit_answer(session, Answer("q1", WRONG, 5000))

        assert third.finalized is True
        assert third.correct is False
        assert third.intervention.type is InterventionType.WORKED_EXAMPLE
        assert session.current_question.id == "q2"
        assert session.attempts == 0
        assert session.interventions_used == 2
        assert session.intervention_phase is InterventionPhase.IDLE

    def test_correct_after_retry_finalizes(self, orchestrator, session):
        orchestrator.submit_answer(session, Answer("q1", WRONG, 5000))
        outcome = orchestrator.submit_answer(session, Answer("q1", CORRECT, 5000))

        assert outcome.finalized is True
        assert outcome.correct is True
        assert outcome.attempts == 2
        assert session.answers[0].correct is True

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def test_unknown_question_rejected_without_mutation(self, orchestrator, repository, session):
        with pytest.raises(OutOfRangeError):
            orchestrator.submit_answer(session, Answer("nope", CORRECT, 1000))

        assert session.answers == []
        assert session.attempts == 0
        assert session.current_index == 0
        assert repository.load("student-1", "fractions") is None

    def test_answer_for_later_question_rejected(self, orchestrator, session):
        with pytest.raises(OutOfRangeError):
            orchestrator.submit_answer(session, Answer("q2", CORRECT, 1000))
        assert session.current_index == 0

    def test_safe_submit_falls_back(self, orchestrator, session):
        outcome = orchestrator.submit_answer_safely(session, Answer("nope", CORRECT, 1000))

        assert outcome == AnswerOutcome.fallback(SessionStatus.IN_PROGRESS)
        assert outcome.difficulty.level is Difficulty.MEDIUM
        assert outcome.intervention is None

    def test_repository_failure_falls_back(self, questions):
        orchestrator = TutoringSessionOrchestrator(FailingRepository())
        session = orchestrator.start_session("student-1", "fractions", questions)

        outcome = orchestrator.submit_answer_safely(session, Answer("q1", CORRECT, 1000))

        assert outcome.finalized is False
        assert outcome.intervention is None
        assert session.answers == []

    def test_failed_progress_save_keeps_session_open(self, make_question):
        """Rewards are not lost when the progress save fails; completion can be retried."""
        repository = FlakyProgressRepository()
        orchestrator = TutoringSessionOrchestrator(repository)
        session = orchestrator.start_session("student-1", "fractions", [make_question()])

        outcome = orchestrator.submit_answer_safely(session, Answer("q1", CORRECT, 3000))

        assert outcome == AnswerOutcome.fallback(SessionStatus.IN_PROGRESS)
        assert session.status is SessionStatus.IN_PROGRESS
        assert session.is_finished is True
        assert session.reward_summary is None
        assert repository.load_progress("student-1") is None

        summary = orchestrator.complete_session(session)

        assert session.status is SessionStatus.COMPLETED
        assert session.reward_summary is summary
        assert summary.xp > 0
        assert repository.load_progress("student-1").xp == summary.xp
        with pytest.raises(InvalidTransitionError):
            orchestrator.complete_session(session)

    def test_complete_session_needs_all_answers(self, orchestrator, session):
        orchestrator.submit_answer(session, Answer("q1", CORRECT, 3000))

        with pytest.raises(InvalidTransitionError):
            orchestrator.complete_session(session)
        assert session.status is SessionStatus.IN_PROGRESS

    def test_report_frustration_range(self, orchestrator, session):
        with pytest.raises(OutOfRangeError):
            orchestrator.report_frustration(session, 1.5)

    # ------------------------------------------------------------------
    # Adaptive sessions
    # ------------------------------------------------------------------

    def test_start_adaptive_session(self, orchestrator, make_question):
        bank = [
            make_question(qid="m1"),
            make_question(qid="h1", difficulty="hard"),
            make_question(qid="m2"),
            make_question(qid="x1", topic="decimals"),
            make_question(qid="m3"),
        ]
        session = orchestrator.start_adaptive_session("student-1", "fractions", bank, count=2)

        assert session.question_ids == ["m1", "m2"]
        assert session.status is SessionStatus.IN_PROGRESS

    def test_adaptive_session_with_empty_bank(self, orchestrator):
        with pytest.raises(ConfigurationError):
            orchestrator.start_adaptive_session("student-1", "fractions", [])

    def test_students_run_in_parallel(self, orchestrator, questions):
        """Different (student, topic) keys don't interfere."""
        def run(student_id):
            session = orchestrator.start_session(student_id, "fractions", questions)
            self.answer_all(orchestrator, session)
            return session.status

        with ThreadPoolExecutor(max_workers=4) as pool:
            statuses = list(pool.map(run, [f"student-{i}" for i in range(4)]))

        assert statuses == [SessionStatus.COMPLETED] * 4
        for i in range(4):
            assert orchestrator.repository.load_progress(f"student-{i}").xp == 81

    def test_same_student_parallel_topics_keep_all_xp(self, make_question):
        """Sessions on two topics finishing together both add to the student's progress."""
        repository = SlowProgressRepository()
        orchestrator = TutoringSessionOrchestrator(repository)
        sessions = [
            orchestrator.start_session("student-1", topic, [make_question(qid=f"{topic}-1", topic=topic)])
            for topic in ("fractions", "decimals")
        ]
        barrier = threading.Barrier(len(sessions))

        def finish(session):
            barrier.wait()
            question = session.current_question
            return orchestrator.submit_answer(session, Answer(question.id, CORRECT, 3000))

        with ThreadPoolExecutor(max_workers=2) as pool:
            outcomes = list(pool.map(finish, sessions))

        earned = sum(outcome.reward_summary.xp for outcome in outcomes)
        assert earned > 0
        assert repository.load_progress("student-1").xp == earned
        assert repository.load_progress("student-1").stats.sessions_completed == 2

    def test_configured_attempt_ladder_agrees(self, repository, make_question):
        """Intervention and hint come from the same configured attempt thresholds."""
        config = EngineConfig.build(
            scaffolding={"hint_attempt": 3, "worked_example_attempt": 4},
            session={"max_attempts_per_question": 4},
        )
        orchestrator = TutoringSessionOrchestrator(repository, config)
        session = orchestrator.start_session("student-1", "fractions", [make_question()])

        second = [orchestrator.submit_answer(session, Answer("q1", WRONG, 5000)) for _ in range(2)][-1]
        assert second.intervention.type is InterventionType.ENCOURAGEMENT
        assert second.hint.has_help is False

        third = orchestrator.submit_answer(session, Answer("q1", WRONG, 5000))
        assert third.intervention.type is InterventionType.HINT
        assert third.hint.hint is not None
        assert third.hint.worked_example is None
        assert third.intervention.hint == third.hint.hint

        fourth = orchestrator.submit_answer(session, Answer("q1", WRONG, 5000))
        assert fourth.finalized is True
        assert fourth.intervention.type is InterventionType.WORKED_EXAMPLE
        assert fourth.hint.worked_example is not None

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
