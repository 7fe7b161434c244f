"""
Unit Tests for Reward & Achievement Calculator

Tests XP, levels, badge unlocks and world unlocks.
"""

from dataclasses import replace
from datetime import datetime

import pytest

from adaptive_tutor.achievements import (
    BADGE_CATALOG,
    WORLD_CATALOG,
    AchievementStats,
    Rarity,
    badges_by_rarity,
    eligible_badges,
    fold_session,
    get_badge,
    next_world,
    world_progress,
)
from adaptive_tutor.config import RewardConfig
from adaptive_tutor.question import Difficulty
from adaptive_tutor.rewards import LearnerProgress, RewardCalculator

NOW = datetime(2024, 1, 15, 12, 0, 0)


class TestXP:
    """Test suite for XP and level calculation."""

    @pytest.fixture
    def calculator(self):
        return RewardCalculator()

    def test_three_fast_correct_on_medium(self, calculator, make_graded):
        """(10+10+5) x 3 + 3 + 3 = 81 XP, still level 1."""
        answers = [make_graded(correct=True, time_spent_ms=7000, offset=i) for i in range(3)]

        summary, progress = calculator.compute_session_rewards(answers, LearnerProgress("student-1"), now=NOW)

        assert summary.xp == 81
        assert summary.breakdown.base == 30
        assert summary.breakdown.difficulty == 30
        assert summary.breakdown.speed == 15
        assert summary.breakdown.consecutive == 6
        assert summary.level == 1
        assert summary.level_ups == 0
        assert progress.xp == 81

    def test_difficulty_bonus_table(self, calculator, make_graded):
        slow = 20000
        for level, expected in [
            (Difficulty.BEGINNER, 10),
            (Difficulty.EASY, 15),
            (Difficulty.MEDIUM, 20),
            (Difficulty.HARD, 30),
            (Difficulty.ADVANCED, 10),
        ]:
            breakdown = calculator.calculate_xp([make_graded(difficulty=level, time_spent_ms=slow)])
            assert breakdown.total == expected

    def test_wrong_answers_earn_nothing(self, calculator, make_graded):
        assert calculator.calculate_xp([make_graded(correct=False, time_spent_ms=1000)]).total == 0

    def test_consecutive_bonus_needs_adjacent_correct(self, calculator, make_graded):
        """The bonus looks at the previous answer only."""
        answers = [
            make_graded(correct=True, time_spent_ms=20000),
            make_graded(correct=False, time_spent_ms=20000),
            make_graded(correct=True, time_spent_ms=20000),
            make_graded(correct=True, time_spent_ms=20000),
        ]
        assert calculator.calculate_xp(answers).consecutive == 3

    def test_level_formula(self, calculator):
        assert calculator.calculate_level(0) == 1
        assert calculator.calculate_level(99) == 1
        assert calculator.calculate_level(100) == 2
        assert calculator.calculate_level(250) == 3

    def test_level_up_across_sessions(self, calculator, make_graded):
        prior = LearnerProgress("student-1", xp=90)
        summary, progress = calculator.compute_session_rewards([make_graded()], prior, now=NOW)

        assert summary.previous_level == 1
        assert summary.level == 2
        assert summary.level_ups == 1
        assert progress.level() == 2

    def test_custom_xp_config(self, make_graded):
        calculator = RewardCalculator(RewardConfig(base_xp=1, speed_bonus=0, difficulty_bonus={}))
        assert calculator.calculate_xp([make_graded()]).total == 1


class TestSessionRewards:
    """Test suite for badges, worlds and determinism."""

    @pytest.fixture
    def calculator(self):
        return RewardCalculator()

    @pytest.fixture
    def perfect_session(self, make_graded):
        return [make_graded(correct=True, time_spent_ms=7000, offset=i) for i in range(3)]

    def test_first_session_badges(self, calculator, perfect_session):
        summary, progress = calculator.compute_session_rewards(perfect_session, LearnerProgress("student-1"), now=NOW)

        assert summary.badges_earned == ("first_correct", "streak_3", "perfect_mission")
        assert summary.badge_xp == 25 + 50 + 100
        assert set(progress.earned_badges) == {"first_correct", "streak_3", "perfect_mission"}
        # Badge XP never feeds the level
        assert summary.total_xp == 81

    def test_badges_are_earned_once(self, calculator, perfect_session):
        _, progress = calculator.compute_session_rewards(perfect_session, LearnerProgress("student-1"), now=NOW)
        summary, progress = calculator.compute_session_rewards(perfect_session, progress, now=NOW)

        assert "first_correct" not in summary.badges_earned
        assert "perfect_mission" not in summary.badges_earned
        # The streak continues across sessions: 6 in a row
        assert "streak_5" in summary.badges_earned
        assert list(progress.earned_badges).count("first_correct") == 1

    def test_badges_use_cumulative_history(self, calculator, make_graded):
        """Speed demon needs five fast answers, spread over two sessions here."""
        fast = [make_graded(time_spent_ms=3000, offset=i) for i in range(3)]
        _, progress = calculator.compute_session_rewards(fast, LearnerProgress("student-1"), now=NOW)
        assert "speed_demon" not in progress.earned_badges

        summary, progress = calculator.compute_session_rewards(fast, progress, now=NOW)
        assert "speed_demon" in summary.badges_earned

    def test_persistent_badge(self, calculator, make_graded):
        answers = [make_graded(correct=i % 2 == 0, time_spent_ms=20000, offset=i) for i in range(8)]
        summary, _ = calculator.compute_session_rewards(answers, LearnerProgress("student-1"), now=NOW)
        assert "persistent" in summary.badges_earned
        assert "perfect_mission" not in summary.badges_earned

    def test_worlds_unlock_monotonically(self, calculator, make_graded):
        summary, progress = calculator.compute_session_rewards([make_graded()], LearnerProgress("student-1"), now=NOW)
        assert summary.worlds_unlocked == ("math_galaxy",)

        big = LearnerProgress("student-1", xp=240, unlocked_worlds=dict(progress.unlocked_worlds))
        summary, progress = calculator.compute_session_rewards([make_graded()], big, now=NOW)
        assert summary.worlds_unlocked == ("robot_city", "space_quest")
        assert set(progress.unlocked_worlds) == {"math_galaxy", "robot_city", "space_quest"}

        # A session with no XP never relocks anything
        summary, progress = calculator.compute_session_rewards([make_graded(correct=False)], progress, now=NOW)
        assert summary.worlds_unlocked == ()
        assert "space_quest" in progress.unlocked_worlds

    def test_world_explorer(self, calculator, make_graded):
        prior = LearnerProgress("student-1", xp=495)
        summary, _ = calculator.compute_session_rewards([make_graded()], prior, now=NOW)

        assert "ocean_deep" in summary.worlds_unlocked
        assert "world_explorer" in summary.badges_earned

    def test_deterministic(self, calculator, perfect_session):
        prior = LearnerProgress("student-1", xp=40)
        first = calculator.compute_session_rewards(perfect_session, prior, now=NOW)
        second = calculator.compute_session_rewards(perfect_session, prior, now=NOW)
        assert first == second

    def test_clock_does_not_change_numbers(self, calculator, perfect_session):
        prior = LearnerProgress("student-1")
        a, _ = calculator.compute_session_rewards(perfect_session, prior, now=NOW)
        b, _ = calculator.compute_session_rewards(perfect_session, prior, now=datetime(2030, 1, 1))
        assert replace(a, unlocked_at=None) == replace(b, unlocked_at=None)

    def test_prior_progress_not_mutated(self, calculator, perfect_session):
        prior = LearnerProgress("student-1")
        calculator.compute_session_rewards(perfect_session, prior, now=NOW)
        assert prior.xp == 0
        assert prior.earned_badges == {}
        assert prior.stats == AchievementStats()

    def test_progress_round_trip(self, calculator, perfect_session):
        _, progress = calculator.compute_session_rewards(perfect_session, LearnerProgress("student-1"), now=NOW)
        assert LearnerProgress.from_dict(progress.to_dict()) == progress


class TestAchievementCatalog:

    def test_catalog_ids_unique(self):
        ids = [b.id for b in BADGE_CATALOG]
        assert len(ids) == len(set(ids))

    def test_eligible_badges_is_a_filter(self, make_graded):
        stats = fold_session(AchievementStats(), [make_graded(offset=i) for i in range(3)])
        first = eligible_badges(stats, [])
        assert [b.id for b in first][:2] == ["first_correct", "streak_3"]
        assert eligible_badges(stats, [b.id for b in first]) == []

    def test_fold_tracks_hard_accuracy(self, make_graded):
        answers = [make_graded(difficulty=Difficulty.HARD, correct=c, offset=i) for i, c in enumerate([True, True, True, False, True])]
        stats = fold_session(AchievementStats(), answers)
        assert stats.hard_answers == 5
        assert stats.hard_accuracy == pytest.approx(0.8)
        assert get_badge("math_master").is_earned_by(stats)

    def test_badges_by_rarity(self):
        legendary = {b.id for b in badges_by_rarity(Rarity.LEGENDARY)}
        assert legendary == {"unstoppable_force", "world_explorer"}

    def test_next_world(self):
        assert next_world(0).id == "robot_city"
        assert next_world(120).id == "space_quest"
        assert next_world(500) is None

    def test_world_progress(self):
        assert world_progress(50) == 50
        assert world_progress(175) == 50
        assert world_progress(600) == 100

    def test_world_thresholds_monotonic(self):
        thresholds = [w.required_xp for w in WORLD_CATALOG]
        assert thresholds == sorted(thresholds)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
