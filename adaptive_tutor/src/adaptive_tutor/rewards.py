"""
Reward & Achievement Calculator

Turns the answers of a completed session into XP, level-ups, badges and
world unlocks.

XP per correct answer:
    base (10) + difficulty bonus (0/5/10/20) + speed bonus (5 if < 10s)
    + consecutive bonus (3 if the previous answer in the batch was correct)

Level is `total_xp // 100 + 1`. Badge XP is tracked separately and never
feeds the level or world thresholds.

The calculation is pure: prior progress is never mutated, and the clock is
only read to stamp unlock events.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from adaptive_tutor.achievements import (
    BADGE_CATALOG,
    WORLD_CATALOG,
    AchievementStats,
    Badge,
    World,
    eligible_badges,
    fold_session,
)
from adaptive_tutor.config import RewardConfig
from adaptive_tutor.question import GradedAnswer

logger = logging.getLogger(__name__)


@dataclass
class LearnerProgress:
    """Cumulative XP, badges and worlds for one student (across all topics)."""
    student_id: str
    xp: int = 0
    badge_xp: int = 0
    earned_badges: Dict[str, datetime] = field(default_factory=dict)
    unlocked_worlds: Dict[str, datetime] = field(default_factory=dict)
    stats: AchievementStats = field(default_factory=AchievementStats)

    def level(self, xp_per_level: int = 100) -> int:
        return self.xp // xp_per_level + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "xp": self.xp,
            "badge_xp": self.badge_xp,
            "earned_badges": {k: v.isoformat() for k, v in self.earned_badges.items()},
            "unlocked_worlds": {k: v.isoformat() for k, v in self.unlocked_worlds.items()},
            "stats": self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LearnerProgress":
        return cls(
            student_id=data["student_id"],
            xp=int(data.get("xp", 0)),
            badge_xp=int(data.get("badge_xp", 0)),
            earned_badges={k: datetime.fromisoformat(v) for k, v in (data.get("earned_badges") or {}).items()},
            unlocked_worlds={k: datetime.fromisoformat(v) for k, v in (data.get("unlocked_worlds") or {}).items()},
            stats=AchievementStats.from_dict(data.get("stats")),
        )


@dataclass(frozen=True)
class XPBreakdown:
    base: int = 0
    difficulty: int = 0
    speed: int = 0
    consecutive: int = 0

    @property
    def total(self) -> int:
        return self.base + self.difficulty + self.speed + self.consecutive


@dataclass(frozen=True)
class SessionRewardSummary:
    """Rewards granted for one completed session."""
    xp: int
    breakdown: XPBreakdown
    total_xp: int
    previous_level: int
    level: int
    level_ups: int
    badges_earned: Tuple[str, ...] = ()
    badge_xp: int = 0
    worlds_unlocked: Tuple[str, ...] = ()
    unlocked_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "xp": self.xp,
            "breakdown": {
                "base": self.breakdown.base,
                "difficulty": self.breakdown.difficulty,
                "speed": self.breakdown.speed,
                "consecutive": self.breakdown.consecutive,
            },
            "total_xp": self.total_xp,
            "previous_level": self.previous_level,
            "level": self.level,
            "level_ups": self.level_ups,
            "badges_earned": list(self.badges_earned),
            "badge_xp": self.badge_xp,
            "worlds_unlocked": list(self.worlds_unlocked),
            "unlocked_at": self.unlocked_at.isoformat() if self.unlocked_at else None,
        }


class RewardCalculator:
    """
    Computes session rewards against a static badge and world catalog.

    Usage:
        calculator = RewardCalculator()
        summary, progress = calculator.compute_session_rewards(answers, progress)
    """

    def __init__(
        self,
        config: Optional[RewardConfig] = None,
        badges: Sequence[Badge] = BADGE_CATALOG,
        worlds: Sequence[World] = WORLD_CATALOG
    ):
        self.config = config or RewardConfig()
        self.badges = tuple(badges)
        self.worlds = tuple(sorted(worlds, key=lambda w: w.required_xp))

    def calculate_xp(self, answers: Sequence[GradedAnswer]) -> XPBreakdown:
        """
        XP earned by an ordered batch of answers.

        The consecutive bonus looks only at the immediately preceding answer
        in the batch, so it chains without compounding.
        """
        base = difficulty = speed = consecutive = 0
        previous_correct = False

        for answer in answers:
            if answer.correct:
                base += self.config.base_xp
                difficulty += self.config.difficulty_bonus.get(answer.difficulty, 0)
                if answer.time_spent_ms < self.config.speed_threshold_ms:
                    speed += self.config.speed_bonus
                if previous_correct:
                    consecutive += self.config.consecutive_bonus
            previous_correct = answer.correct

        return XPBreakdown(base=base, difficulty=difficulty, speed=speed, consecutive=consecutive)

    def calculate_level(self, total_xp: int) -> int:
        return total_xp // self.config.xp_per_level + 1

    def compute_session_rewards(
        self,
        answers: Sequence[GradedAnswer],
        progress: Optional[LearnerProgress] = None,
        now: Optional[datetime] = None,
        student_id: str = ""
    ) -> Tuple[SessionRewardSummary, LearnerProgress]:
        """
        Compute rewards for a completed session.

        Args:
            answers: Finalized answers of the session, in order
            progress: Learner's progress before this session (not mutated)
            now: Timestamp for unlock events (does not affect any numbers)
            student_id: Used only when `progress` is None

        Returns:
            (SessionRewardSummary, updated LearnerProgress)
        """
        answers = list(answers)
        prior = progress or LearnerProgress(student_id=student_id)
        stamp = now or datetime.now()

        breakdown = self.calculate_xp(answers)
        total_xp = prior.xp + breakdown.total
        previous_level = self.calculate_level(prior.xp)
        level = self.calculate_level(total_xp)

        # Worlds never relock, so only add
        new_worlds = [
            w.id for w in self.worlds
            if total_xp >= w.required_xp and w.id not in prior.unlocked_worlds
        ]
        unlocked_worlds = dict(prior.unlocked_worlds)
        for world_id in new_worlds:
            unlocked_worlds[world_id] = stamp

        stats = fold_session(prior.stats, answers)
        stats = replace(stats, worlds_unlocked=len(unlocked_worlds), world_count=len(self.worlds))

        new_badges = eligible_badges(stats, prior.earned_badges.keys(), self.badges)
        earned_badges = dict(prior.earned_badges)
        for badge in new_badges:
            earned_badges[badge.id] = stamp
        badge_xp = sum(b.xp for b in new_badges)

        summary = SessionRewardSummary(
            xp=breakdown.total,
            breakdown=breakdown,
            total_xp=total_xp,
            previous_level=previous_level,
            level=level,
            level_ups=level - previous_level,
            badges_earned=tuple(b.id for b in new_badges),
            badge_xp=badge_xp,
            worlds_unlocked=tuple(new_worlds),
            unlocked_at=stamp if (new_badges or new_worlds) else None,
        )
        updated = LearnerProgress(
            student_id=prior.student_id,
            xp=total_xp,
            badge_xp=prior.badge_xp + badge_xp,
            earned_badges=earned_badges,
            unlocked_worlds=unlocked_worlds,
            stats=stats,
        )

        if new_badges or new_worlds or summary.level_ups:
            logger.info(
                f"🏆 [Rewards] {prior.student_id[:20]}: +{breakdown.total} XP, "
                f"level {previous_level} → {level}, badges={list(summary.badges_earned)}, "
                f"worlds={new_worlds}"
            )
        return summary, updated

    def badge_details(self, badge_ids: Sequence[str]) -> List[Badge]:
        by_id = {b.id: b for b in self.badges}
        return [by_id[i] for i in badge_ids if i in by_id]
