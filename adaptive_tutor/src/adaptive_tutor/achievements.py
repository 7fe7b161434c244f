"""
Achievement Catalog

Static, read-only catalog of badges and worlds.

Each badge is a pure predicate over `AchievementStats`, the cumulative
aggregate of everything a learner has answered. Checking badges is a plain
filter over the catalog, so it needs no locking and stays cheap as the
catalog grows.
"""

from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from adaptive_tutor.question import Difficulty, GradedAnswer


class Rarity(Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


@dataclass(frozen=True)
class AchievementStats:
    """Cumulative answer statistics for one learner."""
    total_answers: int = 0
    correct_answers: int = 0
    running_streak: int = 0
    best_streak: int = 0
    fast_correct: int = 0
    unassisted_correct: int = 0
    hard_answers: int = 0
    hard_correct: int = 0
    sessions_completed: int = 0
    perfect_sessions: int = 0
    persistent_sessions: int = 0
    worlds_unlocked: int = 0
    world_count: int = 0

    @property
    def hard_accuracy(self) -> float:
        return self.hard_correct / self.hard_answers if self.hard_answers else 0.0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AchievementStats":
        known = {k: v for k, v in (data or {}).items() if k in cls.__dataclass_fields__}
        return cls(**known)


# Thresholds the catalog predicates and the stats fold share
FAST_ANSWER_MS = 5000
PERSISTENT_MIN_ANSWERS = 7
PERSISTENT_MIN_WRONG = 3


def fold_session(stats: AchievementStats, answers: Iterable[GradedAnswer]) -> AchievementStats:
    """Add one completed session's answers to the cumulative stats."""
    answers = list(answers)
    total = stats.total_answers
    correct = stats.correct_answers
    running = stats.running_streak
    best = stats.best_streak
    fast = stats.fast_correct
    unassisted = stats.unassisted_correct
    hard = stats.hard_answers
    hard_correct = stats.hard_correct

    for answer in answers:
        total += 1
        is_hard = answer.difficulty is Difficulty.HARD
        if is_hard:
            hard += 1
        if answer.correct:
            correct += 1
            running += 1
            best = max(best, running)
            if answer.time_spent_ms < FAST_ANSWER_MS:
                fast += 1
            if answer.hints_used == 0:
                unassisted += 1
            if is_hard:
                hard_correct += 1
        else:
            running = 0

    wrong = sum(1 for a in answers if not a.correct)
    perfect = bool(answers) and wrong == 0
    persistent = len(answers) >= PERSISTENT_MIN_ANSWERS and wrong >= PERSISTENT_MIN_WRONG

    return replace(
        stats,
        total_answers=total,
        correct_answers=correct,
        running_streak=running,
        best_streak=best,
        fast_correct=fast,
        unassisted_correct=unassisted,
        hard_answers=hard,
        hard_correct=hard_correct,
        sessions_completed=stats.sessions_completed + 1,
        perfect_sessions=stats.perfect_sessions + (1 if perfect else 0),
        persistent_sessions=stats.persistent_sessions + (1 if persistent else 0),
    )


@dataclass(frozen=True)
class Badge:
    id: str
    name: str
    description: str
    icon: str
    rarity: Rarity
    xp: int
    predicate: Callable[[AchievementStats], bool]

    def is_earned_by(self, stats: AchievementStats) -> bool:
        return bool(self.predicate(stats))


@dataclass(frozen=True)
class World:
    id: str
    name: str
    description: str
    icon: str
    required_xp: int


BADGE_CATALOG: Tuple[Badge, ...] = (
    Badge("first_correct", "First Steps", "Got your first answer correct!", "⭐",
          Rarity.COMMON, 25, lambda s: s.correct_answers >= 1),
    Badge("streak_3", "On Fire", "3 correct answers in a row", "🔥",
          Rarity.UNCOMMON, 50, lambda s: s.best_streak >= 3),
    Badge("streak_5", "Unstoppable", "5 correct answers in a row", "🚀",
          Rarity.RARE, 75, lambda s: s.best_streak >= 5),
    Badge("unstoppable_force", "Unstoppable Force", "10 correct in a row - legendary performance!", "🌟",
          Rarity.LEGENDARY, 200, lambda s: s.best_streak >= 10),
    Badge("perfect_mission", "Perfect Score", "Completed a mission with 100% accuracy", "💯",
          Rarity.EPIC, 100, lambda s: s.perfect_sessions >= 1),
    Badge("speed_demon", "Speed Demon", "Answered 5 questions correctly in under 5 seconds each", "⚡",
          Rarity.RARE, 75, lambda s: s.fast_correct >= 5),
    Badge("persistent", "Never Give Up", "Completed a mission despite struggles", "💪",
          Rarity.UNCOMMON, 60, lambda s: s.persistent_sessions >= 1),
    Badge("math_master", "Math Master", "Scored 80%+ on hard questions", "🎓",
          Rarity.EPIC, 100, lambda s: s.hard_answers >= 3 and s.hard_accuracy >= 0.8),
    Badge("solo_solver", "Solo Solver", "20 correct answers without a single hint", "🎯",
          Rarity.RARE, 75, lambda s: s.unassisted_correct >= 20),
    Badge("centurion", "Centurion", "100 questions answered - dedication pays off!", "🏅",
          Rarity.EPIC, 100, lambda s: s.total_answers >= 100),
    Badge("world_explorer", "World Explorer", "Unlocked all worlds", "🌍",
          Rarity.LEGENDARY, 150, lambda s: s.world_count > 0 and s.worlds_unlocked >= s.world_count),
)

WORLD_CATALOG: Tuple[World, ...] = (
    World("math_galaxy", "Math Galaxy", "Explore the cosmos of numbers", "🌌", 0),
    World("robot_city", "Robot City", "Build and program robots", "🤖", 100),
    World("space_quest", "Space Quest", "Journey through the stars", "🚀", 250),
    World("ocean_deep", "Ocean Deep", "Dive into underwater adventures", "🌊", 500),
)


def get_badge(badge_id: str, catalog: Iterable[Badge] = BADGE_CATALOG) -> Optional[Badge]:
    return next((b for b in catalog if b.id == badge_id), None)


def badges_by_rarity(rarity: Rarity, catalog: Iterable[Badge] = BADGE_CATALOG) -> List[Badge]:
    return [b for b in catalog if b.rarity is rarity]


def eligible_badges(
    stats: AchievementStats,
    already_earned: Iterable[str],
    catalog: Iterable[Badge] = BADGE_CATALOG
) -> List[Badge]:
    """Badges whose predicate holds and that have not been earned yet, in catalog order."""
    earned = set(already_earned)
    return [b for b in catalog if b.id not in earned and b.is_earned_by(stats)]


def unlocked_worlds(xp: int, catalog: Iterable[World] = WORLD_CATALOG) -> List[World]:
    return [w for w in catalog if xp >= w.required_xp]


def next_world(xp: int, catalog: Iterable[World] = WORLD_CATALOG) -> Optional[World]:
    """The cheapest world still locked at `xp`."""
    locked = sorted((w for w in catalog if w.required_xp > xp), key=lambda w: w.required_xp)
    return locked[0] if locked else None


def world_progress(xp: int, catalog: Iterable[World] = WORLD_CATALOG) -> int:
    """Percent progress (0-100) from the last unlocked world toward the next one."""
    catalog = list(catalog)
    upcoming = next_world(xp, catalog)
    if upcoming is None:
        return 100
    previous = [w.required_xp for w in catalog if w.required_xp < upcoming.required_xp]
    start = max(previous) if previous else 0
    span = upcoming.required_xp - start
    if span <= 0:
        return 100
    return min(100, round((xp - start) / span * 100))
