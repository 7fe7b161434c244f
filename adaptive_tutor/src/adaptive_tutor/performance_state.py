"""
Student Performance State

One record per (student, topic): a bounded sliding window of graded answers
plus the streak, accuracy, timing and mastery figures derived from it.

`record_answer` and `apply_difficulty` are the only writers. Both are pure:
they return an updated copy and leave the input untouched, so callers decide
when (and under which lock) the new state replaces the old one.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from adaptive_tutor.config import PerformanceConfig
from adaptive_tutor.errors import OutOfRangeError
from adaptive_tutor.question import Difficulty, GradedAnswer


@dataclass
class StudentPerformanceState:
    """Performance tracking for one student on one topic."""
    user_id: str
    topic: str
    recent_answers: List[GradedAnswer] = field(default_factory=list)  # most recent last
    current_streak: int = 0
    longest_streak: int = 0
    current_difficulty: Difficulty = Difficulty.MEDIUM
    mastery_level: int = 50  # 0-100
    # Derived from recent_answers
    accuracy_rate: float = 0.75
    average_time_per_question: float = 0.0  # milliseconds
    hints_usage_rate: float = 0.0
    struggling_indicators: Set[str] = field(default_factory=set)
    strength_areas: Set[str] = field(default_factory=set)
    total_answers: int = 0
    updated_at: Optional[datetime] = None

    @classmethod
    def initial(
        cls,
        user_id: str,
        topic: str,
        config: Optional[PerformanceConfig] = None
    ) -> "StudentPerformanceState":
        """Fresh state for a (student, topic) pair seen for the first time."""
        config = config or PerformanceConfig()
        return cls(
            user_id=user_id,
            topic=topic,
            current_difficulty=config.initial_difficulty,
            mastery_level=config.initial_mastery,
            accuracy_rate=config.neutral_accuracy,
        )

    @property
    def consecutive_wrong(self) -> int:
        """Trailing run of incorrect answers in the window."""
        count = 0
        for answer in reversed(self.recent_answers):
            if answer.correct:
                break
            count += 1
        return count

    @property
    def correct_count(self) -> int:
        return sum(1 for answer in self.recent_answers if answer.correct)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "topic": self.topic,
            "recent_answers": [answer.to_dict() for answer in self.recent_answers],
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "current_difficulty": self.current_difficulty.value,
            "mastery_level": self.mastery_level,
            "accuracy_rate": self.accuracy_rate,
            "average_time_per_question": self.average_time_per_question,
            "hints_usage_rate": self.hints_usage_rate,
            "struggling_indicators": sorted(self.struggling_indicators),
            "strength_areas": sorted(self.strength_areas),
            "total_answers": self.total_answers,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StudentPerformanceState":
        return cls(
            user_id=data["user_id"],
            topic=data["topic"],
            recent_answers=[GradedAnswer.from_dict(item) for item in data.get("recent_answers") or []],
            current_streak=data.get("current_streak", 0),
            longest_streak=data.get("longest_streak", 0),
            current_difficulty=Difficulty.parse(data.get("current_difficulty", "medium")),
            mastery_level=data.get("mastery_level", 50),
            accuracy_rate=data.get("accuracy_rate", 0.75),
            average_time_per_question=data.get("average_time_per_question", 0.0),
            hints_usage_rate=data.get("hints_usage_rate", 0.0),
            struggling_indicators=set(data.get("struggling_indicators") or []),
            strength_areas=set(data.get("strength_areas") or []),
            total_answers=data.get("total_answers", 0),
            updated_at=datetime.fromisoformat(data["updated_at"]) if data.get("updated_at") else None,
        )


def _window_metrics(answers: List[GradedAnswer], neutral_accuracy: float):
    """(accuracy, average time, hints usage rate) over the window."""
    if not answers:
        return neutral_accuracy, 0.0, 0.0
    n = len(answers)
    accuracy = sum(1 for a in answers if a.correct) / n
    average_time = sum(a.time_spent_ms for a in answers) / n
    hints_rate = sum(1 for a in answers if a.hints_used > 0) / n
    return accuracy, average_time, hints_rate


def _answer_tags(answer: GradedAnswer) -> List[str]:
    tags = [answer.topic]
    if answer.subtopic:
        tags.append(answer.subtopic)
    return tags


def _retag(
    state: StudentPerformanceState,
    tags: Iterable[str],
    config: PerformanceConfig
) -> None:
    """Move each tag into struggling/strength (or neither) from its windowed accuracy."""
    for tag in tags:
        tagged = [a for a in state.recent_answers if tag in _answer_tags(a)]
        if len(tagged) < config.tag_min_answers:
            continue
        accuracy = sum(1 for a in tagged if a.correct) / len(tagged)
        state.struggling_indicators.discard(tag)
        state.strength_areas.discard(tag)
        if accuracy < config.struggling_threshold:
            state.struggling_indicators.add(tag)
        elif accuracy >= config.strength_threshold:
            state.strength_areas.add(tag)


def record_answer(
    state: StudentPerformanceState,
    answer: GradedAnswer,
    config: Optional[PerformanceConfig] = None
) -> StudentPerformanceState:
    """
    Fold one graded answer into the state.

    Args:
        state: Current state (not modified)
        answer: Graded answer for this state's topic
        config: Window size, mastery steps and tagging thresholds

    Returns:
        Updated copy of the state

    Raises:
        OutOfRangeError: If the answer belongs to another topic
    """
    config = config or PerformanceConfig()
    if answer.topic != state.topic:
        raise OutOfRangeError(
            f"Answer for topic '{answer.topic}' cannot update state for topic '{state.topic}'"
        )

    updated = copy.deepcopy(state)

    # Sliding window, FIFO eviction
    updated.recent_answers.append(answer)
    if len(updated.recent_answers) > config.window_size:
        del updated.recent_answers[: len(updated.recent_answers) - config.window_size]
    updated.total_answers += 1

    # Streaks
    updated.current_streak = updated.current_streak + 1 if answer.correct else 0
    updated.longest_streak = max(updated.longest_streak, updated.current_streak)

    # Derived means
    (
        updated.accuracy_rate,
        updated.average_time_per_question,
        updated.hints_usage_rate,
    ) = _window_metrics(updated.recent_answers, config.neutral_accuracy)

    # Mastery
    if answer.correct:
        gain = config.mastery_gain_unassisted if answer.hints_used == 0 else config.mastery_gain_assisted
        updated.mastery_level += gain
    else:
        updated.mastery_level -= config.mastery_loss
    updated.mastery_level = max(0, min(100, updated.mastery_level))

    _retag(updated, _answer_tags(answer), config)
    updated.updated_at = answer.timestamp
    return updated


def apply_difficulty(state: StudentPerformanceState, level: Difficulty) -> StudentPerformanceState:
    """Return a copy of the state at a new difficulty level."""
    if state.current_difficulty is level:
        return state
    updated = copy.deepcopy(state)
    updated.current_difficulty = level
    return updated
