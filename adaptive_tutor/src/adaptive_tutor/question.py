"""
Question & Answer Data Model

Immutable question records (authored or generated upstream) and the answer
events that flow into the engine.

Question content is a tagged union: one frozen dataclass per question kind,
each carrying its own `type` discriminator. `Question` validates that the
content kind matches the question type and that hints are ordered by level.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from adaptive_tutor.errors import ConfigurationError


def _parse_enum(enum_cls, value, what: str):
    """Coerce a raw string (or enum member) into `enum_cls`."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(f"Unknown {what} '{value}' (expected one of: {allowed})") from None


class Difficulty(Enum):
    """Difficulty levels, totally ordered from beginner to advanced."""
    BEGINNER = "beginner"
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    ADVANCED = "advanced"

    @classmethod
    def parse(cls, value) -> "Difficulty":
        return _parse_enum(cls, value, "difficulty")

    @property
    def rank(self) -> int:
        return DIFFICULTY_ORDER.index(self)

    def step_up(self) -> "Difficulty":
        """One level harder (stays at the top)."""
        return DIFFICULTY_ORDER[min(self.rank + 1, len(DIFFICULTY_ORDER) - 1)]

    def step_down(self) -> "Difficulty":
        """One level easier (stays at the bottom)."""
        return DIFFICULTY_ORDER[max(self.rank - 1, 0)]


DIFFICULTY_ORDER: List[Difficulty] = [
    Difficulty.BEGINNER,
    Difficulty.EASY,
    Difficulty.MEDIUM,
    Difficulty.HARD,
    Difficulty.ADVANCED,
]


class CognitiveLoad(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value) -> "CognitiveLoad":
        return _parse_enum(cls, value, "cognitive load")

    @property
    def rank(self) -> int:
        return {"low": 1, "medium": 2, "high": 3}[self.value]


class BloomsLevel(Enum):
    """Bloom's taxonomy cognitive levels."""
    REMEMBER = "remember"
    UNDERSTAND = "understand"
    APPLY = "apply"
    ANALYZE = "analyze"
    EVALUATE = "evaluate"
    CREATE = "create"

    @classmethod
    def parse(cls, value) -> "BloomsLevel":
        return _parse_enum(cls, value, "Bloom's level")


class QuestionType(Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    MULTIPLE_SELECT = "multiple-select"
    FILL_BLANK = "fill-blank"
    TRUE_FALSE = "true-false"
    TRUE_FALSE_EXPLAIN = "true-false-explain"
    NUMERIC = "numeric"
    SHORT_ANSWER = "short-answer"
    OPEN_RESPONSE = "open-response"
    MATCHING = "matching"
    ORDERING = "ordering"

    @classmethod
    def parse(cls, value) -> "QuestionType":
        return _parse_enum(cls, value, "question type")


class HintKind(Enum):
    """How much a hint gives away."""
    NUDGE = "nudge"
    GUIDANCE = "guidance"
    REVEAL = "reveal"


# ---------------------------------------------------------------------------
# Scaffolding
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Hint:
    id: str
    level: int  # 1..3, progressive disclosure
    text: str
    kind: HintKind = HintKind.NUDGE

    def __post_init__(self):
        if self.level not in (1, 2, 3):
            raise ConfigurationError(f"Hint '{self.id}' has level {self.level}; expected 1, 2 or 3")
        object.__setattr__(self, "kind", _parse_enum(HintKind, self.kind, "hint kind"))


@dataclass(frozen=True)
class WorkedExampleStep:
    step: int
    action: str
    explanation: str
    visual: Optional[str] = None


@dataclass(frozen=True)
class WorkedExample:
    problem: str
    steps: Tuple[WorkedExampleStep, ...] = ()
    solution: str = ""
    reasoning: str = ""


@dataclass(frozen=True)
class VisualAid:
    kind: str  # diagram, chart, image, animation
    url: str
    caption: str = ""
    alt_text: str = ""


@dataclass(frozen=True)
class Scaffolding:
    """Progressive support attached to a question."""
    hints: Tuple[Hint, ...] = ()
    worked_example: Optional[WorkedExample] = None
    visual_aid: Optional[VisualAid] = None
    prerequisite_knowledge: Tuple[str, ...] = ()

    def __post_init__(self):
        levels = [hint.level for hint in self.hints]
        if any(later <= earlier for earlier, later in zip(levels, levels[1:])):
            raise ConfigurationError(f"Hints must be strictly ordered by level, got {levels}")

    def hints_up_to(self, level: int) -> Tuple[Hint, ...]:
        """Ordered prefix of hints whose level is <= `level`."""
        return tuple(hint for hint in self.hints if hint.level <= level)


# ---------------------------------------------------------------------------
# Question content (tagged union)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MultipleChoiceContent:
    question: str
    options: Tuple[str, ...]
    correct_index: int
    type: QuestionType = field(default=QuestionType.MULTIPLE_CHOICE, init=False)


@dataclass(frozen=True)
class MultipleSelectContent:
    question: str
    options: Tuple[str, ...]
    correct_indices: Tuple[int, ...]
    min_select: Optional[int] = None
    max_select: Optional[int] = None
    type: QuestionType = field(default=QuestionType.MULTIPLE_SELECT, init=False)


@dataclass(frozen=True)
class Blank:
    position: int
    correct_answers: Tuple[str, ...]
    case_sensitive: bool = False


@dataclass(frozen=True)
class FillBlankContent:
    text: str  # ___ marks each blank
    blanks: Tuple[Blank, ...]
    type: QuestionType = field(default=QuestionType.FILL_BLANK, init=False)


@dataclass(frozen=True)
class TrueFalseContent:
    statement: str
    correct: bool
    explanation: str = ""
    type: QuestionType = field(default=QuestionType.TRUE_FALSE, init=False)


@dataclass(frozen=True)
class TrueFalseExplainContent:
    statement: str
    correct: bool
    explanation: str = ""
    require_explanation: bool = True
    explanation_prompt: str = ""
    type: QuestionType = field(default=QuestionType.TRUE_FALSE_EXPLAIN, init=False)


@dataclass(frozen=True)
class NumericContent:
    question: str
    correct_answer: float
    tolerance: float = 0.0
    unit: Optional[str] = None
    type: QuestionType = field(default=QuestionType.NUMERIC, init=False)


@dataclass(frozen=True)
class ShortAnswerContent:
    question: str
    acceptable_answers: Tuple[str, ...]
    keywords: Tuple[str, ...] = ()
    min_words: Optional[int] = None
    max_words: Optional[int] = None
    type: QuestionType = field(default=QuestionType.SHORT_ANSWER, init=False)


@dataclass(frozen=True)
class RubricCriterion:
    name: str
    description: str
    points: int
    keywords: Tuple[str, ...] = ()


@dataclass(frozen=True)
class OpenResponseContent:
    question: str
    criteria: Tuple[RubricCriterion, ...]
    passing_score: int
    example_answer: Optional[str] = None
    type: QuestionType = field(default=QuestionType.OPEN_RESPONSE, init=False)

    @property
    def total_points(self) -> int:
        return sum(criterion.points for criterion in self.criteria)


@dataclass(frozen=True)
class MatchPair:
    id: str
    left: str
    right: str


@dataclass(frozen=True)
class MatchingContent:
    instructions: str
    pairs: Tuple[MatchPair, ...]
    type: QuestionType = field(default=QuestionType.MATCHING, init=False)


@dataclass(frozen=True)
class OrderingContent:
    instructions: str
    items: Tuple[str, ...]
    correct_order: Tuple[int, ...]  # indices into `items`
    type: QuestionType = field(default=QuestionType.ORDERING, init=False)


QuestionContent = Union[
    MultipleChoiceContent,
    MultipleSelectContent,
    FillBlankContent,
    TrueFalseContent,
    TrueFalseExplainContent,
    NumericContent,
    ShortAnswerContent,
    OpenResponseContent,
    MatchingContent,
    OrderingContent,
]


# ---------------------------------------------------------------------------
# Question
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Question:
    """An adaptive question with pedagogical metadata."""
    id: str
    topic: str
    type: QuestionType
    content: QuestionContent
    difficulty: Difficulty
    cognitive_load: CognitiveLoad = CognitiveLoad.MEDIUM
    scaffolding: Scaffolding = field(default_factory=Scaffolding)
    subtopic: Optional[str] = None
    blooms_level: Optional[BloomsLevel] = None
    estimated_time_seconds: int = 30
    points: int = 10
    tags: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.id:
            raise ConfigurationError("Question id must not be empty")
        if not self.topic:
            raise ConfigurationError(f"Question '{self.id}' has no topic")
        # Accept raw strings from upstream generators
        object.__setattr__(self, "type", QuestionType.parse(self.type))
        object.__setattr__(self, "difficulty", Difficulty.parse(self.difficulty))
        object.__setattr__(self, "cognitive_load", CognitiveLoad.parse(self.cognitive_load))
        if self.blooms_level is not None:
            object.__setattr__(self, "blooms_level", BloomsLevel.parse(self.blooms_level))
        if self.content.type is not self.type:
            raise ConfigurationError(
                f"Question '{self.id}' is '{self.type.value}' but carries "
                f"'{self.content.type.value}' content"
            )

    @property
    def hint_count(self) -> int:
        return len(self.scaffolding.hints)

    def matches_tag(self, tag: str) -> bool:
        """True if `tag` names this question's topic, subtopic or one of its tags."""
        needle = tag.lower()
        haystack = [self.topic, self.subtopic or ""] + list(self.tags)
        return any(needle in item.lower() for item in haystack if item)


# ---------------------------------------------------------------------------
# Answer events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Answer:
    """Raw answer event from the UI."""
    question_id: str
    value: Any
    time_spent_ms: int
    hints_used: int = 0
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if self.time_spent_ms < 0:
            raise ConfigurationError(f"time_spent_ms must be >= 0, got {self.time_spent_ms}")
        if self.hints_used < 0:
            raise ConfigurationError(f"hints_used must be >= 0, got {self.hints_used}")


@dataclass(frozen=True)
class GradedAnswer:
    """An answer after grading; the unit stored in performance windows and reward batches."""
    question_id: str
    correct: bool
    time_spent_ms: int
    hints_used: int
    difficulty: Difficulty
    topic: str
    subtopic: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "correct": self.correct,
            "time_spent_ms": self.time_spent_ms,
            "hints_used": self.hints_used,
            "difficulty": self.difficulty.value,
            "topic": self.topic,
            "subtopic": self.subtopic,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GradedAnswer":
        return cls(
            question_id=data["question_id"],
            correct=bool(data["correct"]),
            time_spent_ms=int(data["time_spent_ms"]),
            hints_used=int(data.get("hints_used", 0)),
            difficulty=Difficulty.parse(data["difficulty"]),
            topic=data["topic"],
            subtopic=data.get("subtopic"),
            timestamp=datetime.fromisoformat(data["timestamp"]) if data.get("timestamp") else datetime.now(),
        )
