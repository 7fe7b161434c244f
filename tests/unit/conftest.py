"""
Shared fixtures for engine unit tests.

Builders for questions and graded answers so individual tests only spell
out the fields they care about.
"""

import os
import sys
from datetime import datetime, timedelta

import pytest

# Add package source to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "adaptive_tutor", "src"))

from adaptive_tutor.question import (  # noqa: E402
    Difficulty,
    GradedAnswer,
    Hint,
    HintKind,
    MultipleChoiceContent,
    Question,
    QuestionType,
    Scaffolding,
    WorkedExample,
    WorkedExampleStep,
)

BASE_TIME = datetime(2024, 1, 15, 10, 0, 0)


def build_scaffolding(levels=(1, 2, 3), worked_example=True):
    hints = tuple(
        Hint(id=f"h{level}", level=level, text=f"Hint level {level}", kind=list(HintKind)[level - 1])
        for level in levels
    )
    example = None
    if worked_example:
        example = WorkedExample(
            problem="What is 1/2 + 1/4?",
            steps=(
                WorkedExampleStep(1, "Find a common denominator", "4 works for both"),
                WorkedExampleStep(2, "Add the numerators", "2/4 + 1/4 = 3/4"),
            ),
            solution="3/4",
        )
    return Scaffolding(hints=hints, worked_example=example)


def build_question(
    qid="q1",
    topic="fractions",
    difficulty="medium",
    correct_index=1,
    scaffolding=None,
    **kwargs
):
    return Question(
        id=qid,
        topic=topic,
        type=QuestionType.MULTIPLE_CHOICE,
        content=MultipleChoiceContent(
            question="Which fraction is largest?",
            options=("1/4", "3/4", "1/2"),
            correct_index=correct_index,
        ),
        difficulty=difficulty,
        scaffolding=scaffolding if scaffolding is not None else build_scaffolding(),
        **kwargs
    )


def build_graded(
    correct=True,
    topic="fractions",
    difficulty=Difficulty.MEDIUM,
    time_spent_ms=5000,
    hints_used=0,
    qid="q1",
    subtopic=None,
    offset=0
):
    return GradedAnswer(
        question_id=qid,
        correct=correct,
        time_spent_ms=time_spent_ms,
        hints_used=hints_used,
        difficulty=difficulty,
        topic=topic,
        subtopic=subtopic,
        timestamp=BASE_TIME + timedelta(seconds=offset),
    )


@pytest.fixture
def make_question():
    """Factory for multiple-choice questions (correct option index 1 by default)."""
    return build_question


@pytest.fixture
def make_graded():
    """Factory for graded answers."""
    return build_graded


@pytest.fixture
def make_scaffolding():
    return build_scaffolding
