"""
Answer Grading

Turns a raw `Answer` into a `GradedAnswer` by checking its value against the
question's content. One checker per question kind; every kind in
`QuestionType` must have a checker.

Malformed values (wrong shape, unparsable numbers) grade as incorrect rather
than raising: a child typing "seven" into a number box is a wrong answer,
not an engine failure.
"""

import logging
import re
from collections.abc import Sequence
from typing import Any, Callable, Dict, Optional

from adaptive_tutor.errors import ConfigurationError
from adaptive_tutor.question import (
    Answer,
    FillBlankContent,
    GradedAnswer,
    MatchingContent,
    MultipleChoiceContent,
    MultipleSelectContent,
    NumericContent,
    OpenResponseContent,
    OrderingContent,
    Question,
    QuestionType,
    ShortAnswerContent,
    TrueFalseContent,
    TrueFalseExplainContent,
)

logger = logging.getLogger(__name__)


def _normalize(text: Any) -> str:
    return re.sub(r"\s+", " ", str(text)).strip().lower()


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "t", "yes"):
            return True
        if lowered in ("false", "f", "no"):
            return False
    return None


class AnswerGrader:
    """
    Grades answers for every supported question kind.

    Usage:
        grader = AnswerGrader()
        graded = grader.grade(question, answer)
    """

    def __init__(self):
        self._checkers: Dict[QuestionType, Callable[[Any, Any], bool]] = {
            QuestionType.MULTIPLE_CHOICE: self._check_multiple_choice,
            QuestionType.MULTIPLE_SELECT: self._check_multiple_select,
            QuestionType.FILL_BLANK: self._check_fill_blank,
            QuestionType.TRUE_FALSE: self._check_true_false,
            QuestionType.TRUE_FALSE_EXPLAIN: self._check_true_false_explain,
            QuestionType.NUMERIC: self._check_numeric,
            QuestionType.SHORT_ANSWER: self._check_short_answer,
            QuestionType.OPEN_RESPONSE: self._check_open_response,
            QuestionType.MATCHING: self._check_matching,
            QuestionType.ORDERING: self._check_ordering,
        }
        missing = set(QuestionType) - set(self._checkers)
        if missing:
            raise ConfigurationError(f"No grader for question types: {sorted(t.value for t in missing)}")

    def grade(self, question: Question, answer: Answer) -> GradedAnswer:
        """
        Grade an answer against its question.

        Args:
            question: The question that was answered
            answer: Raw answer event (question ids must match)

        Returns:
            GradedAnswer carrying correctness plus the question's difficulty/topic
        """
        if answer.question_id != question.id:
            raise ConfigurationError(
                f"Answer for '{answer.question_id}' cannot be graded against question '{question.id}'"
            )
        correct = self.is_correct(question, answer.value)
        return GradedAnswer(
            question_id=question.id,
            correct=correct,
            time_spent_ms=answer.time_spent_ms,
            hints_used=answer.hints_used,
            difficulty=question.difficulty,
            topic=question.topic,
            subtopic=question.subtopic,
            timestamp=answer.timestamp,
        )

    def is_correct(self, question: Question, value: Any) -> bool:
        checker = self._checkers[question.type]
        try:
            return bool(checker(question.content, value))
        except (TypeError, ValueError, KeyError, IndexError) as e:
            logger.debug(f"🔍 [AnswerGrader] Malformed value for '{question.id}' graded incorrect: {e}")
            return False

    # ------------------------------------------------------------------
    # Checkers
    # ------------------------------------------------------------------

    def _check_multiple_choice(self, content: MultipleChoiceContent, value: Any) -> bool:
        if isinstance(value, bool):
            return False
        return int(value) == content.correct_index

    def _check_multiple_select(self, content: MultipleSelectContent, value: Any) -> bool:
        if isinstance(value, (str, bytes)) or not isinstance(value, (Sequence, set, frozenset)):
            return False
        selected = {int(v) for v in value}
        if content.min_select is not None and len(selected) < content.min_select:
            return False
        if content.max_select is not None and len(selected) > content.max_select:
            return False
        return selected == set(content.correct_indices)

    def _check_fill_blank(self, content: FillBlankContent, value: Any) -> bool:
        responses = [value] if isinstance(value, str) else list(value)
        if len(responses) < len(content.blanks):
            return False
        for blank, response in zip(content.blanks, responses):
            if response is None:
                return False
            if blank.case_sensitive:
                given = str(response).strip()
                accepted = {str(a).strip() for a in blank.correct_answers}
            else:
                given = _normalize(response)
                accepted = {_normalize(a) for a in blank.correct_answers}
            if given not in accepted:
                return False
        return True

    def _check_true_false(self, content: TrueFalseContent, value: Any) -> bool:
        return _as_bool(value) is content.correct

    def _check_true_false_explain(self, content: TrueFalseExplainContent, value: Any) -> bool:
        if isinstance(value, dict):
            choice, explanation = value.get("answer"), value.get("explanation", "")
        elif isinstance(value, (list, tuple)) and len(value) == 2:
            choice, explanation = value
        else:
            choice, explanation = value, ""
        if _as_bool(choice) is not content.correct:
            return False
        if content.require_explanation and not str(explanation or "").strip():
            return False
        return True

    def _check_numeric(self, content: NumericContent, value: Any) -> bool:
        if isinstance(value, bool):
            return False
        if isinstance(value, str):
            value = value.strip()
            if content.unit and value.lower().endswith(content.unit.lower()):
                value = value[: -len(content.unit)].strip()
        return abs(float(value) - content.correct_answer) <= content.tolerance

    def _check_short_answer(self, content: ShortAnswerContent, value: Any) -> bool:
        if not isinstance(value, str) or not value.strip():
            return False
        word_count = len(value.split())
        if content.min_words is not None and word_count < content.min_words:
            return False
        if content.max_words is not None and word_count > content.max_words:
            return False
        given = _normalize(value)
        if given in {_normalize(a) for a in content.acceptable_answers}:
            return True
        if content.keywords:
            return all(_normalize(k) in given for k in content.keywords)
        return False

    def _check_open_response(self, content: OpenResponseContent, value: Any) -> bool:
        return self.rubric_score(content, value) >= content.passing_score

    def rubric_score(self, content: OpenResponseContent, value: Any) -> int:
        """Points earned on a keyword rubric; criteria without keywords credit any non-empty response."""
        if not isinstance(value, str) or not value.strip():
            return 0
        given = _normalize(value)
        score = 0
        for criterion in content.criteria:
            if not criterion.keywords or any(_normalize(k) in given for k in criterion.keywords):
                score += criterion.points
        return score

    def _check_matching(self, content: MatchingContent, value: Any) -> bool:
        if not isinstance(value, dict):
            return False
        for pair in content.pairs:
            chosen = value.get(pair.id, value.get(pair.left))
            if chosen is None or _normalize(chosen) != _normalize(pair.right):
                return False
        return True

    def _check_ordering(self, content: OrderingContent, value: Any) -> bool:
        if isinstance(value, (str, bytes)):
            return False
        return [int(v) for v in value] == list(content.correct_order)
