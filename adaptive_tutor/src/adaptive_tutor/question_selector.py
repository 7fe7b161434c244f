"""
Adaptive Question Selector

Picks the next question from a bank so the student stays in their zone of
proximal development:

1. Questions at the student's current difficulty (set by the difficulty adapter)
2. Failing that, one level easier, then one level harder, then anything
3. Prefer questions that address the student's struggling areas
4. Skip the last five questions asked
5. After two high-load questions in a row, prefer low/medium load

Selection is deterministic: ties resolve to bank order.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Sequence

from adaptive_tutor.performance_state import StudentPerformanceState
from adaptive_tutor.question import BloomsLevel, CognitiveLoad, Difficulty, DIFFICULTY_ORDER, Question

logger = logging.getLogger(__name__)

TARGET_ACCURACY = 0.75
ACCURACY_TOLERANCE = 0.10
RECENT_QUESTION_LOOKBACK = 5
HIGH_LOAD_RUN = 2


@dataclass(frozen=True)
class QuestionSelectionCriteria:
    topic: Optional[str] = None
    blooms_level: Optional[BloomsLevel] = None
    max_cognitive_load: Optional[CognitiveLoad] = None
    exclude_question_ids: FrozenSet[str] = field(default_factory=frozenset)


class AdaptiveQuestionSelector:
    """ZPD-targeted question selection over a question bank."""

    def select_next_question(
        self,
        bank: Sequence[Question],
        state: StudentPerformanceState,
        criteria: Optional[QuestionSelectionCriteria] = None
    ) -> Optional[Question]:
        """
        Select the next question for a student.

        Args:
            bank: Available questions
            state: Student's performance state for the topic
            criteria: Optional topic / Bloom's / load / exclusion filters

        Returns:
            The chosen Question, or None if nothing in the bank qualifies
        """
        target = state.current_difficulty
        recent_ids = frozenset(a.question_id for a in state.recent_answers[-RECENT_QUESTION_LOOKBACK:])
        candidates = self._filter(bank, target, criteria, recent_ids)
        if not candidates:
            candidates = self._expand_search(bank, target, criteria, recent_ids)

        if state.struggling_indicators:
            gaps = sorted(state.struggling_indicators)
            gap_questions = [q for q in candidates if any(q.matches_tag(g) for g in gaps)]
            if gap_questions:
                candidates = gap_questions

        if not candidates:
            logger.debug(f"🎯 [QuestionSelector] No candidates for {state.user_id[:20]}/{state.topic} at {target.value}")
            return None

        return self._optimal_cognitive_load(candidates, bank, state)

    def build_session_questions(
        self,
        bank: Sequence[Question],
        state: StudentPerformanceState,
        count: int,
        criteria: Optional[QuestionSelectionCriteria] = None
    ) -> List[Question]:
        """Pick up to `count` distinct questions, one selection at a time."""
        criteria = criteria or QuestionSelectionCriteria()
        chosen: List[Question] = []
        excluded = set(criteria.exclude_question_ids)

        while len(chosen) < count:
            step = QuestionSelectionCriteria(
                topic=criteria.topic,
                blooms_level=criteria.blooms_level,
                max_cognitive_load=criteria.max_cognitive_load,
                exclude_question_ids=frozenset(excluded),
            )
            question = self.select_next_question(bank, state, step)
            if question is None:
                break
            chosen.append(question)
            excluded.add(question.id)

        return chosen

    def _filter(
        self,
        bank: Sequence[Question],
        level: Difficulty,
        criteria: Optional[QuestionSelectionCriteria],
        skip_ids: FrozenSet[str] = frozenset()
    ) -> List[Question]:
        filtered = [q for q in bank if q.difficulty is level and q.id not in skip_ids]
        if criteria is None:
            return filtered

        if criteria.topic:
            needle = criteria.topic.lower()
            filtered = [q for q in filtered if needle in q.topic.lower()]
        if criteria.blooms_level:
            filtered = [q for q in filtered if q.blooms_level is criteria.blooms_level]
        if criteria.max_cognitive_load:
            filtered = [q for q in filtered if q.cognitive_load.rank <= criteria.max_cognitive_load.rank]
        if criteria.exclude_question_ids:
            filtered = [q for q in filtered if q.id not in criteria.exclude_question_ids]
        return filtered

    def _expand_search(
        self,
        bank: Sequence[Question],
        target: Difficulty,
        criteria: Optional[QuestionSelectionCriteria],
        skip_ids: FrozenSet[str] = frozenset()
    ) -> List[Question]:
        """One level easier, then one level harder, then any level."""
        index = target.rank
        if index > 0:
            easier = self._filter(bank, DIFFICULTY_ORDER[index - 1], criteria, skip_ids)
            if easier:
                return easier
        if index < len(DIFFICULTY_ORDER) - 1:
            harder = self._filter(bank, DIFFICULTY_ORDER[index + 1], criteria, skip_ids)
            if harder:
                return harder

        anywhere: List[Question] = []
        for level in DIFFICULTY_ORDER:
            anywhere.extend(self._filter(bank, level, criteria, skip_ids))
        return anywhere

    def _optimal_cognitive_load(
        self,
        candidates: List[Question],
        bank: Sequence[Question],
        state: StudentPerformanceState
    ) -> Question:
        by_id: Dict[str, Question] = {q.id: q for q in bank}
        last = [by_id.get(a.question_id) for a in state.recent_answers[-HIGH_LOAD_RUN:]]
        recent_high_load = (
            len(last) == HIGH_LOAD_RUN
            and all(q is not None and q.cognitive_load is CognitiveLoad.HIGH for q in last)
        )
        if recent_high_load:
            lighter = [q for q in candidates if q.cognitive_load is not CognitiveLoad.HIGH]
            if lighter:
                return lighter[0]
        return candidates[0]

    @staticmethod
    def is_in_zpd(accuracy_rate: float) -> bool:
        """True when accuracy sits in the 65-85% band around the 75% target."""
        return TARGET_ACCURACY - ACCURACY_TOLERANCE <= accuracy_rate <= TARGET_ACCURACY + ACCURACY_TOLERANCE

    @staticmethod
    def recommended_blooms_level(mastery_level: int) -> BloomsLevel:
        if mastery_level < 30:
            return BloomsLevel.REMEMBER
        if mastery_level < 50:
            return BloomsLevel.UNDERSTAND
        if mastery_level < 70:
            return BloomsLevel.APPLY
        if mastery_level < 85:
            return BloomsLevel.ANALYZE
        if mastery_level < 95:
            return BloomsLevel.EVALUATE
        return BloomsLevel.CREATE
