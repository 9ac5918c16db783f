"""
Question Selector - builds the fixed question queue for a session.

Every strategy draws from the same pool: eligible questions minus those the
student already answered correctly in a finished session, and minus wrong
answers until three sessions have passed. When that leaves nothing, the full
eligible pool is used instead.

Strategies:
- sequential: concepts in declared order, each concept's declared difficulty
  order, then question id.
- random: uniform shuffle of the pool.
- adaptive: weighted draw without replacement. Questions at a concept's
  current difficulty weigh most, adjacent levels a little, weaker and
  unstarted concepts weigh more, and recently seen questions weigh less.
  The picks are then interleaved across concepts and balanced for
  cognitive level.
- review: only concepts with at least one incorrect attempt, biased toward
  each concept's current difficulty.

The selector is pure; randomness comes from the injected random.Random.
"""

import itertools
import random
import uuid
from typing import Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel

from coolscool.engines.mastery.grader import SUPPORTED_QUESTION_TYPES
from coolscool.engines.mastery.mastery_tracker import ConceptProgressView
from coolscool.errors import InsufficientQuestionsError
from coolscool.kernel.curriculum import ConceptEntry, Difficulty, QuestionEntry
from coolscool.kernel.models.session import SelectionStrategy


class QuestionHistoryEntry(BaseModel):
    """Most recent outcome of a question in the user's finished sessions."""

    question_id: uuid.UUID
    is_correct: bool
    sessions_ago: int  # 1 = the most recently finished session


# Weight by distance between a question's difficulty and the concept's current one
DIFFICULTY_DISTANCE_WEIGHTS = (8.0, 1.0, 0.25)

RECENCY_FACTORS = {1: 0.2, 2: 0.4, 3: 0.7}
RECENCY_FACTOR_OLDER = 0.9
NEVER_SEEN_FACTOR = 1.2
ANSWERED_CORRECTLY_FACTOR = 0.5

# A wrongly answered question is held back until this many sessions ago
WRONG_ANSWER_GAP_SESSIONS = 3

MAX_SAME_LEVEL_RUN = 3


def is_eligible(question: QuestionEntry, concept: Optional[ConceptEntry]) -> bool:
    if concept is None or question.question_type not in SUPPORTED_QUESTION_TYPES:
        return False
    if not question.question_text or not question.question_text.strip():
        return False
    if question.question_type == "mcq" and not question.options:
        return False
    return concept.supports(question.difficulty)


def is_due(entry: Optional[QuestionHistoryEntry]) -> bool:
    """Never-seen questions are due; correct answers never again; wrong ones after the gap."""
    if entry is None:
        return True
    return not entry.is_correct and entry.sessions_ago >= WRONG_ANSWER_GAP_SESSIONS


def recency_factor(entry: Optional[QuestionHistoryEntry]) -> float:
    if entry is None:
        return NEVER_SEEN_FACTOR
    factor = RECENCY_FACTORS.get(max(entry.sessions_ago, 1), RECENCY_FACTOR_OLDER)
    if entry.is_correct:
        factor *= ANSWERED_CORRECTLY_FACTOR
    return factor


def interleave_concepts(questions: Sequence[QuestionEntry]) -> List[QuestionEntry]:
    """Round-robin across concepts, in order of each concept's first appearance."""
    groups: Dict[str, List[QuestionEntry]] = {}
    for q in questions:
        groups.setdefault(q.concept_id, []).append(q)
    result: List[QuestionEntry] = []
    for row in itertools.zip_longest(*groups.values()):
        result.extend(q for q in row if q is not None)
    return result


def apply_cognitive_variety(
    selected: Sequence[QuestionEntry],
    remaining: Sequence[QuestionEntry],
    priority: Optional[Mapping[uuid.UUID, float]] = None,
) -> List[QuestionEntry]:
    """
    Mix cognitive levels within a queue.

    If every pick shares one level and the remaining pool offers another, the
    lowest-priority pick (the last one when no priorities are given) is
    replaced. Then no more than MAX_SAME_LEVEL_RUN consecutive questions may
    share a level: a longer run is broken by swapping in a later pick, or
    failing that a question from the remaining pool. No question is ever
    added twice.
    """
    result = list(selected)
    if len(result) <= 1:
        return result
    priority = priority or {}
    used = {q.id for q in result}

    def replacement_for(level: str) -> Optional[QuestionEntry]:
        for q in remaining:
            if q.cognitive_level != level and q.id not in used:
                return q
        return None

    def replace(index: int, question: QuestionEntry) -> None:
        used.discard(result[index].id)
        result[index] = question
        used.add(question.id)

    if len({q.cognitive_level for q in result}) < 2:
        candidate = replacement_for(result[0].cognitive_level)
        if candidate is not None:
            lowest = min(range(len(result)), key=lambda i: (priority.get(result[i].id, 0.0), -i))
            replace(lowest, candidate)

    for i in range(MAX_SAME_LEVEL_RUN, len(result)):
        level = result[i].cognitive_level
        if any(result[j].cognitive_level != level for j in range(i - MAX_SAME_LEVEL_RUN, i)):
            continue
        later = next((j for j in range(i + 1, len(result)) if result[j].cognitive_level != level), None)
        if later is not None:
            result[i], result[later] = result[later], result[i]
            continue
        candidate = replacement_for(level)
        if candidate is not None:
            replace(i, candidate)
    return result


class QuestionSelector:
    """Turns a topic's question pool into an ordered queue of question ids."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    @staticmethod
    def eligible_pool(
        questions: Sequence[QuestionEntry],
        concepts: Sequence[ConceptEntry],
    ) -> List[QuestionEntry]:
        """Eligible questions, each id once."""
        by_id = {c.concept_id: c for c in concepts}
        pool: Dict[uuid.UUID, QuestionEntry] = {}
        for q in questions:
            if q.id not in pool and is_eligible(q, by_id.get(q.concept_id)):
                pool[q.id] = q
        return list(pool.values())

    @staticmethod
    def due_pool(
        pool: List[QuestionEntry],
        history: Mapping[uuid.UUID, QuestionHistoryEntry],
    ) -> List[QuestionEntry]:
        """Drop questions that are not due yet, unless that would drop them all."""
        due = [q for q in pool if is_due(history.get(q.id))]
        return due or pool

    def build_queue(
        self,
        concepts: Sequence[ConceptEntry],
        questions: Sequence[QuestionEntry],
        strategy: SelectionStrategy,
        count: int,
        progress: Optional[Mapping[str, ConceptProgressView]] = None,
        history: Optional[Mapping[uuid.UUID, QuestionHistoryEntry]] = None,
    ) -> List[uuid.UUID]:
        """
        Build a queue of exactly `count` distinct question ids.

        Raises:
            InsufficientQuestionsError: the (strategy-restricted) pool is smaller than count
        """
        if count < 1:
            raise ValueError("count must be at least 1")
        progress = progress or {}
        history = history or {}
        strategy = SelectionStrategy(strategy)

        pool = self.eligible_pool(questions, concepts)
        if strategy == SelectionStrategy.REVIEW:
            pool = self._review_pool(pool, progress)
        pool = self.due_pool(pool, history)
        if len(pool) < count:
            raise InsufficientQuestionsError(available=len(pool), requested=count)

        concept_map = {c.concept_id: c for c in concepts}
        if strategy == SelectionStrategy.SEQUENTIAL:
            selected = self._select_sequential(pool, concepts)
        elif strategy == SelectionStrategy.RANDOM:
            selected = self._select_random(pool)
        elif strategy == SelectionStrategy.REVIEW:
            selected = self._select_review(pool, concept_map, progress)
        else:
            selected = self._select_adaptive(pool, count, concept_map, progress, history)
        return [q.id for q in selected[:count]]

    @staticmethod
    def _review_pool(
        pool: List[QuestionEntry],
        progress: Mapping[str, ConceptProgressView],
    ) -> List[QuestionEntry]:
        missed = {
            concept_id
            for concept_id, p in progress.items()
            if p.total_attempts > p.total_correct
        }
        return [q for q in pool if q.concept_id in missed]

    @staticmethod
    def _select_sequential(
        pool: List[QuestionEntry],
        concepts: Sequence[ConceptEntry],
    ) -> List[QuestionEntry]:
        concept_rank = {c.concept_id: i for i, c in enumerate(concepts)}
        level_rank = {c.concept_id: {d: i for i, d in enumerate(c.difficulty_levels)} for c in concepts}
        return sorted(
            pool,
            key=lambda q: (
                concept_rank[q.concept_id],
                level_rank[q.concept_id][q.difficulty],
                q.question_id,
            ),
        )

    def _select_random(self, pool: List[QuestionEntry]) -> List[QuestionEntry]:
        shuffled = list(pool)
        self.rng.shuffle(shuffled)
        return shuffled

    @staticmethod
    def _current_difficulty(concept_id: str, progress: Mapping[str, ConceptProgressView]) -> Difficulty:
        p = progress.get(concept_id)
        return p.current_difficulty if p else Difficulty.FAMILIARITY

    @classmethod
    def _difficulty_weight(cls, question: QuestionEntry, current: Difficulty) -> float:
        distance = abs(question.difficulty.rank - current.rank)
        return DIFFICULTY_DISTANCE_WEIGHTS[distance]

    @staticmethod
    def _adaptive_concept_weight(concept: ConceptEntry, p: Optional[ConceptProgressView]) -> float:
        if p is None or not p.started:
            return 4.0
        levels = concept.difficulty_levels or []
        if not levels:
            return 1.0
        unmastered = sum(1 for d in levels if not p.mastery.is_mastered(d))
        return 1.0 + 2.0 * unmastered / len(levels)

    def _select_adaptive(
        self,
        pool: List[QuestionEntry],
        count: int,
        concept_map: Dict[str, ConceptEntry],
        progress: Mapping[str, ConceptProgressView],
        history: Mapping[uuid.UUID, QuestionHistoryEntry],
    ) -> List[QuestionEntry]:
        weights: Dict[uuid.UUID, float] = {}
        for q in pool:
            concept = concept_map[q.concept_id]
            current = self._current_difficulty(q.concept_id, progress)
            weights[q.id] = (
                self._adaptive_concept_weight(concept, progress.get(q.concept_id))
                * self._difficulty_weight(q, current)
                * recency_factor(history.get(q.id))
            )
        ordered = self._weighted_order(pool, [weights[q.id] for q in pool])
        picked = interleave_concepts(ordered[:count])
        return apply_cognitive_variety(picked, ordered[count:], weights)

    def _select_review(
        self,
        pool: List[QuestionEntry],
        concept_map: Dict[str, ConceptEntry],
        progress: Mapping[str, ConceptProgressView],
    ) -> List[QuestionEntry]:
        weights = []
        for q in pool:
            p = progress[q.concept_id]
            missed_share = (p.total_attempts - p.total_correct) / p.total_attempts
            current = self._current_difficulty(q.concept_id, progress)
            weights.append((1.0 + 2.0 * missed_share) * self._difficulty_weight(q, current))
        return self._weighted_order(pool, weights)

    def _weighted_order(self, pool: List[QuestionEntry], weights: List[float]) -> List[QuestionEntry]:
        """Weighted random permutation (exponential-key sampling without replacement)."""
        keyed = []
        for idx, (q, w) in enumerate(zip(pool, weights)):
            key = self.rng.random() ** (1.0 / w) if w > 0 else 0.0
            keyed.append((key, idx, q))
        keyed.sort(key=lambda t: (-t[0], t[1]))
        return [q for _, _, q in keyed]
