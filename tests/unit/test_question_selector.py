"""Unit tests for the QuestionSelector (pure, seeded randomness)."""

import random
import uuid
from collections import Counter
from typing import List

import pytest

from coolscool.engines.mastery import ConceptProgressView, MasteryByDifficulty
from coolscool.engines.selection import (
    QuestionHistoryEntry,
    QuestionSelector,
    apply_cognitive_variety,
    interleave_concepts,
    is_due,
    is_eligible,
    recency_factor,
)
from coolscool.errors import InsufficientQuestionsError
from coolscool.kernel.curriculum import ConceptEntry, Difficulty, QuestionEntry
from coolscool.kernel.models.session import SelectionStrategy

FAM, APP, EXAM = Difficulty.FAMILIARITY, Difficulty.APPLICATION, Difficulty.EXAM_STYLE


def make_concepts() -> List[ConceptEntry]:
    return [
        ConceptEntry(concept_id="alpha", topic_id="t", difficulty_levels=[FAM, APP, EXAM]),
        ConceptEntry(concept_id="beta", topic_id="t", difficulty_levels=[FAM, APP]),
    ]


def make_question(
    concept_id: str,
    difficulty: Difficulty,
    n: int,
    question_type: str = "true_false",
    cognitive_level: str = "recall",
) -> QuestionEntry:
    return QuestionEntry(
        id=uuid.uuid4(),
        question_id=f"{concept_id}-{difficulty.value}-{n}",
        concept_id=concept_id,
        topic_id="t",
        difficulty=difficulty,
        cognitive_level=cognitive_level,
        question_type=question_type,
        question_text="Is it?",
        correct_answer=True,
    )


def make_pool() -> List[QuestionEntry]:
    pool = []
    for concept in make_concepts():
        for level in concept.difficulty_levels:
            for n in range(1, 5):
                pool.append(make_question(concept.concept_id, level, n))
    return pool


def progress_for(concept_id: str, current: Difficulty, attempts: int = 5, correct: int = 5,
                 mastered=()) -> ConceptProgressView:
    mastery = MasteryByDifficulty()
    for level in mastered:
        mastery.bucket(level).mastered = True
        mastery.bucket(level).attempts = 5
    return ConceptProgressView(
        concept_id=concept_id,
        topic_id="t",
        current_difficulty=current,
        total_attempts=attempts,
        total_correct=correct,
        mastery=mastery,
    )


class TestEligibility:
    def test_supported_declared_question_is_eligible(self):
        concept = make_concepts()[0]
        assert is_eligible(make_question("alpha", FAM, 1), concept) is True

    def test_unsupported_type_is_excluded(self):
        concept = make_concepts()[0]
        assert is_eligible(make_question("alpha", FAM, 1, question_type="essay"), concept) is False

    def test_undeclared_difficulty_is_excluded(self):
        beta = make_concepts()[1]
        assert is_eligible(make_question("beta", EXAM, 1), beta) is False

    def test_unknown_concept_is_excluded(self):
        assert is_eligible(make_question("gamma", FAM, 1), None) is False

    def test_mcq_without_options_is_excluded(self):
        concept = make_concepts()[0]
        assert is_eligible(make_question("alpha", FAM, 1, question_type="mcq"), concept) is False


class TestSequential:
    def test_concept_then_declared_difficulty_then_question_id(self):
        pool = make_pool()
        random.Random(3).shuffle(pool)
        selector = QuestionSelector(rng=random.Random(0))
        queue = selector.build_queue(make_concepts(), pool, SelectionStrategy.SEQUENTIAL, count=20)

        by_id = {q.id: q for q in pool}
        names = [by_id[qid].question_id for qid in queue]
        assert names[:4] == [f"alpha-familiarity-{n}" for n in range(1, 5)]
        assert names[4:8] == [f"alpha-application-{n}" for n in range(1, 5)]
        assert names[12] == "beta-familiarity-1"
        assert names[-1] == "beta-application-4"


class TestRandom:
    def test_distinct_and_deterministic_for_a_seed(self):
        pool = make_pool()
        first = QuestionSelector(rng=random.Random(42)).build_queue(
            make_concepts(), pool, SelectionStrategy.RANDOM, count=10
        )
        second = QuestionSelector(rng=random.Random(42)).build_queue(
            make_concepts(), pool, SelectionStrategy.RANDOM, count=10
        )
        assert first == second
        assert len(set(first)) == 10

    def test_duplicate_pool_entries_are_not_repeated(self):
        pool = make_pool()
        doubled = pool + pool
        queue = QuestionSelector(rng=random.Random(1)).build_queue(
            make_concepts(), doubled, SelectionStrategy.RANDOM, count=len(pool)
        )
        assert len(queue) == len(set(queue))


class TestPoolSize:
    def test_more_than_the_pool_raises(self):
        pool = make_pool()
        with pytest.raises(InsufficientQuestionsError) as exc_info:
            QuestionSelector().build_queue(make_concepts(), pool, SelectionStrategy.RANDOM, count=len(pool) + 1)
        assert exc_info.value.available == len(pool)
        assert exc_info.value.requested == len(pool) + 1

    def test_count_must_be_positive(self):
        with pytest.raises(ValueError):
            QuestionSelector().build_queue(make_concepts(), make_pool(), SelectionStrategy.RANDOM, count=0)

    def test_whole_pool_can_be_requested(self):
        pool = make_pool()
        queue = QuestionSelector(rng=random.Random(5)).build_queue(
            make_concepts(), pool, SelectionStrategy.ADAPTIVE, count=len(pool)
        )
        assert set(queue) == {q.id for q in pool}


class TestReview:
    def test_only_concepts_with_misses(self):
        pool = make_pool()
        progress = {
            "alpha": progress_for("alpha", FAM, attempts=5, correct=5),
            "beta": progress_for("beta", FAM, attempts=5, correct=3),
        }
        by_id = {q.id: q for q in pool}
        queue = QuestionSelector(rng=random.Random(7)).build_queue(
            make_concepts(), pool, SelectionStrategy.REVIEW, count=8, progress=progress
        )
        assert {by_id[qid].concept_id for qid in queue} == {"beta"}

    def test_no_misses_means_nothing_to_review(self):
        progress = {"alpha": progress_for("alpha", FAM, attempts=4, correct=4)}
        with pytest.raises(InsufficientQuestionsError) as exc_info:
            QuestionSelector().build_queue(
                make_concepts(), make_pool(), SelectionStrategy.REVIEW, count=1, progress=progress
            )
        assert exc_info.value.available == 0


class TestAdaptive:
    def test_favours_current_difficulty(self):
        pool = make_pool()
        by_id = {q.id: q for q in pool}
        progress = {
            "alpha": progress_for("alpha", APP, mastered=[FAM]),
            "beta": progress_for("beta", APP, mastered=[FAM]),
        }
        counts = Counter()
        for seed in range(200):
            queue = QuestionSelector(rng=random.Random(seed)).build_queue(
                make_concepts(), pool, SelectionStrategy.ADAPTIVE, count=4, progress=progress
            )
            counts.update(by_id[qid].difficulty for qid in queue)
        assert counts[APP] / sum(counts.values()) > 0.6

    def test_favours_unstarted_concepts(self):
        pool = make_pool()
        by_id = {q.id: q for q in pool}
        # alpha fully mastered; beta never attempted
        progress = {"alpha": progress_for("alpha", FAM, mastered=[FAM, APP, EXAM])}
        counts = Counter()
        for seed in range(200):
            queue = QuestionSelector(rng=random.Random(seed)).build_queue(
                make_concepts(), pool, SelectionStrategy.ADAPTIVE, count=4, progress=progress
            )
            counts.update(by_id[qid].concept_id for qid in queue)
        assert counts["beta"] > counts["alpha"]

    def test_recently_seen_questions_come_later(self):
        concepts = [ConceptEntry(concept_id="alpha", topic_id="t", difficulty_levels=[FAM])]
        pool = [make_question("alpha", FAM, n) for n in range(1, 11)]
        # Everything was answered correctly, so the whole pool comes back and recency decides
        history = {
            q.id: QuestionHistoryEntry(question_id=q.id, is_correct=True, sessions_ago=1 if i < 5 else 4)
            for i, q in enumerate(pool)
        }
        older_first = 0
        for seed in range(200):
            queue = QuestionSelector(rng=random.Random(seed)).build_queue(
                concepts, pool, SelectionStrategy.ADAPTIVE, count=1, history=history
            )
            older_first += history[queue[0]].sessions_ago == 4
        assert older_first > 140

    def test_picks_rotate_across_concepts(self):
        pool = make_pool()
        by_id = {q.id: q for q in pool}
        for seed in range(50):
            queue = QuestionSelector(rng=random.Random(seed)).build_queue(
                make_concepts(), pool, SelectionStrategy.ADAPTIVE, count=6
            )
            picked = [by_id[qid] for qid in queue]
            assert picked == interleave_concepts(picked)
            if len({q.concept_id for q in picked}) == 2:
                assert picked[0].concept_id != picked[1].concept_id

    def test_cognitive_levels_are_mixed(self):
        concepts = [ConceptEntry(concept_id="alpha", topic_id="t", difficulty_levels=[FAM])]
        pool = [make_question("alpha", FAM, n) for n in range(1, 9)]
        pool.append(make_question("alpha", FAM, 9, cognitive_level="scenario"))
        by_id = {q.id: q for q in pool}
        for seed in range(50):
            queue = QuestionSelector(rng=random.Random(seed)).build_queue(
                concepts, pool, SelectionStrategy.ADAPTIVE, count=4
            )
            assert "scenario" in {by_id[qid].cognitive_level for qid in queue}
            assert len(set(queue)) == 4


class TestAnswerHistory:
    @pytest.mark.parametrize(
        "strategy",
        [SelectionStrategy.SEQUENTIAL, SelectionStrategy.RANDOM, SelectionStrategy.ADAPTIVE],
    )
    def test_correct_answers_are_not_served_again(self, strategy):
        pool = make_pool()
        answered = {
            q.id: QuestionHistoryEntry(question_id=q.id, is_correct=True, sessions_ago=5) for q in pool[:8]
        }
        queue = QuestionSelector(rng=random.Random(3)).build_queue(
            make_concepts(), pool, strategy, count=len(pool) - 8, history=answered
        )
        assert not set(queue) & set(answered)

    def test_wrong_answers_return_after_three_sessions(self):
        qid = uuid.uuid4()
        assert is_due(None) is True
        assert is_due(QuestionHistoryEntry(question_id=qid, is_correct=False, sessions_ago=1)) is False
        assert is_due(QuestionHistoryEntry(question_id=qid, is_correct=False, sessions_ago=2)) is False
        assert is_due(QuestionHistoryEntry(question_id=qid, is_correct=False, sessions_ago=3)) is True
        assert is_due(QuestionHistoryEntry(question_id=qid, is_correct=True, sessions_ago=9)) is False

    def test_recent_mistake_is_held_back(self):
        pool = make_pool()
        recent, old = pool[0], pool[1]
        history = {
            recent.id: QuestionHistoryEntry(question_id=recent.id, is_correct=False, sessions_ago=2),
            old.id: QuestionHistoryEntry(question_id=old.id, is_correct=False, sessions_ago=3),
        }
        queue = QuestionSelector(rng=random.Random(0)).build_queue(
            make_concepts(), pool, SelectionStrategy.SEQUENTIAL, count=len(pool) - 1, history=history
        )
        assert recent.id not in queue
        assert old.id in queue

    def test_pool_size_counts_only_due_questions(self):
        pool = make_pool()
        answered = {
            q.id: QuestionHistoryEntry(question_id=q.id, is_correct=True, sessions_ago=1) for q in pool[:5]
        }
        with pytest.raises(InsufficientQuestionsError) as exc_info:
            QuestionSelector().build_queue(
                make_concepts(), pool, SelectionStrategy.RANDOM, count=len(pool), history=answered
            )
        assert exc_info.value.available == len(pool) - 5

    def test_falls_back_to_the_full_pool_when_nothing_is_due(self):
        pool = make_pool()
        answered = {q.id: QuestionHistoryEntry(question_id=q.id, is_correct=True, sessions_ago=1) for q in pool}
        queue = QuestionSelector(rng=random.Random(2)).build_queue(
            make_concepts(), pool, SelectionStrategy.SEQUENTIAL, count=3, history=answered
        )
        assert len(queue) == 3


class TestInterleaving:
    def test_round_robin_in_order_of_first_appearance(self):
        a1, a2, a3 = (make_question("alpha", FAM, n) for n in (1, 2, 3))
        b1 = make_question("beta", FAM, 1)
        c1, c2 = (make_question("gamma", FAM, n) for n in (1, 2))
        assert interleave_concepts([a1, a2, a3, b1, c1, c2]) == [a1, b1, c1, a2, c2, a3]

    def test_empty(self):
        assert interleave_concepts([]) == []


def leveled(*levels: str) -> List[QuestionEntry]:
    return [make_question("alpha", FAM, n, cognitive_level=level) for n, level in enumerate(levels, start=1)]


class TestCognitiveVariety:
    def test_single_question_is_left_alone(self):
        selected = leveled("recall")
        assert apply_cognitive_variety(selected, leveled("compare")) == selected

    def test_diverse_selection_is_unchanged(self):
        selected = leveled("recall", "compare", "recall", "scenario")
        assert apply_cognitive_variety(selected, leveled("reason")) == selected

    def test_lowest_priority_pick_makes_room_for_another_level(self):
        selected = leveled("recall", "recall", "recall")
        replacement = leveled("compare")[0]
        priority = {selected[0].id: 5.0, selected[1].id: 1.0, selected[2].id: 3.0}
        result = apply_cognitive_variety(selected, [replacement], priority)
        assert result == [selected[0], replacement, selected[2]]

    def test_last_pick_is_replaced_without_priorities(self):
        selected = leveled("recall", "recall", "recall")
        replacement = leveled("classify")[0]
        result = apply_cognitive_variety(selected, [replacement])
        assert result[-1] == replacement
        assert result[:2] == selected[:2]

    def test_long_run_is_broken_by_a_later_pick(self):
        selected = leveled("recall", "recall", "recall", "recall", "compare")
        result = apply_cognitive_variety(selected, [])
        assert [q.cognitive_level for q in result] == ["recall", "recall", "recall", "compare", "recall"]

    def test_long_run_is_broken_from_the_pool(self):
        selected = leveled("compare", "recall", "recall", "recall", "recall")
        extra = leveled("scenario")[0]
        result = apply_cognitive_variety(selected, [extra])
        assert result[-1] == extra
        assert [q.cognitive_level for q in result[:4]] == ["compare", "recall", "recall", "recall"]

    def test_never_adds_a_question_twice(self):
        selected = leveled("recall", "recall", "recall", "recall")
        same_id = selected[1].model_copy(update={"cognitive_level": "compare"})
        other = leveled("compare")[0]
        result = apply_cognitive_variety(selected, [same_id, other])
        ids = [q.id for q in result]
        assert len(ids) == len(set(ids))
        assert other in result

    def test_no_variety_available(self):
        selected = leveled("recall", "recall", "recall", "recall")
        assert apply_cognitive_variety(selected, []) == selected


class TestRecencyFactor:
    def test_never_seen_weighs_most(self):
        assert recency_factor(None) > recency_factor(
            QuestionHistoryEntry(question_id=uuid.uuid4(), is_correct=False, sessions_ago=10)
        )

    def test_older_sessions_weigh_more(self):
        factors = [
            recency_factor(QuestionHistoryEntry(question_id=uuid.uuid4(), is_correct=False, sessions_ago=n))
            for n in (1, 2, 3, 4)
        ]
        assert factors == sorted(factors)
        assert factors[0] == pytest.approx(0.2)
        assert factors[-1] == pytest.approx(0.9)

    def test_correct_answers_are_deprioritised(self):
        qid = uuid.uuid4()
        wrong = recency_factor(QuestionHistoryEntry(question_id=qid, is_correct=False, sessions_ago=2))
        right = recency_factor(QuestionHistoryEntry(question_id=qid, is_correct=True, sessions_ago=2))
        assert right == pytest.approx(wrong * 0.5)
