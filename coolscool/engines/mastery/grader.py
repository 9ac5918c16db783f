"""
Grader - exact-match auto-grading per question type.

Normalisation rules (applied to both sides before comparing):
- mcq: option id, trimmed, case-insensitive.
- true_false: booleans or the strings true/false/a/b in any case; "a" is
  true and "b" is false, matching option-style true/false content.
- fill_blank: trimmed, lower-cased, internal whitespace collapsed, trailing
  "." and "," stripped, apostrophes removed, and hyphens read as spaces when
  the answer is otherwise purely alphabetic. No typo tolerance.
- ordering: list of item strings, exact order, exact strings.
- match: mapping of left item -> right item; same keys as the canonical pairs,
  each mapped to its canonical partner.

An answer of the wrong JSON shape for its type raises AnswerValidationError;
a well-formed wrong answer is simply incorrect.
"""

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from coolscool.errors import AnswerValidationError
from coolscool.kernel.curriculum import QuestionEntry


SUPPORTED_QUESTION_TYPES = frozenset({"mcq", "true_false", "fill_blank", "ordering", "match"})

_TRUE_FALSE = {"true": True, "a": True, "false": False, "b": False}
_WHITESPACE = re.compile(r"\s+")
_ALPHA_WITH_HYPHENS = re.compile(r"^[a-z]+(?:[\s-][a-z]+)*$")


class GradeResult(BaseModel):
    is_correct: bool
    correct_answer: Any = None
    explanation: Optional[str] = None


def normalize_fill_blank(value: str) -> str:
    text = _WHITESPACE.sub(" ", value.strip().lower())
    text = text.rstrip(".,").strip()
    text = text.replace("'", "").replace("’", "")
    if _ALPHA_WITH_HYPHENS.match(text):
        text = text.replace("-", " ")
    return _WHITESPACE.sub(" ", text).strip()


def _as_true_false(value: Any, *, strict: bool) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        key = value.strip().lower()
        if key in _TRUE_FALSE:
            return _TRUE_FALSE[key]
    if strict:
        raise AnswerValidationError("true_false answers must be a boolean or one of true/false/a/b")
    return None


def match_pairs_as_dict(question: QuestionEntry) -> Dict[str, str]:
    if question.match_pairs:
        return {p["left"]: p["right"] for p in question.match_pairs}
    if isinstance(question.correct_answer, dict):
        return {str(k): str(v) for k, v in question.correct_answer.items()}
    return {}


def canonical_answer(question: QuestionEntry) -> Any:
    """The correct answer in the shape a client would submit it."""
    if question.question_type == "match":
        return match_pairs_as_dict(question)
    if question.question_type == "true_false":
        return _as_true_false(question.correct_answer, strict=False)
    return question.correct_answer


class Grader:
    """Grades a submitted answer against a question's canonical answer."""

    @classmethod
    def grade(cls, question: QuestionEntry, user_answer: Any) -> GradeResult:
        """
        Grade one answer.

        Raises:
            AnswerValidationError: answer shape does not fit the question type,
                or the question type is not gradable
        """
        qtype = question.question_type
        if qtype == "mcq":
            correct = cls._grade_mcq(question, user_answer)
        elif qtype == "true_false":
            correct = cls._grade_true_false(question, user_answer)
        elif qtype == "fill_blank":
            correct = cls._grade_fill_blank(question, user_answer)
        elif qtype == "ordering":
            correct = cls._grade_ordering(question, user_answer)
        elif qtype == "match":
            correct = cls._grade_match(question, user_answer)
        else:
            raise AnswerValidationError(f"Unsupported question type: {qtype}")

        explanation = question.explanation_correct if correct else question.explanation_incorrect
        return GradeResult(
            is_correct=correct,
            correct_answer=canonical_answer(question),
            explanation=explanation,
        )

    @staticmethod
    def _grade_mcq(question: QuestionEntry, user_answer: Any) -> bool:
        if not isinstance(user_answer, str):
            raise AnswerValidationError("mcq answers must be an option id string")
        return user_answer.strip().lower() == str(question.correct_answer).strip().lower()

    @staticmethod
    def _grade_true_false(question: QuestionEntry, user_answer: Any) -> bool:
        submitted = _as_true_false(user_answer, strict=True)
        expected = _as_true_false(question.correct_answer, strict=False)
        return expected is not None and submitted == expected

    @staticmethod
    def _grade_fill_blank(question: QuestionEntry, user_answer: Any) -> bool:
        if not isinstance(user_answer, str):
            raise AnswerValidationError("fill_blank answers must be a string")
        return normalize_fill_blank(user_answer) == normalize_fill_blank(str(question.correct_answer))

    @staticmethod
    def _grade_ordering(question: QuestionEntry, user_answer: Any) -> bool:
        if not isinstance(user_answer, list) or not all(isinstance(v, str) for v in user_answer):
            raise AnswerValidationError("ordering answers must be a list of strings")
        expected: List[str] = list(question.correct_answer or question.ordering_items or [])
        return user_answer == expected

    @staticmethod
    def _grade_match(question: QuestionEntry, user_answer: Any) -> bool:
        if not isinstance(user_answer, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in user_answer.items()
        ):
            raise AnswerValidationError("match answers must be an object mapping left items to right items")
        expected = match_pairs_as_dict(question)
        if set(user_answer) != set(expected):
            return False
        return all(user_answer[left] == right for left, right in expected.items())
