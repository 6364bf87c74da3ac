"""Quiz grading.

`grade` is a pure function of the module, its question bank and the
submitted answers. Attempt-count enforcement is a separate check the
progress tracker runs before grading.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Sequence

from wvpdb.utils.rounding import round_half_up

from . import models
from .errors import AttemptLimitExceeded


@dataclass(frozen=True)
class SubmittedAnswer:
    question_id: str
    selected_option_ids: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class QuestionResult:
    question_id: str
    selected_option_ids: List[str]
    is_correct: bool
    known: bool = True
    explanation: Optional[str] = None

    def as_attempt_answer(self) -> dict:
        return {
            "question_id": self.question_id,
            "selected_option_ids": list(self.selected_option_ids),
            "is_correct": self.is_correct,
        }


@dataclass(frozen=True)
class GradeResult:
    score: int
    correct_count: int
    passed: bool
    earned_points: int
    total_points: int
    results: List[QuestionResult]


def _is_correct(question: models.TrainingQuestion, selected: Sequence[str]) -> bool:
    correct_ids = set(question.correct_option_ids)
    if question.question_type == models.QuestionType.SELECT_ALL:
        return set(selected) == correct_ids
    # multiple_choice / true_false: exactly one pick, and it is correct
    return len(selected) == 1 and selected[0] in correct_ids


def grade(
    module: models.TrainingModule,
    questions: Iterable[models.TrainingQuestion],
    answers: Sequence[SubmittedAnswer],
) -> GradeResult:
    """
    Grade `answers` against the question bank of `module`.

    Unknown question ids are scored incorrect and add nothing to the point
    total. The score is rounded to the nearest integer percentage; an empty
    bank scores 0.
    """
    bank: Mapping[str, models.TrainingQuestion] = {str(q.id): q for q in questions}

    total_points = 0
    earned_points = 0
    correct_count = 0
    results: List[QuestionResult] = []

    for answer in answers:
        selected = [str(opt) for opt in (answer.selected_option_ids or [])]
        question = bank.get(str(answer.question_id))
        if question is None:
            results.append(
                QuestionResult(
                    question_id=str(answer.question_id),
                    selected_option_ids=selected,
                    is_correct=False,
                    known=False,
                )
            )
            continue

        points = question.points or 0
        total_points += points
        is_correct = _is_correct(question, selected)
        if is_correct:
            correct_count += 1
            earned_points += points

        results.append(
            QuestionResult(
                question_id=str(question.id),
                selected_option_ids=selected,
                is_correct=is_correct,
                explanation=question.explanation,
            )
        )

    score = round_half_up(100 * earned_points / total_points) if total_points > 0 else 0
    return GradeResult(
        score=score,
        correct_count=correct_count,
        passed=score >= (module.passing_score or 0),
        earned_points=earned_points,
        total_points=total_points,
        results=results,
    )


def ensure_attempt_available(module: models.TrainingModule, prior_attempts: int) -> None:
    """Raise AttemptLimitExceeded once `max_attempts` (when > 0) is used up."""
    max_attempts = module.max_attempts or 0
    if max_attempts > 0 and prior_attempts >= max_attempts:
        raise AttemptLimitExceeded(
            "Maximum quiz attempts reached",
            detail=[
                {
                    "field": "quiz_attempts",
                    "reason": f"{prior_attempts} of {max_attempts} attempts used",
                }
            ],
        )
