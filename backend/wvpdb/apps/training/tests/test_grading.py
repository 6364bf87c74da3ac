from __future__ import annotations

import pytest

from wvpdb.apps.training import grading
from wvpdb.apps.training import models as training_models
from wvpdb.apps.training.errors import AttemptLimitExceeded

MC = training_models.QuestionType.MULTIPLE_CHOICE
TF = training_models.QuestionType.TRUE_FALSE
SA = training_models.QuestionType.SELECT_ALL


def _module(passing_score: int = 70, max_attempts: int = 0) -> training_models.TrainingModule:
    return training_models.TrainingModule(
        id="mod-1",
        code="wvpp-overview",
        title="WVPP Overview",
        order=1,
        passing_score=passing_score,
        max_attempts=max_attempts,
    )


def _question(qid: str, qtype, correct, ids=("a", "b", "c"), points: int = 1) -> training_models.TrainingQuestion:
    return training_models.TrainingQuestion(
        id=qid,
        module_id="mod-1",
        question_text=qid,
        question_type=qtype,
        options=[{"id": i, "text": i, "is_correct": i in correct} for i in ids],
        explanation=f"why {qid}",
        points=points,
    )


def _answer(qid: str, *selected: str) -> grading.SubmittedAnswer:
    return grading.SubmittedAnswer(question_id=qid, selected_option_ids=list(selected))


def test_all_correct_scores_100_and_passes():
    questions = [_question("q1", MC, {"a"}), _question("q2", TF, {"b"}, ids=("a", "b"))]

    result = grading.grade(_module(passing_score=80), questions, [_answer("q1", "a"), _answer("q2", "b")])

    assert result.score == 100
    assert result.correct_count == 2
    assert result.passed is True
    assert [r.is_correct for r in result.results] == [True, True]
    assert result.results[0].explanation == "why q1"


def test_multiple_choice_requires_exactly_one_selection():
    questions = [_question("q1", MC, {"a"})]

    result = grading.grade(_module(), questions, [_answer("q1", "a", "b")])

    assert result.results[0].is_correct is False
    assert result.score == 0


def test_select_all_requires_exact_set():
    questions = [_question("q1", SA, {"a", "c"})]

    exact = grading.grade(_module(), questions, [_answer("q1", "c", "a")])
    partial = grading.grade(_module(), questions, [_answer("q1", "a")])
    superset = grading.grade(_module(), questions, [_answer("q1", "a", "b", "c")])

    assert exact.results[0].is_correct is True
    assert partial.results[0].is_correct is False
    assert superset.results[0].is_correct is False


def test_unknown_question_is_incorrect_and_adds_no_points():
    questions = [_question("q1", MC, {"a"})]

    result = grading.grade(_module(), questions, [_answer("q1", "a"), _answer("ghost", "a")])

    assert result.total_points == 1
    assert result.score == 100
    assert result.results[1].known is False
    assert result.results[1].is_correct is False


def test_points_weight_the_score_and_round_half_up():
    # 5 of 8 points = 62.5 -> 63
    questions = [
        _question("q1", MC, {"a"}, points=5),
        _question("q2", MC, {"a"}, points=3),
    ]

    result = grading.grade(_module(passing_score=63), questions, [_answer("q1", "a"), _answer("q2", "b")])

    assert result.earned_points == 5
    assert result.score == 63
    assert result.passed is True


def test_empty_bank_scores_zero():
    result = grading.grade(_module(passing_score=0), [], [_answer("q1", "a")])

    assert result.score == 0
    assert result.total_points == 0
    assert result.passed is True


def test_attempt_limit_enforced_only_when_positive():
    grading.ensure_attempt_available(_module(max_attempts=2), 1)
    grading.ensure_attempt_available(_module(max_attempts=0), 500)

    with pytest.raises(AttemptLimitExceeded):
        grading.ensure_attempt_available(_module(max_attempts=2), 2)
