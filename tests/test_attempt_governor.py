"""
Tests for the skill-test attempt state machine and scoring.
Run: python -m pytest tests/ -v
"""
import random
from datetime import datetime, timedelta

import pytest

from factories import T0, answers_with, hours, make_attempt, make_question, make_questions

from competency_workflow.errors import AttemptNotAllowed, IncompleteSubmission, MalformedInput
from competency_workflow.models import AttemptState
from competency_workflow.test_governor import (
    TestAttemptGovernor,
    score_percent,
    shuffle_questions,
)


@pytest.fixture
def governor():
    return TestAttemptGovernor()


class TestAttemptState:
    def test_no_history_is_ready_and_displayed_not_attempted(self, governor):
        status = governor.status([], T0)
        assert status.state == AttemptState.READY
        assert status.display_state == AttemptState.NOT_ATTEMPTED
        assert status.can_attempt

    @pytest.mark.parametrize("later", [
        timedelta(seconds=1), timedelta(hours=1), timedelta(hours=24), timedelta(days=90),
    ])
    def test_passed_is_terminal(self, governor, later):
        history = [make_attempt(score=85, at=T0)]
        status = governor.status(history, T0 + later)
        assert status.state == AttemptState.PASSED
        assert not status.can_attempt
        assert status.passing_attempt.score == 85

    def test_passed_wins_over_later_failure(self, governor):
        history = [make_attempt(score=90, at=T0), make_attempt(score=10, at=T0 + hours(30))]
        status = governor.status(history, T0 + hours(31))
        assert status.state == AttemptState.PASSED
        assert status.passing_attempt.attempted_at == T0

    def test_cooldown_just_before_24h(self, governor):
        history = [make_attempt(score=40, at=T0)]
        now = T0 + timedelta(hours=23, minutes=59)
        status = governor.status(history, now)
        assert status.state == AttemptState.COOLDOWN
        assert status.unlock_at == T0 + hours(24)
        assert status.remaining(now) == timedelta(minutes=1)

    def test_ready_just_after_24h(self, governor):
        history = [make_attempt(score=40, at=T0)]
        status = governor.status(history, T0 + timedelta(hours=24, minutes=1))
        assert status.state == AttemptState.READY
        assert status.display_state == AttemptState.READY
        assert status.attempt_count == 1

    def test_ready_exactly_at_24h(self, governor):
        history = [make_attempt(score=40, at=T0)]
        assert governor.status(history, T0 + hours(24)).state == AttemptState.READY

    def test_cooldown_measured_from_latest_attempt(self, governor):
        history = [make_attempt(score=40, at=T0 + hours(30)), make_attempt(score=20, at=T0)]
        status = governor.status(history, T0 + hours(40))
        assert status.state == AttemptState.COOLDOWN
        assert status.unlock_at == T0 + hours(54)

    def test_naive_timestamps_treated_as_utc(self, governor):
        naive = datetime(2024, 3, 1, 9, 0)
        history = [make_attempt(score=40, at=naive)]
        assert governor.status(history, T0 + hours(1)).state == AttemptState.COOLDOWN

    def test_custom_cooldown(self):
        governor = TestAttemptGovernor(cooldown_hours=2)
        history = [make_attempt(score=40, at=T0)]
        assert governor.status(history, T0 + hours(3)).state == AttemptState.READY


class TestScoring:
    @pytest.mark.parametrize("correct,total,expected", [
        (7, 10, 70), (6, 10, 60), (10, 10, 100), (0, 10, 0),
        (1, 8, 13),   # 12.5 rounds up
        (2, 3, 67), (1, 3, 33),
    ])
    def test_score_percent(self, correct, total, expected):
        assert score_percent(correct, total) == expected

    def test_zero_total_rejected(self):
        with pytest.raises(ValueError):
            score_percent(0, 0)

    def test_seven_of_ten_passes(self, governor):
        questions = make_questions(10)
        result = governor.submit_attempt(
            questions, answers_with(questions, 7), "emp-1", "python", "be-mid", now=T0,
        )
        assert result.score == 70 and result.passed is True
        assert result.correct_count == 7
        assert result.status.state == AttemptState.PASSED

    def test_six_of_ten_fails_and_starts_cooldown(self, governor):
        questions = make_questions(10)
        result = governor.submit_attempt(
            questions, answers_with(questions, 6), "emp-1", "python", "be-mid", now=T0,
        )
        assert result.score == 60 and result.passed is False
        assert result.status.state == AttemptState.COOLDOWN
        assert result.status.unlock_at == T0 + hours(24)

    def test_attempt_carries_identity(self, governor):
        questions = make_questions(2)
        result = governor.submit_attempt(
            questions, answers_with(questions, 2), "emp-9", "sql", "be-sr", now=T0,
        )
        att = result.attempt
        assert (att.employee_id, att.skill_id, att.role_id, att.attempted_at) == ("emp-9", "sql", "be-sr", T0)

    def test_feedback_per_question(self, governor):
        questions = make_questions(3)
        result = governor.submit_attempt(
            questions, answers_with(questions, 1), "emp-1", "python", "be-mid", now=T0,
        )
        assert [f.correct for f in result.feedback] == [True, False, False]
        assert result.feedback[1].correct_option_id == "q2-0"

    def test_scoring_ignores_option_order(self, governor):
        questions = make_questions(10)
        answers = answers_with(questions, 8)
        shuffled = shuffle_questions(questions, random.Random(7))
        correct, _ = governor.score(shuffled, answers)
        assert correct == 8

    def test_answers_as_pairs(self, governor):
        questions = make_questions(2)
        pairs = list(answers_with(questions, 2).items())
        correct, _ = governor.score(questions, pairs)
        assert correct == 2


class TestIncompleteSubmission:
    def test_nine_of_ten_answered_raises(self, governor):
        questions = make_questions(10)
        answers = answers_with(questions, 9)
        answers.pop("q10")
        with pytest.raises(IncompleteSubmission) as exc:
            governor.submit_attempt(questions, answers, "emp-1", "python", "be-mid", now=T0)
        assert exc.value.missing == ["q10"]

    def test_duplicate_answer_raises(self, governor):
        questions = make_questions(2)
        pairs = [("q1", "q1-0"), ("q1", "q1-1"), ("q2", "q2-0")]
        with pytest.raises(IncompleteSubmission) as exc:
            governor.score(questions, pairs)
        assert exc.value.duplicated == ["q1"]

    def test_unknown_question_raises(self, governor):
        questions = make_questions(1)
        with pytest.raises(IncompleteSubmission) as exc:
            governor.score(questions, {"q1": "q1-0", "q99": "x"})
        assert exc.value.unknown == ["q99"]

    def test_is_malformed_input(self, governor):
        with pytest.raises(MalformedInput):
            governor.score(make_questions(1), {})

    def test_empty_question_set_raises(self, governor):
        with pytest.raises(MalformedInput):
            governor.submit_attempt([], {}, "emp-1", "python", "be-mid", now=T0)

    def test_question_without_correct_option_raises(self, governor):
        q = make_question("q1", correct=-1)
        with pytest.raises(MalformedInput):
            governor.score([q], {"q1": "q1-0"})


class TestAttemptNotAllowed:
    def test_rejected_in_cooldown(self, governor):
        questions = make_questions(2)
        history = [make_attempt(score=0, at=T0)]
        with pytest.raises(AttemptNotAllowed) as exc:
            governor.submit_attempt(
                questions, answers_with(questions, 2), "emp-1", "python", "be-mid",
                history=history, now=T0 + hours(2),
            )
        assert exc.value.state == "cooldown"
        assert exc.value.unlock_at == T0 + hours(24)

    def test_rejected_after_pass(self, governor):
        questions = make_questions(2)
        history = [make_attempt(score=100, at=T0)]
        with pytest.raises(AttemptNotAllowed):
            governor.submit_attempt(
                questions, answers_with(questions, 2), "emp-1", "python", "be-mid",
                history=history, now=T0 + hours(100),
            )

    def test_allowed_after_cooldown(self, governor):
        questions = make_questions(2)
        history = [make_attempt(score=0, at=T0)]
        result = governor.submit_attempt(
            questions, answers_with(questions, 2), "emp-1", "python", "be-mid",
            history=history, now=T0 + hours(25),
        )
        assert result.passed
        assert result.status.attempt_count == 2


class TestShuffle:
    def test_same_questions_and_options(self):
        questions = make_questions(6)
        shuffled = shuffle_questions(questions, random.Random(1))
        assert sorted(q.id for q in shuffled) == [q.id for q in sorted(questions, key=lambda q: q.id)]
        for q in shuffled:
            original = next(o for o in questions if o.id == q.id)
            assert {o.id for o in q.options} == {o.id for o in original.options}
            assert q.correct_option_id == original.correct_option_id

    def test_inputs_untouched(self):
        questions = make_questions(6)
        before = [q.model_dump() for q in questions]
        shuffle_questions(questions, random.Random(3))
        assert [q.model_dump() for q in questions] == before

    def test_order_varies_across_renders(self):
        questions = make_questions(8)
        rng = random.Random(42)
        orders = {tuple(q.id for q in shuffle_questions(questions, rng)) for _ in range(20)}
        assert len(orders) > 1
