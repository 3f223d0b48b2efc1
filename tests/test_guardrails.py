"""
Smoke tests for the input guardrails.
Run: python -m pytest tests/ -v
"""
import pytest

from factories import make_attempt, make_question, make_rating, make_requirement

from competency_workflow.errors import MalformedInput
from competency_workflow.guardrails import (
    AttemptGuardrails,
    GuardrailLevel,
    ProficiencyGuardrails,
    QuestionSetGuardrails,
    RequirementGuardrails,
    ResourceGuardrails,
)
from competency_workflow.models import ProficiencyRecord, SkillRequirement, TestAttempt


def _codes(result):
    return [v.code for v in result.violations]


class TestRequirementGuards:
    def setup_method(self):
        self.guard = RequirementGuardrails()

    def test_clean_set(self):
        result = self.guard.check([make_requirement("python"), make_requirement("sql")])
        assert not result.violations
        assert not result.blocked

    def test_v01_missing_skill_id(self):
        bad = SkillRequirement.model_construct(role_id="be-mid", skill_id="", required_level=3)
        assert "V-01" in _codes(self.guard.check([bad]))

    def test_v02_level_out_of_range(self):
        bad = SkillRequirement.model_construct(role_id="be-mid", skill_id="x", required_level=0)
        result = self.guard.check([bad])
        assert "V-02" in _codes(result)
        assert result.blocked

    def test_v03_mixed_roles(self):
        result = self.guard.check([make_requirement("a", role_id="r1"), make_requirement("b", role_id="r2")])
        assert "V-03" in _codes(result)

    def test_v04_duplicate_skill(self):
        result = self.guard.check([make_requirement("a"), make_requirement("a")])
        assert "V-04" in _codes(result)
        with pytest.raises(MalformedInput, match="V-04"):
            result.raise_if_blocked()


class TestProficiencyGuards:
    def test_v05_rating_out_of_range_blocks(self):
        bad = ProficiencyRecord.model_construct(
            employee_id="e", role_id="r", skill_id="s", self_rating=9, created_at=None,
        )
        result = ProficiencyGuardrails().check([bad])
        assert result.blocked

    def test_v06_foreign_role_is_info(self):
        result = ProficiencyGuardrails().check([make_rating(role_id="other")], role_id="be-mid")
        assert [v.level for v in result.violations] == [GuardrailLevel.INFO]
        assert not result.blocked


class TestAttemptGuards:
    def test_v07_score_out_of_range_blocks(self):
        bad = TestAttempt.model_construct(
            employee_id="e", skill_id="s", role_id="r", score=150, passed=True, attempted_at=None,
        )
        assert AttemptGuardrails().check([bad]).blocked

    def test_v08_flag_mismatch_warns(self):
        result = AttemptGuardrails().check([make_attempt(score=40, passed=True)])
        assert _codes(result) == ["V-08"]
        assert not result.blocked
        assert result.warnings

    def test_consistent_attempts_clean(self):
        assert not AttemptGuardrails().check([make_attempt(score=70), make_attempt(score=69)]).violations


class TestQuestionSetGuards:
    def setup_method(self):
        self.guard = QuestionSetGuardrails()

    def test_v09_empty_set_blocks(self):
        result = self.guard.check([])
        assert _codes(result) == ["V-09"]
        assert result.blocked

    def test_v10_duplicate_ids(self):
        assert "V-10" in _codes(self.guard.check([make_question("q1"), make_question("q1")]))

    def test_v11_no_correct_option(self):
        assert "V-11" in _codes(self.guard.check([make_question("q1", correct=-1)]))

    def test_v12_single_option_warns(self):
        result = self.guard.check([make_question("q1", n_options=1)])
        assert "V-12" in _codes(result)
        assert not result.blocked


class TestResourceGuards:
    def test_v13_http_url_warns(self):
        result = ResourceGuardrails().check_url("http://example.com/learn/sql")
        assert _codes(result) == ["V-13"]
        assert not result.blocked

    def test_https_clean(self):
        assert not ResourceGuardrails().check_url("https://example.com/learn/sql").violations
