"""
eligibility.py — Eligibility Evaluator
======================================
Computes pass/fail per skill and overall eligibility from immutable
snapshots.  Two modes, both pure:

Self-assessment mode
  For each requirement of the target role, the newest self-rating for
  (skill, role) is authoritative; a skill with no rating counts as 0.
  A skill passes iff rating ≥ required level.

    status = none    if no ratings exist for the role at all
           = passed  if every required skill passes
           = failed  otherwise

Test mode (promotion gating)
  Only *testable* skills (at least one question exists) count.  A skill is
  passed iff any attempt for (employee, skill, role) has ``passed=True``.

    eligible = testable_count > 0 and every testable skill passed

  Zero testable skills is never eligible.

Neither mode raises for an ineligible employee; only malformed snapshots
raise ``MalformedInput`` (see guardrails V-01 … V-08).

---------------------------------------------------------------------------
Data models defined in this file
---------------------------------------------------------------------------
  SkillGap              One self-assessment row (required vs. actual rating)
  SelfAssessmentResult  Status + rows, split into strengths / development areas
  SkillTestRecord       One test-mode row (best score, passed, last attempt)
  SkillTestEligibility  Eligible flag + rows, passed / total counts
  EligibilityResult     Both of the above for one evaluation
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Sequence

from competency_workflow.guardrails import (
    AttemptGuardrails,
    ProficiencyGuardrails,
    RequirementGuardrails,
)
from competency_workflow.models import (
    AssessmentStatus,
    ProficiencyRecord,
    SkillRequirement,
    TestAttempt,
    as_utc,
)

logger = logging.getLogger(__name__)


# ─── Data models ─────────────────────────────────────────────────────────────

@dataclass
class SkillGap:
    """Self-assessment row; ``gap`` is zero or negative for strengths."""
    skill_id:       str
    skill_name:     str
    required_level: int
    actual_rating:  int                  # 0 when never rated
    passed:         bool
    rated_at:       Optional[datetime] = None

    @property
    def gap(self) -> int:
        return self.required_level - self.actual_rating


@dataclass
class SelfAssessmentResult:
    role_id: Optional[str]
    status:  AssessmentStatus
    skills:  list[SkillGap] = field(default_factory=list)

    @property
    def strengths(self) -> list[SkillGap]:
        return [s for s in self.skills if s.passed]

    @property
    def development_areas(self) -> list[SkillGap]:
        return [s for s in self.skills if not s.passed]


@dataclass
class SkillTestRecord:
    """Test-mode row for one required skill."""
    skill_id:        str
    skill_name:      str
    required_level:  int
    testable:        bool
    passed:          bool
    best_score:      Optional[int] = None
    attempt_count:   int = 0
    last_attempt_at: Optional[datetime] = None
    passed_at:       Optional[datetime] = None


@dataclass
class SkillTestEligibility:
    role_id:  Optional[str]
    eligible: bool
    skills:   list[SkillTestRecord] = field(default_factory=list)

    @property
    def testable_skills(self) -> list[SkillTestRecord]:
        return [s for s in self.skills if s.testable]

    @property
    def passed_count(self) -> int:
        return sum(1 for s in self.testable_skills if s.passed)

    @property
    def total_count(self) -> int:
        return len(self.testable_skills)

    @property
    def progress_pct(self) -> float:
        return (self.passed_count / self.total_count) * 100 if self.total_count else 0.0


@dataclass
class EligibilityResult:
    assessment: SelfAssessmentResult
    tests:      SkillTestEligibility

    @property
    def assessment_status(self) -> AssessmentStatus:
        return self.assessment.status

    @property
    def eligible(self) -> bool:
        return self.tests.eligible


# ─── Evaluator ───────────────────────────────────────────────────────────────

def _role_of(requirements: Sequence[SkillRequirement], role_id: Optional[str]) -> Optional[str]:
    if role_id is not None:
        return role_id
    return requirements[0].role_id if requirements else None


class EligibilityEvaluator:
    """
    Pure evaluator over requirement, proficiency and attempt snapshots.

    Usage::

        evaluator = EligibilityEvaluator()
        result    = evaluator.evaluate(requirements, proficiencies, attempts)
        result.assessment_status, result.eligible
    """

    def __init__(self, pass_mark: int = 70) -> None:
        self.pass_mark = pass_mark

    def evaluate(
        self,
        requirements:  Iterable[SkillRequirement],
        proficiencies: Iterable[ProficiencyRecord],
        test_attempts: Iterable[TestAttempt],
        role_id:       Optional[str] = None,
        employee_id:   Optional[str] = None,
    ) -> EligibilityResult:
        requirements = list(requirements)
        return EligibilityResult(
            assessment=self.evaluate_self_assessment(
                requirements, proficiencies, role_id=role_id, employee_id=employee_id,
            ),
            tests=self.evaluate_tests(
                requirements, test_attempts, role_id=role_id, employee_id=employee_id,
            ),
        )

    def evaluate_self_assessment(
        self,
        requirements:  Iterable[SkillRequirement],
        proficiencies: Iterable[ProficiencyRecord],
        role_id:       Optional[str] = None,
        employee_id:   Optional[str] = None,
    ) -> SelfAssessmentResult:
        requirements  = list(requirements)
        proficiencies = list(proficiencies)
        RequirementGuardrails().check(requirements).raise_if_blocked()

        role = _role_of(requirements, role_id)
        ProficiencyGuardrails().check(proficiencies, role).raise_if_blocked()

        latest: dict[str, ProficiencyRecord] = {}
        for rec in proficiencies:
            if role is not None and rec.role_id != role:
                continue
            if employee_id is not None and rec.employee_id != employee_id:
                continue
            current = latest.get(rec.skill_id)
            if current is None or as_utc(rec.created_at) > as_utc(current.created_at):
                latest[rec.skill_id] = rec

        rows: list[SkillGap] = []
        for req in requirements:
            rec    = latest.get(req.skill_id)
            rating = rec.self_rating if rec else 0
            rows.append(SkillGap(
                skill_id       = req.skill_id,
                skill_name     = req.display_name,
                required_level = req.required_level,
                actual_rating  = rating,
                passed         = rating >= req.required_level,
                rated_at       = rec.created_at if rec else None,
            ))

        if not latest:
            status = AssessmentStatus.NONE
        elif all(r.passed for r in rows):
            status = AssessmentStatus.PASSED
        else:
            status = AssessmentStatus.FAILED

        logger.debug(
            "Self-assessment for role %s: %s (%d/%d skills met)",
            role, status.value, sum(r.passed for r in rows), len(rows),
        )
        return SelfAssessmentResult(role_id=role, status=status, skills=rows)

    def evaluate_tests(
        self,
        requirements:  Iterable[SkillRequirement],
        test_attempts: Iterable[TestAttempt],
        role_id:       Optional[str] = None,
        employee_id:   Optional[str] = None,
    ) -> SkillTestEligibility:
        requirements = list(requirements)
        attempts     = list(test_attempts)
        RequirementGuardrails().check(requirements).raise_if_blocked()
        AttemptGuardrails().check(attempts, self.pass_mark).raise_if_blocked()

        role = _role_of(requirements, role_id)
        by_skill: dict[str, list[TestAttempt]] = {}
        for att in attempts:
            if role is not None and att.role_id != role:
                continue
            if employee_id is not None and att.employee_id != employee_id:
                continue
            by_skill.setdefault(att.skill_id, []).append(att)

        rows: list[SkillTestRecord] = []
        for req in requirements:
            history = by_skill.get(req.skill_id, [])
            passing = [a for a in history if a.passed]
            rows.append(SkillTestRecord(
                skill_id        = req.skill_id,
                skill_name      = req.display_name,
                required_level  = req.required_level,
                testable        = req.testable,
                passed          = bool(passing),
                best_score      = max((a.score for a in history), default=None),
                attempt_count   = len(history),
                last_attempt_at = max((as_utc(a.attempted_at) for a in history), default=None),
                passed_at       = min((as_utc(a.attempted_at) for a in passing), default=None),
            ))

        testable = [r for r in rows if r.testable]
        eligible = bool(testable) and all(r.passed for r in testable)

        logger.debug(
            "Test eligibility for role %s: %s (%d/%d testable skills passed)",
            role, eligible, sum(r.passed for r in testable), len(testable),
        )
        return SkillTestEligibility(role_id=role, eligible=eligible, skills=rows)
