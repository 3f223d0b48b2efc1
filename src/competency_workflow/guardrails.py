"""
guardrails.py – Input validation layer for the workflow engine
==============================================================
Every engine component validates its snapshot input through one of the
guardrail sets below before computing anything.  A BLOCK violation is
raised as ``MalformedInput``; WARN and INFO violations are logged and the
computation proceeds.

Guardrail levels
----------------
BLOCK   – Hard-stop: the input is malformed and the call raises.
WARN    – Soft-stop: the call proceeds, the violation is logged.
INFO    – Advisory: informational note only.

Guards implemented
------------------
Requirement guards (before any eligibility evaluation):
  V-01  Role and skill identifiers are non-empty
  V-02  Required level in [1, 5]
  V-03  All requirements in one set belong to the same role
  V-04  No duplicate skill within a role

Proficiency guards:
  V-05  Self-rating in [1, 5]
  V-06  Rating belongs to the evaluated role                      [INFO]

Attempt guards:
  V-07  Score in [0, 100]
  V-08  ``passed`` flag agrees with the recorded score           [WARN]

Question-set guards (before scoring a test):
  V-09  Question set is non-empty
  V-10  No duplicate question ids
  V-11  Exactly one correct option per question
  V-12  At least two options per question                        [WARN]

Learning resource guards:
  V-13  Resource URL uses https://                               [WARN]
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from competency_workflow.errors import MalformedInput

logger = logging.getLogger(__name__)


# ─── Enums & data models ─────────────────────────────────────────────────────

class GuardrailLevel(str, Enum):
    BLOCK = "BLOCK"
    WARN  = "WARN"
    INFO  = "INFO"


@dataclass
class GuardrailViolation:
    code:    str
    level:   GuardrailLevel
    message: str
    field:   str = ""   # which field triggered the violation


@dataclass
class GuardrailResult:
    passed:     bool
    violations: list[GuardrailViolation] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return any(v.level == GuardrailLevel.BLOCK for v in self.violations)

    @property
    def warnings(self) -> list[GuardrailViolation]:
        return [v for v in self.violations if v.level == GuardrailLevel.WARN]

    def summary(self) -> str:
        if not self.violations:
            return "All guardrails passed."
        return "\n".join(f"[{v.level.value}] [{v.code}] {v.message}" for v in self.violations)

    def raise_if_blocked(self) -> None:
        """Log soft violations; raise ``MalformedInput`` on any BLOCK."""
        for v in self.warnings:
            logger.warning("%s %s", v.code, v.message)
        if self.blocked:
            blocking = [v for v in self.violations if v.level == GuardrailLevel.BLOCK]
            raise MalformedInput("; ".join(f"[{v.code}] {v.message}" for v in blocking))


def _result(violations: list[GuardrailViolation]) -> GuardrailResult:
    return GuardrailResult(
        passed=not any(v.level == GuardrailLevel.BLOCK for v in violations),
        violations=violations,
    )


# ─── Guardrail checks ─────────────────────────────────────────────────────────

class RequirementGuardrails:
    """V-01 – V-04: Validates a requirement set for one role."""

    def check(self, requirements: Iterable) -> GuardrailResult:
        requirements = list(requirements)
        violations: list[GuardrailViolation] = []

        for i, req in enumerate(requirements):
            # V-01 Non-empty identifiers
            if not getattr(req, "role_id", "") or not getattr(req, "skill_id", ""):
                violations.append(GuardrailViolation(
                    code="V-01", level=GuardrailLevel.BLOCK,
                    field=f"requirements[{i}]",
                    message="Requirement is missing its role_id or skill_id.",
                ))
            # V-02 Level bounds
            level = getattr(req, "required_level", None)
            if not isinstance(level, int) or not (1 <= level <= 5):
                violations.append(GuardrailViolation(
                    code="V-02", level=GuardrailLevel.BLOCK,
                    field=f"requirements[{i}].required_level",
                    message=f"Required level {level!r} out of [1, 5] range.",
                ))

        # V-03 Single role per set
        role_ids = {getattr(r, "role_id", "") for r in requirements}
        if len(role_ids) > 1:
            violations.append(GuardrailViolation(
                code="V-03", level=GuardrailLevel.BLOCK,
                message=f"Requirement set mixes roles: {sorted(role_ids)}.",
            ))

        # V-04 Unique skill per role
        dupes = [s for s, n in Counter(getattr(r, "skill_id", "") for r in requirements).items() if n > 1]
        if dupes:
            violations.append(GuardrailViolation(
                code="V-04", level=GuardrailLevel.BLOCK,
                message=f"Skill listed more than once for the role: {sorted(dupes)}.",
            ))

        return _result(violations)


class ProficiencyGuardrails:
    """V-05 – V-06: Validates self-ratings before the self-assessment pass."""

    def check(self, records: Iterable, role_id: Optional[str] = None) -> GuardrailResult:
        violations: list[GuardrailViolation] = []
        for i, rec in enumerate(records):
            # V-05 Rating bounds
            if not (1 <= rec.self_rating <= 5):
                violations.append(GuardrailViolation(
                    code="V-05", level=GuardrailLevel.BLOCK,
                    field=f"proficiencies[{i}].self_rating",
                    message=f"Self-rating {rec.self_rating} out of [1, 5] range.",
                ))
            # V-06 Foreign role (ignored by the evaluator)
            if role_id is not None and rec.role_id != role_id:
                violations.append(GuardrailViolation(
                    code="V-06", level=GuardrailLevel.INFO,
                    field=f"proficiencies[{i}].role_id",
                    message=f"Rating for role '{rec.role_id}' ignored while evaluating '{role_id}'.",
                ))
        return _result(violations)


class AttemptGuardrails:
    """V-07 – V-08: Validates recorded test attempts."""

    def check(self, attempts: Iterable, pass_mark: int = 70) -> GuardrailResult:
        violations: list[GuardrailViolation] = []
        for i, att in enumerate(attempts):
            # V-07 Score bounds
            if not (0 <= att.score <= 100):
                violations.append(GuardrailViolation(
                    code="V-07", level=GuardrailLevel.BLOCK,
                    field=f"attempts[{i}].score",
                    message=f"Score {att.score} out of [0, 100] range.",
                ))
            # V-08 Flag consistency; the stored flag stays authoritative
            elif att.passed != (att.score >= pass_mark):
                violations.append(GuardrailViolation(
                    code="V-08", level=GuardrailLevel.WARN,
                    field=f"attempts[{i}].passed",
                    message=(
                        f"Attempt flagged passed={att.passed} with score {att.score} "
                        f"(pass mark {pass_mark})."
                    ),
                ))
        return _result(violations)


class QuestionSetGuardrails:
    """V-09 – V-12: Validates a question set before it is scored."""

    def check(self, questions: Iterable) -> GuardrailResult:
        questions = list(questions)
        violations: list[GuardrailViolation] = []

        # V-09 Non-empty
        if not questions:
            violations.append(GuardrailViolation(
                code="V-09", level=GuardrailLevel.BLOCK,
                field="questions",
                message="Question set is empty; a test needs at least one question.",
            ))

        # V-10 Unique ids
        dupes = [q for q, n in Counter(q.id for q in questions).items() if n > 1]
        if dupes:
            violations.append(GuardrailViolation(
                code="V-10", level=GuardrailLevel.BLOCK,
                field="questions",
                message=f"Duplicate question ids: {sorted(dupes)}.",
            ))

        for q in questions:
            # V-11 Exactly one correct option
            n_correct = sum(1 for o in q.options if o.is_correct)
            if n_correct != 1:
                violations.append(GuardrailViolation(
                    code="V-11", level=GuardrailLevel.BLOCK,
                    field=f"question[{q.id}]",
                    message=f"Question '{q.id}' has {n_correct} correct options; expected exactly 1.",
                ))
            # V-12 Enough options to be a choice
            if len(q.options) < 2:
                violations.append(GuardrailViolation(
                    code="V-12", level=GuardrailLevel.WARN,
                    field=f"question[{q.id}]",
                    message=f"Question '{q.id}' has only {len(q.options)} option(s).",
                ))

        return _result(violations)


class ResourceGuardrails:
    """V-13: Generated learning resources must point at https URLs."""

    def check_url(self, url: str) -> GuardrailResult:
        violations: list[GuardrailViolation] = []
        if not url.startswith("https://"):
            violations.append(GuardrailViolation(
                code="V-13", level=GuardrailLevel.WARN,
                field="resource_url",
                message=f"Resource URL '{url}' is not served over https.",
            ))
        return _result(violations)
