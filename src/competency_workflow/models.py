"""
Data models for the Competency Workflow Engine.

Every entity here is an immutable snapshot read from the store; the engine
never mutates them and instead returns new instances (or write batches)
that the caller persists.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


# ─── Timestamps ──────────────────────────────────────────────────────────────

def as_utc(value: datetime) -> datetime:
    """Naive timestamps are treated as UTC."""
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


# ─── Enumerations ────────────────────────────────────────────────────────────

class RoleLevel(str, Enum):
    """Ordinal seniority of a job role."""
    JUNIOR  = "junior"
    MID     = "mid"
    SENIOR  = "senior"
    LEAD    = "lead"
    MANAGER = "manager"


class SkillCategory(str, Enum):
    TECHNICAL = "technical"
    SOFT      = "soft"


class AssessmentStatus(str, Enum):
    """Outcome of the latest self-assessment against a target role."""
    NONE   = "none"     # no ratings recorded for the role yet
    PASSED = "passed"   # every required skill rated at or above its level
    FAILED = "failed"   # at least one gap


class LearningStatus(str, Enum):
    """Overall state of an employee's learning path, derived from its items."""
    NONE      = "none"
    ACTIVE    = "active"
    COMPLETED = "completed"


class LearningItemStatus(str, Enum):
    ACTIVE    = "active"
    COMPLETED = "completed"


class PromotionStatus(str, Enum):
    PENDING  = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class EmployeeRoleStatus(str, Enum):
    ACTIVE    = "active"
    COMPLETED = "completed"


class AttemptState(str, Enum):
    """Per (employee, skill, role) test state."""
    NOT_ATTEMPTED = "not_attempted"  # display only: READY with no history
    READY         = "ready"
    COOLDOWN      = "cooldown"
    PASSED        = "passed"         # terminal


# ─── Catalogue snapshots ─────────────────────────────────────────────────────

class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, use_enum_values=False)


class Role(_Snapshot):
    """A job position.  ``family`` is derived from the title, never stored."""
    id:    str = Field(min_length=1)
    title: str = Field(min_length=1)
    level: RoleLevel

    @property
    def family(self) -> str:
        from competency_workflow.role_progression import role_family
        return role_family(self.title)


class Skill(_Snapshot):
    id:       str = Field(min_length=1)
    name:     str = Field(min_length=1)
    category: SkillCategory = SkillCategory.TECHNICAL


class SkillRequirement(_Snapshot):
    """Required proficiency for one skill of one role; unique per (role, skill)."""
    role_id:        str = Field(min_length=1)
    skill_id:       str = Field(min_length=1)
    skill_name:     str = ""
    category:       SkillCategory = SkillCategory.TECHNICAL
    required_level: int = Field(ge=1, le=5)
    testable:       bool = Field(
        default=False,
        description="True when at least one question exists for the skill",
    )

    @property
    def display_name(self) -> str:
        return self.skill_name or self.skill_id


class QuestionOption(_Snapshot):
    id:         str = Field(min_length=1)
    text:       str
    is_correct: bool = False


class Question(_Snapshot):
    """A multiple-choice question; scoring matches on option id, not position."""
    id:         str = Field(min_length=1)
    skill_id:   str = Field(min_length=1)
    text:       str
    difficulty: str = "medium"
    options:    tuple[QuestionOption, ...] = ()

    @property
    def correct_option_id(self) -> Optional[str]:
        return next((o.id for o in self.options if o.is_correct), None)


# ─── Employee records ────────────────────────────────────────────────────────

class Employee(_Snapshot):
    id:         str = Field(min_length=1)
    full_name:  str = ""
    email:      str = ""
    created_at: Optional[UtcDatetime] = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.id


class EmployeeRole(_Snapshot):
    """One row of the employee → role assignment history."""
    employee_id: str
    role_id:     str
    status:      EmployeeRoleStatus = EmployeeRoleStatus.ACTIVE
    assigned_at: Optional[UtcDatetime] = None


class ProficiencyRecord(_Snapshot):
    """One self-rating; only the newest per (employee, role, skill) counts."""
    employee_id: str
    role_id:     str
    skill_id:    str
    self_rating: int = Field(ge=1, le=5)
    created_at:  UtcDatetime


class TestAttempt(_Snapshot):
    """Append-only log entry for one scored test submission."""
    employee_id:  str
    skill_id:     str
    role_id:      str
    score:        int = Field(ge=0, le=100)
    passed:       bool
    attempted_at: UtcDatetime
    id:           Optional[str] = None

    __test__ = False   # keep pytest from collecting this model


class LearningItem(_Snapshot):
    """One remedial resource inside an employee's learning path."""
    employee_id:  str
    role_id:      str
    skill_id:     str
    title:        str
    resource_url: str
    completed:    bool = False
    status:       LearningItemStatus = LearningItemStatus.ACTIVE
    created_at:   Optional[UtcDatetime] = None
    completed_at: Optional[UtcDatetime] = None
    skill_name:   str = ""
    id:           Optional[str] = None


class PromotionRequest(_Snapshot):
    employee_id:       str
    current_role_id:   str
    requested_role_id: str
    status:            PromotionStatus = PromotionStatus.PENDING
    requested_at:      UtcDatetime
    reviewed_at:       Optional[UtcDatetime] = None
    id:                Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == PromotionStatus.PENDING
