"""
repository.py — Store boundary for the workflow engine
======================================================
The engine never talks to a store.  Callers fetch snapshots through a
``CompetencyRepository`` and hand back a ``WriteBatch`` describing every
write a workflow step needs.  ``persist`` applies a whole batch or nothing
and reports failure by raising ``PersistError``.

The host application implements the protocol against its real backend;
``database.SqliteRepository`` is the bundled reference implementation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from competency_workflow.models import (
    Employee,
    EmployeeRole,
    LearningItem,
    ProficiencyRecord,
    PromotionRequest,
    PromotionStatus,
    Question,
    Role,
    SkillRequirement,
    TestAttempt,
)


@dataclass
class PromotionReview:
    request_id:  str
    status:      PromotionStatus
    reviewed_at: datetime


@dataclass
class RoleAssignment:
    """Retire the employee's active role and activate *role_id*."""
    employee_id: str
    role_id:     str
    assigned_at: datetime


@dataclass
class WriteBatch:
    """
    One all-or-nothing write.  Applied in field order: retire, updates,
    inserts, then promotion/role changes.
    """
    retire_active_items_for:  Optional[str] = None
    retired_at:               Optional[datetime] = None
    update_items:             list[LearningItem] = field(default_factory=list)
    insert_items:             list[LearningItem] = field(default_factory=list)
    insert_attempt:           Optional[TestAttempt] = None
    insert_proficiencies:     list[ProficiencyRecord] = field(default_factory=list)
    insert_promotion_request: Optional[PromotionRequest] = None
    update_promotion_request: Optional[PromotionReview] = None
    assign_role:              Optional[RoleAssignment] = None

    @property
    def is_empty(self) -> bool:
        return (
            self.retire_active_items_for is None
            and not self.update_items
            and not self.insert_items
            and self.insert_attempt is None
            and not self.insert_proficiencies
            and self.insert_promotion_request is None
            and self.update_promotion_request is None
            and self.assign_role is None
        )


@runtime_checkable
class CompetencyRepository(Protocol):
    def fetch_employees(self) -> list[Employee]: ...

    def fetch_active_assignments(self) -> list[EmployeeRole]:
        """The active ``employee_roles`` row of every employee that has one."""
        ...

    def fetch_active_role(self, employee_id: str) -> Optional[Role]: ...

    def fetch_roles(self) -> list[Role]: ...

    def fetch_role(self, role_id: str) -> Optional[Role]: ...

    def fetch_role_requirements(self, role_id: str) -> list[SkillRequirement]:
        """Requirements with ``testable`` set when a question exists for the skill."""
        ...

    def fetch_latest_proficiencies(self, employee_id: str, role_id: str) -> list[ProficiencyRecord]: ...

    def fetch_test_attempts(self, employee_id: str, skill_id: str, role_id: str) -> list[TestAttempt]:
        """Attempts for the triple, newest first."""
        ...

    def fetch_role_test_attempts(self, employee_id: str, role_id: str) -> list[TestAttempt]: ...

    def fetch_active_learning_items(self, employee_id: str) -> list[LearningItem]: ...

    def fetch_learning_items(self, employee_id: str) -> list[LearningItem]: ...

    def fetch_questions(self, skill_id: str) -> list[Question]: ...

    def fetch_promotion_requests(self, employee_id: str) -> list[PromotionRequest]: ...

    def fetch_promotion_request(self, request_id: str) -> Optional[PromotionRequest]: ...

    def fetch_pending_promotion_requests(self) -> list[PromotionRequest]: ...

    def count_passed_attempts(self) -> int: ...

    def persist(self, batch: WriteBatch) -> None: ...
