"""
learning_path.py – Learning Path Generator
===========================================
Turns the development areas of a failed self-assessment into the
employee's single active learning path.

Invariant: an employee has at most one generation of ``active`` items.
Generating a new path therefore always pairs "retire every active item of
this employee" with "insert the new items" in one write batch; the caller
persists both or neither.  ``verify_active_path`` checks the store after
the write and raises ``InconsistentLearningState`` if only half landed.

Output
------
LearningPlan
  └── retire:  employee id whose active items are retired first (or None)
  └── insert:  one LearningItem per failed skill
  └── to_batch(now) → WriteBatch for the repository

Path lifecycle (per item ``completed`` flag, per path ``status``):
  active ──(every item marked done, complete_path)──▶ completed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from competency_workflow.errors import (
    InconsistentLearningState,
    LearningPathIncomplete,
    MalformedInput,
)
from competency_workflow.guardrails import ResourceGuardrails
from competency_workflow.models import LearningItem, LearningItemStatus, LearningStatus
from competency_workflow.repository import WriteBatch

logger = logging.getLogger(__name__)

DEFAULT_RESOURCE_BASE_URL = "https://example.com/learn"


# ─── Data models ─────────────────────────────────────────────────────────────

@dataclass
class LearningPlan:
    """Writes the caller must apply, as one unit, to install a new path."""
    employee_id: str
    role_id:     str
    retire:      Optional[str] = None
    insert:      list[LearningItem] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return self.retire is None and not self.insert

    def to_batch(self, now: datetime) -> WriteBatch:
        return WriteBatch(
            retire_active_items_for = self.retire,
            retired_at              = now,
            insert_items            = list(self.insert),
        )


# ─── Helpers ─────────────────────────────────────────────────────────────────

def resource_slug(skill_name: str) -> str:
    """``"System Design"`` → ``"system-design"``."""
    return skill_name.lower().replace(" ", "-")


def learning_status(items: Iterable[LearningItem]) -> LearningStatus:
    """Derive the path state from every item the employee has ever had."""
    items = list(items)
    if any(i.status == LearningItemStatus.ACTIVE for i in items):
        return LearningStatus.ACTIVE
    if items:
        return LearningStatus.COMPLETED
    return LearningStatus.NONE


# ─── Generator ───────────────────────────────────────────────────────────────

class LearningPathGenerator:
    """
    Deterministic learning-path builder.

    Usage::

        plan  = LearningPathGenerator().generate(emp_id, role_id, result.development_areas)
        repo.persist(plan.to_batch(now))
    """

    def __init__(self, resource_base_url: str = DEFAULT_RESOURCE_BASE_URL) -> None:
        self.resource_base_url = resource_base_url.rstrip("/")

    def resource_url(self, skill_name: str) -> str:
        return f"{self.resource_base_url}/{resource_slug(skill_name)}"

    def generate(
        self,
        employee_id:   str,
        role_id:       str,
        failed_skills: Iterable,
        now:           Optional[datetime] = None,
    ) -> LearningPlan:
        """
        Build the plan for *failed_skills* (``SkillGap`` rows or anything with
        ``skill_id`` / ``skill_name``).  Rows flagged ``passed`` are ignored;
        each skill yields exactly one item.
        """
        if not employee_id or not role_id:
            raise MalformedInput("employee_id and role_id are required to generate a learning path.")

        now = now or datetime.now(timezone.utc)
        items: list[LearningItem] = []
        seen: set[str] = set()
        for gap in failed_skills:
            if getattr(gap, "passed", False) or gap.skill_id in seen:
                continue
            seen.add(gap.skill_id)
            name = getattr(gap, "skill_name", "") or gap.skill_id
            url  = self.resource_url(name)
            ResourceGuardrails().check_url(url).raise_if_blocked()
            items.append(LearningItem(
                employee_id  = employee_id,
                role_id      = role_id,
                skill_id     = gap.skill_id,
                skill_name   = name,
                title        = f"Mastering {name}",
                resource_url = url,
                completed    = False,
                status       = LearningItemStatus.ACTIVE,
                created_at   = now,
            ))

        if not items:
            logger.debug("No failed skills for %s; learning path unchanged", employee_id)
            return LearningPlan(employee_id=employee_id, role_id=role_id)

        logger.debug("Learning path for %s: %d item(s)", employee_id, len(items))
        return LearningPlan(
            employee_id = employee_id,
            role_id     = role_id,
            retire      = employee_id,
            insert      = items,
        )

    # ── Path lifecycle ───────────────────────────────────────────────────────

    def toggle_item(self, item: LearningItem, now: Optional[datetime] = None) -> LearningItem:
        """Flip the done flag of an item on the active path."""
        if item.status != LearningItemStatus.ACTIVE:
            raise MalformedInput(f"Learning item '{item.id}' belongs to a completed path.")
        done = not item.completed
        return item.model_copy(update={
            "completed":    done,
            "completed_at": (now or datetime.now(timezone.utc)) if done else None,
        })

    def complete_path(
        self,
        active_items: Iterable[LearningItem],
        now:          Optional[datetime] = None,
    ) -> list[LearningItem]:
        """
        Retire the active path once every item is marked done; completing it
        unlocks the self-assessment retake.
        """
        active_items = [i for i in active_items if i.status == LearningItemStatus.ACTIVE]
        if not active_items:
            raise LearningPathIncomplete("There is no active learning path to complete.")
        pending = [i.title for i in active_items if not i.completed]
        if pending:
            raise LearningPathIncomplete(
                f"{len(pending)} learning item(s) not yet done: {', '.join(pending)}"
            )
        now = now or datetime.now(timezone.utc)
        return [
            i.model_copy(update={
                "status":       LearningItemStatus.COMPLETED,
                "completed_at": i.completed_at or now,
            })
            for i in active_items
        ]


def verify_active_path(plan: LearningPlan, active_after: Iterable[LearningItem]) -> None:
    """
    Compare the store's active items after a write with what *plan* installed.

    Raises ``InconsistentLearningState`` when the insert is missing (no
    active path) or old items survived the retire (two generations).
    """
    if plan.is_noop:
        return
    active_after = [i for i in active_after if i.status == LearningItemStatus.ACTIVE]
    expected = sorted(i.skill_id for i in plan.insert)
    actual   = sorted(i.skill_id for i in active_after)
    if actual != expected:
        raise InconsistentLearningState(
            f"Employee '{plan.employee_id}' has {len(actual)} active learning item(s) "
            f"after installing a path of {len(expected)}: expected skills {expected}, "
            f"found {actual}."
        )
