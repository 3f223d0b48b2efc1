"""
Derived lock states for the self-assessment and the skill tests.

Both are recomputed from fetched snapshots whenever they are needed;
nothing here is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from competency_workflow.models import AssessmentStatus, LearningStatus


class LockReason(str, Enum):
    NONE              = ""
    PASSED            = "passed"             # assessment already passed
    LEARNING_ACTIVE   = "learning_active"    # finish the learning path first
    ASSESSMENT_NEEDED = "assessment_needed"  # pass the self-assessment first


@dataclass(frozen=True)
class Lock:
    locked: bool
    reason: LockReason = LockReason.NONE

    @classmethod
    def open(cls) -> "Lock":
        return cls(locked=False)


def assessment_lock(assessment: AssessmentStatus, learning: LearningStatus) -> Lock:
    """
    passed                         → locked (nothing left to assess)
    failed + active learning path  → locked until the path is completed
    anything else                  → open (first attempt or retake)
    """
    if assessment == AssessmentStatus.PASSED:
        return Lock(True, LockReason.PASSED)
    if assessment == AssessmentStatus.FAILED and learning == LearningStatus.ACTIVE:
        return Lock(True, LockReason.LEARNING_ACTIVE)
    return Lock.open()


def skill_test_lock(assessment: AssessmentStatus, learning: LearningStatus) -> Lock:
    """Skill tests open only after a passed assessment and with no active path."""
    if learning == LearningStatus.ACTIVE:
        return Lock(True, LockReason.LEARNING_ACTIVE)
    if assessment != AssessmentStatus.PASSED:
        return Lock(True, LockReason.ASSESSMENT_NEEDED)
    return Lock.open()
