"""
errors.py — Exception hierarchy for the competency workflow engine
==================================================================
Ineligibility is never an exception: "not eligible", "assessment failed"
and "no next role" are returned as values.  Only malformed input, refused
workflow actions and store failures raise.

  CompetencyError
  ├── MalformedInput            (also a ValueError)
  │   └── IncompleteSubmission  answers do not cover every question once
  ├── NoActiveRole              employee has no current role
  ├── AttemptNotAllowed         test requested while in COOLDOWN / PASSED
  ├── WorkflowLocked            assessment or tests locked by workflow state
  ├── LearningPathIncomplete    path completion with unfinished items
  ├── PromotionNotAllowed       request refused by the gatekeeper
  ├── InconsistentLearningState retire/insert batch only partly applied
  └── PersistError              opaque pass-through from the store
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional


class CompetencyError(Exception):
    """Base class for every error raised by this package."""


class MalformedInput(CompetencyError, ValueError):
    """Input snapshot is missing fields or holds out-of-range values."""


class IncompleteSubmission(MalformedInput):
    """A test submission does not answer every question exactly once."""

    def __init__(self, missing: list[str], duplicated: list[str] | None = None,
                 unknown: list[str] | None = None) -> None:
        self.missing    = sorted(missing)
        self.duplicated = sorted(duplicated or [])
        self.unknown    = sorted(unknown or [])
        parts = []
        if self.missing:
            parts.append(f"unanswered: {', '.join(self.missing)}")
        if self.duplicated:
            parts.append(f"answered more than once: {', '.join(self.duplicated)}")
        if self.unknown:
            parts.append(f"not in question set: {', '.join(self.unknown)}")
        super().__init__("Incomplete submission: " + "; ".join(parts))


class NoActiveRole(CompetencyError):
    """The employee has no active role, which blocks every evaluation."""

    def __init__(self, employee_id: str) -> None:
        self.employee_id = employee_id
        super().__init__(f"Employee '{employee_id}' has no active role assigned.")


class AttemptNotAllowed(CompetencyError):
    """A new test attempt was requested outside the READY state."""

    def __init__(self, state: str, unlock_at: Optional[datetime] = None) -> None:
        self.state     = state
        self.unlock_at = unlock_at
        msg = f"Test attempt not allowed in state {state}"
        if unlock_at is not None:
            msg += f" (unlocks at {unlock_at.isoformat()})"
        super().__init__(msg + ".")


class WorkflowLocked(CompetencyError):
    """The self-assessment or the skill tests are locked for the employee."""

    def __init__(self, step: str, reason: str) -> None:
        self.step   = step
        self.reason = reason
        super().__init__(f"{step} is locked ({reason}).")


class LearningPathIncomplete(CompetencyError):
    """The active learning path still has items not marked as done."""


class PromotionNotAllowed(CompetencyError):
    """The promotion gatekeeper refused to create or review a request."""


class InconsistentLearningState(CompetencyError):
    """
    The retire/insert pair for a learning path was only partly applied:
    the employee now has either no active path or two active generations.
    """


class PersistError(CompetencyError):
    """Wraps any failure of the backing store; the original is ``__cause__``."""
