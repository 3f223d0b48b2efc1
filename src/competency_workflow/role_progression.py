"""
role_progression.py — Next-role resolution
==========================================
Determines the single candidate "next role" for an employee's current role.

  junior → mid → senior → (none)

The role family is recovered from the title by stripping level markers
("Junior Backend Engineer" → "Backend Engineer") and candidates at the
next level are matched by case-insensitive substring on that family.  When
several candidates match, the first one in the caller's ordering wins.

Family matching by title is fragile; an explicit family key on the role
record would replace it.  The behaviour is kept as-is until the intended
semantics are confirmed.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from competency_workflow.models import Role, RoleLevel

logger = logging.getLogger(__name__)

# Each marker is removed once, in this order
LEVEL_MARKERS: tuple[str, ...] = ("Junior ", "Mid-Level ", "Senior ")

NEXT_LEVEL: dict[RoleLevel, RoleLevel] = {
    RoleLevel.JUNIOR: RoleLevel.MID,
    RoleLevel.MID:    RoleLevel.SENIOR,
}


def role_family(title: str) -> str:
    """Return *title* with the known level markers removed."""
    family = title
    for marker in LEVEL_MARKERS:
        family = family.replace(marker, "", 1)
    return family.strip()


def next_level(level: RoleLevel) -> Optional[RoleLevel]:
    return NEXT_LEVEL.get(level)


def resolve_next_role(current_role: Role, candidate_roles: Iterable[Role]) -> Optional[Role]:
    """
    Return the next role in *current_role*'s family, or ``None``.

    ``None`` is the explicit "no next role" outcome: the employee is at the
    top of the ladder, or no candidate shares the family.
    """
    target_level = next_level(current_role.level)
    if target_level is None:
        logger.debug("No level above %s for role %s", current_role.level.value, current_role.id)
        return None

    family = role_family(current_role.title).lower()
    if not family:
        logger.debug("Role %s has no family in title %r", current_role.id, current_role.title)
        return None

    for candidate in candidate_roles:
        if candidate.id == current_role.id or candidate.level != target_level:
            continue
        if family in candidate.title.lower():
            return candidate

    logger.debug("No %s role found for family %r", target_level.value, family)
    return None


def promotion_target(current_role: Role, candidate_roles: Iterable[Role]) -> Role:
    """
    Role whose tests gate promotion: the next role, or the current role when
    no next role exists.  Self-assessment never uses this fallback.
    """
    return resolve_next_role(current_role, candidate_roles) or current_role
