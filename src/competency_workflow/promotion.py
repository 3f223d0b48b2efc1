"""
promotion.py — Promotion Gatekeeper
===================================
Thin aggregation over the evaluator: an employee may request a promotion
once every testable skill of their promotion target role has a passed
test, and an administrator then approves or rejects the request.

  request()  eligible + no pending request + role differs → PromotionRequest
  review()   pending request → WriteBatch (status, and on approval the role
             swap: retire the active role, activate the requested one)

Refusals raise ``PromotionNotAllowed``; the eligibility check itself is a
value (``SkillTestEligibility``) and never raises.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from competency_workflow.eligibility import EligibilityEvaluator, SkillTestEligibility, SkillTestRecord
from competency_workflow.errors import PromotionNotAllowed
from competency_workflow.models import (
    PromotionRequest,
    PromotionStatus,
    Role,
    SkillRequirement,
    TestAttempt,
)
from competency_workflow.repository import PromotionReview, RoleAssignment, WriteBatch

logger = logging.getLogger(__name__)


class PromotionGatekeeper:

    def __init__(self, evaluator: Optional[EligibilityEvaluator] = None) -> None:
        self.evaluator = evaluator or EligibilityEvaluator()

    def eligibility(
        self,
        requirements: Iterable[SkillRequirement],
        attempts:     Iterable[TestAttempt],
        role_id:      Optional[str] = None,
        employee_id:  Optional[str] = None,
    ) -> SkillTestEligibility:
        return self.evaluator.evaluate_tests(
            requirements, attempts, role_id=role_id, employee_id=employee_id,
        )

    def review_breakdown(
        self,
        requirements: Iterable[SkillRequirement],
        attempts:     Iterable[TestAttempt],
        role_id:      Optional[str] = None,
        employee_id:  Optional[str] = None,
    ) -> list[SkillTestRecord]:
        """Every required skill with best score, pass flag and last attempt date."""
        return self.eligibility(requirements, attempts, role_id, employee_id).skills

    @staticmethod
    def pending_request(requests: Iterable[PromotionRequest]) -> Optional[PromotionRequest]:
        return next((r for r in requests if r.is_pending), None)

    def request(
        self,
        employee_id:       str,
        current_role:      Role,
        requested_role:    Role,
        eligibility:       SkillTestEligibility,
        existing_requests: Iterable[PromotionRequest] = (),
        now:               Optional[datetime] = None,
    ) -> PromotionRequest:
        if requested_role.id == current_role.id:
            raise PromotionNotAllowed("Requested role is the employee's current role.")
        if not eligibility.eligible:
            raise PromotionNotAllowed(
                f"Not eligible: {eligibility.passed_count}/{eligibility.total_count} "
                "testable skills passed."
            )
        pending = self.pending_request(existing_requests)
        if pending is not None:
            raise PromotionNotAllowed(
                f"A promotion request is already pending (requested {pending.requested_at:%Y-%m-%d})."
            )
        return PromotionRequest(
            employee_id       = employee_id,
            current_role_id   = current_role.id,
            requested_role_id = requested_role.id,
            status            = PromotionStatus.PENDING,
            requested_at      = now or datetime.now(timezone.utc),
        )

    def review(
        self,
        request: PromotionRequest,
        approve: bool,
        now:     Optional[datetime] = None,
    ) -> WriteBatch:
        if not request.is_pending:
            raise PromotionNotAllowed(
                f"Request {request.id} was already {request.status.value}."
            )
        if request.id is None:
            raise PromotionNotAllowed("Only persisted requests can be reviewed.")

        now    = now or datetime.now(timezone.utc)
        status = PromotionStatus.APPROVED if approve else PromotionStatus.REJECTED
        batch  = WriteBatch(
            update_promotion_request=PromotionReview(
                request_id=request.id, status=status, reviewed_at=now,
            ),
        )
        if approve:
            batch.assign_role = RoleAssignment(
                employee_id = request.employee_id,
                role_id     = request.requested_role_id,
                assigned_at = now,
            )
        logger.debug("Promotion request %s → %s", request.id, status.value)
        return batch
