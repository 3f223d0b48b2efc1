"""
service.py — Competency workflow orchestration
==============================================
Binds the pure engine to a ``CompetencyRepository``.  Every public method
follows the same shape:

    fetch snapshots  →  evaluate with the engine  →  persist one WriteBatch

No state is kept between calls; lock states, attempt states and
eligibility are recomputed from fresh snapshots each time.

---------------------------------------------------------------------------
Workflow
---------------------------------------------------------------------------
  1. Self-assessment   rate every skill of the *next* role (1–5).
                       failed → learning path generated in the same batch
  2. Learning path     mark items done, then complete the path;
                       completing it unlocks the assessment retake
  3. Skill tests       open once the assessment passed and no path is active;
                       24 h cooldown after a failed attempt, passed is final
  4. Promotion         every testable skill passed → request; an admin
                       approves (role swap) or rejects
  5. Administration    list employees, reassign roles, dashboard counts

Target roles
------------
  Self-assessment uses the next role only.  With no next role there is
  nothing to assess and ``next_role`` is ``None``.  Tests and promotion
  eligibility use ``promotion_target``: the next role, falling back to the
  current role.

---------------------------------------------------------------------------
Data models defined in this file
---------------------------------------------------------------------------
  AssessmentOverview   current/next role, latest result, learning status, lock
  TestBoardEntry       one testable skill with its AttemptStatus
  TestBoard            target role, lock, entries, test-mode eligibility
  TestSession          shuffled questions for one attempt
  PromotionOverview    eligibility, pending request and request history
  EmployeeOverview     one employee with the active role, for the admin list
  DashboardStats       headline counts for the admin dashboard
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping, Optional

from pydantic import ValidationError

from competency_workflow.config import Settings, check_rules, get_settings
from competency_workflow.eligibility import (
    EligibilityEvaluator,
    SelfAssessmentResult,
    SkillTestEligibility,
    SkillTestRecord,
)
from competency_workflow.errors import (
    AttemptNotAllowed,
    MalformedInput,
    NoActiveRole,
    PromotionNotAllowed,
    WorkflowLocked,
)
from competency_workflow.learning_path import (
    LearningPathGenerator,
    LearningPlan,
    learning_status,
    verify_active_path,
)
from competency_workflow.models import (
    AssessmentStatus,
    Employee,
    LearningItem,
    LearningStatus,
    ProficiencyRecord,
    PromotionRequest,
    Question,
    Role,
    SkillRequirement,
    as_utc,
)
from competency_workflow.promotion import PromotionGatekeeper
from competency_workflow.repository import CompetencyRepository, RoleAssignment, WriteBatch
from competency_workflow.role_progression import promotion_target, resolve_next_role
from competency_workflow.test_governor import (
    Answers,
    AttemptStatus,
    SubmissionResult,
    TestAttemptGovernor,
    shuffle_questions,
)
from competency_workflow.workflow import Lock, assessment_lock, skill_test_lock

logger = logging.getLogger(__name__)


# ─── Data models ─────────────────────────────────────────────────────────────

@dataclass
class AssessmentOverview:
    employee_id:     str
    current_role:    Role
    next_role:       Optional[Role]
    requirements:    list[SkillRequirement] = field(default_factory=list)
    result:          Optional[SelfAssessmentResult] = None
    learning:        LearningStatus = LearningStatus.NONE
    lock:            Lock = field(default_factory=Lock.open)

    @property
    def has_next_role(self) -> bool:
        return self.next_role is not None

    @property
    def status(self) -> AssessmentStatus:
        return self.result.status if self.result else AssessmentStatus.NONE


@dataclass
class TestBoardEntry:
    requirement: SkillRequirement
    status:      AttemptStatus

    __test__ = False


@dataclass
class TestBoard:
    employee_id: str
    role:        Role
    lock:        Lock
    entries:     list[TestBoardEntry] = field(default_factory=list)
    eligibility: Optional[SkillTestEligibility] = None

    __test__ = False

    def entry(self, skill_id: str) -> Optional[TestBoardEntry]:
        return next((e for e in self.entries if e.requirement.skill_id == skill_id), None)


@dataclass
class TestSession:
    employee_id: str
    role_id:     str
    skill_id:    str
    questions:   list[Question]

    __test__ = False


@dataclass
class PromotionOverview:
    employee_id:  str
    current_role: Role
    target_role:  Role
    eligibility:  SkillTestEligibility
    pending:      Optional[PromotionRequest] = None
    requests:     list[PromotionRequest] = field(default_factory=list)

    @property
    def can_request(self) -> bool:
        return (
            self.eligibility.eligible
            and self.pending is None
            and self.target_role.id != self.current_role.id
        )


@dataclass
class EmployeeOverview:
    employee:    Employee
    role:        Optional[Role] = None
    assigned_at: Optional[datetime] = None

    @property
    def role_title(self) -> str:
        return self.role.title if self.role else "Unassigned"


@dataclass
class DashboardStats:
    employees:          int = 0
    pending_promotions: int = 0
    roles:              int = 0
    tests_passed:       int = 0


# ─── Service ─────────────────────────────────────────────────────────────────

def _utcnow(now: Optional[datetime] = None) -> datetime:
    return as_utc(now) if now else datetime.now(timezone.utc)


class CompetencyService:
    """
    Usage::

        service  = CompetencyService(SqliteRepository(settings.storage.db_path), settings)
        overview = service.assessment_overview("emp-1")
        service.submit_self_assessment("emp-1", {"python": 4, "sql": 2})
    """

    def __init__(
        self,
        repository: CompetencyRepository,
        settings:   Optional[Settings] = None,
        rng:        Optional[random.Random] = None,
    ) -> None:
        self.repository = repository
        self.settings   = settings or get_settings()
        rules           = self.settings.rules
        check_rules(rules)
        self.evaluator  = EligibilityEvaluator(pass_mark=rules.pass_mark)
        self.generator  = LearningPathGenerator(resource_base_url=rules.resource_base_url)
        self.governor   = TestAttemptGovernor(
            pass_mark=rules.pass_mark, cooldown_hours=rules.cooldown_hours,
        )
        self.gatekeeper = PromotionGatekeeper(self.evaluator)
        self.rng        = rng

    # ── Roles ────────────────────────────────────────────────────────────────

    def current_role(self, employee_id: str) -> Role:
        role = self.repository.fetch_active_role(employee_id)
        if role is None:
            raise NoActiveRole(employee_id)
        return role

    def next_role(self, employee_id: str) -> Optional[Role]:
        return resolve_next_role(self.current_role(employee_id), self.repository.fetch_roles())

    def _target_role(self, employee_id: str) -> tuple[Role, Role]:
        current = self.current_role(employee_id)
        return current, promotion_target(current, self.repository.fetch_roles())

    # ── 1. Self-assessment ───────────────────────────────────────────────────

    def assessment_overview(self, employee_id: str) -> AssessmentOverview:
        current  = self.current_role(employee_id)
        target   = resolve_next_role(current, self.repository.fetch_roles())
        learning = learning_status(self.repository.fetch_learning_items(employee_id))
        if target is None:
            return AssessmentOverview(
                employee_id=employee_id, current_role=current, next_role=None, learning=learning,
            )

        requirements = self.repository.fetch_role_requirements(target.id)
        result = self.evaluator.evaluate_self_assessment(
            requirements,
            self.repository.fetch_latest_proficiencies(employee_id, target.id),
            role_id=target.id, employee_id=employee_id,
        )
        return AssessmentOverview(
            employee_id  = employee_id,
            current_role = current,
            next_role    = target,
            requirements = requirements,
            result       = result,
            learning     = learning,
            lock         = assessment_lock(result.status, learning),
        )

    def submit_self_assessment(
        self,
        employee_id: str,
        ratings:     Mapping[str, int],
        now:         Optional[datetime] = None,
    ) -> Optional[SelfAssessmentResult]:
        """
        Record one rating per skill of the next role and evaluate them.

        Returns ``None`` when the employee has no next role.  A failed result
        installs a new learning path in the same write as the ratings.
        """
        overview = self.assessment_overview(employee_id)
        if overview.next_role is None:
            logger.info("No next role for %s; self-assessment skipped", employee_id)
            return None
        if overview.lock.locked:
            raise WorkflowLocked("Self-assessment", overview.lock.reason.value)

        role_id = overview.next_role.id
        known   = {r.skill_id for r in overview.requirements}
        unknown = sorted(set(ratings) - known)
        if unknown:
            raise MalformedInput(f"Ratings for skills outside role {role_id}: {', '.join(unknown)}")

        now = _utcnow(now)
        try:
            records = [
                ProficiencyRecord(
                    employee_id=employee_id, role_id=role_id, skill_id=skill_id,
                    self_rating=rating, created_at=now,
                )
                for skill_id, rating in ratings.items()
            ]
        except ValidationError as exc:
            raise MalformedInput(f"Invalid self-rating: {exc.errors()[0]['msg']}") from exc

        previous = self.repository.fetch_latest_proficiencies(employee_id, role_id)
        result = self.evaluator.evaluate_self_assessment(
            overview.requirements, previous + records, role_id=role_id, employee_id=employee_id,
        )
        plan = LearningPlan(employee_id=employee_id, role_id=role_id)
        if result.status == AssessmentStatus.FAILED:
            plan = self.generator.generate(employee_id, role_id, result.development_areas, now)

        batch = plan.to_batch(now) if not plan.is_noop else WriteBatch()
        batch.insert_proficiencies = records
        self.repository.persist(batch)
        self._verify(plan)
        logger.info(
            "Self-assessment for %s against %s: %s (%d learning item(s))",
            employee_id, role_id, result.status.value, len(plan.insert),
        )
        return result

    # ── 2. Learning path ─────────────────────────────────────────────────────

    def learning_items(self, employee_id: str) -> list[LearningItem]:
        return self.repository.fetch_active_learning_items(employee_id)

    def generate_learning_path(self, employee_id: str, now: Optional[datetime] = None) -> LearningPlan:
        """(Re)build the path from the latest failed assessment; no-op otherwise."""
        overview = self.assessment_overview(employee_id)
        if overview.next_role is None or overview.status != AssessmentStatus.FAILED:
            return LearningPlan(
                employee_id=employee_id,
                role_id=overview.next_role.id if overview.next_role else overview.current_role.id,
            )
        now  = _utcnow(now)
        plan = self.generator.generate(
            employee_id, overview.next_role.id, overview.result.development_areas, now,
        )
        if not plan.is_noop:
            self.repository.persist(plan.to_batch(now))
            self._verify(plan)
            logger.info("Learning path for %s: %d item(s)", employee_id, len(plan.insert))
        return plan

    def toggle_learning_item(
        self, employee_id: str, item_id: str, now: Optional[datetime] = None,
    ) -> LearningItem:
        item = next((i for i in self.learning_items(employee_id) if i.id == item_id), None)
        if item is None:
            raise MalformedInput(f"No active learning item '{item_id}' for {employee_id}.")
        updated = self.generator.toggle_item(item, _utcnow(now))
        self.repository.persist(WriteBatch(update_items=[updated]))
        return updated

    def complete_learning_path(
        self, employee_id: str, now: Optional[datetime] = None,
    ) -> list[LearningItem]:
        completed = self.generator.complete_path(self.learning_items(employee_id), _utcnow(now))
        self.repository.persist(WriteBatch(update_items=completed))
        logger.info("Learning path completed for %s (%d item(s))", employee_id, len(completed))
        return completed

    def _verify(self, plan: LearningPlan) -> None:
        if plan.is_noop:
            return
        verify_active_path(plan, self.repository.fetch_active_learning_items(plan.employee_id))

    # ── 3. Skill tests ───────────────────────────────────────────────────────

    def test_board(self, employee_id: str, now: Optional[datetime] = None) -> TestBoard:
        now = _utcnow(now)
        _, target = self._target_role(employee_id)
        learning  = learning_status(self.repository.fetch_learning_items(employee_id))
        requirements = self.repository.fetch_role_requirements(target.id)
        assessment = self.evaluator.evaluate_self_assessment(
            requirements,
            self.repository.fetch_latest_proficiencies(employee_id, target.id),
            role_id=target.id, employee_id=employee_id,
        )
        lock = skill_test_lock(assessment.status, learning)
        if lock.locked:
            return TestBoard(employee_id=employee_id, role=target, lock=lock)

        attempts = self.repository.fetch_role_test_attempts(employee_id, target.id)
        entries = [
            TestBoardEntry(
                requirement=req,
                status=self.governor.status(
                    [a for a in attempts if a.skill_id == req.skill_id], now,
                ),
            )
            for req in requirements if req.testable
        ]
        return TestBoard(
            employee_id = employee_id,
            role        = target,
            lock        = lock,
            entries     = entries,
            eligibility = self.gatekeeper.eligibility(
                requirements, attempts, role_id=target.id, employee_id=employee_id,
            ),
        )

    def _ready_entry(self, employee_id: str, skill_id: str, now: datetime) -> tuple[TestBoard, TestBoardEntry]:
        board = self.test_board(employee_id, now)
        if board.lock.locked:
            raise WorkflowLocked("Skill tests", board.lock.reason.value)
        entry = board.entry(skill_id)
        if entry is None:
            raise MalformedInput(f"Skill '{skill_id}' has no test for role {board.role.id}.")
        return board, entry

    def start_test(self, employee_id: str, skill_id: str, now: Optional[datetime] = None) -> TestSession:
        """Shuffled question set for a READY skill."""
        now = _utcnow(now)
        board, entry = self._ready_entry(employee_id, skill_id, now)
        if not entry.status.can_attempt:
            raise AttemptNotAllowed(entry.status.state.value, entry.status.unlock_at)
        return TestSession(
            employee_id = employee_id,
            role_id     = board.role.id,
            skill_id    = skill_id,
            questions   = shuffle_questions(self.repository.fetch_questions(skill_id), self.rng),
        )

    def submit_test(
        self,
        employee_id: str,
        skill_id:    str,
        answers:     Answers,
        now:         Optional[datetime] = None,
    ) -> SubmissionResult:
        now = _utcnow(now)
        board, _ = self._ready_entry(employee_id, skill_id, now)
        result = self.governor.submit_attempt(
            self.repository.fetch_questions(skill_id),
            answers,
            employee_id = employee_id,
            skill_id    = skill_id,
            role_id     = board.role.id,
            history     = self.repository.fetch_test_attempts(employee_id, skill_id, board.role.id),
            now         = now,
        )
        self.repository.persist(WriteBatch(insert_attempt=result.attempt))
        logger.info(
            "Test %s for %s: %d%% (%s)",
            skill_id, employee_id, result.score, "passed" if result.passed else "failed",
        )
        return result

    # ── 4. Promotion ─────────────────────────────────────────────────────────

    def promotion_status(self, employee_id: str) -> PromotionOverview:
        current, target = self._target_role(employee_id)
        requests = self.repository.fetch_promotion_requests(employee_id)
        return PromotionOverview(
            employee_id  = employee_id,
            current_role = current,
            target_role  = target,
            eligibility  = self.gatekeeper.eligibility(
                self.repository.fetch_role_requirements(target.id),
                self.repository.fetch_role_test_attempts(employee_id, target.id),
                role_id=target.id, employee_id=employee_id,
            ),
            pending      = self.gatekeeper.pending_request(requests),
            requests     = requests,
        )

    def request_promotion(self, employee_id: str, now: Optional[datetime] = None) -> PromotionRequest:
        overview = self.promotion_status(employee_id)
        try:
            request = self.gatekeeper.request(
                employee_id,
                overview.current_role,
                overview.target_role,
                overview.eligibility,
                existing_requests=overview.requests,
                now=_utcnow(now),
            )
        except PromotionNotAllowed as exc:
            logger.warning("Promotion request refused for %s: %s", employee_id, exc)
            raise
        self.repository.persist(WriteBatch(insert_promotion_request=request))
        logger.info(
            "Promotion requested: %s %s → %s",
            employee_id, request.current_role_id, request.requested_role_id,
        )
        return request

    def pending_promotions(self) -> list[PromotionRequest]:
        return self.repository.fetch_pending_promotion_requests()

    def review_breakdown(self, request_id: str) -> list[SkillTestRecord]:
        """Per-skill test results behind a request, for the reviewing admin."""
        request = self._promotion_request(request_id)
        current = self.repository.fetch_role(request.current_role_id)
        if current is None:
            raise MalformedInput(f"Unknown role '{request.current_role_id}'.")
        target = promotion_target(current, self.repository.fetch_roles())
        return self.gatekeeper.review_breakdown(
            self.repository.fetch_role_requirements(target.id),
            self.repository.fetch_role_test_attempts(request.employee_id, target.id),
            role_id=target.id, employee_id=request.employee_id,
        )

    def review_promotion(
        self, request_id: str, approve: bool, now: Optional[datetime] = None,
    ) -> PromotionRequest:
        request = self._promotion_request(request_id)
        batch   = self.gatekeeper.review(request, approve, _utcnow(now))
        self.repository.persist(batch)
        review = batch.update_promotion_request
        logger.info("Promotion request %s %s", request_id, review.status.value)
        return request.model_copy(update={
            "status": review.status, "reviewed_at": review.reviewed_at,
        })

    def _promotion_request(self, request_id: str) -> PromotionRequest:
        request = self.repository.fetch_promotion_request(request_id)
        if request is None:
            raise MalformedInput(f"Unknown promotion request '{request_id}'.")
        return request

    # ── 5. Administration ────────────────────────────────────────────────────

    def employees(self) -> list[EmployeeOverview]:
        roles  = {r.id: r for r in self.repository.fetch_roles()}
        active = {a.employee_id: a for a in self.repository.fetch_active_assignments()}
        rows: list[EmployeeOverview] = []
        for emp in self.repository.fetch_employees():
            assignment = active.get(emp.id)
            rows.append(EmployeeOverview(
                employee    = emp,
                role        = roles.get(assignment.role_id) if assignment else None,
                assigned_at = assignment.assigned_at if assignment else None,
            ))
        return rows

    def assign_role(
        self, employee_id: str, role_id: str, now: Optional[datetime] = None,
    ) -> Role:
        """
        Retire the employee's active role and activate *role_id*.
        Re-assigning the role the employee already holds writes nothing.
        """
        role = self.repository.fetch_role(role_id)
        if role is None:
            raise MalformedInput(f"Unknown role '{role_id}'.")
        if all(e.id != employee_id for e in self.repository.fetch_employees()):
            raise MalformedInput(f"Unknown employee '{employee_id}'.")

        current = self.repository.fetch_active_role(employee_id)
        if current is not None and current.id == role.id:
            return role
        self.repository.persist(WriteBatch(assign_role=RoleAssignment(
            employee_id=employee_id, role_id=role.id, assigned_at=_utcnow(now),
        )))
        logger.info(
            "Role assigned: %s %s → %s",
            employee_id, current.id if current else "unassigned", role.id,
        )
        return role

    def dashboard_stats(self) -> DashboardStats:
        return DashboardStats(
            employees          = len(self.repository.fetch_employees()),
            pending_promotions = len(self.repository.fetch_pending_promotion_requests()),
            roles              = len(self.repository.fetch_roles()),
            tests_passed       = self.repository.count_passed_attempts(),
        )
