"""
Tests for the SQLite reference repository.
Run: python -m pytest tests/ -v
"""
import sqlite3

import pytest

from factories import T0, hours, make_attempt, make_rating

from competency_workflow.database import SqliteRepository, assign_role, init_db
from competency_workflow.errors import PersistError
from competency_workflow.learning_path import LearningPathGenerator
from competency_workflow.eligibility import SkillGap
from competency_workflow.models import (
    EmployeeRoleStatus,
    LearningItemStatus,
    PromotionRequest,
    PromotionStatus,
    RoleLevel,
)
from competency_workflow.repository import CompetencyRepository, PromotionReview, WriteBatch


def _plan(employee_id, *skills, now=T0):
    gaps = [SkillGap(skill_id=s, skill_name=s.upper(), required_level=3, actual_rating=1, passed=False)
            for s in skills]
    return LearningPathGenerator().generate(employee_id, "be-mid", gaps, now)


class TestSchema:
    def test_init_db_idempotent(self, tmp_path):
        db = tmp_path / "nested" / "c.db"
        init_db(db)
        init_db(db)
        conn = sqlite3.connect(db)
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        conn.close()
        assert {"job_roles", "role_skills", "test_attempts", "learning_paths",
                "promotion_requests", "employee_roles"} <= tables

    def test_satisfies_protocol(self, repo):
        assert isinstance(repo, CompetencyRepository)


class TestCatalogue:
    def test_roles(self, catalogue):
        assert {r.id for r in catalogue.fetch_roles()} == {"be-jr", "be-mid", "be-sr"}
        assert catalogue.fetch_role("be-mid").level == RoleLevel.MID
        assert catalogue.fetch_role("nope") is None

    def test_requirements_flag_testable(self, catalogue):
        reqs = {r.skill_id: r for r in catalogue.fetch_role_requirements("be-mid")}
        assert reqs["python"].testable and reqs["sql"].testable
        assert not reqs["communication"].testable
        assert reqs["python"].required_level == 3
        assert reqs["python"].skill_name == "Python"

    def test_questions_with_options(self, catalogue):
        (q,) = catalogue.fetch_questions("python")
        assert q.correct_option_id == "python-q1-a"
        assert len(q.options) == 2


class TestActiveRole:
    def test_no_role(self, catalogue):
        assert catalogue.fetch_active_role("ghost") is None

    def test_reassignment_keeps_single_active_role(self, junior, catalogue):
        assign_role(catalogue.db_path, junior, "be-mid")
        assert catalogue.fetch_active_role(junior).id == "be-mid"
        conn = sqlite3.connect(catalogue.db_path)
        active = conn.execute(
            "SELECT COUNT(*) FROM employee_roles WHERE employee_id=? AND status='active'", (junior,),
        ).fetchone()[0]
        conn.close()
        assert active == 1

    def test_active_assignments(self, junior, catalogue):
        assign_role(catalogue.db_path, junior, "be-mid", T0)
        (assignment,) = catalogue.fetch_active_assignments()
        assert assignment.employee_id == junior
        assert assignment.role_id == "be-mid"
        assert assignment.status == EmployeeRoleStatus.ACTIVE
        assert assignment.assigned_at == T0

    def test_employees(self, junior, catalogue):
        (emp,) = catalogue.fetch_employees()
        assert emp.id == junior and emp.full_name == "Test Employee"
        assert emp.created_at.tzinfo is not None


class TestRecords:
    def test_latest_proficiency_per_skill(self, catalogue):
        catalogue.persist(WriteBatch(insert_proficiencies=[
            make_rating("python", 2, at=T0),
            make_rating("python", 4, at=T0 + hours(1)),
            make_rating("sql", 3, at=T0),
        ]))
        latest = {p.skill_id: p.self_rating for p in catalogue.fetch_latest_proficiencies("emp-1", "be-mid")}
        assert latest == {"python": 4, "sql": 3}

    def test_attempts_newest_first(self, catalogue):
        for n, score in enumerate((10, 20, 30)):
            catalogue.persist(WriteBatch(insert_attempt=make_attempt("python", score, at=T0 + hours(30 * n))))
        attempts = catalogue.fetch_test_attempts("emp-1", "python", "be-mid")
        assert [a.score for a in attempts] == [30, 20, 10]
        assert attempts[0].attempted_at == T0 + hours(60)
        assert attempts[0].id is not None

    def test_attempts_scoped_to_role(self, catalogue):
        catalogue.persist(WriteBatch(insert_attempt=make_attempt("python", 90, role_id="be-sr")))
        assert catalogue.fetch_test_attempts("emp-1", "python", "be-mid") == []
        assert len(catalogue.fetch_role_test_attempts("emp-1", "be-sr")) == 1

    def test_count_passed_attempts(self, catalogue):
        for score in (40, 90, 100):
            catalogue.persist(WriteBatch(insert_attempt=make_attempt("python", score)))
        assert catalogue.count_passed_attempts() == 2


class TestLearningItems:
    def test_regenerate_retires_previous_generation(self, catalogue):
        catalogue.persist(_plan("emp-1", "python", "sql").to_batch(T0))
        catalogue.persist(_plan("emp-1", "python", "sql", now=T0 + hours(1)).to_batch(T0 + hours(1)))
        active = catalogue.fetch_active_learning_items("emp-1")
        assert sorted(i.skill_id for i in active) == ["python", "sql"]
        history = catalogue.fetch_learning_items("emp-1")
        assert len(history) == 4
        retired = [i for i in history if i.status == LearningItemStatus.COMPLETED]
        assert len(retired) == 2 and all(i.completed_at == T0 + hours(1) for i in retired)

    def test_item_update(self, catalogue):
        catalogue.persist(_plan("emp-1", "python").to_batch(T0))
        (item,) = catalogue.fetch_active_learning_items("emp-1")
        done = LearningPathGenerator().toggle_item(item, T0 + hours(2))
        catalogue.persist(WriteBatch(update_items=[done]))
        (item,) = catalogue.fetch_active_learning_items("emp-1")
        assert item.completed and item.completed_at == T0 + hours(2)
        assert item.skill_name == "Python"


class TestPromotions:
    def _request(self, repo):
        repo.persist(WriteBatch(insert_promotion_request=PromotionRequest(
            employee_id="emp-1", current_role_id="be-jr", requested_role_id="be-mid", requested_at=T0,
        )))
        return repo.fetch_promotion_requests("emp-1")[0]

    def test_insert_and_fetch(self, catalogue):
        req = self._request(catalogue)
        assert req.is_pending
        assert catalogue.fetch_promotion_request(req.id) == req
        assert [r.id for r in catalogue.fetch_pending_promotion_requests()] == [req.id]

    def test_review_applies_once(self, catalogue):
        req = self._request(catalogue)
        review = PromotionReview(request_id=req.id, status=PromotionStatus.REJECTED, reviewed_at=T0)
        catalogue.persist(WriteBatch(update_promotion_request=review))
        assert catalogue.fetch_promotion_request(req.id).status == PromotionStatus.REJECTED
        with pytest.raises(PersistError):
            catalogue.persist(WriteBatch(update_promotion_request=review))


class TestAtomicity:
    def test_failed_batch_rolls_back(self, catalogue):
        catalogue.persist(_plan("emp-1", "python").to_batch(T0))
        batch = _plan("emp-1", "sql").to_batch(T0 + hours(1))
        batch.update_promotion_request = PromotionReview(
            request_id="999", status=PromotionStatus.APPROVED, reviewed_at=T0,
        )
        with pytest.raises(PersistError):
            catalogue.persist(batch)
        active = catalogue.fetch_active_learning_items("emp-1")
        assert [i.skill_id for i in active] == ["python"]

    def test_store_error_wrapped(self, tmp_path):
        repo = SqliteRepository(tmp_path / "c.db")
        conn = sqlite3.connect(repo.db_path)
        conn.execute("DROP TABLE test_attempts")
        conn.commit()
        conn.close()
        with pytest.raises(PersistError) as exc:
            repo.persist(WriteBatch(insert_attempt=make_attempt()))
        assert isinstance(exc.value.__cause__, sqlite3.Error)

    def test_empty_batch_is_noop(self, repo):
        repo.persist(WriteBatch())
