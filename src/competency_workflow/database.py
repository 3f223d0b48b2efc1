"""
competency_workflow/database.py — SQLite reference repository
=============================================================
Implements ``CompetencyRepository`` on a local SQLite file so the engine
can run end to end without a hosted backend.  A production deployment
implements the same protocol against its own store.

Design decisions
----------------
- **One connection per call** — every public method opens, uses and closes
  its own connection; there is no shared in-process state.
- **One transaction per WriteBatch** — ``persist`` runs the whole batch
  inside ``with conn:`` so it commits entirely or rolls back entirely.
  Any ``sqlite3.Error`` is re-raised as ``PersistError``.
- **Retire, never delete** — replacing a learning path marks the previous
  active items ``completed``; rows are never removed.
- **WAL journal mode** — the CLI and a host application may read the same
  file concurrently.
- **UTC ISO-8601 text timestamps** — sortable as text, parsed back into
  timezone-aware datetimes.
- **Re-runnable admin helpers** — catalogue helpers upsert with
  ``ON CONFLICT … DO UPDATE`` so re-seeding never trips foreign keys.

Tables (see init_db for the full CREATE TABLE statements)
---------------------------------------------------------
  employees            id, full_name, email
  job_roles            id, title, level
  skills               id, name, category
  role_skills          role_id × skill_id → required_level   UNIQUE(role, skill)
  questions            id, skill_id, question_text, difficulty
  question_options     id, question_id, option_text, is_correct
  employee_roles       employee_id, role_id, status (active | completed)
  skill_assessments    append-only self-ratings
  test_attempts        append-only scored attempts
  learning_paths       one row per learning item
  promotion_requests   pending | approved | rejected

Public API
----------
  init_db(path)                         create tables if they don't exist
  SqliteRepository(path)                fetch_* / count_passed_attempts / persist
  create_employee / create_role / create_skill / add_role_skill /
  add_question / assign_role            admin catalogue helpers
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from competency_workflow.errors import PersistError
from competency_workflow.models import (
    Employee,
    EmployeeRole,
    EmployeeRoleStatus,
    LearningItem,
    LearningItemStatus,
    ProficiencyRecord,
    PromotionRequest,
    PromotionStatus,
    Question,
    QuestionOption,
    Role,
    RoleLevel,
    Skill,
    SkillCategory,
    SkillRequirement,
    TestAttempt,
)
from competency_workflow.repository import RoleAssignment, WriteBatch

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_SCHEMA = """
CREATE TABLE IF NOT EXISTS employees (
    id          TEXT PRIMARY KEY,
    full_name   TEXT NOT NULL DEFAULT '',
    email       TEXT NOT NULL DEFAULT '',
    created_at  TEXT DEFAULT (datetime('now'))
);
CREATE TABLE IF NOT EXISTS job_roles (
    id          TEXT PRIMARY KEY,
    title       TEXT NOT NULL,
    level       TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS skills (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    category    TEXT NOT NULL DEFAULT 'technical'
);
CREATE TABLE IF NOT EXISTS role_skills (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    role_id         TEXT    NOT NULL REFERENCES job_roles(id),
    skill_id        TEXT    NOT NULL REFERENCES skills(id),
    required_level  INTEGER NOT NULL CHECK (required_level BETWEEN 1 AND 5),
    UNIQUE (role_id, skill_id)
);
CREATE TABLE IF NOT EXISTS questions (
    id              TEXT PRIMARY KEY,
    skill_id        TEXT NOT NULL REFERENCES skills(id),
    question_text   TEXT NOT NULL,
    difficulty      TEXT NOT NULL DEFAULT 'medium'
);
CREATE TABLE IF NOT EXISTS question_options (
    id              TEXT PRIMARY KEY,
    question_id     TEXT    NOT NULL REFERENCES questions(id),
    option_text     TEXT    NOT NULL,
    is_correct      INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS employee_roles (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    employee_id     TEXT NOT NULL REFERENCES employees(id),
    role_id         TEXT NOT NULL REFERENCES job_roles(id),
    status          TEXT NOT NULL DEFAULT 'active',
    assigned_at     TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS skill_assessments (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    employee_id     TEXT    NOT NULL,
    role_id         TEXT    NOT NULL,
    skill_id        TEXT    NOT NULL,
    self_rating     INTEGER NOT NULL CHECK (self_rating BETWEEN 1 AND 5),
    created_at      TEXT    NOT NULL
);
CREATE TABLE IF NOT EXISTS test_attempts (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    employee_id     TEXT    NOT NULL,
    skill_id        TEXT    NOT NULL,
    role_id         TEXT    NOT NULL,
    score           INTEGER NOT NULL CHECK (score BETWEEN 0 AND 100),
    passed          INTEGER NOT NULL,
    attempted_at    TEXT    NOT NULL
);
CREATE TABLE IF NOT EXISTS learning_paths (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    employee_id     TEXT    NOT NULL,
    role_id         TEXT    NOT NULL,
    skill_id        TEXT    NOT NULL,
    resource_title  TEXT    NOT NULL,
    resource_url    TEXT    NOT NULL,
    completed       INTEGER NOT NULL DEFAULT 0,
    status          TEXT    NOT NULL DEFAULT 'active',
    created_at      TEXT    NOT NULL,
    completed_at    TEXT
);
CREATE TABLE IF NOT EXISTS promotion_requests (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    employee_id         TEXT NOT NULL,
    current_role_id     TEXT NOT NULL,
    requested_role_id   TEXT NOT NULL,
    status              TEXT NOT NULL DEFAULT 'pending',
    requested_at        TEXT NOT NULL,
    reviewed_at         TEXT
);
CREATE INDEX IF NOT EXISTS idx_attempts_triple
    ON test_attempts (employee_id, skill_id, role_id);
CREATE INDEX IF NOT EXISTS idx_learning_employee_status
    ON learning_paths (employee_id, status);
"""


# ─── Timestamp helpers ───────────────────────────────────────────────────────

def _ts(value: Optional[datetime]) -> Optional[str]:
    """Store as UTC ISO-8601; naive values are taken to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ─── Connection / schema ─────────────────────────────────────────────────────

def _get_conn(db_path: PathLike) -> sqlite3.Connection:
    """Return a connection with row_factory set."""
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db(db_path: PathLike) -> None:
    """Create tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = _get_conn(db_path)
    try:
        conn.executescript(_SCHEMA)
        conn.commit()
    finally:
        conn.close()


# ─── Row → model converters ──────────────────────────────────────────────────

def _employee(row: sqlite3.Row) -> Employee:
    return Employee(
        id         = row["id"],
        full_name  = row["full_name"] or "",
        email      = row["email"] or "",
        created_at = _dt(row["created_at"]),
    )


def _assignment(row: sqlite3.Row) -> EmployeeRole:
    return EmployeeRole(
        employee_id = row["employee_id"],
        role_id     = row["role_id"],
        status      = EmployeeRoleStatus(row["status"]),
        assigned_at = _dt(row["assigned_at"]),
    )


def _role(row: sqlite3.Row) -> Role:
    return Role(id=row["id"], title=row["title"], level=RoleLevel(row["level"]))


def _attempt(row: sqlite3.Row) -> TestAttempt:
    return TestAttempt(
        id           = str(row["id"]),
        employee_id  = row["employee_id"],
        skill_id     = row["skill_id"],
        role_id      = row["role_id"],
        score        = row["score"],
        passed       = bool(row["passed"]),
        attempted_at = _dt(row["attempted_at"]),
    )


def _learning_item(row: sqlite3.Row) -> LearningItem:
    return LearningItem(
        id           = str(row["id"]),
        employee_id  = row["employee_id"],
        role_id      = row["role_id"],
        skill_id     = row["skill_id"],
        skill_name   = row["skill_name"] or "",
        title        = row["resource_title"],
        resource_url = row["resource_url"],
        completed    = bool(row["completed"]),
        status       = LearningItemStatus(row["status"]),
        created_at   = _dt(row["created_at"]),
        completed_at = _dt(row["completed_at"]),
    )


def _promotion(row: sqlite3.Row) -> PromotionRequest:
    return PromotionRequest(
        id                = str(row["id"]),
        employee_id       = row["employee_id"],
        current_role_id   = row["current_role_id"],
        requested_role_id = row["requested_role_id"],
        status            = PromotionStatus(row["status"]),
        requested_at      = _dt(row["requested_at"]),
        reviewed_at       = _dt(row["reviewed_at"]),
    )


_LEARNING_SELECT = """
    SELECT lp.*, s.name AS skill_name
    FROM learning_paths lp LEFT JOIN skills s ON s.id = lp.skill_id
"""


# ─── Repository ──────────────────────────────────────────────────────────────

class SqliteRepository:
    """``CompetencyRepository`` backed by a single SQLite file."""

    def __init__(self, db_path: PathLike, create: bool = True) -> None:
        self.db_path = Path(db_path)
        if create:
            init_db(self.db_path)

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        conn = _get_conn(self.db_path)
        try:
            return conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise PersistError(f"Query failed: {exc}") from exc
        finally:
            conn.close()

    # ── Employees ────────────────────────────────────────────────────────────

    def fetch_employees(self) -> list[Employee]:
        """Newest hires first."""
        rows = self._query("SELECT * FROM employees ORDER BY created_at DESC, id")
        return [_employee(r) for r in rows]

    def fetch_active_assignments(self) -> list[EmployeeRole]:
        rows = self._query(
            "SELECT * FROM employee_roles WHERE status = 'active' ORDER BY assigned_at DESC"
        )
        return [_assignment(r) for r in rows]

    # ── Roles & requirements ─────────────────────────────────────────────────

    def fetch_active_role(self, employee_id: str) -> Optional[Role]:
        rows = self._query(
            """
            SELECT r.* FROM employee_roles er JOIN job_roles r ON r.id = er.role_id
            WHERE er.employee_id = ? AND er.status = 'active'
            ORDER BY er.assigned_at DESC LIMIT 1
            """,
            (employee_id,),
        )
        return _role(rows[0]) if rows else None

    def fetch_roles(self) -> list[Role]:
        return [_role(r) for r in self._query("SELECT * FROM job_roles ORDER BY title")]

    def fetch_role(self, role_id: str) -> Optional[Role]:
        rows = self._query("SELECT * FROM job_roles WHERE id = ?", (role_id,))
        return _role(rows[0]) if rows else None

    def fetch_role_requirements(self, role_id: str) -> list[SkillRequirement]:
        rows = self._query(
            """
            SELECT rs.role_id, rs.skill_id, rs.required_level, s.name, s.category,
                   EXISTS (SELECT 1 FROM questions q WHERE q.skill_id = rs.skill_id) AS testable
            FROM role_skills rs JOIN skills s ON s.id = rs.skill_id
            WHERE rs.role_id = ?
            ORDER BY s.name
            """,
            (role_id,),
        )
        return [
            SkillRequirement(
                role_id        = r["role_id"],
                skill_id       = r["skill_id"],
                skill_name     = r["name"],
                category       = SkillCategory(r["category"]),
                required_level = r["required_level"],
                testable       = bool(r["testable"]),
            )
            for r in rows
        ]

    # ── Self-assessment ──────────────────────────────────────────────────────

    def fetch_latest_proficiencies(self, employee_id: str, role_id: str) -> list[ProficiencyRecord]:
        """Newest rating per skill for the employee and role."""
        rows = self._query(
            """
            SELECT * FROM skill_assessments
            WHERE employee_id = ? AND role_id = ?
            ORDER BY created_at DESC, id DESC
            """,
            (employee_id, role_id),
        )
        latest: dict[str, ProficiencyRecord] = {}
        for r in rows:
            if r["skill_id"] in latest:
                continue
            latest[r["skill_id"]] = ProficiencyRecord(
                employee_id = r["employee_id"],
                role_id     = r["role_id"],
                skill_id    = r["skill_id"],
                self_rating = r["self_rating"],
                created_at  = _dt(r["created_at"]),
            )
        return list(latest.values())

    # ── Tests ────────────────────────────────────────────────────────────────

    def fetch_test_attempts(self, employee_id: str, skill_id: str, role_id: str) -> list[TestAttempt]:
        rows = self._query(
            """
            SELECT * FROM test_attempts
            WHERE employee_id = ? AND skill_id = ? AND role_id = ?
            ORDER BY attempted_at DESC, id DESC
            """,
            (employee_id, skill_id, role_id),
        )
        return [_attempt(r) for r in rows]

    def fetch_role_test_attempts(self, employee_id: str, role_id: str) -> list[TestAttempt]:
        rows = self._query(
            """
            SELECT * FROM test_attempts
            WHERE employee_id = ? AND role_id = ?
            ORDER BY attempted_at DESC, id DESC
            """,
            (employee_id, role_id),
        )
        return [_attempt(r) for r in rows]

    def fetch_questions(self, skill_id: str) -> list[Question]:
        q_rows = self._query(
            "SELECT * FROM questions WHERE skill_id = ? ORDER BY id", (skill_id,)
        )
        o_rows = self._query(
            """
            SELECT o.* FROM question_options o JOIN questions q ON q.id = o.question_id
            WHERE q.skill_id = ? ORDER BY o.id
            """,
            (skill_id,),
        )
        options: dict[str, list[QuestionOption]] = {}
        for o in o_rows:
            options.setdefault(o["question_id"], []).append(QuestionOption(
                id=o["id"], text=o["option_text"], is_correct=bool(o["is_correct"]),
            ))
        return [
            Question(
                id         = q["id"],
                skill_id   = q["skill_id"],
                text       = q["question_text"],
                difficulty = q["difficulty"],
                options    = tuple(options.get(q["id"], [])),
            )
            for q in q_rows
        ]

    # ── Learning paths ───────────────────────────────────────────────────────

    def fetch_active_learning_items(self, employee_id: str) -> list[LearningItem]:
        rows = self._query(
            _LEARNING_SELECT + " WHERE lp.employee_id = ? AND lp.status = 'active' "
                               "ORDER BY lp.created_at, lp.id",
            (employee_id,),
        )
        return [_learning_item(r) for r in rows]

    def fetch_learning_items(self, employee_id: str) -> list[LearningItem]:
        """Every item the employee ever had, newest first."""
        rows = self._query(
            _LEARNING_SELECT + " WHERE lp.employee_id = ? ORDER BY lp.created_at DESC, lp.id DESC",
            (employee_id,),
        )
        return [_learning_item(r) for r in rows]

    # ── Promotions ───────────────────────────────────────────────────────────

    def fetch_promotion_requests(self, employee_id: str) -> list[PromotionRequest]:
        rows = self._query(
            """
            SELECT * FROM promotion_requests WHERE employee_id = ?
            ORDER BY requested_at DESC, id DESC
            """,
            (employee_id,),
        )
        return [_promotion(r) for r in rows]

    def fetch_promotion_request(self, request_id: str) -> Optional[PromotionRequest]:
        rows = self._query("SELECT * FROM promotion_requests WHERE id = ?", (request_id,))
        return _promotion(rows[0]) if rows else None

    def fetch_pending_promotion_requests(self) -> list[PromotionRequest]:
        rows = self._query(
            "SELECT * FROM promotion_requests WHERE status = 'pending' ORDER BY requested_at DESC"
        )
        return [_promotion(r) for r in rows]

    def count_passed_attempts(self) -> int:
        rows = self._query("SELECT COUNT(*) AS n FROM test_attempts WHERE passed = 1")
        return rows[0]["n"]

    # ── Writes ───────────────────────────────────────────────────────────────

    def persist(self, batch: WriteBatch) -> None:
        """Apply *batch* in one transaction; raise ``PersistError`` on failure."""
        if batch.is_empty:
            return
        conn = _get_conn(self.db_path)
        try:
            with conn:
                self._apply(conn, batch)
        except sqlite3.Error as exc:
            logger.error("Write batch rolled back: %s", exc)
            raise PersistError(f"Write batch rolled back: {exc}") from exc
        finally:
            conn.close()

    def _apply(self, conn: sqlite3.Connection, batch: WriteBatch) -> None:
        if batch.retire_active_items_for is not None:
            conn.execute(
                """
                UPDATE learning_paths SET status = 'completed',
                       completed_at = COALESCE(completed_at, ?)
                WHERE employee_id = ? AND status = 'active'
                """,
                (_ts(batch.retired_at or _now()), batch.retire_active_items_for),
            )

        for item in batch.update_items:
            if item.id is None:
                raise PersistError("Cannot update a learning item without an id.")
            conn.execute(
                """
                UPDATE learning_paths SET completed = ?, status = ?, completed_at = ?
                WHERE id = ?
                """,
                (int(item.completed), item.status.value, _ts(item.completed_at), int(item.id)),
            )

        conn.executemany(
            """
            INSERT INTO learning_paths
                (employee_id, role_id, skill_id, resource_title, resource_url,
                 completed, status, created_at, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (i.employee_id, i.role_id, i.skill_id, i.title, i.resource_url,
                 int(i.completed), i.status.value, _ts(i.created_at or _now()),
                 _ts(i.completed_at))
                for i in batch.insert_items
            ],
        )

        if batch.insert_attempt is not None:
            a = batch.insert_attempt
            conn.execute(
                """
                INSERT INTO test_attempts
                    (employee_id, skill_id, role_id, score, passed, attempted_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (a.employee_id, a.skill_id, a.role_id, a.score, int(a.passed), _ts(a.attempted_at)),
            )

        conn.executemany(
            """
            INSERT INTO skill_assessments
                (employee_id, role_id, skill_id, self_rating, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            [
                (p.employee_id, p.role_id, p.skill_id, p.self_rating, _ts(p.created_at))
                for p in batch.insert_proficiencies
            ],
        )

        if batch.insert_promotion_request is not None:
            p = batch.insert_promotion_request
            conn.execute(
                """
                INSERT INTO promotion_requests
                    (employee_id, current_role_id, requested_role_id, status, requested_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (p.employee_id, p.current_role_id, p.requested_role_id,
                 p.status.value, _ts(p.requested_at)),
            )

        if batch.update_promotion_request is not None:
            r = batch.update_promotion_request
            cur = conn.execute(
                """
                UPDATE promotion_requests SET status = ?, reviewed_at = ?
                WHERE id = ? AND status = 'pending'
                """,
                (r.status.value, _ts(r.reviewed_at), int(r.request_id)),
            )
            if cur.rowcount != 1:
                raise PersistError(f"Promotion request {r.request_id} is no longer pending.")

        if batch.assign_role is not None:
            _assign_role(conn, batch.assign_role)


def _assign_role(conn: sqlite3.Connection, assignment: RoleAssignment) -> None:
    conn.execute(
        "UPDATE employee_roles SET status = ? WHERE employee_id = ? AND status = 'active'",
        (EmployeeRoleStatus.COMPLETED.value, assignment.employee_id),
    )
    conn.execute(
        "INSERT INTO employee_roles (employee_id, role_id, status, assigned_at) VALUES (?, ?, ?, ?)",
        (assignment.employee_id, assignment.role_id,
         EmployeeRoleStatus.ACTIVE.value, _ts(assignment.assigned_at)),
    )


# ─── Admin catalogue helpers ─────────────────────────────────────────────────

def _execute(db_path: PathLike, sql: str, params: tuple) -> None:
    conn = _get_conn(db_path)
    try:
        with conn:
            conn.execute(sql, params)
    except sqlite3.Error as exc:
        raise PersistError(str(exc)) from exc
    finally:
        conn.close()


def create_employee(db_path: PathLike, employee_id: str, full_name: str = "", email: str = "") -> None:
    _execute(db_path,
             "INSERT OR IGNORE INTO employees (id, full_name, email) VALUES (?, ?, ?)",
             (employee_id, full_name, email))


def create_role(db_path: PathLike, role: Role) -> None:
    _execute(db_path,
             "INSERT INTO job_roles (id, title, level) VALUES (?, ?, ?) "
             "ON CONFLICT (id) DO UPDATE SET title = excluded.title, level = excluded.level",
             (role.id, role.title, role.level.value))


def create_skill(db_path: PathLike, skill: Skill) -> None:
    _execute(db_path,
             "INSERT INTO skills (id, name, category) VALUES (?, ?, ?) "
             "ON CONFLICT (id) DO UPDATE SET name = excluded.name, category = excluded.category",
             (skill.id, skill.name, skill.category.value))


def add_role_skill(db_path: PathLike, role_id: str, skill_id: str, required_level: int) -> None:
    _execute(db_path,
             """
             INSERT INTO role_skills (role_id, skill_id, required_level) VALUES (?, ?, ?)
             ON CONFLICT (role_id, skill_id) DO UPDATE SET required_level = excluded.required_level
             """,
             (role_id, skill_id, required_level))


def add_question(db_path: PathLike, question: Question) -> None:
    conn = _get_conn(db_path)
    try:
        with conn:
            conn.execute(
                "INSERT INTO questions (id, skill_id, question_text, difficulty) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT (id) DO UPDATE SET skill_id = excluded.skill_id, "
                "question_text = excluded.question_text, difficulty = excluded.difficulty",
                (question.id, question.skill_id, question.text, question.difficulty),
            )
            conn.execute("DELETE FROM question_options WHERE question_id = ?", (question.id,))
            conn.executemany(
                "INSERT INTO question_options (id, question_id, option_text, is_correct) "
                "VALUES (?, ?, ?, ?)",
                [(o.id, question.id, o.text, int(o.is_correct)) for o in question.options],
            )
    except sqlite3.Error as exc:
        raise PersistError(str(exc)) from exc
    finally:
        conn.close()


def assign_role(db_path: PathLike, employee_id: str, role_id: str,
                assigned_at: Optional[datetime] = None) -> None:
    """Make *role_id* the employee's only active role."""
    conn = _get_conn(db_path)
    try:
        with conn:
            _assign_role(conn, RoleAssignment(employee_id, role_id, assigned_at or _now()))
    except sqlite3.Error as exc:
        raise PersistError(str(exc)) from exc
    finally:
        conn.close()
