"""
seed_demo_data.py
─────────────────
Populate the SQLite database with a small role/skill catalogue and demo
employees at different points of the workflow, so ``competency status``
has something to show:

  alex    Junior Backend Engineer   nothing submitted yet
  priya   Junior Backend Engineer   failed self-assessment → active learning path
  marcus  Mid-Level Backend Eng.    assessment passed, one failed test (cooldown)
  sarah   Junior Frontend Engineer  every test passed → pending promotion
  david   Senior Backend Engineer   top of the ladder (no next role)

Safe to re-run: the catalogue is upserted and employees that already hold
an active role are left untouched.

    competency seed
or:
    python -m competency_workflow.seed_demo_data
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from competency_workflow.config import Settings, get_settings
from competency_workflow.database import (
    SqliteRepository,
    add_question,
    add_role_skill,
    assign_role,
    create_employee,
    create_role,
    create_skill,
)
from competency_workflow.models import (
    Question,
    QuestionOption,
    Role,
    RoleLevel,
    Skill,
    SkillCategory,
    TestAttempt,
)
from competency_workflow.repository import WriteBatch
from competency_workflow.service import CompetencyService

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Catalogue
# ─────────────────────────────────────────────────────────────────────────────

ROLES: list[Role] = [
    Role(id="be-jr",  title="Junior Backend Engineer",     level=RoleLevel.JUNIOR),
    Role(id="be-mid", title="Mid-Level Backend Engineer",  level=RoleLevel.MID),
    Role(id="be-sr",  title="Senior Backend Engineer",     level=RoleLevel.SENIOR),
    Role(id="fe-jr",  title="Junior Frontend Engineer",    level=RoleLevel.JUNIOR),
    Role(id="fe-mid", title="Mid-Level Frontend Engineer", level=RoleLevel.MID),
    Role(id="em",     title="Engineering Manager",         level=RoleLevel.MANAGER),
]

SKILLS: list[Skill] = [
    Skill(id="python",        name="Python"),
    Skill(id="sql",           name="SQL"),
    Skill(id="api-design",    name="API Design"),
    Skill(id="system-design", name="System Design"),
    Skill(id="javascript",    name="JavaScript"),
    Skill(id="react",         name="React"),
    Skill(id="communication", name="Communication", category=SkillCategory.SOFT),
]

# role id → {skill id: required level}
REQUIREMENTS: dict[str, dict[str, int]] = {
    "be-jr":  {"python": 2, "sql": 2, "communication": 2},
    "be-mid": {"python": 3, "sql": 3, "api-design": 3, "communication": 3},
    "be-sr":  {"python": 4, "sql": 4, "api-design": 4, "system-design": 4, "communication": 4},
    "fe-jr":  {"javascript": 2, "react": 2},
    "fe-mid": {"javascript": 3, "react": 3, "communication": 3},
    "em":     {"communication": 5, "system-design": 3},
}

# skill id → [(question, [options...], index of the correct option)]
QUESTION_BANK: dict[str, list[tuple[str, list[str], int]]] = {
    "python": [
        ("Which built-in returns an iterator of (index, value) pairs?",
         ["zip", "enumerate", "range", "iter"], 1),
        ("What does a generator function return when called?",
         ["A list", "A generator object", "None", "A tuple"], 1),
        ("Which statement guarantees a file is closed after use?",
         ["try/except", "with", "global", "assert"], 1),
    ],
    "sql": [
        ("Which clause filters rows after aggregation?",
         ["WHERE", "HAVING", "ORDER BY", "LIMIT"], 1),
        ("Which join keeps every row of the left table?",
         ["INNER JOIN", "LEFT JOIN", "CROSS JOIN", "SELF JOIN"], 1),
    ],
    "api-design": [
        ("Which HTTP method is idempotent and replaces a resource?",
         ["POST", "PUT", "PATCH", "CONNECT"], 1),
        ("Which status code signals a missing resource?",
         ["200", "301", "404", "500"], 2),
    ],
    "system-design": [
        ("What does a read replica primarily scale?",
         ["Writes", "Reads", "Storage encryption", "DNS"], 1),
        ("Which pattern smooths bursts of work between services?",
         ["Queue", "Singleton", "Decorator", "Adapter"], 0),
    ],
    "javascript": [
        ("Which keyword declares a block-scoped constant?",
         ["var", "let", "const", "static"], 2),
        ("What does `typeof null` evaluate to?",
         ["'null'", "'object'", "'undefined'", "'number'"], 1),
    ],
    "react": [
        ("Which hook holds local component state?",
         ["useEffect", "useState", "useMemo", "useRef"], 1),
        ("What must each element in a rendered list have?",
         ["A ref", "A key", "A style", "An id attribute"], 1),
    ],
}


def _question(skill_id: str, n: int, text: str, options: list[str], correct: int) -> Question:
    qid = f"{skill_id}-q{n}"
    return Question(
        id=qid,
        skill_id=skill_id,
        text=text,
        options=tuple(
            QuestionOption(id=f"{qid}-{chr(ord('a') + i)}", text=opt, is_correct=(i == correct))
            for i, opt in enumerate(options)
        ),
    )


def seed_catalogue(db_path: Path) -> None:
    for role in ROLES:
        create_role(db_path, role)
    for skill in SKILLS:
        create_skill(db_path, skill)
    for role_id, levels in REQUIREMENTS.items():
        for skill_id, level in levels.items():
            add_role_skill(db_path, role_id, skill_id, level)
    for skill_id, bank in QUESTION_BANK.items():
        for n, (text, options, correct) in enumerate(bank, start=1):
            add_question(db_path, _question(skill_id, n, text, options, correct))


# ─────────────────────────────────────────────────────────────────────────────
# Employees
# ─────────────────────────────────────────────────────────────────────────────

def _hire(repo: SqliteRepository, employee_id: str, name: str, role_id: str, when: datetime) -> bool:
    """Create the employee in *role_id*; False when they already exist."""
    if repo.fetch_active_role(employee_id) is not None:
        return False
    create_employee(repo.db_path, employee_id, name, f"{employee_id}@example.com")
    assign_role(repo.db_path, employee_id, role_id, when)
    return True


def _attempt(employee_id: str, skill_id: str, role_id: str, score: int,
             when: datetime, pass_mark: int) -> WriteBatch:
    return WriteBatch(insert_attempt=TestAttempt(
        employee_id=employee_id, skill_id=skill_id, role_id=role_id,
        score=score, passed=score >= pass_mark, attempted_at=when,
    ))


def seed_employees(service: CompetencyService, now: Optional[datetime] = None) -> list[str]:
    now   = now or datetime.now(timezone.utc)
    repo  = service.repository
    mark  = service.settings.rules.pass_mark
    hired = []

    if _hire(repo, "alex", "Alex Chen", "be-jr", now - timedelta(days=200)):
        hired.append("alex")

    if _hire(repo, "priya", "Priyanka Sharma", "be-jr", now - timedelta(days=400)):
        service.submit_self_assessment(
            "priya", {"python": 4, "sql": 2, "api-design": 1, "communication": 3},
            now=now - timedelta(days=3),
        )
        hired.append("priya")

    if _hire(repo, "marcus", "Marcus Johnson", "be-mid", now - timedelta(days=700)):
        service.submit_self_assessment(
            "marcus",
            {"python": 4, "sql": 4, "api-design": 4, "system-design": 4, "communication": 4},
            now=now - timedelta(days=10),
        )
        repo.persist(_attempt("marcus", "python", "be-sr", 100, now - timedelta(days=5), mark))
        repo.persist(_attempt("marcus", "sql", "be-sr", 50, now - timedelta(hours=6), mark))
        hired.append("marcus")

    if _hire(repo, "sarah", "Sarah Williams", "fe-jr", now - timedelta(days=500)):
        service.submit_self_assessment(
            "sarah", {"javascript": 4, "react": 3, "communication": 3},
            now=now - timedelta(days=20),
        )
        repo.persist(_attempt("sarah", "javascript", "fe-mid", 50, now - timedelta(days=9), mark))
        repo.persist(_attempt("sarah", "javascript", "fe-mid", 100, now - timedelta(days=7), mark))
        repo.persist(_attempt("sarah", "react", "fe-mid", 100, now - timedelta(days=6), mark))
        service.request_promotion("sarah", now=now - timedelta(days=1))
        hired.append("sarah")

    if _hire(repo, "david", "David Kim", "be-sr", now - timedelta(days=1500)):
        hired.append("david")

    return hired


def seed_all(settings: Optional[Settings] = None) -> list[str]:
    """Seed catalogue and employees; returns the ids of newly created employees."""
    settings = settings or get_settings()
    repo = SqliteRepository(settings.storage.db_path)
    seed_catalogue(repo.db_path)
    hired = seed_employees(CompetencyService(repo, settings))
    logger.info("Seeded %d role(s), %d new employee(s)", len(ROLES), len(hired))
    return hired


if __name__ == "__main__":
    from competency_workflow.config import configure_logging

    configure_logging()
    print(f"Seeded employees: {', '.join(seed_all()) or 'none (already present)'}")
