"""
Shared pytest fixtures for the competency workflow test suite.
Every store-backed fixture uses a throwaway SQLite file under tmp_path.
Factory helpers live in tests/factories.py so they can be imported
directly by test modules as well as being used here.
"""
import sys
import os

_tests_dir = os.path.dirname(__file__)
_src_dir   = os.path.join(_tests_dir, "..", "src")
for _p in (_tests_dir, _src_dir):
    if _p not in sys.path:
        sys.path.insert(0, _p)

import pytest

from factories import backend_ladder, make_settings

from competency_workflow.database import (
    SqliteRepository,
    add_question,
    add_role_skill,
    assign_role,
    create_employee,
    create_role,
    create_skill,
)
from competency_workflow.models import Question, QuestionOption, Skill, SkillCategory
from competency_workflow.service import CompetencyService


# ─── pytest fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def settings(tmp_path):
    return make_settings(db_path=tmp_path / "competency.db")


@pytest.fixture
def repo(settings):
    return SqliteRepository(settings.storage.db_path)


@pytest.fixture
def catalogue(repo):
    """
    Backend ladder with python / sql / communication.
    python and sql have one question each; communication has none.
    """
    db = repo.db_path
    for role in backend_ladder():
        create_role(db, role)
    create_skill(db, Skill(id="python", name="Python"))
    create_skill(db, Skill(id="sql", name="SQL"))
    create_skill(db, Skill(id="communication", name="Communication", category=SkillCategory.SOFT))
    for role_id, level in (("be-jr", 2), ("be-mid", 3), ("be-sr", 4)):
        add_role_skill(db, role_id, "python", level)
        add_role_skill(db, role_id, "sql", level)
        add_role_skill(db, role_id, "communication", level)
    for skill_id in ("python", "sql"):
        add_question(db, Question(
            id=f"{skill_id}-q1", skill_id=skill_id, text=f"{skill_id} question",
            options=(
                QuestionOption(id=f"{skill_id}-q1-a", text="right", is_correct=True),
                QuestionOption(id=f"{skill_id}-q1-b", text="wrong"),
            ),
        ))
    return repo


@pytest.fixture
def junior(catalogue):
    """Employee emp-1 holding the Junior Backend Engineer role."""
    create_employee(catalogue.db_path, "emp-1", "Test Employee")
    assign_role(catalogue.db_path, "emp-1", "be-jr")
    return "emp-1"


@pytest.fixture
def service(catalogue, settings):
    return CompetencyService(catalogue, settings)
