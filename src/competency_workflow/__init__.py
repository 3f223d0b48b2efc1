"""
competency_workflow — Competency Workflow Engine
================================================
Business rules behind employee self-assessments, remedial learning paths,
gated skill tests and promotion requests.  The engine modules are pure
functions over immutable snapshots; ``service`` binds them to a
repository that performs the actual reads and writes.

Module map
----------
  models.py            Pydantic snapshots (Role, SkillRequirement, TestAttempt…)
                       and the workflow enums.
  errors.py            Exception hierarchy (MalformedInput, NoActiveRole, …).
  config.py            Settings loaded from .env; logging setup.
  guardrails.py        V-01..V-13 input validation (BLOCK / WARN / INFO).

  role_progression.py  Next-role resolution: junior → mid → senior.
  eligibility.py       Self-assessment and test-mode evaluation.
  learning_path.py     Learning path generation and lifecycle.
  test_governor.py     Per-skill attempt state machine and scoring.
  promotion.py         Promotion request / review gatekeeper.
  workflow.py          Derived assessment and test lock states.

  repository.py        CompetencyRepository protocol + WriteBatch.
  database.py          SQLite reference repository + admin helpers.
  service.py           fetch → evaluate → persist orchestration.
  seed_demo_data.py    Demo catalogue and employees.
  cli.py               `competency` command (argparse + rich).

Workflow order
--------------
  RoleProgression → self-assessment (next role)
    failed → learning path → complete path → retake
    passed → skill tests (24 h cooldown) → promotion request → admin review
"""
__version__ = "0.1.0"
