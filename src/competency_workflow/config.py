"""
config.py — Central settings for the Competency Workflow Engine
================================================================
All configuration is loaded from environment variables / .env file.
Copy .env.example → .env and adjust as needed; every value has a default
so the engine runs with no configuration at all.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from competency_workflow.errors import MalformedInput

# Load .env into os.environ (no-op if already set, safe to call multiple times)
load_dotenv(override=False)

_DEFAULT_DB_PATH = Path.cwd() / "competency_data.db"


# ─── Workflow rules ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RulesConfig:
    pass_mark:         int     # minimum rounded test score that passes
    cooldown_hours:    float   # wait after a failed attempt
    resource_base_url: str     # prefix for generated learning resources

    @property
    def is_valid(self) -> bool:
        return 0 < self.pass_mark <= 100 and self.cooldown_hours >= 0


def check_rules(rules: RulesConfig) -> None:
    """Raise ``MalformedInput`` for a pass mark outside 1–100 or a negative cooldown."""
    if not rules.is_valid:
        raise MalformedInput(
            f"Invalid workflow rules: pass mark {rules.pass_mark} must be within 1–100 "
            f"and cooldown {rules.cooldown_hours:g} h must not be negative."
        )


# ─── Storage ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class StorageConfig:
    db_path: Path


# ─── App-level settings ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class AppConfig:
    log_level: str


# ─── Master settings object ──────────────────────────────────────────────────

@dataclass(frozen=True)
class Settings:
    rules:   RulesConfig
    storage: StorageConfig
    app:     AppConfig

    def status_summary(self) -> dict[str, str]:
        """Return a dict of setting → display value for the CLI."""
        return {
            "Pass mark":        f"{self.rules.pass_mark}%",
            "Cooldown":         f"{self.rules.cooldown_hours:g} h",
            "Resource base":    self.rules.resource_base_url,
            "Database":         str(self.storage.db_path),
            "Log level":        self.app.log_level,
        }


def get_settings() -> Settings:
    """Load all configuration from environment variables; invalid rules raise ``MalformedInput``."""
    _str   = lambda k, d="": os.getenv(k, d).strip()
    _int   = lambda k, d=0: int(os.getenv(k, str(d)) or d)
    _float = lambda k, d=0.0: float(os.getenv(k, str(d)) or d)

    try:
        rules = RulesConfig(
            pass_mark         = _int("TEST_PASS_MARK", 70),
            cooldown_hours    = _float("TEST_COOLDOWN_HOURS", 24.0),
            resource_base_url = _str("LEARNING_RESOURCE_BASE_URL",
                                     "https://example.com/learn").rstrip("/"),
        )
    except ValueError as exc:
        raise MalformedInput(f"Invalid workflow rules: {exc}") from exc
    check_rules(rules)

    return Settings(
        rules=rules,
        storage=StorageConfig(
            db_path = Path(_str("COMPETENCY_DB_PATH", str(_DEFAULT_DB_PATH))),
        ),
        app=AppConfig(
            log_level = _str("COMPETENCY_LOG_LEVEL", "INFO").upper(),
        ),
    )


def configure_logging(settings: Settings | None = None) -> None:
    """Set the root log level once; used by the CLI entry point."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.app.log_level, logging.INFO),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
