"""Runtime configuration for the delivery chat service.

Settings are read from environment variables once, at application startup,
and validated with Pydantic. Routes and services receive the resulting
``Settings`` object instead of reading the environment themselves.

Environment Variables:
    DATABASE_URL: SQLAlchemy async URL of the delivery database.
        Defaults to a local ``sqlite+aiosqlite`` file.
    AGENT_MODEL / ANTHROPIC_MODEL: Claude model used by the assistant.
    DELIVERYCHAT_CHAT_MODE: ``polling`` (JSON reply) or ``streaming``
        (streamed text body).
    DELIVERYCHAT_TOOL_FORM: ``named`` ({query, parameters}) or
        ``positional`` ({sql, values}).
    DELIVERYCHAT_TOOL_GUARD / DELIVERYCHAT_PUBLIC_GUARD: comma-separated
        query guard checks (``keywords``, ``statement``) for the assistant
        tool path and the public /query path.
    DELIVERYCHAT_POLL_INTERVAL, DELIVERYCHAT_MAX_POLL_ATTEMPTS,
    DELIVERYCHAT_MAX_TOOL_ROUNDS, DELIVERYCHAT_MAX_ROWS,
    DELIVERYCHAT_READ_ONLY, DELIVERYCHAT_RUN_EXPIRY_SECONDS: tuning knobs.
    ALLOWED_ORIGINS: comma-separated CORS allowlist (CORS disabled if unset).
"""

import os
from typing import Literal

from pydantic import BaseModel, Field, field_validator

DEFAULT_MODEL = "claude-haiku-4-5-20251001"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./deliverychat.db"

_TRUTHY = {"1", "true", "yes", "on"}
_GUARD_CHECKS = {"keywords", "statement"}


def _split_csv(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def get_database_url() -> str:
    """Get the async database URL from the environment.

    Plain ``sqlite:///`` and ``postgresql://`` URLs are upgraded to their
    async drivers so the same value works for sync tools and this service.
    """
    url = os.environ.get("DATABASE_URL", "").strip() or DEFAULT_DATABASE_URL
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    return url


def get_model() -> str:
    """Resolve the Claude model: AGENT_MODEL, then ANTHROPIC_MODEL, then default."""
    return (
        os.environ.get("AGENT_MODEL")
        or os.environ.get("ANTHROPIC_MODEL")
        or DEFAULT_MODEL
    )


class Settings(BaseModel):
    """Validated service settings."""

    database_url: str = DEFAULT_DATABASE_URL
    sql_echo: bool = False
    model: str = DEFAULT_MODEL
    max_tokens: int = Field(default=2048, gt=0)
    chat_mode: Literal["polling", "streaming"] = "polling"
    tool_form: Literal["named", "positional"] = "named"
    tool_guard: list[str] = Field(default_factory=lambda: ["statement"])
    public_guard: list[str] = Field(default_factory=lambda: ["keywords", "statement"])
    read_only: bool = True
    max_rows: int = Field(default=200, gt=0)
    poll_interval: float = Field(default=1.0, ge=0)
    max_poll_attempts: int = Field(default=60, gt=0)
    max_tool_rounds: int = Field(default=5, gt=0)
    run_expiry_seconds: float = Field(default=600.0, gt=0)
    allowed_origins: list[str] = Field(default_factory=list)

    @field_validator("tool_guard", "public_guard")
    @classmethod
    def _known_checks(cls, value: list[str]) -> list[str]:
        unknown = set(value) - _GUARD_CHECKS
        if unknown:
            raise ValueError(
                f"Unknown guard check(s): {', '.join(sorted(unknown))}. "
                f"Valid: {', '.join(sorted(_GUARD_CHECKS))}"
            )
        return value

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, keeping defaults for unset ones."""
        env = os.environ
        values: dict[str, object] = {
            "database_url": get_database_url(),
            "sql_echo": env.get("SQL_ECHO", "").lower() in _TRUTHY,
            "model": get_model(),
            "allowed_origins": _split_csv(env.get("ALLOWED_ORIGINS", "")),
        }
        scalar_vars = {
            "max_tokens": "DELIVERYCHAT_MAX_TOKENS",
            "chat_mode": "DELIVERYCHAT_CHAT_MODE",
            "tool_form": "DELIVERYCHAT_TOOL_FORM",
            "max_rows": "DELIVERYCHAT_MAX_ROWS",
            "poll_interval": "DELIVERYCHAT_POLL_INTERVAL",
            "max_poll_attempts": "DELIVERYCHAT_MAX_POLL_ATTEMPTS",
            "max_tool_rounds": "DELIVERYCHAT_MAX_TOOL_ROUNDS",
            "run_expiry_seconds": "DELIVERYCHAT_RUN_EXPIRY_SECONDS",
        }
        for field_name, var in scalar_vars.items():
            raw = env.get(var, "").strip()
            if raw:
                values[field_name] = raw.lower() if field_name in ("chat_mode", "tool_form") else raw
        for field_name, var in (
            ("tool_guard", "DELIVERYCHAT_TOOL_GUARD"),
            ("public_guard", "DELIVERYCHAT_PUBLIC_GUARD"),
        ):
            if var in env:
                values[field_name] = _split_csv(env[var].lower())
        read_only = env.get("DELIVERYCHAT_READ_ONLY", "").strip().lower()
        if read_only:
            values["read_only"] = read_only in _TRUTHY
        return cls.model_validate(values)
