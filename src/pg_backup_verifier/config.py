from __future__ import annotations

from dataclasses import dataclass, field
import os


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass(frozen=True)
class VerifierConfig:
    default_storage_class: str = field(default_factory=lambda: os.getenv("E2E_DEFAULT_STORAGE_CLASS", ""))
    backup_timeout_seconds: int = field(default_factory=lambda: _env_int("PGBV_BACKUP_TIMEOUT_SECONDS", 180))
    poll_interval_seconds: float = field(default_factory=lambda: _env_float("PGBV_POLL_INTERVAL_SECONDS", 1.0))
    command_timeout_seconds: int = field(default_factory=lambda: _env_int("PGBV_COMMAND_TIMEOUT_SECONDS", 300))
