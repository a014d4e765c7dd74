"""Root test configuration for Warden.

Isolates every test from the developer's environment: no WARDEN_* variables,
no config file discovered from the working directory or home directory.

Shared fixtures build the real file-backed LogSource and the in-process
MemoryBlocklistStore under tmp_path; Redis is only ever mocked.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

import pytest

from warden.blocklist.protocol import MemoryBlocklistStore
from warden.logsource import LogSource, attempt_message, blocked_message, format_timestamp


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Strip WARDEN_* overrides and default config search paths for every test."""
    for var in ("WARDEN_CONFIG", "WARDEN_PORT", "WARDEN_REDIS_URL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr("warden.config.DEFAULT_CONFIG_PATHS", [])


@pytest.fixture
def log_path(tmp_path: Path) -> Path:
    return tmp_path / "login.log"


@pytest.fixture
def log_source(log_path: Path) -> LogSource:
    return LogSource(str(log_path), timeout_ms=2_000)


@pytest.fixture
def store() -> MemoryBlocklistStore:
    return MemoryBlocklistStore()


@pytest.fixture
def write_allowlist(tmp_path: Path) -> Callable[[list], Path]:
    """Write a JSON allow-list file and return its path."""

    def _write(entries: list) -> Path:
        path = tmp_path / "whitelist.json"
        path.write_text(json.dumps(entries), encoding="utf-8")
        return path

    return _write


class LogLines:
    """Builders for login.log content in the format the gate writes."""

    @staticmethod
    def line(message: str, at: Optional[datetime] = None) -> str:
        return f"{format_timestamp(at or datetime.now(timezone.utc))} - {message}\n"

    @classmethod
    def failed(cls, ip: str, count: int = 1, at: Optional[datetime] = None) -> str:
        return "".join(cls.line(attempt_message(ip, admitted=False), at) for _ in range(count))

    @classmethod
    def succeeded(cls, ip: str, count: int = 1, at: Optional[datetime] = None) -> str:
        return "".join(cls.line(attempt_message(ip, admitted=True), at) for _ in range(count))

    @classmethod
    def rejected(cls, ip: str, count: int = 1, at: Optional[datetime] = None) -> str:
        return "".join(cls.line(blocked_message(ip), at) for _ in range(count))


@pytest.fixture
def lines() -> type[LogLines]:
    return LogLines
