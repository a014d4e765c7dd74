"""Config loading for Warden.

Reads `.warden/config.yaml` (or `~/.warden/config.yaml`).
Raises SystemExit on parse errors, a missing `version` field, or invalid values.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided — for testing or explicit override)
  2. WARDEN_CONFIG environment variable (if set)
  3. `.warden/config.yaml` (working directory — for development)
  4. `~/.warden/config.yaml` (home directory — for production deployments)

Environment variable overrides:
  WARDEN_PORT      — overrides server.port
  WARDEN_REDIS_URL — overrides blocklist.url

Example:

    version: 1
    server:
      port: 3000
    blocklist:
      backend: redis
      url: redis://localhost:6379/0
    analysis:
      interval_seconds: 600
      threshold: 10
      window_seconds: 3600
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Any, NoReturn, Optional

import yaml

from warden.constants import (
    DEFAULT_ALLOWLIST_PATH,
    DEFAULT_ANALYSIS_INTERVAL_S,
    DEFAULT_HOST,
    DEFAULT_LOG_PATH,
    DEFAULT_LOG_TIMEOUT_MS,
    DEFAULT_MAX_TOOL_CALLS,
    DEFAULT_PORT,
    DEFAULT_REDIS_URL,
    DEFAULT_RUN_TIMEOUT_S,
    DEFAULT_STORE_TIMEOUT_MS,
    DEFAULT_THRESHOLD,
)
from warden.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# ─── Validation sets ─────────────────────────────────────────────────────────

VALID_BLOCKLIST_BACKENDS: frozenset[str] = frozenset({"redis", "memory"})

VALID_FAIL_MODES: frozenset[str] = frozenset({"open", "closed"})

# Outcome markers the gate writes to the log source.
VALID_OUTCOMES: frozenset[str] = frozenset({"SUCCESS", "FAILED", "BLOCKED"})

DEFAULT_CONFIG_PATHS = [
    ".warden/config.yaml",
    os.path.expanduser("~/.warden/config.yaml"),
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class ServerConfig:
    """HTTP binding configuration."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


@dataclass
class BlocklistConfig:
    """Blocklist store configuration.

    backend:     "redis" (production) or "memory" (single-process dev/test).
    url:         Redis connection URL (ignored by the memory backend).
    timeout_ms:  Per-operation timeout; exceeded → StoreUnavailable.
    ttl_seconds: Optional expiry for block entries. None keeps blocks forever;
                 setting it trades away "once blocked, always blocked".
    """

    backend: str = "redis"
    url: str = DEFAULT_REDIS_URL
    timeout_ms: int = DEFAULT_STORE_TIMEOUT_MS
    ttl_seconds: Optional[int] = None


@dataclass
class LogSourceConfig:
    """Append-only login log file."""

    path: str = DEFAULT_LOG_PATH
    timeout_ms: int = DEFAULT_LOG_TIMEOUT_MS


@dataclass
class AllowlistConfig:
    """JSON array of allowed client IPs, read fresh on every request."""

    path: str = DEFAULT_ALLOWLIST_PATH


@dataclass
class AnalysisConfig:
    """Threat analyzer and scheduler configuration."""

    enabled: bool = True
    interval_seconds: float = DEFAULT_ANALYSIS_INTERVAL_S
    threshold: int = DEFAULT_THRESHOLD
    window_seconds: Optional[float] = None  # None = whole log snapshot
    counted_outcomes: list[str] = field(default_factory=lambda: ["FAILED"])
    max_tool_calls: int = DEFAULT_MAX_TOOL_CALLS
    run_timeout_s: float = DEFAULT_RUN_TIMEOUT_S


@dataclass
class GateConfig:
    """Request gate behaviour when the blocklist store is unreachable.

    fail_mode="closed" rejects with 503; "open" skips the guardian check and
    continues to the allow-list check.
    """

    fail_mode: str = "closed"


@dataclass
class Config:
    """Root configuration object populated from .warden/config.yaml.

    All fields have safe defaults — Warden can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    server: ServerConfig = field(default_factory=ServerConfig)
    blocklist: BlocklistConfig = field(default_factory=BlocklistConfig)
    log_source: LogSourceConfig = field(default_factory=LogSourceConfig)
    allowlist: AllowlistConfig = field(default_factory=AllowlistConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    gate: GateConfig = field(default_factory=GateConfig)
    path: Optional[str] = None  # Path to the loaded config file

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On an invalid enum value or out-of-range number.
        """
        # ── Server ────────────────────────────────────────────────────────────
        server_raw = raw.get("server", {}) or {}
        server = ServerConfig(
            host=server_raw.get("host", DEFAULT_HOST),
            port=server_raw.get("port", DEFAULT_PORT),
        )

        # ── Blocklist ─────────────────────────────────────────────────────────
        blocklist_raw = raw.get("blocklist", {}) or {}
        backend = blocklist_raw.get("backend", "redis")
        if backend not in VALID_BLOCKLIST_BACKENDS:
            _config_error(
                f"Invalid blocklist.backend: '{backend}'. "
                f"Supported values: {sorted(VALID_BLOCKLIST_BACKENDS)}."
            )
        ttl = blocklist_raw.get("ttl_seconds")
        if ttl is not None and (not isinstance(ttl, int) or ttl <= 0):
            _config_error(f"blocklist.ttl_seconds must be a positive integer, got {ttl!r}.")
        blocklist = BlocklistConfig(
            backend=backend,
            url=blocklist_raw.get("url", DEFAULT_REDIS_URL),
            timeout_ms=blocklist_raw.get("timeout_ms", DEFAULT_STORE_TIMEOUT_MS),
            ttl_seconds=ttl,
        )

        # ── Log source / allow-list ───────────────────────────────────────────
        log_raw = raw.get("log_source", {}) or {}
        log_source = LogSourceConfig(
            path=log_raw.get("path", DEFAULT_LOG_PATH),
            timeout_ms=log_raw.get("timeout_ms", DEFAULT_LOG_TIMEOUT_MS),
        )
        allow_raw = raw.get("allowlist", {}) or {}
        allowlist = AllowlistConfig(path=allow_raw.get("path", DEFAULT_ALLOWLIST_PATH))

        # ── Analysis ──────────────────────────────────────────────────────────
        analysis = _parse_analysis(raw.get("analysis", {}) or {})

        # ── Gate ──────────────────────────────────────────────────────────────
        gate_raw = raw.get("gate", {}) or {}
        fail_mode = gate_raw.get("fail_mode", "closed")
        if fail_mode not in VALID_FAIL_MODES:
            _config_error(
                f"Invalid gate.fail_mode: '{fail_mode}'. "
                f"Supported values: {sorted(VALID_FAIL_MODES)}."
            )
        gate = GateConfig(fail_mode=fail_mode)

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            server=server,
            blocklist=blocklist,
            log_source=log_source,
            allowlist=allowlist,
            analysis=analysis,
            gate=gate,
            path=path,
        )


def _parse_analysis(analysis_raw: dict[str, Any]) -> AnalysisConfig:
    threshold = analysis_raw.get("threshold", DEFAULT_THRESHOLD)
    if not isinstance(threshold, int) or threshold < 1:
        _config_error(f"analysis.threshold must be an integer >= 1, got {threshold!r}.")

    max_calls = analysis_raw.get("max_tool_calls", DEFAULT_MAX_TOOL_CALLS)
    if not isinstance(max_calls, int) or max_calls < 1:
        _config_error(f"analysis.max_tool_calls must be an integer >= 1, got {max_calls!r}.")

    interval = analysis_raw.get("interval_seconds", DEFAULT_ANALYSIS_INTERVAL_S)
    if not isinstance(interval, (int, float)) or interval <= 0:
        _config_error(f"analysis.interval_seconds must be > 0, got {interval!r}.")

    run_timeout = analysis_raw.get("run_timeout_s", DEFAULT_RUN_TIMEOUT_S)
    if not isinstance(run_timeout, (int, float)) or run_timeout <= 0:
        _config_error(f"analysis.run_timeout_s must be > 0, got {run_timeout!r}.")

    window = analysis_raw.get("window_seconds")
    if window is not None and (not isinstance(window, (int, float)) or window <= 0):
        _config_error(f"analysis.window_seconds must be > 0 or null, got {window!r}.")

    outcomes = [str(o).upper() for o in analysis_raw.get("counted_outcomes", ["FAILED"])]
    unknown = sorted(set(outcomes) - VALID_OUTCOMES)
    if unknown or not outcomes:
        _config_error(
            f"Invalid analysis.counted_outcomes: {unknown or outcomes}. "
            f"Supported values: {sorted(VALID_OUTCOMES)}."
        )

    return AnalysisConfig(
        enabled=analysis_raw.get("enabled", True),
        interval_seconds=float(interval),
        threshold=threshold,
        window_seconds=float(window) if window is not None else None,
        counted_outcomes=outcomes,
        max_tool_calls=max_calls,
        run_timeout_s=float(run_timeout),
    )


def _config_error(message: str) -> NoReturn:
    print(f"CONFIG ERROR: {message}", file=sys.stderr)
    raise SystemExit(1)


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate Warden configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes the error to stderr and raises SystemExit(1).
    Environment overrides are applied in both cases.

    Raises:
        SystemExit(1): On YAML parse error, missing or unsupported ``version``,
                       invalid field values, or an invalid ``WARDEN_PORT``.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("WARDEN_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("No config file found — using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _config_error(
            f"Failed to parse {found_path}: {exc}\n"
            "Warden refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _config_error(f"Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _config_error(
                f"{found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _config_error(
            f"{found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    version = raw.get("version")
    if version is None:
        _config_error(
            f"{found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _config_error(
            f"Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if config.server.host == "0.0.0.0":
        logger.warning(
            "SECURITY WARNING: Warden is configured to bind on 0.0.0.0 (all interfaces). "
            "Client IPs are taken from x-forwarded-for as-is; only expose Warden "
            "behind a proxy that sets that header."
        )
    if config.blocklist.ttl_seconds is not None:
        logger.warning(
            "blocklist.ttl_seconds is set; blocked IPs will be unblocked on expiry",
            ttl_seconds=config.blocklist.ttl_seconds,
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        blocklist_backend=config.blocklist.backend,
        threshold=config.analysis.threshold,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Raises:
        SystemExit(1): If WARDEN_PORT is set but not a valid integer.
    """
    env_port = os.environ.get("WARDEN_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            _config_error(f"WARDEN_PORT environment variable is not a valid integer: '{env_port}'")

    env_redis = os.environ.get("WARDEN_REDIS_URL")
    if env_redis:
        config.blocklist.url = env_redis
