"""Shared constants for Warden.

Defaults for every tunable live here. config.py reads them as dataclass
defaults; no other module should hard-code these numbers.
"""

# ─── Blocklist Store ──────────────────────────────────────────────────────────

# Key layout in the shared key/value store: ip:<address>
BLOCK_KEY_PREFIX: str = "ip:"

# Metadata sibling key suffix: ip:<address>:meta (JSON, set-if-absent)
BLOCK_META_SUFFIX: str = ":meta"

# Opaque marker stored under the block key. Presence of the key is what counts.
BLOCK_MARKER: str = "blocked"

DEFAULT_REDIS_URL: str = "redis://localhost:6379/0"

# Per-operation store timeout. Callers get StoreUnavailable past this.
DEFAULT_STORE_TIMEOUT_MS: int = 500

# ─── Log Source ───────────────────────────────────────────────────────────────

DEFAULT_LOG_PATH: str = "login.log"

# Per-operation log I/O timeout (read or append).
DEFAULT_LOG_TIMEOUT_MS: int = 2_000

# ─── Allow-list ───────────────────────────────────────────────────────────────

DEFAULT_ALLOWLIST_PATH: str = "whitelist.json"

# ─── Threat Analyzer ──────────────────────────────────────────────────────────

# Seconds between scheduled analyzer runs (10 minutes).
DEFAULT_ANALYSIS_INTERVAL_S: float = 600.0

# Counted outcomes per IP at or above which the IP becomes a candidate.
DEFAULT_THRESHOLD: int = 10

# Hard cap on tool calls per run, read_log included.
DEFAULT_MAX_TOOL_CALLS: int = 500

# Wall-clock cap per run.
DEFAULT_RUN_TIMEOUT_S: float = 60.0

# ─── Server ───────────────────────────────────────────────────────────────────

DEFAULT_HOST: str = "127.0.0.1"
DEFAULT_PORT: int = 3000

# Label recorded for requests that arrive without an x-forwarded-for header.
UNKNOWN_CLIENT_IP: str = "unknown"
