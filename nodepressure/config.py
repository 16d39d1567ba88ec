"""
Runtime settings.

Values come from NODEPRESSURE_* environment variables (a .env file in the
working directory is loaded first, see env.load_env) and can then be
overridden by CLI flags.
"""

import math
import os
import re
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Mapping, Optional

ENV_PREFIX = "NODEPRESSURE_"

DEFAULT_THRESHOLD = 25.0
DEFAULT_POLL_INTERVAL = timedelta(seconds=15)
DEFAULT_MIN_POD_AGE = timedelta(minutes=5)
DEFAULT_EVICTION_BACKOFF = timedelta(minutes=10)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)([smhd])")
_DURATION_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


def parse_duration(value: str) -> timedelta:
    """
    Parse "90", "90s", "5m", "1h", "2d" or compounds such as "1h30m".

    A bare number is seconds. Raises ValueError on anything else,
    including negative, infinite or out-of-range values.
    """
    text = value.strip().lower()
    if not text:
        raise ValueError("Empty duration")
    try:
        seconds = float(text)
    except ValueError:
        seconds = _compound_seconds(text, value)

    if not math.isfinite(seconds) or seconds < 0:
        raise ValueError(f"Invalid duration: {value!r} must be finite and non-negative")
    try:
        return timedelta(seconds=seconds)
    except OverflowError:
        raise ValueError(f"Invalid duration: {value!r} is out of range")


def _compound_seconds(text: str, value: str) -> float:
    pos = 0
    seconds = 0.0
    for m in _DURATION_PART.finditer(text):
        if m.start() != pos:
            break
        seconds += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
        pos = m.end()
    if pos != len(text):
        raise ValueError(f"Invalid duration: {value!r}")
    return seconds


def parse_bool(value: str) -> bool:
    text = value.strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean: {value!r}")


@dataclass(frozen=True)
class Settings:
    node_name: Optional[str] = None

    # pressure watcher
    pressure_threshold: float = DEFAULT_THRESHOLD
    poll_interval: timedelta = DEFAULT_POLL_INTERVAL
    pressure_resource: str = "cpu"
    pressure_window: str = "avg300"
    proc_root: Path = Path("/proc")

    # selection and eviction
    min_pod_age: timedelta = DEFAULT_MIN_POD_AGE
    eviction_backoff: timedelta = DEFAULT_EVICTION_BACKOFF
    taint_enabled: bool = True
    dry_run: bool = False
    db_path: Path = Path("data/evictions.db")

    # API access; all None means in-cluster discovery
    api_server: Optional[str] = None
    token: Optional[str] = None
    ca_cert: Optional[str] = None
    insecure: bool = False

    log_level: str = "INFO"
    log_dir: Path = Path("logs")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Raises:
            ValueError: If a variable is set to an unparseable value
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            return value if value not in (None, "") else None

        values = {}
        node_name = get("NODE_NAME") or env.get("NODE_NAME") or None
        if node_name:
            values["node_name"] = node_name

        if get("THRESHOLD"):
            values["pressure_threshold"] = float(get("THRESHOLD"))
        if get("POLL_INTERVAL"):
            values["poll_interval"] = parse_duration(get("POLL_INTERVAL"))
        if get("RESOURCE"):
            values["pressure_resource"] = get("RESOURCE")
        if get("WINDOW"):
            values["pressure_window"] = get("WINDOW")
        if get("PROC_ROOT"):
            values["proc_root"] = Path(get("PROC_ROOT"))
        if get("MIN_POD_AGE"):
            values["min_pod_age"] = parse_duration(get("MIN_POD_AGE"))
        if get("EVICTION_BACKOFF"):
            values["eviction_backoff"] = parse_duration(get("EVICTION_BACKOFF"))
        if get("TAINT"):
            values["taint_enabled"] = parse_bool(get("TAINT"))
        if get("DRY_RUN"):
            values["dry_run"] = parse_bool(get("DRY_RUN"))
        if get("DB"):
            values["db_path"] = Path(get("DB"))
        if get("API_SERVER"):
            values["api_server"] = get("API_SERVER")
        if get("TOKEN"):
            values["token"] = get("TOKEN")
        if get("CA_CERT"):
            values["ca_cert"] = get("CA_CERT")
        if get("INSECURE"):
            values["insecure"] = parse_bool(get("INSECURE"))
        if get("LOG_LEVEL"):
            values["log_level"] = get("LOG_LEVEL").upper()
        if get("LOG_DIR"):
            values["log_dir"] = Path(get("LOG_DIR"))

        return cls(**values)

    def with_overrides(self, **overrides) -> "Settings":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})
