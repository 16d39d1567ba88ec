"""
Pressure watcher.

Samples the Linux pressure-stall information (PSI) interface under
/proc/pressure/ and tracks whether the node is currently under high
pressure. A PressureEvent is emitted only when that state flips.

Example file content (/proc/pressure/cpu):
    some avg10=0.00 avg60=0.00 avg300=0.00 total=0
    full avg10=0.00 avg60=0.00 avg300=0.00 total=0
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional

from .config import DEFAULT_POLL_INTERVAL, DEFAULT_THRESHOLD
from .logger import get_logger

PSI_RESOURCES = ("cpu", "memory", "io")
PSI_WINDOWS = ("avg10", "avg60", "avg300")


class PressureUnavailableError(RuntimeError):
    """Raised when the host does not expose a readable PSI file."""
    pass


@dataclass(frozen=True)
class PSILine:
    avg10: float
    avg60: float
    avg300: float
    total: int


@dataclass(frozen=True)
class PressureStats:
    some: PSILine
    full: Optional[PSILine] = None


@dataclass(frozen=True)
class PressureEvent:
    high: bool
    value: float
    timestamp: datetime


def parse_psi_line(line: str) -> PSILine:
    fields: Dict[str, str] = {}
    for token in line.split()[1:]:
        key, sep, value = token.partition("=")
        if not sep:
            raise ValueError(f"Malformed PSI field: {token!r}")
        fields[key] = value
    try:
        return PSILine(
            avg10=float(fields["avg10"]),
            avg60=float(fields["avg60"]),
            avg300=float(fields["avg300"]),
            total=int(fields["total"]),
        )
    except KeyError as e:
        raise ValueError(f"PSI line missing field {e}") from e


def parse_psi(content: str) -> PressureStats:
    """Parse the content of a /proc/pressure/<resource> file."""
    lines = {}
    for raw in content.splitlines():
        raw = raw.strip()
        if not raw:
            continue
        kind = raw.split(None, 1)[0]
        lines[kind] = parse_psi_line(raw)

    if "some" not in lines:
        raise ValueError("PSI content has no 'some' line")
    return PressureStats(some=lines["some"], full=lines.get("full"))


class PressureWatcher:
    """
    Tracks whether a PSI value stays above a threshold.

    The value is the configured averaging window of the "some" line: the
    share of wall time (0-100) in which at least one task stalled on the
    resource.
    """

    def __init__(
        self,
        threshold: Optional[float] = DEFAULT_THRESHOLD,
        poll_interval: timedelta = DEFAULT_POLL_INTERVAL,
        resource: str = "cpu",
        window: str = "avg300",
        proc_root: Path = Path("/proc"),
    ):
        """
        Initialize the watcher and check that PSI is readable.

        Args:
            threshold: Pressure (0-100) above which the node counts as high;
                0 or None means the default of 25
            poll_interval: How often the controller should poll
            resource: PSI resource to watch (cpu, memory, io)
            window: Averaging window (avg10, avg60, avg300)
            proc_root: Mount point of procfs

        Raises:
            PressureUnavailableError: If the PSI file cannot be read
            ValueError: On an unknown resource or window
        """
        if resource not in PSI_RESOURCES:
            raise ValueError(f"Unknown PSI resource {resource!r}; use one of {PSI_RESOURCES}")
        if window not in PSI_WINDOWS:
            raise ValueError(f"Unknown PSI window {window!r}; use one of {PSI_WINDOWS}")

        self.threshold = float(threshold) if threshold else DEFAULT_THRESHOLD
        self.poll_interval = poll_interval
        self.resource = resource
        self.window = window
        self.path = Path(proc_root) / "pressure" / resource
        self.is_currently_high = False

        # raises PressureUnavailableError on hosts without PSI
        self.read_stats()

    def read_stats(self) -> PressureStats:
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise PressureUnavailableError(
                f"Pressure stall information not available at {self.path}: {e}"
            ) from e
        try:
            return parse_psi(content)
        except ValueError as e:
            raise PressureUnavailableError(f"Unreadable PSI data in {self.path}: {e}") from e

    def sample(self) -> float:
        return getattr(self.read_stats().some, self.window)

    def poll(self, now: Optional[datetime] = None) -> Optional[PressureEvent]:
        """
        Sample once and update the high/low state.

        Returns:
            A PressureEvent if the state changed, otherwise None
        """
        value = self.sample()
        high = value > self.threshold
        transitioned = high != self.is_currently_high
        self.is_currently_high = high

        logger = get_logger()
        logger.record_pressure_sample(transitioned)
        logger.debug(
            "pressure sample",
            resource=self.resource,
            window=self.window,
            value=value,
            threshold=self.threshold,
        )

        if not transitioned:
            return None
        event = PressureEvent(high=high, value=value, timestamp=now or datetime.now(timezone.utc))
        logger.info(
            f"{self.resource} pressure is now {'high' if high else 'low'}",
            value=value,
            threshold=self.threshold,
        )
        return event
