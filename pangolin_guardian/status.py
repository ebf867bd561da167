"""
Status derivation for containers.

Everything here is pure: it turns the engine's list summary ("State",
"Status") and stats payloads into display values without doing any I/O.
"""

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

UNKNOWN = "Unknown"

# "Up 20 hours", "Up 3 days". Anything else ("Up 2 minutes (healthy)",
# "Up About an hour", localised daemons) is reported as UNKNOWN.
UPTIME_PATTERN = re.compile(r"Up (\d+) (\w+)")
UNHEALTHY_MARKER = "(unhealthy)"

_BYTE_UNITS = ("Bytes", "KB", "MB", "GB")


class Health(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    STOPPED = "stopped"
    MISSING = "missing"


def parse_uptime(status: Optional[str]) -> str:
    if not status:
        return UNKNOWN
    match = UPTIME_PATTERN.fullmatch(status.strip())
    if not match:
        return UNKNOWN
    return f"{match.group(1)} {match.group(2)}"


def is_unhealthy(status: Optional[str]) -> bool:
    return bool(status) and UNHEALTHY_MARKER in status


def format_bytes(value: Optional[float]) -> str:
    """Render a byte count in the largest unit up to GB, two decimals."""
    if value is None:
        return UNKNOWN
    try:
        value = float(value)
    except (TypeError, ValueError):
        return UNKNOWN
    if math.isnan(value) or value < 0:
        return UNKNOWN
    if value == 0:
        return "0 Bytes"
    if value < 1024:
        return f"{int(value)} Bytes"
    index = 0
    while value >= 1024 and index < len(_BYTE_UNITS) - 1:
        value /= 1024
        index += 1
    return f"{value:.2f} {_BYTE_UNITS[index]}"


def cpu_percent_from_stats(stats: Dict[str, Any]) -> Optional[float]:
    """CPU usage from a one-shot stats payload (cpu_stats vs precpu_stats)."""
    try:
        cpu_stats = stats["cpu_stats"]
        precpu_stats = stats.get("precpu_stats") or {}
        cpu_delta = cpu_stats["cpu_usage"]["total_usage"] - precpu_stats.get("cpu_usage", {}).get("total_usage", 0)
        system_delta = cpu_stats.get("system_cpu_usage", 0) - precpu_stats.get("system_cpu_usage", 0)
        cpus = cpu_stats.get("online_cpus") or len(cpu_stats["cpu_usage"].get("percpu_usage") or []) or 1
    except (KeyError, TypeError, AttributeError):
        return None
    if system_delta > 0 and cpu_delta > 0:
        return round(cpu_delta / system_delta * cpus * 100.0, 2)
    return 0.0


def memory_usage_from_stats(stats: Dict[str, Any]) -> Optional[int]:
    try:
        usage = stats["memory_stats"]["usage"]
    except (KeyError, TypeError):
        return None
    return int(usage) if usage is not None else None


@dataclass(frozen=True)
class ContainerStatus:
    """Point-in-time view of one container. Recomputed on every query."""

    name: str
    exists: bool
    running: bool
    state: str = UNKNOWN
    status: str = UNKNOWN
    uptime: str = UNKNOWN
    cpu_percent: Optional[float] = None
    memory_usage: Optional[int] = None
    container_id: Optional[str] = None

    def __post_init__(self):
        if self.running and not self.exists:
            raise ValueError("a running container must exist")

    @classmethod
    def missing(cls, name: str) -> "ContainerStatus":
        return cls(name=name, exists=False, running=False, state="not found")

    @property
    def unhealthy(self) -> bool:
        return is_unhealthy(self.status)

    @property
    def health(self) -> Health:
        if not self.exists:
            return Health.MISSING
        if not self.running:
            return Health.STOPPED
        if self.unhealthy:
            return Health.DEGRADED
        return Health.HEALTHY

    @property
    def needs_restart(self) -> bool:
        return self.exists and self.health in (Health.STOPPED, Health.DEGRADED)

    @property
    def cpu_display(self) -> str:
        if self.cpu_percent is None:
            return UNKNOWN
        return f"{self.cpu_percent:.2f}%"

    @property
    def memory_display(self) -> str:
        return format_bytes(self.memory_usage)
