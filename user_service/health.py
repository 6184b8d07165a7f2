"""Process health and metrics reporting."""

from __future__ import annotations

import os
import platform
import resource
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict

DEFAULT_MEMORY_LIMIT_BYTES = 500 * 1024 * 1024

_STATM_PATH = Path("/proc/self/statm")


@dataclass(frozen=True)
class MemoryUsage:
    rss: int
    peak_rss: int

    def to_dict(self) -> Dict[str, int]:
        return {"rss": self.rss, "peak_rss": self.peak_rss}


@dataclass(frozen=True)
class ReadinessReport:
    ready: bool
    checks: Dict[str, bool]

    def to_dict(self) -> Dict[str, object]:
        return {"status": "ready" if self.ready else "not ready", "checks": dict(self.checks)}


def _peak_rss_bytes() -> int:
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # Linux reports kilobytes, macOS reports bytes.
    return peak if sys.platform == "darwin" else peak * 1024


def read_memory_usage() -> MemoryUsage:
    """Sample resident memory of the current process."""

    peak = _peak_rss_bytes()
    try:
        fields = _STATM_PATH.read_text(encoding="ascii").split()
        rss = int(fields[1]) * os.sysconf("SC_PAGE_SIZE")
    except (OSError, IndexError, ValueError):
        rss = peak
    return MemoryUsage(rss=rss, peak_rss=peak)


class HealthReporter:
    """Read-only view over process counters.

    The reporter never touches application state; it only remembers when it
    was created so it can report uptime.
    """

    def __init__(
        self,
        *,
        memory_limit_bytes: int = DEFAULT_MEMORY_LIMIT_BYTES,
        memory_probe: Callable[[], MemoryUsage] = read_memory_usage,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._memory_limit_bytes = memory_limit_bytes
        self._memory_probe = memory_probe
        self._clock = clock
        self._started_at = clock()

    @property
    def memory_limit_bytes(self) -> int:
        return self._memory_limit_bytes

    def uptime(self) -> float:
        return self._clock() - self._started_at

    def summary(self) -> Dict[str, object]:
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": int(self.uptime()),
        }

    def liveness(self) -> Dict[str, str]:
        return {"status": "alive"}

    def readiness(self) -> ReadinessReport:
        checks = {
            "memory": self._memory_probe().rss < self._memory_limit_bytes,
            "uptime": self.uptime() > 0,
        }
        return ReadinessReport(ready=all(checks.values()), checks=checks)

    def metrics(self) -> Dict[str, object]:
        times = os.times()
        return {
            "uptime": self.uptime(),
            "memory": self._memory_probe().to_dict(),
            "cpu": {"user": times.user, "system": times.system},
            "version": platform.python_version(),
            "implementation": platform.python_implementation(),
            "platform": sys.platform,
            "arch": platform.machine(),
            "pid": os.getpid(),
        }


__all__ = [
    "DEFAULT_MEMORY_LIMIT_BYTES",
    "HealthReporter",
    "MemoryUsage",
    "ReadinessReport",
    "read_memory_usage",
]
