"""Process-wide soft memory limit checks."""

from __future__ import annotations

import enum
import json
import logging
import os
import re
import threading
import time
from dataclasses import asdict, dataclass
from typing import Any, Mapping

from soft_memory_limit.runtime.platform_memory import MemoryPlatform, ProcessMemoryPlatform


LOGGER = logging.getLogger(__name__)

DEFAULT_SOFT_LIMIT_RATIO = 0.8
SOFT_LIMIT_RATIO_ENV = "SOFT_MEMORY_LIMIT_RATIO"

_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")
_SHORTHAND_MULTIPLIERS = {
    "k": 1024,
    "m": 1024 * 1024,
    "g": 1024 * 1024 * 1024,
}


class MemoryLimitParseError(ValueError):
    """Raised when a memory limit string is not a valid byte count."""


class GuardStateError(TypeError):
    """Raised on attempts to copy or serialize a memory checker."""


class CheckStatus(enum.Enum):
    OK = "ok"
    EXCEEDED = "exceeded"
    ALREADY_SIGNALED = "already_signaled"


@dataclass(frozen=True)
class LimitCheck:
    """Outcome of a single peak usage check."""

    status: CheckStatus
    peak_bytes: int
    soft_limit_bytes: int
    hard_limit_bytes: int

    @property
    def exceeded(self) -> bool:
        return self.status is CheckStatus.EXCEEDED


@dataclass(frozen=True)
class MemoryLimitSnapshot:
    """Point-in-time limits and usage used for logs and status payloads."""

    timestamp: float
    pid: int
    hard_limit_bytes: int
    soft_limit_bytes: int
    peak_bytes: int
    soft_limit_ratio: float
    signaled: bool


class MemoryLimitExceeded(RuntimeError):
    """Raised once when peak memory usage crosses the soft limit."""

    def __init__(self, message: str, check: LimitCheck):
        super().__init__(message)
        self.check = check

    @property
    def peak_bytes(self) -> int:
        return self.check.peak_bytes

    @property
    def soft_limit_bytes(self) -> int:
        return self.check.soft_limit_bytes

    @property
    def hard_limit_bytes(self) -> int:
        return self.check.hard_limit_bytes


def _is_integer(text: str) -> bool:
    return bool(_INTEGER_PATTERN.fullmatch(text))


def parse_memory_limit(memory_limit: str) -> int:
    """Parse a byte count with optional K/M/G shorthand (512K, 64M, 1G).

    Plain integers are returned as-is, including ``-1`` for "unlimited".
    Shorthand letters are case-insensitive powers of 1024.

    Raises:
        MemoryLimitParseError: empty input, non-numeric numeral or unknown
            shorthand letter.
    """
    memory_limit = str(memory_limit).strip()

    if _is_integer(memory_limit):
        return int(memory_limit)

    if not memory_limit:
        raise MemoryLimitParseError("Memory limit string must not be empty.")

    numeral, shorthand = memory_limit[:-1], memory_limit[-1]
    if not _is_integer(numeral):
        raise MemoryLimitParseError(f"Memory limit is non-numerical: {memory_limit!r}")

    multiplier = _SHORTHAND_MULTIPLIERS.get(shorthand.lower())
    if multiplier is None:
        raise MemoryLimitParseError(f"Unknown byte shorthand: {shorthand!r}")

    return int(numeral) * multiplier


class MemoryChecker:
    """Soft memory limit guard that signals a violation at most once."""

    parse_memory_limit = staticmethod(parse_memory_limit)

    def __init__(
        self,
        platform: MemoryPlatform | None = None,
        config: Mapping[str, Any] | None = None,
    ):
        self._lock = threading.RLock()
        self._platform = platform if platform is not None else ProcessMemoryPlatform()
        self._soft_limit_ratio = DEFAULT_SOFT_LIMIT_RATIO
        self._signaled = False
        self.update_config(config or {})

    def update_config(self, config: Mapping[str, Any]) -> None:
        """Refresh the ratio from config + environment overrides."""
        ratio = os.getenv(
            SOFT_LIMIT_RATIO_ENV,
            config.get("soft_limit_ratio", DEFAULT_SOFT_LIMIT_RATIO),
        )
        self.set_soft_limit_ratio(float(ratio))

    @property
    def platform(self) -> MemoryPlatform:
        return self._platform

    @property
    def soft_limit_ratio(self) -> float:
        with self._lock:
            return self._soft_limit_ratio

    @property
    def signaled(self) -> bool:
        with self._lock:
            return self._signaled

    def set_soft_limit_ratio(self, ratio: float) -> None:
        """Set the fraction of the hard limit used as the soft limit."""
        with self._lock:
            self._soft_limit_ratio = float(ratio)
        LOGGER.debug("memory_checker soft limit ratio set to %s", ratio)

    def get_hard_limit(self) -> int:
        """Max number of bytes the process may allocate; -1 means unlimited."""
        return parse_memory_limit(self._platform.configured_memory_limit())

    def get_soft_limit(self) -> int:
        return self._soft_limit_for(self.get_hard_limit())

    def _soft_limit_for(self, hard_limit: int) -> int:
        with self._lock:
            return int(hard_limit * self._soft_limit_ratio)

    def evaluate_peak_memory_usage(self) -> LimitCheck:
        """Compare peak usage with the soft limit without raising.

        The first over-limit evaluation returns ``EXCEEDED`` and marks the
        checker as signaled; every later one returns ``ALREADY_SIGNALED``.
        """
        with self._lock:
            hard_limit = self.get_hard_limit()
            soft_limit = self._soft_limit_for(hard_limit)
            peak = int(self._platform.peak_memory_usage())

            if self._signaled:
                status = CheckStatus.ALREADY_SIGNALED
            elif peak <= soft_limit:
                status = CheckStatus.OK
            else:
                self._signaled = True
                status = CheckStatus.EXCEEDED

        check = LimitCheck(
            status=status,
            peak_bytes=peak,
            soft_limit_bytes=soft_limit,
            hard_limit_bytes=hard_limit,
        )
        if check.exceeded:
            self._log_event("exceeded", check)
        return check

    def check_peak_memory_usage(self) -> None:
        """Raise MemoryLimitExceeded if peak usage is over the soft limit.

        Only raises once per checker; later calls are no-ops.
        """
        check = self.evaluate_peak_memory_usage()
        if check.exceeded:
            raise MemoryLimitExceeded(
                f"Peak memory usage {check.peak_bytes} bytes exceeds the soft limit "
                f"of {check.soft_limit_bytes} bytes (hard limit {check.hard_limit_bytes} bytes).",
                check,
            )

    def snapshot(self) -> MemoryLimitSnapshot:
        """Capture current limits, peak usage and signal state."""
        with self._lock:
            hard_limit = self.get_hard_limit()
            return MemoryLimitSnapshot(
                timestamp=time.time(),
                pid=os.getpid(),
                hard_limit_bytes=hard_limit,
                soft_limit_bytes=self._soft_limit_for(hard_limit),
                peak_bytes=int(self._platform.peak_memory_usage()),
                soft_limit_ratio=self._soft_limit_ratio,
                signaled=self._signaled,
            )

    @staticmethod
    def format_snapshot(snapshot: MemoryLimitSnapshot) -> str:
        """Human-readable memory limit summary for logs."""
        if snapshot.hard_limit_bytes < 0:
            limits = "Hard limit: unlimited"
        else:
            hard_mb = snapshot.hard_limit_bytes / (1024 ** 2)
            soft_mb = snapshot.soft_limit_bytes / (1024 ** 2)
            limits = (
                f"Hard limit: {hard_mb:.1f} MB | "
                f"Soft limit: {soft_mb:.1f} MB ({snapshot.soft_limit_ratio:.0%})"
            )
        peak_mb = snapshot.peak_bytes / (1024 ** 2)
        return (
            f"Peak usage: {peak_mb:.1f} MB | {limits} | "
            f"Signaled: {'yes' if snapshot.signaled else 'no'}"
        )

    def _log_event(self, event: str, check: LimitCheck) -> None:
        payload = {
            "event": event,
            "pid": os.getpid(),
            "timestamp": time.time(),
            "soft_limit_ratio": self.soft_limit_ratio,
        }
        payload.update(asdict(check))
        payload["status"] = check.status.value
        LOGGER.warning("memory_checker %s", json.dumps(payload, sort_keys=True))

    def __copy__(self):
        raise GuardStateError("MemoryChecker holds process-wide state and cannot be copied.")

    def __deepcopy__(self, memo):
        raise GuardStateError("MemoryChecker holds process-wide state and cannot be copied.")

    def __reduce_ex__(self, protocol):
        raise GuardStateError("MemoryChecker holds process-wide state and cannot be serialized.")

    def __setstate__(self, state):
        raise GuardStateError("MemoryChecker cannot be restored from serialized state.")


_CHECKER: MemoryChecker | None = None
_CHECKER_LOCK = threading.Lock()


def get_memory_checker(config: Mapping[str, Any] | None = None) -> MemoryChecker:
    """Get singleton memory checker, refreshing config when one is given."""
    global _CHECKER
    with _CHECKER_LOCK:
        if _CHECKER is None:
            _CHECKER = MemoryChecker(config=config or {})
        elif config is not None:
            _CHECKER.update_config(config)
        return _CHECKER


def reset_memory_checker() -> None:
    """Drop the singleton so the next access builds a fresh checker."""
    global _CHECKER
    with _CHECKER_LOCK:
        _CHECKER = None
