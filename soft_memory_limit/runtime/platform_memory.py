"""Process memory readings consumed by the memory checker."""

from __future__ import annotations

import logging
import os
import sys
import threading
from typing import Protocol

import psutil

try:
    import resource
except ImportError:  # Windows
    resource = None


LOGGER = logging.getLogger(__name__)

HARD_LIMIT_ENV = "SOFT_MEMORY_LIMIT_HARD_LIMIT"
UNLIMITED = "-1"


class MemoryPlatform(Protocol):
    """Read-only source of the configured hard limit and peak usage."""

    def configured_memory_limit(self) -> str:
        ...

    def peak_memory_usage(self) -> int:
        ...


class ProcessMemoryPlatform:
    """Default platform backed by the environment, rlimits and psutil."""

    def __init__(self, env_var: str = HARD_LIMIT_ENV):
        self.env_var = env_var
        self._process = psutil.Process(os.getpid())
        self._peak_lock = threading.Lock()
        self._peak_bytes = 0

    def configured_memory_limit(self) -> str:
        """Raw limit string: env override first, then RLIMIT_AS."""
        configured = os.getenv(self.env_var)
        if configured is not None:
            return configured

        if resource is None:
            return UNLIMITED

        soft, _hard = resource.getrlimit(resource.RLIMIT_AS)
        if soft == resource.RLIM_INFINITY or soft < 0:
            return UNLIMITED
        return str(int(soft))

    @staticmethod
    def _peak_rss_bytes() -> int:
        """Best-effort process peak RSS in bytes (POSIX ru_maxrss)."""
        if resource is None:
            return 0
        try:
            usage = resource.getrusage(resource.RUSAGE_SELF)
        except (OSError, ValueError) as exc:
            LOGGER.debug("getrusage unavailable: %s", exc)
            return 0
        peak = int(usage.ru_maxrss)
        if peak <= 0:
            return 0
        # Linux/BSD report KB, macOS reports bytes.
        if sys.platform == "darwin":
            return peak
        return peak * 1024

    def peak_memory_usage(self) -> int:
        """Largest resident size seen so far; never decreases."""
        current_rss = int(self._process.memory_info().rss)
        observed = max(self._peak_rss_bytes(), current_rss)
        with self._peak_lock:
            self._peak_bytes = max(self._peak_bytes, observed)
            return self._peak_bytes
