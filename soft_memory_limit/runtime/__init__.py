"""Runtime helpers for process-level soft memory limits."""

from .memory_checker import (
    CheckStatus,
    GuardStateError,
    LimitCheck,
    MemoryChecker,
    MemoryLimitExceeded,
    MemoryLimitParseError,
    MemoryLimitSnapshot,
    get_memory_checker,
    parse_memory_limit,
    reset_memory_checker,
)
from .limit_report import build_limit_report_payload, format_bytes
from .platform_memory import MemoryPlatform, ProcessMemoryPlatform

__all__ = [
    "CheckStatus",
    "GuardStateError",
    "LimitCheck",
    "MemoryChecker",
    "MemoryLimitExceeded",
    "MemoryLimitParseError",
    "MemoryLimitSnapshot",
    "get_memory_checker",
    "parse_memory_limit",
    "reset_memory_checker",
    "build_limit_report_payload",
    "format_bytes",
    "MemoryPlatform",
    "ProcessMemoryPlatform",
]
