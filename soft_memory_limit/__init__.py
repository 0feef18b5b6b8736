"""Soft memory limit guard."""

from .runtime import (
    GuardStateError,
    MemoryChecker,
    MemoryLimitExceeded,
    MemoryLimitParseError,
    get_memory_checker,
    parse_memory_limit,
)

__all__ = [
    "GuardStateError",
    "MemoryChecker",
    "MemoryLimitExceeded",
    "MemoryLimitParseError",
    "get_memory_checker",
    "parse_memory_limit",
]
