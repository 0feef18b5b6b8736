"""Pure helpers for building memory limit status payloads."""

from __future__ import annotations

import time
from typing import Any

from soft_memory_limit.runtime.memory_checker import MemoryLimitSnapshot


WARN_FRACTION = 0.85


def format_bytes(value: int) -> str:
    """Human-readable bytes formatter."""
    units = ["B", "KB", "MB", "GB", "TB"]
    size = float(max(value, 0))
    for unit in units:
        if size < 1024.0 or unit == units[-1]:
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return "0 B"


def _clamp_pct(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


def _pct_of(value: int, limit: int) -> float | None:
    if limit <= 0:
        return None
    return (value / limit) * 100.0


def _level_from_upper_limit(value: float, limit: float) -> str:
    if value > limit:
        return "danger"
    if value >= limit * WARN_FRACTION:
        return "warn"
    return "ok"


def build_limit_report_payload(snapshot: MemoryLimitSnapshot) -> dict[str, Any]:
    """Build a UI-agnostic payload describing usage against the limits."""
    unlimited = snapshot.hard_limit_bytes < 0

    if snapshot.signaled:
        peak_level = "danger"
    elif unlimited:
        peak_level = "ok"
    else:
        peak_level = _level_from_upper_limit(snapshot.peak_bytes, snapshot.soft_limit_bytes)

    if peak_level == "danger":
        status_class, status_label = "danger", "Soft Limit Exceeded"
    elif peak_level == "warn":
        status_class, status_label = "warn", "Approaching Soft Limit"
    else:
        status_class, status_label = "ok", "Healthy"

    if unlimited:
        hard_value = "unlimited"
        soft_value = "unlimited"
        soft_detail = f"No hard memory limit is configured; any peak usage above {snapshot.soft_limit_bytes} bytes signals."
    else:
        hard_value = format_bytes(snapshot.hard_limit_bytes)
        soft_value = f"{format_bytes(snapshot.soft_limit_bytes)} ({snapshot.soft_limit_ratio:.0%} of hard limit)"
        soft_detail = f"Signals once when peak usage rises above {snapshot.soft_limit_bytes} bytes."

    metrics: list[dict[str, Any]] = [
        {
            "title": "Peak Usage",
            "value": format_bytes(snapshot.peak_bytes),
            "detail": f"Highest resident memory observed for pid {snapshot.pid}.",
            "pct": None if unlimited else _pct_of(snapshot.peak_bytes, snapshot.soft_limit_bytes),
            "level": peak_level,
        },
        {
            "title": "Soft Limit",
            "value": soft_value,
            "detail": soft_detail,
            "pct": None,
            "level": "danger" if snapshot.signaled else "ok",
        },
        {
            "title": "Hard Limit",
            "value": hard_value,
            "detail": "Configured allocation ceiling for this process.",
            "pct": None if unlimited else _pct_of(snapshot.peak_bytes, snapshot.hard_limit_bytes),
            "level": "ok",
        },
    ]

    return {
        "status_class": status_class,
        "status_label": status_label,
        "signaled": snapshot.signaled,
        "updated_at_text": time.strftime("%H:%M:%S", time.localtime(snapshot.timestamp)),
        "metrics": [
            {
                **metric,
                "pct": None if metric["pct"] is None else _clamp_pct(metric["pct"]),
            }
            for metric in metrics
        ],
    }
