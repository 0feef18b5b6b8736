import time

from soft_memory_limit.runtime.limit_report import build_limit_report_payload, format_bytes
from soft_memory_limit.runtime.memory_checker import MemoryLimitSnapshot

TEN_MB = 10 * 1024 * 1024


def _snapshot(**overrides):
    data = {
        "timestamp": time.time(),
        "pid": 1234,
        "hard_limit_bytes": TEN_MB,
        "soft_limit_bytes": 8 * 1024 * 1024,
        "peak_bytes": 1024 * 1024,
        "soft_limit_ratio": 0.8,
        "signaled": False,
    }
    data.update(overrides)
    return MemoryLimitSnapshot(**data)


def _metric(payload, title):
    for metric in payload["metrics"]:
        if metric["title"] == title:
            return metric
    raise AssertionError(f"Missing metric '{title}'")


def test_format_bytes():
    assert format_bytes(0) == "0.0 B"
    assert format_bytes(1536) == "1.5 KB"
    assert format_bytes(TEN_MB) == "10.0 MB"
    assert format_bytes(-5) == "0.0 B"


def test_limit_report_healthy_usage():
    payload = build_limit_report_payload(_snapshot())

    assert payload["status_class"] == "ok"
    peak = _metric(payload, "Peak Usage")
    assert peak["value"] == "1.0 MB"
    assert peak["pct"] == 12.5
    assert _metric(payload, "Soft Limit")["value"] == "8.0 MB (80% of hard limit)"


def test_limit_report_warns_when_approaching_soft_limit():
    payload = build_limit_report_payload(_snapshot(peak_bytes=7 * 1024 * 1024))

    assert payload["status_class"] == "warn"
    assert _metric(payload, "Peak Usage")["level"] == "warn"


def test_limit_report_signaled_is_danger_and_clamps_pct():
    payload = build_limit_report_payload(_snapshot(peak_bytes=3 * TEN_MB, signaled=True))

    assert payload["status_class"] == "danger"
    assert payload["signaled"] is True
    assert _metric(payload, "Peak Usage")["pct"] == 100.0
    assert _metric(payload, "Soft Limit")["level"] == "danger"


def test_limit_report_unlimited_hard_limit():
    payload = build_limit_report_payload(
        _snapshot(hard_limit_bytes=-1, soft_limit_bytes=0, peak_bytes=TEN_MB)
    )

    assert payload["status_class"] == "ok"
    assert _metric(payload, "Hard Limit")["value"] == "unlimited"
    assert _metric(payload, "Peak Usage")["pct"] is None


def test_limit_report_peak_at_soft_limit_is_not_danger():
    payload = build_limit_report_payload(_snapshot(peak_bytes=8 * 1024 * 1024))

    assert payload["status_class"] == "warn"
    assert _metric(payload, "Peak Usage")["level"] == "warn"


def test_limit_report_peak_just_over_soft_limit_is_danger():
    payload = build_limit_report_payload(_snapshot(peak_bytes=8 * 1024 * 1024 + 1))

    assert payload["status_class"] == "danger"


def test_limit_report_unlimited_signaled_is_danger():
    payload = build_limit_report_payload(
        _snapshot(hard_limit_bytes=-1, soft_limit_bytes=0, peak_bytes=4096, signaled=True)
    )

    assert payload["status_class"] == "danger"
    assert _metric(payload, "Soft Limit")["value"] == "unlimited"
