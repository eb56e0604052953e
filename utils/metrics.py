"""In-process counters and latency summaries, exported through /health."""

import threading
from typing import Any

_LOCK = threading.Lock()
_COUNTERS: dict[tuple, float] = {}
_LATENCIES: dict[tuple, dict[str, float]] = {}


def _key(name: str, labels: dict[str, Any]) -> tuple:
    return (name, tuple(sorted((k, str(v)) for k, v in labels.items())))


def _render(key: tuple) -> str:
    name, labels = key
    if not labels:
        return name
    inner = ",".join(f"{k}={v}" for k, v in labels)
    return f"{name}{{{inner}}}"


def incr(name: str, value: float = 1.0, **labels: Any) -> None:
    key = _key(name, labels)
    with _LOCK:
        _COUNTERS[key] = _COUNTERS.get(key, 0.0) + value


def observe_ms(name: str, duration_ms: float, **labels: Any) -> None:
    key = _key(name, labels)
    with _LOCK:
        state = _LATENCIES.setdefault(key, {"count": 0.0, "sum": 0.0, "max": 0.0})
        state["count"] += 1
        state["sum"] += float(duration_ms)
        state["max"] = max(state["max"], float(duration_ms))


def get_counter(name: str, **labels: Any) -> float:
    with _LOCK:
        return _COUNTERS.get(_key(name, labels), 0.0)


def snapshot() -> dict:
    with _LOCK:
        return {
            "counters": {_render(k): v for k, v in sorted(_COUNTERS.items())},
            "latency_ms": {_render(k): dict(v) for k, v in sorted(_LATENCIES.items())},
        }


def reset() -> None:
    with _LOCK:
        _COUNTERS.clear()
        _LATENCIES.clear()
