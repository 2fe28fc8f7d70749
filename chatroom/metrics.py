"""In-process counters rendered as plain text at /metrics.

Counters live for the lifetime of the process; gauges that reflect stored
state (participants online) are read from the store at render time.
"""
from collections import defaultdict
from typing import Dict, Optional, Tuple

# upper bounds in ms; the last bucket is open-ended
LATENCY_BOUNDS_MS = (50, 250, 1000)

# (path, status) -> count
_http_requests_total: Dict[Tuple[str, str], int] = defaultdict(int)
_http_latency_buckets: Dict[str, int] = defaultdict(int)
_http_latency_count = 0

# participant_registered, message_posted, status_recorded, ...
_chat_events_total: Dict[str, int] = defaultdict(int)

_sweep = {
    "ticks": 0,
    "failed": 0,
    "evicted": 0,
    "last_duration_ms": 0.0,
    "last_evicted": 0,
}


def _bucket_for(latency_ms: float) -> str:
    for bound in LATENCY_BOUNDS_MS:
        if latency_ms <= bound:
            return str(bound)
    return "+Inf"


def inc_http_request(path: str, status: int) -> None:
    _http_requests_total[(path, str(status))] += 1


def observe_latency_ms(latency_ms: float) -> None:
    global _http_latency_count
    _http_latency_count += 1
    _http_latency_buckets[_bucket_for(latency_ms)] += 1


def inc_chat_event(event: str, amount: int = 1) -> None:
    _chat_events_total[event] += amount


def observe_sweep(duration_ms: float, evicted: int, failed: bool = False) -> None:
    _sweep["ticks"] += 1
    _sweep["last_duration_ms"] = round(duration_ms, 2)
    if failed:
        _sweep["failed"] += 1
        return
    _sweep["evicted"] += evicted
    _sweep["last_evicted"] = evicted


def render_metrics(participants_online: Optional[int] = None) -> str:
    lines: list[str] = []

    for (path, status), value in sorted(_http_requests_total.items()):
        lines.append(f'http_requests_total{{path="{path}",status="{status}"}} {value}')

    # cumulative histogram, as scrapers expect
    running = 0
    for le in [str(b) for b in LATENCY_BOUNDS_MS] + ["+Inf"]:
        running += _http_latency_buckets.get(le, 0)
        lines.append(f'http_request_latency_ms_bucket{{le="{le}"}} {running}')
    lines.append(f"http_request_latency_ms_count {_http_latency_count}")

    for event, value in sorted(_chat_events_total.items()):
        lines.append(f'chat_events_total{{event="{event}"}} {value}')

    lines.append(f"sweep_ticks_total {_sweep['ticks']}")
    lines.append(f"sweep_failures_total {_sweep['failed']}")
    lines.append(f"sweep_evicted_total {_sweep['evicted']}")
    lines.append(f"sweep_last_evicted {_sweep['last_evicted']}")
    lines.append(f"sweep_last_duration_ms {_sweep['last_duration_ms']}")

    if participants_online is not None:
        lines.append(f"participants_online {participants_online}")

    return "\n".join(lines) + "\n"
