import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from fastapi import Request, Response

from .config import settings
from .metrics import inc_http_request, observe_latency_ms


logger = logging.getLogger("chatroom")
logger.setLevel(settings.LOG_LEVEL)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setLevel(settings.LOG_LEVEL)
    logger.addHandler(handler)


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def log_event(level: str, event: str, **fields: Any) -> None:
    """Emit one JSON line for a domain event (eviction, partial failure...)."""
    log = {"ts": iso_now(), "level": level, "event": event}
    log.update(fields)
    logger.log(logging.getLevelName(level.upper()), json.dumps(log, default=str))


async def logging_middleware(request: Request, call_next: Callable) -> Response:
    request_id = str(uuid.uuid4())
    start = time.perf_counter()

    request.state.request_id = request_id
    # the display name the client acts as; absent on anonymous calls
    caller = request.headers.get("user")
    request.state.log_extra = {}

    response: Response
    try:
        response = await call_next(request)
    except Exception:
        latency_ms = (time.perf_counter() - start) * 1000.0
        log = {
            "ts": iso_now(),
            "level": "error",
            "request_id": request_id,
            "caller": caller,
            "method": request.method,
            "path": request.url.path,
            "status": 500,
            "latency_ms": round(latency_ms, 2),
        }
        logger.error(json.dumps(log))
        raise

    latency_ms = (time.perf_counter() - start) * 1000.0
    status_code = response.status_code

    # label by route template so /messages/{message_id} stays one series
    route = request.scope.get("route")
    path = getattr(route, "path", request.url.path)
    inc_http_request(path, status_code)
    observe_latency_ms(latency_ms)

    # 4xx are client rejections
    level = "warning" if 400 <= status_code < 500 else "info"

    log = {
        "ts": iso_now(),
        "level": level,
        "request_id": request_id,
        "caller": caller,
        "method": request.method,
        "path": request.url.path,
        "status": status_code,
        "latency_ms": round(latency_ms, 2),
    }

    # handlers may attach extra fields (e.g. participant, message_id, outcome)
    if isinstance(getattr(request.state, "log_extra", None), dict):
        log.update(request.state.log_extra)

    logger.log(logging.getLevelName(level.upper()), json.dumps(log, default=str))
    return response
