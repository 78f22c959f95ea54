"""
MODULE OVERVIEW:
FastAPI middleware that times every request.

WHAT IS HAPPENING HERE:
We add an `X-Process-Time-Ms` header. For the JSON routes it is the full handler time;
for a live feed it is the time until the stream's headers went out, since the body
keeps flowing long after `call_next` returns.
"""

import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from loguru import logger

class TimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()

        response = await call_next(request)

        process_time_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Process-Time-Ms"] = f"{process_time_ms:.2f}"

        # Health probes hit this constantly; keep them out of the log.
        if request.url.path not in ("/healthz", "/stats"):
            is_stream = response.headers.get("content-type", "").startswith("text/event-stream")
            logger.debug(
                f"route={request.url.path} method={request.method} status={response.status_code} "
                f"kind={'stream' if is_stream else 'json'} elapsed_ms={process_time_ms:.2f}"
            )

        return response
