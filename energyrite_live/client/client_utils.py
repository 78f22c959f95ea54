import asyncio
import random
from datetime import datetime, timezone
from typing import Awaitable, Callable

import httpx
from loguru import logger


def make_client_stats() -> dict:
    """
    Returns a fresh stats dictionary with zeroed counters.
    Keys: events_received, heartbeats, errors, reconnect_count,
          bytes_received, last_event_at, connected_at.
    """
    return {
        "events_received": 0,
        "heartbeats": 0,
        "errors": 0,
        "reconnect_count": 0,
        "bytes_received": 0,
        "last_event_at": None,
        "connected_at": datetime.now(timezone.utc).isoformat()
    }


async def with_reconnect(
    connect_fn: Callable[[], Awaitable[None]],
    stats: dict,
    duration_s: float,
    base_delay_s: float = 1.0,
    max_delay_s: float = 32.0,
    client_id: str = "unknown",
) -> None:
    """
    Runs `connect_fn` until `duration_s` elapses, reconnecting with exponential
    backoff plus up to 10% jitter whenever the stream drops.
    """
    loop = asyncio.get_running_loop()
    attempt = 0
    start_time = loop.time()

    while True:
        elapsed = loop.time() - start_time
        if elapsed >= duration_s:
            break

        try:
            remaining = duration_s - elapsed
            await asyncio.wait_for(connect_fn(), timeout=remaining)
            attempt = 0
        except asyncio.TimeoutError:
            # Reached max duration normally
            break
        except (ConnectionError, OSError, httpx.HTTPError) as e:
            attempt += 1
            delay = min(base_delay_s * (2 ** attempt), max_delay_s)
            delay += random.uniform(0, delay * 0.1)
            stats["reconnect_count"] += 1
            logger.warning(
                f"client_id={client_id} protocol=sse event=reconnect attempt={attempt} "
                f"delay={delay:.2f}s reason='{e}'"
            )
            remaining = duration_s - (loop.time() - start_time)
            if remaining > 0:
                try:
                    await asyncio.wait_for(asyncio.sleep(delay), timeout=remaining)
                except asyncio.TimeoutError:
                    break
