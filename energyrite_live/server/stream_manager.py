"""
MODULE OVERVIEW:
The registry of open live-feed sessions.

WHAT IS HAPPENING HERE:
Sessions are fully independent of each other; this object only keeps the books.
Each session registers itself when its response starts, unregisters when it ends,
and reports every data-bearing event it sends. `/stats` reads the numbers back
together with the pool counters, which makes the "one held connection per open
stream" invariant observable from outside.
"""
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from energyrite_live.shared.models import StreamStats


class StreamManager:
    def __init__(self):
        self.sessions: set[Any] = set()
        self.total_streams_opened = 0
        self.total_events_dispatched = 0
        self.startup_time = datetime.now(timezone.utc)

    def register(self, session: Any) -> None:
        self.sessions.add(session)
        self.total_streams_opened += 1
        logger.info(f"client_id={session.client_id} protocol=sse event=connect reason=registered active={len(self.sessions)}")

    def unregister(self, session: Any) -> None:
        if session in self.sessions:
            self.sessions.discard(session)
            logger.info(f"client_id={session.client_id} protocol=sse event=disconnect reason=cleanup active={len(self.sessions)}")

    def record_dispatch(self) -> None:
        self.total_events_dispatched += 1

    def get_stats(self, db: Any = None) -> StreamStats:
        return StreamStats(
            active_streams=len(self.sessions),
            held_connections=db.held_connections if db is not None else 0,
            pool_size=db.pool_size() if db is not None else 0,
            pool_idle=db.pool_idle() if db is not None else 0,
            total_streams_opened=self.total_streams_opened,
            total_events_dispatched=self.total_events_dispatched,
            uptime_s=(datetime.now(timezone.utc) - self.startup_time).total_seconds(),
            server_time=datetime.now(timezone.utc),
        )


# Global singleton instance
manager = StreamManager()
