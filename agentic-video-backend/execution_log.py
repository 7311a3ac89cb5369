"""
Per-job execution log.

Entries are append-only and timestamped in ISO-8601 UTC. Timestamps never go
backwards within one log, so sorting a snapshot by timestamp leaves it in
emission order.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from schemas import LogEntry

logger = logging.getLogger(__name__)


class ExecutionLog:
    """Accumulates LogEntry records for a single job."""

    def __init__(self, job_id: Optional[str] = None):
        self.job_id = job_id
        self._entries: List[LogEntry] = []
        self._last: Optional[datetime] = None
        # stages running in worker threads append too
        self._lock = threading.Lock()

    def _next_timestamp(self) -> str:
        now = datetime.now(timezone.utc)
        if self._last is not None and now < self._last:
            now = self._last
        self._last = now
        return now.isoformat(timespec="microseconds").replace("+00:00", "Z")

    def append(self, stage: str, message: str, data: Optional[Dict[str, Any]] = None) -> LogEntry:
        with self._lock:
            entry = LogEntry(
                stage=stage,
                message=message,
                timestamp=self._next_timestamp(),
                data=dict(data) if data else None,
            )
            self._entries.append(entry)

        prefix = f"[{self.job_id}] " if self.job_id else ""
        logger.info(f"{prefix}{stage}: {message}")
        return entry

    def snapshot(self) -> List[LogEntry]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
