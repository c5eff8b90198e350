"""Deferred deletion of archived originals.

Originals are kept on disk for a retention window after archival and then
removed by a periodic sweep. Records live in a small SQLite table managed
with sqlite-utils:

    scheduled_deletions(path TEXT PRIMARY KEY, delete_at REAL, scheduled TEXT)

``delete_at`` is epoch seconds. A record is removed by the sweep once due,
whether or not the file still exists.
"""

import asyncio
import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from sqlite_utils import Database

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 50
DEFAULT_SWEEP_INTERVAL_S = 24 * 60 * 60
SECONDS_PER_DAY = 24 * 60 * 60

TABLE = "scheduled_deletions"


class DeletionStore:
    """Persisted map of file path -> scheduled deletion time."""

    def __init__(self, db_path: str, clock: Callable[[], float] = None):
        """Open (or create) the deletion database.

        Args:
            db_path: SQLite file path, or ":memory:"
            clock: Returns current epoch seconds (defaults to time.time)
        """
        self.clock = clock or time.time
        if db_path == ":memory:":
            self.db = Database(memory=True)
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self.db = Database(db_path)
            self.db.conn.execute("PRAGMA journal_mode=WAL")
        self.table = self.db[TABLE]
        if not self.table.exists():
            self.table.create(
                {"path": str, "delete_at": float, "scheduled": str},
                pk="path",
            )

    def schedule(self, path: str, days: float = DEFAULT_RETENTION_DAYS,
                 now: Optional[float] = None) -> float:
        """Schedule ``path`` for deletion ``days`` from ``now``.

        Re-scheduling the same path replaces the earlier record.

        Returns:
            The scheduled deletion time (epoch seconds).
        """
        now = self.clock() if now is None else now
        abs_path = os.path.abspath(path)
        delete_at = now + days * SECONDS_PER_DAY
        self.table.insert(
            {
                "path": abs_path,
                "delete_at": delete_at,
                "scheduled": datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
            },
            pk="path",
            replace=True,
        )
        logger.info("Scheduled %s for deletion in %s days", abs_path, days)
        return delete_at

    def get(self, path: str) -> Optional[Dict]:
        rows = list(self.table.rows_where("path = ?", [os.path.abspath(path)]))
        return rows[0] if rows else None

    def all(self) -> List[Dict]:
        return list(self.table.rows_where(order_by="delete_at"))

    def sweep(self, now: Optional[float] = None) -> List[str]:
        """Remove every due file (if present) and its record.

        Returns:
            Paths whose records were removed.
        """
        now = self.clock() if now is None else now
        removed = []
        for row in list(self.table.rows_where("delete_at <= ?", [now])):
            path = row["path"]
            try:
                if os.path.exists(path):
                    os.unlink(path)
                    logger.info("Deleted original: %s", path)
            except OSError as e:
                # Keep the record so the next sweep tries again
                logger.error("Failed to delete %s: %s", path, e)
                continue
            self.table.delete(path)
            removed.append(path)
        return removed

    def close(self) -> None:
        self.db.close()


class DeletionScheduler:
    """Runs ``DeletionStore.sweep`` once immediately and then periodically."""

    def __init__(self, store: DeletionStore, interval_s: float = DEFAULT_SWEEP_INTERVAL_S,
                 sleep=asyncio.sleep):
        self.store = store
        self.interval_s = interval_s
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    def sweep_once(self) -> List[str]:
        try:
            return self.store.sweep()
        except Exception as e:
            logger.error("Deletion sweep failed: %s", e)
            return []

    async def _run(self) -> None:
        while True:
            self.sweep_once()
            await self._sleep(self.interval_s)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())
        return self._task

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
