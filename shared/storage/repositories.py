"""
Repositories (SQL-only)
=======================
- No indexing logic here; pure CRUD, state transitions and counters.
- Queue transitions that move a profile counter update both in one transaction.
"""

import asyncio
import json
import sqlite3
import time
import uuid
from typing import Any

from shared.models.profile import IndexingProfile, RelationshipWatcher
from shared.models.queue import IndexLogEntry, QueueAction, QueueItem, QueueOrigin, QueueStatus

_OPEN_STATUSES = (QueueStatus.PENDING.value, QueueStatus.PROCESSING.value)
SUPERSEDED = "superseded by a newer change"


def _now(now: float | None) -> float:
    return time.time() if now is None else now


class _Repo:
    def __init__(self, conn: sqlite3.Connection, lock: asyncio.Lock):
        self.conn = conn
        self._lock = lock

    async def _run(self, fn):
        async with self._lock:
            return await asyncio.to_thread(fn)

    def _transaction(self, fn):
        """Run ``fn`` inside BEGIN IMMEDIATE so the write lock is held from the first read."""
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            result = fn()
        except BaseException:
            self.conn.execute("ROLLBACK")
            raise
        self.conn.execute("COMMIT")
        return result


##########################################
############### PROFILES #################
##########################################

class ProfileRepo(_Repo):
    _JSON_COLUMNS = ("fields", "metadata_fields", "filters", "relationships", "eager_load_map", "options")

    @staticmethod
    def _to_model(row: sqlite3.Row) -> IndexingProfile:
        data = dict(row)
        for col in ProfileRepo._JSON_COLUMNS:
            data[col] = json.loads(data[col])
        data["enabled"] = bool(data["enabled"])
        data.pop("created_at", None)
        data.pop("updated_at", None)
        return IndexingProfile.model_validate(data)

    async def save(self, profile: IndexingProfile) -> IndexingProfile:
        """Create or overwrite the profile of a record type. Counters of an existing profile are kept."""
        dumped = profile.model_dump(mode="json")
        values = [json.dumps(dumped[col]) for col in self._JSON_COLUMNS]
        sql = """
            INSERT INTO indexing_profiles (
              record_type, collection_name, driver, enabled,
              fields, metadata_fields, filters, relationships, eager_load_map, options,
              max_relationship_depth, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(record_type) DO UPDATE SET
              collection_name=excluded.collection_name,
              driver=excluded.driver,
              enabled=excluded.enabled,
              fields=excluded.fields,
              metadata_fields=excluded.metadata_fields,
              filters=excluded.filters,
              relationships=excluded.relationships,
              eager_load_map=excluded.eager_load_map,
              options=excluded.options,
              max_relationship_depth=excluded.max_relationship_depth,
              updated_at=excluded.updated_at
        """

        def _save() -> IndexingProfile:
            ts = time.time()
            self.conn.execute(sql, (
                profile.record_type, profile.collection_name, profile.driver, int(profile.enabled),
                *values, profile.max_relationship_depth, ts, ts,
            ))
            row = self.conn.execute(
                "SELECT * FROM indexing_profiles WHERE record_type=?", (profile.record_type,)
            ).fetchone()
            return self._to_model(row)

        return await self._run(_save)

    async def get(self, profile_id: int) -> IndexingProfile | None:
        def _query():
            row = self.conn.execute("SELECT * FROM indexing_profiles WHERE id=?", (profile_id,)).fetchone()
            return self._to_model(row) if row else None

        return await self._run(_query)

    async def get_by_type(self, record_type: str) -> IndexingProfile | None:
        def _query():
            row = self.conn.execute(
                "SELECT * FROM indexing_profiles WHERE record_type=?", (record_type,)
            ).fetchone()
            return self._to_model(row) if row else None

        return await self._run(_query)

    async def list_profiles(self, enabled_only: bool = False) -> list[IndexingProfile]:
        sql = "SELECT * FROM indexing_profiles"
        if enabled_only:
            sql += " WHERE enabled=1"
        sql += " ORDER BY id"

        def _query():
            return [self._to_model(row) for row in self.conn.execute(sql).fetchall()]

        return await self._run(_query)

    async def set_enabled(self, record_type: str, enabled: bool) -> bool:
        def _run():
            cur = self.conn.execute(
                "UPDATE indexing_profiles SET enabled=?, updated_at=? WHERE record_type=?",
                (int(enabled), time.time(), record_type),
            )
            return cur.rowcount == 1

        return await self._run(_run)

    async def record_outcome(self, profile_id: int, indexed: int = 0, failed: int = 0, now: float | None = None) -> None:
        """Counter update for work done outside the queue (inline dispatch, synchronous indexing)."""
        def _run():
            ts = _now(now)
            self.conn.execute(
                """
                UPDATE indexing_profiles SET
                  indexed_count = indexed_count + ?,
                  failed_count  = failed_count + ?,
                  last_indexed_at = CASE WHEN ? > 0 THEN ? ELSE last_indexed_at END
                WHERE id=?
                """,
                (indexed, failed, indexed, ts, profile_id),
            )

        await self._run(_run)


##########################################
############### WATCHERS #################
##########################################

class WatcherRepo(_Repo):
    @staticmethod
    def _to_model(row: sqlite3.Row) -> RelationshipWatcher:
        data = dict(row)
        data["watch_fields"] = json.loads(data["watch_fields"])
        data["enabled"] = bool(data["enabled"])
        data.pop("created_at", None)
        data.pop("updated_at", None)
        return RelationshipWatcher.model_validate(data)

    async def replace_for_profile(self, profile_id: int, watchers: list[RelationshipWatcher]) -> list[RelationshipWatcher]:
        """Overwrite the watcher set of a profile with a freshly generated one."""
        sql = """
            INSERT INTO relationship_watchers (
              profile_id, parent_type, related_type, relationship_name, kind, path, depth,
              watch_fields, on_change_action, enabled, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """

        def _replace():
            ts = time.time()
            self.conn.execute("DELETE FROM relationship_watchers WHERE profile_id=?", (profile_id,))
            for w in watchers:
                self.conn.execute(sql, (
                    profile_id, w.parent_type, w.related_type, w.relationship_name, w.kind.value,
                    w.path, w.depth, json.dumps(w.watch_fields), w.on_change_action.value,
                    int(w.enabled), ts, ts,
                ))
            rows = self.conn.execute(
                "SELECT * FROM relationship_watchers WHERE profile_id=? ORDER BY id", (profile_id,)
            ).fetchall()
            return [self._to_model(row) for row in rows]

        return await self._run(lambda: self._transaction(_replace))

    async def list_for_profile(self, profile_id: int, enabled_only: bool = False) -> list[RelationshipWatcher]:
        sql = "SELECT * FROM relationship_watchers WHERE profile_id=?"
        if enabled_only:
            sql += " AND enabled=1"
        sql += " ORDER BY id"

        def _query():
            return [self._to_model(row) for row in self.conn.execute(sql, (profile_id,)).fetchall()]

        return await self._run(_query)

    async def set_enabled_for_profile(self, profile_id: int, enabled: bool) -> int:
        def _run():
            cur = self.conn.execute(
                "UPDATE relationship_watchers SET enabled=?, updated_at=? WHERE profile_id=?",
                (int(enabled), time.time(), profile_id),
            )
            return cur.rowcount

        return await self._run(_run)


##########################################
################# QUEUE ##################
##########################################

class QueueRepo(_Repo):
    @staticmethod
    def _to_model(row: sqlite3.Row) -> QueueItem:
        data = dict(row)
        data["rerun_requested"] = bool(data["rerun_requested"])
        return QueueItem.model_validate(data)

    def _fetch(self, item_id: int) -> QueueItem | None:
        row = self.conn.execute("SELECT * FROM queue_items WHERE id=?", (item_id,)).fetchone()
        return self._to_model(row) if row else None

    def _adjust_counters(self, profile_id: int, indexed: int = 0, pending: int = 0, failed: int = 0, indexed_at: float | None = None) -> None:
        self.conn.execute(
            """
            UPDATE indexing_profiles SET
              indexed_count = indexed_count + ?,
              pending_count = MAX(pending_count + ?, 0),
              failed_count  = failed_count + ?,
              last_indexed_at = COALESCE(?, last_indexed_at)
            WHERE id=?
            """,
            (indexed, pending, failed, indexed_at, profile_id),
        )

    async def enqueue(
        self,
        profile_id: int,
        record_type: str,
        record_id: str,
        action: QueueAction,
        origin: QueueOrigin,
        related_path: str | None,
        debounce_seconds: float,
        now: float | None = None,
    ) -> tuple[QueueItem | None, bool]:
        """Insert a pending item unless an open item already covers the change.

        Returns:
            (item, created): ``(None, False)`` when a pending item created inside the
            debounce window suppresses the change. An older pending item is closed as
            superseded and a new item is returned with ``created=True``. A processing
            item is flagged for a rerun and returned with ``created=False``.
        """
        record_id = str(record_id)

        def _enqueue():
            ts = _now(now)
            row = self.conn.execute(
                """
                SELECT * FROM queue_items
                WHERE profile_id=? AND record_type=? AND record_id=? AND action=?
                  AND status IN (?, ?)
                """,
                (profile_id, record_type, record_id, action.value, *_OPEN_STATUSES),
            ).fetchone()

            pending_delta = 1
            if row is not None:
                existing = self._to_model(row)
                if existing.status == QueueStatus.PROCESSING:
                    self.conn.execute(
                        "UPDATE queue_items SET rerun_requested=1, updated_at=? WHERE id=?", (ts, existing.id)
                    )
                    return self._fetch(existing.id), False

                if existing.created_at >= ts - debounce_seconds:
                    return None, False

                # outside the window the old item is closed as superseded; the new one takes over its pending slot
                self.conn.execute(
                    "UPDATE queue_items SET status=?, last_error=?, updated_at=?, processed_at=? WHERE id=?",
                    (QueueStatus.COMPLETED.value, SUPERSEDED, ts, ts, existing.id),
                )
                pending_delta = 0

            cur = self.conn.execute(
                """
                INSERT INTO queue_items (
                  profile_id, record_type, record_id, action, related_path, origin,
                  status, attempts, available_at, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?)
                """,
                (profile_id, record_type, record_id, action.value, related_path, origin.value,
                 QueueStatus.PENDING.value, ts, ts, ts),
            )
            if pending_delta:
                self._adjust_counters(profile_id, pending=pending_delta)
            return self._fetch(cur.lastrowid), True

        return await self._run(lambda: self._transaction(_enqueue))

    async def claim(self, item_id: int, now: float | None = None) -> QueueItem | None:
        """Atomically move one pending item to processing. None if someone else got it first."""
        def _claim():
            ts = _now(now)
            cur = self.conn.execute(
                """
                UPDATE queue_items SET status=?, attempts=attempts+1, claim_token=?, updated_at=?
                WHERE id=? AND status=?
                """,
                (QueueStatus.PROCESSING.value, uuid.uuid4().hex, ts, item_id, QueueStatus.PENDING.value),
            )
            return self._fetch(item_id) if cur.rowcount == 1 else None

        return await self._run(_claim)

    async def claim_next(self, now: float | None = None) -> QueueItem | None:
        """Claim the oldest pending item whose retry delay has passed."""
        def _claim_next():
            ts = _now(now)
            # compare-and-swap; a lost race against another process retries with the next candidate
            for _ in range(10):
                row = self.conn.execute(
                    "SELECT id FROM queue_items WHERE status=? AND available_at<=? ORDER BY id LIMIT 1",
                    (QueueStatus.PENDING.value, ts),
                ).fetchone()
                if row is None:
                    return None
                cur = self.conn.execute(
                    """
                    UPDATE queue_items SET status=?, attempts=attempts+1, claim_token=?, updated_at=?
                    WHERE id=? AND status=?
                    """,
                    (QueueStatus.PROCESSING.value, uuid.uuid4().hex, ts, row["id"], QueueStatus.PENDING.value),
                )
                if cur.rowcount == 1:
                    return self._fetch(row["id"])
            return None

        return await self._run(_claim_next)

    async def mark_completed(self, item: QueueItem, indexed: bool, now: float | None = None) -> QueueItem | None:
        """Finish a processing item.

        An item flagged for a rerun goes back to pending (fresh attempt budget) and
        keeps its pending count; otherwise it completes and leaves the pending count.
        Returns None if the item is not processing under this claim.
        """
        def _complete():
            ts = _now(now)
            row = self.conn.execute(
                "SELECT rerun_requested FROM queue_items WHERE id=? AND status=? AND claim_token=?",
                (item.id, QueueStatus.PROCESSING.value, item.claim_token),
            ).fetchone()
            if row is None:
                return None
            if row["rerun_requested"]:
                self.conn.execute(
                    """
                    UPDATE queue_items SET status=?, rerun_requested=0, attempts=0, claim_token=NULL, last_error=NULL,
                      available_at=?, updated_at=?, processed_at=?
                    WHERE id=?
                    """,
                    (QueueStatus.PENDING.value, ts, ts, ts, item.id),
                )
                if indexed:
                    self._adjust_counters(item.profile_id, indexed=1, indexed_at=ts)
            else:
                self.conn.execute(
                    "UPDATE queue_items SET status=?, last_error=NULL, updated_at=?, processed_at=? WHERE id=?",
                    (QueueStatus.COMPLETED.value, ts, ts, item.id),
                )
                self._adjust_counters(
                    item.profile_id, indexed=1 if indexed else 0, pending=-1, indexed_at=ts if indexed else None
                )
            return self._fetch(item.id)

        return await self._run(lambda: self._transaction(_complete))

    async def mark_retry(self, item: QueueItem, error: str, available_at: float, now: float | None = None) -> QueueItem | None:
        def _retry():
            ts = _now(now)
            cur = self.conn.execute(
                """
                UPDATE queue_items SET status=?, last_error=?, available_at=?, claim_token=NULL, updated_at=?
                WHERE id=? AND status=? AND claim_token=?
                """,
                (QueueStatus.PENDING.value, error, available_at, ts, item.id, QueueStatus.PROCESSING.value, item.claim_token),
            )
            return self._fetch(item.id) if cur.rowcount == 1 else None

        return await self._run(_retry)

    async def mark_failed(self, item: QueueItem, error: str, now: float | None = None) -> QueueItem | None:
        """Terminal failure. Counters move exactly once: only the processing → failed transition touches them."""
        def _fail():
            ts = _now(now)
            cur = self.conn.execute(
                """
                UPDATE queue_items SET status=?, last_error=?, rerun_requested=0, updated_at=?, processed_at=?
                WHERE id=? AND status=? AND claim_token=?
                """,
                (QueueStatus.FAILED.value, error, ts, ts, item.id, QueueStatus.PROCESSING.value, item.claim_token),
            )
            if cur.rowcount != 1:
                return None
            self._adjust_counters(item.profile_id, pending=-1, failed=1)
            return self._fetch(item.id)

        return await self._run(lambda: self._transaction(_fail))

    async def release_stale(self, older_than: float, now: float | None = None) -> int:
        """Return items stuck in processing (e.g. after a worker crash) to pending.

        The release voids the current claim; a worker still holding the item
        can no longer complete, retry or fail it.
        """
        def _release():
            ts = _now(now)
            cur = self.conn.execute(
                "UPDATE queue_items SET status=?, claim_token=NULL, available_at=?, updated_at=? WHERE status=? AND updated_at<?",
                (QueueStatus.PENDING.value, ts, ts, QueueStatus.PROCESSING.value, older_than),
            )
            return cur.rowcount

        return await self._run(_release)

    async def get(self, item_id: int) -> QueueItem | None:
        return await self._run(lambda: self._fetch(item_id))

    async def list_items(self, status: QueueStatus | None = None, record_type: str | None = None, record_id: str | None = None, limit: int = 100) -> list[QueueItem]:
        clauses, params = [], []
        if status is not None:
            clauses.append("status=?")
            params.append(status.value)
        if record_type is not None:
            clauses.append("record_type=?")
            params.append(record_type)
        if record_id is not None:
            clauses.append("record_id=?")
            params.append(str(record_id))
        sql = "SELECT * FROM queue_items"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY id LIMIT ?"
        params.append(limit)

        def _query():
            return [self._to_model(row) for row in self.conn.execute(sql, params).fetchall()]

        return await self._run(_query)

    async def status_counts(self, profile_id: int | None = None) -> dict[str, int]:
        sql = "SELECT status, COUNT(*) AS n FROM queue_items"
        params: list[Any] = []
        if profile_id is not None:
            sql += " WHERE profile_id=?"
            params.append(profile_id)
        sql += " GROUP BY status"

        def _query():
            counts = {status.value: 0 for status in QueueStatus}
            for row in self.conn.execute(sql, params).fetchall():
                counts[row["status"]] = row["n"]
            return counts

        return await self._run(_query)


##########################################
################ AUDIT LOG ###############
##########################################

class IndexLogRepo(_Repo):
    @staticmethod
    def _to_model(row: sqlite3.Row) -> IndexLogEntry:
        data = dict(row)
        data["metadata"] = json.loads(data["metadata"])
        return IndexLogEntry.model_validate(data)

    async def add(self, entry: IndexLogEntry) -> IndexLogEntry:
        sql = """
            INSERT INTO index_logs (
              profile_id, record_type, record_id, action, records_processed, chunks_created,
              embeddings_generated, duration_seconds, status, error_message, metadata, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """

        def _add():
            created_at = entry.created_at or time.time()
            cur = self.conn.execute(sql, (
                entry.profile_id, entry.record_type, entry.record_id, entry.action,
                entry.records_processed, entry.chunks_created, entry.embeddings_generated,
                entry.duration_seconds, entry.status.value, entry.error_message,
                json.dumps(entry.metadata, default=str), created_at,
            ))
            return entry.model_copy(update={"id": cur.lastrowid, "created_at": created_at})

        return await self._run(_add)

    async def recent(self, record_type: str | None = None, status: str | None = None, limit: int = 50) -> list[IndexLogEntry]:
        clauses, params = [], []
        if record_type is not None:
            clauses.append("record_type=?")
            params.append(record_type)
        if status is not None:
            clauses.append("status=?")
            params.append(status)
        sql = "SELECT * FROM index_logs"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        def _query():
            return [self._to_model(row) for row in self.conn.execute(sql, params).fetchall()]

        return await self._run(_query)
