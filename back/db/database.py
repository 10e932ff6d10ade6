"""
SQLite persistent tier for resolved streams and chapters.

One row per record, content-addressed by (collection, key_hash). The JSON
document has the persisted field set; cached_at and size_bytes are kept
as columns so maintenance can aggregate without parsing documents.
"""

import asyncio
import json
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone

from errors import StoreUnavailable
from models import CacheRecord, LookupKey


class RecordStore:
    def __init__(self, db_path: str | None):
        self.db_path = db_path or None
        self.available = False
        if self.db_path is None:
            print("[store] No CACHE_DB_PATH configured, persistent tier disabled")
            return
        try:
            self._init_db()
            self.available = True
        except (sqlite3.Error, OSError) as e:
            print(f"[store] Cannot open {self.db_path}, persistent tier disabled: {e}")

    @contextmanager
    def _conn(self):
        conn = sqlite3.connect(self.db_path, timeout=5)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self):
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with self._conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cache_records (
                    collection TEXT NOT NULL,
                    key_hash TEXT NOT NULL,
                    document TEXT NOT NULL,
                    cached_at REAL NOT NULL,
                    schema_version TEXT NOT NULL,
                    size_bytes INTEGER NOT NULL,
                    PRIMARY KEY (collection, key_hash)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_cache_records_cached_at ON cache_records (cached_at)"
            )

    async def _run(self, fn, *args):
        if not self.available:
            raise StoreUnavailable("persistent tier not configured")
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"sqlite error on {self.db_path}: {e}") from e

    # --- Records ---

    def _get(self, collection: str, key_hash: str) -> str | None:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT document FROM cache_records WHERE collection = ? AND key_hash = ?",
                (collection, key_hash),
            ).fetchone()
        return row["document"] if row else None

    async def get(self, key: LookupKey, key_hash: str) -> CacheRecord | None:
        raw = await self._run(self._get, key.collection, key_hash)
        if raw is None:
            return None
        return CacheRecord.from_document(key, json.loads(raw))

    def _put(self, collection: str, key_hash: str, document: str, cached_at: float, schema_version: str):
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO cache_records
                    (collection, key_hash, document, cached_at, schema_version, size_bytes)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(collection, key_hash) DO UPDATE SET
                    document = excluded.document,
                    cached_at = excluded.cached_at,
                    schema_version = excluded.schema_version,
                    size_bytes = excluded.size_bytes
                """,
                (collection, key_hash, document, cached_at, schema_version, len(document.encode("utf-8"))),
            )

    async def put(self, record: CacheRecord, key_hash: str) -> None:
        document = json.dumps(record.to_document(), ensure_ascii=False)
        await self._run(
            self._put,
            record.key.collection,
            key_hash,
            document,
            record.cached_at.timestamp(),
            record.schema_version,
        )

    # --- Maintenance ---

    @staticmethod
    def _scope(collection: str | None) -> tuple[str, tuple]:
        if collection is None:
            return "", ()
        return " WHERE collection = ?", (collection,)

    def _stats(self, collection: str | None) -> dict:
        where, params = self._scope(collection)
        with self._conn() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS total, COALESCE(SUM(size_bytes), 0) AS size, "
                "MIN(cached_at) AS oldest, MAX(cached_at) AS newest FROM cache_records" + where,
                params,
            ).fetchone()
        return {
            "total_records": row["total"],
            "total_size_bytes": row["size"],
            "oldest_cached_at": _to_datetime(row["oldest"]),
            "newest_cached_at": _to_datetime(row["newest"]),
        }

    async def stats(self, collection: str | None = None) -> dict:
        return await self._run(self._stats, collection)

    def _purge(self, cutoff: float, collection: str | None) -> int:
        sql = "DELETE FROM cache_records WHERE cached_at < ?"
        params: tuple = (cutoff,)
        if collection is not None:
            sql += " AND collection = ?"
            params += (collection,)
        with self._conn() as conn:
            return conn.execute(sql, params).rowcount

    async def purge_before(self, cutoff: float, collection: str | None = None) -> int:
        """Delete records cached strictly before `cutoff` (unix seconds)."""
        return await self._run(self._purge, cutoff, collection)

    def _ping(self) -> None:
        with self._conn() as conn:
            conn.execute("SELECT 1")

    async def ping(self) -> bool:
        try:
            await self._run(self._ping)
            return True
        except StoreUnavailable:
            return False


def _to_datetime(ts: float | None) -> datetime | None:
    return datetime.fromtimestamp(ts, tz=timezone.utc) if ts is not None else None
