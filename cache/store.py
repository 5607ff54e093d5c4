"""
cache/store.py -- Key-value cache with per-key TTL for session records.

Two interchangeable backends expose the same contract:

    set(key, value, ttl_seconds)   store a JSON-serialisable value
    get(key)                       value or None (expired == missing)
    delete(key)                    remove one key
    keys(pattern)                  glob-style key enumeration ("user:7:*")
    mget(*keys)                    bulk fetch, None for missing keys, same order

SQLiteCache is the default (single-node deployments, tests). RedisCache is
used when CACHE_URL points at redis://. open_cache() picks one from a URL.

Usage:
    cache = open_cache("sqlite:///:memory:")
    cache.set("user:1:abc", {"token": "...", "device": "web"}, 3600)
    cache.keys("user:1:*")            # ["user:1:abc"]
    cache.purge_expired()             # SQLite only; call periodically
"""

from __future__ import annotations

import json
import sqlite3
import threading
import time
from typing import Any, Protocol

import redis

_DDL = """
CREATE TABLE IF NOT EXISTS cache_entries (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    expires_at  REAL NOT NULL
);
"""


class CacheStore(Protocol):
    def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    def get(self, key: str) -> Any | None: ...

    def delete(self, key: str) -> None: ...

    def keys(self, pattern: str) -> list[str]: ...

    def mget(self, *keys: str) -> list[Any | None]: ...

    def close(self) -> None: ...


class SQLiteCache:
    """SQLite-backed cache. Rows past expires_at are invisible to every read."""

    def __init__(self, db_path: str = ":memory:") -> None:
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        # one connection shared across the request threadpool
        self._lock = threading.Lock()
        if db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(_DDL)
        self._conn.commit()

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store value under key, replacing any existing entry."""
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO cache_entries (key, value, expires_at) VALUES (?, ?, ?)",
                (key, json.dumps(value), time.time() + ttl_seconds),
            )
            self._conn.commit()

    def get(self, key: str) -> Any | None:
        """Return the cached value for key if it exists and hasn't expired."""
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM cache_entries WHERE key = ? AND expires_at > ?",
                (key, time.time()),
            ).fetchone()
        return json.loads(row[0]) if row is not None else None

    def delete(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            self._conn.commit()

    def keys(self, pattern: str) -> list[str]:
        """Return live keys matching a glob pattern (SQLite GLOB, case-sensitive)."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT key FROM cache_entries WHERE key GLOB ? AND expires_at > ? ORDER BY rowid",
                (pattern, time.time()),
            ).fetchall()
        return [r[0] for r in rows]

    def mget(self, *keys: str) -> list[Any | None]:
        if not keys:
            return []
        placeholders = ", ".join("?" for _ in keys)
        with self._lock:
            rows = self._conn.execute(
                f"SELECT key, value FROM cache_entries WHERE key IN ({placeholders}) AND expires_at > ?",  # noqa: S608
                (*keys, time.time()),
            ).fetchall()
        found = {k: json.loads(v) for k, v in rows}
        return [found.get(k) for k in keys]

    def purge_expired(self) -> int:
        """Delete all expired entries. Returns number of rows removed."""
        with self._lock:
            cursor = self._conn.execute("DELETE FROM cache_entries WHERE expires_at <= ?", (time.time(),))
            self._conn.commit()
        return cursor.rowcount

    def close(self) -> None:
        self._conn.close()


class RedisCache:
    """Thin Redis wrapper. Redis owns expiry, so there is nothing to purge."""

    def __init__(self, redis_url: str, *, socket_timeout: float = 5.0) -> None:
        self.redis_url = redis_url
        self.client = redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def verify_connection(self) -> None:
        """PING the server. Raises redis.ConnectionError when it is unreachable."""
        self.client.ping()

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self.client.set(key, json.dumps(value), ex=max(1, int(ttl_seconds)))

    def get(self, key: str) -> Any | None:
        raw = self.client.get(key)
        return json.loads(raw) if raw is not None else None

    def delete(self, key: str) -> None:
        self.client.delete(key)

    def keys(self, pattern: str) -> list[str]:
        # SCAN instead of KEYS so a large keyspace doesn't block the server
        return list(self.client.scan_iter(match=pattern))

    def mget(self, *keys: str) -> list[Any | None]:
        if not keys:
            return []
        return [json.loads(raw) if raw is not None else None for raw in self.client.mget(keys)]

    def purge_expired(self) -> int:
        return 0

    def close(self) -> None:
        self.client.close()


def open_cache(url: str) -> SQLiteCache | RedisCache:
    """Build the cache backend named by a URL.

    sqlite:///:memory:, sqlite:///path/to/file.db, redis://host:6379/0
    """
    if url.startswith(("redis://", "rediss://", "unix://")):
        return RedisCache(url)
    if url.startswith("sqlite:///"):
        return SQLiteCache(url[len("sqlite:///") :])
    raise ValueError(f"Unsupported CACHE_URL scheme: {url!r}")
