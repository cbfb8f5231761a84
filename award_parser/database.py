"""
SQLite Results Cache
====================
Persists parsed students per source file so repeated requests for the same
certificate skip text extraction and parsing.

The cache is an optimisation only: callers treat every failure here as a
miss. Entries are keyed by a sanitized file identifier and carry the hash
of the file they were computed from.
"""

from __future__ import annotations

import json
import logging
import os
import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from .models import ExtractionResult

logger = logging.getLogger(__name__)

# Default database path: project_root/database.sqlite
_DEFAULT_DB_PATH = str(Path(__file__).parent.parent / "database.sqlite")

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_\-]")
MAX_KEY_LENGTH = 120


def get_db_path() -> str:
    """Return the configured database path."""
    return os.environ.get("AWARD_PARSER_DB_PATH", _DEFAULT_DB_PATH)


def make_file_key(identifier: str) -> str:
    """
    Sanitize a file identifier (name or storage path) into a cache key.

    "June 2021/RESULTS.pdf" → "June_2021_RESULTS_pdf"
    """
    key = _UNSAFE_KEY_CHARS.sub("_", identifier.strip())
    return key[:MAX_KEY_LENGTH] or "_"


@contextmanager
def get_connection(db_path: str = None):
    """
    Context manager for database connections.
    Ensures proper commit/rollback and connection cleanup.
    """
    db_path = db_path or get_db_path()
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db(db_path: str = None):
    """
    Initialize the database schema.
    Safe to call multiple times (IF NOT EXISTS).
    """
    db_path = db_path or get_db_path()
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    logger.debug(f"Initializing results cache at: {db_path}")

    with get_connection(db_path) as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS extraction_cache (
                file_key TEXT PRIMARY KEY,
                file_name TEXT NOT NULL,
                file_hash TEXT DEFAULT '',
                method TEXT DEFAULT 'none',
                text_length INTEGER DEFAULT 0,
                results_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
        """)


# ─── Cache Operations ─────────────────────────────────────────────────────────


def get_cached_results(
    file_key: str,
    file_hash: str = "",
    db_path: str = None,
) -> Optional[ExtractionResult]:
    """
    Look up a cached extraction.

    A stored entry whose file hash differs from ``file_hash`` is stale and
    treated as a miss. An empty ``file_hash`` skips the comparison.
    """
    with get_connection(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM extraction_cache WHERE file_key = ?",
            (file_key,),
        ).fetchone()

    if row is None:
        return None

    if file_hash and row["file_hash"] and row["file_hash"] != file_hash:
        logger.info(f"Cache entry for {file_key} is stale (file changed)")
        return None

    return ExtractionResult.model_validate({
        "fileName": row["file_name"],
        "fileKey": row["file_key"],
        "method": row["method"],
        "updatedAt": row["updated_at"],
        "textLength": row["text_length"] or 0,
        "students": json.loads(row["results_json"]),
        "cached": True,
    })


def save_cached_results(
    result: ExtractionResult,
    file_hash: str = "",
    db_path: str = None,
):
    """Insert or replace the cache entry for ``result.file_key``."""
    students = [s.model_dump(by_alias=True) for s in result.students]
    with get_connection(db_path) as conn:
        conn.execute(
            """
            INSERT OR REPLACE INTO extraction_cache
                (file_key, file_name, file_hash, method, text_length,
                 results_json, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                result.file_key,
                result.file_name,
                file_hash,
                result.method.value,
                result.text_length,
                json.dumps(students, ensure_ascii=False, default=str),
                result.updated_at,
            ),
        )
    logger.debug(f"Cached {len(students)} student(s) under {result.file_key}")


def delete_cached_results(file_key: str, db_path: str = None) -> bool:
    """Delete one cache entry. Returns True if it existed."""
    with get_connection(db_path) as conn:
        cur = conn.execute(
            "DELETE FROM extraction_cache WHERE file_key = ?",
            (file_key,),
        )
        return cur.rowcount > 0


def list_cached(db_path: str = None) -> list[dict]:
    """Summaries of all cache entries, newest first."""
    with get_connection(db_path) as conn:
        rows = conn.execute(
            """
            SELECT file_key, file_name, method, updated_at, results_json
            FROM extraction_cache
            ORDER BY updated_at DESC
            """
        ).fetchall()

    return [
        {
            "file_key": row["file_key"],
            "file_name": row["file_name"],
            "method": row["method"],
            "updated_at": row["updated_at"],
            "student_count": len(json.loads(row["results_json"])),
        }
        for row in rows
    ]


def clear_cache(db_path: str = None) -> int:
    """Delete every cache entry. Returns the number removed."""
    with get_connection(db_path) as conn:
        cur = conn.execute("DELETE FROM extraction_cache")
        count = cur.rowcount
    logger.info(f"Cleared {count} cache entries")
    return count
