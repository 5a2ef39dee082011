"""SQLite persistence for discovered email results."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import finder_config as config
from finder_models import Result

LOG = logging.getLogger("results_store")

TABLE_SQL = """
CREATE TABLE IF NOT EXISTS email_results (
    id                      INTEGER PRIMARY KEY AUTOINCREMENT,
    profile                 TEXT NOT NULL,
    name                    TEXT NOT NULL,
    email                   TEXT NOT NULL,
    platform                TEXT NOT NULL,
    search_engine           TEXT NOT NULL,
    confidence              REAL NOT NULL DEFAULT 0,
    ai_enhanced             INTEGER NOT NULL DEFAULT 0,
    method                  TEXT NOT NULL DEFAULT 'pattern-matching',
    source_url              TEXT,
    targeted_email_provider TEXT,
    synthetic               INTEGER NOT NULL DEFAULT 0,
    extracted_at            TEXT NOT NULL
)
"""
INDEX_SQL = (
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_email_results_profile_email "
    "ON email_results (profile, email)",
    "CREATE INDEX IF NOT EXISTS ix_email_results_extracted_at "
    "ON email_results (extracted_at DESC)",
)
COLUMNS = (
    "profile", "name", "email", "platform", "search_engine", "confidence",
    "ai_enhanced", "method", "source_url", "targeted_email_provider",
    "synthetic", "extracted_at",
)
INSERT_SQL = (
    f"INSERT OR IGNORE INTO email_results ({', '.join(COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in COLUMNS)})"
)


def normalize_profile(profile: str) -> str:
    return (profile or "").strip().lower()


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        ts = datetime.fromisoformat(value)
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _row_to_result(row: sqlite3.Row) -> Result:
    return Result(
        profile=row["profile"],
        name=row["name"],
        email=row["email"],
        platform=row["platform"],
        search_engine=row["search_engine"],
        confidence=row["confidence"],
        ai_enhanced=bool(row["ai_enhanced"]),
        method=row["method"],
        source_url=row["source_url"] or "",
        targeted_email_provider=row["targeted_email_provider"],
        synthetic=bool(row["synthetic"]),
        extracted_at=row["extracted_at"],
    )


class ResultsStore:
    """One connection per operation; (profile, email) is unique across runs."""

    def __init__(self, path: str = config.RESULTS_DB_PATH):
        self.path = str(path)
        with closing(self._connect()) as conn:
            conn.execute(TABLE_SQL)
            for sql in INDEX_SQL:
                conn.execute(sql)
            conn.commit()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        return conn

    def _params(self, result: Result) -> tuple:
        extracted_at = result.extracted_at or datetime.now(timezone.utc).isoformat(timespec="seconds")
        return (
            normalize_profile(result.profile),
            result.name,
            result.email.strip().lower(),
            result.platform,
            result.search_engine,
            float(result.confidence),
            int(bool(result.ai_enhanced)),
            result.method,
            result.source_url,
            result.targeted_email_provider,
            int(bool(result.synthetic)),
            extracted_at,
        )

    def save(self, result: Result) -> bool:
        with closing(self._connect()) as conn:
            cur = conn.execute(INSERT_SQL, self._params(result))
            conn.commit()
            inserted = cur.rowcount == 1
        if not inserted:
            LOG.debug("STORE_DUPLICATE profile=%s email=%s", result.profile, result.email)
        return inserted

    def save_many(self, results: Iterable[Result]) -> List[Result]:
        saved: List[Result] = []
        with closing(self._connect()) as conn:
            for result in results:
                params = self._params(result)
                cur = conn.execute(INSERT_SQL, params)
                if cur.rowcount == 1:
                    if not result.extracted_at:
                        result.extracted_at = params[-1]
                    saved.append(result)
            conn.commit()
        LOG.info("STORE_SAVED inserted=%s", len(saved))
        return saved

    def find_by_profile(
        self, profile: str, limit: int = 10, offset: int = 0, include_synthetic: bool = True
    ) -> List[Result]:
        return self.find_recent(profile, limit=limit, offset=offset, include_synthetic=include_synthetic)

    def find_recent(
        self,
        profile: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
        include_synthetic: bool = True,
    ) -> List[Result]:
        where: List[str] = []
        params: List[Any] = []
        if profile:
            where.append("profile = ?")
            params.append(normalize_profile(profile))
        if not include_synthetic:
            where.append("synthetic = 0")
        sql = "SELECT * FROM email_results"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY extracted_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([max(0, int(limit)), max(0, int(offset))])
        with closing(self._connect()) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_result(r) for r in rows]

    def count(self, profile: Optional[str] = None) -> int:
        with closing(self._connect()) as conn:
            if profile:
                row = conn.execute(
                    "SELECT COUNT(*) FROM email_results WHERE profile = ?",
                    (normalize_profile(profile),),
                ).fetchone()
            else:
                row = conn.execute("SELECT COUNT(*) FROM email_results").fetchone()
        return int(row[0])

    def count_by_profile(self, limit: int = 10) -> List[Dict[str, Any]]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT profile, COUNT(*) AS n FROM email_results "
                "GROUP BY profile ORDER BY n DESC, profile ASC LIMIT ?",
                (int(limit),),
            ).fetchall()
        return [{"profile": r["profile"], "count": r["n"]} for r in rows]

    def count_by_search_engine(self) -> List[Dict[str, Any]]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT search_engine, COUNT(*) AS n FROM email_results "
                "GROUP BY search_engine ORDER BY n DESC, search_engine ASC"
            ).fetchall()
        return [{"engine": r["search_engine"], "count": r["n"]} for r in rows]

    def latest_extracted_at(self, profile: str, include_synthetic: bool = True) -> Optional[datetime]:
        sql = "SELECT MAX(extracted_at) FROM email_results WHERE profile = ?"
        if not include_synthetic:
            sql += " AND synthetic = 0"
        with closing(self._connect()) as conn:
            row = conn.execute(sql, (normalize_profile(profile),)).fetchone()
        return _parse_ts(row[0]) if row else None
