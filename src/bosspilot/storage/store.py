"""SQLite-backed store for candidates, outcomes, blacklists and sessions."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from bosspilot.exceptions import PersistenceError
from bosspilot.models import Blacklist, CandidateRecord, DeliveryOutcome, DeliveryStatus, RunSummary

logger = logging.getLogger(__name__)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS candidates (
    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
    encrypt_job_id        TEXT NOT NULL,
    encrypt_recruiter_id  TEXT NOT NULL DEFAULT '',
    title                 TEXT DEFAULT '',
    company               TEXT DEFAULT '',
    salary_text           TEXT DEFAULT '',
    location              TEXT DEFAULT '',
    experience            TEXT DEFAULT '',
    degree                TEXT DEFAULT '',
    recruiter_name        TEXT DEFAULT '',
    recruiter_title       TEXT DEFAULT '',
    recruiter_activity    TEXT DEFAULT '',
    description           TEXT DEFAULT '',
    job_url               TEXT DEFAULT '',
    industry              TEXT DEFAULT '',
    scale                 TEXT DEFAULT '',
    stage                 TEXT DEFAULT '',
    delivery_status       TEXT NOT NULL DEFAULT 'NotDelivered',
    created_at            TEXT NOT NULL,
    updated_at            TEXT NOT NULL,
    UNIQUE(encrypt_job_id, encrypt_recruiter_id)
);

CREATE TABLE IF NOT EXISTS delivery_outcomes (
    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id                TEXT NOT NULL DEFAULT '',
    encrypt_job_id        TEXT NOT NULL,
    encrypt_recruiter_id  TEXT NOT NULL DEFAULT '',
    status                TEXT NOT NULL,
    message               TEXT DEFAULT '',
    attachment_sent       INTEGER DEFAULT 0,
    reason                TEXT DEFAULT '',
    timestamp_ms          INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS runs (
    id              TEXT PRIMARY KEY,
    started_at      TEXT NOT NULL,
    ended_at        TEXT,
    keywords        TEXT DEFAULT '',
    cities          TEXT DEFAULT '',
    total_inspected INTEGER DEFAULT 0,
    total_delivered INTEGER DEFAULT 0,
    total_filtered  INTEGER DEFAULT 0,
    total_failed    INTEGER DEFAULT 0,
    total_skipped   INTEGER DEFAULT 0,
    debug_mode      INTEGER DEFAULT 0,
    aborted         TEXT DEFAULT ''
);

CREATE TABLE IF NOT EXISTS blacklist (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    kind        TEXT NOT NULL,
    value       TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    UNIQUE(kind, value)
);

CREATE TABLE IF NOT EXISTS session_artifacts (
    platform    TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    remark      TEXT DEFAULT '',
    updated_at  TEXT NOT NULL
);
"""

BLACKLIST_KINDS = ("company", "recruiter", "job")

_CANDIDATE_FIELDS = (
    "title",
    "company",
    "salary_text",
    "location",
    "experience",
    "degree",
    "recruiter_name",
    "recruiter_title",
    "recruiter_activity",
    "description",
    "job_url",
    "industry",
    "scale",
    "stage",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CandidateStore:
    """Persistent candidate history stored in SQLite.

    Every public method raises :class:`PersistenceError` on database errors.
    """

    def __init__(self, db_path: str | Path) -> None:
        if str(db_path) != ":memory:":
            db_path = Path(db_path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(str(db_path))
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot open store at {db_path}: {exc}") from exc
        logger.info("Candidate store ready at %s.", db_path)

    # ---- runs ----

    def start_run(self, run_id: str, keywords: list[str], cities: list[str], debug: bool) -> None:
        self._write(
            "INSERT INTO runs (id, started_at, keywords, cities, debug_mode) VALUES (?, ?, ?, ?, ?)",
            (run_id, _now(), json.dumps(keywords, ensure_ascii=False),
             json.dumps(cities, ensure_ascii=False), int(debug)),
        )

    def end_run(self, summary: RunSummary) -> None:
        self._write(
            "UPDATE runs SET ended_at=?, total_inspected=?, total_delivered=?, "
            "total_filtered=?, total_failed=?, total_skipped=?, aborted=? WHERE id=?",
            (
                summary.ended_at or _now(),
                summary.total_inspected,
                summary.total_delivered,
                summary.total_filtered,
                summary.total_failed,
                summary.total_skipped,
                summary.aborted,
                summary.run_id,
            ),
        )

    def get_run(self, run_id: str) -> dict | None:
        row = self._read_one("SELECT * FROM runs WHERE id=?", (run_id,))
        return dict(row) if row else None

    # ---- candidates ----

    def upsert_candidate(self, candidate: CandidateRecord) -> int:
        """Insert a candidate or refresh the descriptive fields of the existing row.

        The stored delivery status is left alone on update.
        """
        now = _now()
        values = [getattr(candidate, f) for f in _CANDIDATE_FIELDS]
        assignments = ", ".join(f"{f}=excluded.{f}" for f in _CANDIDATE_FIELDS)
        self._write(
            f"INSERT INTO candidates (encrypt_job_id, encrypt_recruiter_id, "
            f"{', '.join(_CANDIDATE_FIELDS)}, delivery_status, created_at, updated_at) "
            f"VALUES (?, ?, {', '.join('?' for _ in _CANDIDATE_FIELDS)}, ?, ?, ?) "
            f"ON CONFLICT(encrypt_job_id, encrypt_recruiter_id) DO UPDATE SET "
            f"{assignments}, updated_at=excluded.updated_at",
            (
                candidate.encrypt_job_id,
                candidate.encrypt_recruiter_id,
                *values,
                candidate.delivery_status.value,
                now,
                now,
            ),
        )
        row = self._read_one(
            "SELECT id FROM candidates WHERE encrypt_job_id=? AND encrypt_recruiter_id=?",
            candidate.identity,
        )
        return row["id"]

    def update_delivery_status(self, identity: tuple[str, str], status: DeliveryStatus) -> bool:
        """Move a stored candidate out of ``NotDelivered``.

        Returns ``False`` (and changes nothing) if the row is missing or
        already carries a different terminal status.
        """
        cur = self._write(
            "UPDATE candidates SET delivery_status=?, updated_at=? "
            "WHERE encrypt_job_id=? AND encrypt_recruiter_id=? "
            "AND delivery_status IN (?, ?)",
            (status.value, _now(), *identity, DeliveryStatus.NOT_DELIVERED.value, status.value),
        )
        if cur.rowcount == 0:
            logger.warning("Status for %s not updated to %s.", identity[0], status.value)
            return False
        return True

    def get_candidate(self, identity: tuple[str, str]) -> dict | None:
        row = self._read_one(
            "SELECT * FROM candidates WHERE encrypt_job_id=? AND encrypt_recruiter_id=?",
            identity,
        )
        return dict(row) if row else None

    def count_candidates(self) -> int:
        row = self._read_one("SELECT COUNT(*) AS n FROM candidates", ())
        return row["n"]

    def status_counts(self) -> dict[str, int]:
        rows = self._read_all(
            "SELECT delivery_status, COUNT(*) AS n FROM candidates GROUP BY delivery_status", ()
        )
        return {r["delivery_status"]: r["n"] for r in rows}

    # ---- outcomes ----

    def record_outcome(self, outcome: DeliveryOutcome, run_id: str = "") -> None:
        self._write(
            "INSERT INTO delivery_outcomes (run_id, encrypt_job_id, encrypt_recruiter_id, "
            "status, message, attachment_sent, reason, timestamp_ms) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                run_id,
                *outcome.identity,
                outcome.status.value,
                outcome.message,
                int(outcome.attachment_sent),
                outcome.reason,
                outcome.timestamp,
            ),
        )

    def list_outcomes(self, run_id: str = "") -> list[dict]:
        query = "SELECT * FROM delivery_outcomes "
        params: tuple = ()
        if run_id:
            query += "WHERE run_id=? "
            params = (run_id,)
        query += "ORDER BY id"
        return [dict(r) for r in self._read_all(query, params)]

    # ---- blacklist ----

    def load_blacklist(self) -> Blacklist:
        rows = self._read_all("SELECT kind, value FROM blacklist", ())
        grouped: dict[str, list[str]] = {k: [] for k in BLACKLIST_KINDS}
        for r in rows:
            grouped.setdefault(r["kind"], []).append(r["value"])
        blacklist = Blacklist.of(grouped["company"], grouped["recruiter"], grouped["job"])
        logger.info(
            "Blacklist loaded: companies(%d) recruiters(%d) jobs(%d)",
            len(blacklist.companies), len(blacklist.recruiters), len(blacklist.jobs),
        )
        return blacklist

    def add_blacklist(self, kind: str, value: str) -> bool:
        if kind not in BLACKLIST_KINDS:
            raise ValueError(f"Unknown blacklist kind: {kind!r}")
        value = value.strip()
        if not value:
            return False
        cur = self._write(
            "INSERT OR IGNORE INTO blacklist (kind, value, created_at) VALUES (?, ?, ?)",
            (kind, value, _now()),
        )
        return cur.rowcount > 0

    def remove_blacklist(self, kind: str, value: str) -> bool:
        cur = self._write("DELETE FROM blacklist WHERE kind=? AND value=?", (kind, value.strip()))
        return cur.rowcount > 0

    # ---- session artifacts ----

    def save_session_artifact(self, platform: str, value: str, remark: str = "") -> None:
        self._write(
            "INSERT INTO session_artifacts (platform, value, remark, updated_at) "
            "VALUES (?, ?, ?, ?) ON CONFLICT(platform) DO UPDATE SET "
            "value=excluded.value, remark=excluded.remark, updated_at=excluded.updated_at",
            (platform, value, remark, _now()),
        )

    def load_session_artifact(self, platform: str) -> str | None:
        row = self._read_one("SELECT value FROM session_artifacts WHERE platform=?", (platform,))
        return row["value"] if row else None

    # ---- plumbing ----

    def _write(self, sql: str, params: tuple) -> sqlite3.Cursor:
        try:
            cur = self._conn.execute(sql, params)
            self._conn.commit()
            return cur
        except sqlite3.Error as exc:
            self._conn.rollback()
            raise PersistenceError(str(exc)) from exc

    def _read_one(self, sql: str, params: tuple) -> sqlite3.Row | None:
        try:
            return self._conn.execute(sql, params).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc

    def _read_all(self, sql: str, params: tuple) -> list[sqlite3.Row]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc

    def close(self) -> None:
        self._conn.close()
