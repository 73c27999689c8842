"""SQLite-backed persistence provider.

Stores job snapshots, resource records and finished course drafts in a
local SQLite database (``data/courseforge.db`` by default).  Uses
``aiosqlite`` for async I/O; nested models are stored as JSON text
produced by pydantic.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import structlog

from src.interfaces.persistence_provider import IPersistenceProvider
from src.models.course import CourseDraft
from src.models.pipeline import GenerationJob

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/courseforge.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS generation_jobs (
    job_id      TEXT PRIMARY KEY,
    course_id   TEXT NOT NULL,
    status      TEXT NOT NULL,
    payload     TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS course_resources (
    course_id      TEXT NOT NULL,
    document_id    TEXT NOT NULL,
    quality_score  REAL NOT NULL,
    chunk_count    INTEGER NOT NULL,
    token_count    INTEGER NOT NULL,
    indexed_at     TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    PRIMARY KEY (course_id, document_id)
);
""",
    """\
CREATE TABLE IF NOT EXISTS course_drafts (
    course_id   TEXT PRIMARY KEY,
    job_id      TEXT NOT NULL,
    payload     TEXT NOT NULL,
    created_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_jobs_course ON generation_jobs(course_id);",
]

_UPSERT_JOB_SQL = """\
INSERT INTO generation_jobs (job_id, course_id, status, payload, updated_at)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(job_id)
DO UPDATE SET status     = excluded.status,
              payload    = excluded.payload,
              updated_at = excluded.updated_at;
"""

_UPSERT_RESOURCE_SQL = """\
INSERT INTO course_resources (course_id, document_id, quality_score, chunk_count, token_count)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(course_id, document_id)
DO UPDATE SET quality_score = excluded.quality_score,
              chunk_count   = excluded.chunk_count,
              token_count   = excluded.token_count,
              indexed_at    = strftime('%Y-%m-%dT%H:%M:%fZ', 'now');
"""

_UPSERT_DRAFT_SQL = """\
INSERT INTO course_drafts (course_id, job_id, payload)
VALUES (?, ?, ?)
ON CONFLICT(course_id)
DO UPDATE SET job_id     = excluded.job_id,
              payload    = excluded.payload,
              created_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now');
"""


class SQLitePersistenceProvider(IPersistenceProvider):
    """SQLite-backed job, resource and draft persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("persistence_db_initialized", path=str(self._db_path))

    async def save_job(self, job: GenerationJob) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _UPSERT_JOB_SQL,
                (
                    job.job_id,
                    job.course_id,
                    job.status.value,
                    job.model_dump_json(),
                    job.updated_at.isoformat(),
                ),
            )
            await db.commit()

    async def save_resource_record(
        self,
        course_id: str,
        document_id: str,
        quality_score: float,
        chunk_count: int,
        token_count: int,
    ) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _UPSERT_RESOURCE_SQL,
                (course_id, document_id, quality_score, chunk_count, token_count),
            )
            await db.commit()
        logger.debug(
            "resource_record_saved",
            course_id=course_id,
            document_id=document_id,
            chunk_count=chunk_count,
        )

    async def save_course_draft(self, draft: CourseDraft) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _UPSERT_DRAFT_SQL,
                (draft.course_id, draft.job_id, draft.model_dump_json()),
            )
            await db.commit()
        logger.info(
            "course_draft_saved",
            course_id=draft.course_id,
            job_id=draft.job_id,
            sessions=len(draft.sessions),
        )

    async def get_course_draft(self, course_id: str) -> CourseDraft | None:
        """Return the stored draft for *course_id*, if any."""
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "SELECT payload FROM course_drafts WHERE course_id = ?",
                (course_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return CourseDraft.model_validate_json(row[0])

    def get_provider_name(self) -> str:
        return "sqlite"
