"""
Job Import - copy jobs out of another toolkit's SQLite database

The uploaded file is opened read-only with sqlite3 in a worker thread; rows
are then inserted through the JobStore. Jobs whose name already exists are
skipped, ids that collide get a fresh uuid.
"""
import asyncio
import json
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError
from loguru import logger

from exceptions import DatabaseImportError
from models.job import Job, JobStatus
from services.job_store import JobStore


@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        message = f"Successfully imported {self.imported} jobs."
        if self.skipped > 0:
            message += f" {self.skipped} jobs were skipped (duplicate names or errors)."
        if 0 < len(self.errors) <= 3:
            message += f" Errors: {', '.join(self.errors)}"
        elif len(self.errors) > 3:
            message += " Multiple errors occurred during import."
        return message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "imported": self.imported,
            "skipped": self.skipped,
            "message": self.message,
        }


def read_jobs_from_database(db_path: Path) -> List[Dict[str, Any]]:
    """Load every row of the Job table (blocking)"""
    try:
        conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
    except sqlite3.Error:
        raise DatabaseImportError(
            "Invalid database file or corrupted database. Please ensure this is a valid AI Toolkit database."
        )

    conn.row_factory = sqlite3.Row
    try:
        try:
            row = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='Job'"
            ).fetchone()
        except sqlite3.DatabaseError:
            raise DatabaseImportError(
                "Invalid database file or corrupted database. Please ensure this is a valid AI Toolkit database."
            )
        if row is None:
            raise DatabaseImportError(
                "Database does not contain a valid Job table. This may not be an AI Toolkit database."
            )
        try:
            return [dict(r) for r in conn.execute("SELECT * FROM Job").fetchall()]
        except sqlite3.Error as e:
            raise DatabaseImportError(f"Failed to read jobs from database: {e}")
    finally:
        conn.close()


def _parse_timestamp(value: Any) -> datetime:
    """Accept epoch milliseconds or ISO 8601, fall back to now"""
    if value is None or value == "":
        return datetime.utcnow()
    try:
        if isinstance(value, (int, float)) or str(value).isdigit():
            return datetime.utcfromtimestamp(float(value) / 1000)
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        return parsed.replace(tzinfo=None)
    except (ValueError, OverflowError, OSError):
        return datetime.utcnow()


def _parse_status(value: Any) -> JobStatus:
    try:
        return JobStatus(value)
    except ValueError:
        return JobStatus.STOPPED


def build_job(row: Dict[str, Any], job_id: str) -> Job:
    return Job(
        id=job_id,
        name=row["name"],
        gpu_ids=row.get("gpu_ids") or "0",
        job_config=row["job_config"],
        created_at=_parse_timestamp(row.get("created_at")),
        updated_at=_parse_timestamp(row.get("updated_at")),
        status=_parse_status(row.get("status") or "stopped"),
        stop=row.get("stop") == 1,
        step=row.get("step") or 0,
        info=row.get("info") or "",
        speed_string=row.get("speed_string") or "",
    )


class JobImporter:
    """Imports job rows into the store, collecting per-row errors"""

    def __init__(self, store: JobStore):
        self.store = store

    async def import_file(self, db_path: Path) -> ImportResult:
        loop = asyncio.get_running_loop()
        rows = await loop.run_in_executor(None, read_jobs_from_database, db_path)
        return await self.import_rows(rows)

    async def import_rows(self, rows: List[Dict[str, Any]]) -> ImportResult:
        result = ImportResult()

        for row in rows:
            name = row.get("name")
            if not name or not row.get("job_config"):
                result.skipped += 1
                result.errors.append(f"Job with ID {row.get('id')} is missing required fields")
                continue

            if await self.store.get_job_by_name(name) is not None:
                result.skipped += 1
                continue

            try:
                json.loads(row["job_config"])
            except (json.JSONDecodeError, TypeError):
                result.skipped += 1
                result.errors.append(f'Job "{name}" has invalid configuration data')
                continue

            job_id = row.get("id") or str(uuid.uuid4())
            if await self.store.get_job(job_id) is not None:
                job_id = str(uuid.uuid4())

            try:
                await self.store.create_job(build_job(row, job_id))
                result.imported += 1
            except IntegrityError:
                result.skipped += 1
                result.errors.append(f'Failed to import job "{name}" due to conflicts')
            except Exception as e:
                result.skipped += 1
                result.errors.append(f'Failed to import job "{name}": {e}')

        logger.info(f"Job import finished: {result.imported} imported, {result.skipped} skipped")
        return result
