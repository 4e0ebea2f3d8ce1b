import json
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from workorder_import.core.config import settings
from workorder_import.core.exceptions import ConcurrencyError
from workorder_import.db.database import SessionLocal
from workorder_import.db import models
from workorder_import.models.schedule import ImportRunOut, ImportSource, ResetResult, RunStatus
from workorder_import.services import schedule_store
from workorder_import.services.locks import ScheduleLockManager, schedule_locks
from workorder_import.services.trigger import utcnow

logger = logging.getLogger(__name__)

def _get_db() -> Session:
    return SessionLocal()

def _to_run_out(row: models.ImportRun) -> ImportRunOut:
    return ImportRunOut(
        id=row.id,
        schedule_id=row.schedule_id,
        project_id=row.project_id,
        import_source=row.import_source,
        file_name=row.file_name,
        status=row.status,
        records_imported=row.records_imported,
        records_failed=row.records_failed,
        error_details=json.loads(row.error_details_json or "[]"),
        started_at=row.started_at,
        completed_at=row.completed_at,
    )

class RunHistoryRecorder:
    """
    Append-only history of import runs. A run row is created when the run
    starts and written exactly once more when it finishes.
    """

    def __init__(self, locks: ScheduleLockManager = schedule_locks, clock=utcnow):
        self.locks = locks
        self.clock = clock

    def start(
        self,
        project_id: int,
        import_source: ImportSource,
        schedule_id: Optional[int] = None,
        file_name: Optional[str] = None,
    ) -> ImportRunOut:
        db = _get_db()
        try:
            row = models.ImportRun(
                schedule_id=schedule_id,
                project_id=project_id,
                import_source=ImportSource(import_source).value,
                file_name=file_name,
                status=RunStatus.RUNNING.value,
                records_imported=0,
                records_failed=0,
                error_details_json="[]",
                started_at=self.clock(),
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return _to_run_out(row)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def finalize(
        self,
        run_id: int,
        status: RunStatus,
        records_imported: int = 0,
        records_failed: int = 0,
        error_details: Optional[List[str]] = None,
        file_name: Optional[str] = None,
        message: Optional[str] = None,
        processed_file: Optional[str] = None,
    ) -> ImportRunOut:
        """
        Completes a running run and, for scheduled runs, writes the schedule's
        last-run fields. `processed_file` advances the processed marker.
        """
        status = RunStatus(status)
        if status == RunStatus.RUNNING:
            raise ValueError("A run can only be finalized with a terminal status")

        db = _get_db()
        try:
            row = db.query(models.ImportRun).filter(models.ImportRun.id == run_id).first()
            if not row:
                raise KeyError(f"Import run with id {run_id} not found")
            if row.status != RunStatus.RUNNING.value:
                raise ValueError(f"Import run {run_id} is already finalized")

            completed_at = self.clock()
            row.status = status.value
            row.records_imported = records_imported
            row.records_failed = records_failed
            row.error_details_json = json.dumps(list(error_details or []))
            if file_name:
                row.file_name = file_name
            row.completed_at = completed_at
            db.commit()
            db.refresh(row)
            run = _to_run_out(row)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        if run.schedule_id is not None:
            schedule_store.record_run_outcome(
                run.schedule_id,
                status=status,
                message=message,
                record_count=records_imported,
                run_at=completed_at,
                processed_file=processed_file,
            )

        logger.info(
            f"Run {run.id} finished: {status.value}, "
            f"{records_imported} imported, {records_failed} failed"
        )
        return run

    def record(self, run: ImportRunOut) -> ImportRunOut:
        """Appends an already completed run (e.g. one built outside the executor)."""
        if run.status == RunStatus.RUNNING:
            raise ValueError("Only completed runs can be recorded")

        db = _get_db()
        try:
            row = models.ImportRun(
                schedule_id=run.schedule_id,
                project_id=run.project_id,
                import_source=ImportSource(run.import_source).value,
                file_name=run.file_name,
                status=RunStatus(run.status).value,
                records_imported=run.records_imported,
                records_failed=run.records_failed,
                error_details_json=json.dumps(run.error_details),
                started_at=run.started_at,
                completed_at=run.completed_at or self.clock(),
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return _to_run_out(row)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def list_history(
        self,
        schedule_id: Optional[int] = None,
        project_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[ImportRunOut]:
        """Newest first. Filter by schedule, by project, or neither."""
        db = _get_db()
        try:
            query = db.query(models.ImportRun)
            if schedule_id is not None:
                query = query.filter(models.ImportRun.schedule_id == schedule_id)
            if project_id is not None:
                query = query.filter(models.ImportRun.project_id == project_id)
            rows = (
                query.order_by(models.ImportRun.started_at.desc(), models.ImportRun.id.desc())
                .limit(limit or settings.HISTORY_LIMIT)
                .all()
            )
            return [_to_run_out(r) for r in rows]
        finally:
            db.close()

    def reset(self, schedule_id: int) -> ResetResult:
        """
        Clears the processed marker so the last file becomes eligible again.
        Refused while the schedule is running.
        """
        try:
            with self.locks.acquire(schedule_id):
                schedule = schedule_store.clear_processed_marker(schedule_id)
        except ConcurrencyError:
            return ResetResult(
                success=False,
                message="Cannot reset while an import is running for this schedule",
            )

        logger.info(f"Reset processed marker of schedule {schedule.id}")
        return ResetResult(success=True, message="Processed file marker cleared")

run_history = RunHistoryRecorder()
