import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from workorder_import.core.exceptions import (
    ScheduleConfigError,
    ScheduleNotFoundError,
)
from workorder_import.db.database import SessionLocal
from workorder_import.db import models
from workorder_import.models.catalog import WORK_ORDER_CATALOG
from workorder_import.models.schedule import (
    ImportScheduleOut,
    RunStatus,
    ScheduleCreate,
    ScheduleFrequency,
    ScheduleUpdate,
)
from workorder_import.services.locks import schedule_locks
from workorder_import.services.trigger import trigger_evaluator, utcnow, validate_cron

logger = logging.getLogger(__name__)

# Fields a patch may explicitly clear; None means "unchanged" for the rest
NULLABLE_FIELDS = {"custom_cron_expression", "processed_file_pattern"}

def _get_db() -> Session:
    return SessionLocal()

def _to_schedule_out(row: models.ImportSchedule) -> ImportScheduleOut:
    return ImportScheduleOut(
        id=row.id,
        project_id=row.project_id,
        name=row.name,
        delimiter=row.delimiter,
        has_header=row.has_header,
        column_mapping=json.loads(row.column_mapping_json or "{}"),
        schedule_frequency=row.schedule_frequency,
        custom_cron_expression=row.custom_cron_expression,
        is_enabled=row.is_enabled,
        processed_file_pattern=row.processed_file_pattern,
        last_processed_file=row.last_processed_file,
        last_run_at=row.last_run_at,
        last_run_status=row.last_run_status,
        last_run_message=row.last_run_message,
        last_run_record_count=row.last_run_record_count,
        next_run_at=row.next_run_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )

def _load(db: Session, schedule_id: int) -> models.ImportSchedule:
    row = db.query(models.ImportSchedule).filter(models.ImportSchedule.id == schedule_id).first()
    if not row:
        raise ScheduleNotFoundError(schedule_id)
    return row

def _validate_config(values: Dict[str, Any]) -> Dict[str, Any]:
    """
    Save-time checks. Returns the cleaned values; raises ScheduleConfigError
    so an invalid schedule is never persisted.
    """
    cleaned = dict(values)

    name = (cleaned.get("name") or "").strip()
    if not name:
        raise ScheduleConfigError("Schedule name is required")
    cleaned["name"] = name

    if cleaned.get("project_id") is None:
        raise ScheduleConfigError("Schedule project_id is required")

    delimiter = cleaned.get("delimiter")
    if delimiter is None or len(delimiter) != 1:
        raise ScheduleConfigError(f"Delimiter must be a single character, got {delimiter!r}")

    try:
        frequency = ScheduleFrequency(cleaned.get("schedule_frequency") or ScheduleFrequency.MANUAL)
    except ValueError as e:
        raise ScheduleConfigError(f"Unknown schedule frequency '{cleaned.get('schedule_frequency')}'") from e
    cleaned["schedule_frequency"] = frequency.value

    # The cron expression only exists for custom schedules
    if frequency == ScheduleFrequency.CUSTOM:
        cleaned["custom_cron_expression"] = validate_cron(cleaned.get("custom_cron_expression"))
    else:
        cleaned["custom_cron_expression"] = None

    mapping = cleaned.get("column_mapping") or {}
    unknown = [k for k in mapping if WORK_ORDER_CATALOG.field_by_name(k) is None]
    if unknown:
        raise ScheduleConfigError("Unknown fields in column mapping: " + ", ".join(sorted(unknown)))
    cleaned["column_mapping"] = {k: (v or "") for k, v in mapping.items()}

    pattern = (cleaned.get("processed_file_pattern") or "").strip()
    cleaned["processed_file_pattern"] = pattern or None

    return cleaned

def _apply(row: models.ImportSchedule, values: Dict[str, Any]) -> None:
    row.project_id = values["project_id"]
    row.name = values["name"]
    row.delimiter = values["delimiter"]
    row.has_header = values["has_header"]
    row.column_mapping_json = json.dumps(values["column_mapping"])
    row.schedule_frequency = values["schedule_frequency"]
    row.custom_cron_expression = values["custom_cron_expression"]
    row.is_enabled = values["is_enabled"]
    row.processed_file_pattern = values["processed_file_pattern"]

def list_schedules(project_id: int) -> List[ImportScheduleOut]:
    db = _get_db()
    try:
        rows = (
            db.query(models.ImportSchedule)
            .filter(models.ImportSchedule.project_id == project_id)
            .order_by(models.ImportSchedule.id)
            .all()
        )
        return [_to_schedule_out(r) for r in rows]
    finally:
        db.close()

def list_enabled_schedules() -> List[ImportScheduleOut]:
    db = _get_db()
    try:
        rows = db.query(models.ImportSchedule).filter(models.ImportSchedule.is_enabled.is_(True)).all()
        return [_to_schedule_out(r) for r in rows]
    finally:
        db.close()

def get_schedule(schedule_id: int) -> ImportScheduleOut:
    db = _get_db()
    try:
        return _to_schedule_out(_load(db, schedule_id))
    finally:
        db.close()

def create_schedule(config: ScheduleCreate) -> ImportScheduleOut:
    values = _validate_config(config.model_dump())

    db = _get_db()
    try:
        now = utcnow()
        row = models.ImportSchedule(created_at=now, updated_at=now)
        _apply(row, values)
        row.next_run_at = trigger_evaluator.next_run_at(row, None, now=now)
        db.add(row)
        db.commit()
        db.refresh(row)
        logger.info(f"Created import schedule {row.id} '{row.name}' ({row.schedule_frequency})")
        return _to_schedule_out(row)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

def update_schedule(schedule_id: int, patch: ScheduleUpdate) -> ImportScheduleOut:
    db = _get_db()
    try:
        row = _load(db, schedule_id)
        current = _to_schedule_out(row).model_dump()
        changes = patch.model_dump(exclude_unset=True)
        current.update({k: v for k, v in changes.items() if v is not None or k in NULLABLE_FIELDS})
        values = _validate_config(current)

        _apply(row, values)
        row.updated_at = utcnow()
        row.next_run_at = trigger_evaluator.next_run_at(row, row.last_run_at, now=row.updated_at)
        db.commit()
        db.refresh(row)
        logger.info(f"Updated import schedule {row.id}")
        return _to_schedule_out(row)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

def delete_schedule(schedule_id: int) -> None:
    """
    Deletes the schedule while holding its run lock, so no run can start
    mid-delete. Raises ConcurrencyError if a run is in progress. Past runs
    keep their schedule_id.
    """
    with schedule_locks.acquire(schedule_id):
        db = _get_db()
        try:
            row = _load(db, schedule_id)
            db.delete(row)
            db.commit()
            logger.info(f"Deleted import schedule {schedule_id}")
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
    schedule_locks.forget(schedule_id)

def record_run_outcome(
    schedule_id: int,
    status: RunStatus,
    message: Optional[str],
    record_count: int,
    run_at: datetime,
    processed_file: Optional[str] = None,
) -> ImportScheduleOut:
    """
    Writes the last-run fields after an execution. The processed marker is
    only touched when `processed_file` is given.
    """
    db = _get_db()
    try:
        row = _load(db, schedule_id)
        row.last_run_at = run_at
        row.last_run_status = RunStatus(status).value
        row.last_run_message = message
        row.last_run_record_count = record_count
        if processed_file:
            row.last_processed_file = processed_file
        row.next_run_at = trigger_evaluator.next_run_at(row, run_at, now=run_at)
        db.commit()
        db.refresh(row)
        return _to_schedule_out(row)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

def clear_processed_marker(schedule_id: int) -> ImportScheduleOut:
    db = _get_db()
    try:
        row = _load(db, schedule_id)
        row.last_processed_file = None
        row.updated_at = utcnow()
        db.commit()
        db.refresh(row)
        return _to_schedule_out(row)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
