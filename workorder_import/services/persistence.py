import logging
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from workorder_import.core.exceptions import PersistenceError
from workorder_import.db.database import SessionLocal
from workorder_import.db import models
from workorder_import.models.mapping import CanonicalRecord
from workorder_import.services.trigger import utcnow

logger = logging.getLogger(__name__)

DEFAULT_STATUS = "Open"
DEFAULT_CREATED_BY = "file_import"

def _get_db() -> Session:
    return SessionLocal()

def record_to_columns(record: CanonicalRecord) -> Dict[str, Any]:
    """
    Flattens a record into work_orders column values. Unset optional fields
    are left out so an update never blanks existing data.
    """
    columns = {k: v for k, v in record.model_dump().items() if v is not None}
    columns.setdefault("created_by", DEFAULT_CREATED_BY)
    return columns

class SqlWorkOrderSink:
    """
    Default persistence sink: upserts into the work_orders table, keyed by
    (project_id, customer_wo_id). Each insert commits on its own so one bad
    row never takes the others down.
    """

    def insert(self, project_id: int, record: CanonicalRecord) -> None:
        columns = record_to_columns(record)
        db = _get_db()
        try:
            existing = (
                db.query(models.WorkOrder)
                .filter(
                    models.WorkOrder.project_id == project_id,
                    models.WorkOrder.customer_wo_id == record.customer_wo_id,
                )
                .first()
            )
            if existing:
                for key, value in columns.items():
                    setattr(existing, key, value)
                existing.imported_at = utcnow()
            else:
                columns.setdefault("status", DEFAULT_STATUS)
                db.add(models.WorkOrder(project_id=project_id, imported_at=utcnow(), **columns))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Database rejected work order {record.customer_wo_id}: {e.__class__.__name__}") from e
        finally:
            db.close()
