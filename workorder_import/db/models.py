from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, UniqueConstraint
from workorder_import.db.database import Base

class ImportSchedule(Base):
    __tablename__ = "import_schedules"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    project_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)

    # How to read the files
    delimiter = Column(String(1), nullable=False, default=",")
    has_header = Column(Boolean, nullable=False, default=True)
    column_mapping_json = Column(Text, nullable=False, default="{}")   # {canonicalField: sourceHeader}

    # When and what to import
    schedule_frequency = Column(String(32), nullable=False, default="manual")
    custom_cron_expression = Column(String(255), nullable=True)        # only meaningful for "custom"
    is_enabled = Column(Boolean, nullable=False, default=True)
    processed_file_pattern = Column(String(255), nullable=True)        # glob, empty = every file

    # Written by the executor after each run
    last_processed_file = Column(String(500), nullable=True)
    last_run_at = Column(DateTime, nullable=True)
    last_run_status = Column(String(16), nullable=True)
    last_run_message = Column(Text, nullable=True)
    last_run_record_count = Column(Integer, nullable=True)
    next_run_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

class ImportRun(Base):
    __tablename__ = "import_runs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    # Kept after the schedule is deleted so history stays as recorded
    schedule_id = Column(Integer, nullable=True, index=True)
    project_id = Column(Integer, nullable=False, index=True)
    import_source = Column(String(16), nullable=False)     # scheduled | manual_file | json_text
    file_name = Column(String(500), nullable=True)
    status = Column(String(16), nullable=False)            # running until finalized
    records_imported = Column(Integer, nullable=False, default=0)
    records_failed = Column(Integer, nullable=False, default=0)
    error_details_json = Column(Text, nullable=False, default="[]")
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)

class WorkOrder(Base):
    __tablename__ = "work_orders"
    __table_args__ = (UniqueConstraint("project_id", "customer_wo_id", name="uq_work_orders_project_wo"),)

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    project_id = Column(Integer, nullable=False, index=True)

    # Required canonical fields
    customer_wo_id = Column(String(255), nullable=False, index=True)
    customer_id = Column(String(255), nullable=False)
    customer_name = Column(String(255), nullable=False)
    address = Column(String(500), nullable=False)
    service_type = Column(String(32), nullable=False)

    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    zip = Column(String(20), nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    route = Column(String(100), nullable=True)
    zone = Column(String(100), nullable=True)
    old_meter_id = Column(String(100), nullable=True)
    old_meter_reading = Column(Integer, nullable=True)
    new_meter_id = Column(String(100), nullable=True)
    new_meter_reading = Column(Integer, nullable=True)
    old_gps = Column(String(100), nullable=True)
    new_gps = Column(String(100), nullable=True)
    old_meter_type = Column(String(100), nullable=True)
    new_meter_type = Column(String(100), nullable=True)
    status = Column(String(50), nullable=False, default="Open")
    scheduled_date = Column(String(50), nullable=True)
    trouble = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    assigned_to = Column(String(255), nullable=True)
    created_by = Column(String(255), nullable=True)
    completed_at = Column(String(50), nullable=True)

    imported_at = Column(DateTime, nullable=False)
