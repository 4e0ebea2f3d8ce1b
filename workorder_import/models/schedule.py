from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

class ScheduleFrequency(str, Enum):
    MANUAL = "manual"
    EVERY_15_MINUTES = "every_15_minutes"
    EVERY_30_MINUTES = "every_30_minutes"
    HOURLY = "hourly"
    EVERY_2_HOURS = "every_2_hours"
    EVERY_6_HOURS = "every_6_hours"
    EVERY_12_HOURS = "every_12_hours"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"

class RunStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"

class ImportSource(str, Enum):
    SCHEDULED = "scheduled"
    MANUAL_FILE = "manual_file"
    JSON_TEXT = "json_text"

class Trigger(str, Enum):
    SCHEDULED = "scheduled"   # file chosen by the file selector
    MANUAL = "manual"         # caller supplies the file

class ScheduleCreate(BaseModel):
    project_id: int
    name: str
    delimiter: str = ","
    has_header: bool = True
    column_mapping: Dict[str, str] = Field(default_factory=dict)
    schedule_frequency: ScheduleFrequency = ScheduleFrequency.MANUAL
    custom_cron_expression: Optional[str] = None
    is_enabled: bool = True
    processed_file_pattern: Optional[str] = None

class ScheduleUpdate(BaseModel):
    """Partial update; only fields explicitly set are applied."""
    name: Optional[str] = None
    delimiter: Optional[str] = None
    has_header: Optional[bool] = None
    column_mapping: Optional[Dict[str, str]] = None
    schedule_frequency: Optional[ScheduleFrequency] = None
    custom_cron_expression: Optional[str] = None
    is_enabled: Optional[bool] = None
    processed_file_pattern: Optional[str] = None

class ImportScheduleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    name: str
    delimiter: str
    has_header: bool
    column_mapping: Dict[str, str] = Field(default_factory=dict)
    schedule_frequency: ScheduleFrequency
    custom_cron_expression: Optional[str] = None
    is_enabled: bool
    processed_file_pattern: Optional[str] = None
    last_processed_file: Optional[str] = None
    last_run_at: Optional[datetime] = None
    last_run_status: Optional[RunStatus] = None
    last_run_message: Optional[str] = None
    last_run_record_count: Optional[int] = None
    next_run_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class ImportRunOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    schedule_id: Optional[int] = None
    project_id: int
    import_source: ImportSource
    file_name: Optional[str] = None
    status: RunStatus
    records_imported: int = 0
    records_failed: int = 0
    error_details: List[str] = Field(default_factory=list)
    started_at: datetime
    completed_at: Optional[datetime] = None

class ResetResult(BaseModel):
    success: bool
    message: str

class FileRef(BaseModel):
    """One entry of a drop-location listing."""
    name: str
    mtime: datetime
    size: int = 0

class JsonImportRequest(BaseModel):
    json_text: str
    file_name: Optional[str] = None
    column_mapping: Optional[Dict[str, str]] = None
