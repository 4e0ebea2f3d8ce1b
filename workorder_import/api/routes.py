import json
from fastapi import APIRouter, UploadFile, File, Form, HTTPException, Query, Response
from typing import Dict, List, Optional
from workorder_import.core.config import settings
from workorder_import.core.exceptions import (
    ConcurrencyError,
    FormatError,
    ScheduleConfigError,
    ScheduleNotFoundError,
)
from workorder_import.models.catalog import WORK_ORDER_CATALOG
from workorder_import.models.errors import ErrorResponse
from workorder_import.models.mapping import ImportPreview
from workorder_import.models.schedule import (
    ImportRunOut,
    ImportScheduleOut,
    JsonImportRequest,
    ResetResult,
    ScheduleCreate,
    ScheduleUpdate,
    Trigger,
)
from workorder_import.services import file_loader, schedule_store
from workorder_import.services.import_executor import build_preview, get_executor
from workorder_import.services.run_history import run_history

router = APIRouter()

NOT_FOUND = {404: {"model": ErrorResponse}}
CONFLICT = {409: {"model": ErrorResponse}}
BAD_REQUEST = {400: {"model": ErrorResponse}}

def _parse_mapping(mapping_json: Optional[str]) -> Optional[Dict[str, str]]:
    if not mapping_json:
        return None
    try:
        mapping = json.loads(mapping_json)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid mapping_json payload")
    if not isinstance(mapping, dict):
        raise HTTPException(status_code=400, detail="mapping_json must be an object")
    return {str(k): str(v or "") for k, v in mapping.items()}

def _read_upload(file: UploadFile) -> bytes:
    try:
        return file_loader.read_upload(file)
    except FormatError as e:
        raise HTTPException(status_code=413, detail=str(e))

@router.get("/schema")
async def get_schema():
    return WORK_ORDER_CATALOG

# --- Schedules ---

@router.get("/projects/{project_id}/schedules", response_model=List[ImportScheduleOut])
def list_schedules(project_id: int):
    return schedule_store.list_schedules(project_id)

@router.post(
    "/projects/{project_id}/schedules",
    response_model=ImportScheduleOut,
    status_code=201,
    responses=BAD_REQUEST,
)
def create_schedule(project_id: int, config: ScheduleCreate):
    # The path decides which project the schedule belongs to
    config = config.model_copy(update={"project_id": project_id})
    try:
        return schedule_store.create_schedule(config)
    except ScheduleConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.get("/schedules/{schedule_id}", response_model=ImportScheduleOut, responses=NOT_FOUND)
def get_schedule(schedule_id: int):
    try:
        return schedule_store.get_schedule(schedule_id)
    except ScheduleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.patch(
    "/schedules/{schedule_id}",
    response_model=ImportScheduleOut,
    responses={**NOT_FOUND, **BAD_REQUEST},
)
def update_schedule(schedule_id: int, patch: ScheduleUpdate):
    try:
        return schedule_store.update_schedule(schedule_id, patch)
    except ScheduleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ScheduleConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.delete("/schedules/{schedule_id}", status_code=204, responses={**NOT_FOUND, **CONFLICT})
def delete_schedule(schedule_id: int):
    try:
        schedule_store.delete_schedule(schedule_id)
    except ScheduleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConcurrencyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return Response(status_code=204)

# --- Runs ---

@router.post(
    "/schedules/{schedule_id}/run",
    response_model=ImportRunOut,
    responses={**NOT_FOUND, **CONFLICT},
)
def run_now(schedule_id: int):
    try:
        return get_executor().run_now(schedule_id)
    except ScheduleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConcurrencyError as e:
        raise HTTPException(status_code=409, detail=str(e))

@router.post(
    "/schedules/{schedule_id}/upload",
    response_model=ImportRunOut,
    responses={**NOT_FOUND, **CONFLICT},
)
def run_with_upload(schedule_id: int, file: UploadFile = File(...)):
    """Runs a schedule's settings against an uploaded file instead of the drop location."""
    content = _read_upload(file)
    try:
        return get_executor().run(schedule_id, Trigger.MANUAL, content=content, filename=file.filename)
    except ScheduleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConcurrencyError as e:
        raise HTTPException(status_code=409, detail=str(e))

@router.post("/schedules/{schedule_id}/reset", response_model=ResetResult, responses=NOT_FOUND)
def reset_processed_marker(schedule_id: int):
    try:
        return run_history.reset(schedule_id)
    except ScheduleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.get("/schedules/{schedule_id}/history", response_model=List[ImportRunOut])
def schedule_history(schedule_id: int, limit: Optional[int] = Query(None, ge=1, le=500)):
    return run_history.list_history(schedule_id=schedule_id, limit=limit)

@router.get("/projects/{project_id}/history", response_model=List[ImportRunOut])
def project_history(project_id: int, limit: Optional[int] = Query(None, ge=1, le=500)):
    return run_history.list_history(project_id=project_id, limit=limit)

# --- Ad-hoc imports ---

@router.post("/preview", response_model=ImportPreview, responses=BAD_REQUEST)
def preview_upload(
    file: UploadFile = File(...),
    delimiter: str = Form(settings.DEFAULT_DELIMITER),
    has_header: bool = Form(True),
    mapping_json: Optional[str] = Form(None),
    limit: int = Form(settings.PREVIEW_LIMIT),
):
    """
    Parses an upload and returns its headers, the suggested mapping and the
    first rows as work orders. Nothing is imported.
    """
    mapping = _parse_mapping(mapping_json)
    content = _read_upload(file)
    try:
        return build_preview(
            file.filename, content, delimiter=delimiter, has_header=has_header, mapping=mapping, limit=limit
        )
    except FormatError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.post("/projects/{project_id}/import/file", response_model=ImportRunOut)
def import_file(
    project_id: int,
    file: UploadFile = File(...),
    delimiter: str = Form(settings.DEFAULT_DELIMITER),
    has_header: bool = Form(True),
    mapping_json: Optional[str] = Form(None),
):
    mapping = _parse_mapping(mapping_json)
    content = _read_upload(file)
    return get_executor().import_ad_hoc(
        project_id,
        content=content,
        filename=file.filename,
        column_mapping=mapping,
        delimiter=delimiter,
        has_header=has_header,
    )

@router.post("/projects/{project_id}/import/json", response_model=ImportRunOut)
def import_json(project_id: int, request: JsonImportRequest):
    return get_executor().import_ad_hoc(
        project_id,
        json_text=request.json_text,
        filename=request.file_name,
        column_mapping=request.column_mapping,
    )
