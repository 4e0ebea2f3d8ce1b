import pytest
import json
from datetime import datetime
from fastapi import FastAPI
from fastapi.testclient import TestClient
from unittest.mock import MagicMock, patch

from conftest import work_order_csv
from workorder_import.api.routes import router
from workorder_import.core.exceptions import (
    ConcurrencyError,
    FormatError,
    ScheduleConfigError,
    ScheduleNotFoundError,
)
from workorder_import.models.schedule import (
    ImportRunOut,
    ImportScheduleOut,
    ResetResult,
    ScheduleCreate,
    ScheduleUpdate,
)

# Initialize the app and attach routes to mock a real server and client.
app = FastAPI()
app.include_router(router)

client = TestClient(app)

NOW = datetime(2024, 1, 1, 8, 0)

def make_schedule_out(**overrides):
    values = dict(
        id=1,
        project_id=7,
        name="Meters",
        delimiter=",",
        has_header=True,
        column_mapping={},
        schedule_frequency="daily",
        is_enabled=True,
        processed_file_pattern="meter_*.csv",
    )
    values.update(overrides)
    return ImportScheduleOut(**values)

def make_run_out(**overrides):
    values = dict(
        id=10,
        schedule_id=1,
        project_id=7,
        import_source="scheduled",
        file_name="meter_jan.csv",
        status="success",
        records_imported=5,
        started_at=NOW,
        completed_at=NOW,
    )
    values.update(overrides)
    return ImportRunOut(**values)

# --- Fixtures for Mocking ---

@pytest.fixture
def mock_schedule_store():
    # Replaces the schedule storage layer used by the routes.
    with patch("workorder_import.api.routes.schedule_store") as mock:
        yield mock

@pytest.fixture
def mock_executor():
    # get_executor() hands back this mock instead of the real engine.
    executor = MagicMock()
    with patch("workorder_import.api.routes.get_executor", return_value=executor):
        yield executor

@pytest.fixture
def mock_run_history():
    with patch("workorder_import.api.routes.run_history") as mock:
        yield mock

# --- General Routes ---

def test_get_schema():
    """
    Goal: Verify the /schema endpoint returns the work order catalog.
    """
    response = client.get("/schema")

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "WorkOrder"
    required = [f["name"] for f in data["fields"] if f["required"]]
    assert required == ["customerWoId", "customerId", "customerName", "address", "serviceType"]

# --- Schedules ---

def test_create_schedule(mock_schedule_store):
    """
    Goal: The project id in the path decides the schedule's project.
    """
    # 1. Setup
    mock_schedule_store.create_schedule.return_value = make_schedule_out(project_id=42)

    # 2. Action: Body says project 1, path says 42
    response = client.post("/projects/42/schedules", json={"project_id": 1, "name": "Meters"})

    # 3. Check
    assert response.status_code == 201
    assert response.json()["project_id"] == 42
    sent = mock_schedule_store.create_schedule.call_args[0][0]
    assert isinstance(sent, ScheduleCreate)
    assert sent.project_id == 42

def test_create_schedule_invalid(mock_schedule_store):
    mock_schedule_store.create_schedule.side_effect = ScheduleConfigError("Invalid cron expression 'x'")

    response = client.post("/projects/7/schedules", json={"project_id": 7, "name": "Bad"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid cron expression 'x'"

def test_list_schedules(mock_schedule_store):
    mock_schedule_store.list_schedules.return_value = [make_schedule_out(), make_schedule_out(id=2, name="Gas")]

    response = client.get("/projects/7/schedules")

    assert response.status_code == 200
    assert [s["name"] for s in response.json()] == ["Meters", "Gas"]
    mock_schedule_store.list_schedules.assert_called_once_with(7)

def test_get_schedule_not_found(mock_schedule_store):
    """
    Goal: Unknown schedule ids are a 404, not a 500.
    """
    mock_schedule_store.get_schedule.side_effect = ScheduleNotFoundError(99)

    response = client.get("/schedules/99")

    assert response.status_code == 404
    assert response.json()["detail"] == "Import schedule with id 99 not found"

def test_update_schedule(mock_schedule_store):
    mock_schedule_store.update_schedule.return_value = make_schedule_out(is_enabled=False)

    response = client.patch("/schedules/1", json={"is_enabled": False})

    assert response.status_code == 200
    assert response.json()["is_enabled"] is False
    patch_sent = mock_schedule_store.update_schedule.call_args[0][1]
    assert isinstance(patch_sent, ScheduleUpdate)
    assert patch_sent.model_dump(exclude_unset=True) == {"is_enabled": False}

def test_delete_schedule(mock_schedule_store):
    response = client.delete("/schedules/1")

    assert response.status_code == 204
    mock_schedule_store.delete_schedule.assert_called_once_with(1)

def test_delete_running_schedule(mock_schedule_store):
    mock_schedule_store.delete_schedule.side_effect = ConcurrencyError(1)

    response = client.delete("/schedules/1")

    assert response.status_code == 409

# --- Runs ---

def test_run_now(mock_executor):
    """
    Goal: POST /run triggers the executor and returns the run record.
    """
    mock_executor.run_now.return_value = make_run_out()

    response = client.post("/schedules/1/run")

    assert response.status_code == 200
    assert response.json()["records_imported"] == 5
    mock_executor.run_now.assert_called_once_with(1)

def test_run_now_already_running(mock_executor):
    """
    Goal: A concurrent run request is a 409 Conflict.
    """
    mock_executor.run_now.side_effect = ConcurrencyError(1)

    response = client.post("/schedules/1/run")

    assert response.status_code == 409
    assert "already running" in response.json()["detail"]

def test_run_now_unknown_schedule(mock_executor):
    mock_executor.run_now.side_effect = ScheduleNotFoundError(5)

    assert client.post("/schedules/5/run").status_code == 404

def test_run_with_upload(mock_executor):
    mock_executor.run.return_value = make_run_out(import_source="manual_file", file_name="upload.csv")
    files = {"file": ("upload.csv", work_order_csv(2), "text/csv")}

    response = client.post("/schedules/1/upload", files=files)

    assert response.status_code == 200
    args, kwargs = mock_executor.run.call_args
    assert args[0] == 1
    assert kwargs["filename"] == "upload.csv"
    assert kwargs["content"] == work_order_csv(2)

def test_reset(mock_run_history):
    mock_run_history.reset.return_value = ResetResult(success=True, message="Processed file marker cleared")

    response = client.post("/schedules/1/reset")

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Processed file marker cleared"}

def test_schedule_history(mock_run_history):
    mock_run_history.list_history.return_value = [make_run_out(id=2), make_run_out(id=1)]

    response = client.get("/schedules/1/history?limit=2")

    assert response.status_code == 200
    assert [r["id"] for r in response.json()] == [2, 1]
    mock_run_history.list_history.assert_called_once_with(schedule_id=1, limit=2)

def test_project_history(mock_run_history):
    mock_run_history.list_history.return_value = []

    response = client.get("/projects/7/history")

    assert response.status_code == 200
    mock_run_history.list_history.assert_called_once_with(project_id=7, limit=None)

# --- Ad-hoc imports ---

def test_preview_upload():
    """
    Goal: Preview parses a real upload and returns mapped rows without importing.
    """
    files = {"file": ("orders.csv", work_order_csv(3), "text/csv")}

    response = client.post("/preview", files=files, data={"limit": "2"})

    assert response.status_code == 200
    data = response.json()
    assert data["total_rows"] == 3
    assert len(data["rows"]) == 2
    assert data["rows"][0]["customerWoId"] == "WO-1"
    assert data["validation"]["is_valid"] is True

def test_preview_unsupported_file():
    files = {"file": ("orders.pdf", b"%PDF", "application/pdf")}

    response = client.post("/preview", files=files)

    assert response.status_code == 400
    assert "Unsupported file type" in response.json()["detail"]

def test_preview_invalid_mapping_json():
    files = {"file": ("orders.csv", work_order_csv(1), "text/csv")}

    response = client.post("/preview", files=files, data={"mapping_json": "{broken"})

    assert response.status_code == 400

def test_import_file_with_mapping(mock_executor):
    """
    Goal: A mapping sent as form JSON reaches the executor as a dict.
    """
    mock_executor.import_ad_hoc.return_value = make_run_out(schedule_id=None, import_source="manual_file")
    files = {"file": ("orders.csv", b"A,B\n1,2\n", "text/csv")}
    mapping = {"customerWoId": "A", "customerId": "B"}

    response = client.post(
        "/projects/7/import/file",
        files=files,
        data={"delimiter": ",", "mapping_json": json.dumps(mapping)},
    )

    assert response.status_code == 200
    kwargs = mock_executor.import_ad_hoc.call_args.kwargs
    assert kwargs["column_mapping"] == mapping
    assert kwargs["filename"] == "orders.csv"

def test_import_file_too_large(mock_executor):
    with patch("workorder_import.api.routes.file_loader.read_upload", side_effect=FormatError("File too large. Max size is 1 MB.")):
        files = {"file": ("orders.csv", b"x", "text/csv")}
        response = client.post("/projects/7/import/file", files=files)

    assert response.status_code == 413
    mock_executor.import_ad_hoc.assert_not_called()

def test_import_json(mock_executor):
    mock_executor.import_ad_hoc.return_value = make_run_out(schedule_id=None, import_source="json_text")

    response = client.post("/projects/7/import/json", json={"json_text": "[]"})

    assert response.status_code == 200
    assert response.json()["import_source"] == "json_text"
    mock_executor.import_ad_hoc.assert_called_once_with(
        7, json_text="[]", filename=None, column_mapping=None
    )
