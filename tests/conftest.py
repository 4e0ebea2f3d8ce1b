import pytest
import threading
from datetime import datetime, timedelta
from typing import Dict, Tuple
from unittest.mock import patch
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from workorder_import.core.exceptions import PersistenceError
from workorder_import.db.database import Base
from workorder_import.db import models  # noqa: F401  registers tables on Base
from workorder_import.models.schedule import FileRef
from workorder_import.services.import_executor import ImportExecutor
from workorder_import.services.locks import ScheduleLockManager
from workorder_import.services.run_history import RunHistoryRecorder

# Header row shared by most import tests. Every required field is covered.
WORK_ORDER_HEADER = "WO ID,Customer ID,Customer Name,Address,Service Type,Old Reading"

def work_order_csv(count: int, start: int = 1, blank_address_for=()) -> bytes:
    """
    Builds a CSV with `count` work orders. Rows whose number is listed in
    `blank_address_for` leave the required Address column empty.
    """
    lines = [WORK_ORDER_HEADER]
    for i in range(start, start + count):
        address = "" if i in blank_address_for else f"{i} Main St"
        lines.append(f"WO-{i},C-{i},Customer {i},{address},Electric,{1000 + i}")
    return ("\n".join(lines) + "\n").encode("utf-8")

# --- Fakes ---

class FakeClock:
    """A clock tests can move forward by hand."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 8, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

class FakeDropLocation:
    """In-memory drop location: {project_id: {name: (content, mtime)}}."""

    def __init__(self):
        self.files: Dict[int, Dict[str, Tuple[bytes, datetime]]] = {}
        self.reads = []

    def add(self, project_id: int, name: str, content: bytes, mtime: datetime) -> None:
        self.files.setdefault(project_id, {})[name] = (content, mtime)

    def list(self, project_id: int):
        return [
            FileRef(name=name, mtime=mtime, size=len(content))
            for name, (content, mtime) in self.files.get(project_id, {}).items()
        ]

    def read(self, project_id: int, name: str) -> bytes:
        self.reads.append(name)
        try:
            return self.files[project_id][name][0]
        except KeyError:
            raise FileNotFoundError(name)

class MemorySink:
    """
    Upserts work orders into a dict keyed by (project_id, customerWoId).
    Ids listed in `reject` fail with PersistenceError.
    """

    def __init__(self, reject=()):
        self.rows = {}
        self.reject = set(reject)
        self.insert_calls = 0

    def insert(self, project_id, record):
        self.insert_calls += 1
        if record.customer_wo_id in self.reject:
            raise PersistenceError(f"duplicate key {record.customer_wo_id}")
        self.rows[(project_id, record.customer_wo_id)] = record

class BlockingSink(MemorySink):
    """A sink that holds the first insert until `release` is set."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def insert(self, project_id, record):
        self.entered.set()
        self.release.wait(timeout=5)
        super().insert(project_id, record)

# --- Fixtures ---

@pytest.fixture
def db_session_factory(tmp_path):
    """
    Goal: Point every service at a throwaway SQLite file instead of the app database.
    """
    # A file (not :memory:) so worker threads see the same database
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    # Patch where SessionLocal is IMPORTED, not where it's defined
    with patch("workorder_import.services.schedule_store.SessionLocal", factory), \
         patch("workorder_import.services.run_history.SessionLocal", factory), \
         patch("workorder_import.services.persistence.SessionLocal", factory):
        yield factory

    engine.dispose()

@pytest.fixture
def locks():
    """
    Goal: A fresh lock registry per test, shared with schedule_store.
    """
    manager = ScheduleLockManager()
    with patch("workorder_import.services.schedule_store.schedule_locks", manager):
        yield manager

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def drop():
    return FakeDropLocation()

@pytest.fixture
def sink():
    return MemorySink()

@pytest.fixture
def recorder(db_session_factory, locks, clock):
    return RunHistoryRecorder(locks=locks, clock=clock)

@pytest.fixture
def executor(drop, sink, recorder, locks):
    return ImportExecutor(drop, sink, recorder=recorder, locks=locks)
