"""
Runs one import end to end.

    lock -> select file -> dispatch -> map -> materialize_strict -> sink -> history

File-level problems (unreadable file, unsupported format, unmapped required
fields) fail the whole run with nothing attempted. Row-level problems (blank
required value, sink rejection) are counted per row and the rest of the batch
still goes through.
"""
import logging
from typing import Callable, List, Optional, Tuple

from workorder_import.core.config import settings
from workorder_import.core.exceptions import FormatError, MappingError, PersistenceError
from workorder_import.core.protocols import DirectoryListingProvider, PersistenceSink
from workorder_import.models.catalog import FieldCatalog, WORK_ORDER_CATALOG
from workorder_import.models.mapping import ColumnMapping, ImportPreview, ParsedTable
from workorder_import.models.schedule import (
    ImportRunOut,
    ImportScheduleOut,
    ImportSource,
    RunStatus,
    Trigger,
)
from workorder_import.services import file_loader, schedule_store
from workorder_import.services.drop_location import LocalDropLocation
from workorder_import.services.file_selector import FileSelector
from workorder_import.services.locks import ScheduleLockManager, schedule_locks
from workorder_import.services.mapping_session import MappingSession
from workorder_import.services.mapping_suggester import auto_map, suggest_mappings
from workorder_import.services.persistence import SqlWorkOrderSink
from workorder_import.services.run_history import RunHistoryRecorder, run_history

logger = logging.getLogger(__name__)

def classify(imported: int, failed: int) -> RunStatus:
    if failed == 0:
        return RunStatus.SUCCESS
    if imported > 0:
        return RunStatus.PARTIAL
    return RunStatus.FAILED

def has_saved_mapping(mapping: Optional[ColumnMapping]) -> bool:
    return bool(mapping) and any(mapping.values())

def build_preview(
    filename: str,
    content: bytes,
    delimiter: str = ",",
    has_header: bool = True,
    mapping: Optional[ColumnMapping] = None,
    limit: Optional[int] = None,
) -> ImportPreview:
    """Parses an upload and shows how it would map, without importing anything."""
    table = file_loader.dispatch(filename, content, delimiter=delimiter, has_header=has_header)
    chosen = mapping if has_saved_mapping(mapping) else auto_map(table.headers)
    session = MappingSession(table, chosen)
    return ImportPreview(
        file_name=filename,
        headers=table.headers,
        total_rows=session.row_count,
        mapping=chosen,
        suggestions=suggest_mappings(table.headers),
        validation=session.validate_mapping(),
        rows=session.preview(limit),
    )

class ImportOutcome:
    """Counters and messages collected while a run executes."""

    def __init__(self):
        self.imported = 0
        self.failed = 0
        self.row_errors: List[Tuple[int, str]] = []
        self.file_error: Optional[str] = None

    @property
    def status(self) -> RunStatus:
        if self.file_error:
            return RunStatus.FAILED
        return classify(self.imported, self.failed)

    @property
    def error_details(self) -> List[str]:
        if self.file_error:
            return [self.file_error]
        return [message for _, message in sorted(self.row_errors, key=lambda e: e[0])]

    def message(self, file_name: Optional[str]) -> str:
        if self.file_error:
            return self.file_error
        source = f" from {file_name}" if file_name else ""
        return f"Imported {self.imported} records, {self.failed} failed{source}"

class ImportExecutor:
    """
    Orchestrates imports for schedules and for one-off uploads. Holds the
    schedule's lock for the whole run; a concurrent request for the same
    schedule is rejected with ConcurrencyError.
    """

    def __init__(
        self,
        provider: DirectoryListingProvider,
        sink: PersistenceSink,
        recorder: RunHistoryRecorder = run_history,
        locks: ScheduleLockManager = schedule_locks,
        catalog: FieldCatalog = WORK_ORDER_CATALOG,
    ):
        self.provider = provider
        self.sink = sink
        self.recorder = recorder
        self.locks = locks
        self.catalog = catalog
        self.selector = FileSelector(provider)

    def run_now(self, schedule_id: int) -> ImportRunOut:
        """Explicit "run now": the file selector pipeline, regardless of is_enabled."""
        return self.run(schedule_id, Trigger.SCHEDULED)

    def run(
        self,
        schedule_id: int,
        trigger: Trigger = Trigger.SCHEDULED,
        content: Optional[bytes] = None,
        filename: Optional[str] = None,
    ) -> ImportRunOut:
        """
        Runs a schedule. With Trigger.SCHEDULED the file comes from the drop
        location; with Trigger.MANUAL the caller passes `content` and
        `filename`, and the processed marker is left alone.

        Raises:
            ConcurrencyError: the schedule is already running.
            ScheduleNotFoundError: unknown schedule id.
        """
        trigger = Trigger(trigger)
        # Fail fast on unknown ids before creating a lock for them
        schedule_store.get_schedule(schedule_id)

        with self.locks.acquire(schedule_id):
            # Re-read under the lock so the processed marker is current
            schedule = schedule_store.get_schedule(schedule_id)
            if trigger == Trigger.SCHEDULED:
                return self._run_scheduled(schedule)
            return self._run_manual(schedule, content, filename)

    def _run_scheduled(self, schedule: ImportScheduleOut) -> ImportRunOut:
        run = self.recorder.start(schedule.project_id, ImportSource.SCHEDULED, schedule_id=schedule.id)
        logger.info(f"Running scheduled import '{schedule.name}' (schedule {schedule.id}, run {run.id})")

        try:
            file_ref = self.selector.select(schedule)
        except Exception as e:
            logger.exception(f"Listing drop location failed for schedule {schedule.id}")
            return self._finalize_failure(run, f"Could not list drop location: {str(e)}")

        if file_ref is None:
            return self.recorder.finalize(
                run.id,
                RunStatus.SUCCESS,
                message="No new files to process",
            )

        outcome = self._execute(
            project_id=schedule.project_id,
            load_table=lambda: file_loader.dispatch(
                file_ref.name,
                self.provider.read(schedule.project_id, file_ref.name),
                delimiter=schedule.delimiter,
                has_header=schedule.has_header,
            ),
            mapping=schedule.column_mapping,
        )

        return self.recorder.finalize(
            run.id,
            outcome.status,
            records_imported=outcome.imported,
            records_failed=outcome.failed,
            error_details=outcome.error_details,
            file_name=file_ref.name,
            message=outcome.message(file_ref.name),
            # A file that could not be read or mapped stays eligible
            processed_file=None if outcome.file_error else file_ref.name,
        )

    def _run_manual(
        self,
        schedule: ImportScheduleOut,
        content: Optional[bytes],
        filename: Optional[str],
    ) -> ImportRunOut:
        run = self.recorder.start(
            schedule.project_id, ImportSource.MANUAL_FILE, schedule_id=schedule.id, file_name=filename
        )
        outcome = self._execute(
            project_id=schedule.project_id,
            load_table=lambda: self._load_upload(filename, content, schedule.delimiter, schedule.has_header),
            mapping=schedule.column_mapping,
        )
        return self.recorder.finalize(
            run.id,
            outcome.status,
            records_imported=outcome.imported,
            records_failed=outcome.failed,
            error_details=outcome.error_details,
            message=outcome.message(filename),
        )

    def import_ad_hoc(
        self,
        project_id: int,
        content: Optional[bytes] = None,
        json_text: Optional[str] = None,
        filename: Optional[str] = None,
        column_mapping: Optional[ColumnMapping] = None,
        delimiter: str = ",",
        has_header: bool = True,
    ) -> ImportRunOut:
        """
        One-off import outside any schedule, from an uploaded file or from
        pasted JSON text. No lock is involved.
        """
        if json_text is not None:
            source = ImportSource.JSON_TEXT
            load_table: Callable[[], ParsedTable] = lambda: file_loader.parse_json_text(json_text)
        else:
            source = ImportSource.MANUAL_FILE
            load_table = lambda: self._load_upload(filename, content, delimiter, has_header)

        run = self.recorder.start(project_id, source, file_name=filename)
        logger.info(f"Running ad-hoc {source.value} import for project {project_id} (run {run.id})")

        outcome = self._execute(
            project_id=project_id,
            load_table=load_table,
            mapping=column_mapping,
        )
        return self.recorder.finalize(
            run.id,
            outcome.status,
            records_imported=outcome.imported,
            records_failed=outcome.failed,
            error_details=outcome.error_details,
        )

    def _load_upload(
        self,
        filename: Optional[str],
        content: Optional[bytes],
        delimiter: str,
        has_header: bool,
    ) -> ParsedTable:
        if not filename or content is None:
            raise FormatError("A file name and file content are required")
        return file_loader.dispatch(filename, content, delimiter=delimiter, has_header=has_header)

    def _execute(
        self,
        project_id: int,
        load_table: Callable[[], ParsedTable],
        mapping: Optional[ColumnMapping],
    ) -> ImportOutcome:
        outcome = ImportOutcome()

        # 1. File level: read + parse + map. Any failure here aborts the run.
        try:
            table = load_table()
            chosen = mapping if has_saved_mapping(mapping) else auto_map(table.headers, self.catalog)
            session = MappingSession(table, chosen, catalog=self.catalog)
            result = session.materialize_strict()
        except (FormatError, MappingError) as e:
            logger.warning(f"Import aborted: {str(e)}")
            outcome.file_error = str(e)
            return outcome
        except OSError as e:
            logger.warning(f"Import aborted, file could not be read: {str(e)}")
            outcome.file_error = f"Could not read file: {str(e)}"
            return outcome
        except Exception as e:
            logger.exception("Import aborted by an unexpected error")
            outcome.file_error = f"Unexpected error: {str(e) or type(e).__name__}"
            return outcome

        # 2. Row level: invalid rows are counted, valid rows go to the sink
        for error in result.errors:
            outcome.failed += 1
            outcome.row_errors.append((error.row_number, str(error)))

        for row_number, record in result.records:
            try:
                self.sink.insert(project_id, record)
            except PersistenceError as e:
                self._row_failed(outcome, row_number, e.reason)
                continue
            except Exception as e:
                logger.warning(f"Sink rejected row {row_number}: {e!r}")
                self._row_failed(outcome, row_number, str(e) or type(e).__name__)
                continue
            outcome.imported += 1

        return outcome

    @staticmethod
    def _row_failed(outcome: ImportOutcome, row_number: int, reason: str) -> None:
        outcome.failed += 1
        outcome.row_errors.append((row_number, str(PersistenceError(reason, row_number))))

    def _finalize_failure(self, run: ImportRunOut, message: str) -> ImportRunOut:
        return self.recorder.finalize(
            run.id,
            RunStatus.FAILED,
            error_details=[message],
            message=message,
        )

_default_executor: Optional[ImportExecutor] = None

def get_executor() -> ImportExecutor:
    """Process-wide executor wired to the local drop location and the SQL sink."""
    global _default_executor
    if _default_executor is None:
        _default_executor = ImportExecutor(LocalDropLocation(settings.DROP_DIR), SqlWorkOrderSink())
    return _default_executor
