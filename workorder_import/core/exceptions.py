"""Exception hierarchy for the import engine."""

from typing import Optional


class ImportEngineError(Exception):
    """Base exception for all import engine errors."""


class FormatError(ImportEngineError):
    """Unsupported file extension or a body that cannot be parsed."""


class ScheduleConfigError(ImportEngineError):
    """Invalid schedule configuration, rejected at save time."""


class ScheduleNotFoundError(ImportEngineError, KeyError):
    """No schedule exists with the given id."""

    def __init__(self, schedule_id: int) -> None:
        self.schedule_id = schedule_id
        super().__init__(f"Import schedule with id {schedule_id} not found")

    def __str__(self) -> str:
        return self.args[0]


class MappingError(ImportEngineError):
    """A required canonical field has no usable source header."""

    def __init__(self, missing_fields: list) -> None:
        self.missing_fields = list(missing_fields)
        super().__init__(
            "Required fields are not mapped: " + ", ".join(self.missing_fields)
        )


class ValidationError(ImportEngineError):
    """A single row is missing one or more required values."""

    def __init__(self, row_number: int, fields: list) -> None:
        self.row_number = row_number
        self.fields = list(fields)
        noun = "field" if len(self.fields) == 1 else "fields"
        names = ", ".join(f"'{f}'" for f in self.fields)
        super().__init__(f"Row {row_number}: missing required {noun} {names}")

    @property
    def field(self) -> str:
        return self.fields[0]


class PersistenceError(ImportEngineError):
    """The persistence sink rejected one record."""

    def __init__(self, reason: str, row_number: Optional[int] = None) -> None:
        self.reason = reason
        self.row_number = row_number
        super().__init__(f"Row {row_number}: {reason}" if row_number is not None else reason)


class ConcurrencyError(ImportEngineError):
    """A run was requested while another run of the same schedule is in progress."""

    def __init__(self, schedule_id: int) -> None:
        self.schedule_id = schedule_id
        super().__init__(f"An import is already running for schedule {schedule_id}")
