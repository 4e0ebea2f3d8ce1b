import logging
import re
from typing import Any, Dict, List, Optional

from workorder_import.core.config import settings
from workorder_import.core.exceptions import MappingError, ValidationError
from workorder_import.models.catalog import FieldCatalog, WORK_ORDER_CATALOG
from workorder_import.models.mapping import (
    CanonicalRecord,
    ColumnMapping,
    MappingValidationResult,
    MaterializeResult,
    ParsedTable,
)

logger = logging.getLogger(__name__)

# Leading decimal integer, e.g. "1234", "-5", "1234.7" -> 1234
INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")

def parse_int(value: Any) -> Optional[int]:
    """
    Parses a meter reading. Blank or non-numeric input yields None instead
    of an error.
    """
    if value is None:
        return None
    m = INT_PREFIX.match(str(value))
    if not m:
        return None
    return int(m.group(1))

def coerce_service_type(value: Any) -> str:
    """
    Maps a raw value onto one of the configured service types
    (case-insensitive). Anything unrecognized becomes the default.
    """
    raw = str(value or "").strip().lower()
    for service_type in settings.SERVICE_TYPES:
        if service_type.lower() == raw:
            return service_type
    return settings.DEFAULT_SERVICE_TYPE

def validate_mapping_structure(
    mapping: ColumnMapping,
    catalog: FieldCatalog,
    available_headers: List[str],
) -> MappingValidationResult:
    """
    Checks the mapping itself before any row is looked at.
    """
    errors: List[str] = []

    # 1. Every required field must be bound to something
    for field_name in catalog.required_field_names():
        if not mapping.get(field_name):
            errors.append(f"Required field '{field_name}' is not mapped.")

    # 2. Bound headers must exist in the file
    for field_name, header in mapping.items():
        if not header:
            continue
        if catalog.field_by_name(field_name) is None:
            errors.append(f"Unknown field '{field_name}' in mapping.")
        elif header not in available_headers:
            errors.append(
                f"Field '{field_name}' is mapped to missing column '{header}'."
            )

    return MappingValidationResult(
        is_valid=len(errors) == 0,
        errors=errors,
    )

class MappingSession:
    """
    Holds one parsed file together with the column mapping chosen for it and
    turns its rows into CanonicalRecords.
    """

    def __init__(
        self,
        table: ParsedTable,
        mapping: ColumnMapping,
        catalog: FieldCatalog = WORK_ORDER_CATALOG,
    ):
        self.table = table
        self.mapping = dict(mapping or {})
        self.catalog = catalog

    @property
    def row_count(self) -> int:
        return len(self.table.rows)

    def _raw_values(self, row: List[str]) -> Dict[str, str]:
        return {
            field.name: self.table.value(row, self.mapping.get(field.name, ""))
            for field in self.catalog.fields
        }

    def _missing_required(self, raw: Dict[str, str]) -> List[str]:
        return [name for name in self.catalog.required_field_names() if not raw.get(name)]

    def _to_record(self, raw: Dict[str, str], blank: Optional[str]) -> CanonicalRecord:
        """
        Converts raw cell text into a record. Blank optional text fields are
        set to `blank`; numeric fields are parsed; serviceType is coerced.
        """
        data: Dict[str, Any] = {}
        for field in self.catalog.fields:
            value = raw.get(field.name, "")
            if field.numeric:
                data[field.name] = parse_int(value)
            elif field.name == "serviceType":
                data[field.name] = coerce_service_type(value)
            elif value == "" and not field.required:
                data[field.name] = blank
            else:
                data[field.name] = value
        return CanonicalRecord.model_validate(data)

    def validate_mapping(self) -> MappingValidationResult:
        return validate_mapping_structure(self.mapping, self.catalog, self.table.headers)

    def preview(self, limit: Optional[int] = None) -> List[CanonicalRecord]:
        """
        Converts the first `limit` data rows without validation. Unmapped
        text fields come back as "".
        """
        if limit is None:
            limit = settings.PREVIEW_LIMIT
        return [
            self._to_record(self._raw_values(row), blank="")
            for row in self.table.rows[:limit]
        ]

    def materialize(self) -> List[CanonicalRecord]:
        """
        Converts every data row and silently drops the ones missing a
        required value. Use materialize_strict() to get per-row errors.
        """
        records: List[CanonicalRecord] = []
        for row in self.table.rows:
            raw = self._raw_values(row)
            if self._missing_required(raw):
                continue
            records.append(self._to_record(raw, blank=None))
        return records

    def materialize_strict(self) -> MaterializeResult:
        """
        Converts every data row, collecting one ValidationError per row that
        is missing a required value.

        Raises:
            MappingError: a required field has no usable header, so no row
                can be trusted.
        """
        unmapped = [
            name for name in self.catalog.required_field_names()
            if not self.mapping.get(name) or self.mapping[name] not in self.table.headers
        ]
        if unmapped:
            raise MappingError(unmapped)

        result = MaterializeResult()
        for index, row in enumerate(self.table.rows, start=1):
            raw = self._raw_values(row)
            missing = self._missing_required(raw)
            if missing:
                result.errors.append(ValidationError(index, missing))
                continue
            result.records.append((index, self._to_record(raw, blank=None)))

        logger.debug(
            f"Materialized {len(result.records)} records, {len(result.errors)} invalid rows"
        )
        return result
