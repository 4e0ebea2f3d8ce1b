import json
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from workorder_import.core.exceptions import ValidationError

# canonical field name -> source header ("" = unmapped)
ColumnMapping = Dict[str, str]

class ParsedTable(BaseModel):
    """
    Schema-independent result of parsing one file.
    `rows` holds data rows only; the header row (if any) lives in `headers`.
    """
    headers: List[str] = Field(default_factory=list)
    rows: List[List[str]] = Field(default_factory=list)

    @classmethod
    def from_grid(cls, grid: List[List[str]], has_header: bool = True) -> "ParsedTable":
        if not grid:
            return cls()

        if has_header:
            headers = [str(h or "").strip() for h in grid[0]]
            return cls(headers=headers, rows=[list(r) for r in grid[1:]])

        # No header row: generate "Column 1", "Column 2", ... for the widest row
        width = max(len(r) for r in grid)
        headers = [f"Column {i+1}" for i in range(width)]
        return cls(headers=headers, rows=[list(r) for r in grid])

    @classmethod
    def from_records(cls, records: List[Dict[str, Any]]) -> "ParsedTable":
        """
        Builds a table from JSON objects. Headers are the union of keys in
        first-seen order; missing keys become empty cells.
        """
        headers: List[str] = []
        seen = set()
        for record in records:
            for key in record.keys():
                if key not in seen:
                    seen.add(key)
                    headers.append(key)

        rows = [[_cell_text(record.get(h)) for h in headers] for record in records]
        return cls(headers=headers, rows=rows)

    def value(self, row: List[str], header: str) -> str:
        if not header:
            return ""
        try:
            index = self.headers.index(header)
        except ValueError:
            return ""
        return row[index] if index < len(row) else ""

def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value).strip()

class CanonicalRecord(BaseModel):
    """One normalized work order. Serialized with the catalog's camelCase names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    customer_wo_id: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    route: Optional[str] = None
    zone: Optional[str] = None
    service_type: Optional[str] = None
    old_meter_id: Optional[str] = None
    old_meter_reading: Optional[int] = None
    new_meter_id: Optional[str] = None
    new_meter_reading: Optional[int] = None
    old_gps: Optional[str] = None
    new_gps: Optional[str] = None
    old_meter_type: Optional[str] = None
    new_meter_type: Optional[str] = None
    status: Optional[str] = None
    scheduled_date: Optional[str] = None
    trouble: Optional[str] = None
    notes: Optional[str] = None
    assigned_to: Optional[str] = None
    created_by: Optional[str] = None
    completed_at: Optional[str] = None

    def get(self, field_name: str) -> Any:
        """Looks a value up by its catalog name (e.g. "customerWoId")."""
        return getattr(self, _ALIAS_TO_ATTR[field_name])

_ALIAS_TO_ATTR = {info.alias: name for name, info in CanonicalRecord.model_fields.items()}

class MappingSuggestion(BaseModel):
    source_header: str
    canonical_field: str
    confidence: float

class MappingValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)

class MaterializeResult(BaseModel):
    """Row-level outcome of a strict conversion."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    records: List[Tuple[int, CanonicalRecord]] = Field(default_factory=list)
    errors: List[ValidationError] = Field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.records) + len(self.errors)

class ImportPreview(BaseModel):
    file_name: str
    headers: List[str]
    total_rows: int
    mapping: ColumnMapping
    suggestions: List[MappingSuggestion] = Field(default_factory=list)
    validation: MappingValidationResult
    rows: List[CanonicalRecord] = Field(default_factory=list)
