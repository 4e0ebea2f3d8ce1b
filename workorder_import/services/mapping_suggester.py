from typing import Collection, List, Optional, Tuple

from workorder_import.models.catalog import FieldCatalog, WORK_ORDER_CATALOG
from workorder_import.models.mapping import ColumnMapping, MappingSuggestion

EXACT_CONFIDENCE = 1.0
CONTAINS_CONFIDENCE = 0.8

def normalize_header(header: str) -> str:
    """
    Standardizes a header for comparison.
    Example: "  Work Order ID " -> "work order id"
    """
    return (header or "").lower().strip()

def match_header(
    header: str,
    catalog: FieldCatalog = WORK_ORDER_CATALOG,
    exclude: Collection[str] = (),
) -> Optional[Tuple[str, float]]:
    """
    Returns (field name, confidence) for the first catalog field, in catalog
    order, with a synonym equal to or contained in the header. Fields listed
    in `exclude` are skipped.
    """
    h = normalize_header(header)
    if not h:
        return None

    for field in catalog.fields:
        if field.name in exclude:
            continue
        for synonym in field.synonyms:
            if h == synonym:
                return field.name, EXACT_CONFIDENCE
            if synonym in h:
                return field.name, CONTAINS_CONFIDENCE
    return None

def suggest_mappings(headers: List[str], catalog: FieldCatalog = WORK_ORDER_CATALOG) -> List[MappingSuggestion]:
    """
    Walks the headers in file order and binds each one to the first catalog
    field that matches and is still free. Earlier headers win.
    """
    suggestions: List[MappingSuggestion] = []
    bound: List[str] = []

    for header in headers:
        match = match_header(header, catalog, exclude=bound)
        if match is None:
            continue

        field_name, confidence = match
        bound.append(field_name)
        suggestions.append(MappingSuggestion(
            source_header=header,
            canonical_field=field_name,
            confidence=confidence,
        ))

    return suggestions

def auto_map(headers: List[str], catalog: FieldCatalog = WORK_ORDER_CATALOG) -> ColumnMapping:
    """Full mapping over the catalog; fields with no matching header map to ""."""
    mapping: ColumnMapping = {name: "" for name in catalog.field_names()}
    for s in suggest_mappings(headers, catalog):
        mapping[s.canonical_field] = s.source_header
    return mapping
