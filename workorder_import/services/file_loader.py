import io
import json
import logging
import os
from typing import Any, Dict, List
import pandas as pd

from workorder_import.core.config import settings
from workorder_import.core.exceptions import FormatError
from workorder_import.models.mapping import ParsedTable
from workorder_import.services import tokenizer

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = {".csv", ".txt"}
SPREADSHEET_EXTENSIONS = {".xlsx", ".xls"}
JSON_EXTENSIONS = {".json"}
SUPPORTED_EXTENSIONS = TEXT_EXTENSIONS | SPREADSHEET_EXTENSIONS | JSON_EXTENSIONS

# Keys under which exported JSON commonly wraps the record array
JSON_WRAPPER_KEYS = ("data", "workOrders", "records")

def read_upload(upload_file) -> bytes:
    """
    Reads an uploaded file in 1 MB chunks, refusing anything above
    MAX_UPLOAD_SIZE_MB.
    """
    limit = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024
    buffer = io.BytesIO()
    size = 0
    for chunk in iter(lambda: upload_file.file.read(1024 * 1024), b""):
        size += len(chunk)
        if size > limit:
            raise FormatError(f"File too large. Max size is {settings.MAX_UPLOAD_SIZE_MB} MB.")
        buffer.write(chunk)
    return buffer.getvalue()

def file_extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lower()

def dispatch(
    filename: str,
    content: bytes,
    delimiter: str = ",",
    has_header: bool = True,
) -> ParsedTable:
    """
    Picks a parser from the file extension and returns a ParsedTable.
    Any parser failure is reported as FormatError.
    """
    ext = file_extension(filename)

    if ext not in SUPPORTED_EXTENSIONS:
        raise FormatError(
            f"Unsupported file type '{ext or filename}'. Expected one of: "
            + ", ".join(sorted(SUPPORTED_EXTENSIONS))
        )

    logger.debug(f"Dispatching '{filename}' ({len(content)} bytes) as {ext}")

    # CASE 1: delimited text goes through our own tokenizer
    if ext in TEXT_EXTENSIONS:
        text = content.decode("utf-8", errors="replace")
        return tokenizer.parse(text, delimiter=delimiter, has_header=has_header)

    # CASE 2: spreadsheets, first sheet only
    if ext in SPREADSHEET_EXTENSIONS:
        grid = read_spreadsheet_grid(content, ext)
        return ParsedTable.from_grid(grid, has_header=has_header)

    # CASE 3: JSON, every object carries its own keys as headers
    return parse_json_text(content.decode("utf-8", errors="replace"))

def read_spreadsheet_grid(content: bytes, ext: str = ".xlsx") -> List[List[str]]:
    """
    Reads the first sheet as a raw grid of strings (no header inference).
    Cells are trimmed and all-blank rows dropped, like the text tokenizer.
    """
    engine = "xlrd" if ext == ".xls" else "openpyxl"
    try:
        df = pd.read_excel(
            io.BytesIO(content),
            sheet_name=0,
            header=None,
            dtype=str,
            keep_default_na=False,
            engine=engine,
        )
    except Exception as e:
        raise FormatError(f"Could not read spreadsheet: {str(e)}") from e

    grid: List[List[str]] = []
    for values in df.itertuples(index=False, name=None):
        row = ["" if pd.isna(v) else str(v).strip() for v in values]
        # Drop trailing blanks so ragged sheets look like ragged CSV
        while row and row[-1] == "":
            row.pop()
        if any(c != "" for c in row):
            grid.append(row)
    return grid

def parse_json_text(text: str) -> ParsedTable:
    """
    Accepts a JSON array of objects, an object wrapping that array under
    one of JSON_WRAPPER_KEYS, or a single object.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise FormatError(f"Invalid JSON format: {e.msg} (line {e.lineno})") from e

    records: Any
    if isinstance(data, list):
        records = data
    elif isinstance(data, dict):
        records = next(
            (data[k] for k in JSON_WRAPPER_KEYS if isinstance(data.get(k), list)),
            [data],
        )
    else:
        raise FormatError("JSON must contain an object or an array of objects")

    objects: List[Dict[str, Any]] = []
    for i, item in enumerate(records):
        if not isinstance(item, dict):
            raise FormatError(f"JSON entry {i + 1} is not an object")
        objects.append(item)

    return ParsedTable.from_records(objects)
