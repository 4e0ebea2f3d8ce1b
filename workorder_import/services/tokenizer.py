"""
Hand-rolled delimited-text tokenizer.

A single left-to-right scan with an ``in_quotes`` flag. Outside quotes a ``"``
opens quoting, the delimiter ends a cell and ``\\n``, ``\\r\\n`` or ``\\r``
ends a row. Inside quotes ``""`` is a literal quote, a lone ``"`` closes
quoting and everything else (delimiters and newlines included) is cell
content. Cells are trimmed and all-blank rows are dropped.
"""
from typing import List

from workorder_import.core.exceptions import FormatError
from workorder_import.models.mapping import ParsedTable

BOM = "\ufeff"

def tokenize(text: str, delimiter: str = ",") -> List[List[str]]:
    if len(delimiter) != 1:
        raise FormatError(f"Delimiter must be a single character, got {delimiter!r}")

    if text.startswith(BOM):
        text = text[1:]

    rows: List[List[str]] = []
    row: List[str] = []
    cell: List[str] = []
    in_quotes = False

    def end_row():
        row.append("".join(cell).strip())
        cell.clear()
        if any(c != "" for c in row):
            rows.append(list(row))
        row.clear()

    i = 0
    n = len(text)
    while i < n:
        char = text[i]

        if in_quotes:
            if char == '"':
                if i + 1 < n and text[i + 1] == '"':
                    cell.append('"')
                    i += 1
                else:
                    in_quotes = False
            else:
                cell.append(char)
        elif char == '"':
            in_quotes = True
        elif char == delimiter:
            row.append("".join(cell).strip())
            cell.clear()
        elif char == "\n":
            end_row()
        elif char == "\r":
            end_row()
            # \r\n is one row break
            if i + 1 < n and text[i + 1] == "\n":
                i += 1
        else:
            cell.append(char)
        i += 1

    # Flush whatever is pending at end of input
    if cell or row:
        end_row()

    return rows

def parse(text: str, delimiter: str = ",", has_header: bool = True) -> ParsedTable:
    return ParsedTable.from_grid(tokenize(text, delimiter), has_header=has_header)
