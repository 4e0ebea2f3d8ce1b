import re
from typing import Callable, Optional

from workorder_import.core.config import settings

FilenamePredicate = Callable[[str], bool]

def glob_to_regex(pattern: str) -> str:
    """
    Translates a filename glob into an anchored regex.
    `*` matches any run of characters (including none), `?` exactly one;
    everything else is literal.
    """
    parts = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return "^" + "".join(parts) + "$"

def compile_pattern(pattern: Optional[str], case_sensitive: Optional[bool] = None) -> FilenamePredicate:
    """
    Returns a predicate matching whole filenames against `pattern`.
    An empty or missing pattern matches every filename.
    """
    if not pattern or not pattern.strip():
        return lambda filename: True

    if case_sensitive is None:
        case_sensitive = settings.GLOB_CASE_SENSITIVE

    flags = re.DOTALL if case_sensitive else re.DOTALL | re.IGNORECASE
    regex = re.compile(glob_to_regex(pattern.strip()), flags)
    return lambda filename: regex.fullmatch(filename or "") is not None
