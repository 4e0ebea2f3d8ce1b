from typing import List, Optional
from pydantic import BaseModel, Field

class ErrorResponse(BaseModel):
    detail: str
    # Exception class name, e.g. "ConcurrencyError"
    code: Optional[str] = None
    missing_fields: List[str] = Field(default_factory=list)
