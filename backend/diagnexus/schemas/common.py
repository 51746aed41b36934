from pydantic import BaseModel
from typing import Any, Optional


class ApiResponse(BaseModel):
    """Envelope returned by every JSON endpoint."""
    success: bool
    data: Optional[Any] = None
    message: Optional[str] = None


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    return ApiResponse(success=True, data=data, message=message).model_dump(mode="json", exclude_none=True)
