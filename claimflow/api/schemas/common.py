"""Common schemas for the ClaimFlow API."""

from typing import Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str
    code: Optional[str] = None


class SuccessResponse(BaseModel):
    """Standard success response."""
    message: str
    data: Optional[Any] = None


class MaintenanceReport(BaseModel):
    """Result of a batch repair operation."""
    inspected: int
    changed: int = 0
    dry_run: bool = False
