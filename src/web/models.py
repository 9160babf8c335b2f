"""Pydantic request/response schemas for the web API."""

from typing import Any, Optional

from pydantic import BaseModel, Field

# --- Locale history ---


class DetectionCreate(BaseModel):
    locale: str = Field(..., min_length=1, max_length=16)
    source: str = Field(..., min_length=1, max_length=64)
    # Out-of-range values are clamped by the store, not rejected
    confidence: float
    metadata: Optional[dict[str, Any]] = None


class HistoryImport(BaseModel):
    data: dict[str, Any]


class OverrideUpdate(BaseModel):
    locale: str = Field(..., min_length=1, max_length=16)


class MaintenanceRequest(BaseModel):
    cleanup_expired: bool = True
    cleanup_duplicates: bool = True
    cleanup_invalid: bool = True
    validate_data: bool = True
    fix_sync_issues: bool = True
    compact_storage: bool = False


class OperationResponse(BaseModel):
    success: bool
    timestamp: int
    data: Any = None
    error: Optional[str] = None
    source: Optional[str] = None
    response_time: Optional[float] = None


# --- WhatsApp ---


class TextMessage(BaseModel):
    to: str = Field(..., min_length=5, max_length=20)
    body: str = Field(..., min_length=1, max_length=4096)
