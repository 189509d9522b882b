"""
Pydantic schemas for request/response validation.

This module contains:
- The sync request envelope
- The strict per-record model used to validate synced messages
- Response models for API responses

Wire format is camelCase; attributes are snake_case.
"""

from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from devicesync.utils import format_timestamp, parse_timestamp


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Pydantic Request Models
# =============================================================================

class SyncRequest(CamelModel):
    """
    Envelope of a POST /api/imessages request.

    Validates:
    - messages: a JSON array (elements are checked one by one later)
    - syncTime: ISO-8601 timestamp string
    - deviceId: string
    - messageCount: number, as declared by the client (advisory only)
    """
    model_config = ConfigDict(strict=True, populate_by_name=False)

    messages: List[Any] = Field(..., description="Raw message records")
    sync_time: str = Field(..., description="Client sync time (ISO-8601)")
    device_id: str = Field(..., description="Identifier of the syncing device")
    message_count: Union[int, float] = Field(..., description="Client-declared number of messages")

    @field_validator("sync_time")
    @classmethod
    def validate_sync_time(cls, v: str) -> str:
        try:
            parse_timestamp(v)
        except ValueError:
            raise ValueError("syncTime must be a valid ISO-8601 timestamp")
        return v


class ValidatedMessage(CamelModel):
    """
    A single synced message, type-checked field by field.

    Field order is the check order: the first failing field decides the
    rejection reason. No value is coerced, except that an integral JSON
    number such as 1.0 is read as the integer 1.
    text, subject and date must be present but may be null; chatId and
    chatName may also be omitted.
    """
    model_config = ConfigDict(strict=True, frozen=True, populate_by_name=False)

    id: int = Field(ge=-2**63, le=2**63 - 1)
    guid: str
    text: Optional[str]
    contact: str
    subject: Optional[str]
    date: Optional[str]
    is_from_me: bool
    is_read: bool
    is_sent: bool
    is_delivered: bool
    has_attachments: bool
    service: str
    chat_id: Optional[str] = None
    chat_name: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def integral_float_id(cls, v: Any) -> Any:
        if isinstance(v, float) and v.is_integer():
            return int(v)
        return v

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: Optional[str]) -> Optional[str]:
        # An empty date is stored as NULL
        if not v:
            return v
        try:
            parse_timestamp(v)
        except ValueError:
            raise ValueError("date must be an ISO-8601 timestamp or null")
        return v


# =============================================================================
# Pydantic Response Models
# =============================================================================

class SyncResponse(CamelModel):
    """Response model for POST /api/imessages."""
    success: bool = True
    message: str
    message_count: int = Field(..., ge=0, description="Messages newly stored")
    rejected_count: Optional[int] = Field(None, ge=0, description="Records that failed validation")
    skipped_count: Optional[int] = Field(None, ge=0, description="Duplicates already stored")
    synced_at: str = Field(..., description="Server time the response was built (ISO-8601)")


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    error: Any = Field(..., description="Error message or validation details")


class StoredMessageResponse(CamelModel):
    """A stored message as returned by GET /api/imessages."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    message_id: int
    guid: str
    text: Optional[str] = None
    contact: str
    subject: Optional[str] = None
    date: Optional[datetime] = None
    is_from_me: bool
    is_read: bool
    is_sent: bool
    is_delivered: bool
    has_attachments: bool
    service: str
    chat_id: Optional[str] = None
    chat_name: Optional[str] = None
    device_id: str
    sync_time: datetime
    created_at: datetime

    @field_serializer("date", "sync_time", "created_at")
    def serialize_timestamp(self, value: Optional[datetime]) -> Optional[str]:
        return format_timestamp(value)


class MessagesListResponse(CamelModel):
    """Response model for GET /api/imessages."""
    success: bool = True
    messages: List[StoredMessageResponse] = Field(default_factory=list)
    count: int = Field(..., ge=0)


class ScreenshotResponse(CamelModel):
    """A stored screenshot."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    display_id: Optional[str] = None
    timestamp: datetime
    image_url: str
    width: Optional[int] = None
    height: Optional[int] = None
    created_at: datetime

    @field_serializer("timestamp", "created_at")
    def serialize_timestamp(self, value: datetime) -> Optional[str]:
        return format_timestamp(value)


class ScreenshotsListResponse(CamelModel):
    """Response model for GET /api/screenshots/latest (newest first)."""
    success: bool = True
    count: int = Field(..., ge=0)
    screenshots: List[ScreenshotResponse] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
