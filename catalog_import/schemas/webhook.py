"""Audit webhook request and response schemas."""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

AuditEvent = Literal[
    "import.parsed",
    "import.committed",
    "import.commit_failed",
    "import.undone",
]


def _check_url(value: Optional[str]) -> Optional[str]:
    if value is not None and not value.startswith(("http://", "https://")):
        raise ValueError("url must start with http:// or https://")
    return value


class WebhookBase(BaseModel):
    """Base webhook schema."""

    url: str = Field(..., min_length=1, max_length=2048)
    event_type: AuditEvent
    enabled: bool = True

    @field_validator("url")
    @classmethod
    def validate_url(cls, value):
        return _check_url(value)


class WebhookCreate(WebhookBase):
    """Schema for creating a webhook."""

    pass


class WebhookUpdate(BaseModel):
    """Schema for updating a webhook."""

    url: Optional[str] = Field(None, min_length=1, max_length=2048)
    event_type: Optional[AuditEvent] = None
    enabled: Optional[bool] = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, value):
        return _check_url(value)


class WebhookResponse(WebhookBase):
    """Schema for webhook responses."""

    id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class WebhookTestResponse(BaseModel):
    """Result of delivering a sample audit event."""

    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    response_time: Optional[float] = None
