"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for the internal send and burst endpoints
- Response models for API responses

The Telnyx webhook body is not modelled here: its from/to fields come in
several shapes and are normalized in inbound.py.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Pydantic Request Models
# =============================================================================

class BurstRequest(BaseModel):
    """Body of POST /sendBurstSMS."""
    org_id: Optional[str] = Field(
        None,
        description="Organization whose queued texts should be sent"
    )


class SendRequest(BaseModel):
    """
    Body of POST /sendSMS and /sendMMS.

    'from' is a reserved word in Python, so the field is aliased.
    """
    to: Optional[Union[str, list[str]]] = Field(
        None, description="Recipient phone number (E.164), or a list sent one message each"
    )
    from_number: Optional[str] = Field(None, alias="from", description="Sending number (E.164)")
    text: Optional[str] = Field(None, description="Message body")
    media_urls: Optional[list[str]] = Field(None, alias="mediaUrls", description="MMS media URLs")

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {"to": "+15551230000", "from": "+15559870000", "text": "Hello"}
            ]
        }
    }

    @property
    def is_mms(self) -> bool:
        return bool(self.media_urls)

    def has_required_fields(self) -> bool:
        return bool(self.to and self.from_number and self.text)


class GroupMmsRequest(BaseModel):
    """Body of POST /sendGroupMMS: one call addressed to several recipients."""
    to: list[str] = Field(..., min_length=1, max_length=8, description="Recipients (max 8)")
    from_number: str = Field(..., alias="from", min_length=1)
    text: str = Field(..., min_length=1)
    media_urls: Optional[list[str]] = Field(None, alias="mediaUrls")

    model_config = {"populate_by_name": True}

    @field_validator("to")
    @classmethod
    def validate_recipients(cls, v: list[str]) -> list[str]:
        if any(not number for number in v):
            raise ValueError("to must not contain empty numbers")
        return v


# =============================================================================
# Pydantic Response Models
# =============================================================================

class BurstCounts(BaseModel):
    processed: int = Field(..., ge=0)
    sent: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)


class BurstResponse(BaseModel):
    ok: bool = True
    data: BurstCounts


class SendResponse(BaseModel):
    ok: bool = True
    data: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Error body for the internal endpoints."""
    ok: bool = False
    error: str = Field(..., description="Error description")


class InboundAck(BaseModel):
    """Fixed acknowledgment for the Telnyx webhook."""
    received: bool = True


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
