"""
Send one queued message and record the result.

Shared by the burst dispatcher and the inbound auto-reply so both treat a
gateway success or failure the same way.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests
from sqlalchemy.orm import Session

from burst_sms import storage
from burst_sms.exceptions import GatewayTransportError, StoreError
from burst_sms.metrics import record_gateway_send
from burst_sms.models import LeadMessageStatus, MessageStatus

logger = logging.getLogger(__name__)

UNKNOWN_ERROR = "Unknown error"
REQUEST_FAILED = "Request failed"


@dataclass(frozen=True)
class SendOutcome:
    status: MessageStatus
    gateway_message_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is MessageStatus.SENT

    @classmethod
    def sent(cls, gateway_message_id: Optional[str]) -> "SendOutcome":
        return cls(MessageStatus.SENT, gateway_message_id, None)

    @classmethod
    def failed(cls, error: Optional[str]) -> "SendOutcome":
        return cls(MessageStatus.FAILED, None, error or UNKNOWN_ERROR)


def extract_gateway_message_id(data: Any) -> Optional[str]:
    """
    Find the carrier's message id in a send response.

    Checked in order: data.data.id (single send), data.id, then
    data.messages[0].id (multi-recipient send). First non-null wins.
    """
    if not isinstance(data, dict):
        return None

    inner = data.get("data")
    if isinstance(inner, dict) and inner.get("id") is not None:
        return str(inner["id"])

    if data.get("id") is not None:
        return str(data["id"])

    messages = data.get("messages")
    if isinstance(messages, list) and messages and isinstance(messages[0], dict):
        if messages[0].get("id") is not None:
            return str(messages[0]["id"])

    return None


def send_one(gateway, record) -> SendOutcome:
    """
    Hand one outbound record to the gateway and normalize the result.

    Never raises for per-message problems: carrier rejections and transport
    faults both come back as a failed outcome.
    """
    try:
        resp = gateway.send(to=record.number, from_=record.from_number, text=record.message)
    except (GatewayTransportError, requests.RequestException) as e:
        outcome = SendOutcome.failed(str(e) or REQUEST_FAILED)
    else:
        if resp.ok:
            outcome = SendOutcome.sent(extract_gateway_message_id(resp.data))
        else:
            outcome = SendOutcome.failed(resp.error)

    record_gateway_send(outcome.status.value)
    return outcome


def record_outcome(db: Session, record, outcome: SendOutcome) -> bool:
    """
    Persist a send outcome on its record. On success the lead's
    message_status is also moved queued -> sent when it is still queued.

    The message has already gone to the carrier at this point, so a failed
    write is logged rather than raised; the caller keeps counting.

    Returns:
        True if the outcome was written.
    """
    try:
        written = storage.update_message_status(
            db,
            record.id,
            status=outcome.status.value,
            telnyx_message_id=outcome.gateway_message_id,
            error=outcome.error,
        )
        if outcome.ok and record.lead_id:
            storage.update_message_status_if_queued(db, record.lead_id, LeadMessageStatus.SENT.value)
    except StoreError as e:
        logger.error("Failed to record send outcome", extra={
            "lead_text_id": record.id, "status": outcome.status.value, "error": str(e),
        })
        return False
    return written
