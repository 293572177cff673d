"""
Inbound reply processing for Telnyx "message.received" webhooks.

Flow for one event:
1. Outbound echoes and non-message events are acknowledged and dropped.
2. The sender is looked up as a lead; unknown senders are dropped.
3. The inbound text is stored on lead_texts.
4. STOP/END opts the lead out. A lead that already opted in or out gets
   no further handling.
5. On first contact the lead is opted in and, if the organization has a
   reply prompt, one auto-reply is queued and sent right away.
"""

import enum
import logging
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from burst_sms import storage
from burst_sms.metrics import record_inbound_outcome
from burst_sms.models import Direction, MessageStatus
from burst_sms.sending import record_outcome, send_one

logger = logging.getLogger(__name__)

MESSAGE_RECEIVED_EVENT = "message.received"
OPT_OUT_KEYWORDS = ("stop", "end")


class InboundOutcome(str, enum.Enum):
    IGNORED_OUTBOUND = "ignored_outbound"
    IGNORED_EVENT = "ignored_event"
    UNKNOWN_LEAD = "unknown_lead"
    MISSING_RECIPIENT = "missing_recipient"
    OPTED_OUT = "opted_out"
    ALREADY_DECIDED = "already_decided"
    NO_PROMPT = "no_prompt"
    AUTO_REPLY_SENT = "auto_reply_sent"
    AUTO_REPLY_FAILED = "auto_reply_failed"


def extract_phone_number(value: Any) -> Optional[str]:
    """
    Telnyx sends from/to as {"phone_number": ...}, a list of those, or a
    bare string. Returns the number or None.
    """
    if isinstance(value, dict):
        number = value.get("phone_number")
    elif isinstance(value, list):
        number = value[0].get("phone_number") if value and isinstance(value[0], dict) else None
    elif isinstance(value, str):
        number = value
    else:
        number = None
    return number or None


def _as_text(value: Any) -> str:
    """Message text as a string; missing or null text is ""."""
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def is_opt_out_message(text: Any) -> bool:
    return _as_text(text).strip().lower() in OPT_OUT_KEYWORDS


def _finish(outcome: InboundOutcome) -> InboundOutcome:
    record_inbound_outcome(outcome.value)
    return outcome


def process_inbound(
    db: Session,
    event: dict,
    gateway_factory: Callable[[], Any],
) -> InboundOutcome:
    """
    Classify and handle one inbound webhook event.

    Args:
        db: Database session
        event: parsed webhook body ({"data": {"event_type", "id", "payload"}})
        gateway_factory: builds the gateway client; only called when an
            auto-reply is due, and before anything is written

    Returns:
        What happened to the event. The caller acknowledges every outcome.

    Raises:
        StoreError: lead lookup, prompt lookup or record insert failed
        ConfigurationError: an auto-reply was due but no gateway could be
            built; nothing has been written at that point
    """
    data = event.get("data") if isinstance(event, dict) else None
    data = data if isinstance(data, dict) else {}
    payload = data.get("payload") if isinstance(data.get("payload"), dict) else {}

    event_type = data.get("event_type")
    direction = payload.get("direction")

    if direction == Direction.OUTBOUND.value:
        logger.info("Ignoring outbound message")
        return _finish(InboundOutcome.IGNORED_OUTBOUND)

    from_number = extract_phone_number(payload.get("from"))
    to_number = extract_phone_number(payload.get("to"))
    text = _as_text(payload.get("text"))
    message_id = payload.get("id") or data.get("id")

    logger.info("Webhook received", extra={
        "event_type": event_type, "from": from_number, "to": to_number, "direction": direction,
    })

    if event_type != MESSAGE_RECEIVED_EVENT:
        logger.info("Ignoring non-message event", extra={"event_type": event_type})
        return _finish(InboundOutcome.IGNORED_EVENT)

    lead = storage.find_lead_by_phone(db, from_number)
    if lead is None:
        logger.warning("No lead found for number", extra={"number": from_number})
        return _finish(InboundOutcome.UNKNOWN_LEAD)

    if not to_number:
        logger.error("Missing gateway number (to); cannot store inbound message",
                     extra={"lead_id": lead.id})
        return _finish(InboundOutcome.MISSING_RECIPIENT)

    # Reads and gateway setup happen before the first write.
    opted_out = is_opt_out_message(text)
    opt_in_state = lead.opt_in_state
    reply_message = None
    gateway = None
    if not opted_out and not opt_in_state.is_decided:
        reply_message = storage.get_reply_prompt(db, lead.org_id)
        if reply_message:
            gateway = gateway_factory()

    storage.insert_message(
        db,
        org_id=lead.org_id,
        lead_id=lead.id,
        number=from_number,
        from_number=to_number,
        message=text,
        direction=Direction.INBOUND.value,
        status=MessageStatus.RECEIVED.value,
        telnyx_message_id=message_id,
    )

    if opted_out:
        storage.update_opt_in(db, lead.id, False)
        logger.info("Opt-out processed", extra={"lead_id": lead.id})
        return _finish(InboundOutcome.OPTED_OUT)

    if opt_in_state.is_decided:
        logger.info("Lead already has opt_in set",
                    extra={"lead_id": lead.id, "opt_in": opt_in_state.value})
        return _finish(InboundOutcome.ALREADY_DECIDED)

    storage.update_opt_in(db, lead.id, True)

    if not reply_message:
        logger.warning("No reply_message for org", extra={"org_id": lead.org_id})
        return _finish(InboundOutcome.NO_PROMPT)

    reply = storage.insert_message(
        db,
        org_id=lead.org_id,
        lead_id=lead.id,
        number=from_number,
        from_number=to_number,
        message=reply_message,
        direction=Direction.OUTBOUND.value,
        status=MessageStatus.QUEUED.value,
    )

    outcome = send_one(gateway, reply)
    record_outcome(db, reply, outcome)

    if outcome.ok:
        logger.info("Auto-reply sent", extra={
            "lead_text_id": reply.id, "telnyx_message_id": outcome.gateway_message_id,
        })
        return _finish(InboundOutcome.AUTO_REPLY_SENT)

    logger.warning("Auto-reply send failed", extra={"lead_text_id": reply.id, "error": outcome.error})
    return _finish(InboundOutcome.AUTO_REPLY_FAILED)
