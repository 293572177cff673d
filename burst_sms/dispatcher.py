"""
Burst dispatcher: send every queued outbound message for one organization.

Messages go out strictly one at a time with a fixed gap between calls to
stay under the carrier's rate limit. A failed message is recorded on its
row and the run moves on; only a failing store query aborts the run.
"""

import logging
import time
from dataclasses import asdict, dataclass
from typing import Callable, Dict

from sqlalchemy.orm import Session

from burst_sms import storage
from burst_sms.metrics import record_burst_run
from burst_sms.sending import record_outcome, send_one

logger = logging.getLogger(__name__)

MESSAGE_DELAY_SECONDS = 0.15


@dataclass
class BurstResult:
    processed: int = 0
    sent: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def dispatch_burst(
    db: Session,
    org_id: str,
    gateway,
    sleep: Callable[[float], None] = time.sleep,
) -> BurstResult:
    """
    Drain the organization's queued outbound messages through the gateway.

    Args:
        db: Database session
        org_id: Organization whose queue to send (already validated by caller)
        gateway: object with send(to, from_, text) -> GatewayResponse
        sleep: delay function, applied between messages but not after the last

    Returns:
        BurstResult with processed == sent + failed

    Raises:
        StoreError: if the queued messages cannot be queried
    """
    logger.info("Burst start", extra={"org_id": org_id})

    rows = storage.query_queued_outbound(db, org_id)
    result = BurstResult()

    if not rows:
        logger.info("No queued texts to send", extra={"org_id": org_id, "count": 0})
        record_burst_run("empty")
        return result

    logger.info("Queued rows found", extra={"org_id": org_id, "count": len(rows)})

    for i, row in enumerate(rows):
        outcome = send_one(gateway, row)
        record_outcome(db, row, outcome)

        result.processed += 1
        if outcome.ok:
            result.sent += 1
            logger.info("Sent", extra={
                "lead_text_id": row.id, "to": row.number,
                "telnyx_message_id": outcome.gateway_message_id,
            })
        else:
            result.failed += 1
            logger.warning("Send failed", extra={
                "lead_text_id": row.id, "to": row.number, "error": outcome.error,
            })

        if i < len(rows) - 1:
            sleep(MESSAGE_DELAY_SECONDS)

    logger.info("Burst complete", extra={"org_id": org_id, **result.to_dict()})
    record_burst_run("completed")
    return result
