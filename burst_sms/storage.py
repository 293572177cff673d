import logging
from typing import Generator, Optional

from sqlalchemy import create_engine, inspect, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from burst_sms.config import get_settings
from burst_sms.exceptions import StoreError

logger = logging.getLogger(__name__)

_database_url = get_settings().DATABASE_URL

# check_same_thread=False is required for SQLite when sessions cross FastAPI's threadpool
engine = create_engine(
    _database_url,
    connect_args={"check_same_thread": False} if _database_url.startswith("sqlite") else {},
    pool_pre_ping=True,
    echo=False,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

REQUIRED_TABLES = ("lead_texts", "leads", "lead_text_prompt")


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug("Initializing database")
    try:
        # Import models to register them with Base.metadata
        from burst_sms import models  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and all tables exist, False otherwise.
    """
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        inspector = inspect(engine)
        missing = [name for name in REQUIRED_TABLES if not inspector.has_table(name)]
        if missing:
            logger.error(f"Database schema not applied: missing tables {missing}")
            return False
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Message Record Store
# =============================================================================

def query_queued_outbound(db: Session, org_id: str) -> list:
    """
    All outbound records for an organization still waiting to be sent.

    Raises:
        StoreError: if the query fails. Callers must not send anything then.
    """
    from burst_sms.models import Direction, MessageRecord, MessageStatus

    stmt = (
        select(MessageRecord)
        .where(
            MessageRecord.org_id == org_id,
            MessageRecord.direction == Direction.OUTBOUND.value,
            MessageRecord.status == MessageStatus.QUEUED.value,
        )
        .order_by(MessageRecord.id.asc())
    )
    try:
        return list(db.scalars(stmt).all())
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(str(e)) from e


def insert_message(
    db: Session,
    *,
    org_id: str,
    lead_id: Optional[int],
    number: str,
    from_number: str,
    message: str,
    direction: str,
    status: str,
    telnyx_message_id: Optional[str] = None,
    error: Optional[str] = None,
):
    """
    Insert a new message record and return it (with its id assigned).

    Raises:
        StoreError: if the insert fails.
    """
    from burst_sms.models import MessageRecord

    record = MessageRecord(
        org_id=org_id,
        lead_id=lead_id,
        number=number,
        from_number=from_number,
        message=message,
        direction=direction,
        status=status,
        telnyx_message_id=telnyx_message_id,
        error=error,
    )
    try:
        db.add(record)
        db.commit()
        db.refresh(record)
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(str(e)) from e

    logger.debug(f"Inserted {direction} record {record.id} for org {org_id}")
    return record


def update_message_status(
    db: Session,
    record_id: int,
    status: str,
    telnyx_message_id: Optional[str],
    error: Optional[str],
) -> bool:
    """
    Move a queued record to its terminal status.

    The write only applies while the record is still queued, so repeating
    it (or racing another writer) leaves the first outcome in place.

    Returns:
        True if the record was updated, False if it had already left queued.
    """
    from burst_sms.models import MessageRecord, MessageStatus

    stmt = (
        update(MessageRecord)
        .where(
            MessageRecord.id == record_id,
            MessageRecord.status == MessageStatus.QUEUED.value,
        )
        .values(status=status, telnyx_message_id=telnyx_message_id, error=error)
        .execution_options(synchronize_session=False)
    )
    try:
        result = db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(str(e)) from e

    updated = result.rowcount == 1
    if not updated:
        logger.warning(f"Record {record_id} was no longer queued; status {status} not applied")
    return updated


# =============================================================================
# Lead Store
# =============================================================================

def find_lead_by_phone(db: Session, phone: Optional[str]):
    """Return the first lead with this phone number, or None."""
    from burst_sms.models import Lead

    if not phone:
        return None
    try:
        return db.scalars(select(Lead).where(Lead.phone == phone).limit(1)).first()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(str(e)) from e


def update_opt_in(db: Session, lead_id: int, opted_in: bool) -> None:
    from burst_sms.models import Lead

    try:
        db.execute(
            update(Lead)
            .where(Lead.id == lead_id)
            .values(opt_in=opted_in)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(str(e)) from e


def update_message_status_if_queued(db: Session, lead_id: int, new_status: str) -> bool:
    """
    Compare-and-set on Lead.message_status: only rows currently 'queued'
    change. Returns whether a row was updated.
    """
    from burst_sms.models import Lead, LeadMessageStatus

    stmt = (
        update(Lead)
        .where(Lead.id == lead_id, Lead.message_status == LeadMessageStatus.QUEUED.value)
        .values(message_status=new_status)
        .execution_options(synchronize_session=False)
    )
    try:
        result = db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(str(e)) from e
    return result.rowcount == 1


# =============================================================================
# Reply Prompt Lookup
# =============================================================================

def get_reply_prompt(db: Session, org_id: str) -> Optional[str]:
    """Configured auto-reply text for an organization, or None if unset/blank."""
    from burst_sms.models import ReplyPrompt

    try:
        prompt = db.scalars(
            select(ReplyPrompt).where(ReplyPrompt.org_id == org_id).limit(1)
        ).first()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(str(e)) from e

    if prompt is None or not (prompt.reply_message or "").strip():
        return None
    return prompt.reply_message
