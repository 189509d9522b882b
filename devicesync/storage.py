import logging
from datetime import datetime
from typing import Generator, List, Optional, Sequence

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from devicesync.config import settings
from devicesync.metrics import record_sync_batch
from devicesync.utils import parse_timestamp, utc_now

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False},
    echo=False,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()

# Upper bound on rows returned by the message read path
MESSAGES_QUERY_LIMIT = 1000


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from devicesync.models import IMessage, Screenshot  # noqa: F401

        logger.debug("Creating database tables...")
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
        True if DB is healthy and the imessages table exists, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            logger.debug("Database connectivity OK")

            if not inspect(db.get_bind()).has_table("imessages"):
                logger.error("Database schema not applied: 'imessages' table not found")
                return False
        logger.debug("Database health check passed")
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# iMessage Repository Functions
# =============================================================================

def _to_row(message, device_id: str, sync_time: datetime, user_id: str, created_at: datetime) -> dict:
    """Map a ValidatedMessage to an imessages row."""
    return {
        "user_id": user_id,
        "message_id": message.id,
        "guid": message.guid,
        "text": message.text,
        "contact": message.contact,
        "subject": message.subject,
        "date": parse_timestamp(message.date) if message.date else None,
        "is_from_me": 1 if message.is_from_me else 0,
        "is_read": 1 if message.is_read else 0,
        "is_sent": 1 if message.is_sent else 0,
        "is_delivered": 1 if message.is_delivered else 0,
        "has_attachments": 1 if message.has_attachments else 0,
        "service": message.service,
        "chat_id": message.chat_id,
        "chat_name": message.chat_name,
        "device_id": device_id,
        "sync_time": sync_time,
        "created_at": created_at,
    }


def _insert_chunk(db: Session, rows: List[dict]) -> list:
    """
    Bulk insert one chunk, skipping rows whose (user_id, guid) already exists.

    Returns:
        (id, message_id, guid) rows for the messages actually inserted
    """
    from devicesync.models import IMessage

    table = IMessage.__table__
    stmt = (
        sqlite_insert(table)
        .values(rows)
        .on_conflict_do_nothing(index_elements=["user_id", "guid"])
        .returning(table.c.id, table.c.message_id, table.c.guid)
    )
    inserted = db.execute(stmt).all()
    db.commit()
    return inserted


def insert_messages_in_batches(
    db: Session,
    messages: Sequence,
    device_id: str,
    sync_time: str,
    user_id: str,
    batch_size: Optional[int] = None,
) -> list:
    """
    Persist validated messages in fixed-size chunks (idempotent).

    Chunks are written one after another; each is committed on its own.
    Messages whose (user_id, guid) is already stored are skipped by the
    database rather than failing the chunk.

    Args:
        db: Database session
        messages: ValidatedMessage records, in input order
        device_id: Identifier of the syncing device
        sync_time: Client sync timestamp (ISO-8601)
        user_id: Owner of the messages
        batch_size: Maximum rows per insert (defaults to SYNC_BATCH_SIZE)

    Returns:
        (id, message_id, guid) rows for the newly inserted messages (duplicates excluded)

    Raises:
        SQLAlchemyError (or any other error) if a chunk fails; earlier chunks stay committed
    """
    batch_size = batch_size or settings.SYNC_BATCH_SIZE
    total_batches = (len(messages) + batch_size - 1) // batch_size
    sync_timestamp = parse_timestamp(sync_time)
    created_at = utc_now()

    inserted_messages = []
    for start in range(0, len(messages), batch_size):
        batch_number = start // batch_size + 1
        batch = messages[start:start + batch_size]
        rows = [_to_row(m, device_id, sync_timestamp, user_id, created_at) for m in batch]

        try:
            result = _insert_chunk(db, rows)
        except Exception as e:
            db.rollback()
            logger.error(
                f"Batch {batch_number}/{total_batches} failed after "
                f"{len(inserted_messages)} messages were inserted: {e}"
            )
            raise

        inserted_messages.extend(result)
        record_sync_batch()
        logger.info(
            f"Batch {batch_number}/{total_batches}: Inserted {len(result)} messages "
            f"({len(inserted_messages)} total)"
        )

    return inserted_messages


def get_messages(
    db: Session,
    user_id: str,
    after: Optional[datetime] = None,
    contact: Optional[str] = None,
    limit: int = MESSAGES_QUERY_LIMIT,
) -> list:
    """
    Retrieve a user's messages, oldest first.

    Args:
        db: Database session
        user_id: Owner of the messages
        after: Only messages dated at or after this time
        contact: Only messages exchanged with this contact (exact match)
        limit: Maximum number of rows

    Returns:
        List of IMessage rows ordered by date ASC, id ASC
    """
    from devicesync.models import IMessage

    logger.debug(f"Querying messages: user={user_id}, after={after}, contact={contact}")

    query = db.query(IMessage).filter(IMessage.user_id == user_id)

    if contact:
        query = query.filter(IMessage.contact == contact)

    if after is not None:
        query = query.filter(IMessage.date >= after)

    messages = query.order_by(IMessage.date.asc(), IMessage.id.asc()).limit(limit).all()
    logger.info(f"Retrieved {len(messages)} messages")

    return messages


# =============================================================================
# Screenshot Repository Functions
# =============================================================================

def get_latest_screenshots(
    db: Session,
    user_id: str,
    limit: int = 1,
    display_id: Optional[str] = None,
) -> list:
    """
    Retrieve a user's most recent screenshots, newest first.

    Args:
        db: Database session
        user_id: Owner of the screenshots
        limit: Maximum number of rows (1-100)
        display_id: Only screenshots from this display
    """
    from devicesync.models import Screenshot

    query = db.query(Screenshot).filter(Screenshot.user_id == user_id)

    if display_id:
        query = query.filter(Screenshot.display_id == display_id)

    screenshots = query.order_by(Screenshot.timestamp.desc(), Screenshot.id.desc()).limit(limit).all()
    logger.debug(f"Retrieved {len(screenshots)} screenshots, display={display_id}")

    return screenshots
