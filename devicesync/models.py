"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint

from devicesync.storage import Base
from devicesync.utils import utc_now


class IMessage(Base):
    """
    A message synced from a mobile device.

    Table: imessages
    Unique: (user_id, guid) - a message is stored at most once per user
    """
    __tablename__ = "imessages"
    __table_args__ = (
        UniqueConstraint("user_id", "guid", name="uq_imessages_user_guid"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    message_id = Column(Integer, nullable=False)  # identifier on the source device
    guid = Column(String, nullable=False)
    text = Column(Text, nullable=True)
    contact = Column(String, nullable=False, index=True)
    subject = Column(Text, nullable=True)
    date = Column(DateTime, nullable=True, index=True)
    # Flags are stored as 0/1 integers
    is_from_me = Column(Integer, nullable=False)
    is_read = Column(Integer, nullable=False)
    is_sent = Column(Integer, nullable=False)
    is_delivered = Column(Integer, nullable=False)
    has_attachments = Column(Integer, nullable=False)
    service = Column(String, nullable=False)
    chat_id = Column(String, nullable=True)
    chat_name = Column(String, nullable=True)
    device_id = Column(String, nullable=False)
    sync_time = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)


class Screenshot(Base):
    """
    A screenshot captured on one of the user's displays.

    Table: screenshots
    """
    __tablename__ = "screenshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    display_id = Column(String, nullable=True, index=True)
    timestamp = Column(DateTime, nullable=False, index=True)
    image_url = Column(Text, nullable=False)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
