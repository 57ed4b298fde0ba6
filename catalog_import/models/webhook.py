"""Audit sink subscriptions for import lifecycle events."""
from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from catalog_import.database import Base


class Webhook(Base):
    """
    One audit subscription.

    Each row subscribes a single URL to a single import event
    (import.parsed, import.committed, import.commit_failed, import.undone).
    Disabled subscriptions are kept but skipped on delivery.
    """

    __tablename__ = "webhooks"

    id = Column(Integer, primary_key=True, index=True)
    # Receiver of the JSON POST {"event": ..., "data": ...}
    url = Column(String(2048), nullable=False)
    # One of services.audit.AUDIT_EVENTS
    event_type = Column(String(100), nullable=False, index=True)
    enabled = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )
