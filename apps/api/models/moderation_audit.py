"""ModerationAuditLog model for admin actions."""

import uuid

from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.sql import func

from database import Base


class ModerationAuditLog(Base):
    """One row per privileged action taken by an admin."""

    __tablename__ = "moderation_audit_log"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    actor_id = Column(String, nullable=True)
    actor_email = Column(String, nullable=True)
    action = Column(String, nullable=False, index=True)  # GRANT_TOKENS, RESET_TOKENS
    subject_type = Column(String, nullable=False)
    subject_id = Column(String, nullable=False, index=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
