"""UserToken model holding one token balance per subject."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from database import Base


class UserToken(Base):
    """Current token balance for a (subject_id, subject_type) pair."""

    __tablename__ = "user_tokens"
    __table_args__ = (
        UniqueConstraint("user_id", "user_type", name="uq_user_tokens_subject"),
        CheckConstraint("balance >= 0", name="ck_user_tokens_balance_non_negative"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    user_type = Column(String, nullable=False)  # third_party, anonymous
    balance = Column(Integer, nullable=False, default=0)
    last_awarded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
