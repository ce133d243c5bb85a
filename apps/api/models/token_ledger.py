"""TokenLedgerEntry model recording every balance movement."""

import uuid

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from database import Base


class TokenLedgerEntry(Base):
    """Immutable token ledger entry."""

    __tablename__ = "token_ledger"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    user_type = Column(String, nullable=False)
    entry_type = Column(String, nullable=False)  # daily_reward, admin_grant, admin_reset, purchase
    delta_tokens = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=True)
    feature = Column(String, nullable=True)
    reason = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
