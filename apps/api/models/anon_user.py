"""AnonUser model for locally-issued anonymous accounts."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func
import uuid

from database import Base


class AnonUser(Base):
    """Anonymous account with its cosmetic profile."""

    __tablename__ = "anon_users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    # Always stored lowercase with the reserved prefix.
    username = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    previous_usernames = Column(JSON, nullable=False, default=list)

    username_color = Column(String, nullable=True)
    username_color_gradient = Column(JSON, nullable=True)
    purchased_solid_colors = Column(JSON, nullable=False, default=list)
    purchased_gradient_colors = Column(JSON, nullable=False, default=list)
    purchased_gradient_color_slots = Column(Integer, nullable=False, default=0)
    animated_gradient_enabled = Column(Boolean, nullable=False, default=False)
    gif_profile_enabled = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
