"""Confession post and comment models.

Only the author columns matter to this service; username changes are
propagated onto them.
"""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.sql import func

from database import Base


class ConfessionPost(Base):
    __tablename__ = "confessions_posts"
    __table_args__ = (Index("ix_confessions_posts_author", "user_id", "user_type"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False)
    user_type = Column(String, nullable=False)
    username = Column(String, nullable=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ConfessionComment(Base):
    __tablename__ = "confessions_comments"
    __table_args__ = (Index("ix_confessions_comments_author", "user_id", "user_type"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    post_id = Column(String, ForeignKey("confessions_posts.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False)
    user_type = Column(String, nullable=False)
    username = Column(String, nullable=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
