"""Topic queue model for operator-submitted product URLs."""

from sqlalchemy import Column, String, DateTime, Text
from sqlalchemy.sql import func
import uuid

from database import Base


class TopicQueueItem(Base):
    """One product URL waiting for automated thread creation."""

    __tablename__ = "topic_queue"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    url = Column(String, nullable=False)
    title = Column(String, nullable=True)
    affiliate_url = Column(String, nullable=True)
    affiliate_text = Column(Text, nullable=True)
    context = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="pending", index=True)  # pending, processing, done, error
    error_message = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
