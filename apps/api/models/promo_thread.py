"""PromoThread model for published generated conversations."""

import uuid

from sqlalchemy import Column, DateTime, JSON, String, Text
from sqlalchemy.sql import func

from database import Base


class PromoThread(Base):
    """Generated forum-style thread about a single product."""

    __tablename__ = "promo_threads"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    product_name = Column(String, nullable=False)  # displayed as the thread title
    source_url = Column(String, nullable=True)
    affiliate_url = Column(String, nullable=True)
    key_features = Column(Text, nullable=False, default="")
    og_image_url = Column(String, nullable=True)
    cast_profiles = Column(JSON, nullable=False, default=list)
    transcript = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
