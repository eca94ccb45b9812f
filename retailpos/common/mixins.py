"""
Common mixins for models
"""
from sqlalchemy import Column, DateTime, Integer, Uuid
from sqlalchemy.sql import func
from uuid import uuid4


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class UUIDPrimaryKeyMixin:
    """UUID primary key generated client side"""

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4, index=True)


class VersionedMixin:
    """Row version bumped on every counter write; writers compare it before committing"""

    version = Column(Integer, nullable=False, default=0, server_default="0")
