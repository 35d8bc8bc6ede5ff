"""Organization model: the tenant that owns services, incidents and subscribers."""

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"
    __table_args__ = (
        # Public status URLs are keyed by slug; request schemas enforce the full pattern
        sa.CheckConstraint("slug = lower(slug)", name="ck_organizations_slug_lower"),
    )

    name: str = Field(nullable=False, index=True)
    slug: str = Field(unique=True, nullable=False, index=True)
