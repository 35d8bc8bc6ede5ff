"""Subscriber model (self-service email sign-up)."""

import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Subscriber(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "subscribers"
    __table_args__ = (
        sa.UniqueConstraint("organization_id", "email", name="uq_subscribers_org_email"),
    )

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    email: str = Field(nullable=False)
