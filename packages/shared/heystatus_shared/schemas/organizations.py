"""
Organization and subscriber schemas shared between server and clients.

Covers: Org create/update request/response and self-service subscriber
sign-up.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

SLUG_PATTERN = r"^[a-z0-9][a-z0-9-]*[a-z0-9]$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Organization display name")
    slug: str = Field(
        ...,
        min_length=2,
        max_length=50,
        pattern=SLUG_PATTERN,
        description="URL-safe org identifier",
    )


class OrgUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    slug: Optional[str] = Field(
        None,
        min_length=2,
        max_length=50,
        pattern=SLUG_PATTERN,
        description="New slug; uniqueness is re-validated",
    )


class SubscriberCreate(BaseModel):
    email: str = Field(..., max_length=320, pattern=EMAIL_PATTERN)

    @field_validator("email", mode="before")
    @classmethod
    def normalise_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SubscriberRead(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    email: str
    created_at: datetime

    model_config = {"from_attributes": True}
