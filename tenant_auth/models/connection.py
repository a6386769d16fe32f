"""
Models for the organisations (tenants) a principal has authorised.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Tenant(BaseModel):
    """A connection between the OAuth app and one tenant."""

    model_config = ConfigDict(populate_by_name=True)

    id: uuid.UUID = Field(..., description="Connection identifier.")
    tenant_id: uuid.UUID = Field(..., alias="tenantId")
    tenant_type: str = Field("", alias="tenantType")
    tenant_name: Optional[str] = Field(None, alias="tenantName")
    created_at: Optional[datetime] = Field(None, alias="createdDateUtc")
    updated_at: Optional[datetime] = Field(None, alias="updatedDateUtc")


__all__ = ["Tenant"]
