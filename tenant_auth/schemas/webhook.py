"""Schemas for signed webhook deliveries."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WebhookEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    resource_url: Optional[str] = Field(None, alias="resourceUrl")
    resource_id: Optional[str] = Field(None, alias="resourceId")
    tenant_id: Optional[str] = Field(None, alias="tenantId")
    tenant_type: Optional[str] = Field(None, alias="tenantType")
    event_category: Optional[str] = Field(None, alias="eventCategory")
    event_type: Optional[str] = Field(None, alias="eventType")
    event_date_utc: Optional[datetime] = Field(None, alias="eventDateUtc")


class WebhookPayload(BaseModel):
    """Envelope for a batch of webhook events."""

    model_config = ConfigDict(populate_by_name=True)

    events: List[WebhookEvent] = Field(default_factory=list)
    first_event_sequence: Optional[int] = Field(None, alias="firstEventSequence")
    last_event_sequence: Optional[int] = Field(None, alias="lastEventSequence")
    entropy: Optional[str] = None


__all__ = ["WebhookEvent", "WebhookPayload"]
