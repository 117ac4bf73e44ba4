"""
Inbound event envelope and the normalized records extracted from it.

The CRM guarantees no schema: InboundEvent.payload is an arbitrary nested
mapping. The Field Resolver turns it into one of the typed records below,
where every field is optional unless the handler cannot work without it.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from ..utils import utc_now


class EventType(str, Enum):
    """CRM lifecycle notification types handled by the engine."""

    OPPORTUNITY_CREATED = 'opportunity-created'
    OPPORTUNITY_MODIFIED = 'opportunity-modified'
    STAGE_CHANGED = 'stage-changed'
    OWNER_CHANGED = 'owner-changed'
    OPPORTUNITY_LOST = 'opportunity-lost'
    OPPORTUNITY_ABANDONED = 'opportunity-abandoned'
    CONTACT_CREATED = 'contact-created'
    CONTACT_MODIFIED = 'contact-modified'
    NOTE_CREATED = 'note-created'
    APPOINTMENT_CREATED = 'appointment-created'


class InboundEvent(BaseModel):
    """An untyped payload plus the event-type tag assigned by the routing layer."""

    event_type: EventType
    payload: Any = Field(..., description='Raw webhook body; expected to be a JSON object')
    received_at: datetime = Field(default_factory=utc_now)
    trace_id: str | None = None


class IdentityHints(BaseModel):
    """External identifiers used to resolve a candidate, in priority order."""

    opportunity_id: str | None = None
    contact_id: str | None = None
    email: str | None = None
    phone: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.opportunity_id or self.contact_id or self.email or self.phone)


class OpportunityRecord(IdentityHints):
    """Normalized opportunity-created / opportunity-modified event."""

    pipeline_id: str | None = None
    owner_user_id: str | None = None
    status: str | None = None
    stage: str | None = None
    occurred_at: datetime | None = None
    profile: dict[str, str] = Field(default_factory=dict)


class StageChangeRecord(IdentityHints):
    """Normalized stage-changed event."""

    from_stage: str | None = None
    to_stage: str
    occurred_at: datetime | None = None
    actor_user_id: str | None = None


class OwnerChangeRecord(IdentityHints):
    """Normalized owner-changed event."""

    new_owner_user_id: str
    actor_user_id: str
    occurred_at: datetime | None = None


class TerminalStateRecord(IdentityHints):
    """Normalized opportunity-lost / opportunity-abandoned event."""

    reason: str | None = None
    stage: str | None = None
    occurred_at: datetime | None = None


class ContactRecord(BaseModel):
    """Normalized contact-created / contact-modified event."""

    contact_id: str
    profile: dict[str, str] = Field(default_factory=dict)


class NoteRecord(IdentityHints):
    """Normalized note-created event. contact_id is required by the handler."""

    author_user_id: str | None = None
    body: str | None = None
    occurred_at: datetime | None = None


class AppointmentRecord(IdentityHints):
    """Normalized appointment-created event."""

    appointment_id: str
    title: str | None = None
    starts_at: datetime | None = None
