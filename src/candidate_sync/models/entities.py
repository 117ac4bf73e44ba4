"""
Persisted entities of the candidate sync engine.

Candidate is the central record: one per external opportunity id, carrying a
current-state projection (stage, state, owner) that is reconciled from the
append-only logs below it:
- StageHistoryEntry: one row per asserted stage transition
- OwnershipChangeEntry: one row per actual owner change
- TerminalStateEntry: one row per (candidate, terminal state), re-asserted in place

Contact and User are read-only from the reconcilers' perspective; Contact rows
are written by contact lifecycle events only.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from ..utils import utc_now, uuid7


class CandidateState(str, Enum):
    """Lifecycle state of a candidate. LOST and ABANDONED are terminal-ish."""

    OPEN = 'OPEN'
    LOST = 'LOST'
    ABANDONED = 'ABANDONED'


class HistorySource(str, Enum):
    """Who asserted a stage transition."""

    SYSTEM = 'SYSTEM'  # engine-derived initial stage on creation
    WEBHOOK = 'WEBHOOK'  # externally reported transition


class AppointmentKind(str, Enum):
    """Appointment kind inferred from its title."""

    PRESENTATION = 'PRESENTATION'
    SITE_VISIT = 'SITE_VISIT'


# Candidate profile columns that opportunity events may overwrite.
CANDIDATE_PROFILE_FIELDS = (
    'full_name',
    'email',
    'phone',
    'interest_level',
    'client_type',
    'product',
    'project',
    'payment_method',
)

# Contact profile columns that contact events may overwrite.
CONTACT_PROFILE_FIELDS = (
    'full_name',
    'phone',
    'email',
    'identity_document',
    'marital_status',
    'district',
    'profession',
    'lead_source',
    'source_detail',
    'birth_date',
)


class User(BaseModel):
    """Internal actor mapped 1:1 to an external CRM user id."""

    id: UUID
    external_user_id: str
    name: str | None = None
    email: str | None = None


class Contact(BaseModel):
    """A person, independent of any specific pipeline opportunity."""

    id: UUID = Field(default_factory=uuid7)
    external_contact_id: str = Field(..., description='CRM contact id (unique)')
    full_name: str | None = None
    phone: str | None = None
    email: str | None = None
    identity_document: str | None = None
    marital_status: str | None = None
    district: str | None = None
    profession: str | None = None
    lead_source: str | None = None
    source_detail: str | None = None
    birth_date: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def profile(self) -> dict[str, Any]:
        """Non-empty profile fields keyed by column name."""
        return {
            name: getattr(self, name)
            for name in CONTACT_PROFILE_FIELDS
            if getattr(self, name) is not None
        }


class Candidate(BaseModel):
    """
    A prospect tracked through a sales pipeline.

    At most one Candidate exists per external opportunity id. Candidates are
    never hard-deleted; LOST and ABANDONED are recorded as state.
    """

    id: UUID = Field(default_factory=uuid7, description='Internal id (UUIDv7)')
    external_opportunity_id: str | None = Field(
        default=None, description='CRM opportunity id (unique when present)'
    )
    external_pipeline_id: str | None = None
    current_stage: str | None = Field(default=None, description='Free-form stage label')
    stage_changed_at: datetime | None = None
    state: CandidateState = Field(default=CandidateState.OPEN)
    current_owner_id: UUID | None = Field(default=None, description='users.id')
    contact_id: UUID | None = Field(default=None, description='contacts.id')

    # Profile
    full_name: str | None = None
    email: str | None = None
    phone: str | None = None
    interest_level: str | None = None
    client_type: str | None = None
    product: str | None = None
    project: str | None = None
    payment_method: str | None = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class StageHistoryEntry(BaseModel):
    """
    Immutable record of one stage transition.

    external_opportunity_id is denormalized so the latest entry can be found
    before the candidate reference is resolved.
    """

    id: UUID = Field(default_factory=uuid7)
    candidate_id: UUID
    external_opportunity_id: str | None = None
    from_stage: str | None = None
    to_stage: str
    occurred_at: datetime = Field(..., description='When the transition is asserted to have happened')
    source: HistorySource
    actor_id: UUID | None = None
    recorded_at: datetime = Field(default_factory=utc_now)


class OwnershipChangeEntry(BaseModel):
    """Immutable record of an owner change. Only written when the owner differs."""

    id: UUID = Field(default_factory=uuid7)
    candidate_id: UUID
    previous_owner_id: UUID | None = None
    new_owner_id: UUID
    changed_by_id: UUID
    changed_at: datetime = Field(default_factory=utc_now)


class TerminalStateEntry(BaseModel):
    """Audit row for a terminal transition, keyed by (candidate_id, state)."""

    id: UUID = Field(default_factory=uuid7)
    candidate_id: UUID
    state: CandidateState
    reason: str | None = None
    stage_at_transition: str | None = None
    occurred_at: datetime = Field(default_factory=utc_now)


class Note(BaseModel):
    """A free-text note attached to a contact (and its candidate, when known)."""

    id: UUID = Field(default_factory=uuid7)
    contact_id: UUID
    candidate_id: UUID | None = None
    author_id: UUID | None = None
    body: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


class Appointment(BaseModel):
    """A scheduled appointment linked to a candidate."""

    id: UUID = Field(default_factory=uuid7)
    candidate_id: UUID
    external_appointment_id: str
    kind: AppointmentKind | None = None
    title: str | None = None
    starts_at: datetime
    created_at: datetime = Field(default_factory=utc_now)
