"""
Handler outcomes and reason codes.

Every handled event ends in exactly one status with an explicit reason. No-op
and skip conditions are successful outcomes, not exceptions.
"""

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

# Statuses
APPLIED = 'applied'
SKIPPED = 'skipped'
NO_OP = 'no-op'


class Reason:
    """Reason codes reported with every outcome."""

    # Stage reconciler
    CREATED = 'created'
    ALREADY_EXISTS = 'already-exists'
    STAGE_CHANGED = 'stage-changed'
    NO_STAGE_CHANGE = 'no-stage-change'
    DEBOUNCED_INITIAL_STAGE = 'debounced-initial-stage'
    CANDIDATE_NOT_FOUND = 'candidate-not-found'
    STATE_ASSERTED = 'state-asserted'

    # Ownership ledger
    OWNER_CHANGED = 'owner-changed'
    NO_OP = 'no-op'

    # Supplementary handlers
    FIELDS_UPDATED = 'fields-updated'
    NO_CHANGES = 'no-changes'
    CONTACT_UPSERTED = 'contact-upserted'
    CONTACT_NOT_FOUND = 'contact-not-found'
    NOTE_RECORDED = 'note-recorded'
    APPOINTMENT_RECORDED = 'appointment-recorded'


@dataclass
class HandlerOutcome:
    """What a single handler did with an event."""

    status: str
    reason: str
    candidate_id: UUID | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def applied(cls, reason: str, candidate_id: UUID | None = None, **details: Any) -> 'HandlerOutcome':
        return cls(APPLIED, reason, candidate_id, details)

    @classmethod
    def skipped(cls, reason: str, candidate_id: UUID | None = None, **details: Any) -> 'HandlerOutcome':
        return cls(SKIPPED, reason, candidate_id, details)

    @classmethod
    def no_op(cls, reason: str, candidate_id: UUID | None = None, **details: Any) -> 'HandlerOutcome':
        return cls(NO_OP, reason, candidate_id, details)
