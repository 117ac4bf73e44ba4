"""
Ownership ledger: compare-and-log owner changes.

Owns every OwnershipChangeEntry and every write to Candidate.current_owner_id.
An entry is only written when the resolved new owner differs from the stored
one, so redelivered owner changes never grow the ledger.
"""

from datetime import datetime

from ..errors import CandidateNotFoundError, UserNotFoundError
from ..logging import get_logger
from ..models.entities import OwnershipChangeEntry
from ..models.events import OwnerChangeRecord
from ..repository import CandidateRepository
from ..resolution.identity import IdentityResolver
from ..utils import utc_now
from .outcome import HandlerOutcome, Reason

logger = get_logger(__name__)


class OwnershipLedger:
    """Applies owner-changed events."""

    def __init__(self, repository: CandidateRepository, identity_resolver: IdentityResolver):
        self.repository = repository
        self.identity = identity_resolver

    async def apply_owner_change(
        self,
        record: OwnerChangeRecord,
        received_at: datetime | None = None,
    ) -> HandlerOutcome:
        """
        Move a candidate to a new owner.

        Raises:
            CandidateNotFoundError: If no candidate matches the event
            UserNotFoundError: If the new owner or the acting user is unknown
        """
        resolution = await self.identity.resolve_candidate(record)
        candidate = resolution.candidate
        if candidate is None:
            raise CandidateNotFoundError(
                'Candidate not found',
                context={'opportunity_id': record.opportunity_id, 'contact_id': record.contact_id},
            )

        new_owner = await self.identity.resolve_user(record.new_owner_user_id)
        if new_owner is None:
            raise UserNotFoundError(
                'New owner not found',
                context={'external_user_id': record.new_owner_user_id},
            )

        actor = await self.identity.resolve_user(record.actor_user_id)
        if actor is None:
            raise UserNotFoundError(
                'Acting user not found',
                context={'external_user_id': record.actor_user_id},
            )

        if candidate.current_owner_id == new_owner.id:
            logger.info('ownership_ledger.no_op', candidate_id=str(candidate.id))
            return HandlerOutcome.no_op(Reason.NO_OP, candidate.id, owner_id=str(new_owner.id))

        entry = OwnershipChangeEntry(
            candidate_id=candidate.id,
            previous_owner_id=candidate.current_owner_id,
            new_owner_id=new_owner.id,
            changed_by_id=actor.id,
            changed_at=record.occurred_at or received_at or utc_now(),
        )
        await self.repository.record_owner_change(entry)

        logger.info(
            'ownership_ledger.owner_changed',
            candidate_id=str(candidate.id),
            previous_owner_id=str(entry.previous_owner_id) if entry.previous_owner_id else None,
            new_owner_id=str(new_owner.id),
            changed_by_id=str(actor.id),
        )
        return HandlerOutcome.applied(
            Reason.OWNER_CHANGED,
            candidate.id,
            previous_owner_id=str(entry.previous_owner_id) if entry.previous_owner_id else None,
            new_owner_id=str(new_owner.id),
        )
