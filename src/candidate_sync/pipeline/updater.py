"""
Profile updates for candidates and contacts.

CandidateUpdater handles opportunity-modified events: it only touches profile
columns, the pipeline id and the contact link. Stage, state and owner changes
arrive as their own events and are handled by the reconcilers.

ContactSync upserts contacts from contact lifecycle events.
"""

from typing import Any

from ..errors import CandidateNotFoundError
from ..logging import get_logger
from ..models.entities import Contact
from ..models.events import ContactRecord, OpportunityRecord
from ..repository import CandidateRepository
from ..resolution.identity import IdentityResolver
from .outcome import HandlerOutcome, Reason

logger = get_logger(__name__)


class CandidateUpdater:
    """Applies opportunity-modified events."""

    def __init__(self, repository: CandidateRepository, identity_resolver: IdentityResolver):
        self.repository = repository
        self.identity = identity_resolver

    async def apply_modification(self, record: OpportunityRecord) -> HandlerOutcome:
        """
        Overwrite changed profile fields on an existing candidate.

        Only non-empty incoming values are considered; a value equal to the
        stored one is not an update.

        Raises:
            CandidateNotFoundError: If no candidate matches the event
        """
        resolution = await self.identity.resolve_candidate(record)
        candidate = resolution.candidate
        if candidate is None:
            raise CandidateNotFoundError(
                'Candidate not found',
                context={'opportunity_id': record.opportunity_id, 'contact_id': record.contact_id},
            )

        incoming: dict[str, Any] = dict(record.profile)
        if record.pipeline_id:
            incoming['external_pipeline_id'] = record.pipeline_id
        contact = await self.identity.resolve_contact(record.contact_id)
        if contact is not None:
            incoming['contact_id'] = contact.id

        updates = {
            column: value
            for column, value in incoming.items()
            if getattr(candidate, column) != value
        }
        if not updates:
            logger.info('candidate_updater.no_changes', candidate_id=str(candidate.id))
            return HandlerOutcome.no_op(Reason.NO_CHANGES, candidate.id)

        await self.repository.update_candidate_fields(candidate.id, updates)

        logger.info(
            'candidate_updater.fields_updated',
            candidate_id=str(candidate.id),
            fields=sorted(updates),
        )
        return HandlerOutcome.applied(Reason.FIELDS_UPDATED, candidate.id, fields=sorted(updates))


class ContactSync:
    """Applies contact-created / contact-modified events."""

    def __init__(self, repository: CandidateRepository):
        self.repository = repository

    async def upsert(self, record: ContactRecord) -> HandlerOutcome:
        contact = Contact(external_contact_id=record.contact_id, **record.profile)
        contact_id, created = await self.repository.upsert_contact(contact)

        logger.info(
            'contact_sync.upserted',
            contact_id=str(contact_id),
            created=created,
            fields=sorted(record.profile),
        )
        return HandlerOutcome.applied(
            Reason.CONTACT_UPSERTED,
            contact_id=str(contact_id),
            created=created,
        )
