"""
Identity resolution: external identifiers → internal entities.

Candidates are resolved through a fixed fallback chain, strongest key first:
1. External opportunity id (authoritative)
2. External contact id → the contact's most recently created candidate
3. Email or phone → most recently updated candidate matching either

An unresolved candidate is a normal outcome, reported as ``candidate=None``;
the caller decides whether that is a soft skip or a hard failure.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from ..models.entities import Candidate, Contact, User
from ..models.events import IdentityHints

if TYPE_CHECKING:
    from ..repository import CandidateRepository

logger = structlog.get_logger(__name__)

MATCHED_BY_OPPORTUNITY = 'opportunity_id'
MATCHED_BY_CONTACT = 'contact_id'
MATCHED_BY_EMAIL_OR_PHONE = 'email_or_phone'


@dataclass
class CandidateResolution:
    """Outcome of a candidate lookup."""

    candidate: Candidate | None = None
    matched_by: str | None = None

    @property
    def found(self) -> bool:
        return self.candidate is not None


class IdentityResolver:
    """Maps CRM identifiers onto stored candidates, contacts and users."""

    def __init__(self, repository: 'CandidateRepository'):
        self.repository = repository

    async def resolve_candidate(self, hints: IdentityHints) -> CandidateResolution:
        """
        Resolve a candidate from identity hints.

        The opportunity id is authoritative: when it is present but unknown,
        the weaker keys are still tried, since the candidate may have been
        created from a contact-level event before the opportunity existed.
        """
        if hints.opportunity_id:
            candidate = await self.repository.get_candidate_by_opportunity_id(hints.opportunity_id)
            if candidate is not None:
                return CandidateResolution(candidate, MATCHED_BY_OPPORTUNITY)

        if hints.contact_id:
            candidate = await self.repository.get_latest_candidate_for_contact(hints.contact_id)
            if candidate is not None:
                return CandidateResolution(candidate, MATCHED_BY_CONTACT)

        if hints.email or hints.phone:
            candidate = await self.repository.find_candidate_by_email_or_phone(
                email=hints.email, phone=hints.phone
            )
            if candidate is not None:
                return CandidateResolution(candidate, MATCHED_BY_EMAIL_OR_PHONE)

        logger.debug(
            'identity.candidate_unresolved',
            has_opportunity_id=bool(hints.opportunity_id),
            has_contact_id=bool(hints.contact_id),
            has_email=bool(hints.email),
            has_phone=bool(hints.phone),
        )
        return CandidateResolution()

    async def resolve_user(self, external_user_id: str | None) -> User | None:
        if not external_user_id:
            return None
        return await self.repository.get_user_by_external_id(external_user_id)

    async def resolve_contact(self, external_contact_id: str | None) -> Contact | None:
        if not external_contact_id:
            return None
        return await self.repository.get_contact_by_external_id(external_contact_id)
