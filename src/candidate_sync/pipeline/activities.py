"""
Activity recording: notes and appointments.

Activities may arrive before the contact or candidate they belong to has been
stored. That is a soft skip, not an error.
"""

from datetime import datetime

from ..logging import get_logger
from ..models.entities import Appointment, AppointmentKind, Note
from ..models.events import AppointmentRecord, NoteRecord
from ..repository import CandidateRepository
from ..resolution.identity import IdentityResolver
from ..utils import utc_now
from .outcome import HandlerOutcome, Reason

logger = get_logger(__name__)

# Title keywords, matched case-insensitively as substrings
_PRESENTATION_KEYWORDS = ('pres', 'ofi')
_SITE_VISIT_KEYWORDS = ('vis', 'proy')


def infer_appointment_kind(title: str | None) -> AppointmentKind | None:
    """Guess the appointment kind from its title. Presentation wins ties."""
    if not title:
        return None
    lowered = title.lower()
    if any(keyword in lowered for keyword in _PRESENTATION_KEYWORDS):
        return AppointmentKind.PRESENTATION
    if any(keyword in lowered for keyword in _SITE_VISIT_KEYWORDS):
        return AppointmentKind.SITE_VISIT
    return None


class ActivityRecorder:
    """Stores notes and appointments against contacts and candidates."""

    def __init__(self, repository: CandidateRepository, identity_resolver: IdentityResolver):
        self.repository = repository
        self.identity = identity_resolver

    async def record_note(
        self,
        record: NoteRecord,
        received_at: datetime | None = None,
    ) -> HandlerOutcome:
        """Attach a note to its contact; candidate link and author are best-effort."""
        contact = await self.identity.resolve_contact(record.contact_id)
        if contact is None:
            logger.info('activity_recorder.skipped', reason=Reason.CONTACT_NOT_FOUND)
            return HandlerOutcome.skipped(Reason.CONTACT_NOT_FOUND)

        candidate = await self.repository.get_latest_candidate_for_contact(contact.external_contact_id)
        author = await self.identity.resolve_user(record.author_user_id)

        note = Note(
            contact_id=contact.id,
            candidate_id=candidate.id if candidate else None,
            author_id=author.id if author else None,
            body=record.body,
            created_at=record.occurred_at or received_at or utc_now(),
        )
        await self.repository.insert_note(note)

        logger.info(
            'activity_recorder.note_recorded',
            note_id=str(note.id),
            contact_id=str(contact.id),
            candidate_linked=candidate is not None,
        )
        return HandlerOutcome.applied(
            Reason.NOTE_RECORDED,
            candidate.id if candidate else None,
            note_id=str(note.id),
        )

    async def record_appointment(
        self,
        record: AppointmentRecord,
        received_at: datetime | None = None,
    ) -> HandlerOutcome:
        """Link an appointment to the contact's most recent candidate, once."""
        candidate = await self.repository.get_latest_candidate_for_contact(record.contact_id)
        if candidate is None:
            logger.info('activity_recorder.skipped', reason=Reason.CANDIDATE_NOT_FOUND)
            return HandlerOutcome.skipped(
                Reason.CANDIDATE_NOT_FOUND, appointment_id=record.appointment_id
            )

        appointment = Appointment(
            candidate_id=candidate.id,
            external_appointment_id=record.appointment_id,
            kind=infer_appointment_kind(record.title),
            title=record.title,
            starts_at=record.starts_at or received_at or utc_now(),
        )
        inserted = await self.repository.insert_appointment(appointment)
        if not inserted:
            logger.info('activity_recorder.appointment_exists', appointment_id=record.appointment_id)
            return HandlerOutcome.no_op(
                Reason.ALREADY_EXISTS, candidate.id, appointment_id=record.appointment_id
            )

        logger.info(
            'activity_recorder.appointment_recorded',
            candidate_id=str(candidate.id),
            kind=appointment.kind.value if appointment.kind else None,
        )
        return HandlerOutcome.applied(
            Reason.APPOINTMENT_RECORDED,
            candidate.id,
            appointment_id=record.appointment_id,
            kind=appointment.kind.value if appointment.kind else None,
        )
