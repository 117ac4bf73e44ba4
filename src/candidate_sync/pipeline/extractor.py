"""
Event extraction: raw payload → normalized record.

Each extract_* function reads one event type's fields through the Field
Resolver and builds the typed record consumed by the handlers. The only
failure is MalformedPayloadError, raised when the payload is not a mapping or
an identifier the handler cannot work without is absent; no writes have
happened at that point.
"""

from collections.abc import Mapping
from typing import Any

from ..errors import MalformedPayloadError
from ..models.entities import CANDIDATE_PROFILE_FIELDS, CONTACT_PROFILE_FIELDS
from ..models.events import (
    AppointmentRecord,
    ContactRecord,
    IdentityHints,
    NoteRecord,
    OpportunityRecord,
    OwnerChangeRecord,
    StageChangeRecord,
    TerminalStateRecord,
)
from ..resolution.fields import (
    resolve_email,
    resolve_identifier,
    resolve_phone,
    resolve_profile,
    resolve_string,
    resolve_timestamp,
)


def ensure_mapping(payload: Any) -> Mapping[str, Any]:
    """Reject payloads that are not structured objects."""
    if not isinstance(payload, Mapping):
        raise MalformedPayloadError(
            'Invalid payload format: expected a JSON object',
            context={'payload_type': type(payload).__name__},
        )
    return payload


def extract_identity(payload: Mapping[str, Any]) -> IdentityHints:
    """Pull every candidate identity hint the payload carries."""
    return IdentityHints(
        opportunity_id=resolve_identifier(payload, 'opportunity_id'),
        contact_id=resolve_identifier(payload, 'contact_id'),
        email=resolve_email(payload),
        phone=resolve_phone(payload),
    )


def _require_hints(hints: IdentityHints, event: str) -> None:
    if hints.is_empty:
        raise MalformedPayloadError(
            f'Missing candidate identifier ({event})',
            context={'expected_any_of': ['opportunity_id', 'contact_id', 'email', 'phone']},
        )


def extract_opportunity(payload: Any, require_opportunity_id: bool = True) -> OpportunityRecord:
    """Extract an opportunity-created / opportunity-modified record."""
    body = ensure_mapping(payload)
    hints = extract_identity(body)
    if require_opportunity_id and not hints.opportunity_id:
        raise MalformedPayloadError('Missing opportunity_id')
    _require_hints(hints, 'opportunity')

    profile = resolve_profile(body, CANDIDATE_PROFILE_FIELDS)
    return OpportunityRecord(
        **hints.model_dump(),
        pipeline_id=resolve_identifier(body, 'pipeline_id'),
        owner_user_id=resolve_identifier(body, 'owner_user_id'),
        status=resolve_string(body, 'status'),
        stage=resolve_string(body, 'stage'),
        occurred_at=resolve_timestamp(body, 'created_at'),
        profile=profile,
    )


def extract_stage_change(payload: Any) -> StageChangeRecord:
    """Extract a stage-changed record. The destination stage is required."""
    body = ensure_mapping(payload)
    hints = extract_identity(body)
    _require_hints(hints, 'stage-changed')

    to_stage = resolve_string(body, 'to_stage')
    if to_stage is None:
        raise MalformedPayloadError('Missing destination stage')

    return StageChangeRecord(
        **hints.model_dump(),
        from_stage=resolve_string(body, 'from_stage'),
        to_stage=to_stage,
        occurred_at=resolve_timestamp(body, 'occurred_at'),
        actor_user_id=resolve_identifier(body, 'actor_user_id'),
    )


def extract_owner_change(payload: Any) -> OwnerChangeRecord:
    """Extract an owner-changed record. New owner and acting user are required."""
    body = ensure_mapping(payload)
    hints = extract_identity(body)
    _require_hints(hints, 'owner-changed')

    new_owner = resolve_identifier(body, 'new_owner_user_id')
    actor = resolve_identifier(body, 'actor_user_id')
    missing = [
        name
        for name, value in (('new_owner_id', new_owner), ('changed_by', actor))
        if value is None
    ]
    if missing:
        raise MalformedPayloadError('Missing owner change fields', context={'missing': missing})

    return OwnerChangeRecord(
        **hints.model_dump(),
        new_owner_user_id=new_owner,
        actor_user_id=actor,
        occurred_at=resolve_timestamp(body, 'occurred_at'),
    )


def extract_terminal_state(payload: Any) -> TerminalStateRecord:
    """Extract an opportunity-lost / opportunity-abandoned record."""
    body = ensure_mapping(payload)
    hints = extract_identity(body)
    _require_hints(hints, 'terminal-state')

    return TerminalStateRecord(
        **hints.model_dump(),
        reason=resolve_string(body, 'lost_reason'),
        stage=resolve_string(body, 'stage'),
        occurred_at=resolve_timestamp(body, 'occurred_at'),
    )


def extract_contact(payload: Any) -> ContactRecord:
    """Extract a contact-created / contact-modified record."""
    body = ensure_mapping(payload)
    contact_id = resolve_identifier(body, 'contact_id')
    if contact_id is None:
        # Contact events often carry the contact's own id at the root.
        contact_id = _clean_root_id(body)
    if contact_id is None:
        raise MalformedPayloadError('Missing contact_id')

    return ContactRecord(
        contact_id=contact_id,
        profile=resolve_profile(body, CONTACT_PROFILE_FIELDS),
    )


def _clean_root_id(body: Mapping[str, Any]) -> str | None:
    value = body.get('id')
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def extract_note(payload: Any) -> NoteRecord:
    """Extract a note-created record. The contact id is required."""
    body = ensure_mapping(payload)
    hints = extract_identity(body)
    if not hints.contact_id:
        raise MalformedPayloadError('Missing contact_id')

    return NoteRecord(
        **hints.model_dump(),
        author_user_id=resolve_identifier(body, 'actor_user_id'),
        body=resolve_string(body, 'note_body'),
        occurred_at=resolve_timestamp(body, 'occurred_at'),
    )


def extract_appointment(payload: Any) -> AppointmentRecord:
    """Extract an appointment-created record."""
    body = ensure_mapping(payload)
    hints = extract_identity(body)
    if not hints.contact_id:
        raise MalformedPayloadError('Missing contact_id')

    appointment_id = resolve_identifier(body, 'appointment_id')
    if appointment_id is None:
        raise MalformedPayloadError('Missing appointment_id')

    return AppointmentRecord(
        **hints.model_dump(),
        appointment_id=appointment_id,
        title=resolve_string(body, 'appointment_title'),
        starts_at=resolve_timestamp(body, 'appointment_start'),
    )
