"""
Tolerant field resolution over schema-free CRM payloads.

Different CRM event subtypes and integration-configuration versions place the
same logical field at different locations (``customData.hl_opportunity_id``,
``opportunity.id``, ``opportunity_id`` ...), under different casing, or as a
different primitive type. FIELD_PATHS declares, per logical field, the ordered
list of dotted paths to try; the resolve_* functions below walk that list and
return the first usable value.

Nothing here raises for malformed input. "Not found under any known path" is
returned as None and must be handled by the caller.
"""

import re
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

# Ordered candidate paths per logical field. First match wins.
FIELD_PATHS: dict[str, tuple[str, ...]] = {
    # --- Identifiers ---
    'opportunity_id': (
        'customData.hl_opportunity_id',
        'customData.opportunity_id',
        'customData.opportunityId',
        'hl_opportunity_id',
        'opportunity.id',
        'opportunity_id',
        'opportunityId',
        'data.opportunity.id',
        'data.opportunity_id',
    ),
    'pipeline_id': (
        'customData.hl_pipeline_id',
        'customData.pipeline_id',
        'opportunity.pipelineId',
        'opportunity.pipeline_id',
        'pipelineId',
        'pipeline_id',
        'data.opportunity.pipelineId',
    ),
    'contact_id': (
        'customData.hl_contact_id',
        'customData.contact_id',
        'hl_contact_id',
        'contact.id',
        'contact_id',
        'contactId',
        'opportunity.contactId',
        'opportunity.contact_id',
        'data.contact.id',
    ),
    'owner_user_id': (
        'customData.hl_owner_id',
        'customData.owner_id',
        'opportunity.assignedTo',
        'opportunity.userId',
        'opportunity.user_id',
        'assignedTo',
        'owner_id',
    ),
    'new_owner_user_id': (
        'customData.propietario_id',
        'propietario_id',
        'customData.new_owner_id',
        'customData.owner_id',
        'customData.hl_owner_id',
        'new_owner_id',
        'owner_id',
        'opportunity.assignedTo',
        'assignedTo',
    ),
    'actor_user_id': (
        'customData.changed_by',
        'customData.hl_user_id',
        'customData.user_id',
        'changed_by',
        'changedBy',
        'hl_user_id',
        'user.id',
        'userId',
        'note.user_id',
        'note.userId',
    ),
    'appointment_id': (
        'customData.ghl_appointment_id',
        'ghl_appointment_id',
        'customData.appointment_id',
        'appointment.id',
        'appointment_id',
        'appointmentId',
        'calendar.appointmentId',
    ),
    'delivery_id': (
        'webhookId',
        'webhook_id',
        'eventId',
        'event_id',
        'customData.trace_id',
    ),
    # --- Pipeline state ---
    'status': (
        'customData.estado',
        'customData.status',
        'opportunity.status',
        'status',
        'data.opportunity.status',
    ),
    'stage': (
        'customData.stage',
        'customData.stage_name',
        'opportunity.stageName',
        'opportunity.pipelineStageName',
        'opportunity.pipeline_stage_name',
        'stageName',
        'stage_name',
        'pipelineStageName',
    ),
    'from_stage': (
        'customData.etapa_origen',
        'etapa_origen',
        'customData.from_stage',
        'customData.previous_stage',
        'customData.stage_from',
        'opportunity.previousStageName',
        'previousStageName',
        'from_stage',
        'previous_stage',
    ),
    'to_stage': (
        'customData.etapa_destino',
        'etapa_destino',
        'customData.to_stage',
        'customData.stage_to',
        'customData.stage',
        'opportunity.stageName',
        'opportunity.pipelineStageName',
        'to_stage',
        'stageName',
        'stage_name',
        'pipelineStageName',
    ),
    'lost_reason': (
        'customData.motivo_de_perdida',
        'motivo_de_perdida',
        'customData.lost_reason',
        'lost_reason',
        'lostReason',
        'opportunity.lostReasonName',
        'opportunity.lost_reason',
    ),
    # --- Timestamps ---
    'occurred_at': (
        'customData.changed_at',
        'customData.timestamp',
        'changed_at',
        'changedAt',
        'timestamp',
        'dateUpdated',
        'date_updated',
        'opportunity.lastStageChangeAt',
        'opportunity.dateUpdated',
        'data.timestamp',
    ),
    'created_at': (
        'customData.createdAt',
        'customData.created_at',
        'createdAt',
        'created_at',
        'dateAdded',
        'date_added',
        'data.createdAt',
        'data.created_at',
        'opportunity.createdAt',
        'opportunity.created_at',
        'opportunity.dateAdded',
        'data.opportunity.createdAt',
        'contact.date_added',
        'contact.dateAdded',
    ),
    'appointment_start': (
        'customData.fecha_hora_inicio',
        'customData.start_time',
        'customData.starts_at',
        'appointment.startTime',
        'appointment.start_time',
        'appointment.start',
        'calendar.startTime',
        'startTime',
    ),
    # --- Contact / profile ---
    'full_name': (
        'customData.nombre_completo',
        'nombre_completo',
        'customData.nombre_comp',
        'nombre_comp',
        'customData.full_name',
        'customData.fullName',
        'full_name',
        'fullName',
        'contact_name',
        'data.fullName',
        'data.full_name',
        'contact.name',
        'contact.fullName',
        'contact.full_name',
        'data.contact.name',
    ),
    'first_name': (
        'customData.first_name',
        'customData.firstName',
        'first_name',
        'firstName',
        'contact.firstName',
        'contact.first_name',
    ),
    'last_name': (
        'customData.last_name',
        'customData.lastName',
        'last_name',
        'lastName',
        'contact.lastName',
        'contact.last_name',
    ),
    'opportunity_title': (
        'opportunity.name',
        'opportunity.title',
        'opportunity_name',
        'title',
        'data.opportunity.title',
    ),
    'email': (
        'customData.email',
        'email',
        'contact.email',
        'data.contact.email',
        'opportunity.contact.email',
    ),
    'phone': (
        'customData.celular',
        'celular',
        'customData.phone',
        'customData.mobile',
        'phone',
        'mobile',
        'contact.phone',
        'data.contact.phone',
        'opportunity.contact.phone',
    ),
    'identity_document': (
        'customData.dni_ce',
        'dni_ce',
        'customData.identity_document',
        'identity_document',
        'contact.identity_document',
    ),
    'marital_status': (
        'customData.estado_civil',
        'estado_civil',
        'customData.marital_status',
        'marital_status',
    ),
    'district': (
        'customData.distrito_de_residencia',
        'distrito_de_residencia',
        'customData.distrito_de_res',
        'distrito_de_res',
        'customData.district',
        'district',
        'contact.city',
        'city',
    ),
    'profession': ('customData.profesion', 'profesion', 'customData.profession', 'profession'),
    'lead_source': (
        'customData.fuente',
        'fuente',
        'customData.lead_source',
        'customData.source',
        'contact.source',
        'source',
    ),
    'source_detail': ('customData.detalle', 'detalle', 'customData.source_detail', 'source_detail'),
    'birth_date': (
        'customData.fecha_de_nacimiento',
        'fecha_de_nacimiento',
        'customData.fecha_de_naci',
        'fecha_de_naci',
        'customData.birth_date',
        'contact.dateOfBirth',
        'date_of_birth',
        'dateOfBirth',
    ),
    'interest_level': ('customData.nivel_de_interes', 'customData.interest_level', 'interest_level'),
    'client_type': ('customData.tipo_de_cliente', 'customData.client_type', 'client_type'),
    'product': ('customData.producto', 'customData.product', 'product'),
    'project': ('customData.proyecto', 'customData.project', 'project'),
    'payment_method': ('customData.modalidad_de_pago', 'customData.payment_method', 'payment_method'),
    # --- Activities ---
    'note_body': (
        'customData.nota',
        'nota',
        'customData.note',
        'customData.body',
        'note.body',
        'note.text',
        'body',
        'note_text',
    ),
    'appointment_title': (
        'customData.titulo',
        'customData.title',
        'appointment.title',
        'calendar.title',
        'title',
    ),
}

_UUID_RE = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$',
    re.IGNORECASE,
)
_EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
_PHONE_RE = re.compile(r'^\+?[\d\s().-]{6,}$')


def get_path(payload: Any, path: str) -> Any:
    """Walk a dotted path into nested mappings. None on any non-mapping hop."""
    current = payload
    for key in path.split('.'):
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def _paths(field_name: str) -> tuple[str, ...]:
    try:
        return FIELD_PATHS[field_name]
    except KeyError:
        raise KeyError(f'No paths declared for field {field_name!r}') from None


def _clean_string(value: Any) -> str | None:
    if isinstance(value, str):
        trimmed = value.strip()
        return trimmed or None
    return None


def resolve_string(payload: Any, field_name: str) -> str | None:
    """
    Return the first non-empty (after trimming) string found for field_name.

    Only str values are accepted; numbers, booleans and containers at a path
    are skipped. Unknown field names are a programming error and raise KeyError.
    """
    for path in _paths(field_name):
        value = _clean_string(get_path(payload, path))
        if value is not None:
            return value
    return None


def resolve_identifier(
    payload: Any,
    field_name: str,
    validator: Callable[[str], bool] | None = None,
) -> str | None:
    """
    Resolve an identifier-like field.

    Integers are rendered as strings (some integration versions send numeric
    ids). A value failing ``validator`` is treated as absent and the search
    continues with the next path.
    """
    for path in _paths(field_name):
        raw = get_path(payload, path)
        if isinstance(raw, int) and not isinstance(raw, bool):
            value: str | None = str(raw)
        else:
            value = _clean_string(raw)
        if value is None:
            continue
        if validator is not None and not validator(value):
            continue
        return value
    return None


def is_uuid(value: str) -> bool:
    return bool(_UUID_RE.match(value))


def is_email(value: str) -> bool:
    return bool(_EMAIL_RE.match(value))


def is_phone(value: str) -> bool:
    return bool(_PHONE_RE.match(value))


def resolve_uuid(payload: Any, field_name: str) -> UUID | None:
    """Resolve a field that must have UUID shape; anything else is absent."""
    value = resolve_identifier(payload, field_name, validator=is_uuid)
    return UUID(value) if value is not None else None


def resolve_email(payload: Any, field_name: str = 'email') -> str | None:
    """Resolve an email address; values without a plausible shape are absent."""
    return resolve_identifier(payload, field_name, validator=is_email)


def resolve_phone(payload: Any, field_name: str = 'phone') -> str | None:
    """Resolve a phone number; values without enough digits are absent."""
    return resolve_identifier(payload, field_name, validator=is_phone)


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse a single raw value into an aware UTC datetime.

    Numbers and numeric strings are epoch milliseconds. Other strings are
    parsed as ISO-8601 (a trailing ``Z`` is accepted, naive values are UTC).
    Returns None when the value cannot be interpreted.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _from_epoch_ms(value)
    text = _clean_string(value)
    if text is None:
        return None
    try:
        return _from_epoch_ms(float(text))
    except ValueError:
        pass
    if text.endswith(('Z', 'z')):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _from_epoch_ms(value: float) -> datetime | None:
    if value != value:  # NaN
        return None
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def resolve_timestamp(payload: Any, field_name: str) -> datetime | None:
    """
    Return the first parseable timestamp found for field_name.

    An unparseable value at one path is skipped, not fatal. When nothing
    parses, the caller decides the fallback (typically arrival time).
    """
    for path in _paths(field_name):
        parsed = parse_timestamp(get_path(payload, path))
        if parsed is not None:
            return parsed
    return None


def resolve_full_name(payload: Any) -> str | None:
    """
    Resolve a display name.

    Explicit name fields first, then first/last name joined, then the
    opportunity title.
    """
    name = resolve_string(payload, 'full_name')
    if name:
        return name
    joined = ' '.join(
        part
        for part in (resolve_string(payload, 'first_name'), resolve_string(payload, 'last_name'))
        if part
    )
    if joined:
        return joined
    return resolve_string(payload, 'opportunity_title')


def resolve_profile(payload: Any, field_names: tuple[str, ...]) -> dict[str, str]:
    """Resolve several string fields at once, keeping only those present."""
    profile: dict[str, str] = {}
    for name in field_names:
        if name == 'full_name':
            value = resolve_full_name(payload)
        elif name == 'email':
            value = resolve_email(payload)
        elif name == 'phone':
            value = resolve_phone(payload)
        else:
            value = resolve_string(payload, name)
        if value is not None:
            profile[name] = value
    return profile
