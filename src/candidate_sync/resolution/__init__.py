"""
Field and identity resolution.
"""

from .fields import (
    FIELD_PATHS,
    get_path,
    parse_timestamp,
    resolve_email,
    resolve_full_name,
    resolve_identifier,
    resolve_phone,
    resolve_profile,
    resolve_string,
    resolve_timestamp,
    resolve_uuid,
)
from .identity import CandidateResolution, IdentityResolver

__all__ = [
    'FIELD_PATHS',
    'get_path',
    'parse_timestamp',
    'resolve_email',
    'resolve_full_name',
    'resolve_identifier',
    'resolve_phone',
    'resolve_profile',
    'resolve_string',
    'resolve_timestamp',
    'resolve_uuid',
    'CandidateResolution',
    'IdentityResolver',
]
