"""
Data models for the candidate sync engine.
"""

from .entities import (
    Appointment,
    AppointmentKind,
    Candidate,
    CandidateState,
    Contact,
    HistorySource,
    Note,
    OwnershipChangeEntry,
    StageHistoryEntry,
    TerminalStateEntry,
    User,
)
from .events import (
    AppointmentRecord,
    ContactRecord,
    EventType,
    IdentityHints,
    InboundEvent,
    NoteRecord,
    OpportunityRecord,
    OwnerChangeRecord,
    StageChangeRecord,
    TerminalStateRecord,
)

__all__ = [
    # Entities
    'Appointment',
    'AppointmentKind',
    'Candidate',
    'CandidateState',
    'Contact',
    'HistorySource',
    'Note',
    'OwnershipChangeEntry',
    'StageHistoryEntry',
    'TerminalStateEntry',
    'User',
    # Events
    'AppointmentRecord',
    'ContactRecord',
    'EventType',
    'IdentityHints',
    'InboundEvent',
    'NoteRecord',
    'OpportunityRecord',
    'OwnerChangeRecord',
    'StageChangeRecord',
    'TerminalStateRecord',
]
