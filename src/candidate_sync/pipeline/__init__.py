"""
Event handling pipeline for CRM lifecycle notifications.

Components:
- extractor: raw payload → normalized record
- StageReconciler: candidate creation, stage transitions and terminal states
- OwnershipLedger: compare-and-log owner changes
- CandidateUpdater / ContactSync / ActivityRecorder: supplementary handlers
- IngestPipeline: end-to-end orchestration
"""

from .activities import ActivityRecorder, infer_appointment_kind
from .outcome import APPLIED, NO_OP, SKIPPED, HandlerOutcome, Reason
from .ownership_ledger import OwnershipLedger
from .pipeline import IngestPipeline, IngestResult, parse_event_type
from .stage_reconciler import StageReconciler, map_status
from .updater import CandidateUpdater, ContactSync

__all__ = [
    # Outcomes
    'APPLIED',
    'NO_OP',
    'SKIPPED',
    'HandlerOutcome',
    'Reason',
    # Handlers
    'ActivityRecorder',
    'CandidateUpdater',
    'ContactSync',
    'OwnershipLedger',
    'StageReconciler',
    'infer_appointment_kind',
    'map_status',
    # Orchestration
    'IngestPipeline',
    'IngestResult',
    'parse_event_type',
]
