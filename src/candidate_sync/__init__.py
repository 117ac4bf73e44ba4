"""
Candidate Sync

An ingestion engine that reconciles asynchronous CRM lifecycle webhooks into a
consistent record of candidates, their stage history and their ownership.
"""

__version__ = '0.1.0'

# Re-export key classes for convenience
from .pipeline import (
    IngestPipeline,
    IngestResult,
    HandlerOutcome,
    StageReconciler,
    OwnershipLedger,
)
from .repository import CandidateRepository
from .resolution import IdentityResolver, CandidateResolution
from .logging import (
    configure_logging,
    get_logger,
    logging_context,
    PipelineTimer,
)
from .errors import (
    CandidateSyncError,
    PipelineError,
    ValidationError,
    MalformedPayloadError,
    IdentityNotFoundError,
    CandidateNotFoundError,
    UserNotFoundError,
    StoreError,
    CRMError,
)

__all__ = [
    # Version
    '__version__',
    # Main Pipeline
    'IngestPipeline',
    'IngestResult',
    # Components
    'HandlerOutcome',
    'StageReconciler',
    'OwnershipLedger',
    'IdentityResolver',
    'CandidateResolution',
    # Repository
    'CandidateRepository',
    # Logging
    'configure_logging',
    'get_logger',
    'logging_context',
    'PipelineTimer',
    # Errors
    'CandidateSyncError',
    'PipelineError',
    'ValidationError',
    'MalformedPayloadError',
    'IdentityNotFoundError',
    'CandidateNotFoundError',
    'UserNotFoundError',
    'StoreError',
    'CRMError',
]
