"""
Main ingestion orchestrator.

Per inbound event:
1. Extract the normalized record for the event type (Field Resolver)
2. Dispatch to the owning handler (Stage Reconciler, Ownership Ledger or one
   of the supplementary handlers), which resolves identity and writes
3. Return an IngestResult with status, reason code and timings

Errors:
- MalformedPayloadError / IdentityNotFoundError / UnknownEventTypeError
  propagate unchanged
- Anything else raised while handling is translated into a StoreError
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..clients.crm_client import CRMClient
from ..clients.postgres_client import PostgresClient
from ..config import config
from ..errors import CandidateSyncError, UnknownEventTypeError, wrap_store_error
from ..logging import PipelineTimer, get_logger, logging_context
from ..models.entities import CandidateState
from ..models.events import EventType, InboundEvent
from ..repository import CandidateRepository
from ..resolution.fields import resolve_uuid
from ..resolution.identity import IdentityResolver
from ..utils import uuid7
from . import extractor
from .activities import ActivityRecorder
from .outcome import HandlerOutcome
from .ownership_ledger import OwnershipLedger
from .stage_reconciler import StageReconciler
from .updater import CandidateUpdater, ContactSync

logger = get_logger(__name__)

Handler = Callable[[Any, datetime], Awaitable[HandlerOutcome]]


@dataclass
class IngestResult:
    """Result of processing one inbound event."""

    event_type: str
    status: str
    reason: str
    trace_id: str | None = None
    candidate_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    # Timing
    processing_time_ms: int | None = None
    stage_timings: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'event_type': self.event_type,
            'status': self.status,
            'reason': self.reason,
            'trace_id': self.trace_id,
            'candidate_id': self.candidate_id,
            'details': self.details,
            'processing_time_ms': self.processing_time_ms,
            'stage_timings': self.stage_timings,
        }


def parse_event_type(value: str) -> EventType:
    """
    Map a routing tag onto an EventType.

    Raises:
        UnknownEventTypeError: If the tag is not a handled event type
    """
    try:
        return EventType(value)
    except ValueError:
        raise UnknownEventTypeError(
            f'Unknown event type: {value}',
            context={'supported': [e.value for e in EventType]},
        ) from None


class IngestPipeline:
    """
    End-to-end handling of CRM lifecycle events.

    Usage:
        pipeline = IngestPipeline(CandidateRepository(postgres))
        result = await pipeline.process(InboundEvent(event_type=..., payload=...))
    """

    def __init__(
        self,
        repository: CandidateRepository,
        crm_client: CRMClient | None = None,
        debounce_window_seconds: float | None = None,
    ):
        """
        Initialize the pipeline.

        Args:
            repository: Store access shared by every handler
            crm_client: Optional CRM client for terminal-state side effects
            debounce_window_seconds: Override DEBOUNCE_WINDOW_SECONDS
        """
        self.repository = repository
        self.crm_client = crm_client
        self.identity = IdentityResolver(repository)

        self.stage_reconciler = StageReconciler(
            repository,
            self.identity,
            debounce_window_seconds=debounce_window_seconds,
            crm_client=crm_client,
        )
        self.ownership_ledger = OwnershipLedger(repository, self.identity)
        self.candidate_updater = CandidateUpdater(repository, self.identity)
        self.contact_sync = ContactSync(repository)
        self.activity_recorder = ActivityRecorder(repository, self.identity)

        self._handlers: dict[EventType, tuple[Callable[[Any], Any], Handler]] = {
            EventType.OPPORTUNITY_CREATED: (
                extractor.extract_opportunity,
                self.stage_reconciler.create_candidate,
            ),
            EventType.OPPORTUNITY_MODIFIED: (
                extractor.extract_opportunity,
                self._apply_modification,
            ),
            EventType.STAGE_CHANGED: (
                extractor.extract_stage_change,
                self.stage_reconciler.apply_stage_change,
            ),
            EventType.OWNER_CHANGED: (
                extractor.extract_owner_change,
                self.ownership_ledger.apply_owner_change,
            ),
            EventType.OPPORTUNITY_LOST: (
                extractor.extract_terminal_state,
                self._apply_lost,
            ),
            EventType.OPPORTUNITY_ABANDONED: (
                extractor.extract_terminal_state,
                self._apply_abandoned,
            ),
            EventType.CONTACT_CREATED: (extractor.extract_contact, self._upsert_contact),
            EventType.CONTACT_MODIFIED: (extractor.extract_contact, self._upsert_contact),
            EventType.NOTE_CREATED: (extractor.extract_note, self.activity_recorder.record_note),
            EventType.APPOINTMENT_CREATED: (
                extractor.extract_appointment,
                self.activity_recorder.record_appointment,
            ),
        }

    @classmethod
    async def from_env(cls) -> IngestPipeline:
        """
        Create a pipeline from environment variables.

        Expects:
            DATABASE_URL: Postgres connection URL
            CRM_API_BASE_URL / CRM_API_KEY: Optional, enables assignee clearing

        Returns:
            Configured and connected IngestPipeline
        """
        postgres = PostgresClient(config.DATABASE_URL)
        await postgres.connect()

        crm: CRMClient | None = None
        if config.CRM_API_BASE_URL:
            crm = CRMClient()
            logger.info('pipeline.crm_side_channel_enabled')

        return cls(CandidateRepository(postgres), crm_client=crm)

    async def close(self) -> None:
        """Close all client connections."""
        await self.repository.postgres.close()
        if self.crm_client is not None:
            await self.crm_client.close()

    # =========================================================================
    # Handler adapters
    # =========================================================================

    async def _apply_modification(self, record: Any, received_at: datetime) -> HandlerOutcome:
        return await self.candidate_updater.apply_modification(record)

    async def _apply_lost(self, record: Any, received_at: datetime) -> HandlerOutcome:
        return await self.stage_reconciler.apply_terminal_state(record, CandidateState.LOST, received_at)

    async def _apply_abandoned(self, record: Any, received_at: datetime) -> HandlerOutcome:
        return await self.stage_reconciler.apply_terminal_state(
            record, CandidateState.ABANDONED, received_at
        )

    async def _upsert_contact(self, record: Any, received_at: datetime) -> HandlerOutcome:
        return await self.contact_sync.upsert(record)

    # =========================================================================
    # Processing
    # =========================================================================

    async def process(self, event: InboundEvent) -> IngestResult:
        """
        Handle one inbound event to completion.

        Args:
            event: Event-type tag plus raw payload

        Returns:
            IngestResult with status and reason code

        Raises:
            MalformedPayloadError: If the payload cannot be handled (no writes)
            IdentityNotFoundError: If a lifecycle event references unknown entities
            UnknownEventTypeError: If no handler is registered for the event type
            StoreError: For any other failure while handling
        """
        timer = PipelineTimer()
        event_type = event.event_type
        trace_id = event.trace_id or self._delivery_trace_id(event.payload)

        handler_entry = self._handlers.get(event_type)
        if handler_entry is None:
            raise UnknownEventTypeError(f'No handler for event type: {event_type.value}')
        extract, handle = handler_entry

        with logging_context(trace_id=trace_id, event_type=event_type.value):
            # Step 1: Field resolution (raises MalformedPayloadError)
            with timer.stage('resolve'):
                record = extract(event.payload)

            opportunity_id = getattr(record, 'opportunity_id', None)
            with logging_context(opportunity_id=opportunity_id):
                logger.info('ingest.started')

                # Step 2: Identity resolution and writes
                try:
                    with timer.stage('apply'):
                        outcome = await handle(record, event.received_at)
                except CandidateSyncError as e:
                    logger.warning('ingest.rejected', error=e.message, error_type=type(e).__name__)
                    raise
                except Exception as e:
                    error = wrap_store_error(
                        e,
                        context={'event_type': event_type.value, 'opportunity_id': opportunity_id},
                    )
                    logger.error('ingest.failed', error=str(e), error_type=type(e).__name__)
                    raise error from e

                result = IngestResult(
                    event_type=event_type.value,
                    status=outcome.status,
                    reason=outcome.reason,
                    trace_id=trace_id,
                    candidate_id=str(outcome.candidate_id) if outcome.candidate_id else None,
                    details=outcome.details,
                    processing_time_ms=int(timer.total_ms),
                    stage_timings=timer.stages.copy(),
                )
                logger.info(
                    'ingest.complete',
                    status=result.status,
                    reason=result.reason,
                    candidate_id=result.candidate_id,
                    **timer.summary(),
                )
                return result

    @staticmethod
    def _delivery_trace_id(payload: Any) -> str:
        delivery_id = resolve_uuid(payload, 'delivery_id')
        return str(delivery_id) if delivery_id else str(uuid7())
