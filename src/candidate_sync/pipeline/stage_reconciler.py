"""
Stage reconciliation: the candidate lifecycle state machine.

Owns every write to Candidate.current_stage / stage_changed_at / state and
every StageHistoryEntry. Three entry points:

- create_candidate: first establishment of a candidate (insert-if-absent)
- apply_stage_change: externally reported stage transitions, with no-op,
  debounce and out-of-order handling
- apply_terminal_state: LOST / ABANDONED assertions

Each operation reads the latest durable state, decides, then writes. There is
no in-process locking; two racing deliveries may both append a history row.
"""

from datetime import datetime

from ..clients.crm_client import CRMClient
from ..config import config
from ..errors import CandidateNotFoundError, CRMError
from ..logging import get_logger
from ..models.entities import (
    Candidate,
    CandidateState,
    HistorySource,
    StageHistoryEntry,
    TerminalStateEntry,
)
from ..models.events import OpportunityRecord, StageChangeRecord, TerminalStateRecord
from ..repository import CandidateRepository
from ..resolution.identity import IdentityResolver
from ..utils import utc_now
from .outcome import HandlerOutcome, Reason

logger = get_logger(__name__)

_STATUS_MAP = {
    'open': CandidateState.OPEN,
    'abierto': CandidateState.OPEN,
    'lost': CandidateState.LOST,
    'perdida': CandidateState.LOST,
    'perdido': CandidateState.LOST,
    'abandoned': CandidateState.ABANDONED,
    'abandonada': CandidateState.ABANDONED,
    'abandonado': CandidateState.ABANDONED,
}


def map_status(status: str | None) -> CandidateState:
    """Map a CRM opportunity status onto a candidate state. Unknown → OPEN."""
    if not status:
        return CandidateState.OPEN
    return _STATUS_MAP.get(status.strip().lower(), CandidateState.OPEN)


class StageReconciler:
    """
    Applies creation, stage-change and terminal-state events to candidates.

    Usage:
        reconciler = StageReconciler(repository, IdentityResolver(repository))
        outcome = await reconciler.apply_stage_change(record)
    """

    def __init__(
        self,
        repository: CandidateRepository,
        identity_resolver: IdentityResolver,
        debounce_window_seconds: float | None = None,
        crm_client: CRMClient | None = None,
    ):
        """
        Args:
            repository: Store access
            identity_resolver: Candidate / user / contact lookup
            debounce_window_seconds: Echo window for SYSTEM initial-stage
                entries (defaults to DEBOUNCE_WINDOW_SECONDS)
            crm_client: Optional CRM client for clearing assignees on
                terminal transitions
        """
        self.repository = repository
        self.identity = identity_resolver
        self.debounce_window_seconds = (
            debounce_window_seconds
            if debounce_window_seconds is not None
            else config.DEBOUNCE_WINDOW_SECONDS
        )
        self.crm_client = crm_client

    # =========================================================================
    # Creation
    # =========================================================================

    async def create_candidate(
        self,
        record: OpportunityRecord,
        received_at: datetime | None = None,
    ) -> HandlerOutcome:
        """
        Establish a candidate for an opportunity id, once.

        Creation never updates an existing candidate. When the event names a
        stage, a SYSTEM initial-stage entry (origin null) is written in the same
        transaction as the candidate row.
        """
        opportunity_id = record.opportunity_id
        if not opportunity_id:
            raise ValueError('create_candidate requires an opportunity id')

        existing = await self.repository.get_candidate_by_opportunity_id(opportunity_id)
        if existing is not None:
            logger.info('stage_reconciler.already_exists', candidate_id=str(existing.id))
            return HandlerOutcome.no_op(Reason.ALREADY_EXISTS, existing.id)

        contact = await self.identity.resolve_contact(record.contact_id)
        owner = await self.identity.resolve_user(record.owner_user_id)
        occurred_at = record.occurred_at or received_at or utc_now()

        candidate = Candidate(
            external_opportunity_id=opportunity_id,
            external_pipeline_id=record.pipeline_id,
            current_stage=record.stage,
            stage_changed_at=occurred_at if record.stage else None,
            state=map_status(record.status),
            current_owner_id=owner.id if owner else None,
            contact_id=contact.id if contact else None,
            **record.profile,
        )

        initial_entry = None
        if record.stage:
            initial_entry = StageHistoryEntry(
                candidate_id=candidate.id,
                external_opportunity_id=opportunity_id,
                from_stage=None,
                to_stage=record.stage,
                occurred_at=occurred_at,
                source=HistorySource.SYSTEM,
                actor_id=owner.id if owner else None,
            )

        inserted = await self.repository.create_candidate(candidate, initial_entry)
        if not inserted:
            # Lost the insert race to a concurrent delivery
            logger.info('stage_reconciler.already_exists', race=True)
            winner = await self.repository.get_candidate_by_opportunity_id(opportunity_id)
            return HandlerOutcome.no_op(Reason.ALREADY_EXISTS, winner.id if winner else None)

        logger.info(
            'stage_reconciler.created',
            candidate_id=str(candidate.id),
            stage=record.stage,
            state=candidate.state.value,
            contact_linked=contact is not None,
            owner_linked=owner is not None,
        )
        return HandlerOutcome.applied(
            Reason.CREATED,
            candidate.id,
            stage=record.stage,
            state=candidate.state.value,
        )

    # =========================================================================
    # Stage change
    # =========================================================================

    async def apply_stage_change(
        self,
        record: StageChangeRecord,
        received_at: datetime | None = None,
    ) -> HandlerOutcome:
        """
        Reconcile a reported stage transition.

        Steps:
        1. Resolve the candidate; fall back to the latest history entry for
           the opportunity id. Nothing found → skipped (event raced ahead of
           creation).
        2. Effective origin: claimed origin, else current stage, else the
           latest entry's destination.
        3. Origin equals destination → no-op.
        4. Latest entry is a SYSTEM entry for the same destination within the
           debounce window → no-op (creation echo).
        5. Latest entry already records this destination and the candidate
           sits there, or it records this exact transition → no-op (redelivery).
        6. Append a WEBHOOK entry. The projection only moves forward in time.
        """
        destination = record.to_stage
        event_time = record.occurred_at or received_at or utc_now()

        # Step 1: Resolve candidate
        resolution = await self.identity.resolve_candidate(record)
        candidate = resolution.candidate
        latest: StageHistoryEntry | None = None

        if candidate is None:
            latest = await self.repository.get_latest_stage_entry(opportunity_id=record.opportunity_id)
            if latest is not None:
                candidate = await self.repository.get_candidate(latest.candidate_id)
            if candidate is None:
                logger.info('stage_reconciler.skipped', reason=Reason.CANDIDATE_NOT_FOUND)
                return HandlerOutcome.skipped(
                    Reason.CANDIDATE_NOT_FOUND, to_stage=destination
                )
        else:
            latest = await self.repository.get_latest_stage_entry(
                candidate_id=candidate.id,
                opportunity_id=candidate.external_opportunity_id,
            )

        # Step 2: Effective origin
        origin = record.from_stage or candidate.current_stage or (latest.to_stage if latest else None)

        # Step 3: Not a transition
        if origin == destination:
            logger.info('stage_reconciler.no_op', reason=Reason.NO_STAGE_CHANGE, stage=destination)
            return HandlerOutcome.no_op(Reason.NO_STAGE_CHANGE, candidate.id, stage=destination)

        if latest is not None and latest.to_stage == destination:
            # Step 4: Echo of the creation-time initial stage
            if latest.source == HistorySource.SYSTEM and self._within_debounce(latest, event_time):
                logger.info(
                    'stage_reconciler.debounced',
                    stage=destination,
                    window_seconds=self.debounce_window_seconds,
                )
                return HandlerOutcome.no_op(
                    Reason.DEBOUNCED_INITIAL_STAGE, candidate.id, stage=destination
                )

            # Step 5: Redelivery of an already-recorded transition
            same_transition = latest.from_stage == origin and latest.occurred_at == event_time
            if candidate.current_stage == destination or same_transition:
                logger.info('stage_reconciler.no_op', reason=Reason.NO_STAGE_CHANGE, stage=destination)
                return HandlerOutcome.no_op(Reason.NO_STAGE_CHANGE, candidate.id, stage=destination)

        # Step 6: Append
        actor = await self.identity.resolve_user(record.actor_user_id)
        entry = StageHistoryEntry(
            candidate_id=candidate.id,
            external_opportunity_id=candidate.external_opportunity_id or record.opportunity_id,
            from_stage=origin,
            to_stage=destination,
            occurred_at=event_time,
            source=HistorySource.WEBHOOK,
            actor_id=actor.id if actor else None,
        )
        update_projection = (
            candidate.stage_changed_at is None or event_time >= candidate.stage_changed_at
        )
        await self.repository.append_stage_entry(entry, update_projection=update_projection)

        logger.info(
            'stage_reconciler.stage_changed',
            candidate_id=str(candidate.id),
            matched_by=resolution.matched_by,
            from_stage=origin,
            to_stage=destination,
            projection_updated=update_projection,
        )
        return HandlerOutcome.applied(
            Reason.STAGE_CHANGED,
            candidate.id,
            from_stage=origin,
            to_stage=destination,
            projection_updated=update_projection,
        )

    def _within_debounce(self, entry: StageHistoryEntry, event_time: datetime) -> bool:
        delta = abs((event_time - entry.occurred_at).total_seconds())
        return delta <= self.debounce_window_seconds

    # =========================================================================
    # Terminal states
    # =========================================================================

    async def apply_terminal_state(
        self,
        record: TerminalStateRecord,
        state: CandidateState,
        received_at: datetime | None = None,
    ) -> HandlerOutcome:
        """
        Assert LOST or ABANDONED on a candidate.

        Re-assertion overwrites the (candidate, state) audit row rather than
        appending. After the write, the CRM assignee is cleared; failure there
        is logged and does not affect the outcome.

        Raises:
            CandidateNotFoundError: If no candidate matches the event
        """
        if state == CandidateState.OPEN:
            raise ValueError('apply_terminal_state requires a terminal state')

        resolution = await self.identity.resolve_candidate(record)
        candidate = resolution.candidate
        if candidate is None:
            raise CandidateNotFoundError(
                'Candidate not found',
                context={
                    'opportunity_id': record.opportunity_id,
                    'contact_id': record.contact_id,
                    'state': state.value,
                },
            )

        entry = TerminalStateEntry(
            candidate_id=candidate.id,
            state=state,
            reason=record.reason,
            stage_at_transition=candidate.current_stage,
            occurred_at=record.occurred_at or received_at or utc_now(),
        )
        await self.repository.record_terminal_state(entry, stage=record.stage)

        logger.info(
            'stage_reconciler.state_asserted',
            candidate_id=str(candidate.id),
            state=state.value,
            previous_state=candidate.state.value,
            stage=record.stage or candidate.current_stage,
        )

        assignee_cleared = await self._clear_assignee(
            candidate.external_opportunity_id or record.opportunity_id
        )
        return HandlerOutcome.applied(
            Reason.STATE_ASSERTED,
            candidate.id,
            state=state.value,
            stage=record.stage or candidate.current_stage,
            assignee_cleared=assignee_cleared,
        )

    async def _clear_assignee(self, opportunity_id: str | None) -> bool:
        if self.crm_client is None or not opportunity_id:
            return False
        try:
            await self.crm_client.clear_opportunity_assignee(opportunity_id)
        except CRMError as e:
            logger.warning('stage_reconciler.clear_assignee_failed', error=str(e))
            return False
        return True
