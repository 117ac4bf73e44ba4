"""
Repository layer for candidate persistence.

All reads and writes of the relational store go through CandidateRepository.
Each public method is one transaction (``engine.begin()``); multi-row writes
that must land together (history entry + projection update, ledger entry +
owner update) share a single method so they share a transaction.

Assumed tables (DDL lives with the store, not here):

    candidates          UNIQUE (external_opportunity_id)
    contacts            UNIQUE (external_contact_id)
    users               UNIQUE (external_user_id)
    stage_history       append-only
    ownership_changes   append-only
    terminal_states     UNIQUE (candidate_id, state)
    notes
    appointments        UNIQUE (external_appointment_id)

Driver exceptions are not translated here; IngestPipeline maps them onto the
StoreError hierarchy.
"""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from .clients.postgres_client import PostgresClient
from .models.entities import (
    CANDIDATE_PROFILE_FIELDS,
    CONTACT_PROFILE_FIELDS,
    Appointment,
    Candidate,
    Contact,
    Note,
    OwnershipChangeEntry,
    StageHistoryEntry,
    TerminalStateEntry,
    User,
)
from .utils import utc_now

logger = structlog.get_logger(__name__)

_CANDIDATE_COLUMNS = (
    'id',
    'external_opportunity_id',
    'external_pipeline_id',
    'current_stage',
    'stage_changed_at',
    'state',
    'current_owner_id',
    'contact_id',
    *CANDIDATE_PROFILE_FIELDS,
    'created_at',
    'updated_at',
)

_CONTACT_COLUMNS = (
    'id',
    'external_contact_id',
    *CONTACT_PROFILE_FIELDS,
    'created_at',
    'updated_at',
)

_STAGE_HISTORY_COLUMNS = (
    'id',
    'candidate_id',
    'external_opportunity_id',
    'from_stage',
    'to_stage',
    'occurred_at',
    'source',
    'actor_id',
    'recorded_at',
)

# Columns an opportunity-modified event may overwrite. Stage, state and owner
# belong to the reconcilers.
UPDATABLE_CANDIDATE_FIELDS = frozenset(
    (*CANDIDATE_PROFILE_FIELDS, 'external_pipeline_id', 'contact_id')
)


def _select(table: str, columns: tuple[str, ...], alias: str | None = None) -> str:
    prefix = f'{alias}.' if alias else ''
    cols = ', '.join(f'{prefix}{c}' for c in columns)
    source = f'{table} {alias}' if alias else table
    return f'SELECT {cols} FROM {source}'


def _insert(table: str, columns: tuple[str, ...]) -> str:
    cols = ', '.join(columns)
    values = ', '.join(f':{c}' for c in columns)
    return f'INSERT INTO {table} ({cols}) VALUES ({values})'


def _enum_value(value: Any) -> Any:
    return value.value if hasattr(value, 'value') else value


def _params(model: Any, columns: tuple[str, ...]) -> dict[str, Any]:
    return {c: _enum_value(getattr(model, c)) for c in columns}


class CandidateRepository:
    """
    Store access for candidates and their logs.

    Usage:
        postgres = PostgresClient(database_url)
        await postgres.connect()
        repository = CandidateRepository(postgres)
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    @property
    def engine(self) -> AsyncEngine:
        return self.postgres.engine

    async def _fetch_one(self, sql: str, params: dict[str, Any]) -> dict[str, Any] | None:
        async with self.engine.begin() as conn:
            result = await conn.execute(text(sql), params)
            row = result.mappings().first()
        return dict(row) if row is not None else None

    # =========================================================================
    # Candidate reads
    # =========================================================================

    async def get_candidate(self, candidate_id: UUID) -> Candidate | None:
        row = await self._fetch_one(
            _select('candidates', _CANDIDATE_COLUMNS) + ' WHERE id = :id',
            {'id': candidate_id},
        )
        return Candidate.model_validate(row) if row else None

    async def get_candidate_by_opportunity_id(self, opportunity_id: str) -> Candidate | None:
        row = await self._fetch_one(
            _select('candidates', _CANDIDATE_COLUMNS)
            + ' WHERE external_opportunity_id = :opportunity_id',
            {'opportunity_id': opportunity_id},
        )
        return Candidate.model_validate(row) if row else None

    async def get_latest_candidate_for_contact(self, external_contact_id: str) -> Candidate | None:
        """Most recently created candidate linked to the contact."""
        sql = (
            _select('candidates', _CANDIDATE_COLUMNS, alias='c')
            + ' JOIN contacts ct ON ct.id = c.contact_id'
            + ' WHERE ct.external_contact_id = :external_contact_id'
            + ' ORDER BY c.created_at DESC, c.id DESC LIMIT 1'
        )
        row = await self._fetch_one(sql, {'external_contact_id': external_contact_id})
        return Candidate.model_validate(row) if row else None

    async def find_candidate_by_email_or_phone(
        self,
        email: str | None = None,
        phone: str | None = None,
    ) -> Candidate | None:
        """Exact match on either key, most recently updated first."""
        clauses = []
        params: dict[str, Any] = {}
        if email:
            clauses.append('email = :email')
            params['email'] = email
        if phone:
            clauses.append('phone = :phone')
            params['phone'] = phone
        if not clauses:
            return None

        sql = (
            _select('candidates', _CANDIDATE_COLUMNS)
            + f" WHERE {' OR '.join(clauses)}"
            + ' ORDER BY updated_at DESC, id DESC LIMIT 1'
        )
        row = await self._fetch_one(sql, params)
        return Candidate.model_validate(row) if row else None

    # =========================================================================
    # Candidate writes
    # =========================================================================

    async def create_candidate(
        self,
        candidate: Candidate,
        initial_entry: StageHistoryEntry | None = None,
    ) -> bool:
        """
        Insert a candidate unless one already exists for its opportunity id.

        The optional initial stage entry is written in the same transaction,
        only when the insert won.

        Returns:
            True if the row was inserted, False if another writer got there first.
        """
        sql = (
            _insert('candidates', _CANDIDATE_COLUMNS)
            + ' ON CONFLICT (external_opportunity_id) DO NOTHING RETURNING id'
        )
        async with self.engine.begin() as conn:
            result = await conn.execute(text(sql), _params(candidate, _CANDIDATE_COLUMNS))
            row = result.fetchone()
            if row is None:
                return False
            if initial_entry is not None:
                await conn.execute(
                    text(_insert('stage_history', _STAGE_HISTORY_COLUMNS)),
                    _params(initial_entry, _STAGE_HISTORY_COLUMNS),
                )

        logger.debug(
            'repository.candidate_created',
            candidate_id=str(candidate.id),
            with_initial_stage=initial_entry is not None,
        )
        return True

    async def update_candidate_fields(self, candidate_id: UUID, updates: dict[str, Any]) -> bool:
        """
        Overwrite whitelisted candidate columns.

        Raises:
            ValueError: If a column outside UPDATABLE_CANDIDATE_FIELDS is named
        """
        if not updates:
            return False
        unknown = set(updates) - UPDATABLE_CANDIDATE_FIELDS
        if unknown:
            raise ValueError(f'Columns not updatable: {sorted(unknown)}')

        assignments = ', '.join(f'{column} = :{column}' for column in sorted(updates))
        sql = f'UPDATE candidates SET {assignments}, updated_at = :updated_at WHERE id = :id'
        params = {**updates, 'updated_at': utc_now(), 'id': candidate_id}

        async with self.engine.begin() as conn:
            result = await conn.execute(text(sql), params)
        return result.rowcount > 0

    # =========================================================================
    # Stage history
    # =========================================================================

    async def get_latest_stage_entry(
        self,
        candidate_id: UUID | None = None,
        opportunity_id: str | None = None,
    ) -> StageHistoryEntry | None:
        """Most recently recorded history entry for a candidate or opportunity id."""
        clauses = []
        params: dict[str, Any] = {}
        if candidate_id is not None:
            clauses.append('candidate_id = :candidate_id')
            params['candidate_id'] = candidate_id
        if opportunity_id:
            clauses.append('external_opportunity_id = :opportunity_id')
            params['opportunity_id'] = opportunity_id
        if not clauses:
            return None

        sql = (
            _select('stage_history', _STAGE_HISTORY_COLUMNS)
            + f" WHERE {' OR '.join(clauses)}"
            + ' ORDER BY recorded_at DESC, id DESC LIMIT 1'
        )
        row = await self._fetch_one(sql, params)
        return StageHistoryEntry.model_validate(row) if row else None

    async def append_stage_entry(self, entry: StageHistoryEntry, update_projection: bool = True) -> None:
        """
        Append a history entry and, optionally, move the candidate's projection.

        Both writes share one transaction.
        """
        async with self.engine.begin() as conn:
            await conn.execute(
                text(_insert('stage_history', _STAGE_HISTORY_COLUMNS)),
                _params(entry, _STAGE_HISTORY_COLUMNS),
            )
            if update_projection:
                await conn.execute(
                    text("""
                        UPDATE candidates
                        SET current_stage = :to_stage,
                            stage_changed_at = :occurred_at,
                            updated_at = :updated_at
                        WHERE id = :candidate_id
                    """),
                    {
                        'to_stage': entry.to_stage,
                        'occurred_at': entry.occurred_at,
                        'updated_at': utc_now(),
                        'candidate_id': entry.candidate_id,
                    },
                )

        logger.debug(
            'repository.stage_entry_appended',
            candidate_id=str(entry.candidate_id),
            to_stage=entry.to_stage,
            update_projection=update_projection,
        )

    async def record_terminal_state(self, entry: TerminalStateEntry, stage: str | None = None) -> None:
        """
        Set a terminal state on the candidate and upsert its audit row.

        ``stage`` replaces the current stage when given.
        """
        async with self.engine.begin() as conn:
            await conn.execute(
                text("""
                    UPDATE candidates
                    SET state = :state,
                        current_stage = COALESCE(:stage, current_stage),
                        updated_at = :updated_at
                    WHERE id = :candidate_id
                """),
                {
                    'state': entry.state.value,
                    'stage': stage,
                    'updated_at': utc_now(),
                    'candidate_id': entry.candidate_id,
                },
            )
            await conn.execute(
                text("""
                    INSERT INTO terminal_states (
                        id, candidate_id, state, reason, stage_at_transition, occurred_at
                    ) VALUES (
                        :id, :candidate_id, :state, :reason, :stage_at_transition, :occurred_at
                    )
                    ON CONFLICT (candidate_id, state) DO UPDATE SET
                        reason = EXCLUDED.reason,
                        stage_at_transition = EXCLUDED.stage_at_transition,
                        occurred_at = EXCLUDED.occurred_at
                """),
                {
                    'id': entry.id,
                    'candidate_id': entry.candidate_id,
                    'state': entry.state.value,
                    'reason': entry.reason,
                    'stage_at_transition': entry.stage_at_transition,
                    'occurred_at': entry.occurred_at,
                },
            )

    # =========================================================================
    # Ownership
    # =========================================================================

    async def record_owner_change(self, entry: OwnershipChangeEntry) -> None:
        """Append an ownership entry and move current_owner_id in one transaction."""
        async with self.engine.begin() as conn:
            await conn.execute(
                text("""
                    INSERT INTO ownership_changes (
                        id, candidate_id, previous_owner_id, new_owner_id, changed_by_id, changed_at
                    ) VALUES (
                        :id, :candidate_id, :previous_owner_id, :new_owner_id, :changed_by_id, :changed_at
                    )
                """),
                entry.model_dump(),
            )
            await conn.execute(
                text("""
                    UPDATE candidates
                    SET current_owner_id = :new_owner_id, updated_at = :updated_at
                    WHERE id = :candidate_id
                """),
                {
                    'new_owner_id': entry.new_owner_id,
                    'updated_at': utc_now(),
                    'candidate_id': entry.candidate_id,
                },
            )

    # =========================================================================
    # Users and contacts
    # =========================================================================

    async def get_user_by_external_id(self, external_user_id: str) -> User | None:
        row = await self._fetch_one(
            'SELECT id, external_user_id, name, email FROM users'
            ' WHERE external_user_id = :external_user_id',
            {'external_user_id': external_user_id},
        )
        return User.model_validate(row) if row else None

    async def get_contact_by_external_id(self, external_contact_id: str) -> Contact | None:
        row = await self._fetch_one(
            _select('contacts', _CONTACT_COLUMNS) + ' WHERE external_contact_id = :external_contact_id',
            {'external_contact_id': external_contact_id},
        )
        return Contact.model_validate(row) if row else None

    async def upsert_contact(self, contact: Contact) -> tuple[UUID, bool]:
        """
        Insert or update a contact keyed by external id.

        Null profile values never overwrite stored ones.

        Returns:
            (contact id, True if the row was newly inserted)
        """
        updates = ',\n'.join(
            f'{column} = COALESCE(EXCLUDED.{column}, contacts.{column})'
            for column in CONTACT_PROFILE_FIELDS
        )
        sql = (
            _insert('contacts', _CONTACT_COLUMNS)
            + ' ON CONFLICT (external_contact_id) DO UPDATE SET '
            + updates
            + ', updated_at = EXCLUDED.updated_at'
            + ' RETURNING id, (xmax = 0) AS inserted'
        )
        async with self.engine.begin() as conn:
            result = await conn.execute(text(sql), _params(contact, _CONTACT_COLUMNS))
            row = result.fetchone()
        return row[0], bool(row[1])  # type: ignore[index]

    # =========================================================================
    # Activities
    # =========================================================================

    async def insert_note(self, note: Note) -> None:
        columns = ('id', 'contact_id', 'candidate_id', 'author_id', 'body', 'created_at')
        async with self.engine.begin() as conn:
            await conn.execute(text(_insert('notes', columns)), _params(note, columns))

    async def insert_appointment(self, appointment: Appointment) -> bool:
        """Insert unless the external appointment id is already stored."""
        columns = (
            'id',
            'candidate_id',
            'external_appointment_id',
            'kind',
            'title',
            'starts_at',
            'created_at',
        )
        sql = (
            _insert('appointments', columns)
            + ' ON CONFLICT (external_appointment_id) DO NOTHING RETURNING id'
        )
        async with self.engine.begin() as conn:
            result = await conn.execute(text(sql), _params(appointment, columns))
            row = result.fetchone()
        return row is not None
