"""
Tests for the OwnershipLedger compare-and-log behaviour.
"""

import pytest

from candidate_sync.errors import CandidateNotFoundError, UserNotFoundError
from candidate_sync.models.events import OwnerChangeRecord
from candidate_sync.pipeline.outcome import APPLIED, NO_OP
from candidate_sync.pipeline.ownership_ledger import OwnershipLedger


@pytest.fixture
def ledger(repository, identity) -> OwnershipLedger:
    return OwnershipLedger(repository, identity)


def _change(new_owner='usr_luis', actor='usr_ana', opportunity_id='OPP-1') -> OwnerChangeRecord:
    return OwnerChangeRecord(
        opportunity_id=opportunity_id,
        new_owner_user_id=new_owner,
        actor_user_id=actor,
    )


class TestOwnerChange:
    @pytest.mark.asyncio
    async def test_same_owner_is_no_op_without_ledger_row(self, repository, ledger, user, other_user):
        candidate = repository.add_candidate(external_opportunity_id='OPP-1', current_owner_id=other_user.id)

        outcome = await ledger.apply_owner_change(_change())

        assert outcome.status == NO_OP
        assert outcome.reason == 'no-op'
        assert outcome.candidate_id == candidate.id
        assert repository.ownership_changes == []

    @pytest.mark.asyncio
    async def test_different_owner_writes_exactly_one_row(self, repository, ledger, user, other_user):
        candidate = repository.add_candidate(external_opportunity_id='OPP-1', current_owner_id=user.id)

        outcome = await ledger.apply_owner_change(_change())

        assert outcome.status == APPLIED
        assert outcome.reason == 'owner-changed'
        assert len(repository.ownership_changes) == 1
        entry = repository.ownership_changes[0]
        assert entry.previous_owner_id == user.id
        assert entry.new_owner_id == other_user.id
        assert entry.changed_by_id == user.id
        assert repository.candidates[candidate.id].current_owner_id == other_user.id

    @pytest.mark.asyncio
    async def test_redelivery_appends_once(self, repository, ledger, user, other_user):
        repository.add_candidate(external_opportunity_id='OPP-1', current_owner_id=user.id)

        first = await ledger.apply_owner_change(_change())
        second = await ledger.apply_owner_change(_change())

        assert (first.status, second.status) == (APPLIED, NO_OP)
        assert len(repository.ownership_changes) == 1

    @pytest.mark.asyncio
    async def test_first_owner_has_null_previous(self, repository, ledger, user, other_user):
        repository.add_candidate(external_opportunity_id='OPP-1')

        outcome = await ledger.apply_owner_change(_change())

        assert outcome.details['previous_owner_id'] is None
        assert repository.ownership_changes[0].previous_owner_id is None


class TestOwnerChangeHardFailures:
    @pytest.mark.asyncio
    async def test_unknown_candidate(self, ledger, user, other_user):
        with pytest.raises(CandidateNotFoundError):
            await ledger.apply_owner_change(_change(opportunity_id='OPP-404'))

    @pytest.mark.asyncio
    async def test_unknown_new_owner(self, repository, ledger, user):
        repository.add_candidate(external_opportunity_id='OPP-1')

        with pytest.raises(UserNotFoundError, match='New owner'):
            await ledger.apply_owner_change(_change(new_owner='usr_ghost'))
        assert repository.ownership_changes == []

    @pytest.mark.asyncio
    async def test_unknown_actor(self, repository, ledger, other_user):
        repository.add_candidate(external_opportunity_id='OPP-1')

        with pytest.raises(UserNotFoundError, match='Acting user'):
            await ledger.apply_owner_change(_change(actor='usr_ghost'))
        assert repository.ownership_changes == []
