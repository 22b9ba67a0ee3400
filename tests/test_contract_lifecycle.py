"""Tests for the find → proposal → contract → submission → payout lifecycle."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from findermeister.domain.enums import (
    EscrowStatus,
    FindStatus,
    ProposalStatus,
    SubmissionStatus,
)
from findermeister.domain.models import Contract, Find, Finder, FinderLevel, Proposal
from findermeister.services.auth_service import get_finder_by_user_id
from findermeister.services.contract_lifecycle import (
    ALREADY_ACCEPTED,
    DUPLICATE_PROPOSAL,
    ContractLifecycleService,
)
from findermeister.services.errors import (
    ConflictError,
    MarketplaceError,
    PermissionDeniedError,
)
from findermeister.services.strike_service import StrikeService
from findermeister.services.token_ledger import TokenLedger

NOW = datetime(2026, 5, 4, 9, 0, 0)


@pytest.fixture
def lifecycle(db_session, email_mock):
    return ContractLifecycleService(db_session, email=email_mock)


async def _propose(lifecycle, finder_user, find, price=1500):
    return await lifecycle.submit_proposal(
        finder_user,
        find.id,
        approach="Research and shortlist three designers",
        price=price,
        timeline="2 weeks",
        notes=None,
    )


@pytest.fixture
async def hired(lifecycle, make_client, make_finder, make_find):
    """A client, a finder and an accepted proposal with its held contract."""
    client = await make_client()
    finder_user = await make_finder()
    find = await make_find(client, title="Logo design", budget_min=1000, budget_max=2000)
    proposal = await _propose(lifecycle, finder_user, find)
    proposal, contract = await lifecycle.accept_proposal(client, proposal.id)
    return client, finder_user, find, proposal, contract


# ---------------------------------------------------------------------------
# Finds and proposals
# ---------------------------------------------------------------------------


class TestProposals:
    async def test_hiring_scenario(self, db_session, lifecycle, make_client, make_finder):
        client = await make_client()
        find = await lifecycle.create_find(
            client,
            title="Logo design",
            description="Need a modern logo",
            category="Design",
            budget_min=1000,
            budget_max=2000,
            timeframe=None,
        )
        assert find.status == FindStatus.OPEN.value

        finder_user = await make_finder()
        finder = await get_finder_by_user_id(db_session, finder_user.id)
        proposal = await _propose(lifecycle, finder_user, find)
        assert proposal.status == ProposalStatus.PENDING.value
        assert finder.token_balance == 4

        proposal, contract = await lifecycle.accept_proposal(client, proposal.id)
        await db_session.refresh(find)
        assert proposal.status == ProposalStatus.ACCEPTED.value
        assert contract.escrow_status == EscrowStatus.HELD.value
        assert contract.amount == 1500
        assert find.status == FindStatus.IN_PROGRESS.value

    async def test_proposal_notifies_client(self, lifecycle, email_mock, make_client, make_finder, make_find):
        client = await make_client()
        finder_user = await make_finder()
        find = await make_find(client)

        await _propose(lifecycle, finder_user, find, price=120)

        email_mock.notify_client_new_proposal.assert_awaited_once()
        assert email_mock.notify_client_new_proposal.await_args.args[0] == client.email

    async def test_zero_balance_rejected_without_side_effects(
        self, db_session, lifecycle, make_client, make_finder, make_find, make_admin
    ):
        client = await make_client()
        admin = await make_admin()
        finder_user = await make_finder()
        finder = await get_finder_by_user_id(db_session, finder_user.id)
        await TokenLedger(db_session).charge_tokens(finder.id, 5, "Reset", admin.id)
        find = await make_find(client)

        with pytest.raises(ConflictError, match="Insufficient findertokens"):
            await _propose(lifecycle, finder_user, find)

        count = (await db_session.execute(select(func.count(Proposal.id)))).scalar_one()
        assert count == 0
        assert await TokenLedger(db_session).get_balance(finder) == 0

    async def test_duplicate_proposal_rejected(self, lifecycle, make_client, make_finder, make_find):
        client = await make_client()
        finder_user = await make_finder()
        find = await make_find(client)
        await _propose(lifecycle, finder_user, find)

        with pytest.raises(ConflictError) as exc_info:
            await _propose(lifecycle, finder_user, find)
        assert exc_info.value.message == DUPLICATE_PROPOSAL

    async def test_non_duplicate_integrity_error_is_not_reported_as_duplicate(
        self, db_session, lifecycle, make_client, make_finder, make_find
    ):
        client = await make_client()
        finder_user = await make_finder()
        finder_user_id = finder_user.id
        find = await make_find(client)

        with pytest.raises(IntegrityError):
            await lifecycle.submit_proposal(
                finder_user, find.id, approach=None, price=100, timeline="1 week"
            )

        count = (await db_session.execute(select(func.count(Proposal.id)))).scalar_one()
        assert count == 0
        balance = (
            await db_session.execute(
                select(Finder.token_balance).where(Finder.user_id == finder_user_id)
            )
        ).scalar_one()
        assert balance == 5

    async def test_proposal_on_taken_find_rejected(self, hired, lifecycle, make_finder):
        _, _, find, _, _ = hired
        latecomer = await make_finder()

        with pytest.raises(ConflictError) as exc_info:
            await _propose(lifecycle, latecomer, find)
        assert exc_info.value.message == ALREADY_ACCEPTED

    async def test_restricted_finder_cannot_apply(
        self, lifecycle, db_session, make_client, make_finder, make_find, make_admin
    ):
        client = await make_client()
        admin = await make_admin()
        finder_user = await make_finder()
        find = await make_find(client)
        await StrikeService(db_session).issue_strike_by_offense(
            finder_user.id, "Uploading fake proof", None, admin.id, "finder"
        )

        with pytest.raises(PermissionDeniedError):
            await _propose(lifecycle, finder_user, find)

    async def test_only_find_owner_sees_proposals(self, hired, lifecycle, make_client):
        _, _, find, _, _ = hired
        stranger = await make_client()

        with pytest.raises(PermissionDeniedError):
            await lifecycle.list_find_proposals(stranger, find.id)


# ---------------------------------------------------------------------------
# Acceptance
# ---------------------------------------------------------------------------


class TestAcceptance:
    async def test_second_accept_fails(self, db_session, lifecycle, make_client, make_finder, make_find):
        client = await make_client()
        find = await make_find(client)
        first = await _propose(lifecycle, await make_finder(), find)
        second = await _propose(lifecycle, await make_finder(), find)

        await lifecycle.accept_proposal(client, first.id)
        with pytest.raises(ConflictError) as exc_info:
            await lifecycle.accept_proposal(client, second.id)

        assert exc_info.value.message == ALREADY_ACCEPTED
        contracts = (await db_session.execute(select(func.count(Contract.id)))).scalar_one()
        assert contracts == 1
        accepted = (
            await db_session.execute(
                select(func.count(Proposal.id)).where(
                    Proposal.status == ProposalStatus.ACCEPTED.value
                )
            )
        ).scalar_one()
        assert accepted == 1

    async def test_existing_contract_blocks_accept_at_commit(
        self, db_session, lifecycle, make_client, make_finder, make_find
    ):
        client = await make_client()
        find = await make_find(client)
        first = await _propose(lifecycle, await make_finder(), find)
        second = await _propose(lifecycle, await make_finder(), find)
        find_id, second_id = find.id, second.id
        # A contract committed by another writer while the find still reads as open
        db_session.add(
            Contract(
                find_id=find.id,
                proposal_id=first.id,
                client_id=client.id,
                finder_id=first.finder_id,
                amount=first.price,
                escrow_status=EscrowStatus.HELD.value,
            )
        )
        await db_session.commit()

        with pytest.raises(ConflictError) as exc_info:
            await lifecycle.accept_proposal(client, second_id)

        assert exc_info.value.message == ALREADY_ACCEPTED
        contracts = (await db_session.execute(select(func.count(Contract.id)))).scalar_one()
        assert contracts == 1
        find_status = (
            await db_session.execute(select(Find.status).where(Find.id == find_id))
        ).scalar_one()
        assert find_status == FindStatus.OPEN.value
        second_status = (
            await db_session.execute(select(Proposal.status).where(Proposal.id == second_id))
        ).scalar_one()
        assert second_status == ProposalStatus.PENDING.value

    async def test_only_owner_accepts(self, lifecycle, make_client, make_finder, make_find):
        owner = await make_client()
        other = await make_client()
        find = await make_find(owner)
        proposal = await _propose(lifecycle, await make_finder(), find)

        with pytest.raises(PermissionDeniedError):
            await lifecycle.accept_proposal(other, proposal.id)

    async def test_reject_proposal(self, lifecycle, make_client, make_finder, make_find):
        client = await make_client()
        find = await make_find(client)
        proposal = await _propose(lifecycle, await make_finder(), find)

        rejected = await lifecycle.reject_proposal(client, proposal.id)

        assert rejected.status == ProposalStatus.REJECTED.value
        with pytest.raises(ConflictError):
            await lifecycle.accept_proposal(client, proposal.id)

    async def test_hire_notifies_finder(self, hired, email_mock):
        _, finder_user, _, _, _ = hired
        email_mock.notify_finder_hired.assert_awaited_once()
        assert email_mock.notify_finder_hired.await_args.args[0] == finder_user.email


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------


class TestSubmissions:
    async def test_accepting_work_completes_contract(self, hired, db_session, lifecycle):
        client, finder_user, find, _, contract = hired

        submission = await lifecycle.submit_work(
            finder_user, contract.id, "Here are the files", [], now=NOW
        )
        assert submission.auto_release_date == NOW + timedelta(days=5)
        assert contract.has_submission is True

        reviewed = await lifecycle.review_submission(
            client, submission.id, SubmissionStatus.ACCEPTED, "Great", now=NOW
        )

        await db_session.refresh(find)
        assert reviewed.status == SubmissionStatus.ACCEPTED.value
        assert reviewed.auto_release_date == NOW + timedelta(days=3)
        assert contract.escrow_status == EscrowStatus.COMPLETED.value
        assert contract.is_completed is True
        assert find.status == FindStatus.COMPLETED.value

    async def test_rejected_work_can_be_resubmitted(self, hired, lifecycle, email_mock):
        client, finder_user, _, _, contract = hired
        first = await lifecycle.submit_work(finder_user, contract.id, "Draft", [])

        await lifecycle.review_submission(
            client, first.id, SubmissionStatus.REJECTED, "Wrong colours"
        )
        second = await lifecycle.submit_work(finder_user, contract.id, "Revised", [])

        assert contract.has_submission is True
        assert second.status == SubmissionStatus.SUBMITTED.value
        email_mock.notify_finder_submission_rejected.assert_awaited_once()

    async def test_no_second_submission_while_pending(self, hired, lifecycle):
        _, finder_user, _, _, contract = hired
        await lifecycle.submit_work(finder_user, contract.id, "Draft", [])

        with pytest.raises(ConflictError, match="awaiting client review"):
            await lifecycle.submit_work(finder_user, contract.id, "Again", [])

    async def test_other_finder_cannot_submit(self, hired, lifecycle, make_finder):
        _, _, _, _, contract = hired
        intruder = await make_finder()

        with pytest.raises(PermissionDeniedError):
            await lifecycle.submit_work(intruder, contract.id, "Mine now", [])

    async def test_review_twice_rejected(self, hired, lifecycle):
        client, finder_user, _, _, contract = hired
        submission = await lifecycle.submit_work(finder_user, contract.id, "Done", [])
        await lifecycle.review_submission(client, submission.id, SubmissionStatus.ACCEPTED)

        with pytest.raises(ConflictError):
            await lifecycle.review_submission(client, submission.id, SubmissionStatus.REJECTED)


# ---------------------------------------------------------------------------
# Payout
# ---------------------------------------------------------------------------


class TestRelease:
    async def test_release_pays_finder_once(self, hired, db_session, lifecycle, email_mock):
        client, finder_user, _, _, contract = hired
        finder = await get_finder_by_user_id(db_session, finder_user.id)

        released = await lifecycle.release_payment(client, contract.id, now=NOW)

        await db_session.refresh(finder)
        assert released.escrow_status == EscrowStatus.RELEASED.value
        assert released.released_at == NOW
        assert finder.total_earned == 1500
        assert finder.available_balance == 1500
        assert finder.jobs_completed == 1
        email_mock.notify_finder_payment_released.assert_awaited_once()

        with pytest.raises(MarketplaceError, match="already been released"):
            await lifecycle.release_payment(client, contract.id)
        await db_session.refresh(finder)
        assert finder.total_earned == 1500

    async def test_only_client_releases(self, hired, lifecycle, make_client):
        _, _, _, _, contract = hired
        stranger = await make_client()

        with pytest.raises(PermissionDeniedError):
            await lifecycle.release_payment(stranger, contract.id)

    async def test_release_promotes_finder_level(self, hired, db_session, lifecycle):
        client, finder_user, _, _, contract = hired
        level = FinderLevel(name="Pro", min_earned=1000, min_jobs=1, min_review_percentage=0)
        db_session.add(level)
        await db_session.commit()

        await lifecycle.release_payment(client, contract.id)

        finder = await get_finder_by_user_id(db_session, finder_user.id)
        assert finder.current_level_id == level.id

    async def test_auto_release_after_window(self, hired, db_session, lifecycle):
        _, finder_user, _, _, contract = hired
        await lifecycle.submit_work(finder_user, contract.id, "Done", [], now=NOW)

        too_early = await lifecycle.auto_release_due(now=NOW + timedelta(days=4))
        on_time = await lifecycle.auto_release_due(now=NOW + timedelta(days=5))

        await db_session.refresh(contract)
        assert too_early == 0
        assert on_time == 1
        assert contract.escrow_status == EscrowStatus.RELEASED.value
        submission = await lifecycle.latest_submission(contract.id)
        assert submission.status == SubmissionStatus.ACCEPTED.value

    async def test_auto_release_skips_rejected_work(self, hired, lifecycle):
        client, finder_user, _, _, contract = hired
        submission = await lifecycle.submit_work(finder_user, contract.id, "Draft", [], now=NOW)
        await lifecycle.review_submission(client, submission.id, SubmissionStatus.REJECTED)

        assert await lifecycle.auto_release_due(now=NOW + timedelta(days=30)) == 0


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


class TestReviews:
    async def test_review_updates_average(self, hired, db_session, lifecycle):
        client, finder_user, _, _, contract = hired

        await lifecycle.create_review(client, contract.id, 4, "Solid work")

        finder = await get_finder_by_user_id(db_session, finder_user.id)
        assert finder.average_rating == 4.0
        reviews = await lifecycle.list_finder_reviews(finder.id)
        assert [r.rating for r in reviews] == [4]

    async def test_one_review_per_contract(self, hired, lifecycle):
        client, _, _, _, contract = hired
        await lifecycle.create_review(client, contract.id, 5)

        with pytest.raises(ConflictError):
            await lifecycle.create_review(client, contract.id, 1)
