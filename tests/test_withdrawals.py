"""Tests for finder payout requests."""

import pytest

from findermeister.domain.enums import WithdrawalStatus
from findermeister.services.auth_service import get_finder_by_user_id
from findermeister.services.errors import ConflictError, ValidationFailedError
from findermeister.services.withdrawals import WithdrawalService


@pytest.fixture
async def funded_finder(db_session, make_finder):
    user = await make_finder()
    finder = await get_finder_by_user_id(db_session, user.id)
    finder.available_balance = 300
    await db_session.commit()
    return user, finder


async def test_request_holds_funds(db_session, funded_finder):
    user, finder = funded_finder

    withdrawal = await WithdrawalService(db_session).request_withdrawal(
        user, 120, "paypal", {"email": "me@example.com"}
    )

    assert withdrawal.status == WithdrawalStatus.PENDING.value
    assert finder.available_balance == 180


async def test_cannot_withdraw_more_than_available(db_session, funded_finder):
    user, finder = funded_finder

    with pytest.raises(ConflictError, match="Insufficient balance"):
        await WithdrawalService(db_session).request_withdrawal(user, 301, "bank")
    await db_session.refresh(finder)
    assert finder.available_balance == 300


async def test_amount_must_be_positive(db_session, funded_finder):
    user, _ = funded_finder
    with pytest.raises(ValidationFailedError):
        await WithdrawalService(db_session).request_withdrawal(user, 0, "bank")


async def test_rejection_refunds(db_session, funded_finder, make_admin):
    user, finder = funded_finder
    admin = await make_admin()
    service = WithdrawalService(db_session)
    withdrawal = await service.request_withdrawal(user, 100, "bank")

    updated = await service.update_withdrawal(
        withdrawal.id, WithdrawalStatus.REJECTED, "Details invalid", admin
    )

    await db_session.refresh(finder)
    assert updated.processed_by == admin.id
    assert finder.available_balance == 300
    with pytest.raises(ConflictError):
        await service.update_withdrawal(withdrawal.id, WithdrawalStatus.APPROVED, None, admin)


async def test_approval_keeps_funds_out(db_session, funded_finder, make_admin):
    user, finder = funded_finder
    admin = await make_admin()
    service = WithdrawalService(db_session)
    withdrawal = await service.request_withdrawal(user, 100, "bank")

    await service.update_withdrawal(withdrawal.id, WithdrawalStatus.APPROVED, None, admin)

    await db_session.refresh(finder)
    assert finder.available_balance == 200
    assert [w.id for w in await service.list_for_finder(user)] == [withdrawal.id]
