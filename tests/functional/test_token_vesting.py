"""
test_token_vesting.py - End-to-end fungible-token vesting scenarios

The owner holds the whole token supply and funds the pool by transferring
tokens into it. Payouts are plain token moves; no receive hooks run.
"""

import pytest

from vesting import (
    ScheduleRevoked, Unauthorized, InsufficientVestedAmount,
    InsufficientUnallocatedFunds, InsufficientWithdrawable, InvalidAmount,
    TokenTransfer, TransferFailed,
)

from tests.fakes import pay, ether, T0, OWNER, BENEFICIARY, NON_BENEFICIARY, TOKEN_SUPPLY, WEEK, DAY


POOL = "token_vesting"


def balance(ledger, wallet):
    return int(ledger.get_balance(wallet, "TT"))


def fund(ledger, amount, reference="pool_funding"):
    pay(ledger, OWNER, POOL, "TT", amount, reference=reference)


def create(engine, amount=100, beneficiary=BENEFICIARY, start=T0, cliff=0,
           duration=1000, slice_period=1, revocable=True):
    return engine.create_vesting_schedule(
        OWNER, beneficiary, start, cliff, duration, slice_period, revocable, amount,
    )


def test_uses_token_transfer(token_vesting):
    assert isinstance(token_vesting.transfer, TokenTransfer)
    assert token_vesting.get_withdrawable_amount() == 0


def test_owner_holds_supply(token_ledger):
    assert balance(token_ledger, OWNER) == TOKEN_SUPPLY
    assert token_ledger.get_unit("TT").issuer == OWNER


class TestGradualVesting:

    def test_release_over_time(self, token_vesting, token_ledger):
        fund(token_ledger, 1000)
        schedule_id = create(token_vesting)

        token_ledger.advance_time(T0 + 500)
        assert token_vesting.compute_releasable_amount(schedule_id) == 50
        with pytest.raises(InsufficientVestedAmount):
            token_vesting.release(BENEFICIARY, schedule_id, 100)
        with pytest.raises(Unauthorized):
            token_vesting.release(NON_BENEFICIARY, schedule_id, 10)

        token_vesting.release(BENEFICIARY, schedule_id, 10)
        assert balance(token_ledger, BENEFICIARY) == 10
        assert token_vesting.compute_releasable_amount(schedule_id) == 40

        token_ledger.advance_time(T0 + 1001)
        assert token_vesting.compute_releasable_amount(schedule_id) == 90
        token_vesting.release(BENEFICIARY, schedule_id, 45)
        token_vesting.release(OWNER, schedule_id, 45)

        assert balance(token_ledger, BENEFICIARY) == 100
        assert balance(token_ledger, POOL) == 900
        assert token_vesting.get_vesting_schedules_total_amount() == 0
        assert token_ledger.verify_double_entry()["valid"]

    def test_weekly_slices(self, token_vesting, token_ledger):
        fund(token_ledger, 1000)
        schedule_id = create(token_vesting, duration=10 * WEEK, slice_period=WEEK)
        token_ledger.advance_time(T0 + WEEK)
        assert token_vesting.compute_releasable_amount(schedule_id) == 10
        token_ledger.advance_time(T0 + WEEK + 1)
        assert token_vesting.compute_releasable_amount(schedule_id) == 10

    def test_daily_release_over_a_month(self, token_vesting, token_ledger):
        total = ether(70_000_000)
        fund(token_ledger, total)
        schedule_id = create(token_vesting, amount=total, duration=30 * DAY, slice_period=DAY)

        for day in range(1, 31):
            token_ledger.advance_time(T0 + day * DAY)
            token_vesting.release(
                BENEFICIARY, schedule_id, token_vesting.compute_releasable_amount(schedule_id)
            )

        assert balance(token_ledger, BENEFICIARY) == total
        assert balance(token_ledger, POOL) == 0


class TestRevocation:

    def test_revoke_pays_vested_part(self, token_vesting, token_ledger):
        fund(token_ledger, 100)
        schedule_id = create(token_vesting)
        token_ledger.advance_time(T0 + 500)

        token_vesting.revoke(OWNER, schedule_id)

        assert balance(token_ledger, BENEFICIARY) == 50
        assert token_vesting.get_withdrawable_amount() == 50
        with pytest.raises(ScheduleRevoked):
            token_vesting.revoke(OWNER, schedule_id)

        token_vesting.withdraw(OWNER, 50)
        assert balance(token_ledger, OWNER) == TOKEN_SUPPLY - 50

    def test_release_if_revoked(self, token_vesting, token_ledger):
        fund(token_ledger, 100)
        schedule_id = create(token_vesting)
        token_ledger.advance_time(T0 + 500)
        token_vesting.release(BENEFICIARY, schedule_id, 20)

        token_vesting.revoke(OWNER, schedule_id)

        # revocation pays out the remaining vested 30
        assert balance(token_ledger, BENEFICIARY) == 50
        token_ledger.advance_time(T0 + 1000)
        with pytest.raises(ScheduleRevoked):
            token_vesting.release(BENEFICIARY, schedule_id, 1)
        assert balance(token_ledger, BENEFICIARY) == 50


class TestFunding:

    def test_cannot_create_beyond_pool(self, token_vesting, token_ledger):
        fund(token_ledger, 100)
        create(token_vesting, amount=100)
        with pytest.raises(InsufficientUnallocatedFunds):
            create(token_vesting, amount=1)

    def test_totals_across_schedules(self, token_vesting, token_ledger):
        fund(token_ledger, 1000)
        create(token_vesting, amount=100)
        create(token_vesting, amount=75, beneficiary=NON_BENEFICIARY)
        assert token_vesting.get_vesting_schedules_count() == 2
        assert token_vesting.get_vesting_schedules_total_amount() == 175

    def test_withdraw_limits(self, token_vesting, token_ledger):
        fund(token_ledger, 100)
        create(token_vesting, amount=50)
        with pytest.raises(InvalidAmount):
            token_vesting.withdraw(OWNER, 0)
        with pytest.raises(InsufficientWithdrawable):
            token_vesting.withdraw(OWNER, 55)
        token_vesting.withdraw(OWNER, 50)
        assert balance(token_ledger, POOL) == 50

    def test_unregistered_beneficiary_payout_fails(self, token_vesting, token_ledger):
        fund(token_ledger, 100)
        schedule_id = create(token_vesting, beneficiary="unknown")
        token_ledger.advance_time(T0 + 500)
        with pytest.raises(TransferFailed):
            token_vesting.release(OWNER, schedule_id, 10)
        assert token_vesting.get_vesting_schedule(schedule_id).released == 0
        assert balance(token_ledger, POOL) == 100
