"""
Tests for lifecycle.py - ReleaseLifecycle stepping a ledger clock
"""

from decimal import Decimal

import pytest

from vesting import ReleaseLifecycle, VestingEngine, EventType

from tests.fakes import FakeClock, FakeTransfer, issue, T0, OWNER, BENEFICIARY, NON_BENEFICIARY


@pytest.fixture
def funded_coin_vesting(coin_vesting, coin_ledger):
    issue(coin_ledger, "coin_vesting", "ETH", 1000)
    return coin_vesting


def create(engine, beneficiary, amount, duration=1000, cliff=0, revocable=True):
    return engine.create_vesting_schedule(
        OWNER, beneficiary, T0, cliff, duration, 1, revocable, amount,
    )


class TestReleaseLifecycle:

    def test_requires_ledger_clock(self, coin_ledger):
        engine = VestingEngine(OWNER, FakeClock(T0), FakeTransfer())
        with pytest.raises(ValueError):
            ReleaseLifecycle(engine, coin_ledger)

    def test_step_releases_everything_due(self, funded_coin_vesting, coin_ledger):
        create(funded_coin_vesting, BENEFICIARY, 100)
        create(funded_coin_vesting, NON_BENEFICIARY, 200)
        lifecycle = ReleaseLifecycle(funded_coin_vesting, coin_ledger)

        events = lifecycle.step(T0 + 500)

        assert [(e.beneficiary, e.amount) for e in events] == [
            (BENEFICIARY, 50), (NON_BENEFICIARY, 100),
        ]
        assert all(e.caller == OWNER for e in events)
        assert coin_ledger.get_balance(BENEFICIARY, "ETH") == Decimal(50)
        assert coin_ledger.get_balance(NON_BENEFICIARY, "ETH") == Decimal(100)

    def test_nothing_due(self, funded_coin_vesting, coin_ledger):
        create(funded_coin_vesting, BENEFICIARY, 100, cliff=600)
        lifecycle = ReleaseLifecycle(funded_coin_vesting, coin_ledger)
        assert lifecycle.step(T0 + 100) == []

    def test_skips_revoked(self, funded_coin_vesting, coin_ledger):
        revoked = create(funded_coin_vesting, BENEFICIARY, 100)
        create(funded_coin_vesting, NON_BENEFICIARY, 100)
        funded_coin_vesting.revoke(OWNER, revoked)
        lifecycle = ReleaseLifecycle(funded_coin_vesting, coin_ledger)

        events = lifecycle.step(T0 + 1000)

        assert [e.beneficiary for e in events] == [NON_BENEFICIARY]

    def test_run_pays_out_in_full(self, funded_coin_vesting, coin_ledger):
        schedule_id = create(funded_coin_vesting, BENEFICIARY, 1000)
        lifecycle = ReleaseLifecycle(funded_coin_vesting, coin_ledger)

        events = lifecycle.run([T0 + 100 * i for i in range(1, 12)])

        assert len(events) == 10
        assert sum(e.amount for e in events) == 1000
        assert coin_ledger.get_balance(BENEFICIARY, "ETH") == Decimal(1000)
        assert funded_coin_vesting.get_vesting_schedule(schedule_id).released == 1000
        assert funded_coin_vesting.get_vesting_schedules_total_amount() == 0
        assert coin_ledger.verify_double_entry()["valid"]

    def test_custom_operator(self, funded_coin_vesting, coin_ledger):
        create(funded_coin_vesting, BENEFICIARY, 100)
        lifecycle = ReleaseLifecycle(funded_coin_vesting, coin_ledger, operator=BENEFICIARY)
        events = lifecycle.step(T0 + 1000)
        assert events[0].caller == BENEFICIARY

    def test_time_cannot_go_backwards(self, funded_coin_vesting, coin_ledger):
        lifecycle = ReleaseLifecycle(funded_coin_vesting, coin_ledger)
        lifecycle.step(T0 + 10)
        with pytest.raises(ValueError):
            lifecycle.step(T0 + 5)

    def test_only_release_events_returned(self, funded_coin_vesting, coin_ledger):
        create(funded_coin_vesting, BENEFICIARY, 100)
        lifecycle = ReleaseLifecycle(funded_coin_vesting, coin_ledger)
        events = lifecycle.step(T0 + 100)
        assert {e.event_type for e in events} == {EventType.RELEASED}


class TestFailedPayouts:

    def test_failure_does_not_stop_other_schedules(self, funded_coin_vesting, coin_ledger):
        refused = create(funded_coin_vesting, BENEFICIARY, 100)
        create(funded_coin_vesting, NON_BENEFICIARY, 100)

        def reject(sender, amount):
            raise RuntimeError("not accepting")

        funded_coin_vesting.transfer.register_receive_hook(BENEFICIARY, reject)
        lifecycle = ReleaseLifecycle(funded_coin_vesting, coin_ledger)

        events = lifecycle.step(T0 + 500)

        assert [(e.beneficiary, e.amount) for e in events] == [(NON_BENEFICIARY, 50)]
        assert coin_ledger.get_balance(NON_BENEFICIARY, "ETH") == Decimal(50)
        assert coin_ledger.get_balance(BENEFICIARY, "ETH") == Decimal(0)
        assert funded_coin_vesting.get_vesting_schedule(refused).released == 0
        assert [(f.schedule_id, f.beneficiary, f.timestamp, f.amount) for f in lifecycle.failures] == [
            (refused, BENEFICIARY, T0 + 500, 50),
        ]
        assert "not accepting" in lifecycle.failures[0].reason

    def test_failed_schedule_retried_next_step(self, funded_coin_vesting, coin_ledger):
        schedule_id = create(funded_coin_vesting, BENEFICIARY, 100)
        funded_coin_vesting.transfer.register_receive_hook(
            BENEFICIARY, lambda sender, amount: 1 / 0,
        )
        lifecycle = ReleaseLifecycle(funded_coin_vesting, coin_ledger)
        assert lifecycle.step(T0 + 300) == []

        del funded_coin_vesting.transfer.receive_hooks[BENEFICIARY]
        events = lifecycle.step(T0 + 600)

        assert [e.amount for e in events] == [60]
        assert funded_coin_vesting.get_vesting_schedule(schedule_id).released == 60
        assert len(lifecycle.failures) == 1
