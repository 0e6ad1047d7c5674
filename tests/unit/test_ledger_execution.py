"""
test_ledger_execution.py - Unit tests for Ledger operations

Tests:
- Wallet and unit registration
- Time management
- Atomic execution, idempotency and rejection reasons
- Stale state detection
- clone() independence
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from automator import (
    Ledger, Move, ExecuteResult, UnitStateChange, build_transaction,
    collateral_token, SYSTEM_WALLET,
    LedgerError, UnitNotRegistered, WalletNotRegistered,
)


@pytest.fixture
def usdc_ledger():
    ledger = Ledger("test", datetime(2024, 8, 1), verbose=False, test_mode=True)
    ledger.register_unit(collateral_token("USDC", "USD Coin"))
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")
    ledger.execute(build_transaction(ledger, [
        Move(Decimal("100"), "USDC", SYSTEM_WALLET, "alice", "initial_balance")
    ]))
    return ledger


class TestRegistration:

    def test_system_wallet_is_preregistered(self):
        ledger = Ledger("test")
        assert SYSTEM_WALLET in ledger.list_wallets()

    def test_duplicate_wallet_raises(self, usdc_ledger):
        with pytest.raises(ValueError, match="already registered"):
            usdc_ledger.register_wallet("alice")

    def test_ensure_wallet_is_idempotent(self, usdc_ledger):
        assert usdc_ledger.ensure_wallet("alice") == "alice"
        assert usdc_ledger.ensure_wallet("carol") == "carol"
        assert "carol" in usdc_ledger.list_wallets()

    def test_duplicate_unit_raises(self, usdc_ledger):
        with pytest.raises(ValueError, match="already registered"):
            usdc_ledger.register_unit(collateral_token("USDC", "USD Coin"))

    def test_unknown_wallet_balance_raises(self, usdc_ledger):
        with pytest.raises(WalletNotRegistered):
            usdc_ledger.get_balance("mallory", "USDC")

    def test_unknown_unit_balance_raises(self, usdc_ledger):
        with pytest.raises(UnitNotRegistered):
            usdc_ledger.get_balance("alice", "DAI")


class TestTime:

    def test_advance_time(self, usdc_ledger):
        later = usdc_ledger.current_time + timedelta(days=1)
        usdc_ledger.advance_time(later)
        assert usdc_ledger.current_time == later

    def test_time_cannot_go_backwards(self, usdc_ledger):
        with pytest.raises(ValueError, match="backwards"):
            usdc_ledger.advance_time(datetime(2024, 7, 1))


class TestExecute:

    def test_transfer_applies(self, usdc_ledger):
        tx = build_transaction(usdc_ledger, [Move(Decimal("40"), "USDC", "alice", "bob", "pay")])
        assert usdc_ledger.execute(tx) == ExecuteResult.APPLIED
        assert usdc_ledger.get_balance("alice", "USDC") == Decimal("60")
        assert usdc_ledger.get_balance("bob", "USDC") == Decimal("40")

    def test_same_intent_applies_once(self, usdc_ledger):
        tx = build_transaction(usdc_ledger, [Move(Decimal("40"), "USDC", "alice", "bob", "pay")])
        usdc_ledger.execute(tx)
        assert usdc_ledger.execute(tx) == ExecuteResult.ALREADY_APPLIED
        assert usdc_ledger.get_balance("bob", "USDC") == Decimal("40")

    def test_overdraft_rejected_with_reason(self, usdc_ledger):
        tx = build_transaction(usdc_ledger, [Move(Decimal("101"), "USDC", "alice", "bob", "pay")])
        assert usdc_ledger.execute(tx) == ExecuteResult.REJECTED
        assert "alice USDC" in usdc_ledger.last_rejection
        assert usdc_ledger.get_balance("alice", "USDC") == Decimal("100")

    def test_rejection_is_atomic(self, usdc_ledger):
        tx = build_transaction(usdc_ledger, [
            Move(Decimal("10"), "USDC", "alice", "bob", "ok"),
            Move(Decimal("500"), "USDC", "bob", "alice", "too_much"),
        ])
        assert usdc_ledger.execute(tx) == ExecuteResult.REJECTED
        assert usdc_ledger.get_balance("bob", "USDC") == Decimal("0")

    def test_net_validation_allows_pass_through(self, usdc_ledger):
        tx = build_transaction(usdc_ledger, [
            Move(Decimal("100"), "USDC", "alice", "bob", "leg1"),
            Move(Decimal("100"), "USDC", "bob", "alice", "leg2"),
        ])
        assert usdc_ledger.execute(tx) == ExecuteResult.APPLIED

    def test_unregistered_wallet_rejected(self, usdc_ledger):
        tx = build_transaction(usdc_ledger, [Move(Decimal("1"), "USDC", "alice", "mallory", "pay")])
        assert usdc_ledger.execute(tx) == ExecuteResult.REJECTED
        assert "not registered" in usdc_ledger.last_rejection

    def test_successful_execute_clears_rejection(self, usdc_ledger):
        usdc_ledger.execute(build_transaction(usdc_ledger, [Move(Decimal("500"), "USDC", "alice", "bob", "x")]))
        usdc_ledger.execute(build_transaction(usdc_ledger, [Move(Decimal("5"), "USDC", "alice", "bob", "y")]))
        assert usdc_ledger.last_rejection is None


class TestStateChanges:

    def test_state_change_applies(self, usdc_ledger):
        old = usdc_ledger.get_unit_state("USDC")
        change = UnitStateChange("USDC", old, {**old, 'paused': False})
        assert usdc_ledger.execute(build_transaction(usdc_ledger, [], [change])) == ExecuteResult.APPLIED
        assert usdc_ledger.get_unit_state("USDC")['paused'] is False

    def test_stale_state_rejected(self, usdc_ledger):
        old = usdc_ledger.get_unit_state("USDC")
        first = build_transaction(usdc_ledger, [], [UnitStateChange("USDC", old, {**old, 'v': 1})])
        second = build_transaction(usdc_ledger, [], [UnitStateChange("USDC", old, {**old, 'v': 2})])
        assert usdc_ledger.execute(first) == ExecuteResult.APPLIED
        assert usdc_ledger.execute(second) == ExecuteResult.REJECTED
        assert "stale state" in usdc_ledger.last_rejection
        assert usdc_ledger.get_unit_state("USDC")['v'] == 1

    def test_state_change_on_unknown_unit_rejected(self, usdc_ledger):
        tx = build_transaction(usdc_ledger, [], [UnitStateChange("DAI", {}, {'v': 1})])
        assert usdc_ledger.execute(tx) == ExecuteResult.REJECTED


class TestSupplyAndClone:

    def test_double_entry_holds(self, usdc_ledger):
        assert usdc_ledger.total_supply("USDC") == Decimal("0")
        assert usdc_ledger.verify_double_entry()["valid"]

    def test_set_balance_requires_test_mode(self):
        ledger = Ledger("prod")
        ledger.register_unit(collateral_token("USDC", "USD Coin"))
        ledger.register_wallet("alice")
        with pytest.raises(LedgerError, match="production"):
            ledger.set_balance("alice", "USDC", Decimal("1"))

    def test_clone_is_independent(self, usdc_ledger):
        cloned = usdc_ledger.clone()
        cloned.execute(build_transaction(cloned, [Move(Decimal("1"), "USDC", "alice", "bob", "pay")]))
        assert usdc_ledger.get_balance("bob", "USDC") == Decimal("0")
        assert cloned.get_balance("bob", "USDC") == Decimal("1")
