"""
ledger.py - Stateful Double-Entry Ledger

The Ledger is the only object that mutates balances and unit state. Fund
operations build PendingTransactions against its read-only LedgerView side and
submit them here; each one is applied completely or not at all.

Key responsibilities:
    - Implements LedgerView for pure compute functions and collaborators
    - Executes transactions atomically (all moves and state changes, or none)
    - Rejects stale state changes (optimistic concurrency on unit state)
    - Maintains wallet balances, unit definitions and the logical clock
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Set, Optional, Tuple, Any
import copy
import logging

from .core import (
    Move, Transaction, Unit,
    PendingTransaction,
    ExecuteResult,
    Positions, UnitState, BalanceMap,
    QUANTITY_EPSILON, SYSTEM_WALLET,
    LedgerError, TransferRuleViolation, UnitNotRegistered, WalletNotRegistered,
    _canonicalize, _freeze_state,
)

logger = logging.getLogger(__name__)


class Ledger:
    """
    Double-entry ledger with full validation and an audit trail.

    Thread Safety:
        Not thread-safe. Operations are serialized by the caller; the fund
        facade adds a reentrancy guard on top.

    Example:
        ledger = Ledger("main", datetime(2025, 1, 1))
        ledger.register_unit(collateral_token("USDC", "USD Coin"))
        ledger.register_wallet("alice")
        ledger.register_wallet("bob")

        tx = build_transaction(ledger, [
            Move(Decimal("100"), "USDC", "alice", "bob", "payment_001")
        ])
        result = ledger.execute(tx)
    """

    POSITION_EPSILON = QUANTITY_EPSILON

    def __init__(
        self,
        name: str,
        initial_time: Optional[datetime] = None,
        verbose: bool = False,
        test_mode: bool = False
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_time: Starting time for the ledger (default: 1970-01-01)
            verbose: Log transaction results at INFO instead of DEBUG
            test_mode: Allow set_balance() calls
        """
        self.name = name
        self.balances: Dict[str, Dict[str, Decimal]] = {}
        self.units: Dict[str, Unit] = {}
        self.registered_wallets: Set[str] = set()
        self.seen_intent_ids: Set[str] = set()
        self.transaction_log: List[Transaction] = []
        self.last_rejection: Optional[str] = None
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.verbose = verbose
        self._test_mode = test_mode
        self._next_sequence: int = 0
        # unit -> {wallet -> quantity}
        self._positions_by_unit: Dict[str, Dict[str, Decimal]] = defaultdict(dict)

        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(lambda: Decimal("0"))

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Get the balance of a specific unit in a wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
            UnitNotRegistered: If unit is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return self.balances[wallet_id].get(unit_symbol, Decimal("0"))

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """
        Get a deep copy of a unit's internal state.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        state = self.units[unit_symbol].state
        return copy.deepcopy(state) if state else {}

    def get_positions(self, unit_symbol: str) -> Positions:
        """Get all non-zero positions for a unit, from the inverted index."""
        return dict(self._positions_by_unit.get(unit_symbol, {}))

    def list_wallets(self) -> Set[str]:
        return self.registered_wallets.copy()

    def list_units(self) -> List[str]:
        return sorted(self.units.keys())

    def get_unit(self, symbol: str) -> Unit:
        if symbol not in self.units:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        return self.units[symbol]

    def get_wallet_balances(self, wallet_id: str) -> BalanceMap:
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        return dict(self.balances[wallet_id])

    def total_supply(self, unit_symbol: str) -> Decimal:
        """
        Sum a unit's balances across all wallets, system wallet included.

        Under double entry this is constant: zero unless set_balance() was used.
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return sum(
            (self.balances[w].get(unit_symbol, Decimal("0")) for w in sorted(self.registered_wallets)),
            Decimal("0"),
        )

    def verify_double_entry(
        self,
        expected_supplies: Optional[Dict[str, Decimal]] = None,
        tolerance: Decimal = Decimal("0")
    ) -> Dict[str, Any]:
        """
        Verify that every unit's total supply matches the expected value.

        Returns:
            Dict with 'valid', 'supplies' and 'discrepancies'
        """
        supplies = {}
        discrepancies = []

        for unit_symbol in self.units:
            current_supply = self.total_supply(unit_symbol)
            supplies[unit_symbol] = current_supply
            if expected_supplies and unit_symbol in expected_supplies:
                expected = expected_supplies[unit_symbol]
                difference = abs(current_supply - expected)
                if difference > tolerance:
                    discrepancies.append({
                        'unit': unit_symbol,
                        'expected': expected,
                        'actual': current_supply,
                        'difference': difference,
                    })

        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    def is_registered(self, wallet_id: str) -> bool:
        return wallet_id in self.registered_wallets

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock. Time only moves forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Register a new wallet.

        Raises:
            ValueError: If wallet is already registered
        """
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(lambda: Decimal("0"))
        return wallet_id

    def ensure_wallet(self, wallet_id: str) -> str:
        """Register a wallet unless it already exists."""
        if wallet_id not in self.registered_wallets:
            self.register_wallet(wallet_id)
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        """
        Register a new unit.

        Raises:
            ValueError: If unit symbol is already registered
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        rule_str = f", rule={unit.transfer_rule.__name__}" if unit.transfer_rule else ""
        logger.debug("registered unit %s (%s) [%s]%s", unit.symbol, unit.name, unit.unit_type, rule_str)

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """
        Overwrite a wallet's balance directly.

        Bypasses double entry, so it is only available in test mode.

        Raises:
            LedgerError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is disabled in production mode. "
                "Use build_transaction() and execute() to modify balances."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        if not isinstance(quantity, Decimal):
            quantity = Decimal(str(quantity))
        self.balances[wallet_id][unit_symbol] = quantity
        self._update_position_index(wallet_id, unit_symbol, quantity)

    def update_unit_state(self, unit_symbol: str, state_updates: UnitState) -> None:
        """
        Merge state_updates into a unit's state outside any transaction.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        old_unit = self.units[unit_symbol]
        new_state = {**old_unit.state, **state_updates}
        self.units[unit_symbol] = replace(old_unit, _frozen_state=_freeze_state(new_state))

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """Format: exec:{ledger_name}:{sequence:012d}:{timestamp_micros}"""
        micros = int(self._current_time.timestamp() * 1_000_000)
        return f"exec:{self.name}:{sequence:012d}:{micros}"

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        All moves and state changes apply together or not at all. A pending
        transaction whose intent_id was already applied is not applied again.

        Validation covers unit/wallet registration, timestamps, transfer rules,
        min/max balance constraints and staleness of each state change.

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.ALREADY_APPLIED if the intent was already executed
            ExecuteResult.REJECTED if validation failed (see last_rejection)
        """
        self.last_rejection = None
        if pending.is_empty():
            return ExecuteResult.APPLIED

        if pending.intent_id in self.seen_intent_ids:
            logger.warning("ALREADY_APPLIED: intent_id=%s", pending.intent_id)
            return ExecuteResult.ALREADY_APPLIED

        # Units are registered for validation and rolled back on rejection
        newly_registered_units: List[str] = []
        for unit in pending.units_to_create:
            if unit.symbol not in self.units:
                self.register_unit(unit)
                newly_registered_units.append(unit.symbol)

        valid, reason = self._validate_pending(pending)
        if not valid:
            for sym in newly_registered_units:
                del self.units[sym]
            return self._reject(reason)

        sequence = self._next_sequence
        self._next_sequence += 1

        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            origin=pending.origin,
            timestamp=pending.timestamp,
            intent_id=pending.intent_id,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
            units_to_create=pending.units_to_create,
        )

        self._execute_moves(tx.moves)

        for sc in tx.state_changes:
            new_state = copy.deepcopy(sc.new_state if isinstance(sc.new_state, dict) else {})
            self.units[sc.unit] = replace(self.units[sc.unit], _frozen_state=_freeze_state(new_state))

        self.transaction_log.append(tx)
        self.seen_intent_ids.add(pending.intent_id)

        self._log_tx_result(tx)
        return ExecuteResult.APPLIED

    def _reject(self, reason: str) -> ExecuteResult:
        self.last_rejection = reason
        logger.warning("REJECTED: %s", reason)
        return ExecuteResult.REJECTED

    def _log_tx_result(self, tx: Transaction) -> None:
        if self.verbose:
            logger.info("APPLIED %r", tx)
        else:
            logger.debug("APPLIED %s %s (%d moves)", tx.exec_id, tx.origin, len(tx.moves))

    def _validate_pending(self, pending: PendingTransaction) -> Tuple[bool, str]:
        """
        Validate a pending transaction against all constraints.

        Checks, in order:
        1. Timestamp (transaction must not be from the future)
        2. Unit and wallet registration
        3. Transfer rules
        4. Min/max balance constraints on net changes
        5. State changes target registered units whose state is unchanged

        Returns:
            (True, "") or (False, reason)
        """
        if pending.timestamp > self._current_time:
            return False, "future timestamp"

        for move in pending.moves:
            if move.unit_symbol not in self.units:
                return False, f"unit not registered: {move.unit_symbol}"
            if not self.is_registered(move.source):
                return False, f"wallet not registered: {move.source}"
            if not self.is_registered(move.dest):
                return False, f"wallet not registered: {move.dest}"

            unit = self.units[move.unit_symbol]
            if unit.transfer_rule:
                try:
                    unit.transfer_rule(self, move)
                except TransferRuleViolation as e:
                    return False, str(e)

        net: Dict[Tuple[str, str], Decimal] = {}
        for move in pending.moves:
            unit = self.units[move.unit_symbol]
            key_src = (move.source, move.unit_symbol)
            key_dst = (move.dest, move.unit_symbol)
            net[key_src] = unit.round(net.get(key_src, Decimal("0")) - move.quantity)
            net[key_dst] = unit.round(net.get(key_dst, Decimal("0")) + move.quantity)

        # SYSTEM_WALLET is exempt: it is the issuance/burn counterparty
        for (wallet, unit_sym), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            current = self.balances[wallet][unit_sym]
            unit = self.units[unit_sym]
            proposed = unit.round(current + delta)
            if proposed < unit.min_balance:
                return False, f"{wallet} {unit_sym}: {proposed} < min {unit.min_balance}"
            if proposed > unit.max_balance:
                return False, f"{wallet} {unit_sym}: {proposed} > max {unit.max_balance}"

        for sc in pending.state_changes:
            if sc.unit not in self.units:
                return False, f"unit not registered: {sc.unit}"
            if sc.old_state is not None:
                current_state = self.units[sc.unit].state
                if _canonicalize(sc.old_state) != _canonicalize(current_state):
                    return False, f"stale state for {sc.unit}"

        return True, ""

    def _update_position_index(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        if abs(quantity) > self.POSITION_EPSILON:
            self._positions_by_unit[unit_symbol][wallet_id] = quantity
        else:
            self._positions_by_unit[unit_symbol].pop(wallet_id, None)

    def _execute_moves(self, moves) -> None:
        for move in moves:
            unit = self.units[move.unit_symbol]
            new_src_balance = unit.round(
                self.balances[move.source][move.unit_symbol] - move.quantity
            )
            self.balances[move.source][move.unit_symbol] = new_src_balance
            self._update_position_index(move.source, move.unit_symbol, new_src_balance)
            new_dst_balance = unit.round(
                self.balances[move.dest][move.unit_symbol] + move.quantity
            )
            self.balances[move.dest][move.unit_symbol] = new_dst_balance
            self._update_position_index(move.dest, move.unit_symbol, new_dst_balance)

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create a fully independent deep copy of this ledger.

        Used to dry-run operations and to compare state before/after a
        rejected operation.
        """
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned._current_time = self._current_time
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned.last_rejection = self.last_rejection

        cloned.units = {
            symbol: replace(unit, _frozen_state=_freeze_state(copy.deepcopy(unit.state)))
            for symbol, unit in self.units.items()
        }
        cloned.registered_wallets = self.registered_wallets.copy()
        cloned.seen_intent_ids = self.seen_intent_ids.copy()
        cloned.transaction_log = list(self.transaction_log)
        cloned._next_sequence = self._next_sequence

        cloned.balances = {}
        for wallet, bals in self.balances.items():
            cloned.balances[wallet] = defaultdict(lambda: Decimal("0"), bals)

        cloned._positions_by_unit = defaultdict(dict)
        for unit_symbol, positions in self._positions_by_unit.items():
            cloned._positions_by_unit[unit_symbol] = dict(positions)

        return cloned
