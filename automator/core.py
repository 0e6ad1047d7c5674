"""
Core types and pure functions for the automator fund ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access
2. Immutable data structures: Move, PendingTransaction, Transaction, Unit
3. Exceptions: LedgerError and the AutomatorError taxonomy
4. Fixed-point helpers: base-unit quantization and floor mul/div
5. Unit factories: collateral tokens

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_EVEN, ROUND_DOWN, ROUND_UP, getcontext, localcontext
from enum import Enum
import copy
import hashlib
from typing import (
    Dict, List, Set, Optional, Callable, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable,
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Share and collateral arithmetic must be deterministic. The global context is
# configured once at import time.
#
# PRECONDITION: No other code should modify the global Decimal context.
# Rounding-sensitive arithmetic uses decimal.localcontext().
#
_LEDGER_DECIMAL_CONTEXT = getcontext()
_LEDGER_DECIMAL_CONTEXT.prec = 50
_LEDGER_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and burning.
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

# Recipient of the first-deposit share floor. Never spends.
BURN_WALLET = "0x000000000000000000000000000000000000dEaD"

UNIT_TYPE_COLLATERAL = "COLLATERAL"
UNIT_TYPE_WRAPPED = "WRAPPED"
UNIT_TYPE_FUND_SHARE = "FUND_SHARE"

# Quantities with absolute value below this threshold are treated as zero.
# One base unit at 18 decimals is 1e-18, so the epsilon sits below it.
QUANTITY_EPSILON = Decimal("1e-24")

# Base-unit precision of EVM-style tokens.
DEFAULT_DECIMALS = 18

DECIMAL_ROUNDING = {
    UNIT_TYPE_COLLATERAL: ROUND_DOWN,
    UNIT_TYPE_WRAPPED: ROUND_DOWN,
    UNIT_TYPE_FUND_SHARE: ROUND_DOWN,
}


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, Decimal]

# Mapping from unit symbol to quantity held in a single wallet.
BalanceMap = Dict[str, Decimal]

# Internal state for a unit.
UnitState = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Compute functions, transfer rules and collaborators receive a LedgerView
    and can query balances and unit state without the ability to modify them.
    The Ledger class implements this protocol; tests use FakeView.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """Return the balance of a specific unit in a wallet."""
        ...

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """Return a copy of the unit's internal state."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """Return all non-zero positions for a unit across all wallets."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        """Return the Unit object for a given symbol."""
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was validated and applied to the ledger.
    ALREADY_APPLIED: Intent was previously processed (idempotent behavior).
    REJECTED: Transaction failed validation (balance constraints, transfer
              rules, stale state).
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"           # Depositor-initiated
    CONTRACT = "contract"                 # Fund owner / keeper operation
    SYSTEM = "system"                     # Issuance, initial setup
    EXTERNAL = "external"                 # Collaborator-side (wrapper interest)


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class InsufficientFunds(LedgerError):
    """Raised when a wallet does not hold enough of a unit for the requested move."""
    pass


class TransferRuleViolation(LedgerError):
    """Raised when a move violates the unit's transfer rule."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when operating on a unit that has not been registered."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when operating on a wallet that has not been registered."""
    pass


class AutomatorError(Exception):
    """
    Base exception for fund operations.

    Every failure aborts the whole operation: no balance, share or fund state
    is changed. `retriable` tells off-chain tooling whether resubmitting later
    (or with fresh parameters) can succeed.
    """
    retriable = False


class AuthorizationError(AutomatorError):
    """Forged signature, disabled venue or maker, caller not allowed."""


class TemporalError(AutomatorError):
    """Deadline passed, position not expired, redemption outside its window."""
    retriable = True


class CapacityError(AutomatorError):
    """Not enough free collateral or shares for the requested amount."""
    retriable = True


class StateError(AutomatorError):
    """Request conflicts with the current fund state."""


class InvalidMakerSignature(AuthorizationError):
    pass


class InvalidMaker(AuthorizationError):
    pass


class InvalidVenue(AuthorizationError):
    pass


class NotOwner(AuthorizationError):
    pass


class OrderExpired(TemporalError):
    pass


class PositionNotExpired(TemporalError):
    pass


class NotSettled(TemporalError):
    """The oracle has no settlement price for the requested expiry yet."""


class InvalidRedemption(TemporalError):
    pass


class NoEnoughCollateral(CapacityError):
    pass


class InsufficientCollateralToRedeem(CapacityError):
    pass


class InsufficientShares(CapacityError):
    pass


class InvalidTransferAmount(CapacityError):
    pass


class InsufficientDeposit(CapacityError):
    """Deposit too small to mint any share (or to cover the first-deposit floor)."""


class InsufficientAllowance(CapacityError):
    pass


class SignatureConsumed(StateError):
    pass


class PendingRedemption(StateError):
    pass


class ZeroFee(StateError):
    pass


class NoPendingRedemption(StateError):
    pass


class PositionNotFound(StateError):
    pass


class FundInsolvent(StateError):
    """Shares are outstanding but back no collateral; deposits are refused."""


class ReentrancyError(StateError):
    pass


class TransactionRejected(StateError):
    """The ledger refused the transaction built for an operation."""


# ============================================================================
# FIXED-POINT HELPERS
# ============================================================================

def to_decimal(value: Any) -> Decimal:
    """Coerce int/str/float input to Decimal via its string form."""
    return value if isinstance(value, Decimal) else Decimal(str(value))


def quantum(decimals: int = DEFAULT_DECIMALS) -> Decimal:
    return Decimal(10) ** -decimals


def quantize_down(value: Decimal, decimals: int = DEFAULT_DECIMALS) -> Decimal:
    """Truncate to the token's base unit."""
    return value.quantize(quantum(decimals), rounding=ROUND_DOWN)


def mul_div_down(a: Decimal, b: Decimal, c: Decimal, decimals: int = DEFAULT_DECIMALS) -> Decimal:
    """
    Compute floor(a * b / c) at base-unit precision.

    All share/asset conversions round toward the fund so that no conversion
    can pay out more than the pool holds.

    Raises:
        ZeroDivisionError: If c is zero
    """
    if c == 0:
        raise ZeroDivisionError("mul_div_down divisor is zero")
    with localcontext() as ctx:
        ctx.prec = 80
        ctx.rounding = ROUND_DOWN
        result = (a * b) / c
    return result.quantize(quantum(decimals), rounding=ROUND_DOWN)


def mul_div_up(a: Decimal, b: Decimal, c: Decimal, decimals: int = DEFAULT_DECIMALS) -> Decimal:
    """Compute ceil(a * b / c) at base-unit precision."""
    if c == 0:
        raise ZeroDivisionError("mul_div_up divisor is zero")
    with localcontext() as ctx:
        ctx.prec = 80
        ctx.rounding = ROUND_UP
        result = (a * b) / c
    return result.quantize(quantum(decimals), rounding=ROUND_UP)


def to_base_units(amount: Decimal, decimals: int = DEFAULT_DECIMALS) -> int:
    """
    Scale a Decimal amount to an integer count of base units.

    Raises:
        ValueError: If the amount is negative or has more precision than
                    the token supports
    """
    amount = to_decimal(amount)
    if amount < 0:
        raise ValueError(f"amount cannot be negative, got {amount}")
    scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"{amount} has more than {decimals} decimal places")
    return int(scaled)


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Identifier of the initiator (depositor, owner, keeper)
        unit_symbol: Fund share symbol the operation targets
        event_type: Operation name (e.g., "DEPOSIT", "PRODUCTS_BURNED")
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.unit_symbol:
            parts.append(f"unit={self.unit_symbol}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# UNIT STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class UnitStateChange:
    """
    Record of a unit state change with complete before/after snapshots.

    The ledger rejects the change if old_state no longer matches the unit's
    current state.
    """
    unit: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Return {field: (old, new)} for fields that differ."""
        old = self.old_state if isinstance(self.old_state, dict) else {}
        new = self.new_state if isinstance(self.new_state, dict) else {}
        changes = {}
        for key in set(old.keys()) | set(new.keys()):
            old_val = old.get(key)
            new_val = new.get(key)
            if old_val != new_val:
                changes[key] = (old_val, new_val)
        return changes


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of value between two wallets.

    Attributes:
        quantity: The amount to transfer (must be finite and non-zero).
        unit_symbol: The symbol of the unit being transferred.
        source: The wallet ID from which value is debited.
        dest: The wallet ID to which value is credited.
        contract_id: Identifier of the operation generating this move.
        metadata: Optional additional information about the move.
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity)}")
        if self.quantity.is_infinite() or self.quantity.is_nan():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if abs(self.quantity) < QUANTITY_EPSILON:
            raise ValueError("Move quantity is effectively zero")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


def _normalize_decimal(d: Decimal) -> str:
    """
    Normalize a Decimal to a canonical string.

    Decimal("1.0") and Decimal("1.00") both become "1"; no scientific notation.
    """
    if not d.is_finite():
        return str(d)
    normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Deterministic regardless of dict insertion order, Decimal representation
    or set iteration order.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return f"D:{_normalize_decimal(value)}"
    if isinstance(value, (int, float)):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, bytes):
        return f"B:{value.hex()}"
    if isinstance(value, datetime):
        return f"T:{value.isoformat()}"
    if isinstance(value, timedelta):
        return f"P:{value.total_seconds()}"
    if isinstance(value, Enum):
        return f"E:{value.value}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    if isinstance(value, (set, frozenset)):
        serialized = ",".join(_canonicalize(item) for item in sorted(value, key=str))
        return f"<{serialized}>"
    return f"R:{repr(value)}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_changes: Tuple[UnitStateChange, ...],
    origin: TransactionOrigin,
    units_to_create: Tuple['Unit', ...] = ()
) -> str:
    """
    Compute a deterministic content hash for a transaction's intent.

    Same moves, state changes and origin always produce the same intent_id;
    the ledger uses it to refuse applying one intent twice.
    """
    sorted_moves = tuple(sorted(
        moves,
        key=lambda m: (_normalize_decimal(m.quantity), m.unit_symbol, m.source, m.dest, m.contract_id)
    ))

    content_parts = [f"origin:{origin.origin_type.value}:{origin.source_id}"]
    if origin.unit_symbol:
        content_parts.append(f"unit:{origin.unit_symbol}")
    if origin.event_type:
        content_parts.append(f"event:{origin.event_type}")

    for unit in sorted(units_to_create, key=lambda u: u.symbol):
        content_parts.append(f"unit_create:{unit.symbol}|{unit.unit_type}")

    for m in sorted_moves:
        qty = _normalize_decimal(m.quantity)
        content_parts.append(f"move:{qty}|{m.unit_symbol}|{m.source}|{m.dest}|{m.contract_id}")

    for sc in sorted(state_changes, key=lambda s: s.unit):
        content_parts.append(
            f"state_change:{sc.unit}|{_canonicalize(sc.old_state)}|{_canonicalize(sc.new_state)}"
        )

    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction specification before execution - represents INTENT.

    Built by compute functions and submitted to Ledger.execute().
    intent_id is derived from content when not supplied.
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    units_to_create: Tuple['Unit', ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(
                self.moves, self.state_changes, self.origin, self.units_to_create
            )
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """Return True if there are no moves, no state changes and no units to create."""
        return not self.moves and not self.state_changes and not self.units_to_create

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {len(self.state_changes)} deltas, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[UnitStateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    units_to_create: Optional[Tuple['Unit', ...]] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves and state changes.

    Args:
        view: Read-only ledger view (provides current_time)
        moves: Moves to include in the transaction
        state_changes: Optional unit state changes
        origin: Transaction origin (defaults to CONTRACT origin)
        units_to_create: Optional units to register before executing moves

    Returns:
        A PendingTransaction ready for execution

    Example:
        def compute_fee_sweep(view, symbol, recipient):
            old_state = view.get_unit_state(symbol)
            moves = [Move(old_state['total_fee'], "USDC", "fund", recipient, "harvest")]
            new_state = {**old_state, "total_fee": Decimal("0")}
            changes = [UnitStateChange(unit=symbol, old_state=old_state, new_state=new_state)]
            return build_transaction(view, moves, changes)
    """
    if origin is None:
        origin = TransactionOrigin(
            origin_type=OriginType.CONTRACT,
            source_id="contract",
        )

    # Deep copy state changes so callers cannot mutate them after building
    copied_changes: Tuple[UnitStateChange, ...] = ()
    if state_changes:
        copied_changes = tuple(
            UnitStateChange(
                unit=sc.unit,
                old_state=copy.deepcopy(sc.old_state),
                new_state=copy.deepcopy(sc.new_state),
            )
            for sc in state_changes
        )

    return PendingTransaction(
        moves=tuple(moves),
        state_changes=copied_changes,
        origin=origin,
        timestamp=view.current_time,
        units_to_create=units_to_create or (),
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Attributes:
        moves: Value transfers between wallets
        state_changes: Unit state changes (with old_state and new_state)
        origin: Who/what created this transaction and why
        timestamp: When the PendingTransaction was created
        intent_id: Content hash from PendingTransaction (for idempotency)
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: When this was executed and logged
        sequence_number: Monotonic sequence within the ledger
        contract_ids: Set of contract IDs from moves (auto-populated)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    units_to_create: Tuple['Unit', ...] = ()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves and not self.state_changes and not self.units_to_create:
            raise ValueError("Transaction must have moves, state_changes, or units_to_create")
        if self.contract_ids is None:
            object.__setattr__(
                self, 'contract_ids',
                frozenset(m.contract_id for m in self.moves)
            )

    def __repr__(self) -> str:
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Transaction: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   intent_id      : ' + self.intent_id)}│",
            f"│{pad('   execution_time : ' + str(self.execution_time))}│",
            f"│{pad('   sequence       : ' + str(self.sequence_number))}│",
            f"│{pad('   origin         : ' + str(self.origin))}│",
        ]
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' Moves (' + str(len(self.moves)) + '):')}│")
        for i, move in enumerate(self.moves):
            lines.append(f"│{pad(f'   [{i}] {move.quantity} {move.unit_symbol}: {move.source} → {move.dest}')}│")
        if self.state_changes:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' State Changes (' + str(len(self.state_changes)) + '):')}│")
            for sc in self.state_changes:
                lines.append(f"│{pad('   [' + sc.unit + ']')}│")
                for field_name, (old_val, new_val) in sc.changed_fields().items():
                    lines.append(f"│{pad(f'      {field_name}: {old_val!r} → {new_val!r}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


# Transfer rules validate moves and raise TransferRuleViolation if invalid.
TransferRule = Callable[[LedgerView, Move], None]


def _freeze_state(state: Optional[UnitState]) -> Tuple[Tuple[str, Any], ...]:
    """Convert a state dict to a sorted tuple of (key, value) pairs."""
    if not state:
        return ()
    return tuple(sorted(state.items()))


def _thaw_state(frozen_state: Tuple[Tuple[str, Any], ...]) -> UnitState:
    return dict(frozen_state)


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of a unit (asset type) in the ledger.

    Attributes:
        symbol: Short identifier for the unit (e.g., "USDC", "aUSDC").
        name: Human-readable name for the unit.
        unit_type: COLLATERAL, WRAPPED or FUND_SHARE.
        min_balance: Minimum allowed balance in any non-system wallet.
        max_balance: Maximum allowed balance in any wallet.
        decimal_places: Number of decimal places for rounding (None = no rounding).
        transfer_rule: Optional function to validate moves involving this unit.
        _frozen_state: Internal frozen state representation.
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = Decimal("0")
    max_balance: Decimal = Decimal("Infinity")
    decimal_places: Optional[int] = None
    transfer_rule: Optional[TransferRule] = None
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def state(self) -> UnitState:
        """Return the unit's state as a new dict on each access."""
        return _thaw_state(self._frozen_state)

    def round(self, value: Decimal) -> Decimal:
        """
        Round a value to this unit's decimal precision.

        Returns the value unchanged if decimal_places is None.
        """
        if self.decimal_places is None:
            return value
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        rounding_mode = DECIMAL_ROUNDING.get(self.unit_type, ROUND_HALF_EVEN)
        return value.quantize(quantum(self.decimal_places), rounding=rounding_mode)


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def collateral_token(symbol: str, name: str, decimals: int = DEFAULT_DECIMALS) -> Unit:
    """
    Create an ERC20-style collateral token unit.

    Balances cannot go negative; new supply enters from SYSTEM_WALLET.

    Args:
        symbol: Token symbol (e.g., "USDC").
        name: Full name of the token.
        decimals: Base-unit precision (default: 18).
    """
    if decimals < 0:
        raise ValueError(f"decimals cannot be negative, got {decimals}")
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_COLLATERAL,
        decimal_places=decimals,
        min_balance=Decimal("0"),
        _frozen_state=_freeze_state({'decimals': decimals}),
    )
