"""
state.py - Fund state aggregate

The whole fund (terms, fee buckets, redemption queue, position book, consumed
order digests) is stored as the state of the fund share unit. Compute functions
read it once through load_fund(), derive a new FundState, and hand the
serialized result to the ledger as a single UnitStateChange.

ARCHITECTURE (pure function pattern):
    FundTerms   - fixed at creation
    FundState   - changes with every operation (value semantics)
    load_fund() - the only place that reads fund state from a LedgerView
    to_state_dict() - serializes terms + state back to a unit state dict
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from .config import FundConfig
from .core import (
    LedgerView, Unit, UnitStateChange, TransferRule,
    SYSTEM_WALLET, UNIT_TYPE_FUND_SHARE,
    to_decimal, _freeze_state,
)
from .positions import PositionBook


@dataclass(frozen=True, slots=True)
class RedemptionRequest:
    """A depositor's single pending withdrawal: shares requested at timestamp."""
    shares: Decimal
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class FundTerms:
    """
    Immutable fund parameters set at creation.

    Attributes:
        symbol: Fund share unit symbol
        name: Human-readable fund name
        asset: Underlying collateral symbol depositors pay in and claim
        fund_wallet: Wallet holding the fund's idle collateral
        owner: Only address allowed to originate products
        fee_recipient: Receives the performance fee on harvest
        protocol_treasury: Receives the protocol fee
        burn_wallet: Holds the first-deposit share floor
        config: FundConfig
    """
    symbol: str
    name: str
    asset: str
    fund_wallet: str
    owner: str
    fee_recipient: str
    protocol_treasury: str
    burn_wallet: str
    config: FundConfig


@dataclass(frozen=True, slots=True)
class FundState:
    """
    Immutable snapshot of the mutable part of a fund.

    total_shares is not stored; it is the outstanding supply of the share unit
    and is filled in by load_fund().
    """
    total_shares: Decimal = Decimal("0")
    total_fee: Decimal = Decimal("0")
    total_protocol_fee: Decimal = Decimal("0")
    total_pending_redemptions: Decimal = Decimal("0")
    positions: PositionBook = field(default_factory=PositionBook)
    redemptions: Mapping[str, RedemptionRequest] = field(default_factory=dict)
    consumed_orders: FrozenSet[str] = frozenset()
    allowances: Mapping[Tuple[str, str], Decimal] = field(default_factory=dict)
    nonce: int = 0

    @property
    def total_committed(self) -> Decimal:
        return self.positions.total_committed

    @property
    def accrued_fees(self) -> Decimal:
        return self.total_fee + self.total_protocol_fee

    def pending_shares(self, wallet: str) -> Decimal:
        request = self.redemptions.get(wallet)
        return request.shares if request else Decimal("0")

    def bump(self, **changes) -> FundState:
        """Return a copy with changes applied and the nonce advanced."""
        return replace(self, nonce=self.nonce + 1, **changes)


def outstanding_shares(view: LedgerView, symbol: str) -> Decimal:
    """Shares in circulation: everything the system wallet has issued."""
    return -view.get_balance(SYSTEM_WALLET, symbol)


def load_fund(view: LedgerView, symbol: str) -> Tuple[FundTerms, FundState]:
    """
    Load a fund from ledger state as typed frozen dataclasses.

    Args:
        view: Read-only ledger access
        symbol: Fund share unit symbol

    Returns:
        (FundTerms, FundState)

    Example:
        terms, state = load_fund(view, "afUSDC")
        pending = state.pending_shares("alice")
    """
    raw = view.get_unit_state(symbol)

    terms = FundTerms(
        symbol=symbol,
        name=raw.get('name', symbol),
        asset=raw['asset'],
        fund_wallet=raw['fund_wallet'],
        owner=raw['owner'],
        fee_recipient=raw['fee_recipient'],
        protocol_treasury=raw['protocol_treasury'],
        burn_wallet=raw['burn_wallet'],
        config=FundConfig.from_mapping(raw.get('config', {})),
    )

    redemptions = {
        wallet: RedemptionRequest(to_decimal(r['shares']), r['timestamp'])
        for wallet, r in raw.get('redemptions', {}).items()
    }
    allowances = {}
    for owner, spenders in raw.get('allowances', {}).items():
        for spender, amount in spenders.items():
            allowances[(owner, spender)] = to_decimal(amount)

    state = FundState(
        total_shares=outstanding_shares(view, symbol),
        total_fee=to_decimal(raw.get('total_fee', 0)),
        total_protocol_fee=to_decimal(raw.get('total_protocol_fee', 0)),
        total_pending_redemptions=to_decimal(raw.get('total_pending_redemptions', 0)),
        positions=PositionBook.from_dict(raw.get('positions')),
        redemptions=redemptions,
        consumed_orders=frozenset(raw.get('consumed_orders', ())),
        allowances=allowances,
        nonce=int(raw.get('nonce', 0)),
    )
    return terms, state


def to_state_dict(terms: FundTerms, state: FundState) -> Dict[str, Any]:
    """Serialize terms and state into a unit state dict."""
    allowances: Dict[str, Dict[str, Decimal]] = {}
    for (owner, spender), amount in state.allowances.items():
        if amount > 0:
            allowances.setdefault(owner, {})[spender] = amount
    return {
        'name': terms.name,
        'asset': terms.asset,
        'fund_wallet': terms.fund_wallet,
        'owner': terms.owner,
        'fee_recipient': terms.fee_recipient,
        'protocol_treasury': terms.protocol_treasury,
        'burn_wallet': terms.burn_wallet,
        'config': terms.config.to_dict(),
        'total_fee': state.total_fee,
        'total_protocol_fee': state.total_protocol_fee,
        'total_pending_redemptions': state.total_pending_redemptions,
        'positions': state.positions.to_dict(),
        'redemptions': {
            wallet: {'shares': r.shares, 'timestamp': r.timestamp}
            for wallet, r in state.redemptions.items()
        },
        'consumed_orders': sorted(state.consumed_orders),
        'allowances': allowances,
        'nonce': state.nonce,
    }


def fund_state_change(
    view: LedgerView, terms: FundTerms, new_state: FundState
) -> UnitStateChange:
    """Build the UnitStateChange moving the fund from its current to new_state."""
    old_raw = view.get_unit_state(terms.symbol)
    return UnitStateChange(unit=terms.symbol, old_state=old_raw, new_state=to_state_dict(terms, new_state))


def create_fund_share_unit(
    terms: FundTerms,
    transfer_rule: Optional[TransferRule] = None,
) -> Unit:
    """
    Create the fund share unit carrying an empty fund state.

    Raises:
        ValueError: If any required wallet is empty or the fund wallet
                    doubles as the owner or burn wallet
    """
    for name in ('asset', 'fund_wallet', 'owner', 'fee_recipient', 'protocol_treasury', 'burn_wallet'):
        value = getattr(terms, name)
        if not value or not value.strip():
            raise ValueError(f"{name} cannot be empty")
    if terms.fund_wallet in (
        terms.owner, terms.fee_recipient, terms.protocol_treasury, terms.burn_wallet, SYSTEM_WALLET
    ):
        raise ValueError(f"fund_wallet {terms.fund_wallet} must be a dedicated wallet")

    return Unit(
        symbol=terms.symbol,
        name=terms.name,
        unit_type=UNIT_TYPE_FUND_SHARE,
        min_balance=Decimal("0"),
        decimal_places=terms.config.decimals,
        transfer_rule=transfer_rule,
        _frozen_state=_freeze_state(to_state_dict(terms, FundState())),
    )


@dataclass(frozen=True, slots=True)
class FundOperation:
    """
    A built fund operation: the transaction to execute, the event to emit once
    it is applied, and the operation's return value.
    """
    transaction: Any
    event: Any
    result: Any = None
