"""
nav.py - Net asset value accounting

Computes total assets and price per share while part of the pool is committed
to unsettled positions, and prices deposits.

ARCHITECTURE:
    calculate_*  - pure arithmetic on explicit Decimals, no ledger access
    nav_snapshot - reads idle collateral and fund state once
    compute_deposit - builds the deposit transaction

Key Formulas:
    total_assets     = idle + committed
    total_collateral = total_assets - total_fee - total_protocol_fee
    price_per_share  = total_collateral / total_shares     (1 when no shares)
    deposit shares   = amount * total_shares / total_collateral   (pre-deposit price)
    claim assets     = shares * total_collateral / total_shares
    unredeemed       = idle - fees - value(pending redemptions)

Every conversion rounds down, in the pool's favour.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
import logging

from .collateral import CollateralAdapter
from .core import (
    LedgerView, Move, TransactionOrigin, OriginType,
    SYSTEM_WALLET, DEFAULT_DECIMALS,
    InsufficientDeposit, InsufficientFunds, FundInsolvent,
    build_transaction, mul_div_down, quantize_down, to_decimal,
)
from .events import Deposited
from .state import FundOperation, FundState, FundTerms, fund_state_change, load_fund

logger = logging.getLogger(__name__)

ONE = Decimal("1")
ZERO = Decimal("0")


# ============================================================================
# PURE CALCULATIONS
# ============================================================================

def calculate_total_assets(idle: Decimal, committed: Decimal) -> Decimal:
    return idle + committed


def calculate_total_collateral(total_assets: Decimal, total_fee: Decimal, total_protocol_fee: Decimal) -> Decimal:
    """Assets backing shares: total assets net of unharvested fees."""
    return total_assets - total_fee - total_protocol_fee


def calculate_price_per_share(
    total_collateral: Decimal, total_shares: Decimal, decimals: int = DEFAULT_DECIMALS
) -> Decimal:
    """
    Price of one share in collateral, rounded down.

    Returns:
        1 when no shares are outstanding
    """
    if total_shares <= 0:
        return ONE
    return mul_div_down(total_collateral, ONE, total_shares, decimals)


def calculate_deposit_shares(
    amount: Decimal,
    total_collateral: Decimal,
    total_shares: Decimal,
    decimals: int = DEFAULT_DECIMALS,
) -> Decimal:
    """
    Shares minted for amount at the pre-deposit price.

    Raises:
        FundInsolvent: If shares are outstanding but back no collateral
    """
    if total_shares <= 0:
        return quantize_down(amount, decimals)
    if total_collateral <= 0:
        raise FundInsolvent(
            f"{total_shares} shares outstanding against {total_collateral} collateral"
        )
    return mul_div_down(amount, total_shares, total_collateral, decimals)


def calculate_redemption_assets(
    shares: Decimal,
    total_collateral: Decimal,
    total_shares: Decimal,
    decimals: int = DEFAULT_DECIMALS,
) -> Decimal:
    """Collateral paid for redeeming shares at the current price."""
    if total_shares <= 0 or shares <= 0 or total_collateral <= 0:
        return ZERO
    return mul_div_down(shares, total_collateral, total_shares, decimals)


def calculate_unredeemed_collateral(
    idle: Decimal,
    accrued_fees: Decimal,
    pending_shares: Decimal,
    total_collateral: Decimal,
    total_shares: Decimal,
    decimals: int = DEFAULT_DECIMALS,
) -> Decimal:
    """
    Idle collateral free to commit to new positions.

    Idle collateral minus accrued fees minus the current value of every
    pending redemption, floored at zero.
    """
    reserved = calculate_redemption_assets(pending_shares, total_collateral, total_shares, decimals)
    free = idle - accrued_fees - reserved
    return free if free > 0 else ZERO


# ============================================================================
# SNAPSHOT
# ============================================================================

@dataclass(frozen=True, slots=True)
class NavSnapshot:
    """Point-in-time NAV inputs and derived figures for one fund."""
    idle: Decimal
    committed: Decimal
    total_fee: Decimal
    total_protocol_fee: Decimal
    total_shares: Decimal
    pending_shares: Decimal
    decimals: int = DEFAULT_DECIMALS

    @property
    def total_assets(self) -> Decimal:
        return calculate_total_assets(self.idle, self.committed)

    @property
    def total_collateral(self) -> Decimal:
        return calculate_total_collateral(self.total_assets, self.total_fee, self.total_protocol_fee)

    @property
    def price_per_share(self) -> Decimal:
        return calculate_price_per_share(self.total_collateral, self.total_shares, self.decimals)

    @property
    def unredeemed_collateral(self) -> Decimal:
        return calculate_unredeemed_collateral(
            self.idle,
            self.total_fee + self.total_protocol_fee,
            self.pending_shares,
            self.total_collateral,
            self.total_shares,
            self.decimals,
        )

    def shares_to_assets(self, shares: Decimal) -> Decimal:
        return calculate_redemption_assets(shares, self.total_collateral, self.total_shares, self.decimals)


def snapshot_from(view: LedgerView, terms: FundTerms, state: FundState, adapter: CollateralAdapter) -> NavSnapshot:
    return NavSnapshot(
        idle=adapter.idle_balance(view, terms.fund_wallet),
        committed=state.total_committed,
        total_fee=state.total_fee,
        total_protocol_fee=state.total_protocol_fee,
        total_shares=state.total_shares,
        pending_shares=state.total_pending_redemptions,
        decimals=terms.config.decimals,
    )


def nav_snapshot(view: LedgerView, symbol: str, adapter: CollateralAdapter) -> NavSnapshot:
    """
    Read a fund's NAV inputs from the ledger.

    Example:
        nav = nav_snapshot(ledger, "afUSDC", adapter)
        nav.price_per_share
    """
    terms, state = load_fund(view, symbol)
    return snapshot_from(view, terms, state, adapter)


# ============================================================================
# DEPOSIT
# ============================================================================

def compute_deposit(
    view: LedgerView,
    symbol: str,
    adapter: CollateralAdapter,
    depositor: str,
    amount: Decimal,
) -> FundOperation:
    """
    Build a deposit of amount collateral from depositor.

    Shares are priced before the deposit enters the pool. On the first deposit
    (no shares outstanding) config.minimum_shares of the minted shares go to
    the burn wallet instead of the depositor.

    Args:
        view: Read-only ledger access
        symbol: Fund share symbol
        adapter: Fund's collateral adapter
        depositor: Paying wallet, receives the shares
        amount: Underlying collateral to deposit

    Returns:
        FundOperation whose result is the shares credited to depositor

    Raises:
        ValueError: If amount is not positive
        InsufficientFunds: If depositor does not hold amount
        InsufficientDeposit: If the deposit mints no share for the depositor
        FundInsolvent: If outstanding shares back no collateral
    """
    amount = to_decimal(amount)
    if amount <= 0:
        raise ValueError(f"deposit amount must be positive, got {amount}")

    terms, state = load_fund(view, symbol)
    decimals = terms.config.decimals
    amount = quantize_down(amount, decimals)
    if amount <= 0:
        raise InsufficientDeposit("deposit below one base unit")

    balance = view.get_balance(depositor, adapter.asset)
    if balance < amount:
        raise InsufficientFunds(f"{depositor} holds {balance} {adapter.asset}, needs {amount}")

    nav = snapshot_from(view, terms, state, adapter)
    credited = adapter.preview_deposit(view, amount)
    minted = calculate_deposit_shares(credited, nav.total_collateral, nav.total_shares, decimals)

    floor_shares = ZERO
    if nav.total_shares <= 0:
        floor_shares = terms.config.minimum_shares
    to_depositor = minted - floor_shares
    if to_depositor <= 0:
        raise InsufficientDeposit(
            f"deposit of {amount} mints {minted} shares, not above the floor of {floor_shares}"
        )

    moves = list(adapter.deposit(view, depositor, terms.fund_wallet, amount))
    moves.append(Move(to_depositor, symbol, SYSTEM_WALLET, depositor, "deposit_mint"))
    if floor_shares > 0:
        moves.append(Move(floor_shares, symbol, SYSTEM_WALLET, terms.burn_wallet, "minimum_shares"))

    new_state = state.bump()
    origin = TransactionOrigin(OriginType.USER_ACTION, depositor, symbol, "DEPOSIT")
    tx = build_transaction(view, moves, [fund_state_change(view, terms, new_state)], origin)
    event = Deposited(depositor, amount, to_depositor, view.current_time)
    logger.debug("deposit %s by %s: %s shares at pps %s", amount, depositor, to_depositor, nav.price_per_share)
    return FundOperation(tx, event, to_depositor)
