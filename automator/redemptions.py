"""
redemptions.py - Delayed redemption queue and share transfers

Each depositor has at most one redemption request. A request moves through:

    NONE -> LOCKED -> CLAIMABLE -> EXPIRED
                          |
                          +--> (claimed) NONE

    LOCKED     now < t0 + lock_period
    CLAIMABLE  t0 + lock_period <= now < t0 + lock_period + claim_window
    EXPIRED    now >= t0 + lock_period + claim_window

A new withdraw() replaces a LOCKED or EXPIRED request and is refused while
one is CLAIMABLE. Requesting moves no funds; shares are burned and collateral
paid only on claim, at the claim-time price.

Requested shares stay in the depositor's wallet but are reserved: the share
unit's transfer rule refuses any move that would leave the balance below the
pending amount.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
import logging

from .collateral import CollateralAdapter
from .config import FundConfig
from .core import (
    LedgerView, Move, TransactionOrigin, OriginType,
    SYSTEM_WALLET,
    TransferRuleViolation,
    InsufficientShares, InsufficientAllowance, InvalidTransferAmount,
    InvalidRedemption, NoPendingRedemption, PendingRedemption,
    InsufficientCollateralToRedeem,
    build_transaction, to_decimal,
)
from .events import Approval, RedemptionsClaimed, Transfer, Withdrawn
from .nav import snapshot_from
from .state import FundOperation, FundState, RedemptionRequest, fund_state_change, load_fund

logger = logging.getLogger(__name__)


class RedemptionStatus(Enum):
    NONE = "none"
    LOCKED = "locked"
    CLAIMABLE = "claimable"
    EXPIRED = "expired"


def redemption_status(
    request: Optional[RedemptionRequest], config: FundConfig, now: datetime
) -> RedemptionStatus:
    """Where a request stands at now."""
    if request is None or request.shares <= 0:
        return RedemptionStatus.NONE
    opens = request.timestamp + config.lock_period
    if now < opens:
        return RedemptionStatus.LOCKED
    if now < opens + config.claim_window:
        return RedemptionStatus.CLAIMABLE
    return RedemptionStatus.EXPIRED


def transferable_shares(view: LedgerView, symbol: str, wallet: str) -> Decimal:
    """Balance minus the wallet's pending redemption."""
    _, state = load_fund(view, symbol)
    return view.get_balance(wallet, symbol) - state.pending_shares(wallet)


# ============================================================================
# TRANSFER RULE
# ============================================================================

def redemption_reserve_rule(view: LedgerView, move: Move) -> None:
    """
    Transfer rule for fund shares: pending redemptions are not transferable.

    Moves to and from SYSTEM_WALLET (mint on deposit, burn on claim) are
    exempt.

    Raises:
        TransferRuleViolation: If the move spends into the reserved amount
    """
    if move.source == SYSTEM_WALLET or move.dest == SYSTEM_WALLET:
        return
    request = view.get_unit_state(move.unit_symbol).get('redemptions', {}).get(move.source)
    if not request:
        return
    pending = to_decimal(request['shares'])
    if pending <= 0:
        return
    balance = view.get_balance(move.source, move.unit_symbol)
    if balance - move.quantity < pending:
        raise TransferRuleViolation(
            f"invalid transfer amount: {move.source} moves {move.quantity} of {balance} "
            f"with {pending} pending redemption"
        )


# ============================================================================
# WITHDRAW / CLAIM
# ============================================================================

def compute_withdraw(view: LedgerView, symbol: str, depositor: str, shares: Decimal) -> FundOperation:
    """
    Register a redemption request for shares.

    Args:
        view: Read-only ledger access
        symbol: Fund share symbol
        depositor: Share holder requesting the redemption
        shares: Shares to redeem once the lock period has passed

    Raises:
        ValueError: If shares is not positive
        PendingRedemption: If the depositor's current request is claimable
        InsufficientShares: If shares exceeds the depositor's balance
    """
    shares = to_decimal(shares)
    if shares <= 0:
        raise ValueError(f"withdraw shares must be positive, got {shares}")

    terms, state = load_fund(view, symbol)
    now = view.current_time
    existing = state.redemptions.get(depositor)
    if redemption_status(existing, terms.config, now) is RedemptionStatus.CLAIMABLE:
        raise PendingRedemption(
            f"{depositor} has a claimable redemption of {existing.shares} shares"
        )

    # A replaced request releases its reservation, so the whole balance counts.
    balance = view.get_balance(depositor, symbol)
    if shares > balance:
        raise InsufficientShares(f"insufficient shares: {depositor} holds {balance}, requests {shares}")

    replaced = existing.shares if existing else Decimal("0")
    new_state = state.bump(
        redemptions={**state.redemptions, depositor: RedemptionRequest(shares, now)},
        total_pending_redemptions=state.total_pending_redemptions - replaced + shares,
    )
    origin = TransactionOrigin(OriginType.USER_ACTION, depositor, symbol, "WITHDRAW")
    tx = build_transaction(view, [], [fund_state_change(view, terms, new_state)], origin)
    if existing and existing.shares > 0:
        logger.debug("%s replaces redemption of %s with %s", depositor, existing.shares, shares)
    return FundOperation(tx, Withdrawn(depositor, shares, now))


def compute_claim(
    view: LedgerView, symbol: str, adapter: CollateralAdapter, depositor: str
) -> FundOperation:
    """
    Pay out the depositor's claimable redemption at the current price.

    The requested shares are burned and shares * total_collateral / total_shares
    of collateral (rounded down) leaves the fund for the depositor.

    Returns:
        FundOperation whose result is the collateral paid

    Raises:
        NoPendingRedemption: If the depositor has no request
        InvalidRedemption: If the request is outside its claim window
        InsufficientCollateralToRedeem: If idle collateral net of fees cannot
                                        cover the payout
    """
    terms, state = load_fund(view, symbol)
    now = view.current_time
    request = state.redemptions.get(depositor)
    status = redemption_status(request, terms.config, now)
    if status is RedemptionStatus.NONE:
        raise NoPendingRedemption(f"no pending redemption for {depositor}")
    if status is not RedemptionStatus.CLAIMABLE:
        raise InvalidRedemption(
            f"invalid redemption: requested {request.timestamp.isoformat()}, "
            f"claimable from {(request.timestamp + terms.config.lock_period).isoformat()} "
            f"until {(request.timestamp + terms.config.lock_period + terms.config.claim_window).isoformat()}"
        )

    nav = snapshot_from(view, terms, state, adapter)
    assets = nav.shares_to_assets(request.shares)
    free = nav.idle - state.accrued_fees
    if assets > free:
        raise InsufficientCollateralToRedeem(
            f"insufficient collateral to redeem: {assets} owed, {free} idle"
        )

    moves = [Move(request.shares, symbol, depositor, SYSTEM_WALLET, "redemption_burn")]
    moves.extend(adapter.withdraw_to(view, terms.fund_wallet, depositor, assets))

    # The slot keeps its request time with nothing left to claim
    settled = RedemptionRequest(Decimal("0"), request.timestamp)
    new_state = state.bump(
        redemptions={**state.redemptions, depositor: settled},
        total_pending_redemptions=state.total_pending_redemptions - request.shares,
    )
    origin = TransactionOrigin(OriginType.USER_ACTION, depositor, symbol, "CLAIM_REDEMPTIONS")
    tx = build_transaction(view, moves, [fund_state_change(view, terms, new_state)], origin)
    event = RedemptionsClaimed(depositor, assets, request.shares, now)
    return FundOperation(tx, event, assets)


# ============================================================================
# SHARE TRANSFERS
# ============================================================================

def _check_transferable(view: LedgerView, state: FundState, symbol: str, sender: str, shares: Decimal) -> None:
    balance = view.get_balance(sender, symbol)
    if shares > balance:
        raise InsufficientShares(f"insufficient shares: {sender} holds {balance}, sends {shares}")
    pending = state.pending_shares(sender)
    if shares > balance - pending:
        raise InvalidTransferAmount(
            f"invalid transfer amount: {shares} exceeds {balance - pending} transferable "
            f"({pending} pending redemption)"
        )


def compute_transfer(
    view: LedgerView, symbol: str, sender: str, recipient: str, shares: Decimal
) -> FundOperation:
    """
    Move shares between holders.

    Raises:
        ValueError: If shares is not positive or sender is recipient
        InsufficientShares: If sender holds fewer than shares
        InvalidTransferAmount: If the transfer spends into a pending redemption
    """
    shares = to_decimal(shares)
    if shares <= 0:
        raise ValueError(f"transfer shares must be positive, got {shares}")
    if sender == recipient:
        raise ValueError("sender and recipient must differ")

    terms, state = load_fund(view, symbol)
    _check_transferable(view, state, symbol, sender, shares)

    moves = [Move(shares, symbol, sender, recipient, "share_transfer")]
    origin = TransactionOrigin(OriginType.USER_ACTION, sender, symbol, "TRANSFER")
    tx = build_transaction(view, moves, [fund_state_change(view, terms, state.bump())], origin)
    return FundOperation(tx, Transfer(sender, recipient, shares, view.current_time), shares)


def compute_approve(
    view: LedgerView, symbol: str, owner: str, spender: str, shares: Decimal
) -> FundOperation:
    """Set spender's allowance over owner's shares (Decimal('Infinity') for unlimited)."""
    shares = to_decimal(shares)
    if shares < 0:
        raise ValueError(f"allowance cannot be negative, got {shares}")
    if owner == spender:
        raise ValueError("owner cannot approve itself")

    terms, state = load_fund(view, symbol)
    new_state = state.bump(allowances={**state.allowances, (owner, spender): shares})
    origin = TransactionOrigin(OriginType.USER_ACTION, owner, symbol, "APPROVE")
    tx = build_transaction(view, [], [fund_state_change(view, terms, new_state)], origin)
    return FundOperation(tx, Approval(owner, spender, shares, view.current_time), shares)


def compute_transfer_from(
    view: LedgerView,
    symbol: str,
    spender: str,
    owner: str,
    recipient: str,
    shares: Decimal,
) -> FundOperation:
    """
    Move owner's shares on behalf of spender, consuming allowance.

    Raises:
        InsufficientAllowance: If spender's allowance is below shares
        InsufficientShares, InvalidTransferAmount: As for compute_transfer
    """
    shares = to_decimal(shares)
    if shares <= 0:
        raise ValueError(f"transfer shares must be positive, got {shares}")
    if owner == recipient:
        raise ValueError("owner and recipient must differ")

    terms, state = load_fund(view, symbol)
    allowance = state.allowances.get((owner, spender), Decimal("0"))
    if shares > allowance:
        raise InsufficientAllowance(f"{spender} may move {allowance} of {owner}'s shares, not {shares}")
    _check_transferable(view, state, symbol, owner, shares)

    allowances = dict(state.allowances)
    if not allowance.is_infinite():
        allowances[(owner, spender)] = allowance - shares

    moves = [Move(shares, symbol, owner, recipient, "share_transfer")]
    origin = TransactionOrigin(OriginType.USER_ACTION, spender, symbol, "TRANSFER_FROM")
    tx = build_transaction(view, moves, [fund_state_change(view, terms, state.bump(allowances=allowances))], origin)
    return FundOperation(tx, Transfer(owner, recipient, shares, view.current_time), shares)
