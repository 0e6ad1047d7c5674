"""
settlement.py - Burning expired products and collecting fees

Settlement of one position:
    1. release the key from the position book (committed amount comes back)
    2. the venue pays the fund its share at the oracle's settlement price
    3. delta = payout - committed
         delta > 0: fee = delta * fee_rate, protocol fee = delta * protocol_fee_rate
         delta <= 0: no fee; a loss reduces idle collateral directly

A batch is settled in one transaction: one failing request (unknown venue,
not expired, not outstanding, not settled by the oracle) aborts all of them.

Fee split (FundConfig.fee_split_point):
    AT_SETTLEMENT  protocol fee accrues into total_protocol_fee at settlement;
                   harvest() pays total_fee, harvest_protocol_fee() the rest
    AT_HARVEST     both rates accrue into total_fee; harvest() pays
                   floor(total_fee * protocol_fee_rate / total_fee_rate) to the
                   treasury and the remainder to the fee recipient
"""

from __future__ import annotations
from collections import OrderedDict
from decimal import Decimal
from typing import List, Mapping, Sequence, Tuple
import logging

from .collateral import CollateralAdapter
from .config import FeeSplitPoint, FundConfig
from .core import (
    LedgerView, Move, TransactionOrigin, OriginType,
    InvalidVenue, PositionNotExpired, ZeroFee,
    build_transaction, mul_div_down,
)
from .events import FeeCollected, ProductsBurned
from .oracle import SettlementOracle
from .orders import SettlementRequest
from .origination import venue_lookup
from .state import FundOperation, fund_state_change, load_fund
from .venues import Venue

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
ONE = Decimal("1")


# ============================================================================
# FEE ARITHMETIC
# ============================================================================

def calculate_gain_fees(delta: Decimal, config: FundConfig) -> Tuple[Decimal, Decimal]:
    """
    Fees on a realized delta as (fee, protocol_fee).

    Losses and break-even settlements bear no fee.
    """
    if delta <= 0:
        return ZERO, ZERO
    if config.fee_split_point is FeeSplitPoint.AT_HARVEST:
        return mul_div_down(delta, config.total_fee_rate, ONE, config.decimals), ZERO
    fee = mul_div_down(delta, config.fee_rate, ONE, config.decimals)
    protocol_fee = mul_div_down(delta, config.protocol_fee_rate, ONE, config.decimals)
    return fee, protocol_fee


def split_harvest(total_fee: Decimal, config: FundConfig) -> Tuple[Decimal, Decimal]:
    """
    Split an accrued total_fee into (fee_recipient share, treasury share).

    Only AT_HARVEST funds carry the protocol share inside total_fee.
    """
    if config.fee_split_point is not FeeSplitPoint.AT_HARVEST or config.total_fee_rate <= 0:
        return total_fee, ZERO
    protocol = mul_div_down(total_fee, config.protocol_fee_rate, config.total_fee_rate, config.decimals)
    return total_fee - protocol, protocol


# ============================================================================
# BURN
# ============================================================================

def settleable_requests(
    view: LedgerView,
    symbol: str,
    oracle: SettlementOracle,
    venues: Mapping[str, Venue],
) -> Tuple[SettlementRequest, ...]:
    """Expired positions on known venues whose expiry the oracle has settled."""
    _, state = load_fund(view, symbol)
    known = venue_lookup(venues)
    return tuple(
        SettlementRequest.for_key(p.key)
        for p in state.positions.expired(view.current_time)
        if p.key.venue.lower() in known and oracle.has_settled(p.key.expiry)
    )


def compute_burn_products(
    view: LedgerView,
    symbol: str,
    caller: str,
    requests: Sequence[SettlementRequest],
    *,
    adapter: CollateralAdapter,
    venues: Mapping[str, Venue],
    oracle: SettlementOracle,
) -> FundOperation:
    """
    Build the settlement of a batch of expired positions.

    Anyone may settle; payouts always return to the fund.

    Args:
        view: Read-only ledger access
        symbol: Fund share symbol
        caller: Settling wallet, recorded in the origin
        requests: Position keys to settle
        adapter: Fund's collateral adapter
        venues: Venues the fund knows, by address
        oracle: Settlement price source

    Returns:
        FundOperation whose result is the collateral returned to the fund

    Raises:
        ValueError: If requests is empty
        InvalidVenue: If a request names an unknown venue
        PositionNotExpired: If a position's expiry is in the future
        PositionNotFound: If a key is not outstanding or listed twice
        NotSettled: If the oracle has no price for an expiry
    """
    if not requests:
        raise ValueError("settlement requests cannot be empty")

    terms, state = load_fund(view, symbol)
    config = terms.config
    now = view.current_time
    known = venue_lookup(venues)

    book = state.positions
    moves: List[Move] = []
    released = returned = fee_total = protocol_total = ZERO
    key_ids: List[str] = []

    for request in requests:
        venue = known.get(request.venue.lower())
        if venue is None:
            raise InvalidVenue(f"invalid venue: {request.venue}")
        key = request.position_key
        if now < key.expiry:
            raise PositionNotExpired(f"{key.key_id} expires at {key.expiry.isoformat()}")

        book, position = book.release(key)
        price = oracle.settled_price(key.expiry)
        settlement = venue.settle(view, terms.fund_wallet, position, price)
        moves.extend(settlement.moves)

        delta = settlement.payout_to_minter - position.committed
        fee, protocol_fee = calculate_gain_fees(delta, config)
        released += position.committed
        returned += settlement.payout_to_minter
        fee_total += fee
        protocol_total += protocol_fee
        key_ids.append(key.key_id)
        logger.debug(
            "%s settles %s at %s: committed %s, returned %s, fee %s/%s",
            symbol, key.key_id, price, position.committed, settlement.payout_to_minter, fee, protocol_fee,
        )

    moves.extend(adapter.deposit(view, terms.fund_wallet, terms.fund_wallet, returned))

    new_state = state.bump(
        positions=book,
        total_fee=state.total_fee + fee_total,
        total_protocol_fee=state.total_protocol_fee + protocol_total,
    )
    origin = TransactionOrigin(OriginType.CONTRACT, caller, symbol, "PRODUCTS_BURNED")
    tx = build_transaction(view, moves, [fund_state_change(view, terms, new_state)], origin)
    event = ProductsBurned(
        tuple(OrderedDict.fromkeys(key_ids)), released, returned, fee_total, protocol_total, now
    )
    return FundOperation(tx, event, returned)


# ============================================================================
# HARVEST
# ============================================================================

def compute_harvest(view: LedgerView, symbol: str, adapter: CollateralAdapter, caller: str) -> FundOperation:
    """
    Pay the accrued performance fee to the fee recipient.

    In AT_HARVEST mode the treasury's proportional share is paid out of the
    same bucket.

    Returns:
        FundOperation whose result is the whole amount taken from total_fee

    Raises:
        ZeroFee: If no fee has accrued
    """
    terms, state = load_fund(view, symbol)
    if state.total_fee <= 0:
        raise ZeroFee(f"zero fee on {symbol}")

    to_recipient, to_treasury = split_harvest(state.total_fee, terms.config)
    moves = list(adapter.withdraw_to(view, terms.fund_wallet, terms.fee_recipient, to_recipient))
    moves.extend(adapter.withdraw_to(view, terms.fund_wallet, terms.protocol_treasury, to_treasury))

    new_state = state.bump(total_fee=ZERO)
    origin = TransactionOrigin(OriginType.CONTRACT, caller, symbol, "HARVEST")
    tx = build_transaction(view, moves, [fund_state_change(view, terms, new_state)], origin)
    event = FeeCollected(terms.fee_recipient, to_recipient, terms.protocol_treasury, to_treasury, view.current_time)
    return FundOperation(tx, event, state.total_fee)


def compute_harvest_protocol_fee(
    view: LedgerView, symbol: str, adapter: CollateralAdapter, caller: str
) -> FundOperation:
    """
    Pay the protocol fee accrued at settlement to the treasury.

    Raises:
        ZeroFee: If no protocol fee has accrued
    """
    terms, state = load_fund(view, symbol)
    amount = state.total_protocol_fee
    if amount <= 0:
        raise ZeroFee(f"zero protocol fee on {symbol}")

    moves = adapter.withdraw_to(view, terms.fund_wallet, terms.protocol_treasury, amount)
    new_state = state.bump(total_protocol_fee=ZERO)
    origin = TransactionOrigin(OriginType.CONTRACT, caller, symbol, "HARVEST_PROTOCOL_FEE")
    tx = build_transaction(view, moves, [fund_state_change(view, terms, new_state)], origin)
    event = FeeCollected(terms.fee_recipient, ZERO, terms.protocol_treasury, amount, view.current_time)
    return FundOperation(tx, event, amount)
