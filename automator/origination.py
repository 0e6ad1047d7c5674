"""
origination.py - Minting products from signed maker orders

The fund owner presents a batch of maker orders plus one aggregated maker
signature. For every order the fund commits total_collateral - maker_collateral
of its free collateral to the venue, the venue takes the maker's share, and
the position book records the commitment under the order's PositionKey.

Checks, in order, for the whole batch before anything moves:
    caller is the fund owner
    aggregated signature recovers to an enabled maker
    per order: venue enabled, maker enabled, maker signature valid,
               deadline not passed, payload not consumed, free collateral
"""

from __future__ import annotations
from collections import OrderedDict
from decimal import Decimal
from typing import Dict, List, Mapping, Protocol, Sequence, runtime_checkable
import logging

from .collateral import CollateralAdapter
from .core import (
    LedgerView, Move, TransactionOrigin, OriginType,
    InvalidMaker, InvalidVenue, NotOwner,
    build_transaction,
)
from .events import ProductsMinted
from .nav import snapshot_from
from .orders import MakerOrder
from .signatures import OrderVerifier
from .state import FundOperation, fund_state_change, load_fund
from .venues import Venue

logger = logging.getLogger(__name__)


@runtime_checkable
class MakerRegistry(Protocol):
    """Whitelist of venues and makers a fund may trade with."""

    def is_enabled_venue(self, address: str) -> bool:
        ...

    def is_enabled_maker(self, address: str) -> bool:
        ...


def venue_lookup(venues: Mapping[str, Venue]) -> Dict[str, Venue]:
    """Venues keyed by lower-cased address."""
    return {address.lower(): venue for address, venue in venues.items()}


def compute_mint_products(
    view: LedgerView,
    symbol: str,
    caller: str,
    orders: Sequence[MakerOrder],
    aggregated_signature: bytes,
    *,
    adapter: CollateralAdapter,
    registry: MakerRegistry,
    venues: Mapping[str, Venue],
    verifier: OrderVerifier,
) -> FundOperation:
    """
    Build the origination of a batch of signed orders.

    Args:
        view: Read-only ledger access
        symbol: Fund share symbol
        caller: Must be the fund owner
        orders: Signed maker orders
        aggregated_signature: Maker signature over the batch
        adapter: Fund's collateral adapter
        registry: Venue and maker whitelist
        venues: Venues the fund knows, by address
        verifier: Order verifier bound to the fund's chain

    Returns:
        FundOperation whose result is the total collateral committed

    Raises:
        ValueError: If orders is empty
        NotOwner: If caller is not the fund owner
        InvalidMaker: If the batch signer or an order's maker is not enabled
        InvalidVenue: If an order's venue is unknown or not enabled
        InvalidMakerSignature, OrderExpired, SignatureConsumed: From the verifier
        NoEnoughCollateral: If the batch needs more than the free collateral
    """
    if not orders:
        raise ValueError("orders cannot be empty")

    terms, state = load_fund(view, symbol)
    if caller.lower() != terms.owner.lower():
        raise NotOwner(f"{caller} is not the owner of {symbol}")

    signer = verifier.recover_batch_signer(orders, aggregated_signature)
    if not registry.is_enabled_maker(signer):
        raise InvalidMaker(f"invalid maker: batch signed by {signer}")

    now = view.current_time
    known = venue_lookup(venues)
    available = snapshot_from(view, terms, state, adapter).unredeemed_collateral

    book = state.positions
    consumed = set(state.consumed_orders)
    digests: List[str] = []
    funding: Dict[str, Decimal] = OrderedDict()
    venue_moves: List[Move] = []

    for order in orders:
        venue = known.get(order.venue.lower())
        if venue is None or not registry.is_enabled_venue(order.venue):
            raise InvalidVenue(f"invalid venue: {order.venue}")
        if not registry.is_enabled_maker(order.maker):
            raise InvalidMaker(f"invalid maker: {order.maker}")

        digest = verifier.verify(order, terms.fund_wallet, now, consumed)
        consumed.add(digest)
        digests.append(digest)

        amount = order.fund_collateral
        book = book.commit(
            order.position_key, amount, available, order.total_collateral, order.maker_collateral
        )
        available -= amount
        funding[venue.address] = funding.get(venue.address, Decimal("0")) + amount
        venue_moves.extend(venue.open(view, terms.fund_wallet, order).moves)

    moves: List[Move] = []
    for address, amount in funding.items():
        moves.extend(adapter.withdraw_to(view, terms.fund_wallet, address, amount))
    moves.extend(venue_moves)

    committed = sum(funding.values(), Decimal("0"))
    new_state = state.bump(positions=book, consumed_orders=frozenset(consumed))
    origin = TransactionOrigin(OriginType.CONTRACT, caller, symbol, "PRODUCTS_MINTED")
    tx = build_transaction(view, moves, [fund_state_change(view, terms, new_state)], origin)

    key_ids = tuple(OrderedDict.fromkeys(o.position_key.key_id for o in orders))
    event = ProductsMinted(key_ids, committed, tuple(digests), now)
    logger.debug("%s mints %d orders, commits %s", symbol, len(orders), committed)
    return FundOperation(tx, event, committed)
