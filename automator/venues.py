"""
venues.py - Product venues

A venue mints a structured-product position from a signed order and pays it
out at expiry. The fund only sees the Venue protocol; InMemoryVenue is a
ledger-backed implementation whose payoff formula is injected.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional, Protocol, Tuple, runtime_checkable
import logging

from .core import LedgerView, Move, DEFAULT_DECIMALS, mul_div_down, quantize_down, to_decimal
from .orders import MakerOrder
from .positions import OutstandingPosition

logger = logging.getLogger(__name__)


# (strike_parameters, risk_parameter, settled_price) -> minter's fraction of total collateral
Payoff = Callable[[Tuple[Decimal, ...], Optional[Decimal], Decimal], Decimal]


@dataclass(frozen=True, slots=True)
class VenueReceipt:
    """Moves a venue needs to open a position, besides the minter's funding."""
    moves: Tuple[Move, ...] = ()


@dataclass(frozen=True, slots=True)
class VenueSettlement:
    """
    Outcome of settling one position.

    payout_to_minter + payout_to_maker + venue_fee never exceeds the
    position's total collateral.
    """
    moves: Tuple[Move, ...]
    payout_to_minter: Decimal
    payout_to_maker: Decimal
    venue_fee: Decimal


@runtime_checkable
class Venue(Protocol):
    address: str
    asset: str

    def open(self, view: LedgerView, minter: str, order: MakerOrder) -> VenueReceipt:
        ...

    def settle(
        self, view: LedgerView, minter: str, position: OutstandingPosition, settled_price: Decimal
    ) -> VenueSettlement:
        ...


class InMemoryVenue:
    """
    Venue holding product collateral in its own ledger wallet.

    At settlement the minter receives total_collateral * payoff, less a venue
    fee charged on the minter's profit over its committed collateral. The
    maker's share stays in the venue wallet for the maker to claim from the
    venue directly.

    Example:
        venue = InMemoryVenue("0xVault", "USDC", payoff=lambda strikes, risk, px: Decimal(1),
                              fee_rate=Decimal("0.03"), fee_wallet="venue_fees")
    """

    def __init__(
        self,
        address: str,
        asset: str,
        payoff: Payoff,
        fee_rate: Decimal = Decimal("0"),
        fee_wallet: Optional[str] = None,
        decimals: int = DEFAULT_DECIMALS,
    ):
        fee_rate = to_decimal(fee_rate)
        if not (0 <= fee_rate < 1):
            raise ValueError(f"fee_rate must be in [0, 1), got {fee_rate}")
        if fee_rate > 0 and not fee_wallet:
            raise ValueError("fee_wallet is required when fee_rate is positive")
        self.address = address
        self.asset = asset
        self.payoff = payoff
        self.fee_rate = fee_rate
        self.fee_wallet = fee_wallet
        self.decimals = decimals

    def open(self, view: LedgerView, minter: str, order: MakerOrder) -> VenueReceipt:
        """
        Take the maker's collateral for a new position.

        Raises:
            ValueError: If the order is for another venue or already expired
        """
        if order.venue.lower() != self.address.lower():
            raise ValueError(f"order for venue {order.venue} sent to {self.address}")
        if order.expiry <= view.current_time:
            raise ValueError(f"product already expired at {order.expiry}")
        moves: Tuple[Move, ...] = ()
        if order.maker_collateral > 0:
            moves = (Move(order.maker_collateral, self.asset, order.maker, self.address, "maker_collateral"),)
        return VenueReceipt(moves)

    def settle(
        self, view: LedgerView, minter: str, position: OutstandingPosition, settled_price: Decimal
    ) -> VenueSettlement:
        key = position.key
        fraction = to_decimal(self.payoff(key.strike_parameters, key.risk_parameter, settled_price))
        fraction = min(max(fraction, Decimal("0")), Decimal("1"))

        gross = quantize_down(position.total_collateral * fraction, self.decimals)
        profit = gross - position.committed
        fee = Decimal("0")
        if profit > 0 and self.fee_rate > 0:
            fee = mul_div_down(profit, self.fee_rate, Decimal("1"), self.decimals)
        payout_to_minter = gross - fee
        payout_to_maker = position.total_collateral - gross

        moves = []
        if payout_to_minter > 0:
            moves.append(Move(payout_to_minter, self.asset, self.address, minter, "product_payout"))
        if fee > 0:
            moves.append(Move(fee, self.asset, self.address, self.fee_wallet, "venue_fee"))

        logger.debug(
            "venue %s settles %s at %s: minter %s, maker %s, fee %s",
            self.address, key.key_id, settled_price, payout_to_minter, payout_to_maker, fee,
        )
        return VenueSettlement(tuple(moves), payout_to_minter, payout_to_maker, fee)

    def __repr__(self) -> str:
        return f"InMemoryVenue({self.address}, {self.asset})"
