"""
oracle.py - Settlement price sources

Provides the prices positions settle against.

Classes:
- SettlementOracle: Protocol defining the settlement interface
- StaticOracle: Explicitly published settlement prices per expiry
- TimeSeriesOracle: Spot observations; the settlement price of an expiry is
  the latest observation at or before it, available once the oracle has
  observed a price at or after the expiry

Prices are Decimal, quoted in the strike parameters' units.
"""

from __future__ import annotations
from bisect import bisect_right
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Protocol, Tuple, runtime_checkable

from .core import NotSettled, to_decimal


@runtime_checkable
class SettlementOracle(Protocol):
    """Resolves the settlement price of an expiry."""

    def settled_price(self, expiry: datetime) -> Decimal:
        """Return the settlement price, raising NotSettled if unresolved."""
        ...

    def has_settled(self, expiry: datetime) -> bool:
        ...


class StaticOracle:
    """
    Oracle holding explicitly published settlement prices.

    Example:
        oracle = StaticOracle()
        oracle.settle(expiry, Decimal("29000"))
        oracle.settled_price(expiry)  # Decimal("29000")
    """

    def __init__(self, prices: Optional[Dict[datetime, Decimal]] = None):
        self.prices: Dict[datetime, Decimal] = {
            expiry: to_decimal(price) for expiry, price in (prices or {}).items()
        }

    def settle(self, expiry: datetime, price: Decimal) -> None:
        """
        Publish the settlement price of an expiry.

        Raises:
            ValueError: If the price is not positive or the expiry already settled
        """
        price = to_decimal(price)
        if price <= 0:
            raise ValueError(f"settlement price must be positive, got {price}")
        if expiry in self.prices:
            raise ValueError(f"expiry {expiry} already settled at {self.prices[expiry]}")
        self.prices[expiry] = price

    def has_settled(self, expiry: datetime) -> bool:
        return expiry in self.prices

    def settled_price(self, expiry: datetime) -> Decimal:
        if expiry not in self.prices:
            raise NotSettled(f"no settlement price for {expiry.isoformat()}")
        return self.prices[expiry]

    def __repr__(self):
        return f"StaticOracle({len(self.prices)} settled expiries)"


class TimeSeriesOracle:
    """
    Oracle backed by a spot price history.

    An expiry is settled once an observation exists at or after it; the
    settlement price is the most recent observation at or before the expiry.
    """

    def __init__(self, observations: Optional[List[Tuple[datetime, Decimal]]] = None):
        """
        Args:
            observations: Optional list of (timestamp, price) tuples, any order

        Example:
            oracle = TimeSeriesOracle([(t0, 28000), (t1, 29500)])
        """
        self.history: List[Tuple[datetime, Decimal]] = sorted(
            ((ts, to_decimal(p)) for ts, p in (observations or [])),
            key=lambda x: x[0],
        )

    def add_price(self, timestamp: datetime, price: Decimal) -> None:
        self.history.append((timestamp, to_decimal(price)))
        self.history.sort(key=lambda x: x[0])

    def latest_timestamp(self) -> Optional[datetime]:
        return self.history[-1][0] if self.history else None

    def price_at(self, timestamp: datetime) -> Optional[Decimal]:
        """Most recent price at or before timestamp, via binary search."""
        timestamps = [ts for ts, _ in self.history]
        idx = bisect_right(timestamps, timestamp)
        if idx == 0:
            return None
        return self.history[idx - 1][1]

    def has_settled(self, expiry: datetime) -> bool:
        latest = self.latest_timestamp()
        return latest is not None and latest >= expiry and self.price_at(expiry) is not None

    def settled_price(self, expiry: datetime) -> Decimal:
        if not self.has_settled(expiry):
            raise NotSettled(f"no settlement price for {expiry.isoformat()}")
        return self.price_at(expiry)

    def __repr__(self):
        return f"TimeSeriesOracle({len(self.history)} observations)"
