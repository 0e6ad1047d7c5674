"""
positions.py - Outstanding position book

Tracks, per PositionKey, the collateral the fund has committed to positions
that have not settled yet. The book is an immutable value: commit() and
release() return a new book, so a batch that fails halfway leaves the fund's
stored book untouched.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from .core import NoEnoughCollateral, PositionNotFound, to_decimal
from .orders import PositionKey


@dataclass(frozen=True, slots=True)
class OutstandingPosition:
    """
    Aggregated position for one key.

    Attributes:
        key: Position identity
        committed: Fund collateral committed across all orders for the key
        total_collateral: Sum of the orders' total collateral (fund + makers)
        maker_collateral: Sum of the makers' collateral
        order_count: Number of orders aggregated into the key
    """
    key: PositionKey
    committed: Decimal
    total_collateral: Decimal
    maker_collateral: Decimal
    order_count: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'venue': self.key.venue,
            'expiry': self.key.expiry,
            'strike_parameters': list(self.key.strike_parameters),
            'risk_parameter': self.key.risk_parameter,
            'committed': self.committed,
            'total_collateral': self.total_collateral,
            'maker_collateral': self.maker_collateral,
            'order_count': self.order_count,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> OutstandingPosition:
        key = PositionKey(
            venue=raw['venue'],
            expiry=raw['expiry'],
            strike_parameters=tuple(raw['strike_parameters']),
            risk_parameter=raw.get('risk_parameter'),
        )
        return cls(
            key=key,
            committed=to_decimal(raw['committed']),
            total_collateral=to_decimal(raw['total_collateral']),
            maker_collateral=to_decimal(raw['maker_collateral']),
            order_count=int(raw.get('order_count', 1)),
        )


@dataclass(frozen=True, slots=True)
class PositionBook:
    """Immutable map of key_id -> OutstandingPosition."""
    entries: Mapping[str, OutstandingPosition] = field(default_factory=dict)

    @property
    def total_committed(self) -> Decimal:
        return sum((p.committed for p in self.entries.values()), Decimal("0"))

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[OutstandingPosition]:
        return iter(sorted(self.entries.values(), key=lambda p: (p.key.expiry, p.key.key_id)))

    def get(self, key: PositionKey) -> Optional[OutstandingPosition]:
        return self.entries.get(key.key_id)

    def commit(
        self,
        key: PositionKey,
        amount: Decimal,
        available: Decimal,
        total_collateral: Optional[Decimal] = None,
        maker_collateral: Decimal = Decimal("0"),
    ) -> PositionBook:
        """
        Add amount to the key's committed collateral.

        Args:
            key: Position to commit into (created if absent)
            amount: Fund collateral to commit
            available: Free collateral the fund can still commit
            total_collateral: Order total (fund + maker); defaults to amount
            maker_collateral: Maker's share of the order

        Returns:
            New PositionBook

        Raises:
            ValueError: If amount is not positive
            NoEnoughCollateral: If amount exceeds available
        """
        amount = to_decimal(amount)
        if amount <= 0:
            raise ValueError(f"commit amount must be positive, got {amount}")
        if amount > available:
            raise NoEnoughCollateral(
                f"no enough collateral to commit: need {amount}, available {available}"
            )
        total_collateral = amount if total_collateral is None else to_decimal(total_collateral)

        existing = self.entries.get(key.key_id)
        if existing is None:
            updated = OutstandingPosition(key, amount, total_collateral, maker_collateral, 1)
        else:
            updated = OutstandingPosition(
                key=existing.key,
                committed=existing.committed + amount,
                total_collateral=existing.total_collateral + total_collateral,
                maker_collateral=existing.maker_collateral + maker_collateral,
                order_count=existing.order_count + 1,
            )
        return PositionBook({**self.entries, key.key_id: updated})

    def release(self, key: PositionKey) -> Tuple[PositionBook, OutstandingPosition]:
        """
        Remove the key and return the released position.

        Raises:
            PositionNotFound: If the key is not outstanding (never committed,
                              or already released)
        """
        existing = self.entries.get(key.key_id)
        if existing is None:
            raise PositionNotFound(f"no outstanding position for {key.key_id}")
        remaining = {k: v for k, v in self.entries.items() if k != key.key_id}
        return PositionBook(remaining), existing

    def expired(self, now: datetime) -> Tuple[OutstandingPosition, ...]:
        """Positions whose expiry is at or before now."""
        return tuple(p for p in self if p.key.expiry <= now)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {key_id: p.to_dict() for key_id, p in self.entries.items()}

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Mapping[str, Any]]]) -> PositionBook:
        if not raw:
            return cls()
        return cls({key_id: OutstandingPosition.from_dict(p) for key_id, p in raw.items()})
