"""
orders.py - Maker orders, position keys and settlement requests

MakerOrder is the off-chain signed authorization a maker hands to the fund
owner. PositionKey identifies the pooled position an order lands in; several
orders sharing (venue, expiry, strike parameters, risk parameter) aggregate
into one key. SettlementRequest names a key to settle.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple, Sequence

from .core import to_decimal


def _strikes(values: Sequence) -> Tuple[Decimal, ...]:
    return tuple(to_decimal(v) for v in values)


@dataclass(frozen=True, slots=True)
class PositionKey:
    """
    Identity of an outstanding position.

    Attributes:
        venue: Venue address
        expiry: Product expiry
        strike_parameters: Anchor prices defining the payoff boundaries
        risk_parameter: Collateral-at-risk, or None for principal-protected products
    """
    venue: str
    expiry: datetime
    strike_parameters: Tuple[Decimal, ...]
    risk_parameter: Optional[Decimal] = None

    def __post_init__(self):
        object.__setattr__(self, 'strike_parameters', _strikes(self.strike_parameters))
        if self.risk_parameter is not None and not isinstance(self.risk_parameter, Decimal):
            object.__setattr__(self, 'risk_parameter', to_decimal(self.risk_parameter))
        if not self.venue:
            raise ValueError("venue cannot be empty")
        if not self.strike_parameters:
            raise ValueError("strike_parameters cannot be empty")

    @property
    def key_id(self) -> str:
        """Stable string form, used as the key in fund state."""
        strikes = ",".join(format(s.normalize(), 'f') for s in self.strike_parameters)
        risk = "-" if self.risk_parameter is None else format(self.risk_parameter.normalize(), 'f')
        return f"{self.venue.lower()}|{self.expiry.isoformat()}|{strikes}|{risk}"


@dataclass(frozen=True, slots=True)
class MakerOrder:
    """
    An order signed off-chain by a maker.

    The fund commits total_collateral - maker_collateral of its own collateral;
    the maker commits maker_collateral. The signature covers every field
    except itself, plus the minter (the fund) and the chain id.

    Raises:
        ValueError: On non-positive collateral, maker collateral above the
                    total, empty strikes or an empty maker address
    """
    venue: str
    total_collateral: Decimal
    expiry: datetime
    strike_parameters: Tuple[Decimal, ...]
    maker_collateral: Decimal
    deadline: datetime
    maker: str
    signature: bytes = b""
    risk_parameter: Optional[Decimal] = None

    def __post_init__(self):
        for name in ('total_collateral', 'maker_collateral'):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                object.__setattr__(self, name, to_decimal(value))
        if self.risk_parameter is not None and not isinstance(self.risk_parameter, Decimal):
            object.__setattr__(self, 'risk_parameter', to_decimal(self.risk_parameter))
        object.__setattr__(self, 'strike_parameters', _strikes(self.strike_parameters))
        if isinstance(self.signature, str):
            hex_sig = self.signature[2:] if self.signature.startswith("0x") else self.signature
            object.__setattr__(self, 'signature', bytes.fromhex(hex_sig))

        if not self.venue:
            raise ValueError("venue cannot be empty")
        if not self.maker:
            raise ValueError("maker cannot be empty")
        if self.total_collateral <= 0:
            raise ValueError(f"total_collateral must be positive, got {self.total_collateral}")
        if self.maker_collateral < 0:
            raise ValueError(f"maker_collateral cannot be negative, got {self.maker_collateral}")
        if self.maker_collateral >= self.total_collateral:
            raise ValueError(
                f"maker_collateral ({self.maker_collateral}) must be below "
                f"total_collateral ({self.total_collateral})"
            )
        if not self.strike_parameters:
            raise ValueError("strike_parameters cannot be empty")
        if self.risk_parameter is not None and not (0 <= self.risk_parameter <= self.total_collateral):
            raise ValueError(f"risk_parameter out of range: {self.risk_parameter}")

    @property
    def fund_collateral(self) -> Decimal:
        """Collateral the fund commits for this order."""
        return self.total_collateral - self.maker_collateral

    @property
    def position_key(self) -> PositionKey:
        return PositionKey(
            venue=self.venue,
            expiry=self.expiry,
            strike_parameters=self.strike_parameters,
            risk_parameter=self.risk_parameter,
        )

    def with_signature(self, signature: bytes) -> MakerOrder:
        return MakerOrder(
            venue=self.venue,
            total_collateral=self.total_collateral,
            expiry=self.expiry,
            strike_parameters=self.strike_parameters,
            maker_collateral=self.maker_collateral,
            deadline=self.deadline,
            maker=self.maker,
            signature=signature,
            risk_parameter=self.risk_parameter,
        )


@dataclass(frozen=True, slots=True)
class SettlementRequest:
    """A request to settle one outstanding position key."""
    venue: str
    expiry: datetime
    strike_parameters: Tuple[Decimal, ...]
    risk_parameter: Optional[Decimal] = None

    def __post_init__(self):
        object.__setattr__(self, 'strike_parameters', _strikes(self.strike_parameters))
        if self.risk_parameter is not None and not isinstance(self.risk_parameter, Decimal):
            object.__setattr__(self, 'risk_parameter', to_decimal(self.risk_parameter))

    @property
    def position_key(self) -> PositionKey:
        return PositionKey(self.venue, self.expiry, self.strike_parameters, self.risk_parameter)

    @classmethod
    def for_key(cls, key: PositionKey) -> SettlementRequest:
        return cls(key.venue, key.expiry, key.strike_parameters, key.risk_parameter)
