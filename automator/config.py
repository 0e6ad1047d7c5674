"""
config.py - Fund configuration

FundConfig collects every tunable of a fund in one frozen dataclass. It is
stored in the fund share unit's state at creation and reloaded by load_fund().
"""

from __future__ import annotations
from dataclasses import dataclass, asdict
from datetime import timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping

from .core import DEFAULT_DECIMALS, to_decimal


class FeeSplitPoint(Enum):
    """
    When the protocol's share of a realized gain is separated from the
    performance fee.

    AT_SETTLEMENT: accrues into total_protocol_fee when a position settles.
    AT_HARVEST: accrues together with the performance fee into total_fee and
                is split out proportionally when harvest() pays it.
    """
    AT_SETTLEMENT = "at_settlement"
    AT_HARVEST = "at_harvest"


DEFAULT_LOCK_PERIOD = timedelta(days=7)
DEFAULT_CLAIM_WINDOW = timedelta(days=3)
DEFAULT_MINIMUM_SHARES = Decimal("1e-15")  # 1000 base units at 18 decimals


@dataclass(frozen=True, slots=True)
class FundConfig:
    """
    Immutable fund parameters.

    Attributes:
        lock_period: Delay between a withdrawal request and the claim window opening
        claim_window: Width of the claim window; a claim is valid while
                      request_time + lock_period <= now < request_time + lock_period + claim_window
        minimum_shares: Shares minted to the burn wallet on the first deposit
        decimals: Base-unit precision of shares and collateral
        fee_rate: Performance fee on realized gains, paid to the fee recipient
        protocol_fee_rate: Protocol fee on realized gains, paid to the treasury
        fee_split_point: When the protocol fee is separated (see FeeSplitPoint)
        chain_id: Chain id bound into signed orders
    """
    lock_period: timedelta = DEFAULT_LOCK_PERIOD
    claim_window: timedelta = DEFAULT_CLAIM_WINDOW
    minimum_shares: Decimal = DEFAULT_MINIMUM_SHARES
    decimals: int = DEFAULT_DECIMALS
    fee_rate: Decimal = Decimal("0")
    protocol_fee_rate: Decimal = Decimal("0")
    fee_split_point: FeeSplitPoint = FeeSplitPoint.AT_SETTLEMENT
    chain_id: int = 1

    def __post_init__(self):
        for name in ('minimum_shares', 'fee_rate', 'protocol_fee_rate'):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                object.__setattr__(self, name, to_decimal(value))
        if not isinstance(self.fee_split_point, FeeSplitPoint):
            object.__setattr__(self, 'fee_split_point', FeeSplitPoint(self.fee_split_point))

        if self.lock_period < timedelta(0):
            raise ValueError(f"lock_period cannot be negative, got {self.lock_period}")
        if self.claim_window <= timedelta(0):
            raise ValueError(f"claim_window must be positive, got {self.claim_window}")
        if self.minimum_shares < 0:
            raise ValueError(f"minimum_shares cannot be negative, got {self.minimum_shares}")
        if self.decimals < 0:
            raise ValueError(f"decimals cannot be negative, got {self.decimals}")
        if self.fee_rate < 0 or self.protocol_fee_rate < 0:
            raise ValueError("fee rates cannot be negative")
        if self.fee_rate + self.protocol_fee_rate > 1:
            raise ValueError(
                f"fee_rate + protocol_fee_rate must not exceed 1, "
                f"got {self.fee_rate + self.protocol_fee_rate}"
            )

    @property
    def total_fee_rate(self) -> Decimal:
        return self.fee_rate + self.protocol_fee_rate

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> FundConfig:
        """
        Build a config from a plain mapping, ignoring unknown keys.

        Durations may be given as timedelta or as a number of seconds.

        Example:
            FundConfig.from_mapping({'fee_rate': '0.01', 'lock_period': 604800})
        """
        kwargs: Dict[str, Any] = {}
        for key in cls.__dataclass_fields__:
            if key not in raw:
                continue
            value = raw[key]
            if key in ('lock_period', 'claim_window') and not isinstance(value, timedelta):
                value = timedelta(seconds=float(value))
            kwargs[key] = value
        return cls(**kwargs)
