"""
events.py - Events emitted by funds and the factory

Events are frozen records appended to the emitter's `events` list after the
operation's transaction has been applied. A rejected operation emits nothing.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Tuple


@dataclass(frozen=True, slots=True)
class Deposited:
    depositor: str
    amount: Decimal
    shares: Decimal
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Withdrawn:
    depositor: str
    shares: Decimal
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class RedemptionsClaimed:
    depositor: str
    assets: Decimal
    shares: Decimal
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Transfer:
    sender: str
    recipient: str
    shares: Decimal
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class ProductsMinted:
    key_ids: Tuple[str, ...]
    committed: Decimal
    order_digests: Tuple[str, ...]
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class ProductsBurned:
    key_ids: Tuple[str, ...]
    released: Decimal
    returned: Decimal
    fee: Decimal
    protocol_fee: Decimal
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class FeeCollected:
    recipient: str
    amount: Decimal
    protocol_recipient: str
    protocol_amount: Decimal
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class AutomatorCreated:
    symbol: str
    owner: str
    asset: str


@dataclass(frozen=True, slots=True)
class FeeCollectorSet:
    old: str
    new: str


@dataclass(frozen=True, slots=True)
class ReferralSet:
    old: str
    new: str


@dataclass(frozen=True, slots=True)
class Approval:
    owner: str
    spender: str
    shares: Decimal
    timestamp: datetime
