"""
registry.py - Automator factory and venue/maker whitelist

AutomatorFactory is the MakerRegistry every fund it creates consults when
minting: only enabled venues and makers can originate products. Addresses
are compared case-insensitively.
"""

from __future__ import annotations
from typing import Any, Iterable, List, Optional, Set
import logging

from .collateral import CollateralAdapter
from .config import FundConfig
from .core import NotOwner
from .events import AutomatorCreated, FeeCollectorSet, ReferralSet
from .fund import Fund
from .ledger import Ledger
from .oracle import SettlementOracle
from .signatures import OrderVerifier
from .venues import Venue

logger = logging.getLogger(__name__)


class AutomatorFactory:
    """
    Creates funds and holds the venue and maker whitelist they share.

    Args:
        owner: Only address allowed to change the whitelist and fee routing
        fee_collector: Protocol treasury of every fund created from now on
        referral: Optional referral address

    Example:
        factory = AutomatorFactory(owner="0xA11CE...", fee_collector="0xFEE5...")
        factory.enable_venues(factory.owner, [venue.address])
        factory.enable_makers(factory.owner, [maker_address])
        fund = factory.create_fund(ledger, "afUSDC", "Automator USDC", PlainCollateral("USDC"),
                                   fund_wallet="0xF00D...", owner="0x0A11...", venues=[venue], oracle=oracle)
    """

    def __init__(self, owner: str, fee_collector: str, referral: Optional[str] = None):
        if not owner:
            raise ValueError("owner cannot be empty")
        if not fee_collector:
            raise ValueError("fee_collector cannot be empty")
        self.owner = owner
        self.fee_collector = fee_collector
        self.referral = referral
        self._venues: Set[str] = set()
        self._makers: Set[str] = set()
        self.funds: List[Fund] = []
        self.events: List[Any] = []

    def _only_owner(self, caller: str) -> None:
        if caller.lower() != self.owner.lower():
            raise NotOwner(f"{caller} is not the factory owner")

    # ------------------------------------------------------------------
    # Fee routing
    # ------------------------------------------------------------------

    def set_fee_collector(self, caller: str, fee_collector: str) -> None:
        self._only_owner(caller)
        if not fee_collector:
            raise ValueError("fee_collector cannot be empty")
        self.events.append(FeeCollectorSet(self.fee_collector, fee_collector))
        self.fee_collector = fee_collector

    def set_referral(self, caller: str, referral: str) -> None:
        self._only_owner(caller)
        self.events.append(ReferralSet(self.referral or "", referral))
        self.referral = referral

    # ------------------------------------------------------------------
    # Whitelist
    # ------------------------------------------------------------------

    def enable_venues(self, caller: str, addresses: Iterable[str]) -> None:
        self._only_owner(caller)
        self._venues.update(a.lower() for a in addresses)

    def disable_venues(self, caller: str, addresses: Iterable[str]) -> None:
        self._only_owner(caller)
        self._venues.difference_update(a.lower() for a in addresses)

    def enable_makers(self, caller: str, addresses: Iterable[str]) -> None:
        self._only_owner(caller)
        self._makers.update(a.lower() for a in addresses)

    def disable_makers(self, caller: str, addresses: Iterable[str]) -> None:
        self._only_owner(caller)
        self._makers.difference_update(a.lower() for a in addresses)

    def is_enabled_venue(self, address: str) -> bool:
        return address.lower() in self._venues

    def is_enabled_maker(self, address: str) -> bool:
        return address.lower() in self._makers

    # ------------------------------------------------------------------
    # Funds
    # ------------------------------------------------------------------

    def create_fund(
        self,
        ledger: Ledger,
        symbol: str,
        name: str,
        adapter: CollateralAdapter,
        fund_wallet: str,
        owner: str,
        *,
        fee_recipient: Optional[str] = None,
        config: Optional[FundConfig] = None,
        venues: Iterable[Venue] = (),
        oracle: Optional[SettlementOracle] = None,
        verifier: Optional[OrderVerifier] = None,
    ) -> Fund:
        """
        Create a fund whose protocol fee goes to the current fee collector.

        Raises:
            ValueError: If the fund cannot be registered on the ledger
        """
        fund = Fund.create(
            ledger, symbol, name, adapter, fund_wallet, owner,
            fee_recipient=fee_recipient,
            protocol_treasury=self.fee_collector,
            config=config,
            venues=venues,
            oracle=oracle,
            registry=self,
            verifier=verifier,
        )
        self.funds.append(fund)
        self.events.append(AutomatorCreated(symbol, owner, adapter.asset))
        logger.info("factory created %s for %s", symbol, owner)
        return fund

    def funds_count(self) -> int:
        return len(self.funds)
