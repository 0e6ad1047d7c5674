"""
fund.py - The fund facade

Fund binds one fund share unit on a Ledger to its collaborators (collateral
adapter, venues, oracle, maker registry, order verifier) and turns every
compute_* function into a method that executes against the ledger.

Each state-changing method:
    1. refuses to run while another fund operation is in progress
    2. builds a FundOperation from the ledger's read-only view
    3. executes its transaction; a ledger rejection raises TransactionRejected
    4. records the operation's event

Any exception in steps 2-3 leaves the ledger untouched.
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Sequence, Tuple
import logging

from .collateral import CollateralAdapter
from .config import FundConfig
from .core import (
    ExecuteResult, BURN_WALLET,
    ReentrancyError, TransactionRejected,
)
from .ledger import Ledger
from .nav import NavSnapshot, compute_deposit, nav_snapshot
from .oracle import SettlementOracle
from .orders import MakerOrder, SettlementRequest
from .origination import MakerRegistry, compute_mint_products
from .positions import OutstandingPosition
from .redemptions import (
    compute_approve, compute_claim, compute_transfer, compute_transfer_from,
    compute_withdraw, redemption_reserve_rule,
)
from .settlement import (
    compute_burn_products, compute_harvest, compute_harvest_protocol_fee,
    settleable_requests,
)
from .signatures import OrderVerifier
from .state import FundOperation, FundTerms, create_fund_share_unit, load_fund
from .venues import Venue

logger = logging.getLogger(__name__)


class Fund:
    """
    A pooled-capital structured-product fund.

    Example:
        fund = Fund.create(
            ledger, "afUSDC", "Automator USDC", PlainCollateral("USDC"),
            fund_wallet="0xF00D...", owner="0x0A11...",
            venues=[venue], oracle=oracle, registry=factory,
            config=FundConfig(fee_rate=Decimal("0.01")),
        )
        fund.deposit("alice", Decimal("100"))
        fund.withdraw("alice", Decimal("30"))
    """

    def __init__(
        self,
        ledger: Ledger,
        symbol: str,
        adapter: CollateralAdapter,
        *,
        venues: Iterable[Venue] = (),
        oracle: Optional[SettlementOracle] = None,
        registry: Optional[MakerRegistry] = None,
        verifier: Optional[OrderVerifier] = None,
    ):
        terms, _ = load_fund(ledger, symbol)
        if adapter.asset != terms.asset:
            raise ValueError(f"adapter pays {adapter.asset}, fund {symbol} is denominated in {terms.asset}")
        self.ledger = ledger
        self.symbol = symbol
        self.adapter = adapter
        self.venues = {venue.address: venue for venue in venues}
        self.oracle = oracle
        self.registry = registry
        self.verifier = verifier or OrderVerifier(
            chain_id=terms.config.chain_id, decimals=terms.config.decimals
        )
        self.events: List[Any] = []
        self._busy = False

    @classmethod
    def create(
        cls,
        ledger: Ledger,
        symbol: str,
        name: str,
        adapter: CollateralAdapter,
        fund_wallet: str,
        owner: str,
        *,
        fee_recipient: Optional[str] = None,
        protocol_treasury: Optional[str] = None,
        burn_wallet: str = BURN_WALLET,
        config: Optional[FundConfig] = None,
        venues: Iterable[Venue] = (),
        oracle: Optional[SettlementOracle] = None,
        registry: Optional[MakerRegistry] = None,
        verifier: Optional[OrderVerifier] = None,
    ) -> Fund:
        """
        Register a new fund share unit and its wallets on the ledger.

        fee_recipient and protocol_treasury default to the owner.

        Raises:
            ValueError: If the symbol is taken or the wallets overlap
        """
        terms = FundTerms(
            symbol=symbol,
            name=name,
            asset=adapter.asset,
            fund_wallet=fund_wallet,
            owner=owner,
            fee_recipient=fee_recipient or owner,
            protocol_treasury=protocol_treasury or owner,
            burn_wallet=burn_wallet,
            config=config or FundConfig(),
        )
        unit = create_fund_share_unit(terms, transfer_rule=redemption_reserve_rule)

        venues = tuple(venues)
        wallets = [fund_wallet, owner, terms.fee_recipient, terms.protocol_treasury, burn_wallet]
        for venue in venues:
            wallets.append(venue.address)
            fee_wallet = getattr(venue, 'fee_wallet', None)
            if fee_wallet:
                wallets.append(fee_wallet)
        for wallet in wallets:
            ledger.ensure_wallet(wallet)
        ledger.register_unit(unit)

        logger.info("created fund %s (%s) over %s, owner %s", symbol, name, adapter.asset, owner)
        return cls(ledger, symbol, adapter, venues=venues, oracle=oracle, registry=registry, verifier=verifier)

    # ========================================================================
    # EXECUTION
    # ========================================================================

    @contextmanager
    def _non_reentrant(self):
        if self._busy:
            raise ReentrancyError(f"{self.symbol}: reentrant call")
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    def _run(self, op: FundOperation) -> Any:
        result = self.ledger.execute(op.transaction)
        if result is ExecuteResult.REJECTED:
            raise TransactionRejected(self.ledger.last_rejection)
        if result is ExecuteResult.ALREADY_APPLIED:
            raise TransactionRejected(f"intent {op.transaction.intent_id} already applied")
        self.events.append(op.event)
        logger.info("%s %r", self.symbol, op.event)
        return op.result

    def _require(self, collaborator: Any, name: str) -> Any:
        if collaborator is None:
            raise ValueError(f"{self.symbol} has no {name} configured")
        return collaborator

    # ========================================================================
    # DEPOSITS AND REDEMPTIONS
    # ========================================================================

    def deposit(self, depositor: str, amount: Decimal) -> Decimal:
        """Deposit collateral; returns the shares credited to depositor."""
        with self._non_reentrant():
            return self._run(compute_deposit(self.ledger, self.symbol, self.adapter, depositor, amount))

    def withdraw(self, depositor: str, shares: Decimal) -> None:
        """Request redemption of shares; nothing is paid until claim_redemptions()."""
        with self._non_reentrant():
            return self._run(compute_withdraw(self.ledger, self.symbol, depositor, shares))

    def claim_redemptions(self, depositor: str) -> Decimal:
        """Claim the depositor's redemption; returns the collateral paid."""
        with self._non_reentrant():
            return self._run(compute_claim(self.ledger, self.symbol, self.adapter, depositor))

    def transfer(self, sender: str, recipient: str, shares: Decimal) -> Decimal:
        """Move shares to recipient, registering the recipient on first receipt."""
        with self._non_reentrant():
            op = compute_transfer(self.ledger, self.symbol, sender, recipient, shares)
            self.ledger.ensure_wallet(recipient)
            return self._run(op)

    def approve(self, owner: str, spender: str, shares: Decimal) -> Decimal:
        with self._non_reentrant():
            return self._run(compute_approve(self.ledger, self.symbol, owner, spender, shares))

    def transfer_from(self, spender: str, owner: str, recipient: str, shares: Decimal) -> Decimal:
        with self._non_reentrant():
            op = compute_transfer_from(self.ledger, self.symbol, spender, owner, recipient, shares)
            self.ledger.ensure_wallet(recipient)
            return self._run(op)

    # ========================================================================
    # PRODUCTS
    # ========================================================================

    def mint_products(self, caller: str, orders: Sequence[MakerOrder], aggregated_signature: bytes) -> Decimal:
        """Originate a batch of signed orders; returns the collateral committed."""
        with self._non_reentrant():
            op = compute_mint_products(
                self.ledger, self.symbol, caller, orders, aggregated_signature,
                adapter=self.adapter,
                registry=self._require(self.registry, "maker registry"),
                venues=self.venues,
                verifier=self.verifier,
            )
            return self._run(op)

    def burn_products(self, caller: str, requests: Sequence[SettlementRequest]) -> Decimal:
        """Settle a batch of expired positions; returns the collateral returned."""
        with self._non_reentrant():
            op = compute_burn_products(
                self.ledger, self.symbol, caller, requests,
                adapter=self.adapter,
                venues=self.venues,
                oracle=self._require(self.oracle, "oracle"),
            )
            return self._run(op)

    def burn_expired_products(self, caller: str) -> Decimal:
        """Settle every expired position the oracle has a price for."""
        oracle = self._require(self.oracle, "oracle")
        requests = settleable_requests(self.ledger, self.symbol, oracle, self.venues)
        if not requests:
            return Decimal("0")
        return self.burn_products(caller, requests)

    def harvest(self, caller: Optional[str] = None) -> Decimal:
        """Pay out total_fee; raises ZeroFee when nothing has accrued."""
        with self._non_reentrant():
            return self._run(compute_harvest(self.ledger, self.symbol, self.adapter, caller or self.terms.owner))

    def harvest_protocol_fee(self, caller: Optional[str] = None) -> Decimal:
        with self._non_reentrant():
            return self._run(
                compute_harvest_protocol_fee(self.ledger, self.symbol, self.adapter, caller or self.terms.owner)
            )

    # ========================================================================
    # VIEWS
    # ========================================================================

    @property
    def terms(self) -> FundTerms:
        return load_fund(self.ledger, self.symbol)[0]

    def nav(self) -> NavSnapshot:
        return nav_snapshot(self.ledger, self.symbol, self.adapter)

    def get_price_per_share(self) -> Decimal:
        return self.nav().price_per_share

    def total_assets(self) -> Decimal:
        return self.nav().total_assets

    def total_collateral(self) -> Decimal:
        return self.nav().total_collateral

    def total_shares(self) -> Decimal:
        return load_fund(self.ledger, self.symbol)[1].total_shares

    def balance_of(self, wallet: str) -> Decimal:
        return self.ledger.get_balance(wallet, self.symbol)

    def allowance(self, owner: str, spender: str) -> Decimal:
        return load_fund(self.ledger, self.symbol)[1].allowances.get((owner, spender), Decimal("0"))

    def get_unredeemed_collateral(self) -> Decimal:
        return self.nav().unredeemed_collateral

    def get_redemption(self, depositor: str) -> Tuple[Decimal, Optional[datetime]]:
        """(pending shares, request time), or (0, None) if never requested."""
        request = load_fund(self.ledger, self.symbol)[1].redemptions.get(depositor)
        if request is None:
            return Decimal("0"), None
        return request.shares, request.timestamp

    def total_pending_redemptions(self) -> Decimal:
        return load_fund(self.ledger, self.symbol)[1].total_pending_redemptions

    def total_fee(self) -> Decimal:
        return load_fund(self.ledger, self.symbol)[1].total_fee

    def total_protocol_fee(self) -> Decimal:
        return load_fund(self.ledger, self.symbol)[1].total_protocol_fee

    def outstanding_positions(self) -> Tuple[OutstandingPosition, ...]:
        return tuple(load_fund(self.ledger, self.symbol)[1].positions)

    def decimals(self) -> int:
        return self.terms.config.decimals

    def __repr__(self) -> str:
        return f"Fund({self.symbol}, {self.adapter!r})"
