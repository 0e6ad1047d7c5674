"""
conftest.py - Shared pytest fixtures for automator tests

Provides common fixtures used across unit, functional and conformance tests:
- Ledgers with a USDC collateral token and funded wallets
- A factory whitelisting one maker and two venues
- A plain-collateral fund and a wrapped-collateral fund
- Helpers to issue collateral, build and sign maker orders, and compare
  ledger snapshots
"""

import itertools
import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Sequence, Tuple

from eth_account import Account

from automator import (
    Ledger, Move, build_transaction, collateral_token,
    AutomatorFactory, Fund, FundConfig,
    PlainCollateral, WrappedCollateral, YieldWrapper,
    InMemoryVenue, StaticOracle,
    MakerOrder, SettlementRequest,
    SYSTEM_WALLET,
)


# =============================================================================
# ADDRESSES AND KEYS
# =============================================================================

START = datetime(2024, 8, 1, 8, 0)
EXPIRY = START + timedelta(days=14)
IN_RANGE_PRICE = Decimal("29000")
OUT_OF_RANGE_PRICE = Decimal("31000")
STRIKES = (Decimal("28000"), Decimal("30000"))
STRIKES_B = (Decimal("27000"), Decimal("33000"))

MAKER_KEY = "0x" + "11" * 32
OTHER_MAKER_KEY = "0x" + "22" * 32
MAKER = Account.from_key(MAKER_KEY).address
OTHER_MAKER = Account.from_key(OTHER_MAKER_KEY).address

FACTORY_OWNER = "0x00000000000000000000000000000000000a11ce"
FEE_COLLECTOR = "0x00000000000000000000000000000000000fee50"
OWNER = "0x0000000000000000000000000000000000000a11"
FUND_WALLET = "0x000000000000000000000000000000000000f00d"
WRAPPED_FUND_WALLET = "0x000000000000000000000000000000000000f00e"
VENUE_A = "0x00000000000000000000000000000000000000aa"
VENUE_B = "0x00000000000000000000000000000000000000bb"
VENUE_FEES = "venue_fees"
WRAPPER_WALLET = "aave_pool"

_issue_ids = itertools.count()


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def range_payoff(inside: Decimal = Decimal("1"), outside: Decimal = Decimal("0.8")):
    """Minter's fraction: `inside` while price stays within the strikes, else `outside`."""
    def payoff(strikes, risk, price):
        low, high = strikes[0], strikes[-1]
        return inside if low <= price <= high else outside
    return payoff


def issue(ledger: Ledger, wallet: str, amount, unit: str = "USDC") -> None:
    """Issue collateral to a wallet from SYSTEM_WALLET."""
    ledger.ensure_wallet(wallet)
    tx = build_transaction(ledger, [
        Move(Decimal(str(amount)), unit, SYSTEM_WALLET, wallet, f"issue_{next(_issue_ids)}")
    ])
    ledger.execute(tx)


def make_order(
    venue: str = VENUE_A,
    total=Decimal("100"),
    maker_collateral=Decimal("10"),
    expiry: datetime = EXPIRY,
    strikes: Sequence[Decimal] = STRIKES,
    deadline: datetime = None,
    maker: str = MAKER,
    risk=None,
) -> MakerOrder:
    """Unsigned maker order with test defaults (fund commits 90)."""
    return MakerOrder(
        venue=venue,
        total_collateral=Decimal(str(total)),
        expiry=expiry,
        strike_parameters=tuple(strikes),
        maker_collateral=Decimal(str(maker_collateral)),
        deadline=deadline or START + timedelta(days=1),
        maker=maker,
        risk_parameter=risk,
    )


def sign_orders(fund: Fund, orders: Sequence[MakerOrder], key: str = MAKER_KEY) -> Tuple[list, bytes]:
    """Sign every order for fund and return (signed orders, aggregated signature)."""
    minter = fund.terms.fund_wallet
    signed = [fund.verifier.sign_order(order, key, minter) for order in orders]
    return signed, fund.verifier.sign_batch(signed, key)


def mint(fund: Fund, *orders: MakerOrder, key: str = MAKER_KEY) -> Decimal:
    signed, aggregated = sign_orders(fund, orders, key)
    return fund.mint_products(OWNER, signed, aggregated)


def settle_request(order: MakerOrder) -> SettlementRequest:
    return SettlementRequest.for_key(order.position_key)


def snapshot(ledger: Ledger) -> Dict[str, Any]:
    """Balances and unit states, for before/after comparisons."""
    return {
        'balances': {w: dict(ledger.get_wallet_balances(w)) for w in sorted(ledger.list_wallets())},
        'states': {u: ledger.get_unit_state(u) for u in ledger.list_units()},
        'log': len(ledger.transaction_log),
    }


def build_ledger() -> Ledger:
    """Ledger with USDC, funded depositors and two funded makers."""
    ledger = Ledger("automator", START, verbose=False, test_mode=True)
    ledger.register_unit(collateral_token("USDC", "USD Coin"))
    for wallet, amount in (("alice", 1000), ("bob", 1000), ("carol", 1000), (MAKER, 10000), (OTHER_MAKER, 10000)):
        issue(ledger, wallet, amount)
    return ledger


def build_factory() -> AutomatorFactory:
    """Factory whitelisting MAKER and both venues."""
    factory = AutomatorFactory(FACTORY_OWNER, FEE_COLLECTOR)
    factory.enable_venues(FACTORY_OWNER, [VENUE_A, VENUE_B])
    factory.enable_makers(FACTORY_OWNER, [MAKER])
    return factory


def build_fund(config: FundConfig = None, venue_payoff=None) -> Tuple[Ledger, Fund, StaticOracle]:
    """
    Standalone plain fund for hypothesis tests, which cannot use
    function-scoped fixtures.
    """
    ledger = build_ledger()
    oracle = StaticOracle()
    venues = [
        InMemoryVenue(VENUE_A, "USDC", venue_payoff or range_payoff(),
                      fee_rate=Decimal("0.03"), fee_wallet=VENUE_FEES),
        InMemoryVenue(VENUE_B, "USDC", venue_payoff or range_payoff(),
                      fee_rate=Decimal("0.03"), fee_wallet=VENUE_FEES),
    ]
    fund = build_factory().create_fund(
        ledger, "afUSDC", "Automator USDC", PlainCollateral("USDC"),
        FUND_WALLET, OWNER,
        config=config or FundConfig(fee_rate=Decimal("0.01")),
        venues=venues, oracle=oracle,
    )
    return ledger, fund, oracle


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def ledger():
    return build_ledger()


@pytest.fixture
def oracle():
    return StaticOracle()


@pytest.fixture
def venue_a():
    return InMemoryVenue(VENUE_A, "USDC", range_payoff(), fee_rate=Decimal("0.03"), fee_wallet=VENUE_FEES)


@pytest.fixture
def venue_b():
    return InMemoryVenue(VENUE_B, "USDC", range_payoff(), fee_rate=Decimal("0.03"), fee_wallet=VENUE_FEES)


@pytest.fixture
def factory():
    return build_factory()


@pytest.fixture
def config():
    return FundConfig(fee_rate=Decimal("0.01"))


@pytest.fixture
def fund(ledger, factory, venue_a, venue_b, oracle, config):
    """Plain USDC fund with a 1% performance fee."""
    return factory.create_fund(
        ledger, "afUSDC", "Automator USDC", PlainCollateral("USDC"),
        FUND_WALLET, OWNER,
        config=config, venues=[venue_a, venue_b], oracle=oracle,
    )


@pytest.fixture
def funded_fund(fund):
    """Plain fund after alice's first deposit of 100."""
    fund.deposit("alice", Decimal("100"))
    return fund


@pytest.fixture
def wrapper(ledger):
    wrapper = YieldWrapper("aUSDC", "USDC", WRAPPER_WALLET)
    ledger.register_unit(wrapper.create_unit())
    ledger.ensure_wallet(WRAPPER_WALLET)
    return wrapper


@pytest.fixture
def wrapped_fund(ledger, factory, venue_a, oracle, config, wrapper):
    """Fund holding its idle collateral as aUSDC."""
    return factory.create_fund(
        ledger, "afaUSDC", "Automator aUSDC", WrappedCollateral(wrapper),
        WRAPPED_FUND_WALLET, OWNER,
        config=config, venues=[venue_a], oracle=oracle,
    )
