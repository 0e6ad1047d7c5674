"""
automator - Pooled-capital structured-product fund

Depositors pool collateral into a fund and receive shares. The fund owner
originates structured products from maker-signed orders, expired products
settle back into the pool, and depositors redeem through a delayed queue.

Usage:
    from decimal import Decimal
    from automator import (
        Ledger, AutomatorFactory, PlainCollateral, InMemoryVenue, StaticOracle,
        FundConfig, collateral_token, build_transaction, Move, SYSTEM_WALLET,
    )

    ledger = Ledger("main", datetime(2025, 1, 1))
    ledger.register_unit(collateral_token("USDC", "USD Coin"))
    ledger.register_wallet("alice")
    ledger.execute(build_transaction(ledger, [
        Move(Decimal("1000"), "USDC", SYSTEM_WALLET, "alice", "initial_balance")
    ]))

    factory = AutomatorFactory(owner="0xA11CE...", fee_collector="0xFEE5...")
    fund = factory.create_fund(
        ledger, "afUSDC", "Automator USDC", PlainCollateral("USDC"),
        fund_wallet="0xF00D...", owner="0x0A11...",
        venues=[venue], oracle=StaticOracle(),
        config=FundConfig(fee_rate=Decimal("0.01")),
    )
    shares = fund.deposit("alice", Decimal("100"))
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    collateral_token,
    mul_div_down,
    mul_div_up,
    quantize_down,
    to_base_units,
    to_decimal,
    SYSTEM_WALLET,
    BURN_WALLET,
    DEFAULT_DECIMALS,
    UNIT_TYPE_COLLATERAL,
    UNIT_TYPE_WRAPPED,
    UNIT_TYPE_FUND_SHARE,
)

# Errors
from .core import (
    LedgerError,
    InsufficientFunds,
    TransferRuleViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    AutomatorError,
    AuthorizationError,
    TemporalError,
    CapacityError,
    StateError,
    InvalidMakerSignature,
    InvalidMaker,
    InvalidVenue,
    NotOwner,
    OrderExpired,
    PositionNotExpired,
    NotSettled,
    InvalidRedemption,
    NoEnoughCollateral,
    InsufficientCollateralToRedeem,
    InsufficientShares,
    InvalidTransferAmount,
    InsufficientDeposit,
    InsufficientAllowance,
    SignatureConsumed,
    PendingRedemption,
    ZeroFee,
    NoPendingRedemption,
    PositionNotFound,
    FundInsolvent,
    ReentrancyError,
    TransactionRejected,
)

# Ledger
from .ledger import Ledger

# Configuration and state
from .config import FundConfig, FeeSplitPoint
from .state import (
    FundTerms,
    FundState,
    FundOperation,
    RedemptionRequest,
    load_fund,
    create_fund_share_unit,
)

# Collaborators
from .collateral import CollateralAdapter, PlainCollateral, WrappedCollateral, YieldWrapper
from .oracle import SettlementOracle, StaticOracle, TimeSeriesOracle
from .venues import Venue, InMemoryVenue, VenueReceipt, VenueSettlement
from .orders import MakerOrder, PositionKey, SettlementRequest
from .positions import OutstandingPosition, PositionBook
from .signatures import OrderVerifier, aggregate_order_hash

# Fund operations
from .nav import (
    NavSnapshot,
    nav_snapshot,
    calculate_price_per_share,
    calculate_deposit_shares,
    calculate_redemption_assets,
    compute_deposit,
)
from .redemptions import (
    RedemptionStatus,
    redemption_status,
    redemption_reserve_rule,
    compute_withdraw,
    compute_claim,
    compute_transfer,
    compute_approve,
    compute_transfer_from,
)
from .origination import MakerRegistry, compute_mint_products
from .settlement import (
    calculate_gain_fees,
    split_harvest,
    compute_burn_products,
    compute_harvest,
    compute_harvest_protocol_fee,
)

# Facade
from .fund import Fund
from .registry import AutomatorFactory

# Events
from .events import (
    Deposited,
    Withdrawn,
    RedemptionsClaimed,
    Transfer,
    Approval,
    ProductsMinted,
    ProductsBurned,
    FeeCollected,
    AutomatorCreated,
    FeeCollectorSet,
    ReferralSet,
)

__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction', 'TransactionOrigin',
    'OriginType', 'build_transaction', 'Unit', 'UnitStateChange', 'ExecuteResult',
    'collateral_token', 'mul_div_down', 'mul_div_up', 'quantize_down', 'to_base_units',
    'to_decimal', 'SYSTEM_WALLET', 'BURN_WALLET', 'DEFAULT_DECIMALS',
    'UNIT_TYPE_COLLATERAL', 'UNIT_TYPE_WRAPPED', 'UNIT_TYPE_FUND_SHARE',
    # Errors
    'LedgerError', 'InsufficientFunds', 'TransferRuleViolation', 'UnitNotRegistered',
    'WalletNotRegistered', 'AutomatorError', 'AuthorizationError', 'TemporalError',
    'CapacityError', 'StateError', 'InvalidMakerSignature', 'InvalidMaker', 'InvalidVenue',
    'NotOwner', 'OrderExpired', 'PositionNotExpired', 'NotSettled', 'InvalidRedemption',
    'NoEnoughCollateral', 'InsufficientCollateralToRedeem', 'InsufficientShares',
    'InvalidTransferAmount', 'InsufficientDeposit', 'InsufficientAllowance',
    'SignatureConsumed', 'PendingRedemption', 'ZeroFee', 'NoPendingRedemption',
    'PositionNotFound', 'FundInsolvent', 'ReentrancyError', 'TransactionRejected',
    # Ledger
    'Ledger',
    # Configuration and state
    'FundConfig', 'FeeSplitPoint', 'FundTerms', 'FundState', 'FundOperation',
    'RedemptionRequest', 'load_fund', 'create_fund_share_unit',
    # Collaborators
    'CollateralAdapter', 'PlainCollateral', 'WrappedCollateral', 'YieldWrapper',
    'SettlementOracle', 'StaticOracle', 'TimeSeriesOracle',
    'Venue', 'InMemoryVenue', 'VenueReceipt', 'VenueSettlement',
    'MakerOrder', 'PositionKey', 'SettlementRequest',
    'OutstandingPosition', 'PositionBook', 'OrderVerifier', 'aggregate_order_hash',
    # Fund operations
    'NavSnapshot', 'nav_snapshot', 'calculate_price_per_share', 'calculate_deposit_shares',
    'calculate_redemption_assets', 'compute_deposit',
    'RedemptionStatus', 'redemption_status', 'redemption_reserve_rule',
    'compute_withdraw', 'compute_claim', 'compute_transfer', 'compute_approve',
    'compute_transfer_from', 'MakerRegistry', 'compute_mint_products',
    'calculate_gain_fees', 'split_harvest', 'compute_burn_products', 'compute_harvest',
    'compute_harvest_protocol_fee',
    # Facade
    'Fund', 'AutomatorFactory',
    # Events
    'Deposited', 'Withdrawn', 'RedemptionsClaimed', 'Transfer', 'Approval',
    'ProductsMinted', 'ProductsBurned', 'FeeCollected', 'AutomatorCreated',
    'FeeCollectorSet', 'ReferralSet',
]

__version__ = '1.0.0'
