"""
Self-Funded Smart Account

Fee-adaptive, self-funding transaction lifecycle for a smart account that
pays its own gas.

Components:
- fee_estimator: EIP-1559 fee schedules with safety margins and fallback
- funding: Keeps the smart account topped up from the owner EOA
- manager: Account lifecycle (initialize, balances, operation submission)
- derivation: Test-chain (Solady) and production (Coinbase) account derivation
- web3_transport: AsyncWeb3-backed balance, fee and transfer transport
- config: Explicit configuration (YAML + environment at the edge)

Flow:
    SmartAccountManager -> FundingAssurance -> FeeEstimator -> transport
"""

from .config import (
    Environment,
    SmartAccountConfig,
    build_deriver,
    load_config,
)
from .derivation import (
    CoinbaseAccountDeriver,
    SmartAccount,
    SoladyAccountDeriver,
)
from .exceptions import (
    EstimationError,
    InsufficientFundingError,
    PreconditionError,
    SmartAccountError,
    TransportError,
    ValidationError,
)
from .fee_estimator import (
    FeeEstimator,
    FeeOptions,
    FeeSchedule,
    TransferOutcome,
    TransferRequest,
    fallback_fee_schedule,
)
from .funding import (
    FundingAssurance,
    FundingDecision,
    FundingStatus,
)
from .manager import (
    AccountBalance,
    AccountState,
    BalanceSnapshot,
    Call,
    Operation,
    OperationLimits,
    OperationResult,
    SmartAccountManager,
)
from .web3_transport import Web3Transport

__all__ = [
    # Orchestrator
    'SmartAccountManager',
    'AccountState',
    'AccountBalance',
    'BalanceSnapshot',
    'Call',
    'Operation',
    'OperationLimits',
    'OperationResult',

    # Funding
    'FundingAssurance',
    'FundingDecision',
    'FundingStatus',

    # Fees
    'FeeEstimator',
    'FeeOptions',
    'FeeSchedule',
    'TransferOutcome',
    'TransferRequest',
    'fallback_fee_schedule',

    # Accounts
    'SmartAccount',
    'SoladyAccountDeriver',
    'CoinbaseAccountDeriver',

    # Transport and configuration
    'Web3Transport',
    'SmartAccountConfig',
    'Environment',
    'load_config',
    'build_deriver',

    # Errors
    'SmartAccountError',
    'PreconditionError',
    'InsufficientFundingError',
    'EstimationError',
    'TransportError',
    'ValidationError',
]

__version__ = '1.0.0'
__author__ = 'Smart Account Funding'
__description__ = 'Self-funded smart account with fee-adaptive top-ups'
