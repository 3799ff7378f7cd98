"""
Smart Account Manager

Owns the lifecycle of one self-funded smart account:

1. initialize() - derive the account (once)
2. get_balances() - owner EOA vs smart account snapshot
3. ensure_funding() - top up the account from the owner EOA
4. submit_operation() - fund, estimate limits, submit, wait for receipt

The account pays its own gas; there is no paymaster.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Tuple

from eth_account import Account
from loguru import logger

from .config import SmartAccountConfig, build_deriver
from .derivation import SmartAccount
from .exceptions import PreconditionError, ValidationError
from .fee_estimator import FeeEstimator
from .funding import FundingAssurance, FundingDecision
from .interfaces import AccountDeriver, OperationSubmitter
from .utils import format_ether, parse_ether, require_address, require_amount
from .web3_transport import Web3Transport

FALLBACK_CALL_GAS_LIMIT = 100000
FALLBACK_VERIFICATION_GAS_LIMIT = 100000
FALLBACK_PRE_VERIFICATION_GAS = 21000

DEFAULT_SELF_TRANSFER = parse_ether("0.001")


class AccountState(str, Enum):
    UNINITIALIZED = 'uninitialized'
    READY = 'ready'


@dataclass(frozen=True)
class Call:
    """Single call executed by the smart account"""
    to: str
    value: int = 0
    data: Optional[bytes] = None

    def __post_init__(self):
        object.__setattr__(self, 'to', require_address(self.to, "to"))
        require_amount(self.value, "value")


@dataclass(frozen=True)
class Operation:
    """Ordered batch of calls executed atomically; built fresh per submission"""
    calls: Tuple[Call, ...]

    @classmethod
    def from_calls(cls, calls: Iterable) -> 'Operation':
        if calls is None:
            raise ValidationError("calls are required")

        built = []
        for call in calls:
            if isinstance(call, Call):
                built.append(Call(to=call.to, value=call.value, data=call.data))
            elif isinstance(call, Mapping):
                built.append(Call(to=call.get('to'), value=call.get('value', 0), data=call.get('data')))
            else:
                raise ValidationError(f"Unsupported call type: {type(call).__name__}")

        if not built:
            raise ValidationError("An operation needs at least one call")
        return cls(calls=tuple(built))

    @property
    def total_value(self) -> int:
        return sum(call.value for call in self.calls)


@dataclass(frozen=True)
class OperationLimits:
    """Gas limits for a user operation"""
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    is_fallback: bool = False

    @classmethod
    def from_estimate(cls, estimate: Mapping[str, int]) -> 'OperationLimits':
        return cls(
            call_gas_limit=int(estimate['call_gas_limit']),
            verification_gas_limit=int(estimate['verification_gas_limit']),
            pre_verification_gas=int(estimate['pre_verification_gas']),
            max_fee_per_gas=estimate.get('max_fee_per_gas'),
            max_priority_fee_per_gas=estimate.get('max_priority_fee_per_gas'),
        )

    @classmethod
    def fallback(cls) -> 'OperationLimits':
        return cls(
            call_gas_limit=FALLBACK_CALL_GAS_LIMIT,
            verification_gas_limit=FALLBACK_VERIFICATION_GAS_LIMIT,
            pre_verification_gas=FALLBACK_PRE_VERIFICATION_GAS,
            is_fallback=True,
        )


@dataclass(frozen=True)
class AccountBalance:
    address: str
    balance: int
    balance_formatted: str


@dataclass(frozen=True)
class BalanceSnapshot:
    """Owner EOA and smart account balances read together"""
    eoa: AccountBalance
    smart_account: AccountBalance


@dataclass
class OperationResult:
    user_op_hash: str
    receipt: Any
    limits: OperationLimits
    funding: Optional[FundingDecision] = field(default=None, repr=False)


class SmartAccountManager:
    """
    Self-funded smart account orchestrator

    States: UNINITIALIZED -> READY (via initialize()). Every balance, funding
    or submission method fails with PreconditionError before that.

    Concurrent submit_operation() calls against the same account are not
    serialized: funding checks and the account nonce would race. Issue
    operations for one account sequentially.
    """

    def __init__(
        self,
        config: SmartAccountConfig,
        transport: Optional[Web3Transport] = None,
        deriver: Optional[AccountDeriver] = None,
        operation_submitter: Optional[OperationSubmitter] = None
    ):
        """
        Initialize manager (no network calls)

        Args:
            config: Explicit configuration (owner key, endpoints, thresholds)
            transport: Balance/fee/transfer transport; built from config.rpc_url if omitted
            deriver: Account derivation strategy; selected from config.environment if omitted
            operation_submitter: Bundler transport for user operations
        """
        self.config = config
        self._owner = Account.from_key(config.private_key)
        self.owner_address = self._owner.address

        self.transport = transport or Web3Transport(config.rpc_url, self._owner, chain_id=config.chain_id)
        self.deriver = deriver or build_deriver(config, self.transport.w3)
        self.operation_submitter = operation_submitter

        self.fee_estimator = FeeEstimator(
            fee_reader=self.transport,
            limit_estimator=self.transport,
            submitter=self.transport,
            default_options=config.fee_options,
        )
        self.funding = FundingAssurance(
            balance_reader=self.transport,
            fee_estimator=self.fee_estimator,
            funding_source_address=self.owner_address,
            buffer=config.funding_buffer,
            funding_options=config.funding_fee_options,
        )

        self.account: Optional[SmartAccount] = None
        self.state = AccountState.UNINITIALIZED

        logger.info("Smart Account Manager initialized")
        logger.info(f"  Environment: {config.environment.value}")
        logger.info(f"  Owner: {self.owner_address}")
        logger.info(f"  Min balance: {format_ether(config.min_balance)} ETH")

    def _require_ready(self) -> SmartAccount:
        if self.state is not AccountState.READY or self.account is None:
            raise PreconditionError("Account not initialized. Call initialize() first.")
        return self.account

    async def initialize(self) -> SmartAccount:
        """Derive the smart account; subsequent calls return the same account"""
        if self.state is AccountState.READY:
            return self.account

        try:
            account = await self.deriver.derive_account(self.owner_address, self.config.salt)
        except Exception as e:
            logger.error("❌ Smart account initialization failed")
            logger.error(f"  Environment: {self.config.environment.value}")
            logger.error(f"  Owner address: {self.owner_address}")
            logger.error(f"  Factory address: {getattr(self.deriver, 'factory_address', 'n/a')}")
            logger.error(f"  Salt: {hex(self.config.salt)}")
            logger.error(f"  Error: {e}")
            raise

        self.account = account
        self.state = AccountState.READY

        logger.info(f"✓ Smart Account initialized: {account.address}")
        return account

    async def check_balance(self, address: str) -> int:
        self._require_ready()
        return await self.funding.check_balance(address)

    async def get_balances(self) -> BalanceSnapshot:
        account = self._require_ready()

        eoa_balance = await self.funding.check_balance(self.owner_address)
        smart_account_balance = await self.funding.check_balance(account.address)

        return BalanceSnapshot(
            eoa=AccountBalance(
                address=self.owner_address,
                balance=eoa_balance,
                balance_formatted=format_ether(eoa_balance),
            ),
            smart_account=AccountBalance(
                address=account.address,
                balance=smart_account_balance,
                balance_formatted=format_ether(smart_account_balance),
            ),
        )

    async def display_balances(self) -> BalanceSnapshot:
        balances = await self.get_balances()

        logger.info(f"EOA Account Address: {balances.eoa.address}")
        logger.info(f"EOA Balance: {balances.eoa.balance} wei ({balances.eoa.balance_formatted} ETH)")
        logger.info(f"Smart Account Address: {balances.smart_account.address}")
        logger.info(
            f"Smart Account Balance: {balances.smart_account.balance} wei "
            f"({balances.smart_account.balance_formatted} ETH)"
        )

        return balances

    async def ensure_funding(self) -> FundingDecision:
        account = self._require_ready()
        return await self.funding.ensure_minimum_balance(account.address, self.config.min_balance)

    async def _estimate_limits(self, account: SmartAccount, operation: Operation) -> OperationLimits:
        try:
            estimate = await self.operation_submitter.estimate_operation_limits(account, operation)
            limits = OperationLimits.from_estimate(estimate)
            logger.info(
                f"Gas estimate - Call: {limits.call_gas_limit}, "
                f"Verification: {limits.verification_gas_limit}, "
                f"PreVerification: {limits.pre_verification_gas}"
            )
            return limits
        except Exception as e:
            logger.warning(f"Gas estimation failed, using fallback values: {e}")
            return OperationLimits.fallback()

    async def submit_operation(self, calls: Iterable) -> OperationResult:
        """
        Fund (if needed), estimate and submit a user operation, then wait for its receipt

        Args:
            calls: Iterable of Call or {'to', 'value', 'data'} mappings

        Returns:
            OperationResult with user operation hash and receipt
        """
        account = self._require_ready()
        if self.operation_submitter is None:
            raise PreconditionError("No operation submitter configured. Pass operation_submitter to the manager.")

        funding = await self.ensure_funding()

        operation = Operation.from_calls(calls)
        logger.info(f"Sending user operation ({len(operation.calls)} call(s))...")

        limits = await self._estimate_limits(account, operation)

        user_op_hash = await self.operation_submitter.submit_operation(account, operation, limits)
        logger.info(f"User Operation hash: {user_op_hash}")

        receipt = await self.operation_submitter.wait_for_operation_receipt(
            user_op_hash,
            self.config.operation_timeout_ms
        )
        logger.info(f"✓ User Operation confirmed: {user_op_hash}")

        return OperationResult(user_op_hash=user_op_hash, receipt=receipt, limits=limits, funding=funding)

    async def send_to_self(self, amount: int = DEFAULT_SELF_TRANSFER) -> OperationResult:
        """Send value from the smart account back to the owner EOA"""
        self._require_ready()
        return await self.submit_operation([Call(to=self.owner_address, value=amount)])

    async def send_to(self, destination: str, amount: int) -> OperationResult:
        self._require_ready()
        return await self.submit_operation([Call(to=destination, value=amount)])

    async def close(self):
        await self.transport.close()
