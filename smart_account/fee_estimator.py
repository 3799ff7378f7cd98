"""
Fee Estimator

Builds EIP-1559 fee schedules with an explicit safety margin over the
observed network price and executes transfers with them.

Fallback policy:
- Any failure while reading the base fee or estimating the gas limit
  yields a fixed, generous fallback schedule (21000 gas, 10 gwei max fee,
  2 gwei priority fee) with the caller's timeout preserved
- The fallback is logged at warning level and never raised
- Submission and confirmation errors are NOT absorbed; they propagate
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from loguru import logger

from .exceptions import EstimationError, ValidationError
from .interfaces import FeeReader, LimitEstimator, TransferSubmitter
from .utils import parse_gwei, require_address, require_amount


@dataclass(frozen=True)
class TransferRequest:
    """Native value transfer to a single destination"""
    to: str
    value: int
    data: Optional[bytes] = None

    def __post_init__(self):
        object.__setattr__(self, 'to', require_address(self.to, "to"))
        require_amount(self.value, "value")

    def to_tx_params(self) -> dict:
        params = {'to': self.to, 'value': self.value}
        if self.data:
            params['data'] = self.data
        return params


@dataclass(frozen=True)
class FeeOptions:
    """Safety margins applied over the observed network price"""
    fee_bump_units: int = 3  # gwei added to max fee per gas
    priority_bump_percent: int = 20  # % added to the baseline priority fee
    timeout_ms: int = 30000

    def __post_init__(self):
        if self.fee_bump_units < 0:
            raise ValidationError(f"fee_bump_units must be non-negative, got {self.fee_bump_units}")
        if self.priority_bump_percent < 0:
            raise ValidationError(
                f"priority_bump_percent must be non-negative, got {self.priority_bump_percent}"
            )
        if self.timeout_ms <= 0:
            raise ValidationError(f"timeout_ms must be positive, got {self.timeout_ms}")


@dataclass(frozen=True)
class FeeSchedule:
    """Gas limit and price parameters attached to one submission"""
    gas_limit: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    timeout_ms: int
    is_fallback: bool = False

    def __repr__(self):
        source = "fallback" if self.is_fallback else "live"
        return (f"FeeSchedule(limit={self.gas_limit}, max_fee={self.max_fee_per_gas} wei, "
                f"priority={self.max_priority_fee_per_gas} wei, {source})")


@dataclass
class EstimateResult:
    """Outcome of the live estimation step: either a schedule or an error"""
    schedule: Optional[FeeSchedule] = None
    error: Optional[EstimationError] = None

    @property
    def ok(self) -> bool:
        return self.schedule is not None


@dataclass
class TransferOutcome:
    """Confirmed transfer"""
    tx_hash: str
    receipt: Any
    schedule: FeeSchedule = field(repr=False)


# Typical priority pricing on mainnet-like networks
BASELINE_PRIORITY_FEE = parse_gwei(1)

FALLBACK_GAS_LIMIT = 21000  # plain value transfer
FALLBACK_MAX_FEE_PER_GAS = parse_gwei(10)
FALLBACK_MAX_PRIORITY_FEE_PER_GAS = parse_gwei(2)


def bump_priority_fee(baseline: int, priority_bump_percent: int) -> int:
    return baseline + (baseline * priority_bump_percent) // 100


def compute_max_fee(base_fee: int, priority_fee: int, fee_bump_units: int) -> int:
    """max fee = base fee + priority fee + bump (bump given in gwei)"""
    return base_fee + priority_fee + parse_gwei(fee_bump_units)


def fallback_fee_schedule(timeout_ms: int) -> FeeSchedule:
    """Fixed conservative schedule used whenever live estimation fails"""
    return FeeSchedule(
        gas_limit=FALLBACK_GAS_LIMIT,
        max_fee_per_gas=FALLBACK_MAX_FEE_PER_GAS,
        max_priority_fee_per_gas=FALLBACK_MAX_PRIORITY_FEE_PER_GAS,
        timeout_ms=timeout_ms,
        is_fallback=True,
    )


class FeeEstimator:
    """
    Estimate fee schedules and execute transfers with them

    Features:
    - Base fee + bumped priority fee + additive max fee margin
    - Live gas limit estimation for the exact transfer
    - Deterministic fallback schedule on any estimation failure
    """

    def __init__(
        self,
        fee_reader: FeeReader,
        limit_estimator: LimitEstimator,
        submitter: TransferSubmitter,
        default_options: Optional[FeeOptions] = None
    ):
        """
        Initialize fee estimator

        Args:
            fee_reader: Source of base fee and network gas price
            limit_estimator: Gas limit estimation for a transfer
            submitter: Signs, sends and confirms transfers
            default_options: Options used when a call passes none
        """
        self.fee_reader = fee_reader
        self.limit_estimator = limit_estimator
        self.submitter = submitter
        self.default_options = default_options or FeeOptions()

    async def _estimate_live(self, request: TransferRequest, options: FeeOptions) -> EstimateResult:
        """Live estimation step; failures are returned, not raised"""
        try:
            base_fee = await self.fee_reader.get_base_fee()
            network_fee = await self.fee_reader.get_network_fee_estimate()
            logger.debug(f"Network gas price: {network_fee} wei, base fee: {base_fee} wei")

            if base_fee is None or base_fee < 0:
                raise EstimationError(f"Invalid base fee reading: {base_fee!r}")

            priority_fee = bump_priority_fee(BASELINE_PRIORITY_FEE, options.priority_bump_percent)
            max_fee = compute_max_fee(base_fee, priority_fee, options.fee_bump_units)

            gas_limit = await self.limit_estimator.estimate_limit(request, max_fee, priority_fee)

            return EstimateResult(schedule=FeeSchedule(
                gas_limit=gas_limit,
                max_fee_per_gas=max_fee,
                max_priority_fee_per_gas=priority_fee,
                timeout_ms=options.timeout_ms,
            ))

        except EstimationError as e:
            return EstimateResult(error=e)
        except Exception as e:
            error = EstimationError(str(e) or type(e).__name__)
            error.__cause__ = e
            return EstimateResult(error=error)

    async def estimate_fee_schedule(
        self,
        request: TransferRequest,
        options: Optional[FeeOptions] = None
    ) -> FeeSchedule:
        """
        Compute a fee schedule for a transfer

        Args:
            request: Transfer to price
            options: Bump and timeout options

        Returns:
            Live FeeSchedule, or the fixed fallback schedule if estimation failed
        """
        if request is None:
            raise ValidationError("transfer request is required")

        options = options or self.default_options
        result = await self._estimate_live(request, options)

        if result.ok:
            return result.schedule

        logger.warning(f"Gas estimation failed, using fallback values: {result.error}")
        return fallback_fee_schedule(options.timeout_ms)

    async def execute_transfer_with_schedule(
        self,
        request: TransferRequest,
        options: Optional[FeeOptions] = None
    ) -> TransferOutcome:
        """
        Estimate, submit and wait for confirmation

        Transport errors (including confirmation timeout) propagate unchanged.

        Args:
            request: Transfer to execute
            options: Bump and timeout options

        Returns:
            TransferOutcome with transaction hash and receipt
        """
        schedule = await self.estimate_fee_schedule(request, options)

        logger.info(
            f"Gas settings - Limit: {schedule.gas_limit}, Max Fee: {schedule.max_fee_per_gas} wei, "
            f"Priority: {schedule.max_priority_fee_per_gas} wei"
        )

        tx_hash = await self.submitter.submit(request, schedule)
        logger.info(f"Transaction hash: {tx_hash}")

        receipt = await self.submitter.wait_for_confirmation(tx_hash, schedule.timeout_ms)
        logger.info(f"✓ Transaction confirmed: {tx_hash}")

        return TransferOutcome(tx_hash=tx_hash, receipt=receipt, schedule=schedule)

