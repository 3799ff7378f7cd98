"""
Funding Assurance

Guarantees a target address holds at least a minimum balance before a
dependent operation proceeds, topping it up from the funding source (the
owner EOA) without over-transferring.

Rules:
1. Target already at or above the minimum - no-op, no write of any kind
2. Otherwise transfer (minimum - current) + buffer
3. Funding source must cover the transfer plus one more buffer for its
   own fee, else InsufficientFundingError (never a partial transfer)
4. Funding transfers get a longer confirmation timeout (60s)
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from loguru import logger

from .exceptions import InsufficientFundingError, ValidationError
from .fee_estimator import FeeEstimator, FeeOptions, TransferRequest
from .interfaces import BalanceReader
from .utils import format_ether, parse_ether, require_address, require_amount

DEFAULT_FUNDING_BUFFER = parse_ether("0.001")

# Funding unblocks everything downstream, so it gets more time than ordinary operations
DEFAULT_FUNDING_OPTIONS = FeeOptions(fee_bump_units=1, priority_bump_percent=20, timeout_ms=60000)


class FundingStatus(str, Enum):
    NO_OP = 'no_op'
    TRANSFERRED = 'transferred'


@dataclass
class FundingDecision:
    """
    Outcome of a funding assurance check

    target_balance is the reading taken before any transfer; final_balance is
    the re-read after a top-up (fund_account only).
    """
    status: FundingStatus
    target_address: str
    target_balance: int
    amount: int = 0
    tx_hash: Optional[str] = None
    receipt: Any = None
    funding_balance: Optional[int] = None
    final_balance: Optional[int] = None

    @property
    def transferred(self) -> bool:
        return self.status is FundingStatus.TRANSFERRED

    def __repr__(self):
        if self.transferred:
            return f"FundingDecision(transferred {format_ether(self.amount)} ETH, tx={self.tx_hash})"
        return f"FundingDecision(no-op, balance={format_ether(self.target_balance)} ETH)"


class FundingAssurance:
    """
    Keep a paying address funded from a funding source

    Balance reads are snapshots; concurrent spending between the read and
    the dependent action is covered only by the buffer.
    """

    def __init__(
        self,
        balance_reader: BalanceReader,
        fee_estimator: FeeEstimator,
        funding_source_address: str,
        buffer: int = DEFAULT_FUNDING_BUFFER,
        funding_options: Optional[FeeOptions] = None
    ):
        """
        Initialize funding assurance

        Args:
            balance_reader: Reads native balances
            fee_estimator: Prices and executes the top-up transfer
            funding_source_address: Address the top-up is paid from
            buffer: Extra wei added on top of the shortfall
            funding_options: Fee options for top-up transfers
        """
        self.balance_reader = balance_reader
        self.fee_estimator = fee_estimator
        self.funding_source_address = require_address(funding_source_address, "funding_source_address")
        self.buffer = require_amount(buffer, "buffer")
        self.funding_options = funding_options or DEFAULT_FUNDING_OPTIONS

    async def check_balance(self, address: str) -> int:
        """Current balance of any address in wei; transport errors propagate"""
        if address is None or address == "":
            raise ValidationError("address is required")
        return await self.balance_reader.get_balance(address)

    def required_transfer(self, target_balance: int, min_balance: int) -> int:
        return (min_balance - target_balance) + self.buffer

    async def ensure_minimum_balance(self, target_address: str, min_balance: int) -> FundingDecision:
        """
        Top up target_address to at least min_balance if needed

        Args:
            target_address: Address that must hold min_balance
            min_balance: Minimum balance in wei

        Returns:
            FundingDecision (no-op or transferred)

        Raises:
            InsufficientFundingError: funding source cannot cover the top-up
        """
        target_address = require_address(target_address, "target_address")
        require_amount(min_balance, "min_balance")

        funding_balance, target_balance = await asyncio.gather(
            self.check_balance(self.funding_source_address),
            self.check_balance(target_address),
        )

        logger.info(f"Funding source balance: {format_ether(funding_balance)} ETH")
        logger.info(f"Smart Account balance: {format_ether(target_balance)} ETH")

        if target_balance >= min_balance:
            logger.info("✓ Smart Account has sufficient balance")
            return FundingDecision(
                status=FundingStatus.NO_OP,
                target_address=target_address,
                target_balance=target_balance,
                funding_balance=funding_balance,
            )

        required = self.required_transfer(target_balance, min_balance)
        needed_at_source = required + self.buffer

        if funding_balance < needed_at_source:
            error = InsufficientFundingError(
                required=needed_at_source,
                available=funding_balance,
                funding_address=self.funding_source_address,
            )
            logger.error(f"✗ {error}")
            raise error

        decision = await self._transfer(target_address, required, target_balance)
        decision.funding_balance = funding_balance
        return decision

    async def fund_account(self, target_address: str, min_balance: int) -> FundingDecision:
        """
        Top up without checking the funding source first

        A source that cannot pay surfaces as a transport error from the submission.
        """
        target_address = require_address(target_address, "target_address")
        require_amount(min_balance, "min_balance")

        current_balance = await self.check_balance(target_address)
        logger.info(f"Smart Account current balance: {format_ether(current_balance)} ETH")

        if current_balance >= min_balance:
            logger.info("✓ Smart Account has sufficient balance")
            return FundingDecision(
                status=FundingStatus.NO_OP,
                target_address=target_address,
                target_balance=current_balance,
            )

        decision = await self._transfer(
            target_address,
            self.required_transfer(current_balance, min_balance),
            current_balance
        )

        new_balance = await self.check_balance(target_address)
        logger.info(f"Smart Account new balance: {format_ether(new_balance)} ETH")
        decision.final_balance = new_balance
        return decision

    async def _transfer(self, target_address: str, amount: int, target_balance: int) -> FundingDecision:
        logger.info(f"Funding smart account with {format_ether(amount)} ETH...")

        outcome = await self.fee_estimator.execute_transfer_with_schedule(
            TransferRequest(to=target_address, value=amount),
            self.funding_options
        )

        logger.info(f"✓ Funding transaction confirmed: {outcome.tx_hash}")

        return FundingDecision(
            status=FundingStatus.TRANSFERRED,
            target_address=target_address,
            target_balance=target_balance,
            amount=amount,
            tx_hash=outcome.tx_hash,
            receipt=outcome.receipt,
        )
