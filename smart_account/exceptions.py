"""
Smart Account Errors

Error taxonomy shared by the fee estimator, funding assurance and the
account manager.
"""

from typing import Optional

from web3 import Web3


class SmartAccountError(Exception):
    """Base class for smart account errors."""


class PreconditionError(SmartAccountError):
    """Raised when a method is invoked before the manager is ready."""


class ValidationError(SmartAccountError):
    """Raised for malformed addresses, amounts or missing arguments."""


class TransportError(SmartAccountError):
    """Raised when the network transport fails during a read, submission or wait."""


class EstimationError(SmartAccountError):
    """Fee or limit estimation failed. Never raised to callers, converted to a fallback."""


class InsufficientFundingError(SmartAccountError):
    """Raised when the funding source cannot cover the required top-up."""

    def __init__(
        self,
        required: int,
        available: int,
        funding_address: Optional[str] = None
    ):
        self.required = required
        self.available = available
        self.shortfall = max(required - available, 0)
        self.funding_address = funding_address

        source = f" ({funding_address})" if funding_address else ""
        super().__init__(
            f"Insufficient funding source balance{source} to fund smart account. "
            f"Need at least {Web3.from_wei(required, 'ether')} ETH, "
            f"have {Web3.from_wei(available, 'ether')} ETH "
            f"(shortfall: {Web3.from_wei(self.shortfall, 'ether')} ETH)"
        )
