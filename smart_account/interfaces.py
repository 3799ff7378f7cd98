"""
Collaborator Interfaces

Structural types for the network-facing collaborators the core depends on.
Web3Transport implements the first four; the operation submitter (bundler
transport, including user operation encoding and signing) is supplied by
the caller.
"""

from typing import Any, Mapping, Protocol, TYPE_CHECKING, runtime_checkable

if TYPE_CHECKING:
    from .derivation import SmartAccount
    from .fee_estimator import FeeSchedule, TransferRequest
    from .manager import Operation, OperationLimits


@runtime_checkable
class BalanceReader(Protocol):
    async def get_balance(self, address: str) -> int: ...


@runtime_checkable
class FeeReader(Protocol):
    async def get_base_fee(self) -> int: ...

    async def get_network_fee_estimate(self) -> int: ...


@runtime_checkable
class LimitEstimator(Protocol):
    async def estimate_limit(
        self,
        request: 'TransferRequest',
        max_fee_per_gas: int,
        max_priority_fee_per_gas: int
    ) -> int: ...


@runtime_checkable
class TransferSubmitter(Protocol):
    async def submit(self, request: 'TransferRequest', schedule: 'FeeSchedule') -> str: ...

    async def wait_for_confirmation(self, tx_hash: str, timeout_ms: int) -> Any: ...


@runtime_checkable
class OperationSubmitter(Protocol):
    """Account-abstraction transport (bundler)"""

    async def estimate_operation_limits(
        self,
        account: 'SmartAccount',
        operation: 'Operation'
    ) -> Mapping[str, int]: ...

    async def submit_operation(
        self,
        account: 'SmartAccount',
        operation: 'Operation',
        limits: 'OperationLimits'
    ) -> str: ...

    async def wait_for_operation_receipt(self, user_op_hash: str, timeout_ms: int) -> Any: ...


@runtime_checkable
class AccountDeriver(Protocol):
    async def derive_account(self, owner_address: str, salt: int) -> 'SmartAccount': ...
