from collections import defaultdict
from typing import Dict, List, Optional

import pytest
from loguru import logger
from web3 import Web3

from smart_account.derivation import SmartAccount
from smart_account.exceptions import TransportError
from smart_account.utils import parse_ether, parse_gwei

# Anvil default accounts #1 and #2
OWNER_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
OWNER_ADDRESS = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
OTHER_KEY = "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a"
OTHER_ADDRESS = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"

SMART_ACCOUNT_ADDRESS = "0x1234567890123456789012345678901234567890"
FACTORY_ADDRESS = "0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0"


class FakeChain:
    """In-memory node: balances, fee readings and transfers from the owner"""

    def __init__(
        self,
        balances: Optional[Dict[str, int]] = None,
        sender: str = OWNER_ADDRESS,
        base_fee: int = parse_gwei(20),
        gas_price: int = parse_gwei(21),
        gas_limit: int = 21000
    ):
        self.balances = defaultdict(int)
        for address, balance in (balances or {}).items():
            self.balances[Web3.to_checksum_address(address)] = balance

        self.sender = sender
        self.base_fee = base_fee
        self.gas_price = gas_price
        self.gas_limit = gas_limit

        self.fail_fee_reads = False
        self.fail_limit_estimate = False
        self.fail_submit = False
        self.fail_confirmation = False

        self.balance_reads: List[str] = []
        self.limit_requests: List[tuple] = []
        self.submitted: List[tuple] = []
        self.waits: List[tuple] = []
        self.pending: Dict[str, tuple] = {}
        self.closed = False

    def balance_of(self, address: str) -> int:
        return self.balances[Web3.to_checksum_address(address)]

    async def get_balance(self, address: str) -> int:
        self.balance_reads.append(address)
        return self.balance_of(address)

    async def get_base_fee(self) -> int:
        if self.fail_fee_reads:
            raise ConnectionError("price source unreachable")
        return self.base_fee

    async def get_network_fee_estimate(self) -> int:
        if self.fail_fee_reads:
            raise ConnectionError("price source unreachable")
        return self.gas_price

    async def estimate_limit(self, request, max_fee_per_gas, max_priority_fee_per_gas) -> int:
        self.limit_requests.append((request, max_fee_per_gas, max_priority_fee_per_gas))
        if self.fail_limit_estimate:
            raise ValueError("execution reverted")
        return self.gas_limit

    async def submit(self, request, schedule) -> str:
        if self.fail_submit:
            raise TransportError("Transaction submission failed: connection refused")
        tx_hash = "0x" + format(len(self.submitted) + 1, '064x')
        self.submitted.append((request, schedule))
        self.pending[tx_hash] = (request, schedule)
        return tx_hash

    async def wait_for_confirmation(self, tx_hash: str, timeout_ms: int):
        self.waits.append((tx_hash, timeout_ms))
        if self.fail_confirmation:
            raise TransportError(f"Confirmation timeout for {tx_hash}")

        request, schedule = self.pending.pop(tx_hash)
        gas_cost = schedule.gas_limit * self.base_fee
        self.balances[Web3.to_checksum_address(self.sender)] -= request.value + gas_cost
        self.balances[request.to] += request.value
        return {'status': 1, 'blockNumber': 100 + len(self.waits), 'transactionHash': tx_hash}

    async def close(self):
        self.closed = True


class FakeDeriver:
    factory_address = FACTORY_ADDRESS

    def __init__(self, address: str = SMART_ACCOUNT_ADDRESS, error: Optional[Exception] = None):
        self.address = address
        self.error = error
        self.calls: List[tuple] = []

    async def derive_account(self, owner_address: str, salt: int = 0) -> SmartAccount:
        self.calls.append((owner_address, salt))
        if self.error:
            raise self.error
        return SmartAccount(
            address=self.address,
            owner_address=owner_address,
            implementation='solady',
            salt=salt,
            factory_address=FACTORY_ADDRESS,
        )


class FakeBundler:
    """Operation submitter that records everything it is asked to do"""

    def __init__(self, estimate: Optional[dict] = None):
        self.estimate = estimate or {
            'call_gas_limit': 55000,
            'verification_gas_limit': 80000,
            'pre_verification_gas': 45000,
        }
        self.fail_estimate = False
        self.fail_submit = False
        self.estimated: List[tuple] = []
        self.submitted: List[tuple] = []
        self.waits: List[tuple] = []

    async def estimate_operation_limits(self, account, operation):
        self.estimated.append((account, operation))
        if self.fail_estimate:
            raise ConnectionError("bundler unreachable")
        return self.estimate

    async def submit_operation(self, account, operation, limits) -> str:
        if self.fail_submit:
            raise TransportError("bundler rejected user operation")
        self.submitted.append((account, operation, limits))
        return "0x" + format(len(self.submitted), '064x')

    async def wait_for_operation_receipt(self, user_op_hash: str, timeout_ms: int):
        self.waits.append((user_op_hash, timeout_ms))
        return {'success': True, 'receipt': {'blockNumber': 42}, 'userOpHash': user_op_hash}


@pytest.fixture
def chain():
    return FakeChain(balances={OWNER_ADDRESS: parse_ether(10)})


@pytest.fixture
def bundler():
    return FakeBundler()


@pytest.fixture
def log_messages():
    """Capture loguru output as a list of (level, message)"""
    messages = []
    handler_id = logger.add(
        lambda message: messages.append((message.record['level'].name, message.record['message'])),
        level="DEBUG"
    )
    yield messages
    logger.remove(handler_id)
