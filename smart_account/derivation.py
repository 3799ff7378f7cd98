"""
Smart Account Derivation

Counterfactual smart account addresses derived from an owner address and a
salt by asking the account factory. Two strategies, selected explicitly:

- SoladyAccountDeriver: test chains (local Anvil deployment of the Solady
  ERC4337 factory)
- CoinbaseAccountDeriver: production (Coinbase Smart Wallet factory v1.1)
"""

from dataclasses import dataclass
from typing import Optional

from loguru import logger
from web3 import AsyncWeb3, Web3

from .exceptions import TransportError
from .utils import require_address

SOLADY_FACTORY_ABI = [
    {
        'type': 'function',
        'name': 'getAddress',
        'stateMutability': 'view',
        'inputs': [{'name': 'salt', 'type': 'bytes32'}],
        'outputs': [{'name': '', 'type': 'address'}],
    },
]

COINBASE_FACTORY_ABI = [
    {
        'type': 'function',
        'name': 'getAddress',
        'stateMutability': 'view',
        'inputs': [
            {'name': 'owners', 'type': 'bytes[]'},
            {'name': 'nonce', 'type': 'uint256'},
        ],
        'outputs': [{'name': '', 'type': 'address'}],
    },
]

DEFAULT_SOLADY_FACTORY = "0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0"
DEFAULT_COINBASE_FACTORY = "0x0BA5ED0c6AA8c49038F819E587E2633c4A9F428a"


@dataclass(frozen=True)
class SmartAccount:
    """Derived smart account; immutable once initialized"""
    address: str
    owner_address: str
    implementation: str  # 'solady' or 'coinbase'
    salt: int
    factory_address: str
    version: Optional[str] = None

    def __repr__(self):
        return f"SmartAccount({self.implementation}: {self.address})"


def salt_to_bytes32(salt: int) -> bytes:
    if salt < 0:
        raise ValueError(f"salt must be non-negative, got {salt}")
    return salt.to_bytes(32, 'big')


def encode_owner(owner_address: str) -> bytes:
    """Owners are passed to the Coinbase factory as abi.encode(address)"""
    return Web3.to_bytes(hexstr=owner_address).rjust(32, b'\0')


async def call_factory(factory_address: str, contract_call) -> str:
    """Run a factory getAddress view; RPC failures become TransportError"""
    try:
        return await contract_call.call()
    except Exception as e:
        logger.error(f"✗ Factory getAddress on {factory_address} failed: {str(e)[:300]}")
        raise TransportError(f"Factory getAddress on {factory_address} failed: {e}") from e


class SoladyAccountDeriver:
    """Derive accounts from a Solady ERC4337 factory deployed on a test chain"""

    implementation = 'solady'

    def __init__(self, w3: AsyncWeb3, factory_address: str = DEFAULT_SOLADY_FACTORY):
        self.w3 = w3
        self.factory_address = require_address(factory_address, "factory_address")
        self.factory = w3.eth.contract(address=self.factory_address, abi=SOLADY_FACTORY_ABI)

    async def derive_account(self, owner_address: str, salt: int = 0) -> SmartAccount:
        owner_address = require_address(owner_address, "owner_address")
        logger.info(f"Initializing Solady smart account with factory: {self.factory_address}")
        logger.info(f"Salt: {hex(salt)}")

        address = await call_factory(
            self.factory_address,
            self.factory.functions.getAddress(salt_to_bytes32(salt))
        )

        return SmartAccount(
            address=Web3.to_checksum_address(address),
            owner_address=owner_address,
            implementation=self.implementation,
            salt=salt,
            factory_address=self.factory_address,
        )


class CoinbaseAccountDeriver:
    """Derive accounts from the Coinbase Smart Wallet factory"""

    implementation = 'coinbase'
    version = '1.1'

    def __init__(self, w3: AsyncWeb3, factory_address: str = DEFAULT_COINBASE_FACTORY):
        self.w3 = w3
        self.factory_address = require_address(factory_address, "factory_address")
        self.factory = w3.eth.contract(address=self.factory_address, abi=COINBASE_FACTORY_ABI)

    async def derive_account(self, owner_address: str, salt: int = 0) -> SmartAccount:
        owner_address = require_address(owner_address, "owner_address")
        logger.info(f"Initializing Coinbase smart account (v{self.version}) for production")

        address = await call_factory(
            self.factory_address,
            self.factory.functions.getAddress([encode_owner(owner_address)], salt)
        )

        return SmartAccount(
            address=Web3.to_checksum_address(address),
            owner_address=owner_address,
            implementation=self.implementation,
            salt=salt,
            factory_address=self.factory_address,
            version=self.version,
        )
