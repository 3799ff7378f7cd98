"""
Smart Account Configuration

Explicit configuration passed to SmartAccountManager. The only place that
reads files or environment variables is load_config(); nothing downstream
inspects the process environment.

Config file layout (YAML, every key optional):

    rpc_url: https://ethereum-sepolia-rpc.publicnode.com
    chain_id: 11155111
    environment: production        # or 'test'
    min_balance_eth: "0.01"
    funding_buffer_eth: "0.001"
    salt: 0
    operation_timeout_ms: 30000
    factories:
      solady: "0x9fE4..."
      coinbase: "0x0BA5..."
    fees:
      fee_bump_gwei: 3
      priority_bump_percent: 20
      timeout_ms: 30000
    funding_fees:
      fee_bump_gwei: 1
      priority_bump_percent: 20
      timeout_ms: 60000

Environment overrides: PRIVATE_KEY, RPC_URL, SMART_ACCOUNT_ENV.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

import yaml
from dotenv import load_dotenv
from eth_account import Account
from loguru import logger
from web3 import AsyncWeb3

from .derivation import (
    DEFAULT_COINBASE_FACTORY,
    DEFAULT_SOLADY_FACTORY,
    CoinbaseAccountDeriver,
    SoladyAccountDeriver,
)
from .exceptions import ValidationError
from .fee_estimator import FeeOptions
from .funding import DEFAULT_FUNDING_BUFFER, DEFAULT_FUNDING_OPTIONS
from .utils import parse_ether

DEFAULT_RPC_URL = "https://ethereum-sepolia-rpc.publicnode.com"
DEFAULT_CHAIN_ID = 11155111  # Sepolia


class Environment(str, Enum):
    PRODUCTION = 'production'
    TEST = 'test'


@dataclass
class SmartAccountConfig:
    """Everything the manager needs, with documented defaults"""
    private_key: str
    rpc_url: str = DEFAULT_RPC_URL
    chain_id: int = DEFAULT_CHAIN_ID
    environment: Environment = Environment.PRODUCTION
    min_balance: int = parse_ether("0.01")
    funding_buffer: int = DEFAULT_FUNDING_BUFFER
    salt: int = 0
    solady_factory_address: str = DEFAULT_SOLADY_FACTORY
    coinbase_factory_address: str = DEFAULT_COINBASE_FACTORY
    fee_options: FeeOptions = field(default_factory=FeeOptions)
    funding_fee_options: FeeOptions = field(default_factory=lambda: DEFAULT_FUNDING_OPTIONS)
    operation_timeout_ms: int = 30000

    def __post_init__(self):
        if not self.private_key:
            raise ValidationError("private_key is required (set PRIVATE_KEY)")
        try:
            Account.from_key(self.private_key)
        except Exception as e:
            # Never echo the key itself
            raise ValidationError(f"private_key is not a valid secp256k1 key ({type(e).__name__})") from e
        if not isinstance(self.environment, Environment):
            self.environment = parse_environment(self.environment)
        if self.min_balance < 0:
            raise ValidationError(f"min_balance must be non-negative, got {self.min_balance}")
        if self.funding_buffer < 0:
            raise ValidationError(f"funding_buffer must be non-negative, got {self.funding_buffer}")
        if self.salt < 0:
            raise ValidationError(f"salt must be non-negative, got {self.salt}")
        if self.operation_timeout_ms <= 0:
            raise ValidationError(f"operation_timeout_ms must be positive, got {self.operation_timeout_ms}")

    def __repr__(self):
        # Never print the key
        return (f"SmartAccountConfig(env={self.environment.value}, rpc={self.rpc_url}, "
                f"chain_id={self.chain_id}, salt={self.salt})")


def parse_environment(value: Union[str, Environment, None]) -> Environment:
    if value is None or value == "":
        return Environment.PRODUCTION
    try:
        return Environment(str(value).lower())
    except ValueError:
        raise ValidationError(f"Unknown environment {value!r}, expected 'production' or 'test'")


def parse_salt(value: Union[int, str, None]) -> int:
    """Salts may be given as int or hex string ("0x1")"""
    if value is None or value == "":
        return 0
    if isinstance(value, int):
        return value
    try:
        return int(str(value), 0)
    except ValueError:
        raise ValidationError(f"Invalid salt: {value!r}")


def _fee_options(section: Optional[Mapping], defaults: FeeOptions) -> FeeOptions:
    if not section:
        return defaults
    return FeeOptions(
        fee_bump_units=int(section.get('fee_bump_gwei', defaults.fee_bump_units)),
        priority_bump_percent=int(section.get('priority_bump_percent', defaults.priority_bump_percent)),
        timeout_ms=int(section.get('timeout_ms', defaults.timeout_ms)),
    )


def _load_yaml(path: Path) -> Dict:
    if not path.exists():
        raise ValidationError(f"Config file not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValidationError(f"Config file {path} must contain a mapping")
    return data


def load_config(
    path: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
    dotenv: bool = True
) -> SmartAccountConfig:
    """
    Build a SmartAccountConfig from an optional YAML file plus environment overrides

    Args:
        path: YAML config file
        env: Environment mapping (defaults to os.environ after loading .env)
        dotenv: Load a .env file into the process environment first

    Returns:
        SmartAccountConfig
    """
    if env is None:
        if dotenv:
            load_dotenv()
        env = os.environ

    data = _load_yaml(Path(path)) if path else {}
    factories = data.get('factories') or {}

    try:
        config = SmartAccountConfig(
            private_key=env.get('PRIVATE_KEY') or data.get('private_key'),
            rpc_url=env.get('RPC_URL') or data.get('rpc_url', DEFAULT_RPC_URL),
            chain_id=int(data.get('chain_id', DEFAULT_CHAIN_ID)),
            environment=parse_environment(env.get('SMART_ACCOUNT_ENV') or data.get('environment')),
            min_balance=parse_ether(data.get('min_balance_eth', "0.01")),
            funding_buffer=parse_ether(data.get('funding_buffer_eth', "0.001")),
            salt=parse_salt(data.get('salt')),
            solady_factory_address=factories.get('solady', DEFAULT_SOLADY_FACTORY),
            coinbase_factory_address=factories.get('coinbase', DEFAULT_COINBASE_FACTORY),
            fee_options=_fee_options(data.get('fees'), FeeOptions()),
            funding_fee_options=_fee_options(data.get('funding_fees'), DEFAULT_FUNDING_OPTIONS),
            operation_timeout_ms=int(data.get('operation_timeout_ms', 30000)),
        )
    except (TypeError, ValueError, ArithmeticError) as e:
        raise ValidationError(f"Invalid configuration value: {e}") from e

    logger.info(f"Loaded configuration: {config!r}")
    return config


def build_deriver(config: SmartAccountConfig, w3: AsyncWeb3):
    """Pick the derivation strategy named by config.environment"""
    if config.environment is Environment.TEST:
        return SoladyAccountDeriver(w3, config.solady_factory_address)
    return CoinbaseAccountDeriver(w3, config.coinbase_factory_address)
