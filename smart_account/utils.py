"""Unit conversion and argument validation helpers."""

from decimal import Decimal
from typing import Union

from web3 import Web3

from .exceptions import ValidationError

Number = Union[int, float, str, Decimal]


def parse_ether(amount: Number) -> int:
    """Convert an ether amount (e.g. "0.01") to wei"""
    return int(Web3.to_wei(Decimal(str(amount)), 'ether'))


def parse_gwei(amount: Number) -> int:
    """Convert a gwei amount to wei"""
    return int(Web3.to_wei(Decimal(str(amount)), 'gwei'))


def format_ether(wei: int) -> str:
    """Render a wei amount as a decimal ether string"""
    return str(Web3.from_wei(wei, 'ether'))


def require_address(address: str, field: str = "address") -> str:
    """
    Fail fast on a missing or malformed hex address

    Returns:
        The checksummed address
    """
    if address is None or address == "":
        raise ValidationError(f"{field} is required")
    if not isinstance(address, str) or not Web3.is_address(address):
        raise ValidationError(f"{field} is not a valid address: {address!r}")
    return Web3.to_checksum_address(address)


def require_amount(value: int, field: str = "value") -> int:
    """Amounts are non-negative integers in wei"""
    if value is None:
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer amount in wei, got {type(value).__name__}")
    if value < 0:
        raise ValidationError(f"{field} must be non-negative, got {value}")
    return value
