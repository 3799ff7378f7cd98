"""
Web3 Transport

EOA-side network access on top of web3's AsyncWeb3:
- balance reads
- base fee / gas price reads
- gas limit estimation
- signing (locally, with the owner key) and sending EIP-1559 transfers
- waiting for receipts with a timeout

Every web3/RPC failure is re-raised as TransportError with the original
exception chained as its cause. A confirmation timeout does not cancel
the transaction; it may still be mined later.
"""

from typing import Any, Awaitable, Optional

from eth_account.signers.local import LocalAccount
from loguru import logger
from web3 import AsyncWeb3, Web3
from web3.exceptions import TimeExhausted

from .exceptions import TransportError
from .fee_estimator import FeeSchedule, TransferRequest
from .utils import require_address


class Web3Transport:
    """
    Async JSON-RPC transport for the owner EOA

    Implements BalanceReader, FeeReader, LimitEstimator and TransferSubmitter.
    """

    RECEIPT_POLL_SECONDS = 1.0

    def __init__(
        self,
        rpc_url: str,
        owner: LocalAccount,
        chain_id: Optional[int] = None,
        w3: Optional[AsyncWeb3] = None
    ):
        """
        Initialize transport

        Args:
            rpc_url: JSON-RPC endpoint
            owner: Local signer paying for transfers
            chain_id: Chain id for signing (fetched from the node when None)
            w3: Pre-built AsyncWeb3 instance (tests)
        """
        self.rpc_url = rpc_url
        self.owner = owner
        self.chain_id = chain_id
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))

    async def _rpc(self, description: str, awaitable: Awaitable) -> Any:
        try:
            return await awaitable
        except TransportError:
            raise
        except Exception as e:
            logger.error(f"✗ {description} failed: {str(e)[:300]}")
            raise TransportError(f"{description} failed: {e}") from e

    async def get_balance(self, address: str) -> int:
        address = require_address(address)
        balance = await self._rpc(f"Balance read for {address}", self.w3.eth.get_balance(address))
        return int(balance)

    async def get_base_fee(self) -> int:
        block = await self._rpc("Latest block read", self.w3.eth.get_block('latest'))
        base_fee = block.get('baseFeePerGas')
        if base_fee is None:
            raise TransportError("Latest block has no baseFeePerGas (pre-London network?)")
        return int(base_fee)

    async def get_network_fee_estimate(self) -> int:
        return int(await self._rpc("Gas price read", self.w3.eth.gas_price))

    async def estimate_limit(
        self,
        request: TransferRequest,
        max_fee_per_gas: int,
        max_priority_fee_per_gas: int
    ) -> int:
        tx = {
            'from': self.owner.address,
            **request.to_tx_params(),
            'maxFeePerGas': max_fee_per_gas,
            'maxPriorityFeePerGas': max_priority_fee_per_gas,
        }
        return int(await self._rpc("Gas estimation", self.w3.eth.estimate_gas(tx)))

    async def submit(self, request: TransferRequest, schedule: FeeSchedule) -> str:
        """Sign and broadcast a transfer; returns the 0x-prefixed transaction hash"""
        if self.chain_id is None:
            self.chain_id = int(await self._rpc("Chain id read", self.w3.eth.chain_id))

        nonce = await self._rpc(
            "Nonce read",
            self.w3.eth.get_transaction_count(self.owner.address, 'pending')
        )

        tx = {
            **request.to_tx_params(),
            'type': 2,
            'chainId': self.chain_id,
            'nonce': nonce,
            'gas': schedule.gas_limit,
            'maxFeePerGas': schedule.max_fee_per_gas,
            'maxPriorityFeePerGas': schedule.max_priority_fee_per_gas,
        }

        signed = self.owner.sign_transaction(tx)
        tx_hash = await self._rpc("Transaction submission", self.w3.eth.send_raw_transaction(signed.raw_transaction))
        return Web3.to_hex(tx_hash)

    async def wait_for_confirmation(self, tx_hash: str, timeout_ms: int) -> Any:
        timeout = timeout_ms / 1000
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=timeout,
                poll_latency=self.RECEIPT_POLL_SECONDS
            )
        except TimeExhausted as e:
            logger.warning(f"⚠ Confirmation timeout for {tx_hash} after {timeout:.0f}s (may still be mined)")
            raise TransportError(f"Confirmation timeout for {tx_hash} after {timeout:.0f}s") from e
        except Exception as e:
            raise TransportError(f"Waiting for {tx_hash} failed: {e}") from e

        if receipt.get('status') == 0:
            raise TransportError(f"Transaction {tx_hash} reverted in block {receipt.get('blockNumber')}")

        logger.info(f"Transaction {tx_hash} confirmed in block {receipt.get('blockNumber')}")
        return receipt

    async def close(self):
        """Close the provider's HTTP session"""
        provider = self.w3.provider
        if hasattr(provider, 'disconnect'):
            try:
                await provider.disconnect()
                logger.debug("✓ Closed RPC connection")
            except Exception as e:
                logger.debug(f"Error closing RPC connection: {e}")
