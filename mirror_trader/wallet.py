"""Follower wallet: signer address and on-chain USDC balance."""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Optional

from eth_account import Account
from web3 import Web3

from .errors import NetworkError
from .retry import RetryConfig, retry_with_backoff

log = logging.getLogger(__name__)

USDC_POLYGON = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"
USDC_DECIMALS = 6

ERC20_BALANCE_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    }
]


def signer_address(private_key: str) -> str:
    return str(Account.from_key(private_key).address).strip().lower()


def _create_provider(rpc_url: str, timeout_seconds: float) -> Any:
    if rpc_url.startswith(("ws://", "wss://")):
        ws_provider = getattr(Web3, "LegacyWebSocketProvider", None) or Web3.WebsocketProvider
        return ws_provider(rpc_url)
    return Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": max(1.0, float(timeout_seconds))})


class UsdcBalanceReader:
    """Reads the proxy wallet's USDC balance through an RPC node.

    web3 is blocking, so the read runs in a worker thread. The connection
    is created on first use.
    """

    def __init__(
        self,
        rpc_url: str,
        wallet: str,
        *,
        usdc_address: str = USDC_POLYGON,
        timeout_seconds: float = 10.0,
        retry: RetryConfig = RetryConfig(),
    ) -> None:
        self.rpc_url = rpc_url
        self.wallet = wallet
        self.usdc_address = usdc_address
        self.timeout_seconds = timeout_seconds
        self.retry = retry
        self._w3: Optional[Web3] = None
        self._contract: Any = None
        self._lock = threading.Lock()

    def _get_contract(self) -> Any:
        with self._lock:
            if self._contract is None:
                self._w3 = Web3(_create_provider(self.rpc_url, self.timeout_seconds))
                self._contract = self._w3.eth.contract(
                    address=Web3.to_checksum_address(self.usdc_address),
                    abi=ERC20_BALANCE_ABI,
                )
            return self._contract

    def _read_balance(self) -> float:
        contract = self._get_contract()
        raw = contract.functions.balanceOf(Web3.to_checksum_address(self.wallet)).call()
        return int(raw) / 10**USDC_DECIMALS

    async def _read_once(self) -> float:
        try:
            return await asyncio.to_thread(self._read_balance)
        except Exception as exc:
            raise NetworkError(f"usdc balance read failed: {exc}", retryable=True, url=self.rpc_url) from exc

    async def balance(self) -> float:
        value = await retry_with_backoff(self._read_once, self.retry, name="usdc balance")
        log.debug("follower balance wallet=%s usdc=%.6f", self.wallet, value)
        return value
