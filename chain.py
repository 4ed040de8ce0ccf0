"""
Read access to the target chain through web3
"""

import logging
from typing import Any, Callable, List

import requests
from eth_abi import decode, encode
from web3 import Web3
from web3.exceptions import Web3Exception

from exceptions import NetworkError, RemoteTimeoutError
from rpc import run_blocking

logger = logging.getLogger(__name__)

# Function selector for getNonce(address,uint192)
GET_NONCE_SELECTOR = bytes(Web3.keccak(text="getNonce(address,uint192)")[:4])


class ChainClient:
    """Async facade over a web3 HTTP provider"""

    def __init__(self, rpc_url: str, timeout: float = 30, web3: Web3 = None):
        self.rpc_url = rpc_url
        self.web3 = web3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={'timeout': timeout}))

    async def _run(self, fn: Callable, *args) -> Any:
        try:
            return await run_blocking(fn, *args)
        except requests.Timeout as e:
            raise RemoteTimeoutError(f"Chain RPC {self.rpc_url} timed out") from e
        except (requests.RequestException, Web3Exception) as e:
            raise NetworkError(f"Chain RPC {self.rpc_url} failed: {e}") from e

    async def get_chain_id(self) -> int:
        return await self._run(lambda: self.web3.eth.chain_id)

    async def get_balance(self, address: str) -> int:
        return await self._run(self.web3.eth.get_balance, Web3.to_checksum_address(address))

    async def get_code(self, address: str) -> bytes:
        return bytes(await self._run(self.web3.eth.get_code, Web3.to_checksum_address(address)))

    async def is_deployed(self, address: str) -> bool:
        return len(await self.get_code(address)) > 0

    async def call(self, to: str, data: bytes) -> bytes:
        """Execute a read-only eth_call and return the raw result"""
        tx = {"to": Web3.to_checksum_address(to), "data": "0x" + bytes(data).hex()}
        return bytes(await self._run(self.web3.eth.call, tx))

    async def get_nonce(self, entry_point_address: str, sender: str, key: int = 0) -> int:
        """Get current nonce for a smart account from the EntryPoint"""
        data = GET_NONCE_SELECTOR + encode(['address', 'uint192'], [Web3.to_checksum_address(sender), key])
        (nonce,) = decode(['uint256'], await self.call(entry_point_address, data))
        logger.info(f"Current nonce: {nonce}")
        return nonce

    async def make_request(self, method: str, params: List) -> Any:
        """Send a raw JSON-RPC request through the provider"""
        response = await self._run(self.web3.provider.make_request, method, params)
        if response.get("error"):
            raise NetworkError(f"{method} failed: {response['error']}")
        return response.get("result")
