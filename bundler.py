"""
ERC-4337 bundler client (Pimlico / Alto)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from exceptions import BundlerRejection, RemoteTimeoutError
from rpc import JsonRpcClient
from user_operations import UserOperation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserOperationReceipt:
    """Inclusion result of a user operation"""
    user_operation_hash: str
    success: bool
    transaction_hash: Optional[str]
    block_number: Optional[int]


class BundlerClient:
    """Client for interacting with ERC-4337 bundlers"""

    def __init__(self, bundler_url: str, timeout: float = 30, rpc: JsonRpcClient = None):
        self.rpc = rpc or JsonRpcClient(bundler_url, timeout=timeout, rejection=BundlerRejection)

    async def send_user_operation(self, user_operation: UserOperation, entry_point_address: str) -> str:
        """Send a signed UserOperation to the bundler and return its hash"""
        logger.info("Sending UserOperation to bundler...")

        user_op_dict = user_operation.to_rpc_dict()
        logger.debug(f"Full UserOp to bundler: {user_op_dict}")
        result = await self.rpc.request("eth_sendUserOperation", [user_op_dict, entry_point_address])

        if not isinstance(result, str):
            raise BundlerRejection(f"Invalid bundler response for eth_sendUserOperation: {result!r}")
        logger.info(f"UserOperation sent successfully: {result}")
        return result

    async def get_user_operation_receipt(self, user_operation_hash: str) -> Optional[UserOperationReceipt]:
        result = await self.rpc.request("eth_getUserOperationReceipt", [user_operation_hash])
        if not result:
            return None

        receipt = result.get("receipt") or {}
        block_number = receipt.get("blockNumber")
        return UserOperationReceipt(
            user_operation_hash=user_operation_hash,
            success=bool(result.get("success")),
            transaction_hash=receipt.get("transactionHash"),
            block_number=int(block_number, 16) if block_number else None,
        )

    async def wait_for_user_operation_receipt(
        self, user_operation_hash: str, timeout: float = 60, poll_interval: float = 1
    ) -> UserOperationReceipt:
        """Poll until the bundler reports the operation as included"""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            receipt = await self.get_user_operation_receipt(user_operation_hash)
            if receipt is not None:
                logger.info(f"UserOperation {user_operation_hash} included in tx {receipt.transaction_hash}")
                return receipt
            if loop.time() >= deadline:
                raise RemoteTimeoutError(
                    f"UserOperation {user_operation_hash} not included after {timeout}s"
                )
            await asyncio.sleep(poll_interval)
