"""
Pimlico paymaster client: gas price tiers and user operation sponsorship
"""

import logging
from dataclasses import dataclass
from typing import Dict

from exceptions import FeeEstimationError, PaymasterRejection, SmartAccountError
from rpc import JsonRpcClient
from user_operations import UserOperation

logger = logging.getLogger(__name__)

FEE_TIER = "fast"


@dataclass(frozen=True)
class FeeQuote:
    """EIP-1559 fee pair for a user operation"""
    max_fee_per_gas: int
    max_priority_fee_per_gas: int


class PaymasterClient:
    """Client for a Pimlico-compatible paymaster endpoint"""

    def __init__(self, paymaster_url: str, timeout: float = 30, rpc: JsonRpcClient = None):
        self.rpc = rpc or JsonRpcClient(paymaster_url, timeout=timeout, rejection=PaymasterRejection)

    async def get_user_operation_gas_price(self) -> Dict:
        """Get current gas price tiers (slow/standard/fast)"""
        return await self.rpc.request("pimlico_getUserOperationGasPrice", [])

    async def sponsor_user_operation(self, user_operation: UserOperation, entry_point_address: str) -> Dict:
        """Ask the paymaster to sponsor a user operation, returning gas limits and paymaster fields"""
        result = await self.rpc.request(
            "pm_sponsorUserOperation", [user_operation.to_rpc_dict(), entry_point_address]
        )
        if not isinstance(result, dict) or not result.get("paymaster"):
            raise PaymasterRejection(f"Paymaster returned no sponsorship: {result!r}")
        logger.info(f"UserOperation sponsored by paymaster {result['paymaster']}")
        return result


class FeeEstimator:
    """Supplies fresh fee pairs for each submission"""

    def __init__(self, paymaster: PaymasterClient):
        self.paymaster = paymaster

    async def estimate_fees_per_gas(self) -> FeeQuote:
        """Query the fastest gas price tier; never cached"""
        try:
            gas_prices = await self.paymaster.get_user_operation_gas_price()
        except SmartAccountError as e:
            raise FeeEstimationError(f"Could not fetch gas prices: {e}") from e

        tier = gas_prices.get(FEE_TIER) if isinstance(gas_prices, dict) else None
        if not isinstance(tier, dict):
            raise FeeEstimationError(f"Gas price response has no {FEE_TIER!r} tier: {gas_prices!r}")

        try:
            quote = FeeQuote(
                max_fee_per_gas=_parse_quantity(tier["maxFeePerGas"]),
                max_priority_fee_per_gas=_parse_quantity(tier["maxPriorityFeePerGas"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise FeeEstimationError(f"Malformed {FEE_TIER!r} gas price tier {tier!r}: {e}") from e

        logger.info(f"Fees per gas: max={quote.max_fee_per_gas} priority={quote.max_priority_fee_per_gas}")
        return quote


def _parse_quantity(value) -> int:
    if isinstance(value, int):
        return value
    return int(value, 16)
