"""
Balance reads and test-chain funding
"""

import logging

from web3 import Web3

from chain import ChainClient
from exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class BalanceObserver:
    """Reads balances and, against a local anvil node, sets them"""

    def __init__(self, chain: ChainClient, test_mode: bool = False):
        self.chain = chain
        self.test_mode = test_mode

    async def get_balance(self, address: str) -> int:
        return await self.chain.get_balance(address)

    async def set_balance(self, address: str, amount_wei: int) -> None:
        """Overwrite an account balance (anvil only)"""
        if not self.test_mode:
            raise ConfigurationError("set_balance is only available in test mode")
        await self.chain.make_request("anvil_setBalance", [Web3.to_checksum_address(address), hex(amount_wei)])

    async def fund(self, address: str, amount_wei: int) -> int:
        """Funds an account with a specified amount of ETH for testing purposes"""
        await self.set_balance(address, amount_wei)
        balance = await self.get_balance(address)
        logger.info(
            f"Funding {Web3.from_wei(amount_wei, 'ether')} ETH for SA {address}, "
            f"balance is now {Web3.from_wei(balance, 'ether')}"
        )
        return balance
