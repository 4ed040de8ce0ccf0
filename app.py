"""
Sponsored smart account transfer demo

Runs a single flow against a local account-abstraction stack:
1. Load or create the owner identity and its smart account
2. Fund the smart account on the test chain
3. Send a paymaster-sponsored ETH transfer through the bundler
4. Report balances once the operation is included
"""

import asyncio
import logging
import sys
from typing import Dict

from dotenv import load_dotenv
from web3 import Web3

from balance_observer import BalanceObserver
from config import SessionConfig
from exceptions import BundlerRejection, SmartAccountError
from smart_account import SubmissionState, create_session

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Constants
BURN_ADDRESS = "0x000000000000000000000000000000000000dEaD"
TRANSFER_AMOUNT_WEI = Web3.to_wei("0.001", "ether")
RECEIPT_TIMEOUT = 60


def format_eth(amount_wei: int) -> str:
    return f"{Web3.from_wei(amount_wei, 'ether')}"


async def run(config: SessionConfig, store=None) -> Dict:
    """Run init, fund, send and report once"""
    session = await create_session(config, store=store)
    observer = BalanceObserver(session.chain, test_mode=config.test_mode)
    sa_address = session.address

    logger.info(f"EOA balance: {format_eth(await observer.get_balance(session.owner.address))}")
    logger.info(f" SA balance: {format_eth(await observer.get_balance(sa_address))}")

    await observer.fund(sa_address, TRANSFER_AMOUNT_WEI)
    handle = await session.send_eth(BURN_ADDRESS, TRANSFER_AMOUNT_WEI)

    receipt = await session.bundler.wait_for_user_operation_receipt(handle, timeout=RECEIPT_TIMEOUT)
    submission = session.record_receipt(receipt)
    logger.info(f"Tx hash: {receipt.transaction_hash}")
    if submission.state is SubmissionState.REJECTED:
        raise BundlerRejection(f"UserOperation {handle} reverted in transaction {receipt.transaction_hash}")

    sa_balance = await observer.get_balance(sa_address)
    to_balance = await observer.get_balance(BURN_ADDRESS)
    logger.info(f"SA {sa_address} balance now is {format_eth(sa_balance)}")
    logger.info(f"TO {BURN_ADDRESS} balance now is {format_eth(to_balance)}")

    return {
        'smart_account': sa_address,
        'owner': session.owner.address,
        'user_operation_hash': handle,
        'transaction_hash': receipt.transaction_hash,
        'status': submission.state.value,
        'smart_account_balance': sa_balance,
        'recipient_balance': to_balance,
    }


def main() -> int:
    load_dotenv()
    try:
        config = SessionConfig.from_env()
        asyncio.run(run(config))
    except SmartAccountError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    except Exception:
        logger.exception("Unexpected error")
        return 1

    logger.info("DONE")
    return 0


if __name__ == "__main__":
    sys.exit(main())
