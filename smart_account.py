"""
Smart account session: identity resolution, account construction and sponsored submission
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from eth_abi.exceptions import EncodingError
from web3 import Web3

import accounts
import entry_points
from accounts import SmartAccount
from bundler import BundlerClient, UserOperationReceipt
from chain import ChainClient
from config import SessionConfig
from exceptions import ConfigurationError, IncompatibleConfigurationError, StorageError
from identity_store import JsonFileIdentityStore, SmartAccountRecord, resolve_owner
from paymaster import FeeEstimator, FeeQuote, PaymasterClient
from user_operations import Call, UserOperation

logger = logging.getLogger(__name__)

TransactionHandle = str


class SubmissionState(Enum):
    BUILT = "built"
    FEES_ESTIMATED = "fees_estimated"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


@dataclass
class Submission:
    """Progress of a single user operation through the pipeline"""
    calls: Tuple[Call, ...]
    state: SubmissionState = SubmissionState.BUILT
    fees: Optional[FeeQuote] = None
    user_operation: Optional[UserOperation] = field(default=None, repr=False)
    handle: Optional[TransactionHandle] = None
    error: Optional[Exception] = None


class SmartAccountSession:
    """Main service for sponsored smart account operations"""

    def __init__(
        self,
        config: SessionConfig,
        account: SmartAccount,
        record: SmartAccountRecord,
        fee_estimator: FeeEstimator,
        paymaster: PaymasterClient,
        bundler: BundlerClient,
    ):
        self.config = config
        self.account = account
        self.record = record
        self.fee_estimator = fee_estimator
        self.paymaster = paymaster
        self.bundler = bundler
        self.submissions: List[Submission] = []
        self._lock = asyncio.Lock()

    @property
    def address(self) -> str:
        return self.account.address

    @property
    def owner(self):
        return self.account.owner

    @property
    def chain(self) -> ChainClient:
        return self.account.chain

    @classmethod
    async def initialize(
        cls,
        config: SessionConfig,
        store,
        chain: ChainClient,
        paymaster: PaymasterClient,
        bundler: BundlerClient,
    ) -> "SmartAccountSession":
        """
        Resolve the owner identity and build its smart account.

        Misconfiguration is rejected before any network call. The persisted
        record is written only once the account has been built, and an
        existing record is always reused as is.

        Args:
            config: Session configuration
            store: Identity repository with load() and persist()
            chain: Chain read client
            paymaster: Paymaster client used for fees and sponsorship
            bundler: Bundler client used for submission

        Returns:
            An initialized session
        """
        entry_point = entry_points.resolve(config.entry_point_version)
        accounts.check_compatibility(config.account_variant, entry_point)

        record = store.load()
        if record is not None:
            _check_record_matches(record, config)
        owner = resolve_owner(record)

        chain_id = await chain.get_chain_id()
        if chain_id != config.chain_id:
            raise ConfigurationError(f"RPC {config.rpc_url} serves chain {chain_id}, expected {config.chain_id}")

        account = await accounts.build(owner, entry_point, config.account_variant, chain)

        if record is None:
            record = SmartAccountRecord(
                smart_account_address=account.address,
                owner_address=owner.address,
                owner_private_key=owner.private_key,
                entry_point_version=entry_point.version,
                variant=account.kind,
            )
            store.persist(record)
        elif Web3.to_checksum_address(record.smart_account_address) != account.address:
            # The stored record wins over the freshly derived address
            logger.warning(
                f"Stored smart account {record.smart_account_address} differs from derived {account.address}, "
                f"using the stored address"
            )
            account.address = Web3.to_checksum_address(record.smart_account_address)

        logger.info(f"EOA Wallet: {owner.address}")
        logger.info(f"Smart Account (SA): {account.address}")
        return cls(config, account, record, FeeEstimator(paymaster), paymaster, bundler)

    async def send_transaction(self, calls: Sequence[Call]) -> TransactionHandle:
        """
        Build, price, sponsor, sign and submit a user operation.

        The returned handle only means the bundler accepted the operation into
        its pool. Submissions for this session run one at a time.
        """
        if not calls:
            raise ValueError("At least one call is required")

        async with self._lock:
            submission = Submission(calls=tuple(calls))
            self.submissions.append(submission)
            try:
                return await self._submit(submission)
            except Exception as e:
                logger.error(f"UserOperation from {self.address} failed after state {submission.state.value}: {e}")
                submission.state = SubmissionState.REJECTED
                submission.error = e
                raise

    def _encode_calls(self, calls: Sequence[Call]) -> bytes:
        try:
            return self.account.encode_calls(calls)
        except (ValueError, TypeError, OverflowError, EncodingError) as e:
            raise ValueError(f"Invalid calls for {self.address}: {e}") from e

    async def _submit(self, submission: Submission) -> TransactionHandle:
        entry_point = self.account.entry_point
        call_data = self._encode_calls(submission.calls)

        # Fees are fetched per submission and must precede anything sent to the bundler
        submission.fees = await self.fee_estimator.estimate_fees_per_gas()
        submission.state = SubmissionState.FEES_ESTIMATED

        factory, factory_data = await self.account.get_factory_args()
        user_operation = UserOperation(
            sender=self.address,
            nonce=await self.chain.get_nonce(entry_point.address, self.address),
            call_data=call_data,
            factory=factory,
            factory_data=factory_data,
            max_fee_per_gas=submission.fees.max_fee_per_gas,
            max_priority_fee_per_gas=submission.fees.max_priority_fee_per_gas,
            signature=self.account.get_stub_signature(),
        )
        submission.user_operation = user_operation

        sponsorship = await self.paymaster.sponsor_user_operation(user_operation, entry_point.address)
        user_operation.apply_sponsorship(sponsorship)
        user_operation.signature = self.account.sign_user_operation(user_operation, self.config.chain_id)

        submission.handle = await self.bundler.send_user_operation(user_operation, entry_point.address)
        submission.state = SubmissionState.SUBMITTED
        return submission.handle

    async def send_eth(self, to_address: str, amount_wei: int) -> TransactionHandle:
        """Send native currency from the smart account"""
        logger.info(f"Sending ETH from SA to {to_address} with amount {Web3.from_wei(amount_wei, 'ether')}")
        handle = await self.send_transaction([Call(to=Web3.to_checksum_address(to_address), value=amount_wei)])
        logger.info(f"UserOp hash: {handle}")
        return handle

    def record_receipt(self, receipt: UserOperationReceipt) -> Submission:
        """Move a submitted operation to its terminal state once its receipt is known"""
        for submission in self.submissions:
            if submission.handle == receipt.user_operation_hash:
                submission.state = SubmissionState.CONFIRMED if receipt.success else SubmissionState.REJECTED
                return submission
        raise KeyError(f"Unknown user operation {receipt.user_operation_hash}")


def _check_record_matches(record: SmartAccountRecord, config: SessionConfig) -> None:
    """Refuse to reuse a stored account under a different variant or entry point"""
    try:
        Web3.to_checksum_address(record.smart_account_address)
    except (ValueError, TypeError) as e:
        raise StorageError(f"Stored smart account address {record.smart_account_address!r} is invalid") from e
    if record.variant and record.variant != config.account_variant:
        raise IncompatibleConfigurationError(
            f"Stored smart account {record.smart_account_address} is a {record.variant} account, "
            f"configuration selects {config.account_variant}; clear {config.store_path} to switch"
        )
    if record.entry_point_version and record.entry_point_version != config.entry_point_version:
        raise IncompatibleConfigurationError(
            f"Stored smart account {record.smart_account_address} targets entry point "
            f"v{record.entry_point_version}, configuration selects v{config.entry_point_version}; "
            f"clear {config.store_path} to switch"
        )


async def create_session(config: SessionConfig = None, store=None) -> SmartAccountSession:
    """Create a smart account session wired to the configured services"""
    config = config or SessionConfig.from_env()
    chain = ChainClient(config.rpc_url, timeout=config.request_timeout)
    return await SmartAccountSession.initialize(
        config,
        store or JsonFileIdentityStore(config.store_path),
        chain,
        PaymasterClient(config.paymaster_url, timeout=config.request_timeout),
        BundlerClient(config.bundler_url, timeout=config.request_timeout),
    )
