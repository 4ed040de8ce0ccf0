"""
Smart account variants and the factory that builds them
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple, Type

from eth_abi import decode, encode
from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data
from hexbytes import HexBytes
from web3 import Web3

import entry_points
from chain import ChainClient
from entry_points import VARIANT_SAFE, VARIANT_SIMPLE, EntryPointSpec
from exceptions import ConfigurationError, IncompatibleConfigurationError, SigningError
from identity_store import OwnerIdentity
from user_operations import Call, UserOperation

logger = logging.getLogger(__name__)

# Dummy ECDSA signature accepted by bundlers during gas estimation
DUMMY_ECDSA_SIGNATURE = bytes(HexBytes(
    "0xfffffffffffffffffffffffffffffff0000000000000000000000000000000007"
    "aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa1c"
))

# SimpleAccountFactory deployments per entry point version
SIMPLE_ACCOUNT_FACTORIES = {
    "0.7": "0x91E60e0613810449d098b0b5Ec8b51A0FE8c8985",
    "0.8": "0x13E9ed32155810FDbd067D4522C492D6f68E5944",
}

# Safe v1.4.1 with Safe4337Module v0.3.0
SAFE_PROXY_FACTORY = "0x4e1DCf7AD4e460CfD30791CCC4F9c8a4f820ec67"
SAFE_SINGLETON = "0x41675C099F32341bf84BFc5382aF534df5C7461a"
SAFE_MODULE_SETUP = "0x2dd68b007B46fBe91B9A7c3EDa5A7a1063cB5b47"
SAFE_4337_MODULE = "0x75cf11467937ce3F2f357CE24ffc3DBF8fD5c226"
MULTI_SEND_CALL_ONLY = "0x9641d764fc13c8B624c04430C7356C1C7C8102e2"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

SAFE_OP_TYPES = [
    {"name": "safe", "type": "address"},
    {"name": "nonce", "type": "uint256"},
    {"name": "initCode", "type": "bytes"},
    {"name": "callData", "type": "bytes"},
    {"name": "verificationGasLimit", "type": "uint128"},
    {"name": "callGasLimit", "type": "uint128"},
    {"name": "preVerificationGas", "type": "uint256"},
    {"name": "maxPriorityFeePerGas", "type": "uint128"},
    {"name": "maxFeePerGas", "type": "uint128"},
    {"name": "paymasterAndData", "type": "bytes"},
    {"name": "validAfter", "type": "uint48"},
    {"name": "validUntil", "type": "uint48"},
    {"name": "entryPoint", "type": "address"},
]


def selector(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature)[:4])


class SmartAccount(ABC):
    """A contract account owned by a single EOA"""

    kind: str = ""
    compatible_versions: FrozenSet[str] = frozenset()

    def __init__(self, owner: OwnerIdentity, entry_point: EntryPointSpec, chain: ChainClient, address: str):
        self.owner = owner
        self.entry_point = entry_point
        self.chain = chain
        self.address = Web3.to_checksum_address(address)

    @classmethod
    async def create(cls, owner: OwnerIdentity, entry_point: EntryPointSpec, chain: ChainClient) -> "SmartAccount":
        address = await cls.compute_address(owner, entry_point, chain)
        return cls(owner, entry_point, chain, address)

    @classmethod
    @abstractmethod
    async def compute_address(cls, owner: OwnerIdentity, entry_point: EntryPointSpec, chain: ChainClient) -> str:
        """Counterfactual address of the account for this owner"""

    @abstractmethod
    def factory_args(self) -> Tuple[str, bytes]:
        """Factory address and calldata that deploy this account"""

    @abstractmethod
    def encode_calls(self, calls: Sequence[Call]) -> bytes:
        """Encode calls as the account's execution calldata"""

    @abstractmethod
    def get_stub_signature(self) -> bytes:
        """Signature of the right shape for gas estimation"""

    @abstractmethod
    def _sign(self, user_op: UserOperation, chain_id: int) -> bytes:
        pass

    async def get_factory_args(self) -> Tuple[Optional[str], bytes]:
        """Factory fields for the next user operation, empty once deployed"""
        if await self.chain.is_deployed(self.address):
            return None, b''
        return self.factory_args()

    def sign_user_operation(self, user_op: UserOperation, chain_id: int) -> bytes:
        try:
            return self._sign(user_op, chain_id)
        except (ValueError, TypeError) as e:
            raise SigningError(f"Could not sign user operation for {self.address}: {e}") from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}(address={self.address}, owner={self.owner.address}, entry_point={self.entry_point.version})"


class SimpleAccount(SmartAccount):
    """eth-infinitism SimpleAccount"""

    kind = VARIANT_SIMPLE
    compatible_versions = entry_points.COMPATIBLE_VERSIONS[VARIANT_SIMPLE]
    salt = 0

    @classmethod
    def factory_address(cls, entry_point: EntryPointSpec) -> str:
        return SIMPLE_ACCOUNT_FACTORIES[entry_point.version]

    @classmethod
    async def compute_address(cls, owner: OwnerIdentity, entry_point: EntryPointSpec, chain: ChainClient) -> str:
        data = selector("getAddress(address,uint256)") + encode(['address', 'uint256'], [owner.address, cls.salt])
        (address,) = decode(['address'], await chain.call(cls.factory_address(entry_point), data))
        return address

    def factory_args(self) -> Tuple[str, bytes]:
        factory_data = selector("createAccount(address,uint256)") + encode(
            ['address', 'uint256'], [self.owner.address, self.salt]
        )
        return self.factory_address(self.entry_point), factory_data

    def encode_calls(self, calls: Sequence[Call]) -> bytes:
        if len(calls) == 1:
            call = calls[0]
            return selector("execute(address,uint256,bytes)") + encode(
                ['address', 'uint256', 'bytes'],
                [Web3.to_checksum_address(call.to), call.value, call.data]
            )

        if self.entry_point.version == "0.7":
            return selector("executeBatch(address[],uint256[],bytes[])") + encode(
                ['address[]', 'uint256[]', 'bytes[]'],
                [
                    [Web3.to_checksum_address(c.to) for c in calls],
                    [c.value for c in calls],
                    [c.data for c in calls],
                ]
            )
        return selector("executeBatch((address,uint256,bytes)[])") + encode(
            ['(address,uint256,bytes)[]'],
            [[(Web3.to_checksum_address(c.to), c.value, c.data) for c in calls]]
        )

    def get_stub_signature(self) -> bytes:
        return DUMMY_ECDSA_SIGNATURE

    def _sign(self, user_op: UserOperation, chain_id: int) -> bytes:
        user_op_hash = user_op.hash(self.entry_point.address, self.entry_point.version, chain_id)
        if self.entry_point.version == "0.7":
            # v0.7 SimpleAccount validates an EIP-191 prefixed hash
            signed = Account.sign_message(encode_defunct(primitive=user_op_hash), self.owner.private_key)
        else:
            signed = Account.unsafe_sign_hash(user_op_hash, self.owner.private_key)
        return bytes(signed.signature)


class SafeAccount(SmartAccount):
    """Safe v1.4.1 proxy using the Safe4337Module as fallback handler"""

    kind = VARIANT_SAFE
    compatible_versions = entry_points.COMPATIBLE_VERSIONS[VARIANT_SAFE]
    salt_nonce = 0

    @classmethod
    def initializer(cls, owner: OwnerIdentity) -> bytes:
        """Safe.setup calldata enabling the 4337 module for a single owner"""
        enable_modules = selector("enableModules(address[])") + encode(['address[]'], [[SAFE_4337_MODULE]])
        return selector(
            "setup(address[],uint256,address,bytes,address,address,uint256,address)"
        ) + encode(
            ['address[]', 'uint256', 'address', 'bytes', 'address', 'address', 'uint256', 'address'],
            [[owner.address], 1, SAFE_MODULE_SETUP, enable_modules, SAFE_4337_MODULE, ZERO_ADDRESS, 0, ZERO_ADDRESS]
        )

    @classmethod
    async def compute_address(cls, owner: OwnerIdentity, entry_point: EntryPointSpec, chain: ChainClient) -> str:
        (proxy_code,) = decode(
            ['bytes'], await chain.call(SAFE_PROXY_FACTORY, selector("proxyCreationCode()"))
        )
        salt = Web3.keccak(Web3.keccak(cls.initializer(owner)) + cls.salt_nonce.to_bytes(32, "big"))
        deployment_data = proxy_code + encode(['uint256'], [int(SAFE_SINGLETON, 16)])
        return create2_address(SAFE_PROXY_FACTORY, bytes(salt), bytes(Web3.keccak(deployment_data)))

    def factory_args(self) -> Tuple[str, bytes]:
        factory_data = selector("createProxyWithNonce(address,bytes,uint256)") + encode(
            ['address', 'bytes', 'uint256'],
            [SAFE_SINGLETON, self.initializer(self.owner), self.salt_nonce]
        )
        return SAFE_PROXY_FACTORY, factory_data

    def encode_calls(self, calls: Sequence[Call]) -> bytes:
        execute_user_op = selector("executeUserOp(address,uint256,bytes,uint8)")
        if len(calls) == 1:
            call = calls[0]
            return execute_user_op + encode(
                ['address', 'uint256', 'bytes', 'uint8'],
                [Web3.to_checksum_address(call.to), call.value, call.data, 0]
            )

        # Batches are delegatecalled through MultiSendCallOnly
        return execute_user_op + encode(
            ['address', 'uint256', 'bytes', 'uint8'],
            [MULTI_SEND_CALL_ONLY, 0, encode_multi_send(calls), 1]
        )

    def get_stub_signature(self) -> bytes:
        return (0).to_bytes(6, "big") * 2 + DUMMY_ECDSA_SIGNATURE

    def safe_op_typed_data(self, user_op: UserOperation, chain_id: int, valid_after: int = 0, valid_until: int = 0) -> Dict:
        return {
            "types": {
                "EIP712Domain": [
                    {"name": "chainId", "type": "uint256"},
                    {"name": "verifyingContract", "type": "address"},
                ],
                "SafeOp": SAFE_OP_TYPES,
            },
            "primaryType": "SafeOp",
            "domain": {"chainId": chain_id, "verifyingContract": SAFE_4337_MODULE},
            "message": {
                "safe": self.address,
                "nonce": user_op.nonce,
                "initCode": user_op.init_code,
                "callData": user_op.call_data,
                "verificationGasLimit": user_op.verification_gas_limit,
                "callGasLimit": user_op.call_gas_limit,
                "preVerificationGas": user_op.pre_verification_gas,
                "maxPriorityFeePerGas": user_op.max_priority_fee_per_gas,
                "maxFeePerGas": user_op.max_fee_per_gas,
                "paymasterAndData": user_op.paymaster_and_data,
                "validAfter": valid_after,
                "validUntil": valid_until,
                "entryPoint": self.entry_point.address,
            },
        }

    def _sign(self, user_op: UserOperation, chain_id: int) -> bytes:
        typed_data = self.safe_op_typed_data(user_op, chain_id)
        signed = Account.sign_message(encode_typed_data(full_message=typed_data), self.owner.private_key)
        message = typed_data["message"]
        return (
            message["validAfter"].to_bytes(6, "big")
            + message["validUntil"].to_bytes(6, "big")
            + bytes(signed.signature)
        )


ACCOUNT_VARIANTS: Dict[str, Type[SmartAccount]] = {
    VARIANT_SAFE: SafeAccount,
    VARIANT_SIMPLE: SimpleAccount,
}


def variant_class(variant_kind: str) -> Type[SmartAccount]:
    try:
        return ACCOUNT_VARIANTS[variant_kind]
    except KeyError:
        raise ConfigurationError(
            f"Unknown account variant {variant_kind!r}, expected one of {sorted(ACCOUNT_VARIANTS)}"
        ) from None


def check_compatibility(variant_kind: str, entry_point: EntryPointSpec) -> Type[SmartAccount]:
    """Validate a variant/entry point pairing without touching the network"""
    cls = variant_class(variant_kind)
    if not entry_points.is_compatible(variant_kind, entry_point.version):
        raise IncompatibleConfigurationError(
            f"{cls.__name__} does not support entry point v{entry_point.version} "
            f"(supported: {', '.join(sorted(cls.compatible_versions))})"
        )
    return cls


async def build(owner: OwnerIdentity, entry_point: EntryPointSpec, variant_kind: str, chain: ChainClient) -> SmartAccount:
    """Build a smart account of the requested variant for an owner"""
    cls = check_compatibility(variant_kind, entry_point)
    account = await cls.create(owner, entry_point, chain)
    logger.info(f"Built {account}")
    return account


def create2_address(deployer: str, salt: bytes, init_code_hash: bytes) -> str:
    digest = Web3.keccak(b"\xff" + bytes(HexBytes(deployer)) + salt + init_code_hash)
    return Web3.to_checksum_address("0x" + bytes(digest[12:]).hex())


def encode_multi_send(calls: List[Call]) -> bytes:
    """multiSend(bytes) calldata packing each call as a CALL operation"""
    transactions = b"".join(
        (0).to_bytes(1, "big")
        + bytes(HexBytes(Web3.to_checksum_address(c.to)))
        + c.value.to_bytes(32, "big")
        + len(c.data).to_bytes(32, "big")
        + c.data
        for c in calls
    )
    return selector("multiSend(bytes)") + encode(['bytes'], [transactions])
