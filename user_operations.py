"""
UserOperation model, RPC formatting and hashing for EntryPoint v0.7/v0.8
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

logger = logging.getLogger(__name__)

PACKED_USEROP_TYPEHASH = Web3.keccak(
    text="PackedUserOperation(address sender,uint256 nonce,bytes initCode,"
         "bytes callData,bytes32 accountGasLimits,uint256 preVerificationGas,"
         "bytes32 gasFees,bytes paymasterAndData)"
)
EIP712_DOMAIN_TYPEHASH = Web3.keccak(
    text="EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)


@dataclass(frozen=True)
class Call:
    """A single call executed by the smart account"""
    to: str
    value: int = 0
    data: bytes = b''


@dataclass
class UserOperation:
    """Unpacked ERC-4337 user operation (v0.7 RPC shape)"""
    sender: str
    nonce: int
    call_data: bytes
    factory: Optional[str] = None
    factory_data: bytes = b''
    call_gas_limit: int = 0
    verification_gas_limit: int = 0
    pre_verification_gas: int = 0
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0
    paymaster: Optional[str] = None
    paymaster_verification_gas_limit: int = 0
    paymaster_post_op_gas_limit: int = 0
    paymaster_data: bytes = b''
    signature: bytes = field(default=b'', repr=False)

    @property
    def init_code(self) -> bytes:
        if not self.factory:
            return b''
        return bytes(HexBytes(self.factory)) + self.factory_data

    @property
    def account_gas_limits(self) -> bytes:
        return _pack_uint128_pair(self.verification_gas_limit, self.call_gas_limit)

    @property
    def gas_fees(self) -> bytes:
        return _pack_uint128_pair(self.max_priority_fee_per_gas, self.max_fee_per_gas)

    @property
    def paymaster_and_data(self) -> bytes:
        if not self.paymaster:
            return b''
        return (
            bytes(HexBytes(self.paymaster))
            + self.paymaster_verification_gas_limit.to_bytes(16, "big")
            + self.paymaster_post_op_gas_limit.to_bytes(16, "big")
            + self.paymaster_data
        )

    def to_rpc_dict(self) -> Dict:
        """Convert to the JSON shape accepted by bundlers and paymasters"""
        rpc_dict = {
            "sender": self.sender,
            "nonce": hex(self.nonce),
            "callData": _to_hex(self.call_data),
            "callGasLimit": hex(self.call_gas_limit),
            "verificationGasLimit": hex(self.verification_gas_limit),
            "preVerificationGas": hex(self.pre_verification_gas),
            "maxFeePerGas": hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": hex(self.max_priority_fee_per_gas),
            "signature": _to_hex(self.signature),
        }

        # Factory fields are omitted once the account is deployed
        if self.factory:
            rpc_dict.update({
                "factory": self.factory,
                "factoryData": _to_hex(self.factory_data),
            })

        if self.paymaster:
            rpc_dict.update({
                "paymaster": self.paymaster,
                "paymasterVerificationGasLimit": hex(self.paymaster_verification_gas_limit),
                "paymasterPostOpGasLimit": hex(self.paymaster_post_op_gas_limit),
                "paymasterData": _to_hex(self.paymaster_data),
            })

        return rpc_dict

    def apply_sponsorship(self, sponsorship: Dict) -> None:
        """Copy gas limits and paymaster fields returned by a paymaster"""
        int_fields = {
            "callGasLimit": "call_gas_limit",
            "verificationGasLimit": "verification_gas_limit",
            "preVerificationGas": "pre_verification_gas",
            "paymasterVerificationGasLimit": "paymaster_verification_gas_limit",
            "paymasterPostOpGasLimit": "paymaster_post_op_gas_limit",
        }
        for rpc_name, attr in int_fields.items():
            if sponsorship.get(rpc_name) is not None:
                setattr(self, attr, _to_int(sponsorship[rpc_name]))

        if sponsorship.get("paymaster"):
            self.paymaster = Web3.to_checksum_address(sponsorship["paymaster"])
            self.paymaster_data = bytes(HexBytes(sponsorship.get("paymasterData") or "0x"))

    def _packed_fields(self):
        return (
            ['address', 'uint256', 'bytes32', 'bytes32', 'bytes32', 'uint256', 'bytes32', 'bytes32'],
            [
                Web3.to_checksum_address(self.sender),
                self.nonce,
                Web3.keccak(self.init_code),
                Web3.keccak(self.call_data),
                self.account_gas_limits,
                self.pre_verification_gas,
                self.gas_fees,
                Web3.keccak(self.paymaster_and_data),
            ],
        )

    def hash_v07(self, entry_point: str, chain_id: int) -> bytes:
        """userOpHash as computed by EntryPoint v0.7"""
        types, values = self._packed_fields()
        packed_hash = Web3.keccak(encode(types, values))
        return bytes(Web3.keccak(encode(
            ['bytes32', 'address', 'uint256'],
            [packed_hash, Web3.to_checksum_address(entry_point), chain_id]
        )))

    def hash_v08(self, entry_point: str, chain_id: int) -> bytes:
        """userOpHash as computed by EntryPoint v0.8 (EIP-712)"""
        types, values = self._packed_fields()
        struct_hash = Web3.keccak(encode(['bytes32'] + types, [PACKED_USEROP_TYPEHASH] + values))
        domain_separator = Web3.keccak(encode(
            ['bytes32', 'bytes32', 'bytes32', 'uint256', 'address'],
            [
                EIP712_DOMAIN_TYPEHASH,
                Web3.keccak(text="ERC4337"),
                Web3.keccak(text="1"),
                chain_id,
                Web3.to_checksum_address(entry_point),
            ]
        ))
        return bytes(Web3.keccak(b"\x19\x01" + domain_separator + struct_hash))

    def hash(self, entry_point: str, version: str, chain_id: int) -> bytes:
        if version == "0.7":
            return self.hash_v07(entry_point, chain_id)
        return self.hash_v08(entry_point, chain_id)


def _pack_uint128_pair(high: int, low: int) -> bytes:
    return high.to_bytes(16, "big") + low.to_bytes(16, "big")


def _to_hex(data: bytes) -> str:
    return "0x" + bytes(data).hex()


def _to_int(value) -> int:
    if isinstance(value, int):
        return value
    return int(value, 16)
