"""
Shared fakes for the smart account tests
"""
import pytest
from eth_abi import decode, encode
from web3 import Web3

from accounts import selector
from bundler import BundlerClient
from config import SessionConfig
from exceptions import NetworkError
from identity_store import OwnerIdentity
from paymaster import PaymasterClient

# Well-known anvil dev key #0
OWNER_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
OWNER_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

PAYMASTER_ADDRESS = "0x" + "11" * 20

GAS_PRICES = {
    "slow": {"maxFeePerGas": "0x1", "maxPriorityFeePerGas": "0x1"},
    "standard": {"maxFeePerGas": "0x2", "maxPriorityFeePerGas": "0x2"},
    "fast": {"maxFeePerGas": "0x3b9aca00", "maxPriorityFeePerGas": "0x3b9aca00"},
}

SPONSORSHIP = {
    "paymaster": PAYMASTER_ADDRESS,
    "paymasterData": "0xabcd",
    "paymasterVerificationGasLimit": "0x8000",
    "paymasterPostOpGasLimit": "0x1",
    "callGasLimit": "0x10000",
    "verificationGasLimit": "0x20000",
    "preVerificationGas": "0x5000",
}

PROXY_CREATION_CODE = bytes.fromhex("608060405234801561001057600080fd5b50")


class FakeChain:
    """In-memory chain answering the reads the session performs"""

    def __init__(self, chain_id=31337, deployed=False, nonce=0):
        self.chain_id = chain_id
        self.deployed = deployed
        self.nonce = nonce
        self.balances = {}
        self.calls = []

    async def get_chain_id(self):
        self.calls.append("get_chain_id")
        return self.chain_id

    async def get_balance(self, address):
        self.calls.append("get_balance")
        return self.balances.get(Web3.to_checksum_address(address), 0)

    async def get_code(self, address):
        self.calls.append("get_code")
        return b"\x60\x80" if self.deployed else b""

    async def is_deployed(self, address):
        return len(await self.get_code(address)) > 0

    async def call(self, to, data):
        self.calls.append("call")
        sig, args = data[:4], data[4:]
        if sig == selector("getAddress(address,uint256)"):
            owner, salt = decode(['address', 'uint256'], args)
            digest = Web3.keccak(bytes.fromhex(to[2:]) + bytes.fromhex(owner[2:]) + salt.to_bytes(32, "big"))
            return encode(['address'], [Web3.to_checksum_address("0x" + bytes(digest[12:]).hex())])
        if sig == selector("proxyCreationCode()"):
            return encode(['bytes'], [PROXY_CREATION_CODE])
        raise NetworkError(f"Unexpected eth_call to {to}")

    async def get_nonce(self, entry_point_address, sender, key=0):
        self.calls.append("get_nonce")
        return self.nonce

    async def make_request(self, method, params):
        self.calls.append(method)
        if method == "anvil_setBalance":
            self.balances[Web3.to_checksum_address(params[0])] = int(params[1], 16)
            return None
        raise NetworkError(f"Unexpected request {method}")


class FakeRpc:
    """Records JSON-RPC calls and answers from a method table"""

    def __init__(self, handlers=None):
        self.handlers = handlers or {}
        self.calls = []

    def count(self, method):
        return sum(1 for m, _ in self.calls if m == method)

    async def request(self, method, params):
        self.calls.append((method, params))
        handler = self.handlers[method]
        if isinstance(handler, Exception):
            raise handler
        if callable(handler):
            return handler(params)
        return handler


def make_bundler_rpc(on_send=None):
    counter = {"n": 0}

    def send(params):
        counter["n"] += 1
        if on_send:
            on_send(params)
        return "0x" + f"{counter['n']:064x}"

    def receipt(params):
        return {
            "userOpHash": params[0],
            "success": True,
            "receipt": {"transactionHash": "0x" + "ab" * 32, "blockNumber": "0x10"},
        }

    return FakeRpc({
        "eth_sendUserOperation": send,
        "eth_getUserOperationReceipt": receipt,
    })


@pytest.fixture
def owner():
    return OwnerIdentity.from_private_key(OWNER_KEY)


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def paymaster_rpc():
    return FakeRpc({
        "pimlico_getUserOperationGasPrice": GAS_PRICES,
        "pm_sponsorUserOperation": SPONSORSHIP,
    })


@pytest.fixture
def bundler_rpc():
    return make_bundler_rpc()


@pytest.fixture
def paymaster(paymaster_rpc):
    return PaymasterClient("http://paymaster.test", rpc=paymaster_rpc)


@pytest.fixture
def bundler(bundler_rpc):
    return BundlerClient("http://bundler.test", rpc=bundler_rpc)


@pytest.fixture
def config(tmp_path):
    return SessionConfig(store_path=str(tmp_path / ".cache.json"))
