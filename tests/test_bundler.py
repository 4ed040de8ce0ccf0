"""
Tests for the bundler client.
"""
import pytest

from bundler import BundlerClient, UserOperationReceipt
from conftest import FakeRpc
from exceptions import BundlerRejection, RemoteTimeoutError
from user_operations import UserOperation

ENTRY_POINT = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
OP_HASH = "0x" + "01" * 32


def make_op():
    return UserOperation(sender="0x" + "22" * 20, nonce=0, call_data=b"", signature=b"\x01")


@pytest.mark.asyncio
async def test_send_returns_hash(bundler, bundler_rpc):
    handle = await bundler.send_user_operation(make_op(), ENTRY_POINT)
    assert handle == "0x" + f"{1:064x}"
    assert bundler_rpc.calls == [("eth_sendUserOperation", [make_op().to_rpc_dict(), ENTRY_POINT])]


@pytest.mark.asyncio
async def test_send_rejection_propagates():
    rpc = FakeRpc({"eth_sendUserOperation": BundlerRejection("AA21 didn't pay prefund", code=-32500)})
    with pytest.raises(BundlerRejection) as exc_info:
        await BundlerClient("http://bundler.test", rpc=rpc).send_user_operation(make_op(), ENTRY_POINT)
    assert exc_info.value.code == -32500


@pytest.mark.asyncio
async def test_send_with_non_string_result():
    rpc = FakeRpc({"eth_sendUserOperation": {"unexpected": True}})
    with pytest.raises(BundlerRejection):
        await BundlerClient("http://bundler.test", rpc=rpc).send_user_operation(make_op(), ENTRY_POINT)


@pytest.mark.asyncio
async def test_receipt_parsing(bundler):
    receipt = await bundler.get_user_operation_receipt(OP_HASH)
    assert receipt == UserOperationReceipt(
        user_operation_hash=OP_HASH,
        success=True,
        transaction_hash="0x" + "ab" * 32,
        block_number=16,
    )


@pytest.mark.asyncio
async def test_missing_receipt():
    rpc = FakeRpc({"eth_getUserOperationReceipt": None})
    assert await BundlerClient("http://bundler.test", rpc=rpc).get_user_operation_receipt(OP_HASH) is None


@pytest.mark.asyncio
async def test_wait_polls_until_included():
    responses = [None, None, {"success": False, "receipt": {"transactionHash": "0x01", "blockNumber": None}}]
    rpc = FakeRpc({"eth_getUserOperationReceipt": lambda params: responses.pop(0)})
    client = BundlerClient("http://bundler.test", rpc=rpc)

    receipt = await client.wait_for_user_operation_receipt(OP_HASH, timeout=5, poll_interval=0)
    assert receipt.success is False
    assert receipt.block_number is None
    assert rpc.count("eth_getUserOperationReceipt") == 3


@pytest.mark.asyncio
async def test_wait_times_out():
    rpc = FakeRpc({"eth_getUserOperationReceipt": None})
    client = BundlerClient("http://bundler.test", rpc=rpc)
    with pytest.raises(RemoteTimeoutError):
        await client.wait_for_user_operation_receipt(OP_HASH, timeout=0, poll_interval=0)
