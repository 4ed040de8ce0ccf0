"""
Tests for fee estimation and paymaster sponsorship.
"""
import pytest

from conftest import GAS_PRICES, FakeRpc
from exceptions import FeeEstimationError, NetworkError, PaymasterRejection, RemoteTimeoutError
from paymaster import FeeEstimator, FeeQuote, PaymasterClient
from user_operations import UserOperation


def make_estimator(handler):
    rpc = FakeRpc({"pimlico_getUserOperationGasPrice": handler})
    return FeeEstimator(PaymasterClient("http://paymaster.test", rpc=rpc)), rpc


@pytest.mark.asyncio
async def test_selects_fast_tier():
    estimator, _ = make_estimator(GAS_PRICES)
    assert await estimator.estimate_fees_per_gas() == FeeQuote(
        max_fee_per_gas=1_000_000_000, max_priority_fee_per_gas=1_000_000_000
    )


@pytest.mark.asyncio
async def test_requeries_every_time():
    estimator, rpc = make_estimator(GAS_PRICES)
    await estimator.estimate_fees_per_gas()
    await estimator.estimate_fees_per_gas()
    assert rpc.count("pimlico_getUserOperationGasPrice") == 2


@pytest.mark.asyncio
async def test_accepts_integer_quantities():
    estimator, _ = make_estimator({"fast": {"maxFeePerGas": 7, "maxPriorityFeePerGas": 3}})
    assert await estimator.estimate_fees_per_gas() == FeeQuote(7, 3)


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    {"slow": GAS_PRICES["slow"]},
    {"fast": {"maxFeePerGas": "0x1"}},
    {"fast": {"maxFeePerGas": "zz", "maxPriorityFeePerGas": "0x1"}},
    None,
])
async def test_malformed_response_is_not_defaulted(response):
    estimator, _ = make_estimator(response)
    with pytest.raises(FeeEstimationError):
        await estimator.estimate_fees_per_gas()


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    NetworkError("connection refused"),
    RemoteTimeoutError("timed out"),
    PaymasterRejection("method not found", code=-32601),
])
async def test_remote_failure_becomes_fee_estimation_error(error):
    estimator, _ = make_estimator(error)
    with pytest.raises(FeeEstimationError):
        await estimator.estimate_fees_per_gas()


@pytest.mark.asyncio
async def test_sponsor_sends_operation_and_entry_point(paymaster, paymaster_rpc):
    op = UserOperation(sender="0x" + "22" * 20, nonce=0, call_data=b"")
    result = await paymaster.sponsor_user_operation(op, "0x0000000071727De22E5E9d8BAf0edAc6f37da032")
    assert result["paymaster"] == "0x" + "11" * 20
    method, params = paymaster_rpc.calls[-1]
    assert method == "pm_sponsorUserOperation"
    assert params == [op.to_rpc_dict(), "0x0000000071727De22E5E9d8BAf0edAc6f37da032"]


@pytest.mark.asyncio
async def test_sponsor_without_paymaster_is_rejection():
    rpc = FakeRpc({"pm_sponsorUserOperation": {}})
    client = PaymasterClient("http://paymaster.test", rpc=rpc)
    with pytest.raises(PaymasterRejection):
        await client.sponsor_user_operation(UserOperation(sender="0x" + "22" * 20, nonce=0, call_data=b""), "0x")
