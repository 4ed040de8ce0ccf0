"""
Tests for the balance observer.
"""
import pytest

from balance_observer import BalanceObserver
from exceptions import ConfigurationError

ADDRESS = "0x000000000000000000000000000000000000dEaD"


@pytest.mark.asyncio
async def test_fund_sets_and_rereads_balance(chain):
    observer = BalanceObserver(chain, test_mode=True)
    assert await observer.fund(ADDRESS, 10**15) == 10**15
    assert "anvil_setBalance" in chain.calls
    assert await observer.get_balance(ADDRESS) == 10**15


@pytest.mark.asyncio
async def test_set_balance_requires_test_mode(chain):
    observer = BalanceObserver(chain, test_mode=False)
    with pytest.raises(ConfigurationError):
        await observer.set_balance(ADDRESS, 1)
    assert chain.calls == []
    assert await observer.get_balance(ADDRESS) == 0
