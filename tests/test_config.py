"""
Tests for session configuration.
"""
import os

import pytest

from config import DEFAULT_STORE_PATH, SessionConfig
from exceptions import ConfigurationError


def test_defaults_target_local_stack():
    config = SessionConfig.from_env({})
    assert config.rpc_url == "http://localhost:8545"
    assert config.paymaster_url == "http://localhost:3000"
    assert config.bundler_url == "http://localhost:4337"
    assert config.chain_id == 31337
    assert config.entry_point_version == "0.7"
    assert config.account_variant == "safe"
    assert config.store_path == os.path.join(os.getcwd(), DEFAULT_STORE_PATH)
    assert config.test_mode is True


def test_reads_environment():
    config = SessionConfig.from_env({
        "RPC_URL": "http://rpc:8545",
        "BUNDLER_URL": "http://bundler:4337",
        "CHAIN_ID": "84532",
        "ENTRY_POINT_VERSION": "0.8",
        "ACCOUNT_VARIANT": "Simple",
        "IDENTITY_STORE_PATH": "/tmp/id.json",
        "REQUEST_TIMEOUT": "2.5",
        "TEST_MODE": "false",
    })
    assert config.rpc_url == "http://rpc:8545"
    assert config.bundler_url == "http://bundler:4337"
    assert config.chain_id == 84532
    assert config.entry_point_version == "0.8"
    assert config.account_variant == "simple"
    assert config.store_path == "/tmp/id.json"
    assert config.request_timeout == 2.5
    assert config.test_mode is False


@pytest.mark.parametrize("env", [
    {"CHAIN_ID": "mainnet"},
    {"CHAIN_ID": "0"},
    {"REQUEST_TIMEOUT": "-1"},
    {"TEST_MODE": "maybe"},
    {"RPC_URL": ""},
])
def test_invalid_values(env):
    with pytest.raises(ConfigurationError):
        SessionConfig.from_env(env)


def test_configs_are_independent():
    first = SessionConfig(account_variant="simple")
    second = SessionConfig(account_variant="safe", entry_point_version="0.7")
    assert first.account_variant != second.account_variant
