"""
Configuration for smart account sessions
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from exceptions import ConfigurationError

# Local account-abstraction stack (anvil + mock paymaster + alto bundler)
DEFAULT_RPC_URL = "http://localhost:8545"
DEFAULT_PAYMASTER_URL = "http://localhost:3000"
DEFAULT_BUNDLER_URL = "http://localhost:4337"
DEFAULT_CHAIN_ID = 31337

DEFAULT_ENTRY_POINT_VERSION = "0.7"
DEFAULT_ACCOUNT_VARIANT = "safe"
DEFAULT_STORE_PATH = ".cache.json"
DEFAULT_REQUEST_TIMEOUT = 30

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class SessionConfig:
    """Configuration for a single smart account session"""

    rpc_url: str = DEFAULT_RPC_URL
    paymaster_url: str = DEFAULT_PAYMASTER_URL
    bundler_url: str = DEFAULT_BUNDLER_URL
    chain_id: int = DEFAULT_CHAIN_ID
    entry_point_version: str = DEFAULT_ENTRY_POINT_VERSION
    account_variant: str = DEFAULT_ACCOUNT_VARIANT
    store_path: str = DEFAULT_STORE_PATH
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    test_mode: bool = True

    def __post_init__(self):
        if self.chain_id <= 0:
            raise ConfigurationError(f"Invalid chain id: {self.chain_id}")
        if self.request_timeout <= 0:
            raise ConfigurationError(f"Invalid request timeout: {self.request_timeout}")
        for name in ("rpc_url", "paymaster_url", "bundler_url"):
            if not getattr(self, name):
                raise ConfigurationError(f"{name} must not be empty")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SessionConfig":
        """Build a configuration from environment variables"""
        env = os.environ if environ is None else environ
        try:
            chain_id = int(env.get("CHAIN_ID", DEFAULT_CHAIN_ID))
            request_timeout = float(env.get("REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT))
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}") from e

        return cls(
            rpc_url=env.get("RPC_URL", DEFAULT_RPC_URL),
            paymaster_url=env.get("PAYMASTER_URL", DEFAULT_PAYMASTER_URL),
            bundler_url=env.get("BUNDLER_URL", DEFAULT_BUNDLER_URL),
            chain_id=chain_id,
            entry_point_version=env.get("ENTRY_POINT_VERSION", DEFAULT_ENTRY_POINT_VERSION),
            account_variant=env.get("ACCOUNT_VARIANT", DEFAULT_ACCOUNT_VARIANT).lower(),
            store_path=env.get("IDENTITY_STORE_PATH", os.path.join(os.getcwd(), DEFAULT_STORE_PATH)),
            request_timeout=request_timeout,
            test_mode=_parse_bool(env.get("TEST_MODE", "true"), "TEST_MODE"),
        )


def _parse_bool(value: str, name: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")
