"""
Exceptions raised by the smart account session manager
"""

from typing import Any, Optional


class SmartAccountError(Exception):
    """Base exception for smart account session errors"""
    pass


class StorageError(SmartAccountError):
    """Raised when the persisted identity record is unreadable or corrupt"""
    pass


class ConfigurationError(SmartAccountError):
    """Raised when the session configuration is invalid"""
    pass


class UnsupportedVersionError(ConfigurationError):
    """Raised when an entry point version is not known to the registry"""
    pass


class IncompatibleConfigurationError(ConfigurationError):
    """Raised when an account variant cannot run against the selected entry point"""
    pass


class FeeEstimationError(SmartAccountError):
    """Raised when gas prices cannot be obtained from the paymaster"""
    pass


class NetworkError(SmartAccountError):
    """Raised on transport-level failures talking to a remote service"""
    pass


class RemoteTimeoutError(NetworkError):
    """Raised when a remote call exceeds its timeout"""
    pass


class SigningError(SmartAccountError):
    """Raised when the owner key cannot sign a user operation"""
    pass


class RemoteRejection(SmartAccountError):
    """Raised when a service answers with a JSON-RPC error object"""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        self.code = code
        self.data = data
        super().__init__(message)


class PaymasterRejection(RemoteRejection):
    """Raised when the paymaster refuses to sponsor a user operation"""
    pass


class BundlerRejection(RemoteRejection):
    """Raised when the bundler refuses a user operation"""
    pass
