"""
Registry of supported ERC-4337 entry points and account variant compatibility
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, List

from exceptions import UnsupportedVersionError

ENTRYPOINT_V07 = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
ENTRYPOINT_V08 = "0x4337084D9E255Ff0702461CF8895CE9E3b5Ff108"

VARIANT_SAFE = "safe"
VARIANT_SIMPLE = "simple"


@dataclass(frozen=True)
class EntryPointSpec:
    """Address and protocol version of an entry point contract"""
    address: str
    version: str


ENTRY_POINTS: Dict[str, EntryPointSpec] = {
    "0.7": EntryPointSpec(address=ENTRYPOINT_V07, version="0.7"),
    "0.8": EntryPointSpec(address=ENTRYPOINT_V08, version="0.8"),
}

# Safe4337Module v0.3.0 is only deployed against EntryPoint v0.7
COMPATIBLE_VERSIONS: Dict[str, FrozenSet[str]] = {
    VARIANT_SAFE: frozenset({"0.7"}),
    VARIANT_SIMPLE: frozenset({"0.7", "0.8"}),
}


def supported_versions() -> List[str]:
    return sorted(ENTRY_POINTS)


def resolve(version: str) -> EntryPointSpec:
    """Look up the entry point for a protocol version"""
    try:
        return ENTRY_POINTS[version]
    except KeyError:
        raise UnsupportedVersionError(
            f"Unsupported entry point version {version!r}, expected one of {supported_versions()}"
        ) from None


def is_compatible(variant_kind: str, version: str) -> bool:
    return version in COMPATIBLE_VERSIONS.get(variant_kind, frozenset())
