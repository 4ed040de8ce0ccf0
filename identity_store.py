"""
Durable storage for the owner identity and its smart account record
"""

import json
import logging
import os
import secrets
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import portalocker
from eth_account import Account
from web3 import Web3

from exceptions import SigningError, StorageError

logger = logging.getLogger(__name__)

LOCK_TIMEOUT = 10


@dataclass(frozen=True)
class OwnerIdentity:
    """Private key and the address derived from it"""
    private_key: str
    address: str

    @classmethod
    def from_private_key(cls, private_key: str) -> "OwnerIdentity":
        try:
            account = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise SigningError(f"Unusable owner private key: {e}") from e
        return cls(private_key=_normalize_key(private_key), address=account.address)

    @classmethod
    def generate(cls) -> "OwnerIdentity":
        return cls.from_private_key("0x" + secrets.token_hex(32))

    def __repr__(self) -> str:
        return f"OwnerIdentity(address={self.address})"


@dataclass(frozen=True)
class SmartAccountRecord:
    """Persisted binding between an owner key and its smart account"""
    smart_account_address: str
    owner_address: str
    owner_private_key: str
    entry_point_version: Optional[str] = None
    variant: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "smartAccountAddress": self.smart_account_address,
            "ownerAddress": self.owner_address,
            "ownerPrivateKey": self.owner_private_key,
        }
        if self.entry_point_version:
            data["entryPointVersion"] = self.entry_point_version
        if self.variant:
            data["variant"] = self.variant
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SmartAccountRecord":
        if not isinstance(data, dict):
            raise StorageError("Identity record must be a JSON object")
        missing = [k for k in ("smartAccountAddress", "ownerAddress", "ownerPrivateKey") if not data.get(k)]
        if missing:
            raise StorageError(f"Identity record is missing fields: {', '.join(missing)}")
        for key in ("smartAccountAddress", "ownerAddress"):
            try:
                Web3.to_checksum_address(data[key])
            except (ValueError, TypeError) as e:
                raise StorageError(f"Identity record has an invalid {key}: {data[key]!r}") from e
        return cls(
            smart_account_address=data["smartAccountAddress"],
            owner_address=data["ownerAddress"],
            owner_private_key=data["ownerPrivateKey"],
            entry_point_version=data.get("entryPointVersion"),
            variant=data.get("variant"),
        )

    def __repr__(self) -> str:
        return (
            f"SmartAccountRecord(smart_account_address={self.smart_account_address}, "
            f"owner_address={self.owner_address}, variant={self.variant}, "
            f"entry_point_version={self.entry_point_version})"
        )


class InMemoryIdentityStore:
    """Identity store kept in process memory"""

    def __init__(self, record: Optional[SmartAccountRecord] = None):
        self._record = record

    def load(self) -> Optional[SmartAccountRecord]:
        return self._record

    def persist(self, record: SmartAccountRecord) -> bool:
        if self._record is not None:
            return False
        self._record = record
        return True


class JsonFileIdentityStore:
    """Write-once JSON file holding a single smart account record"""

    def __init__(self, path: str):
        self.path = Path(path)

    def _lock(self) -> portalocker.Lock:
        return portalocker.Lock(str(self.path) + '.lock', timeout=LOCK_TIMEOUT)

    def load(self) -> Optional[SmartAccountRecord]:
        """
        Read the persisted record.

        Returns:
            The stored record, or None when nothing has been persisted yet

        Raises:
            StorageError: if the file cannot be read or does not hold a valid record
        """
        if not self.path.exists():
            return None
        try:
            with self._lock():
                return self._read()
        except portalocker.exceptions.LockException as e:
            raise StorageError(f"Could not lock identity store {self.path}: {e}") from e

    def persist(self, record: SmartAccountRecord) -> bool:
        """Store the record unless one already exists; returns True if written"""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self._lock():
                if self._read() is not None:
                    logger.info(f"Identity record already present in {self.path}, keeping it")
                    return False
                self._write(record)
        except portalocker.exceptions.LockException as e:
            raise StorageError(f"Could not lock identity store {self.path}: {e}") from e
        except OSError as e:
            raise StorageError(f"Could not write identity store {self.path}: {e}") from e

        logger.info(f"Persisted smart account record to {self.path}")
        return True

    def _read(self) -> Optional[SmartAccountRecord]:
        try:
            content = self.path.read_text()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Could not read identity store {self.path}: {e}") from e

        if not content.strip():
            raise StorageError(f"Identity store {self.path} is empty")
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise StorageError(f"Identity store {self.path} is corrupt: {e}") from e
        return SmartAccountRecord.from_dict(data)

    def _write(self, record: SmartAccountRecord) -> None:
        tmp_path = self.path.with_name(self.path.name + '.tmp')
        with open(tmp_path, 'w') as f:
            json.dump(record.to_dict(), f, indent=2)
        if os.name == 'posix':
            os.chmod(tmp_path, stat.S_IRUSR | stat.S_IWUSR)  # 0600
        os.replace(tmp_path, self.path)


def resolve_owner(record: Optional[SmartAccountRecord]) -> OwnerIdentity:
    """Reuse the persisted owner key, or generate a fresh one when nothing is stored"""
    if record is None:
        owner = OwnerIdentity.generate()
        logger.info(f"Generated new owner identity {owner.address}")
        return owner

    try:
        owner = OwnerIdentity.from_private_key(record.owner_private_key)
    except SigningError as e:
        raise StorageError(f"Stored owner key is invalid: {e}") from e

    try:
        stored_address = Web3.to_checksum_address(record.owner_address)
    except ValueError as e:
        raise StorageError(f"Stored owner address is invalid: {e}") from e
    if stored_address != owner.address:
        raise StorageError(
            f"Stored owner address {record.owner_address} does not match its key ({owner.address})"
        )
    return owner


def _normalize_key(private_key: str) -> str:
    key = private_key if isinstance(private_key, str) else bytes(private_key).hex()
    return key if key.startswith("0x") else "0x" + key
