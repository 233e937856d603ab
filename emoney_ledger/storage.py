"""
Snapshot Storage Module

Provides an abstract snapshot store and implementations for in-memory
(testing) and JSON file (persistence) backends. The whole account set is
read at start and written at stop; all monetary values are stored as Decimal
strings.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Union
from pathlib import Path
import json
import os
import tempfile

from pydantic import ValidationError

from .accounts import Account
from .errors import InvalidAmount, PersistenceFailure
from .logging_config import get_logger
from .schemas import SnapshotModel


logger = get_logger("emoney.storage")


def encode_snapshot(accounts: Dict[str, Account], indent: Optional[int] = 2) -> str:
    """Serialize accounts to the snapshot JSON document (keys sorted by account id)"""
    model = SnapshotModel.from_accounts(accounts)
    return json.dumps(model.model_dump(mode="json", by_alias=True), indent=indent) + "\n"


def decode_snapshot(text: str) -> Dict[str, Account]:
    """
    Parse a snapshot JSON document

    Blank text is an empty snapshot, matching a freshly created file.

    Raises:
        PersistenceFailure: If the text is not valid JSON or not a valid snapshot
    """
    if not text.strip():
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise PersistenceFailure(f"Snapshot is not valid JSON: {e}") from e
    if data is None:
        return {}
    try:
        return SnapshotModel.model_validate(data).to_accounts()
    except ValidationError as e:
        raise PersistenceFailure(f"Snapshot failed validation: {e}") from e
    except InvalidAmount as e:
        raise PersistenceFailure(f"Snapshot holds an unsupported amount: {e}") from e


class SnapshotStore(ABC):
    """Abstract interface for snapshot backends"""

    @abstractmethod
    def load(self) -> Dict[str, Account]:
        """Load the full account set; empty when no snapshot exists"""
        pass

    @abstractmethod
    def save(self, accounts: Dict[str, Account]) -> None:
        """Replace the stored snapshot with the given account set"""
        pass

    @abstractmethod
    def exists(self) -> bool:
        """Check if a snapshot has been stored"""
        pass


class InMemorySnapshotStore(SnapshotStore):
    """In-memory snapshot store for testing; keeps the encoded document"""

    def __init__(self, document: Optional[str] = None, indent: Optional[int] = 2):
        self.document = document
        self.indent = indent

    def load(self) -> Dict[str, Account]:
        if self.document is None:
            return {}
        return decode_snapshot(self.document)

    def save(self, accounts: Dict[str, Account]) -> None:
        self.document = encode_snapshot(accounts, self.indent)

    def exists(self) -> bool:
        return self.document is not None


class JSONFileSnapshotStore(SnapshotStore):
    """JSON file snapshot store with atomic replace-on-write"""

    def __init__(self, path: Union[str, Path] = "accounts.json", indent: Optional[int] = 2):
        self.path = Path(path)
        self.indent = indent

    def exists(self) -> bool:
        return self.path.exists()

    def is_empty(self) -> bool:
        """True when the file is missing or has no content"""
        try:
            return self.path.stat().st_size == 0
        except FileNotFoundError:
            return True

    def load(self) -> Dict[str, Account]:
        """
        Load accounts from the snapshot file

        Raises:
            PersistenceFailure: If the file cannot be read or parsed
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info(f"No snapshot at {self.path}, starting empty")
            return {}
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceFailure(f"Failed to read snapshot {self.path}: {e}") from e

        accounts = decode_snapshot(text)
        logger.info(f"Loaded {len(accounts)} accounts from {self.path}")
        return accounts

    def save(self, accounts: Dict[str, Account]) -> None:
        """
        Write accounts to a temporary file, then move it over the snapshot

        Raises:
            PersistenceFailure: If the snapshot cannot be written
        """
        document = encode_snapshot(accounts, self.indent)
        directory = self.path.parent
        tmp_path = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(directory)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(document)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as e:
            raise PersistenceFailure(f"Failed to save snapshot {self.path}: {e}") from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

        logger.info(f"Saved {len(accounts)} accounts to {self.path}")
