"""
Append-only, content-addressed record store.

RecordStore implements the parts every backend shares: content addressing,
bounded confirmation polling and integrity checks on retrieval. Backends supply
upload, confirmation status, raw reads and the ordered listing.

- MemoryRecordStore: in-process, used by tests and single-process drivers.
- FileRecordStore: blobs on disk plus an append-only JSONL listing, so several
  processes on one machine can share a protocol run.
"""

from __future__ import annotations

import enum
import hashlib
import json
import logging
import threading
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from zkret.config import DEFAULT_CONFIRM_ATTEMPTS, DEFAULT_CONFIRM_INTERVAL
from zkret.errors import IntegrityError, StorageError, StorageTimeout

logger = logging.getLogger(__name__)

ADDRESS_PREFIX = "sha256:"


class RecordType(str, enum.Enum):
    ENTER = "enter_transaction"
    CHOICE = "choice_transaction"
    REVEAL = "reveal_transaction"


@dataclass(frozen=True)
class Record:
    id: str
    content_address: str
    timestamp: int
    record_type: RecordType


def content_address(data: bytes) -> str:
    return ADDRESS_PREFIX + hashlib.sha256(data).hexdigest()


def _digest(address: str) -> str:
    if not address.startswith(ADDRESS_PREFIX):
        raise StorageError(f"unsupported content address: {address}")
    digest = address[len(ADDRESS_PREFIX):]
    if len(digest) != 64 or any(c not in "0123456789abcdef" for c in digest):
        raise StorageError(f"malformed content address: {address}")
    return digest


class RecordStore:
    """
    Base class for record stores.

    store() uploads, then polls for confirmation up to ``confirm_attempts`` times with
    ``confirm_interval`` seconds between polls. A record only shows up in list() once
    it is confirmed, so a StorageTimeout leaves the listing untouched.
    """

    def __init__(
        self,
        *,
        confirm_attempts: int = DEFAULT_CONFIRM_ATTEMPTS,
        confirm_interval: float = DEFAULT_CONFIRM_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if confirm_attempts < 1:
            raise ValueError("confirm_attempts must be at least 1")
        self.confirm_attempts = confirm_attempts
        self.confirm_interval = confirm_interval
        self._sleep = sleep
        self._clock = clock

    def store(self, data: bytes, record_type: RecordType) -> Record:
        address = self._upload(bytes(data))
        self._wait_for_confirmation(address)
        record = Record(
            id=str(uuid.uuid4()),
            content_address=address,
            timestamp=int(self._clock()),
            record_type=RecordType(record_type),
        )
        self._append(record)
        logger.info("stored %s record %s (%s)", record.record_type.value, record.id, address)
        return record

    def retrieve(self, address: str) -> bytes:
        digest = _digest(address)
        data = self._read(address)
        if hashlib.sha256(data).hexdigest() != digest:
            raise IntegrityError(f"content does not match address {address}")
        return data

    def list(self, record_type: Optional[RecordType] = None) -> List[Record]:
        """Records in storage arrival order, optionally filtered by type."""
        records = self._records()
        if record_type is None:
            return records
        return [r for r in records if r.record_type == record_type]

    def _wait_for_confirmation(self, address: str) -> None:
        for attempt in range(1, self.confirm_attempts + 1):
            if self._is_confirmed(address):
                return
            logger.debug("%s not confirmed (attempt %d/%d)", address, attempt, self.confirm_attempts)
            if attempt < self.confirm_attempts:
                self._sleep(self.confirm_interval)
        raise StorageTimeout(
            f"{address} not confirmed after {self.confirm_attempts} attempts"
        )

    # Backend hooks

    def _upload(self, data: bytes) -> str:
        raise NotImplementedError

    def _is_confirmed(self, address: str) -> bool:
        raise NotImplementedError

    def _read(self, address: str) -> bytes:
        raise NotImplementedError

    def _append(self, record: Record) -> None:
        raise NotImplementedError

    def _records(self) -> List[Record]:
        raise NotImplementedError


# ---------------------------
# In-memory backend
# ---------------------------

class MemoryRecordStore(RecordStore):
    """
    ``confirm_after`` is the number of unconfirmed polls before a blob counts as
    confirmed; ``None`` means it never confirms.
    """

    def __init__(self, *, confirm_after: Optional[int] = 0, **kwargs) -> None:
        super().__init__(**kwargs)
        self.confirm_after = confirm_after
        self._blobs: Dict[str, bytes] = {}
        self._polls: Dict[str, int] = {}
        self._listing: List[Record] = []
        self._lock = threading.Lock()

    def _upload(self, data: bytes) -> str:
        address = content_address(data)
        with self._lock:
            self._blobs[address] = data
        return address

    def _is_confirmed(self, address: str) -> bool:
        with self._lock:
            polls = self._polls.get(address, 0)
            self._polls[address] = polls + 1
        return self.confirm_after is not None and polls >= self.confirm_after

    def _read(self, address: str) -> bytes:
        try:
            return self._blobs[address]
        except KeyError:
            raise StorageError(f"no content at {address}")

    def _append(self, record: Record) -> None:
        with self._lock:
            self._listing.append(record)

    def _records(self) -> List[Record]:
        with self._lock:
            return list(self._listing)


# ---------------------------
# File backend
# ---------------------------

class FileRecordStore(RecordStore):
    """
    Layout under ``root``::

        objects/<sha256 hex>   raw record bytes
        records.jsonl          one JSON object per confirmed record, in arrival order

    A blob counts as confirmed once it is durably on disk.
    """

    def __init__(self, root, **kwargs) -> None:
        super().__init__(**kwargs)
        self.root = Path(root)
        self.objects_dir = self.root / "objects"
        self.index_path = self.root / "records.jsonl"
        try:
            self.objects_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"cannot create store at {self.root}: {e}")
        self._lock = threading.Lock()

    def _blob_path(self, address: str) -> Path:
        return self.objects_dir / _digest(address)

    def _upload(self, data: bytes) -> str:
        address = content_address(data)
        path = self._blob_path(address)
        if path.exists():
            return address
        # one temp file per writer; concurrent uploads of the same blob must not share it
        tmp = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            tmp.write_bytes(data)
            tmp.replace(path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            if not path.is_file():
                raise StorageError(f"upload of {address} failed: {e}")
        return address

    def _is_confirmed(self, address: str) -> bool:
        return self._blob_path(address).is_file()

    def _read(self, address: str) -> bytes:
        try:
            return self._blob_path(address).read_bytes()
        except FileNotFoundError:
            raise StorageError(f"no content at {address}")
        except OSError as e:
            raise StorageError(f"cannot read {address}: {e}")

    def _append(self, record: Record) -> None:
        line = json.dumps(
            {
                "id": record.id,
                "content_address": record.content_address,
                "timestamp": record.timestamp,
                "record_type": record.record_type.value,
            },
            sort_keys=True,
        )
        try:
            with self._lock, self.index_path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            raise StorageError(f"cannot append to {self.index_path}: {e}")

    def _records(self) -> List[Record]:
        if not self.index_path.exists():
            return []
        records: List[Record] = []
        try:
            with self.index_path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, 1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                        records.append(Record(
                            id=data["id"],
                            content_address=data["content_address"],
                            timestamp=int(data["timestamp"]),
                            record_type=RecordType(data["record_type"]),
                        ))
                    except (ValueError, KeyError, TypeError) as e:
                        raise StorageError(f"corrupt listing at line {line_num}: {e}")
        except OSError as e:
            raise StorageError(f"cannot read {self.index_path}: {e}")
        return records
