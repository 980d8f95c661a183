"""
cipherbet/protocol/storage.py

Local persistence for the client's own bet records.

The ledger keeps bet units and choice encrypted; the only cleartext copy is
what this client recorded when it placed the bet. Records are stored under
`bet_{round_id}_{address}` through a pluggable backend:

1. MemoryBackend - volatile, for tests and throwaway sessions
2. FileBackend - one JSON file per key, survives restarts

Storage is best-effort: a failed write is logged, never raised, because
the bet itself already succeeded on the ledger.
"""

import json
import logging
import hashlib
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

import trio

from ..config import BET_RECORD_PREFIX, DEFAULT_STORAGE_DIR
from ..models import LocalBetRecord

logger = logging.getLogger("cipherbet.protocol.storage")


def bet_record_key(round_id: int, address: str) -> str:
    """Storage key for a participant's record in a round."""
    return f"{BET_RECORD_PREFIX}{round_id}_{address.lower()}"


# ============================================================================
# STORAGE BACKENDS
# ============================================================================

class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Get a value by key."""
        pass

    @abstractmethod
    async def put(self, key: str, value: bytes) -> bool:
        """Store a value."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a value."""
        pass

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> List[str]:
        """List keys with optional prefix filter."""
        pass


class MemoryBackend(StorageBackend):
    """In-memory storage backend."""

    def __init__(self):
        self._data: Dict[str, bytes] = {}

    async def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    async def put(self, key: str, value: bytes) -> bool:
        self._data[key] = value
        return True

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def list_keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._data if key.startswith(prefix)]


class FileBackend(StorageBackend):
    """Local file storage backend."""

    def __init__(self, storage_dir: Path = None):
        self.storage_dir = Path(storage_dir or DEFAULT_STORAGE_DIR)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self._index_file = self.storage_dir / "index.json"
        self._index: Dict[str, str] = self._load_index()

    def _load_index(self) -> Dict[str, str]:
        """Load key -> filename index from disk."""
        if self._index_file.exists():
            try:
                with open(self._index_file, "r") as f:
                    return json.load(f)
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load storage index: {e}")
        return {}

    def _save_index(self) -> None:
        try:
            with open(self._index_file, "w") as f:
                json.dump(self._index, f)
        except OSError as e:
            logger.error(f"Failed to save storage index: {e}")

    def _key_to_path(self, key: str) -> Path:
        # Hash keys so addresses never hit filesystem naming rules
        hash_name = hashlib.sha256(key.encode()).hexdigest()[:32]
        return self.storage_dir / f"{hash_name}.json"

    async def get(self, key: str) -> Optional[bytes]:
        if key not in self._index:
            return None
        path = self._key_to_path(key)
        try:
            return await trio.to_thread.run_sync(path.read_bytes)
        except OSError as e:
            logger.error(f"Failed to read {key}: {e}")
            return None

    async def put(self, key: str, value: bytes) -> bool:
        path = self._key_to_path(key)
        try:
            await trio.to_thread.run_sync(path.write_bytes, value)
        except OSError as e:
            logger.error(f"Failed to write {key}: {e}")
            return False
        self._index[key] = path.name
        self._save_index()
        return True

    async def delete(self, key: str) -> bool:
        if key not in self._index:
            return False
        path = self._key_to_path(key)
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            logger.error(f"Failed to delete {key}: {e}")
            return False
        del self._index[key]
        self._save_index()
        return True

    async def list_keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._index if key.startswith(prefix)]


# ============================================================================
# BET RECORD STORE
# ============================================================================

class BetRecordStore:
    """
    Typed access to LocalBetRecords on top of a StorageBackend.

    Usage:
        store = BetRecordStore()                      # memory
        store = BetRecordStore.on_disk(Path("~/bets"))

        await store.record_bet(round_id, address, units, choice, value_wei)
        record = await store.get(round_id, address)
    """

    def __init__(self, backend: Optional[StorageBackend] = None):
        self.backend = backend or MemoryBackend()
        self._lock = trio.Lock()

    @classmethod
    def on_disk(cls, storage_dir: Optional[Path] = None) -> "BetRecordStore":
        return cls(FileBackend(storage_dir))

    async def get(self, round_id: int, address: str) -> Optional[LocalBetRecord]:
        """Load a record, or None if absent or unreadable."""
        data = await self.backend.get(bet_record_key(round_id, address))
        if data is None:
            return None
        try:
            return LocalBetRecord.from_dict(json.loads(data.decode()))
        except (ValueError, TypeError) as e:
            logger.warning(f"Discarding corrupt bet record for round {round_id}: {e}")
            return None

    async def put(self, record: LocalBetRecord) -> bool:
        key = bet_record_key(record.round_id, record.participant)
        ok = await self.backend.put(key, json.dumps(record.to_dict()).encode())
        if not ok:
            logger.warning(f"Bet record for round {record.round_id} not persisted")
        return ok

    async def record_bet(
        self,
        round_id: int,
        address: str,
        units: int,
        choice: bool,
        value_wei: int,
    ) -> LocalBetRecord:
        """Fold a newly placed bet into the participant's record."""
        async with self._lock:
            record = await self.get(round_id, address)
            if record is None:
                record = LocalBetRecord(round_id=round_id, participant=address)
            record.add(units, choice, value_wei)
            await self.put(record)
            return record

    async def delete(self, round_id: int, address: str) -> bool:
        return await self.backend.delete(bet_record_key(round_id, address))

    async def list_records(self, address: Optional[str] = None) -> List[LocalBetRecord]:
        """All stored records, optionally for one participant."""
        records = []
        for key in await self.backend.list_keys(BET_RECORD_PREFIX):
            data = await self.backend.get(key)
            if data is None:
                continue
            try:
                record = LocalBetRecord.from_dict(json.loads(data.decode()))
            except (ValueError, TypeError):
                continue
            if address is None or record.participant.lower() == address.lower():
                records.append(record)
        return sorted(records, key=lambda r: r.round_id)
