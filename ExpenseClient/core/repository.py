"""Repositories over the local key-value store.

Each repository owns one logical table of the local state:

- :class:`ReplicaRepository` – the cached list of expense records.
- :class:`QueueRepository` – the ordered queue of pending mutations.
- :class:`MetaRepository` – the last sync time and the offline flag.

Values are JSON strings. A value that cannot be parsed is treated as empty and
logged; there is no migration scheme, so a format change requires a reset.
"""
import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from PySide6 import QtCore

from .database import KeyValueStore, StorageKey
from .models import ExpenseRecord, MutationType, PendingMutation, new_queue_id, now_str


def _load_json(store: KeyValueStore, key: str, default: Any) -> Any:
    """Read and decode a JSON value, falling back to ``default`` if missing or corrupt."""
    raw = store.get(key)
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as ex:
        logging.warning(f'Stored value for "{key}" is not valid JSON, treating it as empty: {ex}')
        return default


def _dump_json(store: KeyValueStore, key: str, value: Any) -> None:
    store.set(key, json.dumps(value, ensure_ascii=False))


class ReplicaRepository:
    """The local replica: the full list of expense records, stored as one unit."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def load(self) -> List[ExpenseRecord]:
        """Load every cached record.

        Returns:
            List[ExpenseRecord]: Records in stored order. Unreadable entries are skipped.
        """
        data = _load_json(self.store, StorageKey.Expenses.value, [])
        if not isinstance(data, list):
            logging.warning(f'Cached expenses are not a list ({type(data)}), treating them as empty.')
            return []

        records: List[ExpenseRecord] = []
        for item in data:
            try:
                records.append(ExpenseRecord.from_dict(item))
            except (KeyError, TypeError, AttributeError) as ex:
                logging.warning(f'Skipping unreadable cached expense {item!r}: {ex}')
        return records

    def save(self, records: Iterable[ExpenseRecord]) -> None:
        """Replace the cached collection.

        Records sharing an id are collapsed, the last one wins.
        """
        unique: Dict[str, ExpenseRecord] = {}
        for record in records:
            unique.pop(record.id, None)
            unique[record.id] = record
        _dump_json(self.store, StorageKey.Expenses.value, [r.to_dict() for r in unique.values()])
        logging.debug(f'Saved {len(unique)} expense(s) to the local replica.')

    def append(self, record: ExpenseRecord) -> None:
        records = [r for r in self.load() if r.id != record.id]
        records.append(record)
        self.save(records)

    def replace(self, record: ExpenseRecord) -> bool:
        """Replace the record with the same id in place.

        Returns:
            bool: False if no record has that id.
        """
        records = self.load()
        for idx, existing in enumerate(records):
            if existing.id == record.id:
                records[idx] = record
                self.save(records)
                return True
        return False

    def remove(self, record_id: str) -> bool:
        """Remove the record with the given id.

        Returns:
            bool: True if a record was removed.
        """
        records = self.load()
        kept = [r for r in records if r.id != record_id]
        if len(kept) == len(records):
            return False
        self.save(kept)
        return True

    def get(self, record_id: str) -> Optional[ExpenseRecord]:
        return next((r for r in self.load() if r.id == record_id), None)


class QueueRepository(QtCore.QObject):
    """Durable FIFO queue of pending mutations.

    Every operation reads, modifies and writes the whole queue within a single call,
    so no change is lost to an interleaved operation.

    Signals:
        queueChanged (int): Emitted with the new queue size after every change.
    """
    queueChanged = QtCore.Signal(int)

    def __init__(self, store: KeyValueStore, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.store = store

    def _write(self, mutations: List[PendingMutation]) -> None:
        _dump_json(self.store, StorageKey.PendingSync.value, [m.to_dict() for m in mutations])
        self.queueChanged.emit(len(mutations))

    def enqueue(self, mutation: PendingMutation) -> PendingMutation:
        """Append a mutation, stamping its queue id and enqueue time.

        Args:
            mutation: The mutation to queue.

        Returns:
            PendingMutation: The stamped mutation.
        """
        mutation.queue_id = new_queue_id()
        mutation.enqueued_at = now_str()

        queue = self.peek_all()
        queue.append(mutation)
        self._write(queue)
        logging.debug(f'Queued {mutation.type.value} for "{mutation.ref_id}"; new size: {len(queue)}')
        return mutation

    def peek_all(self) -> List[PendingMutation]:
        """Return the queue contents in FIFO order."""
        data = _load_json(self.store, StorageKey.PendingSync.value, [])
        if not isinstance(data, list):
            logging.warning(f'Pending queue is not a list ({type(data)}), treating it as empty.')
            return []

        queue: List[PendingMutation] = []
        for item in data:
            try:
                queue.append(PendingMutation.from_dict(item))
            except (KeyError, TypeError, ValueError, AttributeError) as ex:
                logging.warning(f'Dropping unreadable queued mutation {item!r}: {ex}')
        return queue

    def replace_with(self, mutations: List[PendingMutation]) -> None:
        """Overwrite the persisted queue in one write."""
        self._write(list(mutations))

    def remove(self, queue_ids: Iterable[str]) -> int:
        """Remove entries by queue id, keeping everything else in order.

        Returns:
            int: Number of entries removed.
        """
        ids = set(queue_ids)
        queue = self.peek_all()
        kept = [m for m in queue if m.queue_id not in ids]
        removed = len(queue) - len(kept)
        if not kept:
            self.clear()
        elif removed:
            self._write(kept)
        return removed

    def clear(self) -> None:
        self.store.remove(StorageKey.PendingSync.value)
        self.queueChanged.emit(0)

    def count(self) -> int:
        return len(self.peek_all())

    def cancel_create(self, local_id: str) -> int:
        """Drop queued CREATE entries for a record that only exists locally.

        Args:
            local_id: The temporary id the CREATE was recorded under.

        Returns:
            int: Number of entries removed.
        """
        queue = self.peek_all()
        ids = [m.queue_id for m in queue if m.type == MutationType.Create and m.ref_id == local_id]
        if not ids:
            logging.debug(f'No queued CREATE found for "{local_id}".')
            return 0
        removed = self.remove(ids)
        logging.info(f'Cancelled {removed} queued CREATE(s) for local expense "{local_id}".')
        return removed

    def amend_create(self, local_id: str, data: Dict[str, Any]) -> bool:
        """Fold new data into the queued CREATE of a local record.

        Returns:
            bool: False if no CREATE is queued for the id.
        """
        queue = self.peek_all()
        for mutation in queue:
            if mutation.type == MutationType.Create and mutation.ref_id == local_id:
                mutation.data = dict(data)
                self._write(queue)
                logging.debug(f'Amended queued CREATE for local expense "{local_id}".')
                return True
        return False

    def has_create(self, local_id: str) -> bool:
        return any(m.type == MutationType.Create and m.ref_id == local_id for m in self.peek_all())


class MetaRepository:
    """Small metadata values: last successful sync and the offline flag."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def get_last_sync(self) -> Optional[str]:
        value = _load_json(self.store, StorageKey.LastSync.value, None)
        return value if isinstance(value, str) else None

    def stamp(self) -> str:
        """Record the current time as the last successful sync.

        Returns:
            str: The recorded ISO timestamp.
        """
        value = now_str()
        _dump_json(self.store, StorageKey.LastSync.value, value)
        return value

    def get_offline(self) -> bool:
        return _load_json(self.store, StorageKey.OfflineMode.value, False) is True

    def set_offline(self, value: bool) -> None:
        _dump_json(self.store, StorageKey.OfflineMode.value, bool(value))
