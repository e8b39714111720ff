"""Expense mutations and reads with offline fallback.

Every operation probes the service first. When it is reachable the change is
sent at once; when it is not, or the request fails, the change is applied to the
local replica and queued for the synchronizer. Callers never see a connectivity
error, only the resulting record.
"""
import logging
from typing import Any, Dict, List, Optional, Set

from PySide6 import QtCore

from .connectivity import ConnectivityProber, ConnectivityState
from .models import (
    ExpenseFilters,
    ExpenseRecord,
    MutationType,
    PendingMutation,
    is_local_id,
    new_local_id,
    normalize_expense,
    now_str,
)
from .repository import MetaRepository, QueueRepository, ReplicaRepository
from .service import ExpenseService
from .sync import SyncAPI
from ..data import data
from ..settings.lib import DEFAULT_CATEGORIES
from ..status import status

REMOTE_ERRORS = (status.ServiceUnavailableException, status.RemoteRequestException)


class ExpenseAPI(QtCore.QObject):
    """Create, update, delete and read expenses.

    Signals:
        expensesChanged (list): Emitted with the replica contents after a mutation,
            and with the returned records after a read.
    """
    expensesChanged = QtCore.Signal(list)

    def __init__(
            self,
            service: ExpenseService,
            replica: ReplicaRepository,
            queue: QueueRepository,
            meta: MetaRepository,
            state: ConnectivityState,
            prober: ConnectivityProber,
            sync_api: SyncAPI,
            categories: Optional[List[str]] = None,
            parent: Optional[QtCore.QObject] = None,
    ) -> None:
        super().__init__(parent)
        self.service = service
        self.replica = replica
        self.queue = queue
        self.meta = meta
        self.state = state
        self.prober = prober
        self.sync_api = sync_api
        self.categories: List[str] = list(categories or DEFAULT_CATEGORIES)
        self._reading = False

    def _go_offline(self, ex: Exception) -> None:
        logging.warning(f'Remote call failed, falling back to local data: {ex}')
        self.state.set_offline(True)

    def _emit_replica(self) -> None:
        self.expensesChanged.emit(self.replica.load())

    def create(self, expense: Dict[str, Any]) -> ExpenseRecord:
        """Create an expense.

        Args:
            expense: Raw input with ``amount``, ``category`` and optional ``description`` and ``date``.

        Returns:
            ExpenseRecord: The service's record, or a local record when offline.

        Raises:
            status.ExpenseInvalidException: If the input cannot be normalized.
        """
        payload = normalize_expense(expense, self.categories)

        if self.prober.probe():
            try:
                record = self.service.create_expense(payload)
            except REMOTE_ERRORS as ex:
                self._go_offline(ex)
            else:
                self.replica.append(record)
                logging.debug(f'Created expense "{record.id}" on the service.')
                self._emit_replica()
                return record

        timestamp = now_str()
        record = ExpenseRecord(
            id=new_local_id(),
            created_at=timestamp,
            updated_at=timestamp,
            is_local=True,
            **payload,
        )
        self.replica.append(record)
        self.queue.enqueue(PendingMutation(type=MutationType.Create, data=payload, ref_id=record.id))
        logging.info(f'Saved expense locally as "{record.id}", it will be synced later.')
        self._emit_replica()
        return record

    def update(self, record_id: str, expense: Dict[str, Any]) -> ExpenseRecord:
        """Update an expense.

        A record that only exists locally has its queued CREATE amended instead of
        queueing an UPDATE the service could not resolve.

        Args:
            record_id: Id of the record to update.
            expense: Raw input, as for :meth:`create`.

        Returns:
            ExpenseRecord: The updated record.

        Raises:
            status.ExpenseInvalidException: If the input cannot be normalized.
        """
        payload = normalize_expense(expense, self.categories)
        existing = self.replica.get(record_id)
        record = ExpenseRecord(
            id=record_id,
            created_at=existing.created_at if existing else None,
            updated_at=now_str(),
            is_local=is_local_id(record_id),
            **payload,
        )

        if not self.replica.replace(record):
            self.replica.append(record)

        if is_local_id(record_id):
            if not self.queue.amend_create(record_id, payload):
                logging.warning(
                    f'No pending CREATE for local expense "{record_id}", the change is only kept locally.'
                )
            self._emit_replica()
            return record

        if self.prober.probe():
            try:
                record = self.service.update_expense(record_id, payload)
            except REMOTE_ERRORS as ex:
                self._go_offline(ex)
            else:
                self.replica.replace(record)
                self._emit_replica()
                return record

        self.queue.enqueue(PendingMutation(type=MutationType.Update, data=payload, ref_id=record_id))
        logging.info(f'Queued update of expense "{record_id}".')
        self._emit_replica()
        return record

    def delete(self, record_id: str) -> None:
        """Delete an expense.

        The record leaves the replica at once. For a local record the queued CREATE
        is cancelled and nothing is sent to the service.

        Args:
            record_id: Id of the record to delete.
        """
        self.replica.remove(record_id)

        if is_local_id(record_id):
            self.queue.cancel_create(record_id)
            self._emit_replica()
            return

        if self.prober.probe():
            try:
                self.service.delete_expense(record_id)
            except REMOTE_ERRORS as ex:
                self._go_offline(ex)
            else:
                logging.debug(f'Deleted expense "{record_id}" on the service.')
                self._emit_replica()
                return

        self.queue.enqueue(PendingMutation(type=MutationType.Delete, ref_id=record_id))
        logging.info(f'Queued deletion of expense "{record_id}".')
        self._emit_replica()

    def _pending_local_ids(self) -> Set[str]:
        return {
            m.ref_id for m in self.queue.peek_all()
            if m.type == MutationType.Create and m.ref_id
        }

    def _local_fallback(self, filters: ExpenseFilters) -> List[ExpenseRecord]:
        records = filters.apply(self.replica.load())
        logging.debug(f'Serving {len(records)} expense(s) from the local replica.')
        return records

    def get_all(self, filters: Optional[ExpenseFilters] = None) -> List[ExpenseRecord]:
        """Read expenses, from the service when reachable, else from the replica.

        Online, pending mutations are synced first and the replica is refreshed
        from the result. The service answer replaces the replica, filtered or not;
        only local records whose CREATE is still queued are kept alongside it.

        Offline, the filters are applied to the replica.

        Args:
            filters: Optional category and inclusive date range filters.

        Returns:
            List[ExpenseRecord]: The matching records.
        """
        filters = filters or ExpenseFilters()
        self._reading = True
        try:
            records = self._get_all(filters)
        finally:
            self._reading = False

        self.expensesChanged.emit(records)
        return records

    def _get_all(self, filters: ExpenseFilters) -> List[ExpenseRecord]:
        if not self.prober.probe():
            return self._local_fallback(filters)

        self.sync_api.sync_pending()

        try:
            remote = self.service.list_expenses(filters)
        except REMOTE_ERRORS as ex:
            self._go_offline(ex)
            return self._local_fallback(filters)

        pending_ids = self._pending_local_ids()
        cached = self.replica.load()
        remote_ids = {r.id for r in remote}
        pending = [r for r in cached if r.id in pending_ids and r.id not in remote_ids]
        result = remote + [r for r in pending if filters.matches(r)]

        # Local records stay until their CREATE is synced, matching or not
        self.replica.save(remote + pending)

        logging.debug(f'Refreshed {len(remote)} expense(s) from the service, {len(pending)} pending locally.')
        return result

    def filter_expenses(
            self,
            category: Optional[str] = None,
            date_from: Optional[str] = None,
            date_to: Optional[str] = None,
    ) -> List[ExpenseRecord]:
        return self.get_all(ExpenseFilters(category=category, date_from=date_from, date_to=date_to))

    @QtCore.Slot()
    def refresh(self) -> None:
        """Re-read all expenses unless a read is already running."""
        if self._reading:
            return
        self.get_all()

    def get_summary(self) -> data.ExpenseSummary:
        """Total, count and per-category totals.

        Returns:
            data.ExpenseSummary: From the service statistics when online, else computed locally.
        """
        if self.prober.probe():
            try:
                return data.from_statistics(self.service.fetch_statistics())
            except REMOTE_ERRORS as ex:
                self._go_offline(ex)
        return data.summarize(self.replica.load())

    def pending_count(self) -> int:
        return self.queue.count()

    def last_sync_time(self) -> Optional[str]:
        return self.meta.get_last_sync()

    def is_offline(self) -> bool:
        return self.state.is_offline()
