"""Replay of queued mutations against the expense service.

Mutations recorded while offline are replayed strictly in the order they were
queued. A failing entry never aborts the batch: it stays in the queue and is
retried by the next sync, together with every later entry that targets the same
record, so an UPDATE or DELETE is never sent ahead of the CREATE it depends on.

Within a batch, a successful CREATE maps the record's temporary local id to the
id assigned by the service, and later entries for that record are sent with the
service id. The replica itself is only refreshed by the next read.
"""
import dataclasses
import logging
from typing import Dict, List, Optional, Set

from PySide6 import QtCore

from .connectivity import ConnectivityProber, ConnectivityState
from .models import MutationType, PendingMutation, is_local_id
from .repository import MetaRepository, QueueRepository
from .service import ExpenseService
from ..status import status

DEFAULT_SYNC_INTERVAL: int = 30


@dataclasses.dataclass
class SyncResult:
    """Outcome of one sync run."""
    success: bool
    synced: int = 0
    failed: int = 0
    skipped: int = 0
    message: str = ''


class SyncAPI(QtCore.QObject):
    """Drains the pending mutation queue against the expense service.

    Signals:
        syncStarted (): Emitted before a non-empty queue is replayed.
        syncFinished (object): Emitted with the :class:`SyncResult` of every run.
    """
    syncStarted = QtCore.Signal()
    syncFinished = QtCore.Signal(object)

    def __init__(
            self,
            service: ExpenseService,
            queue: QueueRepository,
            meta: MetaRepository,
            state: ConnectivityState,
            prober: ConnectivityProber,
            parent: Optional[QtCore.QObject] = None,
    ) -> None:
        super().__init__(parent)
        self.service = service
        self.queue = queue
        self.meta = meta
        self.state = state
        self.prober = prober
        self._syncing = False

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    def sync_pending(self) -> SyncResult:
        """Replay every queued mutation in FIFO order.

        A call made while a sync is already running, for example from a slot
        connected to the connectivity state, returns without replaying anything.

        Returns:
            SyncResult: Counts of synced, failed and skipped entries.
        """
        if self._syncing:
            logging.debug('Sync already in progress, ignoring trigger.')
            return SyncResult(success=False, message='Sync already in progress')

        self._syncing = True
        try:
            return self._sync_pending()
        finally:
            self._syncing = False

    def _sync_pending(self) -> SyncResult:
        pending = self.queue.peek_all()
        if not pending:
            result = SyncResult(success=True, message='Nothing to sync')
            self.syncFinished.emit(result)
            return result

        if not self.prober.probe():
            logging.info(f'Sync postponed, backend offline ({len(pending)} pending).')
            result = SyncResult(success=False, message='Backend offline')
            self.syncFinished.emit(result)
            return result

        self.syncStarted.emit()
        logging.info(f'Syncing {len(pending)} pending mutation(s)...')

        id_map: Dict[str, str] = {}
        blocked: Set[str] = set()
        done: List[str] = []
        retained: Dict[str, PendingMutation] = {}
        synced = failed = skipped = 0

        try:
            for mutation in pending:
                ref_id = id_map.get(mutation.ref_id, mutation.ref_id)

                if ref_id is not None and ref_id in blocked:
                    logging.debug(f'Holding back {mutation.type.value} "{mutation.queue_id}": "{ref_id}" is blocked.')
                    skipped += 1
                    mutation.ref_id = ref_id
                    retained[mutation.queue_id] = mutation
                    continue

                if mutation.type != MutationType.Create and is_local_id(ref_id):
                    logging.warning(
                        f'Dropping {mutation.type.value} "{mutation.queue_id}": '
                        f'"{ref_id}" was never created on the service.'
                    )
                    done.append(mutation.queue_id)
                    continue

                try:
                    self._replay(mutation, ref_id, id_map)
                except (status.ServiceUnavailableException, status.RemoteRequestException) as ex:
                    logging.warning(f'Failed to sync {mutation.type.value} "{mutation.queue_id}": {ex}')
                    failed += 1
                    if ref_id is not None:
                        blocked.add(ref_id)
                    mutation.ref_id = ref_id
                    retained[mutation.queue_id] = mutation
                    continue

                synced += 1
                done.append(mutation.queue_id)
        finally:
            self._persist(done, retained)

        if synced:
            self.meta.stamp()
        if synced and not failed:
            self.state.set_offline(False)

        result = SyncResult(
            success=failed == 0,
            synced=synced,
            failed=failed,
            skipped=skipped,
            message=f'Synced {synced}, failed {failed}, held back {skipped}',
        )
        logging.info(f'Sync finished: {result.message}.')
        self.syncFinished.emit(result)
        return result

    def _replay(self, mutation: PendingMutation, ref_id: Optional[str], id_map: Dict[str, str]) -> None:
        data = dict(mutation.data or {})
        if mutation.type == MutationType.Create:
            record = self.service.create_expense(data)
            if mutation.ref_id:
                id_map[mutation.ref_id] = record.id
            logging.debug(f'Synced CREATE "{mutation.ref_id}" as "{record.id}".')
        elif mutation.type == MutationType.Update:
            self.service.update_expense(ref_id, data)
            logging.debug(f'Synced UPDATE "{ref_id}".')
        elif mutation.type == MutationType.Delete:
            self.service.delete_expense(ref_id)
            logging.debug(f'Synced DELETE "{ref_id}".')
        else:
            raise status.UnknownException(f'Unknown mutation type: {mutation.type}')

    def _persist(self, done: List[str], retained: Dict[str, PendingMutation]) -> None:
        """Write back the queue, keeping entries queued while the batch ran."""
        if not done and not retained:
            return

        current = self.queue.peek_all()
        kept = [retained.get(m.queue_id, m) for m in current if m.queue_id not in done]
        if kept:
            self.queue.replace_with(kept)
        else:
            self.queue.clear()


class SyncScheduler(QtCore.QObject):
    """Triggers a sync on a timer and when connectivity comes back.

    The timer only syncs while the client is offline with work queued; a restore
    transition of the connectivity state syncs at once. Triggers arriving while a
    sync is running are ignored.

    Args:
        sync_api: The synchronizer to run.
        queue: The pending queue, used to skip idle ticks.
        state: The shared connectivity state.
        interval: Timer interval in seconds.
        refresh: Optional callable run after a sync that pushed at least one entry.
    """

    def __init__(
            self,
            sync_api: SyncAPI,
            queue: QueueRepository,
            state: ConnectivityState,
            interval: int = DEFAULT_SYNC_INTERVAL,
            refresh=None,
            parent: Optional[QtCore.QObject] = None,
    ) -> None:
        super().__init__(parent)
        self.sync_api = sync_api
        self.queue = queue
        self.state = state
        self.refresh = refresh

        self.timer = QtCore.QTimer(self)
        self.timer.setInterval(int(interval) * 1000)
        self.timer.timeout.connect(self.tick)

        self.state.offlineModeChanged.connect(self.on_offline_mode_changed)

    def start(self) -> None:
        if not self.timer.isActive():
            self.timer.start()
            logging.debug(f'Sync scheduler started, interval {self.timer.interval() // 1000}s.')

    def stop(self) -> None:
        if self.timer.isActive():
            self.timer.stop()
            logging.debug('Sync scheduler stopped.')

    def set_interval(self, seconds: int) -> None:
        self.timer.setInterval(int(seconds) * 1000)

    @QtCore.Slot()
    def tick(self) -> Optional[SyncResult]:
        """Periodic trigger, syncs only when offline with pending work."""
        if not self.state.is_offline() or self.queue.count() == 0:
            return None
        return self.run()

    @QtCore.Slot(bool)
    def on_offline_mode_changed(self, is_offline: bool) -> None:
        if is_offline or self.queue.count() == 0:
            return
        logging.info('Connectivity restored, syncing pending changes.')
        self.run()

    def run(self) -> Optional[SyncResult]:
        """Run a sync unless one is already in progress.

        Returns:
            SyncResult | None: None if the trigger was ignored.
        """
        if self.sync_api.is_syncing:
            logging.debug('Sync already in progress, ignoring trigger.')
            return None

        result = self.sync_api.sync_pending()
        if result.synced and self.refresh is not None:
            self.refresh()
        return result
