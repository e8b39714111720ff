"""Client facade wiring the offline-first components together.

:class:`Client` owns one instance of every component, built from the settings
and the local store, and forwards their notifications to the application-wide
:data:`ExpenseClient.signals.signals` hub.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx
from PySide6 import QtCore

from .connectivity import ConnectivityProber, ConnectivityState
from .database import KeyValueStore, SqliteStore
from .expenses import ExpenseAPI
from .models import ExpenseFilters, ExpenseRecord
from .repository import MetaRepository, QueueRepository, ReplicaRepository
from .service import ExpenseService
from .sync import DEFAULT_SYNC_INTERVAL, SyncAPI, SyncResult, SyncScheduler
from ..data import data
from ..signals import signals

_cached_client: Optional['Client'] = None


class Client(QtCore.QObject):
    """Offline-first expense client.

    Args:
        settings: A :class:`~ExpenseClient.settings.lib.SettingsAPI` instance.
        store: Key-value store of the local state. Defaults to the SQLite store at the settings' db path.
        transport: Optional httpx transport passed to the service.
    """

    def __init__(
            self,
            settings: Any,
            store: Optional[KeyValueStore] = None,
            transport: Optional[httpx.BaseTransport] = None,
            parent: Optional[QtCore.QObject] = None,
    ) -> None:
        super().__init__(parent)
        self.settings = settings
        self._transport = transport

        self.store: KeyValueStore = store if store is not None else SqliteStore(settings.db_path)
        self.replica = ReplicaRepository(self.store)
        self.queue = QueueRepository(self.store, parent=self)
        self.meta = MetaRepository(self.store)

        self.service = ExpenseService.from_settings(settings, transport=transport)
        self.state = ConnectivityState(self.meta, parent=self)
        self.prober = ConnectivityProber(self.service, self.state)
        self.sync_api = SyncAPI(self.service, self.queue, self.meta, self.state, self.prober, parent=self)
        self.expenses = ExpenseAPI(
            self.service,
            self.replica,
            self.queue,
            self.meta,
            self.state,
            self.prober,
            self.sync_api,
            categories=settings.categories,
            parent=self,
        )

        config: Dict[str, Any] = settings.get_section('sync')
        self.scheduler = SyncScheduler(
            self.sync_api,
            self.queue,
            self.state,
            interval=config.get('interval_seconds', DEFAULT_SYNC_INTERVAL),
            refresh=self.expenses.refresh,
            parent=self,
        )

        self._connect_signals()

    def _connect_signals(self) -> None:
        self.state.offlineModeChanged.connect(signals.offlineModeChanged)
        self.queue.queueChanged.connect(signals.pendingCountChanged)
        self.sync_api.syncStarted.connect(signals.syncStarted)
        self.sync_api.syncFinished.connect(signals.syncFinished)
        self.expenses.expensesChanged.connect(signals.expensesChanged)

        signals.syncRequested.connect(self.scheduler.run)
        signals.configSectionChanged.connect(self.on_config_section_changed)

    def close(self) -> None:
        """Stop the scheduler, close the HTTP client and detach from the signal hub."""
        self.scheduler.stop()
        self.service.close()
        for signal, slot in (
                (signals.syncRequested, self.scheduler.run),
                (signals.configSectionChanged, self.on_config_section_changed),
        ):
            try:
                signal.disconnect(slot)
            except (RuntimeError, TypeError):
                logging.debug('Signal was already disconnected.')

    @QtCore.Slot(str)
    def on_config_section_changed(self, section: str) -> None:
        if section == 'remote':
            self._rebuild_service()
        elif section == 'sync':
            config = self.settings.get_section('sync')
            self.scheduler.set_interval(config['interval_seconds'])
            if config['auto_sync']:
                self.scheduler.start()
            else:
                self.scheduler.stop()
        elif section == 'categories':
            self.expenses.categories = self.settings.categories

    def _rebuild_service(self) -> None:
        logging.debug('Remote settings changed, rebuilding the service client.')
        self.service.close()
        self.service = ExpenseService.from_settings(self.settings, transport=self._transport)
        self.prober.service = self.service
        self.sync_api.service = self.service
        self.expenses.service = self.service

    def start(self) -> None:
        """Start the periodic sync if enabled in the settings."""
        if self.settings.get_section('sync').get('auto_sync', True):
            self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()

    def create(self, expense: Dict[str, Any]) -> ExpenseRecord:
        return self.expenses.create(expense)

    def update(self, record_id: str, expense: Dict[str, Any]) -> ExpenseRecord:
        return self.expenses.update(record_id, expense)

    def delete(self, record_id: str) -> None:
        self.expenses.delete(record_id)

    def get_all(self, filters: Optional[ExpenseFilters] = None) -> List[ExpenseRecord]:
        return self.expenses.get_all(filters)

    def filter_expenses(self, category: Optional[str] = None, date_from: Optional[str] = None,
                        date_to: Optional[str] = None) -> List[ExpenseRecord]:
        return self.expenses.filter_expenses(category=category, date_from=date_from, date_to=date_to)

    def get_summary(self) -> data.ExpenseSummary:
        return self.expenses.get_summary()

    def sync_pending(self) -> SyncResult:
        return self.sync_api.sync_pending()

    def probe(self) -> bool:
        return self.prober.probe()

    def pending_count(self) -> int:
        return self.expenses.pending_count()

    def last_sync_time(self) -> Optional[str]:
        return self.expenses.last_sync_time()

    def is_offline(self) -> bool:
        return self.expenses.is_offline()


def get_client() -> Client:
    """
    Returns the cached client, building it from the current settings on first use.

    Returns:
        Client: A single client per app run.
    """
    global _cached_client
    if _cached_client is not None:
        return _cached_client

    from ..settings import lib
    _cached_client = Client(lib.settings)
    logging.debug('Expense client created successfully.')
    return _cached_client


def clear_client() -> None:
    """
    Closes and clears the cached client.
    """
    global _cached_client
    if _cached_client is not None:
        _cached_client.close()
    _cached_client = None
