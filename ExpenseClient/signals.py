"""Application-wide Qt signals for ExpenseClient.

This module provides:
    - Signals: custom Qt signals for connectivity, sync lifecycle, expense data changes,
      configuration changes and errors.
"""
import logging

from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for connectivity, sync and data events."""
    configSectionChanged = QtCore.Signal(str)

    offlineModeChanged = QtCore.Signal(bool)
    pendingCountChanged = QtCore.Signal(int)

    syncRequested = QtCore.Signal()
    syncStarted = QtCore.Signal()
    syncFinished = QtCore.Signal(object)  # SyncResult

    expensesChanged = QtCore.Signal(list)

    showLogs = QtCore.Signal()

    error = QtCore.Signal(str)

    def __init__(self):
        super().__init__()
        self._connect_signals()

    def _connect_signals(self):
        @QtCore.Slot(bool)
        def offline_mode_changed(is_offline: bool) -> None:
            logging.info('Switched to offline mode.' if is_offline else 'Backend reachable, switched to online mode.')

        self.offlineModeChanged.connect(offline_mode_changed)


signals = Signals()
