"""Connectivity state and the liveness prober.

The offline flag is shared by every component that decides between the remote
and the local path. It is persisted, so a restart begins in the mode the
previous run ended in, and it notifies observers only when its value changes.
"""
import logging
from typing import Optional

from PySide6 import QtCore

from .repository import MetaRepository
from .service import ExpenseService
from ..status import status


class ConnectivityState(QtCore.QObject):
    """Process-wide offline flag.

    Signals:
        offlineModeChanged (bool): Emitted on every transition with the new value.
    """
    offlineModeChanged = QtCore.Signal(bool)

    def __init__(self, meta: MetaRepository, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.meta = meta
        self._offline: bool = meta.get_offline()
        logging.debug(f'Connectivity state initialized, offline={self._offline}')

    def is_offline(self) -> bool:
        return self._offline

    def set_offline(self, value: bool) -> bool:
        """Set the offline flag, persisting it and notifying on change.

        Args:
            value: The new offline flag.

        Returns:
            bool: True if the value changed.
        """
        value = bool(value)
        if value == self._offline:
            return False

        self._offline = value
        self.meta.set_offline(value)
        self.offlineModeChanged.emit(value)
        return True


class ConnectivityProber:
    """Checks the service's liveness endpoint and updates the shared state."""

    def __init__(self, service: ExpenseService, state: ConnectivityState) -> None:
        self.service = service
        self.state = state

    def probe(self) -> bool:
        """Ping the service once within the probe timeout.

        Any failure, including a non-success answer, counts as offline.

        Returns:
            bool: True if the service is reachable.
        """
        try:
            self.service.ping()
        except (status.ServiceUnavailableException, status.RemoteRequestException) as ex:
            logging.debug(f'Liveness probe failed: {ex}')
            self.state.set_offline(True)
            return False

        self.state.set_offline(False)
        return True
