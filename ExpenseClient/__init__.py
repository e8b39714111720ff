"""
ExpenseClient: offline-first data access client for a personal expense tracker.

This package provides:

- :mod:`ExpenseClient.core` – The expense service client, local replica, pending mutation queue and synchronizer.
- :mod:`ExpenseClient.data` – Expense summaries computed with pandas.
- :mod:`ExpenseClient.settings` – Settings management and schema validation.
- :mod:`ExpenseClient.log` – Logging setup with an in-memory record tank.
- :mod:`ExpenseClient.status` – Status codes and exceptions.

Use :func:`ExpenseClient.exec_` to run the background sync loop.
"""

import sys

from PySide6 import QtCore

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('ExpenseClient requires Python 3.11 or higher.')

__version__ = '0.1.0'
__license__ = 'GPL-3.0'
__description__ = 'ExpenseClient: offline-first synchronization layer for a personal expense tracker.'

from .log import log

log.setup_logging()


def exec_() -> None:
    """Run the client headless: refresh the replica, then keep syncing in the Qt event loop.

    Initializes the QCoreApplication, builds the client from the settings and starts
    the periodic sync until the process is interrupted.
    """
    import signal
    from .core import client

    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication(sys.argv)
    signal.signal(signal.SIGINT, lambda *args: app.quit())

    c = client.get_client()
    c.start()
    app.aboutToQuit.connect(client.clear_client)

    # Read once the event loop is running
    QtCore.QTimer.singleShot(100, c.expenses.refresh)

    sys.exit(app.exec())


if __name__ == '__main__':
    exec_()
