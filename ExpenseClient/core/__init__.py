"""
Core package for ExpenseClient providing the offline-first data access layer.

This package includes:

- :mod:`ExpenseClient.core.models` – Expense records, pending mutations, filters and input normalization.
- :mod:`ExpenseClient.core.database` – Local key-value store (SQLite, or memory in tests).
- :mod:`ExpenseClient.core.repository` – Replica, pending queue and metadata repositories over the store.
- :mod:`ExpenseClient.core.service` – HTTP client of the expense service.
- :mod:`ExpenseClient.core.connectivity` – Shared offline flag and the liveness prober.
- :mod:`ExpenseClient.core.sync` – Ordered replay of queued mutations and the sync scheduler.
- :mod:`ExpenseClient.core.expenses` – Create, update, delete and read with offline fallback.
- :mod:`ExpenseClient.core.client` – Wires the components together from the settings.
"""
