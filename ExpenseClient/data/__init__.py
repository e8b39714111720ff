"""
ExpenseClient data package: expense summaries.

This package provides:

- :mod:`ExpenseClient.data.data` – Totals and per-category breakdowns, computed with pandas from the local replica (:func:`ExpenseClient.data.data.summarize`) or read from the service statistics (:func:`ExpenseClient.data.data.from_statistics`).
"""
