"""
Logging subsystem for ExpenseClient.

Modules:

- :mod:`ExpenseClient.log.log` – Log setup, in-memory handler and Qt message bridge integrating with Python logging.
"""
