"""
Settings package: configuration API and schema validation.

This package provides:

- :mod:`ExpenseClient.settings.lib` – Client settings management, paths and schema validation.
"""
