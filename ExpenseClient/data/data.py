"""Expense summaries.

Totals and the per-category breakdown are read from the service's statistics
endpoint when online. Offline, the same figures are computed from the local
replica with pandas.
"""
import dataclasses
import logging
from typing import Any, Dict, List

import pandas as pd

from ..core.models import ExpenseRecord

DATA_COLUMNS: List[str] = ['id', 'date', 'amount', 'category', 'description']


@dataclasses.dataclass
class ExpenseSummary:
    """Totals of a set of expenses.

    ``by_category`` maps each category to its total, ordered by descending total.
    """
    total: float = 0.0
    count: int = 0
    by_category: Dict[str, float] = dataclasses.field(default_factory=dict)

    def percentage(self, category: str) -> float:
        """Share of the total spent in ``category``, in percent."""
        if not self.total:
            return 0.0
        return self.by_category.get(category, 0.0) / self.total * 100.0


def _sorted_totals(totals: Dict[str, float]) -> Dict[str, float]:
    items = sorted(totals.items(), key=lambda kv: kv[1], reverse=True)
    return {k: round(float(v), 2) for k, v in items}


def to_dataframe(records: List[ExpenseRecord]) -> pd.DataFrame:
    """Build a DataFrame of expense records.

    Dates are parsed as datetimes and amounts coerced to numbers; rows where
    either fails are dropped.

    Args:
        records: Expense records.

    Returns:
        pd.DataFrame: One row per record with the columns in DATA_COLUMNS.
    """
    if not records:
        return pd.DataFrame(columns=DATA_COLUMNS)

    df = pd.DataFrame([{k: getattr(r, k) for k in DATA_COLUMNS} for r in records], columns=DATA_COLUMNS)
    df['date'] = pd.to_datetime(df['date'], format='%Y-%m-%d', errors='coerce')
    df['amount'] = pd.to_numeric(df['amount'], errors='coerce')

    invalid = df['date'].isna() | df['amount'].isna()
    if invalid.any():
        logging.warning(f'Ignoring {int(invalid.sum())} record(s) with invalid date or amount.')
        df = df[~invalid]

    return df.sort_values('date').reset_index(drop=True)


def summarize(records: List[ExpenseRecord]) -> ExpenseSummary:
    """Compute the summary of a list of records.

    Args:
        records: Expense records, typically the local replica.

    Returns:
        ExpenseSummary: Total, count and per-category totals.
    """
    df = to_dataframe(records)
    if df.empty:
        return ExpenseSummary()

    totals = df.groupby('category')['amount'].sum()
    return ExpenseSummary(
        total=round(float(df['amount'].sum()), 2),
        count=int(len(df)),
        by_category=_sorted_totals(totals.to_dict()),
    )


def monthly_totals(records: List[ExpenseRecord]) -> pd.DataFrame:
    """Sum expenses per calendar month and category.

    Returns:
        pd.DataFrame: Indexed by month period, one column per category, zero-filled.
    """
    df = to_dataframe(records)
    if df.empty:
        return pd.DataFrame()

    df['month'] = df['date'].dt.to_period('M')
    out = df.pivot_table(index='month', columns='category', values='amount', aggfunc='sum', fill_value=0.0)
    return out.round(2)


def from_statistics(data: Dict[str, Any]) -> ExpenseSummary:
    """Build a summary from the statistics endpoint payload.

    Args:
        data: The ``data`` object with ``total``, ``count`` and ``expensesByCategory``.

    Returns:
        ExpenseSummary: The summary.
    """
    by_category: Dict[str, float] = {}
    for category, value in (data.get('expensesByCategory') or {}).items():
        try:
            by_category[str(category)] = float(value)
        except (TypeError, ValueError):
            logging.warning(f'Ignoring non-numeric total "{value}" for category "{category}".')

    try:
        total = round(float(data.get('total') or 0), 2)
    except (TypeError, ValueError):
        total = round(sum(by_category.values()), 2)

    try:
        count = int(data.get('count') or 0)
    except (TypeError, ValueError):
        count = 0

    return ExpenseSummary(total=total, count=count, by_category=_sorted_totals(by_category))
