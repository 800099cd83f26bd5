"""Monthly transaction filtering and aggregation.

This module selects the transactions that belong to one month bucket and sums
the raw totals (income, needs, wants, savings) the snapshot is built from.
All functions expect a frame produced by
:func:`budget_engine.transactions.transactions_frame`; because that frame is
already in canonical order, every sum here is independent of the order the
caller supplied its records in.
"""

from __future__ import annotations

from dataclasses import dataclass

import pandas as pd

from .transactions import Category, SavingsPurpose, TransactionType


@dataclass(frozen=True, eq=False)
class MonthlyAggregates:
    """Raw monthly totals for a single ``YYYY-MM`` bucket."""

    month: str
    fresh_income: float
    total_income: float
    carried_over_income: float
    needs_spent: float
    wants_spent: float
    saved_percent20: float
    saved_leftover: float
    saved_all_time: float
    needs_expenses: pd.DataFrame
    wants_expenses: pd.DataFrame

    @property
    def saved_this_month(self) -> float:
        return self.saved_percent20 + self.saved_leftover


def _total(series: pd.Series) -> float:
    return float(series.sum()) if not series.empty else 0.0


def month_transactions(frame: pd.DataFrame, month: str) -> pd.DataFrame:
    """Rows whose ``date`` falls into ``month``."""
    return frame[frame['month'] == month]


def income_this_month(frame: pd.DataFrame, month: str) -> pd.DataFrame:
    scoped = month_transactions(frame, month)
    return scoped[scoped['type'] == TransactionType.INCOME.value]


def expenses_this_month(frame: pd.DataFrame, month: str, category: Category) -> pd.DataFrame:
    """Expense rows of ``category`` dated in ``month``, in canonical order."""
    scoped = month_transactions(frame, month)
    mask = (scoped['type'] == TransactionType.EXPENSE.value) & (scoped['category'] == category.value)
    return scoped[mask]


def aggregate_month(frame: pd.DataFrame, month: str) -> MonthlyAggregates:
    """Sum the raw monthly totals for ``month``.

    Income is split into fresh income (the base for the 50/30/20 targets) and
    carried-over income (last month's leftover, which sets the leftover
    savings goal). Savings expenses are split by purpose; the all-time savings
    total covers every month and includes withdrawals.

    An empty frame yields zeros.
    """
    income = income_this_month(frame, month)
    carried = income['is_carried_over'].astype(bool)

    needs = expenses_this_month(frame, month, Category.NEEDS)
    wants = expenses_this_month(frame, month, Category.WANTS)
    savings = expenses_this_month(frame, month, Category.SAVINGS)

    all_savings = frame[
        (frame['type'] == TransactionType.EXPENSE.value)
        & (frame['category'] == Category.SAVINGS.value)
    ]

    return MonthlyAggregates(
        month=month,
        fresh_income=_total(income.loc[~carried, 'amount']),
        total_income=_total(income['amount']),
        carried_over_income=_total(income.loc[carried, 'amount']),
        needs_spent=_total(needs['amount']),
        wants_spent=_total(wants['amount']),
        saved_percent20=_total(
            savings.loc[savings['savings_purpose'] == SavingsPurpose.PERCENT20.value, 'amount']
        ),
        saved_leftover=_total(
            savings.loc[savings['savings_purpose'] == SavingsPurpose.LEFTOVER_GOAL.value, 'amount']
        ),
        saved_all_time=_total(all_savings['amount']),
        needs_expenses=needs,
        wants_expenses=wants,
    )
