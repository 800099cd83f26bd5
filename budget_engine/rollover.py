"""Month rollover and income allocation helpers.

These build the transaction records a collaborator writes to the store when a
new month starts (last month's leftover balance) or when income is spread
over several months. The snapshot engine only ever sees the resulting
records.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, List, Optional

import pandas as pd

from .aggregation import month_transactions
from .transactions import Category, Transaction, TransactionType, month_key, transactions_frame

CARRY_TO_SAVINGS = 'savings'
CARRY_TO_BUDGET = 'budget'


def previous_month_key(now: Optional[datetime] = None) -> str:
    """``YYYY-MM`` key of the month before ``now``."""
    current = pd.Timestamp(now or datetime.now())
    return month_key(current - pd.DateOffset(months=1))


def previous_month_leftover(transactions: Iterable[Any], now: Optional[datetime] = None) -> float:
    """Last month's income minus every expense logged last month (savings included)."""
    frame = transactions_frame(transactions)
    scoped = month_transactions(frame, previous_month_key(now))
    income = scoped.loc[scoped['type'] == TransactionType.INCOME.value, 'amount'].sum()
    expenses = scoped.loc[scoped['type'] == TransactionType.EXPENSE.value, 'amount'].sum()
    return float(income - expenses)


def needs_leftover_prompt(
    last_checked_month: Optional[str],
    has_set_initial_balance: bool,
    now: Optional[datetime] = None,
) -> bool:
    """Whether the user should be asked what to do with last month's leftover."""
    current_key = month_key(now or datetime.now())
    return bool(has_set_initial_balance) and last_checked_month != current_key


def _date_string(value: Optional[datetime]) -> str:
    return pd.Timestamp(value or datetime.now()).strftime('%Y-%m-%d')


def carried_over_income(
    amount: float,
    option: str,
    now: Optional[datetime] = None,
    tx_id: Optional[str] = None,
) -> Transaction:
    """Income record for last month's leftover balance.

    Args:
        amount: Leftover balance being carried over
        option: ``'savings'`` to put it toward the leftover savings goal, or
            ``'budget'`` to treat it as fresh, budgetable income
        now: Date the record is booked on
        tx_id: Optional record id

    Raises:
        ValueError: If ``option`` is not recognised or ``amount`` is not positive
    """
    if option not in (CARRY_TO_SAVINGS, CARRY_TO_BUDGET):
        raise ValueError(f"Unknown carry-over option '{option}'")
    if amount <= 0:
        raise ValueError(f"Carried-over amount must be positive: {amount}")
    booked = _date_string(now)
    return Transaction(
        id=tx_id or f"carried-over-{booked}",
        date=booked,
        type=TransactionType.INCOME.value,
        category=Category.INCOME.value,
        amount=float(amount),
        name='Carried Over',
        is_carried_over=option == CARRY_TO_SAVINGS,
    )


def split_income(
    amount: float,
    months: int,
    description: str,
    start: Optional[datetime] = None,
    id_prefix: Optional[str] = None,
) -> List[Transaction]:
    """Spread ``amount`` of income evenly over ``months`` consecutive months.

    Each month gets ``amount / months`` rounded to cents; the last month takes
    whatever remainder is left so the series adds up to ``amount``. With more
    than one month, names are suffixed with ``(i/N)``.

    Raises:
        ValueError: If ``amount`` or ``months`` is not positive

    Example:
        >>> [t.amount for t in split_income(100, 3, 'Bonus', datetime(2025, 1, 31))]
        [33.33, 33.33, 33.34]
    """
    if amount <= 0:
        raise ValueError(f"Income amount must be positive: {amount}")
    if int(months) != months or months <= 0:
        raise ValueError(f"Number of months must be a positive integer: {months}")
    months = int(months)

    base = pd.Timestamp(start or datetime.now())
    prefix = id_prefix or base.strftime('%Y%m%d%H%M%S')
    per_month = round(amount / months, 2)

    series: List[Transaction] = []
    allocated = 0.0
    for index in range(months):
        if index == months - 1:
            portion = round(amount - allocated, 2)
        else:
            portion = per_month
            allocated += portion
        booked = base + pd.DateOffset(months=index)
        series.append(Transaction(
            id=prefix if months == 1 else f"{prefix}-{index}",
            date=booked.strftime('%Y-%m-%d'),
            type=TransactionType.INCOME.value,
            category=Category.INCOME.value,
            amount=portion,
            name=description if months == 1 else f"{description} ({index + 1}/{months})",
            is_carried_over=False,
        ))
    return series


def reallocate_series(
    total_remaining: float,
    months: int,
    description: str,
    start: Optional[datetime] = None,
    id_prefix: Optional[str] = None,
) -> List[Transaction]:
    """New records for the remaining amount of an allocation series.

    The caller deletes the series' old future records and writes these in
    one batch.
    """
    return split_income(total_remaining, months, description, start=start, id_prefix=id_prefix)
