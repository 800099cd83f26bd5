"""Transaction records and normalization helpers.

The external store hands the engine heterogeneous records: amounts that may
be strings, creation times as store timestamps, datetimes or ISO strings, and
optional flags that are frequently missing. Everything here turns those
records into one predictable shape, either a :class:`Transaction` or a row of
the frame returned by :func:`transactions_frame`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional

import numpy as np
import pandas as pd

from .config import BudgetRules, get_budget_rules


class TransactionType(str, Enum):
    INCOME = 'income'
    EXPENSE = 'expense'


class Category(str, Enum):
    INCOME = 'income'
    NEEDS = 'needs'
    WANTS = 'wants'
    SAVINGS = 'savings'


class SavingsPurpose(str, Enum):
    """What a savings-category expense was put aside for."""

    PERCENT20 = 'percent20'
    LEFTOVER_GOAL = 'leftoverGoal'
    WITHDRAWAL = 'withdrawal'


FRAME_COLUMNS = [
    'id',
    'date',
    'month',
    'created_ms',
    'date_ms',
    'type',
    'category',
    'amount',
    'name',
    'is_carried_over',
    'savings_purpose',
]

# Canonical processing order: creation time, then calendar date, then id
CANONICAL_ORDER = ['created_ms', 'date_ms', 'id']

_PURPOSE_LOOKUP = {purpose.value.lower(): purpose.value for purpose in SavingsPurpose}
_TRUE_STRINGS = {'true', '1', 'yes', 'y'}
_EPOCH = datetime(1970, 1, 1)


@dataclass(frozen=True)
class Transaction:
    """A single income or expense entry as supplied by the store."""

    id: str
    date: str
    type: str
    category: str
    amount: float
    name: str = ''
    created_at: Any = None
    is_carried_over: bool = False
    savings_purpose: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'Transaction':
        """Build a transaction from a store record (camelCase or snake_case keys)."""
        fields = _record_fields(record)
        return cls(
            id=str(fields['id'] or ''),
            date=str(fields['date'] or ''),
            type=_normalize_label(fields['type']),
            category=_normalize_label(fields['category']),
            amount=coerce_amount(fields['amount']),
            name=str(fields['name'] or ''),
            created_at=fields['created_at'],
            is_carried_over=coerce_flag(fields['is_carried_over']),
            savings_purpose=parse_savings_purpose(fields['savings_purpose']),
        )

    def as_record(self) -> Dict[str, Any]:
        """Return the camelCase record shape the store persists."""
        record: Dict[str, Any] = {
            'id': self.id,
            'name': self.name,
            'date': self.date,
            'amount': self.amount,
            'type': self.type,
            'category': self.category,
            'isCarriedOver': self.is_carried_over,
        }
        if self.created_at is not None:
            record['createdAt'] = self.created_at
        if self.savings_purpose:
            record['savingsPurpose'] = self.savings_purpose
        return record


def _local_timezone():
    return datetime.now().astimezone().tzinfo


def _to_local_timestamp(value: Any) -> Optional[pd.Timestamp]:
    """Parse a calendar value into a naive local ``pd.Timestamp`` (or ``None``)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        if not value.strip():
            return None
    elif not isinstance(value, (datetime, date)):
        return None
    try:
        stamp = pd.Timestamp(value)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(stamp):
        return None
    if stamp.tzinfo is not None:
        try:
            stamp = stamp.tz_convert(_local_timezone()).tz_localize(None)
        except (ValueError, OverflowError):
            return None
    return stamp


def _epoch_ms(stamp: pd.Timestamp) -> int:
    """Milliseconds since the epoch for a naive timestamp of any resolution."""
    # Years outside 1677-2262 overflow nanoseconds, so go through datetime
    return (stamp.to_pydatetime(warn=False) - _EPOCH) // timedelta(milliseconds=1)


def month_key(value: Any) -> Optional[str]:
    """Map a calendar date to its ``YYYY-MM`` bucket.

    Uses the local year and month of ``value``; timezone-aware values are
    converted to local time first. Returns ``None`` when the value can't be
    read as a date.

    Example:
        >>> month_key('2025-03-09')
        '2025-03'
        >>> month_key(date(2024, 12, 31))
        '2024-12'
    """
    stamp = _to_local_timestamp(value)
    if stamp is None:
        return None
    return f"{stamp.year:04d}-{stamp.month:02d}"


def coerce_amount(value: Any) -> float:
    """Coerce an amount to ``float``; anything non-numeric or non-finite is ``0.0``."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def coerce_flag(value: Any) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    if isinstance(value, (int, float)):
        return bool(value) and not (isinstance(value, float) and math.isnan(value))
    return False


def parse_savings_purpose(value: Any) -> Optional[str]:
    """Normalize an explicit ``savingsPurpose`` value; unknown values give ``None``."""
    if isinstance(value, SavingsPurpose):
        return value.value
    if not isinstance(value, str):
        return None
    return _PURPOSE_LOOKUP.get(value.strip().lower())


def _store_timestamp_seconds(value: Any) -> Optional[float]:
    """Seconds since the epoch for store timestamp shapes, else ``None``."""
    if isinstance(value, Mapping):
        seconds = value.get('seconds', value.get('_seconds'))
        nanos = value.get('nanoseconds', value.get('_nanoseconds', 0))
    elif isinstance(value, (datetime, date, timedelta, str, bytes, int, float)):
        return None
    elif hasattr(value, 'seconds'):
        seconds = getattr(value, 'seconds', None)
        nanos = getattr(value, 'nanoseconds', 0)
    else:
        return None
    if seconds is None:
        return None
    base = coerce_amount(seconds)
    return base + coerce_amount(nanos) / 1e9


def normalize_created_at(value: Any) -> int:
    """Normalize a creation timestamp to epoch milliseconds.

    Store timestamps (``seconds``/``nanoseconds``) take priority, then
    ``datetime`` objects, then parseable ISO strings. Plain numbers are
    treated as epoch milliseconds already. Naive datetimes are local time.
    Missing or unreadable values give ``0``, so they sort first.
    """
    if value is None or isinstance(value, bool):
        return 0
    try:
        seconds = _store_timestamp_seconds(value)
        if seconds is not None:
            return int(round(seconds * 1000))
        if isinstance(value, datetime):
            if pd.isna(value):
                return 0
            return int(round(value.timestamp() * 1000))
        if isinstance(value, date):
            return int(round(datetime.combine(value, time()).timestamp() * 1000))
        if isinstance(value, (int, float, np.integer, np.floating)):
            number = float(value)
            return int(number) if math.isfinite(number) else 0
        if isinstance(value, str) and value.strip():
            stamp = pd.Timestamp(value)
            if pd.isna(stamp):
                return 0
            return int(round(stamp.to_pydatetime().timestamp() * 1000))
    except (ValueError, TypeError, OverflowError, OSError):
        return 0
    return 0


def _normalize_label(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    return str(value).strip().lower() if value is not None else ''


def _pick(record: Any, *keys: str) -> Any:
    for key in keys:
        if isinstance(record, Mapping):
            if key in record:
                return record[key]
        elif hasattr(record, key):
            return getattr(record, key)
    return None


def _record_fields(record: Any) -> Dict[str, Any]:
    return {
        'id': _pick(record, 'id'),
        'date': _pick(record, 'date'),
        'type': _pick(record, 'type'),
        'category': _pick(record, 'category'),
        'amount': _pick(record, 'amount'),
        'name': _pick(record, 'name'),
        'created_at': _pick(record, 'createdAt', 'created_at'),
        'is_carried_over': _pick(record, 'isCarriedOver', 'is_carried_over'),
        'savings_purpose': _pick(record, 'savingsPurpose', 'savings_purpose'),
    }


def _frame_row(record: Any, position: int) -> Dict[str, Any]:
    fields = _record_fields(record)
    stamp = _to_local_timestamp(fields['date'])
    raw_id = fields['id']
    return {
        'id': str(raw_id) if raw_id not in (None, '') else f"tx-{position}",
        'date': stamp.strftime('%Y-%m-%d') if stamp is not None else None,
        'month': f"{stamp.year:04d}-{stamp.month:02d}" if stamp is not None else None,
        'created_ms': normalize_created_at(fields['created_at']),
        'date_ms': _epoch_ms(stamp) if stamp is not None else 0,
        'type': _normalize_label(fields['type']),
        'category': _normalize_label(fields['category']),
        'amount': coerce_amount(fields['amount']),
        'name': str(fields['name']) if fields['name'] is not None else '',
        'is_carried_over': coerce_flag(fields['is_carried_over']),
        'savings_purpose': parse_savings_purpose(fields['savings_purpose']) or '',
    }


def empty_frame() -> pd.DataFrame:
    frame = pd.DataFrame(columns=FRAME_COLUMNS)
    frame['amount'] = frame['amount'].astype(float)
    frame['created_ms'] = frame['created_ms'].astype('int64')
    frame['date_ms'] = frame['date_ms'].astype('int64')
    frame['is_carried_over'] = frame['is_carried_over'].astype(bool)
    return frame


def transactions_frame(
    transactions: Optional[Iterable[Any]],
    rules: Optional[BudgetRules] = None,
) -> pd.DataFrame:
    """Normalize store records into a DataFrame in canonical order.

    Accepts :class:`Transaction` instances, mappings with the store's
    camelCase keys, or any object exposing the same attributes. The input is
    never mutated.

    Savings rows get a ``savings_purpose``: the explicit field when present,
    otherwise the reserved transaction names from ``rules`` decide, and a
    negative savings amount is a withdrawal. Rows without a purpose carry
    ``''``.

    Returns:
        DataFrame with columns ``FRAME_COLUMNS`` sorted by ``CANONICAL_ORDER``
    """
    rules = rules or get_budget_rules()
    rows = [_frame_row(record, position) for position, record in enumerate(transactions or [])]
    if not rows:
        return empty_frame()

    frame = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    frame['amount'] = frame['amount'].astype(float)

    is_savings = frame['category'] == Category.SAVINGS.value
    inferred = np.select(
        [
            frame['name'] == rules.percent20_name,
            frame['name'] == rules.leftover_goal_name,
            frame['amount'] < 0,
        ],
        [
            SavingsPurpose.PERCENT20.value,
            SavingsPurpose.LEFTOVER_GOAL.value,
            SavingsPurpose.WITHDRAWAL.value,
        ],
        default='',
    )
    explicit = frame['savings_purpose']
    resolved = explicit.where(explicit != '', pd.Series(inferred, index=frame.index))
    frame['savings_purpose'] = resolved.where(is_savings, '')

    return frame.sort_values(CANONICAL_ORDER, kind='mergesort').reset_index(drop=True)
