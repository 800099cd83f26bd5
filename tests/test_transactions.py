from datetime import date, datetime, timedelta, timezone
import math
import types

import pandas as pd

from budget_engine import transactions as tx_module
from budget_engine.transactions import (
    Transaction,
    coerce_amount,
    coerce_flag,
    month_key,
    normalize_created_at,
    parse_savings_purpose,
    transactions_frame,
)


def test_month_key_uses_calendar_month():
    assert month_key('2025-03-09') == '2025-03'
    assert month_key(date(2024, 12, 31)) == '2024-12'
    assert month_key(datetime(2025, 1, 1, 0, 0)) == '2025-01'
    assert month_key(pd.Timestamp('2023-07-04')) == '2023-07'


def test_month_key_rejects_unreadable_values():
    assert month_key(None) is None
    assert month_key('') is None
    assert month_key('not a date') is None
    assert month_key(12345) is None


def test_month_key_converts_aware_values_to_local_time(monkeypatch):
    monkeypatch.setattr(tx_module, '_local_timezone', lambda: timezone(timedelta(hours=8)))
    assert month_key('2025-03-31T20:30:00+00:00') == '2025-04'
    assert month_key('2025-03-31') == '2025-03'


def test_coerce_amount_treats_garbage_as_zero():
    assert coerce_amount('12.5') == 12.5
    assert coerce_amount(7) == 7.0
    assert coerce_amount('abc') == 0.0
    assert coerce_amount(None) == 0.0
    assert coerce_amount(float('nan')) == 0.0
    assert coerce_amount(float('inf')) == 0.0
    assert coerce_amount(True) == 0.0
    assert coerce_amount({'amount': 3}) == 0.0


def test_coerce_flag():
    assert coerce_flag(True)
    assert coerce_flag('true')
    assert coerce_flag(1)
    assert not coerce_flag(None)
    assert not coerce_flag('false')
    assert not coerce_flag(0)
    assert not coerce_flag(float('nan'))


def test_normalize_created_at_handles_every_shape():
    utc_start = 1735689600000  # 2025-01-01T00:00:00Z

    assert normalize_created_at({'seconds': 10, 'nanoseconds': 500_000_000}) == 10500
    assert normalize_created_at({'_seconds': 3, '_nanoseconds': 0}) == 3000
    assert normalize_created_at(types.SimpleNamespace(seconds=2, nanoseconds=0)) == 2000
    assert normalize_created_at(datetime(2025, 1, 1, tzinfo=timezone.utc)) == utc_start
    assert normalize_created_at('2025-01-01T00:00:00Z') == utc_start
    assert normalize_created_at(1234) == 1234
    assert normalize_created_at(None) == 0
    assert normalize_created_at('garbage') == 0
    assert normalize_created_at(float('nan')) == 0


def test_naive_created_at_is_local_time():
    naive = datetime(2025, 6, 1, 9, 30)
    assert normalize_created_at(naive) == int(round(naive.timestamp() * 1000))
    assert normalize_created_at('2025-06-01T09:30:00') == int(round(naive.timestamp() * 1000))


def test_parse_savings_purpose():
    assert parse_savings_purpose('percent20') == 'percent20'
    assert parse_savings_purpose('LeftoverGoal') == 'leftoverGoal'
    assert parse_savings_purpose('withdrawal') == 'withdrawal'
    assert parse_savings_purpose('holiday') is None
    assert parse_savings_purpose(None) is None


def test_frame_resolves_savings_purpose():
    frame = transactions_frame([
        {'id': 'a', 'date': '2025-03-01', 'type': 'expense', 'category': 'savings', 'amount': 10, 'name': 'Monthly Savings'},
        {'id': 'b', 'date': '2025-03-01', 'type': 'expense', 'category': 'savings', 'amount': 10, 'name': 'Saving Leftover Balance'},
        {'id': 'c', 'date': '2025-03-01', 'type': 'expense', 'category': 'savings', 'amount': -5, 'name': 'Take out'},
        {'id': 'd', 'date': '2025-03-01', 'type': 'expense', 'category': 'savings', 'amount': 10,
         'name': 'Monthly Savings', 'savingsPurpose': 'leftoverGoal'},
        {'id': 'e', 'date': '2025-03-01', 'type': 'expense', 'category': 'savings', 'amount': 10, 'name': 'Other'},
        {'id': 'f', 'date': '2025-03-01', 'type': 'expense', 'category': 'needs', 'amount': 10, 'name': 'Monthly Savings'},
    ])
    purposes = dict(zip(frame['id'], frame['savings_purpose']))

    assert purposes == {
        'a': 'percent20',
        'b': 'leftoverGoal',
        'c': 'withdrawal',
        'd': 'leftoverGoal',
        'e': '',
        'f': '',
    }


def test_frame_is_in_canonical_order():
    frame = transactions_frame([
        {'id': 'z', 'date': '2025-03-01', 'type': 'expense', 'category': 'needs', 'amount': 1, 'createdAt': 5},
        {'id': 'b', 'date': '2025-03-09', 'type': 'expense', 'category': 'needs', 'amount': 1},
        {'id': 'a', 'date': '2025-03-09', 'type': 'expense', 'category': 'needs', 'amount': 1},
        {'id': 'c', 'date': '2025-03-02', 'type': 'expense', 'category': 'needs', 'amount': 1},
    ])

    assert list(frame['id']) == ['c', 'a', 'b', 'z']


def test_frame_orders_dates_outside_nanosecond_range():
    frame = transactions_frame([
        {'id': 'future', 'date': '9999-12-31', 'type': 'expense', 'category': 'needs', 'amount': 1},
        {'id': 'now', 'date': '2025-03-01', 'type': 'expense', 'category': 'needs', 'amount': 1},
        {'id': 'ancient', 'date': '0001-01-01', 'type': 'expense', 'category': 'needs', 'amount': 1},
    ])

    assert list(frame['id']) == ['ancient', 'now', 'future']
    assert list(frame['month']) == ['0001-01', '2025-03', '9999-12']
    assert frame.iloc[1]['date_ms'] == 1_740_787_200_000


def test_frame_normalizes_labels_and_fills_ids():
    records = [{'date': '2025-03-01', 'type': 'Expense ', 'category': 'WANTS', 'amount': '4.5'}]
    frame = transactions_frame(records)

    row = frame.iloc[0]
    assert row['id'] == 'tx-0'
    assert row['type'] == 'expense'
    assert row['category'] == 'wants'
    assert row['amount'] == 4.5
    assert row['month'] == '2025-03'
    assert records[0]['amount'] == '4.5'


def test_frame_accepts_transaction_objects():
    frame = transactions_frame([
        Transaction(id='t1', date='2025-03-04', type='income', category='income', amount=100.0,
                    is_carried_over=True),
    ])

    assert frame.iloc[0]['is_carried_over']
    assert frame.iloc[0]['amount'] == 100.0


def test_empty_frame_has_expected_columns():
    frame = transactions_frame([])

    assert frame.empty
    assert list(frame.columns) == tx_module.FRAME_COLUMNS


def test_transaction_from_record_and_back():
    tx = Transaction.from_record({
        'id': 7, 'date': '2025-03-04', 'type': 'EXPENSE', 'category': 'Needs',
        'amount': '12', 'name': 'Groceries', 'createdAt': 99, 'savingsPurpose': 'nonsense',
    })

    assert tx.id == '7'
    assert tx.type == 'expense'
    assert tx.category == 'needs'
    assert math.isclose(tx.amount, 12.0)
    assert tx.savings_purpose is None
    assert tx.as_record() == {
        'id': '7', 'name': 'Groceries', 'date': '2025-03-04', 'amount': 12.0,
        'type': 'expense', 'category': 'needs', 'isCarriedOver': False, 'createdAt': 99,
    }
