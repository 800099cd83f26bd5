"""Top‑level package for the monthly budget allocation engine.

The primary modules are:

* ``transactions`` – record normalization and month bucketing
* ``aggregation`` – monthly filtering and raw totals
* ``waterfall`` – the chronological needs/wants/savings overflow allocation
* ``snapshot`` – assembles the monthly budget snapshot
* ``gamification`` – XP levels and before/after budget impact scoring
* ``rollover`` – leftover balance and multi-month income records

Collaborators normally only need :func:`compute_monthly_snapshot`:

```python
from budget_engine import compute_monthly_snapshot

snapshot = compute_monthly_snapshot(transactions)
snapshot.as_dict()['budget']['needs']['remaining']
```
"""

from .config import BudgetRules, get_budget_rules, load_budget_rules
from .snapshot import BudgetSnapshot, compute_monthly_snapshot, monthly_budget_record, overflow_flows
from .transactions import Category, SavingsPurpose, Transaction, TransactionType, month_key
from .waterfall import TxStatus, WaterfallResult, allocate_waterfall

__all__ = [
    "BudgetRules",
    "BudgetSnapshot",
    "Category",
    "SavingsPurpose",
    "Transaction",
    "TransactionType",
    "TxStatus",
    "WaterfallResult",
    "allocate_waterfall",
    "compute_monthly_snapshot",
    "get_budget_rules",
    "load_budget_rules",
    "month_key",
    "monthly_budget_record",
    "overflow_flows",
]
