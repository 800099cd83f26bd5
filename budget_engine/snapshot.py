"""Monthly budget snapshot assembly.

:func:`compute_monthly_snapshot` is the one entry point collaborators call:
it takes the user's full transaction list and returns the current month's
budget snapshot (targets, spending, overflow and savings progress). It does no
I/O, keeps no state between calls and never raises for any transaction list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from .aggregation import MonthlyAggregates, aggregate_month
from .config import BudgetRules, get_budget_rules
from .transactions import CANONICAL_ORDER, Category, month_key, transactions_frame
from .waterfall import TxStatus, WaterfallResult, allocate_waterfall

logger = logging.getLogger(__name__)


def _percent(value: float, target: float) -> float:
    return (value / target * 100.0) if target > 0 else 0.0


@dataclass(frozen=True)
class IncomeSummary:
    fresh: float = 0.0
    total: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {'fresh': self.fresh, 'total': self.total}


@dataclass(frozen=True)
class CategoryBudget:
    """Needs or wants budget line.

    ``spent`` is the display value, capped at ``target``; ``spent_raw`` is the
    plain sum of the category's expenses.
    """

    target: float = 0.0
    spent: float = 0.0
    spent_raw: float = 0.0
    overflow: float = 0.0
    overflow_to_sibling: float = 0.0
    overflow_to_savings: float = 0.0
    received_overflow: bool = False
    remaining: float = 0.0
    percentage: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            'target': self.target,
            'spent': self.spent,
            'spentRaw': self.spent_raw,
            'overflow': self.overflow,
            'overflowToSibling': self.overflow_to_sibling,
            'overflowToSavings': self.overflow_to_savings,
            'receivedOverflow': self.received_overflow,
            'remaining': self.remaining,
            'percentage': self.percentage,
        }


@dataclass(frozen=True)
class SavingsGoal:
    """Progress toward the 20% savings target."""

    target: float = 0.0
    saved: float = 0.0
    used_by_overflow: float = 0.0
    pending: float = 0.0
    percentage: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            'target': self.target,
            'saved': self.saved,
            'usedByOverflow': self.used_by_overflow,
            'pending': self.pending,
            'percentage': self.percentage,
        }


@dataclass(frozen=True)
class LeftoverGoal:
    """Progress toward saving last month's carried-over balance."""

    target: float = 0.0
    saved: float = 0.0
    pending: float = 0.0
    percentage: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            'target': self.target,
            'saved': self.saved,
            'pending': self.pending,
            'percentage': self.percentage,
        }


@dataclass(frozen=True)
class SnapshotTotals:
    saved_this_month: float = 0.0
    saved_all_time: float = 0.0
    wallet_balance: float = 0.0
    display_balance: float = 0.0
    needs_to_wants: float = 0.0
    needs_to_savings: float = 0.0
    wants_to_needs: float = 0.0
    wants_to_savings: float = 0.0
    total_overflow_to_savings: float = 0.0
    tx_statuses: Mapping[str, TxStatus] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            'savedThisMonth': self.saved_this_month,
            'savedAllTime': self.saved_all_time,
            'walletBalance': self.wallet_balance,
            'displayBalance': self.display_balance,
            'needsToWants': self.needs_to_wants,
            'needsToSavings': self.needs_to_savings,
            'wantsToNeeds': self.wants_to_needs,
            'wantsToSavings': self.wants_to_savings,
            'totalOverflowToSavings': self.total_overflow_to_savings,
            'txStatuses': {tx_id: status.as_dict() for tx_id, status in self.tx_statuses.items()},
        }


@dataclass(frozen=True)
class BudgetSnapshot:
    """Computed budget state for one month. Recomputed from scratch on every call."""

    month: str
    income: IncomeSummary
    needs: CategoryBudget
    wants: CategoryBudget
    savings20: SavingsGoal
    leftover: LeftoverGoal
    totals: SnapshotTotals

    def as_dict(self) -> Dict[str, Any]:
        return {
            'month': self.month,
            'income': self.income.as_dict(),
            'budget': {
                'needs': self.needs.as_dict(),
                'wants': self.wants.as_dict(),
                'savings20': self.savings20.as_dict(),
                'leftover': self.leftover.as_dict(),
            },
            'totals': self.totals.as_dict(),
        }


@dataclass(frozen=True)
class OverflowFlow:
    source: str
    target: str
    amount: float


def _category_budget(
    target: float,
    spent_raw: float,
    received: float,
    to_sibling: float,
    to_savings: float,
    tolerance: float,
) -> CategoryBudget:
    # Overflow received from the sibling counts against this category's target
    charged = spent_raw + received
    spent = min(charged, target)
    return CategoryBudget(
        target=target,
        spent=spent,
        spent_raw=spent_raw,
        overflow=to_sibling + to_savings,
        overflow_to_sibling=to_sibling,
        overflow_to_savings=to_savings,
        received_overflow=received > tolerance,
        remaining=max(0.0, target - charged),
        percentage=_percent(spent, target),
    )


def assemble_snapshot(
    aggregates: MonthlyAggregates,
    waterfall: WaterfallResult,
    rules: BudgetRules,
) -> BudgetSnapshot:
    """Combine the monthly aggregates and the waterfall outcome into a snapshot."""
    fresh = aggregates.fresh_income
    needs_target = fresh * rules.needs_ratio
    wants_target = fresh * rules.wants_ratio
    savings_target = fresh * rules.savings_ratio

    needs = _category_budget(
        needs_target,
        aggregates.needs_spent,
        waterfall.wants_to_needs,
        waterfall.needs_to_wants,
        waterfall.needs_to_savings,
        rules.tolerance,
    )
    wants = _category_budget(
        wants_target,
        aggregates.wants_spent,
        waterfall.needs_to_wants,
        waterfall.wants_to_needs,
        waterfall.wants_to_savings,
        rules.tolerance,
    )

    # Overflow eats into the remaining savings goal; the target itself is unchanged
    used_by_overflow = waterfall.total_overflow_to_savings
    savings20 = SavingsGoal(
        target=savings_target,
        saved=aggregates.saved_percent20,
        used_by_overflow=used_by_overflow,
        pending=max(0.0, savings_target - aggregates.saved_percent20 - used_by_overflow),
        percentage=_percent(aggregates.saved_percent20, savings_target),
    )

    leftover_target = aggregates.carried_over_income
    leftover = LeftoverGoal(
        target=leftover_target,
        saved=aggregates.saved_leftover,
        pending=max(0.0, leftover_target - aggregates.saved_leftover),
        percentage=_percent(aggregates.saved_leftover, leftover_target),
    )

    saved_this_month = aggregates.saved_this_month
    wallet_balance = (
        aggregates.total_income
        - aggregates.needs_spent
        - aggregates.wants_spent
        - saved_this_month
    )

    totals = SnapshotTotals(
        saved_this_month=saved_this_month,
        saved_all_time=aggregates.saved_all_time,
        wallet_balance=wallet_balance,
        display_balance=wallet_balance - leftover.pending,
        needs_to_wants=waterfall.needs_to_wants,
        needs_to_savings=waterfall.needs_to_savings,
        wants_to_needs=waterfall.wants_to_needs,
        wants_to_savings=waterfall.wants_to_savings,
        total_overflow_to_savings=used_by_overflow,
        tx_statuses=dict(waterfall.statuses),
    )

    return BudgetSnapshot(
        month=aggregates.month,
        income=IncomeSummary(fresh=fresh, total=aggregates.total_income),
        needs=needs,
        wants=wants,
        savings20=savings20,
        leftover=leftover,
        totals=totals,
    )


def compute_monthly_snapshot(
    transactions: Optional[Iterable[Any]],
    now: Optional[datetime] = None,
    rules: Optional[BudgetRules] = None,
) -> BudgetSnapshot:
    """Compute the budget snapshot for the month containing ``now``.

    Args:
        transactions: The user's full transaction history, in any order
        now: Evaluation time (defaults to the current local time)
        rules: Budget rules (defaults to the configured rules)

    Returns:
        BudgetSnapshot for the current month

    Example:
        >>> snapshot = compute_monthly_snapshot(transactions, now=datetime(2025, 3, 15))
        >>> snapshot.month
        '2025-03'
        >>> snapshot.as_dict()['budget']['needs']['remaining']
        300.0
    """
    rules = rules or get_budget_rules()
    current = now or datetime.now()
    month = month_key(current) or month_key(datetime.now())

    frame = transactions_frame(transactions, rules)
    aggregates = aggregate_month(frame, month)

    fresh = aggregates.fresh_income
    parts = [part for part in (aggregates.needs_expenses, aggregates.wants_expenses) if not part.empty]
    expenses = pd.concat(parts) if parts else aggregates.needs_expenses
    waterfall = allocate_waterfall(
        expenses.sort_values(CANONICAL_ORDER, kind='mergesort'),
        fresh * rules.needs_ratio,
        fresh * rules.wants_ratio,
        tolerance=rules.tolerance,
    )

    snapshot = assemble_snapshot(aggregates, waterfall, rules)
    logger.debug(
        "Computed %s snapshot from %d transactions: needs overflow %.2f, wants overflow %.2f",
        month, len(frame), snapshot.needs.overflow, snapshot.wants.overflow,
    )
    return snapshot


def monthly_budget_record(snapshot: BudgetSnapshot) -> Dict[str, Any]:
    """Flatten a snapshot into the per-month row a persistence layer upserts."""
    return {
        'monthKey': snapshot.month,
        'income': snapshot.income.fresh,
        'needsAllocation': snapshot.needs.target,
        'wantsAllocation': snapshot.wants.target,
        'savingsAllocation': snapshot.savings20.target,
        'needsSpent': snapshot.needs.spent,
        'wantsSpent': snapshot.wants.spent,
        'savings20PercentSaved': snapshot.savings20.saved,
        'savingsLeftoverSaved': snapshot.leftover.saved,
        'leftoverTarget': snapshot.leftover.target,
        'leftoverRemaining': snapshot.leftover.pending,
    }


def overflow_flows(snapshot: BudgetSnapshot, tolerance: float = 1e-9) -> List[OverflowFlow]:
    """List the non-zero overflow movements, largest first."""
    totals = snapshot.totals
    candidates = [
        OverflowFlow(Category.NEEDS.value, Category.WANTS.value, totals.needs_to_wants),
        OverflowFlow(Category.NEEDS.value, Category.SAVINGS.value, totals.needs_to_savings),
        OverflowFlow(Category.WANTS.value, Category.NEEDS.value, totals.wants_to_needs),
        OverflowFlow(Category.WANTS.value, Category.SAVINGS.value, totals.wants_to_savings),
    ]
    flows = [flow for flow in candidates if flow.amount > tolerance]
    return sorted(flows, key=lambda flow: flow.amount, reverse=True)
