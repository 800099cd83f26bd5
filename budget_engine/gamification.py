"""XP levels and budget-impact scoring.

Levels are derived from total XP. A transaction's effect on the budget is
scored by computing the snapshot before and after it and comparing the
overflow fields: new overflow into savings is a savings dip, new overflow
between needs and wants is a category overflow.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .config import BudgetRules, get_budget_rules
from .snapshot import BudgetSnapshot, compute_monthly_snapshot
from .transactions import Category, Transaction, coerce_amount

XP_TRANSACTION_LOGGED = 'transaction_logged'
XP_SAVING_PER_UNIT = 'saving_per_unit'
XP_CHAT_SESSION = 'chat_session'
XP_DAILY_CHECKIN = 'daily_checkin'
XP_CATEGORY_OVERFLOW_PENALTY = 'category_overflow_penalty'
XP_SAVINGS_DIP_PENALTY = 'savings_dip_penalty'

DEFAULT_XP_REWARDS: Dict[str, int] = {
    XP_TRANSACTION_LOGGED: 50,
    XP_SAVING_PER_UNIT: 2,
    XP_CHAT_SESSION: 100,
    XP_DAILY_CHECKIN: 20,
    XP_CATEGORY_OVERFLOW_PENALTY: -250,
    XP_SAVINGS_DIP_PENALTY: -500,
}

IMPACT_NONE = 'none'
IMPACT_CATEGORY_OVERFLOW = 'category_overflow'
IMPACT_SAVINGS_DIP = 'savings_dip'


def xp_rewards(rules: Optional[BudgetRules] = None) -> Dict[str, int]:
    """XP table with configured values layered over the defaults."""
    rules = rules or get_budget_rules()
    table = DEFAULT_XP_REWARDS.copy()
    table.update(rules.xp_rewards)
    return table


def xp_for(event: str, rules: Optional[BudgetRules] = None) -> int:
    """XP awarded for a single ``event`` such as ``XP_CHAT_SESSION``.

    Raises:
        ValueError: If ``event`` is not in the XP table
    """
    table = xp_rewards(rules)
    if event not in table:
        raise ValueError(f"Unknown XP event '{event}'")
    return table[event]


def calculate_level(total_xp: float, rules: Optional[BudgetRules] = None) -> int:
    """Level for ``total_xp`` (1-based, negative XP counts as 0, capped at the max level)."""
    rules = rules or get_budget_rules()
    effective = max(0, int(total_xp))
    return min(effective // rules.xp_per_level + 1, rules.max_level)


def level_progress(total_xp: float, rules: Optional[BudgetRules] = None) -> Dict[str, float]:
    """XP progress inside the current level."""
    rules = rules or get_budget_rules()
    if calculate_level(total_xp, rules) >= rules.max_level:
        return {
            'currentLevelXP': rules.xp_per_level,
            'goalXP': rules.xp_per_level,
            'percentage': 100.0,
        }
    current = max(0, int(total_xp)) % rules.xp_per_level
    return {
        'currentLevelXP': current,
        'goalXP': rules.xp_per_level,
        'percentage': current / rules.xp_per_level * 100.0,
    }


def avatar_for_level(level: int, rules: Optional[BudgetRules] = None) -> str:
    rules = rules or get_budget_rules()
    return f"bear_level_{min(max(1, int(level)), rules.max_level)}"


def xp_for_logged_transactions(
    transactions: Iterable[Any],
    rules: Optional[BudgetRules] = None,
) -> int:
    """XP earned for logging ``transactions``.

    Every transaction earns the logging reward; savings transactions also earn
    the per-unit saving reward on their absolute amount (rounded down).
    """
    table = xp_rewards(rules)
    total = 0
    for item in transactions:
        tx = item if isinstance(item, Transaction) else Transaction.from_record(item)
        total += table[XP_TRANSACTION_LOGGED]
        if tx.category == Category.SAVINGS.value:
            total += math.floor(abs(coerce_amount(tx.amount)) * table[XP_SAVING_PER_UNIT])
    return total


@dataclass(frozen=True)
class BudgetImpact:
    """Overflow introduced by a change between two snapshots."""

    needs_overflow_delta: float
    wants_overflow_delta: float
    savings_overflow_delta: float
    kind: str
    xp_penalty: int

    @property
    def is_penalized(self) -> bool:
        return self.kind != IMPACT_NONE


def assess_transaction_impact(
    before: BudgetSnapshot,
    after: BudgetSnapshot,
    rules: Optional[BudgetRules] = None,
) -> BudgetImpact:
    """Compare two snapshots and classify the newly introduced overflow.

    Only ``savings20.usedByOverflow``, ``needs.overflow`` and ``wants.overflow``
    are compared. A savings dip outranks a category overflow.
    """
    rules = rules or get_budget_rules()
    table = xp_rewards(rules)
    tolerance = max(rules.tolerance, 0.005)

    savings_delta = after.savings20.used_by_overflow - before.savings20.used_by_overflow
    needs_delta = after.needs.overflow - before.needs.overflow
    wants_delta = after.wants.overflow - before.wants.overflow

    if savings_delta > tolerance:
        kind, penalty = IMPACT_SAVINGS_DIP, table[XP_SAVINGS_DIP_PENALTY]
    elif needs_delta > tolerance or wants_delta > tolerance:
        kind, penalty = IMPACT_CATEGORY_OVERFLOW, table[XP_CATEGORY_OVERFLOW_PENALTY]
    else:
        kind, penalty = IMPACT_NONE, 0

    return BudgetImpact(
        needs_overflow_delta=needs_delta,
        wants_overflow_delta=wants_delta,
        savings_overflow_delta=savings_delta,
        kind=kind,
        xp_penalty=penalty,
    )


def preview_transaction_impact(
    transactions: Iterable[Any],
    new_transactions: Iterable[Any],
    now: Optional[datetime] = None,
    rules: Optional[BudgetRules] = None,
) -> BudgetImpact:
    """Score the budget impact of adding ``new_transactions`` to ``transactions``."""
    rules = rules or get_budget_rules()
    current = now or datetime.now()
    existing: List[Any] = list(transactions or [])
    before = compute_monthly_snapshot(existing, now=current, rules=rules)
    after = compute_monthly_snapshot(existing + list(new_transactions), now=current, rules=rules)
    return assess_transaction_impact(before, after, rules)
