"""Chronological cross-category overflow allocation.

Needs and wants expenses draw down two monthly caps in the order they were
created. Each expense takes what it can from its own category's cap, spills
any excess into the sibling category's cap, and whatever is still left over
is attributed to savings (money borrowed from the savings goal).

The allocation is a left fold over the expenses with an immutable
:class:`WaterfallState` accumulator. Every call replays the month from
scratch; nothing is carried between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from itertools import accumulate
from typing import Any, Dict, Mapping, Optional, Tuple

import pandas as pd

from .transactions import CANONICAL_ORDER, Category

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 1e-9


@dataclass(frozen=True)
class TxStatus:
    """How one expense was covered by the needs, wants and savings buckets."""

    used_needs: float = 0.0
    used_wants: float = 0.0
    used_savings: float = 0.0
    overflow_source: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            'usedNeeds': self.used_needs,
            'usedWants': self.used_wants,
            'usedSavings': self.used_savings,
            'overflowSource': self.overflow_source,
        }


@dataclass(frozen=True)
class WaterfallState:
    needs_cap: float
    wants_cap: float
    needs_to_wants: float = 0.0
    needs_to_savings: float = 0.0
    wants_to_needs: float = 0.0
    wants_to_savings: float = 0.0
    # Attribution of the transaction that produced this state
    last: Optional[Tuple[str, TxStatus]] = None


@dataclass(frozen=True)
class WaterfallResult:
    """Outcome of one waterfall pass over a month's needs and wants expenses."""

    statuses: Mapping[str, TxStatus] = field(default_factory=dict)
    needs_to_wants: float = 0.0
    needs_to_savings: float = 0.0
    wants_to_needs: float = 0.0
    wants_to_savings: float = 0.0
    needs_cap: float = 0.0
    wants_cap: float = 0.0
    cap_trace: Tuple[Tuple[float, float], ...] = ()

    @property
    def needs_overflow(self) -> float:
        return self.needs_to_wants + self.needs_to_savings

    @property
    def wants_overflow(self) -> float:
        return self.wants_to_needs + self.wants_to_savings

    @property
    def total_overflow_to_savings(self) -> float:
        return self.needs_to_savings + self.wants_to_savings


def _snap(value: float, tolerance: float) -> float:
    """Treat values within ``tolerance`` of zero as zero."""
    return 0.0 if abs(value) <= tolerance else value


def _draw(remaining: float, cap: float, tolerance: float) -> Tuple[float, float, float]:
    """Draw up to ``remaining`` from ``cap``; returns (drawn, remaining, cap)."""
    available = max(0.0, _snap(cap, tolerance))
    drawn = min(remaining, available)
    return drawn, _snap(remaining - drawn, tolerance), _snap(cap - drawn, tolerance)


def _allocate(state: WaterfallState, tx: Any, tolerance: float) -> WaterfallState:
    amount = float(tx.amount)
    if tx.category == Category.NEEDS.value:
        home, sibling = state.needs_cap, state.wants_cap
    else:
        home, sibling = state.wants_cap, state.needs_cap

    from_home, remaining, home = _draw(amount, home, tolerance)
    from_sibling, remaining, sibling = _draw(remaining, sibling, tolerance)
    from_savings = remaining

    spilled = from_sibling + from_savings > tolerance
    if tx.category == Category.NEEDS.value:
        status = TxStatus(from_home, from_sibling, from_savings, tx.category if spilled else None)
        updated = replace(
            state,
            needs_cap=home,
            wants_cap=sibling,
            needs_to_wants=state.needs_to_wants + from_sibling,
            needs_to_savings=state.needs_to_savings + from_savings,
        )
    else:
        status = TxStatus(from_sibling, from_home, from_savings, tx.category if spilled else None)
        updated = replace(
            state,
            needs_cap=sibling,
            wants_cap=home,
            wants_to_needs=state.wants_to_needs + from_sibling,
            wants_to_savings=state.wants_to_savings + from_savings,
        )

    if spilled:
        logger.debug(
            "Transaction %s (%s, %.2f) overflowed: %.2f to sibling, %.2f to savings",
            tx.id, tx.category, amount, from_sibling, from_savings,
        )

    return replace(updated, last=(tx.id, status))


def allocate_waterfall(
    expenses: pd.DataFrame,
    needs_target: float,
    wants_target: float,
    *,
    tolerance: float = DEFAULT_TOLERANCE,
) -> WaterfallResult:
    """Run the overflow waterfall over needs and wants expenses.

    Args:
        expenses: Frame rows from ``transactions_frame`` (other categories and
            negative amounts are ignored)
        needs_target: Starting needs cap
        wants_target: Starting wants cap
        tolerance: Magnitude below which amounts and caps count as zero

    Returns:
        WaterfallResult with per-transaction statuses and overflow totals

    Example:
        >>> result = allocate_waterfall(frame, needs_target=500, wants_target=300)
        >>> result.needs_to_savings
        200.0
    """
    initial = WaterfallState(needs_cap=max(0.0, needs_target), wants_cap=max(0.0, wants_target))
    if expenses is None or expenses.empty:
        return WaterfallResult(needs_cap=initial.needs_cap, wants_cap=initial.wants_cap)

    eligible = expenses[
        expenses['category'].isin([Category.NEEDS.value, Category.WANTS.value])
        & (expenses['amount'] >= 0)
    ].sort_values(CANONICAL_ORDER, kind='mergesort')

    steps = list(accumulate(
        eligible.itertuples(index=False),
        lambda state, tx: _allocate(state, tx, tolerance),
        initial=initial,
    ))[1:]
    final = steps[-1] if steps else initial
    return WaterfallResult(
        statuses=dict(step.last for step in steps),
        needs_to_wants=final.needs_to_wants,
        needs_to_savings=final.needs_to_savings,
        wants_to_needs=final.wants_to_needs,
        wants_to_savings=final.wants_to_savings,
        needs_cap=final.needs_cap,
        wants_cap=final.wants_cap,
        cap_trace=tuple((step.needs_cap, step.wants_cap) for step in steps),
    )
