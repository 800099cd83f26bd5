"""Configuration management for the budget engine.

This module centralizes the budget rule values (the 50/30/20 split, the
reserved savings transaction names, the floating point tolerance and the XP
table) together with the environment variable override for the rule file.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

# Bundled defaults live next to this module
_PACKAGE_ROOT = Path(__file__).parent.resolve()
DEFAULT_RULES_PATH = _PACKAGE_ROOT / "data" / "budget_rules.json"

RULES_PATH_ENV = "BUDGET_ENGINE_RULES_PATH"


@dataclass(frozen=True)
class BudgetRules:
    """Resolved budget rule values used by the allocation engine."""

    needs_ratio: float = 0.5
    wants_ratio: float = 0.3
    savings_ratio: float = 0.2
    percent20_name: str = "Monthly Savings"
    leftover_goal_name: str = "Saving Leftover Balance"
    tolerance: float = 1e-9
    xp_per_level: int = 500
    max_level: int = 13
    xp_rewards: Dict[str, int] = field(default_factory=dict)


def get_rules_path() -> Path:
    """Get the rule file path, honouring ``BUDGET_ENGINE_RULES_PATH``."""
    return Path(os.getenv(RULES_PATH_ENV, DEFAULT_RULES_PATH)).resolve()


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load a JSON rule file.

    Args:
        config_path: Path to the JSON file

    Returns:
        Dictionary containing the raw configuration

    Raises:
        FileNotFoundError: If the configuration file doesn't exist
        json.JSONDecodeError: If the configuration file is invalid JSON
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        return json.load(f)


def rules_from_config(config: Dict[str, Any]) -> BudgetRules:
    """Build :class:`BudgetRules` from a raw configuration dictionary.

    Missing sections fall back to the dataclass defaults.

    Raises:
        ValueError: If a split ratio is negative or the ratios add up to more than 1
    """
    defaults = BudgetRules()
    split = config.get('split', {})
    names = config.get('reserved_names', {})
    levels = config.get('levels', {})

    needs = float(split.get('needs', defaults.needs_ratio))
    wants = float(split.get('wants', defaults.wants_ratio))
    savings = float(split.get('savings', defaults.savings_ratio))
    for label, ratio in (('needs', needs), ('wants', wants), ('savings', savings)):
        if ratio < 0:
            raise ValueError(f"Split ratio for '{label}' cannot be negative: {ratio}")
    if needs + wants + savings > 1.0 + 1e-9:
        raise ValueError(
            f"Split ratios must not exceed 1.0 in total (got {needs + wants + savings:.4f})"
        )

    xp_per_level = int(levels.get('xp_per_level', defaults.xp_per_level))
    if xp_per_level <= 0:
        raise ValueError(f"xp_per_level must be positive: {xp_per_level}")

    return BudgetRules(
        needs_ratio=needs,
        wants_ratio=wants,
        savings_ratio=savings,
        percent20_name=names.get('percent20', defaults.percent20_name),
        leftover_goal_name=names.get('leftoverGoal', defaults.leftover_goal_name),
        tolerance=float(config.get('tolerance', defaults.tolerance)),
        xp_per_level=xp_per_level,
        max_level=int(levels.get('max_level', defaults.max_level)),
        xp_rewards={k: int(v) for k, v in config.get('xp_rewards', {}).items()},
    )


@lru_cache(maxsize=8)
def load_budget_rules(path: Optional[Path] = None) -> BudgetRules:
    """Load and validate budget rules from ``path`` (or the configured default).

    Results are cached per path; call ``load_budget_rules.cache_clear()`` after
    editing a rule file in place.
    """
    return rules_from_config(load_config(Path(path) if path else get_rules_path()))


def get_budget_rules() -> BudgetRules:
    """Get the active budget rules."""
    return load_budget_rules(get_rules_path())
