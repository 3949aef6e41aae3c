"""Budget evaluator - advisory and binding budget checks.

Given a requested amount and an ordered list of chosen budget categories,
attributes the amount across the categories and reports every category that
would end up over its allocation. Supports two enforcement modes:
- Advisory: warnings are reported, the transition proceeds (soft_fail)
- Binding: warnings block the transition unless overridden (hard_fail)

Evaluation is a pure function of its inputs; ledger reads happen before it
and ledger writes after it, both in the workflow service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Sequence
from uuid import UUID

ZERO = Decimal("0")


class EnforcementMode(str, Enum):
    """How a non-empty warning list is treated."""

    ADVISORY = "advisory"
    BINDING = "binding"


@dataclass(frozen=True)
class BudgetAllocation:
    """Snapshot of one budget category as read from the ledger."""

    category_id: UUID
    name: str
    code: str
    allocated: Decimal
    used: Decimal

    @property
    def available(self) -> Decimal:
        """Allocated minus used (negative when over-committed)."""
        return self.allocated - self.used


@dataclass(frozen=True)
class BudgetAttribution:
    """Portion of the requested amount charged to one category."""

    category_id: UUID
    amount: Decimal


@dataclass(frozen=True)
class BudgetWarning:
    """A category whose attributed amount exceeds its available budget."""

    category_id: UUID
    category_name: str
    allocated: Decimal
    currently_used: Decimal
    requested: Decimal
    deficit: Decimal

    def to_dict(self) -> dict[str, Any]:
        """Serialize with camelCase keys, as the dashboard consumes them."""
        return {
            "categoryId": str(self.category_id),
            "categoryName": self.category_name,
            "allocated": str(self.allocated),
            "currentlyUsed": str(self.currently_used),
            "requested": str(self.requested),
            "deficit": str(self.deficit),
        }


@dataclass(frozen=True)
class BudgetEvaluation:
    """Result of a budget evaluation."""

    mode: EnforcementMode
    requested_amount: Decimal
    attributions: list[BudgetAttribution] = field(default_factory=list)
    warnings: list[BudgetWarning] = field(default_factory=list)

    @property
    def within_budget(self) -> bool:
        """Whether the request fits entirely within available budget."""
        return not self.warnings

    @property
    def blocking(self) -> bool:
        """Whether this evaluation blocks the transition (before any override)."""
        return self.mode == EnforcementMode.BINDING and bool(self.warnings)

    @property
    def outcome(self) -> str:
        """pass, soft_fail (advisory with warnings), or hard_fail."""
        if not self.warnings:
            return "pass"
        return "hard_fail" if self.mode == EnforcementMode.BINDING else "soft_fail"

    @property
    def total_deficit(self) -> Decimal:
        """Sum of all category deficits."""
        return sum((w.deficit for w in self.warnings), ZERO)


def attribute_amount(
    requested_amount: Decimal,
    allocations: Sequence[BudgetAllocation],
) -> list[BudgetAttribution]:
    """Split a requested amount across categories, first category first.

    Each category absorbs up to its available amount (never less than zero)
    and the remainder cascades to the next one. The last category takes
    whatever is still left, even beyond its available amount. Categories that
    receive nothing are omitted.
    """
    if not allocations:
        raise ValueError("At least one budget category is required")
    if requested_amount < 0:
        raise ValueError("Requested amount must not be negative")

    attributions: list[BudgetAttribution] = []
    remaining = requested_amount
    last_index = len(allocations) - 1

    for index, allocation in enumerate(allocations):
        if remaining <= 0:
            break
        if index == last_index:
            share = remaining
        else:
            share = min(remaining, max(allocation.available, ZERO))
        if share > 0:
            attributions.append(BudgetAttribution(allocation.category_id, share))
            remaining -= share

    return attributions


def evaluate_budget(
    requested_amount: Decimal,
    allocations: Sequence[BudgetAllocation],
    mode: EnforcementMode = EnforcementMode.ADVISORY,
) -> BudgetEvaluation:
    """Evaluate a requested amount against the chosen budget categories.

    Args:
        requested_amount: Amount to charge (request total or a subset)
        allocations: Chosen categories, in the order the approver picked them
        mode: Advisory or binding enforcement

    Returns:
        BudgetEvaluation with attributions and (possibly empty) warnings
    """
    attributions = attribute_amount(requested_amount, allocations)
    by_id = {a.category_id: a for a in allocations}

    warnings: list[BudgetWarning] = []
    for attribution in attributions:
        allocation = by_id[attribution.category_id]
        if attribution.amount > allocation.available:
            warnings.append(
                BudgetWarning(
                    category_id=allocation.category_id,
                    category_name=allocation.name,
                    allocated=allocation.allocated,
                    currently_used=allocation.used,
                    requested=attribution.amount,
                    deficit=attribution.amount - allocation.available,
                )
            )

    return BudgetEvaluation(
        mode=mode,
        requested_amount=requested_amount,
        attributions=attributions,
        warnings=warnings,
    )
