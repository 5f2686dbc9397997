"""Pure financial rollups for one household.

Everything in here works on rows that were already loaded and scoped to a
single household; nothing touches the database. Amounts are integer cents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence

from errors import AllocationMismatch, InvalidInput
from models import CategoryType

ALLOCATION_TOLERANCE_CENTS = 1
TOP_UNPLANNED_LIMIT = 3


@dataclass(frozen=True)
class AllocationLine:
    account_id: int
    amount_cents: int
    account_name: str = ""


@dataclass(frozen=True)
class PlannedLine:
    category_id: int
    category_name: str
    category_type: CategoryType
    amount_cents: int


@dataclass(frozen=True)
class SpendLine:
    account_id: int
    category_id: int
    category_name: str
    amount_cents: int
    category_type: Optional[CategoryType] = None
    budget_item_id: Optional[int] = None

    @property
    def is_planned(self) -> bool:
        return self.budget_item_id is not None


@dataclass(frozen=True)
class AccountBalance:
    account_id: int
    account_name: str
    allocated_cents: int
    spent_cents: int
    remaining_cents: int


@dataclass(frozen=True)
class CategoryPlan:
    category: str
    planned_cents: int
    actual_cents: int


@dataclass(frozen=True)
class UnplannedCategory:
    name: str
    amount_cents: int
    category_type: Optional[CategoryType] = None


@dataclass(frozen=True)
class CategorySummary:
    category_name: str
    category_type: CategoryType
    budget_cents: int
    actual_cents: int
    remaining_cents: int


@dataclass(frozen=True)
class CategoryRollup:
    category_data: list[CategoryPlan]
    top_unplanned: list[UnplannedCategory]
    budget_by_category: list[CategorySummary]


def validate_allocations(
    total_cents: int, allocations: Sequence[AllocationLine]
) -> int:
    """Check that allocations split ``total_cents`` within one cent.

    Returns the allocated sum. Raises before the caller writes anything.
    """
    if not allocations:
        raise InvalidInput("At least one allocation is required")
    if total_cents < 0:
        raise InvalidInput("Total amount must not be negative")
    if any(line.amount_cents < 0 for line in allocations):
        raise InvalidInput("Allocation amounts must not be negative")

    allocated = sum(line.amount_cents for line in allocations)
    if abs(allocated - total_cents) > ALLOCATION_TOLERANCE_CENTS:
        raise AllocationMismatch(total_cents, allocated)
    return allocated


def compute_account_balances(
    allocations: Sequence[AllocationLine], transactions: Sequence[SpendLine]
) -> list[AccountBalance]:
    # Only funded accounts get a row; spend from accounts without an
    # allocation this month is not reported here.
    allocated: dict[int, int] = {}
    names: dict[int, str] = {}
    for line in allocations:
        current = allocated.get(line.account_id, 0)
        allocated[line.account_id] = current + line.amount_cents
        names.setdefault(line.account_id, line.account_name)

    spent: dict[int, int] = {}
    for txn in transactions:
        spent[txn.account_id] = spent.get(txn.account_id, 0) + txn.amount_cents

    balances: list[AccountBalance] = []
    for account_id, funded in allocated.items():
        used = spent.get(account_id, 0)
        balances.append(
            AccountBalance(
                account_id=account_id,
                account_name=names[account_id],
                allocated_cents=funded,
                spent_cents=used,
                remaining_cents=funded - used,
            )
        )
    return balances


@dataclass
class _PlanBucket:
    name: str
    type: CategoryType
    planned: int = 0
    actual: int = 0


@dataclass
class _UnplannedBucket:
    name: str
    type: Optional[CategoryType]
    amount: int = 0


def compute_category_rollup(
    budget_items: Sequence[PlannedLine], transactions: Sequence[SpendLine]
) -> CategoryRollup:
    buckets: dict[int, _PlanBucket] = {}
    for item in budget_items:
        bucket = buckets.get(item.category_id)
        if bucket is None:
            bucket = _PlanBucket(name=item.category_name, type=item.category_type)
            buckets[item.category_id] = bucket
        bucket.planned += item.amount_cents

    unplanned: dict[str, _UnplannedBucket] = {}
    for txn in transactions:
        # Actual counts every transaction in a budgeted category, linked or not.
        bucket = buckets.get(txn.category_id)
        if bucket is not None:
            bucket.actual += txn.amount_cents
        if not txn.is_planned:
            group = unplanned.get(txn.category_name)
            if group is None:
                group = _UnplannedBucket(
                    name=txn.category_name, type=txn.category_type
                )
                unplanned[txn.category_name] = group
            group.amount += txn.amount_cents

    category_data = [
        CategoryPlan(category=b.name, planned_cents=b.planned, actual_cents=b.actual)
        for b in buckets.values()
    ]
    # sorted() is stable, so equal amounts keep first-encounter order.
    ranked = sorted(unplanned.values(), key=lambda g: g.amount, reverse=True)
    top_unplanned = [
        UnplannedCategory(name=g.name, amount_cents=g.amount, category_type=g.type)
        for g in ranked[:TOP_UNPLANNED_LIMIT]
    ]
    summaries = [
        CategorySummary(
            category_name=b.name,
            category_type=b.type,
            budget_cents=b.planned,
            actual_cents=b.actual,
            remaining_cents=b.planned - b.actual,
        )
        for b in buckets.values()
    ]
    summaries.sort(key=lambda s: s.budget_cents, reverse=True)
    return CategoryRollup(
        category_data=category_data,
        top_unplanned=top_unplanned,
        budget_by_category=summaries,
    )


@dataclass(frozen=True)
class DashboardSnapshot:
    month_year: str
    income_cents: int = 0
    credits_cents: int = 0
    total_inward_cents: int = 0
    total_planned_cents: int = 0
    total_actual_cents: int = 0
    total_planned_actual_cents: int = 0
    total_unplanned_actual_cents: int = 0
    net_cash_flow_cents: int = 0
    account_balances: list[AccountBalance] = field(default_factory=list)
    top_unplanned_categories: list[UnplannedCategory] = field(default_factory=list)
    category_data: list[CategoryPlan] = field(default_factory=list)
    budget_by_category: list[CategorySummary] = field(default_factory=list)


def build_snapshot(
    month_year: str,
    *,
    income_cents: int,
    credits_cents: int,
    allocations: Sequence[AllocationLine],
    budget_items: Sequence[PlannedLine],
    transactions: Sequence[SpendLine],
) -> DashboardSnapshot:
    planned_actual = sum(t.amount_cents for t in transactions if t.is_planned)
    unplanned_actual = sum(t.amount_cents for t in transactions if not t.is_planned)
    total_actual = planned_actual + unplanned_actual
    total_planned = sum(item.amount_cents for item in budget_items)

    balances = compute_account_balances(allocations, transactions)
    rollup = compute_category_rollup(budget_items, transactions)

    total_inward = income_cents + credits_cents
    return DashboardSnapshot(
        month_year=month_year,
        income_cents=income_cents,
        credits_cents=credits_cents,
        total_inward_cents=total_inward,
        total_planned_cents=total_planned,
        total_actual_cents=total_actual,
        total_planned_actual_cents=planned_actual,
        total_unplanned_actual_cents=unplanned_actual,
        net_cash_flow_cents=total_inward - total_actual,
        account_balances=balances,
        top_unplanned_categories=rollup.top_unplanned,
        category_data=rollup.category_data,
        budget_by_category=rollup.budget_by_category,
    )


@dataclass(frozen=True)
class MonthlySummary:
    month_year: str
    income_cents: int
    credits_cents: int
    total_inward_cents: int
    total_planned_cents: int
    total_actual_cents: int
    total_planned_actual_cents: int
    total_unplanned_actual_cents: int

    @property
    def net_cash_flow_cents(self) -> int:
        return self.total_inward_cents - self.total_actual_cents

    @classmethod
    def from_snapshot(cls, snapshot: DashboardSnapshot) -> "MonthlySummary":
        return cls(
            month_year=snapshot.month_year,
            income_cents=snapshot.income_cents,
            credits_cents=snapshot.credits_cents,
            total_inward_cents=snapshot.total_inward_cents,
            total_planned_cents=snapshot.total_planned_cents,
            total_actual_cents=snapshot.total_actual_cents,
            total_planned_actual_cents=snapshot.total_planned_actual_cents,
            total_unplanned_actual_cents=snapshot.total_unplanned_actual_cents,
        )


@dataclass(frozen=True)
class ReportTrends:
    total_income_cents: int = 0
    total_credits_cents: int = 0
    total_inward_cents: int = 0
    total_planned_cents: int = 0
    total_actual_cents: int = 0
    avg_net_cash_flow_cents: int = 0
    income_trend_cents: int = 0
    expense_trend_cents: int = 0


def report_trends(rows: Sequence[MonthlySummary]) -> ReportTrends:
    if not rows:
        return ReportTrends()
    net_total = sum(r.net_cash_flow_cents for r in rows)
    avg_net = int(
        (Decimal(net_total) / len(rows)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )
    income_trend = 0
    expense_trend = 0
    if len(rows) >= 2:
        income_trend = rows[0].income_cents - rows[-1].income_cents
        expense_trend = rows[0].total_actual_cents - rows[-1].total_actual_cents
    return ReportTrends(
        total_income_cents=sum(r.income_cents for r in rows),
        total_credits_cents=sum(r.credits_cents for r in rows),
        total_inward_cents=sum(r.total_inward_cents for r in rows),
        total_planned_cents=sum(r.total_planned_cents for r in rows),
        total_actual_cents=sum(r.total_actual_cents for r in rows),
        avg_net_cash_flow_cents=avg_net,
        income_trend_cents=income_trend,
        expense_trend_cents=expense_trend,
    )
