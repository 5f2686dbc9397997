import datetime as dt
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from aggregation import (
    AccountBalance,
    CategoryPlan,
    CategorySummary,
    DashboardSnapshot,
    MonthlySummary,
    ReportTrends,
    UnplannedCategory,
)
from models import BudgetColor, CategoryType, RecurringPattern
from money import AMOUNT_PATTERN, format_amount
from periods import MONTH_PATTERN


class HouseholdIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class PaymentAccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: CategoryType


class AllocationIn(BaseModel):
    account_id: int
    amount: str = Field(..., pattern=AMOUNT_PATTERN)


class IncomeUpdateIn(BaseModel):
    description: Optional[str] = Field(default=None, max_length=255)
    total_amount: str = Field(..., pattern=AMOUNT_PATTERN)
    allocations: list[AllocationIn] = Field(..., min_length=1)


class IncomeIn(IncomeUpdateIn):
    month_year: str = Field(..., pattern=MONTH_PATTERN)


class CreditUpdateIn(BaseModel):
    description: Optional[str] = Field(default=None, max_length=255)
    total_amount: str = Field(..., pattern=AMOUNT_PATTERN)
    notes: Optional[str] = None


class CreditIn(CreditUpdateIn):
    month_year: str = Field(..., pattern=MONTH_PATTERN)


class BudgetItemUpdateIn(BaseModel):
    description: str = Field(..., min_length=1)
    amount: str = Field(..., pattern=AMOUNT_PATTERN)
    category_id: int
    account_id: int
    color: BudgetColor = BudgetColor.blue


class BudgetItemIn(BudgetItemUpdateIn):
    month_year: str = Field(..., pattern=MONTH_PATTERN)


class BudgetCopyIn(BaseModel):
    source_month: str = Field(..., pattern=MONTH_PATTERN)
    target_month: str = Field(..., pattern=MONTH_PATTERN)


class TransactionIn(BaseModel):
    occurred_at: datetime
    description: str = Field(..., min_length=1)
    amount: str = Field(..., pattern=AMOUNT_PATTERN)
    category_id: int
    account_id: int
    notes: Optional[str] = None
    budget_item_id: Optional[int] = None


class ExpenseTemplateIn(BaseModel):
    description: str = Field(..., min_length=1)
    amount: str = Field(..., pattern=AMOUNT_PATTERN)
    category_id: int
    account_id: int


class TemplateApplyIn(BaseModel):
    month_year: str = Field(..., pattern=MONTH_PATTERN)
    color: BudgetColor = BudgetColor.blue


class ReminderIn(BaseModel):
    budget_item_id: Optional[int] = None
    description: str = Field(..., min_length=1)
    amount: str = Field(..., pattern=AMOUNT_PATTERN)
    due_at: datetime
    days_before_due: int = Field(default=7, ge=0, le=365)
    interval_days: int = Field(default=1, gt=0, le=365)
    is_recurring: bool = False
    recurring_pattern: Optional[RecurringPattern] = None
    is_active: bool = True


class ReminderUpdateIn(BaseModel):
    budget_item_id: Optional[int] = None
    description: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[str] = Field(default=None, pattern=AMOUNT_PATTERN)
    due_at: Optional[datetime] = None
    days_before_due: Optional[int] = Field(default=None, ge=0, le=365)
    interval_days: Optional[int] = Field(default=None, gt=0, le=365)
    is_recurring: Optional[bool] = None
    recurring_pattern: Optional[RecurringPattern] = None
    is_active: Optional[bool] = None


# Responses. Amounts leave the service as decimal strings with two digits.


class AccountBalanceOut(BaseModel):
    account_id: int
    account_name: str
    allocated: str
    spent: str
    remaining: str

    @classmethod
    def build(cls, row: AccountBalance) -> "AccountBalanceOut":
        return cls(
            account_id=row.account_id,
            account_name=row.account_name,
            allocated=format_amount(row.allocated_cents),
            spent=format_amount(row.spent_cents),
            remaining=format_amount(row.remaining_cents),
        )


class CategoryPlanOut(BaseModel):
    category: str
    planned: str
    actual: str

    @classmethod
    def build(cls, row: CategoryPlan) -> "CategoryPlanOut":
        return cls(
            category=row.category,
            planned=format_amount(row.planned_cents),
            actual=format_amount(row.actual_cents),
        )


class UnplannedCategoryOut(BaseModel):
    name: str
    amount: str
    type: Optional[CategoryType] = None

    @classmethod
    def build(cls, row: UnplannedCategory) -> "UnplannedCategoryOut":
        return cls(
            name=row.name,
            amount=format_amount(row.amount_cents),
            type=row.category_type,
        )


class CategorySummaryOut(BaseModel):
    category_name: str
    category_type: CategoryType
    budget_amount: str
    actual_spent: str
    remaining: str

    @classmethod
    def build(cls, row: CategorySummary) -> "CategorySummaryOut":
        return cls(
            category_name=row.category_name,
            category_type=row.category_type,
            budget_amount=format_amount(row.budget_cents),
            actual_spent=format_amount(row.actual_cents),
            remaining=format_amount(row.remaining_cents),
        )


class DashboardOut(BaseModel):
    month_year: str
    income: str
    credits: str
    total_inward: str
    total_planned: str
    total_actual: str
    total_planned_actual: str
    total_unplanned_actual: str
    net_cash_flow: str
    account_balances: list[AccountBalanceOut]
    top_unplanned_categories: list[UnplannedCategoryOut]
    category_data: list[CategoryPlanOut]
    budget_by_category: list[CategorySummaryOut]

    @classmethod
    def build(cls, snapshot: DashboardSnapshot) -> "DashboardOut":
        return cls(
            month_year=snapshot.month_year,
            income=format_amount(snapshot.income_cents),
            credits=format_amount(snapshot.credits_cents),
            total_inward=format_amount(snapshot.total_inward_cents),
            total_planned=format_amount(snapshot.total_planned_cents),
            total_actual=format_amount(snapshot.total_actual_cents),
            total_planned_actual=format_amount(snapshot.total_planned_actual_cents),
            total_unplanned_actual=format_amount(
                snapshot.total_unplanned_actual_cents
            ),
            net_cash_flow=format_amount(snapshot.net_cash_flow_cents),
            account_balances=[
                AccountBalanceOut.build(r) for r in snapshot.account_balances
            ],
            top_unplanned_categories=[
                UnplannedCategoryOut.build(r)
                for r in snapshot.top_unplanned_categories
            ],
            category_data=[CategoryPlanOut.build(r) for r in snapshot.category_data],
            budget_by_category=[
                CategorySummaryOut.build(r) for r in snapshot.budget_by_category
            ],
        )


class MonthlySummaryOut(BaseModel):
    month_year: str
    income: str
    credits: str
    total_inward: str
    total_planned: str
    total_actual: str
    total_planned_actual: str
    total_unplanned_actual: str

    @classmethod
    def build(cls, row: MonthlySummary) -> "MonthlySummaryOut":
        return cls(
            month_year=row.month_year,
            income=format_amount(row.income_cents),
            credits=format_amount(row.credits_cents),
            total_inward=format_amount(row.total_inward_cents),
            total_planned=format_amount(row.total_planned_cents),
            total_actual=format_amount(row.total_actual_cents),
            total_planned_actual=format_amount(row.total_planned_actual_cents),
            total_unplanned_actual=format_amount(row.total_unplanned_actual_cents),
        )


class ReportTrendsOut(BaseModel):
    total_income: str
    total_credits: str
    total_inward: str
    total_planned: str
    total_actual: str
    avg_net_cash_flow: str
    income_trend: str
    expense_trend: str

    @classmethod
    def build(cls, trends: ReportTrends) -> "ReportTrendsOut":
        return cls(
            total_income=format_amount(trends.total_income_cents),
            total_credits=format_amount(trends.total_credits_cents),
            total_inward=format_amount(trends.total_inward_cents),
            total_planned=format_amount(trends.total_planned_cents),
            total_actual=format_amount(trends.total_actual_cents),
            avg_net_cash_flow=format_amount(trends.avg_net_cash_flow_cents),
            income_trend=format_amount(trends.income_trend_cents),
            expense_trend=format_amount(trends.expense_trend_cents),
        )


class ReportOut(BaseModel):
    months: list[MonthlySummaryOut]
    summary: ReportTrendsOut


class AccountOut(BaseModel):
    id: int
    name: str
    in_use: bool = False


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: CategoryType


class AllocationOut(BaseModel):
    account_id: int
    account_name: str
    amount: str


class IncomeOut(BaseModel):
    id: int
    month_year: str
    description: Optional[str]
    total_amount: str
    allocations: list[AllocationOut]


class CreditOut(BaseModel):
    id: int
    month_year: str
    description: Optional[str]
    total_amount: str
    notes: Optional[str]


class BudgetItemOut(BaseModel):
    id: int
    month_year: str
    description: str
    amount: str
    category_id: int
    category_name: str
    category_type: CategoryType
    account_id: int
    account_name: str
    color: BudgetColor
    actual_spent: str = "0.00"


class TransactionOut(BaseModel):
    id: int
    occurred_at: datetime
    description: str
    amount: str
    category_id: int
    category_name: str
    account_id: int
    account_name: str
    notes: Optional[str]
    budget_item_id: Optional[int]


class TransactionDayOut(BaseModel):
    date: dt.date
    transactions: list[TransactionOut]


class TemplateOut(BaseModel):
    id: int
    description: str
    amount: str
    category_id: int
    category_name: str
    account_id: int
    account_name: str
    in_use: bool


class ReminderOut(BaseModel):
    id: int
    budget_item_id: Optional[int]
    description: str
    amount: str
    due_at: datetime
    days_before_due: int
    interval_days: int
    is_recurring: bool
    recurring_pattern: Optional[RecurringPattern]
    is_active: bool
    notified: bool
    last_notified_at: Optional[datetime]


class CopyResultOut(BaseModel):
    count: int
