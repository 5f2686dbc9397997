from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class UserRole(str, Enum):
    admin = "admin"
    member = "member"


class CategoryType(str, Enum):
    mandatory = "mandatory"
    periodic = "periodic"
    ad_hoc = "ad_hoc"


class BudgetColor(str, Enum):
    red = "red"
    yellow = "yellow"
    blue = "blue"
    green = "green"
    purple = "purple"
    orange = "orange"
    pink = "pink"
    gray = "gray"


class RecurringPattern(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Household(Base, TimestampMixin):
    __tablename__ = "households"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Users live in the identity provider; this is a plain reference.
    created_by: Mapped[Optional[int]] = mapped_column(Integer)

    accounts: Mapped[list["PaymentAccount"]] = relationship(
        "PaymentAccount", back_populates="household"
    )


class PaymentAccount(Base, TimestampMixin):
    __tablename__ = "payment_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    household_id: Mapped[int] = mapped_column(
        ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    household: Mapped["Household"] = relationship(
        "Household", back_populates="accounts"
    )

    __table_args__ = (Index("ix_payment_accounts_household", "household_id"),)


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    household_id: Mapped[int] = mapped_column(
        ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[CategoryType] = mapped_column(SAEnum(CategoryType), nullable=False)

    __table_args__ = (Index("ix_categories_household", "household_id"),)


class IncomeEntry(Base, TimestampMixin):
    __tablename__ = "income_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    household_id: Mapped[int] = mapped_column(
        ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    month_year: Mapped[str] = mapped_column(String(7), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    allocations: Mapped[list["FundAllocation"]] = relationship(
        "FundAllocation",
        back_populates="income",
        cascade="all, delete-orphan",
        order_by="FundAllocation.id",
    )

    __table_args__ = (
        Index("ix_income_household_month", "household_id", "month_year"),
        CheckConstraint("total_cents >= 0", name="ck_income_total_positive"),
    )


class CreditEntry(Base, TimestampMixin):
    __tablename__ = "credit_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    household_id: Mapped[int] = mapped_column(
        ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    month_year: Mapped[str] = mapped_column(String(7), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("ix_credit_household_month", "household_id", "month_year"),
        CheckConstraint("total_cents >= 0", name="ck_credit_total_positive"),
    )


class FundAllocation(Base, TimestampMixin):
    __tablename__ = "fund_allocations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    income_id: Mapped[int] = mapped_column(
        ForeignKey("income_entries.id", ondelete="CASCADE"), nullable=False
    )
    account_id: Mapped[int] = mapped_column(
        ForeignKey("payment_accounts.id", ondelete="RESTRICT"), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    income: Mapped["IncomeEntry"] = relationship(
        "IncomeEntry", back_populates="allocations"
    )
    account: Mapped["PaymentAccount"] = relationship("PaymentAccount")

    __table_args__ = (
        Index("ix_fund_allocations_income", "income_id"),
        CheckConstraint("amount_cents >= 0", name="ck_allocation_amount_positive"),
    )


class BudgetItem(Base, TimestampMixin):
    __tablename__ = "budget_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    household_id: Mapped[int] = mapped_column(
        ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    month_year: Mapped[str] = mapped_column(String(7), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False
    )
    account_id: Mapped[int] = mapped_column(
        ForeignKey("payment_accounts.id", ondelete="RESTRICT"), nullable=False
    )
    color: Mapped[BudgetColor] = mapped_column(
        SAEnum(BudgetColor), default=BudgetColor.blue, nullable=False
    )

    category: Mapped["Category"] = relationship("Category")
    account: Mapped["PaymentAccount"] = relationship("PaymentAccount")

    __table_args__ = (
        Index("ix_budget_items_household_month", "household_id", "month_year"),
        CheckConstraint("amount_cents >= 0", name="ck_budget_item_amount_positive"),
    )


class BudgetCopy(Base, TimestampMixin):
    """Claim on a target month written by a budget copy."""

    __tablename__ = "budget_copies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    household_id: Mapped[int] = mapped_column(
        ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    source_month: Mapped[str] = mapped_column(String(7), nullable=False)
    target_month: Mapped[str] = mapped_column(String(7), nullable=False)
    item_count: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "household_id", "target_month", name="uq_budget_copy_household_target"
        ),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    household_id: Mapped[int] = mapped_column(
        ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    occurred_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)  # UTC
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False
    )
    account_id: Mapped[int] = mapped_column(
        ForeignKey("payment_accounts.id", ondelete="RESTRICT"), nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)
    budget_item_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("budget_items.id", ondelete="SET NULL")
    )

    category: Mapped["Category"] = relationship("Category")
    account: Mapped["PaymentAccount"] = relationship("PaymentAccount")
    budget_item: Mapped[Optional["BudgetItem"]] = relationship("BudgetItem")

    __table_args__ = (
        Index("ix_transactions_household_occurred", "household_id", "occurred_at"),
        Index("ix_transactions_budget_item", "budget_item_id"),
        CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
    )


class ExpenseTemplate(Base, TimestampMixin):
    __tablename__ = "expense_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    household_id: Mapped[int] = mapped_column(
        ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False
    )
    account_id: Mapped[int] = mapped_column(
        ForeignKey("payment_accounts.id", ondelete="RESTRICT"), nullable=False
    )

    category: Mapped["Category"] = relationship("Category")
    account: Mapped["PaymentAccount"] = relationship("PaymentAccount")

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_template_amount_positive"),
    )


class PaymentReminder(Base, TimestampMixin):
    __tablename__ = "payment_reminders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    household_id: Mapped[int] = mapped_column(
        ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    budget_item_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("budget_items.id", ondelete="CASCADE")
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    due_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    days_before_due: Mapped[int] = mapped_column(Integer, default=7, nullable=False)
    interval_days: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurring_pattern: Mapped[Optional[RecurringPattern]] = mapped_column(
        SAEnum(RecurringPattern)
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    budget_item: Mapped[Optional["BudgetItem"]] = relationship("BudgetItem")

    __table_args__ = (
        Index("ix_reminders_household_due", "household_id", "due_at"),
        CheckConstraint("days_before_due >= 0", name="ck_reminder_days_before"),
        CheckConstraint("interval_days > 0", name="ck_reminder_interval_positive"),
    )
