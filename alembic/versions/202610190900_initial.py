"""initial household budget schema

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None

CATEGORY_TYPES = ("mandatory", "periodic", "ad_hoc")
BUDGET_COLORS = ("red", "yellow", "blue", "green", "purple", "orange", "pink", "gray")
RECURRING_PATTERNS = ("daily", "weekly", "monthly", "yearly")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _household_fk():
    return sa.Column(
        "household_id",
        sa.Integer(),
        sa.ForeignKey("households.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade():
    op.create_table(
        "households",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_by", sa.Integer()),
        *_timestamps(),
    )

    op.create_table(
        "payment_accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        _household_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_payment_accounts_household", "payment_accounts", ["household_id"]
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        _household_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "type", sa.Enum(*CATEGORY_TYPES, name="categorytype"), nullable=False
        ),
        *_timestamps(),
    )
    op.create_index("ix_categories_household", "categories", ["household_id"])

    op.create_table(
        "income_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        _household_fk(),
        sa.Column("month_year", sa.String(length=7), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("total_cents >= 0", name="ck_income_total_positive"),
    )
    op.create_index(
        "ix_income_household_month", "income_entries", ["household_id", "month_year"]
    )

    op.create_table(
        "credit_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        _household_fk(),
        sa.Column("month_year", sa.String(length=7), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.CheckConstraint("total_cents >= 0", name="ck_credit_total_positive"),
    )
    op.create_index(
        "ix_credit_household_month", "credit_entries", ["household_id", "month_year"]
    )

    op.create_table(
        "fund_allocations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "income_id",
            sa.Integer(),
            sa.ForeignKey("income_entries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("payment_accounts.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_allocation_amount_positive"),
    )
    op.create_index("ix_fund_allocations_income", "fund_allocations", ["income_id"])

    op.create_table(
        "budget_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        _household_fk(),
        sa.Column("month_year", sa.String(length=7), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("payment_accounts.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "color",
            sa.Enum(*BUDGET_COLORS, name="budgetcolor"),
            nullable=False,
            server_default="blue",
        ),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_budget_item_amount_positive"),
    )
    op.create_index(
        "ix_budget_items_household_month",
        "budget_items",
        ["household_id", "month_year"],
    )

    op.create_table(
        "budget_copies",
        sa.Column("id", sa.Integer(), primary_key=True),
        _household_fk(),
        sa.Column("source_month", sa.String(length=7), nullable=False),
        sa.Column("target_month", sa.String(length=7), nullable=False),
        sa.Column("item_count", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "household_id", "target_month", name="uq_budget_copy_household_target"
        ),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _household_fk(),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("payment_accounts.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("notes", sa.Text()),
        sa.Column(
            "budget_item_id",
            sa.Integer(),
            sa.ForeignKey("budget_items.id", ondelete="SET NULL"),
        ),
        *_timestamps(),
        sa.CheckConstraint(
            "amount_cents >= 0", name="ck_transactions_amount_positive"
        ),
    )
    op.create_index(
        "ix_transactions_household_occurred",
        "transactions",
        ["household_id", "occurred_at"],
    )
    op.create_index("ix_transactions_budget_item", "transactions", ["budget_item_id"])

    op.create_table(
        "expense_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        _household_fk(),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("payment_accounts.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_template_amount_positive"),
    )

    op.create_table(
        "payment_reminders",
        sa.Column("id", sa.Integer(), primary_key=True),
        _household_fk(),
        sa.Column(
            "budget_item_id",
            sa.Integer(),
            sa.ForeignKey("budget_items.id", ondelete="CASCADE"),
        ),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("due_at", sa.DateTime(), nullable=False),
        sa.Column("days_before_due", sa.Integer(), nullable=False, server_default="7"),
        sa.Column("interval_days", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "recurring_pattern", sa.Enum(*RECURRING_PATTERNS, name="recurringpattern")
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_notified_at", sa.DateTime()),
        *_timestamps(),
        sa.CheckConstraint("days_before_due >= 0", name="ck_reminder_days_before"),
        sa.CheckConstraint("interval_days > 0", name="ck_reminder_interval_positive"),
    )
    op.create_index(
        "ix_reminders_household_due", "payment_reminders", ["household_id", "due_at"]
    )


def downgrade():
    op.drop_index("ix_reminders_household_due", table_name="payment_reminders")
    op.drop_table("payment_reminders")
    op.drop_table("expense_templates")
    op.drop_index("ix_transactions_budget_item", table_name="transactions")
    op.drop_index("ix_transactions_household_occurred", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("budget_copies")
    op.drop_index("ix_budget_items_household_month", table_name="budget_items")
    op.drop_table("budget_items")
    op.drop_index("ix_fund_allocations_income", table_name="fund_allocations")
    op.drop_table("fund_allocations")
    op.drop_index("ix_credit_household_month", table_name="credit_entries")
    op.drop_table("credit_entries")
    op.drop_index("ix_income_household_month", table_name="income_entries")
    op.drop_table("income_entries")
    op.drop_index("ix_categories_household", table_name="categories")
    op.drop_table("categories")
    op.drop_index("ix_payment_accounts_household", table_name="payment_accounts")
    op.drop_table("payment_accounts")
    op.drop_table("households")
