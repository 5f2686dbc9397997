from datetime import date, datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from errors import NotFoundOrUnauthorized, ReferentialConflict, Unauthorized
from identity import HouseholdContext
from models import BudgetColor, CategoryType, UserRole
from schemas import (
    BudgetItemIn,
    CategoryIn,
    ExpenseTemplateIn,
    PaymentAccountIn,
    TransactionIn,
)
from services import (
    BudgetService,
    CategoryService,
    ExpenseTemplateService,
    HouseholdService,
    PaymentAccountService,
    TransactionService,
)


def _setup(session: Session):
    household = HouseholdService(session).register("Home", created_by=1)
    ctx = HouseholdContext(user_id=1, household_id=household.id, role=UserRole.admin)
    utilities = CategoryService(session, ctx).create(
        CategoryIn(name="Utilities", type=CategoryType.periodic)
    )
    account = PaymentAccountService(session, ctx).list_all()[0]
    return ctx, utilities, account


def _template(description: str, amount: str, category, account) -> ExpenseTemplateIn:
    return ExpenseTemplateIn(
        description=description,
        amount=amount,
        category_id=category.id,
        account_id=account.id,
    )


def test_template_in_use_blocks_edit_and_delete() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ctx, utilities, account = _setup(session)
        templates = ExpenseTemplateService(session, ctx)
        internet = templates.create(_template("Internet", "45.99", utilities, account))
        assert not templates.is_in_use(internet)

        item = templates.add_to_month(internet.id, "2024-03", color=BudgetColor.green)
        assert (item.month_year, item.amount_cents, item.color) == (
            "2024-03",
            4_599,
            BudgetColor.green,
        )
        assert templates.is_in_use(internet)

        with pytest.raises(ReferentialConflict):
            templates.update(internet.id, _template("Fiber", "50", utilities, account))
        with pytest.raises(ReferentialConflict) as excinfo:
            templates.delete(internet.id)
        assert "being used in budget items" in str(excinfo.value)

        BudgetService(session, ctx).delete(item.id)
        templates.delete(internet.id)
        assert templates.list_all() == []


def test_value_identical_budget_item_marks_template_in_use() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ctx, utilities, account = _setup(session)
        templates = ExpenseTemplateService(session, ctx)
        water = templates.create(_template("Water", "30", utilities, account))
        power = templates.create(_template("Power", "80", utilities, account))

        BudgetService(session, ctx).create(
            BudgetItemIn(
                month_year="2024-01",
                description="Water",
                amount="30.00",
                category_id=utilities.id,
                account_id=account.id,
            )
        )

        views = {v.template.id: v.in_use for v in templates.list_all()}
        assert views == {water.id: True, power.id: False}
        assert [v.template.id for v in templates.list_all("pow")] == [power.id]

        updated = templates.update(
            power.id, _template("Power", "85", utilities, account)
        )
        assert updated.amount_cents == 8_500


def test_account_in_use_cannot_be_renamed_or_deleted() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ctx, utilities, account = _setup(session)
        accounts = PaymentAccountService(session, ctx)
        spare = accounts.create(PaymentAccountIn(name="Savings"))

        ExpenseTemplateService(session, ctx).create(
            _template("Internet", "45", utilities, account)
        )
        usage = {u.account.name: u.in_use for u in accounts.list_with_usage()}
        assert usage == {
            "Primary Account": True,
            "Savings": False,
            "Shared Allocation": False,
        }

        with pytest.raises(ReferentialConflict):
            accounts.delete(account.id)
        with pytest.raises(ReferentialConflict):
            accounts.rename(account.id, PaymentAccountIn(name="Main"))

        renamed = accounts.rename(spare.id, PaymentAccountIn(name="Rainy day"))
        assert renamed.name == "Rainy day"
        accounts.delete(spare.id)
        assert len(accounts.list_all()) == 2


def test_members_cannot_manage_accounts_or_categories() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ctx, utilities, _ = _setup(session)
        member = HouseholdContext(user_id=2, household_id=ctx.household_id)

        with pytest.raises(Unauthorized):
            PaymentAccountService(session, member).create(PaymentAccountIn(name="X"))
        with pytest.raises(Unauthorized):
            CategoryService(session, member).delete(utilities.id)
        assert len(CategoryService(session, member).list_all()) == 1


def test_category_in_use_cannot_be_deleted() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ctx, utilities, account = _setup(session)
        categories = CategoryService(session, ctx)
        spare = categories.create(CategoryIn(name="Misc", type=CategoryType.ad_hoc))

        TransactionService(session, ctx).create(
            TransactionIn(
                occurred_at=datetime(2024, 1, 5),
                description="Bill",
                amount="20",
                category_id=utilities.id,
                account_id=account.id,
            )
        )

        with pytest.raises(ReferentialConflict):
            categories.delete(utilities.id)
        categories.delete(spare.id)
        assert [c.name for c in categories.list_all()] == ["Utilities"]


def test_transactions_are_grouped_by_day_newest_first() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ctx, utilities, account = _setup(session)
        txns = TransactionService(session, ctx)
        for when in (
            datetime(2024, 1, 5, 9, 0),
            datetime(2024, 1, 7, 18, 0),
            datetime(2024, 1, 5, 20, 0),
            datetime(2024, 2, 1, 0, 0),
        ):
            txns.create(
                TransactionIn(
                    occurred_at=when,
                    description="Bill",
                    amount="10",
                    category_id=utilities.id,
                    account_id=account.id,
                )
            )

        days = txns.list_for_month("2024-01")
        assert [d.date for d in days] == [date(2024, 1, 7), date(2024, 1, 5)]
        assert [t.occurred_at.hour for t in days[1].transactions] == [20, 9]

        first = days[0].transactions[0]
        assert txns.get(first.id).description == "Bill"
        txns.delete(first.id)
        with pytest.raises(NotFoundOrUnauthorized):
            txns.get(first.id)
