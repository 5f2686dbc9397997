import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from database import Base
from errors import AllocationMismatch, NotFoundOrUnauthorized, Unauthorized
from identity import HouseholdContext
from models import FundAllocation, IncomeEntry, UserRole
from schemas import AllocationIn, CreditIn, CreditUpdateIn, IncomeIn, IncomeUpdateIn
from services import (
    CreditService,
    HouseholdService,
    IncomeService,
    PaymentAccountService,
)


def _household(session: Session, name: str = "Home") -> HouseholdContext:
    household = HouseholdService(session).register(name, created_by=1)
    return HouseholdContext(user_id=1, household_id=household.id, role=UserRole.admin)


def _row_counts(session: Session) -> tuple[int, int]:
    incomes = session.execute(select(func.count(IncomeEntry.id))).scalar_one()
    allocations = session.execute(select(func.count(FundAllocation.id))).scalar_one()
    return incomes, allocations


def test_register_creates_default_accounts() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ctx = _household(session)
        names = [a.name for a in PaymentAccountService(session, ctx).list_all()]
        assert names == ["Primary Account", "Shared Allocation"]


def test_income_with_matching_split_is_stored_with_allocations() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ctx = _household(session)
        primary, shared = PaymentAccountService(session, ctx).list_all()

        entry = IncomeService(session, ctx).create(
            IncomeIn(
                month_year="2024-01",
                description="Salary",
                total_amount="5000",
                allocations=[
                    AllocationIn(account_id=primary.id, amount="3000"),
                    AllocationIn(account_id=shared.id, amount="2000.00"),
                ],
            )
        )

        assert entry.total_cents == 500_000
        assert [a.amount_cents for a in entry.allocations] == [300_000, 200_000]
        listed = IncomeService(session, ctx).list_for_month("2024-01")
        assert [e.id for e in listed] == [entry.id]


def test_income_mismatch_writes_nothing() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ctx = _household(session)
        primary, shared = PaymentAccountService(session, ctx).list_all()

        with pytest.raises(AllocationMismatch):
            IncomeService(session, ctx).create(
                IncomeIn(
                    month_year="2024-01",
                    total_amount="5000",
                    allocations=[
                        AllocationIn(account_id=primary.id, amount="3000"),
                        AllocationIn(account_id=shared.id, amount="1999.98"),
                    ],
                )
            )
        assert _row_counts(session) == (0, 0)


def test_income_update_replaces_allocations() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ctx = _household(session)
        primary, shared = PaymentAccountService(session, ctx).list_all()
        service = IncomeService(session, ctx)
        entry = service.create(
            IncomeIn(
                month_year="2024-01",
                total_amount="100",
                allocations=[
                    AllocationIn(account_id=primary.id, amount="60"),
                    AllocationIn(account_id=shared.id, amount="40"),
                ],
            )
        )

        updated = service.update(
            entry.id,
            IncomeUpdateIn(
                description="Bonus",
                total_amount="250.50",
                allocations=[AllocationIn(account_id=shared.id, amount="250.50")],
            ),
        )

        assert updated.description == "Bonus"
        assert [(a.account_id, a.amount_cents) for a in updated.allocations] == [
            (shared.id, 25_050)
        ]
        assert _row_counts(session) == (1, 1)

        with pytest.raises(AllocationMismatch):
            service.update(
                entry.id,
                IncomeUpdateIn(
                    total_amount="300",
                    allocations=[AllocationIn(account_id=shared.id, amount="250.50")],
                ),
            )
        session.expire_all()
        assert service.get(entry.id).total_cents == 25_050

        service.delete(entry.id)
        assert _row_counts(session) == (0, 0)


def test_income_rejects_foreign_household_account() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ours = _household(session, "Ours")
        theirs = _household(session, "Theirs")
        foreign = PaymentAccountService(session, theirs).list_all()[0]

        with pytest.raises(NotFoundOrUnauthorized):
            IncomeService(session, ours).create(
                IncomeIn(
                    month_year="2024-01",
                    total_amount="10",
                    allocations=[AllocationIn(account_id=foreign.id, amount="10")],
                )
            )
        assert _row_counts(session) == (0, 0)


def test_service_requires_household_context() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(Unauthorized):
            IncomeService(session, None)
        with pytest.raises(Unauthorized):
            IncomeService(session, HouseholdContext(user_id=1, household_id=0))


def test_credit_entries_round_out_the_month() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ctx = _household(session)
        credits = CreditService(session, ctx)
        entry = credits.create(
            CreditIn(month_year="2024-02", total_amount="120.5", notes="Refund")
        )
        credits.update(
            entry.id, CreditUpdateIn(description="Tax refund", total_amount="130")
        )

        listed = credits.list_for_month("2024-02")
        assert [(c.description, c.total_cents, c.notes) for c in listed] == [
            ("Tax refund", 13_000, None)
        ]
        assert credits.list_for_month("2024-03") == []
