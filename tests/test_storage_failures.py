import pytest
from sqlalchemy import create_engine, func, select, text
from sqlalchemy.orm import Session

from database import Base
from errors import OperationFailed
from identity import HouseholdContext
from models import IncomeEntry, UserRole
from schemas import AllocationIn, IncomeIn
from services import (
    DashboardService,
    HouseholdService,
    IncomeService,
    PaymentAccountService,
    ReportService,
)


def _household(session: Session) -> HouseholdContext:
    household = HouseholdService(session).register("Home", created_by=1)
    return HouseholdContext(user_id=1, household_id=household.id, role=UserRole.admin)


def _drop(session: Session, table: str) -> None:
    session.execute(text(f"DROP TABLE {table}"))
    session.commit()


def test_read_failures_surface_as_operation_failed() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ctx = _household(session)
        _drop(session, "transactions")

        with pytest.raises(OperationFailed):
            DashboardService(session, ctx).get_dashboard_data("2024-01")
        with pytest.raises(OperationFailed):
            ReportService(session, ctx).get_multi_month_report(["2024-01"])

        # The session is usable again after the rollback.
        assert len(PaymentAccountService(session, ctx).list_all()) == 2


def test_failed_write_leaves_no_partial_rows() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ctx = _household(session)
        primary, shared = PaymentAccountService(session, ctx).list_all()
        _drop(session, "fund_allocations")

        with pytest.raises(OperationFailed):
            IncomeService(session, ctx).create(
                IncomeIn(
                    month_year="2024-01",
                    total_amount="5000",
                    allocations=[
                        AllocationIn(account_id=primary.id, amount="3000"),
                        AllocationIn(account_id=shared.id, amount="2000"),
                    ],
                )
            )

        count = session.execute(select(func.count(IncomeEntry.id))).scalar_one()
        assert count == 0
