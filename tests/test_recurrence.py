from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from errors import InvalidInput
from identity import HouseholdContext
from models import PaymentReminder, RecurringPattern, UserRole
from recurrence import ReminderEngine, is_reminder_due, occurrence
from schemas import ReminderIn, ReminderUpdateIn
from services import HouseholdService, ReminderService


def _reminder(**overrides) -> PaymentReminder:
    values = dict(
        id=1,
        household_id=1,
        description="Rent",
        amount_cents=150_000,
        due_at=datetime(2024, 3, 10, 9, 0),
        days_before_due=3,
        interval_days=2,
        is_recurring=False,
        recurring_pattern=None,
        is_active=True,
        notified=False,
        last_notified_at=None,
    )
    values.update(overrides)
    return PaymentReminder(**values)


def test_monthly_occurrence_snaps_to_month_end() -> None:
    anchor = datetime(2024, 1, 31, 9, 0)
    monthly = RecurringPattern.monthly
    assert occurrence(anchor, monthly, 1) == datetime(2024, 2, 29, 9, 0)
    assert occurrence(anchor, monthly, 2) == datetime(2024, 3, 31, 9, 0)
    assert occurrence(datetime(2024, 2, 29), RecurringPattern.yearly, 1) == datetime(
        2025, 2, 28
    )
    assert occurrence(anchor, RecurringPattern.weekly, 1) == datetime(2024, 2, 7, 9, 0)


def test_reminder_due_window_and_interval() -> None:
    reminder = _reminder()
    assert not is_reminder_due(reminder, datetime(2024, 3, 6, 9, 0))
    assert is_reminder_due(reminder, datetime(2024, 3, 7, 9, 0))
    assert not is_reminder_due(reminder, datetime(2024, 3, 10, 9, 1))

    reminder.last_notified_at = datetime(2024, 3, 7, 9, 0)
    assert not is_reminder_due(reminder, datetime(2024, 3, 8, 12, 0))
    assert is_reminder_due(reminder, datetime(2024, 3, 9, 9, 0))

    reminder.is_active = False
    assert not is_reminder_due(reminder, datetime(2024, 3, 9, 9, 0))


def test_roll_forward_moves_past_due_recurring_reminder() -> None:
    reminder = _reminder(
        is_recurring=True,
        recurring_pattern=RecurringPattern.monthly,
        notified=True,
        last_notified_at=datetime(2024, 3, 9),
    )
    engine = ReminderEngine(session=None)

    assert not engine.roll_forward(reminder, datetime(2024, 3, 10, 9, 0))
    assert engine.roll_forward(reminder, datetime(2024, 5, 2))
    assert reminder.due_at == datetime(2024, 5, 10, 9, 0)
    assert reminder.notified is False
    assert reminder.last_notified_at is None


def test_dispatch_due_notifies_and_marks_reminders() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        household = HouseholdService(session).register("Home")
        ctx = HouseholdContext(
            user_id=1, household_id=household.id, role=UserRole.admin
        )
        reminders = ReminderService(session, ctx)
        due = reminders.create(
            ReminderIn(
                description="Rent",
                amount="1500",
                due_at=datetime(2024, 3, 10),
                days_before_due=5,
            )
        )
        reminders.create(
            ReminderIn(description="Later", amount="10", due_at=datetime(2024, 6, 1))
        )

        now = datetime(2024, 3, 8)
        assert [r.id for r in reminders.due_reminders(now)] == [due.id]

        seen: list[int] = []
        sent = ReminderEngine(session).dispatch_due(
            now=now, notifier=lambda r: seen.append(r.id)
        )
        session.commit()

        assert sent == 1
        assert seen == [due.id]
        assert reminders.get(due.id).notified is True
        assert reminders.due_reminders(now) == []
        assert ReminderEngine(session).dispatch_due(now=now, notifier=seen.append) == 0


def test_reminder_updates_validate_recurring_pattern() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        household = HouseholdService(session).register("Home")
        ctx = HouseholdContext(user_id=1, household_id=household.id)
        reminders = ReminderService(session, ctx)

        with pytest.raises(InvalidInput):
            reminders.create(
                ReminderIn(
                    description="Gym",
                    amount="25",
                    due_at=datetime(2024, 3, 1),
                    is_recurring=True,
                )
            )

        gym = reminders.create(
            ReminderIn(description="Gym", amount="25", due_at=datetime(2024, 3, 1))
        )
        with pytest.raises(InvalidInput):
            reminders.update(gym.id, ReminderUpdateIn(is_recurring=True))

        updated = reminders.update(
            gym.id,
            ReminderUpdateIn(
                is_recurring=True,
                recurring_pattern=RecurringPattern.monthly,
                amount="30",
            ),
        )
        assert (updated.amount_cents, updated.description) == (3_000, "Gym")

        with pytest.raises(InvalidInput):
            reminders.update(
                gym.id,
                ReminderUpdateIn.model_validate({"description": None, "due_at": None}),
            )
        with pytest.raises(InvalidInput):
            reminders.update(
                gym.id, ReminderUpdateIn.model_validate({"is_active": None})
            )
        assert reminders.get(gym.id).is_active is True

        unlinked = reminders.update(
            gym.id, ReminderUpdateIn.model_validate({"budget_item_id": None})
        )
        assert unlinked.budget_item_id is None
        assert unlinked.due_at == datetime(2024, 3, 1)

        marked = reminders.mark_notified(gym.id, now=datetime(2024, 2, 27))
        assert marked.last_notified_at == datetime(2024, 2, 27)

        reminders.delete(gym.id)
        assert reminders.list_all() == []
