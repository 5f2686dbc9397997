import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import PaymentReminder, RecurringPattern

logger = logging.getLogger(__name__)

Notifier = Callable[[PaymentReminder], None]


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def _add_months(base: datetime, months: int, *, desired_day: int) -> datetime:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(desired_day, days_in_month(year, month))
    return base.replace(year=year, month=month, day=day)


def occurrence(anchor: datetime, pattern: RecurringPattern, count: int) -> datetime:
    """The ``count``-th occurrence after ``anchor``; month ends snap."""
    if pattern == RecurringPattern.daily:
        return anchor + timedelta(days=count)
    if pattern == RecurringPattern.weekly:
        return anchor + timedelta(weeks=count)
    if pattern == RecurringPattern.monthly:
        return _add_months(anchor, count, desired_day=anchor.day)
    if pattern == RecurringPattern.yearly:
        return _add_months(anchor, 12 * count, desired_day=anchor.day)
    raise ValueError(f"Unsupported recurring pattern: {pattern}")


def window_start(reminder: PaymentReminder) -> datetime:
    return reminder.due_at - timedelta(days=reminder.days_before_due)


def is_reminder_due(reminder: PaymentReminder, now: datetime) -> bool:
    if not reminder.is_active:
        return False
    if now > reminder.due_at or now < window_start(reminder):
        return False
    if reminder.last_notified_at is None:
        return True
    elapsed_days = (now - reminder.last_notified_at) // timedelta(days=1)
    return elapsed_days >= reminder.interval_days


class ReminderEngine:
    """Polling side of reminders: roll recurring ones forward, dispatch due ones."""

    max_rolls = 10_000

    def __init__(self, session: Session) -> None:
        self.session = session

    def roll_forward(self, reminder: PaymentReminder, now: datetime) -> bool:
        if not reminder.is_recurring or reminder.recurring_pattern is None:
            return False
        if now <= reminder.due_at:
            return False

        anchor = reminder.due_at
        count = 1
        next_due = occurrence(anchor, reminder.recurring_pattern, count)
        while next_due < now:
            count += 1
            if count > self.max_rolls:
                raise ValueError(
                    f"Cannot roll reminder {reminder.id} forward to {now.isoformat()}"
                )
            next_due = occurrence(anchor, reminder.recurring_pattern, count)

        reminder.due_at = next_due
        reminder.notified = False
        reminder.last_notified_at = None
        logger.info(
            f"reminder_rolled: household={reminder.household_id} "
            f"reminder={reminder.id} due_at={next_due.isoformat()}"
        )
        return True

    def dispatch_due(
        self, now: Optional[datetime] = None, notifier: Optional[Notifier] = None
    ) -> int:
        now = now or datetime.utcnow()
        notify = notifier or log_notifier
        reminders = self.session.scalars(
            select(PaymentReminder)
            .where(PaymentReminder.is_active.is_(True))
            .order_by(PaymentReminder.household_id, PaymentReminder.due_at)
        ).all()

        sent = 0
        for reminder in reminders:
            self.roll_forward(reminder, now)
            if not is_reminder_due(reminder, now):
                continue
            notify(reminder)
            reminder.notified = True
            reminder.last_notified_at = now
            sent += 1
        self.session.flush()
        return sent


def log_notifier(reminder: PaymentReminder) -> None:
    logger.info(
        f"reminder_due: household={reminder.household_id} reminder={reminder.id} "
        f"due_at={reminder.due_at.isoformat()}"
    )
