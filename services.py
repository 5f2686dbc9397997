from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from aggregation import (
    AllocationLine,
    CategorySummary,
    DashboardSnapshot,
    MonthlySummary,
    PlannedLine,
    SpendLine,
    build_snapshot,
    compute_category_rollup,
    validate_allocations,
)
from errors import (
    InvalidInput,
    NotFoundOrUnauthorized,
    ReferentialConflict,
    SourceEmpty,
    TargetNotEmpty,
    storage_boundary,
)
from identity import HouseholdContext, require_admin, require_context
from models import (
    BudgetCopy,
    BudgetItem,
    Category,
    CreditEntry,
    ExpenseTemplate,
    FundAllocation,
    Household,
    IncomeEntry,
    PaymentAccount,
    PaymentReminder,
    Transaction,
)
from money import format_amount, parse_amount
from periods import MonthPeriod, parse_month
from recurrence import is_reminder_due
from schemas import (
    BudgetItemIn,
    BudgetItemUpdateIn,
    CategoryIn,
    CreditIn,
    CreditUpdateIn,
    ExpenseTemplateIn,
    IncomeIn,
    IncomeUpdateIn,
    PaymentAccountIn,
    ReminderIn,
    ReminderUpdateIn,
    TransactionIn,
)

logger = logging.getLogger(__name__)

DEFAULT_ACCOUNT_NAMES = ("Primary Account", "Shared Allocation")
NULLABLE_REMINDER_FIELDS = ("budget_item_id", "recurring_pattern")


def _get_owned(session: Session, model, entity_id: int, household_id: int, label: str):
    obj = session.get(model, entity_id)
    if not obj or obj.household_id != household_id:
        raise NotFoundOrUnauthorized(label)
    return obj


def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class HouseholdService:
    def __init__(self, session: Session) -> None:
        self.session = session

    @storage_boundary
    def register(self, name: str, created_by: Optional[int] = None) -> Household:
        clean_name = name.strip()
        if not clean_name:
            raise InvalidInput("Household name is required")

        household = Household(name=clean_name, created_by=created_by)
        self.session.add(household)
        self.session.flush()
        for account_name in DEFAULT_ACCOUNT_NAMES:
            self.session.add(
                PaymentAccount(household_id=household.id, name=account_name)
            )
        self.session.commit()
        self.session.refresh(household)
        logger.info(f"household_registered: household={household.id}")
        return household

    @storage_boundary
    def rename(self, ctx: HouseholdContext, name: str) -> Household:
        ctx = require_admin(ctx)
        clean_name = name.strip()
        if not clean_name:
            raise InvalidInput("Household name is required")
        household = self.session.get(Household, ctx.household_id)
        if not household:
            raise NotFoundOrUnauthorized("Household")
        household.name = clean_name
        self.session.commit()
        return household


@dataclass(frozen=True)
class AccountUsage:
    account: PaymentAccount
    in_use: bool


class PaymentAccountService:
    def __init__(self, session: Session, ctx: HouseholdContext) -> None:
        self.ctx = require_context(ctx)
        self.session = session
        self.household_id = self.ctx.household_id

    @storage_boundary
    def list_all(self) -> list[PaymentAccount]:
        stmt = (
            select(PaymentAccount)
            .where(PaymentAccount.household_id == self.household_id)
            .order_by(PaymentAccount.name, PaymentAccount.id)
        )
        return self.session.scalars(stmt).all()

    def _used_account_ids(self) -> set[int]:
        hid = self.household_id
        used: set[int] = set()
        used.update(
            self.session.scalars(
                select(FundAllocation.account_id)
                .join(IncomeEntry, FundAllocation.income_id == IncomeEntry.id)
                .where(IncomeEntry.household_id == hid)
                .distinct()
            ).all()
        )
        for model in (BudgetItem, Transaction, ExpenseTemplate):
            used.update(
                self.session.scalars(
                    select(model.account_id).where(model.household_id == hid).distinct()
                ).all()
            )
        return used

    @storage_boundary
    def list_with_usage(self) -> list[AccountUsage]:
        used = self._used_account_ids()
        return [AccountUsage(a, a.id in used) for a in self.list_all()]

    @storage_boundary
    def is_in_use(self, account_id: int) -> bool:
        hid = self.household_id
        checks = [
            exists().where(
                IncomeEntry.household_id == hid,
                FundAllocation.income_id == IncomeEntry.id,
                FundAllocation.account_id == account_id,
            )
        ]
        for model in (BudgetItem, Transaction, ExpenseTemplate):
            checks.append(
                exists().where(
                    model.household_id == hid, model.account_id == account_id
                )
            )
        return any(self.session.scalar(select(check)) for check in checks)

    @storage_boundary
    def create(self, data: PaymentAccountIn) -> PaymentAccount:
        require_admin(self.ctx)
        account = PaymentAccount(household_id=self.household_id, name=data.name.strip())
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    @storage_boundary
    def rename(self, account_id: int, data: PaymentAccountIn) -> PaymentAccount:
        require_admin(self.ctx)
        account = _get_owned(
            self.session, PaymentAccount, account_id, self.household_id, "Account"
        )
        if self.is_in_use(account.id):
            raise ReferentialConflict("Cannot edit account: it is in use")
        account.name = data.name.strip()
        self.session.commit()
        return account

    @storage_boundary
    def delete(self, account_id: int) -> None:
        require_admin(self.ctx)
        account = _get_owned(
            self.session, PaymentAccount, account_id, self.household_id, "Account"
        )
        if self.is_in_use(account.id):
            raise ReferentialConflict("Cannot delete account: it is in use")
        self.session.delete(account)
        self.session.commit()
        logger.info(
            f"account_deleted: household={self.household_id} account={account_id}"
        )


class CategoryService:
    def __init__(self, session: Session, ctx: HouseholdContext) -> None:
        self.ctx = require_context(ctx)
        self.session = session
        self.household_id = self.ctx.household_id

    @storage_boundary
    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.household_id == self.household_id)
            .order_by(Category.name, Category.id)
        )
        return self.session.scalars(stmt).all()

    @storage_boundary
    def is_in_use(self, category_id: int) -> bool:
        hid = self.household_id
        return any(
            self.session.scalar(
                select(
                    exists().where(
                        model.household_id == hid, model.category_id == category_id
                    )
                )
            )
            for model in (BudgetItem, Transaction, ExpenseTemplate)
        )

    @storage_boundary
    def create(self, data: CategoryIn) -> Category:
        require_admin(self.ctx)
        category = Category(
            household_id=self.household_id, name=data.name.strip(), type=data.type
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    @storage_boundary
    def delete(self, category_id: int) -> None:
        require_admin(self.ctx)
        category = _get_owned(
            self.session, Category, category_id, self.household_id, "Category"
        )
        if self.is_in_use(category.id):
            raise ReferentialConflict("Cannot delete category: it is in use")
        self.session.delete(category)
        self.session.commit()


class IncomeService:
    def __init__(self, session: Session, ctx: HouseholdContext) -> None:
        self.ctx = require_context(ctx)
        self.session = session
        self.household_id = self.ctx.household_id

    @storage_boundary
    def list_for_month(self, month_year: str) -> list[IncomeEntry]:
        period = parse_month(month_year)
        stmt = (
            select(IncomeEntry)
            .options(
                selectinload(IncomeEntry.allocations).joinedload(FundAllocation.account)
            )
            .where(
                IncomeEntry.household_id == self.household_id,
                IncomeEntry.month_year == period.token,
            )
            .order_by(IncomeEntry.created_at.desc(), IncomeEntry.id.desc())
        )
        return self.session.scalars(stmt).all()

    @storage_boundary
    def get(self, income_id: int) -> IncomeEntry:
        return _get_owned(
            self.session, IncomeEntry, income_id, self.household_id, "Income entry"
        )

    def _checked_allocations(
        self, total_cents: int, data: IncomeUpdateIn
    ) -> list[AllocationLine]:
        lines = [
            AllocationLine(account_id=a.account_id, amount_cents=parse_amount(a.amount))
            for a in data.allocations
        ]
        validate_allocations(total_cents, lines)

        wanted = {line.account_id for line in lines}
        owned = set(
            self.session.scalars(
                select(PaymentAccount.id).where(
                    PaymentAccount.household_id == self.household_id,
                    PaymentAccount.id.in_(wanted),
                )
            ).all()
        )
        if wanted - owned:
            raise NotFoundOrUnauthorized("Account")
        return lines

    @storage_boundary
    def create(self, data: IncomeIn) -> IncomeEntry:
        period = parse_month(data.month_year)
        total_cents = parse_amount(data.total_amount)
        lines = self._checked_allocations(total_cents, data)

        entry = IncomeEntry(
            household_id=self.household_id,
            month_year=period.token,
            description=(data.description or "").strip() or None,
            total_cents=total_cents,
            allocations=[
                FundAllocation(
                    account_id=line.account_id, amount_cents=line.amount_cents
                )
                for line in lines
            ],
        )
        self.session.add(entry)
        self.session.commit()
        self.session.refresh(entry)
        logger.info(
            f"income_created: household={self.household_id} month={period.token} "
            f"income={entry.id} allocations={len(lines)}"
        )
        return entry

    @storage_boundary
    def update(self, income_id: int, data: IncomeUpdateIn) -> IncomeEntry:
        total_cents = parse_amount(data.total_amount)
        lines = self._checked_allocations(total_cents, data)
        entry = self.get(income_id)

        entry.description = (data.description or "").strip() or None
        entry.total_cents = total_cents
        # Replace, never merge: old rows go before the new ones are inserted.
        entry.allocations.clear()
        self.session.flush()
        entry.allocations.extend(
            FundAllocation(
                account_id=line.account_id, amount_cents=line.amount_cents
            )
            for line in lines
        )
        self.session.commit()
        self.session.refresh(entry)
        logger.info(f"income_updated: household={self.household_id} income={entry.id}")
        return entry

    @storage_boundary
    def delete(self, income_id: int) -> None:
        entry = self.get(income_id)
        self.session.delete(entry)
        self.session.commit()
        logger.info(f"income_deleted: household={self.household_id} income={income_id}")


class CreditService:
    def __init__(self, session: Session, ctx: HouseholdContext) -> None:
        self.ctx = require_context(ctx)
        self.session = session
        self.household_id = self.ctx.household_id

    @storage_boundary
    def list_for_month(self, month_year: str) -> list[CreditEntry]:
        period = parse_month(month_year)
        stmt = (
            select(CreditEntry)
            .where(
                CreditEntry.household_id == self.household_id,
                CreditEntry.month_year == period.token,
            )
            .order_by(CreditEntry.created_at.desc(), CreditEntry.id.desc())
        )
        return self.session.scalars(stmt).all()

    @storage_boundary
    def get(self, credit_id: int) -> CreditEntry:
        return _get_owned(
            self.session, CreditEntry, credit_id, self.household_id, "Credit entry"
        )

    @storage_boundary
    def create(self, data: CreditIn) -> CreditEntry:
        period = parse_month(data.month_year)
        entry = CreditEntry(
            household_id=self.household_id,
            month_year=period.token,
            description=(data.description or "").strip() or None,
            total_cents=parse_amount(data.total_amount),
            notes=data.notes,
        )
        self.session.add(entry)
        self.session.commit()
        self.session.refresh(entry)
        return entry

    @storage_boundary
    def update(self, credit_id: int, data: CreditUpdateIn) -> CreditEntry:
        total_cents = parse_amount(data.total_amount)
        entry = self.get(credit_id)
        entry.description = (data.description or "").strip() or None
        entry.total_cents = total_cents
        entry.notes = data.notes
        self.session.commit()
        return entry

    @storage_boundary
    def delete(self, credit_id: int) -> None:
        entry = self.get(credit_id)
        self.session.delete(entry)
        self.session.commit()


@dataclass(frozen=True)
class BudgetItemView:
    item: BudgetItem
    actual_spent_cents: int


class BudgetService:
    def __init__(self, session: Session, ctx: HouseholdContext) -> None:
        self.ctx = require_context(ctx)
        self.session = session
        self.household_id = self.ctx.household_id

    @storage_boundary
    def get(self, item_id: int) -> BudgetItem:
        return _get_owned(
            self.session, BudgetItem, item_id, self.household_id, "Budget item"
        )

    @storage_boundary
    def count_for_month(self, month_year: str) -> int:
        stmt = select(func.count(BudgetItem.id)).where(
            BudgetItem.household_id == self.household_id,
            BudgetItem.month_year == month_year,
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    @storage_boundary
    def list_for_month(self, month_year: str) -> list[BudgetItemView]:
        period = parse_month(month_year)
        items = self.session.scalars(
            select(BudgetItem)
            .options(joinedload(BudgetItem.category), joinedload(BudgetItem.account))
            .where(
                BudgetItem.household_id == self.household_id,
                BudgetItem.month_year == period.token,
            )
            .order_by(BudgetItem.description, BudgetItem.id)
        ).all()

        spent_stmt = (
            select(
                Transaction.budget_item_id,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("spent"),
            )
            .where(
                Transaction.household_id == self.household_id,
                Transaction.occurred_at >= period.start,
                Transaction.occurred_at < period.end,
                Transaction.budget_item_id.is_not(None),
            )
            .group_by(Transaction.budget_item_id)
        )
        spent = {
            row.budget_item_id: int(row.spent or 0)
            for row in self.session.execute(spent_stmt)
        }
        return [BudgetItemView(item, spent.get(item.id, 0)) for item in items]

    def _check_refs(self, category_id: int, account_id: int) -> None:
        _get_owned(self.session, Category, category_id, self.household_id, "Category")
        _get_owned(
            self.session, PaymentAccount, account_id, self.household_id, "Account"
        )

    @storage_boundary
    def create(self, data: BudgetItemIn) -> BudgetItem:
        period = parse_month(data.month_year)
        amount_cents = parse_amount(data.amount)
        self._check_refs(data.category_id, data.account_id)
        item = BudgetItem(
            household_id=self.household_id,
            month_year=period.token,
            description=data.description.strip(),
            amount_cents=amount_cents,
            category_id=data.category_id,
            account_id=data.account_id,
            color=data.color,
        )
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item

    @storage_boundary
    def update(self, item_id: int, data: BudgetItemUpdateIn) -> BudgetItem:
        amount_cents = parse_amount(data.amount)
        item = self.get(item_id)
        self._check_refs(data.category_id, data.account_id)
        item.description = data.description.strip()
        item.amount_cents = amount_cents
        item.category_id = data.category_id
        item.account_id = data.account_id
        item.color = data.color
        self.session.commit()
        self.session.refresh(item)
        return item

    @storage_boundary
    def delete(self, item_id: int) -> None:
        item = self.get(item_id)
        self.session.execute(
            update(Transaction)
            .where(
                Transaction.household_id == self.household_id,
                Transaction.budget_item_id == item.id,
            )
            .values(budget_item_id=None)
        )
        self.session.execute(
            delete(PaymentReminder).where(
                PaymentReminder.household_id == self.household_id,
                PaymentReminder.budget_item_id == item.id,
            )
        )
        self.session.delete(item)
        self.session.commit()
        logger.info(
            f"budget_item_deleted: household={self.household_id} item={item_id}"
        )

    @storage_boundary
    def copy_from_month(self, source_month: str, target_month: str) -> int:
        source = parse_month(source_month).token
        target = parse_month(target_month).token
        if source == target:
            raise InvalidInput("Source and target month must differ")

        if self.count_for_month(target) > 0:
            raise TargetNotEmpty(target)
        source_items = self.session.scalars(
            select(BudgetItem)
            .where(
                BudgetItem.household_id == self.household_id,
                BudgetItem.month_year == source,
            )
            .order_by(BudgetItem.id)
        ).all()
        if not source_items:
            raise SourceEmpty(source)

        # The claim row is unique per target month, so a concurrent copy into
        # the same month fails on insert instead of duplicating items.
        self.session.execute(
            delete(BudgetCopy).where(
                BudgetCopy.household_id == self.household_id,
                BudgetCopy.target_month == target,
            )
        )
        self.session.add(
            BudgetCopy(
                household_id=self.household_id,
                source_month=source,
                target_month=target,
                item_count=len(source_items),
            )
        )
        self.session.add_all(
            BudgetItem(
                household_id=self.household_id,
                month_year=target,
                description=item.description,
                amount_cents=item.amount_cents,
                category_id=item.category_id,
                account_id=item.account_id,
                color=item.color,
            )
            for item in source_items
        )
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise TargetNotEmpty(target) from exc

        logger.info(
            f"budget_copied: household={self.household_id} source={source} "
            f"target={target} count={len(source_items)}"
        )
        return len(source_items)


@dataclass(frozen=True)
class TransactionDay:
    date: date
    transactions: list[Transaction]


class TransactionService:
    def __init__(self, session: Session, ctx: HouseholdContext) -> None:
        self.ctx = require_context(ctx)
        self.session = session
        self.household_id = self.ctx.household_id

    @storage_boundary
    def create(self, data: TransactionIn) -> Transaction:
        amount_cents = parse_amount(data.amount)
        hid = self.household_id
        _get_owned(self.session, Category, data.category_id, hid, "Category")
        _get_owned(self.session, PaymentAccount, data.account_id, hid, "Account")
        if data.budget_item_id is not None:
            _get_owned(
                self.session, BudgetItem, data.budget_item_id, hid, "Budget item"
            )

        txn = Transaction(
            household_id=hid,
            occurred_at=to_utc_naive(data.occurred_at),
            description=data.description.strip(),
            amount_cents=amount_cents,
            category_id=data.category_id,
            account_id=data.account_id,
            notes=data.notes,
            budget_item_id=data.budget_item_id,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    @storage_boundary
    def get(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(
                joinedload(Transaction.category),
                joinedload(Transaction.account),
                joinedload(Transaction.budget_item),
            )
            .where(
                Transaction.household_id == self.household_id,
                Transaction.id == transaction_id,
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFoundOrUnauthorized("Transaction")
        return txn

    @storage_boundary
    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()

    @storage_boundary
    def list_for_month(self, month_year: str) -> list[TransactionDay]:
        period = parse_month(month_year)
        txns = self.session.scalars(
            select(Transaction)
            .options(joinedload(Transaction.category), joinedload(Transaction.account))
            .where(
                Transaction.household_id == self.household_id,
                Transaction.occurred_at >= period.start,
                Transaction.occurred_at < period.end,
            )
            .order_by(Transaction.occurred_at.desc(), Transaction.id.desc())
        ).all()

        days: list[TransactionDay] = []
        for txn in txns:
            day = txn.occurred_at.date()
            if not days or days[-1].date != day:
                days.append(TransactionDay(day, []))
            days[-1].transactions.append(txn)
        return days


@dataclass(frozen=True)
class TemplateView:
    template: ExpenseTemplate
    in_use: bool


class ExpenseTemplateService:
    def __init__(self, session: Session, ctx: HouseholdContext) -> None:
        self.ctx = require_context(ctx)
        self.session = session
        self.household_id = self.ctx.household_id

    @storage_boundary
    def get(self, template_id: int) -> ExpenseTemplate:
        return _get_owned(
            self.session, ExpenseTemplate, template_id, self.household_id, "Template"
        )

    @storage_boundary
    def is_in_use(self, template: ExpenseTemplate) -> bool:
        """True when a budget item carries the same description, amount,
        category and account. There is no stored link, so value-identical
        templates cannot be told apart here."""
        stmt = select(
            exists().where(
                BudgetItem.household_id == self.household_id,
                BudgetItem.description == template.description,
                BudgetItem.amount_cents == template.amount_cents,
                BudgetItem.category_id == template.category_id,
                BudgetItem.account_id == template.account_id,
            )
        )
        return bool(self.session.scalar(stmt))

    @storage_boundary
    def list_all(self, search: Optional[str] = None) -> list[TemplateView]:
        stmt = (
            select(ExpenseTemplate)
            .options(
                joinedload(ExpenseTemplate.category),
                joinedload(ExpenseTemplate.account),
            )
            .where(ExpenseTemplate.household_id == self.household_id)
            .order_by(ExpenseTemplate.description, ExpenseTemplate.id)
        )
        if search and search.strip():
            needle = f"%{search.strip().lower()}%"
            stmt = stmt.where(func.lower(ExpenseTemplate.description).like(needle))
        templates = self.session.scalars(stmt).all()
        if not templates:
            return []

        signatures = {
            tuple(row)
            for row in self.session.execute(
                select(
                    BudgetItem.description,
                    BudgetItem.amount_cents,
                    BudgetItem.category_id,
                    BudgetItem.account_id,
                ).where(
                    BudgetItem.household_id == self.household_id,
                    BudgetItem.description.in_({t.description for t in templates}),
                )
            )
        }
        return [
            TemplateView(
                t,
                (t.description, t.amount_cents, t.category_id, t.account_id)
                in signatures,
            )
            for t in templates
        ]

    def _check_refs(self, category_id: int, account_id: int) -> None:
        _get_owned(self.session, Category, category_id, self.household_id, "Category")
        _get_owned(
            self.session, PaymentAccount, account_id, self.household_id, "Account"
        )

    @storage_boundary
    def create(self, data: ExpenseTemplateIn) -> ExpenseTemplate:
        amount_cents = parse_amount(data.amount)
        self._check_refs(data.category_id, data.account_id)
        template = ExpenseTemplate(
            household_id=self.household_id,
            description=data.description.strip(),
            amount_cents=amount_cents,
            category_id=data.category_id,
            account_id=data.account_id,
        )
        self.session.add(template)
        self.session.commit()
        self.session.refresh(template)
        return template

    @storage_boundary
    def update(self, template_id: int, data: ExpenseTemplateIn) -> ExpenseTemplate:
        amount_cents = parse_amount(data.amount)
        template = self.get(template_id)
        if self.is_in_use(template):
            raise ReferentialConflict(
                "Cannot edit template: it is being used in budget items"
            )
        self._check_refs(data.category_id, data.account_id)
        template.description = data.description.strip()
        template.amount_cents = amount_cents
        template.category_id = data.category_id
        template.account_id = data.account_id
        self.session.commit()
        self.session.refresh(template)
        return template

    @storage_boundary
    def delete(self, template_id: int) -> None:
        template = self.get(template_id)
        if self.is_in_use(template):
            raise ReferentialConflict(
                "Cannot delete template: it is being used in budget items"
            )
        self.session.delete(template)
        self.session.commit()

    @storage_boundary
    def add_to_month(self, template_id: int, month_year: str, **extra) -> BudgetItem:
        template = self.get(template_id)
        return BudgetService(self.session, self.ctx).create(
            BudgetItemIn(
                month_year=month_year,
                description=template.description,
                amount=format_amount(template.amount_cents),
                category_id=template.category_id,
                account_id=template.account_id,
                **extra,
            )
        )


class ReminderService:
    def __init__(self, session: Session, ctx: HouseholdContext) -> None:
        self.ctx = require_context(ctx)
        self.session = session
        self.household_id = self.ctx.household_id

    @storage_boundary
    def list_all(self) -> list[PaymentReminder]:
        stmt = (
            select(PaymentReminder)
            .where(PaymentReminder.household_id == self.household_id)
            .order_by(PaymentReminder.due_at, PaymentReminder.id)
        )
        return self.session.scalars(stmt).all()

    @storage_boundary
    def get(self, reminder_id: int) -> PaymentReminder:
        return _get_owned(
            self.session, PaymentReminder, reminder_id, self.household_id, "Reminder"
        )

    @storage_boundary
    def due_reminders(self, now: Optional[datetime] = None) -> list[PaymentReminder]:
        now = to_utc_naive(now) if now else datetime.utcnow()
        stmt = (
            select(PaymentReminder)
            .where(
                PaymentReminder.household_id == self.household_id,
                PaymentReminder.is_active.is_(True),
            )
            .order_by(PaymentReminder.due_at, PaymentReminder.id)
        )
        return [r for r in self.session.scalars(stmt).all() if is_reminder_due(r, now)]

    @storage_boundary
    def create(self, data: ReminderIn) -> PaymentReminder:
        amount_cents = parse_amount(data.amount)
        if data.is_recurring and data.recurring_pattern is None:
            raise InvalidInput("Recurring reminders need a recurring pattern")
        if data.budget_item_id is not None:
            _get_owned(
                self.session,
                BudgetItem,
                data.budget_item_id,
                self.household_id,
                "Budget item",
            )
        reminder = PaymentReminder(
            household_id=self.household_id,
            budget_item_id=data.budget_item_id,
            description=data.description.strip(),
            amount_cents=amount_cents,
            due_at=to_utc_naive(data.due_at),
            days_before_due=data.days_before_due,
            interval_days=data.interval_days,
            is_recurring=data.is_recurring,
            recurring_pattern=data.recurring_pattern,
            is_active=data.is_active,
            notified=False,
            last_notified_at=None,
        )
        self.session.add(reminder)
        self.session.commit()
        self.session.refresh(reminder)
        return reminder

    @storage_boundary
    def update(self, reminder_id: int, data: ReminderUpdateIn) -> PaymentReminder:
        changes = data.model_dump(exclude_unset=True)
        cleared = sorted(
            key
            for key, value in changes.items()
            if value is None and key not in NULLABLE_REMINDER_FIELDS
        )
        if cleared:
            raise InvalidInput(f"Cannot clear required fields: {', '.join(cleared)}")
        if "amount" in changes:
            changes["amount_cents"] = parse_amount(changes.pop("amount"))
        reminder = self.get(reminder_id)
        if changes.get("budget_item_id") is not None:
            _get_owned(
                self.session,
                BudgetItem,
                changes["budget_item_id"],
                self.household_id,
                "Budget item",
            )
        if "due_at" in changes:
            changes["due_at"] = to_utc_naive(changes["due_at"])
        if "description" in changes:
            changes["description"] = changes["description"].strip()

        is_recurring = changes.get("is_recurring", reminder.is_recurring)
        pattern = changes.get("recurring_pattern", reminder.recurring_pattern)
        if is_recurring and pattern is None:
            raise InvalidInput("Recurring reminders need a recurring pattern")

        for key, value in changes.items():
            setattr(reminder, key, value)
        self.session.commit()
        self.session.refresh(reminder)
        return reminder

    @storage_boundary
    def delete(self, reminder_id: int) -> None:
        reminder = self.get(reminder_id)
        self.session.delete(reminder)
        self.session.commit()

    @storage_boundary
    def mark_notified(
        self, reminder_id: int, now: Optional[datetime] = None
    ) -> PaymentReminder:
        reminder = self.get(reminder_id)
        reminder.notified = True
        reminder.last_notified_at = to_utc_naive(now) if now else datetime.utcnow()
        self.session.commit()
        return reminder


class DashboardService:
    def __init__(self, session: Session, ctx: HouseholdContext) -> None:
        self.ctx = require_context(ctx)
        self.session = session
        self.household_id = self.ctx.household_id

    def _planned_lines(self, period: MonthPeriod) -> list[PlannedLine]:
        stmt = (
            select(
                BudgetItem.category_id,
                Category.name,
                Category.type,
                BudgetItem.amount_cents,
            )
            .join(Category, BudgetItem.category_id == Category.id)
            .where(
                BudgetItem.household_id == self.household_id,
                BudgetItem.month_year == period.token,
            )
            .order_by(BudgetItem.id)
        )
        return [
            PlannedLine(
                category_id=row.category_id,
                category_name=row.name,
                category_type=row.type,
                amount_cents=row.amount_cents,
            )
            for row in self.session.execute(stmt)
        ]

    def _spend_lines(self, period: MonthPeriod) -> list[SpendLine]:
        stmt = (
            select(
                Transaction.account_id,
                Transaction.category_id,
                Category.name,
                Category.type,
                Transaction.amount_cents,
                Transaction.budget_item_id,
            )
            .join(Category, Transaction.category_id == Category.id)
            .where(
                Transaction.household_id == self.household_id,
                Transaction.occurred_at >= period.start,
                Transaction.occurred_at < period.end,
            )
            .order_by(Transaction.occurred_at.desc(), Transaction.id.desc())
        )
        return [
            SpendLine(
                account_id=row.account_id,
                category_id=row.category_id,
                category_name=row.name,
                category_type=row.type,
                amount_cents=row.amount_cents,
                budget_item_id=row.budget_item_id,
            )
            for row in self.session.execute(stmt)
        ]

    @storage_boundary
    def get_dashboard_data(self, month_year: str) -> DashboardSnapshot:
        period = parse_month(month_year)
        hid = self.household_id

        income_cents = int(
            self.session.execute(
                select(func.coalesce(func.sum(IncomeEntry.total_cents), 0)).where(
                    IncomeEntry.household_id == hid,
                    IncomeEntry.month_year == period.token,
                )
            ).scalar_one()
            or 0
        )
        credits_cents = int(
            self.session.execute(
                select(func.coalesce(func.sum(CreditEntry.total_cents), 0)).where(
                    CreditEntry.household_id == hid,
                    CreditEntry.month_year == period.token,
                )
            ).scalar_one()
            or 0
        )

        allocation_stmt = (
            select(
                FundAllocation.account_id,
                PaymentAccount.name,
                FundAllocation.amount_cents,
            )
            .join(IncomeEntry, FundAllocation.income_id == IncomeEntry.id)
            .join(PaymentAccount, FundAllocation.account_id == PaymentAccount.id)
            .where(
                IncomeEntry.household_id == hid,
                IncomeEntry.month_year == period.token,
            )
            .order_by(FundAllocation.id)
        )
        allocations = [
            AllocationLine(
                account_id=row.account_id,
                account_name=row.name,
                amount_cents=row.amount_cents,
            )
            for row in self.session.execute(allocation_stmt)
        ]

        return build_snapshot(
            period.token,
            income_cents=income_cents,
            credits_cents=credits_cents,
            allocations=allocations,
            budget_items=self._planned_lines(period),
            transactions=self._spend_lines(period),
        )

    @storage_boundary
    def get_budget_by_category(self, month_year: str) -> list[CategorySummary]:
        period = parse_month(month_year)
        rollup = compute_category_rollup(
            self._planned_lines(period), self._spend_lines(period)
        )
        return rollup.budget_by_category

    @storage_boundary
    def months_with_data(self) -> list[str]:
        hid = self.household_id
        months: set[str] = set()
        for model in (IncomeEntry, CreditEntry, BudgetItem):
            months.update(
                self.session.scalars(
                    select(model.month_year).where(model.household_id == hid).distinct()
                ).all()
            )
        for occurred_at in self.session.scalars(
            select(Transaction.occurred_at).where(Transaction.household_id == hid)
        ):
            months.add(f"{occurred_at.year:04d}-{occurred_at.month:02d}")
        return sorted(months, reverse=True)


class ReportService:
    def __init__(self, session: Session, ctx: HouseholdContext) -> None:
        self.ctx = require_context(ctx)
        self.session = session

    @storage_boundary
    def get_multi_month_report(self, months: Sequence[str]) -> list[MonthlySummary]:
        dashboard = DashboardService(self.session, self.ctx)
        return [
            MonthlySummary.from_snapshot(dashboard.get_dashboard_data(month))
            for month in months
        ]
