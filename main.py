import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from aggregation import report_trends
from database import SessionLocal
from errors import BudgetError, OperationFailed, Unauthorized
from identity import HouseholdContext, load_session_token
from money import format_amount
from periods import current_month, parse_month
from scheduler import SchedulerManager
from schemas import (
    AccountOut,
    AllocationOut,
    BudgetCopyIn,
    BudgetItemIn,
    BudgetItemOut,
    BudgetItemUpdateIn,
    CategoryIn,
    CategoryOut,
    CategorySummaryOut,
    CopyResultOut,
    CreditIn,
    CreditOut,
    CreditUpdateIn,
    DashboardOut,
    ExpenseTemplateIn,
    HouseholdIn,
    IncomeIn,
    IncomeOut,
    IncomeUpdateIn,
    MonthlySummaryOut,
    PaymentAccountIn,
    ReminderIn,
    ReminderOut,
    ReminderUpdateIn,
    ReportOut,
    ReportTrendsOut,
    TemplateApplyIn,
    TemplateOut,
    TransactionDayOut,
    TransactionIn,
    TransactionOut,
)
from services import (
    BudgetItemView,
    BudgetService,
    CategoryService,
    CreditService,
    DashboardService,
    ExpenseTemplateService,
    HouseholdService,
    IncomeService,
    PaymentAccountService,
    ReminderService,
    ReportService,
    TemplateView,
    TransactionService,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Household Budget")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_context(
    authorization: Optional[str] = Header(default=None),
) -> HouseholdContext:
    if not authorization:
        raise Unauthorized("Missing session token")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("Missing session token")
    return load_session_token(token.strip())


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.exception_handler(BudgetError)
async def budget_error_handler(request: Request, exc: BudgetError):
    return JSONResponse(
        status_code=exc.status_code, content={"error": exc.code, "detail": str(exc)}
    )


@app.exception_handler(OperationFailed)
async def operation_failed_handler(request: Request, exc: OperationFailed):
    logger.error(f"request_failed: path={request.url.path}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": "The operation could not be completed"},
    )


def _budget_item_out(view: BudgetItemView) -> BudgetItemOut:
    item = view.item
    return BudgetItemOut(
        id=item.id,
        month_year=item.month_year,
        description=item.description,
        amount=format_amount(item.amount_cents),
        category_id=item.category_id,
        category_name=item.category.name,
        category_type=item.category.type,
        account_id=item.account_id,
        account_name=item.account.name,
        color=item.color,
        actual_spent=format_amount(view.actual_spent_cents),
    )


def _income_out(entry) -> IncomeOut:
    return IncomeOut(
        id=entry.id,
        month_year=entry.month_year,
        description=entry.description,
        total_amount=format_amount(entry.total_cents),
        allocations=[
            AllocationOut(
                account_id=a.account_id,
                account_name=a.account.name,
                amount=format_amount(a.amount_cents),
            )
            for a in entry.allocations
        ],
    )


def _credit_out(entry) -> CreditOut:
    return CreditOut(
        id=entry.id,
        month_year=entry.month_year,
        description=entry.description,
        total_amount=format_amount(entry.total_cents),
        notes=entry.notes,
    )


def _transaction_out(txn) -> TransactionOut:
    return TransactionOut(
        id=txn.id,
        occurred_at=txn.occurred_at,
        description=txn.description,
        amount=format_amount(txn.amount_cents),
        category_id=txn.category_id,
        category_name=txn.category.name,
        account_id=txn.account_id,
        account_name=txn.account.name,
        notes=txn.notes,
        budget_item_id=txn.budget_item_id,
    )


def _template_out(view: TemplateView) -> TemplateOut:
    template = view.template
    return TemplateOut(
        id=template.id,
        description=template.description,
        amount=format_amount(template.amount_cents),
        category_id=template.category_id,
        category_name=template.category.name,
        account_id=template.account_id,
        account_name=template.account.name,
        in_use=view.in_use,
    )


def _reminder_out(reminder) -> ReminderOut:
    return ReminderOut(
        id=reminder.id,
        budget_item_id=reminder.budget_item_id,
        description=reminder.description,
        amount=format_amount(reminder.amount_cents),
        due_at=reminder.due_at,
        days_before_due=reminder.days_before_due,
        interval_days=reminder.interval_days,
        is_recurring=reminder.is_recurring,
        recurring_pattern=reminder.recurring_pattern,
        is_active=reminder.is_active,
        notified=reminder.notified,
        last_notified_at=reminder.last_notified_at,
    )


@app.get("/api/dashboard", response_model=DashboardOut)
def api_dashboard(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    snapshot = DashboardService(db, ctx).get_dashboard_data(month or current_month())
    return DashboardOut.build(snapshot)


@app.get("/api/budget-by-category", response_model=list[CategorySummaryOut])
def api_budget_by_category(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    rows = DashboardService(db, ctx).get_budget_by_category(month or current_month())
    return [CategorySummaryOut.build(r) for r in rows]


@app.get("/api/months", response_model=list[str])
def api_months(
    db: Session = Depends(get_db), ctx: HouseholdContext = Depends(get_context)
):
    return DashboardService(db, ctx).months_with_data()


@app.get("/api/reports", response_model=ReportOut)
def api_report(
    months: list[str] = Query(default=[]),
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    tokens = [parse_month(m).token for m in months]
    rows = ReportService(db, ctx).get_multi_month_report(tokens)
    return ReportOut(
        months=[MonthlySummaryOut.build(r) for r in rows],
        summary=ReportTrendsOut.build(report_trends(rows)),
    )


@app.patch("/api/household")
def api_rename_household(
    payload: HouseholdIn,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    household = HouseholdService(db).rename(ctx, payload.name)
    return {"id": household.id, "name": household.name}


@app.get("/api/budget-items", response_model=list[BudgetItemOut])
def api_budget_items(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    views = BudgetService(db, ctx).list_for_month(month or current_month())
    return [_budget_item_out(v) for v in views]


@app.post("/api/budget-items", response_model=BudgetItemOut, status_code=201)
def api_create_budget_item(
    payload: BudgetItemIn,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    item = BudgetService(db, ctx).create(payload)
    return _budget_item_out(BudgetItemView(item, 0))


@app.put("/api/budget-items/{item_id}", response_model=BudgetItemOut)
def api_update_budget_item(
    item_id: int,
    payload: BudgetItemUpdateIn,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    service = BudgetService(db, ctx)
    item = service.update(item_id, payload)
    views = service.list_for_month(item.month_year)
    return _budget_item_out(next(v for v in views if v.item.id == item.id))


@app.delete("/api/budget-items/{item_id}", status_code=204)
def api_delete_budget_item(
    item_id: int,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    BudgetService(db, ctx).delete(item_id)
    return Response(status_code=204)


@app.post("/api/budget-items/copy", response_model=CopyResultOut)
def api_copy_budget(
    payload: BudgetCopyIn,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    count = BudgetService(db, ctx).copy_from_month(
        payload.source_month, payload.target_month
    )
    return CopyResultOut(count=count)


@app.get("/api/income", response_model=list[IncomeOut])
def api_income(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    entries = IncomeService(db, ctx).list_for_month(month or current_month())
    return [_income_out(e) for e in entries]


@app.post("/api/income", response_model=IncomeOut, status_code=201)
def api_create_income(
    payload: IncomeIn,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    return _income_out(IncomeService(db, ctx).create(payload))


@app.put("/api/income/{income_id}", response_model=IncomeOut)
def api_update_income(
    income_id: int,
    payload: IncomeUpdateIn,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    return _income_out(IncomeService(db, ctx).update(income_id, payload))


@app.delete("/api/income/{income_id}", status_code=204)
def api_delete_income(
    income_id: int,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    IncomeService(db, ctx).delete(income_id)
    return Response(status_code=204)


@app.get("/api/credits", response_model=list[CreditOut])
def api_credits(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    entries = CreditService(db, ctx).list_for_month(month or current_month())
    return [_credit_out(e) for e in entries]


@app.post("/api/credits", response_model=CreditOut, status_code=201)
def api_create_credit(
    payload: CreditIn,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    return _credit_out(CreditService(db, ctx).create(payload))


@app.put("/api/credits/{credit_id}", response_model=CreditOut)
def api_update_credit(
    credit_id: int,
    payload: CreditUpdateIn,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    return _credit_out(CreditService(db, ctx).update(credit_id, payload))


@app.delete("/api/credits/{credit_id}", status_code=204)
def api_delete_credit(
    credit_id: int,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    CreditService(db, ctx).delete(credit_id)
    return Response(status_code=204)


@app.get("/api/transactions", response_model=list[TransactionDayOut])
def api_transactions(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    days = TransactionService(db, ctx).list_for_month(month or current_month())
    return [
        TransactionDayOut(
            date=day.date,
            transactions=[_transaction_out(t) for t in day.transactions],
        )
        for day in days
    ]


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def api_create_transaction(
    payload: TransactionIn,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    service = TransactionService(db, ctx)
    txn = service.create(payload)
    return _transaction_out(service.get(txn.id))


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def api_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    return _transaction_out(TransactionService(db, ctx).get(transaction_id))


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def api_delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    TransactionService(db, ctx).delete(transaction_id)
    return Response(status_code=204)


@app.get("/api/accounts", response_model=list[AccountOut])
def api_accounts(
    db: Session = Depends(get_db), ctx: HouseholdContext = Depends(get_context)
):
    return [
        AccountOut(id=u.account.id, name=u.account.name, in_use=u.in_use)
        for u in PaymentAccountService(db, ctx).list_with_usage()
    ]


@app.post("/api/accounts", response_model=AccountOut, status_code=201)
def api_create_account(
    payload: PaymentAccountIn,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    account = PaymentAccountService(db, ctx).create(payload)
    return AccountOut(id=account.id, name=account.name)


@app.put("/api/accounts/{account_id}", response_model=AccountOut)
def api_rename_account(
    account_id: int,
    payload: PaymentAccountIn,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    account = PaymentAccountService(db, ctx).rename(account_id, payload)
    return AccountOut(id=account.id, name=account.name)


@app.delete("/api/accounts/{account_id}", status_code=204)
def api_delete_account(
    account_id: int,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    PaymentAccountService(db, ctx).delete(account_id)
    return Response(status_code=204)


@app.get("/api/categories", response_model=list[CategoryOut])
def api_categories(
    db: Session = Depends(get_db), ctx: HouseholdContext = Depends(get_context)
):
    return CategoryService(db, ctx).list_all()


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def api_create_category(
    payload: CategoryIn,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    return CategoryService(db, ctx).create(payload)


@app.delete("/api/categories/{category_id}", status_code=204)
def api_delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    CategoryService(db, ctx).delete(category_id)
    return Response(status_code=204)


@app.get("/api/templates", response_model=list[TemplateOut])
def api_templates(
    q: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    return [_template_out(v) for v in ExpenseTemplateService(db, ctx).list_all(q)]


@app.post("/api/templates", response_model=TemplateOut, status_code=201)
def api_create_template(
    payload: ExpenseTemplateIn,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    service = ExpenseTemplateService(db, ctx)
    template = service.create(payload)
    return _template_out(TemplateView(template, service.is_in_use(template)))


@app.put("/api/templates/{template_id}", response_model=TemplateOut)
def api_update_template(
    template_id: int,
    payload: ExpenseTemplateIn,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    service = ExpenseTemplateService(db, ctx)
    template = service.update(template_id, payload)
    return _template_out(TemplateView(template, service.is_in_use(template)))


@app.delete("/api/templates/{template_id}", status_code=204)
def api_delete_template(
    template_id: int,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    ExpenseTemplateService(db, ctx).delete(template_id)
    return Response(status_code=204)


@app.post(
    "/api/templates/{template_id}/apply", response_model=BudgetItemOut, status_code=201
)
def api_apply_template(
    template_id: int,
    payload: TemplateApplyIn,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    item = ExpenseTemplateService(db, ctx).add_to_month(
        template_id, payload.month_year, color=payload.color
    )
    return _budget_item_out(BudgetItemView(item, 0))


@app.get("/api/reminders", response_model=list[ReminderOut])
def api_reminders(
    db: Session = Depends(get_db), ctx: HouseholdContext = Depends(get_context)
):
    return [_reminder_out(r) for r in ReminderService(db, ctx).list_all()]


@app.get("/api/reminders/due", response_model=list[ReminderOut])
def api_due_reminders(
    db: Session = Depends(get_db), ctx: HouseholdContext = Depends(get_context)
):
    return [_reminder_out(r) for r in ReminderService(db, ctx).due_reminders()]


@app.post("/api/reminders", response_model=ReminderOut, status_code=201)
def api_create_reminder(
    payload: ReminderIn,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    return _reminder_out(ReminderService(db, ctx).create(payload))


@app.patch("/api/reminders/{reminder_id}", response_model=ReminderOut)
def api_update_reminder(
    reminder_id: int,
    payload: ReminderUpdateIn,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    return _reminder_out(ReminderService(db, ctx).update(reminder_id, payload))


@app.post("/api/reminders/{reminder_id}/notified", response_model=ReminderOut)
def api_mark_reminder_notified(
    reminder_id: int,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    return _reminder_out(ReminderService(db, ctx).mark_notified(reminder_id))


@app.delete("/api/reminders/{reminder_id}", status_code=204)
def api_delete_reminder(
    reminder_id: int,
    db: Session = Depends(get_db),
    ctx: HouseholdContext = Depends(get_context),
):
    ReminderService(db, ctx).delete(reminder_id)
    return Response(status_code=204)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
