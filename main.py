import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from sqlalchemy.orm import Session

from database import SessionLocal
from errors import MonthlyExpenseError
from models import ExpenseStatus
from periods import current_month
from scheduler import SchedulerManager
from schemas import (
    GenerateIn,
    GenerationResultOut,
    MonthlyExpenseListOut,
    MonthlyExpenseOut,
    PaymentOut,
    PayMonthlyExpenseIn,
    RecurringExpenseIn,
    RecurringExpenseOut,
    RecurringExpenseUpdate,
    TransactionOut,
    UpdateMonthlyExpenseIn,
)
from services import MonthlyExpenseService, RecurringExpenseService


logger = logging.getLogger(__name__)

app = FastAPI(title="Recurring Obligations")

_STATUS_BY_KIND = {
    "not_found": 404,
    "invalid_state": 400,
    "policy_violation": 400,
    "validation": 400,
    "write_conflict": 409,
}


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def to_http_error(exc: MonthlyExpenseError) -> HTTPException:
    status_code = _STATUS_BY_KIND.get(exc.kind, 500)
    detail = str(exc)
    if exc.kind == "write_conflict":
        detail = "Concurrent update detected. Please try again."
    return HTTPException(status_code=status_code, detail=detail)


def _list_payload(
    service: MonthlyExpenseService,
    month: int,
    year: int,
    status: Optional[ExpenseStatus],
) -> MonthlyExpenseListOut:
    # Opening a month's view generates any missing instances for this user.
    service.generate(month, year)
    instances = service.list(month, year, status)
    return MonthlyExpenseListOut(
        monthly_expenses=[MonthlyExpenseOut.model_validate(i) for i in instances],
        count=len(instances),
        month=month,
        year=year,
    )


@app.get("/api/monthly-expenses/current", response_model=MonthlyExpenseListOut)
def current_monthly_expenses(
    status: Optional[ExpenseStatus] = None, db: Session = Depends(get_db)
):
    period = current_month()
    try:
        return _list_payload(
            MonthlyExpenseService(db), period.month, period.year, status
        )
    except MonthlyExpenseError as exc:
        raise to_http_error(exc) from exc


@app.get("/api/monthly-expenses/{month}/{year}", response_model=MonthlyExpenseListOut)
def monthly_expenses(
    month: int,
    year: int,
    status: Optional[ExpenseStatus] = None,
    db: Session = Depends(get_db),
):
    try:
        return _list_payload(MonthlyExpenseService(db), month, year, status)
    except MonthlyExpenseError as exc:
        raise to_http_error(exc) from exc


@app.post("/api/monthly-expenses/generate", response_model=GenerationResultOut)
def generate_monthly_expenses(payload: GenerateIn, db: Session = Depends(get_db)):
    try:
        result = MonthlyExpenseService(db).generate(payload.month, payload.year)
    except MonthlyExpenseError as exc:
        raise to_http_error(exc) from exc
    return GenerationResultOut(**result.as_dict())


@app.put("/api/monthly-expenses/{instance_id}/pay", response_model=PaymentOut)
def pay_monthly_expense(
    instance_id: int, payload: PayMonthlyExpenseIn, db: Session = Depends(get_db)
):
    try:
        instance, txn = MonthlyExpenseService(db).pay(instance_id, payload)
    except MonthlyExpenseError as exc:
        raise to_http_error(exc) from exc
    return PaymentOut(
        monthly_expense=MonthlyExpenseOut.model_validate(instance),
        transaction=TransactionOut.model_validate(txn),
    )


@app.put("/api/monthly-expenses/{instance_id}/undo", response_model=MonthlyExpenseOut)
def undo_monthly_expense_payment(instance_id: int, db: Session = Depends(get_db)):
    try:
        instance = MonthlyExpenseService(db).undo_payment(instance_id)
    except MonthlyExpenseError as exc:
        raise to_http_error(exc) from exc
    return MonthlyExpenseOut.model_validate(instance)


@app.put("/api/monthly-expenses/{instance_id}", response_model=MonthlyExpenseOut)
def update_monthly_expense(
    instance_id: int, payload: UpdateMonthlyExpenseIn, db: Session = Depends(get_db)
):
    try:
        instance = MonthlyExpenseService(db).update_paid(instance_id, payload)
    except MonthlyExpenseError as exc:
        raise to_http_error(exc) from exc
    return MonthlyExpenseOut.model_validate(instance)


@app.get("/api/recurring-expenses", response_model=list[RecurringExpenseOut])
def list_recurring_expenses(active_only: bool = False, db: Session = Depends(get_db)):
    templates = RecurringExpenseService(db).list(active_only=active_only)
    return [RecurringExpenseOut.model_validate(t) for t in templates]


@app.get(
    "/api/recurring-expenses/{recurring_expense_id}",
    response_model=RecurringExpenseOut,
)
def get_recurring_expense(recurring_expense_id: int, db: Session = Depends(get_db)):
    try:
        template = RecurringExpenseService(db).get(recurring_expense_id)
    except MonthlyExpenseError as exc:
        raise to_http_error(exc) from exc
    return RecurringExpenseOut.model_validate(template)


@app.post("/api/recurring-expenses", response_model=RecurringExpenseOut, status_code=201)
def create_recurring_expense(payload: RecurringExpenseIn, db: Session = Depends(get_db)):
    try:
        template = RecurringExpenseService(db).create(payload)
    except MonthlyExpenseError as exc:
        raise to_http_error(exc) from exc
    return RecurringExpenseOut.model_validate(template)


@app.patch(
    "/api/recurring-expenses/{recurring_expense_id}",
    response_model=RecurringExpenseOut,
)
def update_recurring_expense(
    recurring_expense_id: int,
    payload: RecurringExpenseUpdate,
    db: Session = Depends(get_db),
):
    try:
        template = RecurringExpenseService(db).update(recurring_expense_id, payload)
    except MonthlyExpenseError as exc:
        raise to_http_error(exc) from exc
    return RecurringExpenseOut.model_validate(template)


@app.post(
    "/api/recurring-expenses/{recurring_expense_id}/deactivate",
    response_model=RecurringExpenseOut,
)
def deactivate_recurring_expense(
    recurring_expense_id: int, db: Session = Depends(get_db)
):
    try:
        template = RecurringExpenseService(db).deactivate(recurring_expense_id)
    except MonthlyExpenseError as exc:
        raise to_http_error(exc) from exc
    logger.info(f"recurring_expense_deactivated: id={recurring_expense_id}")
    return RecurringExpenseOut.model_validate(template)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
