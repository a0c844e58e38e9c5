import logging
import math
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth import current_user, generate_token
from config import get_settings
from database import get_db
from models import Category, CategoryType, Reminder, Transaction, TransactionType, User
from periods import DateRange, local_now, resolve_date_range
from ratelimit import rate_limit
from scheduler import SchedulerManager
from schemas import (
    BulkDeleteIn,
    CategoryIn,
    CategoryUpdateIn,
    ReminderIn,
    ReminderUpdateIn,
    TransactionIn,
    TransactionUpdateIn,
    UserLoginIn,
    UserRegisterIn,
    UserUpdateIn,
)
from services import (
    EXPENSE_SUBCATEGORIES,
    CategoryService,
    Conflict,
    InvalidCredentials,
    MetricsService,
    NotAuthorized,
    RecordNotFound,
    ReminderFilters,
    ReminderService,
    TransactionFilters,
    TransactionService,
    UserService,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Family Budget", dependencies=[Depends(rate_limit)])
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"database_error: path={request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Server error"})


@app.exception_handler(Exception)
async def server_error_handler(request: Request, exc: Exception):
    logger.exception(f"server_error: path={request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Server error"})


def http_error(exc: ValueError) -> HTTPException:
    if isinstance(exc, RecordNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, NotAuthorized):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, Conflict):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, InvalidCredentials):
        return HTTPException(status_code=401, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def date_range_from_request(request: Request) -> Optional[DateRange]:
    try:
        return resolve_date_range(
            request.query_params.get("dateRange"),
            request.query_params.get("startDate"),
            request.query_params.get("endDate"),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def pagination_from_request(request: Request) -> tuple[int, int]:
    try:
        page = int(request.query_params.get("page", "1"))
        limit = int(request.query_params.get("limit", "10"))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid pagination") from exc
    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    return page, limit


def transaction_filters_from_request(request: Request) -> TransactionFilters:
    type_param = request.query_params.get("type")
    category_param = request.query_params.get("category")
    subcategory = request.query_params.get("subcategory")
    filters = TransactionFilters(date_range=date_range_from_request(request))
    if type_param and type_param != "all":
        try:
            filters.type = TransactionType(type_param)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid type") from None
    if category_param and category_param != "all":
        if category_param.isdigit():
            filters.category_id = int(category_param)
        else:
            filters.category_name = category_param
    if subcategory and subcategory != "all":
        filters.subcategory = subcategory
    return filters


def serialize_user(user: User) -> dict[str, object]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "last_login_at": _iso(user.last_login_at),
        "created_at": _iso(user.created_at),
    }


def serialize_category(category: Category) -> dict[str, object]:
    return {
        "id": category.id,
        "name": category.name,
        "type": category.type.value,
        "icon": category.icon,
        "color": category.color,
        "description": category.description,
        "is_default": category.is_default,
    }


def serialize_transaction(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "type": txn.type.value,
        "amount_cents": txn.amount_cents,
        "category_id": txn.category_id,
        "category": txn.category_name,
        "subcategory": txn.subcategory,
        "date": txn.occurred_at.isoformat(),
        "payee": txn.payee,
        "description": txn.description,
        "is_recurring": txn.is_recurring,
        "recurring_interval": (
            txn.recurring_interval.value if txn.recurring_interval else None
        ),
        "created_at": _iso(txn.created_at),
    }


def serialize_reminder(reminder: Reminder) -> dict[str, object]:
    return {
        "id": reminder.id,
        "title": reminder.title,
        "description": reminder.description,
        "due_date": reminder.due_date.isoformat(),
        "category": reminder.category.value,
        "amount_cents": reminder.amount_cents,
        "is_recurring": reminder.is_recurring,
        "recurring_interval": (
            reminder.recurring_interval.value if reminder.recurring_interval else None
        ),
        "status": reminder.status.value,
        "created_at": _iso(reminder.created_at),
    }


def _page(items: list[dict[str, object]], page: int, limit: int, total: int) -> dict[str, object]:
    return {
        "results": items,
        "page": page,
        "total_pages": math.ceil(total / limit) if total else 0,
        "count": len(items),
        "total": total,
    }


# users


@app.post("/api/users/register", status_code=201)
def register_user(payload: UserRegisterIn, db: Session = Depends(get_db)):
    try:
        user = UserService(db).register(payload)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"user": serialize_user(user), "token": generate_token(user.id)}


@app.post("/api/users/login")
def login_user(payload: UserLoginIn, db: Session = Depends(get_db)):
    try:
        user = UserService(db).authenticate(payload.email, payload.password)
    except ValueError as exc:
        raise http_error(exc) from exc
    logger.info(f"user_login: id={user.id}")
    return {"user": serialize_user(user), "token": generate_token(user.id)}


@app.get("/api/users/profile")
def get_profile(user: User = Depends(current_user)):
    return serialize_user(user)


@app.put("/api/users/profile")
def update_profile(
    payload: UserUpdateIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        updated = UserService(db).update_profile(user, payload)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"user": serialize_user(updated), "token": generate_token(updated.id)}


# categories


@app.get("/api/config/categories")
def category_config():
    return {"expense": EXPENSE_SUBCATEGORIES}


@app.get("/api/categories")
def list_categories(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    type_param = request.query_params.get("type")
    category_type = None
    if type_param and type_param != "all":
        try:
            category_type = CategoryType(type_param)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid type") from None
    categories = CategoryService(db, user.id).list_all(
        category_type, request.query_params.get("search")
    )
    return [serialize_category(c) for c in categories]


@app.post("/api/categories", status_code=201)
def create_category(
    payload: CategoryIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        category = CategoryService(db, user.id).create(payload)
    except ValueError as exc:
        raise http_error(exc) from exc
    return serialize_category(category)


@app.post("/api/categories/reset")
def reset_categories(user: User = Depends(current_user), db: Session = Depends(get_db)):
    categories = CategoryService(db, user.id).reset()
    logger.info(f"categories_reset: user_id={user.id}")
    return [serialize_category(c) for c in categories]


@app.get("/api/categories/{category_id}")
def get_category(
    category_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        category = CategoryService(db, user.id).get(category_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return serialize_category(category)


@app.put("/api/categories/{category_id}")
def update_category(
    category_id: int,
    payload: CategoryUpdateIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        category = CategoryService(db, user.id).update(category_id, payload)
    except ValueError as exc:
        raise http_error(exc) from exc
    return serialize_category(category)


@app.delete("/api/categories/{category_id}")
def delete_category(
    category_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        CategoryService(db, user.id).delete(category_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"id": category_id}


# transactions


@app.get("/api/transactions")
def list_transactions(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    filters = transaction_filters_from_request(request)
    page, limit = pagination_from_request(request)
    service = TransactionService(db, user.id)
    items = service.list(filters, limit=limit, offset=(page - 1) * limit)
    total = service.count(filters)
    data = _page([serialize_transaction(t) for t in items], page, limit, total)
    data["summary"] = service.summary(filters)
    return data


@app.post("/api/transactions", status_code=201)
def create_transaction(
    payload: TransactionIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user.id).create(payload)
    except ValueError as exc:
        raise http_error(exc) from exc
    return serialize_transaction(txn)


@app.post("/api/transactions/bulk-delete")
def bulk_delete_transactions(
    payload: BulkDeleteIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return TransactionService(db, user.id).bulk_delete(payload.ids).as_dict()


@app.get("/api/transactions/summary")
def transaction_summary(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    date_range = date_range_from_request(request)
    return MetricsService(db, user.id).summary(date_range)


@app.get("/api/transactions/monthly")
def transaction_monthly(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        year = int(request.query_params.get("year", local_now().year))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid year") from exc
    try:
        months = MetricsService(db, user.id).monthly_series(year)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"year": year, "months": months}


@app.get("/api/transactions/category-breakdown")
def transaction_category_breakdown(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    date_range = date_range_from_request(request)
    try:
        txn_type = TransactionType(request.query_params.get("type", "expense"))
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid type") from None
    return MetricsService(db, user.id).category_breakdown(date_range, txn_type)


@app.get("/api/transactions/subcategory-breakdown")
def transaction_subcategory_breakdown(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    date_range = date_range_from_request(request)
    try:
        txn_type = TransactionType(request.query_params.get("type", "expense"))
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid type") from None
    return MetricsService(db, user.id).subcategory_breakdown(date_range, txn_type)


@app.get("/api/transactions/{transaction_id}")
def get_transaction(
    transaction_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user.id).get(transaction_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return serialize_transaction(txn)


@app.put("/api/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    payload: TransactionUpdateIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user.id).update(transaction_id, payload)
    except ValueError as exc:
        raise http_error(exc) from exc
    return serialize_transaction(txn)


@app.delete("/api/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        TransactionService(db, user.id).delete(transaction_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"id": transaction_id}


# reminders


@app.get("/api/reminders")
def list_reminders(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    params = request.query_params
    try:
        filters = ReminderFilters.from_query(
            date_range=params.get("dateRange"),
            start_date=params.get("startDate"),
            end_date=params.get("endDate"),
            category=params.get("category"),
            status=params.get("status"),
        )
    except ValueError as exc:
        raise http_error(exc) from exc
    page, limit = pagination_from_request(request)
    service = ReminderService(db, user.id)
    items = service.list(filters, limit=limit, offset=(page - 1) * limit)
    total = service.count(filters)
    data = _page([serialize_reminder(r) for r in items], page, limit, total)
    data["summary"] = service.summary()
    return data


@app.post("/api/reminders", status_code=201)
def create_reminder(
    payload: ReminderIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        reminder = ReminderService(db, user.id).create(payload)
    except ValueError as exc:
        raise http_error(exc) from exc
    return serialize_reminder(reminder)


@app.get("/api/reminders/summary")
def reminder_summary(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return ReminderService(db, user.id).summary()


@app.post("/api/reminders/bulk-delete")
def bulk_delete_reminders(
    payload: BulkDeleteIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return ReminderService(db, user.id).bulk_delete(payload.ids).as_dict()


@app.get("/api/reminders/{reminder_id}")
def get_reminder(
    reminder_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        reminder = ReminderService(db, user.id).get(reminder_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return serialize_reminder(reminder)


@app.put("/api/reminders/{reminder_id}")
def update_reminder(
    reminder_id: int,
    payload: ReminderUpdateIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        reminder = ReminderService(db, user.id).update(reminder_id, payload)
    except ValueError as exc:
        raise http_error(exc) from exc
    return serialize_reminder(reminder)


@app.delete("/api/reminders/{reminder_id}")
def delete_reminder(
    reminder_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        ReminderService(db, user.id).delete(reminder_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"id": reminder_id}


@app.put("/api/reminders/{reminder_id}/complete")
def complete_reminder(
    reminder_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        completed, next_reminder = ReminderService(db, user.id).complete(reminder_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {
        "reminder": serialize_reminder(completed),
        "next": serialize_reminder(next_reminder) if next_reminder else None,
    }


# dashboard


@app.get("/api/dashboard")
def dashboard(user: User = Depends(current_user), db: Session = Depends(get_db)):
    data = MetricsService(db, user.id).dashboard()
    data["recent_transactions"] = [
        serialize_transaction(t) for t in data["recent_transactions"]
    ]
    for payment in data["upcoming_payments"]:
        payment["due_date"] = payment["due_date"].isoformat()
    return data


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
