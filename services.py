from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from rapidfuzz.distance import Levenshtein
from sqlalchemy import Select, delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from auth import hash_password, verify_password
from lifecycle import can_complete, decide_status
from models import (
    Category,
    CategoryType,
    ReminderCategory,
    Reminder,
    ReminderStatus,
    Transaction,
    TransactionType,
    User,
)
from periods import (
    DateRange,
    local_now,
    month_range,
    resolve_date_range,
    to_local_naive,
)
from recurrence import advance_due_date, next_occurrence_after, normalize_interval
from schemas import (
    CategoryIn,
    CategoryUpdateIn,
    ReminderIn,
    ReminderUpdateIn,
    TransactionIn,
    TransactionUpdateIn,
    UserRegisterIn,
    UserUpdateIn,
)

logger = logging.getLogger(__name__)

MONTH_NAMES = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]

DEFAULT_CATEGORIES: list[dict[str, str]] = [
    {"name": "Salary", "type": "income", "icon": "briefcase", "color": "#10b981", "description": "Regular employment income"},
    {"name": "Freelance", "type": "income", "icon": "edit", "color": "#3b82f6", "description": "Income from freelance work"},
    {"name": "Investments", "type": "income", "icon": "trending-up", "color": "#6366f1", "description": "Dividends, interest, capital gains"},
    {"name": "Gifts", "type": "income", "icon": "gift", "color": "#ec4899", "description": "Money received as gifts"},
    {"name": "Other Income", "type": "income", "icon": "plus-circle", "color": "#64748b", "description": "Miscellaneous income"},
    {"name": "Housing", "type": "expense", "icon": "home", "color": "#f59e0b", "description": "Rent, mortgage, property taxes"},
    {"name": "Food", "type": "expense", "icon": "shopping-cart", "color": "#10b981", "description": "Groceries and dining out"},
    {"name": "Transportation", "type": "expense", "icon": "truck", "color": "#3b82f6", "description": "Car payment, fuel, public transit"},
    {"name": "Utilities", "type": "expense", "icon": "zap", "color": "#6366f1", "description": "Electricity, water, internet"},
    {"name": "Healthcare", "type": "expense", "icon": "activity", "color": "#ef4444", "description": "Medical expenses and insurance"},
    {"name": "Entertainment", "type": "expense", "icon": "film", "color": "#8b5cf6", "description": "Movies, games, subscriptions"},
    {"name": "Shopping", "type": "expense", "icon": "shopping-bag", "color": "#ec4899", "description": "Clothing, electronics, etc."},
    {"name": "Personal", "type": "expense", "icon": "user", "color": "#14b8a6", "description": "Personal care and hygiene"},
    {"name": "Debt", "type": "expense", "icon": "credit-card", "color": "#f43f5e", "description": "Credit card, loan payments"},
    {"name": "Savings", "type": "expense", "icon": "save", "color": "#10b981", "description": "Money set aside for future goals"},
    {"name": "Other Expenses", "type": "expense", "icon": "more-horizontal", "color": "#64748b", "description": "Miscellaneous expenses"},
]

EXPENSE_SUBCATEGORIES: dict[str, list[str]] = {
    "housing": ["Mortgage", "Insurance", "Property Rates", "Water Bill", "Land Tax", "Maintenance", "Compliance Fees", "Body Corporate Fees"],
    "food": ["Groceries", "Dining Out", "Takeaway", "Coffee/Snacks"],
    "transportation": ["Car Loan", "Insurance", "Registration", "Fuel", "Maintenance & Repairs", "Public Transport", "Tolls & Parking", "Ride-Sharing & Taxis"],
    "utilities": ["Electricity Bill", "Gas Bill", "Water Bill", "Internet", "Mobile"],
    "healthcare": ["Health Insurance", "Doctor Visits", "Dentist", "Pharmacy", "Specialist Consultations", "Vision Care"],
    "entertainment": ["Subscriptions", "Movies & Shows", "Concerts & Events", "Memberships", "Hobbies & Leisure Activities"],
    "education": ["School Fees", "Books & Stationery", "Kids' Classes", "Online Courses", "Tuition Fees"],
    "personal": ["Gym Membership", "Personal Care", "Clothing & Shopping", "Gifts & Donations"],
    "travel": ["Domestic Travel", "Overseas Travel", "Accommodation", "Flights & Transport", "Travel Insurance"],
    "other": ["Miscellaneous Expenses", "Fines", "Unexpected Expenses"],
}


class RecordNotFound(ValueError):
    pass


class NotAuthorized(ValueError):
    pass


class Conflict(ValueError):
    pass


class InvalidCredentials(ValueError):
    pass


def _owned(session: Session, model, record_id: int, user_id: int, label: str):
    record = session.get(model, record_id)
    if record is None:
        raise RecordNotFound(f"{label} not found")
    if record.user_id != user_id:
        raise NotAuthorized(f"Not authorized to access this {label.lower()}")
    return record


def with_percentages(
    rows: list[dict[str, object]], amount_key: str = "amount_cents"
) -> list[dict[str, object]]:
    total = sum(int(row[amount_key]) for row in rows)
    for row in rows:
        amount = int(row[amount_key])
        row["percent"] = (amount / total * 100) if total else 0
    return rows


def parse_status_filter(value: Optional[str]) -> list[ReminderStatus]:
    if not value or value == "all":
        return []
    statuses: list[ReminderStatus] = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            statuses.append(ReminderStatus(part))
        except ValueError:
            raise ValueError(f"Invalid status: {part}") from None
    return statuses


@dataclass
class BulkDeleteResult:
    success: list[int] = field(default_factory=list)
    failed: list[dict[str, object]] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {"success": self.success, "failed": self.failed}


def _bulk_delete(session: Session, ids: list[int], delete_one, label: str) -> BulkDeleteResult:
    results = BulkDeleteResult()
    for record_id in ids:
        try:
            delete_one(record_id)
        except RecordNotFound:
            results.failed.append({"id": record_id, "reason": "not found"})
        except NotAuthorized:
            results.failed.append({"id": record_id, "reason": "not authorized"})
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception(f"bulk_delete_failed: {label} id={record_id}")
            results.failed.append({"id": record_id, "reason": str(exc)})
        else:
            results.success.append(record_id)
    logger.info(
        f"bulk_delete: {label} deleted={len(results.success)} failed={len(results.failed)}"
    )
    return results


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _by_email(self, email: str) -> Optional[User]:
        return self.session.scalar(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )

    def register(self, data: UserRegisterIn) -> User:
        if self._by_email(data.email):
            raise Conflict("User with this email already exists")
        user = User(
            name=data.name.strip(),
            email=data.email.strip().lower(),
            password_hash=hash_password(data.password),
            last_login_at=datetime.utcnow(),
        )
        self.session.add(user)
        self.session.flush()
        CategoryService(self.session, user.id).ensure_defaults()
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"user_registered: id={user.id}")
        return user

    def authenticate(self, email: str, password: str) -> User:
        user = self._by_email(email)
        if not user or not verify_password(password, user.password_hash):
            raise InvalidCredentials("Invalid email or password")
        user.last_login_at = datetime.utcnow()
        self.session.commit()
        return user

    def update_profile(self, user: User, data: UserUpdateIn) -> User:
        if data.email and data.email.strip().lower() != user.email:
            existing = self._by_email(data.email)
            if existing and existing.id != user.id:
                raise Conflict("Email already in use")
            user.email = data.email.strip().lower()
        if data.name:
            user.name = data.name.strip()
        if data.password:
            user.password_hash = hash_password(data.password)
        self.session.commit()
        self.session.refresh(user)
        return user


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def ensure_defaults(self) -> int:
        existing = {
            name.lower()
            for name in self.session.scalars(
                select(Category.name).where(Category.user_id == self.user_id)
            )
        }
        created = 0
        for entry in DEFAULT_CATEGORIES:
            if entry["name"].lower() in existing:
                continue
            self.session.add(
                Category(
                    user_id=self.user_id,
                    name=entry["name"],
                    type=CategoryType(entry["type"]),
                    icon=entry["icon"],
                    color=entry["color"],
                    description=entry["description"],
                    is_default=True,
                )
            )
            created += 1
        self.session.flush()
        return created

    def list_all(
        self,
        category_type: Optional[CategoryType] = None,
        search: Optional[str] = None,
    ) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.name)
        )
        if category_type is not None:
            stmt = stmt.where(Category.type.in_([category_type, CategoryType.both]))
        if search:
            like = f"%{search.strip().lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Category.name).like(like),
                    func.lower(func.coalesce(Category.description, "")).like(like),
                )
            )
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        return _owned(self.session, Category, category_id, self.user_id, "Category")

    def _name_taken(self, name: str, exclude_id: Optional[int] = None) -> bool:
        stmt = select(Category.id).where(
            Category.user_id == self.user_id,
            func.lower(Category.name) == name.strip().lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        return self.session.scalar(stmt) is not None

    def create(self, data: CategoryIn) -> Category:
        if self._name_taken(data.name):
            raise Conflict("A category with this name already exists")
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            icon=data.icon or "default-icon",
            color=data.color or "#10b981",
            description=data.description or "",
            is_default=False,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryUpdateIn) -> Category:
        category = self.get(category_id)
        if category.is_default:
            raise NotAuthorized("Default categories cannot be modified")
        if data.name and data.name.strip().lower() != category.name.lower():
            if self._name_taken(data.name, exclude_id=category.id):
                raise Conflict("A category with this name already exists")
        if data.name:
            category.name = data.name.strip()
        if data.type:
            category.type = data.type
        if data.icon:
            category.icon = data.icon
        if data.color:
            category.color = data.color
        if data.description is not None:
            category.description = data.description
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        if category.is_default:
            raise NotAuthorized("Default categories cannot be deleted")
        self._detach_transactions([category.id])
        self.session.delete(category)
        self.session.commit()

    def reset(self) -> list[Category]:
        custom_ids = self.session.scalars(
            select(Category.id).where(
                Category.user_id == self.user_id, Category.is_default.is_(False)
            )
        ).all()
        if custom_ids:
            self._detach_transactions(custom_ids)
            self.session.execute(
                delete(Category).where(Category.id.in_(custom_ids))
            )
        self.ensure_defaults()
        self.session.commit()
        self.session.expire_all()
        return self.list_all()

    def _detach_transactions(self, category_ids: list[int]) -> None:
        self.session.execute(
            update(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.category_id.in_(category_ids),
            )
            .values(category_id=None)
            .execution_options(synchronize_session=False)
        )

    def resolve(self, name: str, txn_type: TransactionType) -> Category:
        """Find a category by name, tolerating case and a single typo."""
        raw = name.strip()
        input_lower = raw.lower()
        candidates = [
            c for c in self.list_all() if c.accepts(txn_type)
        ]
        for category in candidates:
            if category.name.lower() == input_lower:
                return category

        best_distance: Optional[int] = None
        best: list[Category] = []
        for category in candidates:
            dist = int(Levenshtein.distance(input_lower, category.name.lower()))
            if best_distance is None or dist < best_distance:
                best_distance = dist
                best = [category]
            elif dist == best_distance:
                best.append(category)

        if best_distance is not None and best_distance <= 1:
            if len(best) > 1:
                options = ", ".join(sorted(c.name for c in best))
                raise ValueError(
                    f"Category '{raw}' is ambiguous; matches: {options}"
                )
            return best[0]
        raise ValueError(f"Category '{raw}' not found")


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    subcategory: Optional[str] = None
    date_range: Optional[DateRange] = None


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _category_for(
        self,
        txn_type: TransactionType,
        category_id: Optional[int],
        category_name: Optional[str],
    ) -> Category:
        if category_id is not None:
            category = self.session.get(Category, category_id)
            if not category or category.user_id != self.user_id:
                raise ValueError("Category not found")
        else:
            category = CategoryService(self.session, self.user_id).resolve(
                category_name or "", txn_type
            )
        if not category.accepts(txn_type):
            raise ValueError("Category type mismatch")
        return category

    def create(self, data: TransactionIn) -> Transaction:
        category = self._category_for(data.type, data.category_id, data.category)
        txn = Transaction(
            user_id=self.user_id,
            type=data.type,
            amount_cents=data.amount_cents,
            category_id=category.id,
            subcategory=(data.subcategory or "").strip() or None,
            occurred_at=to_local_naive(data.date),
            payee=data.payee,
            description=data.description,
            is_recurring=data.is_recurring,
            recurring_interval=normalize_interval(
                data.is_recurring, data.recurring_interval
            ),
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def get(self, transaction_id: int) -> Transaction:
        return _owned(
            self.session, Transaction, transaction_id, self.user_id, "Transaction"
        )

    def update(self, transaction_id: int, data: TransactionUpdateIn) -> Transaction:
        txn = self.get(transaction_id)
        fields = data.model_dump(exclude_unset=True)

        new_type = fields.get("type") or txn.type
        if "category_id" in fields or "category" in fields or new_type != txn.type:
            category_id = fields.get("category_id")
            category_name = fields.get("category")
            if category_id is None and not category_name:
                category_id = txn.category_id
            if category_id is None and not category_name:
                raise ValueError("Category is required")
            txn.category_id = self._category_for(
                new_type, category_id, category_name
            ).id
        txn.type = new_type

        if fields.get("amount_cents") is not None:
            txn.amount_cents = fields["amount_cents"]
        if fields.get("date") is not None:
            txn.occurred_at = to_local_naive(fields["date"])
        for name in ("subcategory", "payee", "description"):
            if name in fields:
                setattr(txn, name, fields[name])
        if fields.get("is_recurring") is not None:
            txn.is_recurring = fields["is_recurring"]
        interval = fields.get("recurring_interval", txn.recurring_interval)
        txn.recurring_interval = normalize_interval(txn.is_recurring, interval)

        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()

    def bulk_delete(self, ids: list[int]) -> BulkDeleteResult:
        return _bulk_delete(self.session, ids, self.delete, "transactions")

    def _filtered(self, stmt: Select, filters: TransactionFilters) -> Select:
        stmt = stmt.where(Transaction.user_id == self.user_id)
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        if filters.category_name:
            if filters.category_name.lower() == "uncategorized":
                stmt = stmt.where(Transaction.category_id.is_(None))
            else:
                named = (
                    select(Category.id)
                    .where(
                        Category.user_id == self.user_id,
                        func.lower(Category.name) == filters.category_name.lower(),
                    )
                    .correlate(None)
                )
                stmt = stmt.where(Transaction.category_id.in_(named))
        if filters.subcategory:
            stmt = stmt.where(Transaction.subcategory == filters.subcategory)
        if filters.date_range:
            stmt = stmt.where(
                Transaction.occurred_at.between(
                    filters.date_range.start, filters.date_range.end
                )
            )
        return stmt

    def list(
        self,
        filters: TransactionFilters,
        limit: int = 10,
        offset: int = 0,
    ) -> list[Transaction]:
        stmt = self._filtered(
            select(Transaction).options(joinedload(Transaction.category)), filters
        )
        stmt = (
            stmt.order_by(Transaction.occurred_at.desc(), Transaction.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return self.session.scalars(stmt).all()

    def count(self, filters: TransactionFilters) -> int:
        stmt = self._filtered(select(func.count(Transaction.id)), filters)
        return int(self.session.execute(stmt).scalar_one() or 0)

    def summary(
        self, filters: TransactionFilters, now: Optional[datetime] = None
    ) -> dict[str, object]:
        date_range = filters.date_range or resolve_date_range(
            "current-month", now=now
        )
        scoped = TransactionFilters(
            type=filters.type,
            category_id=filters.category_id,
            category_name=filters.category_name,
            subcategory=filters.subcategory,
            date_range=date_range,
        )
        name = func.coalesce(Category.name, "Uncategorized").label("name")
        stmt = self._filtered(
            select(
                name,
                Transaction.subcategory,
                func.sum(Transaction.amount_cents).label("total"),
            )
            .select_from(Transaction)
            .outerjoin(Category, Category.id == Transaction.category_id),
            scoped,
        ).group_by(name, Transaction.subcategory)

        by_category: dict[str, int] = {}
        by_subcategory: dict[str, int] = {}
        for row in self.session.execute(stmt):
            amount = int(row.total or 0)
            by_category[row.name] = by_category.get(row.name, 0) + amount
            if row.subcategory:
                key = f"{row.name}-{row.subcategory}"
                by_subcategory[key] = by_subcategory.get(key, 0) + amount
        return {
            "total_cents": sum(by_category.values()),
            "by_category": by_category,
            "by_subcategory": by_subcategory,
        }


@dataclass
class ReminderFilters:
    category: Optional[ReminderCategory] = None
    statuses: list[ReminderStatus] = field(default_factory=list)
    date_range: Optional[DateRange] = None
    due_before: Optional[datetime] = None
    exclude_completed: bool = False

    @classmethod
    def from_query(
        cls,
        *,
        date_range: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        category: Optional[str] = None,
        status: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "ReminderFilters":
        filters = cls(statuses=parse_status_filter(status))
        if category and category != "all":
            try:
                filters.category = ReminderCategory(category)
            except ValueError:
                raise ValueError(f"Invalid category: {category}") from None

        if date_range == "upcoming" and not (start_date and end_date):
            # due within 30 days, overdue ones included
            now = now or local_now()
            filters.due_before = now + timedelta(days=30)
            filters.exclude_completed = not filters.statuses
        else:
            filters.date_range = resolve_date_range(
                date_range, start_date, end_date, now=now
            )
        return filters


class ReminderService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, reminder_id: int) -> Reminder:
        return _owned(self.session, Reminder, reminder_id, self.user_id, "Reminder")

    def create(self, data: ReminderIn, now: Optional[datetime] = None) -> Reminder:
        now = now or local_now()
        due_date = to_local_naive(data.due_date)
        reminder = Reminder(
            user_id=self.user_id,
            title=data.title.strip(),
            description=data.description,
            due_date=due_date,
            category=data.category,
            amount_cents=data.amount_cents,
            is_recurring=data.is_recurring,
            recurring_interval=normalize_interval(
                data.is_recurring, data.recurring_interval
            ),
            status=decide_status(
                current=None, explicit=data.status, due_date=due_date, now=now
            ),
        )
        self.session.add(reminder)
        self.session.commit()
        self.session.refresh(reminder)
        return reminder

    def update(
        self,
        reminder_id: int,
        data: ReminderUpdateIn,
        now: Optional[datetime] = None,
    ) -> Reminder:
        now = now or local_now()
        reminder = self.get(reminder_id)
        fields = data.model_dump(exclude_unset=True)

        due_date = fields.get("due_date")
        if due_date is not None:
            due_date = to_local_naive(due_date)
            reminder.due_date = due_date
        reminder.status = decide_status(
            current=reminder.status,
            explicit=fields.get("status"),
            due_date=due_date,
            now=now,
        )

        if fields.get("title"):
            reminder.title = fields["title"].strip()
        if fields.get("category") is not None:
            reminder.category = fields["category"]
        for name in ("description", "amount_cents"):
            if name in fields:
                setattr(reminder, name, fields[name])
        if fields.get("is_recurring") is not None:
            reminder.is_recurring = fields["is_recurring"]
        interval = fields.get("recurring_interval", reminder.recurring_interval)
        reminder.recurring_interval = normalize_interval(reminder.is_recurring, interval)

        self.session.commit()
        self.session.refresh(reminder)
        return reminder

    def delete(self, reminder_id: int) -> None:
        reminder = self.get(reminder_id)
        self.session.delete(reminder)
        self.session.commit()

    def bulk_delete(self, ids: list[int]) -> BulkDeleteResult:
        return _bulk_delete(self.session, ids, self.delete, "reminders")

    def complete(self, reminder_id: int) -> tuple[Reminder, Optional[Reminder]]:
        reminder = self.get(reminder_id)
        if not can_complete(reminder.status):
            raise Conflict("Reminder is already completed")

        # The status guard makes a concurrent second completion a no-op.
        result = self.session.execute(
            update(Reminder)
            .where(
                Reminder.id == reminder.id,
                Reminder.user_id == self.user_id,
                Reminder.status != ReminderStatus.completed,
            )
            .values(status=ReminderStatus.completed, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.session.rollback()
            raise Conflict("Reminder is already completed")

        next_reminder: Optional[Reminder] = None
        if reminder.is_recurring:
            interval = normalize_interval(True, reminder.recurring_interval)
            next_reminder = Reminder(
                user_id=reminder.user_id,
                title=reminder.title,
                description=reminder.description,
                due_date=advance_due_date(reminder.due_date, interval),
                category=reminder.category,
                amount_cents=reminder.amount_cents,
                is_recurring=True,
                recurring_interval=interval,
                status=ReminderStatus.pending,
            )
            self.session.add(next_reminder)

        self.session.commit()
        self.session.refresh(reminder)
        if next_reminder is not None:
            self.session.refresh(next_reminder)
        logger.info(
            f"reminder_completed: id={reminder.id} "
            f"next_id={next_reminder.id if next_reminder else None}"
        )
        return reminder, next_reminder

    def _filtered(self, stmt: Select, filters: ReminderFilters) -> Select:
        stmt = stmt.where(Reminder.user_id == self.user_id)
        if filters.category:
            stmt = stmt.where(Reminder.category == filters.category)
        if filters.statuses:
            stmt = stmt.where(Reminder.status.in_(filters.statuses))
        elif filters.exclude_completed:
            stmt = stmt.where(Reminder.status != ReminderStatus.completed)
        if filters.date_range:
            stmt = stmt.where(
                Reminder.due_date.between(
                    filters.date_range.start, filters.date_range.end
                )
            )
        if filters.due_before:
            stmt = stmt.where(Reminder.due_date <= filters.due_before)
        return stmt

    def list(
        self, filters: ReminderFilters, limit: int = 10, offset: int = 0
    ) -> list[Reminder]:
        stmt = self._filtered(select(Reminder), filters)
        stmt = (
            stmt.order_by(Reminder.due_date.asc(), Reminder.id.asc())
            .offset(offset)
            .limit(limit)
        )
        return self.session.scalars(stmt).all()

    def count(self, filters: ReminderFilters) -> int:
        stmt = self._filtered(select(func.count(Reminder.id)), filters)
        return int(self.session.execute(stmt).scalar_one() or 0)

    def summary(self, now: Optional[datetime] = None) -> dict[str, object]:
        now = now or local_now()
        horizon = now + timedelta(days=30)
        total_pending = self.session.execute(
            select(func.count(Reminder.id)).where(
                Reminder.user_id == self.user_id,
                Reminder.status == ReminderStatus.pending,
                Reminder.due_date >= now,
            )
        ).scalar_one()
        total_overdue = self.session.execute(
            select(func.count(Reminder.id)).where(
                Reminder.user_id == self.user_id,
                Reminder.status == ReminderStatus.overdue,
            )
        ).scalar_one()
        upcoming = self.session.scalars(
            select(Reminder).where(
                Reminder.user_id == self.user_id,
                Reminder.status != ReminderStatus.completed,
                Reminder.due_date.between(now, horizon),
            )
        ).all()

        by_category: dict[str, int] = {}
        for reminder in upcoming:
            key = reminder.category.value
            by_category[key] = by_category.get(key, 0) + 1
        return {
            "total_pending": int(total_pending or 0),
            "total_overdue": int(total_overdue or 0),
            "upcoming_total_cents": sum(r.amount_cents or 0 for r in upcoming),
            "by_category": by_category,
        }


class MetricsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _scoped(self, stmt: Select, date_range: Optional[DateRange]) -> Select:
        stmt = stmt.where(Transaction.user_id == self.user_id)
        if date_range:
            stmt = stmt.where(
                Transaction.occurred_at.between(date_range.start, date_range.end)
            )
        return stmt

    def summary(self, date_range: Optional[DateRange] = None) -> dict[str, int]:
        stmt = self._scoped(
            select(
                Transaction.type,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
            ),
            date_range,
        ).group_by(Transaction.type)
        totals = {TransactionType.income: 0, TransactionType.expense: 0}
        for row in self.session.execute(stmt):
            totals[row.type] = int(row.total or 0)
        income = totals[TransactionType.income]
        expenses = totals[TransactionType.expense]
        return {
            "income_cents": income,
            "expense_cents": expenses,
            "balance_cents": income - expenses,
        }

    def category_breakdown(
        self,
        date_range: Optional[DateRange] = None,
        transaction_type: TransactionType = TransactionType.expense,
    ) -> dict[str, object]:
        name = func.coalesce(Category.name, "Uncategorized").label("name")
        total = func.sum(Transaction.amount_cents).label("total")
        stmt = (
            self._scoped(
                select(name, total, func.count(Transaction.id).label("count"))
                .select_from(Transaction)
                .outerjoin(Category, Category.id == Transaction.category_id)
                .where(Transaction.type == transaction_type),
                date_range,
            )
            .group_by(name)
            .order_by(total.desc())
        )
        rows = [
            {"category": row.name, "amount_cents": int(row.total or 0), "count": int(row.count)}
            for row in self.session.execute(stmt)
        ]
        with_percentages(rows)
        return {
            "breakdown": rows,
            "total_cents": sum(int(r["amount_cents"]) for r in rows),
        }

    def subcategory_breakdown(
        self,
        date_range: Optional[DateRange] = None,
        transaction_type: TransactionType = TransactionType.expense,
    ) -> list[dict[str, object]]:
        name = func.coalesce(Category.name, "Uncategorized").label("name")
        total = func.sum(Transaction.amount_cents).label("total")
        stmt = (
            self._scoped(
                select(name, Transaction.subcategory, total)
                .select_from(Transaction)
                .outerjoin(Category, Category.id == Transaction.category_id)
                .where(Transaction.type == transaction_type),
                date_range,
            )
            .group_by(name, Transaction.subcategory)
            .order_by(total.desc())
        )
        rows = [
            {
                "category": row.name,
                "subcategory": row.subcategory,
                "amount_cents": int(row.total or 0),
            }
            for row in self.session.execute(stmt)
        ]
        return with_percentages(rows)

    def monthly_series(self, year: int) -> list[dict[str, object]]:
        # month_range needs the first day of the following year
        if not 1 <= year <= 9998:
            raise ValueError("Year must be between 1 and 9998")
        out: list[dict[str, object]] = []
        for month_num, label in enumerate(MONTH_NAMES, start=1):
            totals = self.summary(month_range(year, month_num))
            out.append(
                {
                    "month": label,
                    "month_num": month_num,
                    "income_cents": totals["income_cents"],
                    "expense_cents": totals["expense_cents"],
                    "balance_cents": totals["balance_cents"],
                }
            )
        return out

    def recent_months(self, now: datetime, months: int = 6) -> list[dict[str, object]]:
        out: list[dict[str, object]] = []
        for back in range(months - 1, -1, -1):
            month_index = now.year * 12 + now.month - 1 - back
            year, month = divmod(month_index, 12)
            totals = self.summary(month_range(year, month + 1))
            out.append(
                {
                    "month": MONTH_NAMES[month][:3],
                    "year": year,
                    "income_cents": totals["income_cents"],
                    "expense_cents": totals["expense_cents"],
                }
            )
        return out

    def upcoming_payments(
        self, now: datetime, limit: int = 5, horizon_days: int = 30
    ) -> list[dict[str, object]]:
        horizon = now + timedelta(days=horizon_days)
        soon = now + timedelta(days=7)
        recurring = self.session.scalars(
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == TransactionType.expense,
                Transaction.is_recurring.is_(True),
            )
        ).all()
        payments: list[dict[str, object]] = []
        for txn in recurring:
            due = next_occurrence_after(txn.occurred_at, txn.recurring_interval, now)
            if due is None or due > horizon:
                continue
            payments.append(
                {
                    "id": txn.id,
                    "description": txn.payee or txn.description,
                    "category": txn.category_name,
                    "amount_cents": txn.amount_cents,
                    "due_date": due,
                    "status": "pending" if due < soon else "upcoming",
                }
            )
        payments.sort(key=lambda p: p["due_date"])
        return payments[:limit]

    def dashboard(self, now: Optional[datetime] = None) -> dict[str, object]:
        now = now or local_now()
        current = resolve_date_range("current-month", now=now)
        totals = self.summary(current)
        breakdown = self.category_breakdown(current, TransactionType.expense)
        recent = TransactionService(self.session, self.user_id).list(
            TransactionFilters(), limit=5
        )
        return {
            "income_cents": totals["income_cents"],
            "expense_cents": totals["expense_cents"],
            "savings_cents": totals["balance_cents"],
            "monthly_data": self.recent_months(now),
            "expenses_by_category": [
                {"category": row["category"], "amount_cents": row["amount_cents"]}
                for row in breakdown["breakdown"]
            ],
            "recent_transactions": recent,
            "upcoming_payments": self.upcoming_payments(now),
        }
