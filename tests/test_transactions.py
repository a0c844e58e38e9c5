from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import CategoryType, RecurringInterval, TransactionType, User
from periods import month_range
from schemas import CategoryIn, CategoryUpdateIn, TransactionIn, TransactionUpdateIn
from services import (
    CategoryService,
    NotAuthorized,
    RecordNotFound,
    TransactionFilters,
    TransactionService,
)


def _seeded_user(session: Session, email: str = "a@example.com") -> int:
    user = User(name="Alex", email=email, password_hash="x")
    session.add(user)
    session.flush()
    CategoryService(session, user.id).ensure_defaults()
    session.commit()
    return user.id


def _expense(category: str, amount_cents: int, when: datetime, **extra) -> TransactionIn:
    return TransactionIn(
        type=TransactionType.expense,
        amount_cents=amount_cents,
        category=category,
        date=when,
        **extra,
    )


def test_category_name_resolution_is_forgiving() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user_id = _seeded_user(session)
        service = TransactionService(session, user_id)

        exact = service.create(_expense("food", 1250, datetime(2025, 6, 3)))
        typo = service.create(_expense("Fod", 800, datetime(2025, 6, 4)))

        assert exact.category_name == "Food"
        assert typo.category_id == exact.category_id


def test_ambiguous_or_unknown_category_is_rejected() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user_id = _seeded_user(session)
        categories = CategoryService(session, user_id)
        categories.create(CategoryIn(name="Cat", type=CategoryType.expense))
        categories.create(CategoryIn(name="Car", type=CategoryType.expense))
        service = TransactionService(session, user_id)

        with pytest.raises(ValueError, match="ambiguous"):
            service.create(_expense("Cax", 100, datetime(2025, 6, 3)))
        with pytest.raises(ValueError, match="not found"):
            service.create(_expense("Yachts", 100, datetime(2025, 6, 3)))


def test_category_type_must_match() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user_id = _seeded_user(session)
        salary = next(
            c for c in CategoryService(session, user_id).list_all() if c.name == "Salary"
        )
        service = TransactionService(session, user_id)

        with pytest.raises(ValueError, match="mismatch"):
            service.create(
                TransactionIn(
                    type=TransactionType.expense,
                    amount_cents=100,
                    category_id=salary.id,
                    date=datetime(2025, 6, 3),
                )
            )
        # income-only categories are not candidates for expense names
        with pytest.raises(ValueError):
            service.create(_expense("Salary", 100, datetime(2025, 6, 3)))


def test_both_type_category_accepts_income_and_expense() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user_id = _seeded_user(session)
        CategoryService(session, user_id).create(
            CategoryIn(name="Side Hustle", type=CategoryType.both)
        )
        service = TransactionService(session, user_id)
        spent = service.create(_expense("side hustle", 2000, datetime(2025, 6, 3)))
        earned = service.create(
            TransactionIn(
                type=TransactionType.income,
                amount_cents=9000,
                category="Side Hustle",
                date=datetime(2025, 6, 4),
            )
        )
        assert spent.category_id == earned.category_id


def test_recurring_interval_is_normalized() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = TransactionService(session, _seeded_user(session))
        one_off = service.create(
            _expense("Utilities", 5000, datetime(2025, 6, 1), recurring_interval="weekly")
        )
        recurring = service.create(
            _expense("Utilities", 5000, datetime(2025, 6, 1), is_recurring=True)
        )

        assert one_off.recurring_interval is None
        assert recurring.recurring_interval == RecurringInterval.monthly


def test_update_revalidates_category_on_type_change() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = TransactionService(session, _seeded_user(session))
        txn = service.create(_expense("Food", 1250, datetime(2025, 6, 3)))

        with pytest.raises(ValueError):
            service.update(txn.id, TransactionUpdateIn(type=TransactionType.income))

        moved = service.update(
            txn.id,
            TransactionUpdateIn(
                type=TransactionType.income, category="Gifts", amount_cents=5000
            ),
        )
        assert moved.type == TransactionType.income
        assert moved.category_name == "Gifts"
        assert moved.amount_cents == 5000


def test_list_filters_and_pagination() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = TransactionService(session, _seeded_user(session))
        for day in range(1, 6):
            service.create(_expense("Food", 100 * day, datetime(2025, 6, day)))
        service.create(
            _expense("Housing", 90000, datetime(2025, 6, 1), subcategory="Mortgage")
        )
        service.create(_expense("Food", 999, datetime(2025, 5, 20)))

        june = TransactionFilters(date_range=month_range(2025, 6))
        first_page = service.list(june, limit=2, offset=0)
        assert [t.occurred_at.day for t in first_page] == [5, 4]
        assert service.count(june) == 6

        food = TransactionFilters(category_name="food", date_range=month_range(2025, 6))
        assert service.count(food) == 5

        mortgage = TransactionFilters(subcategory="Mortgage")
        assert [t.amount_cents for t in service.list(mortgage)] == [90000]


def test_summary_groups_by_category_and_subcategory() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = TransactionService(session, _seeded_user(session))
        service.create(_expense("Food", 1000, datetime(2025, 6, 2), subcategory="Groceries"))
        service.create(_expense("Food", 500, datetime(2025, 6, 3), subcategory="Takeaway"))
        service.create(_expense("Utilities", 4000, datetime(2025, 6, 4)))
        service.create(_expense("Food", 7000, datetime(2025, 5, 4)))

        summary = service.summary(TransactionFilters(), now=datetime(2025, 6, 15))

        assert summary["total_cents"] == 5500
        assert summary["by_category"] == {"Food": 1500, "Utilities": 4000}
        assert summary["by_subcategory"] == {
            "Food-Groceries": 1000,
            "Food-Takeaway": 500,
        }


def test_deleting_category_leaves_records_uncategorized() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user_id = _seeded_user(session)
        categories = CategoryService(session, user_id)
        pets = categories.create(CategoryIn(name="Pets", type=CategoryType.expense))
        service = TransactionService(session, user_id)
        txn = service.create(_expense("Pets", 3000, datetime(2025, 6, 3)))

        categories.delete(pets.id)
        session.expire_all()

        reloaded = service.get(txn.id)
        assert reloaded.category_id is None
        assert reloaded.category_name == "Uncategorized"
        uncategorized = TransactionFilters(category_name="Uncategorized")
        assert service.count(uncategorized) == 1


def test_bulk_delete_and_ownership() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        mine = TransactionService(session, _seeded_user(session))
        theirs = TransactionService(session, _seeded_user(session, "b@example.com"))
        a = mine.create(_expense("Food", 100, datetime(2025, 6, 3)))
        b = mine.create(_expense("Food", 200, datetime(2025, 6, 3)))
        c = theirs.create(_expense("Food", 300, datetime(2025, 6, 3)))

        with pytest.raises(NotAuthorized):
            theirs.get(a.id)

        result = mine.bulk_delete([a.id, b.id, c.id, 424242])

        assert result.success == [a.id, b.id]
        assert [f["id"] for f in result.failed] == [c.id, 424242]
        assert [f["reason"] for f in result.failed] == ["not authorized", "not found"]
        with pytest.raises(RecordNotFound):
            mine.get(a.id)
        assert theirs.get(c.id).amount_cents == 300


def test_default_categories_are_protected() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        categories = CategoryService(session, _seeded_user(session))
        food = next(c for c in categories.list_all() if c.name == "Food")

        with pytest.raises(NotAuthorized):
            categories.delete(food.id)
        with pytest.raises(NotAuthorized):
            categories.update(food.id, CategoryUpdateIn(name="Eats"))


def test_category_listing_and_reset() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        categories = CategoryService(session, _seeded_user(session))
        categories.create(CategoryIn(name="Hobbies", type=CategoryType.both))

        income_names = {c.name for c in categories.list_all(CategoryType.income)}
        assert "Salary" in income_names
        assert "Hobbies" in income_names
        assert "Food" not in income_names

        assert [c.name for c in categories.list_all(search="grocer")] == ["Food"]

        restored = categories.reset()
        names = {c.name for c in restored}
        assert "Hobbies" not in names
        assert len(restored) == 16
        assert all(c.is_default for c in restored)
