from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from database import Base, build_engine
from errors import NotFoundError, ValidationFailed
from models import Category, Frequency
from periods import month_period
from schemas import TransactionIn
from services import TransactionFilters, TransactionService, UserService


def _setup(session: Session):
    users = UserService(session)
    alice = users.create_user("alice@example.com", "Secret123!")
    bob = users.create_user("bob@example.com", "Secret123!")
    food = session.scalar(
        select(Category).where(
            Category.user_id == alice.id, Category.name == "Food & Dining"
        )
    )
    housing = session.scalar(
        select(Category).where(Category.user_id == alice.id, Category.name == "Housing")
    )
    return alice, bob, food, housing


def test_created_transaction_reads_back_exactly() -> None:
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice, _, food, _ = _setup(session)
        service = TransactionService(session, alice.id)
        created = service.create(
            TransactionIn(
                amount_cents=12_345,
                category_id=food.id,
                description="Groceries",
                date=date(2025, 6, 15),
            )
        )
        session.expire_all()

        txn = service.get(created.id)
        assert txn.amount_cents == 12_345
        assert txn.category.name == "Food & Dining"
        assert txn.date == date(2025, 6, 15)
        assert txn.is_recurring is False
        assert txn.frequency is None


def test_other_users_cannot_see_or_change_transactions() -> None:
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice, bob, food, _ = _setup(session)
        txn = TransactionService(session, alice.id).create(
            TransactionIn(amount_cents=1_000, category_id=food.id, date=date(2025, 6, 1))
        )
        as_bob = TransactionService(session, bob.id)

        with pytest.raises(NotFoundError):
            as_bob.get(txn.id)
        with pytest.raises(NotFoundError):
            as_bob.delete(txn.id)
        assert as_bob.list() == []
        assert TransactionService(session, alice.id).get(txn.id).amount_cents == 1_000


def test_category_must_belong_to_the_user() -> None:
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _, bob, food, _ = _setup(session)
        with pytest.raises(ValidationFailed) as exc_info:
            TransactionService(session, bob.id).create(
                TransactionIn(amount_cents=1_000, category_id=food.id, date=date(2025, 6, 1))
            )
        assert exc_info.value.errors == {"category_id": "Invalid category"}


def test_recurring_transactions_need_a_frequency() -> None:
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice, _, _, housing = _setup(session)
        service = TransactionService(session, alice.id)
        with pytest.raises(ValidationFailed) as exc_info:
            service.create(
                TransactionIn(
                    amount_cents=150_000,
                    category_id=housing.id,
                    date=date(2025, 6, 1),
                    is_recurring=True,
                )
            )
        assert "frequency" in exc_info.value.errors

        rent = service.create(
            TransactionIn(
                amount_cents=150_000,
                category_id=housing.id,
                date=date(2025, 6, 1),
                is_recurring=True,
                frequency=Frequency.monthly,
            )
        )
        assert rent.frequency == Frequency.monthly

        # Dropping the recurring flag clears the frequency.
        updated = service.update(
            rent.id,
            TransactionIn(
                amount_cents=150_000,
                category_id=housing.id,
                date=date(2025, 6, 1),
                is_recurring=False,
                frequency=Frequency.monthly,
            ),
        )
        assert updated.frequency is None


def test_filters_and_filtered_total() -> None:
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice, _, food, housing = _setup(session)
        service = TransactionService(session, alice.id)
        for cents, category, description, when in [
            (1_000, food, "Coffee beans", date(2025, 5, 30)),
            (2_500, food, "Weekly groceries", date(2025, 6, 2)),
            (4_000, food, "Dinner out", date(2025, 6, 20)),
            (150_000, housing, "Rent", date(2025, 6, 1)),
        ]:
            service.create(
                TransactionIn(
                    amount_cents=cents,
                    category_id=category.id,
                    description=description,
                    date=when,
                )
            )

        june = month_period(2025, 6)
        assert service.total(TransactionFilters(month=june)) == 156_500
        food_june = TransactionFilters(category_id=food.id, month=june)
        assert [t.description for t in service.list(food_june)] == [
            "Dinner out",
            "Weekly groceries",
        ]
        assert service.total(food_june) == 6_500
        search = TransactionFilters(search="GROCER")
        assert [t.amount_cents for t in service.list(search)] == [2_500]
        assert service.total(TransactionFilters(search="100%")) == 0
        assert service.total() == 157_500
