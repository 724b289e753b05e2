from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from advisor import FinancialSnapshot
from calculations import (
    BudgetStatus,
    average,
    budget_status,
    derive_budget_cents,
    percent_change,
    savings_rate,
    utilization_percent,
)
from errors import ConflictError, NotFoundError, ValidationFailed
from models import Budget, Category, Income, Transaction, User
from periods import (
    Period,
    days_in_month,
    local_today,
    month_bounds,
    month_period,
    rolling_months,
)
from presets import CATEGORY_ICONS, DEFAULT_CATEGORIES, FALLBACK_STYLE
from schemas import BudgetIn, CategoryIn, IncomeIn, LoginIn, SignupIn, TransactionIn
from security import (
    DUMMY_PASSWORD_HASH,
    hash_password,
    password_problems,
    verify_password,
)

logger = logging.getLogger(__name__)

HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")
DUPLICATE_EMAIL = "An account with this email already exists"
DUPLICATE_CATEGORY = "A category with this name already exists"
DUPLICATE_BUDGET = (
    "Budget already exists for this month. Please edit the existing budget instead."
)


def seed_default_categories(session: Session, user: User) -> list[Category]:
    categories = [
        Category(user_id=user.id, name=preset.name, color=preset.color, icon=preset.icon)
        for preset in DEFAULT_CATEGORIES
    ]
    session.add_all(categories)
    session.flush()
    return categories


def resolve_category_style(
    color: Optional[str], icon: Optional[str]
) -> tuple[str, str]:
    resolved_color = color if color and HEX_COLOR.match(color) else FALLBACK_STYLE.color
    resolved_icon = icon if icon in CATEGORY_ICONS else FALLBACK_STYLE.icon
    return resolved_color, resolved_icon


def _income_cents(session: Session, user_id: int, start: date, end: date) -> int:
    stmt = select(func.coalesce(func.sum(Income.amount_cents), 0)).where(
        Income.user_id == user_id,
        Income.date.between(start, end),
    )
    return int(session.execute(stmt).scalar_one() or 0)


def _expense_cents(session: Session, user_id: int, start: date, end: date) -> int:
    stmt = select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
        Transaction.user_id == user_id,
        Transaction.date.between(start, end),
    )
    return int(session.execute(stmt).scalar_one() or 0)


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(User.email == email.strip().lower())
        return self.session.scalar(stmt)

    def signup(self, data: SignupIn) -> User:
        problems = password_problems(data.password)
        if problems:
            raise ValidationFailed.on("password", ", ".join(problems))
        if data.password != data.confirm_password:
            raise ValidationFailed.on("confirm_password", "Passwords do not match")
        return self.create_user(data.email, data.password)

    def create_user(self, email: str, password: str) -> User:
        email = email.strip().lower()
        if self.get_by_email(email):
            raise ConflictError.on("email", DUPLICATE_EMAIL)
        return self._create(email, hash_password(password))

    def _create(self, email: str, password_hash: str) -> User:
        # The user row and its categories are committed together or not at all.
        user = User(email=email, password_hash=password_hash)
        try:
            self.session.add(user)
            self.session.flush()
            seed_default_categories(self.session, user)
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            logger.info("user_conflict: duplicate email on insert")
            raise ConflictError.on("email", DUPLICATE_EMAIL) from exc
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(user)
        logger.info(
            f"user_created: user_id={user.id} categories={len(DEFAULT_CATEGORIES)}"
        )
        return user

    def verify_login(self, email: str, password: str) -> Optional[User]:
        user = self.get_by_email(email)
        has_password = bool(user and user.password_hash)
        stored_hash = user.password_hash if has_password else DUMMY_PASSWORD_HASH
        # Always pay for one comparison so unknown emails are not faster.
        matches = verify_password(password, stored_hash)
        if not has_password or not matches:
            return None
        return user

    def login(self, data: LoginIn) -> User:
        user = self.verify_login(data.email, data.password)
        if user is None:
            logger.info("login_failed")
            raise ValidationFailed.on("email", "Invalid email or password")
        logger.info(f"login_succeeded: user_id={user.id}")
        return user

    def external_login(self, email: str) -> User:
        """Sign in (or sign up) an account whose identity was verified elsewhere."""
        existing = self.get_by_email(email)
        if existing:
            return existing
        try:
            return self._create(email.strip().lower(), "")
        except ConflictError:
            # Created by a concurrent request between the lookup and the insert.
            user = self.get_by_email(email)
            if user is None:
                raise
            return user

    def delete_account(self, user_id: int) -> None:
        user = self.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        self.session.delete(user)
        self.session.commit()
        logger.info(f"user_deleted: user_id={user_id}")


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.name)
        )
        return list(self.session.scalars(stmt).all())

    def usage_counts(self) -> dict[int, int]:
        stmt = (
            select(Transaction.category_id, func.count(Transaction.id).label("usage"))
            .where(Transaction.user_id == self.user_id)
            .group_by(Transaction.category_id)
        )
        return {row.category_id: int(row.usage) for row in self.session.execute(stmt)}

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise NotFoundError("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        existing = self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id,
                func.lower(Category.name) == data.name.lower(),
            )
        )
        if existing:
            raise ConflictError.on("name", DUPLICATE_CATEGORY)
        category = Category(
            user_id=self.user_id,
            name=data.name,
            color=data.color,
            icon=data.icon,
        )
        self.session.add(category)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError.on("name", DUPLICATE_CATEGORY) from exc
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        in_use = int(
            self.session.execute(
                select(func.count(Transaction.id)).where(
                    Transaction.user_id == self.user_id,
                    Transaction.category_id == category.id,
                )
            ).scalar_one()
        )
        if in_use:
            raise ValidationFailed.on(
                "category", "Cannot delete category with existing transactions"
            )
        self.session.delete(category)
        self.session.commit()


@dataclass
class TransactionFilters:
    category_id: Optional[int] = None
    month: Optional[Period] = None
    search: Optional[str] = None


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _category(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise ValidationFailed.on("category_id", "Invalid category")
        return category

    @staticmethod
    def _recurrence(data: TransactionIn):
        if not data.is_recurring:
            return False, None
        if data.frequency is None:
            raise ValidationFailed.on(
                "frequency", "Please select frequency for recurring transaction"
            )
        return True, data.frequency

    def create(self, data: TransactionIn) -> Transaction:
        category = self._category(data.category_id)
        is_recurring, frequency = self._recurrence(data)
        txn = Transaction(
            user_id=self.user_id,
            category_id=category.id,
            amount_cents=data.amount_cents,
            description=(data.description or "").strip() or None,
            date=data.date,
            is_recurring=is_recurring,
            frequency=frequency,
            receipt_url=(data.receipt_url or "").strip() or None,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def get(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        category = self._category(data.category_id)
        is_recurring, frequency = self._recurrence(data)
        txn.category_id = category.id
        txn.amount_cents = data.amount_cents
        txn.description = (data.description or "").strip() or None
        txn.date = data.date
        txn.is_recurring = is_recurring
        txn.frequency = frequency
        txn.receipt_url = (data.receipt_url or "").strip() or None
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()

    def _filtered(self, stmt, filters: TransactionFilters):
        stmt = stmt.where(Transaction.user_id == self.user_id)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        if filters.month:
            stmt = stmt.where(
                Transaction.date.between(filters.month.start, filters.month.end)
            )
        if filters.search:
            stmt = stmt.where(
                Transaction.description.icontains(filters.search, autoescape=True)
            )
        return stmt

    def list(
        self,
        filters: Optional[TransactionFilters] = None,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Transaction]:
        stmt = self._filtered(
            select(Transaction).options(joinedload(Transaction.category)),
            filters or TransactionFilters(),
        ).order_by(Transaction.date.desc(), Transaction.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit).offset(offset)
        return list(self.session.scalars(stmt).all())

    def total(self, filters: Optional[TransactionFilters] = None) -> int:
        stmt = self._filtered(
            select(func.coalesce(func.sum(Transaction.amount_cents), 0)),
            filters or TransactionFilters(),
        )
        return int(self.session.execute(stmt).scalar_one() or 0)


@dataclass
class IncomeFilters:
    month: Optional[Period] = None
    search: Optional[str] = None


class IncomeService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def create(self, data: IncomeIn) -> Income:
        income = Income(
            user_id=self.user_id,
            amount_cents=data.amount_cents,
            source=(data.source or "").strip() or None,
            date=data.date,
        )
        self.session.add(income)
        self.session.commit()
        self.session.refresh(income)
        return income

    def get(self, income_id: int) -> Income:
        income = self.session.get(Income, income_id)
        if not income or income.user_id != self.user_id:
            raise NotFoundError("Income not found")
        return income

    def update(self, income_id: int, data: IncomeIn) -> Income:
        income = self.get(income_id)
        income.amount_cents = data.amount_cents
        income.source = (data.source or "").strip() or None
        income.date = data.date
        self.session.commit()
        self.session.refresh(income)
        return income

    def delete(self, income_id: int) -> None:
        income = self.get(income_id)
        self.session.delete(income)
        self.session.commit()

    def _filtered(self, stmt, filters: IncomeFilters):
        stmt = stmt.where(Income.user_id == self.user_id)
        if filters.month:
            stmt = stmt.where(Income.date.between(filters.month.start, filters.month.end))
        if filters.search:
            stmt = stmt.where(Income.source.icontains(filters.search, autoescape=True))
        return stmt

    def list(self, filters: Optional[IncomeFilters] = None) -> list[Income]:
        stmt = self._filtered(select(Income), filters or IncomeFilters()).order_by(
            Income.date.desc(), Income.id.desc()
        )
        return list(self.session.scalars(stmt).all())

    def total(self, filters: Optional[IncomeFilters] = None) -> int:
        stmt = self._filtered(
            select(func.coalesce(func.sum(Income.amount_cents), 0)),
            filters or IncomeFilters(),
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def summary(
        self, filters: Optional[IncomeFilters] = None, *, today: Optional[date] = None
    ) -> dict[str, int]:
        today = today or local_today()
        start, end = month_bounds(today.year, today.month)
        return {
            "filtered_cents": self.total(filters),
            "accumulated_cents": self.total(),
            "this_month_cents": _income_cents(self.session, self.user_id, start, end),
        }


@dataclass(frozen=True)
class BudgetProgress:
    year: int
    month: int
    budget: Optional[Budget]
    budget_cents: int
    spent_cents: int
    remaining_cents: int
    income_cents: int
    percent_used: float
    status: BudgetStatus


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise NotFoundError("Budget not found")
        return budget

    def get_for_month(self, year: int, month: int) -> Optional[Budget]:
        stmt = select(Budget).where(
            Budget.user_id == self.user_id,
            Budget.year == year,
            Budget.month == month,
        )
        return self.session.scalar(stmt)

    def list_recent(self, limit: int = 12) -> list[Budget]:
        stmt = (
            select(Budget)
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.year.desc(), Budget.month.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def income_for_month(self, year: int, month: int) -> int:
        start, end = month_bounds(year, month)
        return _income_cents(self.session, self.user_id, start, end)

    def _derive(self, data: BudgetIn, year: int, month: int) -> int:
        return derive_budget_cents(
            data.mode,
            amount_cents=data.amount_cents,
            percentage=data.percentage,
            income_cents=self.income_for_month(year, month),
        )

    def create(self, data: BudgetIn) -> Budget:
        amount_cents = self._derive(data, data.year, data.month)
        if self.get_for_month(data.year, data.month):
            raise ConflictError.on("amount", DUPLICATE_BUDGET)
        budget = Budget(
            user_id=self.user_id,
            amount_cents=amount_cents,
            month=data.month,
            year=data.year,
        )
        self.session.add(budget)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            logger.info(
                f"budget_conflict: user_id={self.user_id} "
                f"period={data.year}-{data.month:02d}"
            )
            raise ConflictError.on("amount", DUPLICATE_BUDGET) from exc
        self.session.refresh(budget)
        logger.info(
            f"budget_created: user_id={self.user_id} "
            f"period={data.year}-{data.month:02d} mode={data.mode.value}"
        )
        return budget

    def update(self, budget_id: int, data: BudgetIn) -> Budget:
        budget = self.get(budget_id)
        # Only the ceiling changes; the period stays that of the stored row.
        budget.amount_cents = self._derive(data, budget.year, budget.month)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def save(self, data: BudgetIn, budget_id: Optional[int] = None) -> Budget:
        if budget_id:
            return self.update(budget_id, data)
        return self.create(data)

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self.session.commit()

    def progress_for_month(self, year: int, month: int) -> BudgetProgress:
        start, end = month_bounds(year, month)
        budget = self.get_for_month(year, month)
        budget_cents = budget.amount_cents if budget else 0
        spent = _expense_cents(self.session, self.user_id, start, end)
        percent_used = utilization_percent(spent, budget_cents)
        return BudgetProgress(
            year=year,
            month=month,
            budget=budget,
            budget_cents=budget_cents,
            spent_cents=spent,
            remaining_cents=budget_cents - spent,
            income_cents=_income_cents(self.session, self.user_id, start, end),
            percent_used=percent_used,
            status=budget_status(percent_used),
        )


class MetricsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def totals(self, start: date, end: date) -> dict[str, object]:
        income = _income_cents(self.session, self.user_id, start, end)
        count, expenses = self.session.execute(
            select(
                func.count(Transaction.id),
                func.coalesce(func.sum(Transaction.amount_cents), 0),
            ).where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(start, end),
            )
        ).one()
        expenses = int(expenses or 0)
        return {
            "income_cents": income,
            "expense_cents": expenses,
            "net_cents": income - expenses,
            "savings_rate": savings_rate(income, expenses),
            "transaction_count": int(count or 0),
        }

    def category_breakdown(
        self, start: date, end: date, *, limit: Optional[int] = None
    ) -> list[dict[str, object]]:
        total_col = func.coalesce(func.sum(Transaction.amount_cents), 0).label("total")
        stmt = (
            select(
                Category.id,
                Category.name,
                Category.color,
                Category.icon,
                total_col,
                func.count(Transaction.id).label("count"),
            )
            .join(Category, Category.id == Transaction.category_id)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(start, end),
            )
            .group_by(Category.id, Category.name, Category.color, Category.icon)
            .order_by(total_col.desc(), Category.name)
        )
        rows = self.session.execute(stmt).all()
        grand_total = sum(int(row.total or 0) for row in rows)
        breakdown = []
        for row in rows:
            amount = int(row.total or 0)
            color, icon = resolve_category_style(row.color, row.icon)
            breakdown.append(
                {
                    "category_id": row.id,
                    "name": row.name,
                    "color": color,
                    "icon": icon,
                    "amount_cents": amount,
                    "count": int(row.count or 0),
                    "percent": (amount / grand_total * 100) if grand_total else 0.0,
                }
            )
        if limit is not None:
            breakdown = breakdown[:limit]
        return breakdown

    def daily_spending(self, year: int, month: int) -> list[dict[str, int]]:
        start, end = month_bounds(year, month)
        stmt = (
            select(Transaction.date, func.sum(Transaction.amount_cents).label("spent"))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(start, end),
            )
            .group_by(Transaction.date)
        )
        by_day = {row.date.day: int(row.spent or 0) for row in self.session.execute(stmt)}
        return [
            {"day": day, "amount_cents": by_day.get(day, 0)}
            for day in range(1, days_in_month(year, month) + 1)
        ]

    def monthly_series(
        self, months: int = 6, *, today: Optional[date] = None
    ) -> list[dict[str, object]]:
        budgets = {
            (row.year, row.month): row.amount_cents
            for row in self.session.execute(
                select(Budget.year, Budget.month, Budget.amount_cents).where(
                    Budget.user_id == self.user_id
                )
            )
        }
        series = []
        for period in rolling_months(months, today=today):
            totals = self.totals(period.start, period.end)
            expenses = int(totals["expense_cents"])
            count = int(totals["transaction_count"])
            series.append(
                {
                    "label": period.start.strftime("%b"),
                    "period": period,
                    "income_cents": totals["income_cents"],
                    "expense_cents": expenses,
                    "budget_cents": int(
                        budgets.get((period.start.year, period.start.month), 0)
                    ),
                    "transaction_count": count,
                    "savings_cents": totals["net_cents"],
                    "savings_rate": totals["savings_rate"],
                    "avg_transaction_cents": average(expenses, count),
                }
            )
        return series

    def analytics(
        self, *, today: Optional[date] = None, months: int = 6
    ) -> dict[str, object]:
        today = today or local_today()
        series = self.monthly_series(months, today=today)
        start, end = month_bounds(today.year, today.month)
        total_expenses = sum(int(m["expense_cents"]) for m in series)
        total_income = sum(int(m["income_cents"]) for m in series)
        current_expenses = int(series[-1]["expense_cents"]) if series else 0
        previous_expenses = int(series[-2]["expense_cents"]) if len(series) > 1 else 0
        return {
            "months": series,
            "categories": self.category_breakdown(start, end),
            "daily": self.daily_spending(today.year, today.month),
            "stats": {
                "total_expenses": total_expenses,
                "total_income": total_income,
                "avg_monthly_expenses": average(total_expenses, len(series)),
                "expense_change": percent_change(current_expenses, previous_expenses),
            },
        }

    def dashboard(self, *, today: Optional[date] = None) -> dict[str, object]:
        today = today or local_today()
        current = month_period(today.year, today.month)
        progress = BudgetService(self.session, self.user_id).progress_for_month(
            today.year, today.month
        )
        recent = TransactionService(self.session, self.user_id).list(
            TransactionFilters(month=current), limit=10
        )
        return {
            "period": current,
            "progress": progress,
            "top_categories": self.category_breakdown(
                current.start, current.end, limit=5
            ),
            "recent": recent,
        }

    def snapshot(self, *, today: Optional[date] = None) -> FinancialSnapshot:
        today = today or local_today()
        start, end = month_bounds(today.year, today.month)
        progress = BudgetService(self.session, self.user_id).progress_for_month(
            today.year, today.month
        )
        totals = self.totals(start, end)
        return FinancialSnapshot(
            budget_cents=progress.budget_cents,
            income_cents=int(totals["income_cents"]),
            expense_cents=progress.spent_cents,
            remaining_cents=progress.remaining_cents,
            category_totals=[
                (str(row["name"]), int(row["amount_cents"]))
                for row in self.category_breakdown(start, end)
            ],
            transaction_count=int(totals["transaction_count"]),
        )
