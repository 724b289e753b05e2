from decimal import Decimal

from sqlalchemy import select

import database
from advisor import RETRY_MESSAGE
from csrf import generate_csrf_token, validate_csrf_token
from models import BudgetMode, Category, Income, Transaction, User
from schemas import BudgetIn
from services import DUPLICATE_BUDGET, BudgetService, UserService
from sessions import SESSION_COOKIE

PASSWORD = "Secret123!"


def _signup(client, email: str) -> int:
    resp = client.post(
        "/signup",
        data={
            "csrf_token": generate_csrf_token(),
            "email": email,
            "password": PASSWORD,
            "confirm_password": PASSWORD,
        },
        follow_redirects=False,
    )
    assert resp.status_code == 303
    assert resp.headers["location"] == "/dashboard"
    with database.SessionLocal() as db:
        return UserService(db).get_by_email(email).id


def _category_id(user_id: int, name: str = "Food & Dining") -> int:
    with database.SessionLocal() as db:
        return db.scalar(
            select(Category.id).where(Category.user_id == user_id, Category.name == name)
        )


def test_protected_pages_redirect_to_login(client) -> None:
    resp = client.get("/transactions", follow_redirects=False)
    assert resp.status_code == 303
    assert resp.headers["location"] == "/login?redirectTo=%2Ftransactions"


def test_signup_login_and_logout(client) -> None:
    user_id = _signup(client, "alice@example.com")
    assert client.get("/dashboard").status_code == 200

    resp = client.post(
        "/logout",
        data={"csrf_token": generate_csrf_token(user_id)},
        follow_redirects=False,
    )
    assert resp.status_code == 303
    client.cookies.clear()
    assert client.get("/dashboard", follow_redirects=False).status_code == 303

    bad = client.post(
        "/login",
        data={
            "csrf_token": generate_csrf_token(),
            "email": "alice@example.com",
            "password": "wrong",
        },
    )
    assert bad.status_code == 200
    assert "Invalid email or password" in bad.text

    good = client.post(
        "/login",
        data={
            "csrf_token": generate_csrf_token(),
            "email": "alice@example.com",
            "password": PASSWORD,
            "redirectTo": "/budgets",
            "remember": "on",
        },
        follow_redirects=False,
    )
    assert good.status_code == 303
    assert good.headers["location"] == "/budgets"
    cookie_header = good.headers["set-cookie"]
    assert cookie_header.startswith(f"{SESSION_COOKIE}=")
    assert "HttpOnly" in cookie_header
    assert "Max-Age=604800" in cookie_header


def test_login_ignores_offsite_redirects(client) -> None:
    _signup(client, "bob@example.com")
    client.cookies.clear()
    resp = client.post(
        "/login",
        data={
            "csrf_token": generate_csrf_token(),
            "email": "bob@example.com",
            "password": PASSWORD,
            "redirectTo": "//evil.example.com/",
        },
        follow_redirects=False,
    )
    assert resp.headers["location"] == "/dashboard"


def test_duplicate_signup_shows_field_error(client) -> None:
    _signup(client, "carol@example.com")
    client.cookies.clear()
    resp = client.post(
        "/signup",
        data={
            "csrf_token": generate_csrf_token(),
            "email": "carol@example.com",
            "password": PASSWORD,
            "confirm_password": PASSWORD,
        },
    )
    assert resp.status_code == 200
    assert "An account with this email already exists" in resp.text


def test_login_redirect_keeps_the_query_string(client) -> None:
    resp = client.get("/transactions?month=2025-06", follow_redirects=False)
    assert resp.status_code == 303
    assert resp.headers["location"] == "/login?redirectTo=%2Ftransactions%3Fmonth%3D2025-06"


def test_csrf_tokens_are_bound_to_user_and_expire() -> None:
    token = generate_csrf_token(7)
    assert validate_csrf_token(token, 7)
    assert not validate_csrf_token(token, 8)
    assert not validate_csrf_token(token, 7, max_age=-1)
    assert not validate_csrf_token("garbage", 7)


def test_posts_without_csrf_token_are_rejected(client) -> None:
    resp = client.post(
        "/signup",
        data={"email": "dave@example.com", "password": PASSWORD, "confirm_password": PASSWORD},
    )
    assert resp.status_code == 400
    with database.SessionLocal() as db:
        assert UserService(db).get_by_email("dave@example.com") is None


def test_transaction_create_edit_and_delete(client) -> None:
    user_id = _signup(client, "erin@example.com")
    food_id = _category_id(user_id)
    token = generate_csrf_token(user_id)

    resp = client.post(
        "/transactions/new",
        data={
            "csrf_token": token,
            "amount": "123.45",
            "category_id": str(food_id),
            "date": "2025-06-15",
            "description": "Groceries",
        },
        follow_redirects=False,
    )
    assert resp.status_code == 303
    with database.SessionLocal() as db:
        txn = db.scalar(select(Transaction).where(Transaction.user_id == user_id))
        assert txn.amount_cents == 12_345
        txn_id = txn.id

    page = client.get("/transactions", params={"month": "2025-06", "search": "groc"})
    assert "Groceries" in page.text
    assert "$123.45" in page.text

    invalid = client.post(
        f"/transactions/{txn_id}/edit",
        data={
            "csrf_token": token,
            "intent": "update",
            "amount": "-1",
            "category_id": str(food_id),
            "date": "2025-06-15",
        },
    )
    assert invalid.status_code == 200
    assert "Amount must be a positive number" in invalid.text

    resp = client.post(
        "/transactions",
        data={"csrf_token": token, "intent": "delete", "transaction_id": str(txn_id)},
        follow_redirects=False,
    )
    assert resp.status_code == 303
    assert client.get(f"/transactions/{txn_id}/edit").status_code == 404


def test_other_users_records_are_not_found(client) -> None:
    owner_id = _signup(client, "frank@example.com")
    client.post(
        "/transactions/new",
        data={
            "csrf_token": generate_csrf_token(owner_id),
            "amount": "10",
            "category_id": str(_category_id(owner_id)),
            "date": "2025-06-01",
        },
    )
    with database.SessionLocal() as db:
        txn_id = db.scalar(select(Transaction.id).where(Transaction.user_id == owner_id))

    client.cookies.clear()
    intruder_id = _signup(client, "gina@example.com")
    assert client.get(f"/transactions/{txn_id}/edit").status_code == 404
    resp = client.post(
        f"/transactions/{txn_id}/edit",
        data={"csrf_token": generate_csrf_token(intruder_id), "intent": "delete"},
    )
    assert resp.status_code == 404
    with database.SessionLocal() as db:
        assert db.get(Transaction, txn_id) is not None


def test_budget_conflict_is_reported_on_the_form(client) -> None:
    user_id = _signup(client, "hank@example.com")
    with database.SessionLocal() as db:
        BudgetService(db, user_id).create(
            BudgetIn(mode=BudgetMode.amount, amount_cents=50_000, month=6, year=2025)
        )
    resp = client.post(
        "/budgets/new",
        data={
            "csrf_token": generate_csrf_token(user_id),
            "month": "2025-06",
            "mode": "amount",
            "amount": "600",
        },
    )
    assert resp.status_code == 200
    assert DUPLICATE_BUDGET in resp.text

    no_income = client.post(
        "/budgets/new",
        data={
            "csrf_token": generate_csrf_token(user_id),
            "month": "2025-07",
            "mode": "percentage",
            "percentage": str(Decimal("20")),
        },
    )
    assert "You need to add income before setting a percentage-based budget" in no_income.text


def test_chat_degrades_without_api_key(client) -> None:
    user_id = _signup(client, "ivy@example.com")
    resp = client.post(
        "/api/chat",
        data={"csrf_token": generate_csrf_token(user_id), "message": "How am I doing?"},
    )
    assert resp.status_code == 200
    assert resp.json() == {"response": RETRY_MESSAGE}

    empty = client.post(
        "/api/chat", data={"csrf_token": generate_csrf_token(user_id), "message": "  "}
    )
    assert empty.json() == {"error": "Message is required"}


def test_deleted_account_session_is_treated_as_absent(client) -> None:
    user_id = _signup(client, "jack@example.com")
    resp = client.post(
        "/account/delete",
        data={"csrf_token": generate_csrf_token(user_id)},
        follow_redirects=False,
    )
    assert resp.status_code == 303
    with database.SessionLocal() as db:
        assert db.get(User, user_id) is None
        assert db.scalar(select(Category.id).where(Category.user_id == user_id)) is None


def test_stale_session_cookie_redirects_to_login(client) -> None:
    user_id = _signup(client, "kate@example.com")
    stale_cookie = client.cookies.get(SESSION_COOKIE)
    with database.SessionLocal() as db:
        UserService(db).delete_account(user_id)
    client.cookies.set(SESSION_COOKIE, stale_cookie)
    resp = client.get("/dashboard", follow_redirects=False)
    assert resp.status_code == 303
    assert resp.headers["location"].startswith("/login")


def test_oversized_amount_is_a_field_error(client) -> None:
    user_id = _signup(client, "lena@example.com")
    for amount in ("100000000000000000000", "1e30"):
        resp = client.post(
            "/incomes/new",
            data={
                "csrf_token": generate_csrf_token(user_id),
                "amount": amount,
                "source": "Salary",
                "date": "2025-06-01",
            },
            follow_redirects=False,
        )
        assert resp.status_code == 200
        assert "Amount must be at most" in resp.text
    with database.SessionLocal() as db:
        assert db.scalar(select(Income.id).where(Income.user_id == user_id)) is None
