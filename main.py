import logging
from datetime import date
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from advisor import AdvisorService
from amounts import cents_to_input, format_currency, parse_amount, parse_decimal
from config import get_settings
from csrf import ANONYMOUS_USER_ID, generate_csrf_token, validate_csrf_token
from database import get_db
from errors import LoginRequired, NotFoundError, ValidationFailed
from identity import IdentityError, verify_google_credential
from models import BudgetMode, Frequency, User
from periods import local_today, month_period, parse_month
from presets import CATEGORY_COLORS, CATEGORY_ICONS, FREQUENCY_LABELS
from schemas import (
    BudgetIn,
    CategoryIn,
    IncomeIn,
    LoginIn,
    SignupIn,
    TransactionIn,
    field_errors,
)
from services import (
    BudgetService,
    CategoryService,
    IncomeFilters,
    IncomeService,
    MetricsService,
    TransactionFilters,
    TransactionService,
    UserService,
)
from sessions import (
    DEFAULT_REDIRECT,
    commit_session,
    current_user_id,
    destroy_session,
    require_user_id,
    requested_path,
    safe_redirect_target,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
CHECKED = {"on", "true", "1", "yes"}

app = FastAPI(title="Personal Finance")
app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")
templates = Jinja2Templates(directory=BASE_DIR / "templates")

templates.env.filters["currency"] = format_currency
templates.env.filters["amount_input"] = cents_to_input
templates.env.globals["FREQUENCY_LABELS"] = FREQUENCY_LABELS
templates.env.globals["CATEGORY_ICONS"] = CATEGORY_ICONS
templates.env.globals["CATEGORY_COLORS"] = CATEGORY_COLORS


@app.on_event("startup")
def startup_event():
    settings = get_settings()
    if not settings.gemini_api_key:
        logger.warning("advisor_disabled: FINANCE_GEMINI_API_KEY is not set")


def render(
    request: Request,
    template: str,
    context: dict[str, object],
    status_code: int = 200,
) -> HTMLResponse:
    ctx: dict[str, object] = {"user": None, "errors": {}, "values": {}}
    ctx.update(context)
    user = ctx.get("user")
    ctx["csrf"] = generate_csrf_token(user.id if user else ANONYMOUS_USER_ID)
    return templates.TemplateResponse(request, template, ctx, status_code=status_code)


def redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


async def form_data(request: Request) -> dict[str, str]:
    form = await request.form()
    return {key: str(value) for key, value in form.items()}


def current_user(request: Request, db: Session = Depends(get_db)) -> User:
    user_id = require_user_id(request)
    user = db.get(User, user_id)
    if user is None:
        # Signed cookie for an account that has since been deleted.
        raise LoginRequired(requested_path(request))
    return user


def optional_user(request: Request, db: Session) -> Optional[User]:
    user_id = current_user_id(request)
    return db.get(User, user_id) if user_id else None


def check_csrf(form: dict[str, str], user_id: int = ANONYMOUS_USER_ID) -> None:
    if not validate_csrf_token(form.get("csrf_token", ""), user_id):
        raise HTTPException(status_code=400, detail="Invalid CSRF token")


def int_or_none(value: Optional[str]) -> Optional[int]:
    try:
        return int(value) if value else None
    except ValueError:
        return None


def form_id(form: dict[str, str], key: str) -> int:
    value = int_or_none(form.get(key))
    if value is None:
        raise HTTPException(status_code=400, detail=f"Missing {key}")
    return value


def _amount_field(form: dict[str, str], errors: dict[str, str]) -> Optional[int]:
    try:
        return parse_amount(form.get("amount"))
    except ValueError as exc:
        errors["amount"] = str(exc)
        return None


def _date_field(form: dict[str, str], errors: dict[str, str]) -> Optional[date]:
    try:
        return date.fromisoformat(form.get("date", "").strip())
    except ValueError:
        errors["date"] = "Please enter a valid date"
        return None


def transaction_payload_from_form(form: dict[str, str]) -> TransactionIn:
    errors: dict[str, str] = {}
    amount_cents = _amount_field(form, errors)
    when = _date_field(form, errors)
    category_id = int_or_none(form.get("category_id"))
    if category_id is None:
        errors["category_id"] = "Please select a category"
    is_recurring = form.get("is_recurring", "").lower() in CHECKED
    frequency = None
    if form.get("frequency"):
        try:
            frequency = Frequency(form["frequency"])
        except ValueError:
            errors["frequency"] = "Invalid frequency"
    if errors:
        raise ValidationFailed(errors)
    try:
        return TransactionIn(
            amount_cents=amount_cents,
            category_id=category_id,
            description=form.get("description") or None,
            date=when,
            is_recurring=is_recurring,
            frequency=frequency,
            receipt_url=form.get("receipt_url") or None,
        )
    except ValidationError as exc:
        raise ValidationFailed(field_errors(exc)) from exc


def income_payload_from_form(form: dict[str, str]) -> IncomeIn:
    errors: dict[str, str] = {}
    amount_cents = _amount_field(form, errors)
    when = _date_field(form, errors)
    if errors:
        raise ValidationFailed(errors)
    try:
        return IncomeIn(
            amount_cents=amount_cents,
            source=form.get("source") or None,
            date=when,
        )
    except ValidationError as exc:
        raise ValidationFailed(field_errors(exc)) from exc


def budget_payload_from_form(form: dict[str, str], default_month: date) -> BudgetIn:
    errors: dict[str, str] = {}
    try:
        mode = BudgetMode(form.get("mode") or BudgetMode.amount.value)
    except ValueError as exc:
        raise ValidationFailed.on("mode", "Invalid budget type") from exc
    amount_cents = None
    percentage = None
    if mode == BudgetMode.amount:
        amount_cents = _amount_field(form, errors)
    else:
        try:
            percentage = parse_decimal(form.get("percentage"))
        except ValueError:
            errors["percentage"] = "Percentage must be between 1 and 100"
    try:
        period = parse_month(form.get("month"))
    except ValueError as exc:
        errors["month"] = str(exc)
        period = None
    if errors:
        raise ValidationFailed(errors)
    start = period.start if period else default_month
    try:
        return BudgetIn(
            mode=mode,
            amount_cents=amount_cents,
            percentage=percentage,
            month=start.month,
            year=start.year,
        )
    except ValidationError as exc:
        raise ValidationFailed(field_errors(exc)) from exc


def month_from_query(request: Request) -> date:
    try:
        period = parse_month(request.query_params.get("month"))
    except ValueError:
        period = None
    return period.start if period else local_today().replace(day=1)


@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired):
    response = redirect("/login?" + urlencode({"redirectTo": exc.redirect_to}))
    destroy_session(response)
    return response


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if request.url.path.startswith("/api/"):
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)
    return render(
        request,
        "error.html",
        {"status_code": exc.status_code, "message": exc.detail},
        status_code=exc.status_code,
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"unhandled_error: path={request.url.path}")
    return render(
        request,
        "error.html",
        {"status_code": 500, "message": "Something went wrong. Please try again."},
        status_code=500,
    )


@app.get("/", response_class=HTMLResponse)
def index(request: Request, db: Session = Depends(get_db)):
    if optional_user(request, db):
        return redirect(DEFAULT_REDIRECT)
    return redirect("/login")


def _auth_context() -> dict[str, object]:
    return {"google_client_id": get_settings().google_client_id}


@app.get("/signup", response_class=HTMLResponse)
def signup_page(request: Request, db: Session = Depends(get_db)):
    if optional_user(request, db):
        return redirect(DEFAULT_REDIRECT)
    return render(request, "signup.html", _auth_context())


@app.post("/signup")
def signup_submit(
    request: Request,
    form: dict[str, str] = Depends(form_data),
    db: Session = Depends(get_db),
):
    check_csrf(form)
    service = UserService(db)
    values = {"email": form.get("email", "")}
    try:
        if form.get("intent") == "google":
            user = service.external_login(
                verify_google_credential(form.get("credential", ""))
            )
        else:
            user = service.signup(
                SignupIn(
                    email=form.get("email", ""),
                    password=form.get("password", ""),
                    confirm_password=form.get("confirm_password", ""),
                )
            )
    except ValidationError as exc:
        errors = field_errors(exc)
    except ValidationFailed as exc:
        errors = exc.errors
    except IdentityError as exc:
        errors = {"form": str(exc)}
    else:
        response = redirect(DEFAULT_REDIRECT)
        commit_session(response, user.id)
        return response
    return render(
        request,
        "signup.html",
        {**_auth_context(), "errors": errors, "values": values},
    )


@app.get("/login", response_class=HTMLResponse)
def login_page(request: Request, db: Session = Depends(get_db)):
    redirect_to = safe_redirect_target(request.query_params.get("redirectTo"))
    if optional_user(request, db):
        return redirect(redirect_to)
    return render(
        request, "login.html", {**_auth_context(), "redirect_to": redirect_to}
    )


@app.post("/login")
def login_submit(
    request: Request,
    form: dict[str, str] = Depends(form_data),
    db: Session = Depends(get_db),
):
    check_csrf(form)
    redirect_to = safe_redirect_target(form.get("redirectTo"))
    remember = form.get("remember", "").lower() in CHECKED
    service = UserService(db)
    try:
        if form.get("intent") == "google":
            user = service.external_login(
                verify_google_credential(form.get("credential", ""))
            )
        else:
            user = service.login(
                LoginIn(
                    email=form.get("email", ""),
                    password=form.get("password", ""),
                    remember=remember,
                )
            )
    except ValidationError as exc:
        errors = field_errors(exc)
    except ValidationFailed as exc:
        errors = exc.errors
    except IdentityError as exc:
        errors = {"form": str(exc)}
    else:
        response = redirect(redirect_to)
        commit_session(response, user.id, remember=remember)
        return response
    return render(
        request,
        "login.html",
        {
            **_auth_context(),
            "errors": errors,
            "values": {"email": form.get("email", ""), "remember": remember},
            "redirect_to": redirect_to,
        },
    )


@app.post("/logout")
def logout(request: Request, form: dict[str, str] = Depends(form_data)):
    check_csrf(form, current_user_id(request) or ANONYMOUS_USER_ID)
    response = redirect("/login")
    destroy_session(response)
    return response


@app.post("/account/delete")
def delete_account(
    form: dict[str, str] = Depends(form_data),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    check_csrf(form, user.id)
    UserService(db).delete_account(user.id)
    response = redirect("/signup")
    destroy_session(response)
    return response


@app.get("/dashboard", response_class=HTMLResponse)
def dashboard(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    data = MetricsService(db, user.id).dashboard()
    return render(request, "dashboard.html", {"user": user, **data})


@app.get("/analytics", response_class=HTMLResponse)
def analytics(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    data = MetricsService(db, user.id).analytics()
    return render(request, "analytics.html", {"user": user, **data})


def transaction_filters_from_request(request: Request) -> TransactionFilters:
    try:
        month = parse_month(request.query_params.get("month"))
    except ValueError:
        month = None
    return TransactionFilters(
        category_id=int_or_none(request.query_params.get("category")),
        month=month,
        search=(request.query_params.get("search") or "").strip() or None,
    )


def _transactions_page(
    request: Request, db: Session, user: User, errors: Optional[dict[str, str]] = None
) -> HTMLResponse:
    filters = transaction_filters_from_request(request)
    service = TransactionService(db, user.id)
    return render(
        request,
        "transactions.html",
        {
            "user": user,
            "transactions": service.list(filters),
            "total_cents": service.total(filters),
            "categories": CategoryService(db, user.id).list_all(),
            "filters": filters,
            "errors": errors or {},
        },
    )


@app.get("/transactions", response_class=HTMLResponse)
def transactions_page(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return _transactions_page(request, db, user)


@app.post("/transactions")
def transactions_action(
    form: dict[str, str] = Depends(form_data),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    check_csrf(form, user.id)
    if form.get("intent") != "delete":
        raise HTTPException(status_code=400, detail="Unknown action")
    try:
        TransactionService(db, user.id).delete(form_id(form, "transaction_id"))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return redirect("/transactions")


def _transaction_form(
    request: Request,
    db: Session,
    user: User,
    *,
    transaction=None,
    values: Optional[dict[str, object]] = None,
    errors: Optional[dict[str, str]] = None,
) -> HTMLResponse:
    return render(
        request,
        "transaction_form.html",
        {
            "user": user,
            "transaction": transaction,
            "categories": CategoryService(db, user.id).list_all(),
            "frequencies": list(Frequency),
            "values": values or {},
            "errors": errors or {},
        },
    )


@app.get("/transactions/new", response_class=HTMLResponse)
def new_transaction_page(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    values = {"date": local_today().isoformat()}
    return _transaction_form(request, db, user, values=values)


@app.post("/transactions/new")
def create_transaction(
    request: Request,
    form: dict[str, str] = Depends(form_data),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    check_csrf(form, user.id)
    try:
        TransactionService(db, user.id).create(transaction_payload_from_form(form))
    except ValidationFailed as exc:
        return _transaction_form(request, db, user, values=form, errors=exc.errors)
    return redirect("/transactions")


@app.get("/transactions/{transaction_id}/edit", response_class=HTMLResponse)
def edit_transaction_page(
    transaction_id: int,
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user.id).get(transaction_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    values = {
        "amount": cents_to_input(txn.amount_cents),
        "category_id": str(txn.category_id),
        "description": txn.description or "",
        "date": txn.date.isoformat(),
        "is_recurring": "on" if txn.is_recurring else "",
        "frequency": txn.frequency.value if txn.frequency else "",
        "receipt_url": txn.receipt_url or "",
    }
    return _transaction_form(request, db, user, transaction=txn, values=values)


@app.post("/transactions/{transaction_id}/edit")
def edit_transaction_submit(
    transaction_id: int,
    request: Request,
    form: dict[str, str] = Depends(form_data),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    check_csrf(form, user.id)
    service = TransactionService(db, user.id)
    try:
        if form.get("intent") == "delete":
            service.delete(transaction_id)
        else:
            service.update(transaction_id, transaction_payload_from_form(form))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationFailed as exc:
        txn = service.get(transaction_id)
        return _transaction_form(
            request, db, user, transaction=txn, values=form, errors=exc.errors
        )
    return redirect("/transactions")


@app.get("/incomes", response_class=HTMLResponse)
def incomes_page(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        month = parse_month(request.query_params.get("month"))
    except ValueError:
        month = None
    filters = IncomeFilters(
        month=month,
        search=(request.query_params.get("search") or "").strip() or None,
    )
    service = IncomeService(db, user.id)
    return render(
        request,
        "incomes.html",
        {
            "user": user,
            "incomes": service.list(filters),
            "summary": service.summary(filters),
            "filters": filters,
        },
    )


@app.post("/incomes")
def incomes_action(
    form: dict[str, str] = Depends(form_data),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    check_csrf(form, user.id)
    if form.get("intent") != "delete":
        raise HTTPException(status_code=400, detail="Unknown action")
    try:
        IncomeService(db, user.id).delete(form_id(form, "income_id"))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return redirect("/incomes")


def _income_form(
    request: Request,
    user: User,
    *,
    income=None,
    values: Optional[dict[str, object]] = None,
    errors: Optional[dict[str, str]] = None,
) -> HTMLResponse:
    return render(
        request,
        "income_form.html",
        {
            "user": user,
            "income": income,
            "values": values or {},
            "errors": errors or {},
        },
    )


@app.get("/incomes/new", response_class=HTMLResponse)
def new_income_page(request: Request, user: User = Depends(current_user)):
    return _income_form(request, user, values={"date": local_today().isoformat()})


@app.post("/incomes/new")
def create_income(
    request: Request,
    form: dict[str, str] = Depends(form_data),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    check_csrf(form, user.id)
    try:
        IncomeService(db, user.id).create(income_payload_from_form(form))
    except ValidationFailed as exc:
        return _income_form(request, user, values=form, errors=exc.errors)
    return redirect("/incomes")


@app.get("/incomes/{income_id}/edit", response_class=HTMLResponse)
def edit_income_page(
    income_id: int,
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        income = IncomeService(db, user.id).get(income_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    values = {
        "amount": cents_to_input(income.amount_cents),
        "source": income.source or "",
        "date": income.date.isoformat(),
    }
    return _income_form(request, user, income=income, values=values)


@app.post("/incomes/{income_id}/edit")
def edit_income_submit(
    income_id: int,
    request: Request,
    form: dict[str, str] = Depends(form_data),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    check_csrf(form, user.id)
    service = IncomeService(db, user.id)
    try:
        if form.get("intent") == "delete":
            service.delete(income_id)
        else:
            service.update(income_id, income_payload_from_form(form))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationFailed as exc:
        income = service.get(income_id)
        return _income_form(
            request, user, income=income, values=form, errors=exc.errors
        )
    return redirect("/incomes")


def _budgets_page(
    request: Request,
    db: Session,
    user: User,
    month_start: date,
    *,
    values: Optional[dict[str, object]] = None,
    errors: Optional[dict[str, str]] = None,
) -> HTMLResponse:
    service = BudgetService(db, user.id)
    progress = service.progress_for_month(month_start.year, month_start.month)
    if values is None and progress.budget:
        values = {"mode": BudgetMode.amount.value}
        values["amount"] = cents_to_input(progress.budget_cents)
    return render(
        request,
        "budgets.html",
        {
            "user": user,
            "period": month_period(month_start.year, month_start.month),
            "progress": progress,
            "budgets": service.list_recent(),
            "values": values or {},
            "errors": errors or {},
        },
    )


@app.get("/budgets", response_class=HTMLResponse)
def budgets_page(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return _budgets_page(request, db, user, month_from_query(request))


@app.post("/budgets")
def budgets_action(
    request: Request,
    form: dict[str, str] = Depends(form_data),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    check_csrf(form, user.id)
    service = BudgetService(db, user.id)
    intent = form.get("intent")
    month_start = month_from_query(request)
    try:
        if intent == "delete-budget":
            service.delete(form_id(form, "budget_id"))
            return redirect("/budgets")
        if intent != "save-budget":
            raise HTTPException(status_code=400, detail="Unknown action")
        data = budget_payload_from_form(form, month_start)
        budget = service.save(data, int_or_none(form.get("budget_id")))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationFailed as exc:
        return _budgets_page(
            request, db, user, month_start, values=form, errors=exc.errors
        )
    return redirect(f"/budgets?month={budget.year:04d}-{budget.month:02d}")


def _budget_form(
    request: Request,
    db: Session,
    user: User,
    month_start: date,
    *,
    values: Optional[dict[str, object]] = None,
    errors: Optional[dict[str, str]] = None,
) -> HTMLResponse:
    service = BudgetService(db, user.id)
    period = month_period(month_start.year, month_start.month)
    return render(
        request,
        "budget_form.html",
        {
            "user": user,
            "period": period,
            "existing": service.get_for_month(month_start.year, month_start.month),
            "income_cents": service.income_for_month(
                month_start.year, month_start.month
            ),
            "values": values or {"mode": BudgetMode.amount.value, "month": period.slug},
            "errors": errors or {},
        },
    )


@app.get("/budgets/new", response_class=HTMLResponse)
def new_budget_page(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return _budget_form(request, db, user, month_from_query(request))


@app.post("/budgets/new")
def create_budget(
    request: Request,
    form: dict[str, str] = Depends(form_data),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    check_csrf(form, user.id)
    month_start = month_from_query(request)
    try:
        data = budget_payload_from_form(form, month_start)
        budget = BudgetService(db, user.id).create(data)
    except ValidationFailed as exc:
        try:
            chosen = parse_month(form.get("month"))
        except ValueError:
            chosen = None
        return _budget_form(
            request,
            db,
            user,
            chosen.start if chosen else month_start,
            values=form,
            errors=exc.errors,
        )
    return redirect(f"/budgets?month={budget.year:04d}-{budget.month:02d}")


def _categories_page(
    request: Request, db: Session, user: User, errors: Optional[dict[str, str]] = None
) -> HTMLResponse:
    service = CategoryService(db, user.id)
    return render(
        request,
        "categories.html",
        {
            "user": user,
            "categories": service.list_all(),
            "usage": service.usage_counts(),
            "errors": errors or {},
        },
    )


@app.get("/categories", response_class=HTMLResponse)
def categories_page(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return _categories_page(request, db, user)


@app.post("/categories")
def categories_action(
    request: Request,
    form: dict[str, str] = Depends(form_data),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    check_csrf(form, user.id)
    if form.get("intent") != "delete":
        raise HTTPException(status_code=400, detail="Unknown action")
    try:
        CategoryService(db, user.id).delete(form_id(form, "category_id"))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationFailed as exc:
        return _categories_page(request, db, user, errors=exc.errors)
    return redirect("/categories")


@app.get("/categories/new", response_class=HTMLResponse)
def new_category_page(request: Request, user: User = Depends(current_user)):
    values = {"color": CATEGORY_COLORS[0][1], "icon": CATEGORY_ICONS[0]}
    return render(request, "category_form.html", {"user": user, "values": values})


@app.post("/categories/new")
def create_category(
    request: Request,
    form: dict[str, str] = Depends(form_data),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    check_csrf(form, user.id)
    try:
        data = CategoryIn(
            name=form.get("name", ""),
            color=form.get("color", ""),
            icon=form.get("icon", ""),
        )
        CategoryService(db, user.id).create(data)
    except ValidationError as exc:
        errors = field_errors(exc)
    except ValidationFailed as exc:
        errors = exc.errors
    else:
        return redirect("/categories")
    return render(
        request,
        "category_form.html",
        {"user": user, "values": form, "errors": errors},
    )


@app.post("/api/chat")
def chat(
    form: dict[str, str] = Depends(form_data),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    check_csrf(form, user.id)
    message = form.get("message", "").strip()
    if not message:
        return JSONResponse({"error": "Message is required"}, status_code=400)
    try:
        snapshot = MetricsService(db, user.id).snapshot()
    except SQLAlchemyError:
        logger.exception(f"chat_context_failed: user_id={user.id}")
        return JSONResponse(
            {"error": "Failed to get response. Please try again."}, status_code=500
        )
    return {"response": AdvisorService().get_advice(message, snapshot)}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
