from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from amounts import MAX_AMOUNT_CENTS
from models import BudgetMode, Frequency
from presets import CATEGORY_ICONS


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    color: str = Field(..., pattern=r"^#[0-9A-Fa-f]{6}$")
    icon: str

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("Name must be at least 2 characters")
        return value

    @field_validator("icon")
    @classmethod
    def _known_icon(cls, value: str) -> str:
        if value not in CATEGORY_ICONS:
            raise ValueError("Invalid icon")
        return value


class TransactionIn(BaseModel):
    amount_cents: int = Field(..., gt=0, le=MAX_AMOUNT_CENTS)
    category_id: int
    description: Optional[str] = Field(default=None, max_length=500)
    date: date
    is_recurring: bool = False
    frequency: Optional[Frequency] = None
    receipt_url: Optional[str] = Field(default=None, max_length=500)


class IncomeIn(BaseModel):
    amount_cents: int = Field(..., gt=0, le=MAX_AMOUNT_CENTS)
    source: Optional[str] = Field(default=None, max_length=200)
    date: date


class BudgetIn(BaseModel):
    mode: BudgetMode
    amount_cents: Optional[int] = Field(default=None, gt=0, le=MAX_AMOUNT_CENTS)
    percentage: Optional[Decimal] = None
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1970, le=3000)


class SignupIn(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str
    confirm_password: str

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return normalize_email(value)


class LoginIn(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)
    remember: bool = False

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return normalize_email(value)


def normalize_email(value: str) -> str:
    value = value.strip().lower()
    if "@" not in value:
        raise ValueError("Please enter a valid email address")
    return value


def field_errors(exc: ValidationError) -> dict[str, str]:
    """Flatten a pydantic error into one message per top-level field."""
    errors: dict[str, str] = {}
    for err in exc.errors():
        field = str(err["loc"][0]) if err.get("loc") else "form"
        message = err.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        errors.setdefault(field, message)
    return errors
