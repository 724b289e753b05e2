from typing import Mapping


class ValidationFailed(ValueError):
    """User-correctable input problems, keyed by form field."""

    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__("; ".join(self.errors.values()))

    @classmethod
    def on(cls, field: str, message: str) -> "ValidationFailed":
        return cls({field: message})


class ConflictError(ValidationFailed):
    """A uniqueness rule was violated (email, category name, budget period)."""


class NotFoundError(ValueError):
    """Record does not exist or is owned by someone else."""


class LoginRequired(Exception):
    def __init__(self, redirect_to: str) -> None:
        self.redirect_to = redirect_to
        super().__init__(redirect_to)
