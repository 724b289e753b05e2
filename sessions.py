from typing import Optional

from fastapi import Request, Response
from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings
from errors import LoginRequired

SESSION_COOKIE = "finance_session"
REMEMBER_MAX_AGE = 60 * 60 * 24 * 7
DEFAULT_REDIRECT = "/dashboard"


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.session_secret, salt="user-session")


def current_user_id(request: Request) -> Optional[int]:
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        return None
    try:
        data = _serializer().loads(token, max_age=REMEMBER_MAX_AGE)
    except BadSignature:
        return None
    user_id = data.get("uid") if isinstance(data, dict) else None
    if not isinstance(user_id, int) or user_id <= 0:
        return None
    return user_id


def requested_path(request: Request) -> str:
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


def require_user_id(request: Request) -> int:
    user_id = current_user_id(request)
    if user_id is None:
        raise LoginRequired(requested_path(request))
    return user_id


def commit_session(response: Response, user_id: int, *, remember: bool = False) -> None:
    settings = get_settings()
    token = _serializer().dumps({"uid": user_id})
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=REMEMBER_MAX_AGE if remember else None,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )


def destroy_session(response: Response) -> None:
    settings = get_settings()
    response.delete_cookie(
        SESSION_COOKIE,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )


def safe_redirect_target(value: Optional[str], default: str = DEFAULT_REDIRECT) -> str:
    # Only same-site paths; "//host" would leave the site.
    if not value or not value.startswith("/") or value.startswith("//"):
        return default
    return value
