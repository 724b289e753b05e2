from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings

ANONYMOUS_USER_ID = 0
CSRF_MAX_AGE = 2 * 60 * 60


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(get_settings().session_secret, salt="csrf-token")


def generate_csrf_token(user_id: int = ANONYMOUS_USER_ID) -> str:
    """Sign a form token bound to the session's user (0 before login)."""
    return _serializer().dumps({"u": user_id})


def validate_csrf_token(
    token: str, user_id: int = ANONYMOUS_USER_ID, max_age: int = CSRF_MAX_AGE
) -> bool:
    try:
        data = _serializer().loads(token, max_age=max_age)
    except BadSignature:
        # SignatureExpired is a BadSignature.
        return False
    return isinstance(data, dict) and data.get("u") == user_id
