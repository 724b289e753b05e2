import re

import bcrypt

from config import get_settings

# bcrypt only looks at the first 72 bytes; newer releases reject longer input.
BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    rounds = get_settings().bcrypt_rounds
    hashed = bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False


# Compared against when the account is unknown or has no password, so a
# failed login costs one bcrypt check either way. The result is discarded.
DUMMY_PASSWORD_HASH = hash_password("not-a-real-password")


def password_problems(password: str) -> list[str]:
    problems: list[str] = []
    if len(password) < 8:
        problems.append("At least 8 characters")
    if not re.search(r"[A-Z]", password):
        problems.append("At least one uppercase letter")
    if not re.search(r"[a-z]", password):
        problems.append("At least one lowercase letter")
    if not re.search(r"[0-9]", password):
        problems.append("At least one number")
    if not re.search(r"[^A-Za-z0-9]", password):
        problems.append("At least one special character (!@#$%^&*)")
    return problems
