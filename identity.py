from __future__ import annotations

import json
import logging
from http.client import HTTPException
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from config import get_settings

logger = logging.getLogger(__name__)

TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"
TRUSTED_ISSUERS = {"accounts.google.com", "https://accounts.google.com"}


class IdentityError(ValueError):
    """The external identity could not be verified."""


def verify_google_credential(credential: str, *, timeout: float = 10.0) -> str:
    """Verify a Google ID token and return the account's lower-cased email."""
    settings = get_settings()
    if not settings.google_client_id:
        raise IdentityError("Google sign-in is not configured")
    if not credential:
        raise IdentityError("Missing Google credential")

    payload = _fetch_tokeninfo(credential, timeout=timeout)
    if payload.get("aud") != settings.google_client_id:
        raise IdentityError("Google credential was issued for another client")
    if payload.get("iss") not in TRUSTED_ISSUERS:
        raise IdentityError("Google credential has an unexpected issuer")
    if str(payload.get("email_verified", "")).lower() != "true":
        raise IdentityError("Google account email is not verified")
    email = str(payload.get("email") or "").strip().lower()
    if "@" not in email:
        raise IdentityError("Google credential has no email")
    return email


def _fetch_tokeninfo(credential: str, *, timeout: float) -> dict:
    url = f"{TOKENINFO_URL}?{urlencode({'id_token': credential})}"
    req = Request(url, headers={"Accept": "application/json"})
    try:
        with urlopen(req, timeout=timeout) as resp:
            payload = json.loads(resp.read().decode("utf-8"))
    except (OSError, HTTPException, ValueError) as exc:
        # HTTPError is an OSError; Google answers 400 for invalid tokens.
        logger.info("google_tokeninfo_failed")
        raise IdentityError("Could not verify Google credential") from exc
    if not isinstance(payload, dict):
        raise IdentityError("Could not verify Google credential")
    return payload
