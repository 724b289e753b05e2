import io

import pytest

import identity
from config import get_settings
from identity import IdentityError, verify_google_credential


def _configure(monkeypatch, payload: dict) -> None:
    monkeypatch.setattr(get_settings(), "google_client_id", "client-123")
    monkeypatch.setattr(identity, "_fetch_tokeninfo", lambda credential, timeout: payload)


def test_verified_google_account_yields_email(monkeypatch) -> None:
    _configure(
        monkeypatch,
        {
            "aud": "client-123",
            "iss": "https://accounts.google.com",
            "email": "Kim@Example.com",
            "email_verified": "true",
        },
    )
    assert verify_google_credential("token") == "kim@example.com"


@pytest.mark.parametrize(
    "payload",
    [
        {"aud": "someone-else", "iss": "accounts.google.com", "email": "k@e.com", "email_verified": "true"},
        {"aud": "client-123", "iss": "evil.example.com", "email": "k@e.com", "email_verified": "true"},
        {"aud": "client-123", "iss": "accounts.google.com", "email": "k@e.com", "email_verified": "false"},
        {"aud": "client-123", "iss": "accounts.google.com", "email_verified": "true"},
    ],
)
def test_untrusted_tokens_are_rejected(monkeypatch, payload) -> None:
    _configure(monkeypatch, payload)
    with pytest.raises(IdentityError):
        verify_google_credential("token")


def test_google_sign_in_disabled_without_client_id(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "google_client_id", "")
    with pytest.raises(IdentityError, match="not configured"):
        verify_google_credential("token")


class _FakeResponse(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


def _raise_reset(req, timeout):
    raise ConnectionResetError("peer reset")


@pytest.mark.parametrize(
    "fake_urlopen",
    [
        _raise_reset,
        lambda req, timeout: _FakeResponse(b"\xff\xfe"),
        lambda req, timeout: _FakeResponse(b"[1, 2]"),
    ],
)
def test_tokeninfo_failures_become_identity_errors(monkeypatch, fake_urlopen) -> None:
    monkeypatch.setattr(get_settings(), "google_client_id", "client-123")
    monkeypatch.setattr(identity, "urlopen", fake_urlopen)
    with pytest.raises(IdentityError, match="Could not verify"):
        verify_google_credential("token")
