import io
import json
from urllib.error import URLError

import advisor
from advisor import RETRY_MESSAGE, AdvisorService, FinancialSnapshot, build_prompt


def _snapshot() -> FinancialSnapshot:
    return FinancialSnapshot(
        budget_cents=150_000,
        income_cents=200_000,
        expense_cents=160_000,
        remaining_cents=-10_000,
        category_totals=[("Housing", 120_000), ("Food & Dining", 40_000)],
        transaction_count=4,
    )


class _FakeResponse(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


def test_prompt_carries_the_month_summary() -> None:
    prompt = build_prompt(_snapshot())
    assert "Monthly Budget: $1,500.00" in prompt
    assert "Total Spent: $1,600.00" in prompt
    assert "Over budget" in prompt
    assert "- Housing: $1,200.00" in prompt
    assert "Average transaction: $400.00" in prompt
    assert "Largest expense category: Housing" in prompt


def test_prompt_for_an_empty_month() -> None:
    prompt = build_prompt(
        FinancialSnapshot(budget_cents=0, income_cents=0, expense_cents=0, remaining_cents=0)
    )
    assert "Within budget" in prompt
    assert "Largest expense category: None" in prompt


def test_get_advice_returns_model_text(monkeypatch) -> None:
    captured = {}

    def fake_urlopen(req, timeout):
        captured["url"] = req.full_url
        captured["body"] = json.loads(req.data.decode("utf-8"))
        payload = {"candidates": [{"content": {"parts": [{"text": "Spend less on rent."}]}}]}
        return _FakeResponse(json.dumps(payload).encode("utf-8"))

    service = AdvisorService()
    monkeypatch.setattr(service.settings, "gemini_api_key", "test-key")
    monkeypatch.setattr(advisor, "urlopen", fake_urlopen)

    answer = service.get_advice("How am I doing?", _snapshot())

    assert answer == "Spend less on rent."
    assert "key=test-key" in captured["url"]
    contents = captured["body"]["contents"]
    assert [c["role"] for c in contents] == ["user", "model", "user"]
    assert contents[-1]["parts"][0]["text"] == "How am I doing?"


def test_network_failure_degrades_to_retry_message(monkeypatch) -> None:
    def failing_urlopen(req, timeout):
        raise URLError("connection refused")

    service = AdvisorService()
    monkeypatch.setattr(service.settings, "gemini_api_key", "test-key")
    monkeypatch.setattr(advisor, "urlopen", failing_urlopen)

    assert service.get_advice("Hi", _snapshot()) == RETRY_MESSAGE


def test_malformed_payload_degrades_to_retry_message(monkeypatch) -> None:
    service = AdvisorService()
    monkeypatch.setattr(service.settings, "gemini_api_key", "test-key")
    monkeypatch.setattr(
        advisor, "urlopen", lambda req, timeout: _FakeResponse(b'{"candidates": []}')
    )

    assert service.get_advice("Hi", _snapshot()) == RETRY_MESSAGE


def test_missing_api_key_degrades_without_calling_out(monkeypatch) -> None:
    def unexpected(req, timeout):
        raise AssertionError("should not be called")

    service = AdvisorService()
    monkeypatch.setattr(service.settings, "gemini_api_key", "")
    monkeypatch.setattr(advisor, "urlopen", unexpected)

    assert service.get_advice("Hi", _snapshot()) == RETRY_MESSAGE


def test_dropped_connection_degrades_to_retry_message(monkeypatch) -> None:
    def reset_urlopen(req, timeout):
        raise ConnectionResetError("peer reset")

    service = AdvisorService()
    monkeypatch.setattr(service.settings, "gemini_api_key", "test-key")
    monkeypatch.setattr(advisor, "urlopen", reset_urlopen)

    assert service.get_advice("Hi", _snapshot()) == RETRY_MESSAGE


def test_undecodable_body_degrades_to_retry_message(monkeypatch) -> None:
    service = AdvisorService()
    monkeypatch.setattr(service.settings, "gemini_api_key", "test-key")
    monkeypatch.setattr(advisor, "urlopen", lambda req, timeout: _FakeResponse(b"\xff\xfe"))

    assert service.get_advice("Hi", _snapshot()) == RETRY_MESSAGE
