from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from http.client import HTTPException
from typing import Optional
from urllib.error import HTTPError
from urllib.parse import quote
from urllib.request import Request, urlopen

from amounts import format_currency
from config import get_settings

logger = logging.getLogger(__name__)

RETRY_MESSAGE = (
    "Sorry, I'm having trouble connecting right now. Please try again in a moment!"
)
MODEL_ACK = "I understand your financial situation. How can I help you today?"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


@dataclass(frozen=True)
class FinancialSnapshot:
    budget_cents: int
    income_cents: int
    expense_cents: int
    remaining_cents: int
    # (category name, spent cents), largest first.
    category_totals: list[tuple[str, int]] = field(default_factory=list)
    transaction_count: int = 0


class AdvisorUnavailable(RuntimeError):
    pass


def build_prompt(snapshot: FinancialSnapshot) -> str:
    """Render the current-month context handed to the model before the question."""
    status = "Within budget" if snapshot.remaining_cents >= 0 else "Over budget"
    if snapshot.category_totals:
        by_category = "\n".join(
            f"- {name}: {format_currency(cents)}"
            for name, cents in snapshot.category_totals
        )
        largest = snapshot.category_totals[0][0]
    else:
        by_category = "- No spending recorded yet"
        largest = "None"
    average_cents = (
        round(snapshot.expense_cents / snapshot.transaction_count)
        if snapshot.transaction_count
        else 0
    )
    return (
        "You are a helpful financial assistant for a budget tracking app.\n"
        "The user is asking about their current month's finances. Here's their data:\n"
        "\n"
        "Financial Overview:\n"
        f"- Monthly Budget: {format_currency(snapshot.budget_cents)}\n"
        f"- Total Income: {format_currency(snapshot.income_cents)}\n"
        f"- Total Spent: {format_currency(snapshot.expense_cents)}\n"
        f"- Remaining Budget: {format_currency(snapshot.remaining_cents)}\n"
        f"- Budget Status: {status}\n"
        "\n"
        "Spending by Category:\n"
        f"{by_category}\n"
        "\n"
        "Quick Stats:\n"
        f"- Number of transactions: {snapshot.transaction_count}\n"
        f"- Average transaction: {format_currency(average_cents)}\n"
        f"- Largest expense category: {largest}\n"
        "\n"
        "Provide helpful, concise, and encouraging financial advice. "
        "Keep responses under 150 words unless the user asks for detailed analysis."
    )


class AdvisorService:
    def __init__(self) -> None:
        self.settings = get_settings()

    def get_advice(self, question: str, snapshot: FinancialSnapshot) -> str:
        try:
            return _request_completion(
                build_prompt(snapshot),
                question,
                api_key=self.settings.gemini_api_key,
                model=self.settings.gemini_model,
                timeout=self.settings.chat_timeout_secs,
            )
        except AdvisorUnavailable:
            logger.exception(f"advisor_failed: model={self.settings.gemini_model}")
            return RETRY_MESSAGE


def _request_completion(
    context: str, question: str, *, api_key: str, model: str, timeout: float
) -> str:
    if not api_key:
        raise AdvisorUnavailable("No API key configured for the advisor")
    url = GEMINI_URL.format(model=quote(model, safe="")) + f"?key={quote(api_key)}"
    body = {
        "contents": [
            {"role": "user", "parts": [{"text": context}]},
            {"role": "model", "parts": [{"text": MODEL_ACK}]},
            {"role": "user", "parts": [{"text": question}]},
        ]
    }
    req = Request(
        url,
        data=json.dumps(body).encode("utf-8"),
        headers={"Content-Type": "application/json", "Accept": "application/json"},
        method="POST",
    )
    try:
        with urlopen(req, timeout=timeout) as resp:
            payload = json.loads(resp.read().decode("utf-8"))
    except HTTPError as exc:
        raise AdvisorUnavailable(f"Advisor returned HTTP {exc.code}") from exc
    except (OSError, HTTPException, ValueError) as exc:
        # URLError and timeouts are OSErrors; bad JSON or UTF-8 is a ValueError.
        raise AdvisorUnavailable("Failed to reach the advisor") from exc

    text = _extract_text(payload)
    if not text:
        raise AdvisorUnavailable("Advisor response had no text")
    return text


def _extract_text(payload: object) -> Optional[str]:
    try:
        parts = payload["candidates"][0]["content"]["parts"]  # type: ignore[index]
        text = "".join(part.get("text", "") for part in parts)
    except (KeyError, IndexError, TypeError, AttributeError):
        return None
    return text.strip() or None
