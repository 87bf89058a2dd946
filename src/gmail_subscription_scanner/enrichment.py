"""LLM enrichment: turns aggregated sender evidence into structured charges."""

from __future__ import annotations

import logging

import anthropic

from .constants import DEFAULT_MODEL, ENRICHMENT_MAX_TOKENS, SNIPPET_SUMMARY_LIMIT
from .models import SenderSummary

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = """\
You are a subscription and billing detection assistant. You receive a summary of \
services that sent billing-related emails.

For each, classify the charge type and fill in the details.

Respond with ONLY valid JSON:
{"subscriptions": [{"service_name": "...", "cost": 15.99, "billing_cycle": "monthly", \
"category": "AI Services", "charge_type": "recurring_subscription", \
"subscription_status": "active", "status_effective_date": null, \
"renewal_date": "2026-03-15", "confidence": 0.95, "cost_source": "subject", \
"is_estimated": false, "evidence": "found $15.99 in subject", "notes": "..."}]}

SERVICE NAME: use the short brand name. "Vercel" not "Vercel Inc.", "Anthropic" not \
"Anthropic, PBC".

CHARGE TYPE (one of):
- "recurring_subscription": regular monthly/annual charge.
- "usage_topup": usage-based charge, API credits, token top-ups.
- "addon_credits": add-on or credit pack purchase.
- "one_time_purchase": single purchase not expected to repeat.
- "refund_or_reversal": money returned. Always include these.
- "unknown": cannot determine from the evidence.

SUBSCRIPTION STATUS (one of): "active", "canceled", "paused", "expired". Use \
"canceled" only for explicit cancellation confirmations, and set \
status_effective_date (YYYY-MM-DD) to the date of that email.

COST:
- If an amount is listed, use it and set cost_source to subject, snippet or body.
- If no amount is listed you may estimate from known pricing; then set cost_source \
to "estimated", is_estimated to true and confidence to 0.5-0.6.
- billing_cycle: weekly, monthly or annual.

FILTERING:
- Skip marketing, newsletters, free-tier notices, shipping and password resets.
- Skip services already tracked: [{existing}]
- Weak evidence (single email, no amount, low billing_score): confidence 0.4-0.5.

OTHER FIELDS:
- category: AI Services, Streaming, SaaS, Development, Productivity, Other.
- renewal_date: YYYY-MM-DD, latest email date plus one billing cycle.
- If no paid charges are found, return {"subscriptions": []}
"""


class EnrichmentError(Exception):
    """Raised when the enrichment call cannot be made or fails."""


def build_sender_summary(senders: list[SenderSummary]) -> str:
    """Render sender evidence as the compact numbered list sent to the model."""
    lines = []
    for index, sender in enumerate(senders, start=1):
        amounts = (
            ", ".join(f"${value:.2f}" for value in sender.amounts)
            if sender.amounts
            else "no amounts found"
        )
        snippet = (
            f' - snippet: "{sender.latest_snippet[:SNIPPET_SUMMARY_LIMIT]}"'
            if sender.latest_snippet
            else ""
        )
        body_note = " [body fetched]" if sender.body_text else ""
        lines.append(
            f"{index}. {sender.sender_name} ({sender.sender_domain}) - "
            f"{sender.email_count} emails - amounts: {amounts} - "
            f"billing_score: {sender.billing_score:.1f} - "
            f'latest: "{sender.latest_subject}" ({sender.latest_date:%Y-%m-%d})'
            f"{snippet}{body_note}"
        )
    return "\n".join(lines)


def build_system_prompt(existing_names: list[str]) -> str:
    existing = ", ".join(existing_names) if existing_names else "None"
    return _SYSTEM_PROMPT.replace("{existing}", existing)


class ClaudeEnricher:
    """Enrichment collaborator backed by the Anthropic Messages API."""

    def __init__(self, api_key: str = "", model: str = DEFAULT_MODEL, client=None) -> None:
        self._api_key = api_key
        self._model = model
        self._client = client

    def _get_client(self):
        if self._client is None:
            if not self._api_key:
                raise EnrichmentError(
                    "Anthropic API key is not configured. "
                    "Set ANTHROPIC_API_KEY or [enrichment] api_key in the config file."
                )
            self._client = anthropic.Anthropic(api_key=self._api_key)
        return self._client

    def enrich(self, summary: str, existing_names: list[str]) -> str:
        """Send the sender summary and return the model's raw text reply."""
        client = self._get_client()
        logger.debug("Enrichment input:\n%s", summary)

        try:
            response = client.messages.create(
                model=self._model,
                max_tokens=ENRICHMENT_MAX_TOKENS,
                temperature=0.1,
                system=build_system_prompt(existing_names),
                messages=[
                    {
                        "role": "user",
                        "content": (
                            "Here is a summary of services that sent billing-related "
                            f"emails. Classify each charge:\n\n{summary}"
                        ),
                    }
                ],
            )
        except anthropic.APIError as exc:
            raise EnrichmentError(f"Enrichment request failed: {exc}") from exc

        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        logger.debug("Enrichment raw response: %s", text)
        return text
