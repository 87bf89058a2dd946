"""Keyword scoring and charge-type classification of billing emails."""

from __future__ import annotations

from .constants import (
    ADDON_SIGNALS,
    ANTI_SIGNAL_LIMIT,
    ANTI_SIGNALS,
    BILLING_KEYWORDS,
    BODY_FETCH_BILLING_THRESHOLD,
    CANCEL_SIGNAL_THRESHOLD,
    CANCELLATION_FALSE_POSITIVES,
    CANCELLATION_SIGNALS,
    CHARGE_TYPE_MIN_SCORE,
    RECURRING_SIGNALS,
    REFUND_OVERRIDE_THRESHOLD,
    REFUND_SIGNALS,
    TOPUP_SIGNALS,
    VALIDATION_AGREE_BOOST,
    VALIDATION_DISAGREE_CONFIDENCE,
    VALIDATION_UNKNOWN_CONFIDENCE,
)
from .models import ChargeType, SenderSummary


def _max_weight(text: str, signals: list[tuple[str, float]]) -> float:
    """Return the largest weight among the keywords present in *text*."""
    return max((weight for keyword, weight in signals if keyword in text), default=0.0)


def _has_false_positive(text: str) -> bool:
    return any(phrase in text for phrase in CANCELLATION_FALSE_POSITIVES)


def billing_signal_score(subject: str, snippet: str) -> float:
    """Score how likely an email is a billing notification.

    Returns the strongest matched keyword weight (0.0 - 1.0). Weights are not
    summed, so repeated buzzwords cannot inflate the score.
    """
    return _max_weight(f"{subject} {snippet}".lower(), BILLING_KEYWORDS)


def classify_charge_type(
    subject: str,
    snippet: str,
    body_text: str | None = None,
) -> tuple[ChargeType, float]:
    """Classify the charge type from email text.

    Returns (ChargeType.UNKNOWN, 0.0) when marketing language dominates or no
    category scores above the acceptance threshold.
    """
    text = f"{subject} {snippet} {body_text or ''}".lower()

    anti_count = sum(1 for phrase in ANTI_SIGNALS if phrase in text)
    if anti_count >= ANTI_SIGNAL_LIMIT:
        return (ChargeType.UNKNOWN, 0.0)

    refund_score = _max_weight(text, REFUND_SIGNALS)
    if refund_score >= REFUND_OVERRIDE_THRESHOLD:
        return (ChargeType.REFUND_OR_REVERSAL, refund_score)

    scores = [
        (ChargeType.RECURRING_SUBSCRIPTION, _max_weight(text, RECURRING_SIGNALS)),
        (ChargeType.USAGE_TOPUP, _max_weight(text, TOPUP_SIGNALS)),
        (ChargeType.ADDON_CREDITS, _max_weight(text, ADDON_SIGNALS)),
    ]
    # max() keeps the first of equal scores: recurring, then top-up, then add-on
    best_type, best_score = max(scores, key=lambda pair: pair[1])
    if best_score <= CHARGE_TYPE_MIN_SCORE:
        return (ChargeType.UNKNOWN, 0.0)
    return (best_type, best_score)


def validate_charge_type(
    ai_type: ChargeType,
    subject: str,
    snippet: str,
    body_text: str | None = None,
) -> tuple[ChargeType, float]:
    """Cross-check an externally assigned charge type against local signals."""
    local_type, local_confidence = classify_charge_type(subject, snippet, body_text)

    if local_type is ChargeType.UNKNOWN:
        return (ai_type, VALIDATION_UNKNOWN_CONFIDENCE)

    if local_type is ai_type:
        return (ai_type, min(1.0, local_confidence + VALIDATION_AGREE_BOOST))

    if (
        local_type is ChargeType.REFUND_OR_REVERSAL
        and local_confidence >= REFUND_OVERRIDE_THRESHOLD
    ):
        return (ChargeType.REFUND_OR_REVERSAL, local_confidence)

    return (ai_type, VALIDATION_DISAGREE_CONFIDENCE)


def detect_cancellation_signal(
    subject: str,
    snippet: str,
    body_text: str | None = None,
) -> float:
    """Return the cancellation signal strength (0.0 - 1.0).

    The subject and snippet are evaluated first. A strong header signal is
    returned as-is, so "cancel anytime" boilerplate in the body cannot hide an
    explicit "subscription canceled" subject line. Otherwise the body is
    included and any false-positive phrase anywhere zeroes the score.
    """
    header_text = f"{subject} {snippet}".lower()

    if not _has_false_positive(header_text):
        header_score = _max_weight(header_text, CANCELLATION_SIGNALS)
        if header_score >= CANCEL_SIGNAL_THRESHOLD:
            return header_score

    if not body_text:
        return 0.0

    full_text = f"{header_text} {body_text.lower()}"
    if _has_false_positive(full_text):
        return 0.0
    return _max_weight(full_text, CANCELLATION_SIGNALS)


def sender_lifecycle_score(sender: SenderSummary) -> float:
    """Best cancellation signal across a sender's latest email and timeline."""
    best = detect_cancellation_signal(sender.latest_subject, sender.latest_snippet)
    for email in sender.recent_emails:
        score = detect_cancellation_signal(email.subject, email.snippet, email.body_excerpt)
        best = max(best, score)
    return best


def needs_body_fetch(email_count: int, amounts: list[float], billing_score: float) -> bool:
    """True for high-signal senders with no extracted amount.

    Their latest body is worth fetching to look for the missing cost.
    """
    is_high_signal = email_count >= 2 or billing_score >= BODY_FETCH_BILLING_THRESHOLD
    return not amounts and is_high_signal
