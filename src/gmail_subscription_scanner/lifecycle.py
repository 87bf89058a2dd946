"""Chronological lifecycle resolution for a single sender."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime

from .constants import (
    BILLING_EVENT_THRESHOLD,
    CANCEL_SIGNAL_THRESHOLD,
    LIFECYCLE_DEFER_CONFIDENCE,
    LIFECYCLE_NO_EVIDENCE_CONFIDENCE,
    LIFECYCLE_REACTIVATION_CONFIDENCE,
)
from .models import LifecycleResult, SubscriptionStatus, TimelineEmail
from .scorer import billing_signal_score, detect_cancellation_signal


def resolve_lifecycle(
    emails: Sequence[TimelineEmail],
    ai_status: SubscriptionStatus,
    ai_status_date: date | datetime | None = None,
) -> LifecycleResult:
    """Resolve the current status from a sender's dated email sequence.

    The latest cancellation event and the latest billing event are tracked
    independently. A charge strictly after the last cancellation means the
    subscription was reactivated; a cancellation with no later charge means
    it is canceled. Without any cancellation evidence the externally assigned
    status is kept.
    """
    if not emails:
        return LifecycleResult(ai_status, ai_status_date, LIFECYCLE_NO_EVIDENCE_CONFIDENCE)

    latest_cancel: tuple[datetime, float] | None = None
    latest_charge: tuple[datetime, float] | None = None

    for email in emails:
        cancel_score = detect_cancellation_signal(email.subject, email.snippet, email.body_excerpt)
        if cancel_score >= CANCEL_SIGNAL_THRESHOLD:
            if latest_cancel is None or email.date > latest_cancel[0]:
                latest_cancel = (email.date, cancel_score)

        charge_score = billing_signal_score(email.subject, email.snippet)
        if charge_score >= BILLING_EVENT_THRESHOLD:
            if latest_charge is None or email.date > latest_charge[0]:
                latest_charge = (email.date, charge_score)

    if latest_cancel is None:
        return LifecycleResult(ai_status, ai_status_date, LIFECYCLE_DEFER_CONFIDENCE)

    cancel_date, cancel_score = latest_cancel
    if latest_charge is not None and latest_charge[0] > cancel_date:
        return LifecycleResult(
            SubscriptionStatus.ACTIVE,
            latest_charge[0],
            LIFECYCLE_REACTIVATION_CONFIDENCE,
            reactivated=True,
        )
    return LifecycleResult(SubscriptionStatus.CANCELED, cancel_date, cancel_score)


def is_reactivation(result: LifecycleResult) -> bool:
    """True when the result came from a charge that followed a cancellation."""
    return result.reactivated
