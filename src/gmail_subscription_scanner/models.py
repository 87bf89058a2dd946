"""Data models for Gmail Subscription Scanner."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class ChargeType(str, Enum):
    """Category of a detected charge."""

    RECURRING_SUBSCRIPTION = "recurring_subscription"
    USAGE_TOPUP = "usage_topup"
    ADDON_CREDITS = "addon_credits"
    ONE_TIME_PURCHASE = "one_time_purchase"
    REFUND_OR_REVERSAL = "refund_or_reversal"
    UNKNOWN = "unknown"

    @property
    def is_recurring(self) -> bool:
        return self is ChargeType.RECURRING_SUBSCRIPTION

    @property
    def is_non_recurring(self) -> bool:
        """Paid charges that are not expected to repeat. Refunds are neither."""
        return self in (
            ChargeType.USAGE_TOPUP,
            ChargeType.ADDON_CREDITS,
            ChargeType.ONE_TIME_PURCHASE,
        )


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELED = "canceled"
    PAUSED = "paused"
    EXPIRED = "expired"


class BillingCycle(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ANNUAL = "annual"

    @property
    def monthly_cost_multiplier(self) -> float:
        if self is BillingCycle.WEEKLY:
            return 52.0 / 12.0
        if self is BillingCycle.ANNUAL:
            return 1.0 / 12.0
        return 1.0


class SubscriptionCategory(str, Enum):
    AI_SERVICES = "AI Services"
    STREAMING = "Streaming"
    SAAS = "SaaS"
    DEVELOPMENT = "Development"
    PRODUCTIVITY = "Productivity"
    OTHER = "Other"


class CostSource(str, Enum):
    """Where a candidate's cost came from."""

    SUBJECT = "subject"
    SNIPPET = "snippet"
    BODY = "body"
    ESTIMATED = "estimated"


class AmountSource(str, Enum):
    """Text field an amount was extracted from, in priority order."""

    SUBJECT = "subject"
    SNIPPET = "snippet"
    BODY = "body"

    @property
    def priority(self) -> int:
        return _AMOUNT_SOURCE_PRIORITY[self]


_AMOUNT_SOURCE_PRIORITY = {
    AmountSource.SUBJECT: 0,
    AmountSource.SNIPPET: 1,
    AmountSource.BODY: 2,
}


class Outcome(str, Enum):
    """What happened to a candidate after the scan."""

    SELECTED = "selected"
    IGNORED = "ignored"
    AUTO_APPLIED = "auto_applied"
    AUTO_SKIPPED = "auto_skipped"


class AlertType(str, Enum):
    PRECISION_DROP = "precision_drop"
    FALSE_POSITIVE_SPIKE = "false_positive_spike"
    UNKNOWN_SPIKE = "unknown_spike"


# --- Email evidence ---


@dataclass(frozen=True)
class EmailMetadata:
    """Header-level metadata of a single Gmail message."""

    message_id: str
    sender: str  # Full From header value
    subject: str
    date: datetime
    snippet: str = ""


@dataclass(frozen=True)
class TimelineEmail:
    """One dated email excerpt used for lifecycle resolution."""

    date: datetime
    subject: str
    snippet: str
    body_excerpt: str | None = None


@dataclass(frozen=True)
class ExtractedAmount:
    value: float
    currency: str  # ISO code: USD, EUR, GBP, ...
    source: AmountSource


@dataclass(frozen=True)
class ProcessorSplit:
    """Result of checking a sender domain against known payment processors."""

    is_processor: bool
    processor_name: str = ""
    service_name: str | None = None


@dataclass
class SenderSummary:
    """Aggregated evidence for a single resolved sender."""

    sender_key: str  # domain, or "via:<merchant>" for unmasked processor mail
    sender_name: str
    sender_domain: str
    query_domain: str  # real mail domain, used for follow-up body fetches
    email_count: int
    amounts: list[float]
    latest_subject: str
    latest_date: datetime
    latest_snippet: str
    billing_score: float = 0.0
    body_text: str | None = None
    recent_emails: list[TimelineEmail] = field(default_factory=list)


# --- Candidates ---


@dataclass
class SubscriptionCandidate:
    """A charge detected by the enrichment call."""

    name: str
    cost: float = 0.0
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    category: SubscriptionCategory = SubscriptionCategory.OTHER
    renewal_date: date | None = None
    confidence: float = 0.5
    cost_source: CostSource = CostSource.ESTIMATED
    is_estimated: bool = True
    charge_type: ChargeType = ChargeType.UNKNOWN
    subscription_status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    status_effective_date: date | None = None
    evidence: str | None = None
    notes: str | None = None
    source_email_count: int = 1
    is_selected: bool = True

    def __post_init__(self) -> None:
        self.confidence = min(1.0, max(0.0, self.confidence))

    @property
    def confidence_label(self) -> str:
        if self.confidence >= 0.9:
            return "High"
        if self.confidence >= 0.7:
            return "Medium"
        return "Low"

    @property
    def cost_source_label(self) -> str:
        return "Estimated" if self.is_estimated else "Extracted"


@dataclass(frozen=True)
class LifecycleResult:
    status: SubscriptionStatus
    effective_date: datetime | date | None
    confidence: float
    reactivated: bool = False


# --- Quality telemetry ---


@dataclass
class ScanQualityEntry:
    """One logged prediction: a single candidate from a single scan.

    The outcome fields start empty and are patched once the candidate has been
    accepted or rejected downstream.
    """

    scan_id: str
    timestamp: datetime
    service_name: str
    predicted_charge_type: ChargeType
    predicted_status: SubscriptionStatus
    ai_confidence: float
    lifecycle_confidence: float | None
    has_cancel_signal_subject: bool = False
    has_cancel_signal_snippet: bool = False
    has_cancel_signal_body: bool = False
    has_billing_signal: bool = False
    was_existing_subscription: bool = False
    outcome: Outcome | None = None
    resulting_status: str | None = None
    was_reactivation: bool | None = None

    def to_dict(self) -> dict:
        """Encode as a JSON-compatible dict (one JSON-lines record)."""
        return {
            "scan_id": self.scan_id,
            "timestamp": self.timestamp.isoformat(),
            "service_name": self.service_name,
            "predicted_charge_type": self.predicted_charge_type.value,
            "predicted_status": self.predicted_status.value,
            "ai_confidence": self.ai_confidence,
            "lifecycle_confidence": self.lifecycle_confidence,
            "has_cancel_signal_subject": self.has_cancel_signal_subject,
            "has_cancel_signal_snippet": self.has_cancel_signal_snippet,
            "has_cancel_signal_body": self.has_cancel_signal_body,
            "has_billing_signal": self.has_billing_signal,
            "was_existing_subscription": self.was_existing_subscription,
            "outcome": self.outcome.value if self.outcome else None,
            "resulting_status": self.resulting_status,
            "was_reactivation": self.was_reactivation,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ScanQualityEntry:
        """Decode a JSON-lines record. Raises KeyError/ValueError on bad input."""
        outcome = data.get("outcome")
        lifecycle_confidence = data.get("lifecycle_confidence")
        return cls(
            scan_id=data["scan_id"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            service_name=data["service_name"],
            predicted_charge_type=ChargeType(data["predicted_charge_type"]),
            predicted_status=SubscriptionStatus(data["predicted_status"]),
            ai_confidence=float(data["ai_confidence"]),
            lifecycle_confidence=(
                float(lifecycle_confidence) if lifecycle_confidence is not None else None
            ),
            has_cancel_signal_subject=bool(data.get("has_cancel_signal_subject", False)),
            has_cancel_signal_snippet=bool(data.get("has_cancel_signal_snippet", False)),
            has_cancel_signal_body=bool(data.get("has_cancel_signal_body", False)),
            has_billing_signal=bool(data.get("has_billing_signal", False)),
            was_existing_subscription=bool(data.get("was_existing_subscription", False)),
            outcome=Outcome(outcome) if outcome else None,
            resulting_status=data.get("resulting_status"),
            was_reactivation=data.get("was_reactivation"),
        )


@dataclass(frozen=True)
class WeeklyQualityMetrics:
    period_start: datetime
    period_end: datetime
    total_candidates: int = 0
    cancel_predictions: int = 0
    cancel_selected: int = 0
    cancel_ignored: int = 0
    reactivations: int = 0
    unknown_status_count: int = 0
    unknown_type_count: int = 0
    body_only_cancel_count: int = 0

    @property
    def cancel_outcomes(self) -> int:
        return self.cancel_selected + self.cancel_ignored

    @property
    def cancel_precision_proxy(self) -> float:
        if self.cancel_outcomes == 0:
            return 1.0
        return self.cancel_selected / self.cancel_outcomes

    @property
    def false_positive_proxy(self) -> float:
        if self.total_candidates == 0:
            return 0.0
        return self.cancel_ignored / self.total_candidates

    @property
    def unknown_rate(self) -> float:
        if self.total_candidates == 0:
            return 0.0
        return (self.unknown_type_count + self.unknown_status_count) / self.total_candidates


@dataclass(frozen=True)
class QualityAlert:
    type: AlertType
    message: str
    metric: float
    threshold: float
