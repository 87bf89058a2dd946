"""Parsing, name normalization and deduplication of subscription candidates."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator

from .constants import CORPORATE_SUFFIXES, DEFAULT_CONFIDENCE
from .models import (
    BillingCycle,
    ChargeType,
    CostSource,
    SubscriptionCandidate,
    SubscriptionCategory,
    SubscriptionStatus,
)

logger = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r"[^\w ]|_")
_MULTI_SPACE_RE = re.compile(r" {2,}")


# --- Name normalization ---


def normalize_name(name: str) -> str:
    """Normalize a service name for matching.

    Lowercases, drops corporate suffixes ("Inc", "LLC", "Anthropic, PBC"),
    strips remaining punctuation and collapses whitespace.
    """
    result = name.lower().strip()

    for suffix in CORPORATE_SUFFIXES:
        if result.endswith(f" {suffix}"):
            result = result[: -(len(suffix) + 1)].strip()
        if result.endswith(f", {suffix}"):
            result = result[: -(len(suffix) + 2)].strip()

    result = _NON_ALNUM_RE.sub("", result)
    result = _MULTI_SPACE_RE.sub(" ", result)
    return result.strip()


def names_match(a: str, b: str) -> bool:
    """True if two names are equal or one contains the other after normalization."""
    na = normalize_name(a)
    nb = normalize_name(b)
    if not na or not nb:
        return False
    return na == nb or na in nb or nb in na


# --- Enrichment output decoding ---


class EnrichmentRecord(BaseModel):
    """One merchant object from the enrichment response.

    Every field is optional; missing or malformed values fall back to the
    field default instead of rejecting the whole record.
    """

    model_config = ConfigDict(extra="ignore")

    service_name: str = ""
    cost: float = 0.0
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    category: SubscriptionCategory = SubscriptionCategory.OTHER
    renewal_date: date | None = None
    confidence: float = DEFAULT_CONFIDENCE
    notes: str | None = None
    charge_type: ChargeType = ChargeType.UNKNOWN
    subscription_status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    status_effective_date: date | None = None
    cost_source: CostSource = CostSource.ESTIMATED
    is_estimated: bool | None = None
    evidence: str | None = None

    @field_validator("*", mode="wrap")
    @classmethod
    def _default_on_error(cls, value: Any, handler, info: ValidationInfo) -> Any:
        try:
            return handler(value)
        except ValidationError:
            return cls.model_fields[info.field_name].default

    def to_candidate(self) -> SubscriptionCandidate:
        is_estimated = self.is_estimated
        if is_estimated is None:
            is_estimated = self.cost_source is CostSource.ESTIMATED
        return SubscriptionCandidate(
            name=self.service_name.strip(),
            cost=self.cost,
            billing_cycle=self.billing_cycle,
            category=self.category,
            renewal_date=self.renewal_date,
            confidence=self.confidence,
            cost_source=self.cost_source,
            is_estimated=is_estimated,
            charge_type=self.charge_type,
            subscription_status=self.subscription_status,
            status_effective_date=self.status_effective_date,
            evidence=self.evidence,
            notes=self.notes,
        )


@dataclass
class EnrichmentParseResult:
    """Candidates decoded from an enrichment response, or the reason there are none."""

    candidates: list[SubscriptionCandidate] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = [line for line in cleaned.split("\n")[1:] if not line.strip().startswith("```")]
        cleaned = "\n".join(lines)
    return cleaned


def parse_candidates(records: Iterable[Any]) -> list[SubscriptionCandidate]:
    """Decode enrichment records, skipping unusable ones."""
    candidates: list[SubscriptionCandidate] = []
    for raw in records:
        if not isinstance(raw, dict):
            logger.debug("Skipping non-object enrichment record: %r", raw)
            continue
        record = EnrichmentRecord.model_validate(raw)
        if not record.service_name.strip():
            logger.debug("Skipping enrichment record without service_name")
            continue
        candidates.append(record.to_candidate())
    return candidates


def parse_enrichment_response(raw: str) -> EnrichmentParseResult:
    """Parse the enrichment JSON text into candidates.

    Expects ``{"subscriptions": [...]}`` (optionally inside markdown fences).
    Any other shape yields no candidates and an error message; this never
    raises.
    """
    try:
        payload = json.loads(_strip_fences(raw or ""))
    except json.JSONDecodeError as exc:
        logger.warning("Enrichment response is not valid JSON: %s", exc)
        return EnrichmentParseResult(error=f"invalid JSON: {exc}")

    if not isinstance(payload, dict) or not isinstance(payload.get("subscriptions"), list):
        logger.warning("Enrichment response has no 'subscriptions' list")
        return EnrichmentParseResult(error="missing 'subscriptions' list")

    return EnrichmentParseResult(candidates=parse_candidates(payload["subscriptions"]))


# --- Deduplication ---


def _dedup_key(candidate: SubscriptionCandidate) -> tuple[str, ChargeType]:
    return (normalize_name(candidate.name), candidate.charge_type)


def deduplicate_candidates(
    candidates: list[SubscriptionCandidate],
    existing_names: Iterable[str] = (),
) -> list[SubscriptionCandidate]:
    """Drop already-tracked subscriptions and merge duplicates.

    Recurring and unknown candidates that are still active and match an
    existing name are removed. Lifecycle changes (any non-active status) and
    non-recurring charges always pass. Survivors are merged per
    (normalized name, charge type): the most confident one is kept, with the
    group's email count and most recent renewal date. Sorted by confidence,
    highest first.
    """
    normalized_existing = [normalize_name(name) for name in existing_names]

    def is_tracked(candidate: SubscriptionCandidate) -> bool:
        if not (candidate.charge_type.is_recurring or candidate.charge_type is ChargeType.UNKNOWN):
            return False
        if candidate.subscription_status is not SubscriptionStatus.ACTIVE:
            return False
        normalized = normalize_name(candidate.name)
        return any(names_match(normalized, existing) for existing in normalized_existing)

    groups: dict[tuple[str, ChargeType], list[SubscriptionCandidate]] = {}
    for candidate in candidates:
        if is_tracked(candidate):
            logger.debug("Skipping already tracked candidate %s", candidate.name)
            continue
        groups.setdefault(_dedup_key(candidate), []).append(candidate)

    merged: list[SubscriptionCandidate] = []
    for group in groups.values():
        best = max(group, key=lambda c: c.confidence)
        renewal_dates = [c.renewal_date for c in group if c.renewal_date is not None]
        merged.append(
            replace(
                best,
                source_email_count=sum(c.source_email_count for c in group),
                renewal_date=max(renewal_dates) if renewal_dates else best.renewal_date,
            )
        )

    merged.sort(key=lambda c: c.confidence, reverse=True)
    return merged
