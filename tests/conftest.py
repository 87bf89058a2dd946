"""Shared fixtures for tests."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from gmail_subscription_scanner.models import (
    ChargeType,
    EmailMetadata,
    ScanQualityEntry,
    SubscriptionStatus,
    TimelineEmail,
)
from gmail_subscription_scanner.quality_log import QualityLog

BASE_DATE = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def day(n: int) -> datetime:
    """BASE_DATE shifted by n days."""
    return BASE_DATE + timedelta(days=n)


def make_email(
    message_id: str,
    sender: str,
    subject: str,
    snippet: str = "",
    on_day: int = 0,
) -> EmailMetadata:
    return EmailMetadata(
        message_id=message_id,
        sender=sender,
        subject=subject,
        date=day(on_day),
        snippet=snippet,
    )


def make_timeline(*items: tuple[int, str]) -> list[TimelineEmail]:
    return [TimelineEmail(date=day(n), subject=subject, snippet="") for n, subject in items]


def make_entry(**overrides) -> ScanQualityEntry:
    fields = {
        "scan_id": "scan-1",
        "timestamp": BASE_DATE,
        "service_name": "Netflix",
        "predicted_charge_type": ChargeType.RECURRING_SUBSCRIPTION,
        "predicted_status": SubscriptionStatus.ACTIVE,
        "ai_confidence": 0.9,
        "lifecycle_confidence": 0.6,
    }
    fields.update(overrides)
    return ScanQualityEntry(**fields)


class FakeMailbox:
    """In-memory mailbox: every query returns all messages."""

    def __init__(self, emails: list[EmailMetadata], bodies: dict[str, str] | None = None) -> None:
        self.emails = {e.message_id: e for e in emails}
        self.bodies = bodies or {}
        self.queries: list[str] = []
        self.body_requests: list[str] = []

    def search(self, query: str, max_results: int | None = None) -> list[str]:
        self.queries.append(query)
        ids = list(self.emails)
        return ids[:max_results] if max_results else ids

    def fetch_metadata(self, message_ids: list[str]) -> list[EmailMetadata]:
        return [self.emails[i] for i in message_ids if i in self.emails]

    def fetch_latest_body(self, domain: str) -> str | None:
        self.body_requests.append(domain)
        return self.bodies.get(domain)


class FakeEnricher:
    """Returns a canned enrichment response and records what it was sent."""

    def __init__(self, subscriptions: list[dict] | None = None, raw: str | None = None) -> None:
        self.raw = raw if raw is not None else json.dumps({"subscriptions": subscriptions or []})
        self.summaries: list[str] = []
        self.existing: list[list[str]] = []

    def enrich(self, summary: str, existing_names: list[str]) -> str:
        self.summaries.append(summary)
        self.existing.append(list(existing_names))
        return self.raw


@pytest.fixture
def linear_receipts() -> list[EmailMetadata]:
    return [
        make_email(f"lin_{i}", "Stripe <billing@stripe.com>", f"Receipt from Linear #{i}", "You paid $10", on_day=i)
        for i in (1, 2, 3)
    ]


@pytest.fixture
def netflix_emails() -> list[EmailMetadata]:
    return [
        make_email("nf_1", "Netflix <info@netflix.com>", "Your Netflix receipt", "Amount: $15.49", on_day=1),
        make_email("nf_2", "Netflix <info@netflix.com>", "Your Netflix receipt", "Amount: $15.49", on_day=31),
    ]


@pytest.fixture
def quality_log(tmp_path) -> QualityLog:
    return QualityLog(tmp_path / "quality.jsonl")
