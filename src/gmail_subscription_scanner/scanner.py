"""Scan orchestration - search, fetch, group by sender, enrich, deduplicate."""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import Protocol

from .candidates import deduplicate_candidates, names_match, normalize_name, parse_enrichment_response
from .config import ScanConfig
from .constants import (
    AUTO_DESELECT_CONFIDENCE,
    BILLING_EVENT_THRESHOLD,
    CANCEL_SIGNAL_THRESHOLD,
    SENDER_CAP,
    TIMELINE_LIMIT,
)
from .enrichment import build_sender_summary
from .extractor import detect_processor, extract_all_amounts, extract_amounts, parse_sender
from .lifecycle import is_reactivation, resolve_lifecycle
from .models import (
    AmountSource,
    EmailMetadata,
    ExtractedAmount,
    LifecycleResult,
    ScanQualityEntry,
    SenderSummary,
    SubscriptionCandidate,
    SubscriptionStatus,
    TimelineEmail,
)
from .quality_log import QualityLog
from .scorer import (
    billing_signal_score,
    detect_cancellation_signal,
    needs_body_fetch,
    sender_lifecycle_score,
    validate_charge_type,
)

logger = logging.getLogger(__name__)

VIA_PREFIX = "via:"


class ScanError(Exception):
    """A collaborator failed and the scan cannot produce results."""


class Mailbox(Protocol):
    def search(self, query: str, max_results: int | None = None) -> list[str]: ...

    def fetch_metadata(self, message_ids: list[str]) -> list[EmailMetadata]: ...

    def fetch_latest_body(self, domain: str) -> str | None: ...


class Enricher(Protocol):
    def enrich(self, summary: str, existing_names: list[str]) -> str: ...


def build_search_queries(lookback_months: int) -> list[str]:
    """Gmail search queries for billing, lifecycle and refund mail."""
    window = f"newer_than:{lookback_months}m"
    return [
        f"subject:(receipt OR invoice OR payment OR billing) {window}",
        f"subject:(subscription OR renewal OR recurring OR membership) {window}",
        f'subject:(charged OR "amount due" OR "auto-pay" OR "direct debit") {window}',
        f'subject:("top up" OR credits OR "usage" OR tokens OR prepaid) {window}',
        f"subject:(refund OR reversal OR chargeback) {window}",
        f'subject:(cancel OR cancelled OR canceled OR unsubscribe OR "subscription ended") {window}',
    ]


@dataclass(frozen=True)
class _ParsedEmail:
    group_key: str
    email_domain: str
    display_name: str
    email: EmailMetadata
    amounts: list[ExtractedAmount]
    billing_score: float


def _parse_email(email: EmailMetadata) -> _ParsedEmail | None:
    display_name, domain = parse_sender(email.sender)
    if not domain:
        return None

    group_key = domain
    split = detect_processor(domain, email.subject)
    if split.is_processor and split.service_name:
        group_key = f"{VIA_PREFIX}{split.service_name.lower()}"
        display_name = split.service_name

    return _ParsedEmail(
        group_key=group_key,
        email_domain=domain,
        display_name=display_name,
        email=email,
        amounts=extract_all_amounts(email.subject, email.snippet),
        billing_score=billing_signal_score(email.subject, email.snippet),
    )


def _summarize(key: str, group: list[_ParsedEmail], timeline_limit: int) -> SenderSummary:
    names = Counter(p.display_name for p in group if p.display_name)
    best_name = names.most_common(1)[0][0] if names else key

    is_split = key.startswith(VIA_PREFIX)
    display_domain = key[len(VIA_PREFIX):] if is_split else key
    query_domain = group[0].email_domain if is_split else display_domain

    chronological = sorted(group, key=lambda p: p.email.date)
    latest = chronological[-1].email

    return SenderSummary(
        sender_key=key,
        sender_name=best_name,
        sender_domain=display_domain,
        query_domain=query_domain,
        email_count=len(group),
        amounts=sorted({a.value for p in group for a in p.amounts}),
        latest_subject=latest.subject,
        latest_date=latest.date,
        latest_snippet=latest.snippet,
        billing_score=max(p.billing_score for p in group),
        recent_emails=[
            TimelineEmail(date=p.email.date, subject=p.email.subject, snippet=p.email.snippet)
            for p in chronological[-timeline_limit:]
        ],
    )


def group_by_sender(
    emails: Iterable[EmailMetadata],
    cap: int = SENDER_CAP,
    timeline_limit: int = TIMELINE_LIMIT,
) -> list[SenderSummary]:
    """Group emails by resolved sender and rank the groups by evidence strength.

    Emails whose From header yields no domain are dropped. Groups are ordered
    by email count (ties broken by cancellation and billing signal strength)
    and truncated to *cap* entries.
    """
    groups: dict[str, list[_ParsedEmail]] = {}
    for email in emails:
        parsed = _parse_email(email)
        if parsed is None:
            logger.debug("Dropping message %s: no sender domain", email.message_id)
            continue
        groups.setdefault(parsed.group_key, []).append(parsed)

    summaries = [_summarize(key, group, timeline_limit) for key, group in groups.items()]
    summaries.sort(
        key=lambda s: (-s.email_count, -sender_lifecycle_score(s), -s.billing_score)
    )
    return summaries[:cap]


def find_sender(senders: list[SenderSummary], name: str) -> SenderSummary | None:
    return next((s for s in senders if names_match(s.sender_name, name)), None)


def _as_date(value: date | datetime | None) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    return value


class SubscriptionScanner:
    """Runs one scan over injected mailbox and enrichment collaborators.

    Stages run sequentially and share nothing but the data passed between
    them. Callers must not run two scans on the same instance concurrently.
    """

    def __init__(
        self,
        mailbox: Mailbox,
        enricher: Enricher,
        config: ScanConfig | None = None,
        quality_log: QualityLog | None = None,
    ) -> None:
        self.mailbox = mailbox
        self.enricher = enricher
        self.config = config or ScanConfig()
        self.quality_log = quality_log
        self.last_scan_id: str | None = None

    def scan(self, existing_names: Iterable[str] = ()) -> list[SubscriptionCandidate]:
        """Run the full pipeline and return deduplicated candidates."""
        existing = list(existing_names)
        scan_id = uuid.uuid4().hex
        self.last_scan_id = scan_id

        message_ids = self._search()
        logger.info("Found %d candidate messages", len(message_ids))
        if not message_ids:
            return []

        emails = self._fetch_metadata(message_ids)
        logger.info("Fetched metadata for %d messages", len(emails))
        if not emails:
            return []

        senders = group_by_sender(emails, cap=self.config.sender_cap)
        logger.info("Grouped into %d senders", len(senders))
        if not senders:
            return []

        self._fetch_bodies(senders)

        candidates = self._enrich(senders, existing)
        logger.info("Enrichment returned %d candidates", len(candidates))

        lifecycles: dict[str, LifecycleResult] = {}
        checked = [self._apply_local_evidence(c, senders, lifecycles) for c in candidates]

        deduped = deduplicate_candidates(checked, existing)
        results = [
            replace(c, is_selected=False)
            if c.is_estimated and c.confidence < AUTO_DESELECT_CONFIDENCE
            else c
            for c in deduped
            if c.cost > 0 or c.subscription_status is not SubscriptionStatus.ACTIVE
        ]
        logger.info("After dedup and filtering: %d candidates", len(results))

        if self.quality_log is not None:
            self._log_quality(scan_id, results, senders, lifecycles, existing)

        return results

    # --- stages ---

    def _search(self) -> list[str]:
        unique: dict[str, None] = {}
        for query in build_search_queries(self.config.lookback_months):
            try:
                ids = self.mailbox.search(query, max_results=self.config.max_messages)
            except Exception as exc:  # noqa: BLE001
                raise ScanError(f"Mailbox search failed: {exc}") from exc
            logger.debug("Query returned %d messages: %s", len(ids), query[:60])
            unique.update(dict.fromkeys(ids))
            if len(unique) >= self.config.max_messages:
                break
        return list(unique)[: self.config.max_messages]

    def _fetch_metadata(self, message_ids: list[str]) -> list[EmailMetadata]:
        try:
            return self.mailbox.fetch_metadata(message_ids)
        except Exception as exc:  # noqa: BLE001
            raise ScanError(f"Fetching message metadata failed: {exc}") from exc

    def _fetch_bodies(self, senders: list[SenderSummary]) -> None:
        """Fetch the latest body for high-signal senders that have no amount."""
        targets = [
            s for s in senders
            if needs_body_fetch(s.email_count, s.amounts, s.billing_score)
        ][: self.config.max_body_fetches]

        for sender in targets:
            try:
                body = self.mailbox.fetch_latest_body(sender.query_domain)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Body fetch for %s failed: %s", sender.query_domain, exc)
                continue
            if not body:
                continue

            sender.body_text = body
            new_values = {a.value for a in extract_amounts(body, AmountSource.BODY)}
            if new_values:
                sender.amounts = sorted(set(sender.amounts) | new_values)
                logger.debug("Body of %s added amounts %s", sender.sender_name, sorted(new_values))
            if not sender.sender_key.startswith(VIA_PREFIX) and sender.recent_emails:
                sender.recent_emails[-1] = replace(sender.recent_emails[-1], body_excerpt=body)

    def _enrich(self, senders: list[SenderSummary], existing: list[str]) -> list[SubscriptionCandidate]:
        summary = build_sender_summary(senders)
        try:
            raw = self.enricher.enrich(summary, existing)
        except Exception as exc:  # noqa: BLE001
            raise ScanError(f"Enrichment failed: {exc}") from exc

        result = parse_enrichment_response(raw)
        if not result.ok:
            logger.warning("Ignoring enrichment response: %s", result.error)
        return result.candidates

    def _apply_local_evidence(
        self,
        candidate: SubscriptionCandidate,
        senders: list[SenderSummary],
        lifecycles: dict[str, LifecycleResult],
    ) -> SubscriptionCandidate:
        """Validate the charge type and resolve the lifecycle from the sender's emails."""
        sender = find_sender(senders, candidate.name)
        if sender is None:
            return candidate

        charge_type, type_confidence = validate_charge_type(
            candidate.charge_type,
            sender.latest_subject,
            sender.latest_snippet,
            sender.body_text,
        )
        confidence = candidate.confidence
        if type_confidence < confidence:
            confidence = (confidence + type_confidence) / 2

        lifecycle = resolve_lifecycle(
            sender.recent_emails,
            candidate.subscription_status,
            candidate.status_effective_date,
        )
        if sender.recent_emails:
            lifecycles[normalize_name(candidate.name)] = lifecycle

        return replace(
            candidate,
            charge_type=charge_type,
            confidence=confidence,
            subscription_status=lifecycle.status,
            status_effective_date=_as_date(lifecycle.effective_date),
        )

    def _log_quality(
        self,
        scan_id: str,
        candidates: list[SubscriptionCandidate],
        senders: list[SenderSummary],
        lifecycles: dict[str, LifecycleResult],
        existing: list[str],
    ) -> None:
        now = datetime.now(timezone.utc)
        entries = []
        for candidate in candidates:
            sender = find_sender(senders, candidate.name)
            lifecycle = lifecycles.get(normalize_name(candidate.name))
            entries.append(
                ScanQualityEntry(
                    scan_id=scan_id,
                    timestamp=now,
                    service_name=candidate.name,
                    predicted_charge_type=candidate.charge_type,
                    predicted_status=candidate.subscription_status,
                    ai_confidence=candidate.confidence,
                    lifecycle_confidence=lifecycle.confidence if lifecycle else None,
                    has_cancel_signal_subject=_any_cancel(sender, "subject"),
                    has_cancel_signal_snippet=_any_cancel(sender, "snippet"),
                    has_cancel_signal_body=_any_cancel(sender, "body"),
                    has_billing_signal=(
                        sender is not None and sender.billing_score >= BILLING_EVENT_THRESHOLD
                    ),
                    was_existing_subscription=any(names_match(candidate.name, n) for n in existing),
                    was_reactivation=is_reactivation(lifecycle) if lifecycle else None,
                )
            )
        self.quality_log.append_batch(entries)
        logger.debug("Logged %d quality entries for scan %s", len(entries), scan_id)


def _any_cancel(sender: SenderSummary | None, field_name: str) -> bool:
    """True if any of the sender's emails carries a cancellation signal in one field."""
    if sender is None:
        return False

    texts: list[str] = []
    for email in sender.recent_emails:
        if field_name == "subject":
            texts.append(email.subject)
        elif field_name == "snippet":
            texts.append(email.snippet)
        elif email.body_excerpt:
            texts.append(email.body_excerpt)
    if field_name == "body" and sender.body_text:
        texts.append(sender.body_text)

    return any(
        detect_cancellation_signal("", "", text) >= CANCEL_SIGNAL_THRESHOLD
        for text in texts
    )
