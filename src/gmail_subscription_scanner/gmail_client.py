"""Gmail API client: search, metadata fetch and selective body fetch."""

from __future__ import annotations

import base64
import binascii
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable

from googleapiclient.errors import HttpError
from googleapiclient.http import BatchHttpRequest
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from .constants import (
    BATCH_SIZE,
    BODY_EXCERPT_LIMIT,
    DEFAULT_LOOKBACK_MONTHS,
    METADATA_HEADERS,
    PAGE_SIZE,
)
from .extractor import strip_html
from .models import EmailMetadata

logger = logging.getLogger(__name__)


def _is_retryable_http_error(exc: BaseException) -> bool:
    return isinstance(exc, HttpError) and exc.resp.status in (429, 500, 503)


_retry_transient = retry(
    retry=retry_if_exception(_is_retryable_http_error),
    wait=wait_exponential(multiplier=1, min=1, max=60),
    stop=stop_after_attempt(5),
    reraise=True,
)


@_retry_transient
def _execute(request) -> dict:
    return request.execute()


@_retry_transient
def _execute_batch(batch: BatchHttpRequest) -> None:
    batch.execute()


def parse_date_header(value: str) -> datetime:
    """Parse an RFC 2822 (or ISO 8601) Date header into an aware datetime.

    Unparseable values fall back to the current time so that the message
    still counts as evidence.
    """
    value = (value or "").strip()
    if value:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            try:
                parsed = datetime.fromisoformat(value)
            except ValueError:
                parsed = None
        if parsed is not None:
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
    logger.debug("Unparseable Date header %r, using now", value)
    return datetime.now(timezone.utc)


def _headers(payload: dict) -> dict[str, str]:
    return {h["name"]: h["value"] for h in payload.get("headers", []) if "name" in h and "value" in h}


def _decode_base64url(data: str) -> str | None:
    try:
        padded = data + "=" * (-len(data) % 4)
        return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return None


def extract_body_text(payload: dict) -> str | None:
    """Recursively extract readable text from a Gmail message payload.

    text/plain parts are preferred over HTML; HTML is converted to text.
    """
    mime_type = payload.get("mimeType", "")

    if mime_type in ("text/plain", "text/html"):
        data = payload.get("body", {}).get("data")
        if data:
            decoded = _decode_base64url(data)
            if decoded is not None:
                return strip_html(decoded) if mime_type == "text/html" else decoded

    parts = payload.get("parts", [])
    for part in parts:
        if part.get("mimeType") == "text/plain":
            text = extract_body_text(part)
            if text:
                return text
    for part in parts:
        text = extract_body_text(part)
        if text:
            return text
    return None


class GmailMailbox:
    """Mailbox collaborator backed by the Gmail API."""

    def __init__(
        self,
        service,
        include_spam_trash: bool = False,
        lookback_months: int = DEFAULT_LOOKBACK_MONTHS,
        on_batch: Callable[[int, int], None] | None = None,
    ) -> None:
        self.service = service
        self.include_spam_trash = include_spam_trash
        self.lookback_months = lookback_months
        self.on_batch = on_batch

    def search(self, query: str, max_results: int | None = None) -> list[str]:
        """List message IDs matching the query, handling pagination."""
        ids: list[str] = []
        page_token: str | None = None

        while True:
            kwargs: dict = {
                "userId": "me",
                "q": query,
                "maxResults": PAGE_SIZE,
                "fields": "messages/id,nextPageToken",
            }
            if self.include_spam_trash:
                kwargs["includeSpamTrash"] = True
            if page_token:
                kwargs["pageToken"] = page_token

            resp = _execute(self.service.users().messages().list(**kwargs))
            for msg in resp.get("messages", []):
                ids.append(msg["id"])
                if max_results and len(ids) >= max_results:
                    return ids[:max_results]

            page_token = resp.get("nextPageToken")
            if not page_token:
                break

        return ids

    def fetch_metadata(
        self,
        message_ids: list[str],
        callback: Callable[[int, int], None] | None = None,
    ) -> list[EmailMetadata]:
        """Fetch From/Subject/Date and snippet for messages in batches.

        Messages that fail individually or have no subject are skipped.
        """
        callback = callback or self.on_batch
        results: list[EmailMetadata] = []
        total_batches = (len(message_ids) + BATCH_SIZE - 1) // BATCH_SIZE

        for batch_num in range(total_batches):
            chunk = message_ids[batch_num * BATCH_SIZE:(batch_num + 1) * BATCH_SIZE]
            batch = self.service.new_batch_http_request()

            def _make_callback(msg_id: str):
                def _cb(request_id, response, exception):
                    if exception is not None:
                        logger.debug("Failed to fetch message %s: %s", msg_id, exception)
                        return
                    headers = _headers(response.get("payload", {}))
                    subject = headers.get("Subject", "")
                    if not subject:
                        return
                    results.append(
                        EmailMetadata(
                            message_id=msg_id,
                            sender=headers.get("From", ""),
                            subject=subject,
                            date=parse_date_header(headers.get("Date", "")),
                            snippet=response.get("snippet", ""),
                        )
                    )

                return _cb

            for msg_id in chunk:
                batch.add(
                    self.service.users().messages().get(
                        userId="me",
                        id=msg_id,
                        format="metadata",
                        metadataHeaders=METADATA_HEADERS,
                    ),
                    callback=_make_callback(msg_id),
                )

            _execute_batch(batch)

            if callback:
                callback(batch_num + 1, total_batches)

        return results

    def fetch_latest_body(self, domain: str) -> str | None:
        """Return the plain-text body of the newest message from *domain*."""
        resp = _execute(
            self.service.users().messages().list(
                userId="me",
                q=f"from:{domain} newer_than:{self.lookback_months}m",
                maxResults=1,
            )
        )
        messages = resp.get("messages", [])
        if not messages:
            return None

        message = _execute(
            self.service.users().messages().get(userId="me", id=messages[0]["id"], format="full")
        )
        text = extract_body_text(message.get("payload", {}))
        if not text:
            return None
        return text[:BODY_EXCERPT_LIMIT]
