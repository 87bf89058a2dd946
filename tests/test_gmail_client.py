"""Tests for the Gmail client helpers and mailbox adapter."""

import base64
from datetime import datetime, timezone

from gmail_subscription_scanner.gmail_client import (
    GmailMailbox,
    extract_body_text,
    parse_date_header,
)


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


class _Request:
    def __init__(self, response):
        self.response = response

    def execute(self):
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


class _Batch:
    def __init__(self):
        self.items = []

    def add(self, request, callback):
        self.items.append((request, callback))

    def execute(self):
        for request, callback in self.items:
            try:
                callback(None, request.execute(), None)
            except Exception as exc:  # noqa: BLE001
                callback(None, None, exc)


class _Messages:
    def __init__(self, pages, messages):
        self.pages = pages
        self.messages = messages
        self.list_calls = []

    def list(self, **kwargs):
        self.list_calls.append(kwargs)
        return _Request(self.pages[kwargs.get("pageToken")])

    def get(self, userId, id, **kwargs):
        return _Request(self.messages[id])


class FakeService:
    def __init__(self, pages=None, messages=None):
        self._messages = _Messages(pages or {None: {}}, messages or {})

    def users(self):
        return self

    def messages(self):
        return self._messages

    def new_batch_http_request(self):
        return _Batch()


# --- parse_date_header ---


def test_parse_rfc2822_date():
    parsed = parse_date_header("Tue, 04 Mar 2025 10:15:00 -0500")
    assert parsed == datetime(2025, 3, 4, 15, 15, tzinfo=timezone.utc)


def test_parse_iso_date_without_zone_assumes_utc():
    assert parse_date_header("2025-03-04T10:15:00") == datetime(2025, 3, 4, 10, 15, tzinfo=timezone.utc)


def test_parse_garbage_date_falls_back_to_now():
    before = datetime.now(timezone.utc)
    parsed = parse_date_header("sometime last week")
    assert parsed.tzinfo is not None
    assert parsed >= before


# --- extract_body_text ---


def test_extract_body_prefers_plain_text():
    payload = {
        "mimeType": "multipart/alternative",
        "parts": [
            {"mimeType": "text/html", "body": {"data": _b64("<p>HTML $5.00</p>")}},
            {"mimeType": "text/plain", "body": {"data": _b64("Plain $5.00")}},
        ],
    }
    assert extract_body_text(payload) == "Plain $5.00"


def test_extract_body_converts_nested_html():
    payload = {
        "mimeType": "multipart/mixed",
        "parts": [
            {
                "mimeType": "multipart/alternative",
                "parts": [{"mimeType": "text/html", "body": {"data": _b64("<b>Total</b> $7.00")}}],
            },
            {"mimeType": "application/pdf", "body": {"attachmentId": "a1"}},
        ],
    }
    text = extract_body_text(payload)
    assert "Total" in text
    assert "$7.00" in text
    assert "<b>" not in text


def test_extract_body_without_text_parts():
    assert extract_body_text({"mimeType": "image/png", "body": {}}) is None


# --- GmailMailbox ---


def test_search_paginates_and_caps():
    service = FakeService(
        pages={
            None: {"messages": [{"id": "1"}, {"id": "2"}], "nextPageToken": "p2"},
            "p2": {"messages": [{"id": "3"}, {"id": "4"}]},
        }
    )
    mailbox = GmailMailbox(service, include_spam_trash=True)

    assert mailbox.search("subject:receipt") == ["1", "2", "3", "4"]
    assert mailbox.search("subject:receipt", max_results=3) == ["1", "2", "3"]
    first_call = service.messages().list_calls[0]
    assert first_call["q"] == "subject:receipt"
    assert first_call["includeSpamTrash"] is True


def test_fetch_metadata_skips_failures_and_empty_subjects():
    def message(subject, sender="Netflix <info@netflix.com>"):
        headers = [
            {"name": "From", "value": sender},
            {"name": "Date", "value": "Tue, 04 Mar 2025 10:15:00 +0000"},
        ]
        if subject:
            headers.append({"name": "Subject", "value": subject})
        return {"snippet": "Amount $15.49", "payload": {"headers": headers}}

    service = FakeService(
        messages={
            "ok": message("Your receipt"),
            "blank": message(""),
            "broken": RuntimeError("404"),
        }
    )
    progress = []
    mailbox = GmailMailbox(service, on_batch=lambda done, total: progress.append((done, total)))

    [email] = mailbox.fetch_metadata(["ok", "blank", "broken"])

    assert email.message_id == "ok"
    assert email.sender == "Netflix <info@netflix.com>"
    assert email.subject == "Your receipt"
    assert email.snippet == "Amount $15.49"
    assert email.date == datetime(2025, 3, 4, 10, 15, tzinfo=timezone.utc)
    assert progress == [(1, 1)]


def test_fetch_latest_body_truncates():
    service = FakeService(
        pages={None: {"messages": [{"id": "m1"}]}},
        messages={"m1": {"payload": {"mimeType": "text/plain", "body": {"data": _b64("x" * 5000)}}}},
    )
    mailbox = GmailMailbox(service, lookback_months=6)

    body = mailbox.fetch_latest_body("vercel.com")

    assert body == "x" * 2000
    assert service.messages().list_calls[0]["q"] == "from:vercel.com newer_than:6m"


def test_fetch_latest_body_no_messages():
    assert GmailMailbox(FakeService()).fetch_latest_body("vercel.com") is None
