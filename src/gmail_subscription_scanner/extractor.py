"""Field extraction from raw email headers, snippets and bodies."""

from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup

from .constants import (
    ISO_CODES,
    MAX_AMOUNT,
    PROCESSOR_DOMAINS,
    PROCESSOR_NAME_MAX_LENGTH,
    SYMBOL_TO_CURRENCY,
)
from .models import AmountSource, ExtractedAmount, ProcessorSplit

logger = logging.getLogger(__name__)

_ANGLE_FROM_RE = re.compile(r"([^<]*)<[^@]+@([^>]+)>")
_PLAIN_FROM_RE = re.compile(r"[^@]+@(.+)")

_SYMBOL_AMOUNT_RE = re.compile(r"([$€£¥₹₽₴]|R\$|A\$|C\$|zł)\s?([\d,]+(?:\.\d{1,2})?)")
_SUFFIX_AMOUNT_RE = re.compile(
    r"\b(\d+(?:\.\d{1,2})?)\s+(" + "|".join(ISO_CODES) + r")\b"
)

_PROCESSOR_SUBJECT_PATTERNS = [
    re.compile(
        r"(?:receipt|invoice|payment|charge).*(?:from|for|to)\s+(.+?)(?:\s*[-#|]|\s*$)",
        re.IGNORECASE,
    ),
    re.compile(r"^(.+?)\s+(?:receipt|invoice|payment)", re.IGNORECASE),
]

_HORIZONTAL_SPACE_RE = re.compile(r"[ \t\xa0]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def parse_sender(from_value: str) -> tuple[str, str]:
    """Parse a From header into (display name, sender domain).

    Handles formats like:
      "Netflix <info@netflix.com>" -> ("Netflix", "netflix.com")
      "billing@stripe.com"         -> ("Stripe", "stripe.com")
      "not an address"             -> ("", "")

    An empty domain means the header could not be attributed to a sender.
    """
    if not from_value:
        return ("", "")

    m = _ANGLE_FROM_RE.search(from_value)
    if m:
        name = m.group(1).strip().strip('"').strip()
        return (name, m.group(2).strip().lower())

    m = _PLAIN_FROM_RE.search(from_value)
    if m:
        domain = m.group(1).strip().lower()
        first_label = domain.split(".")[0]
        return (first_label.capitalize(), domain)

    logger.debug("Unparseable From header: %r", from_value)
    return ("", "")


def detect_processor(domain: str, subject: str) -> ProcessorSplit:
    """Detect payment-processor mail and recover the real merchant from the subject."""
    processor_name = PROCESSOR_DOMAINS.get(domain.lower())
    if processor_name is None:
        return ProcessorSplit(is_processor=False)

    for pattern in _PROCESSOR_SUBJECT_PATTERNS:
        m = pattern.search(subject)
        if not m:
            continue
        extracted = m.group(1).strip().strip("\"'")
        if extracted and len(extracted) < PROCESSOR_NAME_MAX_LENGTH:
            return ProcessorSplit(
                is_processor=True,
                processor_name=processor_name,
                service_name=extracted,
            )

    return ProcessorSplit(is_processor=True, processor_name=processor_name)


def _to_amount(raw: str) -> float | None:
    try:
        value = float(raw.replace(",", ""))
    except ValueError:
        return None
    if value <= 0 or value >= MAX_AMOUNT:
        return None
    return value


def extract_amounts(text: str, source: AmountSource) -> list[ExtractedAmount]:
    """Extract every amount with its currency from *text*, tagged with *source*."""
    if not text:
        return []

    results: list[ExtractedAmount] = []

    for m in _SYMBOL_AMOUNT_RE.finditer(text):
        value = _to_amount(m.group(2))
        if value is not None:
            currency = SYMBOL_TO_CURRENCY.get(m.group(1), "USD")
            results.append(ExtractedAmount(value=value, currency=currency, source=source))

    for m in _SUFFIX_AMOUNT_RE.finditer(text):
        value = _to_amount(m.group(1))
        if value is not None:
            results.append(ExtractedAmount(value=value, currency=m.group(2), source=source))

    return results


def extract_all_amounts(
    subject: str,
    snippet: str,
    body_text: str | None = None,
) -> list[ExtractedAmount]:
    """Extract amounts from all fields, deduplicated by value.

    When the same value appears in several fields the occurrence from the
    highest-priority source wins (subject > snippet > body). The result is
    ordered by source priority.
    """
    found = extract_amounts(subject, AmountSource.SUBJECT)
    found += extract_amounts(snippet, AmountSource.SNIPPET)
    if body_text:
        found += extract_amounts(body_text, AmountSource.BODY)

    seen: dict[float, ExtractedAmount] = {}
    for amount in found:
        existing = seen.get(amount.value)
        if existing is None or amount.source.priority < existing.source.priority:
            seen[amount.value] = amount

    return sorted(seen.values(), key=lambda a: a.source.priority)


def strip_html(html: str) -> str:
    """Convert an HTML body to plain text suitable for keyword and amount matching."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "head"]):
        tag.decompose()
    text = soup.get_text("\n")
    text = _HORIZONTAL_SPACE_RE.sub(" ", text)
    lines = [line.strip() for line in text.split("\n")]
    text = _BLANK_LINES_RE.sub("\n\n", "\n".join(lines))
    return text.strip()
