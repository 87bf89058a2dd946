"""TOML configuration loader for scan settings."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from .constants import (
    CONFIG_PATH,
    DEFAULT_LOOKBACK_MONTHS,
    DEFAULT_MAX_MESSAGES,
    DEFAULT_MODEL,
    MAX_BODY_FETCHES,
    MAX_LOOKBACK_MONTHS,
    MAX_MAX_MESSAGES,
    MIN_LOOKBACK_MONTHS,
    MIN_MAX_MESSAGES,
    QUALITY_LOG_PATH,
    SENDER_CAP,
)


@dataclass
class ScanConfig:
    max_messages: int = DEFAULT_MAX_MESSAGES
    lookback_months: int = DEFAULT_LOOKBACK_MONTHS
    include_spam_trash: bool = False
    sender_cap: int = SENDER_CAP
    max_body_fetches: int = MAX_BODY_FETCHES


@dataclass
class EnrichmentConfig:
    api_key: str = ""
    model: str = DEFAULT_MODEL


@dataclass
class QualityConfig:
    enabled: bool = True
    log_path: str = str(QUALITY_LOG_PATH)


@dataclass
class AppConfig:
    scan: ScanConfig = field(default_factory=ScanConfig)
    enrichment: EnrichmentConfig = field(default_factory=EnrichmentConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)


def _clamp(value: int, low: int, high: int, fallback: int) -> int:
    """Clamp *value* into [low, high]; zero or non-integers mean "unset"."""
    if not isinstance(value, int) or isinstance(value, bool) or value == 0:
        return fallback
    return min(max(value, low), high)


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if the file doesn't exist. The Anthropic API key
    can come from the ANTHROPIC_API_KEY environment variable.
    """
    raw: dict = {}

    p = Path(path) if path is not None else CONFIG_PATH
    if p.exists():
        with open(p, "rb") as f:
            raw = tomllib.load(f)

    scn = raw.get("scan", {})
    enr = raw.get("enrichment", {})
    qlt = raw.get("quality", {})

    api_key = enr.get("api_key", "") or os.environ.get("ANTHROPIC_API_KEY", "")

    return AppConfig(
        scan=ScanConfig(
            max_messages=_clamp(
                scn.get("max_messages", 0), MIN_MAX_MESSAGES, MAX_MAX_MESSAGES, DEFAULT_MAX_MESSAGES
            ),
            lookback_months=_clamp(
                scn.get("lookback_months", 0),
                MIN_LOOKBACK_MONTHS,
                MAX_LOOKBACK_MONTHS,
                DEFAULT_LOOKBACK_MONTHS,
            ),
            include_spam_trash=bool(scn.get("include_spam_trash", False)),
            sender_cap=_clamp(scn.get("sender_cap", 0), 1, SENDER_CAP, SENDER_CAP),
            max_body_fetches=_clamp(
                scn.get("max_body_fetches", 0), 0, MAX_BODY_FETCHES, MAX_BODY_FETCHES
            ),
        ),
        enrichment=EnrichmentConfig(
            api_key=api_key,
            model=enr.get("model", DEFAULT_MODEL),
        ),
        quality=QualityConfig(
            enabled=bool(qlt.get("enabled", True)),
            log_path=qlt.get("log_path", str(QUALITY_LOG_PATH)),
        ),
    )
