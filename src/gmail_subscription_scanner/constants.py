"""Constants for Gmail Subscription Scanner."""

from pathlib import Path

# --- Config paths ---
CONFIG_DIR = Path.home() / ".gmail-subscription-scanner"
CREDENTIALS_PATH = CONFIG_DIR / "credentials.json"
TOKEN_PATH = CONFIG_DIR / "token.json"
CONFIG_PATH = CONFIG_DIR / "config.toml"
QUALITY_LOG_PATH = CONFIG_DIR / "scan_quality_log.jsonl"

# --- Gmail API ---
SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]
BATCH_SIZE = 50  # messages per BatchHttpRequest
PAGE_SIZE = 100  # messages per list page
METADATA_HEADERS = ["From", "Subject", "Date"]
BODY_EXCERPT_LIMIT = 2000  # characters kept from a fetched body

# --- Scan defaults ---
DEFAULT_MAX_MESSAGES = 200
MIN_MAX_MESSAGES = 100
MAX_MAX_MESSAGES = 2000
DEFAULT_LOOKBACK_MONTHS = 12
MIN_LOOKBACK_MONTHS = 1
MAX_LOOKBACK_MONTHS = 36
SENDER_CAP = 30  # sender groups sent to enrichment
MAX_BODY_FETCHES = 15
TIMELINE_LIMIT = 10  # per-sender emails kept for lifecycle analysis
SNIPPET_SUMMARY_LIMIT = 120

# --- Enrichment ---
DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
ENRICHMENT_MAX_TOKENS = 4096

# --- Amount extraction ---
MAX_AMOUNT = 100_000
SYMBOL_TO_CURRENCY = {
    "$": "USD",
    "€": "EUR",
    "£": "GBP",
    "¥": "JPY",
    "₹": "INR",
    "₽": "RUB",
    "₴": "UAH",
    "R$": "BRL",
    "A$": "AUD",
    "C$": "CAD",
    "zł": "PLN",
}
ISO_CODES = [
    "USD", "EUR", "GBP", "CAD", "AUD", "JPY", "INR", "UAH",
    "PLN", "BRL", "RUB", "CHF", "SEK", "NOK", "DKK", "NZD",
]

# --- Payment processors ---
PROCESSOR_DOMAINS = {
    "stripe.com": "Stripe",
    "paddle.com": "Paddle",
    "paypal.com": "PayPal",
    "gumroad.com": "Gumroad",
    "fastspring.com": "FastSpring",
    "chargebee.com": "Chargebee",
    "recurly.com": "Recurly",
    "braintreegateway.com": "Braintree",
    "braintreepayments.com": "Braintree",
    "2checkout.com": "2Checkout",
    "lemonsqueezy.com": "Lemon Squeezy",
}
PROCESSOR_NAME_MAX_LENGTH = 50

# --- Billing signal weights ---
BILLING_KEYWORDS = [
    ("receipt", 1.0),
    ("invoice", 1.0),
    ("payment confirmation", 1.0),
    ("payment received", 0.9),
    ("your payment", 0.9),
    ("billing statement", 0.9),
    ("charged", 0.8),
    ("amount due", 0.8),
    ("subscription", 0.7),
    ("renewal", 0.7),
    ("renewed", 0.7),
    ("your plan", 0.6),
    ("membership", 0.6),
    ("recurring", 0.5),
    ("monthly charge", 0.9),
    ("annual charge", 0.9),
    ("auto-pay", 0.7),
    ("autopay", 0.7),
    ("direct debit", 0.7),
    ("recurring payment", 0.8),
]

# --- Charge type signal weights ---
RECURRING_SIGNALS = [
    ("subscription", 0.9), ("renewal", 0.9), ("renewed", 0.9),
    ("recurring", 0.8), ("monthly charge", 0.9), ("annual charge", 0.9),
    ("auto-pay", 0.8), ("autopay", 0.8), ("membership", 0.7),
    ("your plan", 0.6), ("billing period", 0.8), ("next billing", 0.8),
    ("monthly plan", 0.8), ("annual plan", 0.8), ("yearly plan", 0.8),
    ("direct debit", 0.7),
]
TOPUP_SIGNALS = [
    ("top up", 0.9), ("top-up", 0.9), ("topup", 0.9),
    ("credits", 0.7), ("tokens", 0.7), ("usage", 0.6),
    ("pay as you go", 0.8), ("pay-as-you-go", 0.8),
    ("prepaid", 0.7), ("balance", 0.5), ("added funds", 0.8),
    ("api usage", 0.8), ("metered", 0.7),
]
ADDON_SIGNALS = [
    ("add-on", 0.8), ("addon", 0.8), ("add on", 0.8),
    ("one-time", 0.7), ("one time", 0.7), ("single purchase", 0.8),
    ("upgrade", 0.6), ("license", 0.6), ("lifetime", 0.8),
    ("purchased", 0.5),
]
REFUND_SIGNALS = [
    ("refund", 0.95), ("refunded", 0.95), ("reversal", 0.9),
    ("chargeback", 0.9), ("credit applied", 0.8), ("money back", 0.8),
    ("cancelled charge", 0.85), ("returned", 0.6),
]
ANTI_SIGNALS = frozenset({
    "marketing", "newsletter", "promo", "promotion",
    "trial", "free trial", "welcome", "getting started",
    "verify your email", "confirm your email",
    "password reset", "security alert", "sign in",
    "shipping", "delivery", "tracking", "order shipped",
})

# --- Cancellation signal weights ---
CANCELLATION_SIGNALS = [
    ("your subscription has been canceled", 0.99),
    ("your subscription has been cancelled", 0.99),
    ("subscription canceled", 0.97),
    ("subscription cancelled", 0.97),
    ("subscription has been canceled", 0.97),
    ("subscription has been cancelled", 0.97),
    ("cancellation confirmed", 0.97),
    ("cancellation confirmation", 0.97),
    ("membership canceled", 0.95),
    ("membership cancelled", 0.95),
    ("subscription ended", 0.95),
    ("account closed", 0.90),
    ("successfully unsubscribed", 0.88),
    ("your plan has been canceled", 0.95),
    ("your plan has been cancelled", 0.95),
    ("we've canceled your", 0.95),
    ("we've cancelled your", 0.95),
    ("you have canceled", 0.93),
    ("you have cancelled", 0.93),
    ("subscription has expired", 0.90),
    ("plan expired", 0.88),
    ("service terminated", 0.88),
    ("your account has been deactivated", 0.85),
]
CANCELLATION_FALSE_POSITIVES = frozenset({
    "cancel anytime",
    "you can cancel",
    "easy to cancel",
    "cancellation policy",
    "how to cancel",
    "free to cancel",
    "cancel at any time",
    "cancel your subscription anytime",
    "cancel before",
    "cancel within",
    "no cancellation fee",
    "risk-free cancellation",
})

# --- Scoring thresholds ---
ANTI_SIGNAL_LIMIT = 2  # anti-signal hits that force "unknown"
REFUND_OVERRIDE_THRESHOLD = 0.8
CHARGE_TYPE_MIN_SCORE = 0.4
CANCEL_SIGNAL_THRESHOLD = 0.80
BILLING_EVENT_THRESHOLD = 0.70
BODY_FETCH_BILLING_THRESHOLD = 0.7
VALIDATION_UNKNOWN_CONFIDENCE = 0.7
VALIDATION_AGREE_BOOST = 0.1
VALIDATION_DISAGREE_CONFIDENCE = 0.5

# --- Lifecycle confidences ---
LIFECYCLE_NO_EVIDENCE_CONFIDENCE = 0.5
LIFECYCLE_DEFER_CONFIDENCE = 0.6
LIFECYCLE_REACTIVATION_CONFIDENCE = 0.90

# --- Candidate normalization ---
CORPORATE_SUFFIXES = [
    "inc.", "inc", "llc", "ltd.", "ltd", "corp.", "corp",
    "co.", "co", "pbc", "gmbh", "s.a.", "pty", "limited",
]
DEFAULT_CONFIDENCE = 0.5
AUTO_DESELECT_CONFIDENCE = 0.7

# --- Quality telemetry ---
CANCEL_PRECISION_THRESHOLD = 0.90
FALSE_POSITIVE_THRESHOLD = 0.10
UNKNOWN_RATE_THRESHOLD = 0.30
QUALITY_RETENTION_DAYS = 90
