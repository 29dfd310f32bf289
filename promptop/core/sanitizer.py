"""
Provider Error Sanitization

Vendor error bodies can contain key fragments, account-scoped URLs and raw
HTTP status lines. Nothing from a vendor error reaches the caller without
passing through `sanitize`.
"""

from __future__ import annotations
import re
from typing import List, Pattern

REDACTED = "[REDACTED]"

MIN_MESSAGE_LENGTH = 20

CREDENTIAL_PATTERNS: List[Pattern] = [
    # OpenAI / Anthropic / DeepSeek style keys (sk-..., sk-ant-..., sk-proj-...)
    re.compile(r"(?<![A-Za-z0-9])sk-[A-Za-z0-9_\-\.\*]+"),
    # Google API keys
    re.compile(r"(?<![A-Za-z0-9])AIza[0-9A-Za-z_\-]{10,}"),
    # Bearer tokens
    re.compile(r"(?i)\bbearer\s+[A-Za-z0-9_\-\.=:/+]+"),
    # key=..., api_key: ..., x-api-key=...
    re.compile(r"(?i)\b(?:x-)?api[_-]?key\s*[=:]\s*\S+"),
    re.compile(r"(?i)\bkey\s*=\s*[^\s&]+"),
    # Long opaque tokens (hex, base64-ish)
    re.compile(r"\b[A-Za-z0-9_\-]{32,}\b"),
]

URL_PATTERN = re.compile(r"(?i)\b(?:https?|wss?)://\S+")

AUTH_FAILURE_PATTERN = re.compile(
    r"(?i)(?:incorrect api key provided"
    r"|invalid (?:x-)?api[ -]?key"
    r"|api key not valid(?:\. please pass a valid api key)?"
    r"|authentication(?:_error| failed| fails)?"
    r"|\bunauthori[sz]ed\b"
    r"|permission denied)[.:]?"
)
AUTH_FAILURE_MESSAGE = "Authentication with the model provider failed."

# "401 ...", "HTTP 500", "status code 429", "[403 Forbidden]", "error: 502",
# "503 Service Unavailable". A bare number elsewhere in the text is not a status.
STATUS_MARKER_PATTERN = re.compile(
    r"(?i)(?:\bstatus(?: code)?\s*:?\s*\d{3}\b"
    r"|\bhttp\s*\d{3}\b"
    r"|^[45]\d{2}\b"
    r"|\[\s*[45]\d{2}\b"
    r"|\b(?:error|code)\s*:?\s*[45]\d{2}\b"
    r"|\b[45]\d{2}\s+(?:bad request|unauthorized|forbidden|not found|too many requests"
    r"|internal server error|bad gateway|service unavailable|gateway timeout|authentication)\b)"
)

WHITESPACE_PATTERN = re.compile(r"\s+")


def unavailable_message(model_name: str) -> str:
    return f"{model_name} is currently unavailable. Please try again later or choose a different model."


def redact_credentials(text: str) -> str:
    for pattern in CREDENTIAL_PATTERNS:
        text = pattern.sub(REDACTED, text)
    return text


def sanitize(raw_error_text: str, model_name: str) -> str:
    """
    Turn a raw vendor error into a message safe to show the caller.

    Falls back to the generic "<model> is currently unavailable" message when
    what remains is too short to be useful or still carries a status code.
    """
    text = raw_error_text or ""

    text = URL_PATTERN.sub(REDACTED, text)
    text = redact_credentials(text)

    text = AUTH_FAILURE_PATTERN.sub(AUTH_FAILURE_MESSAGE, text)

    text = WHITESPACE_PATTERN.sub(" ", text).strip()

    if len(text) < MIN_MESSAGE_LENGTH or STATUS_MARKER_PATTERN.search(text):
        return unavailable_message(model_name)

    return text
