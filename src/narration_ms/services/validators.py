"""
Input Validation for the Synthesis Pipeline.

Validation runs before any provider call, so oversized or empty input
never costs a billed request.

Text Rules (in order):
    1. None, non-string, or empty after trimming -> invalid ("text required")
    2. Longer than max_length -> truncated, valid with a warning
    3. Longer than warning_length -> valid with a warning, text unchanged
    4. Otherwise -> valid

Truncation:
    Within the first max_length characters, cut at the last run of sentence
    punctuation and end with ".". If there is no such boundary, or what is
    left is 10 characters or fewer, cut at the last whitespace and end with
    "...". A window without whitespace is hard-cut and ends with "...".
    The result is never longer than max_length + len(ELLIPSIS).

Identifiers:
    Voice and model ids end up in the provider URL path, so they are limited
    to a conservative character set.

Usage:
    outcome = validate_text(request.text, max_length=5000, warning_length=4000)
    if not outcome.valid:
        raise ValidationError(outcome.reason)
    send(outcome.text)
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional

TEXT_REQUIRED = "text required"
ELLIPSIS = "..."
MIN_SENTENCE_CUT = 10
MAX_IDENTIFIER_LENGTH = 100

_SENTENCE_END = re.compile(r"[.!?]+")
_WHITESPACE = re.compile(r"\s")
_IDENTIFIER = re.compile(r"^[A-Za-z0-9_\-.]+$")


@dataclass(frozen=True)
class ValidationOutcome:
    """
    Tagged validation result.

    Valid outcomes carry the text to send and an optional warning; invalid
    outcomes carry only a reason.
    """
    valid: bool
    text: Optional[str] = None
    warning: Optional[str] = None
    reason: Optional[str] = None
    truncated: bool = False

    @classmethod
    def accept(cls, text: str, warning: Optional[str] = None, truncated: bool = False) -> "ValidationOutcome":
        return cls(valid=True, text=text, warning=warning, truncated=truncated)

    @classmethod
    def reject(cls, reason: str) -> "ValidationOutcome":
        return cls(valid=False, reason=reason)


def validate_text(text: Any, max_length: int, warning_length: int) -> ValidationOutcome:
    """
    Apply the length policy to ``text``.

    Args:
        text: Caller-supplied text (any type; non-strings are rejected)
        max_length: Longest text sent to the provider
        warning_length: Length above which a warning is attached

    Returns:
        ValidationOutcome. Truncation is a valid outcome with a warning.
    """
    if not isinstance(text, str):
        return ValidationOutcome.reject(TEXT_REQUIRED)

    trimmed = text.strip()
    if not trimmed:
        return ValidationOutcome.reject(TEXT_REQUIRED)

    length = len(trimmed)

    if length > max_length:
        truncated = truncate_text(trimmed, max_length)
        return ValidationOutcome.accept(
            truncated,
            warning=(
                f"Text length ({length}) exceeds maximum ({max_length}); "
                f"text was truncated to {len(truncated)} characters."
            ),
            truncated=True,
        )

    if length > warning_length:
        return ValidationOutcome.accept(
            trimmed,
            warning=(
                f"Text length ({length}) exceeds the recommended {warning_length} characters; "
                "consider splitting it into smaller requests."
            ),
        )

    return ValidationOutcome.accept(trimmed)


def truncate_text(text: str, max_length: int) -> str:
    """Shorten ``text`` to about ``max_length`` characters at a natural boundary."""
    if len(text) <= max_length:
        return text

    window = text[:max_length]

    last_boundary = None
    for last_boundary in _SENTENCE_END.finditer(window):
        pass
    if last_boundary is not None:
        candidate = window[:last_boundary.start()].rstrip() + "."
        if len(candidate) > MIN_SENTENCE_CUT:
            return candidate

    # Window ends exactly on a word boundary: keep every word
    if text[max_length].isspace():
        return window.rstrip() + ELLIPSIS

    last_space = None
    for last_space in _WHITESPACE.finditer(window):
        pass
    if last_space is not None:
        head = window[:last_space.start()].rstrip()
        if head:
            return head + ELLIPSIS

    return window + ELLIPSIS


def validate_identifier(value: Optional[str], field: str) -> Optional[str]:
    """
    Check a voice or model id.

    Returns:
        None when ``value`` is absent or acceptable, otherwise a reason.
    """
    if value is None:
        return None
    if not value.strip():
        return f"{field} must not be blank"
    if len(value) > MAX_IDENTIFIER_LENGTH:
        return f"{field} exceeds maximum length ({len(value)} > {MAX_IDENTIFIER_LENGTH})"
    if not _IDENTIFIER.match(value):
        return f"{field} contains unsupported characters"
    return None
