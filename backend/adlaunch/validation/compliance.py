"""Compliance validator: ad text policy heuristics and destination URL checks.

Text findings are advisory (WARNING). A destination URL that isn't a usable
http(s) link is an ERROR; plain http is a WARNING. Nothing here is CRITICAL,
so compliance never blocks a publish on its own.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import urlsplit

from adlaunch.models.campaign import CopyVariation
from adlaunch.models.validation import (
    ComplianceCheck,
    Severity,
    ValidationError,
    error,
    warning,
)

logger = logging.getLogger(__name__)

CAPS_RATIO_LIMIT = 0.8
EMOJI_LIMIT = 3

# (code, pattern, message, suggested fix)
PROHIBITED_PATTERNS = (
    (
        "CLICKBAIT",
        re.compile(r"\b(click here|click now)\b", re.IGNORECASE),
        "Avoid generic click instructions",
        "Use specific action-oriented language",
    ),
    (
        "MISLEADING",
        re.compile(r"\b(100% free|totally free|absolutely free)\b", re.IGNORECASE),
        "Avoid absolute claims unless genuinely accurate",
        "Be specific about what is free",
    ),
)

# Claims Meta tends to route to manual review
SUSPICIOUS_PATTERNS = (
    (
        re.compile(r"\b(lose \d+ (pounds|lbs|kg)|lose weight fast)\b", re.IGNORECASE),
        "Weight loss claims may require additional review by Meta",
    ),
    (
        re.compile(r"\b(before and after|results may vary)\b", re.IGNORECASE),
        "Before/after claims require proper disclaimers",
    ),
    (
        re.compile(r"\b(limited time|ends soon|hurry|act now)\b", re.IGNORECASE),
        "Urgency claims should be genuine and specific",
    ),
    (
        re.compile(r"\b(guaranteed|promise)\b|100%", re.IGNORECASE),
        "Absolute guarantees may be flagged",
    ),
)

# Zero-width characters and bidi overrides
PROBLEMATIC_CHARS = re.compile("[\\u200b-\\u200d\\ufeff\\u202a-\\u202e]")


def has_excessive_caps(text: str) -> bool:
    letters = [c for c in text if c.isascii() and c.isalpha()]
    if not letters:
        return False
    caps = sum(1 for c in letters if c.isupper())
    return caps / len(letters) > CAPS_RATIO_LIMIT


def emoji_count(text: str) -> int:
    return sum(1 for c in text if ord(c) > 0xFFFF or 0x2600 <= ord(c) <= 0x27BF)


class ComplianceValidator:
    def validate(
        self, copy: CopyVariation | None, destination_url: str | None = None
    ) -> ComplianceCheck:
        errors: list[ValidationError] = []

        # Without both headline and primary text there's no ad text to judge;
        # the campaign data check already reports the gap.
        text_compliant = True
        if copy is not None and copy.headline.strip() and copy.primary_text.strip():
            fields = [("primary_text", copy.primary_text), ("headline", copy.headline)]
            if copy.description:
                fields.append(("description", copy.description))
            for name, text in fields:
                self._check_text(text, f"ad_copy.{name}", errors)
            text_compliant = all(e.severity is Severity.WARNING for e in errors)

        destination_valid = self._check_destination(destination_url, errors)

        if errors:
            logger.debug("Compliance findings: %s", [e.code for e in errors])
        return ComplianceCheck(
            text_compliant=text_compliant,
            destination_valid=destination_valid,
            errors=errors,
        )

    def _check_text(self, text: str, field: str, errors: list[ValidationError]) -> None:
        if has_excessive_caps(text):
            errors.append(warning(
                "EXCESSIVE_CAPS",
                "Text contains excessive capitalization",
                field=field,
                suggested_fix="Use sentence case or title case instead of ALL CAPS",
            ))

        for code, pattern, message, fix in PROHIBITED_PATTERNS:
            if pattern.search(text):
                errors.append(warning(code, message, field=field, suggested_fix=fix))

        for pattern, message in SUSPICIOUS_PATTERNS:
            if pattern.search(text):
                errors.append(warning("POLICY_WARNING", message, field=field))

        if emoji_count(text) > EMOJI_LIMIT:
            errors.append(warning(
                "POLICY_WARNING",
                "Text contains many emojis, which may reduce engagement",
                field=field,
            ))

        if PROBLEMATIC_CHARS.search(text):
            errors.append(warning(
                "POLICY_WARNING",
                "Text contains special characters that may not render correctly",
                field=field,
            ))

    def _check_destination(self, url: str | None, errors: list[ValidationError]) -> bool:
        # Lead-form and call ads have no landing page
        if not url or not url.strip():
            return True

        try:
            parts = urlsplit(url.strip())
            host = parts.hostname
        except ValueError:
            parts, host = None, None

        if parts is None or not parts.scheme:
            errors.append(_malformed())
            return False

        if parts.scheme.lower() not in ("http", "https"):
            errors.append(error(
                "INVALID_URL_PROTOCOL",
                "Destination URL must use HTTP or HTTPS",
                field="website_url",
                suggested_fix="Use a valid https:// URL",
            ))
            return False

        if not host:
            errors.append(_malformed())
            return False

        if parts.scheme.lower() == "http":
            errors.append(warning(
                "INSECURE_URL",
                "Destination URL uses insecure HTTP protocol",
                field="website_url",
                suggested_fix="Use HTTPS for better security and trust",
            ))
        return True


def _malformed() -> ValidationError:
    return error(
        "MALFORMED_URL",
        "Destination URL is malformed",
        field="website_url",
        suggested_fix="Enter a valid URL",
    )
