"""Logging utilities for sanitizing sensitive information and formatting sizes."""
import re

# Pre-compiled regex to find Authorization headers with tokens
_AUTH_HEADER_RE = re.compile(
    r'(?i)("?authorization"?\s*[:=]\s*"?(?:bearer|token)\s*)([^"\s]+)("?)'
)

# Webhook URLs embed the API token as the last path segment
_WEBHOOK_TOKEN_RE = re.compile(r'(/ci/webhook/)([^/\s?"\']+)')

_SIZE_UNITS = ['Bytes', 'KB', 'MB', 'GB', 'TB']


def redact_auth_headers(message: str) -> str:
    """Redact Authorization header values in a log message."""
    return _AUTH_HEADER_RE.sub(lambda m: m.group(1) + "[REDACTED]" + m.group(3), message)


def redact_tokens(message: str, *secrets: str) -> str:
    """Remove API tokens from a log message.

    Scrubs Authorization headers, webhook URL tokens and any literal secret
    passed in ``secrets``.
    """
    sanitized = redact_auth_headers(str(message))
    sanitized = _WEBHOOK_TOKEN_RE.sub(r'\1[REDACTED]', sanitized)
    for secret in secrets:
        if secret:
            sanitized = sanitized.replace(secret, "[REDACTED]")
    return sanitized


def format_bytes(num_bytes: int) -> str:
    """Format a byte count as a human readable string, e.g. ``1.5 KB``."""
    if num_bytes <= 0:
        return '0 Bytes'

    k = 1024
    i = 0
    while num_bytes >= k ** (i + 1) and i < len(_SIZE_UNITS) - 1:
        i += 1
    value = round(num_bytes / (k ** i), 2)
    if value == int(value):
        value = int(value)
    return f"{value} {_SIZE_UNITS[i]}"
