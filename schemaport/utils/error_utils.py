"""Masking of connection secrets in log lines and error payloads."""

import re

# Patterns that might indicate sensitive data
SENSITIVE_PATTERNS = [
    r"password\s*[:=]\s*['\"]?([^'\"\s]+)['\"]?",
    r"secret\s*[:=]\s*['\"]?([^'\"\s]+)['\"]?",
    r"token\s*[:=]\s*['\"]?([^'\"\s]+)['\"]?",
    r"postgres(?:ql)?://[^:/\s]+:([^@\s]+)@",  # Database password in URL
]


def sanitize_error_message(message: str) -> str:
    """Return *message* with passwords and tokens replaced by ``***REDACTED***``."""
    sanitized = str(message)

    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(
            pattern,
            lambda m: (
                m.group(0).replace(m.group(1), "***REDACTED***")
                if m.lastindex
                else m.group(0)
            ),
            sanitized,
            flags=re.IGNORECASE,
        )

    return sanitized


def truncate_error_message(error: Exception, max_length: int = 200) -> str:
    """Sanitize and shorten an exception message for logs and diagnostics."""
    error_str = sanitize_error_message(str(error)).strip()

    if len(error_str) > max_length:
        error_str = error_str[:max_length] + "..."

    return error_str
