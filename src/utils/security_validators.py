"""
Input sanitizing helpers for values that reach logs.
"""

import re

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize_for_logging(value: str | None, max_length: int = 256) -> str:
    """Sanitize user-controlled strings for safe logging.

    Prevents log injection attacks by removing newlines and other control characters
    that could be used to forge log entries.

    Args:
        value: String value to sanitize (can be None)
        max_length: Values longer than this are truncated

    Returns:
        Sanitized string with newlines replaced by spaces
    """
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    # Replace newlines and carriage returns with spaces to prevent log injection
    value = value.replace("\n", " ").replace("\r", " ")
    value = _CONTROL_CHARS_RE.sub("", value)
    if len(value) > max_length:
        value = value[:max_length] + "..."
    return value
