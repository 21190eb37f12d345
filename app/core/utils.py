import re

_UNSAFE_CHARS = re.compile(r"[<>]")

def sanitize_string(value: str | None) -> str:
    """
    Trim whitespace and drop characters that could open markup (< and >).
    Non-string input sanitizes to the empty string.
    """
    if not isinstance(value, str):
        return ""
    return _UNSAFE_CHARS.sub("", value.strip())

def normalize_suburb(suburb: str | None) -> str:
    """
    Suburb identity used for matching and aggregation:
    - sanitize
    - trim whitespace
    - lowercase
    So "  Bondi " and "BONDI" land in the same bucket.
    """
    return sanitize_string(suburb).strip().lower()

def normalize_state(state: str | None) -> str | None:
    """State codes are stored upper-cased; blank input means no state."""
    cleaned = sanitize_string(state).strip().upper()
    return cleaned or None

def sanitize_optional(value: str | None) -> str | None:
    cleaned = sanitize_string(value).strip()
    return cleaned or None
