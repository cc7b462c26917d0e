import re

_TAG_RE = re.compile(r"<[^>]*>")
_SCRIPT_PROTOCOL_RE = re.compile(r"javascript:", re.IGNORECASE)


def _strip_once(text: str) -> str:
    text = _TAG_RE.sub("", text)
    return _SCRIPT_PROTOCOL_RE.sub("", text)


def sanitize_message_text(text: str | None) -> str:
    """Remove HTML tags and ``javascript:`` fragments, then trim.

    Stripping repeats until nothing changes, so fragments reassembled by a
    previous pass (``javas<b>cript:``) are removed too and the result is
    stable under a second call.
    """
    current = text or ""
    while True:
        cleaned = _strip_once(current)
        if cleaned == current:
            break
        current = cleaned
    return current.strip()


def sms_preview(text: str, limit: int = 100) -> str:
    """First ``limit`` characters, with ``...`` only when something was cut."""
    text = text or ""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
