import re
from typing import Optional

# script/style bodies are dropped together with their tags
_BLOCK_RE = re.compile(
    r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL
)
_TAG_RE = re.compile(r"<!--.*?-->|</?[a-zA-Z][^<>]*>", re.DOTALL)


def strip_markup(text: Optional[str]) -> str:
    """Remove HTML tags from ``text`` and trim surrounding whitespace.

    Stripping repeats until nothing changes, since removing one tag can
    join its neighbours into a new one (``<<b>i>`` becomes ``<i>``).
    """
    if text is None:
        return ""
    if not isinstance(text, str):
        text = str(text)
    cleaned = text
    while True:
        stripped = _TAG_RE.sub("", _BLOCK_RE.sub("", cleaned))
        if stripped == cleaned:
            break
        cleaned = stripped
    return cleaned.strip()
