import html
import re
from urllib.parse import urlsplit, urlunsplit

RE_WHITESPACE = re.compile(r"\s+")


def squash_spaces(s: str) -> str:
    return RE_WHITESPACE.sub(" ", s or "").strip()


def clean_title(raw: str | None, decode_entities: bool = True) -> str:
    """Collapse whitespace, decoding HTML entities first unless told the text
    is already decoded. Empty means unusable."""
    if not raw:
        return ""
    return squash_spaces(html.unescape(raw) if decode_entities else raw)


def normalize_url(url: str | None) -> str:
    """Canonical identifier for a chapter URL.

    Drops the query string and fragment, strips trailing slashes and
    lower-cases scheme and host. Path case is kept. Applying it twice gives
    the same result as applying it once.
    """
    if not url:
        return ""
    parts = urlsplit(url.strip())
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))
