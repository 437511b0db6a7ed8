"""HTML sanitizing and text normalization utilities."""

from __future__ import annotations

import html
import re
from urllib.parse import urlparse

_SCRIPT_STYLE_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")
_IMG_TAG_RE = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
_CLASS_ATTR_RE = re.compile(r"""\sclass\s*=\s*(["'])(.*?)\1""", re.IGNORECASE | re.DOTALL)
_DATA_ATTR_RE = re.compile(r"""\sdata-[\w-]+\s*=\s*(["']).*?\1""", re.IGNORECASE | re.DOTALL)
_STYLE_ATTR_RE = re.compile(r"""\sstyle\s*=\s*(["']).*?\1""", re.IGNORECASE | re.DOTALL)
_OPEN_TAG_RE = re.compile(r"<[a-zA-Z][a-zA-Z0-9]*\b[^<>]*>")
_ATTR_RE = re.compile(
    r"""([a-zA-Z_:][-a-zA-Z0-9_:.]*)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+))""",
)
_QUOTED_ATTR_RE = re.compile(r"(<[a-zA-Z][^<>]*?=\s*)&quot;([^<>]*?)&quot;")
_ONE_PIXEL_ATTR_RE = re.compile(
    r"""\b(?:width|height)\s*=\s*["']?1(?:px)?["'\s/>]""",
    re.IGNORECASE,
)
_ONE_PIXEL_STYLE_RE = re.compile(r"(?:width|height)\s*:\s*1px", re.IGNORECASE)
_SRC_ATTR_RE = re.compile(r"""\bsrc\s*=\s*(["'])(.*?)\1""", re.IGNORECASE | re.DOTALL)

TRACKING_URL_MARKERS = ("pixel", "tracking", "beacon", "open.gif", "/open/")
DEFAULT_PLATFORM_CLASS_PREFIXES = ("beehiiv",)


def sanitize_html(
    raw_html: str,
    *,
    platform_class_prefixes: tuple[str, ...] = DEFAULT_PLATFORM_CLASS_PREFIXES,
) -> str:
    """Strip presentation markup, tracking pixels, and platform styling from raw HTML.

    Malformed markup is passed through untouched: unmatched tags stay as literal text.
    """

    if not raw_html:
        return ""

    cleaned = unescape_platform_escapes(raw_html)
    cleaned = _SCRIPT_STYLE_RE.sub(" ", cleaned)
    cleaned = _COMMENT_RE.sub(" ", cleaned)
    cleaned = _IMG_TAG_RE.sub(
        lambda match: "" if is_tracking_image(match.group(0)) else match.group(0),
        cleaned,
    )
    cleaned = _OPEN_TAG_RE.sub(
        lambda match: _strip_presentation_attrs(match.group(0), platform_class_prefixes),
        cleaned,
    )
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def unescape_platform_escapes(raw_html: str) -> str:
    """Undo JSON-style and entity escaping that some publishing APIs leave in markup."""

    value = raw_html.replace('\\"', '"').replace("\\/", "/")
    if "<" not in value and "&lt;" in value:
        value = html.unescape(value)
    previous = None
    while previous != value:
        previous = value
        value = _QUOTED_ATTR_RE.sub(r'\1"\2"', value)
    return value


def is_tracking_image(img_tag: str) -> bool:
    """Heuristic tracking-pixel check on one ``<img>`` tag."""

    if _ONE_PIXEL_ATTR_RE.search(img_tag) or _ONE_PIXEL_STYLE_RE.search(img_tag):
        return True
    src_match = _SRC_ATTR_RE.search(img_tag)
    if src_match is None:
        return False
    return is_tracking_url(src_match.group(2))


def is_tracking_url(url: str) -> bool:
    lowered = url.lower()
    return any(marker in lowered for marker in TRACKING_URL_MARKERS)


def parse_attributes(tag_or_attrs: str) -> dict[str, str]:
    """Parse quoted or bare attribute values, lower-casing names and decoding entities."""

    attributes: dict[str, str] = {}
    for match in _ATTR_RE.finditer(tag_or_attrs):
        name = match.group(1).lower()
        value = next((group for group in match.groups()[1:] if group is not None), "")
        attributes.setdefault(name, html.unescape(value))
    return attributes


def html_to_text(raw_html: str) -> str:
    """Convert HTML markup into normalized plain text."""

    if not raw_html:
        return ""
    no_scripts = _SCRIPT_STYLE_RE.sub(" ", raw_html)
    stripped = _TAG_RE.sub(" ", no_scripts)
    unescaped = html.unescape(stripped)
    normalized = _WHITESPACE_RE.sub(" ", unescaped)
    return normalized.strip()


def make_excerpt(raw_html: str, max_chars: int = 200) -> str:
    """First ``max_chars`` characters of the stripped text, with an ellipsis when cut."""

    text = html_to_text(raw_html)
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip() + "..."


def extract_domain(url: str) -> str:
    """Get normalized host from URL, without a leading ``www.``."""

    host = urlparse(url).netloc.lower()
    if ":" in host:
        host = host.split(":", 1)[0]
    if host.startswith("www."):
        host = host[4:]
    return host


def _strip_presentation_attrs(tag: str, prefixes: tuple[str, ...]) -> str:
    tag = _DATA_ATTR_RE.sub("", tag)
    tag = _STYLE_ATTR_RE.sub("", tag)
    return _CLASS_ATTR_RE.sub(lambda match: _filter_classes(match, prefixes), tag)


def _filter_classes(match: re.Match[str], prefixes: tuple[str, ...]) -> str:
    kept = [
        name
        for name in match.group(2).split()
        if not any(name.lower().startswith(prefix) for prefix in prefixes)
    ]
    if not kept:
        return ""
    return f' class="{" ".join(kept)}"'
