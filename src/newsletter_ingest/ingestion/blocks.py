"""Convert item body HTML into ordered typed content blocks."""

from __future__ import annotations

import hashlib
import html
import itertools
import math
import re
from collections.abc import Iterable

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PageElement, PreformattedString

from newsletter_ingest.ingestion.models import BlockType, ContentBlock
from newsletter_ingest.ingestion.sanitizer import html_to_text, is_tracking_image, parse_attributes

DEFAULT_MIN_PARAGRAPH_CHARS = 10
MIN_FALLBACK_LINE_CHARS = 3
WORDS_PER_MINUTE = 200

HEADING_LEVELS = {"h1": 1, "h2": 2, "h3": 3, "h4": 4, "h5": 5, "h6": 6}
INLINE_TAGS = frozenset(
    {
        "a",
        "abbr",
        "b",
        "br",
        "code",
        "em",
        "font",
        "i",
        "mark",
        "small",
        "span",
        "strong",
        "sub",
        "sup",
        "u",
    },
)
CONTAINER_TAGS = frozenset(
    {
        "article",
        "body",
        "center",
        "div",
        "footer",
        "header",
        "html",
        "main",
        "section",
        "table",
        "tbody",
        "td",
        "th",
        "thead",
        "tr",
    },
)
SKIPPED_TAGS = frozenset({"noscript", "script", "style", "template"})

_ANY_TAG_RE = re.compile(r"<(/?)([a-zA-Z][a-zA-Z0-9]*)\b([^>]*)>")
_P_TAG_RE = re.compile(r"</?p\b[^>]*>", re.IGNORECASE)
_EDGE_BREAKS_RE = re.compile(r"^(?:\s*<br>)+|(?:<br>\s*)+$")
_WHITESPACE_RE = re.compile(r"\s+")
_FALLBACK_SPLIT_RE = re.compile(r"</p\s*>|</h[1-6]\s*>|<br\s*/?>|\n", re.IGNORECASE)
_WORD_RE = re.compile(r"\w+", re.UNICODE)


class BlockIdFactory:
    """Deterministic id sequence derived from a scope key.

    The same scope always yields the same ids in the same order, so re-running
    conversion over unchanged input reproduces identical blocks.
    """

    def __init__(self, scope: str) -> None:
        self.scope = scope
        self._counter = itertools.count(1)

    def __call__(self) -> str:
        position = next(self._counter)
        digest = hashlib.sha1(  # noqa: S324
            f"{self.scope}:{position}".encode(),
            usedforsecurity=False,
        ).hexdigest()
        return f"blk_{digest[:10]}"


def content_scope(fragment: str) -> str:
    digest = hashlib.sha1(fragment.encode("utf-8"), usedforsecurity=False)  # noqa: S324
    return digest.hexdigest()[:16]


def convert_html_to_blocks(
    fragment: str,
    *,
    ids: BlockIdFactory | None = None,
    min_paragraph_chars: int = DEFAULT_MIN_PARAGRAPH_CHARS,
) -> list[ContentBlock]:
    """Convert a body fragment into blocks; never returns an empty list for non-blank input."""

    if not fragment or not fragment.strip():
        return []
    ids = ids if ids is not None else BlockIdFactory(content_scope(fragment))
    builder = _BlockBuilder(ids=ids, min_paragraph_chars=min_paragraph_chars)
    builder.convert(BeautifulSoup(fragment, "html.parser").children)
    if builder.blocks:
        return builder.blocks
    return text_paragraph_blocks(fragment, ids=ids)


def text_paragraph_blocks(fragment: str, *, ids: BlockIdFactory) -> list[ContentBlock]:
    """Coarse split on paragraph, heading and line-break boundaries."""

    blocks: list[ContentBlock] = []
    for piece in _FALLBACK_SPLIT_RE.split(fragment):
        text = html_to_text(piece)
        if len(text) >= MIN_FALLBACK_LINE_CHARS:
            blocks.append(ContentBlock(id=ids(), type=BlockType.PARAGRAPH, data={"text": text}))
    return blocks


def normalize_inline(fragment: str) -> str:
    """Decode entities and reduce inline markup to ``strong``/``em``/``a``/``br``."""

    parts: list[str] = []
    position = 0
    for match in _ANY_TAG_RE.finditer(fragment):
        parts.append(html.unescape(fragment[position : match.start()]))
        parts.append(_rewrite_inline_tag(match))
        position = match.end()
    parts.append(html.unescape(fragment[position:]))
    normalized = _WHITESPACE_RE.sub(" ", "".join(parts)).strip()
    return _EDGE_BREAKS_RE.sub("", normalized).strip()


def measure_blocks(blocks: list[ContentBlock]) -> tuple[int, int]:
    """Return ``(word_count, reading_time_minutes)`` for a block sequence."""

    words = 0
    for block in blocks:
        if block.type == BlockType.LIST:
            texts = [str(item) for item in block.data.get("items", ())]
        else:
            texts = [str(block.data.get("text", ""))]
        for text in texts:
            words += len(_WORD_RE.findall(html_to_text(text)))
    return words, max(1, math.ceil(words / WORDS_PER_MINUTE))


class _BlockBuilder:
    """Walks parsed nodes in document order, emitting one block per element it recognizes.

    Runs of loose text and inline elements between blocks become a paragraph when
    they carry more than ``min_paragraph_chars`` characters.
    """

    def __init__(self, *, ids: BlockIdFactory, min_paragraph_chars: int) -> None:
        self.ids = ids
        self.min_paragraph_chars = min_paragraph_chars
        self.blocks: list[ContentBlock] = []

    def convert(self, nodes: Iterable[PageElement]) -> None:
        run: list[str] = []
        for node in nodes:
            if _is_inline(node):
                run.append(_markup(node))
            elif isinstance(node, Tag):
                self._flush_loose(run)
                run = []
                self._convert_element(node)
        self._flush_loose(run)

    def _convert_element(self, node: Tag) -> None:
        tag = node.name
        if tag in SKIPPED_TAGS:
            return
        if tag in HEADING_LEVELS:
            text = _text(node)
            if text:
                self._add(BlockType.HEADING, {"text": text, "level": HEADING_LEVELS[tag]})
        elif tag == "p":
            self._paragraph(node)
        elif tag == "img":
            self._image(node)
        elif tag == "figure":
            self._figure(node)
        elif tag in {"ul", "ol"}:
            self._list(node)
        elif tag == "hr":
            self._add(BlockType.DIVIDER, {})
        elif tag == "blockquote":
            text = normalize_inline(_P_TAG_RE.sub(" ", node.decode_contents()))
            if html_to_text(text):
                self._add(BlockType.QUOTE, {"text": text})
        elif tag in CONTAINER_TAGS or tag in INLINE_TAGS:
            self.convert(node.children)
        elif len(_text(node)) > self.min_paragraph_chars:
            self._add(BlockType.PARAGRAPH, {"text": _text(node)})

    def _paragraph(self, node: Tag) -> None:
        # html.parser nests an unclosed <p> inside the previous one.
        run: list[str] = []
        images: list[Tag] = []
        for child in node.children:
            if _is_inline(child):
                run.append(_markup(child))
                if isinstance(child, Tag):
                    images.extend(child.find_all("img"))
            elif isinstance(child, Tag) and child.name == "img":
                images.append(child)
            elif isinstance(child, Tag):
                self._flush_paragraph(run, images)
                run, images = [], []
                self._convert_element(child)
        self._flush_paragraph(run, images)

    def _flush_paragraph(self, run: list[str], images: list[Tag]) -> None:
        text = normalize_inline("".join(run))
        if html_to_text(text):
            self._add(BlockType.PARAGRAPH, {"text": text})
        for image in images:
            self._image(image)

    def _image(self, node: Tag, caption: str = "") -> bool:
        if is_tracking_image(str(node)):
            return False
        src = _attr(node, "src")
        if not src:
            return False
        self._add(
            BlockType.IMAGE,
            {
                "url": src,
                "alt": _attr(node, "alt"),
                "caption": caption or _attr(node, "title"),
            },
        )
        return True

    def _figure(self, node: Tag) -> None:
        figcaption = node.find("figcaption")
        caption = _text(figcaption) if isinstance(figcaption, Tag) else ""
        added = any(self._image(image, caption) for image in node.find_all("img"))
        if not added:
            self.convert(node.children)

    def _list(self, node: Tag) -> None:
        items: list[str] = []
        for child in node.find_all("li", recursive=False):
            text = normalize_inline(_P_TAG_RE.sub(" ", child.decode_contents()))
            if html_to_text(text):
                items.append(text)
        if items:
            style = "ordered" if node.name == "ol" else "unordered"
            self._add(BlockType.LIST, {"items": tuple(items), "style": style})

    def _flush_loose(self, run: list[str]) -> None:
        if not run:
            return
        joined = "".join(run)
        if len(html_to_text(joined)) > self.min_paragraph_chars:
            self._add(BlockType.PARAGRAPH, {"text": normalize_inline(joined)})

    def _add(self, block_type: BlockType, data: dict[str, object]) -> None:
        self.blocks.append(ContentBlock(id=self.ids(), type=block_type, data=data))


def _is_inline(node: PageElement) -> bool:
    if isinstance(node, PreformattedString):
        return False
    if isinstance(node, NavigableString):
        return True
    return isinstance(node, Tag) and node.name in INLINE_TAGS and node.find("img") is None


def _markup(node: PageElement) -> str:
    if isinstance(node, NavigableString):
        return html.escape(str(node), quote=False)
    return str(node)


def _text(node: Tag) -> str:
    return _WHITESPACE_RE.sub(" ", node.get_text(" ")).strip()


def _attr(node: Tag, name: str) -> str:
    value = node.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    return (value or "").strip()


def _rewrite_inline_tag(match: re.Match[str]) -> str:
    closing, name, attrs = match.group(1), match.group(2).lower(), match.group(3)
    if name in {"b", "strong"}:
        return f"<{closing}strong>"
    if name in {"i", "em"}:
        return f"<{closing}em>"
    if name == "br":
        return "<br>"
    if name == "a":
        if closing:
            return "</a>"
        href = parse_attributes(attrs).get("href", "").strip()
        return f'<a href="{html.escape(href, quote=True)}">' if href else "<a>"
    return ""
