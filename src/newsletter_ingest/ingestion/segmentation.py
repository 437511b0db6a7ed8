"""Split cleaned issue HTML into sections and individual news items."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from newsletter_ingest.config import SPONSORED_CATEGORY, IngestionSettings
from newsletter_ingest.ingestion.models import (
    ExternalLink,
    NewsItem,
    Section,
    SegmentationResult,
    SegmentationStrategy,
)
from newsletter_ingest.ingestion.sanitizer import (
    extract_domain,
    html_to_text,
    is_tracking_image,
    make_excerpt,
    parse_attributes,
)

logger = logging.getLogger(__name__)

_MARKER_RE = re.compile(r"<h6\b[^>]*>(.*?)</h6\s*>", re.IGNORECASE | re.DOTALL)
_LARGE_HEADING_RE = re.compile(r"<h1\b[^>]*>(.*?)</h1\s*>", re.IGNORECASE | re.DOTALL)
_SUB_HEADING_RE = re.compile(r"<h([2-5])\b[^>]*>(.*?)</h\1\s*>", re.IGNORECASE | re.DOTALL)
_RULE_RE = re.compile(r"<hr\b[^>]*>", re.IGNORECASE)
_IMG_RE = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
_IMAGE_CONTAINER_RE = re.compile(
    r"""<(div|figure)\b[^>]*\bclass\s*=\s*["'][^"']*\bimage\b[^"']*["'][^>]*>""",
    re.IGNORECASE,
)
_IMAGE_CREDIT_RE = re.compile(
    r"""<(div|p|span|figcaption)\b[^>]*\bclass\s*=\s*["'][^"']*image__source[^"']*["'][^>]*>"""
    r"""(.*?)</\1\s*>""",
    re.IGNORECASE | re.DOTALL,
)
_LINK_RE = re.compile(r"<a\b([^>]*)>(.*?)</a\s*>", re.IGNORECASE | re.DOTALL)
_LABEL_EDGE_RE = re.compile(r"^\W+|\W+$")
_SPACES_RE = re.compile(r"\s+")

SHARE_LINK_MARKERS = (
    "api.whatsapp.com",
    "wa.me/",
    "twitter.com/intent",
    "x.com/intent",
    "facebook.com/sharer",
    "linkedin.com/share",
    "t.me/share",
)


def normalize_label(value: str) -> str:
    """Upper-case a marker label and trim decoration around it."""

    text = _SPACES_RE.sub(" ", html_to_text(value)).strip().upper()
    return _LABEL_EDGE_RE.sub("", text)


@dataclass(slots=True)
class _Context:
    own_domains: tuple[str, ...]
    fallback_image: str


class IssueSegmenter:
    """Ordered fallback chain of segmentation strategies; the first with items wins.

    Segmentation never raises: a failing strategy is logged and treated as having
    found nothing, which hands control to the next tier.
    """

    def __init__(self, settings: IngestionSettings) -> None:
        self.settings = settings
        self._labels = {
            label.upper(): category for label, category in settings.category_labels.items()
        }
        self._ignored = frozenset(label.upper() for label in settings.ignored_labels)
        self._placeholders = frozenset(
            _normalize_title(title) for title in settings.placeholder_titles
        )
        self.strategies: tuple[
            tuple[SegmentationStrategy, Callable[[str, _Context], list[NewsItem]]],
            ...,
        ] = (
            (SegmentationStrategy.CATEGORY_MARKERS, self._by_category_markers),
            (SegmentationStrategy.RULE_CHUNKS, self._by_rule_chunks),
        )

    def segment(
        self,
        cleaned_html: str,
        *,
        issue_title: str = "",
        source_url: str = "",
        thumbnail_url: str = "",
    ) -> SegmentationResult:
        context = _Context(
            own_domains=self._own_domains(source_url),
            fallback_image=thumbnail_url,
        )
        for strategy, run in self.strategies:
            try:
                items = run(cleaned_html, context)
            except Exception:  # noqa: BLE001
                logger.exception("Segmentation strategy %s failed", strategy.value)
                continue
            if items:
                logger.debug(
                    "Segmentation strategy %s produced %d items",
                    strategy.value,
                    len(items),
                )
                return SegmentationResult(strategy=strategy, items=items)

        return SegmentationResult(
            strategy=SegmentationStrategy.WHOLE_DOCUMENT,
            items=[
                self.whole_document_item(cleaned_html, issue_title=issue_title, context=context),
            ],
        )

    def split_sections(self, cleaned_html: str) -> list[Section]:
        """Cut the document at recognized category markers."""

        markers: list[tuple[re.Match[str], str]] = []
        for match in _MARKER_RE.finditer(cleaned_html):
            label = normalize_label(match.group(1))
            if label in self._labels or label in self._ignored:
                markers.append((match, label))

        sections: list[Section] = []
        for index, (match, label) in enumerate(markers):
            end = markers[index + 1][0].start() if index + 1 < len(markers) else len(cleaned_html)
            body = cleaned_html[match.end() : end]
            rule = _RULE_RE.search(body)
            if rule is not None:
                body = body[: rule.start()]
            if label in self._ignored:
                logger.debug("Dropping ignored section %s", label)
                continue
            sections.append(
                Section(
                    id=f"section-{index + 1}",
                    category=label,
                    title=label.title(),
                    body_html=body.strip(),
                    images=find_images(body),
                    is_sponsored=self._labels.get(label) == SPONSORED_CATEGORY,
                ),
            )
        return sections

    def whole_document_item(
        self,
        cleaned_html: str,
        *,
        issue_title: str,
        context: _Context | None = None,
    ) -> NewsItem:
        if context is None:
            context = _Context(own_domains=tuple(self.settings.own_domains), fallback_image="")
        title = issue_title.strip()
        if not title:
            heading = _LARGE_HEADING_RE.search(cleaned_html) or _SUB_HEADING_RE.search(cleaned_html)
            title = html_to_text(heading.group(heading.lastindex or 1)) if heading else ""
        return self._build_item(
            title=title or "Untitled",
            category_label=None,
            body_html=cleaned_html,
            context=context,
        )

    def _by_category_markers(self, cleaned_html: str, context: _Context) -> list[NewsItem]:
        items: list[NewsItem] = []
        for section in self.split_sections(cleaned_html):
            items.extend(self._split_section(section, context))
        return items

    def _split_section(self, section: Section, context: _Context) -> list[NewsItem]:
        headings = list(_LARGE_HEADING_RE.finditer(section.body_html))
        if not headings:
            if len(html_to_text(section.body_html)) < self.settings.min_item_chars:
                return []
            sub_heading = _SUB_HEADING_RE.search(section.body_html)
            title = html_to_text(sub_heading.group(2)) if sub_heading else section.title
            return [
                self._build_item(
                    title=title,
                    category_label=section.category,
                    body_html=section.body_html,
                    context=context,
                    is_sponsored=section.is_sponsored,
                ),
            ]

        items: list[NewsItem] = []
        for index, heading in enumerate(headings):
            end = (
                headings[index + 1].start() if index + 1 < len(headings) else len(section.body_html)
            )
            title = html_to_text(heading.group(1))
            body = section.body_html[heading.end() : end].strip()
            if self._is_unfilled_slot(title, body):
                logger.debug("Discarding unfilled template slot %r", title)
                continue
            items.append(
                self._build_item(
                    title=title,
                    category_label=section.category,
                    body_html=body,
                    context=context,
                    is_sponsored=section.is_sponsored,
                ),
            )
        return items

    def _by_rule_chunks(self, cleaned_html: str, context: _Context) -> list[NewsItem]:
        items: list[NewsItem] = []
        for chunk in _RULE_RE.split(cleaned_html):
            headings = list(_LARGE_HEADING_RE.finditer(chunk))
            if len(headings) != 1:
                continue
            heading = headings[0]
            title = html_to_text(heading.group(1))
            body = chunk[heading.end() :].strip()
            if self._is_unfilled_slot(title, body):
                logger.debug("Discarding unfilled template slot %r", title)
                continue
            items.append(
                self._build_item(
                    title=title,
                    category_label=None,
                    body_html=body,
                    context=context,
                ),
            )
        return items

    def _is_unfilled_slot(self, title: str, body_html: str) -> bool:
        if not title.strip() or _normalize_title(title) in self._placeholders:
            return True
        return len(html_to_text(body_html)) < self.settings.min_item_chars

    def _build_item(
        self,
        *,
        title: str,
        category_label: str | None,
        body_html: str,
        context: _Context,
        is_sponsored: bool = False,
    ) -> NewsItem:
        image_url, image_credit = find_primary_image(body_html)
        return NewsItem(
            title=title,
            category_label=category_label,
            body_html=body_html,
            image_url=image_url or context.fallback_image,
            image_credit=image_credit,
            links=find_external_links(body_html, own_domains=context.own_domains),
            excerpt=make_excerpt(body_html, self.settings.excerpt_chars),
            is_sponsored=is_sponsored,
        )

    def _own_domains(self, source_url: str) -> tuple[str, ...]:
        domains = [domain.lower() for domain in self.settings.own_domains]
        source_domain = extract_domain(source_url) if source_url else ""
        if source_domain and source_domain not in domains:
            domains.append(source_domain)
        return tuple(domains)


def find_images(fragment: str) -> list[str]:
    """Every non-tracking image URL in document order, without duplicates."""

    images: list[str] = []
    for tag in _IMG_RE.findall(fragment):
        if is_tracking_image(tag):
            continue
        src = parse_attributes(tag).get("src", "").strip()
        if src and src not in images:
            images.append(src)
    return images


def find_primary_image(fragment: str) -> tuple[str, str]:
    """First non-tracking image and its credit line, preferring image containers."""

    for container in _IMAGE_CONTAINER_RE.finditer(fragment):
        for tag in _IMG_RE.findall(fragment, container.end()):
            if is_tracking_image(tag):
                continue
            src = parse_attributes(tag).get("src", "").strip()
            if src:
                credit = _IMAGE_CREDIT_RE.search(fragment, container.start())
                return src, html_to_text(credit.group(2)) if credit else ""
            break

    images = find_images(fragment)
    return (images[0], "") if images else ("", "")


def find_external_links(fragment: str, *, own_domains: tuple[str, ...]) -> list[ExternalLink]:
    """Outbound links whose host is not one of the newsletter's own hosts."""

    links: list[ExternalLink] = []
    seen: set[str] = set()
    for match in _LINK_RE.finditer(fragment):
        href = parse_attributes(match.group(1)).get("href", "").strip()
        if not href.lower().startswith(("http://", "https://")):
            continue
        lowered = href.lower()
        if any(marker in lowered for marker in SHARE_LINK_MARKERS):
            continue
        host = extract_domain(href)
        if not host or _is_own_host(host, own_domains):
            continue
        if href in seen:
            continue
        seen.add(href)
        links.append(ExternalLink(url=href, text=html_to_text(match.group(2))))
    return links


def _is_own_host(host: str, own_domains: tuple[str, ...]) -> bool:
    return any(host == domain or host.endswith(f".{domain}") for domain in own_domains)


def _normalize_title(title: str) -> str:
    return _SPACES_RE.sub(" ", html_to_text(title)).strip().lower()
