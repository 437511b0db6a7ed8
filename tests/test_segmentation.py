import allure

from newsletter_ingest.config import IngestionSettings
from newsletter_ingest.ingestion.models import SegmentationStrategy
from newsletter_ingest.ingestion.segmentation import (
    IssueSegmenter,
    find_external_links,
    find_primary_image,
    normalize_label,
)

pytestmark = [
    allure.epic("Issue Ingestion"),
    allure.feature("Segmentation"),
]

THREE_SECTIONS = (
    "<h6>WORLD</h6><h1>Storm hits coast</h1>"
    "<p>First paragraph of the world story.</p><p>Second paragraph of the world story.</p>"
    "<h6>BUSINESS</h6><h1>Markets rally</h1>"
    "<p>First paragraph of the market story.</p><p>Second paragraph of the market story.</p>"
    "<h6>GENERAL</h6><h1>Local fair opens</h1>"
    "<p>First paragraph of the fair story.</p><p>Second paragraph of the fair story.</p>"
)


def test_segment_by_category_markers_yields_one_item_per_heading() -> None:
    result = IssueSegmenter(IngestionSettings()).segment(THREE_SECTIONS)

    assert result.strategy == SegmentationStrategy.CATEGORY_MARKERS
    assert [item.title for item in result.items] == [
        "Storm hits coast",
        "Markets rally",
        "Local fair opens",
    ]
    assert [item.category_label for item in result.items] == ["WORLD", "BUSINESS", "GENERAL"]
    assert result.items[0].body_html == (
        "<p>First paragraph of the world story.</p><p>Second paragraph of the world story.</p>"
    )


def test_section_body_stops_at_horizontal_rule_and_ignored_sections_are_dropped() -> None:
    html = (
        "<h6>WORLD</h6><h1>Storm hits coast</h1>"
        "<p>Text long enough for the item body.</p><hr><p>Promo block after the rule</p>"
        "<h6>FOOTER</h6><h1>Unsubscribe</h1><p>Manage your subscription preferences here.</p>"
    )

    result = IssueSegmenter(IngestionSettings()).segment(html)

    assert len(result.items) == 1
    assert result.items[0].body_html == "<p>Text long enough for the item body.</p>"


def test_unfilled_template_slots_are_discarded() -> None:
    html = (
        "<h6>TECHNOLOGY</h6><h1>Chip launch</h1>"
        "<p>The new chip ships next quarter to all partners.</p>"
        "<h1>Título</h1><p></p>"
        "<h1>Short body</h1><p>Too short</p>"
    )

    result = IssueSegmenter(IngestionSettings()).segment(html)

    assert [item.title for item in result.items] == ["Chip launch"]


def test_section_without_large_heading_uses_sub_heading_as_title() -> None:
    html = "<h6>SPORTS</h6><h3>Final tonight</h3><p>Both teams arrive with full squads.</p>"

    result = IssueSegmenter(IngestionSettings()).segment(html)

    assert result.items[0].title == "Final tonight"
    assert result.items[0].category_label == "SPORTS"


def test_sponsored_section_marks_items() -> None:
    html = "<h6>PRESENTED BY</h6><h1>Try our app</h1><p>Download the app and save on groceries.</p>"

    result = IssueSegmenter(IngestionSettings()).segment(html)

    assert result.items[0].is_sponsored is True


def test_rule_chunks_used_when_no_markers() -> None:
    html = (
        "<h1>Only one</h1><p>Body text longer than twenty characters.</p><hr>"
        "<h1>Second</h1><p>Another body that is long enough.</p><hr>"
        "<p>Chunk without heading is ignored entirely.</p>"
    )

    result = IssueSegmenter(IngestionSettings()).segment(html)

    assert result.strategy == SegmentationStrategy.RULE_CHUNKS
    assert [item.title for item in result.items] == ["Only one", "Second"]
    assert all(item.category_label is None for item in result.items)


def test_whole_document_fallback_uses_issue_title() -> None:
    result = IssueSegmenter(IngestionSettings()).segment(
        "<p>Just a paragraph without headings at all.</p>",
        issue_title="Weekly Digest",
        thumbnail_url="https://cdn.example.com/thumb.jpg",
    )

    assert result.strategy == SegmentationStrategy.WHOLE_DOCUMENT
    assert len(result.items) == 1
    assert result.items[0].title == "Weekly Digest"
    assert result.items[0].image_url == "https://cdn.example.com/thumb.jpg"


def test_failing_strategy_falls_through_to_next_tier() -> None:
    segmenter = IssueSegmenter(IngestionSettings())

    def boom(*_: object) -> list:
        raise RuntimeError("broken strategy")

    segmenter.strategies = (
        (SegmentationStrategy.CATEGORY_MARKERS, boom),
        segmenter.strategies[1],
    )

    result = segmenter.segment(
        "<h6>WORLD</h6><h1>Storm hits coast</h1><p>Text long enough for the item body.</p>",
    )

    assert result.strategy == SegmentationStrategy.RULE_CHUNKS
    assert result.items[0].title == "Storm hits coast"


def test_find_primary_image_prefers_image_container_and_reads_credit() -> None:
    html = (
        '<img src="https://cdn.example.com/pixel.gif" width="1" height="1">'
        '<div class="image"><img src="https://cdn.example.com/a.jpg">'
        '<div class="image__source">Photo: Reuters</div></div>'
    )

    assert find_primary_image(html) == ("https://cdn.example.com/a.jpg", "Photo: Reuters")
    assert find_primary_image("<p>No pictures</p>") == ("", "")


def test_find_external_links_skips_own_domains_and_share_links() -> None:
    html = (
        '<a href="https://news.example.org/story">Source</a>'
        '<a href="https://www.mynewsletter.com/about">About</a>'
        '<a href="https://api.whatsapp.com/send?text=x">Share</a>'
        '<a href="mailto:editor@example.org">Mail</a>'
        '<a href="https://news.example.org/story">Duplicate</a>'
    )

    links = find_external_links(html, own_domains=("mynewsletter.com",))

    assert [(link.url, link.text) for link in links] == [
        ("https://news.example.org/story", "Source"),
    ]


def test_normalize_label_trims_decoration() -> None:
    assert normalize_label(" <strong>World</strong> :") == "WORLD"
