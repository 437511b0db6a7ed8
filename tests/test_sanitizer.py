import allure

from newsletter_ingest.ingestion.sanitizer import (
    extract_domain,
    html_to_text,
    is_tracking_image,
    make_excerpt,
    sanitize_html,
    unescape_platform_escapes,
)

pytestmark = [
    allure.epic("Issue Ingestion"),
    allure.feature("HTML Sanitizing"),
]


def test_sanitize_html_strips_scripts_styles_tracking_and_platform_classes() -> None:
    raw = (
        "<style>.a{color:red}</style>"
        '<p class="beehiiv__body keep" data-id="7" style="color:red">Hi</p>'
        '<img src="https://t.example.com/pixel.gif" width="1" height="1">'
        "<script>track()</script>"
    )

    assert sanitize_html(raw) == '<p class="keep">Hi</p>'


def test_sanitize_html_leaves_attribute_like_prose_alone() -> None:
    raw = (
        '<p data-x="1">Set style="color:red" or class="x" and data-id="7" in the editor.</p>'
    )

    assert sanitize_html(raw) == (
        '<p>Set style="color:red" or class="x" and data-id="7" in the editor.</p>'
    )


def test_sanitize_html_drops_class_attribute_when_only_platform_classes() -> None:
    assert sanitize_html('<div class="beehiiv-wrapper"><p>x</p></div>') == "<div><p>x</p></div>"


def test_sanitize_html_leaves_malformed_markup_as_text() -> None:
    assert sanitize_html("<p>Unclosed <b>bold") == "<p>Unclosed <b>bold"
    assert sanitize_html("") == ""


def test_sanitize_html_keeps_content_images() -> None:
    raw = '<img src="https://cdn.example.com/photo.jpg" width="600" alt="Photo">'
    assert sanitize_html(raw) == raw


def test_is_tracking_image_heuristics() -> None:
    assert is_tracking_image('<img src="https://cdn.example.com/photo.jpg" width="100">') is False
    assert is_tracking_image('<img src="https://mail.example.com/open.gif">') is True
    assert is_tracking_image('<img src="https://x.example.com/a.png" height=1>') is True
    assert is_tracking_image('<img style="width:1px;height:1px" src="a.png">') is True
    assert is_tracking_image('<img src="https://x.example.com/tracking/a.png">') is True


def test_unescape_platform_escapes_handles_json_and_entity_escaping() -> None:
    escaped = '<a href=\\"https:\\/\\/x.com\\">'
    assert unescape_platform_escapes(escaped) == '<a href="https://x.com">'
    assert unescape_platform_escapes("&lt;p&gt;Hi&lt;/p&gt;") == "<p>Hi</p>"
    assert unescape_platform_escapes("<p>&lt;kept&gt;</p>") == "<p>&lt;kept&gt;</p>"
    assert unescape_platform_escapes(
        "<a href=&quot;https://x.com&quot; title=&quot;T&quot;>He said &quot;hi&quot;</a>",
    ) == '<a href="https://x.com" title="T">He said &quot;hi&quot;</a>'


def test_html_to_text_removes_tags_and_scripts() -> None:
    raw = "<script>alert('x')</script><h1>Title</h1><p>Hello <b>world</b> &amp; co</p>"
    assert html_to_text(raw) == "Title Hello world & co"


def test_make_excerpt_cuts_with_ellipsis() -> None:
    assert make_excerpt("<p>" + "a" * 250 + "</p>") == "a" * 200 + "..."
    assert make_excerpt("<p>short</p>") == "short"


def test_extract_domain_normalizes_host() -> None:
    assert extract_domain("https://www.Example.com:8080/path") == "example.com"
    assert extract_domain("not a url") == ""
