"""Тесты общих примитивов разбора HTML."""
from src.strategies.parsing import (
    element_text,
    extract_array,
    extract_attribute,
    extract_images,
    extract_links,
    extract_metadata,
    extract_text,
    first_non_empty,
    load_html,
    longest_text,
    resolve_url,
    sanitize_text,
)


class TestText:
    def test_sanitize_collapses_whitespace(self) -> None:
        assert sanitize_text("  a \n\t b  ") == "a b"

    def test_element_text_skips_scripts_and_comments(self) -> None:
        soup = load_html("<div>Hello <script>var x = 1;</script><b>World</b><!-- hidden --></div>")
        assert element_text(soup.div) == "Hello World"

    def test_extract_text_joins_matches(self) -> None:
        soup = load_html("<p class='x'>One</p><p class='x'>Two</p>")
        assert extract_text(soup, ".x") == "One Two"

    def test_extract_text_no_match(self) -> None:
        assert extract_text(load_html("<p>x</p>"), ".missing") == ""

    def test_first_non_empty(self) -> None:
        assert first_non_empty(None, "  ", " b ", "c") == "b"
        assert first_non_empty(None, "") == ""


class TestAttributes:
    def test_extract_attribute_skips_empty(self) -> None:
        soup = load_html('<a href="">x</a><a href="/real">y</a>')
        assert extract_attribute(soup, "a", "href") == "/real"

    def test_extract_array_modes(self) -> None:
        soup = load_html('<ul><li data-id="1">A</li><li data-id="2">B</li><li></li></ul>')

        assert extract_array(soup, "li") == ["A", "B"]
        assert extract_array(soup, "li", "data-id") == ["1", "2"]
        assert extract_array(soup, "li", lambda el: (el.get("data-id") or "") * 2) == ["11", "22"]


class TestLongestText:
    def test_longest_wins(self) -> None:
        soup = load_html("<main>short</main><div class='content'>much longer text here</div>")
        assert longest_text(soup, ["main", ".content"]) == "much longer text here"

    def test_tie_goes_to_earlier_selector(self) -> None:
        soup = load_html("<main>aaaa</main><div class='content'>bbbb</div>")
        assert longest_text(soup, ["main", ".content"]) == "aaaa"

    def test_nothing_matches(self) -> None:
        assert longest_text(load_html("<p>x</p>"), ["main"]) == ""


class TestResolveUrl:
    def test_absolute_untouched(self) -> None:
        assert resolve_url("https://other.test/a", "https://ex.test/") == "https://other.test/a"

    def test_root_relative(self) -> None:
        assert resolve_url("/about", "https://ex.test/blog/post") == "https://ex.test/about"

    def test_path_relative(self) -> None:
        assert resolve_url("img.png", "https://ex.test/blog/") == "https://ex.test/blog/img.png"

    def test_protocol_relative(self) -> None:
        assert resolve_url("//cdn.test/a.js", "http://ex.test/") == "http://cdn.test/a.js"


class TestLinksAndImages:
    def test_links_resolved_and_filtered(self) -> None:
        soup = load_html(
            '<nav><a href="/home">Home</a></nav>'
            '<a href="/pricing" title="Plans">Pricing</a>'
            '<a href="javascript:void(0)">Click</a>'
        )

        links = extract_links(soup, "https://ex.test/", exclude_within="nav")

        assert [(l.url, l.text, l.title) for l in links] == [
            ("https://ex.test/pricing", "Pricing", "Plans"),
        ]

    def test_images_with_dimensions(self) -> None:
        soup = load_html(
            '<img src="/a.png" alt="Logo" width="120" height="40">'
            '<footer><img src="/b.png"></footer>'
        )

        images = extract_images(soup, "https://ex.test/", exclude_within="footer")

        assert len(images) == 1
        assert images[0].url == "https://ex.test/a.png"
        assert images[0].alt == "Logo"
        assert images[0].width == "120"


class TestMetadata:
    def test_title_tag_preferred(self) -> None:
        soup = load_html(
            '<head><title>Page</title><meta property="og:title" content="OG Page">'
            '<meta name="description" content="Desc">'
            '<link rel="canonical" href="https://ex.test/page"></head>'
        )

        meta = extract_metadata(soup)

        assert meta.title == "Page"
        assert meta.description == "Desc"
        assert meta.canonical == "https://ex.test/page"

    def test_fallback_chain(self) -> None:
        """Нет <title> → og:title; нет description → twitter:description."""
        soup = load_html(
            '<head><meta property="og:title" content="OG Page">'
            '<meta name="twitter:description" content="Tweet desc">'
            '<meta property="og:image" content="https://ex.test/og.png"></head>'
        )

        meta = extract_metadata(soup)

        assert meta.title == "OG Page"
        assert meta.description == "Tweet desc"
        assert meta.og_image == "https://ex.test/og.png"
        assert meta.author == ""
