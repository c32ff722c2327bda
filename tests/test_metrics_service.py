"""Tests for markup metrics extraction."""

from __future__ import annotations

import time

import pytest

from app.services.metrics_service import (
    classify_link,
    extract_metrics,
    parse_attributes,
    text_to_html_ratio,
)


class TestScenario:
    def test_worked_example(self, scenario_html: str) -> None:
        m = extract_metrics(scenario_html, "https://example.com")

        assert m.title == ""
        assert m.description == ""
        assert m.has_h1 is True
        assert m.unique_h1 is True
        assert m.h1_count == 1
        assert m.img_count == 3
        assert m.img_with_alt_count == 0
        assert m.script_count == 2
        assert m.inline_style_count == 0
        assert m.is_https is True
        assert m.has_viewport is True
        assert m.has_charset is True
        assert m.has_lang is False
        assert m.html_length == len(scenario_html)

    def test_deterministic(self, scenario_html: str) -> None:
        first = extract_metrics(scenario_html, "https://example.com")
        second = extract_metrics(scenario_html, "https://example.com")
        assert first == second
        assert first.model_dump_json() == second.model_dump_json()


class TestBasicSeo:
    def test_title_is_trimmed(self) -> None:
        m = extract_metrics("<title>\n  My Page  </title>", "https://example.com")
        assert m.title == "My Page"

    def test_first_title_wins(self) -> None:
        m = extract_metrics("<title>One</title><title>Two</title>", "https://example.com")
        assert m.title == "One"

    def test_description_attribute_order_and_case(self) -> None:
        html = '<META content="Great page" NAME="Description">'
        m = extract_metrics(html, "https://example.com")
        assert m.description == "Great page"

    def test_missing_description(self) -> None:
        m = extract_metrics('<meta name="keywords" content="a,b">', "https://example.com")
        assert m.description == ""


class TestHeadings:
    def test_counts(self) -> None:
        html = "<h1>A</h1><h2>B</h2><h2>C</h2><H3>D</H3><h3>E</h3><h3>F</h3>"
        m = extract_metrics(html, "https://example.com")
        assert (m.h1_count, m.h2_count, m.h3_count) == (1, 2, 3)

    def test_duplicate_h1_is_not_unique(self) -> None:
        m = extract_metrics("<h1>A</h1><h1>A</h1>", "https://example.com")
        assert m.h1_count == 2
        assert m.has_h1 is True
        assert m.unique_h1 is False

    def test_two_different_h1_are_not_unique(self) -> None:
        m = extract_metrics("<h1>A</h1><h1>B</h1>", "https://example.com")
        assert m.unique_h1 is False

    def test_empty_h1_is_not_unique(self) -> None:
        m = extract_metrics("<h1>   </h1>", "https://example.com")
        assert m.has_h1 is True
        assert m.unique_h1 is False

    def test_nested_markup_in_h1(self) -> None:
        m = extract_metrics('<h1 class="x"><span>Hi</span></h1>', "https://example.com")
        assert m.unique_h1 is True

    def test_no_h1(self) -> None:
        m = extract_metrics("<h2>Only</h2>", "https://example.com")
        assert m.has_h1 is False
        assert m.unique_h1 is False


class TestAssets:
    def test_images_with_alt(self) -> None:
        html = '<img src="a" alt="A"><img alt=\'B\' src="b"><img src="c" alt=""><img src="d" alt>'
        m = extract_metrics(html, "https://example.com")
        assert m.img_count == 4
        assert m.img_with_alt_count == 2

    def test_scripts_stylesheets_and_styles(self) -> None:
        html = (
            '<script src="a.js"></script><SCRIPT>x()</SCRIPT>'
            '<link rel="stylesheet" href="a.css"><link href="b.css" rel="Stylesheet">'
            '<link rel="icon" href="f.ico">'
            "<style>p{}</style>"
        )
        m = extract_metrics(html, "https://example.com")
        assert m.script_count == 2
        assert m.stylesheet_count == 2
        assert m.inline_style_count == 1


class TestTechnicalFlags:
    def test_all_present(self) -> None:
        html = """
        <html lang="en">
        <head>
        <meta http-equiv="Content-Type" content="text/html; charset=utf-8">
        <meta name="viewport" content="width=device-width">
        <meta name="robots" content="index,follow">
        <meta property="og:title" content="Hello">
        <link rel="canonical" href="https://example.com/">
        <script type="application/ld+json">{"@type": "Organization"}</script>
        </head>
        </html>
        """
        m = extract_metrics(html, "https://example.com")
        assert m.has_lang
        assert m.has_charset
        assert m.has_viewport
        assert m.has_robots
        assert m.has_open_graph
        assert m.has_canonical
        assert m.has_structured_data

    def test_all_absent(self) -> None:
        m = extract_metrics("<html><body><p>plain</p></body></html>", "http://example.com")
        assert not any(
            [
                m.has_lang,
                m.has_charset,
                m.has_viewport,
                m.has_robots,
                m.has_open_graph,
                m.has_canonical,
                m.has_structured_data,
                m.is_https,
            ]
        )

    def test_microdata_counts_as_structured_data(self) -> None:
        html = '<div itemscope itemtype="https://schema.org/Product"></div>'
        assert extract_metrics(html, "https://example.com").has_structured_data


class TestLinks:
    def test_classification(self) -> None:
        html = """
        <a href="https://example.com/about">About</a>
        <a href="https://other.org/x">Other</a>
        <a href="/contact">Contact</a>
        <a href="#top">Top</a>
        <a href="http://[invalid/">Bad</a>
        <a name="anchor">No href</a>
        """
        m = extract_metrics(html, "https://example.com/page")
        assert m.link_count == 5
        assert m.internal_link_count == 2
        assert m.external_link_count == 1

    @pytest.mark.parametrize(
        ("href", "expected"),
        [
            ("https://example.com/a", "internal"),
            ("http://EXAMPLE.com/a", "internal"),
            ("https://sub.example.com/a", "external"),
            ("//cdn.example.net/lib.js", "internal"),
            ("/root-relative", "internal"),
            ("relative/page.html", "internal"),
            ("#section", None),
            ("http://[::1", None),
            ("mailto:someone@example.com", "internal"),
            ("tel:+15550100", "internal"),
            ("javascript:void(0)", "internal"),
        ],
    )
    def test_classify_link(self, href: str, expected: str | None) -> None:
        assert classify_link(href, "example.com") == expected


class TestTextRatio:
    def test_empty_markup(self) -> None:
        assert text_to_html_ratio("") == 0
        assert extract_metrics("", "https://example.com").text_to_html_ratio == 0

    def test_simple_ratio(self) -> None:
        # "abcd" out of 11 characters -> 36.36 -> 36
        assert text_to_html_ratio("<p>abcd</p>") == 36

    def test_script_and_style_contents_are_ignored(self) -> None:
        html = "<script>var x = 1;</script><p>hi</p>"
        # 2 / 36 -> 5.56 -> 6
        assert text_to_html_ratio(html) == 6

    def test_within_bounds(self, scenario_html: str) -> None:
        ratio = extract_metrics(scenario_html, "https://example.com").text_to_html_ratio
        assert 0 <= ratio <= 100


class TestRobustness:
    def test_markup_is_bounded(self) -> None:
        html = "<title>T</title>" + "a" * 300_000
        m = extract_metrics(html, "https://example.com")
        assert m.html_length == 200_000

    def test_custom_bound(self) -> None:
        m = extract_metrics("<h1>A</h1>" + "x" * 100, "https://example.com", max_chars=50)
        assert m.html_length == 50
        assert m.h1_count == 1

    def test_malformed_markup_does_not_raise(self) -> None:
        html = '<html lang=en><h1>Open <img src="x" alt="y" <a href="/x"<title>oops'
        m = extract_metrics(html, "https://example.com")
        assert m.h1_count == 1
        assert m.title == ""


class TestParseAttributes:
    def test_quoted_unquoted_and_case(self) -> None:
        attrs = parse_attributes('<A HREF="/x" target=_blank data-x=\'1\'>')
        assert attrs == {"href": "/x", "target": "_blank", "data-x": "1"}

    def test_first_duplicate_wins(self) -> None:
        assert parse_attributes('<img alt="one" alt="two">') == {"alt": "one"}

    def test_tag_without_attributes(self) -> None:
        assert parse_attributes("<img>") == {}


class TestHostileMarkup:
    @pytest.mark.parametrize("opening", ["<script>", "<style>", "<h1>", "<title>", "<meta ", "<"])
    def test_unclosed_tags_stay_fast(self, opening: str) -> None:
        html = opening * (150_000 // len(opening))
        started = time.perf_counter()
        m = extract_metrics(html, "https://example.com")
        assert time.perf_counter() - started < 2.0
        assert m.title == ""

    def test_unclosed_script_hides_nothing_before_it(self) -> None:
        html = "<title>Kept</title><h1>Heading</h1>" + "<script>" * 20_000
        m = extract_metrics(html, "https://example.com")
        assert m.title == "Kept"
        assert m.unique_h1
        assert m.script_count == 20_000
