# app/services/metrics_service.py
import math
import re
from typing import Dict, Iterator, Optional, Tuple
from urllib.parse import urlsplit

from app.models import PageMetrics

DEFAULT_MAX_HTML_CHARS = 200_000

# Tag bodies stop at the next "<" so every pattern scans each stretch of markup once
_FLAGS = re.IGNORECASE
_TITLE_OPEN_RE = re.compile(r"<title\b[^<>]*>", _FLAGS)
_TITLE_CLOSE_RE = re.compile(r"</title\s*>", _FLAGS)
_META_RE = re.compile(r"<meta\b[^<>]*>", _FLAGS)
_LINK_RE = re.compile(r"<link\b[^<>]*>", _FLAGS)
_H1_OPEN_RE = re.compile(r"<h1\b[^<>]*>", _FLAGS)
_H1_CLOSE_RE = re.compile(r"</h1\s*>", _FLAGS)
_H2_OPEN_RE = re.compile(r"<h2\b[^<>]*>", _FLAGS)
_H3_OPEN_RE = re.compile(r"<h3\b[^<>]*>", _FLAGS)
_IMG_RE = re.compile(r"<img\b[^<>]*>", _FLAGS)
_SCRIPT_OPEN_RE = re.compile(r"<script\b[^<>]*>", _FLAGS)
_SCRIPT_CLOSE_RE = re.compile(r"</script\s*>", _FLAGS)
_STYLE_OPEN_RE = re.compile(r"<style\b[^<>]*>", _FLAGS)
_STYLE_CLOSE_RE = re.compile(r"</style\s*>", _FLAGS)
_ANCHOR_RE = re.compile(r"<a\b[^<>]*>", _FLAGS)
_HTML_LANG_RE = re.compile(r"<html\b[^<>]*\blang\s*=", _FLAGS)
_CHARSET_RE = re.compile(r"<meta\b[^<>]*charset", _FLAGS)
_MICRODATA_RE = re.compile(r"<[a-z][^<>]*\bitem(?:scope|type)\b", _FLAGS)

_TAG_RE = re.compile(r"<[^<>]+>")
_WHITESPACE_RE = re.compile(r"\s+")

_ATTR_RE = re.compile(
    r"""([^\s"'<>/=]+)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'=<>`]+))""",
    _FLAGS,
)


def parse_attributes(tag: str) -> Dict[str, str]:
    """
    Returns the quoted or unquoted attributes of a single tag, keys lower-cased.
    The first occurrence of a repeated attribute wins, as in browsers.
    """
    attributes: Dict[str, str] = {}
    # skip the tag name so "<meta" is never read as an attribute
    name_and_rest = tag[1:].split(None, 1)
    body = name_and_rest[1] if len(name_and_rest) > 1 else ""
    for match in _ATTR_RE.finditer(body):
        name = match.group(1).lower()
        if name in attributes:
            continue
        value = next((g for g in match.groups()[1:] if g is not None), "")
        attributes[name] = value
    return attributes


def _iter_blocks(html: str, open_re: re.Pattern, close_re: re.Pattern) -> Iterator[Tuple[int, int, str]]:
    """Yields (start, end, inner) for each element, moving forward through the markup only."""
    pos = 0
    while True:
        opening = open_re.search(html, pos)
        if opening is None:
            return
        closing = close_re.search(html, opening.end())
        if closing is None:
            # nothing after this point is closed either
            return
        yield opening.start(), closing.end(), html[opening.end():closing.start()]
        pos = closing.end()


def _remove_blocks(html: str, open_re: re.Pattern, close_re: re.Pattern) -> str:
    pieces = []
    pos = 0
    for start, end, _ in _iter_blocks(html, open_re, close_re):
        pieces.append(html[pos:start])
        pos = end
    pieces.append(html[pos:])
    return "".join(pieces)


def _rel_tokens(attributes: Dict[str, str]) -> set:
    return set(attributes.get("rel", "").lower().split())


def _strip_tags(fragment: str) -> str:
    return _WHITESPACE_RE.sub(" ", _TAG_RE.sub(" ", fragment)).strip()


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def classify_link(href: str, source_host: Optional[str]) -> Optional[str]:
    """
    Classifies an anchor href relative to the page it was found on.

    Only absolute http(s) URLs are compared by hostname. Everything else that is
    not a pure fragment, protocol-relative and mailto:/tel: hrefs included,
    counts as internal. Returns None for fragments and malformed absolute URLs.
    """
    href = href.strip()
    if href.lower().startswith(("http://", "https://")):
        try:
            hostname = urlsplit(href).hostname
        except ValueError:
            return None
        if not hostname:
            return None
        return "internal" if hostname == source_host else "external"

    if href.startswith("#"):
        return None
    return "internal"


def _count_links(html: str, source_host: Optional[str]):
    total = internal = external = 0
    for tag in _ANCHOR_RE.findall(html):
        href = parse_attributes(tag).get("href")
        if href is None:
            continue
        total += 1
        bucket = classify_link(href, source_host)
        if bucket == "internal":
            internal += 1
        elif bucket == "external":
            external += 1
    return total, internal, external


def text_to_html_ratio(html: str) -> int:
    """Visible text length as a rounded percentage of the raw markup length."""
    if not html:
        return 0
    text = _remove_blocks(html, _SCRIPT_OPEN_RE, _SCRIPT_CLOSE_RE)
    text = _strip_tags(_remove_blocks(text, _STYLE_OPEN_RE, _STYLE_CLOSE_RE))
    return _round_half_up(100 * len(text) / len(html))


def extract_metrics(html: str, url: str, max_chars: int = DEFAULT_MAX_HTML_CHARS) -> PageMetrics:
    """
    Extracts PageMetrics from raw markup.

    Args:
        html: The fetched document. Only the first `max_chars` characters are inspected.
        url: The already validated http(s) URL the document was fetched from.
        max_chars: Upper bound on the inspected markup.

    Returns:
        A PageMetrics snapshot. Missing features yield zero/false/empty values.
    """
    html = html[:max_chars]

    title_block = next(_iter_blocks(html, _TITLE_OPEN_RE, _TITLE_CLOSE_RE), None)
    title = title_block[2].strip() if title_block else ""

    metas = [parse_attributes(tag) for tag in _META_RE.findall(html)]
    links = [parse_attributes(tag) for tag in _LINK_RE.findall(html)]

    description = next(
        (m.get("content", "").strip() for m in metas if m.get("name", "").lower() == "description"),
        "",
    )
    meta_names = {m.get("name", "").strip().lower() for m in metas}
    has_open_graph = any(m.get("property", "").lower().startswith("og:") for m in metas)

    # Headings
    h1_count = len(_H1_OPEN_RE.findall(html))
    h1_texts = {_strip_tags(inner) for _, _, inner in _iter_blocks(html, _H1_OPEN_RE, _H1_CLOSE_RE)}
    unique_h1 = h1_count == 1 and len(h1_texts) == 1 and "" not in h1_texts

    # Images
    img_tags = _IMG_RE.findall(html)
    img_with_alt = sum(1 for tag in img_tags if parse_attributes(tag).get("alt", "").strip())

    # Structured data
    has_json_ld = any(
        parse_attributes(tag).get("type", "").strip().lower() == "application/ld+json"
        for tag in _SCRIPT_OPEN_RE.findall(html)
    )

    try:
        source_host = urlsplit(url).hostname
    except ValueError:
        source_host = None
    link_count, internal_links, external_links = _count_links(html, source_host)

    return PageMetrics(
        url=url,
        title=title,
        description=description,
        h1_count=h1_count,
        h2_count=len(_H2_OPEN_RE.findall(html)),
        h3_count=len(_H3_OPEN_RE.findall(html)),
        img_count=len(img_tags),
        img_with_alt_count=img_with_alt,
        script_count=len(_SCRIPT_OPEN_RE.findall(html)),
        stylesheet_count=sum(1 for link in links if "stylesheet" in _rel_tokens(link)),
        inline_style_count=len(_STYLE_OPEN_RE.findall(html)),
        html_length=len(html),
        has_viewport="viewport" in meta_names,
        has_lang=bool(_HTML_LANG_RE.search(html)),
        has_canonical=any("canonical" in _rel_tokens(link) for link in links),
        has_robots="robots" in meta_names,
        has_open_graph=has_open_graph,
        has_structured_data=has_json_ld or bool(_MICRODATA_RE.search(html)),
        has_charset=bool(_CHARSET_RE.search(html)),
        is_https=url.lower().startswith("https://"),
        link_count=link_count,
        internal_link_count=internal_links,
        external_link_count=external_links,
        has_h1=h1_count > 0,
        unique_h1=unique_h1,
        text_to_html_ratio=text_to_html_ratio(html),
    )
