from __future__ import annotations

import re
from typing import Callable
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Comment, Tag

_ATTR_LIMIT = 200

# tag -> (attributes tried in order, placeholder label, fallback description)
_MEDIA = {
    "img": (("alt", "title", "src"), "IMAGE", ""),
    "video": (("title", "src", "poster"), "VIDEO", "embedded video"),
    "audio": (("title", "src"), "AUDIO", "embedded audio"),
    "iframe": (("title", "name", "src"), "IFRAME", "embedded content"),
}


def _attr(tag: Tag, name: str) -> str:
    value = tag.get(name)
    if not isinstance(value, str):
        return ""
    return value.strip()[:_ATTR_LIMIT]


def _inline_text(tag: Tag) -> str:
    return re.sub(r"\s+", " ", tag.get_text(" ", strip=True)).strip()


def _resolve(href: str, base_url: str) -> str:
    try:
        return urljoin(base_url, href)
    except ValueError:
        return href


def _media_placeholder(tag: Tag) -> str:
    attrs, label, fallback = _MEDIA[tag.name]
    values = {name: _attr(tag, name) for name in attrs}
    if "src" in values and not values["src"]:
        source = tag.find("source")
        if isinstance(source, Tag):
            values["src"] = _attr(source, "src")
    description = next((values[name] for name in attrs if values[name]), "") or fallback
    return f"[{label}: {description}]" if description else f"[{label}]"


def _replace_all(soup: BeautifulSoup, name, render: Callable[[Tag], str]) -> None:
    # Innermost first, so nested matches are already flattened into their parent's text.
    for tag in reversed(soup.find_all(name)):
        if tag.parent is None:
            continue
        tag.replace_with(render(tag))


def extract_text_content(html: str, base_url: str) -> str:
    """
    Turn an HTML document into the plain-text layout returned by the extraction API.

    Title and meta description come first, then the page URL, then the body text
    with headings, list items, links and media placeholders kept readable.
    """
    soup = BeautifulSoup(html, "html.parser")

    for element in soup(["script", "style", "noscript", "template"]):
        element.decompose()
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()

    title_tag = soup.find("title")
    title = _inline_text(title_tag) if isinstance(title_tag, Tag) else ""
    meta = soup.find("meta", attrs={"name": re.compile("^description$", re.I)})
    description = _attr(meta, "content") if isinstance(meta, Tag) else ""
    if isinstance(title_tag, Tag):
        title_tag.decompose()

    _replace_all(soup, list(_MEDIA), _media_placeholder)
    _replace_all(soup, "a", lambda tag: _link_text(tag, base_url))
    _replace_all(soup, re.compile("^h[1-6]$"), lambda tag: f"\n\n{'#' * int(tag.name[1])} {_inline_text(tag)}\n\n")
    _replace_all(soup, "li", lambda tag: f"\n• {_inline_text(tag)}" if _inline_text(tag) else "")
    _replace_all(soup, "p", lambda tag: f"\n\n{_inline_text(tag)}\n\n" if _inline_text(tag) else "")
    _replace_all(soup, "br", lambda tag: "\n")

    root = soup.body if soup.body is not None else soup
    content = _collapse_whitespace(root.get_text(" "))

    parts = []
    if title:
        parts.append(f"TITLE: {title}")
    if description:
        parts.append(f"DESCRIPTION: {description}")
    parts.append(f"URL: {base_url}")
    parts.append("---CONTENT---")
    parts.append(content)
    return "\n\n".join(parts)


def _link_text(anchor: Tag, base_url: str) -> str:
    text = _inline_text(anchor)
    href = _attr(anchor, "href")
    if text and href and not href.startswith("#"):
        return f"{text} [{_resolve(href, base_url)}]"
    return text


def _collapse_whitespace(text: str) -> str:
    lines = [re.sub(r"[ \t\r\f\v\xa0]+", " ", line).strip() for line in text.split("\n")]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()
