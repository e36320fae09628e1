"""Display helpers shared by result views."""

import re
from typing import Union
from urllib.parse import urlparse

from ..models import LinkType, ResultRecord

# WordPress directories that never name a page
IGNORED_PATH_PARTS = {"wordpress", "wp-content", "wp-includes", "wp-admin"}

ELLIPSIS = "..."


def page_name_from_url(url: str) -> str:
    """Derive a readable page name from a URL.

    Examples:
        https://example.com/ -> Home Page
        https://example.com/about-me/ -> About Me
        https://example.com/wp-content/ -> Page
    """
    try:
        parsed = urlparse(url)
    except (TypeError, ValueError):
        return "Page"
    if not parsed.scheme or not parsed.netloc:
        return "Page"

    path = parsed.path
    if path in ("", "/"):
        return "Home Page"

    parts = [p for p in path.split("/") if p and p.lower() not in IGNORED_PATH_PARTS]
    if not parts:
        return "Page"

    slug = parts[-1].replace("-", " ").replace("_", " ")
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), slug)


def page_title(record: ResultRecord) -> str:
    return record.found_on_page_title or page_name_from_url(record.found_on_url or "")


def link_text_display(record: ResultRecord) -> str:
    """Label the link as anchor text or a naked URL."""
    anchor = (record.anchor_text or "").strip()
    if anchor and anchor != record.original_url:
        return f'Anchor Text: "{record.anchor_text}"'
    return "Naked Link:"


def link_type_label(record: ResultRecord) -> str:
    return "Internal" if record.link_type == LinkType.INTERNAL else "External"


def status_label(record: ResultRecord) -> str:
    return f"{record.status_code} Error {record.error_class}"


def pagination_window(current_page: int, pages: int) -> list[Union[int, str]]:
    """Page buttons to show: first, last, current +-1, with ellipses at +-2."""
    window: list[Union[int, str]] = []
    for i in range(1, pages + 1):
        if i == 1 or i == pages or current_page - 1 <= i <= current_page + 1:
            window.append(i)
        elif i in (current_page - 2, current_page + 2):
            window.append(ELLIPSIS)
    return window
