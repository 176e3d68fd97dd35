"""Selector list handling for the extraction stage."""

from __future__ import annotations

from core.errors import InvalidInput
from core.models.tasks import is_http_url

EXCLUDE_PREFIX = "!"


def split_selectors(tags: str | list[str]) -> tuple[list[str], list[str]]:
    """Split a raw tag list into (include, exclude) selectors.

    ``"body>div, !.promo"`` -> ``(["body>div"], [".promo"])``. Entries are
    trimmed and empty ones dropped.
    """
    items = tags.split(",") if isinstance(tags, str) else list(tags)

    include: list[str] = []
    exclude: list[str] = []
    for item in items:
        selector = item.strip()
        if selector.startswith(EXCLUDE_PREFIX):
            selector = selector[len(EXCLUDE_PREFIX):].strip()
            if selector:
                exclude.append(selector)
        elif selector:
            include.append(selector)
    return include, exclude


def validate_target(url: str, tags: str | list[str]) -> tuple[list[str], list[str]]:
    """Check the locator and selector list before any resource is acquired.

    Raises:
        InvalidInput: bad URL, or no include selector at all.
    """
    if not is_http_url(url):
        raise InvalidInput(f"Invalid URL: {url!r}")

    include, exclude = split_selectors(tags)
    if not include:
        raise InvalidInput("Tags must contain at least one include selector")
    return include, exclude
