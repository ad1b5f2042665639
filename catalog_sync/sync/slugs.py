"""Slug and text normalization helpers used for heuristic matching."""

import re
from collections.abc import Awaitable, Callable

from slugify import slugify

_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str | None) -> str:
    """Lowercase, trim and collapse inner whitespace."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text).strip().lower()


def make_slug(text: str | None) -> str:
    """Build a URL slug, transliterating non-Latin text."""
    if not text:
        return ""
    return slugify(text)


async def unique_slug(
    base: str,
    is_taken: Callable[[str], Awaitable[bool]],
    fallback: str = "category",
) -> str:
    """Return ``base``, or ``base-2``, ``base-3`` ... if it is taken.

    Args:
        base: Preferred slug.
        is_taken: Coroutine telling whether a slug belongs to another entity.
        fallback: Slug used when ``base`` is empty.
    """
    base = base or fallback
    candidate = base
    suffix = 2
    while await is_taken(candidate):
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate
