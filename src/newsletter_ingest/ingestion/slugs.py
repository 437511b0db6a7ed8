"""URL-safe slug derivation and collision resolution."""

from __future__ import annotations

import logging
import re
import time
import unicodedata
from collections.abc import Callable

logger = logging.getLogger(__name__)

MAX_COUNTER_ATTEMPTS = 100
EMPTY_SLUG = "untitled"

_DISALLOWED_RE = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE_RE = re.compile(r"\s+")
_HYPHENS_RE = re.compile(r"-+")


def generate_slug(title: str) -> str:
    """Lower-case, strip everything but letters, digits, spaces and hyphens, then hyphenate."""

    folded = unicodedata.normalize("NFKD", title).encode("ascii", "ignore").decode("ascii")
    slug = _DISALLOWED_RE.sub("", folded.lower())
    slug = _WHITESPACE_RE.sub("-", slug.strip())
    slug = _HYPHENS_RE.sub("-", slug).strip("-")
    return slug or EMPTY_SLUG


def generate_unique_slug(
    base_slug: str,
    exists: Callable[[str], bool],
    *,
    now_ns: Callable[[], int] = time.time_ns,
) -> str:
    """Return ``base_slug`` or the first non-colliding suffixed variant of it.

    Order of attempts: the base itself, a nanosecond timestamp suffix, then
    ``-1`` to ``-100``. When all of those collide the timestamp form is returned
    without another check.
    """

    if not exists(base_slug):
        return base_slug

    timestamped = f"{base_slug}-{now_ns()}"
    if not exists(timestamped):
        return timestamped

    for counter in range(1, MAX_COUNTER_ATTEMPTS + 1):
        candidate = f"{base_slug}-{counter}"
        if not exists(candidate):
            return candidate

    logger.warning("Slug counter exhausted for %s, using timestamp suffix", base_slug)
    return f"{base_slug}-{now_ns()}"
