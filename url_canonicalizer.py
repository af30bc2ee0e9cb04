"""
URL canonicalization for Reader documents.

Each document's source URL is probed with a HEAD request that follows
redirects, and rewritten to wherever it finally lands. Probe failures are
logged and leave the URL untouched.
"""

import logging
from typing import List, Optional

import requests
from requests import Session

from models import ReaderItem

logger = logging.getLogger(__name__)

MAILTO_SCHEME = "mailto:"


def is_mailto(url: str) -> bool:
    return url[: len(MAILTO_SCHEME)].lower() == MAILTO_SCHEME


def drop_mailto_items(items: List[ReaderItem]) -> List[ReaderItem]:
    """Remove email documents, which have no web page to render."""
    kept = [item for item in items if not is_mailto(item.source_url)]
    dropped = len(items) - len(kept)
    if dropped:
        logger.info(f"Skipping {dropped} email document(s)")
    return kept


def resolve_url(session: Session, url: str, timeout: Optional[float] = 30) -> str:
    """
    Return the final URL reached by a HEAD request to ``url``.

    Any response counts, whatever its status code.

    Raises:
        requests.exceptions.RequestException: if no response was received
        ValueError: if the URL cannot be parsed (e.g. an over-long host label)
    """
    response = session.head(url, allow_redirects=True, timeout=timeout)
    try:
        return response.url or url
    finally:
        response.close()


def canonicalize(
    items: List[ReaderItem], session: Session, timeout: Optional[float] = 30
) -> List[ReaderItem]:
    """
    Rewrite each item's source_url in place to its redirect target.

    Probes run one at a time, in list order.

    Returns:
        The same list, for chaining
    """
    for item in items:
        if is_mailto(item.source_url):
            continue

        try:
            resolved = resolve_url(session, item.source_url, timeout=timeout)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"Failed to HEAD {item.source_url}: {e}")
            continue

        if resolved != item.source_url:
            logger.info(f"Redirected from {item.source_url} to {resolved}")
            item.source_url = resolved

    return items
