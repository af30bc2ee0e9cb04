#!/usr/bin/env python3
"""
Data Fetcher Module for Readwise EPUB Tool
Handles fetching documents from the Readwise Reader list API with cursor
pagination and a fixed request rate.
"""

import json
import time
import logging
from typing import Dict, List, Optional, Generator
import requests
from requests import Session

from data_parser import parse_list_page
from models import ReaderItem, ListPage

logger = logging.getLogger(__name__)

DEFAULT_LIST_URL = "https://readwise.io/api/v3/list/"
DEFAULT_REQUESTS_PER_WINDOW = 20
DEFAULT_WINDOW_SECONDS = 60.0


class ReaderAPIError(Exception):
    """Raised when a list request fails. Fetch errors abort the whole run."""


class ReaderDataFetcher:
    """Handles fetching documents from the Reader API with pagination and rate limiting."""

    def __init__(
        self,
        session: Session,
        access_token: str,
        base_url: str = DEFAULT_LIST_URL,
        requests_per_window: int = DEFAULT_REQUESTS_PER_WINDOW,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        timeout: Optional[float] = 30,
    ):
        if requests_per_window <= 0:
            raise ValueError("requests_per_window must be positive")
        self.session = session
        self.access_token = access_token
        self.base_url = base_url
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds
        self.timeout = timeout

    @property
    def rate_limit_delay(self) -> float:
        """Seconds to wait between two consecutive list requests."""
        return self.window_seconds / self.requests_per_window

    def fetch_pages(
        self, base_query: Optional[Dict[str, str]] = None
    ) -> Generator[ListPage, None, None]:
        """
        Walk the list endpoint page by page until no cursor is returned.

        Args:
            base_query: Query parameters sent with every request (e.g. location)

        Yields:
            Parsed ListPage objects in arrival order
        """
        cursor = None
        page_number = 0

        while True:
            if page_number > 0:
                logger.debug(f"Rate limiting delay: {self.rate_limit_delay:.1f}s")
                time.sleep(self.rate_limit_delay)

            page_number += 1
            logger.info(f"Fetching page {page_number} (cursor={cursor})")
            page = self._fetch_page(base_query or {}, cursor)
            logger.debug(
                f"Page {page_number}: {len(page.results)} documents "
                f"(count={page.count})"
            )

            yield page

            cursor = page.next_page_cursor
            if cursor is None:
                break

    def _fetch_page(self, base_query: Dict[str, str], cursor: Optional[str]) -> ListPage:
        """
        Fetch and parse a single page of documents.

        Args:
            base_query: Query parameters sent with every request
            cursor: Continuation cursor from the previous page, None for the first

        Returns:
            Parsed ListPage

        Raises:
            ReaderAPIError: on network errors, non-200 responses or invalid JSON
            PageFormatError: when the JSON does not match the page schema
        """
        params = dict(base_query)
        if cursor is not None:
            params["pageCursor"] = cursor

        try:
            response = self.session.get(
                self.base_url,
                params=params,
                headers={
                    "Authorization": f"Token {self.access_token}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Network error during API request: {e}")
            raise ReaderAPIError(f"Network error during API request: {e}") from e

        if response.status_code == 401:
            logger.error("Authentication failed. Check your reader token.")
            raise ReaderAPIError("Authentication failed (HTTP 401)")

        if response.status_code != 200:
            logger.error(
                f"API request failed with status {response.status_code}: "
                f"{response.text}"
            )
            raise ReaderAPIError(
                f"API request failed with status {response.status_code}"
            )

        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            logger.error(f"Invalid JSON response: {e}")
            raise ReaderAPIError(f"Invalid JSON response: {e}") from e

        return parse_list_page(data)

    def fetch_all(self, base_query: Optional[Dict[str, str]] = None) -> List[ReaderItem]:
        """
        Fetch every document across all pages.

        Args:
            base_query: Query parameters sent with every request

        Returns:
            List of all items, in page-arrival order
        """
        items: List[ReaderItem] = []
        pages = 0

        for page in self.fetch_pages(base_query):
            pages += 1
            items.extend(page.results)

        logger.info(f"Fetched {len(items)} total documents in {pages} page(s)")
        return items


def create_data_fetcher(authenticator, **kwargs) -> Optional[ReaderDataFetcher]:
    """
    Create a data fetcher instance from an authenticator.

    Args:
        authenticator: ReaderAuthenticator instance
        **kwargs: Extra ReaderDataFetcher options (rate limit, timeout)

    Returns:
        ReaderDataFetcher instance or None if no session is available
    """
    session = authenticator.get_session()
    if not session:
        logger.error("No authenticated session available")
        return None

    return ReaderDataFetcher(
        session=session,
        access_token=authenticator.access_token,
        **kwargs,
    )
