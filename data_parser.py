from typing import Dict, Any
from datetime import datetime
from models import ReaderItem, ListPage


class PageFormatError(ValueError):
    """Raised when a Reader API payload does not match the list schema."""


def parse_timestamp(value: Any) -> datetime:
    """Parse an RFC 3339 timestamp such as ``2024-01-01T08:30:00.123456Z``."""
    if not isinstance(value, str) or not value:
        raise PageFormatError(f"Expected RFC 3339 timestamp, got {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError as e:
        raise PageFormatError(f"Invalid timestamp {value!r}: {e}") from e
    if dt.tzinfo is None:
        raise PageFormatError(f"Timestamp {value!r} has no UTC offset")
    return dt


def parse_reader_item(raw: Dict[str, Any]) -> ReaderItem:
    """
    Parse a raw Reader API document dict into a ReaderItem dataclass.
    Optional text fields may be missing or null; source_url and both
    timestamps are required. A null word_count is treated as 0.
    """
    if not isinstance(raw, dict):
        raise PageFormatError(f"Expected item object, got {type(raw).__name__}")

    def get_str(field):
        val = raw.get(field)
        return str(val) if val is not None else None

    def get_word_count():
        val = raw.get("word_count")
        if val is None:
            return 0
        if isinstance(val, bool):
            raise PageFormatError(f"Invalid word_count: {val!r}")
        try:
            count = int(val)
        except (ValueError, TypeError):
            raise PageFormatError(f"Invalid word_count: {val!r}")
        if count < 0:
            raise PageFormatError(f"Negative word_count: {count}")
        return count

    source_url = raw.get("source_url")
    if not isinstance(source_url, str) or not source_url:
        raise PageFormatError(f"Item is missing source_url: {raw.get('id', raw)!r}")

    return ReaderItem(
        source_url=source_url,
        created_at=parse_timestamp(raw.get("created_at")),
        updated_at=parse_timestamp(raw.get("updated_at")),
        title=get_str("title"),
        author=get_str("author"),
        site_name=get_str("site_name"),
        image_url=get_str("image_url"),
        summary=get_str("summary"),
        content=get_str("content"),
        word_count=get_word_count(),
        original=raw.copy(),
    )


def parse_list_page(raw: Dict[str, Any]) -> ListPage:
    """Parse one ``/api/v3/list/`` response body into a ListPage."""
    if not isinstance(raw, dict):
        raise PageFormatError(f"Expected page object, got {type(raw).__name__}")

    count = raw.get("count")
    if count is None:
        count = 0
    if isinstance(count, bool) or not isinstance(count, int):
        raise PageFormatError(f"Invalid count: {count!r}")

    cursor = raw.get("nextPageCursor")
    if cursor is not None and not isinstance(cursor, str):
        raise PageFormatError(f"Invalid nextPageCursor: {cursor!r}")

    results = raw.get("results")
    if not isinstance(results, list):
        raise PageFormatError("Page is missing a results array")

    return ListPage(
        count=count,
        next_page_cursor=cursor,
        results=[parse_reader_item(item) for item in results],
    )
