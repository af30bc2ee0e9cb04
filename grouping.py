#!/usr/bin/env python3
"""
Grouping Module for Readwise EPUB Tool
Splits documents into named batches, one batch per output book.

Documents are first grouped by (author, site). A group with more than one
document and at least one of author/site set becomes its own batch. Everything
else is chunked in update order into batches of roughly an hour of reading,
each named after the date of its first document.
"""

import logging
from typing import Dict, List, Optional, Tuple

from models import Batch, ReaderItem

logger = logging.getLogger(__name__)

# Roughly one hour of reading at ~130 words per minute.
DEFAULT_WORD_THRESHOLD = 8000

AffinityKey = Tuple[Optional[str], Optional[str]]


def sort_by_updated(items: List[ReaderItem]) -> List[ReaderItem]:
    """Stable ascending sort on updated_at."""
    return sorted(items, key=lambda item: item.updated_at)


def affinity_key(item: ReaderItem) -> AffinityKey:
    return (item.author, item.site_name)


def affinity_name(author: Optional[str], site_name: Optional[str]) -> Optional[str]:
    """Batch name for an (author, site) pair, or None when neither is set."""
    if author is not None and site_name is not None:
        return f"{author} - {site_name}"
    if author is not None:
        return author
    if site_name is not None:
        return site_name
    return None


def partition_by_affinity(items: List[ReaderItem]) -> Dict[AffinityKey, List[ReaderItem]]:
    """
    Group items by (author, site_name) in a single pass.

    Keys appear in first-seen order and each list keeps input order.
    """
    partitions: Dict[AffinityKey, List[ReaderItem]] = {}
    for item in items:
        partitions.setdefault(affinity_key(item), []).append(item)
    return partitions


def chunk_by_word_count(
    items: List[ReaderItem], threshold: int = DEFAULT_WORD_THRESHOLD
) -> List[List[ReaderItem]]:
    """
    Split items into consecutive chunks by running word count.

    An item joins the current chunk while the chunk's total so far is below
    ``threshold``; otherwise it starts a new chunk. Empty chunks are dropped.
    """
    chunks: List[List[ReaderItem]] = [[]]
    total = 0

    for item in items:
        if total < threshold:
            chunks[-1].append(item)
            total += item.word_count
        else:
            chunks.append([item])
            total = item.word_count

    return [chunk for chunk in chunks if chunk]


def group(
    items: List[ReaderItem], word_threshold: int = DEFAULT_WORD_THRESHOLD
) -> List[Batch]:
    """
    Assign every item to exactly one Batch.

    Args:
        items: Documents with mailto items removed and URLs canonicalized
        word_threshold: Word count at which a remainder chunk is closed

    Returns:
        Affinity batches in discovery order, followed by date-named chunks
    """
    ordered = sort_by_updated(items)
    partitions = partition_by_affinity(ordered)

    batches: List[Batch] = []
    promoted = set()
    for key, members in partitions.items():
        name = affinity_name(*key)
        if name is not None and len(members) > 1:
            logger.debug(f"Affinity batch '{name}' with {len(members)} documents")
            batches.append(Batch(name=name, items=members))
            promoted.add(key)

    remainder = [item for item in ordered if affinity_key(item) not in promoted]

    for chunk in chunk_by_word_count(remainder, word_threshold):
        name = chunk[0].updated_at.date().isoformat()
        batches.append(Batch(name=name, items=chunk))

    logger.info(
        f"Grouped {len(ordered)} documents into {len(promoted)} affinity batch(es) "
        f"and {len(batches) - len(promoted)} dated batch(es)"
    )
    return batches
