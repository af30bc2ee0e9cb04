from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any, List


@dataclass
class ReaderItem:
    source_url: str
    created_at: datetime
    updated_at: datetime
    title: Optional[str] = None
    author: Optional[str] = None
    site_name: Optional[str] = None
    image_url: Optional[str] = None
    summary: Optional[str] = None
    content: Optional[str] = None
    word_count: int = 0
    original: Dict[str, Any] = field(
        default_factory=dict, repr=False
    )  # Preserve all original fields for auditing

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "author": self.author,
            "site_name": self.site_name,
            "source_url": self.source_url,
            "image_url": self.image_url,
            "summary": self.summary,
            "content": self.content,
            "word_count": self.word_count,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class ListPage:
    count: int
    next_page_cursor: Optional[str]
    results: List[ReaderItem] = field(default_factory=list)


@dataclass
class Batch:
    name: str
    items: List[ReaderItem] = field(default_factory=list)

    @property
    def urls(self) -> List[str]:
        return [item.source_url for item in self.items]


@dataclass(frozen=True)
class OutputIdentity:
    filename: str
    title: str
