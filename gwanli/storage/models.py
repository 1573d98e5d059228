"""Data models for stored workspace records."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class PageRecord:
    """A regular page converted to markdown."""

    id: str
    title: str
    content: str
    slug: Optional[str]  # None when the page is unreachable from the workspace root
    created_at: str
    last_updated: str
    type: str = field(default="page", init=False)


@dataclass
class DatabasePageRecord:
    """A row of a database converted to markdown."""

    id: str
    properties: Dict[str, str]
    content: str
    created_at: str
    last_updated: str
    title: str = ""
    database_id: Optional[str] = None
    type: str = field(default="database_page", init=False)


@dataclass
class DatabaseRecord:
    """A database and its schema definition."""

    id: str
    title: str
    slug: Optional[str]
    properties: Dict[str, Any]
    created_at: str
    last_updated: str
    type: str = field(default="database", init=False)


@dataclass
class SearchResult:
    """One hit from a full-text or pattern search."""

    type: str  # "page", "database" or "database_page"
    id: str
    title: str
    slug: Optional[str]
    created_at: str
    last_updated: str
    content: Optional[str] = None
    rank: Optional[float] = None


@dataclass
class ResultPage:
    """A page of search results."""

    results: List[SearchResult]
    total_count: int
    has_more: bool
