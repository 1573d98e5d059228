"""Dataclasses for Notion items flowing through the indexing pipeline."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union


class InvalidItemError(ValueError):
    """Raised when an API payload does not match any known item shape."""


PARENT_KINDS = {
    "workspace": "workspace",
    "page_id": "page",
    "database_id": "database",
    "block_id": "block",
}


@dataclass(frozen=True)
class ParentRef:
    """Parent reference of a page or database."""

    kind: str  # "workspace", "page", "database" or "block"
    id: Optional[str] = None


@dataclass(frozen=True)
class PageItem:
    """A regular page (not a row of a database)."""

    id: str
    parent: ParentRef
    title: str
    created_time: str
    last_edited_time: str
    properties: Dict[str, Any] = field(default_factory=dict, compare=False)
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class DatabaseRowItem:
    """A page that lives inside a database."""

    id: str
    parent: ParentRef
    title: str
    created_time: str
    last_edited_time: str
    properties: Dict[str, Any] = field(default_factory=dict, compare=False)
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def database_id(self) -> Optional[str]:
        return self.parent.id


@dataclass(frozen=True)
class DatabaseItem:
    """A database object. ``properties`` holds the schema definition."""

    id: str
    parent: ParentRef
    title: str
    created_time: str
    last_edited_time: str
    properties: Dict[str, Any] = field(default_factory=dict, compare=False)
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


RawItem = Union[PageItem, DatabaseRowItem, DatabaseItem]


@dataclass(frozen=True)
class SlugEntry:
    """Resolved slug and display name of an item."""

    slug: str
    name: str


def compact_id(item_id: str) -> str:
    """Normalize a Notion id to its 32 character form without dashes."""
    return item_id.replace("-", "").lower()


class SlugMapping:
    """Mapping of item id to SlugEntry.

    Lookups accept both dashed UUIDs and the compact form found in URLs.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, SlugEntry] = {}
        self._slugs: set = set()

    def add(self, item_id: str, slug: str, name: str) -> None:
        if slug in self._slugs:
            raise ValueError(f"Slug already assigned: {slug}")
        self._entries[compact_id(item_id)] = SlugEntry(slug=slug, name=name)
        self._slugs.add(slug)

    def get(self, item_id: str) -> Optional[SlugEntry]:
        return self._entries.get(compact_id(item_id))

    def slug_for(self, item_id: str) -> Optional[str]:
        entry = self.get(item_id)
        return entry.slug if entry else None

    def has_slug(self, slug: str) -> bool:
        return slug in self._slugs

    def slugs(self) -> List[str]:
        return [entry.slug for entry in self._entries.values()]

    def items(self) -> Iterator[Tuple[str, SlugEntry]]:
        return iter(self._entries.items())

    def __contains__(self, item_id: object) -> bool:
        return isinstance(item_id, str) and compact_id(item_id) in self._entries

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class ConvertedContent:
    """Markdown rendering of a page, plus flattened properties for rows."""

    content: str
    properties: Optional[Dict[str, str]] = None


@dataclass
class FetchResult:
    """Everything pulled from the workspace in one crawl."""

    pages: List[PageItem] = field(default_factory=list)
    database_rows: List[DatabaseRowItem] = field(default_factory=list)
    databases: List[DatabaseItem] = field(default_factory=list)

    @property
    def top_level_items(self) -> List[RawItem]:
        return [*self.pages, *self.databases]


@dataclass
class IndexingStats:
    """Statistics from an indexing run."""

    pages_indexed: int = 0
    databases_indexed: int = 0
    database_rows_indexed: int = 0
    orphaned_items: int = 0
    slugs_assigned: int = 0


def plain_text(rich_text: Optional[List[Dict[str, Any]]]) -> str:
    """Join the plain_text fragments of a rich text array."""
    return "".join(t.get("plain_text", "") for t in rich_text or [])


def extract_title(payload: Dict[str, Any]) -> str:
    """Extract the title of a page or database payload."""
    if payload.get("object") == "database":
        return plain_text(payload.get("title")) or "untitled"

    for prop in (payload.get("properties") or {}).values():
        if isinstance(prop, dict) and prop.get("type") == "title":
            return plain_text(prop.get("title")) or "untitled"
    return "untitled"


def _parse_parent(payload: Dict[str, Any]) -> ParentRef:
    parent = payload.get("parent")
    if not isinstance(parent, dict) or parent.get("type") not in PARENT_KINDS:
        raise InvalidItemError(
            f"Item {payload.get('id')!r} has an unsupported parent: {parent!r}"
        )

    parent_type = parent["type"]
    if parent_type == "workspace":
        return ParentRef(kind="workspace")

    parent_id = parent.get(parent_type)
    if not isinstance(parent_id, str) or not parent_id:
        raise InvalidItemError(
            f"Item {payload.get('id')!r} has a {parent_type} parent without an id"
        )
    return ParentRef(kind=PARENT_KINDS[parent_type], id=parent_id)


def parse_item(payload: Dict[str, Any]) -> RawItem:
    """
    Validate a search result and turn it into a tagged item.

    Args:
        payload: Page or database object from the Notion API

    Returns:
        PageItem, DatabaseRowItem or DatabaseItem

    Raises:
        InvalidItemError: If the payload does not have the expected shape
    """
    if not isinstance(payload, dict):
        raise InvalidItemError(f"Expected an object, got {type(payload).__name__}")

    item_id = payload.get("id")
    if not isinstance(item_id, str) or not item_id:
        raise InvalidItemError("Item is missing an id")

    for key in ("created_time", "last_edited_time"):
        if not isinstance(payload.get(key), str):
            raise InvalidItemError(f"Item {item_id!r} is missing {key}")

    properties = payload.get("properties")
    if not isinstance(properties, dict):
        raise InvalidItemError(f"Item {item_id!r} has no properties")

    parent = _parse_parent(payload)
    kwargs = dict(
        id=item_id,
        parent=parent,
        title=extract_title(payload),
        created_time=payload["created_time"],
        last_edited_time=payload["last_edited_time"],
        properties=properties,
        raw=payload,
    )

    object_type = payload.get("object")
    if object_type == "database":
        if not isinstance(payload.get("title"), list):
            raise InvalidItemError(f"Database {item_id!r} has no title array")
        return DatabaseItem(**kwargs)
    if object_type == "page":
        if parent.kind == "database":
            return DatabaseRowItem(**kwargs)
        return PageItem(**kwargs)

    raise InvalidItemError(f"Item {item_id!r} has unknown object type {object_type!r}")
