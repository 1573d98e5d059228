"""Hierarchical slug resolution for the workspace tree."""

import logging
import re
from typing import Dict, List, Optional, Sequence, Set

from .models import RawItem, SlugMapping, compact_id

_INVALID_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_DASHES = re.compile(r"-+")


class SlugCycleError(ValueError):
    """Raised when the parent graph contains a cycle."""


def sanitize_slug(title: str) -> str:
    """
    Turn a title into a URL-safe slug component.

    Args:
        title: Page or database title

    Returns:
        Lowercase component with words joined by single dashes
    """
    slug = _INVALID_CHARS.sub("", title.lower())
    slug = _WHITESPACE.sub("-", slug)
    slug = _DASHES.sub("-", slug)
    return slug.strip("-")


class SlugResolver:
    """Assigns a unique hierarchical slug to every item reachable from the workspace root."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.visited: Set[str] = set()
        self.orphans: List[RawItem] = []

    def resolve(self, items: Sequence[RawItem]) -> SlugMapping:
        """
        Build the slug mapping for a set of pages and databases.

        Items are walked depth first from the workspace root in discovery
        order. Items that never reach the root are left out of the mapping.

        Args:
            items: Top-level pages and databases

        Returns:
            SlugMapping of item id to slug entry

        Raises:
            SlugCycleError: If an item is reached twice or parents form a loop
        """
        self.visited = set()
        self.orphans = []
        mapping = SlugMapping()

        children: Dict[str, List[RawItem]] = {}
        roots: List[RawItem] = []
        for item in items:
            if item.parent.kind == "workspace":
                roots.append(item)
            elif item.parent.id and item.parent.kind in ("page", "database"):
                children.setdefault(compact_id(item.parent.id), []).append(item)

        # Explicit stack keeps deep trees clear of the recursion limit
        stack = [(item, "") for item in reversed(roots)]
        while stack:
            item, parent_slug = stack.pop()
            key = compact_id(item.id)
            if key in self.visited:
                raise SlugCycleError(f"Cycle detected: item {item.id} was reached twice")
            self.visited.add(key)

            path = self._build_path(parent_slug, item.title, mapping)
            mapping.add(item.id, path, item.title)
            self.logger.debug(f"Resolved slug {path} for {item.id}")

            for child in reversed(children.get(key, [])):
                stack.append((child, path))

        self._check_unresolved(items)
        if self.orphans:
            self.logger.info(f"Skipped {len(self.orphans)} items unreachable from the workspace root")

        return mapping

    def _build_path(self, parent_slug: str, title: str, mapping: SlugMapping) -> str:
        """
        Compose a unique path under a parent slug.

        Args:
            parent_slug: Slug of the parent ("" for the root)
            title: Title of the item
            mapping: Slugs assigned so far

        Returns:
            Path like "/projects/notes-1"
        """
        component = sanitize_slug(title)
        candidate = component
        counter = 1
        while mapping.has_slug(f"{parent_slug}/{candidate}"):
            candidate = f"{component}-{counter}"
            counter += 1
        return f"{parent_slug}/{candidate}"

    def _check_unresolved(self, items: Sequence[RawItem]) -> None:
        """Record orphans and fail on parent chains that loop."""
        parents = {
            compact_id(item.id): compact_id(item.parent.id)
            for item in items
            if item.parent.id and item.parent.kind in ("page", "database")
        }

        for item in items:
            key = compact_id(item.id)
            if key in self.visited:
                continue

            chain = {key}
            current = parents.get(key)
            while current is not None and current in parents:
                if current in chain:
                    raise SlugCycleError(f"Cycle detected in parent chain of item {item.id}")
                chain.add(current)
                current = parents.get(current)

            self.orphans.append(item)
