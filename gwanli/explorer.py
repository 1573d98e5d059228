"""Read-side helpers for browsing an indexed workspace."""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .storage import DatabaseRecord, PageRecord, ResultPage, WorkspaceDB

logger = logging.getLogger(__name__)

TRUNCATED = "++"
EMPTY_SEGMENT = "(untitled)"


def open_workspace_db(storage_path: str) -> WorkspaceDB:
    """
    Open an existing workspace database.

    Args:
        storage_path: Path of the workspace database file, "~" is expanded

    Returns:
        WorkspaceDB for the file

    Raises:
        FileNotFoundError: If the workspace has not been indexed yet
    """
    path = Path(storage_path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Workspace database not found: {path}")
    return WorkspaceDB(str(path))


class TreeNode:
    """A path segment in the slug tree."""

    def __init__(self) -> None:
        self.children: Dict[str, "TreeNode"] = {}
        self.truncated = False


def extract_slug_prefix(prefix: str) -> Tuple[str, str]:
    """
    Normalize a listing prefix.

    Args:
        prefix: Prefix such as "/", "/projects" or "/projects/"

    Returns:
        Tuple of (prefix without trailing "/", last path segment)
    """
    prefix = prefix.strip() or "/"
    if not prefix.startswith("/"):
        prefix = "/" + prefix
    if prefix != "/" and prefix.endswith("/"):
        prefix = prefix.rstrip("/") or "/"
    return prefix, prefix.rsplit("/", 1)[-1]


def build_tree(slugs: List[str], max_depth: int) -> TreeNode:
    """
    Group slugs into a tree of path segments.

    Segments deeper than ``max_depth`` are dropped and their ancestor at the
    depth limit is marked as truncated.

    Args:
        slugs: Slugs relative to the listing root, e.g. "/notes/todo". An empty
            segment, as in "/notes/", is kept as its own node.
        max_depth: Number of segment levels to keep

    Returns:
        Root TreeNode
    """
    root = TreeNode()
    for slug in slugs:
        # Only the leading "/" is dropped; "/notes/" has an empty last segment
        parts = slug[1:].split("/") if slug else []
        node = root
        for depth, part in enumerate(parts):
            if depth >= max_depth:
                node.truncated = True
                break
            node = node.children.setdefault(part, TreeNode())
    return root


def render_tree(node: TreeNode, indent: str = "") -> List[str]:
    """Render a tree with box drawing connectors, one line per node."""
    lines = []
    names = list(node.children)
    for index, name in enumerate(names):
        child = node.children[name]
        last = index == len(names) - 1
        label = name or EMPTY_SEGMENT
        if child.truncated:
            label = f"{label} {TRUNCATED}"
        lines.append(f"{indent}{'└── ' if last else '├── '}{label}")
        lines.extend(render_tree(child, indent + ("    " if last else "│   ")))
    return lines


async def list_files(storage_path: str, prefix: str = "/", max_depth: int = 2) -> str:
    """
    Render the slugs under a prefix as an indented tree.

    Args:
        storage_path: Path of the workspace database file
        prefix: Only list slugs under this path
        max_depth: Maximum number of levels below the prefix

    Returns:
        Tree listing; "++" marks nodes with deeper, hidden entries
    """
    if max_depth < 1:
        raise ValueError(f"max_depth must be at least 1, got {max_depth}")

    slugs = await open_workspace_db(storage_path).list_all_slugs()
    processed_prefix, _ = extract_slug_prefix(prefix)

    if processed_prefix == "/":
        relative = slugs
    else:
        relative = [
            slug[len(processed_prefix):]
            for slug in slugs
            if slug == processed_prefix or slug.startswith(processed_prefix + "/")
        ]

    logger.debug(f"Found {len(relative)} slugs matching prefix: {processed_prefix}")

    tree = build_tree(sorted(relative), max_depth)
    lines = [processed_prefix, *render_tree(tree)]
    header = (
        f"Showing files from {processed_prefix} with max depth {max_depth}\n"
        f"- {TRUNCATED} indicates there are more pages/databases to explore from this path.\n"
    )
    return header + "\n" + "\n".join(lines)


async def search(
    storage_path: str,
    query: str,
    limit: int = 10,
    offset: int = 0,
    include_content: bool = False,
) -> ResultPage:
    """Full-text search in a workspace database."""
    return await open_workspace_db(storage_path).search(
        query, limit=limit, offset=offset, include_content=include_content
    )


async def find_by_pattern(
    storage_path: str,
    pattern: str,
    field: str = "slug",
    limit: int = 10,
    offset: int = 0,
    include_content: bool = False,
) -> ResultPage:
    """Glob match slugs or titles in a workspace database."""
    return await open_workspace_db(storage_path).find_by_pattern(
        pattern, field=field, limit=limit, offset=offset, include_content=include_content
    )


async def get_by_slug(storage_path: str, slug: str) -> Optional[Union[PageRecord, DatabaseRecord]]:
    """Fetch a page or database by slug from a workspace database."""
    return await open_workspace_db(storage_path).get_by_slug(slug)
