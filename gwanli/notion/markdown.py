"""Block tree to markdown conversion."""

import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from .client import NotionClient
from .models import ConvertedContent, DatabaseRowItem, RawItem, SlugMapping, plain_text

MAX_DEPTH = 10
PREVIEW_ROWS = 3
MAX_CELL_LENGTH = 50

_NOTION_HOST = re.compile(r"^https?://(?:[\w-]+\.)*notion\.(?:so|site)/", re.IGNORECASE)
_TRAILING_ID = re.compile(r"(?:^|[/-])([0-9a-f]{32})(?:[?#]\S*)?$", re.IGNORECASE)

LIST_BLOCKS = {"bulleted_list_item", "numbered_list_item", "to_do", "toggle"}
CONTAINER_BLOCKS = {"column_list", "column", "synced_block", "template"}
FILE_BLOCKS = {"image", "file", "pdf", "video", "audio"}
LINK_BLOCKS = {"bookmark", "embed", "link_preview"}


def rewrite_link(url: Optional[str], slugs: SlugMapping) -> Optional[str]:
    """
    Point a link at the local slug of the Notion page it references.

    Only notion.so / notion.site URLs and workspace-relative hrefs ending in
    a 32 character id are considered; everything else is returned as is.

    Args:
        url: Link target
        slugs: Slug mapping of the current run

    Returns:
        Local slug if known, otherwise the original url
    """
    if not url:
        return url
    if not (url.startswith("/") or _NOTION_HOST.match(url)):
        return url

    match = _TRAILING_ID.search(url)
    if not match:
        return url
    return slugs.slug_for(match.group(1)) or url


def extract_properties(properties: Dict[str, Any]) -> Dict[str, str]:
    """
    Flatten a Notion property bag into strings.

    Args:
        properties: Page properties from the Notion API

    Returns:
        Mapping of property name to display string
    """
    extracted: Dict[str, str] = {}

    for key, prop in properties.items():
        if not isinstance(prop, dict):
            extracted[key] = ""
            continue

        prop_type = prop.get("type")
        value = prop.get(prop_type) if prop_type else None

        if prop_type in ("title", "rich_text"):
            extracted[key] = plain_text(value)
        elif prop_type in ("select", "status"):
            extracted[key] = (value or {}).get("name", "")
        elif prop_type == "multi_select":
            extracted[key] = ", ".join(option.get("name", "") for option in value or [])
        elif prop_type == "date":
            extracted[key] = (value or {}).get("start") or ""
        elif prop_type == "number":
            extracted[key] = "" if value is None else str(value)
        elif prop_type == "checkbox":
            extracted[key] = "true" if value else "false"
        elif prop_type in ("url", "email", "phone_number"):
            extracted[key] = value or ""
        elif prop_type == "people":
            extracted[key] = ", ".join(person.get("name") or person.get("id", "") for person in value or [])
        elif prop_type == "relation":
            extracted[key] = ", ".join(related.get("id", "") for related in value or [])
        elif prop_type == "formula":
            formula = value or {}
            result = formula.get(formula.get("type", ""))
            extracted[key] = "" if result is None else str(result)
        else:
            extracted[key] = ""

    return extracted


def _escape_cell(value: str) -> str:
    return value.replace("\n", " ").replace("|", "\\|")


def render_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    """Render a markdown table with a header row."""
    lines = [
        "| " + " | ".join(_escape_cell(h) for h in headers) + " |",
        "| " + " | ".join("---" for _ in headers) + " |",
    ]
    for row in rows:
        cells = list(row) + [""] * (len(headers) - len(row))
        lines.append("| " + " | ".join(_escape_cell(c) for c in cells[: len(headers)]) + " |")
    return "\n".join(lines)


def render_database_table(title: str, headers: List[str], rows: List[Dict[str, str]]) -> str:
    """
    Render a database preview section.

    Args:
        title: Section heading
        headers: Property names, taken from the first row
        rows: Flattened row properties

    Returns:
        Markdown heading followed by a table, or an empty-state note
    """
    if not headers or not rows:
        return f"## {title}\n\n*No entries found*"

    table_rows = []
    for row in rows:
        cells = []
        for header in headers:
            value = str(row.get(header) or "")
            if len(value) > MAX_CELL_LENGTH:
                value = value[: MAX_CELL_LENGTH - 3] + "..."
            cells.append(value)
        table_rows.append(cells)

    return f"## {title}\n\n{render_table(headers, table_rows)}"


def _wrap(text: str, marker: str) -> str:
    """Wrap text in an inline marker, keeping surrounding whitespace outside."""
    stripped = text.strip()
    if not stripped:
        return text
    leading = text[: len(text) - len(text.lstrip())]
    trailing = text[len(text.rstrip()):]
    return f"{leading}{marker}{stripped}{marker}{trailing}"


def rich_text_to_markdown(rich_text: Optional[List[Dict[str, Any]]], slugs: SlugMapping) -> str:
    """
    Render a rich text array with annotations and links.

    Args:
        rich_text: Rich text objects from the Notion API
        slugs: Slug mapping used to rewrite page links

    Returns:
        Markdown string
    """
    parts = []
    for fragment in rich_text or []:
        text = fragment.get("plain_text", "")
        if not text:
            continue

        if fragment.get("type") == "equation":
            parts.append(f"${text}$")
            continue

        annotations = fragment.get("annotations") or {}
        if annotations.get("code"):
            text = _wrap(text, "`")
        if annotations.get("bold"):
            text = _wrap(text, "**")
        if annotations.get("italic"):
            text = _wrap(text, "_")
        if annotations.get("strikethrough"):
            text = _wrap(text, "~~")

        href = fragment.get("href")
        mention = fragment.get("mention") or {}
        if mention.get("type") == "page":
            page_id = (mention.get("page") or {}).get("id", "")
            href = slugs.slug_for(page_id) or href
        elif href:
            href = rewrite_link(href, slugs)

        if href:
            text = f"[{text}]({href})"
        parts.append(text)

    return "".join(parts)


def _indent(text: str, prefix: str = "    ") -> str:
    return "\n".join(prefix + line if line else line for line in text.split("\n"))


class MarkdownTransformer:
    """Converts Notion pages to markdown with workspace-aware substitutions."""

    def __init__(
        self,
        client: NotionClient,
        preview_rows: int = PREVIEW_ROWS,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize transformer.

        Args:
            client: NotionClient used for block and database queries
            preview_rows: Number of rows shown for nested databases
            logger: Optional logger, defaults to the module logger
        """
        self.client = client
        self.preview_rows = preview_rows
        self.logger = logger or logging.getLogger(__name__)

    async def to_markdown(self, item: RawItem, slugs: SlugMapping) -> ConvertedContent:
        """
        Convert a page to markdown.

        Args:
            item: Page or database row to convert
            slugs: Slug mapping of the current run

        Returns:
            ConvertedContent with markdown and, for database rows, flattened properties
        """
        blocks = await self.render_blocks(item.id, slugs)
        content = "\n\n".join([item.title, *blocks])

        properties = None
        if isinstance(item, DatabaseRowItem):
            properties = extract_properties(item.properties)

        self.logger.debug(f"Converted {item.id} ({len(content)} chars)")
        return ConvertedContent(content=content, properties=properties)

    async def render_blocks(self, block_id: str, slugs: SlugMapping, depth: int = 0) -> List[str]:
        """
        Render all children of a block.

        Args:
            block_id: Page or block ID
            slugs: Slug mapping of the current run
            depth: Current nesting depth

        Returns:
            Rendered markdown chunks, one per block
        """
        if depth > MAX_DEPTH:
            self.logger.debug(f"Max depth reached at block: {block_id}")
            return []

        children = await self.client.get_block_children(block_id)
        if children and children[0].get("type") == "table_row":
            return [self._render_table_rows(children, slugs)]

        rendered = []
        for block in children:
            chunk = await self.render_block(block, slugs, depth)
            if chunk:
                rendered.append(chunk)
        return rendered

    async def render_block(self, block: Dict[str, Any], slugs: SlugMapping, depth: int = 0) -> Optional[str]:
        """
        Render one block, descending into its children where needed.

        Args:
            block: Block object from the Notion API
            slugs: Slug mapping of the current run
            depth: Current nesting depth

        Returns:
            Markdown string, or None for blocks with nothing to show
        """
        block_type = block.get("type", "")
        data = block.get(block_type) or {}

        if block_type == "child_database":
            return await self._render_child_database(block)
        if block_type in ("child_page", "link_to_page"):
            return self._render_page_link(block, slugs)

        text = self._render_block_text(block_type, data, slugs)

        if not block.get("has_children"):
            return text

        children = await self.render_blocks(block["id"], slugs, depth + 1)
        if not children:
            return text

        if block_type in CONTAINER_BLOCKS or block_type == "table":
            return "\n\n".join(children)

        nested = "\n\n".join(children)
        if block_type in LIST_BLOCKS:
            nested = _indent(nested)
        elif block_type in ("quote", "callout"):
            nested = _indent(nested, "> ")
        return f"{text}\n\n{nested}" if text else nested

    def _render_block_text(self, block_type: str, data: Dict[str, Any], slugs: SlugMapping) -> Optional[str]:
        """Render the block's own content, ignoring its children."""
        text = rich_text_to_markdown(data.get("rich_text"), slugs)

        if block_type == "paragraph":
            return text
        if block_type in ("heading_1", "heading_2", "heading_3"):
            return f"{'#' * int(block_type[-1])} {text}"
        if block_type == "bulleted_list_item":
            return f"- {text}"
        if block_type == "numbered_list_item":
            return f"1. {text}"
        if block_type == "to_do":
            return f"- [{'x' if data.get('checked') else ' '}] {text}"
        if block_type == "toggle":
            return f"- {text}"
        if block_type == "quote":
            return _indent(text, "> ")
        if block_type == "callout":
            icon = (data.get("icon") or {}).get("emoji", "")
            return _indent(f"{icon} {text}".strip(), "> ")
        if block_type == "code":
            return f"```{data.get('language', '')}\n{plain_text(data.get('rich_text'))}\n```"
        if block_type == "equation":
            return f"$$\n{data.get('expression', '')}\n$$"
        if block_type == "divider":
            return "---"
        if block_type in FILE_BLOCKS:
            file_info = data.get(data.get("type", "")) or {}
            url = file_info.get("url", "")
            caption = plain_text(data.get("caption")) or block_type
            prefix = "!" if block_type == "image" else ""
            return f"{prefix}[{caption}]({url})"
        if block_type in LINK_BLOCKS:
            url = rewrite_link(data.get("url", ""), slugs)
            caption = plain_text(data.get("caption")) or url
            return f"[{caption}]({url})"
        if block_type == "table_of_contents":
            return "[Table of Contents]"
        if block_type in CONTAINER_BLOCKS or block_type == "table":
            return None

        self.logger.debug(f"Skipping unsupported block type: {block_type}")
        return text or None

    def _render_table_rows(self, rows: List[Dict[str, Any]], slugs: SlugMapping) -> str:
        cells = [
            [rich_text_to_markdown(cell, slugs) for cell in (row.get("table_row") or {}).get("cells", [])]
            for row in rows
        ]
        return render_table(cells[0], cells[1:])

    def _render_page_link(self, block: Dict[str, Any], slugs: SlugMapping) -> str:
        """Render a child page or page link as a link to its slug."""
        if block.get("type") == "child_page":
            target_id = block.get("id", "")
            title = (block.get("child_page") or {}).get("title") or "Untitled Page"
        else:
            link = block.get("link_to_page") or {}
            target_id = link.get(link.get("type", ""), "") or ""
            entry = slugs.get(target_id) if target_id else None
            title = entry.name if entry else "Untitled Page"

        slug = slugs.slug_for(target_id) if target_id else None
        return f"[{title}]({slug or f'notion://{target_id}'})"

    async def _render_child_database(self, block: Dict[str, Any]) -> str:
        """Render a nested database as a preview table of its first rows."""
        database_id = block.get("id", "")
        title = (block.get("child_database") or {}).get("title") or "Untitled Database"

        try:
            results = await self.client.query_database_rows(
                database_id,
                page_size=self.preview_rows,
                sorts=[{"timestamp": "created_time", "direction": "ascending"}],
            )
        except Exception as e:
            self.logger.warning(f"Could not fetch database entries for {database_id}: {e}")
            return render_database_table(title, [], [])

        rows = []
        for result in results:
            properties = result.get("properties") if isinstance(result, dict) else None
            if not isinstance(properties, dict):
                self.logger.warning(f"Skipping malformed row in database {database_id}")
                continue
            rows.append(extract_properties(properties))

        headers = list(rows[0].keys()) if rows else []
        return render_database_table(f"{title} (Database Id: {database_id})", headers, rows)
