"""Notion API client wrapper with pagination and shared rate limiting."""

import logging
from typing import Any, Dict, List, Optional

from notion_client import AsyncClient

from .pool import ConcurrencyLimiter

SEARCH_PAGE_SIZE = 100
BLOCK_PAGE_SIZE = 100


class NotionClient:
    """Async Notion API client whose calls all share one concurrency limiter."""

    def __init__(
        self,
        api_key: str,
        limiter: Optional[ConcurrencyLimiter] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize Notion client.

        Args:
            api_key: Notion integration API key
            limiter: Shared limiter; a width-2 limiter is created if omitted
            logger: Optional logger, defaults to the module logger
        """
        self.client = AsyncClient(auth=api_key)
        self.limiter = limiter or ConcurrencyLimiter()
        self.logger = logger or logging.getLogger(__name__)

    async def search(
        self,
        object_type: str,
        start_cursor: Optional[str] = None,
        page_size: int = SEARCH_PAGE_SIZE,
    ) -> Dict[str, Any]:
        """
        Run one page of a search filtered by object type.

        Args:
            object_type: "page" or "database"
            start_cursor: Cursor returned by the previous page
            page_size: Number of results per page

        Returns:
            Raw search response with results, has_more and next_cursor
        """
        kwargs: Dict[str, Any] = {
            "filter": {"property": "object", "value": object_type},
            "page_size": page_size,
        }
        if start_cursor:
            kwargs["start_cursor"] = start_cursor

        async with self.limiter:
            return await self.client.search(**kwargs)

    async def get_block_children(self, block_id: str) -> List[Dict[str, Any]]:
        """
        Fetch all child blocks of a page or block, handling pagination.

        Args:
            block_id: Page ID or block ID

        Returns:
            List of raw block objects
        """
        blocks: List[Dict[str, Any]] = []
        cursor = None

        while True:
            kwargs: Dict[str, Any] = {"block_id": block_id, "page_size": BLOCK_PAGE_SIZE}
            if cursor:
                kwargs["start_cursor"] = cursor

            async with self.limiter:
                response = await self.client.blocks.children.list(**kwargs)

            blocks.extend(response.get("results", []))

            if not response.get("has_more"):
                break
            cursor = response.get("next_cursor")

        return blocks

    async def query_database_rows(
        self,
        database_id: str,
        page_size: int = 3,
        sorts: Optional[List[Dict[str, Any]]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Query the first rows of a database.

        Args:
            database_id: Database ID
            page_size: Number of rows to return
            sorts: Optional Notion sorts, e.g. by created_time

        Returns:
            List of row page objects
        """
        kwargs: Dict[str, Any] = {"database_id": database_id, "page_size": page_size}
        if sorts:
            kwargs["sorts"] = sorts

        async with self.limiter:
            response = await self.client.databases.query(**kwargs)
        return response.get("results", [])

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()
