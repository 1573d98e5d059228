"""Paginated crawl of every page and database visible to the integration."""

import asyncio
import logging
from typing import List, Optional

from .client import NotionClient
from .models import DatabaseItem, DatabaseRowItem, FetchResult, PageItem, RawItem, parse_item

PAGE = "page"
DATABASE = "database"


class WorkspaceFetcher:
    """Pulls all pages and databases through the search endpoint."""

    def __init__(
        self,
        client: NotionClient,
        rate_limit_delay: float = 0.1,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize fetcher.

        Args:
            client: NotionClient instance
            rate_limit_delay: Delay between successive search pages (seconds)
            logger: Optional logger, defaults to the module logger
        """
        self.client = client
        self.rate_limit_delay = rate_limit_delay
        self.logger = logger or logging.getLogger(__name__)

    async def fetch_all(self, kind: str) -> List[RawItem]:
        """
        Fetch every item of one object kind, following cursors.

        Any request error aborts the crawl and propagates.

        Args:
            kind: "page" or "database"

        Returns:
            Validated items in cursor order
        """
        if kind not in (PAGE, DATABASE):
            raise ValueError(f"Unknown object kind: {kind}")

        items: List[RawItem] = []
        seen = set()
        cursor = None
        batch = 0

        while True:
            response = await self.client.search(kind, start_cursor=cursor)
            batch += 1

            for result in response.get("results", []):
                if result.get("object") != kind:
                    continue
                item = parse_item(result)
                if item.id in seen:
                    continue
                seen.add(item.id)
                items.append(item)

            self.logger.debug(f"Fetched {kind} batch {batch}: {len(items)} {kind}s so far")

            if not response.get("has_more"):
                break
            cursor = response.get("next_cursor")
            if not cursor:
                break

            if self.rate_limit_delay > 0:
                await asyncio.sleep(self.rate_limit_delay)

        self.logger.info(f"Fetched {len(items)} {kind}s")
        return items

    async def fetch_workspace(self) -> FetchResult:
        """
        Fetch all pages and databases and partition them.

        Returns:
            FetchResult with top-level pages, database rows and databases
        """
        result = FetchResult()

        for item in await self.fetch_all(PAGE):
            if isinstance(item, DatabaseRowItem):
                result.database_rows.append(item)
            elif isinstance(item, PageItem):
                result.pages.append(item)

        for item in await self.fetch_all(DATABASE):
            if isinstance(item, DatabaseItem):
                result.databases.append(item)

        self.logger.info(
            f"Workspace contains {len(result.pages)} pages, "
            f"{len(result.database_rows)} database rows, "
            f"{len(result.databases)} databases"
        )
        return result
