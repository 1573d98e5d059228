"""Notion workspace indexer."""

import logging
from typing import List, Optional

from ..jobs import JobStatus, JobTracker
from ..storage import DatabasePageRecord, DatabaseRecord, PageRecord, WorkspaceDB
from .client import NotionClient
from .fetcher import WorkspaceFetcher
from .markdown import MarkdownTransformer
from .models import DatabaseRowItem, FetchResult, IndexingStats, PageItem, SlugMapping
from .pool import DEFAULT_CONCURRENCY, ConcurrencyLimiter, run_bounded
from .slugs import SlugResolver


class NotionIndexer:
    """Indexes a Notion workspace into a local WorkspaceDB."""

    def __init__(
        self,
        notion_client: NotionClient,
        workspace_db: WorkspaceDB,
        concurrency: int = DEFAULT_CONCURRENCY,
        rate_limit_delay: float = 0.1,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize indexer.

        Args:
            notion_client: Notion API client
            workspace_db: Storage for converted records
            concurrency: Number of pages converted at once
            rate_limit_delay: Delay between search pages (seconds)
            logger: Optional logger, defaults to the module logger
        """
        self.notion_client = notion_client
        self.workspace_db = workspace_db
        self.concurrency = concurrency
        self.logger = logger or logging.getLogger(__name__)

        self.fetcher = WorkspaceFetcher(notion_client, rate_limit_delay=rate_limit_delay, logger=self.logger)
        self.resolver = SlugResolver(logger=self.logger)
        self.transformer = MarkdownTransformer(notion_client, logger=self.logger)

    async def run(self, tracker: JobTracker) -> IndexingStats:
        """
        Run the full pipeline and record its outcome on the tracker.

        Any failure marks the job ERROR with the error message and is
        re-raised. Batches already written are kept. Log output of the run
        also goes to the job's log file when the store keeps one.

        Args:
            tracker: Tracker of the current job

        Returns:
            IndexingStats with indexing statistics
        """
        with tracker.capture_log(self.logger):
            tracker.update(JobStatus.PROCESSING)
            try:
                stats = await self._index(tracker.job_id)
            except Exception as e:
                self.logger.error(f"Indexing job {tracker.job_id} failed: {e}")
                tracker.update(JobStatus.ERROR, error=str(e) or type(e).__name__)
                raise

            tracker.update(JobStatus.END)
        return stats

    async def _index(self, job_id: str) -> IndexingStats:
        stats = IndexingStats()

        self.logger.info(f"[{job_id}] Fetching pages and databases")
        fetched: FetchResult = await self.fetcher.fetch_workspace()

        self.logger.info(f"[{job_id}] Resolving slugs")
        slugs = self.resolver.resolve(fetched.top_level_items)
        stats.slugs_assigned = len(slugs)
        stats.orphaned_items = len(self.resolver.orphans)

        self.logger.info(f"[{job_id}] Converting {len(fetched.pages)} pages")
        pages = await self.convert_pages(fetched.pages, slugs)

        databases = [
            DatabaseRecord(
                id=database.id,
                title=database.title,
                slug=slugs.slug_for(database.id),
                properties=database.properties,
                created_at=database.created_time,
                last_updated=database.last_edited_time,
            )
            for database in fetched.databases
        ]
        await self.workspace_db.upsert_databases(databases)
        stats.databases_indexed = len(databases)
        self.logger.info(f"[{job_id}] Stored {len(databases)} databases")

        self.logger.info(f"[{job_id}] Converting {len(fetched.database_rows)} database rows")
        rows = await self.convert_database_rows(fetched.database_rows, slugs)

        await self.workspace_db.upsert_pages(pages)
        stats.pages_indexed = len(pages)
        self.logger.info(f"[{job_id}] Stored {len(pages)} pages")

        await self.workspace_db.upsert_database_pages(rows)
        stats.database_rows_indexed = len(rows)
        self.logger.info(f"[{job_id}] Stored {len(rows)} database rows")

        self.logger.info(
            f"[{job_id}] Indexing complete: {stats.pages_indexed} pages, "
            f"{stats.databases_indexed} databases, {stats.database_rows_indexed} rows, "
            f"{stats.orphaned_items} orphaned"
        )
        return stats

    async def convert_pages(self, pages: List[PageItem], slugs: SlugMapping) -> List[PageRecord]:
        """
        Convert top-level pages to records with bounded concurrency.

        Args:
            pages: Pages to convert
            slugs: Slug mapping of the current run

        Returns:
            PageRecord list aligned with ``pages``
        """

        async def convert(page: PageItem) -> PageRecord:
            converted = await self.transformer.to_markdown(page, slugs)
            return PageRecord(
                id=page.id,
                title=page.title,
                content=converted.content,
                slug=slugs.slug_for(page.id),
                created_at=page.created_time,
                last_updated=page.last_edited_time,
            )

        return await run_bounded(pages, convert, width=self.concurrency, logger=self.logger)

    async def convert_database_rows(
        self, rows: List[DatabaseRowItem], slugs: SlugMapping
    ) -> List[DatabasePageRecord]:
        """
        Convert database rows to records with bounded concurrency.

        Args:
            rows: Database rows to convert
            slugs: Slug mapping of the current run

        Returns:
            DatabasePageRecord list aligned with ``rows``
        """

        async def convert(row: DatabaseRowItem) -> DatabasePageRecord:
            converted = await self.transformer.to_markdown(row, slugs)
            return DatabasePageRecord(
                id=row.id,
                properties=converted.properties or {},
                content=converted.content,
                created_at=row.created_time,
                last_updated=row.last_edited_time,
                title=row.title,
                database_id=row.database_id,
            )

        return await run_bounded(rows, convert, width=self.concurrency, logger=self.logger)


async def index_workspace(
    api_key: str,
    storage_path: str,
    tracker: JobTracker,
    concurrency: int = DEFAULT_CONCURRENCY,
    rate_limit_delay: float = 0.1,
    logger: Optional[logging.Logger] = None,
) -> str:
    """
    Index a workspace into the SQLite file at ``storage_path``.

    Args:
        api_key: Notion integration token
        storage_path: Path of the workspace database file
        tracker: Tracker of the current job
        concurrency: Width of the shared request limiter and conversion pool
        rate_limit_delay: Delay between search pages (seconds)
        logger: Optional logger

    Returns:
        The job ID
    """
    limiter = ConcurrencyLimiter(concurrency)
    notion_client = NotionClient(api_key=api_key, limiter=limiter, logger=logger)
    indexer = NotionIndexer(
        notion_client=notion_client,
        workspace_db=WorkspaceDB(storage_path, logger=logger),
        concurrency=concurrency,
        rate_limit_delay=rate_limit_delay,
        logger=logger,
    )

    try:
        await indexer.run(tracker)
    finally:
        await notion_client.close()

    return tracker.job_id
