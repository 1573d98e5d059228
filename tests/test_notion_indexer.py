"""Tests for the Notion indexer."""

import logging

import pytest
from unittest.mock import AsyncMock, Mock, patch

from gwanli.jobs import FileJobStore, JobStatus, JobTracker, MemoryJobStore
from gwanli.notion.indexer import NotionIndexer, index_workspace
from gwanli.notion.slugs import SlugCycleError
from gwanli.storage import DatabaseRecord, PageRecord, WorkspaceDB

ROOT = "a" * 32
CHILD = "b" * 32
DATABASE = "c" * 32
ROW = "d" * 32
ORPHAN = "e" * 32


def page(page_id, title, parent):
    return {
        "object": "page",
        "id": page_id,
        "created_time": "2024-01-01T00:00:00.000Z",
        "last_edited_time": "2024-01-02T00:00:00.000Z",
        "parent": parent,
        "properties": {"Name": {"type": "title", "title": [{"plain_text": title}]}},
    }


def paragraph(content, href=None):
    return {
        "id": "blk",
        "type": "paragraph",
        "has_children": False,
        "paragraph": {"rich_text": [{"type": "text", "plain_text": content, "href": href, "annotations": {}}]},
    }


PAGES = [
    page(ROOT, "Projects", {"type": "workspace", "workspace": True}),
    page(CHILD, "Roadmap", {"type": "page_id", "page_id": ROOT}),
    page(ROW, "Write docs", {"type": "database_id", "database_id": DATABASE}),
    page(ORPHAN, "Inline", {"type": "block_id", "block_id": "f" * 32}),
]

DATABASES = [
    {
        "object": "database",
        "id": DATABASE,
        "created_time": "2024-01-01T00:00:00.000Z",
        "last_edited_time": "2024-01-01T00:00:00.000Z",
        "parent": {"type": "page_id", "page_id": ROOT},
        "title": [{"plain_text": "Tasks"}],
        "properties": {"Name": {"id": "title", "type": "title", "title": {}}},
    }
]

BLOCKS = {
    ROOT: [{"id": CHILD, "type": "child_page", "has_children": False, "child_page": {"title": "Roadmap"}}],
    CHILD: [paragraph("launch plan for "), paragraph("back", href=f"https://www.notion.so/{ROOT}")],
    ROW: [paragraph("docs body")],
}


@pytest.fixture
def notion_client():
    """Mock NotionClient serving a small workspace."""
    client = Mock()

    async def search(kind, start_cursor=None):
        results = PAGES if kind == "page" else DATABASES
        return {"results": results, "has_more": False, "next_cursor": None}

    async def children(block_id):
        return BLOCKS.get(block_id, [])

    client.search = AsyncMock(side_effect=search)
    client.get_block_children = AsyncMock(side_effect=children)
    client.query_database_rows = AsyncMock(return_value=[])
    client.close = AsyncMock()
    return client


@pytest.fixture
def workspace_db(tmp_path):
    return WorkspaceDB(str(tmp_path / "workspace.db"))


@pytest.fixture
def store():
    return MemoryJobStore()


def make_indexer(notion_client, workspace_db):
    return NotionIndexer(notion_client, workspace_db, rate_limit_delay=0)


class TestNotionIndexer:
    """Tests for NotionIndexer."""

    @pytest.mark.asyncio
    async def test_indexes_workspace(self, notion_client, workspace_db, store):
        """Test a full run over a small workspace."""
        tracker = JobTracker.create("cli-1", store)

        stats = await make_indexer(notion_client, workspace_db).run(tracker)

        assert stats.pages_indexed == 3
        assert stats.databases_indexed == 1
        assert stats.database_rows_indexed == 1
        assert stats.orphaned_items == 1
        assert stats.slugs_assigned == 3
        assert store.read("cli-1").status == JobStatus.END

        assert await workspace_db.list_all_slugs() == [
            "/projects",
            "/projects/roadmap",
            "/projects/tasks",
        ]

    @pytest.mark.asyncio
    async def test_stored_content(self, notion_client, workspace_db, store):
        """Test page content, cross links and database records."""
        await make_indexer(notion_client, workspace_db).run(JobTracker.create("cli-1", store))

        root = await workspace_db.get_by_slug("/projects")
        assert isinstance(root, PageRecord)
        assert root.content == "Projects\n\n[Roadmap](/projects/roadmap)"

        roadmap = await workspace_db.get_by_slug("/projects/roadmap")
        assert "[back](/projects)" in roadmap.content

        tasks = await workspace_db.get_by_slug("/projects/tasks")
        assert isinstance(tasks, DatabaseRecord)
        assert tasks.properties["Name"]["type"] == "title"

        rows = await workspace_db.get_database_pages(DATABASE)
        assert rows[0].title == "Write docs"
        assert rows[0].properties == {"Name": "Write docs"}
        assert rows[0].content == "Write docs\n\ndocs body"

    @pytest.mark.asyncio
    async def test_orphan_stored_without_slug(self, notion_client, workspace_db, store):
        """Test that unreachable pages are searchable but not listed."""
        await make_indexer(notion_client, workspace_db).run(JobTracker.create("cli-1", store))

        result = await workspace_db.search("inline")
        assert [(r.id, r.slug) for r in result.results] == [(ORPHAN, None)]

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, notion_client, workspace_db, store):
        """Test that indexing twice leaves the same rows."""
        indexer = make_indexer(notion_client, workspace_db)

        await indexer.run(JobTracker.create("cli-1", store))
        first = await workspace_db.get_counts()
        first_slugs = await workspace_db.list_all_slugs()
        await indexer.run(JobTracker.create("cli-2", store))

        assert await workspace_db.get_counts() == first
        assert await workspace_db.list_all_slugs() == first_slugs
        assert first_slugs == ["/projects", "/projects/roadmap", "/projects/tasks"]
        assert first == {"page": 3, "database": 1, "database_page": 1}
        assert (await workspace_db.search("roadmap")).total_count == 2

    @pytest.mark.asyncio
    async def test_failure_marks_job_error(self, notion_client, workspace_db, store):
        """Test that a failing fetch ends the job in ERROR."""
        notion_client.search.side_effect = RuntimeError("unauthorized")
        tracker = JobTracker.create("cli-1", store)

        with pytest.raises(RuntimeError):
            await make_indexer(notion_client, workspace_db).run(tracker)

        state = store.read("cli-1")
        assert state.status == JobStatus.ERROR
        assert state.error == "unauthorized"
        assert state.end_time is not None

    @pytest.mark.asyncio
    async def test_parent_cycle_fails_job(self, notion_client, workspace_db, store):
        """Test that a parent loop aborts the run."""
        looped = [
            page("1" * 32, "A", {"type": "page_id", "page_id": "2" * 32}),
            page("2" * 32, "B", {"type": "page_id", "page_id": "1" * 32}),
        ]

        async def search(kind, start_cursor=None):
            return {"results": looped if kind == "page" else [], "has_more": False}

        notion_client.search.side_effect = search
        tracker = JobTracker.create("cli-1", store)

        with pytest.raises(SlugCycleError):
            await make_indexer(notion_client, workspace_db).run(tracker)

        assert store.read("cli-1").status == JobStatus.ERROR

    @pytest.mark.asyncio
    async def test_conversion_failure_keeps_earlier_batches(self, notion_client, workspace_db, store):
        """Test that databases stored before a row failure are kept."""

        async def children(block_id):
            if block_id == ROW:
                raise RuntimeError("block fetch failed")
            return BLOCKS.get(block_id, [])

        notion_client.get_block_children.side_effect = children

        with pytest.raises(RuntimeError):
            await make_indexer(notion_client, workspace_db).run(JobTracker.create("cli-1", store))

        counts = await workspace_db.get_counts()
        assert counts["database"] == 1
        assert counts["page"] == 0
        assert store.read("cli-1").status == JobStatus.ERROR


class TestIndexWorkspace:
    """Tests for index_workspace."""

    @pytest.mark.asyncio
    async def test_closes_client(self, notion_client, tmp_path, store):
        """Test that the client is closed and the job ID returned."""
        tracker = JobTracker.create("cli-9", store)

        with patch("gwanli.notion.indexer.NotionClient", return_value=notion_client) as client_cls:
            job_id = await index_workspace(
                api_key="secret",
                storage_path=str(tmp_path / "ws.db"),
                tracker=tracker,
                concurrency=3,
                rate_limit_delay=0,
            )

        assert job_id == "cli-9"
        assert client_cls.call_args.kwargs["api_key"] == "secret"
        assert client_cls.call_args.kwargs["limiter"].width == 3
        notion_client.close.assert_awaited_once()
        assert store.read("cli-9").status == JobStatus.END

    @pytest.mark.asyncio
    async def test_closes_client_on_failure(self, notion_client, tmp_path, store):
        """Test that the client is closed when indexing fails."""
        notion_client.search.side_effect = RuntimeError("down")

        with patch("gwanli.notion.indexer.NotionClient", return_value=notion_client):
            with pytest.raises(RuntimeError):
                await index_workspace(
                    api_key="secret",
                    storage_path=str(tmp_path / "ws.db"),
                    tracker=JobTracker.create("cli-9", store),
                    rate_limit_delay=0,
                )

        notion_client.close.assert_awaited_once()


class TestJobLog:
    """Tests for the log file written next to a job's status."""

    @pytest.fixture
    def job_logger(self):
        logger = logging.getLogger("gwanli.tests.job_log")
        level = logger.level
        logger.setLevel(logging.DEBUG)
        yield logger
        logger.setLevel(level)

    @pytest.mark.asyncio
    async def test_run_writes_job_log(self, notion_client, workspace_db, tmp_path, job_logger):
        """Test that the pipeline's log lines land in <jobs_dir>/<job_id>.log."""
        store = FileJobStore(str(tmp_path / "jobs"))
        indexer = NotionIndexer(notion_client, workspace_db, rate_limit_delay=0, logger=job_logger)

        await indexer.run(JobTracker.create("cli-1", store))

        log = (tmp_path / "jobs" / "cli-1.log").read_text()
        assert "[cli-1] Fetching pages and databases" in log
        assert "[cli-1] Indexing complete" in log
        assert (tmp_path / "jobs" / "cli-1.json").exists()
        assert job_logger.handlers == []

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, notion_client, workspace_db, tmp_path, job_logger):
        """Test that the failure message ends up in the job log."""
        notion_client.search.side_effect = RuntimeError("unauthorized")
        store = FileJobStore(str(tmp_path / "jobs"))
        indexer = NotionIndexer(notion_client, workspace_db, rate_limit_delay=0, logger=job_logger)

        with pytest.raises(RuntimeError):
            await indexer.run(JobTracker.create("cli-2", store))

        log = (tmp_path / "jobs" / "cli-2.log").read_text()
        assert "ERROR" in log
        assert "Indexing job cli-2 failed: unauthorized" in log
        assert job_logger.handlers == []

    @pytest.mark.asyncio
    async def test_memory_store_keeps_no_log(self, notion_client, workspace_db, store, job_logger):
        """Test that runs without a job directory write no log file."""
        indexer = NotionIndexer(notion_client, workspace_db, rate_limit_delay=0, logger=job_logger)

        await indexer.run(JobTracker.create("cli-3", store))

        assert store.log_path("cli-3") is None
        assert store.read("cli-3").status == JobStatus.END
