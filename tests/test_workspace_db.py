"""Tests for the workspace database."""

import pytest
import pytest_asyncio

from gwanli.storage import DatabasePageRecord, DatabaseRecord, PageRecord, WorkspaceDB
from gwanli.storage.workspace_db import build_match_query


@pytest.fixture
def workspace_db(tmp_path):
    """Create a workspace database in a temporary directory."""
    return WorkspaceDB(str(tmp_path / "nested" / "workspace.db"))


def page(page_id, title, slug, content=None, updated="2024-01-02T00:00:00.000Z"):
    return PageRecord(
        id=page_id,
        title=title,
        content=content if content is not None else title,
        slug=slug,
        created_at="2024-01-01T00:00:00.000Z",
        last_updated=updated,
    )


def database(database_id, title, slug):
    return DatabaseRecord(
        id=database_id,
        title=title,
        slug=slug,
        properties={"Name": {"type": "title"}},
        created_at="2024-01-01T00:00:00.000Z",
        last_updated="2024-01-01T00:00:00.000Z",
    )


def row(row_id, title, content, database_id="db-1"):
    return DatabasePageRecord(
        id=row_id,
        properties={"Name": title},
        content=content,
        created_at="2024-01-01T00:00:00.000Z",
        last_updated="2024-01-01T00:00:00.000Z",
        title=title,
        database_id=database_id,
    )


def test_build_match_query():
    """Test that terms are quoted and ANDed."""
    assert build_match_query('project "alpha" x-ray') == '"project" """alpha""" "x-ray"'
    assert build_match_query("   ") == ""


class TestUpsert:
    """Tests for upserts."""

    @pytest.mark.asyncio
    async def test_initialize_creates_directory(self, workspace_db, tmp_path):
        """Test that the parent directory is created."""
        await workspace_db.initialize()

        assert (tmp_path / "nested" / "workspace.db").exists()

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, workspace_db):
        """Test that writing the same record twice keeps one row."""
        records = [page("p1", "Alpha", "/alpha")]

        await workspace_db.upsert_pages(records)
        await workspace_db.upsert_pages(records)

        counts = await workspace_db.get_counts()
        assert counts["page"] == 1

    @pytest.mark.asyncio
    async def test_upsert_replaces_and_reindexes(self, workspace_db):
        """Test that updated content replaces old search terms."""
        await workspace_db.upsert_pages([page("p1", "Alpha", "/alpha", content="old words")])
        await workspace_db.upsert_pages([page("p1", "Alpha", "/alpha", content="fresh words")])

        assert (await workspace_db.search("old")).total_count == 0
        assert (await workspace_db.search("fresh")).total_count == 1

    @pytest.mark.asyncio
    async def test_empty_batches(self, workspace_db):
        """Test that empty batches are accepted."""
        await workspace_db.upsert_pages([])
        await workspace_db.upsert_databases([])
        await workspace_db.upsert_database_pages([])

        assert await workspace_db.get_counts() == {"page": 0, "database": 0, "database_page": 0}


class TestSearch:
    """Tests for full-text search."""

    @pytest_asyncio.fixture
    async def populated(self, workspace_db):
        await workspace_db.upsert_pages(
            [
                page("p1", "Project Alpha", "/project-alpha", content="Roadmap for the launch"),
                page("p2", "Meeting Notes", "/meeting-notes", content="Discussed the project budget"),
                page("p3", "Recipes", "/recipes", content="Pancakes"),
            ]
        )
        await workspace_db.upsert_databases([database("db-1", "Project Tasks", "/project-tasks")])
        await workspace_db.upsert_database_pages([row("r1", "Write spec", "project kickoff")])
        return workspace_db

    @pytest.mark.asyncio
    async def test_case_insensitive(self, populated):
        """Test that matching ignores case."""
        upper = await populated.search("PROJECT")
        lower = await populated.search("project")

        assert upper.total_count == lower.total_count == 4
        assert {r.type for r in upper.results} == {"page", "database", "database_page"}

    @pytest.mark.asyncio
    async def test_terms_are_anded(self, populated):
        """Test that all terms must match."""
        result = await populated.search("project budget")

        assert [r.id for r in result.results] == ["p2"]

    @pytest.mark.asyncio
    async def test_ordered_by_rank(self, populated):
        """Test that results come in ascending rank order."""
        result = await populated.search("project", limit=10)

        ranks = [r.rank for r in result.results]
        assert ranks == sorted(ranks)

    @pytest.mark.asyncio
    async def test_pagination(self, populated):
        """Test that pages partition the full result set."""
        seen = []
        offset = 0
        while True:
            result = await populated.search("project", limit=1, offset=offset)
            assert result.total_count == 4
            assert len(result.results) <= 1
            assert result.has_more == (offset + 1 < 4)
            seen.extend(r.id for r in result.results)
            if not result.has_more:
                break
            offset += 1

        assert sorted(seen) == ["db-1", "p1", "p2", "r1"]

    @pytest.mark.asyncio
    async def test_content_optional(self, populated):
        """Test that content is only returned on request."""
        without = await populated.search("pancakes")
        with_content = await populated.search("pancakes", include_content=True)

        assert without.results[0].content is None
        assert with_content.results[0].content == "Pancakes"

    @pytest.mark.asyncio
    async def test_punctuation_is_not_syntax(self, populated):
        """Test that FTS operators in the query are treated as text."""
        result = await populated.search("alpha OR pancakes")

        assert result.total_count == 0

    @pytest.mark.asyncio
    async def test_empty_query(self, populated):
        """Test that an empty query returns nothing."""
        result = await populated.search("  ")

        assert result.results == []
        assert result.total_count == 0
        assert not result.has_more

    @pytest.mark.asyncio
    async def test_invalid_paging(self, populated):
        """Test that limit and offset are validated."""
        with pytest.raises(ValueError):
            await populated.search("project", limit=0)
        with pytest.raises(ValueError):
            await populated.search("project", offset=-1)


class TestFindByPattern:
    """Tests for glob matching."""

    @pytest_asyncio.fixture
    async def populated(self, workspace_db):
        await workspace_db.upsert_pages(
            [
                page("p1", "Projects", "/projects"),
                page("p2", "Alpha", "/projects/alpha"),
                page("p3", "Personal", "/personal"),
            ]
        )
        await workspace_db.upsert_databases([database("db-1", "Project Log", "/projects/log")])
        await workspace_db.upsert_database_pages([row("r1", "Project kickoff", "notes")])
        return workspace_db

    @pytest.mark.asyncio
    async def test_relative_pattern_anchored_at_root(self, populated):
        """Test that proj* is matched from the root."""
        result = await populated.find_by_pattern("proj*")

        assert [r.slug for r in result.results] == ["/projects", "/projects/alpha", "/projects/log"]

    @pytest.mark.asyncio
    async def test_slug_pattern(self, populated):
        """Test an absolute slug pattern."""
        result = await populated.find_by_pattern("/projects/*")

        assert [r.slug for r in result.results] == ["/projects/alpha", "/projects/log"]
        assert result.results[1].type == "database"

    @pytest.mark.asyncio
    async def test_title_pattern_includes_rows(self, populated):
        """Test that title matching covers database rows."""
        result = await populated.find_by_pattern("Project*", field="title")

        assert [r.title for r in result.results] == ["Project Log", "Project kickoff", "Projects"]

    @pytest.mark.parametrize("limit", [1, 3])
    @pytest.mark.asyncio
    async def test_paging_through_matches(self, populated, limit):
        """Test walking a glob result set page by page."""
        expected = ["/personal", "/projects", "/projects/alpha", "/projects/log"]
        seen = []

        for offset in range(0, 5, limit):
            result = await populated.find_by_pattern("/*", limit=limit, offset=offset)

            assert result.total_count == 4
            assert len(result.results) <= limit
            assert result.has_more == (offset + limit < result.total_count)
            seen.extend(r.slug for r in result.results)

        assert seen == expected

    @pytest.mark.asyncio
    async def test_offset_past_end(self, populated):
        """Test an offset beyond the last match."""
        result = await populated.find_by_pattern("/*", limit=2, offset=10)

        assert result.results == []
        assert result.total_count == 4
        assert not result.has_more

    @pytest.mark.asyncio
    async def test_glob_is_case_sensitive(self, populated):
        """Test that GLOB keeps case."""
        result = await populated.find_by_pattern("project*", field="title")

        assert result.total_count == 0

    @pytest.mark.asyncio
    async def test_unknown_field(self, populated):
        """Test that only slug and title can be matched."""
        with pytest.raises(ValueError):
            await populated.find_by_pattern("*", field="content")


class TestLookup:
    """Tests for slug lookups and listings."""

    @pytest.mark.asyncio
    async def test_get_by_slug(self, workspace_db):
        """Test that pages and databases can be fetched by slug."""
        await workspace_db.upsert_pages([page("p1", "Alpha", "/alpha", content="Body")])
        await workspace_db.upsert_databases([database("db-1", "Tasks", "/tasks")])

        found_page = await workspace_db.get_by_slug("/alpha")
        found_database = await workspace_db.get_by_slug("/tasks")

        assert isinstance(found_page, PageRecord)
        assert found_page.content == "Body"
        assert isinstance(found_database, DatabaseRecord)
        assert found_database.properties == {"Name": {"type": "title"}}
        assert await workspace_db.get_by_slug("/missing") is None

    @pytest.mark.asyncio
    async def test_list_all_slugs_skips_orphans(self, workspace_db):
        """Test that pages without slug are not listed."""
        await workspace_db.upsert_pages([page("p1", "B", "/b"), page("p2", "Orphan", None)])
        await workspace_db.upsert_databases([database("db-1", "A", "/a")])

        assert await workspace_db.list_all_slugs() == ["/a", "/b"]

    @pytest.mark.asyncio
    async def test_get_database_pages(self, workspace_db):
        """Test fetching the rows of a database."""
        await workspace_db.upsert_database_pages(
            [row("r1", "One", "x"), row("r2", "Two", "y", database_id="db-2")]
        )

        rows = await workspace_db.get_database_pages("db-1")

        assert [r.id for r in rows] == ["r1"]
        assert rows[0].properties == {"Name": "One"}
        assert rows[0].type == "database_page"
