"""Tests for the workspace fetcher."""

import pytest
from unittest.mock import AsyncMock, Mock

from gwanli.notion.fetcher import WorkspaceFetcher
from gwanli.notion.models import DatabaseItem, DatabaseRowItem, InvalidItemError, PageItem


def page(page_id, parent=None):
    return {
        "object": "page",
        "id": page_id,
        "created_time": "2024-01-01T00:00:00.000Z",
        "last_edited_time": "2024-01-01T00:00:00.000Z",
        "parent": parent or {"type": "workspace", "workspace": True},
        "properties": {"title": {"type": "title", "title": [{"plain_text": page_id}]}},
    }


def database(database_id):
    return {
        "object": "database",
        "id": database_id,
        "created_time": "2024-01-01T00:00:00.000Z",
        "last_edited_time": "2024-01-01T00:00:00.000Z",
        "parent": {"type": "workspace", "workspace": True},
        "title": [{"plain_text": database_id}],
        "properties": {},
    }


@pytest.fixture
def client():
    client = Mock()
    client.search = AsyncMock()
    return client


class TestWorkspaceFetcher:
    """Tests for WorkspaceFetcher."""

    @pytest.mark.asyncio
    async def test_follows_cursors(self, client):
        """Test that all search pages are collected in order."""
        client.search.side_effect = [
            {"results": [page("a"), page("b")], "has_more": True, "next_cursor": "c1"},
            {"results": [page("c")], "has_more": False, "next_cursor": None},
        ]
        fetcher = WorkspaceFetcher(client, rate_limit_delay=0)

        items = await fetcher.fetch_all("page")

        assert [item.id for item in items] == ["a", "b", "c"]
        assert client.search.call_args_list[1].kwargs == {"start_cursor": "c1"}

    @pytest.mark.asyncio
    async def test_deduplicates_and_filters_objects(self, client):
        """Test that repeated ids and other object types are dropped."""
        client.search.return_value = {
            "results": [page("a"), page("a"), database("d")],
            "has_more": False,
        }
        fetcher = WorkspaceFetcher(client, rate_limit_delay=0)

        items = await fetcher.fetch_all("page")

        assert [item.id for item in items] == ["a"]

    @pytest.mark.asyncio
    async def test_invalid_kind(self, client):
        """Test that only pages and databases can be fetched."""
        fetcher = WorkspaceFetcher(client)

        with pytest.raises(ValueError):
            await fetcher.fetch_all("block")

    @pytest.mark.asyncio
    async def test_malformed_item_aborts(self, client):
        """Test that a payload of the wrong shape fails the crawl."""
        bad = page("a")
        del bad["created_time"]
        client.search.return_value = {"results": [bad], "has_more": False}
        fetcher = WorkspaceFetcher(client, rate_limit_delay=0)

        with pytest.raises(InvalidItemError):
            await fetcher.fetch_all("page")

    @pytest.mark.asyncio
    async def test_request_error_propagates(self, client):
        """Test that a failing request aborts the crawl."""
        client.search.side_effect = [
            {"results": [page("a")], "has_more": True, "next_cursor": "c1"},
            RuntimeError("server error"),
        ]
        fetcher = WorkspaceFetcher(client, rate_limit_delay=0)

        with pytest.raises(RuntimeError):
            await fetcher.fetch_all("page")

    @pytest.mark.asyncio
    async def test_fetch_workspace_partitions_items(self, client):
        """Test that rows, pages and databases are separated."""
        row = page("row", parent={"type": "database_id", "database_id": "d"})

        async def search(kind, start_cursor=None):
            if kind == "page":
                return {"results": [page("a"), row], "has_more": False}
            return {"results": [database("d")], "has_more": False}

        client.search.side_effect = search
        fetcher = WorkspaceFetcher(client, rate_limit_delay=0)

        result = await fetcher.fetch_workspace()

        assert [type(p) for p in result.pages] == [PageItem]
        assert [type(r) for r in result.database_rows] == [DatabaseRowItem]
        assert [type(d) for d in result.databases] == [DatabaseItem]
