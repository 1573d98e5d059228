"""Notion integration module for crawling and converting workspaces."""

from .client import NotionClient
from .fetcher import WorkspaceFetcher
from .indexer import NotionIndexer, index_workspace
from .markdown import MarkdownTransformer
from .models import DatabaseItem, DatabaseRowItem, PageItem, SlugMapping
from .slugs import SlugResolver

__all__ = [
    "NotionClient",
    "WorkspaceFetcher",
    "SlugResolver",
    "MarkdownTransformer",
    "NotionIndexer",
    "index_workspace",
    "PageItem",
    "DatabaseItem",
    "DatabaseRowItem",
    "SlugMapping",
]
