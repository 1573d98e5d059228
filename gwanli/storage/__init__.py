"""Workspace storage module."""

from .models import DatabasePageRecord, DatabaseRecord, PageRecord, ResultPage, SearchResult
from .workspace_db import WorkspaceDB

__all__ = [
    "WorkspaceDB",
    "PageRecord",
    "DatabasePageRecord",
    "DatabaseRecord",
    "SearchResult",
    "ResultPage",
]
