"""Index Notion workspaces into a searchable local database."""

__version__ = "0.2.0"
