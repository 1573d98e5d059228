"""Pydantic models for configuration validation."""

from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

GWANLI_HOME = Path.home() / "gwanli"


class WorkspaceConfig(BaseModel):
    """Configuration of one Notion workspace."""

    name: str = Field(..., min_length=1, description="Workspace name")
    api_key: str = Field(..., min_length=1, description="Notion integration token")
    db_path: str = Field(..., min_length=1, description="Path of the workspace SQLite file")
    description: Optional[str] = Field(default=None, description="Free text description")

    @field_validator("db_path")
    @classmethod
    def expand_db_path(cls, v: str) -> str:
        """Expand ``~`` so every caller sees the same file."""
        return str(Path(v).expanduser())


class GwanliConfig(BaseModel):
    """Main application configuration."""

    api_rate_limit: int = Field(default=2, gt=0, description="Concurrent Notion requests")
    max_depth: int = Field(default=2, gt=0, description="Default depth of workspace listings")
    default_search: Optional[str] = Field(default=None, description="Workspace used when none is given")
    jobs_dir: str = Field(default=str(GWANLI_HOME / "jobs"), description="Directory of job status files")
    workspace: Dict[str, WorkspaceConfig] = Field(default_factory=dict, description="Workspaces by name")

    @field_validator("jobs_dir")
    @classmethod
    def expand_jobs_dir(cls, v: str) -> str:
        return str(Path(v).expanduser())

    @model_validator(mode="after")
    def validate_default_search(self) -> "GwanliConfig":
        """Make sure the default workspace is one of the configured ones."""
        if self.default_search and self.default_search not in self.workspace:
            raise ValueError(
                f"default_search '{self.default_search}' is not a configured workspace"
            )
        return self

    def get_workspace(self, name: Optional[str] = None) -> WorkspaceConfig:
        """
        Resolve a workspace by name, falling back to ``default_search``.

        Args:
            name: Workspace name or None for the default

        Returns:
            WorkspaceConfig

        Raises:
            ValueError: If no workspace is given and no default is set, or the name is unknown
        """
        name = name or self.default_search
        if not name:
            raise ValueError("No workspace given and no default_search configured")
        if name not in self.workspace:
            available = ", ".join(sorted(self.workspace)) or "none"
            raise ValueError(f"Workspace '{name}' not found. Available workspaces: {available}")
        return self.workspace[name]

    def add_workspace(
        self,
        name: str,
        api_key: str,
        description: Optional[str] = None,
        db_path: Optional[str] = None,
    ) -> WorkspaceConfig:
        """
        Add a workspace, replacing any existing one with the same name.

        The first workspace added becomes ``default_search``.

        Args:
            name: Workspace name
            api_key: Notion integration token
            description: Free text description (default: "Workspace: <name>")
            db_path: SQLite file (default: ~/gwanli/<name>/workspace.db)

        Returns:
            The stored WorkspaceConfig
        """
        workspace = WorkspaceConfig(
            name=name,
            api_key=api_key,
            db_path=db_path or str(GWANLI_HOME / name / "workspace.db"),
            description=description or f"Workspace: {name}",
        )
        self.workspace[name] = workspace
        if not self.default_search:
            self.default_search = name
        return workspace

    def update_workspace(
        self,
        name: str,
        description: Optional[str] = None,
        api_key: Optional[str] = None,
    ) -> WorkspaceConfig:
        """
        Change the description or API key of a workspace.

        Args:
            name: Workspace name
            description: New description
            api_key: New Notion integration token

        Returns:
            The updated WorkspaceConfig

        Raises:
            ValueError: If the workspace is unknown or nothing is changed
        """
        if description is None and api_key is None:
            raise ValueError("Nothing to update: give a description or an API key")
        current = self.get_workspace(name)

        changes = {}
        if description is not None:
            changes["description"] = description
        if api_key is not None:
            changes["api_key"] = api_key
        workspace = WorkspaceConfig(**{**current.model_dump(), **changes})
        self.workspace[name] = workspace
        return workspace

    def delete_workspace(self, name: str) -> WorkspaceConfig:
        """
        Remove a workspace. The indexed database file is left on disk.

        Args:
            name: Workspace name

        Returns:
            The removed WorkspaceConfig

        Raises:
            ValueError: If the workspace is unknown
        """
        workspace = self.get_workspace(name)
        del self.workspace[name]
        if self.default_search == name:
            self.default_search = None
        return workspace
