"""Pydantic models for directory browsing."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class DirectoryEntry(BaseModel):
    """One child of a served directory, as returned by listing and search."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    is_directory: bool = Field(alias="isDirectory")
    path: str  # POSIX, relative to the served root, no leading slash
    size: int | None = None  # None for directories
    created: datetime
    modified: datetime

    def to_wire(self) -> dict:
        """JSON-ready dict using the camelCase keys the browser clients expect."""
        return self.model_dump(mode="json", by_alias=True)
