"""Interfaces of the collaborators the import engine consumes.

Structural typing: any object with these methods can be injected, which is
how tests substitute in-memory fakes.
"""
from typing import List, Protocol, runtime_checkable

from workorder_import.models.mapping import CanonicalRecord
from workorder_import.models.schedule import FileRef


@runtime_checkable
class DirectoryListingProvider(Protocol):
    """A project's drop location: listing plus byte retrieval."""

    def list(self, project_id: int) -> List[FileRef]: ...

    def read(self, project_id: int, name: str) -> bytes: ...


@runtime_checkable
class PersistenceSink(Protocol):
    """Work-order store. Raises on a row-level failure."""

    def insert(self, project_id: int, record: CanonicalRecord) -> None: ...
