"""Export — object storage, asset publishing, and full site generation."""

from mews.export.static import ExportedFile, GenerateResult, SiteGenerator
from mews.export.store import FileSystemObjectStore, GraphStore, ObjectStore

__all__ = [
    "ExportedFile",
    "FileSystemObjectStore",
    "GenerateResult",
    "GraphStore",
    "ObjectStore",
    "SiteGenerator",
]
