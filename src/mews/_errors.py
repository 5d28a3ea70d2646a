"""Mews error hierarchy.

All mews-specific errors inherit from MewsError for easy catching.
"""


class MewsError(Exception):
    """Base error for all mews operations."""


class ConfigError(MewsError):
    """Invalid or missing site configuration."""


class ContentError(MewsError):
    """Malformed content payload or event (graph mutation failed)."""


class CompileError(MewsError):
    """A single page could not be compiled."""


class LinkError(CompileError):
    """A link could not be resolved, or a helper got a malformed link."""


class PublishError(MewsError):
    """Writing output or downloading an asset failed."""


class ConflictError(MewsError):
    """Persisted state changed underneath us (version stamp moved)."""


class ReconcileError(MewsError):
    """Metadata store left operations unprocessed after the retry.

    Attributes:
        unprocessed: The write operations that were never applied.

    """

    def __init__(self, message: str, unprocessed: tuple = ()) -> None:
        super().__init__(message)
        self.unprocessed = unprocessed
