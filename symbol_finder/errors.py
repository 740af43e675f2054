"""
Exception types shared across the symbol finder.

"No match" is never an exception: an empty result list plus suggestions is
the normal answer.  These types cover rejected input and failing
collaborators.
"""


class SymbolFinderError(Exception):
    """Base class for all symbol finder errors."""


class InvalidQueryError(SymbolFinderError, ValueError):
    """Raised before any I/O when a query or its options are malformed."""


class SourceUnavailableError(SymbolFinderError):
    """Raised when the persistent index or the filesystem cannot be read."""


class WorkspaceUnavailableError(SourceUnavailableError):
    """Raised when a workspace root is missing or is not a directory."""


class MetadataParseError(SymbolFinderError):
    """Raised when a workspace metadata file is structurally malformed."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason
