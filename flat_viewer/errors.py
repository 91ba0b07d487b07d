"""Exception types shared across the Flat Viewer pipeline."""

from __future__ import annotations


class FlatViewerError(Exception):
    """Base class for all Flat Viewer errors."""


class DecodeError(FlatViewerError):
    """Raw text could not be decoded for the claimed extension."""

    def __init__(self, message: str, extension: str = "") -> None:
        super().__init__(message)
        self.extension = extension


class UnsupportedFormatError(FlatViewerError):
    """The file extension is not on the data-file allow-list."""


class QueryInitError(FlatViewerError):
    """The query store could not load the dataset. Fatal for that dataset."""


class QueryExecError(FlatViewerError):
    """A single query failed. The engine stays usable."""


class QueryEngineStateError(FlatViewerError):
    """An operation was attempted in a state that does not allow it."""


class GitHubError(FlatViewerError):
    """Base class for GitHub collaborator failures."""


class GitHubNotFoundError(GitHubError):
    pass


class GitHubAuthError(GitHubError):
    """The token was rejected (HTTP 401)."""


class GitHubRateLimitError(GitHubError):
    pass
