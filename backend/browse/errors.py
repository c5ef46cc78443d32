"""Error kinds raised by the browse layer, each mapped to an HTTP status."""


class BrowseError(Exception):
    """Base class for whole-call failures of the browse API."""

    status_code = 500

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path


class AccessDenied(BrowseError):
    """The requested path resolves outside the served root."""

    status_code = 403


class NotFound(BrowseError):
    status_code = 404


class InvalidRequest(BrowseError):
    """Malformed query, or a directory where a file was expected (or vice versa)."""

    status_code = 400


class UpstreamFailure(BrowseError):
    """Unexpected filesystem error."""

    status_code = 500
