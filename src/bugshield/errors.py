"""Error taxonomy for the scan pipeline.

Whole-operation failures are exceptions and abort a scan before any result is
produced. Per-unit failures are not exceptions: they are recorded as
``UnitFailure`` entries (see ``models.py``) and counted as skipped files.
"""


class BugShieldError(Exception):
    """Base class for all scanner errors."""

    title = "Scan Failed"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ScanValidationError(BugShieldError):
    """Input rejected before any work was done.

    ``constraint`` names the rule that was violated (e.g. ``max_files``,
    ``repository_url``) so callers can report it precisely.
    """

    title = "Validation Error"

    def __init__(self, constraint: str, message: str):
        super().__init__(message)
        self.constraint = constraint


class UpstreamError(BugShieldError):
    """The repository host refused or failed a whole-operation request."""

    title = "Upstream Error"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RepositoryNotFoundError(UpstreamError):
    title = "Repository Not Found"


class AccessDeniedError(UpstreamError):
    title = "Access Denied"


class RateLimitedError(UpstreamError):
    title = "Rate Limited"

    def __init__(self, message: str, status_code: int | None = None, reset_at: int | None = None):
        super().__init__(message, status_code)
        self.reset_at = reset_at


class UndecodableSourceError(BugShieldError):
    """Source bytes could not be turned into text (binary or bad encoding)."""

    title = "Undecodable Source"


class InternalError(BugShieldError):
    title = "Internal Error"


class ScanStateError(InternalError):
    """An operation was attempted in the wrong scan lifecycle state."""
