from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .readers.base import Failure

__all__ = [
    "ApiError",
    "RetrieveError",
    "GulpError",
]


class ApiError(Exception):
    """
    Raised when the org rejects a request or returns an unexpected response.
    """

    status: int | None
    message: str

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        self.message = message
        status_str = f" (status={status})" if status is not None else ""
        super().__init__(f"{message}{status_str}")


class RetrieveError(ApiError):
    """
    Raised when a metadata retrieve request completes without success, or
    does not complete before the poll timeout.
    """


class GulpError(Exception):
    """
    Raised by {obj}`Gulp.update` when one or more readers failed. The mirror
    is left untouched in that case.

    Examples:

    - Query rejected for an unknown namespace
    - Retrieve timed out
    - Object definition could not be parsed
    """

    failures: list[Failure]

    def __init__(self, failures: list[Failure]):
        assert len(failures)
        self.failures = failures
        first = failures[0]
        super().__init__(
            f"{len(failures)} reader(s) failed, first failure from {first.reader}: {first.message}"
        )
