"""Domain errors raised inside the recommendation library.

Callers degrade these to empty results at the narrowest boundary; only the
HTTP layer ever sees them as status codes.
"""


class ReelFeedError(Exception):
    code: str = "reelfeed_error"
    status: int = 500

    def __init__(self, message: str = "", *, code: str | None = None, status: int | None = None):
        super().__init__(message or self.__class__.__name__)
        if code:
            self.code = code
        if status:
            self.status = status


class CatalogError(ReelFeedError):
    """The content catalog returned something we cannot read."""

    code = "catalog_error"
    status = 502


class ScorerError(ReelFeedError):
    """The external relevance scorer is unavailable or answered unusably."""

    code = "scorer_error"
    status = 502
