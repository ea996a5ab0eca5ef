from typing import Optional


class WishListError(Exception):
    """Base class for every failure the sync pipeline reports."""


class InvalidSourceError(WishListError):
    def __init__(self, source: str):
        self.source = source
        super().__init__(f"Wish list source is not an allowed URL: {source!r}")


class FetchError(WishListError):
    def __init__(self, source: str, reason: str, status_code: Optional[int] = None):
        self.source = source
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to fetch wish list from {source}: {reason}")


class ParseError(WishListError):
    def __init__(self, reason: str, line_number: Optional[int] = None):
        self.reason = reason
        self.line_number = line_number
        if line_number is not None:
            super().__init__(f"Line {line_number}: {reason}")
        else:
            super().__init__(reason)
