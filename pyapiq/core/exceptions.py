"""Exception hierarchy for apiq.

Every error raised by the fetch layer derives from `ApiqError`, so callers
can catch the whole family at once or branch on a specific failure such as
`NotFoundError`.
"""
from typing import Optional


class ApiqError(Exception):
    """Base class for all apiq errors."""


class CacheError(ApiqError):
    """A cache entry could not be read, written, or removed.

    The cache is an optimization only. `CacheManager` absorbs these errors
    and degrades to a miss or a no-op write.
    """


class ConfigError(ApiqError):
    """A configuration value cannot be used.

    Attributes:
        key (str): The dotted config key at fault, e.g. "retry.max_delay".
    """

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Invalid configuration for '{key}': {reason}")
        self.key = key


class InputError(ApiqError):
    """A local input file is missing, unreadable, or not the JSON expected."""


class FetchExhausted(ApiqError):
    """The retry budget was spent without a usable response.

    Attributes:
        url (str): The URL that was requested.
        attempts (int): The total number of tries made.
        last_status (Optional[int]): The status code of the last retryable
            response, or None if the last try failed at the transport level.
    """

    def __init__(self, url: str, attempts: int, last_status: Optional[int] = None, last_error: Optional[BaseException] = None) -> None:
        self.url = url
        self.attempts = attempts
        self.last_status = last_status
        self.last_error = last_error
        if last_status is not None:
            reason = f"HTTP {last_status}"
        elif last_error is not None:
            reason = str(last_error) or type(last_error).__name__
        else:
            reason = "unknown error"
        super().__init__(f"Request to {url} failed after {attempts} attempt(s): {reason}")


class HTTPError(ApiqError):
    """A non-retryable, non-success HTTP response.

    Attributes:
        status (int): The HTTP status code.
        url (str): The URL that was requested.
    """

    def __init__(self, message: str, status: int, url: str) -> None:
        super().__init__(message)
        self.status = status
        self.url = url


class NotFoundError(HTTPError):
    """HTTP 404."""

    def __init__(self, url: str) -> None:
        super().__init__(f"Resource not found: {url}", 404, url)


class UnauthorizedError(HTTPError):
    """HTTP 401 or 403."""

    def __init__(self, status: int, url: str) -> None:
        super().__init__(f"Authentication/Authorization failed: {status}", status, url)


class GenericHTTPError(HTTPError):
    """Any other non-2xx status."""

    def __init__(self, status: int, reason: str, url: str) -> None:
        message = f"HTTP {status}: {reason}" if reason else f"HTTP {status}"
        super().__init__(message, status, url)


class ParseError(ApiqError):
    """The response body could not be turned into a value by its parser."""

    def __init__(self, url: str, cause: BaseException) -> None:
        super().__init__(f"Could not parse response from {url}: {cause}")
        self.url = url


def classify_http_error(status: int, url: str, reason: str = "") -> HTTPError:
    """Maps a failed HTTP status to the matching `HTTPError` subclass.

    Args:
        status (int): The response status code.
        url (str): The requested URL.
        reason (str): The response reason phrase, if any.

    Returns:
        HTTPError: An exception instance ready to be raised.
    """
    if status == 404:
        return NotFoundError(url)
    if status in (401, 403):
        return UnauthorizedError(status, url)
    return GenericHTTPError(status, reason, url)
