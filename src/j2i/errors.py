"""Exception types shared by the j2i modules."""

from typing import Optional


class J2IError(Exception):
    """Base class for every error the CLI reports and exits on."""


class ConfigError(J2IError):
    """Missing, unreadable or incomplete configuration."""


class ApiError(J2IError):
    """Transport, HTTP status or remote application error."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 body: Optional[bytes] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class JiraError(ApiError):
    """Jira REST API error."""


class FreshBooksError(ApiError):
    """FreshBooks XML API error."""


class FeedError(J2IError):
    """Malformed issue feed or due date."""


class NotFoundError(J2IError):
    """A lookup by name or number matched nothing."""

    def __init__(self, message: str, query: str):
        super().__init__(message)
        self.query = query
