"""j2i - Turn Jira time-tracked issues into FreshBooks time entries and invoices."""

__version__ = "1.0.0"

from .config import Config
from .errors import J2IError
from .feed import WorkItem, parse_feed
from .freshbooks_api import FreshBooksClient, TimeEntry, Invoice
from .jira_api import JiraClient
from .sync import SyncPipeline

__all__ = [
    "Config",
    "J2IError",
    "WorkItem",
    "parse_feed",
    "FreshBooksClient",
    "TimeEntry",
    "Invoice",
    "JiraClient",
    "SyncPipeline",
]
