"""
Jira search-request feed parsing

The feed is an RSS document whose <item> elements carry:
- <key id="10001">PROJ-1</key>
- <summary>
- <due>Mon, 4 Apr 2016 00:00:00 -0700</due>
- <timespent seconds="7200">2 hours</timespent> (absent when no time was logged)
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from lxml import etree

from .errors import FeedError

DUE_FORMAT = "%a, %d %b %Y %H:%M:%S %z"


@dataclass
class WorkItem:
    """One billable issue from the feed"""
    key: str = ""
    key_id: int = 0
    summary: str = ""
    due: str = ""                       # raw feed value
    time_spent_seconds: int = 0
    due_date: Optional[datetime] = None  # set by parse_due_date()

    @property
    def hours(self) -> float:
        return self.time_spent_seconds / 3600.0

    @property
    def notes(self) -> str:
        """Time entry notes"""
        return f"{self.key}: {self.summary}"

    def parse_due_date(self) -> datetime:
        """Parse `due` with DUE_FORMAT and cache the result."""
        try:
            self.due_date = datetime.strptime(self.due.strip(), DUE_FORMAT)
        except ValueError as e:
            raise FeedError(f"{self.key}: cannot parse due date {self.due!r}: {e}") from e
        return self.due_date


def _int(value: Optional[str], what: str) -> int:
    if value is None or not value.strip():
        return 0
    try:
        return int(value)
    except ValueError:
        raise FeedError(f"invalid {what}: {value!r}")


def _item_from_element(elem) -> WorkItem:
    # fresh instance per item so a missing <timespent> stays 0
    item = WorkItem()
    key = elem.find("key")
    if key is not None:
        item.key = (key.text or "").strip()
        item.key_id = _int(key.get("id"), "key id")
    item.summary = elem.findtext("summary", default="")
    item.due = elem.findtext("due", default="")
    spent = elem.find("timespent")
    if spent is not None:
        item.time_spent_seconds = _int(spent.get("seconds"), "timespent seconds")
    return item


def parse_feed(raw: bytes) -> list[WorkItem]:
    """
    Parse the feed into work items, in document order

    Raises:
        FeedError: the document is not well-formed XML; no partial result is returned
    """
    if not raw or not raw.strip():
        raise FeedError("empty feed")
    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(raw, parser)
    except etree.XMLSyntaxError as e:
        raise FeedError(f"malformed feed: {e}") from e
    return [_item_from_element(elem) for elem in root.findall(".//item")]
