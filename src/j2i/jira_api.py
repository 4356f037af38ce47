"""
Jira REST API client

Supports:
- Jira Cloud Basic Auth (username + password)
- Jira Server PAT (Personal Access Token)
- Issue search, transitions and labels (REST API v2)
- The XML search-request feed of a saved filter
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import requests

from .errors import JiraError

logger = logging.getLogger(__name__)

# request timeout (seconds)
DEFAULT_TIMEOUT = 30

REST_PATH = "/rest/api/2/"
DEFAULT_MAX_RESULTS = 200
DEFAULT_FIELDS = "id,summary"
FEED_FIELDS = ["key", "summary", "timespent", "due"]


@dataclass
class Issue:
    """A Jira issue"""
    id: str = ""
    key: str = ""
    self_url: str = ""
    expand: str = ""
    fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: dict) -> "Issue":
        return cls(
            id=data.get("id", ""),
            key=data.get("key", ""),
            self_url=data.get("self", ""),
            expand=data.get("expand", ""),
            fields=data.get("fields") or {},
        )

    def __str__(self) -> str:
        return f"Id: {self.id} Key: {self.key} self: {self.self_url}"


@dataclass
class Transition:
    """A workflow transition available on an issue"""
    id: str = ""
    name: str = ""
    to: dict[str, Any] = field(default_factory=dict)
    fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: dict) -> "Transition":
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            to=data.get("to") or {},
            fields=data.get("fields") or {},
        )


def join_fields(fields: Optional[list[str]]) -> str:
    """Join field names for the `fields` query parameter."""
    if not fields:
        return DEFAULT_FIELDS
    return ",".join(fields)


class JiraClient:
    """Jira REST API client"""

    def __init__(self, base_url: str, username: str, password: str,
                 max_results: int = -1, auth_type: str = "basic"):
        """
        Initialize the Jira client

        Args:
            base_url: Jira URL (e.g., https://example.atlassian.net)
            username: Jira username (ignored for PAT auth)
            password: password, API token or PAT
            max_results: maxResults for searches, -1 for the default (200)
            auth_type: "basic" (Cloud) or "pat" (Server)
        """
        self.base_url = base_url.rstrip('/')
        self.max_results = DEFAULT_MAX_RESULTS if max_results == -1 else max_results
        self.session = requests.Session()

        if auth_type == "pat":
            self.session.headers.update({
                "Authorization": f"Bearer {password}",
            })
        else:
            self.session.auth = (username, password)

        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json"
        })

    def _request(self, method: str, path: str, params: Optional[dict] = None,
                 payload: Optional[dict] = None) -> bytes:
        """Send a request and return the raw body; raises JiraError on status > 399."""
        url = f"{self.base_url}{REST_PATH}{path}"
        if payload is not None:
            logger.debug("%s %s: %s", method, url, json.dumps(payload))
        try:
            resp = self.session.request(method, url, params=params, json=payload,
                                        timeout=DEFAULT_TIMEOUT)
        except requests.exceptions.RequestException as e:
            raise JiraError(f"Jira: request to {url} failed: {e}") from e

        if resp.status_code > 399:
            raise JiraError(f"HTTP Error Status returned: {resp.status_code}",
                            status_code=resp.status_code, body=resp.content)
        logger.debug("%s %s -> %s", method, url, resp.status_code)
        return resp.content

    def _get_json(self, path: str, params: Optional[dict] = None) -> Any:
        data = self._request("GET", path, params=params)
        try:
            return json.loads(data)
        except ValueError as e:
            raise JiraError(f"Jira: malformed response from {path}: {e}", body=data) from e

    def search(self, jql: str, fields: Optional[list[str]] = None) -> list[Issue]:
        """Run a JQL search and return the matching issues."""
        params = {
            "jql": jql,
            "validateQuery": "true",
            "fields": join_fields(fields),
            "maxResults": str(self.max_results),
        }
        data = self._get_json("search", params)
        return [Issue.from_json(i) for i in data.get("issues") or []]

    def get_issue(self, key: str, fields: Optional[list[str]] = None) -> Issue:
        """Fetch a single issue by key."""
        data = self._get_json(f"issue/{key}", {"fields": join_fields(fields)})
        return Issue.from_json(data)

    def get_issues(self, keys: list[str], fields: Optional[list[str]] = None) -> list[Issue]:
        """Fetch several issues with one search."""
        jql = " or ".join(f"id = {k}" for k in keys)
        return self.search(jql, fields)

    def transition(self, key: str, transition_id: str) -> bytes:
        """Apply a transition to an issue; the ID is not checked against get_transitions()."""
        payload = {
            "transition": {"id": transition_id},
        }
        return self._request("POST", f"issue/{key}/transitions", payload=payload)

    def label(self, key: str, label: str) -> bytes:
        """Add a label to an issue together with an audit comment."""
        payload = {
            "update": {
                "labels": [{"add": label}],
                "comment": [{"add": {"body": f"invoicebot: set label to: {label}"}}],
            },
        }
        return self._request("PUT", f"issue/{key}", payload=payload)

    def get_transitions(self, key: str) -> list[Transition]:
        """List the transitions available for an issue."""
        data = self._get_json(f"issue/{key}/transitions", {"expand": "transitions.fields"})
        return [Transition.from_json(t) for t in data.get("transitions") or []]

    def feed_url(self, filter_id: str) -> str:
        return (f"{self.base_url}/sr/jira.issueviews:searchrequest-xml/"
                f"{filter_id}/SearchRequest-{filter_id}.xml")

    def download_feed(self, filter_id: str, max_items: int = 1000) -> bytes:
        """Download the XML feed of a saved search filter."""
        url = self.feed_url(filter_id)
        params = [("tempMax", str(max_items))]
        params += [("field", f) for f in FEED_FIELDS]
        params.append(("os_authType", "basic"))

        try:
            resp = self.session.get(url, params=params, timeout=DEFAULT_TIMEOUT)
        except requests.exceptions.RequestException as e:
            raise JiraError(f"Jira: cannot download feed {url}: {e}") from e

        if resp.status_code != 200:
            raise JiraError(f"Jira: feed download failed: HTTP {resp.status_code} {resp.reason}",
                            status_code=resp.status_code, body=resp.content)
        logger.debug("feed %s: %s", url, resp.text)
        return resp.content
