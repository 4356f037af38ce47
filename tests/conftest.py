"""Pytest configuration and fixtures."""

import io
import pytest
from unittest.mock import MagicMock, patch

from rich.console import Console


SAMPLE_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="0.92">
  <channel>
    <title>Acme invoicing filter</title>
    <item>
      <title>[ACME-1] Fix login page</title>
      <key id="10001">ACME-1</key>
      <summary>Fix login page</summary>
      <due>Mon, 4 Apr 2016 00:00:00 -0700</due>
      <timespent seconds="7200">2 hours</timespent>
    </item>
    <item>
      <title>[ACME-2] Update footer</title>
      <key id="10002">ACME-2</key>
      <summary>Update footer</summary>
      <due>Tue, 5 Apr 2016 00:00:00 -0700</due>
    </item>
  </channel>
</rss>
"""


@pytest.fixture
def sample_feed():
    """Feed with two items, the second without logged time."""
    return SAMPLE_FEED


@pytest.fixture
def sample_config_data():
    """Config file contents as written by the earlier Go tool."""
    return {
        "JiraAccountName": "acme",
        "JiraUname": "admin",
        "JiraPass": "secret",
        "JiraInvoicedTransID": "11",
        "JiraInvoicedPrefix": "INV-",
        "ClientSearchIDs": {"ACME": "10100"},
        "FbAccountName": "acmebooks",
        "FbAuthToken": "fb-token",
    }


@pytest.fixture
def sample_config(tmp_path):
    """A complete configuration saving invoices under tmp_path."""
    from j2i.config import Config
    return Config(
        jira_account_name="acme",
        jira_username="admin",
        jira_password="secret",
        jira_invoiced_trans_id="11",
        jira_invoiced_prefix="INV-",
        client_search_ids={"ACME": "10100"},
        fb_account_name="acmebooks",
        fb_auth_token="fb-token",
        invoice_dir=str(tmp_path / "invoices"),
    )


@pytest.fixture
def console():
    """Rich console writing to a buffer; read it with console.file.getvalue()."""
    return Console(file=io.StringIO(), width=200)


@pytest.fixture
def mock_requests_session():
    """Mock requests session for API testing."""
    with patch("requests.Session") as mock_session:
        mock_instance = MagicMock()
        mock_session.return_value = mock_instance
        yield mock_instance


def make_response(content: bytes = b"", status_code: int = 200, reason: str = "OK"):
    """Minimal stand-in for requests.Response."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.reason = reason
    resp.content = content
    resp.text = content.decode("utf-8", errors="replace")
    return resp
