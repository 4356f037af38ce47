"""
FreshBooks classic API client (XML over HTTPS)

Supports:
- Token-Based authentication (token as basic-auth username)
- OAuth 1.0a PLAINTEXT signed headers
- Paginated listing of clients, projects, tasks and staff
- Time entry create/update, invoice lookup and PDF download

Every call POSTs a <request method="..."> document to
https://<account>.freshbooks.com/api/2.1/xml-in
"""

import logging
import secrets
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar, Union
from urllib.parse import quote

import requests
from requests.auth import AuthBase
from lxml import etree

from .errors import FreshBooksError, J2IError, NotFoundError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# request timeout (seconds)
DEFAULT_TIMEOUT = 30
DEFAULT_PER_PAGE = 25
# upper bound on pages per listing, guards against a bogus `total`
DEFAULT_MAX_PAGES = 1000

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True)


def _int(value: Optional[str]) -> int:
    if value is None or not value.strip():
        return 0
    try:
        return int(value)
    except ValueError:
        raise FreshBooksError(f"FreshBooks: expected an integer, got {value!r}")


def _float(value: Optional[str]) -> float:
    if value is None or not value.strip():
        return 0.0
    try:
        return float(value)
    except ValueError:
        raise FreshBooksError(f"FreshBooks: expected a number, got {value!r}")


@dataclass
class Client:
    client_id: int = 0
    name: str = ""

    @classmethod
    def from_xml(cls, el) -> "Client":
        return cls(client_id=_int(el.findtext("client_id")),
                   name=el.findtext("organization", default=""))


@dataclass
class Project:
    project_id: int = 0
    client_id: int = 0
    name: str = ""
    task_ids: list[int] = field(default_factory=list)
    staff_ids: list[int] = field(default_factory=list)

    @classmethod
    def from_xml(cls, el) -> "Project":
        return cls(
            project_id=_int(el.findtext("project_id")),
            client_id=_int(el.findtext("client_id")),
            name=el.findtext("name", default=""),
            task_ids=[_int(t.text) for t in el.findall("tasks/task/task_id")],
            staff_ids=[_int(s.text) for s in el.findall("staff/staff/staff_id")],
        )


@dataclass
class Task:
    task_id: int = 0
    name: str = ""
    rate: float = 0.0

    @classmethod
    def from_xml(cls, el) -> "Task":
        return cls(task_id=_int(el.findtext("task_id")),
                   name=el.findtext("name", default=""),
                   rate=_float(el.findtext("rate")))


@dataclass
class User:
    """Staff member"""
    staff_id: int = 0
    email: str = ""
    first_name: str = ""
    last_name: str = ""

    @classmethod
    def from_xml(cls, el) -> "User":
        return cls(staff_id=_int(el.findtext("staff_id")),
                   email=el.findtext("email", default=""),
                   first_name=el.findtext("first_name", default=""),
                   last_name=el.findtext("last_name", default=""))


@dataclass
class TimeEntry:
    """Time entry; entry_id is assigned by FreshBooks on create"""
    project_id: int
    task_id: int
    staff_id: int
    date: str               # YYYY-MM-DD
    notes: str = ""
    hours: float = 0.0
    entry_id: Optional[int] = None

    def to_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        if self.entry_id:
            fields["time_entry_id"] = self.entry_id
        fields.update({
            "project_id": self.project_id,
            "task_id": self.task_id,
            "staff_id": self.staff_id,
            "date": self.date,
            "notes": self.notes,
            "hours": self.hours,
        })
        return fields


@dataclass
class Invoice:
    invoice_id: int = 0
    number: str = ""
    date: str = ""
    po_number: str = ""
    amount: float = 0.0

    @classmethod
    def from_xml(cls, el) -> "Invoice":
        return cls(invoice_id=_int(el.findtext("invoice_id")),
                   number=el.findtext("number", default=""),
                   date=el.findtext("date", default=""),
                   po_number=el.findtext("po_number", default=""),
                   amount=_float(el.findtext("amount")))


class PlaintextOAuth(AuthBase):
    """OAuth 1.0a header with the PLAINTEXT signature method"""

    def __init__(self, consumer_key: str, consumer_secret: str,
                 token: str = "", token_secret: str = ""):
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.token = token
        self.token_secret = token_secret

    def header(self) -> str:
        params = {
            "oauth_version": "1.0",
            "oauth_signature_method": "PLAINTEXT",
            "oauth_consumer_key": self.consumer_key,
            "oauth_timestamp": str(int(time.time())),
            "oauth_nonce": str(secrets.randbits(63)),
            "oauth_signature": f"{_encode(self.consumer_secret)}&{_encode(self.token_secret)}",
        }
        if self.token:
            params["oauth_token"] = self.token
        return "OAuth " + ", ".join(f'{k}="{_encode(v)}"' for k, v in params.items())

    def __call__(self, r):
        r.headers["Authorization"] = self.header()
        return r


def _encode(value: str) -> str:
    return quote(value, safe="-._~")


def _append_fields(parent, fields: dict[str, Any]):
    for name, value in fields.items():
        if value is None:
            continue
        child = etree.SubElement(parent, name)
        if isinstance(value, dict):
            _append_fields(child, value)
        else:
            child.text = str(value)


def build_request(method: str, fields: Optional[dict[str, Any]] = None) -> bytes:
    """Serialize a <request method="..."> document."""
    root = etree.Element("request", method=method)
    _append_fields(root, fields or {})
    return etree.tostring(root, xml_declaration=True, encoding="utf-8", pretty_print=True)


def parse_response(content: bytes):
    """
    Parse a response document, dropping XML namespaces

    Raises:
        FreshBooksError: malformed XML or a non-empty <error> element
    """
    try:
        root = etree.fromstring(content, _PARSER)
    except etree.XMLSyntaxError as e:
        raise FreshBooksError(f"FreshBooks: malformed response: {e}", body=content) from e

    for el in root.iter():
        if isinstance(el.tag, str) and el.tag.startswith("{"):
            el.tag = etree.QName(el).localname
    etree.cleanup_namespaces(root)

    error = (root.findtext("error") or "").strip()
    if error:
        code = root.findtext("code")
        message = f"FreshBooks: {error}" + (f" (code {code})" if code else "")
        raise FreshBooksError(message, body=content)
    return root


class FreshBooksClient:
    """FreshBooks XML API client; the fetched lookup tables live on the instance"""

    def __init__(self, account: str, token: Optional[str] = None,
                 oauth: Optional[PlaintextOAuth] = None,
                 per_page: int = DEFAULT_PER_PAGE, max_pages: int = DEFAULT_MAX_PAGES):
        """
        Initialize the FreshBooks client

        Args:
            account: FreshBooks account name (the subdomain)
            token: API token (Token-Based authentication)
            oauth: OAuth credentials; exactly one of token or oauth is required
            per_page: page size for list calls
            max_pages: stop with an error after this many pages of one listing
        """
        if bool(token) == bool(oauth):
            raise ValueError("exactly one of token or oauth is required")

        self.api_url = f"https://{account}.freshbooks.com/api/2.1/xml-in"
        self.per_page = per_page
        self.max_pages = max_pages
        self.session = requests.Session()
        self.session.auth = (token, "X") if token else oauth
        self.session.headers.update({
            "Content-Type": "application/xml",
        })

        self._clients: list[Client] = []
        self._projects: list[Project] = []
        self._tasks: list[Task] = []
        self._users: list[User] = []

    def _post(self, method: str, fields: Optional[dict[str, Any]] = None) -> bytes:
        body = build_request(method, fields)
        logger.debug("request: %s", body.decode("utf-8"))
        try:
            resp = self.session.post(self.api_url, data=body, timeout=DEFAULT_TIMEOUT)
        except requests.exceptions.RequestException as e:
            raise FreshBooksError(f"FreshBooks: request {method} failed: {e}") from e

        if resp.status_code != 200:
            raise FreshBooksError(f"FreshBooks: {method}: HTTP {resp.status_code} {resp.reason}",
                                  status_code=resp.status_code, body=resp.content)
        return resp.content

    def _call(self, method: str, **fields):
        content = self._post(method, fields)
        logger.debug("response: %s", content.decode("utf-8", errors="replace"))
        return parse_response(content)

    def _fetch_all(self, method: str, list_tag: str, item_tag: str,
                   factory: Callable[[Any], T]) -> list[T]:
        """Fetch every page of a listing, in server order."""
        results: list[T] = []
        page = 1
        while True:
            if page > self.max_pages:
                raise FreshBooksError(f"FreshBooks: {method} exceeded {self.max_pages} pages")
            root = self._call(method, per_page=self.per_page, page=page)
            listing = root.find(list_tag)
            if listing is None:
                break
            records = [factory(el) for el in listing.findall(item_tag)]
            results.extend(records)

            total = _int(listing.get("total"))
            per_page = _int(listing.get("per_page")) or self.per_page
            if total <= per_page * page or not records:
                break
            page += 1
        return results

    def clients(self) -> list[Client]:
        self._clients = self._fetch_all("client.list", "clients", "client", Client.from_xml)
        return self._clients

    def projects(self) -> list[Project]:
        self._projects = self._fetch_all("project.list", "projects", "project", Project.from_xml)
        return self._projects

    def tasks(self) -> list[Task]:
        self._tasks = self._fetch_all("task.list", "tasks", "task", Task.from_xml)
        return self._tasks

    def users(self) -> list[User]:
        self._users = self._fetch_all("staff.list", "staff_members", "member", User.from_xml)
        return self._users

    def find_project(self, name: str) -> Optional[int]:
        """Project ID by exact name, None when not found."""
        for p in self._projects:
            if p.name == name:
                return p.project_id
        return None

    def find_task(self, name: str) -> Optional[int]:
        """Task ID by exact name, None when not found."""
        for t in self._tasks:
            if t.name == name:
                return t.task_id
        return None

    def find_user(self, email: str) -> Optional[int]:
        """Staff ID by e-mail (case-insensitive), None when not found."""
        for u in self._users:
            if u.email.lower() == email.lower():
                return u.staff_id
        return None

    def client_projects(self, client_id: int) -> list[Project]:
        return [p for p in self._projects if p.client_id == client_id]

    def save_time_entry(self, entry: TimeEntry) -> int:
        """Create the entry (no entry_id) or update it; returns the entry ID."""
        method = "time_entry.update" if entry.entry_id else "time_entry.create"
        root = self._call(method, time_entry=entry.to_fields())
        if root.get("status") != "ok":
            raise FreshBooksError(f"FreshBooks: {method} failed (status={root.get('status')})")

        entry_id = _int(root.findtext("time_entry_id")) or entry.entry_id
        if not entry_id:
            raise FreshBooksError(f"FreshBooks: {method} returned no time_entry_id")
        entry.entry_id = entry_id
        return entry_id

    def invoice_by_number(self, number: str) -> Invoice:
        """
        Look up an invoice by its number

        Raises:
            NotFoundError: no invoice has this number
        """
        root = self._call("invoice.list", per_page=self.per_page, page=1, number=number)
        listing = root.find("invoices")
        invoices = [] if listing is None else [Invoice.from_xml(el) for el in listing.findall("invoice")]
        if not invoices:
            raise NotFoundError(f"Invoice Number: {number} can't be located", number)
        return invoices[0]

    def invoice_pdf(self, number: str, save_to: Union[str, Path]) -> Invoice:
        """Download the PDF of an invoice; never overwrites an existing file."""
        invoice = self.invoice_by_number(number)
        content = self._post("invoice.getPDF", {"invoice_id": invoice.invoice_id})
        if not content.startswith(b"%PDF"):
            parse_response(content)
            raise FreshBooksError(f"FreshBooks: invoice {number} did not return a PDF", body=content)

        try:
            with open(save_to, "xb") as dst:
                dst.write(content)
        except FileExistsError:
            raise J2IError(f"can't save invoice! {save_to} already exists")
        except OSError as e:
            raise J2IError(f"can't save invoice! {e}") from e
        return invoice
