"""
Jira -> FreshBooks sync pipeline

Steps, strictly in order:
1. download and parse the client's Jira filter feed
2. print the time report
3. push one FreshBooks time entry per issue (skipped in report-only mode)
4. ask for the invoice number, save its PDF, then transition and label every issue
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from rich.console import Console
from rich.prompt import Prompt

from .config import Config
from .errors import J2IError, NotFoundError
from .feed import WorkItem, parse_feed
from .freshbooks_api import FreshBooksClient, Invoice, TimeEntry
from .jira_api import JiraClient

logger = logging.getLogger(__name__)

# staff ID of the FreshBooks account owner
DEFAULT_STAFF_ID = 1
SUMMARY_WIDTH = 70


def format_report_line(item: WorkItem) -> str:
    """One report line: key, due date, key and summary padded to SUMMARY_WIDTH, hours."""
    due = item.due_date.strftime("%Y-%b-%d").upper() if item.due_date else item.due
    return f"{item.key}\t{due}\t{item.key}: {item.summary:<{SUMMARY_WIDTH}}{item.hours:8.2f}"


def total_hours(items: list[WorkItem]) -> float:
    return sum(i.time_spent_seconds for i in items) / 3600.0


def build_time_entry(item: WorkItem, project_id: int, task_id: int, staff_id: int) -> TimeEntry:
    """Time entry for a work item, dated on its due date."""
    if item.due_date is None:
        item.parse_due_date()
    return TimeEntry(
        project_id=project_id,
        task_id=task_id,
        staff_id=staff_id,
        date=item.due_date.strftime("%Y-%m-%d"),
        notes=item.notes,
        hours=item.hours,
    )


class SyncPipeline:
    """Runs the report / push / invoice / write-back sequence for one client"""

    def __init__(self, config: Config, jira: JiraClient,
                 freshbooks: Optional[FreshBooksClient] = None,
                 console: Optional[Console] = None,
                 prompt: Optional[Callable[[str], str]] = None):
        self.config = config
        self.jira = jira
        self.freshbooks = freshbooks
        self.console = console or Console()
        self.prompt = prompt or (lambda message: Prompt.ask(message, console=self.console))

    def _require_freshbooks(self) -> FreshBooksClient:
        if self.freshbooks is None:
            raise J2IError("FreshBooks client is not configured")
        return self.freshbooks

    def load_items(self, client_code: str) -> list[WorkItem]:
        """Download the client's feed and parse every due date."""
        filter_id = self.config.filter_id(client_code)
        raw = self.jira.download_feed(filter_id)
        items = parse_feed(raw)
        for item in items:
            item.parse_due_date()
        logger.debug("feed %s: %d items", filter_id, len(items))
        return items

    def print_report(self, items: list[WorkItem]) -> float:
        """Print the time report and return the total hours."""
        for item in items:
            self.console.print(format_report_line(item), markup=False, highlight=False, soft_wrap=True)
        total = total_hours(items)
        self.console.print(f"Total: {total:.2f}", markup=False, highlight=False, soft_wrap=True)
        return total

    def resolve_ids(self, project_name: str, task_name: str) -> tuple[int, int, int]:
        """
        Fetch the FreshBooks lookup tables and resolve names to IDs

        Returns:
            (project_id, task_id, staff_id)

        Raises:
            NotFoundError: the project, task or staff e-mail does not exist
        """
        fb = self._require_freshbooks()
        fb.clients()
        fb.projects()
        fb.tasks()
        fb.users()

        project_id = fb.find_project(project_name)
        if project_id is None:
            raise NotFoundError(f"FreshBooks project not found: {project_name}", project_name)
        task_id = fb.find_task(task_name)
        if task_id is None:
            raise NotFoundError(f"FreshBooks task not found: {task_name}", task_name)

        staff_id = DEFAULT_STAFF_ID
        if self.config.fb_staff_email:
            staff_id = fb.find_user(self.config.fb_staff_email)
            if staff_id is None:
                raise NotFoundError(f"FreshBooks staff member not found: {self.config.fb_staff_email}",
                                    self.config.fb_staff_email)
        return project_id, task_id, staff_id

    def push_time_entries(self, items: list[WorkItem], project_name: str, task_name: str) -> list[int]:
        """Create one time entry per item; returns the new entry IDs."""
        fb = self._require_freshbooks()
        project_id, task_id, staff_id = self.resolve_ids(project_name, task_name)

        entry_ids = []
        for item in items:
            entry = build_time_entry(item, project_id, task_id, staff_id)
            entry_id = fb.save_time_entry(entry)
            self.console.print(f"\tCreated Time Entry: ID:{entry_id}", highlight=False)
            entry_ids.append(entry_id)
        return entry_ids

    def ask_invoice_number(self) -> str:
        number = self.prompt("Go to FreshBooks and create invoice, then come back here and enter Invoice#")
        number = number.strip()
        if not number:
            raise J2IError("no invoice number entered")
        self.console.print(f"Setting Invoice to: {number}", highlight=False)
        return number

    def download_invoice(self, invoice_number: str, save_to: Optional[Path] = None) -> Invoice:
        """Save the invoice PDF, refusing before any request if the file exists."""
        fb = self._require_freshbooks()
        save_to = save_to or self.config.invoice_path(invoice_number)
        if save_to.exists():
            raise J2IError(f"can't save invoice! {save_to} already exists")
        save_to.parent.mkdir(parents=True, exist_ok=True)

        self.console.print(f"\tDownloading Invoice PDF to: {save_to}", highlight=False)
        invoice = fb.invoice_pdf(invoice_number, save_to)
        self.console.print(f"\t{'ID':<15}: {invoice.invoice_id}", highlight=False)
        self.console.print(f"\t{'Number':<15}: {invoice.number}", markup=False, highlight=False)
        self.console.print(f"\t{'Date':<15}: {invoice.date}", highlight=False)
        self.console.print(f"\t{'PO':<15}: {invoice.po_number}", markup=False, highlight=False)
        self.console.print(f"\t{'Amount':<15}: {invoice.amount:.2f}", highlight=False)
        return invoice

    def write_back(self, items: list[WorkItem], invoice_number: str):
        """Transition and label every issue as invoiced."""
        trans_id = self.config.jira_invoiced_trans_id
        label = self.config.jira_invoiced_prefix + invoice_number
        for item in items:
            resp = self.jira.transition(item.key, trans_id)
            logger.debug("transition %s: %s", item.key, resp)
            self.console.print(f"\tTransitioned ISSUE:{item.key} to ID:{trans_id}", highlight=False)

            resp = self.jira.label(item.key, label)
            logger.debug("label %s: %s", item.key, resp)
            self.console.print(f"\tLabeled ISSUE:{item.key} as {label}", markup=False, highlight=False)

    def run(self, client_code: str, project_name: str = "", task_name: str = "",
            do_freshbooks: bool = True, do_jira: bool = True) -> list[WorkItem]:
        """Run the whole pipeline; report-only when project or task is empty."""
        items = self.load_items(client_code)
        self.print_report(items)

        if not project_name or not task_name:
            return items

        if do_freshbooks:
            self.console.print("---> FreshBooks.Start")
            self.push_time_entries(items, project_name, task_name)
            self.console.print("<--- FreshBooks.End")

        if do_jira:
            self.console.print("---> JIRA.Start")
            invoice_number = self.ask_invoice_number()
            self.download_invoice(invoice_number)
            self.write_back(items, invoice_number)
            self.console.print("<--- JIRA.End")
        return items
