"""Tests for sync module."""

import pytest
from unittest.mock import MagicMock, call

from j2i.errors import ConfigError, FeedError, J2IError, NotFoundError
from j2i.feed import WorkItem
from j2i.freshbooks_api import Invoice, TimeEntry
from j2i.sync import SyncPipeline, build_time_entry, format_report_line, total_hours


def output(console) -> str:
    return console.file.getvalue()


@pytest.fixture
def jira(sample_feed):
    mock = MagicMock()
    mock.download_feed.return_value = sample_feed
    return mock


@pytest.fixture
def freshbooks():
    mock = MagicMock()
    mock.find_project.return_value = 7
    mock.find_task.return_value = 3
    mock.find_user.return_value = 2
    mock.save_time_entry.side_effect = [101, 102]
    mock.invoice_pdf.return_value = Invoice(invoice_id=344, number="1234", date="2016-04-30",
                                            po_number="", amount=190.0)
    return mock


class TestReportHelpers:
    """Tests for report formatting helpers."""

    def test_format_report_line(self):
        """Test key, upper-case date, padded notes and hours."""
        item = WorkItem(key="ACME-1", summary="Fix login page", due="Mon, 4 Apr 2016 00:00:00 -0700",
                        time_spent_seconds=5400)
        item.parse_due_date()

        line = format_report_line(item)

        assert line.startswith("ACME-1\t2016-APR-04\tACME-1: Fix login page")
        assert line.endswith("    1.50")
        assert len(line.split("\t")[2]) == len("ACME-1: ") + 70 + 8

    def test_long_summary_pushes_hours(self):
        """Test only the summary is padded, so the hours follow a 70+ char summary."""
        item = WorkItem(key="ACME-1", summary="x" * 75, due="Mon, 4 Apr 2016 00:00:00 -0700",
                        time_spent_seconds=3600)
        item.parse_due_date()

        assert format_report_line(item).endswith("ACME-1: " + "x" * 75 + "    1.00")

    def test_total_hours(self):
        items = [WorkItem(time_spent_seconds=7200), WorkItem(time_spent_seconds=0),
                 WorkItem(time_spent_seconds=1800)]
        assert total_hours(items) == 2.5
        assert total_hours([]) == 0.0

    def test_build_time_entry(self):
        """Test entries carry the due day, notes and fractional hours."""
        item = WorkItem(key="ACME-1", summary="Fix login page", due="Mon, 4 Apr 2016 00:00:00 -0700",
                        time_spent_seconds=5400)

        entry = build_time_entry(item, project_id=7, task_id=3, staff_id=1)

        assert entry == TimeEntry(project_id=7, task_id=3, staff_id=1, date="2016-04-04",
                                  notes="ACME-1: Fix login page", hours=1.5)
        assert entry.entry_id is None


class TestReportOnly:
    """Tests for the report-only path."""

    def test_report_only_run(self, sample_config, jira, console):
        """Test two items print 2.00 and 0.00 with a 2.00 total and nothing is pushed."""
        pipeline = SyncPipeline(sample_config, jira, freshbooks=None, console=console)

        items = pipeline.run("ACME")

        text = output(console)
        lines = [line for line in text.splitlines() if line.strip()]
        assert len(items) == 2
        assert lines[0].startswith("ACME-1")
        assert lines[0].rstrip().endswith("2.00")
        assert lines[1].startswith("ACME-2")
        assert lines[1].rstrip().endswith("0.00")
        assert lines[2] == "Total: 2.00"
        jira.download_feed.assert_called_once_with("10100")
        jira.transition.assert_not_called()

    def test_missing_task_is_report_only(self, sample_config, jira, freshbooks, console):
        pipeline = SyncPipeline(sample_config, jira, freshbooks, console=console)

        pipeline.run("ACME", project_name="Website", task_name="")

        freshbooks.save_time_entry.assert_not_called()
        jira.label.assert_not_called()

    def test_unknown_client_code(self, sample_config, jira, console):
        """Test an unmapped client code fails before any download."""
        pipeline = SyncPipeline(sample_config, jira, console=console)

        with pytest.raises(ConfigError):
            pipeline.run("NOPE")
        jira.download_feed.assert_not_called()

    def test_bad_due_date_aborts_before_report(self, sample_config, jira, console):
        """Test one unparseable due date aborts the whole run."""
        jira.download_feed.return_value = (
            b"<rss><channel>"
            b"<item><key id='1'>ACME-1</key><due>Mon, 4 Apr 2016 00:00:00 -0700</due></item>"
            b"<item><key id='2'>ACME-2</key><due>04/05/2016</due></item>"
            b"</channel></rss>"
        )
        pipeline = SyncPipeline(sample_config, jira, console=console)

        with pytest.raises(FeedError):
            pipeline.run("ACME")
        assert "Total" not in output(console)


class TestPushTimeEntries:
    """Tests for the FreshBooks push."""

    def test_push(self, sample_config, jira, freshbooks, console):
        """Test one entry per item after loading every lookup table."""
        pipeline = SyncPipeline(sample_config, jira, freshbooks, console=console)
        items = pipeline.load_items("ACME")

        ids = pipeline.push_time_entries(items, "Website", "Development")

        assert ids == [101, 102]
        freshbooks.clients.assert_called_once()
        freshbooks.projects.assert_called_once()
        freshbooks.tasks.assert_called_once()
        freshbooks.users.assert_called_once()
        freshbooks.find_project.assert_called_once_with("Website")
        freshbooks.find_task.assert_called_once_with("Development")
        freshbooks.find_user.assert_not_called()
        first, second = [c.args[0] for c in freshbooks.save_time_entry.call_args_list]
        assert first == TimeEntry(project_id=7, task_id=3, staff_id=1, date="2016-04-04",
                                  notes="ACME-1: Fix login page", hours=2.0)
        assert second.date == "2016-04-05"
        assert second.hours == 0.0
        assert "Created Time Entry: ID:101" in output(console)

    def test_staff_email(self, sample_config, jira, freshbooks, console):
        """Test a configured staff e-mail selects the staff ID."""
        sample_config.fb_staff_email = "dev@acme.com"
        pipeline = SyncPipeline(sample_config, jira, freshbooks, console=console)

        pipeline.push_time_entries(pipeline.load_items("ACME"), "Website", "Development")

        freshbooks.find_user.assert_called_once_with("dev@acme.com")
        assert freshbooks.save_time_entry.call_args.args[0].staff_id == 2

    def test_unknown_project(self, sample_config, jira, freshbooks, console):
        """Test a project name miss stops before any entry is created."""
        freshbooks.find_project.return_value = None
        pipeline = SyncPipeline(sample_config, jira, freshbooks, console=console)

        with pytest.raises(NotFoundError) as exc_info:
            pipeline.push_time_entries(pipeline.load_items("ACME"), "Websyte", "Development")

        assert exc_info.value.query == "Websyte"
        freshbooks.save_time_entry.assert_not_called()

    def test_unknown_task(self, sample_config, jira, freshbooks, console):
        freshbooks.find_task.return_value = None
        pipeline = SyncPipeline(sample_config, jira, freshbooks, console=console)

        with pytest.raises(NotFoundError) as exc_info:
            pipeline.push_time_entries(pipeline.load_items("ACME"), "Website", "Design")

        assert exc_info.value.query == "Design"

    def test_unknown_staff(self, sample_config, jira, freshbooks, console):
        sample_config.fb_staff_email = "ghost@acme.com"
        freshbooks.find_user.return_value = None
        pipeline = SyncPipeline(sample_config, jira, freshbooks, console=console)

        with pytest.raises(NotFoundError):
            pipeline.push_time_entries(pipeline.load_items("ACME"), "Website", "Development")

    def test_requires_freshbooks(self, sample_config, jira, console):
        pipeline = SyncPipeline(sample_config, jira, None, console=console)

        with pytest.raises(J2IError):
            pipeline.push_time_entries([], "Website", "Development")


class TestInvoiceAndWriteBack:
    """Tests for the invoice download and Jira write-back."""

    def test_full_run(self, sample_config, jira, freshbooks, console):
        """Test push, invoice download and transition/label of every issue."""
        pipeline = SyncPipeline(sample_config, jira, freshbooks, console=console,
                                prompt=lambda message: " 1234\n")

        pipeline.run("ACME", "Website", "Development")

        assert freshbooks.save_time_entry.call_count == 2
        freshbooks.invoice_pdf.assert_called_once_with("1234", sample_config.invoice_path("1234"))
        assert jira.transition.call_args_list == [call("ACME-1", "11"), call("ACME-2", "11")]
        assert jira.label.call_args_list == [call("ACME-1", "INV-1234"), call("ACME-2", "INV-1234")]
        text = output(console)
        assert "Setting Invoice to: 1234" in text
        assert "Labeled ISSUE:ACME-2 as INV-1234" in text
        assert "Amount         : 190.00" in text

    def test_no_freshbooks_push(self, sample_config, jira, freshbooks, console):
        """Test --no-freshbooks still downloads the invoice and writes back."""
        pipeline = SyncPipeline(sample_config, jira, freshbooks, console=console, prompt=lambda m: "1234")

        pipeline.run("ACME", "Website", "Development", do_freshbooks=False)

        freshbooks.save_time_entry.assert_not_called()
        assert jira.transition.call_count == 2

    def test_no_jira(self, sample_config, jira, freshbooks, console):
        prompt = MagicMock()
        pipeline = SyncPipeline(sample_config, jira, freshbooks, console=console, prompt=prompt)

        pipeline.run("ACME", "Website", "Development", do_jira=False)

        prompt.assert_not_called()
        freshbooks.invoice_pdf.assert_not_called()
        jira.transition.assert_not_called()

    def test_empty_invoice_number(self, sample_config, jira, freshbooks, console):
        pipeline = SyncPipeline(sample_config, jira, freshbooks, console=console, prompt=lambda m: "  \n")

        with pytest.raises(J2IError):
            pipeline.ask_invoice_number()

    def test_existing_pdf_refused_before_request(self, sample_config, jira, freshbooks, console):
        """Test an existing destination fails before FreshBooks is called."""
        dest = sample_config.invoice_path("1234")
        dest.parent.mkdir(parents=True)
        dest.write_bytes(b"old")
        pipeline = SyncPipeline(sample_config, jira, freshbooks, console=console)

        with pytest.raises(J2IError):
            pipeline.download_invoice("1234")

        freshbooks.invoice_pdf.assert_not_called()

    def test_invoice_not_found_skips_write_back(self, sample_config, jira, freshbooks, console):
        """Test a missing invoice stops the run before Jira is touched."""
        freshbooks.invoice_pdf.side_effect = NotFoundError("Invoice Number: 1234 can't be located", "1234")
        pipeline = SyncPipeline(sample_config, jira, freshbooks, console=console, prompt=lambda m: "1234")

        with pytest.raises(NotFoundError):
            pipeline.run("ACME", "Website", "Development", do_freshbooks=False)

        jira.transition.assert_not_called()
