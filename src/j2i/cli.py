#!/usr/bin/env python3
"""
j2i CLI - Jira time report -> FreshBooks time entries -> invoice write-back

Built on Typer + Rich
"""

import logging
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from .config import CONFIG_FILE, Config
from .errors import ConfigError, J2IError
from .freshbooks_api import FreshBooksClient
from .jira_api import JiraClient
from .sync import SyncPipeline

app = typer.Typer(
    name="j2i",
    help="Parse a Jira filter feed and invoice it through FreshBooks",
    no_args_is_help=True,
)
console = Console()

# maxResults used for Jira searches
JIRA_MAX_RESULTS = 1500


def load_config(jira: bool = True, freshbooks: bool = True) -> Config:
    """Load the configuration, rejecting it when the settings needed are incomplete."""
    config = Config.load()
    errors = []
    if jira:
        errors += config.validate_jira()
    if freshbooks:
        errors += config.validate_freshbooks()
    if errors:
        raise ConfigError(f"{CONFIG_FILE} is incomplete: " + "; ".join(errors))
    return config


def make_jira(config: Config) -> JiraClient:
    return JiraClient(config.jira_url, config.jira_username, config.jira_password,
                      max_results=JIRA_MAX_RESULTS, auth_type=config.jira_auth_type)


def make_freshbooks(config: Config) -> FreshBooksClient:
    token, oauth = config.freshbooks_auth()
    return FreshBooksClient(config.fb_account_name, token=token, oauth=oauth)


def fail(error: Exception):
    """Report a fatal error and exit with status 1."""
    console.print(f"[red]j2i: {error}[/red]", highlight=False)
    raise typer.Exit(code=1)


def display_catalog(fb: FreshBooksClient):
    """Print FreshBooks clients with their projects, then tasks"""
    clients = fb.clients()
    fb.projects()
    tasks = fb.tasks()

    console.print("\n[bold]--- Clients ---[/bold]")
    for cl in clients:
        console.print(cl.name, markup=False)
        for pr in fb.client_projects(cl.client_id):
            console.print(f"\tProject ID: {pr.project_id}\tName: {pr.name}", markup=False, highlight=False)

    console.print("\n[bold]--- Tasks ---[/bold]")
    for tk in tasks:
        console.print(tk.name, markup=False)
    console.print()


@app.command()
def run(
    client: Optional[str] = typer.Option(None, "--client", "-c", help="Client code from ~/.j2i/config.json (maps to a Jira filter ID)"),
    project: str = typer.Option("", "--project", "-p", help="FreshBooks project name"),
    task: str = typer.Option("", "--task", "-t", help="FreshBooks task name"),
    freshbooks: bool = typer.Option(True, "--freshbooks/--no-freshbooks", help="Push time entries to FreshBooks"),
    jira: bool = typer.Option(True, "--jira/--no-jira", help="Write invoice transition and label back to Jira"),
):
    """
    Print the time report of a client and invoice it

    Omit --project or --task (or both) to only see the Jira report.
    """
    try:
        report_only = not project or not task
        if not client:
            display_catalog(make_freshbooks(load_config(jira=False)))
            console.print("If you only want to see JIRA report - omit --project or --task or both")
            console.print("Usage: [cyan]j2i run --client CODE [--project NAME --task NAME][/cyan]")
            raise typer.Exit(code=1)

        config = load_config(freshbooks=not report_only)
        fb = None if report_only else make_freshbooks(config)
        pipeline = SyncPipeline(config, make_jira(config), fb, console=console)
        pipeline.run(client, project, task, do_freshbooks=freshbooks, do_jira=jira)
    except J2IError as e:
        fail(e)


@app.command()
def catalog():
    """List FreshBooks clients, their projects and tasks"""
    try:
        display_catalog(make_freshbooks(load_config(jira=False)))
    except J2IError as e:
        fail(e)


@app.command()
def transitions(key: str = typer.Argument(..., help="Issue key, e.g. PROJ-123")):
    """List the Jira transitions available for an issue"""
    try:
        items = make_jira(load_config(freshbooks=False)).get_transitions(key)
    except J2IError as e:
        fail(e)

    table = Table(title=f"{key} transitions")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("To status")
    for t in items:
        table.add_row(t.id, t.name, str(t.to.get("name", "")))
    console.print(table)


@app.command()
def setup():
    """Configure Jira and FreshBooks credentials"""
    console.print(Panel.fit(
        "[bold]j2i configuration[/bold]",
        title="⚙️",
    ))

    config = Config.load_or_default()

    config.jira_account_name = Prompt.ask("Jira account (<account>.atlassian.net)", default=config.jira_account_name)
    config.jira_username = Prompt.ask("Jira username", default=config.jira_username)
    new_pass = Prompt.ask("Jira password / API token", password=True, default="")
    if new_pass:
        config.jira_password = new_pass
    config.jira_invoiced_trans_id = Prompt.ask("Transition ID for invoiced issues", default=config.jira_invoiced_trans_id)
    config.jira_invoiced_prefix = Prompt.ask("Label prefix for invoiced issues", default=config.jira_invoiced_prefix)

    console.print("\nClient codes -> Jira filter IDs (empty code to finish):")
    while True:
        code = Prompt.ask("Client code", default="")
        if not code:
            break
        config.client_search_ids[code] = Prompt.ask("Filter ID", default=config.client_search_ids.get(code, ""))

    config.fb_account_name = Prompt.ask("FreshBooks account", default=config.fb_account_name)
    new_token = Prompt.ask("FreshBooks API token (Enter keeps the current one)", password=True, default="")
    if new_token:
        config.fb_auth_token = new_token
    config.fb_staff_email = Prompt.ask("FreshBooks staff e-mail (optional)", default=config.fb_staff_email)

    config.save()
    console.print(f"\n[green]✓ Saved {CONFIG_FILE}[/green]")

    errors = config.validate()
    for err in errors:
        console.print(f"[yellow]⚠ {err}[/yellow]")


@app.callback()
def main(
    trace: bool = typer.Option(False, "--trace", help="Log request and response payloads"),
):
    """
    j2i - invoice Jira work through FreshBooks

    Usage:
      j2i run -c ACME                      # report only
      j2i run -c ACME -p Website -t Dev    # push, invoice, write back
      j2i catalog                          # FreshBooks clients/projects/tasks
      j2i setup                            # configure
    """
    logging.basicConfig(
        level=logging.DEBUG if trace else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )


if __name__ == "__main__":
    app()
