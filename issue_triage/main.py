"""CLI entry point for issue triage."""

import asyncio
import sys
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any

import click
import structlog

from issue_triage.config.settings import TriageSettings
from issue_triage.engine.cleanup import DuplicateCloser, StaleIssueCloser, default_git_factory
from issue_triage.engine.orchestrator import TriageOrchestrator, default_collaborator_factory
from issue_triage.engine.summary import WorkflowSummary
from issue_triage.exceptions import ConfigurationError
from issue_triage.models.domain import RepositoryTarget, TriageRequest
from issue_triage.utils.logging_config import clear_run_context, configure_logging
from issue_triage.utils.usage import list_known_models

log = structlog.get_logger(__name__)


def _parse_issue_number(value: str | None) -> int:
    """Parse the issue number input; anything unusable becomes 0 and fails validation."""
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return 0


@click.group()
@click.option(
    "--config",
    default=None,
    envvar="TRIAGE_CONFIG",
    help="Path to YAML configuration file (settings come from TRIAGE_* env vars when omitted)",
)
@click.option("--log-level", default="INFO", help="Logging level")
@click.option("--json-logs/--console-logs", default=True, help="Log as JSON lines or human-readable console output")
@click.pass_context
def cli(ctx: click.Context, config: str | None, log_level: str, json_logs: bool) -> None:
    """issue-triage: Automated triage for newly opened GitHub issues."""
    configure_logging(log_level, json_output=json_logs)

    if ctx.invoked_subcommand == "models":
        ctx.obj = {"settings": None}
        return

    if config is not None and not Path(config).exists():
        click.echo(f"Error: Configuration file not found: {config}", err=True)
        sys.exit(1)

    try:
        settings = TriageSettings.from_yaml(config) if config else TriageSettings()
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Unexpected error loading configuration: {e}", err=True)
        log.error("config_error_unexpected", exc_info=True)
        sys.exit(1)

    ctx.obj = {"settings": settings}


@cli.command()
@click.option("--issue-number", envvar="ISSUE_NUMBER", default="", help="Issue number to triage")
@click.option("--title", envvar="ISSUE_TITLE", default="", help="Issue title")
@click.option("--body", envvar="ISSUE_BODY", default="", help="Issue body")
@click.option("--owner", envvar="REPOSITORY_OWNER", default="", help="Repository owner")
@click.option("--repo", envvar="REPOSITORY_NAME", default="", help="Repository name")
@click.option("--token", envvar="GITHUB_TOKEN", default="", help="GitHub token")
@click.pass_context
def run(
    ctx: click.Context,
    issue_number: str,
    title: str,
    body: str,
    owner: str,
    repo: str,
    token: str,
) -> None:
    """Triage one issue; exits 1 if any stage failed."""
    settings: TriageSettings = ctx.obj["settings"]

    request = TriageRequest(
        issue_number=_parse_issue_number(issue_number),
        title=title or "",
        body=body or "",
        owner=owner,
        repo=repo,
        token=token,
    )
    orchestrator = TriageOrchestrator(
        settings.load_taxonomy,
        default_collaborator_factory(settings),
        retry_policy=settings.retry_policy,
    )
    _report_and_exit(orchestrator.run(request))


def _report_and_exit(job: Coroutine[Any, Any, WorkflowSummary]) -> None:
    """Run a job to completion, print its summary and exit with its status."""
    try:
        summary = asyncio.run(job)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    finally:
        clear_run_context()

    if summary.report:
        click.echo(summary.report)
    sys.exit(summary.exit_code)


def repository_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Repository and credential options shared by the cleanup commands."""
    func = click.option("--token", envvar="GITHUB_TOKEN", default="", help="GitHub token")(func)
    func = click.option("--repo", envvar="REPOSITORY_NAME", default="", help="Repository name")(func)
    return click.option("--owner", envvar="REPOSITORY_OWNER", default="", help="Repository owner")(func)


@cli.command("close-duplicates")
@repository_options
@click.pass_context
def close_duplicates(ctx: click.Context, owner: str, repo: str, token: str) -> None:
    """Close duplicates past their grace period, or hand answered ones back for triage."""
    settings: TriageSettings = ctx.obj["settings"]
    job = DuplicateCloser(settings, default_git_factory(settings))
    _report_and_exit(job.run(RepositoryTarget(owner=owner, repo=repo, token=token)))


@cli.command("close-stale")
@repository_options
@click.pass_context
def close_stale(ctx: click.Context, owner: str, repo: str, token: str) -> None:
    """Close issues still waiting on the reporter after the inactivity period."""
    settings: TriageSettings = ctx.obj["settings"]
    job = StaleIssueCloser(settings, default_git_factory(settings))
    _report_and_exit(job.run(RepositoryTarget(owner=owner, repo=repo, token=token)))


@cli.command()
def models() -> None:
    """List models with known pricing."""
    click.echo(f"{'Model ID prefix':<32} {'Name':<28} {'In $/1K':>9} {'Out $/1K':>9} {'Rate':>6}")
    for model_id, cost in list_known_models():
        click.echo(
            f"{model_id:<32} {cost.display_name:<28} {cost.input_per_1k:>9.5f} "
            f"{cost.output_per_1k:>9.5f} {cost.cost_rate:>6.2f}"
        )


if __name__ == "__main__":
    cli()
