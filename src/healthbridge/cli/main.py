"""Command Line Interface for HealthBridge."""

import json
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
import structlog
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..core.config import Config, load_config
from ..core.errors import ConfigurationError, HealthBridgeError, InfrastructureError
from ..core.pipeline import IntegrationPipeline, ProcessingReport
from ..evals.harness import EvalHarness, EvalReport
from ..export.fhir import build_patient_resource
from ..export.handoff import read_event, write_event
from ..ingestion.normalizer import Normalizer
from ..observability.logging import configure_logging

logger = structlog.get_logger()
console = Console()

PACKAGE_DIR = Path(__file__).resolve().parent.parent
SAMPLE_MESSAGE = PACKAGE_DIR / "samples" / "adt_a01.hl7"
DEFAULT_TASKS = PACKAGE_DIR / "evals" / "tasks.yaml"

# Exit status for infrastructure and configuration failures, distinct from
# a raised rollback flag (1).
EXIT_INFRASTRUCTURE = 2


@click.group()
@click.option('--config', '-c', help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """HealthBridge - HL7 ingestion, policy gating and release evals."""
    try:
        loaded = load_config(config)
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        sys.exit(EXIT_INFRASTRUCTURE)

    configure_logging("DEBUG" if verbose else loaded.logging.level, loaded.logging.json_output)

    ctx.ensure_object(dict)
    ctx.obj['config'] = loaded

    # Display banner
    if ctx.invoked_subcommand not in ('version', 'patient'):
        console.print(Panel.fit(
            "[bold blue]HealthBridge[/bold blue]\n"
            "HL7 ingestion, policy gating and release evals\n"
            f"Version {__version__}",
            style="cyan"
        ))


@cli.command()
def version():
    """Show version information."""
    console.print(f"HealthBridge version {__version__}")


@cli.command()
@click.option('--output', '-o', default='healthbridge.yaml', help='Output configuration file path')
def init_config(output: str):
    """Initialize a new configuration file."""
    config = Config()
    config.to_yaml(output)
    console.print(f"[bold green]Configuration file created:[/bold green] {output}")
    console.print("Edit the configuration file and run with: healthbridge -c healthbridge.yaml process")


def _ingest_files(pipeline: IntegrationPipeline, files: Tuple[str, ...]):
    """Ingest each file, continuing past unreadable ones."""
    results = []
    for path in files:
        try:
            raw = Path(path).read_bytes()
        except OSError as e:
            console.print(f"[bold red]Cannot read {path}:[/bold red] {e}")
            pipeline.metrics.increment("read_errors")
            continue
        results.append((path, pipeline.ingest(raw)))
    return results


@cli.command()
@click.argument('files', nargs=-1, type=click.Path())
@click.option('--handoff', help='Path for the canonical event handoff file')
@click.option('--sample', is_flag=True, help='Ingest the bundled sample ADT^A01 message')
@click.pass_context
def ingest(ctx, files: Tuple[str, ...], handoff: Optional[str], sample: bool):
    """Normalize HL7 messages and write the last queued event for a consumer."""
    config = ctx.obj['config']
    if sample:
        files = files + (str(SAMPLE_MESSAGE),)
    if not files:
        console.print("[yellow]No input files given (use --sample for the bundled message)[/yellow]")
        sys.exit(1)

    pipeline = IntegrationPipeline(config)
    try:
        results = _ingest_files(pipeline, files)

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("File")
        table.add_column("Event")
        table.add_column("Type")
        table.add_column("Patient")
        table.add_column("Queued")
        for path, result in results:
            name = result.event.payload.patient_name
            table.add_row(
                Path(path).name,
                result.event.id,
                result.event.type.value,
                f"{name.given} {name.family}".strip(),
                "yes" if result.enqueued else result.reason,
            )
        console.print(table)

        queued = [result.event for _, result in results if result.enqueued]
        if queued:
            target = write_event(queued[-1], handoff or config.handoff.path)
            console.print(f"[bold green]Canonical event written to:[/bold green] {target}")
    except InfrastructureError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(EXIT_INFRASTRUCTURE)
    finally:
        pipeline.close()


@cli.command()
@click.argument('files', nargs=-1, type=click.Path())
@click.option('--handoff', help='Canonical event file to consume when no files are given')
@click.option('--json', 'as_json', is_flag=True, help='Print the processing report as JSON')
@click.pass_context
def process(ctx, files: Tuple[str, ...], handoff: Optional[str], as_json: bool):
    """Run policy checks and downstream effects over queued events."""
    config = ctx.obj['config']
    pipeline = IntegrationPipeline(config)

    try:
        if files:
            _ingest_files(pipeline, files)
            report = pipeline.process_pending()
        else:
            handoff_path = Path(handoff or config.handoff.path)
            if not handoff_path.exists():
                console.print("[yellow]No events in queue and no canonical file found. "
                              "Run `healthbridge ingest` first.[/yellow]")
                return
            report = pipeline.process_events([read_event(str(handoff_path))])
    except InfrastructureError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(EXIT_INFRASTRUCTURE)
    finally:
        pipeline.close()

    if as_json:
        click.echo(json.dumps({"report": report.to_dict(), "counters": dict(pipeline.metrics.snapshot())}, indent=2))
    else:
        _display_processing_report(report, pipeline.metrics.snapshot())


@cli.command(name='eval')
@click.option('--tasks', '-t', 'tasks_path', help='Eval tasks YAML file')
@click.option('--payload', '-p', 'payload_path', help='Payload the rules are checked against')
@click.pass_context
def eval_command(ctx, tasks_path: Optional[str], payload_path: Optional[str]):
    """Check a payload against declarative rules; exit 1 when rollback is raised."""
    config = ctx.obj['config']
    tasks_path = tasks_path or config.evals.tasks_path or str(DEFAULT_TASKS)
    payload_path = payload_path or config.evals.payload_path or str(SAMPLE_MESSAGE)

    try:
        report = EvalHarness().run_files(tasks_path, payload_path)
    except ConfigurationError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(EXIT_INFRASTRUCTURE)

    _display_eval_report(report)
    if report.rollback:
        sys.exit(1)


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def patient(ctx, file: str):
    """Print the FHIR Patient resource for an HL7 message."""
    config = ctx.obj['config']
    event = Normalizer.from_config(config).normalize(Path(file).read_bytes())
    try:
        resource = build_patient_resource(event)
    except ValueError as e:
        console.print(f"[bold red]Cannot build Patient resource:[/bold red] {e}")
        sys.exit(1)
    click.echo(resource.model_dump_json(indent=2))


def _display_processing_report(report: ProcessingReport, counters):
    """Display processing metrics."""
    console.print("\n[bold green]Processing Metrics:[/bold green]")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Events Processed", str(report.events_processed))
    table.add_row("Successful", str(report.success_count))
    table.add_row("Errors", str(report.error_count))
    table.add_row("Policy Violations", str(report.policy_violations))
    table.add_row("Processing Time", f"{report.processing_time_ms:.1f}ms")
    table.add_row("Success Rate", f"{report.success_rate:.1f}%")
    console.print(table)

    for rejection in report.rejections:
        console.print(f"  [yellow]{rejection['event_id']}[/yellow] rejected by "
                      f"{rejection['policy']}: {rejection['reason']}")

    console.print(f"Counters Snapshot: {dict(counters)}")


def _display_eval_report(report: EvalReport):
    """Display eval task outcomes."""
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Task")
    table.add_column("Rule")
    table.add_column("Expect")
    table.add_column("Result")
    for outcome in report.outcomes:
        result = "PASS" if outcome.passed else "FAIL"
        if outcome.error:
            result += f" ({outcome.error})"
        table.add_row(escape(outcome.task.name), escape(outcome.task.rule), str(outcome.task.expect).lower(), escape(result))
    console.print(table)

    style = "bold red" if report.rollback else "bold green"
    console.print(f"[{style}]Summary: {report.summary()}[/{style}]")


def main():
    """Main entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(1)
    except HealthBridgeError as e:
        console.print(f"\n[bold red]Unexpected error:[/bold red] {e}")
        sys.exit(EXIT_INFRASTRUCTURE)


if __name__ == "__main__":
    main()
