"""CLI entry point for the implementation guide publisher."""

from __future__ import annotations

import signal
from pathlib import Path
from typing import Annotated, NoReturn

import typer
import yaml
from rich import print as rprint
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from igpublisher.config import PublisherConfig, configure_logging, load_config
from igpublisher.config.loader import DEFAULT_CONFIG_TEMPLATE
from igpublisher.errors import PublishError
from igpublisher.publisher import CancellationToken, Publisher
from igpublisher.validation.models import ValidationReport

app = typer.Typer(
    name="igpub",
    help="Publish a FHIR implementation guide as serializations, HTML fragments and a validation report.",
)

config_app = typer.Typer(help="Manage publisher configuration.")
app.add_typer(config_app, name="config")

# Global state
_config: PublisherConfig | None = None

_err_console = Console(stderr=True)


def _get_config() -> PublisherConfig:
    if _config is None:
        return load_config()
    return _config


@app.callback()
def main(
    config: Annotated[
        str | None, typer.Option("--config", "-c", help="Path to igpublisher.yaml")
    ] = None,
) -> None:
    """Global options."""
    global _config
    try:
        _config = load_config(config)
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _with_overrides(
    cfg: PublisherConfig,
    ig: str | None = None,
    out: str | None = None,
    spec: str | None = None,
    tx: str | None = None,
    watch: bool | None = None,
) -> PublisherConfig:
    """Apply command line options on top of the loaded config."""
    update: dict[str, object] = {}
    if ig is not None:
        update["ig"] = ig
    if spec is not None:
        update["spec"] = spec
    if out is not None:
        update["output"] = cfg.output.model_copy(update={"base_dir": out})
    if tx is not None:
        update["terminology"] = cfg.terminology.model_copy(update={"server": tx, "enabled": True})
    if watch is not None:
        update["watch"] = cfg.watch.model_copy(update={"enabled": watch})
    return cfg.model_copy(update=update)


def _install_signal_handlers(token: CancellationToken) -> None:
    def _cancel(signum: int, frame: object) -> None:
        token.cancel()

    signal.signal(signal.SIGINT, _cancel)
    signal.signal(signal.SIGTERM, _cancel)


def _display_report(report: ValidationReport) -> None:
    table = Table(title=f"Validation Results for {report.title}")
    table.add_column("File", style="cyan")
    table.add_column("Errors", justify="right", style="red")
    table.add_column("Warnings", justify="right", style="yellow")
    for outcome in report.outcomes:
        table.add_row(outcome.artifact, str(len(outcome.errors)), str(len(outcome.warnings)))
    rprint(table)


def _fail(exc: Exception) -> NoReturn:
    rprint(f"[red]Publishing Implementation Guide Failed:[/red] {exc}")
    _err_console.print_exception()
    raise typer.Exit(1)


@app.command()
def publish(
    ig: str | None = typer.Option(None, "--ig", help="Guide control file (JSON with a 'source' property)"),
    out: str | None = typer.Option(None, "--out", help="Output directory"),
    spec: str | None = typer.Option(None, "--spec", help="Base location of the FHIR specification"),
    tx: str | None = typer.Option(None, "--tx", help="Terminology server address"),
    watch: bool | None = typer.Option(None, "--watch/--no-watch", help="Keep running and republish on changes"),
) -> None:
    """Publish the implementation guide."""
    cfg = _with_overrides(_get_config(), ig=ig, out=out, spec=spec, tx=tx, watch=watch)
    configure_logging(cfg.log_level, cfg.log_format)
    if not cfg.ig:
        rprint("[red]Error:[/red] no guide given; use --ig or set 'ig' in the config")
        raise typer.Exit(1)

    token = CancellationToken()
    if cfg.watch.enabled:
        _install_signal_handlers(token)

    publisher = Publisher(cfg)
    try:
        result = publisher.execute(token)
    except (PublishError, OSError) as e:
        _fail(e)

    if result.validation is not None:
        rprint(
            f"[green]Published[/green] {len(publisher.artifacts)} artifact(s) to {cfg.output.base_dir}: "
            f"{result.validation.error_count} error(s), {result.validation.warning_count} warning(s)"
        )
    if result.rendering is not None and result.rendering.failed:
        for name, message in result.rendering.failed:
            rprint(f"[yellow]Not rendered:[/yellow] {name}: {message}")


@app.command()
def validate(
    ig: str | None = typer.Option(None, "--ig", help="Guide control file (JSON with a 'source' property)"),
    out: str | None = typer.Option(None, "--out", help="Output directory"),
) -> None:
    """Load and validate the guide without rendering. Exits 1 when there are errors."""
    cfg = _with_overrides(_get_config(), ig=ig, out=out)
    configure_logging(cfg.log_level, cfg.log_format)
    if not cfg.ig:
        rprint("[red]Error:[/red] no guide given; use --ig or set 'ig' in the config")
        raise typer.Exit(1)

    publisher = Publisher(cfg)
    try:
        publisher.initialize()
        publisher.load()
        report = publisher.validate()
    except (PublishError, OSError) as e:
        _fail(e)

    _display_report(report)
    if not report.valid:
        raise typer.Exit(1)


@config_app.command("show")
def config_show() -> None:
    """Show current resolved configuration."""
    cfg = _get_config()
    rprint(Syntax(yaml.dump(cfg.model_dump(), default_flow_style=False), "yaml"))


@config_app.command("init")
def config_init(
    force: bool = typer.Option(False, "--force", help="Overwrite existing config"),
) -> None:
    """Create default igpublisher.yaml in current directory."""
    target = Path("igpublisher.yaml")
    if target.exists() and not force:
        rprint("[yellow]igpublisher.yaml already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)
    target.write_text(DEFAULT_CONFIG_TEMPLATE)
    rprint(f"[green]Created[/green] {target}")
