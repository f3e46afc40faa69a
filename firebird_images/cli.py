"""Thin CLI wrapper for firebird_images.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from typing import TYPE_CHECKING, Annotated, NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler

from firebird_images import __version__
from firebird_images.config import Settings, get_settings, print_settings_json
from firebird_images.types import JobAction

if TYPE_CHECKING:
    from firebird_images.matrix.models import BuildTarget

app = typer.Typer(
    name="fbimages",
    help="Firebird container images - resolve releases, build, test, and publish",
    no_args_is_help=True,
)
console = Console()

ReleaseOption = Annotated[
    str | None,
    typer.Option("--release", "-r", help="Filter by version prefix (e.g. 5 or 4.0)"),
]
VariantOption = Annotated[
    str | None,
    typer.Option("--variant", "-d", help="Filter by distribution variant"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", help="Verbose logging and job output"),
]


def setup_logging(level: str, verbose: bool = False) -> None:
    """Configure the root logger with a rich console handler."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"firebird-images version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Firebird container images - resolve releases, build, test, and publish."""


def _fail(message: str) -> NoReturn:
    console.print(f"[red]{message}[/red]")
    raise typer.Exit(code=1)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings))
        return

    exclusions = (
        ", ".join(
            f"{major}: {'/'.join(variants)}"
            for major, variants in sorted(settings.variant_exclusions.items())
        )
        or "(none)"
    )
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Cache directory:     {settings.cache_dir}")
    console.print(f"  Matrix file:         {settings.matrix_path}")
    console.print(f"  Generated contexts:  {settings.generated_dir}")
    console.print(f"  Logs directory:      {settings.logs_dir}")
    console.print()
    console.print("[bold]Matrix:[/bold]")
    console.print(f"  Image name:          {settings.image_name}")
    console.print(f"  Upstream repository: {settings.github_repository}")
    console.print(f"  Variants:            {', '.join(settings.variants)}")
    console.print(f"  Default variant:     {settings.default_variant}")
    console.print(f"  Excluded variants:   {exclusions}")
    console.print(f"  Minimum major:       {settings.min_major_version}")
    console.print()
    console.print("[bold]Operational:[/bold]")
    console.print(f"  Offline mode:        {settings.offline}")
    console.print(f"  Log level:           {settings.log_level}")
    max_jobs = settings.max_parallel_jobs or "(one per target)"
    console.print(f"  Max parallel jobs:   {max_jobs}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Build timeout:       {settings.build_timeout}")
    console.print(f"  Readiness timeout:   {settings.readiness_timeout}")
    console.print(f"  Stop timeout:        {settings.stop_timeout}")


@app.command("update-matrix")
def update_matrix(
    offline: Annotated[
        bool,
        typer.Option("--offline", help="Only use cached upstream lookups"),
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """Fetch upstream releases and rewrite the release matrix."""
    from firebird_images.assets.cache import OfflineModeError
    from firebird_images.assets.fetch import FetchError
    from firebird_images.matrix.service import refresh_matrix

    settings = get_settings()
    if offline:
        settings = settings.model_copy(update={"offline": True})
    setup_logging(settings.log_level, verbose)

    try:
        result = refresh_matrix(settings)
    except (FetchError, OfflineModeError) as e:
        _fail(f"Matrix refresh failed: {e}")
        return

    state = "updated" if result.changed else "unchanged"
    console.print(
        f"[green]Matrix {state}:[/green] {result.path} ({len(result.entries)} releases)"
    )


def _load_targets(
    settings: Settings, release: str | None, variant: str | None
) -> "list[BuildTarget]":
    from firebird_images.matrix.io import MatrixFormatError
    from firebird_images.matrix.service import load_targets
    from firebird_images.matrix.targets import NoMatchError

    if variant and variant not in settings.variants:
        _fail(f"Unknown variant '{variant}' (expected one of {settings.variants})")
    try:
        return load_targets(settings, version_prefix=release, variant=variant)
    except (MatrixFormatError, NoMatchError) as e:
        _fail(str(e))


@app.command("list")
def list_targets(
    release: ReleaseOption = None,
    variant: VariantOption = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List build targets of the release matrix."""
    settings = get_settings()
    setup_logging(settings.log_level)
    targets = _load_targets(settings, release, variant)

    if json_output:
        output = [
            {
                "version": str(t.version),
                "variant": t.variant,
                "architectures": t.asset.architectures,
                "tags": list(t.tags),
            }
            for t in targets
        ]
        console.print(json.dumps(output, indent=2))
        return

    console.print(f"[bold]Found {len(targets)} target(s):[/bold]")
    console.print()
    for t in targets:
        console.print(f"  [green]{t.label}[/green]")
        console.print(f"    Architectures: {', '.join(t.asset.architectures)}")
        console.print(f"    Tags: {', '.join(t.tags)}")


def _run(
    action: JobAction,
    release: str | None,
    variant: str | None,
    verbose: bool,
    test_filter: str | None = None,
) -> None:
    from firebird_images.builds.orchestrator import OrchestratorError
    from firebird_images.builds.service import run_action
    from firebird_images.checks.suite import select_checks
    from firebird_images.matrix.targets import NoMatchError

    settings = get_settings()
    setup_logging(settings.log_level, verbose)
    targets = _load_targets(settings, release, variant)

    checks = None
    if action == JobAction.TEST:
        try:
            checks = select_checks(test_filter)
        except NoMatchError as e:
            _fail(str(e))

    try:
        summary = run_action(
            action, targets, settings=settings, verbose=verbose, checks=checks
        )
    except OrchestratorError as e:
        _fail(f"Cannot start {action.value}: {e}")
        return

    console.print()
    for result in summary.results:
        status = "[green]OK[/green]" if result.succeeded else "[red]FAILED[/red]"
        console.print(f"  {status} {result.label} ({result.duration:.1f}s)")

    if summary.failed:
        console.print()
        console.print(f"[red]{len(summary.failed)} {action.value} job(s) failed:[/red]")
        for result in summary.failed:
            console.print(f"  {result.label}: {result.error}")
            console.print(f"    Log: {result.log_path}")
        raise typer.Exit(code=summary.exit_code)

    console.print(f"[green]All {len(summary.results)} job(s) succeeded[/green]")


@app.command()
def build(
    release: ReleaseOption = None,
    variant: VariantOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Build images for matching targets."""
    _run(JobAction.BUILD, release, variant, verbose)


@app.command()
def test(
    release: ReleaseOption = None,
    variant: VariantOption = None,
    test_name: Annotated[
        str | None,
        typer.Option("--test", "-t", help="Run only checks whose name contains this"),
    ] = None,
    verbose: VerboseOption = False,
) -> None:
    """Test built images of matching targets."""
    _run(JobAction.TEST, release, variant, verbose, test_filter=test_name)


@app.command()
def publish(
    release: ReleaseOption = None,
    variant: VariantOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Push images and multi-arch manifests of matching targets."""
    _run(JobAction.PUBLISH, release, variant, verbose)


@app.command("cache-clear")
def cache_clear() -> None:
    """Delete all cached upstream lookups."""
    from firebird_images.matrix.service import open_cache

    settings = get_settings()
    removed = open_cache(settings).clear()
    console.print(f"Removed {removed} cache entries from {settings.cache_dir}")


if __name__ == "__main__":
    app()
