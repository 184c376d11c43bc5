"""Command-line interface for previewer."""

import asyncio
import logging
import shutil
import sys
from pathlib import Path
from typing import Optional

import typer
from rich import print
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import GlobalConfig, state_dir
from .environment import PreviewEnvironment
from .errors import ArtifactGenerationError, PreviewerError

app = typer.Typer(
    name="previewer",
    help="Discover @Preview functions and keep a live widget preview running.",
    rich_markup_mode="rich",
)
console = Console()

logger = logging.getLogger(__name__)


def exit_status(code: int) -> int:
    """Map a child return code to a shell exit status. Signal deaths become 128 + signum."""
    if code < 0:
        return 128 - code
    return code


def version_callback(value: bool):
    """Show version and exit."""
    if value:
        print(f"[cyan]previewer[/cyan] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
):
    """
    Previewer - live widget previews for Flutter projects.
    """
    pass


def _project_root(path: Optional[Path]) -> Path:
    if path is None:
        path = Path.cwd()
    path = path.resolve()
    if not path.exists() or not path.is_dir():
        print(f"[red]Error:[/red] {path} is not a valid directory")
        raise typer.Exit(1)
    return path


def _configure_logging(verbose: bool):
    log_file = state_dir() / "previewer.log"
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )


@app.command(name="start", help="Build the preview scaffold, run it and reload on changes")
def start(
    path: Optional[Path] = typer.Argument(
        None,
        help="Path to the project directory (defaults to current directory)",
    ),
    dev: Optional[bool] = typer.Option(
        None,
        "--dev/--no-dev",
        help="Recreate the preview scaffold from scratch",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable debug logging",
    ),
):
    """Run the preview environment until the preview app exits."""
    root = _project_root(path)
    _configure_logging(verbose)

    config = GlobalConfig()
    if dev is not None:
        config.development_mode = dev

    environment = PreviewEnvironment(root, config)
    logger.info(f"Starting preview environment for {root}")

    try:
        exit_code = asyncio.run(environment.start())
    except KeyboardInterrupt:
        print("\n[yellow]Preview environment stopped[/yellow]")
        logger.info("Preview environment stopped by user")
        return
    except PreviewerError as e:
        logger.error(f"Preview environment failed: {e}")
        print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if exit_code != 0:
        raise typer.Exit(exit_status(exit_code))


@app.command(name="scan", help="List the preview functions found in a project")
def scan(
    path: Optional[Path] = typer.Argument(
        None,
        help="Path to the project directory (defaults to current directory)",
    ),
):
    """Scan a project once and print the discovered previews."""
    root = _project_root(path)
    config = GlobalConfig()
    environment = PreviewEnvironment(root, config)
    previews = environment.scanner.find_previews(root)

    if not previews:
        print("[yellow]No previews found[/yellow]")
        return

    table = Table(title="Previews")
    table.add_column("File", style="cyan")
    table.add_column("Previews", style="green")

    for uri, names in previews.items():
        table.add_row(uri, ", ".join(names))

    console.print(table)


@app.command(name="generate", help="Write the generated preview library once")
def generate(
    path: Optional[Path] = typer.Argument(
        None,
        help="Path to the project directory (defaults to current directory)",
    ),
):
    """Scan a project and write the preview library into its scaffold."""
    root = _project_root(path)
    environment = PreviewEnvironment(root, GlobalConfig())
    previews = environment.scanner.find_previews(root)

    try:
        artifact = environment.generator.write(previews)
    except ArtifactGenerationError as e:
        print(f"[red]Failed to generate previews:[/red] {e}")
        raise typer.Exit(1)

    count = sum(len(names) for names in previews.values())
    print(f"[green]✓ Wrote {count} preview(s) to {artifact}[/green]")


@app.command(name="clean", help="Delete the preview scaffold project")
def clean(
    path: Optional[Path] = typer.Argument(
        None,
        help="Path to the project directory (defaults to current directory)",
    ),
):
    """Remove the generated scaffold so the next start recreates it."""
    root = _project_root(path)
    scaffold = root / GlobalConfig().scaffold_path

    if not scaffold.exists():
        print(f"[cyan]No preview scaffold at {scaffold}[/cyan]")
        return

    shutil.rmtree(scaffold)
    print(f"[green]✓ Removed {scaffold}[/green]")


if __name__ == "__main__":
    app()
