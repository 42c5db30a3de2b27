"""
Command line interface for Content Factory.

Commands:
    generate  Generate posts for every topic in an .xlsx/.csv/.json/.txt file
    single    Generate one post from an idea and optional reference link
    example   Write the sample input workbook
    serve     Run the HTTP API
"""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from src.config.settings import get_settings
from src.converters.exporters import ExportFormat, build_example_workbook
from src.generation.post_assembler import PostAssembler
from src.parsers.topic_parser import InputError, RawBytes, TopicParser, TopicSource
from src.pipeline.job import BatchJob
from src.pipeline.progress import ProgressChannel
from src.pipeline.scheduler import BatchScheduler
from src.pipeline.state import ProgressEvent
from src.utils.file_handler import FileHandler
from src.utils.llm_helpers import get_backend
from src.utils.logger import configure_logging, get_logger


console = Console()
logger = get_logger(__name__)

FORMAT_CHOICES = [f.value for f in ExportFormat]


def _install_interrupt(job: BatchJob) -> None:
    """Ctrl-C sets the job's cancellation token instead of killing the run."""
    loop = asyncio.get_running_loop()

    def _on_interrupt() -> None:
        console.print("\n[yellow]Cancelling after the current step...[/yellow]")
        job.cancellation.set()

    try:
        loop.add_signal_handler(signal.SIGINT, _on_interrupt)
    except (NotImplementedError, RuntimeError):
        # Windows event loops have no signal handler support
        logger.debug("SIGINT handler not installed")


def _render(event: ProgressEvent, progress: Progress, task) -> None:
    if event.type == "batch_started":
        progress.update(task, total=event.total)
        progress.console.print(f"[bold cyan]{event.message}[/bold cyan]")
    elif event.type == "processing":
        progress.update(task, description=f"[cyan]{event.topic_id}")
    elif event.type == "completed":
        progress.advance(task)
        marker = "[yellow]⚠[/yellow]" if event.degraded else "[green]✓[/green]"
        progress.console.print(f"{marker} {event.message}")
    elif event.type == "info":
        progress.console.print(f"[dim]{event.message}[/dim]")


async def run_batch(
    source: TopicSource,
    export_format: ExportFormat,
    output_dir: Path,
    batch_size: Optional[int] = None,
    parallel: bool = False,
) -> int:
    """
    Run one batch job with live progress.

    Returns:
        Process exit code (0 delivered, 1 failed, 130 cancelled)
    """
    settings = get_settings()
    backend = get_backend(settings)
    scheduler = BatchScheduler(
        PostAssembler(backend, settings=settings),
        settings=settings,
        parallel=parallel or settings.parallel_topics,
    )
    job = BatchJob(backend=backend, settings=settings, scheduler=scheduler)
    channel = ProgressChannel()
    _install_interrupt(job)

    producer = asyncio.create_task(job.run(source, export_format, channel, batch_size=batch_size))
    with Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=console,
    ) as progress:
        task = progress.add_task("[cyan]Starting...", total=None)
        async for event in channel:
            _render(event, progress, task)
    await producer

    terminal = channel.terminal_event()
    if terminal is None or terminal.type == "error":
        message = terminal.message if terminal else "Job ended without a result"
        console.print(f"\n[bold red]❌ Error: {message}[/bold red]")
        return 1
    if terminal.type == "cancelled":
        console.print(f"\n[yellow]Cancelled. {len(job.posts)} post(s) were completed.[/yellow]")
        return 130

    table = Table(title="Generated Posts")
    table.add_column("Title", style="cyan")
    table.add_column("Slug")
    table.add_column("Cost($)", justify="right")
    for post in job.posts:
        table.add_row(post.title + (" ⚠" if post.degraded else ""), post.slug, post.cost)
    console.print(table)

    if terminal.type == "sheet":
        destination = terminal.url
    else:
        path = FileHandler.unique_path(output_dir, job.payload.filename)
        destination = str(FileHandler.write_bytes(path, job.payload.content))

    console.print(Panel(
        f"[green]{len(job.posts)} post(s) generated[/green]\n\nOutput: {destination}",
        title="✅ Success",
        border_style="green",
    ))
    return 0


def _setup(verbose: bool) -> None:
    load_dotenv()
    settings = get_settings()
    configure_logging(settings)
    if verbose:
        get_logger("src").setLevel("DEBUG")


@click.group()
def cli():
    """Content Factory - batch generate blog posts from a topic list."""
    pass


_format_option = click.option(
    "--format",
    "-f",
    "export_format",
    type=click.Choice(FORMAT_CHOICES),
    default=ExportFormat.EXCEL.value,
    show_default=True,
    help="Export format",
)
_output_option = click.option(
    "--output-dir",
    "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Output directory (default: from settings)",
)
_verbose_option = click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@_format_option
@_output_option
@click.option("--batch-size", "-b", type=click.IntRange(min=1), default=None, help="Topics per batch")
@click.option("--parallel", is_flag=True, help="Run the topics of a batch concurrently")
@_verbose_option
def generate(
    input_file: Path,
    export_format: str,
    output_dir: Optional[Path],
    batch_size: Optional[int],
    parallel: bool,
    verbose: bool,
) -> None:
    """
    Generate one post per topic in INPUT_FILE.

    Spreadsheets, CSV and JSON need an idea/topic/title column; a .txt file
    holds one title per line, optionally followed by ", <url>".
    """
    _setup(verbose)
    settings = get_settings()
    output_dir = output_dir or settings.output_dir

    data = FileHandler.read_bytes(input_file)
    try:
        if input_file.suffix.lower() == ".txt":
            source: TopicSource = TopicParser.rows_from_text(data.decode("utf-8"))
        else:
            source = RawBytes(filename=input_file.name, data=data)
    except (InputError, UnicodeDecodeError) as e:
        console.print(f"[bold red]❌ Error: {e}[/bold red]")
        sys.exit(1)

    console.print("\n[bold blue]🚀 Content Factory - Batch Generation[/bold blue]\n")
    sys.exit(asyncio.run(run_batch(source, ExportFormat(export_format), output_dir, batch_size, parallel)))


@cli.command()
@click.option("--idea", "-i", required=True, help="Post title or idea")
@click.option("--link", "-l", default=None, help="Optional reference link")
@_format_option
@_output_option
@_verbose_option
def single(
    idea: str,
    link: Optional[str],
    export_format: str,
    output_dir: Optional[Path],
    verbose: bool,
) -> None:
    """Generate a single post."""
    _setup(verbose)
    output_dir = output_dir or get_settings().output_dir
    try:
        source = TopicParser.rows_from_single(idea, link)
    except InputError as e:
        console.print(f"[bold red]❌ Error: {e}[/bold red]")
        sys.exit(1)
    sys.exit(asyncio.run(run_batch(source, ExportFormat(export_format), output_dir)))


@cli.command()
@_output_option
def example(output_dir: Optional[Path]) -> None:
    """Write a sample input workbook."""
    load_dotenv()
    output_dir = output_dir or get_settings().output_dir
    payload = build_example_workbook()
    path = FileHandler.write_bytes(output_dir / payload.filename, payload.content)
    console.print(f"[green]✓[/green] Example workbook saved to: {path}")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: str, port: int, reload: bool) -> None:
    """Run the HTTP API."""
    import uvicorn

    _setup(verbose=False)
    uvicorn.run("src.api.app:app", host=host, port=port, reload=reload)


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
