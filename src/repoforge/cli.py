"""Command-line interface for repoforge."""
import asyncio
import logging
import sys
import threading
from datetime import datetime
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn

from . import __version__
from .core.aggregator import calculate_statistics
from .core.assembler import generate_tree_string
from .core.errors import IngestionError
from .core.ingestor import RepositoryIngestor
from .core.models import AssemblyResult, Config, IngestionResult
from .utils.formatting import format_token_count


def setup_logging(debug: bool) -> None:
    """Configure logging based on debug flag."""
    level = logging.DEBUG if debug else logging.WARNING
    format_string = '[%(levelname)s] %(name)s: %(message)s' if debug else '[%(levelname)s] %(message)s'

    logging.basicConfig(
        level=level,
        format=format_string,
        handlers=[logging.StreamHandler(sys.stderr)]
    )

    # Reduce noise from external libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("github").setLevel(logging.WARNING)


async def run_pipeline(
    source: str,
    config: Config,
    console: Console,
    cancel_event: threading.Event,
    tree_only: bool = False,
    concurrency: Optional[int] = None,
) -> Tuple[IngestionResult, Optional[AssemblyResult]]:
    """Discover ``source`` and, unless ``tree_only``, assemble its document."""
    async with RepositoryIngestor(config, cancel_event) as ingestor:
        with console.status("[dim]Discovering repository...[/dim]"):
            result = await ingestor.ingest(source)

        if tree_only or result.cancelled:
            return result, None

        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Loading files", total=1.0)

            def on_progress(fraction: float, message: str) -> None:
                progress.update(task, completed=fraction, description=message)

            output = await ingestor.generate_output(
                result,
                on_progress=on_progress,
                concurrency=concurrency,
                generated_at=datetime.now(),
            )

    return result, output


def print_summary(console: Console, result: IngestionResult, debug: bool) -> None:
    stats = calculate_statistics(result.root)
    console.print(f"[bold]REPOSITORY:[/bold] {result.repository.full_name}")
    console.print(f"[bold]FILES:[/bold] {stats.included_files} included of {stats.total_files}")
    console.print(
        f"[bold]TOKENS:[/bold] {format_token_count(stats.included_tokens)} "
        f"[dim](estimated, {stats.included_tokens:,})[/dim]"
    )
    if result.rate_limit is not None:
        console.print(
            f"[dim]API rate limit: {result.rate_limit.remaining}/{result.rate_limit.limit} "
            f"remaining, resets {result.rate_limit.reset_at:%H:%M}[/dim]"
        )

    if result.has_errors():
        console.print(f"[yellow]WARNINGS:[/yellow] {len(result.errors)}")
        if debug:
            for error in result.errors[:5]:
                console.print(f"  [dim]>[/dim] {error}")
            if len(result.errors) > 5:
                console.print(f"  [dim]... +{len(result.errors) - 5} more[/dim]")


@click.command()
@click.argument('source', required=True)
@click.option('--output', '-o', type=click.Path(dir_okay=False, writable=True),
              help='Write the document to this file instead of stdout')
@click.option('--branch', '-b', help='Branch to ingest (GitHub only, default: repository default)')
@click.option('--token', envvar='GITHUB_TOKEN', help='GitHub token (default: $GITHUB_TOKEN)')
@click.option('--concurrency', '-c', type=click.IntRange(min=1), help='Maximum simultaneous file loads')
@click.option('--max-file-size', '-m', type=click.IntRange(min=0), help='Maximum file size in bytes (default: 2MB)')
@click.option('--include-venvs', is_flag=True, help='Include virtual environment directories')
@click.option('--exclude', '-x', multiple=True, help='Extra ignore pattern (repeatable)')
@click.option('--exact-tokens', is_flag=True, help='Count content tokens with tiktoken')
@click.option('--tree-only', is_flag=True, help='Print the file tree without loading content')
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.version_option(__version__)
def main(source: str, output: Optional[str], branch: Optional[str], token: Optional[str],
         concurrency: Optional[int], max_file_size: Optional[int], include_venvs: bool,
         exclude: Tuple[str, ...], exact_tokens: bool, tree_only: bool, debug: bool) -> None:
    """
    Flatten a GitHub repository or local directory into one text document.

    SOURCE can be:
    - GitHub URL: https://github.com/owner/repo
    - GitHub shorthand: owner/repo
    - Local directory path: /path/to/repo or .

    Examples:

        repoforge https://github.com/pallets/click -o click.txt

        repoforge . --exclude "*.md" --tree-only
    """
    console = Console(stderr=True)
    setup_logging(debug)

    config = Config(
        branch=branch,
        include_virtual_envs=include_venvs,
        extra_ignore_patterns=list(exclude),
        exact_token_counting=exact_tokens,
    )
    if token:
        config.github_token = token
    if max_file_size is not None:
        config.max_file_size = max_file_size
    if concurrency:
        config.max_concurrency = concurrency

    cancel_event = threading.Event()
    try:
        result, document = asyncio.run(
            run_pipeline(source, config, console, cancel_event, tree_only, concurrency)
        )
    except KeyboardInterrupt:
        cancel_event.set()
        console.print("\n[red]> Cancelled by user[/red]")
        sys.exit(1)
    except IngestionError as e:
        console.print(f"[red]> Ingestion failed:[/red] {e}")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]> Unexpected error:[/red] {e}")
        if debug:
            console.print_exception()
        sys.exit(1)

    if tree_only:
        click.echo(generate_tree_string(result.root))
        print_summary(console, result, debug)
        return

    if document is None or document.cancelled:
        console.print("[yellow]> Output generation was cancelled[/yellow]")
        sys.exit(1)

    if output:
        with open(output, 'w', encoding='utf-8') as f:
            f.write(document.text)
        console.print(f"[green]> Wrote[/green] {output}")
    else:
        click.echo(document.text)

    print_summary(console, result, debug)


if __name__ == '__main__':
    main()
