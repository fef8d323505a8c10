"""CLI interface for transcripts."""

import io
import logging
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from transcripts.config import load_config, merge_cli_overrides
from transcripts.core import (
    available_sources,
    convert_opencode_session,
    process_all,
    process_batch,
    stream_transcript,
)
from transcripts.errors import ConversionReport, StorageUnavailable, save_report
from transcripts.parsers import OpenCodeStorage, Source
from transcripts.search import MessageType, run_search
from transcripts.summarize import find_transcripts, summarize_directory

app = typer.Typer(
    name="transcripts",
    help="Convert AI coding assistant session logs into plain-text transcripts.",
)

console = Console()
_stderr_console = Console(stderr=True)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from transcripts import __version__

        console.print(f"transcripts {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Log debug output to stderr."),
    ] = False,
) -> None:
    """Transcripts - canonical text transcripts of AI coding sessions."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def _progress(message: str) -> None:
    _stderr_console.print(message, markup=False, highlight=False)


def _fail(message: str) -> None:
    _stderr_console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(1)


@app.command(name="convert")
def convert_cmd(
    file: Annotated[
        Optional[Path],
        typer.Argument(
            help="Session log to convert. Reads stdin when omitted.",
            exists=True,
            dir_okay=False,
            resolve_path=True,
        ),
    ] = None,
    source: Annotated[
        Source,
        typer.Option("--source", "-s", help="Which assistant wrote the log."),
    ] = Source.CLAUDE,
    session: Annotated[
        str | None,
        typer.Option("--session", help="OpenCode session id (ses_...)."),
    ] = None,
    storage: Annotated[
        Optional[Path],
        typer.Option("--storage", help="OpenCode storage directory."),
    ] = None,
) -> None:
    """Convert one session to a transcript on stdout."""
    if source == Source.OPENCODE:
        if not session:
            _fail("--session is required for opencode")
        storage_dir = storage or load_config().sources.directories()["opencode"]
        try:
            converted = convert_opencode_session(OpenCodeStorage(storage_dir), session)
        except StorageUnavailable as e:
            _fail(str(e))
        typer.echo(converted.text, nl=False)
        return

    if session or storage:
        _fail("--session and --storage only apply to --source opencode")

    if file is None:
        if isinstance(sys.stdin, io.TextIOWrapper):
            sys.stdin.reconfigure(errors="replace")
        for chunk in stream_transcript(sys.stdin, source):
            typer.echo(chunk, nl=False)
        return

    with open(file, encoding="utf-8", errors="replace") as f:
        for chunk in stream_transcript(f, source):
            typer.echo(chunk, nl=False)


@app.command(name="batch")
def batch_cmd(
    input_dir: Annotated[
        Path,
        typer.Argument(
            help="Log directory (or OpenCode storage directory).",
            exists=True,
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
        ),
    ],
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="Transcript output directory."),
    ],
    source: Annotated[
        Source,
        typer.Option("--source", "-s", help="Which assistant wrote the logs."),
    ] = Source.CLAUDE,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Regenerate transcripts that are up to date."),
    ] = False,
) -> None:
    """Convert every session of one source into dated transcript files."""
    report = process_batch(source, input_dir, output, force=force, progress=_progress)
    _progress(report.source_line(source))
    report.finish()
    save_report(report, output)
    _print_report(report)


@app.command(name="all")
def all_cmd(
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Transcript output directory."),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Regenerate transcripts that are up to date."),
    ] = False,
    commit: Annotated[
        bool,
        typer.Option("--commit", "-c", help="Commit changes if the output is a git repository."),
    ] = False,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", help="Path to a .transcripts.toml file."),
    ] = None,
) -> None:
    """Convert every configured source that exists on this machine."""
    config = merge_cli_overrides(load_config(config_path), output_directory=output)

    sources = available_sources(config)
    if not sources:
        _stderr_console.print("[red]Error:[/red] No session directories found. Checked:")
        for name, path in config.sources.directories().items():
            _stderr_console.print(f"  {name}: {path}", markup=False)
        raise typer.Exit(1)

    _progress(f"Found {len(sources)} source(s): {', '.join(sources)}")
    report = process_all(
        config, config.output.path, force=force, commit=commit, progress=_progress
    )
    _progress("All done.")
    _print_report(report)


@app.command(name="summarize")
def summarize_cmd(
    directory: Annotated[
        Path,
        typer.Argument(
            help="Transcript directory.",
            exists=True,
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
        ),
    ],
) -> None:
    """Print a markdown table of statistics per month or project."""
    _progress(f"Found {len(find_transcripts(directory))} transcript files")
    typer.echo(summarize_directory(directory))


@app.command(name="search")
def search_cmd(
    keywords: Annotated[
        list[str],
        typer.Argument(help="Keywords to search for (OR matched)."),
    ],
    days: Annotated[
        int | None,
        typer.Option("--days", help="How many days back to search."),
    ] = None,
    limit: Annotated[
        int | None,
        typer.Option("--limit", help="Maximum number of files in the results."),
    ] = None,
    context: Annotated[
        int | None,
        typer.Option("--context", "-C", help="Lines of context around matches."),
    ] = None,
    message_type: Annotated[
        MessageType,
        typer.Option("--type", help="Only match user or assistant lines."),
    ] = MessageType.ALL,
    directory: Annotated[
        Optional[Path],
        typer.Option("--dir", "-d", help="Transcript directory."),
    ] = None,
) -> None:
    """Search recent transcripts with ripgrep."""
    config = merge_cli_overrides(load_config(), transcripts_dir=directory)
    typer.echo(
        run_search(
            keywords,
            config.search,
            days=days,
            limit=limit,
            context_lines=context,
            message_type=message_type,
        )
    )


@app.command(name="mcp")
def mcp_cmd() -> None:
    """Serve transcript search over MCP (stdio)."""
    try:
        from transcripts.mcp_server import run
    except ImportError:
        _fail("fastmcp is not installed; install the 'mcp' extra")
    run()


def _print_report(report: ConversionReport) -> None:
    _stderr_console.print(report.summary_text(), markup=False, highlight=False)


if __name__ == "__main__":
    app()
