"""Bury CLI - reachability-based dead code detection for Python, JavaScript and TypeScript."""
from contextlib import nullcontext
from pathlib import Path
from typing import List, Optional
import click
import typer
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn, TimeElapsedColumn

from bury.analyzer.engine import PHASES, analyze_project
from bury.analyzer.errors import AnalysisCancelled, ConfigError, InternalInvariantViolation
from bury.analyzer.model import Confidence, RunWarning, WarningKind
from bury.config import __version__, get_config, load_project_config, load_tsconfig, write_default_config
from bury.report.json_report import render_json
from bury.report.markdown_report import render_markdown
from bury.report.terminal_report import print_report
from bury.utils.logger import RunLogger
from bury.utils.safe_console import SafeConsole

app = typer.Typer(
    name="bury",
    help="Find unreachable functions, classes and methods in Python, JavaScript and TypeScript code",
    add_completion=False
)
console = SafeConsole(force_terminal=True)

FORMATS = ["terminal", "json", "markdown"]
CONFIDENCE_LEVELS = ["low", "medium", "high"]

PHASE_LABELS = {
    'discover': "Discovering files...",
    'extract': "Extracting symbols...",
    'resolve': "Resolving imports...",
    'graph': "Building call graph...",
    'entry-points': "Resolving entry points...",
    'traverse': "Tracing reachability...",
    'classify': "Classifying findings...",
}


@app.command()
def analyze(
    project_path: str = typer.Argument(".", help="Project root path to analyze"),
    config_file: Optional[str] = typer.Option(None, "--config", "-c", help="Config file (default: .bury.json in the project root)"),
    output_format: str = typer.Option("terminal", "--format", "-f", click_type=click.Choice(FORMATS), help="Report format"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Write the json/markdown report to a file instead of stdout"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print phase timings and resolution details"),
    entry: List[str] = typer.Option([], "--entry", "-e", help="Extra entry point name pattern (repeatable, trailing * allowed)"),
    entry_file: List[str] = typer.Option([], "--entry-file", help="Extra entry point file glob (repeatable)"),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", min=0, help="Worker threads (0 = one per CPU)"),
    no_speculation: bool = typer.Option(False, "--no-speculation", help="Do not keep definitions alive by matching unresolved names"),
    min_confidence: str = typer.Option("low", "--min-confidence", click_type=click.Choice(CONFIDENCE_LEVELS), help="Hide findings below this confidence"),
    show_speculative: bool = typer.Option(False, "--show-speculative", help="List definitions kept alive only by name matching"),
):
    """Report definitions that are unreachable from the configured entry points."""
    project_root = Path(project_path).resolve()

    if not project_root.exists() or not project_root.is_dir():
        console.print(f"[bold red]Error:[/bold red] Project path does not exist: {escape(str(project_root))}")
        raise typer.Exit(1)

    log = RunLogger(console, verbose=verbose)
    try:
        env = get_config(project_root)
        config_path = Path(config_file).resolve() if config_file else env.config_path
        if config_file and not config_path.exists():
            console.print(f"[bold red]Error:[/bold red] Config file not found: {escape(str(config_path))}")
            raise typer.Exit(1)
        project = load_project_config(config_path).apply_environment(env)
    except ConfigError as exc:
        log.error(str(exc))
        raise typer.Exit(1)

    if jobs is not None:
        project.workers = jobs
    if no_speculation:
        project.speculative = False

    ts_paths, base_url, ts_problem = load_tsconfig(project_root)
    options = project.analysis_options(ts_paths, base_url)
    specs = project.entry_point_specs(extra_files=entry_file, extra_names=entry)

    if output_format == "terminal":
        console.print(f"[bold blue]Analyzing project:[/bold blue] {escape(str(project_root))}\n")
    log.detail(f"config: {config_path if config_path.exists() else 'defaults'}")
    log.detail(f"entry points: {', '.join(spec.describe() for spec in specs) or 'none'}")

    show_progress = output_format == "terminal" and not verbose
    progress_ctx = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) if show_progress else nullcontext()

    try:
        with progress_ctx as progress:
            task = progress.add_task(PHASE_LABELS['discover'], total=None) if show_progress else None

            def on_progress(phase: str, completed: int, total: int):
                log.phase(phase)
                if progress is None:
                    return
                step = PHASES.index(phase) + 1
                description = f"[cyan]Phase {step}/{len(PHASES)}: {PHASE_LABELS[phase]}"
                progress.update(task, description=description, total=total or None, completed=completed)

            result = analyze_project(project_root, specs, options, ignore=project.ignore,
                                     progress=on_progress)
    except InternalInvariantViolation as exc:
        console.print(f"[bold red]Internal error:[/bold red] {escape(str(exc))}")
        console.print("[dim]This is a bug in bury; please report it with the message above.[/dim]")
        raise typer.Exit(2)
    except AnalysisCancelled as exc:
        log.error(str(exc))
        raise typer.Exit(1)

    if ts_problem:
        result.warnings.append(RunWarning(kind=WarningKind.CONFIG, file="tsconfig.json", message=ts_problem))

    log.phase(f"done in {log.elapsed():.2f}s")
    for key, value in sorted(result.stats.items()):
        log.detail(f"{key}: {value}")

    threshold = Confidence(min_confidence)
    if output_format == "terminal":
        print_report(console, result, threshold, show_speculative=show_speculative or verbose)
        if result.findings_at_least(threshold):
            raise typer.Exit(1)
        return

    if output_format == "json":
        rendered = render_json(result, threshold, tool_version=__version__)
    else:
        rendered = render_markdown(result, threshold)

    if output:
        Path(output).write_text(rendered + "\n", encoding="utf-8")
        console.print(f"[bold green]Report written to[/bold green] {escape(output)}")
    else:
        typer.echo(rendered)


@app.command()
def init(
    project_path: str = typer.Argument(".", help="Project root to write .bury.json into"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config file"),
):
    """Write a default .bury.json."""
    project_root = Path(project_path).resolve()

    if not project_root.is_dir():
        console.print(f"[bold red]Error:[/bold red] Project path does not exist: {escape(str(project_root))}")
        raise typer.Exit(1)

    try:
        path = write_default_config(get_config(project_root).config_path, force=force)
    except ConfigError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        raise typer.Exit(1)

    console.print(f"[bold green]✓ Wrote[/bold green] {escape(str(path))}")
    console.print("[dim]Edit entry_points to match how your project is started, then run 'bury analyze'.[/dim]")


@app.command()
def version():
    """Print the bury version."""
    typer.echo(f"bury {__version__}")


@app.callback()
def main():
    """Bury - find the code nothing reaches."""
    pass


if __name__ == "__main__":
    app()
