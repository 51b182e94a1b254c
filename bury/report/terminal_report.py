"""Rich terminal report."""
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from bury.analyzer.model import AnalysisResult, Confidence

CONFIDENCE_STYLES = {
    Confidence.HIGH: "bold red",
    Confidence.MEDIUM: "yellow",
    Confidence.LOW: "dim",
}


def print_report(console: Console, result: AnalysisResult, min_confidence: Confidence = Confidence.LOW,
                 show_speculative: bool = False):
    """Print findings as a table followed by warnings and a summary."""
    findings = result.findings_at_least(min_confidence)

    if findings:
        table = Table(title="Dead Code")
        table.add_column("Symbol", style="cyan")
        table.add_column("Kind", style="yellow")
        table.add_column("File", style="magenta", no_wrap=False)
        table.add_column("Line", style="green", justify="right")
        table.add_column("Confidence")
        table.add_column("Reason", style="dim", no_wrap=False)

        for finding in findings:
            style = CONFIDENCE_STYLES[finding.confidence]
            table.add_row(
                escape(finding.identifier.split("::", 1)[1]),
                finding.kind.value,
                escape(finding.declaring_file),
                str(finding.line),
                f"[{style}]{finding.confidence.value}[/{style}]",
                escape(finding.reason),
            )
        console.print(table)
    else:
        console.print("[bold green]✓ No dead code found![/bold green]")

    if show_speculative and result.speculative:
        table = Table(title="Kept Alive By Name Match (low confidence)")
        table.add_column("Symbol", style="cyan")
        table.add_column("File", style="magenta")
        table.add_column("Line", style="green", justify="right")
        table.add_column("Unresolved Reference", style="dim")
        for reach in result.speculative:
            table.add_row(escape(reach.name), escape(reach.declaring_file), str(reach.line),
                          escape(f"{reach.trigger_file}:{reach.trigger_line}"))
        console.print(table)

    if result.warnings:
        console.print(f"\n[bold yellow]Warnings ({len(result.warnings)}):[/bold yellow]")
        for warning in result.warnings:
            where = f"{escape(warning.file)}: " if warning.file else ""
            console.print(f"  [yellow]⚠ {warning.kind.value}[/yellow] {where}{escape(warning.message)}")

    console.print("\n[bold yellow]Summary:[/bold yellow]")
    console.print(f"  Files analyzed: {result.stats.get('files', 0)}")
    console.print(f"  Definitions: {result.stats.get('definitions', 0)}")
    console.print(f"  Entry points: {len(result.roots)}")
    console.print(f"  Dead definitions: {len(findings)}"
                  + (f" (of {len(result.findings)} at any confidence)" if len(findings) != len(result.findings) else ""))
    if result.speculative:
        console.print(f"  Kept alive by name match: {len(result.speculative)}")
