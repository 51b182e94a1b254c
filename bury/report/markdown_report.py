"""Markdown report, suitable for CI job summaries and pull request comments."""
from typing import List

from bury.analyzer.model import AnalysisResult, Confidence


def _cell(text: str) -> str:
    return str(text).replace('|', '\\|').replace('\n', ' ')


def render_markdown(result: AnalysisResult, min_confidence: Confidence = Confidence.LOW) -> str:
    """Render findings, speculative reaches and warnings as Markdown."""
    findings = result.findings_at_least(min_confidence)
    lines: List[str] = ["# Dead code report", ""]

    files = result.stats.get("files", 0)
    lines.append(f"Analyzed **{files}** file(s); found **{len(findings)}** unreachable "
                 f"definition(s) at confidence `{min_confidence.value}` or higher.")
    lines.append("")

    if findings:
        lines += [
            "| Symbol | Kind | Location | Confidence | Reason |",
            "| --- | --- | --- | --- | --- |",
        ]
        for finding in findings:
            lines.append(
                f"| `{_cell(finding.name)}` | {finding.kind.value} | "
                f"`{_cell(finding.declaring_file)}:{finding.line}` | {finding.confidence.value} | "
                f"{_cell(finding.reason)} |"
            )
        lines.append("")
    else:
        lines += ["No dead code found.", ""]

    if result.speculative:
        lines += ["## Kept alive by name matching only", ""]
        for reach in result.speculative:
            lines.append(f"- `{reach.name}` ({reach.declaring_file}:{reach.line}) matches an unresolved "
                         f"reference at {reach.trigger_file}:{reach.trigger_line}")
        lines.append("")

    if result.warnings:
        lines += ["## Warnings", ""]
        for warning in result.warnings:
            where = f"`{warning.file}`: " if warning.file else ""
            lines.append(f"- **{warning.kind.value}** {where}{warning.message}")
        lines.append("")

    return "\n".join(lines)
