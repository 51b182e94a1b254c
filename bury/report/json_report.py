"""Machine-readable JSON report."""
import json
from typing import Any, Dict

from bury.analyzer.model import AnalysisResult, Confidence

REPORT_VERSION = 1


def build_report(result: AnalysisResult, min_confidence: Confidence = Confidence.LOW,
                 tool_version: str = "") -> Dict[str, Any]:
    """Assemble the report document.

    Args:
        result: Analysis result
        min_confidence: Findings below this level are omitted
        tool_version: Version string recorded in the document

    Returns:
        JSON-serializable dict
    """
    findings = result.findings_at_least(min_confidence)
    return {
        "version": REPORT_VERSION,
        "tool_version": tool_version,
        "min_confidence": min_confidence.value,
        "summary": {
            "findings": len(findings),
            "by_confidence": {
                level.value: sum(1 for f in findings if f.confidence == level)
                for level in (Confidence.HIGH, Confidence.MEDIUM, Confidence.LOW)
            },
            "speculative": len(result.speculative),
            "warnings": len(result.warnings),
        },
        "findings": [f.to_dict() for f in findings],
        "speculative": [s.to_dict() for s in result.speculative],
        "warnings": [w.to_dict() for w in result.warnings],
        "stats": dict(sorted(result.stats.items())),
    }


def render_json(result: AnalysisResult, min_confidence: Confidence = Confidence.LOW,
                tool_version: str = "") -> str:
    return json.dumps(build_report(result, min_confidence, tool_version), indent=2)
