"""Run orchestration: extraction -> resolution -> graph -> roots -> traversal -> labels.

Each phase consumes the frozen output of the previous one. Cancellation is
checked at phase boundaries only.
"""
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .confidence import ConfidenceClassifier
from .entry_points import EntryPointResolver
from .errors import AnalysisCancelled
from .graph_builder import CallGraphBuilder
from .model import AnalysisResult, EntryPointSpec, RunWarning, SourceUnit
from .reachability import ReachabilityAnalyzer
from .resolver import DEFAULT_REEXPORT_DEPTH, ModuleResolver
from .scanner import discover_files, extract_units

# progress(phase, completed, total); total is 0 when unknown
ProgressCallback = Callable[[str, int, int], None]

PHASES = ('discover', 'extract', 'resolve', 'graph', 'entry-points', 'traverse', 'classify')


@dataclass
class AnalysisOptions:
    max_reexport_depth: int = DEFAULT_REEXPORT_DEPTH
    workers: int = 0  # 0 = one per CPU
    follow_unresolved: bool = True
    source_roots: Sequence[str] = ("", "src")
    ts_paths: Dict[str, List[str]] = field(default_factory=dict)
    base_url: str = ""

    @property
    def effective_workers(self) -> int:
        if self.workers and self.workers > 0:
            return self.workers
        return os.cpu_count() or 1


class CancellationToken:
    """Cooperative cancellation flag shared with a running analysis."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self, phase: str):
        if self._event.is_set():
            raise AnalysisCancelled(phase)


def _phase(name: str, cancel: Optional[CancellationToken], progress: Optional[ProgressCallback],
           completed: int = 0, total: int = 0):
    if cancel is not None:
        cancel.check(name)
    if progress is not None:
        progress(name, completed, total)


def analyze_units(units: Sequence[SourceUnit], entry_points: Sequence[EntryPointSpec],
                  options: Optional[AnalysisOptions] = None,
                  warnings: Sequence[RunWarning] = (),
                  cancel: Optional[CancellationToken] = None,
                  progress: Optional[ProgressCallback] = None) -> AnalysisResult:
    """Analyze already-extracted SourceUnits.

    Args:
        units: Extracted units in a deterministic order
        entry_points: Root selection rules in declaration order
        options: Resolution and traversal options
        warnings: Warnings from earlier phases (extraction) to carry over
        cancel: Optional cancellation token
        progress: Optional phase callback

    Returns:
        AnalysisResult with findings ordered by (file, line, column, identifier)

    Raises:
        InternalInvariantViolation: If graph construction breaks an invariant
        AnalysisCancelled: If cancellation was requested between phases
    """
    options = options or AnalysisOptions()
    units = tuple(units)
    run_warnings: List[RunWarning] = list(warnings)

    _phase('resolve', cancel, progress)
    resolver = ModuleResolver(
        units,
        source_roots=options.source_roots,
        ts_paths=options.ts_paths,
        base_url=options.base_url,
        max_depth=options.max_reexport_depth,
    )
    resolver.resolve_all()

    _phase('graph', cancel, progress)
    graph = CallGraphBuilder(units, resolver=resolver, workers=options.effective_workers).build()
    run_warnings.extend(resolver.warnings)

    _phase('entry-points', cancel, progress)
    entry_resolver = EntryPointResolver(graph, entry_points)
    roots = entry_resolver.resolve()
    run_warnings.extend(entry_resolver.warnings)

    _phase('traverse', cancel, progress)
    reachability = ReachabilityAnalyzer(graph, follow_unresolved=options.follow_unresolved).analyze(roots)

    _phase('classify', cancel, progress)
    classifier = ConfidenceClassifier(graph, reachability)
    findings = classifier.findings()
    speculative = classifier.speculative()

    stats = graph.stats()
    stats.update({
        "files": len(units),
        "roots": len(roots),
        "reachable_definitions": sum(1 for node in reachability.visited if node in graph.definitions),
        "dead_definitions": len(findings),
        "speculative_reaches": len(speculative),
    })
    return AnalysisResult(
        findings=findings,
        speculative=speculative,
        warnings=_dedupe(run_warnings),
        roots=roots,
        reachable=sorted(node for node in reachability.visited if node in graph.definitions),
        stats=stats,
    )


def analyze_project(root: Path, entry_points: Sequence[EntryPointSpec],
                    options: Optional[AnalysisOptions] = None,
                    ignore: Sequence[str] = (),
                    cancel: Optional[CancellationToken] = None,
                    progress: Optional[ProgressCallback] = None) -> AnalysisResult:
    """Discover, extract and analyze every supported file under root."""
    options = options or AnalysisOptions()
    root = Path(root)

    _phase('discover', cancel, progress)
    paths = discover_files(root, ignore)

    _phase('extract', cancel, progress, 0, len(paths))
    done = [0]

    def on_file(_path: str):
        done[0] += 1
        if progress is not None:
            progress('extract', done[0], len(paths))

    units, warnings = extract_units(root, paths, workers=options.effective_workers, on_file=on_file)
    result = analyze_units(units, entry_points, options, warnings, cancel, progress)
    result.stats["files_failed"] = len(paths) - len(units)
    return result


def _dedupe(warnings: Sequence[RunWarning]) -> List[RunWarning]:
    return list(dict.fromkeys(warnings))
