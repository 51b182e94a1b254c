"""File discovery and parallel symbol extraction."""
import fnmatch
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .errors import ExtractionFailure
from .js_extractor import JavaScriptExtractor
from .model import Language, RunWarning, SourceUnit, WarningKind
from .parser import LanguageParser
from .python_extractor import PythonExtractor

# Vendored code, virtual environments and build output
EXCLUDED_DIRS = {
    'venv', '.venv', 'env', '.virtualenv',
    'vendor', 'extern', 'third_party',
    '.tox', '.nox', 'site-packages', 'dist', 'build', '__pycache__',
    'node_modules', 'bower_components', '.git', '.hg', '.mypy_cache', '.pytest_cache',
    'coverage', '.next', '.nuxt',
}

_local = threading.local()


def _thread_parser(language: str) -> LanguageParser:
    """tree-sitter parsers are not thread-safe; keep one per thread and language."""
    parsers = getattr(_local, 'parsers', None)
    if parsers is None:
        parsers = _local.parsers = {}
    parser = parsers.get(language)
    if parser is None:
        parser = parsers[language] = LanguageParser(language)
    return parser


def is_ignored(path: str, patterns: Sequence[str]) -> bool:
    """Match a project-relative POSIX path against ignore globs.

    `**/` also matches zero directories; a pattern without a slash matches
    any path component.
    """
    for pattern in patterns:
        pattern = pattern.strip()
        if not pattern:
            continue
        if fnmatch.fnmatchcase(path, pattern):
            return True
        if pattern.startswith('**/') and fnmatch.fnmatchcase(path, pattern[3:]):
            return True
        if '/' not in pattern and any(fnmatch.fnmatchcase(part, pattern) for part in path.split('/')):
            return True
    return False


def discover_files(root: Path, ignore: Sequence[str] = ()) -> List[str]:
    """List analyzable files under root as sorted project-relative POSIX paths.

    Args:
        root: Project root directory
        ignore: Glob patterns excluding files from the run

    Returns:
        Sorted path keys
    """
    root = Path(root)
    found = []
    for directory, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in EXCLUDED_DIRS and not d.endswith('.egg-info'))
        relative_dir = Path(directory).relative_to(root).as_posix()
        for filename in filenames:
            if LanguageParser.language_for(filename) is None:
                continue
            key = filename if relative_dir == '.' else f"{relative_dir}/{filename}"
            if not is_ignored(key, ignore):
                found.append(key)
    return sorted(found)


def extract_source_unit(path: str, source: bytes, language: Optional[str] = None) -> SourceUnit:
    """Parse one file and run the matching language adapter.

    Args:
        path: Project-relative path key
        source: File contents
        language: Parser language; derived from the extension when omitted

    Raises:
        ExtractionFailure: If the file cannot be parsed cleanly or its tree
            is nested deeper than the walkers can follow
    """
    language = language or LanguageParser.language_for(path)
    if language is None:
        raise ExtractionFailure(path, "unsupported file type")
    tree = _thread_parser(language).parse_source(source, path)
    if language == 'python':
        extractor = PythonExtractor(path, source)
    else:
        extractor = JavaScriptExtractor(path, source, Language(language))
    try:
        return extractor.extract(tree)
    except RecursionError:
        raise ExtractionFailure(path, "syntax tree is nested too deeply to walk") from None


def _extract_one(root: Path, path: str) -> Tuple[str, Optional[SourceUnit], Optional[str]]:
    try:
        source = (root / path).read_bytes()
    except OSError as exc:
        return path, None, f"cannot read file: {exc.strerror or exc}"
    try:
        return path, extract_source_unit(path, source), None
    except ExtractionFailure as exc:
        return path, None, exc.message


def extract_units(root: Path, paths: Sequence[str], workers: int = 1,
                  on_file: Optional[Callable[[str], None]] = None) -> Tuple[Tuple[SourceUnit, ...], List[RunWarning]]:
    """Extract SourceUnits in parallel.

    Failed files are excluded and recorded as warnings. Results keep the
    order of paths.

    Args:
        root: Project root the path keys are relative to
        paths: Path keys to extract
        workers: Thread count
        on_file: Called with each path once it is processed

    Returns:
        (units, warnings)
    """
    root = Path(root)
    if workers > 1 and len(paths) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(_extract_one, root, path) for path in paths]
            results = []
            for future in futures:
                results.append(future.result())
                if on_file:
                    on_file(results[-1][0])
    else:
        results = []
        for path in paths:
            results.append(_extract_one(root, path))
            if on_file:
                on_file(path)

    return collect_units(results)


def collect_units(results: Iterable[Tuple[str, Optional[SourceUnit], Optional[str]]]
                  ) -> Tuple[Tuple[SourceUnit, ...], List[RunWarning]]:
    """Join per-file extraction results into units and warnings."""
    units = []
    warnings = []
    for path, unit, error in results:
        if unit is None:
            warnings.append(RunWarning(kind=WarningKind.EXTRACTION_FAILURE, file=path, message=error))
            continue
        units.append(unit)
        for message in unit.warnings:
            warnings.append(RunWarning(kind=WarningKind.EXTRACTION_WARNING, file=path, message=message))
    return tuple(units), warnings
