"""Shared fixtures: build SourceUnits from inline snippets with the real
tree-sitter adapters and run the engine on them."""
import textwrap
from pathlib import Path
import sys

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from bury.analyzer.engine import AnalysisOptions, analyze_units
from bury.analyzer.entry_points import default_entry_points
from bury.analyzer.graph_builder import CallGraphBuilder
from bury.analyzer.resolver import ModuleResolver
from bury.analyzer.scanner import extract_source_unit


def make_unit(path, code):
    return extract_source_unit(path, textwrap.dedent(code).lstrip('\n').encode('utf-8'))


def make_units(sources):
    return [make_unit(path, code) for path, code in sources.items()]


@pytest.fixture
def unit():
    """Extract one file: unit('a.py', 'def f(): ...')."""
    return make_unit


@pytest.fixture
def graph_of():
    """Build a frozen CallGraph from {path: code}."""
    def build(sources, **resolver_options):
        units = make_units(sources)
        resolver = ModuleResolver(units, **resolver_options)
        return CallGraphBuilder(units, resolver=resolver).build()
    return build


@pytest.fixture
def analyze():
    """Run the full engine on {path: code}; defaults to the `main` convention."""
    def run(sources, names=(), files=(), decorators=(), conventions=('main',), specs=None, **options):
        units = make_units(sources)
        if specs is None:
            specs = default_entry_points(entry_files=files, names=names, decorators=decorators,
                                         conventions=conventions)
        options.setdefault('workers', 1)
        return analyze_units(units, specs, AnalysisOptions(**options))
    return run

