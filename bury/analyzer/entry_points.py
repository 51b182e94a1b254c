"""Entry point resolution: turn EntryPointSpecs into the traversal root set."""
import fnmatch
import posixpath
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .graph_builder import CallGraph
from .model import (
    Definition,
    DefinitionKind,
    EntryPointKind,
    EntryPointSpec,
    Language,
    RunWarning,
    SourceUnit,
    WarningKind,
)

CONVENTIONS = ('main', 'scripts', 'tests', 'exports')
DEFAULT_CONVENTIONS = ('main', 'scripts', 'tests')

UNITTEST_HOOKS = {
    'setUp', 'tearDown', 'setUpClass', 'tearDownClass', 'setUpModule', 'tearDownModule',
    'asyncSetUp', 'asyncTearDown',
}
PYTEST_HOOK_PREFIX = 'pytest_'
FIXTURE_DECORATORS = {'pytest.fixture', 'fixture', 'pytest_asyncio.fixture'}


def match_name(pattern: str, *candidates: str) -> bool:
    """Exact match, or prefix match for a single trailing `*`."""
    if pattern.endswith('*') and '*' not in pattern[:-1]:
        prefix = pattern[:-1]
        return any(candidate.startswith(prefix) for candidate in candidates)
    return pattern in candidates


def match_file(pattern: str, path: str) -> bool:
    """Glob match against the full path, or the basename for slash-less patterns."""
    pattern = pattern.strip()
    if pattern.startswith('./'):
        pattern = pattern[2:]
    if fnmatch.fnmatchcase(path, pattern):
        return True
    if '/' not in pattern:
        return fnmatch.fnmatchcase(posixpath.basename(path), pattern)
    # `**/x` should also match `x` at the project root
    if pattern.startswith('**/'):
        return fnmatch.fnmatchcase(path, pattern[3:])
    return False


def normalize_decorator(expression: str) -> str:
    expression = expression.strip().lstrip('@')
    return expression.split('(', 1)[0].strip()


class EntryPointResolver:
    """Compute the root node set of a CallGraph."""

    def __init__(self, graph: CallGraph, specs: Sequence[EntryPointSpec]):
        """Initialize the resolver.

        Args:
            graph: Frozen call graph
            specs: Root selection rules in declaration order; the first rule
                selecting a node supplies its root reason
        """
        self.graph = graph
        self.specs = list(specs)
        self.warnings: List[RunWarning] = []

    def resolve(self) -> Dict[str, str]:
        """Return root node -> reason, ordered by node identifier."""
        roots: Dict[str, str] = {}
        for spec in self.specs:
            for node in self.select(spec):
                roots.setdefault(node, spec.describe())

        if not roots:
            message = "no entry point matched; every definition will be reported"
            if not self.specs:
                message = "no entry points configured; every definition will be reported"
            self.warnings.append(RunWarning(kind=WarningKind.EMPTY_ROOT_SET, file=None, message=message))
        return {node: roots[node] for node in sorted(roots)}

    def select(self, spec: EntryPointSpec) -> List[str]:
        """Nodes a single spec selects."""
        if spec.kind == EntryPointKind.FILE:
            return self._select_files(spec.pattern)
        if spec.kind == EntryPointKind.NAME:
            return [d.identifier for d in self._definitions()
                    if match_name(spec.pattern, d.name, d.qualified_name)]
        if spec.kind == EntryPointKind.DECORATOR:
            wanted = normalize_decorator(spec.pattern)
            return [d.identifier for d in self._definitions()
                    if any(normalize_decorator(dec) == wanted for dec in d.decorators)]
        if spec.kind == EntryPointKind.CONVENTION:
            return self._select_convention(spec.pattern)
        return []

    def _definitions(self) -> Iterable[Definition]:
        for identifier in sorted(self.graph.definitions):
            yield self.graph.definitions[identifier]

    def _units(self) -> Iterable[SourceUnit]:
        for path in sorted(self.graph.units):
            yield self.graph.units[path]

    def _select_files(self, pattern: str) -> List[str]:
        nodes = []
        for unit in self._units():
            if match_file(pattern, unit.path):
                nodes.extend([unit.module_node, unit.exports_node])
        return nodes

    def _select_convention(self, convention: str) -> List[str]:
        if convention == 'main':
            return [d.identifier for d in self._definitions()
                    if d.name == 'main' and d.kind in (DefinitionKind.FUNCTION, DefinitionKind.METHOD)]
        if convention == 'scripts':
            return [u.module_node for u in self._units() if 'script' in u.entry_hints]
        if convention == 'exports':
            return [u.exports_node for u in self._units()]
        if convention == 'tests':
            nodes = [d.identifier for d in self._definitions() if self._is_test(d)]
            nodes.extend(u.module_node for u in self._units() if 'test-suite' in u.entry_hints)
            return nodes
        return []

    def _is_test(self, definition: Definition) -> bool:
        unit = self.graph.units.get(definition.file_path)
        if unit is None or unit.language != Language.PYTHON:
            return False
        enclosing = self._enclosing(definition)
        if definition.kind == DefinitionKind.CLASS:
            return definition.name.startswith('Test') and enclosing is None
        if definition.kind not in (DefinitionKind.FUNCTION, DefinitionKind.METHOD):
            return False
        if any(normalize_decorator(dec) in FIXTURE_DECORATORS for dec in definition.decorators):
            return True
        if definition.name.startswith(PYTEST_HOOK_PREFIX) and enclosing is None \
                and posixpath.basename(definition.file_path) == 'conftest.py':
            return True
        if definition.name.startswith('test_') and enclosing is None:
            return True
        if definition.name.startswith('test'):
            return enclosing is not None and self._is_test_class(enclosing)
        if definition.name in UNITTEST_HOOKS:
            return enclosing is not None and self._is_test_class(enclosing)
        return False

    def _enclosing(self, definition: Definition) -> Optional[Definition]:
        if definition.scope is None:
            return None
        return self.graph.definitions.get(definition.scope)

    @staticmethod
    def _is_test_class(definition: Definition) -> bool:
        if definition.kind != DefinitionKind.CLASS:
            return False
        if definition.name.startswith('Test'):
            return True
        return any(base.rsplit('.', 1)[-1] in ('TestCase', 'IsolatedAsyncioTestCase')
                   for base in definition.base_classes)


def default_entry_points(entry_files: Sequence[str] = (), names: Sequence[str] = (),
                         decorators: Sequence[str] = (),
                         conventions: Sequence[str] = DEFAULT_CONVENTIONS,
                         origin: str = "config") -> Tuple[EntryPointSpec, ...]:
    """Build EntryPointSpecs in the order roots are attributed: files, names,
    decorators, then conventions."""
    specs = [EntryPointSpec(EntryPointKind.FILE, p, origin) for p in entry_files]
    specs += [EntryPointSpec(EntryPointKind.NAME, p, origin) for p in names]
    specs += [EntryPointSpec(EntryPointKind.DECORATOR, p, origin) for p in decorators]
    specs += [EntryPointSpec(EntryPointKind.CONVENTION, c, "convention") for c in conventions]
    return tuple(dict.fromkeys(specs))
