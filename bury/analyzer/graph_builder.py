"""Call graph builder using NetworkX.

Nodes are Definitions plus two internal nodes per file: the module node
(top-level code) and the exports node (public surface). An edge u -> v means
"if u is live, v is live". The graph is built once from an immutable snapshot
of SourceUnits and frozen before traversal.
"""
import builtins
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
import networkx as nx

from .errors import InternalInvariantViolation
from .extractor import OPAQUE
from .inheritance import InheritanceMap
from .model import (
    Definition,
    DefinitionKind,
    EdgeKind,
    Language,
    Reference,
    ReferenceKind,
    SourceUnit,
    module_node_id,
)
from .python_extractor import is_dunder
from .resolver import BindingStatus, ModuleResolver, ResolvedBinding

PYTHON_BUILTINS = frozenset(dir(builtins)) | {
    '__file__', '__path__', '__cached__', '__annotations__', '__dict__', '__class__',
}
JS_GLOBALS = frozenset({
    'undefined', 'NaN', 'Infinity', 'globalThis', 'window', 'document', 'navigator', 'console',
    'process', 'require', 'module', 'exports', '__dirname', '__filename', 'global', 'Buffer',
    'Object', 'Array', 'String', 'Number', 'Boolean', 'Symbol', 'BigInt', 'Function', 'Math',
    'JSON', 'Date', 'RegExp', 'Error', 'TypeError', 'RangeError', 'SyntaxError', 'Promise',
    'Map', 'Set', 'WeakMap', 'WeakSet', 'Proxy', 'Reflect', 'Intl', 'ArrayBuffer',
    'Uint8Array', 'Int32Array', 'Float64Array', 'DataView', 'parseInt', 'parseFloat', 'isNaN',
    'isFinite', 'encodeURIComponent', 'decodeURIComponent', 'encodeURI', 'decodeURI',
    'setTimeout', 'clearTimeout', 'setInterval', 'clearInterval', 'setImmediate',
    'queueMicrotask', 'structuredClone', 'fetch', 'URL', 'URLSearchParams', 'TextEncoder',
    'TextDecoder', 'AbortController', 'Event', 'EventTarget', 'localStorage', 'sessionStorage',
    'arguments', 'React', 'JSX', 'Partial', 'Record', 'Readonly', 'Pick', 'Omit', 'Exclude',
    'Extract', 'ReturnType', 'Parameters', 'Required', 'NonNullable', 'Awaited', 'Iterable',
    'Iterator', 'AsyncIterable', 'PromiseLike', 'ArrayLike', 'Element', 'HTMLElement',
})
SELF_RECEIVERS = {'self', 'cls', 'this'}
SUPER_RECEIVER = 'super()'


class ResolutionStrategy(str, Enum):
    LOCAL = "local"
    MEMBER = "member"
    OVERRIDE = "override"
    BINDING = "binding"
    EXTERNAL = "external"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class ResolvedReference:
    reference: Reference
    source: str  # graph node owning the reference
    strategy: ResolutionStrategy
    targets: Tuple[str, ...] = ()
    overrides: Tuple[str, ...] = ()
    ambiguous: bool = False

    @property
    def unresolved(self) -> bool:
        return self.strategy == ResolutionStrategy.UNRESOLVED


@dataclass
class _Symbol:
    definitions: List[str] = field(default_factory=list)
    modules: List[str] = field(default_factory=list)
    external: bool = False


class CallGraph:
    """Frozen directed graph plus the indexes traversal and classification need."""

    def __init__(self, graph: nx.DiGraph, definitions: Dict[str, Definition], units: Dict[str, SourceUnit],
                 resolutions: List[ResolvedReference], inheritance: InheritanceMap,
                 rejected: Dict[str, str]):
        self.graph = graph
        self.definitions = definitions
        self.units = units
        self.resolutions = resolutions
        self.inheritance = inheritance
        self.rejected = rejected

        self.unresolved: Dict[str, List[ResolvedReference]] = {}
        self.resolved_names: Dict[str, Set[str]] = {}
        for resolution in resolutions:
            if resolution.unresolved:
                self.unresolved.setdefault(resolution.source, []).append(resolution)
            elif resolution.targets:
                self.resolved_names.setdefault(resolution.reference.name, set()).update(resolution.targets)

        self.by_name: Dict[str, List[str]] = {}
        for identifier in sorted(definitions):
            self.by_name.setdefault(definitions[identifier].name, []).append(identifier)

        self._successors: Dict[str, List[str]] = {}

    def __contains__(self, node: str) -> bool:
        return node in self.graph

    @property
    def nodes(self) -> List[str]:
        return sorted(self.graph.nodes)

    def successors(self, node: str) -> List[str]:
        cached = self._successors.get(node)
        if cached is None:
            cached = self._successors[node] = sorted(self.graph.successors(node))
        return cached

    def edge_kinds(self, source: str, target: str) -> Set[str]:
        return set(self.graph.edges[source, target].get('kinds', ()))

    def unresolved_from(self, node: str) -> List[ResolvedReference]:
        return self.unresolved.get(node, [])

    def definitions_named(self, name: str) -> List[str]:
        return self.by_name.get(name, [])

    def stats(self) -> Dict[str, int]:
        return {
            "nodes": self.graph.number_of_nodes(),
            "edges": self.graph.number_of_edges(),
            "definitions": len(self.definitions),
            "unresolved_references": sum(len(v) for v in self.unresolved.values()),
        }


class CallGraphBuilder:
    """Build the call graph for a fixed set of SourceUnits."""

    def __init__(self, units: Sequence[SourceUnit], resolver: Optional[ModuleResolver] = None,
                 workers: int = 1):
        """Initialize graph builder.

        Args:
            units: Extracted SourceUnits, in a deterministic order
            resolver: Module resolver (one is created with defaults if omitted)
            workers: Thread count for per-file reference resolution

        Raises:
            InternalInvariantViolation: If two units share a path or two
                definitions share an identifier
        """
        seen: Dict[str, SourceUnit] = {}
        for unit in units:
            if unit.path in seen:
                raise InternalInvariantViolation("duplicate source unit", {"path": unit.path})
            seen[unit.path] = unit
        self.units = list(units)
        self.unit_index = seen
        self.resolver = resolver or ModuleResolver(self.units)
        self.workers = max(1, workers)

        self.definitions: Dict[str, Definition] = {}
        self._scoped: Dict[str, Dict[Optional[str], Dict[str, List[str]]]] = {}
        self._members: Dict[str, Dict[str, List[str]]] = {}
        for unit in self.units:
            scoped = self._scoped.setdefault(unit.path, {})
            for definition in unit.definitions:
                if definition.identifier in self.definitions:
                    raise InternalInvariantViolation(
                        "duplicate definition identifier",
                        {"identifier": definition.identifier, "file": unit.path},
                    )
                if definition.file_path != unit.path:
                    raise InternalInvariantViolation(
                        "definition declared outside its unit",
                        {"identifier": definition.identifier, "unit": unit.path},
                    )
                self.definitions[definition.identifier] = definition
                scoped.setdefault(definition.scope, {}).setdefault(definition.name, []).append(definition.identifier)
        for definition in self.definitions.values():
            if definition.scope is not None and definition.scope in self.definitions \
                    and self.definitions[definition.scope].kind == DefinitionKind.CLASS:
                self._members.setdefault(definition.scope, {}).setdefault(definition.name, []).append(
                    definition.identifier)

        self.graph = nx.DiGraph()
        self.inheritance = InheritanceMap({}, self._members)
        self.rejected: Dict[str, str] = {}

    def build(self) -> CallGraph:
        """Build, validate and freeze the call graph."""
        self.resolver.resolve_all()
        self._add_nodes()
        self._add_structural_edges()
        self.inheritance = InheritanceMap(self._resolve_bases(), self._members)
        self._add_base_edges()
        self._add_binding_edges()
        resolutions = self._resolve_references()
        for resolution in resolutions:
            for target in resolution.targets:
                self._add_edge(resolution.source, target, EdgeKind.REFERENCE)
            for target in resolution.overrides:
                self._add_edge(resolution.source, target, EdgeKind.OVERRIDE)
        self._collect_rejected()
        self._verify(resolutions)
        nx.freeze(self.graph)
        return CallGraph(self.graph, self.definitions, self.unit_index, resolutions,
                         self.inheritance, self.rejected)

    # ------------------------------------------------------------- structure

    def _add_nodes(self):
        for unit in self.units:
            self.graph.add_node(unit.module_node, kind="module", file=unit.path)
            self.graph.add_node(unit.exports_node, kind="exports", file=unit.path)
        for identifier, definition in self.definitions.items():
            self.graph.add_node(identifier, kind="definition", file=definition.file_path)

    def _add_edge(self, source: str, target: str, kind: EdgeKind):
        if source not in self.graph or target not in self.graph:
            raise InternalInvariantViolation(
                "edge endpoint is not a graph node",
                {"source": source, "target": target, "kind": kind.value},
            )
        if self.graph.has_edge(source, target):
            self.graph.edges[source, target]['kinds'].add(kind.value)
        else:
            self.graph.add_edge(source, target, kinds={kind.value})

    def _add_structural_edges(self):
        for unit in self.units:
            parent = self.resolver.parent_package(unit.path)
            if parent is not None:
                self._add_edge(unit.module_node, module_node_id(parent), EdgeKind.PACKAGE)
            for definition in unit.definitions:
                scope = definition.scope if definition.scope is not None else unit.module_node
                self._add_edge(definition.identifier, scope, EdgeKind.SCOPE)
                if definition.exported:
                    self._add_edge(unit.exports_node, definition.identifier, EdgeKind.EXPORT)
                if definition.scope in self._members and self._is_constructor(definition, unit):
                    self._add_edge(definition.scope, definition.identifier, EdgeKind.CONSTRUCTOR)

    @staticmethod
    def _is_constructor(definition: Definition, unit: SourceUnit) -> bool:
        if unit.language == Language.PYTHON:
            return is_dunder(definition.name)
        return definition.name == 'constructor'

    def _resolve_bases(self) -> Dict[str, List[Optional[str]]]:
        bases: Dict[str, List[Optional[str]]] = {}
        for unit in self.units:
            for definition in unit.definitions:
                if definition.kind not in (DefinitionKind.CLASS, DefinitionKind.INTERFACE):
                    continue
                resolved: List[Optional[str]] = []
                for expression in definition.base_classes:
                    if expression in ('object', 'Object'):
                        continue
                    symbol = self._resolve_symbol(unit, definition.scope, expression)
                    classes = [d for d in symbol.definitions
                               if self.definitions[d].kind in (DefinitionKind.CLASS, DefinitionKind.INTERFACE)
                               and d != definition.identifier]
                    resolved.extend(classes or [None])
                bases[definition.identifier] = resolved
        return bases

    def _add_base_edges(self):
        for class_id in sorted(self.inheritance.bases):
            for base in self.inheritance.bases[class_id]:
                if base is not None:
                    self._add_edge(class_id, base, EdgeKind.BASE_CLASS)

    def _add_binding_edges(self):
        for unit in self.units:
            for binding in unit.bindings:
                resolved = self.resolver.resolve_binding(binding)
                scope = binding.source if binding.source is not None else unit.module_node
                if resolved.imported_module is not None:
                    self._add_edge(scope, module_node_id(resolved.imported_module), EdgeKind.IMPORT)
                if resolved.status == BindingStatus.MODULE and resolved.module is not None \
                        and not binding.is_module and not binding.is_wildcard:
                    # `from pkg import submodule` executes the submodule
                    self._add_edge(scope, module_node_id(resolved.module), EdgeKind.IMPORT)
                if binding.re_export and binding.is_wildcard:
                    for expanded in self.resolver.expand_wildcard(binding):
                        for target in self._binding_targets(expanded):
                            self._add_edge(unit.exports_node, target, EdgeKind.EXPORT)

    def _binding_targets(self, resolved: ResolvedBinding) -> List[str]:
        targets = list(resolved.targets)
        if resolved.module is not None and resolved.status == BindingStatus.MODULE:
            targets.append(module_node_id(resolved.module))
        return targets

    def _collect_rejected(self):
        for table in self.resolver.resolve_all().values():
            for resolutions in table.values():
                for resolved in resolutions:
                    for identifier in resolved.rejected:
                        if identifier in self.definitions:
                            self.rejected.setdefault(
                                identifier,
                                f"lost an ambiguous re-export tie-break in {resolved.binding.file_path}",
                            )

    # ------------------------------------------------------------ references

    def _resolve_references(self) -> List[ResolvedReference]:
        """Resolve every reference, one shard per file, merged in unit order."""
        if self.workers > 1 and len(self.units) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                shards = list(executor.map(self._resolve_unit, self.units))
        else:
            shards = [self._resolve_unit(unit) for unit in self.units]
        merged: List[ResolvedReference] = []
        for shard in shards:
            merged.extend(shard)
        return merged

    def _resolve_unit(self, unit: SourceUnit) -> List[ResolvedReference]:
        return [self.resolve_reference(unit, reference) for reference in unit.references]

    def resolve_reference(self, unit: SourceUnit, reference: Reference) -> ResolvedReference:
        """Resolve one reference: local scope, then class member, then bindings."""
        if reference.kind == ReferenceKind.RE_EXPORT:
            source = unit.exports_node
        else:
            source = reference.source if reference.source is not None else unit.module_node

        if reference.kind == ReferenceKind.DYNAMIC:
            return ResolvedReference(reference, source, ResolutionStrategy.UNRESOLVED)
        if reference.receiver is None and reference.receiver_type is None:
            return self._resolve_bare(unit, reference, source)
        return self._resolve_member(unit, reference, source)

    def _resolve_bare(self, unit: SourceUnit, reference: Reference, source: str) -> ResolvedReference:
        scope = None if reference.kind == ReferenceKind.RE_EXPORT else reference.source
        local = self._local_lookup(unit.path, scope, reference.name)
        if local:
            return ResolvedReference(reference, source, ResolutionStrategy.LOCAL, tuple(local))

        bindings = self.resolver.binding_table(unit.path).get(reference.name, [])
        targets: List[str] = []
        ambiguous = False
        external = False
        for resolved in bindings:
            if resolved.found:
                targets.extend(self._binding_targets(resolved))
                ambiguous = ambiguous or resolved.status == BindingStatus.AMBIGUOUS
                if resolved.status == BindingStatus.MODULE and reference.kind == ReferenceKind.CALL:
                    # CommonJS: calling a required module calls its default export
                    default = self.resolver.lookup_export(resolved.module, 'default')
                    targets.extend(default.targets)
            elif resolved.status == BindingStatus.EXTERNAL:
                external = True
        if targets:
            return ResolvedReference(reference, source, ResolutionStrategy.BINDING,
                                     tuple(dict.fromkeys(targets)), ambiguous=ambiguous)
        if external or self._is_builtin(unit, reference.name):
            return ResolvedReference(reference, source, ResolutionStrategy.EXTERNAL)
        return ResolvedReference(reference, source, ResolutionStrategy.UNRESOLVED)

    def _resolve_member(self, unit: SourceUnit, reference: Reference, source: str) -> ResolvedReference:
        receiver = reference.receiver
        class_ids: List[str] = []
        skip_self = False
        via_self = False

        if receiver in SELF_RECEIVERS or receiver == SUPER_RECEIVER:
            enclosing = self._enclosing_class(reference.source)
            if enclosing is not None:
                class_ids = [enclosing]
                skip_self = receiver == SUPER_RECEIVER
                via_self = not skip_self
        if not class_ids and reference.receiver_type:
            symbol = self._resolve_symbol(unit, reference.source, reference.receiver_type)
            class_ids = self._classes(symbol.definitions)

        if not class_ids and receiver and receiver != OPAQUE \
                and receiver not in SELF_RECEIVERS and receiver != SUPER_RECEIVER:
            symbol = self._resolve_symbol(unit, reference.source, receiver)
            class_ids = self._classes(symbol.definitions)
            if not class_ids and symbol.modules:
                targets: List[str] = []
                ambiguous = False
                for module in symbol.modules:
                    lookup = self.resolver.lookup_export(module, reference.name)
                    targets.extend(lookup.targets)
                    if lookup.module is not None:
                        targets.append(module_node_id(lookup.module))
                    ambiguous = ambiguous or lookup.status == BindingStatus.AMBIGUOUS
                if targets:
                    return ResolvedReference(reference, source, ResolutionStrategy.BINDING,
                                             tuple(dict.fromkeys(targets)), ambiguous=ambiguous)
            elif not class_ids and symbol.external:
                return ResolvedReference(reference, source, ResolutionStrategy.EXTERNAL)

        if class_ids:
            targets = []
            overrides: List[str] = []
            for class_id in class_ids:
                found, _incomplete = self.inheritance.lookup(class_id, reference.name, skip_self=skip_self)
                targets.extend(found)
                if via_self:
                    overrides.extend(self.inheritance.overrides(class_id, reference.name))
            if targets or overrides:
                strategy = ResolutionStrategy.MEMBER if targets else ResolutionStrategy.OVERRIDE
                return ResolvedReference(reference, source, strategy,
                                         tuple(dict.fromkeys(targets)),
                                         overrides=tuple(o for o in dict.fromkeys(overrides) if o not in targets))
        return ResolvedReference(reference, source, ResolutionStrategy.UNRESOLVED)

    def _classes(self, identifiers: Iterable[str]) -> List[str]:
        return [i for i in identifiers if i in self.definitions and self.definitions[i].kind == DefinitionKind.CLASS]

    def _local_lookup(self, path: str, scope: Optional[str], name: str) -> List[str]:
        """Walk the scope chain outward; class scopes only count when the
        reference sits directly in the class body."""
        scoped = self._scoped.get(path, {})
        current = scope
        first = True
        while True:
            definition = self.definitions.get(current) if current is not None else None
            skip = definition is not None and definition.kind == DefinitionKind.CLASS and not first
            if not skip:
                found = scoped.get(current, {}).get(name)
                if found:
                    return list(found)
            if current is None:
                return []
            current = definition.scope if definition is not None else None
            first = False

    def _enclosing_class(self, scope: Optional[str]) -> Optional[str]:
        current = scope
        while current is not None:
            definition = self.definitions.get(current)
            if definition is None:
                return None
            if definition.kind == DefinitionKind.CLASS:
                return current
            current = definition.scope
        return None

    def _resolve_symbol(self, unit: SourceUnit, scope: Optional[str], dotted: str) -> _Symbol:
        """Resolve a dotted expression (`Foo`, `mod.Foo`, `pkg.mod`) statically."""
        parts = dotted.split('.')
        symbol = _Symbol(definitions=self._local_lookup(unit.path, scope, parts[0]))
        if not symbol.definitions:
            for resolved in self.resolver.binding_table(unit.path).get(parts[0], []):
                if resolved.found:
                    symbol.definitions.extend(resolved.targets)
                    if resolved.status == BindingStatus.MODULE and resolved.module is not None:
                        symbol.modules.append(resolved.module)
                elif resolved.status == BindingStatus.EXTERNAL:
                    symbol.external = True
            if not symbol.definitions and not symbol.modules and self._is_builtin(unit, parts[0]):
                symbol.external = True

        for part in parts[1:]:
            definitions: List[str] = []
            modules: List[str] = []
            for module in symbol.modules:
                lookup = self.resolver.lookup_export(module, part)
                definitions.extend(lookup.targets)
                if lookup.module is not None:
                    modules.append(lookup.module)
                elif lookup.status == BindingStatus.EXTERNAL:
                    symbol.external = True
            for class_id in self._classes(symbol.definitions):
                found, _incomplete = self.inheritance.lookup(class_id, part)
                definitions.extend(found)
            symbol.definitions, symbol.modules = definitions, modules
            if not definitions and not modules:
                break
        if symbol.definitions or symbol.modules:
            symbol.external = False
        return symbol

    @staticmethod
    def _is_builtin(unit: SourceUnit, name: str) -> bool:
        if unit.language == Language.PYTHON:
            return name in PYTHON_BUILTINS
        return name in JS_GLOBALS

    # ------------------------------------------------------------ invariants

    def _verify(self, resolutions: List[ResolvedReference]):
        for identifier, definition in self.definitions.items():
            if identifier not in self.graph:
                raise InternalInvariantViolation("definition missing from graph", {"identifier": identifier})
            if definition.file_path not in self.unit_index:
                raise InternalInvariantViolation(
                    "definition without a declaring unit",
                    {"identifier": identifier, "file": definition.file_path},
                )
        for resolution in resolutions:
            for target in resolution.targets + resolution.overrides:
                if target not in self.graph:
                    raise InternalInvariantViolation(
                        "resolved reference targets an unknown node",
                        {"target": target, "file": resolution.reference.file_path,
                         "line": resolution.reference.line},
                    )
