"""Module resolution: map bindings (imports/re-exports) to definitions.

Python modules are indexed by path stem (`pkg/mod.py` -> `pkg/mod`,
`pkg/__init__.py` -> `pkg`) under each configured source root. JS/TS modules
are indexed by extension-less path, `index` files standing for their
directory, with tsconfig path aliases applied to bare specifiers.
"""
import posixpath
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

from .model import (
    Binding,
    Definition,
    Language,
    RunWarning,
    SourceUnit,
    WarningKind,
)

DEFAULT_REEXPORT_DEPTH = 10

# Preference order when several files share one extension-less path
JS_EXTENSIONS = ['.ts', '.tsx', '.d.ts', '.mts', '.cts', '.js', '.jsx', '.mjs', '.cjs']
PY_EXTENSIONS = ['.py', '.pyi']


class BindingStatus(str, Enum):
    RESOLVED = "resolved"
    MODULE = "module"
    EXTERNAL = "external"
    UNRESOLVED = "unresolved"
    AMBIGUOUS = "ambiguous"
    DEPTH_EXCEEDED = "depth-exceeded"


@dataclass(frozen=True)
class Lookup:
    """Outcome of looking a name up in a module."""
    status: BindingStatus
    targets: Tuple[str, ...] = ()
    module: Optional[str] = None
    rejected: Tuple[str, ...] = ()
    note: str = ""

    @property
    def found(self) -> bool:
        return self.status in (BindingStatus.RESOLVED, BindingStatus.MODULE, BindingStatus.AMBIGUOUS)


@dataclass(frozen=True)
class ResolvedBinding:
    binding: Binding
    status: BindingStatus
    targets: Tuple[str, ...] = ()
    module: Optional[str] = None  # unit the local name denotes, for module bindings
    imported_module: Optional[str] = None  # unit executed by the import statement
    rejected: Tuple[str, ...] = ()

    @property
    def found(self) -> bool:
        return self.status in (BindingStatus.RESOLVED, BindingStatus.MODULE, BindingStatus.AMBIGUOUS)


_UNRESOLVED = Lookup(BindingStatus.UNRESOLVED)


def _strip_extension(path: str, extensions: Sequence[str]) -> Optional[str]:
    for ext in sorted(extensions, key=len, reverse=True):
        if path.endswith(ext):
            return path[: -len(ext)]
    return None


def common_prefix_length(a: str, b: str) -> int:
    parts_a = posixpath.dirname(a).split('/')
    parts_b = posixpath.dirname(b).split('/')
    count = 0
    for left, right in zip(parts_a, parts_b):
        if left != right:
            break
        count += 1
    return count


class ModuleResolver:
    """Resolve bindings across an immutable set of SourceUnits."""

    def __init__(self, units: Sequence[SourceUnit], source_roots: Sequence[str] = ("", "src"),
                 ts_paths: Optional[Dict[str, List[str]]] = None, base_url: str = "",
                 max_depth: int = DEFAULT_REEXPORT_DEPTH):
        """Index every unit for module and name lookups.

        Args:
            units: All extracted SourceUnits of the run
            source_roots: Directories (relative to the project root) that
                absolute Python imports are resolved against
            ts_paths: tsconfig `compilerOptions.paths` alias table
            base_url: tsconfig `compilerOptions.baseUrl`, relative to the root
            max_depth: Bound on re-export chain length
        """
        self.units: Dict[str, SourceUnit] = {unit.path: unit for unit in units}
        self.source_roots = [root.strip('/') for root in source_roots]
        self.ts_paths = dict(ts_paths or {})
        base_url = posixpath.normpath(base_url).strip("/") if base_url else ""
        self.base_url = "" if base_url == "." else base_url
        self.max_depth = max_depth
        self.warnings: List[RunWarning] = []
        self._warned: Set[Tuple[str, Optional[str], str]] = set()

        self._python_stems: Dict[str, str] = {}
        self._js_stems: Dict[str, str] = {}
        self._top_level: Dict[str, Dict[str, List[Definition]]] = {}
        self._named_bindings: Dict[str, Dict[str, List[Binding]]] = {}
        self._wildcards: Dict[str, List[Binding]] = {}
        self._aliases: Dict[str, Dict[str, str]] = {}
        self._tables: Dict[str, Dict[str, List[ResolvedBinding]]] = {}
        self._resolved: Dict[Binding, ResolvedBinding] = {}
        self._top_packages: Set[str] = set()
        self._index()

    # ------------------------------------------------------------------ index

    def _index(self):
        py_candidates: Dict[str, List[str]] = {}
        js_candidates: Dict[str, List[str]] = {}
        for path, unit in self.units.items():
            if unit.language == Language.PYTHON:
                stem = _strip_extension(path, PY_EXTENSIONS)
                if stem is None:
                    continue
                if stem == '__init__' or stem.endswith('/__init__'):
                    stem = posixpath.dirname(stem)
                py_candidates.setdefault(stem, []).append(path)
                for root in self.source_roots:
                    relative = stem[len(root) + 1:] if root and stem.startswith(root + '/') else stem
                    if relative:
                        self._top_packages.add(relative.split('/', 1)[0])
            else:
                stem = _strip_extension(path, JS_EXTENSIONS)
                if stem is None:
                    continue
                js_candidates.setdefault(stem, []).append(path)
                if stem == 'index' or stem.endswith('/index'):
                    js_candidates.setdefault(posixpath.dirname(stem), []).append(path)

            top_level: Dict[str, List[Definition]] = {}
            for definition in unit.definitions:
                if definition.scope is None:
                    top_level.setdefault(definition.name, []).append(definition)
            self._top_level[path] = top_level

            named: Dict[str, List[Binding]] = {}
            wildcards: List[Binding] = []
            for binding in unit.bindings:
                if binding.source is not None or not binding.local_name:
                    continue
                if binding.is_wildcard:
                    wildcards.append(binding)
                else:
                    named.setdefault(binding.local_name, []).append(binding)
            self._named_bindings[path] = named
            self._wildcards[path] = wildcards
            self._aliases[path] = {exported: local for exported, local in unit.exports}

        for stem, paths in py_candidates.items():
            self._python_stems[stem] = sorted(paths, key=self._python_rank)[0]
        for stem, paths in js_candidates.items():
            self._js_stems[stem] = sorted(paths, key=lambda p: self._js_rank(p, stem))[0]

    @staticmethod
    def _python_rank(path: str):
        return (path.endswith('.pyi'), path.endswith('__init__.py'), path)

    @staticmethod
    def _js_rank(path: str, stem: str):
        is_index = not (_strip_extension(path, JS_EXTENSIONS) == stem)
        ext = next((e for e in sorted(JS_EXTENSIONS, key=len, reverse=True) if path.endswith(e)), '')
        return (is_index, JS_EXTENSIONS.index(ext) if ext in JS_EXTENSIONS else len(JS_EXTENSIONS), path)

    # ---------------------------------------------------------------- modules

    def resolve_module(self, specifier: str, importer: str) -> Tuple[BindingStatus, Optional[str]]:
        """Map a module specifier, as written in importer, to a unit path.

        Returns:
            (status, unit path) where status is RESOLVED, EXTERNAL or UNRESOLVED
        """
        unit = self.units.get(importer)
        if unit is not None and unit.language == Language.PYTHON:
            return self._resolve_python_module(specifier, importer)
        return self._resolve_js_module(specifier, importer)

    def _resolve_python_module(self, specifier: str, importer: str) -> Tuple[BindingStatus, Optional[str]]:
        level = len(specifier) - len(specifier.lstrip('.'))
        rest = specifier[level:]
        rest_path = rest.replace('.', '/')
        if level:
            base = posixpath.dirname(importer)
            for _ in range(level - 1):
                base = posixpath.dirname(base)
            stem = posixpath.join(base, rest_path) if rest_path else base
            stem = posixpath.normpath(stem) if stem else ''
            stem = '' if stem == '.' else stem
            path = self._python_stems.get(stem)
            if path is None:
                return BindingStatus.UNRESOLVED, None
            return BindingStatus.RESOLVED, path

        for root in self.source_roots:
            stem = f"{root}/{rest_path}" if root else rest_path
            path = self._python_stems.get(stem)
            if path is not None:
                return BindingStatus.RESOLVED, path
        if rest.split('.', 1)[0] in self._top_packages:
            return BindingStatus.UNRESOLVED, None
        return BindingStatus.EXTERNAL, None

    def _resolve_js_module(self, specifier: str, importer: str) -> Tuple[BindingStatus, Optional[str]]:
        if specifier.startswith('.'):
            stem = posixpath.normpath(posixpath.join(posixpath.dirname(importer), specifier))
            path = self._lookup_js_stem(stem)
            return (BindingStatus.RESOLVED, path) if path else (BindingStatus.UNRESOLVED, None)
        if specifier.startswith('/'):
            path = self._lookup_js_stem(specifier.lstrip('/'))
            return (BindingStatus.RESOLVED, path) if path else (BindingStatus.UNRESOLVED, None)

        for pattern, targets in self.ts_paths.items():
            for candidate in self._apply_alias(pattern, targets, specifier):
                path = self._lookup_js_stem(candidate)
                if path:
                    return BindingStatus.RESOLVED, path

        for candidate in (posixpath.join(self.base_url, specifier) if self.base_url else None, specifier):
            if candidate:
                path = self._lookup_js_stem(candidate)
                if path:
                    return BindingStatus.RESOLVED, path
        return BindingStatus.EXTERNAL, None

    def _apply_alias(self, pattern: str, targets: List[str], specifier: str) -> List[str]:
        if pattern.endswith('*'):
            prefix = pattern[:-1]
            if not specifier.startswith(prefix):
                return []
            remainder = specifier[len(prefix):]
            substituted = [target.replace('*', remainder) for target in targets]
        elif pattern == specifier:
            substituted = list(targets)
        else:
            return []
        return [posixpath.normpath(posixpath.join(self.base_url, target)) for target in substituted]

    def _lookup_js_stem(self, stem: str) -> Optional[str]:
        stem = posixpath.normpath(stem)
        path = self._js_stems.get(stem)
        if path is not None:
            return path
        # './helper.js' may name 'helper.ts'
        stripped = _strip_extension(stem, JS_EXTENSIONS + ['.json'])
        if stripped is not None:
            return self._js_stems.get(stripped)
        return None

    def parent_package(self, path: str) -> Optional[str]:
        """The `__init__.py` unit executed before a Python module, if any."""
        unit = self.units.get(path)
        if unit is None or unit.language != Language.PYTHON:
            return None
        directory = posixpath.dirname(path)
        if path.rsplit('/', 1)[-1] == '__init__.py':
            directory = posixpath.dirname(directory) if directory else None
        if directory is None:
            return None
        candidate = f"{directory}/__init__.py" if directory else "__init__.py"
        return candidate if candidate in self.units and candidate != path else None

    # ------------------------------------------------------------------ names

    def lookup_export(self, path: str, name: str) -> Lookup:
        """Look up a name as seen by importers of the unit at path."""
        return self._lookup(path, name, 0, frozenset())

    def _lookup(self, path: str, name: str, depth: int, trail: FrozenSet[Tuple[str, str]]) -> Lookup:
        if depth > self.max_depth:
            return Lookup(BindingStatus.DEPTH_EXCEEDED,
                          note=f"re-export chain for '{name}' exceeds depth {self.max_depth}")
        if (path, name) in trail or path not in self.units:
            return _UNRESOLVED
        trail = trail | {(path, name)}

        local = self._aliases[path].get(name, name)
        definitions = self._top_level[path].get(local)
        if definitions:
            return Lookup(BindingStatus.RESOLVED, tuple(d.identifier for d in definitions))

        depth_hit = None
        for binding in self._named_bindings[path].get(local, []):
            result = self._follow(binding, path, depth + 1, trail)
            if result.found or result.status == BindingStatus.EXTERNAL:
                return result
            if result.status == BindingStatus.DEPTH_EXCEEDED:
                depth_hit = result

        submodule = self._python_submodule(path, name)
        if submodule is not None:
            return Lookup(BindingStatus.MODULE, module=submodule)

        result = self._lookup_wildcards(path, name, depth, trail)
        if result.status == BindingStatus.UNRESOLVED and depth_hit is not None:
            return depth_hit
        return result

    def _follow(self, binding: Binding, from_path: str, depth: int, trail) -> Lookup:
        status, module_path = self.resolve_module(binding.module, from_path)
        if status == BindingStatus.EXTERNAL:
            return Lookup(BindingStatus.EXTERNAL)
        if module_path is None:
            return Lookup(BindingStatus.UNRESOLVED, note=f"cannot resolve module '{binding.module}'")
        if binding.is_module:
            return Lookup(BindingStatus.MODULE, module=module_path)
        return self._lookup(module_path, binding.imported_name, depth, trail)

    def _python_submodule(self, path: str, name: str) -> Optional[str]:
        if not path.endswith('__init__.py') or self.units[path].language != Language.PYTHON:
            return None
        stem = posixpath.dirname(path)
        return self._python_stems.get(f"{stem}/{name}" if stem else name)

    def _wildcard_admits(self, path: str, name: str) -> bool:
        unit = self.units[path]
        if unit.language == Language.PYTHON:
            if unit.explicit_exports:
                return name in self._aliases[path]
            return not name.startswith('_')
        return name != 'default'

    def _lookup_wildcards(self, path: str, name: str, depth: int, trail) -> Lookup:
        found: List[Tuple[str, Lookup]] = []
        depth_hit = None
        for binding in self._wildcards[path]:
            _status, module_path = self.resolve_module(binding.module, path)
            if module_path is None or not self._wildcard_admits(module_path, name):
                continue
            result = self._lookup(module_path, name, depth + 1, trail)
            if result.status == BindingStatus.DEPTH_EXCEEDED:
                depth_hit = result
            elif result.found:
                found.append((module_path, result))

        if not found:
            return depth_hit if depth_hit is not None else _UNRESOLVED

        distinct = {(r.targets, r.module): (module_path, r) for module_path, r in found}
        if len(distinct) == 1:
            return found[0][1]

        ranked = sorted(
            distinct.values(),
            key=lambda item: (-common_prefix_length(path, item[0]),
                              min(item[1].targets) if item[1].targets else item[1].module),
        )
        winner = ranked[0][1]
        rejected = sorted({t for _, r in ranked[1:] for t in (r.targets or (r.module,))} - set(winner.targets))
        return Lookup(BindingStatus.AMBIGUOUS, winner.targets, winner.module, tuple(rejected),
                      note=f"'{name}' is re-exported by {len(distinct)} modules; chose {ranked[0][0]}")

    def wildcard_names(self, path: str, depth: int = 0, trail: FrozenSet[str] = frozenset()) -> List[str]:
        """Names a wildcard import/re-export of the unit at path brings in."""
        if path in trail or path not in self.units:
            return []
        if depth > self.max_depth:
            self._warn(WarningKind.DEPTH_EXCEEDED, path,
                       f"wildcard re-export expansion exceeds depth {self.max_depth}")
            return []
        trail = trail | {path}
        unit = self.units[path]
        names: List[str] = []
        if unit.language == Language.PYTHON and not unit.explicit_exports:
            names.extend(self._top_level[path])
            names.extend(self._named_bindings[path])
        else:
            names.extend(exported for exported, _local in unit.exports)
        for binding in self._wildcards[path]:
            _status, module_path = self.resolve_module(binding.module, path)
            if module_path is not None:
                names.extend(self.wildcard_names(module_path, depth + 1, trail))
        return [name for name in dict.fromkeys(names) if self._wildcard_admits(path, name)]

    # --------------------------------------------------------------- bindings

    def resolve_binding(self, binding: Binding) -> ResolvedBinding:
        """Resolve one declared binding to definitions or a module."""
        cached = self._resolved.get(binding)
        if cached is None:
            cached = self._resolved[binding] = self._resolve_binding(binding)
        return cached

    def _resolve_binding(self, binding: Binding) -> ResolvedBinding:
        status, module_path = self.resolve_module(binding.module, binding.file_path)
        if status == BindingStatus.EXTERNAL:
            return ResolvedBinding(binding, BindingStatus.EXTERNAL)
        if module_path is None:
            self._warn(WarningKind.UNRESOLVED_BINDING, binding.file_path,
                       f"line {binding.line}: cannot resolve module '{binding.module}'")
            return ResolvedBinding(binding, BindingStatus.UNRESOLVED)

        if binding.is_wildcard or binding.is_module:
            module = module_path
            unit = self.units.get(binding.file_path)
            head = binding.module.split('.', 1)[0]
            if binding.is_module and unit is not None and unit.language == Language.PYTHON \
                    and '.' in binding.module and binding.local_name == head:
                _head_status, head_path = self.resolve_module(head, binding.file_path)
                module = head_path or module_path
            return ResolvedBinding(binding, BindingStatus.MODULE, module=module, imported_module=module_path)

        result = self._lookup(module_path, binding.imported_name, 1, frozenset())
        if result.status == BindingStatus.UNRESOLVED:
            self._warn(WarningKind.UNRESOLVED_BINDING, binding.file_path,
                       f"line {binding.line}: '{binding.imported_name}' not found in {module_path}")
        elif result.status == BindingStatus.DEPTH_EXCEEDED:
            self._warn(WarningKind.DEPTH_EXCEEDED, binding.file_path,
                       f"line {binding.line}: {result.note}")
        elif result.status == BindingStatus.AMBIGUOUS:
            self._warn(WarningKind.RESOLUTION_AMBIGUITY, binding.file_path,
                       f"line {binding.line}: {result.note}")
        return ResolvedBinding(binding, result.status, result.targets, result.module,
                               imported_module=module_path, rejected=result.rejected)

    def expand_wildcard(self, binding: Binding) -> List[ResolvedBinding]:
        """Per-name resolutions for a wildcard import or `export *`."""
        _status, module_path = self.resolve_module(binding.module, binding.file_path)
        if module_path is None:
            return []
        expanded = []
        for name in self.wildcard_names(module_path):
            named = Binding(
                local_name=name,
                module=binding.module,
                imported_name=name,
                file_path=binding.file_path,
                line=binding.line,
                source=binding.source,
                re_export=binding.re_export,
            )
            expanded.append(self.resolve_binding(named))
        return expanded

    def binding_table(self, path: str) -> Dict[str, List[ResolvedBinding]]:
        """Local name -> resolved bindings visible in the unit at path.

        Named bindings shadow names brought in by Python wildcard imports.
        """
        table = self._tables.get(path)
        if table is not None:
            return table
        table = {}
        unit = self.units[path]
        for binding in unit.bindings:
            if binding.local_name and not binding.is_wildcard:
                table.setdefault(binding.local_name, []).append(self.resolve_binding(binding))
        if unit.language == Language.PYTHON:
            for binding in unit.bindings:
                if binding.is_wildcard:
                    for resolved in self.expand_wildcard(binding):
                        if resolved.binding.local_name not in table:
                            table[resolved.binding.local_name] = [resolved]
        self._tables[path] = table
        return table

    def resolve_all(self) -> Dict[str, Dict[str, List[ResolvedBinding]]]:
        """Resolve every unit's bindings up front, in unit path order."""
        for path in sorted(self.units):
            self.binding_table(path)
        return self._tables

    def _warn(self, kind: WarningKind, file: Optional[str], message: str):
        key = (kind.value, file, message)
        if key in self._warned:
            return
        self._warned.add(key)
        self.warnings.append(RunWarning(kind=kind, file=file, message=message))
