"""Symbol extractor contract shared by the per-language adapters.

An adapter walks one tree-sitter syntax tree and records every definition,
reference and binding it sees. The result is a frozen SourceUnit.
"""
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, List, Optional, Set, Tuple
from tree_sitter import Node, Tree

from .model import (
    Binding,
    Definition,
    DefinitionKind,
    Language,
    Reference,
    ReferenceKind,
    SourceUnit,
    Span,
    Visibility,
)

# Receiver placeholder for expressions whose value cannot be named statically
OPAQUE = "?"


@dataclass
class Scope:
    """Lexical context while walking a tree.

    definition is the enclosing Definition (None at module level). locals
    holds names bound inside enclosing function bodies, which are never
    emitted as references. types maps local names to an inferred class name.
    """
    definition: Optional[Definition] = None
    locals: FrozenSet[str] = frozenset()
    types: Dict[str, str] = field(default_factory=dict)
    in_class_body: bool = False
    in_type: bool = False

    @property
    def source(self) -> Optional[str]:
        return self.definition.identifier if self.definition else None

    @property
    def qualified_prefix(self) -> str:
        return self.definition.qualified_name + "." if self.definition else ""

    def child(self, definition: Definition, local_names=(), types=None, in_class_body=False) -> 'Scope':
        """Scope for the body of a nested function or class.

        Class bodies never add locals, so names bound in enclosing function
        bodies flow through them unchanged.
        """
        merged_types = dict(self.types)
        for name in local_names:
            merged_types.pop(name, None)
        merged_types.update(types or {})
        return Scope(
            definition=definition,
            locals=self.locals | frozenset(local_names),
            types=merged_types,
            in_class_body=in_class_body,
        )

    def as_type(self) -> 'Scope':
        return replace(self, in_type=True)


class SymbolExtractor:
    """Base adapter. Subclasses implement walk()."""

    language: Language = None

    def __init__(self, path: str, source: bytes):
        """Initialize extractor state for one file.

        Args:
            path: Project-relative POSIX path key of the file
            source: Raw bytes the tree was parsed from
        """
        self.path = path
        self.source = source
        self.definitions: List[Definition] = []
        self.references: List[Reference] = []
        self.bindings: List[Binding] = []
        self.exports: List[Tuple[str, str]] = []
        self.explicit_exports = False
        self.entry_hints: List[str] = []
        self.warnings: List[str] = []
        self._identifiers: Set[str] = set()
        self._exported_names: Set[str] = set()

    def extract(self, tree: Tree) -> SourceUnit:
        """Walk the tree and freeze the collected facts into a SourceUnit."""
        self.walk(tree.root_node)
        self.finish()
        definitions = tuple(
            replace(d, exported=True, visibility=Visibility.PUBLIC) if d.scope is None and d.name in self._exported_names else d
            for d in self.definitions
        )
        return SourceUnit(
            path=self.path,
            language=self.language,
            definitions=definitions,
            references=tuple(self.references),
            bindings=tuple(self.bindings),
            exports=tuple(dict.fromkeys(self.exports)),
            explicit_exports=self.explicit_exports,
            entry_hints=tuple(dict.fromkeys(self.entry_hints)),
            warnings=tuple(dict.fromkeys(self.warnings)),
        )

    def walk(self, root: Node):
        raise NotImplementedError

    def finish(self):
        """Hook run after the walk, before freezing (export computation)."""

    # ------------------------------------------------------------------ helpers

    @staticmethod
    def text(node: Optional[Node]) -> str:
        if node is None:
            return ""
        return node.text.decode('utf-8')

    def add_definition(self, node: Node, name: str, kind: DefinitionKind, scope: Scope,
                       visibility: Visibility = Visibility.PUBLIC,
                       base_classes=(), decorators=()) -> Definition:
        """Register a definition, keeping identifiers unique within the file."""
        qualified_name = scope.qualified_prefix + name
        line = node.start_point[0] + 1
        identifier = f"{self.path}::{qualified_name}"
        if identifier in self._identifiers:
            base = identifier
            identifier = f"{base}@{line}"
            if identifier in self._identifiers:
                identifier = f"{base}@{line}:{node.start_point[1]}"
            counter = 1
            while identifier in self._identifiers:
                counter += 1
                identifier = f"{base}@{line}:{node.start_point[1]}#{counter}"
        self._identifiers.add(identifier)

        definition = Definition(
            identifier=identifier,
            name=name,
            qualified_name=qualified_name,
            kind=kind,
            file_path=self.path,
            span=Span(line=line, column=node.start_point[1], end_line=node.end_point[0] + 1),
            scope=scope.source,
            visibility=visibility,
            base_classes=tuple(base_classes),
            decorators=tuple(decorators),
        )
        self.definitions.append(definition)
        return definition

    def add_reference(self, name: str, kind: ReferenceKind, node: Node, scope: Scope,
                      receiver: Optional[str] = None, receiver_type: Optional[str] = None):
        if not name:
            return
        if scope.in_type and kind == ReferenceKind.NAME:
            kind = ReferenceKind.TYPE
        self.references.append(Reference(
            name=name,
            kind=kind,
            file_path=self.path,
            line=node.start_point[0] + 1,
            column=node.start_point[1],
            source=scope.source,
            receiver=receiver,
            receiver_type=receiver_type,
        ))

    def add_binding(self, local_name: str, module: str, imported_name: Optional[str],
                    node: Node, scope: Scope, re_export: bool = False):
        self.bindings.append(Binding(
            local_name=local_name,
            module=module,
            imported_name=imported_name,
            file_path=self.path,
            line=node.start_point[0] + 1,
            source=scope.source,
            re_export=re_export,
        ))

    def add_export(self, exported_name: str, local_name: str):
        self.exports.append((exported_name, local_name))
        self._exported_names.add(local_name)

    def warn(self, node: Node, message: str):
        self.warnings.append(f"line {node.start_point[0] + 1}: {message}")

    def top_level_names(self) -> Set[str]:
        return {d.name for d in self.definitions if d.scope is None}
