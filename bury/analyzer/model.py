"""Shared data model for extraction, resolution, graph building and reporting.

Everything produced by an extractor is frozen: the graph builder works on an
immutable snapshot of SourceUnits and never mutates them.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


MODULE_NODE_SUFFIX = "<module>"
EXPORTS_NODE_SUFFIX = "<exports>"


class Language(str, Enum):
    PYTHON = "python"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    TSX = "tsx"


class DefinitionKind(str, Enum):
    FUNCTION = "function"
    METHOD = "method"
    CLASS = "class"
    VARIABLE = "variable"
    INTERFACE = "interface"


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class ReferenceKind(str, Enum):
    CALL = "call"
    NAME = "name"
    ATTRIBUTE = "attribute"
    DECORATOR = "decorator"
    TYPE = "type"
    RE_EXPORT = "re-export"
    DYNAMIC = "dynamic"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"low": 0, "medium": 1, "high": 2}[self.value]


class WarningKind(str, Enum):
    EXTRACTION_FAILURE = "extraction-failure"
    EXTRACTION_WARNING = "extraction-warning"
    UNRESOLVED_BINDING = "unresolved-binding"
    RESOLUTION_AMBIGUITY = "resolution-ambiguity"
    DEPTH_EXCEEDED = "resolution-depth-exceeded"
    EMPTY_ROOT_SET = "empty-root-set"
    CONFIG = "config"


class EntryPointKind(str, Enum):
    FILE = "file"
    NAME = "name"
    DECORATOR = "decorator"
    CONVENTION = "convention"


class EdgeKind(str, Enum):
    REFERENCE = "reference"
    SCOPE = "scope"
    CONSTRUCTOR = "constructor"
    BASE_CLASS = "base-class"
    OVERRIDE = "override"
    IMPORT = "import"
    EXPORT = "export"
    PACKAGE = "package"


@dataclass(frozen=True)
class Span:
    line: int
    column: int
    end_line: int


@dataclass(frozen=True)
class Definition:
    """A named declaration that may be reported as dead code."""
    identifier: str
    name: str
    qualified_name: str
    kind: DefinitionKind
    file_path: str
    span: Span
    scope: Optional[str] = None  # identifier of the enclosing class/function
    visibility: Visibility = Visibility.PUBLIC
    exported: bool = False
    base_classes: Tuple[str, ...] = ()
    decorators: Tuple[str, ...] = ()

    @property
    def line(self) -> int:
        return self.span.line


@dataclass(frozen=True)
class Reference:
    """A use site of a name, as written in the source."""
    name: str
    kind: ReferenceKind
    file_path: str
    line: int
    column: int
    source: Optional[str] = None  # referencing Definition identifier, None at module level
    receiver: Optional[str] = None  # e.g. "self", "this", "super()", "Foo", "pkg.mod"
    receiver_type: Optional[str] = None  # inferred class name of the receiver


@dataclass(frozen=True)
class Binding:
    """An import or re-export as declared.

    imported_name is None for module/namespace imports, "*" for wildcards.
    """
    local_name: str
    module: str
    imported_name: Optional[str]
    file_path: str
    line: int
    source: Optional[str] = None
    re_export: bool = False

    @property
    def is_wildcard(self) -> bool:
        return self.imported_name == "*"

    @property
    def is_module(self) -> bool:
        return self.imported_name is None


@dataclass(frozen=True)
class SourceUnit:
    """Everything one extractor pass learned about a file."""
    path: str
    language: Language
    definitions: Tuple[Definition, ...] = ()
    references: Tuple[Reference, ...] = ()
    bindings: Tuple[Binding, ...] = ()
    exports: Tuple[Tuple[str, str], ...] = ()  # (exported name, local name)
    explicit_exports: bool = False
    entry_hints: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def module_node(self) -> str:
        return module_node_id(self.path)

    @property
    def exports_node(self) -> str:
        return exports_node_id(self.path)


def module_node_id(path: str) -> str:
    return f"{path}::{MODULE_NODE_SUFFIX}"


def exports_node_id(path: str) -> str:
    return f"{path}::{EXPORTS_NODE_SUFFIX}"


@dataclass(frozen=True)
class EntryPointSpec:
    kind: EntryPointKind
    pattern: str
    origin: str = "config"

    def describe(self) -> str:
        return f"{self.kind.value} entry point '{self.pattern}' ({self.origin})"


@dataclass(frozen=True)
class RunWarning:
    kind: WarningKind
    file: Optional[str]
    message: str

    def to_dict(self) -> Dict:
        return {"kind": self.kind.value, "file": self.file, "message": self.message}


@dataclass(frozen=True)
class DeadCodeFinding:
    identifier: str
    name: str
    kind: DefinitionKind
    declaring_file: str
    line: int
    column: int
    confidence: Confidence
    reason: str

    def sort_key(self) -> Tuple[str, int, int, str]:
        return (self.declaring_file, self.line, self.column, self.identifier)

    def to_dict(self) -> Dict:
        return {
            "identifier": self.identifier,
            "name": self.name,
            "kind": self.kind.value,
            "declaring_file": self.declaring_file,
            "line": self.line,
            "column": self.column,
            "confidence": self.confidence.value,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class SpeculativeReach:
    """A Definition kept alive only by a textual name match."""
    identifier: str
    name: str
    declaring_file: str
    line: int
    trigger_file: str
    trigger_line: int
    confidence: Confidence = Confidence.LOW

    def to_dict(self) -> Dict:
        return {
            "identifier": self.identifier,
            "name": self.name,
            "declaring_file": self.declaring_file,
            "line": self.line,
            "confidence": self.confidence.value,
            "reason": f"name matches unresolved reference at {self.trigger_file}:{self.trigger_line}",
        }


@dataclass
class AnalysisResult:
    findings: List[DeadCodeFinding] = field(default_factory=list)
    speculative: List[SpeculativeReach] = field(default_factory=list)
    warnings: List[RunWarning] = field(default_factory=list)
    roots: Dict[str, str] = field(default_factory=dict)  # node -> reason
    reachable: List[str] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)

    def findings_at_least(self, confidence: Confidence) -> List[DeadCodeFinding]:
        return [f for f in self.findings if f.confidence.rank >= confidence.rank]
