"""Tree-sitter parser for multi-language code analysis."""
from pathlib import Path
from typing import Optional
from tree_sitter import Language, Parser, Tree
import tree_sitter_python as tspython
import tree_sitter_javascript as tsjavascript
import tree_sitter_typescript as tstypescript

from .errors import ExtractionFailure


class LanguageParser:
    """Multi-language parser using tree-sitter v0.22+ API."""

    SUPPORTED_LANGUAGES = {
        '.py': 'python',
        '.pyi': 'python',
        '.js': 'javascript',
        '.jsx': 'javascript',
        '.mjs': 'javascript',
        '.cjs': 'javascript',
        '.ts': 'typescript',
        '.mts': 'typescript',
        '.cts': 'typescript',
        '.tsx': 'tsx',
    }

    def __init__(self, language: str):
        """Initialize parser for given language.

        Args:
            language: One of 'python', 'javascript', 'typescript', 'tsx'

        Raises:
            ValueError: If language is not supported
        """
        self.language = language
        self.parser = self._create_parser()

    def _create_parser(self) -> Parser:
        """Factory method using the Parser(Language(capsule)) API.

        Returns:
            Configured Parser instance

        Raises:
            ValueError: If language is not supported
        """
        if self.language == 'python':
            lang = Language(tspython.language())
        elif self.language == 'javascript':
            lang = Language(tsjavascript.language())
        elif self.language == 'typescript':
            lang = Language(tstypescript.language_typescript())
        elif self.language == 'tsx':
            lang = Language(tstypescript.language_tsx())
        else:
            raise ValueError(f"Unsupported language: {self.language}")

        return Parser(lang)

    def parse_source(self, source_code: bytes, path: str = "<memory>") -> Tree:
        """Parse source bytes, rejecting trees that contain syntax errors.

        Args:
            source_code: Raw file contents
            path: Path key used in the failure message

        Returns:
            Parsed Tree object

        Raises:
            ExtractionFailure: If the bytes are not UTF-8 or the tree is malformed
        """
        try:
            source_code.decode('utf-8')
        except UnicodeDecodeError as exc:
            raise ExtractionFailure(path, f"not valid UTF-8 ({exc.reason})") from exc

        tree = self.parser.parse(source_code)
        if tree is None or tree.root_node is None:
            raise ExtractionFailure(path, "parser produced no syntax tree")
        if tree.root_node.has_error:
            line = _first_error_line(tree.root_node)
            raise ExtractionFailure(path, f"syntax error near line {line}")
        return tree

    @classmethod
    def language_for(cls, file_path: str | Path) -> Optional[str]:
        """Map a file extension to a parser language name, or None."""
        return cls.SUPPORTED_LANGUAGES.get(Path(file_path).suffix.lower())


def _first_error_line(node) -> int:
    stack = [node]
    while stack:
        current = stack.pop()
        if current.is_error or current.is_missing:
            return current.start_point[0] + 1
        if current.has_error:
            stack.extend(reversed(current.children))
    return node.start_point[0] + 1
