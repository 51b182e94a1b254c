"""Terminal-safe output helpers.

Detects the terminal encoding and swaps Unicode icons for ASCII on consoles
that cannot encode them (legacy Windows code pages, redirected pipes with a
non-UTF-8 locale).
"""
import locale
import sys
import time
from typing import Optional

from rich.console import Console
from rich.markup import escape


# Unicode to ASCII icon mapping
ICON_MAP = {
    # Status icons
    '✓': '[OK]',
    '✔': '[OK]',
    '✅': '[OK]',
    '✗': '[FAIL]',
    '✘': '[FAIL]',
    '❌': '[FAIL]',
    '⚠️': '[WARN]',
    '⚠': '[WARN]',
    '⚡': '[!]',

    # Arrows
    '→': '->',
    '←': '<-',
    '⇒': '=>',

    # Structure
    '│': '|',
    '─': '-',
    '└': '+',
    '├': '+',

    # Symbols
    '…': '...',
    '•': '*',
    '⚰': '[dead]',
    '🔍': '[search]',
    '📄': '[file]',
    '📊': '[stats]',
}


def detect_terminal_encoding() -> str:
    """Detect the terminal's encoding capability.

    Returns:
        str: Terminal encoding ('utf-8', 'cp1252', 'ascii', etc.)
    """
    if getattr(sys.stdout, 'encoding', None):
        return sys.stdout.encoding.lower()

    try:
        return locale.getpreferredencoding().lower()
    except (LookupError, ValueError):
        return 'ascii'


def is_utf8_capable() -> bool:
    """Check if the terminal can handle UTF-8 Unicode characters."""
    return detect_terminal_encoding().replace('_', '-') in ('utf-8', 'utf8')


def sanitize_for_terminal(text: str, force: bool = False) -> str:
    """Replace Unicode icons with ASCII equivalents if the terminal needs it.

    Args:
        text: Text potentially containing Unicode icons
        force: Sanitize even on a UTF-8 terminal

    Returns:
        str: Text safe for the current terminal
    """
    if not force and is_utf8_capable():
        return text

    sanitized = text
    for unicode_char, ascii_replacement in ICON_MAP.items():
        sanitized = sanitized.replace(unicode_char, ascii_replacement)
    return sanitized


class RunLogger:
    """Phase and detail lines for `--verbose` runs.

    Silent unless verbose; warnings and errors always print.
    """

    def __init__(self, console: Console, verbose: bool = False):
        self.console = console
        self.verbose = verbose
        self._started = time.perf_counter()
        self._phase: Optional[str] = None

    def elapsed(self) -> float:
        return time.perf_counter() - self._started

    def phase(self, name: str):
        if name == self._phase:
            return
        self._phase = name
        if self.verbose:
            self.console.print(f"[dim]{self.elapsed():6.2f}s[/dim] [bold blue]→ {escape(name)}[/bold blue]")

    def detail(self, message: str):
        if self.verbose:
            self.console.print(f"[dim]         {escape(message)}[/dim]")

    def warning(self, message: str):
        self.console.print(f"[yellow]⚠ {escape(message)}[/yellow]")

    def error(self, message: str):
        self.console.print(f"[bold red]Error:[/bold red] {escape(message)}")
