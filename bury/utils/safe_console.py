"""Rich Console wrapper that degrades Unicode icons on non-UTF-8 terminals."""
from rich.console import Console
from typing import Any
from .logger import sanitize_for_terminal, is_utf8_capable


class SafeConsole(Console):
    """Console that sanitizes Unicode output for legacy terminals.

    Overrides print() and status() only; everything else is Rich's Console.
    """

    def __init__(self, *args, **kwargs):
        """Initialize SafeConsole with UTF-8 capability detection.

        All arguments are passed through to Rich's Console.
        """
        self._needs_sanitization = not is_utf8_capable()

        # legacy_windows keeps Rich from emitting Unicode spinners and box chars
        if self._needs_sanitization:
            kwargs['legacy_windows'] = True

        super().__init__(*args, **kwargs)

    def print(self, *objects: Any, **kwargs) -> None:
        """Print, replacing Unicode icons in plain strings when required.

        Args:
            *objects: Objects to print (same as Rich Console.print)
            **kwargs: Keyword arguments (same as Rich Console.print)
        """
        if self._needs_sanitization:
            objects = tuple(
                sanitize_for_terminal(obj, force=True) if isinstance(obj, str) else obj
                for obj in objects
            )
        super().print(*objects, **kwargs)

    def status(self, *args, **kwargs):
        """Create a status context with an ASCII spinner when required.

        Args:
            *args: Positional arguments (same as Rich Console.status)
            **kwargs: Keyword arguments (same as Rich Console.status)

        Returns:
            Rich Status context manager
        """
        if self._needs_sanitization:
            kwargs['spinner'] = 'line'
        return super().status(*args, **kwargs)
