"""Configuration management for Bury.

Project settings live in `.bury.json` at the project root. Environment
variables (optionally loaded from a `.env` file) override the analysis
settings, and `tsconfig.json` supplies TypeScript path aliases.
"""
import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from dotenv import load_dotenv

from bury.analyzer.engine import AnalysisOptions
from bury.analyzer.entry_points import CONVENTIONS, DEFAULT_CONVENTIONS, default_entry_points
from bury.analyzer.errors import ConfigError
from bury.analyzer.model import EntryPointSpec
from bury.analyzer.resolver import DEFAULT_REEXPORT_DEPTH

# Version - keep in sync with pyproject.toml
__version__ = "0.1.0"

CONFIG_FILENAME = ".bury.json"

_ENTRY_KEYS = {'patterns', 'functions', 'decorators', 'conventions'}
_ANALYSIS_KEYS = {'max_reexport_depth', 'workers', 'speculative', 'source_roots'}
_TOP_KEYS = {'entry_points', 'ignore', 'analysis'}


class Config:
    """Environment overrides, loaded from the project's `.env` if present."""

    def __init__(self, project_root: Optional[Path] = None):
        """Initialize config by loading .env file.

        Args:
            project_root: Directory holding `.env`; defaults to the CWD
        """
        self.project_root = Path(project_root or ".").resolve()
        load_dotenv(self.project_root / ".env")

        self._validate()

    def _validate(self):
        """Parse numeric overrides eagerly.

        Raises:
            ConfigError: If BURY_WORKERS or BURY_MAX_REEXPORT_DEPTH is not a
                non-negative integer
        """
        for name in ("BURY_WORKERS", "BURY_MAX_REEXPORT_DEPTH"):
            self._int_env(name)

    @staticmethod
    def _int_env(name: str) -> Optional[int]:
        raw = os.getenv(name)
        if raw is None or raw.strip() == "":
            return None
        try:
            value = int(raw)
        except ValueError:
            raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
        if value < 0:
            raise ConfigError(f"{name} must not be negative, got {value}")
        return value

    @property
    def config_path(self) -> Path:
        """Path of the project config file.

        Priority:
        1. BURY_CONFIG environment variable (relative to the project root)
        2. `.bury.json` in the project root
        """
        return self.project_root / os.getenv("BURY_CONFIG", CONFIG_FILENAME)

    @property
    def workers(self) -> Optional[int]:
        return self._int_env("BURY_WORKERS")

    @property
    def max_reexport_depth(self) -> Optional[int]:
        return self._int_env("BURY_MAX_REEXPORT_DEPTH")


@dataclass
class ProjectConfig:
    """Validated contents of `.bury.json`."""
    entry_files: List[str] = field(default_factory=list)
    entry_functions: List[str] = field(default_factory=list)
    entry_decorators: List[str] = field(default_factory=list)
    conventions: List[str] = field(default_factory=lambda: list(DEFAULT_CONVENTIONS))
    ignore: List[str] = field(default_factory=list)
    max_reexport_depth: int = DEFAULT_REEXPORT_DEPTH
    workers: int = 0
    speculative: bool = True
    source_roots: List[str] = field(default_factory=lambda: ["", "src"])

    @classmethod
    def from_dict(cls, data: Any, source: str = CONFIG_FILENAME) -> 'ProjectConfig':
        """Validate a decoded config document.

        Raises:
            ConfigError: On unknown keys or values of the wrong type
        """
        if not isinstance(data, dict):
            raise ConfigError(f"{source}: top level must be an object")
        _reject_unknown(data, _TOP_KEYS, source)

        entry = data.get('entry_points', {})
        if not isinstance(entry, dict):
            raise ConfigError(f"{source}: 'entry_points' must be an object")
        _reject_unknown(entry, _ENTRY_KEYS, f"{source}: entry_points")

        analysis = data.get('analysis', {})
        if not isinstance(analysis, dict):
            raise ConfigError(f"{source}: 'analysis' must be an object")
        _reject_unknown(analysis, _ANALYSIS_KEYS, f"{source}: analysis")

        config = cls()
        config.entry_files = _string_list(entry, 'patterns', source, [])
        config.entry_functions = _string_list(entry, 'functions', source, [])
        config.entry_decorators = _string_list(entry, 'decorators', source, [])
        config.conventions = _string_list(entry, 'conventions', source, list(DEFAULT_CONVENTIONS))
        unknown = [c for c in config.conventions if c not in CONVENTIONS]
        if unknown:
            raise ConfigError(f"{source}: unknown convention(s) {', '.join(unknown)}; "
                              f"expected one of {', '.join(CONVENTIONS)}")
        config.ignore = _string_list(data, 'ignore', source, [])

        config.max_reexport_depth = _non_negative_int(analysis, 'max_reexport_depth', source,
                                                      DEFAULT_REEXPORT_DEPTH)
        config.workers = _non_negative_int(analysis, 'workers', source, 0)
        speculative = analysis.get('speculative', True)
        if not isinstance(speculative, bool):
            raise ConfigError(f"{source}: 'speculative' must be true or false")
        config.speculative = speculative
        config.source_roots = _string_list(analysis, 'source_roots', source, ["", "src"])
        return config

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_points": {
                "patterns": list(self.entry_files),
                "functions": list(self.entry_functions),
                "decorators": list(self.entry_decorators),
                "conventions": list(self.conventions),
            },
            "ignore": list(self.ignore),
            "analysis": {
                "max_reexport_depth": self.max_reexport_depth,
                "workers": self.workers,
                "speculative": self.speculative,
                "source_roots": list(self.source_roots),
            },
        }

    def apply_environment(self, env: Config) -> 'ProjectConfig':
        """Apply BURY_* overrides in place and return self."""
        if env.workers is not None:
            self.workers = env.workers
        if env.max_reexport_depth is not None:
            self.max_reexport_depth = env.max_reexport_depth
        return self

    def entry_point_specs(self, extra_files=(), extra_names=()) -> Tuple[EntryPointSpec, ...]:
        """EntryPointSpecs in declaration order; CLI additions come first."""
        specs = default_entry_points(entry_files=list(extra_files), names=list(extra_names),
                                     conventions=(), origin="command line")
        specs += default_entry_points(
            entry_files=self.entry_files,
            names=self.entry_functions,
            decorators=self.entry_decorators,
            conventions=self.conventions,
        )
        return tuple(dict.fromkeys(specs))

    def analysis_options(self, ts_paths: Optional[Dict[str, List[str]]] = None,
                         base_url: str = "") -> AnalysisOptions:
        return AnalysisOptions(
            max_reexport_depth=self.max_reexport_depth,
            workers=self.workers,
            follow_unresolved=self.speculative,
            source_roots=tuple(self.source_roots),
            ts_paths=dict(ts_paths or {}),
            base_url=base_url,
        )


def _reject_unknown(data: Dict[str, Any], allowed, where: str):
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigError(f"{where}: unknown key(s) {', '.join(repr(k) for k in unknown)}")


def _string_list(data: Dict[str, Any], key: str, source: str, default: List[str]) -> List[str]:
    if key not in data:
        return list(default)
    value = data[key]
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"{source}: '{key}' must be a list of strings")
    return list(value)


def _non_negative_int(data: Dict[str, Any], key: str, source: str, default: int) -> int:
    if key not in data:
        return default
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"{source}: '{key}' must be a non-negative integer")
    return value


def load_project_config(path: Path) -> ProjectConfig:
    """Load `.bury.json`; a missing file yields the defaults.

    Raises:
        ConfigError: If the file is not valid JSON or fails validation
    """
    path = Path(path)
    if not path.exists():
        return ProjectConfig()
    try:
        data = json.loads(path.read_text(encoding='utf-8-sig'))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path.name}: invalid JSON at line {exc.lineno}: {exc.msg}") from exc
    except OSError as exc:
        raise ConfigError(f"{path.name}: cannot read ({exc.strerror or exc})") from exc
    return ProjectConfig.from_dict(data, path.name)


def write_default_config(path: Path, force: bool = False) -> Path:
    """Write a default `.bury.json`.

    Raises:
        ConfigError: If the file exists and force is False
    """
    path = Path(path)
    if path.exists() and not force:
        raise ConfigError(f"{path.name} already exists (use --force to overwrite)")
    path.write_text(json.dumps(ProjectConfig().to_dict(), indent=2) + "\n", encoding='utf-8')
    return path


_JSONC_NOISE = re.compile(r'("(?:\\.|[^"\\])*")|//[^\n]*|/\*.*?\*/', re.DOTALL)
_TRAILING_COMMA = re.compile(r',(\s*[}\]])')


def load_tsconfig(project_root: Path) -> Tuple[Dict[str, List[str]], str, Optional[str]]:
    """Read `compilerOptions.paths` and `baseUrl` from tsconfig.json.

    tsconfig files are JSON with comments and trailing commas.

    Returns:
        (paths, base_url, problem) where problem describes why the file
        could not be used, or None
    """
    tsconfig = Path(project_root) / "tsconfig.json"
    if not tsconfig.exists():
        return {}, "", None
    try:
        text = tsconfig.read_text(encoding='utf-8-sig')
        text = _JSONC_NOISE.sub(lambda m: m.group(1) or '', text)
        data = json.loads(_TRAILING_COMMA.sub(r'\1', text))
    except (OSError, json.JSONDecodeError) as exc:
        return {}, "", f"tsconfig.json ignored: {exc}"

    options = data.get('compilerOptions', {}) if isinstance(data, dict) else {}
    if not isinstance(options, dict):
        return {}, "", "tsconfig.json ignored: compilerOptions is not an object"
    paths = options.get('paths', {})
    if not isinstance(paths, dict):
        return {}, "", "tsconfig.json ignored: compilerOptions.paths is not an object"
    aliases = {
        pattern: [t for t in targets if isinstance(t, str)]
        for pattern, targets in paths.items()
        if isinstance(targets, list)
    }
    base_url = options.get('baseUrl', "")
    return aliases, base_url if isinstance(base_url, str) else "", None


# Singleton instance
_config = None


def get_config(project_root: Optional[Path] = None) -> Config:
    """Get or create singleton Config instance.

    A different project_root replaces the cached instance.

    Returns:
        Config instance
    """
    global _config
    root = Path(project_root or ".").resolve()
    if _config is None or _config.project_root != root:
        _config = Config(root)
    return _config
