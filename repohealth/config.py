"""Configuration loading for repohealth (checker, analyzer, reporter and engine settings)."""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import yaml

from .analyzers.base import AnalyzerDefinition
from .errors import ConfigError
from .models import Repository, Severity

DEFAULT_CONFIG_PATH = Path(__file__).with_name("default_config.yml")
COMPLEXITY_CHECKER_ID = "cyclomatic-complexity"

_DURATION = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$", re.IGNORECASE)
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


@dataclass(frozen=True)
class CheckerDefinition:
    """Immutable definition of one checker as loaded from configuration."""

    id: str
    categories: Tuple[str, ...]
    severity: Severity = Severity.MEDIUM
    enabled: bool = True
    timeout: Optional[float] = None
    options: Mapping[str, Any] = field(default_factory=dict)
    exclusions: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "options", MappingProxyType(copy.deepcopy(dict(self.options))))

    @property
    def category(self) -> str:
        """Primary category attached to findings produced by this checker."""
        return self.categories[0] if self.categories else "general"


@dataclass(frozen=True)
class ReporterDefinition:
    """Reporter enablement, destination and format options."""

    id: str
    enabled: bool = False
    output_file: Optional[str] = None
    template: Optional[str] = None
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EngineConfig:
    """Scheduling engine settings."""

    max_concurrency: int = 4
    timeout: float = 300.0
    cache_enabled: bool = True
    cache_ttl: float = 300.0
    retry_attempts: int = 3
    retry_delay: float = 1.0
    cache_file: Optional[str] = None


@dataclass(frozen=True)
class LoggingConfig:
    """Global logging preferences."""

    level: str = "info"
    format: str = "text"
    quiet: bool = False


@dataclass
class HealthConfig:
    """Represents the full configuration document."""

    checkers: Dict[str, CheckerDefinition] = field(default_factory=dict)
    analyzers: Dict[str, AnalyzerDefinition] = field(default_factory=dict)
    reporters: Dict[str, ReporterDefinition] = field(default_factory=dict)
    engine: EngineConfig = field(default_factory=EngineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    repositories: List[Repository] = field(default_factory=list)
    source: Optional[Path] = None


def load_default_config() -> HealthConfig:
    """Return the built-in configuration."""
    return parse_config({})


def load_config(config_path: Path | str | None) -> HealthConfig:
    """Load configuration from disk, merged over the built-in defaults."""
    if config_path is None:
        return load_default_config()
    path = Path(config_path).expanduser()
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")
    data = _read_config(path)
    config = parse_config(data, base_dir=path.parent.resolve())
    config.source = path.resolve()
    return config


def parse_config(data: Mapping[str, Any], *, base_dir: Path | None = None) -> HealthConfig:
    """Build a :class:`HealthConfig` from an already-parsed mapping."""
    if not isinstance(data, Mapping):
        raise ConfigError("Configuration must contain a mapping at the root")
    defaults = _read_config(DEFAULT_CONFIG_PATH)
    merged = deep_merge(defaults, apply_legacy_blocks(data))

    checkers = {
        str(key): _parse_checker(str(key), value)
        for key, value in _as_dict(merged.get("checkers")).items()
    }
    analyzers = {
        str(key): _parse_analyzer(str(key), value)
        for key, value in _as_dict(merged.get("analyzers")).items()
    }
    reporters = {
        str(key): _parse_reporter(str(key), value)
        for key, value in _as_dict(merged.get("reporters")).items()
    }
    return HealthConfig(
        checkers=checkers,
        analyzers=analyzers,
        reporters=reporters,
        engine=_parse_engine(_as_dict(merged.get("engine"))),
        logging=_parse_logging(_as_dict(merged.get("global"))),
        repositories=_parse_repositories(merged.get("repositories"), base_dir or Path.cwd()),
    )


def apply_legacy_blocks(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Fold the flat ``cyclomatic_complexity``, ``languages`` and ``general`` blocks.

    Explicit ``checkers``, ``analyzers`` and ``engine`` entries always win; the
    flat blocks only provide keys those entries omit.
    """
    result: Dict[str, Any] = {
        key: copy.deepcopy(value)
        for key, value in data.items()
        if key not in {"cyclomatic_complexity", "languages", "general"}
    }

    flat = _as_dict(data.get("cyclomatic_complexity"))
    if flat:
        checkers = _as_dict(result.get("checkers"))
        explicit = _as_dict(checkers.get(COMPLEXITY_CHECKER_ID))
        legacy: Dict[str, Any] = {"options": {}}
        if "default_threshold" in flat:
            legacy["options"]["default_threshold"] = flat["default_threshold"]
        if "detailed_report" in flat:
            legacy["options"]["detailed_report"] = flat["detailed_report"]
        if isinstance(flat.get("language_specific"), Mapping):
            legacy["options"]["thresholds"] = dict(flat["language_specific"])
        combined = deep_merge(legacy, explicit)
        exclusions = _union(_as_str_list(flat.get("exclusions")), _as_str_list(explicit.get("exclusions")))
        if exclusions:
            combined["exclusions"] = exclusions
        checkers[COMPLEXITY_CHECKER_ID] = combined
        result["checkers"] = checkers

    languages = _as_dict(data.get("languages"))
    if languages:
        analyzers = _as_dict(result.get("analyzers"))
        for language, raw in languages.items():
            block = _as_dict(raw)
            legacy_analyzer: Dict[str, Any] = {}
            patterns = _as_str_list(block.get("patterns"))
            if patterns:
                legacy_analyzer["file_extensions"] = [_pattern_to_extension(item) for item in patterns]
            if "exclusions" in block:
                legacy_analyzer["exclude_patterns"] = _as_str_list(block.get("exclusions"))
            if "complexity_threshold" in block:
                legacy_analyzer["complexity_threshold"] = block["complexity_threshold"]
            if "enable_function_level" in block:
                legacy_analyzer["function_level"] = block["enable_function_level"]
            analyzers[str(language)] = deep_merge(legacy_analyzer, _as_dict(analyzers.get(language)))
        result["analyzers"] = analyzers

    general = _as_dict(data.get("general"))
    if general:
        legacy_engine: Dict[str, Any] = {}
        for source_key, target_key in (
            ("timeout", "timeout"),
            ("max_concurrency", "max_concurrency"),
            ("cache_results", "cache_enabled"),
            ("cache_ttl", "cache_ttl"),
        ):
            if source_key in general:
                legacy_engine[target_key] = general[source_key]
        result["engine"] = deep_merge(legacy_engine, _as_dict(result.get("engine")))

    return result


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` onto ``base``; lists and scalars are replaced."""
    merged: Dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def parse_duration(value: Any, *, name: str = "duration") -> float:
    """Parse ``30``, ``"30s"``, ``"5m"``, ``"250ms"`` or ``"1h"`` into seconds."""
    if isinstance(value, bool):
        raise ConfigError(f"Invalid {name}: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ConfigError(f"Invalid {name}: {value!r} must not be negative")
        return float(value)
    if isinstance(value, str):
        match = _DURATION.match(value)
        if match:
            amount, unit = match.groups()
            return float(amount) * _DURATION_UNITS[(unit or "s").lower()]
    raise ConfigError(f"Invalid {name}: {value!r}")


def _read_config(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"{path.name} must contain a mapping at the root")
    return loaded


def _parse_checker(checker_id: str, raw: Any) -> CheckerDefinition:
    data = _as_dict(raw)
    options = data.get("options") or {}
    if not isinstance(options, Mapping):
        raise ConfigError(f"Checker '{checker_id}': options must be a mapping")
    try:
        severity = Severity.parse(data.get("severity", "medium"))
    except ValueError as exc:
        raise ConfigError(f"Checker '{checker_id}': {exc}") from exc
    timeout = data.get("timeout")
    return CheckerDefinition(
        id=checker_id,
        categories=tuple(_as_str_list(data.get("categories"))),
        severity=severity,
        enabled=_require_bool(data.get("enabled", True), f"checkers.{checker_id}.enabled"),
        timeout=None if timeout is None else parse_duration(timeout, name=f"checkers.{checker_id}.timeout"),
        options=dict(options),
        exclusions=tuple(_as_str_list(data.get("exclusions"))),
    )


def _parse_analyzer(language: str, raw: Any) -> AnalyzerDefinition:
    data = _as_dict(raw)
    extensions = tuple(
        ext if ext.startswith(".") else f".{ext}"
        for ext in (item.lower() for item in _as_str_list(data.get("file_extensions")))
    )
    threshold = data.get("complexity_threshold")
    if threshold is not None and (isinstance(threshold, bool) or not isinstance(threshold, int)):
        raise ConfigError(f"Analyzer '{language}': complexity_threshold must be an integer")
    enabled = _require_bool(data.get("enabled", True), f"analyzers.{language}.enabled")
    complexity_enabled = _require_bool(
        data.get("complexity_enabled", True), f"analyzers.{language}.complexity_enabled"
    )
    return AnalyzerDefinition(
        language=language,
        file_extensions=extensions,
        exclude_patterns=tuple(_as_str_list(data.get("exclude_patterns"))),
        complexity_threshold=threshold,
        function_level=_require_bool(data.get("function_level", True), f"analyzers.{language}.function_level"),
        enabled=enabled and complexity_enabled,
    )


def _parse_reporter(reporter_id: str, raw: Any) -> ReporterDefinition:
    data = _as_dict(raw)
    options = data.get("options") or {}
    if not isinstance(options, Mapping):
        raise ConfigError(f"Reporter '{reporter_id}': options must be a mapping")
    return ReporterDefinition(
        id=reporter_id,
        enabled=_require_bool(data.get("enabled", False), f"reporters.{reporter_id}.enabled"),
        output_file=_as_str(data.get("output_file")) or None,
        template=_as_str(data.get("template")) or None,
        options=dict(options),
    )


def _parse_engine(data: Dict[str, Any]) -> EngineConfig:
    defaults = EngineConfig()
    max_concurrency = _as_int(data.get("max_concurrency", defaults.max_concurrency))
    if max_concurrency is None or max_concurrency < 1:
        raise ConfigError("engine.max_concurrency must be a positive integer")
    retry_attempts = _as_int(data.get("retry_attempts", defaults.retry_attempts))
    if retry_attempts is None or retry_attempts < 0:
        raise ConfigError("engine.retry_attempts must be a non-negative integer")
    return EngineConfig(
        max_concurrency=max_concurrency,
        timeout=parse_duration(data.get("timeout", defaults.timeout), name="engine.timeout"),
        cache_enabled=_require_bool(data.get("cache_enabled", defaults.cache_enabled), "engine.cache_enabled"),
        cache_ttl=parse_duration(data.get("cache_ttl", defaults.cache_ttl), name="engine.cache_ttl"),
        retry_attempts=retry_attempts,
        retry_delay=parse_duration(data.get("retry_delay", defaults.retry_delay), name="engine.retry_delay"),
        cache_file=_as_str(data.get("cache_file")) or None,
    )


def _parse_logging(data: Dict[str, Any]) -> LoggingConfig:
    return LoggingConfig(
        level=_as_str(data.get("log_level")) or "info",
        format=_as_str(data.get("log_format")) or "text",
        quiet=bool(_as_bool(data.get("quiet_mode"))),
    )


def _parse_repositories(value: Any, base_dir: Path) -> List[Repository]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError("repositories must be a list")
    repositories: List[Repository] = []
    for index, raw in enumerate(value):
        entry = _as_dict(raw)
        path_value = _as_str(entry.get("path"))
        if not path_value:
            raise ConfigError(f"repositories[{index}] is missing a path")
        path = Path(path_value).expanduser()
        if not path.is_absolute():
            path = base_dir / path
        name = _as_str(entry.get("name")) or path.name
        repositories.append(
            Repository(name=name, path=str(path), tags=tuple(_as_str_list(entry.get("tags"))))
        )
    return repositories


def filter_repositories(
    repositories: Sequence[Repository],
    include_tags: Sequence[str] = (),
    exclude_tags: Sequence[str] = (),
) -> List[Repository]:
    """Apply tag filters with the same include-then-exclude rule as categories."""
    include = {tag.lower() for tag in include_tags}
    exclude = {tag.lower() for tag in exclude_tags}
    selected: List[Repository] = []
    for repository in repositories:
        tags = {tag.lower() for tag in repository.tags}
        if include and not tags & include:
            continue
        if tags & exclude:
            continue
        selected.append(repository)
    return selected


def _pattern_to_extension(pattern: str) -> str:
    return pattern[1:] if pattern.startswith("*") else pattern


def _union(first: Sequence[str], second: Sequence[str]) -> List[str]:
    seen: List[str] = []
    for item in list(first) + list(second):
        if item not in seen:
            seen.append(item)
    return seen


def _require_bool(value: Any, name: str) -> bool:
    result = _as_bool(value)
    if result is None:
        raise ConfigError(f"{name} must be a boolean")
    return result


def _as_dict(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "COMPLEXITY_CHECKER_ID",
    "CheckerDefinition",
    "EngineConfig",
    "HealthConfig",
    "LoggingConfig",
    "ReporterDefinition",
    "apply_legacy_blocks",
    "deep_merge",
    "filter_repositories",
    "load_config",
    "load_default_config",
    "parse_config",
    "parse_duration",
]
