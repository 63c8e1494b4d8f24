"""Parsed alias configuration for the project alias expander."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .expandable import parse_expandable
from .types import RawFlagTable

DEFAULT_MAX_CONCURRENT = 5
DEFAULT_TIMEOUT_MS = 300000

PACKAGE_SUFFIXES = ("core", "ext")
RESERVED_NAMES = ("help", "install", "remove", "refresh", "load")

ALIAS_TABLES = ("nxPackages", "feature-nxTargets", "not-nxTargets", "expandable-commands")
FLAG_TABLES = (
    "expandable-flags",
    "internal-flags",
    "env-setting-flags",
    "expandable-templates",
)


@dataclass(frozen=True)
class PackageDescriptor:
    """A package alias entry: ``{"name": ..., "suffix": "core"|"ext", "full": bool}``."""

    name: str
    suffix: Optional[str] = None
    full: bool = False
    literal: bool = False

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["PackageDescriptor"]:
        if isinstance(raw, str):
            return cls(name=raw, literal=True) if raw else None
        if not isinstance(raw, Mapping) or not isinstance(raw.get("name"), str):
            return None
        suffix = raw.get("suffix")
        return cls(
            name=raw["name"],
            suffix=suffix if isinstance(suffix, str) and suffix else None,
            full=bool(raw.get("full")) or bool(raw.get("variants")),
        )


@dataclass(frozen=True)
class FeatureDescriptor:
    """A feature alias entry: ``{"run-from": "core"|"ext", "run-target": ...}``."""

    run_target: str
    run_from: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["FeatureDescriptor"]:
        if not isinstance(raw, Mapping) or not isinstance(raw.get("run-target"), str):
            return None
        run_from = raw.get("run-from")
        return cls(
            run_target=raw["run-target"],
            run_from=run_from if isinstance(run_from, str) and run_from else None,
        )


def _strip_desc(raw: Any) -> Dict[str, Any]:
    """Copy a config table without its ``desc`` entry; non-mappings become empty."""
    if not isinstance(raw, Mapping):
        return {}
    return {str(key): value for key, value in raw.items() if key != "desc"}


def _positive_int(raw: Any, default: int) -> int:
    if isinstance(raw, bool):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


@dataclass
class AliasConfig:
    """Read-only view of a loaded configuration."""

    packages: Dict[str, PackageDescriptor] = field(default_factory=dict)
    features: Dict[str, FeatureDescriptor] = field(default_factory=dict)
    nx_targets: Dict[str, str] = field(default_factory=dict)
    not_nx_targets: Dict[str, str] = field(default_factory=dict)
    expandable_commands: Dict[str, str] = field(default_factory=dict)
    expandable_flags: RawFlagTable = field(default_factory=dict)
    internal_flags: RawFlagTable = field(default_factory=dict)
    env_setting_flags: RawFlagTable = field(default_factory=dict)
    expandable_templates: RawFlagTable = field(default_factory=dict)
    context_aware_flags: Dict[str, Any] = field(default_factory=dict)
    commands: Dict[str, str] = field(default_factory=dict)
    package_scope: Optional[str] = None
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    default_timeout_ms: int = DEFAULT_TIMEOUT_MS
    source: Optional[str] = None
    problems: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], source: Optional[str] = None) -> "AliasConfig":
        """
        Build an AliasConfig from the JSON-shaped *data*.

        Entries that do not have the expected shape are skipped and described in
        ``problems`` so the caller can report them without aborting.
        """
        config = cls(source=source)
        if not isinstance(data, Mapping):
            config.problems.append("configuration root must be an object")
            return config

        for alias, raw in _strip_desc(data.get("nxPackages")).items():
            descriptor = PackageDescriptor.from_raw(raw)
            if descriptor is None:
                config.problems.append(f"nxPackages.{alias}: expected a name or a package object")
            else:
                if descriptor.suffix and descriptor.suffix not in PACKAGE_SUFFIXES:
                    config.problems.append(
                        f"nxPackages.{alias}: unusual suffix '{descriptor.suffix}'"
                    )
                config.packages[alias] = descriptor

        for alias, raw in _strip_desc(data.get("feature-nxTargets")).items():
            feature = FeatureDescriptor.from_raw(raw)
            if feature is None:
                config.problems.append(f"feature-nxTargets.{alias}: missing 'run-target'")
            else:
                config.features[alias] = feature

        config.nx_targets = config._string_table(data, "nxTargets")
        config.not_nx_targets = config._string_table(data, "not-nxTargets")
        config.expandable_commands = config._string_table(data, "expandable-commands")
        config.commands = config._string_table(data, "commands")

        config.expandable_flags = _strip_desc(data.get("expandable-flags"))
        config.internal_flags = _strip_desc(data.get("internal-flags"))
        config.env_setting_flags = _strip_desc(data.get("env-setting-flags"))
        config.expandable_templates = _strip_desc(data.get("expandable-templates"))
        config.context_aware_flags = _strip_desc(data.get("context-aware-flags"))

        scope = data.get("package-scope")
        if isinstance(scope, str) and scope:
            config.package_scope = scope.rstrip("/")

        pool = data.get("pool") if isinstance(data.get("pool"), Mapping) else {}
        config.max_concurrent = _positive_int(pool.get("max-concurrent"), DEFAULT_MAX_CONCURRENT)
        config.default_timeout_ms = _positive_int(pool.get("default-timeout"), DEFAULT_TIMEOUT_MS)

        return config

    def _string_table(self, data: Mapping[str, Any], key: str) -> Dict[str, str]:
        table: Dict[str, str] = {}
        for name, value in _strip_desc(data.get(key)).items():
            if isinstance(value, str):
                table[name] = value
            else:
                self.problems.append(f"{key}.{name}: expected a string")
        return table

    def alias_tables(self) -> Dict[str, List[str]]:
        """Alias-classifying table names mapped to their keys."""
        return {
            "nxPackages": list(self.packages),
            "feature-nxTargets": list(self.features),
            "not-nxTargets": list(self.not_nx_targets),
            "expandable-commands": list(self.expandable_commands),
        }

    def flag_tables(self) -> Dict[str, RawFlagTable]:
        return {
            "expandable-flags": self.expandable_flags,
            "internal-flags": self.internal_flags,
            "env-setting-flags": self.env_setting_flags,
            "expandable-templates": self.expandable_templates,
        }

    def validate(self) -> List[str]:
        """
        Check the configuration and return human readable problems.

        Reports entries skipped while parsing, alias keys that appear in more than
        one alias table, aliases shadowed by reserved command names and flag
        entries that cannot be expanded. An empty list means the config is clean.
        """
        problems = list(self.problems)

        seen: Dict[str, str] = {}
        for table, keys in self.alias_tables().items():
            for key in keys:
                if key in RESERVED_NAMES:
                    problems.append(f"{table}.{key}: shadowed by the reserved command '{key}'")
                if key in seen:
                    problems.append(f"alias '{key}' is defined in both {seen[key]} and {table}")
                else:
                    seen[key] = table

        for table, flags in self.flag_tables().items():
            for flag, raw in flags.items():
                if parse_expandable(raw) is None:
                    problems.append(f"{table}.{flag}: unsupported flag entry")

        return problems
