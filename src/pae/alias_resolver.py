"""Alias and target resolution for the project alias expander."""

import shlex
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .alias_config import RESERVED_NAMES, AliasConfig, FeatureDescriptor, PackageDescriptor
from .environment_helper import debug_log
from .exceptions import UnknownAliasError
from .types import ArgsList

RESERVED_COMMANDS = RESERVED_NAMES
DEFAULT_TARGET = "b"
RUN_MANY_SCOPES = ("ext", "core", "all")


class ResolutionType(Enum):
    RESERVED = "reserved"
    EXPANDABLE = "expandable"
    PACKAGE = "package"
    FEATURE = "feature"
    NOT_NX = "not_nx"
    RUN_MANY = "run_many"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PackageResolution:
    """The Nx project an alias points at."""

    package_name: str
    full_name: str
    variant: Optional[str] = None
    is_full: bool = False


@dataclass(frozen=True)
class TargetResolution:
    """A target shortcut, its canonical Nx target and any args the target carries."""

    target: str
    expanded_target: str
    leading_args: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Resolution:
    """
    Classification of the first CLI token.

    ``command`` is the reserved command name, the literal shell command of an
    expandable or not-nx alias, or the project name of a package or feature alias.
    """

    type: ResolutionType
    token: str
    command: str = ""
    package: Optional[PackageResolution] = None
    feature: Optional[FeatureDescriptor] = None

    @property
    def is_unknown(self) -> bool:
        return self.type is ResolutionType.UNKNOWN


@dataclass(frozen=True)
class PackageInvocation:
    """Everything needed to build ``nx run <project>:<target>``."""

    package: PackageResolution
    target: TargetResolution
    args: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def run_spec(self) -> str:
        return f"{self.package.full_name}:{self.target.expanded_target}"


@dataclass(frozen=True)
class RunManyInvocation:
    """A target run across every project of a scope with ``nx run-many``."""

    scope: str
    projects: Tuple[str, ...]
    target: TargetResolution
    args: Tuple[str, ...] = field(default_factory=tuple)


class AliasResolver:
    """Maps alias tokens and target shortcuts onto configuration entries."""

    @staticmethod
    def resolve(token: str, config: AliasConfig) -> Resolution:
        """
        Classify *token* against the config.

        Lookup order: reserved command names, ``expandable-commands``,
        ``nxPackages``, ``feature-nxTargets``, ``not-nxTargets``, then the
        run-many scopes ``ext``, ``core`` and ``all``. The first match wins. Nothing here raises; an unmatched token resolves to UNKNOWN.
        """
        if token in RESERVED_COMMANDS:
            return Resolution(ResolutionType.RESERVED, token, command=token)

        if token in config.expandable_commands:
            return Resolution(
                ResolutionType.EXPANDABLE, token, command=config.expandable_commands[token]
            )

        if token in config.packages:
            package = AliasResolver.resolve_package(token, config)
            return Resolution(
                ResolutionType.PACKAGE, token, command=package.full_name, package=package
            )

        if token in config.features:
            feature = config.features[token]
            package = AliasResolver.project_for(
                PackageDescriptor(name=token, suffix=feature.run_from), config
            )
            return Resolution(
                ResolutionType.FEATURE,
                token,
                command=package.full_name,
                package=package,
                feature=feature,
            )

        if token in config.not_nx_targets:
            return Resolution(ResolutionType.NOT_NX, token, command=config.not_nx_targets[token])

        if token in RUN_MANY_SCOPES:
            return Resolution(ResolutionType.RUN_MANY, token, command=token)

        debug_log(f"resolve: no alias table contains {token!r}")
        return Resolution(ResolutionType.UNKNOWN, token)

    @staticmethod
    def project_for(
        descriptor: PackageDescriptor, config: AliasConfig, variant: Optional[str] = None
    ) -> PackageResolution:
        """
        Build the project name for a package descriptor.

        Literal entries are used verbatim. Descriptors become
        ``<package-scope>/<name>-<suffix>``; *variant* replaces the suffix when
        given.
        """
        if descriptor.literal:
            return PackageResolution(descriptor.name, descriptor.name, is_full=descriptor.full)

        suffix = variant or descriptor.suffix
        full_name = f"{descriptor.name}-{suffix}" if suffix else descriptor.name
        if config.package_scope and not full_name.startswith("@"):
            full_name = f"{config.package_scope}/{full_name}"

        return PackageResolution(
            package_name=descriptor.name,
            full_name=full_name,
            variant=suffix,
            is_full=descriptor.full,
        )

    @staticmethod
    def resolve_package(
        alias: str, config: AliasConfig, variant: Optional[str] = None
    ) -> PackageResolution:
        """Resolve a package alias; raises UnknownAliasError when it is not one."""
        descriptor = config.packages.get(alias)
        if descriptor is None:
            raise UnknownAliasError(alias)
        return AliasResolver.project_for(descriptor, config, variant)

    @staticmethod
    def extract_target(args: ArgsList) -> Tuple[str, ArgsList]:
        """Take the target shortcut off the front of *args*; defaults to 'b'."""
        if args and args[0] and not args[0].startswith("-"):
            return args[0], list(args[1:])
        return DEFAULT_TARGET, list(args)

    @staticmethod
    def resolve_target(target: str, config: AliasConfig) -> TargetResolution:
        """Expand a target shortcut through ``nxTargets``; unknown shortcuts pass through."""
        return TargetResolution(target, config.nx_targets.get(target, target))

    @staticmethod
    def split_run_target(target: str, run_target: str) -> TargetResolution:
        """Split a feature ``run-target`` like ``test:deps --output-style=stream``."""
        try:
            parts = shlex.split(run_target)
        except ValueError:
            parts = run_target.split()
        parts = parts or [target]
        return TargetResolution(target, parts[0], tuple(parts[1:]))

    @staticmethod
    def resolve_package_invocation(
        alias: str, args: ArgsList, config: AliasConfig
    ) -> PackageInvocation:
        """
        Resolve ``<alias> [target] [args...]`` for a package alias.

        Full packages whose target shortcut names a ``feature-nxTargets`` entry
        are re-resolved with that entry's ``run-from`` variant and run its
        ``run-target``.
        """
        package = AliasResolver.resolve_package(alias, config)
        target, rest = AliasResolver.extract_target(args)

        feature = config.features.get(target)
        if package.is_full and feature is not None:
            package = AliasResolver.resolve_package(alias, config, feature.run_from)
            resolved = AliasResolver.split_run_target(target, feature.run_target)
            debug_log(f"resolve_package_invocation: feature target {target} -> {package.full_name}")
        else:
            resolved = AliasResolver.resolve_target(target, config)

        return PackageInvocation(package, resolved, tuple(rest))

    @staticmethod
    def resolve_feature_invocation(
        alias: str, args: ArgsList, config: AliasConfig
    ) -> PackageInvocation:
        """Resolve a feature alias used directly as the first token."""
        resolution = AliasResolver.resolve(alias, config)
        if resolution.type is not ResolutionType.FEATURE:
            raise UnknownAliasError(alias)
        target = AliasResolver.split_run_target(alias, resolution.feature.run_target)
        return PackageInvocation(resolution.package, target, tuple(args))

    @staticmethod
    def run_many_projects(scope: str, config: AliasConfig) -> List[str]:
        """
        Projects a run-many scope covers, in ``nxPackages`` order.

        ``all`` takes every package's project; ``ext`` and ``core`` take the
        projects whose name ends in ``-ext`` or ``-core``. Aliases that point at
        the same project contribute it once.
        """
        projects: List[str] = []
        for descriptor in config.packages.values():
            project = AliasResolver.project_for(descriptor, config).full_name
            if scope != "all" and not project.endswith(f"-{scope}"):
                continue
            if project not in projects:
                projects.append(project)
        return projects

    @staticmethod
    def resolve_run_many_invocation(
        scope: str, args: ArgsList, config: AliasConfig
    ) -> RunManyInvocation:
        """Resolve ``ext|core|all [target] [args...]``."""
        if scope not in RUN_MANY_SCOPES:
            raise UnknownAliasError(scope)
        target, rest = AliasResolver.extract_target(args)
        return RunManyInvocation(
            scope,
            tuple(AliasResolver.run_many_projects(scope, config)),
            AliasResolver.resolve_target(target, config),
            tuple(rest),
        )

    @staticmethod
    def available_aliases(config: AliasConfig) -> Dict[str, ArgsList]:
        """Alias categories listed when a token cannot be resolved."""
        categories = {"Packages": list(config.packages)}
        if config.features:
            categories["Features"] = list(config.features)
        if config.not_nx_targets:
            categories["Not-NX"] = list(config.not_nx_targets)
        if config.expandable_commands:
            categories["Commands"] = list(config.expandable_commands)
        return categories


def resolve(token: str, config: AliasConfig) -> Resolution:
    return AliasResolver.resolve(token, config)
