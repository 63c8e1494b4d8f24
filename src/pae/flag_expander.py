"""Flag parsing and expansion for the project alias expander."""

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .environment_helper import debug_log
from .exceptions import FlagParseError
from .expandable import (
    DEFAULT_POSITION,
    ExpandableValue,
    Literal,
    Many,
    PerShell,
    Single,
    entry_defaults,
    entry_mutation,
    parse_expandable,
)
from .template_engine import (
    apply_mutation,
    expand_template,
    merge_variables,
    process_shell_specific_template,
)
from .types import ArgsList, FlagKeyValue, RawFlagTable, ShellType, SplitResult, Variables

FLAG_VALUE_PATTERN = re.compile(r"^-([^=:]+)[=:](.+)$")
SEPARATOR = "--"


@dataclass
class FlagExpansionResult:
    """Expanded fragments per position plus the tokens no flag claimed."""

    start: ArgsList = field(default_factory=list)
    prefix: ArgsList = field(default_factory=list)
    pre_args: ArgsList = field(default_factory=list)
    suffix: ArgsList = field(default_factory=list)
    end: ArgsList = field(default_factory=list)
    remaining_args: ArgsList = field(default_factory=list)

    def bucket(self, position: Optional[str]) -> ArgsList:
        return {
            "start": self.start,
            "prefix": self.prefix,
            "preArgs": self.pre_args,
            "suffix": self.suffix,
            "end": self.end,
        }.get(position or DEFAULT_POSITION, self.suffix)

    def fragments(self) -> ArgsList:
        """All expanded fragments in command order, without the remaining args."""
        return [*self.start, *self.prefix, *self.pre_args, *self.suffix, *self.end]

    def all_tokens(self) -> ArgsList:
        return [*self.fragments(), *self.remaining_args]

    def extend(self, other: "FlagExpansionResult") -> "FlagExpansionResult":
        """Return a new result with *other* appended bucket by bucket."""
        return FlagExpansionResult(
            start=[*self.start, *other.start],
            prefix=[*self.prefix, *other.prefix],
            pre_args=[*self.pre_args, *other.pre_args],
            suffix=[*self.suffix, *other.suffix],
            end=[*self.end, *other.end],
            remaining_args=[*self.remaining_args, *other.remaining_args],
        )


class FlagExpander:
    """Handles flag parsing and expansion against a flag table."""

    @staticmethod
    def split_at_separator(args: ArgsList) -> SplitResult:
        """Split arguments at '--' separator; the passthrough part keeps the '--'."""
        if SEPARATOR in args:
            idx = args.index(SEPARATOR)
            return args[:idx], args[idx:]
        return args, []

    @staticmethod
    def parse_expandable_flag(token: str) -> FlagKeyValue:
        """
        Parse a dash token into ``(key, value)``.

        ``-x`` gives ``('x', None)``, ``--name=value`` gives ``('-name', 'value')``
        and ``--flag`` gives ``('-flag', None)``. Only the first dash is stripped,
        so double-dash keys stay apart from single-dash ones in a flag table.
        ``:`` works as a value separator too (``-sto:5``).
        """
        if not token.startswith("-") or token in ("-", SEPARATOR):
            raise FlagParseError(token, "not a flag")

        match = FLAG_VALUE_PATTERN.match(token)
        if match:
            return match.group(1), match.group(2)
        return token[1:], None

    @staticmethod
    def expand_flags(
        args: ArgsList,
        expandables: Optional[Mapping[str, Any]] = None,
        shell_type: ShellType = "linux",
    ) -> FlagExpansionResult:
        """
        Expand every flag found in *expandables* and collect the rest.

        Tokens are visited left to right. A flag whose key is in the table
        contributes its expansion to the bucket of its position (``suffix`` when
        none is given); per-shell entries contribute start and end fragments.
        A single-dash token that is not a key is tried as a bundle of short
        flags, so ``-sf`` expands like ``-s -f``.
        All other tokens land in ``remaining_args`` in their original order.
        """
        table = expandables or {}
        result = FlagExpansionResult()

        for token in args:
            if not token.startswith("-"):
                result.remaining_args.append(token)
                continue

            try:
                key, value = FlagExpander.parse_expandable_flag(token)
            except FlagParseError as e:
                debug_log(f"expand_flags: passing through {token!r}: {e}")
                result.remaining_args.append(token)
                continue

            if key not in table:
                if not FlagExpander._expand_bundle(key, value, table, shell_type, result):
                    result.remaining_args.append(token)
                continue

            expandable = parse_expandable(table[key])
            variables = FlagExpander._flag_variables(key, value, expandable)
            FlagExpander._route(expandable, variables, shell_type, result)

        return result

    @staticmethod
    def _expand_bundle(
        key: str,
        value: Optional[str],
        table: Mapping[str, Any],
        shell_type: ShellType,
        result: FlagExpansionResult,
    ) -> bool:
        """
        Expand a short-flag bundle such as ``-sf`` one character at a time.

        Only applies when no character sequence matched as a whole and at least
        one character is a key. Characters that are not keys are kept as
        ``-<c>`` in ``remaining_args``. Returns False when the token is not a
        bundle.
        """
        if value is not None or len(key) < 2 or key.startswith("-"):
            return False
        if not any(char in table for char in key):
            return False

        debug_log(f"expand_flags: splitting bundle -{key}")
        for char in key:
            if char not in table:
                result.remaining_args.append(f"-{char}")
                continue
            expandable = parse_expandable(table[char])
            variables = FlagExpander._flag_variables(char, None, expandable)
            FlagExpander._route(expandable, variables, shell_type, result)
        return True

    @staticmethod
    def _flag_variables(
        key: str, value: Optional[str], expandable: Optional[ExpandableValue]
    ) -> Variables:
        """
        Build the variable set for one flag occurrence.

        A captured value overrides the first declared default, or is bound to the
        flag name and to ``value`` when the entry declares no defaults. The
        entry's mutation is applied to whichever value ends up bound.
        """
        defaults = entry_defaults(expandable)
        mutation = entry_mutation(expandable)
        variables = dict(defaults)

        if defaults:
            first = next(iter(defaults))
            bound = value if value is not None else defaults[first]
            variables[first] = apply_mutation(bound, mutation)
        elif value is not None:
            bound = apply_mutation(value, mutation)
            variables[key.lstrip("-")] = bound
            variables["value"] = bound

        return variables

    @staticmethod
    def _route(
        expandable: Optional[ExpandableValue],
        variables: Variables,
        shell_type: ShellType,
        result: FlagExpansionResult,
    ) -> None:
        """Append the expansion of one flag to the matching buckets."""
        if isinstance(expandable, Literal):
            result.suffix.append(expandable.value)
        elif isinstance(expandable, Single):
            FlagExpander._append(
                result.bucket(expandable.item.position),
                expand_template(
                    expandable.item.template,
                    merge_variables(expandable.item.defaults, variables),
                ),
            )
        elif isinstance(expandable, Many):
            for item in expandable.items:
                FlagExpander._append(
                    result.bucket(item.position),
                    expand_template(item.template, merge_variables(item.defaults, variables)),
                )
        elif isinstance(expandable, PerShell):
            start, end = process_shell_specific_template(expandable, variables, shell_type)
            result.start.extend(fragment for fragment in start if fragment)
            result.end.extend(fragment for fragment in end if fragment)

    @staticmethod
    def _append(bucket: ArgsList, fragment: str) -> None:
        if fragment:
            bucket.append(fragment)


def parse_expandable_flag(token: str) -> FlagKeyValue:
    return FlagExpander.parse_expandable_flag(token)


def expand_flags(
    args: ArgsList,
    expandables: Optional[Mapping[str, Any]] = None,
    shell_type: ShellType = "linux",
) -> FlagExpansionResult:
    return FlagExpander.expand_flags(args, expandables, shell_type)


def get_context_aware_flags(config, target: str, expanded_target: str) -> RawFlagTable:
    """
    Select the expandable flags for a target.

    Starts from ``expandable-flags`` merged with ``expandable-templates`` and lets
    each ``context-aware-flags`` entry override its flag with the value keyed by
    the target shortcut, then the expanded target, then ``default``.
    """
    flags: RawFlagTable = dict(config.expandable_flags)
    flags.update(config.expandable_templates)

    for flag, choices in config.context_aware_flags.items():
        if not isinstance(choices, Mapping):
            continue
        for choice in (target, expanded_target, "default"):
            if choice in choices:
                flags[flag] = choices[choice]
                break

    return flags
