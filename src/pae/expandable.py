"""
Expandable value model for the project alias expander.

Flag tables in the configuration map a flag name to one of four shapes:

* a literal replacement string, e.g. ``"s": "--skip-nx-cache"``
* a single template object, e.g.
  ``{"position": "prefix", "defaults": {"duration": "10"}, "template": "timeout {duration}s"}``
* a list of template objects
* a per-shell map keyed ``pwsh-template`` / ``linux-template`` / ``cmd-template``
  (plus an optional generic ``template``), whose values are any of the above

They are parsed into ``Literal``, ``Single``, ``Many`` and ``PerShell`` so the
expansion code can dispatch on the variant instead of probing dictionaries.
Parsing never raises; anything unusable becomes ``None`` or an empty variant.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .types import Variables

POSITIONS = ("start", "prefix", "preArgs", "suffix", "end")
DEFAULT_POSITION = "suffix"

POSITION_ALIASES = {
    "pre-args": "preArgs",
    "preargs": "preArgs",
    "pre_args": "preArgs",
}

SHELL_TEMPLATE_KEYS = {
    "pwsh": "pwsh-template",
    "linux": "linux-template",
    "cmd": "cmd-template",
}
GENERIC_TEMPLATE_KEY = "template"
GENERIC_SHELL = "generic"


@dataclass(frozen=True)
class TemplateObject:
    """One template fragment and the bucket it lands in."""

    template: str
    position: Optional[str] = None
    defaults: Variables = field(default_factory=dict)
    mutation: Optional[str] = None


@dataclass(frozen=True)
class Literal:
    value: str


@dataclass(frozen=True)
class Single:
    item: TemplateObject


@dataclass(frozen=True)
class Many:
    items: Tuple[TemplateObject, ...]


@dataclass(frozen=True)
class PerShell:
    variants: Dict[str, "ExpandableValue"]
    defaults: Variables = field(default_factory=dict)
    mutation: Optional[str] = None

    def select(self, shell_type: str) -> Optional["ExpandableValue"]:
        """Pick the variant for *shell_type*, falling back to the generic template."""
        return self.variants.get(shell_type) or self.variants.get(GENERIC_SHELL)


ExpandableValue = Union[Literal, Single, Many, PerShell]
EXPANDABLE_TYPES = (Literal, Single, Many, PerShell)


def normalize_position(position: Any) -> Optional[str]:
    """Map config spellings of a position onto POSITIONS; unknown values give None."""
    if not isinstance(position, str):
        return None
    position = POSITION_ALIASES.get(position.strip().lower(), position.strip())
    return position if position in POSITIONS else None


def _stringify_defaults(raw: Any) -> Variables:
    if not isinstance(raw, Mapping):
        return {}
    return {str(key): "" if value is None else str(value) for key, value in raw.items()}


def parse_template_object(raw: Any) -> Optional[TemplateObject]:
    if not isinstance(raw, Mapping) or not isinstance(raw.get("template"), str):
        return None
    mutation = raw.get("mutation")
    return TemplateObject(
        template=raw["template"],
        position=normalize_position(raw.get("position")),
        defaults=_stringify_defaults(raw.get("defaults")),
        mutation=mutation if isinstance(mutation, str) else None,
    )


def _parse_template_list(raw: list) -> Many:
    items = [parse_template_object(entry) for entry in raw]
    return Many(tuple(item for item in items if item is not None))


def _parse_variant(raw: Any) -> Optional[ExpandableValue]:
    if isinstance(raw, str):
        return Literal(raw)
    if isinstance(raw, list):
        return _parse_template_list(raw)
    if isinstance(raw, Mapping):
        item = parse_template_object(raw)
        return Single(item) if item else None
    return None


def is_shell_specific(raw: Any) -> bool:
    return isinstance(raw, Mapping) and any(
        key in raw for key in SHELL_TEMPLATE_KEYS.values()
    )


def parse_expandable(raw: Any) -> Optional[ExpandableValue]:
    """Parse a raw flag-table entry into its ExpandableValue variant."""
    if isinstance(raw, EXPANDABLE_TYPES):
        return raw
    if isinstance(raw, str):
        return Literal(raw)
    if isinstance(raw, list):
        return _parse_template_list(raw)
    if not isinstance(raw, Mapping):
        return None

    if not is_shell_specific(raw):
        item = parse_template_object(raw)
        if item is not None:
            return Single(item)
        # An object without any template expands to nothing
        return PerShell({}, _stringify_defaults(raw.get("defaults")))

    variants: Dict[str, ExpandableValue] = {}
    for shell, key in SHELL_TEMPLATE_KEYS.items():
        if key in raw:
            variant = _parse_variant(raw[key])
            if variant is not None:
                variants[shell] = variant
    if isinstance(raw.get(GENERIC_TEMPLATE_KEY), str):
        variants[GENERIC_SHELL] = Single(
            TemplateObject(
                template=raw[GENERIC_TEMPLATE_KEY],
                position=normalize_position(raw.get("position")),
            )
        )

    mutation = raw.get("mutation")
    return PerShell(
        variants,
        _stringify_defaults(raw.get("defaults")),
        mutation if isinstance(mutation, str) else None,
    )


def entry_defaults(value: Optional[ExpandableValue]) -> Variables:
    """Defaults declared at the top level of an entry."""
    if isinstance(value, Single):
        return dict(value.item.defaults)
    if isinstance(value, PerShell):
        return dict(value.defaults)
    return {}


def entry_mutation(value: Optional[ExpandableValue]) -> Optional[str]:
    if isinstance(value, Single):
        return value.item.mutation
    if isinstance(value, PerShell):
        return value.mutation
    return None


def describe(value: Any) -> str:
    """Short human readable form used by the help output."""
    parsed = parse_expandable(value)
    if isinstance(parsed, Literal):
        return parsed.value
    if isinstance(parsed, Single):
        return parsed.item.template
    if isinstance(parsed, Many):
        return " ... ".join(item.template for item in parsed.items) or "template"
    if isinstance(parsed, PerShell):
        shells = [shell for shell in parsed.variants if shell != GENERIC_SHELL]
        return f"shell template ({', '.join(shells)})" if shells else "template"
    return "template"
