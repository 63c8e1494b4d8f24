"""Template substitution and command wrapping for the project alias expander."""

import re
from typing import Any, Mapping, Optional

from .environment_helper import debug_log
from .expandable import (
    ExpandableValue,
    Literal,
    Many,
    PerShell,
    Single,
    TemplateObject,
    parse_expandable,
)
from .types import ArgsList, ShellType, TemplateFragments, Variables

PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")
REPLACE_PATTERN = re.compile(r"-replace\s+'([^']+)',\s*'([^']*)'")
THRESHOLD_PATTERN = re.compile(r">=\s*(\d+)\s*\?.*\+\s*'(0+)'")


def expand_template(template: str, variables: Mapping[str, Any]) -> str:
    """
    Substitute ``{name}`` placeholders with values from *variables*.

    Placeholders without a matching variable are left verbatim so partially
    specified templates stay readable. An empty-string value substitutes as
    empty. Unbalanced braces are not placeholders and are left untouched.
    """
    if not isinstance(template, str):
        return ""

    def _substitute(match: re.Match) -> str:
        name = match.group(1)
        if name not in variables or variables[name] is None:
            return match.group(0)
        return str(variables[name])

    return PLACEHOLDER_PATTERN.sub(_substitute, template)


def merge_variables(
    defaults: Optional[Mapping[str, str]], variables: Optional[Mapping[str, str]]
) -> Variables:
    """Layer caller variables over template defaults; caller values win."""
    merged: Variables = dict(defaults or {})
    merged.update(variables or {})
    return merged


def apply_mutation(value: str, mutation: Optional[str]) -> str:
    """
    Apply a config ``mutation`` expression to a flag value.

    Two forms are understood:

    * PowerShell style replace chains, e.g.
      ``{v} -replace '^si$', 'short-in' -replace '^so$', 'short-out'``
    * the threshold expression used for timeouts,
      ``value >= 100 ? value : parseInt(value.toString() + '000')``

    Anything else leaves the value unchanged.
    """
    if not mutation:
        return value

    if "-replace" in mutation:
        result = str(value)
        for pattern, replacement in REPLACE_PATTERN.findall(mutation):
            try:
                result = re.sub(pattern, replacement, result, count=1)
            except re.error as e:
                debug_log(f"apply_mutation: invalid pattern {pattern!r}: {e}")
        return result

    threshold_match = THRESHOLD_PATTERN.search(mutation)
    if threshold_match:
        threshold, zeros = threshold_match.groups()
        try:
            number = int(str(value).strip())
        except ValueError:
            return value
        return str(number) if number >= int(threshold) else f"{number}{zeros}"

    debug_log(f"apply_mutation: unsupported mutation expression {mutation!r}")
    return value


def _template_fragments(
    item: TemplateObject, variables: Mapping[str, str]
) -> TemplateFragments:
    expanded = expand_template(item.template, merge_variables(item.defaults, variables))
    if item.position == "end":
        return [], [expanded]
    return [expanded], []


def _variant_fragments(
    variant: Optional[ExpandableValue], variables: Mapping[str, str]
) -> TemplateFragments:
    start: ArgsList = []
    end: ArgsList = []

    if isinstance(variant, Literal):
        start.append(expand_template(variant.value, variables))
    elif isinstance(variant, Single):
        start, end = _template_fragments(variant.item, variables)
    elif isinstance(variant, Many):
        for item in variant.items:
            item_start, item_end = _template_fragments(item, variables)
            start.extend(item_start)
            end.extend(item_end)

    return start, end


def process_shell_specific_template(
    expandable: Any, variables: Mapping[str, str], shell_type: ShellType
) -> TemplateFragments:
    """
    Expand the variant of *expandable* that matches *shell_type*.

    Looks for ``<shell_type>-template`` first and falls back to the generic
    ``template`` key. Only start and end positions matter here: entries marked
    ``end`` go to the end list and everything else goes to the start list.
    Returns two empty lists when nothing applies.
    """
    value = parse_expandable(expandable)

    if isinstance(value, PerShell):
        variables = merge_variables(value.defaults, variables)
        return _variant_fragments(value.select(shell_type), variables)
    if isinstance(value, (Single, Many)):
        return _variant_fragments(value, variables)
    return [], []


def construct_wrapped_command(
    base_command: ArgsList, start_fragments: ArgsList, end_fragments: ArgsList
) -> ArgsList:
    """Wrap the base command as ``start + base + end`` without adding empty tokens."""
    start = [fragment for fragment in start_fragments if fragment]
    end = [fragment for fragment in end_fragments if fragment]
    return [*start, *base_command, *end]
