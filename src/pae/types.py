"""
Type aliases for the project alias expander.

This module provides centralized type definitions used throughout the application
to ensure consistency and maintainability.

Type Aliases:
    ArgsList: List of string arguments
    ExitCode: Integer representing exit codes
    Variables: Template variable names mapped to their values
    RawFlagTable: Flag name mapped to its raw (JSON-shaped) expandable value
    EnvExports: Dictionary mapping environment variable names to values
    ShellType: Detected shell flavour ('pwsh', 'linux' or 'cmd')
    FlagKeyValue: Parsed flag key and optional captured value
    TemplateFragments: Start and end fragments produced by a shell template
    SplitResult: Arguments before and after the '--' separator
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

ArgsList = List[str]
"""List of string arguments used for command-line arguments and command fragments."""

ExitCode = int
"""Integer representing process exit codes (0 for success, non-zero for errors)."""

Variables = Dict[str, str]
"""Template variables, e.g. {'style': 'stream'} for '--output-style={style}'."""

RawFlagTable = Dict[str, Any]
"""Flag table as it appears in the configuration, keyed by flag name."""

EnvExports = Dict[str, str]
"""Dictionary mapping environment variable names to their values."""

ShellType = str
"""One of 'pwsh', 'linux' or 'cmd'."""

FlagKeyValue = Tuple[str, Optional[str]]
"""Parsed flag (e.g. ('-output-style', 'stream') or ('s', None))."""

TemplateFragments = Tuple[ArgsList, ArgsList]
"""Result of shell template processing (start fragments, end fragments)."""

SplitResult = Tuple[ArgsList, ArgsList]
"""Result of splitting arguments at separator (before, passthrough)."""

LogCallback = Callable[..., None]
"""Callback used by commands for debug and error reporting."""
