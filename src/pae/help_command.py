"""Help output for the project alias expander."""

from typing import Iterable, Optional, Tuple

from .alias_config import AliasConfig
from .alias_resolver import AliasResolver
from .expandable import describe

DIM = "\x1b[2m"
RESET = "\x1b[0m"

USAGE = """
PAE - Project Alias Expander
Usage: pae <alias> [target] [flags] [-- passthrough...]
       pae <command> [args]
       pae ext|core|all [target] [flags]   Run a target across core, ext or all packages
"""

STATIC_HELP = """Commands:
  help                         Show this help with all available aliases and flags
  install                      Install PAE shell integration
  remove                       Remove PAE shell integration
  refresh                      Regenerate PAE shell integration
  load                         Load PAE into the active shell session

  Config file: $PAE_CONFIG, $XDG_CONFIG_HOME/pae/config.json,
               $HOME/.config/pae/config.json or ./pae.config.json
"""

FOOTER = """Flags:
  -h, --help                   Show this help message
  --pae-debug                  Enable debug logging
  --pae-verbose                Enable verbose logging
  --pae-echo[=variant]         Print the command instead of executing it
  --pae-echoX[=variant]        Print the command, then execute it
  --pae-execa-timeout=<ms>     Timeout for the command in milliseconds

Environment Variables:
  PAE_DEBUG=1                  Enable debug logging
  PAE_ECHO=1                   Echo commands instead of executing
"""


def _section(title: str, rows: Iterable[Tuple[str, str]], width: int = 8) -> str:
    rows = list(rows)
    if not rows:
        return ""
    lines = [f"{title}:"]
    lines += [f"  {name.ljust(width)} → {value}" for name, value in rows]
    return "\n".join(lines) + "\n\n"


class HelpCommand:
    """Renders the help screen for a config, or a static one without config."""

    @staticmethod
    def render(config: Optional[AliasConfig] = None) -> str:
        if config is None:
            return USAGE + "\n" + STATIC_HELP + "\n" + FOOTER

        packages = [
            (alias, AliasResolver.project_for(descriptor, config).full_name)
            for alias, descriptor in config.packages.items()
        ]
        features = [
            (alias, f"{feature.run_target} (from {feature.run_from or 'default'})")
            for alias, feature in config.features.items()
        ]
        flags = [(f"-{flag}", describe(value)) for flag, value in config.expandable_flags.items()]
        templates = [
            (f"-{flag}", describe(value)) for flag, value in config.expandable_templates.items()
        ]
        internal = [
            (f"-{flag}", describe(value))
            for flag, value in {**config.internal_flags, **config.env_setting_flags}.items()
        ]

        text = USAGE + "\n"
        text += _section(f"Available Aliases: {DIM}Project aliases{RESET}", packages)
        text += _section(
            f"Available Targets: {DIM}Target shortcuts{RESET}", config.nx_targets.items()
        )
        text += _section(f"Feature Targets: {DIM}Feature-specific targets{RESET}", features)
        text += _section(
            f"Not-NX Targets: {DIM}Plain commands{RESET}", config.not_nx_targets.items()
        )
        text += _section(
            f"Expandable Commands: {DIM}Command expansions{RESET}",
            config.expandable_commands.items(),
        )
        text += _section(f"Expandable Flags: {DIM}Flag expansions{RESET}", flags, width=10)
        text += _section(f"Expandable Templates: {DIM}Template expansions{RESET}", templates, width=10)
        text += _section(f"Internal Flags: {DIM}PAE behaviour{RESET}", internal, width=10)
        if config.commands:
            text += "Commands:\n"
            text += "\n".join(
                f"  {command.ljust(25)} {description}"
                for command, description in config.commands.items()
            )
            text += "\n\n"
        return text + FOOTER

    @staticmethod
    def execute(config: Optional[AliasConfig] = None) -> int:
        print(HelpCommand.render(config))
        return 0
