"""Switches that report on or maintain CPAN.pm itself."""

from __future__ import annotations

import sys

from cpancmd import __version__

PROG = "cpan"


def usage() -> str:
    """Help text listing every switch in the order they are tried."""
    from cpancmd.command.options import OPTION_ORDER
    from cpancmd.command.table import METHOD_TABLE

    lines = [
        f"usage: {PROG} [-j Config.pm] [-h|-v|-C|-A|-D|-O|-L|-a|-r|-J] "
        "[-f] [-c|-i|-m|-t] [module ...]",
        "",
        "  -j FILE  Use specified config file",
    ]
    for option in OPTION_ORDER:
        lines.append(f"  -{option}       {METHOD_TABLE[option].description}")
    lines += [
        "",
        f"With modules and no switch, {PROG} installs them. With neither, "
        "it starts the CPAN.pm shell.",
    ]
    return "\n".join(lines) + "\n"


def print_help(state, args: list[str], options: dict[str, bool]) -> int:  # noqa: ARG001
    sys.stderr.write(usage())
    return 0


def print_version(state, args: list[str], options: dict[str, bool]) -> int:  # noqa: ARG001
    shell = state.runtime.cpan.shell
    print(
        f"{PROG} script version {__version__}, CPAN.pm version {shell.version()}",
        file=sys.stderr,
    )
    return 0


def create_autobundle(state, args: list[str], options: dict[str, bool]) -> int:  # noqa: ARG001
    shell = state.runtime.cpan.shell
    cpan_home = shell.config_value("cpan_home") or ""
    print(f"Creating autobundle in {cpan_home}/Bundle")
    return shell.autobundle()


def recompile(state, args: list[str], options: dict[str, bool]) -> int:  # noqa: ARG001
    shell = state.runtime.cpan.shell
    print("Recompiling dynamically-loaded extensions")
    return shell.recompile()


def dump_config(state, args: list[str], options: dict[str, bool]) -> int:  # noqa: ARG001
    """Print $CPAN::Config in a form -j can load again."""
    shell = state.runtime.cpan.shell
    sys.stdout.write(shell.dump_config())
    return 0
