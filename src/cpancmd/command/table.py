"""Switch to handler table and the dispatch loop over it."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from cpancmd.command import build, info, meta
from cpancmd.command.options import DEFAULT, OPTION_ORDER
from cpancmd.core.log import logger

Handler = Callable[..., int]


@dataclass(frozen=True)
class MethodEntry:
    """What a switch does.

    Attributes:
        handler: Called as handler(state, args, options); returns an
            exit code
        takes_args: Whether the handler uses the positional arguments
        description: Shown in help and in "ignoring other arguments"
    """

    handler: Handler
    takes_args: bool
    description: str


METHOD_TABLE: dict[str, MethodEntry] = {
    # argparse owns -h on the command line; this entry serves direct
    # dispatch(state, {"h": True}, ...) calls
    "h": MethodEntry(meta.print_help, False, "Printing help"),
    "v": MethodEntry(meta.print_version, False, "Printing version"),
    "J": MethodEntry(meta.dump_config, False, "Dump configuration to stdout"),
    "C": MethodEntry(info.show_changes, True, "Showing Changes file"),
    "A": MethodEntry(info.show_authors, True, "Showing Author"),
    "D": MethodEntry(info.show_details, True, "Showing Details"),
    "O": MethodEntry(info.show_out_of_date, False, "Showing Out of date"),
    "L": MethodEntry(info.show_author_mods, True, "Showing author mods"),
    "a": MethodEntry(meta.create_autobundle, False, "Creating autobundle"),
    "r": MethodEntry(meta.recompile, False, "Recompiling"),
    "c": MethodEntry(build.run_modules, True, "Running `make clean`"),
    "f": MethodEntry(build.run_modules, True, "Installing with force"),
    "i": MethodEntry(build.run_modules, True, "Running `make install`"),
    "m": MethodEntry(build.run_modules, True, "Running `make`"),
    "t": MethodEntry(build.run_modules, True, "Running `make test`"),
    DEFAULT: MethodEntry(build.run_modules, True, "Running `make install`"),
}


def strip_install_alias(args: list[str]) -> list[str]:
    """Drop a leading `install` word, so `cpan install Foo` is `cpan Foo`."""
    if len(args) > 1 and args[0] == "install":
        return args[1:]
    return args


def select_option(options: dict[str, bool]) -> str:
    """The switch that wins: first present in OPTION_ORDER, else DEFAULT."""
    for option in OPTION_ORDER:
        if options.get(option):
            return option
    return DEFAULT


def dispatch(state, options: dict[str, bool], args: list[str]) -> int:
    """Run the handler of the winning switch.

    Args:
        state: State whose runtime.cpan holds the shell and capture
        options: Switch letter -> set, e.g. {"f": True, "t": True}
        args: Positional arguments, usually module names

    Returns:
        The handler's exit code
    """
    option = select_option(options)
    entry = METHOD_TABLE[option]
    logger.debug(
        "Dispatching", option=option, handler=entry.handler.__name__, args=args
    )

    if args and not entry.takes_args:
        print(f"{entry.description} -- ignoring other arguments")

    return entry.handler(state, args, options)
