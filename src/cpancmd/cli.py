#!/usr/bin/env python3
"""cpan - command-line front end for CPAN.pm."""

import sys
from pathlib import Path

from pydantic import Field
from pydantic_settings import (
    CliApp,
    CliPositionalArg,
    CliSettingsSource,
    SettingsConfigDict,
)

from cpancmd.command.options import OPTION_ORDER
from cpancmd.command.table import dispatch, strip_install_alias
from cpancmd.core.config import State
from cpancmd.core.errors import CpanCmdError
from cpancmd.core.log import logger
from cpancmd.cpan.capture import OutputCapture
from cpancmd.cpan.shell import CpanShell


class CliState(State):
    """Easily interact with CPAN from the command line.

    With module names and no switch, install them. With no arguments
    at all, start the CPAN.pm shell. Meta switches are exclusive and
    tried in the order v C A D O L a r J; module switches c i m t
    follow, and -f forces whichever one is chosen.

    Configuration sources (in priority order):
    1. Command-line arguments (--config.cpan.perl /opt/perl/bin/perl)
    2. cpancmd.yaml in the current directory, then in the user
       config directory, over the packaged defaults
    3. .env file
    4. Environment variables (CPANCMD_CONFIG__CPAN__PERL=...)
    """

    show_version: bool = Field(
        default=False, alias="v",
        description="Print the script and CPAN.pm versions",
    )
    changes: bool = Field(
        default=False, alias="C",
        description="Show the Changes file of each module",
    )
    authors: bool = Field(
        default=False, alias="A",
        description="Show the author of each module",
    )
    details: bool = Field(
        default=False, alias="D",
        description="Show details of each module",
    )
    out_of_date: bool = Field(
        default=False, alias="O",
        description="List installed modules with a newer CPAN version",
    )
    author_modules: bool = Field(
        default=False, alias="L",
        description="List the modules of each author id",
    )
    autobundle: bool = Field(
        default=False, alias="a",
        description="Create an autobundle of installed modules",
    )
    recompile: bool = Field(
        default=False, alias="r",
        description="Recompile dynamically-loaded extensions",
    )
    dump_config: bool = Field(
        default=False, alias="J",
        description="Dump the CPAN.pm configuration to stdout",
    )
    config_file: Path | None = Field(
        default=None, alias="j",
        description="Load this CPAN/Config.pm style file first",
    )
    clean: bool = Field(
        default=False, alias="c", description="Run `make clean`",
    )
    force: bool = Field(
        default=False, alias="f", description="Force the chosen action",
    )
    install: bool = Field(
        default=False, alias="i", description="Run `make install` (default)",
    )
    make: bool = Field(
        default=False, alias="m", description="Run `make`",
    )
    test: bool = Field(
        default=False, alias="t", description="Run `make test`",
    )
    modules: CliPositionalArg[list[str]] = Field(
        default_factory=list,
        description="Modules, author ids or patterns, depending on the switch",
    )

    model_config = SettingsConfigDict(cli_prog_name="cpan")

    def switches(self) -> dict[str, bool]:
        """Switch letter -> whether it was given."""
        return {
            field.alias: bool(getattr(self, name))
            for name, field in type(self).model_fields.items()
            if field.alias in OPTION_ORDER
        }

    def cli_cmd(self):
        """Set up CPAN.pm and its output capture, then dispatch."""
        cpan = self.runtime.cpan
        with logger:
            try:
                cpan.shell = CpanShell.from_config(self.config.cpan)
                if self.config_file:
                    cpan.shell.load_config(self.config_file)
                cpan.capture = OutputCapture(echo=self.config.cpan.echo)
                cpan.capture.install(cpan.shell)

                exit_code = dispatch(self, self.switches(), list(self.modules))
            except CpanCmdError as e:
                logger.error("{error}", error=str(e))
                print(e, file=sys.stderr)
                exit_code = 1
            finally:
                cpan.close()
            raise SystemExit(exit_code)


def main(argv: list[str] | None = None):
    """Main entry point for CLI."""
    args = strip_install_alias(list(sys.argv[1:] if argv is None else argv))
    CliApp.run(
        CliState,
        cli_args=args,
        cli_settings_source=CliSettingsSource(CliState, case_sensitive=True),
    )


if __name__ == "__main__":
    main()
