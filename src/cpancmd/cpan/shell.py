"""Python facade over CPAN.pm's CPAN::Shell.

Each call starts one `perl` process that loads CPAN.pm, applies the
configuration, and invokes the matching CPAN::Shell method. Build
methods stream their output through two emission channels, info
and warn, whose sinks can be replaced with register_sinks(). Both
channels share one pipe so their order survives. Query methods read
tab-separated rows instead.
"""

from __future__ import annotations

import re
import shlex
import sys
from collections.abc import Callable
from pathlib import Path

from pydantic import BaseModel

from cpancmd.core.errors import CpanCmdError
from cpancmd.core.log import logger
from cpancmd.core.runner import Runner
from cpancmd.cpan.shim import ChannelDemux, ChannelStream

Sink = Callable[[str], object]

CONFIG_ENV = "CPANCMD_CPAN_CONFIG"
ROW_MARKER = "CPANCMD\t"
DUMP_MARKER = "CPANCMD-DUMP\n"

# Methods a module switch may dispatch to, with or without force
BUILD_METHODS = ("clean", "install", "make", "test")

# Unbuffered output on both handles, then the configuration CPAN.pm
# should use.
PRELUDE = r'''
use CPAN ();
$| = 1; select((select(STDERR), $| = 1)[0]);
if (my $file = $ENV{CPANCMD_CPAN_CONFIG}) {
    $CPAN::Config = {};
    delete $INC{'CPAN/Config.pm'};
    my $rc = do $file;
    die "Could not load [$file]: " . ($@ || $!) . "\n" unless $rc;
    $INC{'CPAN/MyConfig.pm'} = $file;
    $CPAN::Config_loaded = 1;
}
else {
    CPAN::HandleConfig->load;
}
sub cpancmd_row {
    print "CPANCMD\t", join("\t", map {
        my $v = defined $_ ? $_ : ''; $v =~ s/[\t\r\n]+/ /g; $v
    } @_), "\n";
}
'''

# Build methods only: one pipe for both channels, so the order things
# were written in survives. STDERR (ours and that of make and the test
# harness) joins STDOUT; CPAN.pm's warnings and perl's own warn() become
# RECORD_MARK records that ChannelDemux routes to the warn sink.
MERGE_CHANNELS = r'''
open(STDERR, '>&', \*STDOUT) or die "Cannot merge STDERR into STDOUT: $!\n";
select((select(STDERR), $| = 1)[0]);
$| = 1;
sub cpancmd_warn {
    my $text = join '', @_;
    $text =~ s/([\\\n\x1e])/$1 eq "\n" ? '\\n' : $1 eq "\\" ? '\\\\' : '\\s'/ge;
    print STDOUT "\x1e", $text, "\n";
}
{
    no warnings 'redefine';
    *CPAN::Shell::mywarn = sub { my $self = shift; cpancmd_warn(@_) };
}
$SIG{__WARN__} = sub { cpancmd_warn(@_) };
'''

EXPAND_MODULES = r'''
for my $m (CPAN::Shell->expand("Module", @ARGV)) {
    next unless $m;
    my $installed = $m->inst_file;
    cpancmd_row($m->id, $m->userid, $m->cpan_file, $m->cpan_version,
        $installed, $installed ? $m->inst_version : '',
        $installed && $m->uptodate ? 1 : 0, $m->description);
}
'''

EXPAND_AUTHOR = r'''
my $a = CPAN::Shell->expand("Author", $ARGV[0]);
cpancmd_row($a->id, $a->fullname, $a->email) if $a;
'''

VERSION = r'''cpancmd_row(CPAN->VERSION);'''

CONFIG_VALUE = r'''cpancmd_row($CPAN::Config->{$ARGV[0]});'''

DUMP_CONFIG = r'''
require Data::Dumper;
local $Data::Dumper::Sortkeys = 1;
print "CPANCMD-DUMP\n";
print Data::Dumper->new([$CPAN::Config], ['$CPAN::Config'])->Dump,
    "\n1;\n__END__\n";
'''


class AuthorInfo(BaseModel):
    """A CPAN author as CPAN::Shell->expand("Author", ...) sees it."""

    id: str
    fullname: str = ""
    email: str = ""


class ModuleInfo(BaseModel):
    """A module row from CPAN::Shell->expand("Module", ...)."""

    id: str
    userid: str = ""
    cpan_file: str = ""
    cpan_version: str = ""
    inst_file: str = ""
    inst_version: str = ""
    uptodate: bool = False
    description: str = ""

    @property
    def installed(self) -> bool:
        return bool(self.inst_file)

    @property
    def distribution(self) -> tuple[str, str]:
        """(name, version) of the distribution shipping this module.

        Examples:
            B/BD/BDFOY/Business-ISBN-3.004.tar.gz -> ("Business-ISBN", "3.004")
        """
        basename = self.cpan_file.rsplit("/", 1)[-1]
        basename = re.sub(r'\.(tar\.gz|tar\.bz2|tgz|zip)$', '', basename)
        name, sep, version = basename.rpartition("-")
        if sep and name and version:
            return name, version
        return self.id.replace("::", "-"), self.cpan_version


def _write_stdout(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def _write_stderr(text: str) -> None:
    sys.stderr.write(text)
    sys.stderr.flush()


def parse_rows(output: str) -> list[list[str]]:
    """Pull the marked tab-separated rows out of CPAN.pm's chatter."""
    return [
        line[len(ROW_MARKER):].split("\t")
        for line in output.splitlines()
        if line.startswith(ROW_MARKER)
    ]


class CpanShell:
    """Runs CPAN::Shell methods in a perl child process.

    Example:
        >>> shell = CpanShell(perl="/usr/bin/perl")
        >>> shell.install("Business::ISBN")
    """

    # Perl run ahead of every call: loads CPAN.pm and its configuration
    prelude = PRELUDE

    def __init__(
        self,
        perl: str = "perl",
        config_file: Path | None = None,
        timeout: int | None = None,
        runner: Runner | None = None,
    ):
        self.perl = perl
        self.config_file = None
        self.timeout = timeout
        self.runner = runner or Runner()
        self._sinks: dict[str, Sink] = {"info": _write_stdout, "warn": _write_stderr}
        if config_file is not None:
            self.load_config(config_file)

    @classmethod
    def from_config(cls, config) -> CpanShell:
        """Build from a CpanConfig section."""
        return cls(
            perl=config.perl,
            config_file=config.config_file,
            timeout=config.timeout,
        )

    # -- emission channels ---------------------------------------------

    def register_sinks(
        self, info: Sink | None = None, warn: Sink | None = None
    ) -> tuple[Sink, Sink]:
        """Replace the info and/or warn sinks.

        Returns:
            The (info, warn) sinks that were registered before the call
        """
        previous = (self._sinks["info"], self._sinks["warn"])
        if info is not None:
            self._sinks["info"] = info
        if warn is not None:
            self._sinks["warn"] = warn
        return previous

    def emit_info(self, text: str) -> None:
        self._sinks["info"](text)

    def emit_warning(self, text: str) -> None:
        self._sinks["warn"](text)

    # -- configuration -------------------------------------------------

    def load_config(self, path: Path | str) -> None:
        """Use a CPAN/Config.pm style file for every later call."""
        path = Path(path).expanduser()
        if not path.exists():
            raise CpanCmdError(f"Config file [{path}] does not exist!")
        self.config_file = path.resolve()
        logger.debug("Using CPAN.pm config file", file=str(self.config_file))

    def _env(self) -> dict[str, str] | None:
        if self.config_file is None:
            return None
        return {CONFIG_ENV: str(self.config_file)}

    def command(self, code: str, *args: str, merged: bool = False) -> str:
        """Shell command line running `code` with CPAN.pm loaded.

        With merged=True both channels share the child's stdout, in the
        format ChannelDemux reads.
        """
        script = (MERGE_CHANNELS if merged else "") + self.prelude + code
        return shlex.join([self.perl, "-e", script, "--", *args])

    # -- running -------------------------------------------------------

    def _stream(self, code: str, *args: str) -> int:
        demux = ChannelDemux(self.emit_info, self.emit_warning)
        try:
            result = self.runner.execute(
                self.command(code, *args, merged=True),
                out_stream=demux,
                # Empty unless the merge itself failed
                err_stream=ChannelStream(self.emit_warning, "stderr"),
                timeout=self.timeout,
                env=self._env(),
                check=False,
            )
        finally:
            demux.close()
        return result.exited

    def _query(self, code: str, *args: str) -> str:
        result = self.runner.execute(
            self.command(code, *args),
            timeout=self.timeout,
            env=self._env(),
            check=False,
        )
        if result.exited != 0:
            detail = result.stderr.strip().splitlines()
            raise CpanCmdError(
                "CPAN.pm query failed"
                + (f": {detail[-1]}" if detail else f" (exit {result.exited})")
            )
        return result.stdout

    def _call(self, method: str, *args: str) -> int:
        logger.debug("CPAN::Shell call", method=method, args=list(args))
        return self._stream(f"CPAN::Shell->{method}(@ARGV);", *args)

    # -- CPAN::Shell methods -------------------------------------------

    def install(self, module: str) -> int:
        return self._call("install", module)

    def make(self, module: str) -> int:
        return self._call("make", module)

    def test(self, module: str) -> int:
        return self._call("test", module)

    def clean(self, module: str) -> int:
        return self._call("clean", module)

    def force(self, method: str, module: str) -> int:
        """Run `method` on `module` even where CPAN.pm would refuse."""
        if method not in BUILD_METHODS:
            raise CpanCmdError(f"CPAN.pm cannot force {method}!")
        return self._call("force", method, module)

    def autobundle(self) -> int:
        return self._call("autobundle")

    def recompile(self) -> int:
        return self._call("recompile")

    def shell(self) -> int:
        """Hand the terminal to CPAN.pm's interactive shell."""
        result = self.runner.execute(
            self.command("CPAN::shell();"),
            interactive=True,
            env=self._env(),
            check=False,
        )
        return result.exited

    # -- queries -------------------------------------------------------

    def expand_modules(self, *patterns: str) -> list[ModuleInfo]:
        """Modules matching names or /regex/ patterns."""
        fields = list(ModuleInfo.model_fields)
        modules = []
        for row in parse_rows(self._query(EXPAND_MODULES, *patterns)):
            values = dict(zip(fields, row))
            values["uptodate"] = values.get("uptodate") == "1"
            modules.append(ModuleInfo(**values))
        return modules

    def expand_module(self, name: str) -> ModuleInfo | None:
        modules = self.expand_modules(name)
        return modules[0] if modules else None

    def expand_author(self, author_id: str) -> AuthorInfo | None:
        rows = parse_rows(self._query(EXPAND_AUTHOR, author_id))
        if not rows:
            return None
        return AuthorInfo(**dict(zip(AuthorInfo.model_fields, rows[0])))

    def version(self) -> str:
        """CPAN.pm's $VERSION."""
        rows = parse_rows(self._query(VERSION))
        return rows[0][0] if rows else "unknown"

    def config_value(self, key: str) -> str | None:
        rows = parse_rows(self._query(CONFIG_VALUE, key))
        return rows[0][0] or None if rows else None

    def dump_config(self) -> str:
        """$CPAN::Config in the format CPAN/Config.pm files use."""
        output = self._query(DUMP_CONFIG)
        _, _, dump = output.partition(DUMP_MARKER)
        return dump


__all__ = [
    "AuthorInfo",
    "BUILD_METHODS",
    "CpanShell",
    "ModuleInfo",
    "parse_rows",
]
