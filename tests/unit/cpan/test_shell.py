"""Tests for the CpanShell adapter: scripted runners, and real perl for ordering."""

import shlex
import shutil
from types import SimpleNamespace

import pytest

from cpancmd.core.config import CpanConfig
from cpancmd.core.errors import CpanCmdError
from cpancmd.core.result import Outcome
from cpancmd.cpan.capture import OutputCapture
from cpancmd.cpan.shell import (
    CONFIG_ENV,
    PRELUDE,
    CpanShell,
    ModuleInfo,
    parse_rows,
)


class RecordingRunner:
    """Runner stand-in: remembers commands, writes scripted chunks."""

    def __init__(self, stdout="", stderr="", exited=0, chunks=()):
        self.stdout = stdout
        self.stderr = stderr
        self.exited = exited
        self.chunks = chunks
        self.calls = []

    def execute(self, command, **kwargs):
        self.calls.append((command, kwargs))
        for stream_name, text in self.chunks:
            kwargs[f"{stream_name}_stream"].write(text)
        return SimpleNamespace(
            stdout=self.stdout, stderr=self.stderr, exited=self.exited
        )

    @property
    def argv(self):
        """argv of the last command."""
        return shlex.split(self.calls[-1][0])


def make_shell(**runner_kwargs):
    runner = RecordingRunner(**runner_kwargs)
    return CpanShell(perl="/opt/perl/bin/perl", runner=runner), runner


class TestCommand:
    """Command line construction."""

    def test_command_round_trips_through_shell_quoting(self):
        shell, _ = make_shell()
        argv = shlex.split(shell.command("CPAN::Shell->install(@ARGV);", "Foo's::Bar"))

        assert argv == [
            "/opt/perl/bin/perl", "-e",
            PRELUDE + "CPAN::Shell->install(@ARGV);",
            "--", "Foo's::Bar",
        ]

    @pytest.mark.parametrize("method", ["install", "make", "test", "clean"])
    def test_build_methods(self, method):
        shell, runner = make_shell()
        assert getattr(shell, method)("Business::ISBN") == 0

        argv = runner.argv
        assert argv[2].endswith(f"CPAN::Shell->{method}(@ARGV);")
        assert argv[-2:] == ["--", "Business::ISBN"]

    def test_force_passes_method_first(self):
        shell, runner = make_shell()
        shell.force("test", "Business::ISBN")

        assert runner.argv[2].endswith("CPAN::Shell->force(@ARGV);")
        assert runner.argv[-3:] == ["--", "test", "Business::ISBN"]

    def test_force_rejects_other_methods(self):
        shell, _ = make_shell()

        with pytest.raises(CpanCmdError, match="CPAN.pm cannot force autobundle!"):
            shell.force("autobundle", "Foo")

    def test_exit_code_returned(self):
        shell, _ = make_shell(exited=2)

        assert shell.make("Foo") == 2

    def test_shell_is_interactive(self):
        shell, runner = make_shell()
        shell.shell()

        _, kwargs = runner.calls[-1]
        assert kwargs["interactive"] is True
        assert runner.argv[2].endswith("CPAN::shell();")

    def test_from_config(self):
        shell = CpanShell.from_config(CpanConfig(perl="perl5.36", timeout=60))

        assert shell.perl == "perl5.36"
        assert shell.timeout == 60
        assert shell.config_file is None


class TestSinks:
    """Emission channels."""

    def test_stdout_is_info_and_stderr_is_warn(self):
        shell, _ = make_shell(chunks=[
            ("out", "Running make\n"),
            ("err", "Warning: no Makefile\n"),
            ("out", "Result: PASS\n"),
        ])
        seen = []
        shell.register_sinks(
            info=lambda text: seen.append(("info", text)),
            warn=lambda text: seen.append(("warn", text)),
        )
        shell.test("Foo")

        assert seen == [
            ("info", "Running make\n"),
            ("warn", "Warning: no Makefile\n"),
            ("info", "Result: PASS\n"),
        ]

    def test_register_returns_previous(self):
        shell, _ = make_shell()
        first_info, first_warn = [].append, [].append
        shell.register_sinks(info=first_info, warn=first_warn)

        previous = shell.register_sinks(info=print)

        assert previous == (first_info, first_warn)
        assert shell.register_sinks() == (print, first_warn)

    def test_default_sinks_are_stdout_and_stderr(self, capsys):
        shell, _ = make_shell()
        shell.emit_info("to stdout\n")
        shell.emit_warning("to stderr\n")

        captured = capsys.readouterr()
        assert captured.out == "to stdout\n"
        assert captured.err == "to stderr\n"


class TestConfigFile:
    """-j style config loading."""

    def test_missing_config_file(self, tmp_path):
        shell, _ = make_shell()
        missing = tmp_path / "MyConfig.pm"

        with pytest.raises(CpanCmdError, match=r"Config file \[.*MyConfig.pm\] does not exist!"):
            shell.load_config(missing)

    def test_config_file_passed_in_environment(self, tmp_path):
        config = tmp_path / "MyConfig.pm"
        config.write_text("$CPAN::Config = {};\n1;\n")
        shell, runner = make_shell()
        shell.load_config(config)
        shell.install("Foo")

        _, kwargs = runner.calls[-1]
        assert kwargs["env"] == {CONFIG_ENV: str(config.resolve())}

    def test_no_environment_without_config_file(self):
        shell, runner = make_shell()
        shell.install("Foo")

        _, kwargs = runner.calls[-1]
        assert kwargs["env"] is None


class TestQueries:
    """Metadata queries parsed from marked rows."""

    def test_parse_rows_skips_chatter(self):
        output = (
            "Reading '/home/me/.cpan/Metadata'\n"
            "CPANCMD\tFoo::Bar\tBDFOY\n"
            "  Database was generated on Mon, 01 Jan 2024\n"
            "CPANCMD\tBaz\t\n"
        )

        assert parse_rows(output) == [["Foo::Bar", "BDFOY"], ["Baz", ""]]

    def test_expand_modules(self):
        shell, runner = make_shell(stdout=(
            "Reading '/home/me/.cpan/Metadata'\n"
            "CPANCMD\tBusiness::ISBN\tBDFOY\tB/BD/BDFOY/Business-ISBN-3.004.tar.gz"
            "\t3.004\t/usr/lib/perl5/Business/ISBN.pm\t3.003\t0\twork with ISBNs\n"
            "CPANCMD\tNot::Installed\tSOMEONE\tS/SO/SOMEONE/Not-Installed-1.0.tar.gz"
            "\t1.0\t\t\t0\t\n"
        ))
        modules = shell.expand_modules("Business::ISBN", "Not::Installed")

        assert runner.argv[-3:] == ["--", "Business::ISBN", "Not::Installed"]
        assert [m.id for m in modules] == ["Business::ISBN", "Not::Installed"]
        isbn, missing = modules
        assert isbn.installed
        assert isbn.inst_version == "3.003"
        assert isbn.uptodate is False
        assert isbn.description == "work with ISBNs"
        assert not missing.installed

    def test_expand_module_unknown(self):
        shell, _ = make_shell(stdout="Reading '/home/me/.cpan/Metadata'\n")

        assert shell.expand_module("No::Such") is None

    def test_expand_author(self):
        shell, _ = make_shell(stdout="CPANCMD\tBDFOY\tbrian d foy\tbdfoy@cpan.org\n")
        author = shell.expand_author("BDFOY")

        assert author.fullname == "brian d foy"
        assert author.email == "bdfoy@cpan.org"

    def test_expand_author_unknown(self):
        shell, _ = make_shell()

        assert shell.expand_author("NOBODY") is None

    def test_version(self):
        shell, _ = make_shell(stdout="CPANCMD\t2.36\n")

        assert shell.version() == "2.36"

    def test_config_value(self):
        shell, runner = make_shell(stdout="CPANCMD\t/home/me/.cpan\n")

        assert shell.config_value("cpan_home") == "/home/me/.cpan"
        assert runner.argv[-1] == "cpan_home"

    def test_config_value_unset(self):
        shell, _ = make_shell(stdout="CPANCMD\t\n")

        assert shell.config_value("proxy") is None

    def test_dump_config(self):
        dump = "$CPAN::Config = {\n  'cpan_home' => '/home/me/.cpan'\n};\n\n1;\n__END__\n"
        shell, _ = make_shell(stdout="Reading config\nCPANCMD-DUMP\n" + dump)

        assert shell.dump_config() == dump

    def test_query_failure(self):
        shell, _ = make_shell(
            exited=255,
            stderr="Could not load [/x/MyConfig.pm]: syntax error\n",
        )

        with pytest.raises(CpanCmdError, match="syntax error"):
            shell.version()


class TestModuleInfo:
    """ModuleInfo.distribution."""

    @pytest.mark.parametrize("cpan_file,expected", [
        ("B/BD/BDFOY/Business-ISBN-3.004.tar.gz", ("Business-ISBN", "3.004")),
        ("E/EX/EXODIST/Test-Simple-1.302183.tar.gz", ("Test-Simple", "1.302183")),
        ("A/AU/AUTHOR/Foo-Bar-v1.2.3.zip", ("Foo-Bar", "v1.2.3")),
        ("A/AU/AUTHOR/Some-Dist-0.01.tgz", ("Some-Dist", "0.01")),
    ])
    def test_distribution_from_cpan_file(self, cpan_file, expected):
        module = ModuleInfo(id="X", cpan_file=cpan_file)

        assert module.distribution == expected

    def test_distribution_falls_back_to_module_id(self):
        module = ModuleInfo(id="Foo::Bar::Baz", cpan_version="0.5")

        assert module.distribution == ("Foo-Bar-Baz", "0.5")


@pytest.mark.skipif(shutil.which("perl") is None, reason="needs perl")
class TestMergedChannels:
    """Build output from a real perl child, in the order it was written."""

    class BarePerlShell(CpanShell):
        """CpanShell without CPAN.pm, so any perl will do."""

        prelude = ""

    ALTERNATING = r'''
for my $i (1..10) {
    print "out$i\n";
    print STDERR "err$i\n";
    CPAN::Shell->mywarn("mywarn$i\n");
    warn "warn$i\n";
}
print "  /usr/bin/make install  -- OK\n";
'''

    def expected(self):
        lines = []
        for i in range(1, 11):
            lines += [f"out{i}\n", f"err{i}\n", f"mywarn{i}\n", f"warn{i}\n"]
        return "".join(lines) + "  /usr/bin/make install  -- OK\n"

    def test_alternating_channels_keep_order(self):
        shell = self.BarePerlShell()
        capture = OutputCapture()
        capture.install(shell)

        for _ in range(5):
            capture.clear()
            assert shell._stream(self.ALTERNATING) == 0

            assert capture.get_all() == self.expected()
            assert capture.get_last_line() == "  /usr/bin/make install  -- OK\n"
            assert capture.classify() == (Outcome.SUCCESS, "  /usr/bin/make install  -- OK")

    def test_warnings_reach_warn_sink(self):
        shell = self.BarePerlShell()
        info, warn = [], []
        shell.register_sinks(info=info.append, warn=warn.append)

        shell._stream(self.ALTERNATING)

        assert "".join(warn) == "".join(
            f"mywarn{i}\nwarn{i}\n" for i in range(1, 11)
        )
        # Child stderr is merged into the info channel
        assert "err3\n" in "".join(info)

    def test_failure_after_warning_is_last_line(self):
        shell = self.BarePerlShell()
        capture = OutputCapture()
        capture.install(shell)

        shell._stream(
            'print STDERR "t/basic.t .. Failed 2/10 subtests\\n";'
            'CPAN::Shell->mywarn("  make test had returned bad status, '
            'won\'t install without force\\n");'
        )

        outcome, matched = capture.classify()
        assert outcome is Outcome.FAILURE
        assert matched == "  make test had returned bad status, won't install without force"
