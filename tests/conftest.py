"""Pytest configuration and fixtures for cpancmd tests."""

import tempfile
from pathlib import Path
from types import SimpleNamespace

import pytest

from cpancmd.core.config import CpanConfig, Runtime
from cpancmd.core.log import ConsoleSink, setup_logger
from cpancmd.cpan.shell import AuthorInfo, ModuleInfo


@pytest.fixture(autouse=True, scope="session")
def configure_logging():
    """Configure console-only logging for the test session.

    Console level is warn: logfire prints to stdout, and handler
    tests compare stdout exactly.
    """
    test_log_root = Path(tempfile.gettempdir()) / "cpancmd-tests"
    setup_logger(
        log_root=test_log_root,
        session="test",
        console=ConsoleSink(level="warn"),
    )


class FakeShell:
    """Stands in for CpanShell without starting perl.

    Records every call and, for build methods, plays back scripted
    output through whichever sinks are registered, the way CpanShell
    feeds the info and warn channels it splits out of the child's output.
    """

    def __init__(self, outputs=None, modules=None, authors=None, config=None):
        """
        Args:
            outputs: module -> list of (channel, text) to emit when a
                build method runs on it
            modules: module id -> ModuleInfo
            authors: author id -> AuthorInfo
            config: $CPAN::Config values for config_value()
        """
        self.outputs = outputs or {}
        self.modules = modules or {}
        self.authors = authors or {}
        self.config = config if config is not None else {"cpan_home": "/home/me/.cpan"}
        self.calls = []
        self.info_text = []
        self.warn_text = []
        self._sinks = {"info": self.info_text.append, "warn": self.warn_text.append}

    def register_sinks(self, info=None, warn=None):
        previous = (self._sinks["info"], self._sinks["warn"])
        if info is not None:
            self._sinks["info"] = info
        if warn is not None:
            self._sinks["warn"] = warn
        return previous

    def _build(self, method, module, forced=False):
        self.calls.append((method, module, forced))
        for channel, text in self.outputs.get(module, []):
            self._sinks[channel](text)
        return 0

    def install(self, module):
        return self._build("install", module)

    def make(self, module):
        return self._build("make", module)

    def test(self, module):
        return self._build("test", module)

    def clean(self, module):
        return self._build("clean", module)

    def force(self, method, module):
        return self._build(method, module, forced=True)

    def autobundle(self):
        self.calls.append(("autobundle",))
        return 0

    def recompile(self):
        self.calls.append(("recompile",))
        return 0

    def shell(self):
        self.calls.append(("shell",))
        return 0

    def load_config(self, path):
        self.calls.append(("load_config", str(path)))

    def version(self):
        return "2.36"

    def config_value(self, key):
        return self.config.get(key)

    def dump_config(self):
        return "$CPAN::Config = {\n  'cpan_home' => '/home/me/.cpan',\n};\n1;\n__END__\n"

    def expand_modules(self, *patterns):
        if patterns == ("/./",):
            return list(self.modules.values())
        return [self.modules[p] for p in patterns if p in self.modules]

    def expand_module(self, name):
        return self.modules.get(name)

    def expand_author(self, author_id):
        return self.authors.get(author_id)


@pytest.fixture
def fake_shell():
    """A FakeShell knowing two installed modules and their authors."""
    return FakeShell(
        modules={
            "Business::ISBN": ModuleInfo(
                id="Business::ISBN",
                userid="BDFOY",
                cpan_file="B/BD/BDFOY/Business-ISBN-3.004.tar.gz",
                cpan_version="3.004",
                inst_file="/usr/lib/perl5/Business/ISBN.pm",
                inst_version="3.004",
                uptodate=True,
                description="work with International Standard Book Numbers",
            ),
            "Test::More": ModuleInfo(
                id="Test::More",
                userid="EXODIST",
                cpan_file="E/EX/EXODIST/Test-Simple-1.302183.tar.gz",
                cpan_version="1.302183",
                inst_file="/usr/lib/perl5/Test/More.pm",
                inst_version="1.3",
                uptodate=False,
            ),
        },
        authors={
            "BDFOY": AuthorInfo(
                id="BDFOY", fullname="brian d foy", email="bdfoy@cpan.org"
            ),
            "EXODIST": AuthorInfo(
                id="EXODIST", fullname="Chad Granum", email="exodist@cpan.org"
            ),
        },
    )


@pytest.fixture
def cpan_state(tmp_path, fake_shell):
    """Just enough State for the handlers: config sections and runtime."""
    state = SimpleNamespace(
        config=SimpleNamespace(
            cpan=CpanConfig(),
            log_root=tmp_path / "logs",
            session="test",
        ),
        runtime=Runtime(),
    )
    state.runtime.cpan.shell = fake_shell
    return state
