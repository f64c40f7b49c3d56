"""Capture of CPAN.pm output and classification of how an attempt ended.

CPAN.pm reports progress on two channels, informational and warning.
OutputCapture hooks both on a CpanShell, keeps everything emitted in one
buffer in emission order, and reads the last complete line to decide
whether the attempt succeeded, failed, or left no clear verdict.

Typical use, once per module:

    capture.clear()
    shell.install("Foo::Bar")
    if capture.classify_failure():
        ...
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from cpancmd.core.log import logger
from cpancmd.core.result import Outcome

INFO = "info"
WARN = "warn"

# Last-line prefixes, matched case-sensitively
FAILURE_PATTERNS = (
    "make: *** [install] Error 13",
    "make: *** [pure_site_install] Error 13",
    "make: *** No rule to make target `install'.  Stop.",
    "  make test had returned bad status, won't install without force",
    "  Make had some problems, won't install",
)

SUCCESS_PATTERNS = (
    "Result: PASS",
    "  /usr/bin/make install  -- OK",
)


def _match(line: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if line.startswith(pattern):
            return pattern
    return None


class OutputCapture:
    """Ordered buffer of everything a shell emits, plus the classifier.

    The buffer is shared between the two channel recorders, which the
    runner may call from different reader threads; one lock covers every
    read and write of it.
    """

    def __init__(self, echo: bool = False):
        """
        Args:
            echo: Also pass captured text on to the sinks that were
                registered before install(), so it still reaches the
                terminal.
        """
        self.echo = echo
        self._fragments: list[str] = []
        self._lock = threading.Lock()
        self._shell = None
        self._previous: dict[str, Callable[[str], object]] = {}

    # -- hooks ---------------------------------------------------------

    def install(self, shell) -> None:
        """Register this capture as `shell`'s info and warn sinks.

        Safe to call repeatedly; a second call for the same shell does
        nothing. Installing on a different shell releases the first.
        """
        if self._shell is shell:
            return
        if self._shell is not None:
            self.uninstall()

        info, warn = shell.register_sinks(info=self._on_info, warn=self._on_warn)
        self._previous = {INFO: info, WARN: warn}
        self._shell = shell
        logger.debug("CPAN.pm output capture enabled", echo=self.echo)

    def uninstall(self) -> None:
        """Give the shell back the sinks it had before install()."""
        if self._shell is None:
            return
        self._shell.register_sinks(
            info=self._previous[INFO], warn=self._previous[WARN]
        )
        self._shell = None
        self._previous = {}
        logger.debug("CPAN.pm output capture disabled")

    def installed_on(self, shell) -> bool:
        return shell is not None and self._shell is shell

    def _on_info(self, text: str) -> None:
        self.record(text, INFO)

    def _on_warn(self, text: str) -> None:
        self.record(text, WARN)

    # -- buffer --------------------------------------------------------

    def record(self, text: str, category: str = INFO) -> None:
        """Append `text` verbatim, whichever channel it came from."""
        with self._lock:
            self._fragments.append(text)
        logger.spew("cpan {channel}", channel=category, text=text)

        if self.echo:
            sink = self._previous.get(category)
            if sink is not None:
                sink(text)

    def clear(self) -> bool:
        """Empty the buffer before a new attempt.

        Returns:
            True, the buffer being empty afterwards
        """
        with self._lock:
            self._fragments.clear()
            return not self._fragments

    def get_all(self) -> str:
        """Everything recorded since the last clear(), in order."""
        with self._lock:
            return "".join(self._fragments)

    def get_last_line(self) -> str:
        """The last newline-terminated line, newline included.

        A trailing fragment without a newline is a line still being
        written and is not returned. Empty when no complete line exists.
        """
        text = self.get_all()
        end = text.rfind("\n")
        if end == -1:
            return ""
        start = text.rfind("\n", 0, end) + 1
        return text[start:end + 1]

    # -- classification ------------------------------------------------

    def classify_failure(self) -> str | None:
        """Failure pattern the last line starts with, if any."""
        return _match(self.get_last_line(), FAILURE_PATTERNS)

    def classify_success(self) -> str | None:
        """Success pattern the last line starts with, if any."""
        return _match(self.get_last_line(), SUCCESS_PATTERNS)

    def classify_vague(self) -> bool:
        """True when the last line is neither a success nor a failure."""
        return not (self.classify_failure() or self.classify_success())

    def classify(self) -> tuple[Outcome, str | None]:
        """Outcome of the attempt and the pattern that decided it."""
        line = self.get_last_line()
        failure = _match(line, FAILURE_PATTERNS)
        if failure:
            return Outcome.FAILURE, failure
        success = _match(line, SUCCESS_PATTERNS)
        if success:
            return Outcome.SUCCESS, success
        return Outcome.VAGUE, None
