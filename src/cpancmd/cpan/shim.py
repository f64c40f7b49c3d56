"""Shims between CPAN.pm's output streams and the emission sinks.

Two pipes read on two threads cannot tell which line was written
first, so for build methods the perl child sends everything down its
stdout. Warnings travel as marked records on that one pipe and
ChannelDemux splits them back out. Every chunk is passed straight to
whichever sink is registered for its channel at the time.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from io import TextIOBase

from cpancmd.cpan.capture import OutputCapture

# Starts a warn record; the record runs to the next newline
RECORD_MARK = "\x1e"

_UNESCAPE = {"n": "\n", "s": RECORD_MARK, "\\": "\\"}


def unescape_record(text: str) -> str:
    """Undo the escaping perl applies to a warn record body.

    Newline, RECORD_MARK and backslash arrive as \\n, \\s and \\\\.
    """
    return re.sub(r'\\(.)', lambda m: _UNESCAPE.get(m.group(1), m.group(0)), text)


class ChannelStream(TextIOBase):
    """Write-only text stream that forwards each write to a sink.

    Writes are passed on unbuffered and unsplit so that the order of
    chunks across two streams matches the order they were read in.

    Example:
        >>> seen = []
        >>> stream = ChannelStream(seen.append, "stdout")
        >>> stream.write("Running make install\\n")
        21
        >>> seen
        ['Running make install\\n']
    """

    def __init__(self, sink: Callable[[str], object], name: str):
        """
        Args:
            sink: Callable receiving each chunk of text
            name: "stdout" or "stderr", for repr and debugging
        """
        super().__init__()
        self._sink = sink
        self.name = name

    def writable(self) -> bool:
        return True

    def write(self, text: str) -> int:
        if text:
            self._sink(text)
        return len(text)

    def flush(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"<ChannelStream {self.name}>"


class ChannelDemux(TextIOBase):
    """Write-only stream carrying both channels, split back into sinks.

    Plain text goes to the info sink as soon as it arrives. A warn
    record is RECORD_MARK, the escaped warning, then a newline; it is
    held until the newline shows up, since the runner may hand it over
    in pieces.

    Example:
        >>> seen = []
        >>> demux = ChannelDemux(seen.append, lambda t: seen.append(("warn", t)))
        >>> demux.write("Running make\\n\\x1eno Makefile\\\\n\\nResult: PASS\\n")
        41
        >>> seen
        ['Running make\\n', ('warn', 'no Makefile\\n'), 'Result: PASS\\n']
    """

    def __init__(self, info: Callable[[str], object],
                 warn: Callable[[str], object], name: str = "stdout"):
        super().__init__()
        self._info = info
        self._warn = warn
        self._pending = ""
        self.name = name

    def writable(self) -> bool:
        return True

    def write(self, text: str) -> int:
        self._pending += text
        while self._pending:
            mark = self._pending.find(RECORD_MARK)
            if mark == -1:
                self._info(self._pending)
                self._pending = ""
            elif mark > 0:
                self._info(self._pending[:mark])
                self._pending = self._pending[mark:]
            else:
                end = self._pending.find("\n")
                if end == -1:
                    break
                self._warn(unescape_record(self._pending[1:end]))
                self._pending = self._pending[end + 1:]
        return len(text)

    def flush(self) -> None:
        pass

    def close(self) -> None:
        """Deliver a warn record cut off by the child exiting."""
        if self._pending:
            self._warn(unescape_record(self._pending[1:]))
            self._pending = ""
        super().close()

    def __repr__(self) -> str:
        return f"<ChannelDemux {self.name}>"


@contextmanager
def capture_output(shell, capture: OutputCapture | None = None) -> Iterator[OutputCapture]:
    """Capture everything `shell` emits inside the block.

    If the capture was already installed on this shell it stays
    installed afterwards; otherwise the shell's previous sinks are
    restored on exit, even if the block raises.

    Yields:
        The OutputCapture in use

    Example:
        >>> with capture_output(shell) as capture:
        ...     shell.test("Foo::Bar")
        ...     capture.classify_success()
    """
    capture = capture or OutputCapture()
    was_installed = capture.installed_on(shell)
    capture.install(shell)
    try:
        yield capture
    finally:
        if not was_installed:
            capture.uninstall()
