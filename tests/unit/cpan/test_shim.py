"""Tests for channel streams and the capture_output context manager."""

import pytest

from cpancmd.cpan.capture import INFO, WARN, OutputCapture
from cpancmd.cpan.shim import RECORD_MARK, ChannelDemux, ChannelStream, capture_output


class TestChannelStream:
    """Tests for ChannelStream."""

    def test_write_forwards_to_sink(self):
        seen = []
        stream = ChannelStream(seen.append, "stdout")

        assert stream.write("Running make install\n") == 21
        assert seen == ["Running make install\n"]

    def test_writes_are_not_split_or_joined(self):
        seen = []
        stream = ChannelStream(seen.append, "stderr")
        stream.write("partial ")
        stream.write("line\nnext\n")

        assert seen == ["partial ", "line\nnext\n"]

    def test_empty_write_not_forwarded(self):
        seen = []
        stream = ChannelStream(seen.append, "stdout")

        assert stream.write("") == 0
        assert seen == []

    def test_is_writable_text_stream(self):
        stream = ChannelStream(lambda text: None, "stdout")

        assert stream.writable()
        stream.flush()
        assert repr(stream) == "<ChannelStream stdout>"

    def test_print_goes_through_write(self):
        seen = []
        stream = ChannelStream(seen.append, "stdout")
        print("hello", file=stream)

        assert "".join(seen) == "hello\n"


class TestChannelDemux:
    """Tests for ChannelDemux."""

    @pytest.fixture
    def seen(self):
        return []

    @pytest.fixture
    def demux(self, seen):
        return ChannelDemux(
            lambda text: seen.append((INFO, text)),
            lambda text: seen.append((WARN, text)),
        )

    def test_plain_text_is_info(self, demux, seen):
        assert demux.write("Running make\n") == 13
        assert seen == [(INFO, "Running make\n")]

    def test_records_keep_their_place(self, demux, seen):
        demux.write(
            "out1\n" + RECORD_MARK + "warn1\\n\n" + "out2\n"
            + RECORD_MARK + "warn2\\n\n" + "  /usr/bin/make install  -- OK\n"
        )

        assert seen == [
            (INFO, "out1\n"),
            (WARN, "warn1\n"),
            (INFO, "out2\n"),
            (WARN, "warn2\n"),
            (INFO, "  /usr/bin/make install  -- OK\n"),
        ]

    def test_record_split_across_writes(self, demux, seen):
        demux.write("before " + RECORD_MARK + "Warning: no")
        assert seen == [(INFO, "before ")]

        demux.write(" Makefile\\n\nafter\n")
        assert seen == [
            (INFO, "before "),
            (WARN, "Warning: no Makefile\n"),
            (INFO, "after\n"),
        ]

    def test_escapes_decoded(self, demux, seen):
        demux.write(RECORD_MARK + r"C:\\cpan\nnext\s" + "\n")

        assert seen == [(WARN, "C:\\cpan\nnext" + RECORD_MARK)]

    def test_record_without_newline_kept_verbatim(self, demux, seen):
        demux.write(RECORD_MARK + "no newline here\n")

        assert seen == [(WARN, "no newline here")]

    def test_close_delivers_cut_off_record(self, demux, seen):
        demux.write(RECORD_MARK + "half a warn")
        assert seen == []

        demux.close()
        assert seen == [(WARN, "half a warn")]

    def test_demux_feeds_capture_in_order(self):
        capture = OutputCapture()
        demux = ChannelDemux(capture._on_info, capture._on_warn)
        demux.write("Running make test\n" + RECORD_MARK + "Result: PASS\\n\n")

        assert capture.get_all() == "Running make test\nResult: PASS\n"
        assert capture.get_last_line() == "Result: PASS\n"


class TestCaptureOutput:
    """Tests for capture_output()."""

    def test_captures_inside_block_only(self, fake_shell):
        fake_shell.outputs["Foo"] = [(INFO, "inside\n")]
        with capture_output(fake_shell) as capture:
            fake_shell.install("Foo")

        fake_shell.outputs["Foo"] = [(INFO, "outside\n")]
        fake_shell.install("Foo")

        assert capture.get_all() == "inside\n"
        assert fake_shell.info_text == ["outside\n"]

    def test_restores_sinks_on_exception(self, fake_shell):
        with pytest.raises(RuntimeError), capture_output(fake_shell):
            raise RuntimeError("boom")

        fake_shell.outputs["Foo"] = [(WARN, "after\n")]
        fake_shell.install("Foo")
        assert fake_shell.warn_text == ["after\n"]

    def test_uses_given_capture(self, fake_shell):
        capture = OutputCapture()
        with capture_output(fake_shell, capture) as used:
            assert used is capture

    def test_already_installed_capture_stays_installed(self, fake_shell):
        capture = OutputCapture()
        capture.install(fake_shell)

        with capture_output(fake_shell, capture):
            pass

        assert capture.installed_on(fake_shell)
        fake_shell.outputs["Foo"] = [(INFO, "still captured\n")]
        fake_shell.install("Foo")
        assert capture.get_all() == "still captured\n"
