"""Logger with composable output sinks, backed by logfire."""

from __future__ import annotations

import contextlib
from abc import abstractmethod
from pathlib import Path
from typing import Any

from opentelemetry.proto.logs.v1 import logs_pb2
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult
from pydantic import Field, PrivateAttr, model_validator

from cpancmd.core.base import BaseConfig

_current_logger: Logger | None = None

# Level names mapped to OpenTelemetry severity numbers. Lower is chattier.
LEVELS = {
    'spew': logs_pb2.SEVERITY_NUMBER_TRACE,
    'trace': logs_pb2.SEVERITY_NUMBER_TRACE3,
    'debug': logs_pb2.SEVERITY_NUMBER_DEBUG,
    'info': logs_pb2.SEVERITY_NUMBER_INFO,
    'warn': logs_pb2.SEVERITY_NUMBER_WARN,
    'error': logs_pb2.SEVERITY_NUMBER_ERROR,
    'fatal': logs_pb2.SEVERITY_NUMBER_FATAL,
}

# logfire's console only understands its own level names
_CONSOLE_LEVELS = {'spew': 'trace'}


def level_number(level: str | int) -> int:
    """Severity number for a level name; unknown names count as info."""
    if isinstance(level, int):
        return level
    name = level.lower()
    if name == 'warning':
        name = 'warn'
    return LEVELS.get(name, logs_pb2.SEVERITY_NUMBER_INFO)


def level_name(number: int) -> str:
    """Most severe level name whose threshold `number` reaches."""
    for name in ('fatal', 'error', 'warn', 'info', 'debug', 'trace', 'spew'):
        if number >= LEVELS[name]:
            return name
    return 'spew'


class _LoggerProxy:
    """Forwards attribute access to the active Logger.

    Before setup_logger() has run every method is a no-op, so modules
    can log at import time or from tests without configuring anything.
    """

    def __getattr__(self, name):
        if _current_logger is None:
            def _noop(*args, **kwargs):  # noqa: ARG001
                pass
            return _noop
        return getattr(_current_logger, name)

    def __enter__(self):
        if _current_logger is None:
            return self
        return _current_logger.__enter__()

    def __exit__(self, *args):
        if _current_logger is None:
            return False
        return _current_logger.__exit__(*args)


logger = _LoggerProxy()


class LevelFilteringExporter(SpanExporter):
    """Forwards only spans at or above a minimum level."""

    def __init__(self, exporter: SpanExporter, min_level: str | None):
        self._exporter = exporter
        self._min_severity = level_number(min_level or 'info')

    def export(self, spans: list[ReadableSpan]) -> SpanExportResult:
        kept = [
            span for span in spans
            if (span.attributes or {}).get(
                'logfire.level_num', logs_pb2.SEVERITY_NUMBER_INFO
            ) >= self._min_severity
        ]
        if kept:
            return self._exporter.export(kept)
        return SpanExportResult.SUCCESS

    def shutdown(self) -> None:
        self._exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self._exporter.force_flush(timeout_millis)


class Sink(BaseConfig):
    """One log destination.

    Sinks are config models: they come from the `logger:` section of
    the YAML and are closed through the BaseCloseable cascade.
    """

    enabled: bool = Field(default=True, description="Enable this sink")
    level: str | None = Field(
        default=None,
        description=(
            "Minimum level for this sink; inherits Logger.level when unset. "
            "Valid: spew, trace, debug, info, warn, error, fatal"
        ),
    )
    escape_special_characters: bool = Field(
        default=True,
        description="Escape newlines and tabs so each record is one line",
    )
    format_template: str | None = Field(
        default="{timestamp:%Y-%m-%d %H:%M:%S} {level:<5} {message}",
        description="str.format template; None writes raw span JSON",
    )

    _processor: Any = PrivateAttr(default=None)

    @staticmethod
    def _escape(text: str) -> str:
        return (text
            .replace('\\', '\\\\')
            .replace('\n', '\\n')
            .replace('\r', '\\r')
            .replace('\t', '\\t')
        )

    def _format_span(self, span) -> str:
        if not self.format_template:
            import os
            return span.to_json() + os.linesep

        from datetime import UTC, datetime

        attrs = dict(span.attributes or {})
        message = str(attrs.pop('logfire.msg', span.name))
        if self.escape_special_characters:
            message = self._escape(message)
        data = {
            'timestamp': datetime.fromtimestamp(span.start_time / 1e9, tz=UTC),
            'level': level_name(
                attrs.get('logfire.level_num', logs_pb2.SEVERITY_NUMBER_INFO)
            ),
            'message': message,
            'location': (
                f"{attrs.get('code.filepath')}:{attrs.get('code.lineno')}"
                if attrs.get('code.filepath') else ""
            ),
            'function': attrs.get('code.function', ""),
        }
        try:
            line = self.format_template.format(**data)
        except KeyError as e:
            return f"ERROR: Invalid template field {e}\n"

        # Caller-supplied attributes go after the message
        extras = {
            key: value for key, value in attrs.items()
            if not key.startswith(('logfire.', 'code.', 'otel.'))
        }
        if extras:
            line += " | " + " ".join(
                f"{k}={v!r}" for k, v in sorted(extras.items())
            )
        return line + '\n'

    @abstractmethod
    def create_processor(self, log_root: Path, session: str):
        """Return an OpenTelemetry span processor, or None."""

    def close(self):
        if self._processor:
            with contextlib.suppress(Exception):
                self._processor.shutdown()


class ConsoleSink(Sink):
    """Terminal output, rendered by logfire itself."""

    verbose: bool = Field(default=False, description="Show file and line")
    colors: str = Field(
        default="auto", description="Color mode: auto, always, never"
    )

    def create_processor(self, log_root: Path, session: str):
        return None


class FileSink(Sink):
    """Plain-text log file, one line per record."""

    enabled: bool = Field(default=False, description="Enable file logging")
    path: str = Field(
        default="{log_root}/{session}/cpancmd.log",
        description="Log file path; {log_root} and {session} are expanded",
    )

    _file: Any = PrivateAttr(default=None)

    def create_processor(self, log_root: Path, session: str):
        from opentelemetry.sdk.trace.export import (
            ConsoleSpanExporter,
            SimpleSpanProcessor,
        )

        log_path = Path(self.path.format(log_root=log_root, session=session))
        log_path.parent.mkdir(parents=True, exist_ok=True)
        # Line buffered so a crash still leaves a readable log
        self._file = open(log_path, "a", buffering=1, encoding="utf-8")  # noqa: SIM115

        exporter = ConsoleSpanExporter(out=self._file, formatter=self._format_span)
        return SimpleSpanProcessor(LevelFilteringExporter(exporter, self.level))

    def close(self):
        # The processor flushes into the file, so it goes first
        super().close()
        if self._file and not self._file.closed:
            with contextlib.suppress(Exception):
                self._file.flush()
                self._file.close()


class Logger(BaseConfig):
    """Logger configuration plus the logging methods used everywhere."""

    level: str = Field(
        default="info",
        description=(
            "Default level for sinks that do not set one. "
            "Valid: spew, trace, debug, info, warn, error, fatal"
        ),
    )
    console: ConsoleSink = Field(
        default_factory=ConsoleSink, description="Console output"
    )
    file: FileSink = Field(
        default_factory=FileSink, description="File output"
    )

    @model_validator(mode='after')
    def _cascade_level_to_sinks(self) -> 'Logger':
        for sink in (self.console, self.file):
            if sink.level is None:
                sink.level = self.level
        return self

    def setup(self, log_root: Path, session: str):
        """Create sink processors and configure logfire."""
        import logfire
        from logfire import ConsoleOptions

        for sink in (self.console, self.file):
            if sink.enabled:
                sink._processor = sink.create_processor(log_root, session)
        processors = [
            sink._processor for sink in (self.console, self.file)
            if sink.enabled and sink._processor
        ]

        console = False
        if self.console.enabled:
            level = self.console.level or self.level
            console = ConsoleOptions(
                min_log_level=_CONSOLE_LEVELS.get(level, level),
                verbose=self.console.verbose,
                colors=self.console.colors,
                include_timestamps=True,
                show_project_link=False,
            )

        logfire.configure(
            service_name=f"cpancmd-{session}",
            send_to_logfire=False,
            console=console,
            additional_span_processors=processors or None,
            inspect_arguments=False,
        )

    def log(self, level: str | int, msg: str, **kwargs):
        import logfire
        logfire.log(level_number(level), msg, attributes=kwargs or None)

    def spew(self, msg: str, **kwargs):
        """Below trace: raw captured output, subprocess chatter."""
        self.log('spew', msg, **kwargs)

    def trace(self, msg: str, **kwargs):
        self.log('trace', msg, **kwargs)

    def debug(self, msg: str, **kwargs):
        import logfire
        logfire.debug(msg, **kwargs)

    def info(self, msg: str, **kwargs):
        import logfire
        logfire.info(msg, **kwargs)

    def warn(self, msg: str, **kwargs):
        import logfire
        logfire.warn(msg, **kwargs)

    warning = warn

    def error(self, msg: str, **kwargs):
        import logfire
        logfire.error(msg, **kwargs)

    def span(self, msg: str, **kwargs):
        """Span context manager: `with logger.span("install"): ...`"""
        import logfire
        return logfire.span(msg, **kwargs)

    def __getattr__(self, name):
        import logfire
        return getattr(logfire, name)


def setup_logger(
    log_root: Path,
    session: str,
    level: str = "info",
    console: ConsoleSink | None = None,
    file: FileSink | None = None,
) -> Logger:
    """Install a configured Logger behind the module-level proxy.

    Config calls this once it has loaded; tests call it directly.
    A previously active logger is closed first.
    """
    global _current_logger

    if _current_logger is not None:
        _current_logger.close()

    _current_logger = Logger(
        level=level,
        console=console or ConsoleSink(),
        file=file or FileSink(),
    )
    _current_logger.setup(log_root, session)
    return _current_logger
