"""Progress reporting for replication runs.

The replicator never prints directly.  It writes to a ``Reporter`` owned by
the caller, which supports nested blocks, info/warning/error messages, and
buffered child reporters so that databases updated in parallel each print
as one uninterrupted section.

Two renderers ship with the library, both writing through a
``rich.console.Console``:

- ``ConsoleReporter``: indented blocks, optional timestamps and colors.
- ``TeamCityReporter``: TeamCity service messages (``##teamcity[...]``).

Usage:
    from enum_to_sql.reporting import make_reporter

    reporter = make_reporter("colors")
    with reporter.block("Updating database app on localhost"):
        reporter.info("Added Open")
"""

from __future__ import annotations

import re
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import ContextManager, Iterator, Protocol

from rich.console import Console

from enum_to_sql.exceptions import EnumToSqlError

MAX_NESTED_LEVEL = 8

INFO = "info"
WARNING = "warning"
ERROR = "error"

_STYLES = {INFO: None, WARNING: "yellow", ERROR: "bold red"}
_BLOCK_STYLE = "bold cyan"


class Reporter(Protocol):
    """Sink for replication progress."""

    def block(self, name: str) -> ContextManager[None]:
        """Context manager grouping the messages written inside it."""
        ...

    def info(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def exception(self, exc: BaseException) -> None:
        """Report an exception once; already-reported library errors are skipped."""
        ...

    def child(self) -> "Reporter":
        """A reporter whose output is buffered until it is flushed to this one."""
        ...

    def flush(self) -> None: ...


class _BufferedReporter:
    """Shared machinery: nesting level, buffering for child reporters."""

    def __init__(
        self,
        console: Console | None = None,
        *,
        parent: _BufferedReporter | None = None,
    ) -> None:
        self.console = console or Console(highlight=False, soft_wrap=True)
        self._parent = parent
        self._level = parent._level if parent else 0
        self._buffer: list[tuple[str, str | None]] = []
        self._last_was_block = False

    # -- subclass hooks -------------------------------------------------

    def _format_message(self, severity: str, message: str) -> str:
        raise NotImplementedError

    def _format_open(self, name: str) -> str:
        raise NotImplementedError

    def _format_close(self, name: str) -> str | None:
        raise NotImplementedError

    def _make_child(self) -> _BufferedReporter:
        raise NotImplementedError

    def _style(self, style: str | None) -> str | None:
        return style

    # -- output ---------------------------------------------------------

    def _write(self, text: str, style: str | None = None) -> None:
        if self._parent is not None:
            self._buffer.append((text, style))
            return
        self.console.print(text, style=self._style(style), markup=False, highlight=False)

    def flush(self) -> None:
        """Hand buffered output to the parent reporter."""
        if self._parent is None:
            return
        pending, self._buffer = self._buffer, []
        for text, style in pending:
            self._parent._write(text, style)
        self._parent._last_was_block = self._last_was_block

    def __enter__(self) -> _BufferedReporter:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.flush()

    # -- Reporter API ---------------------------------------------------

    @contextmanager
    def block(self, name: str) -> Iterator[None]:
        self._write(self._format_open(name), _BLOCK_STYLE)
        self._last_was_block = True
        self._level += 1
        try:
            yield
        finally:
            self._level -= 1
            closing = self._format_close(name)
            if closing is not None:
                self._write(closing)
            self._last_was_block = True

    def _message(self, severity: str, message: str) -> None:
        self._write(self._format_message(severity, message), _STYLES[severity])
        self._last_was_block = False

    def info(self, message: str) -> None:
        self._message(INFO, message)

    def warning(self, message: str) -> None:
        self._message(WARNING, message)

    def error(self, message: str) -> None:
        self._message(ERROR, message)

    def exception(self, exc: BaseException) -> None:
        if isinstance(exc, EnumToSqlError):
            if exc.is_reported:
                return
            self.error(str(exc))
            exc.is_reported = True
        else:
            self.error(f"{type(exc).__name__}: {exc}")

    def child(self) -> _BufferedReporter:
        return self._make_child()


class ConsoleReporter(_BufferedReporter):
    """Indented plain-text reporter.

    Args:
        console: Console to write to (defaults to stdout).
        timestamps: Prefix each line with a local timestamp.
        colors: Color warnings, errors and block headings.
    """

    def __init__(
        self,
        console: Console | None = None,
        *,
        timestamps: bool = False,
        colors: bool = False,
        parent: ConsoleReporter | None = None,
    ) -> None:
        super().__init__(console, parent=parent)
        self.timestamps = timestamps
        self.colors = colors

    def _prefix(self) -> str:
        indent = "  " * min(self._level, MAX_NESTED_LEVEL)
        if not self.timestamps:
            return indent
        stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        return f"{stamp}  {indent}"

    def _format_message(self, severity: str, message: str) -> str:
        if severity == ERROR:
            message = "ERROR: " + message
        elif severity == WARNING:
            message = "WARNING: " + message
        prefix = self._prefix()
        # continuation lines keep the indentation of the first
        return prefix + message.replace("\n", "\n" + " " * len(prefix))

    def _format_open(self, name: str) -> str:
        return self._prefix() + name

    def _format_close(self, name: str) -> str | None:
        return None if self._last_was_block else ""

    def _style(self, style: str | None) -> str | None:
        return style if self.colors else None

    def _make_child(self) -> ConsoleReporter:
        return ConsoleReporter(
            self.console, timestamps=self.timestamps, colors=self.colors, parent=self
        )


_TEAMCITY_ESCAPES = {"'": "|'", "\n": "|n", "\r": "|r", "|": "||", "[": "|[", "]": "|]"}
_TEAMCITY_PATTERN = re.compile(r"['\n\r|\[\]]")


def teamcity_escape(value: str) -> str:
    """Escape a value for a TeamCity service message attribute.

    Example:
        >>> teamcity_escape("it's [done]")
        "it|'s |[done|]"
    """
    return _TEAMCITY_PATTERN.sub(lambda m: _TEAMCITY_ESCAPES[m.group(0)], value)


def _teamcity_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3]


class TeamCityReporter(_BufferedReporter):
    """Reporter emitting TeamCity block and message annotations."""

    _STATUS = {INFO: "NORMAL", WARNING: "WARNING", ERROR: "ERROR"}

    def _format_message(self, severity: str, message: str) -> str:
        return (
            f"##teamcity[message timestamp='{_teamcity_timestamp()}' "
            f"text='{teamcity_escape(message)}' status='{self._STATUS[severity]}']"
        )

    def _format_open(self, name: str) -> str:
        return f"##teamcity[blockOpened timestamp='{_teamcity_timestamp()}' name='{teamcity_escape(name)}']"

    def _format_close(self, name: str) -> str | None:
        return f"##teamcity[blockClosed timestamp='{_teamcity_timestamp()}' name='{teamcity_escape(name)}']"

    def _style(self, style: str | None) -> str | None:
        return None

    def _make_child(self) -> TeamCityReporter:
        return TeamCityReporter(self.console, parent=self)


_FORMATS = {
    "plain": (False, False),
    "time": (True, False),
    "timestamp": (True, False),
    "timestamps": (True, False),
    "color": (False, True),
    "colors": (False, True),
    "time-colors": (True, True),
    "times-colors": (True, True),
    "timestamp-color": (True, True),
    "timestamp-colors": (True, True),
    "timestamps-colors": (True, True),
}

FORMAT_CHOICES = ("plain", "timestamps", "colors", "time-colors", "teamcity")


def make_reporter(output_format: str = "plain", console: Console | None = None) -> _BufferedReporter:
    """Create a reporter for an output format name.

    Raises:
        ValueError: If the format name is not recognized.
    """
    key = output_format.strip().lower()
    if key == "teamcity":
        return TeamCityReporter(console)
    if key not in _FORMATS:
        raise ValueError(f'Invalid output format "{output_format}"')
    timestamps, colors = _FORMATS[key]
    return ConsoleReporter(console, timestamps=timestamps, colors=colors)
