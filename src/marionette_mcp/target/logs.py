"""Application log collection."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable

LogSink = Callable[[str], None]

MAX_LOG_ENTRIES = 10_000


class LogStore:
    """Bounded in-memory store of log lines, oldest dropped first."""

    def __init__(self, max_entries: int = MAX_LOG_ENTRIES):
        self._entries: deque[str] = deque(maxlen=max_entries)

    def add(self, line: str) -> None:
        self._entries.append(line)

    def get_logs(self) -> list[str]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class LogCollector(ABC):
    """Feeds application log lines into a sink."""

    @abstractmethod
    def start(self, sink: LogSink) -> None:
        """Begin delivering log lines to ``sink``."""


class PrintLogCollector(LogCollector):
    """Collector fed explicitly by the application via :meth:`add_log`."""

    def __init__(self) -> None:
        self._sink: LogSink | None = None

    def start(self, sink: LogSink) -> None:
        self._sink = sink

    def add_log(self, message: str) -> None:
        if self._sink is not None:
            self._sink(message)


class LoggingLogCollector(LogCollector, logging.Handler):
    """Collects records emitted through the standard ``logging`` module."""

    def __init__(
        self,
        logger: logging.Logger | None = None,
        level: int = logging.NOTSET,
        fmt: str = "[%(levelname)s][%(name)s][%(asctime)s] %(message)s",
    ):
        logging.Handler.__init__(self, level)
        self.setFormatter(logging.Formatter(fmt, datefmt="%H:%M:%S"))
        self._logger = logger if logger is not None else logging.getLogger()
        self._sink: LogSink | None = None

    def start(self, sink: LogSink) -> None:
        self._sink = sink
        if self not in self._logger.handlers:
            self._logger.addHandler(self)

    def stop(self) -> None:
        self._logger.removeHandler(self)
        self._sink = None

    def emit(self, record: logging.LogRecord) -> None:
        if self._sink is None:
            return
        try:
            self._sink(self.format(record))
        except Exception:
            self.handleError(record)
