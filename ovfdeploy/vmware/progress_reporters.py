# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
"""
Progress rendering for uploads and downloads.

Strategies sharing one interface:
- RichProgressReporter: animated bar (Rich + TTY)
- SimpleProgressReporter: single rewritten line (TTY)
- LoggingProgressReporter: periodic log lines (works everywhere)
- NoopProgressReporter: silent

The transfer engine reports absolute (transferred, total) pairs;
reporter_callback() turns those into the deltas reporters consume.
"""

from __future__ import annotations

import logging
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from ..core.utils import U
from .vmware_utils import create_console, is_tty


@dataclass(frozen=True)
class ProgressOptions:
    show_progress: bool = True
    progress_refresh_hz: float = 10.0
    log_every_bytes: int = 64 * 1024 * 1024
    simple_progress: bool = True


class ProgressReporter(ABC):
    @abstractmethod
    def start(self, description: str, total: Optional[int] = None) -> None:
        ...

    @abstractmethod
    def update(self, delta: int) -> None:
        """Advance by `delta` bytes."""
        ...

    @abstractmethod
    def finish(self) -> None:
        ...


class RichProgressReporter(ProgressReporter):
    def __init__(self, console: Any, refresh_hz: float = 10.0):
        self.console = console
        self.refresh_hz = refresh_hz
        self.progress: Optional[Progress] = None
        self.task_id: Optional[int] = None

    def start(self, description: str, total: Optional[int] = None) -> None:
        self.progress = Progress(
            SpinnerColumn(style="bright_green"),
            TextColumn("[progress.description]{task.description}", style="bold cyan"),
            BarColumn(complete_style="bright_blue", finished_style="bright_green", pulse_style="magenta"),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            TimeElapsedColumn(),
            console=self.console,
            transient=False,
            refresh_per_second=max(1, int(self.refresh_hz)),
        )
        self.progress.start()
        self.task_id = self.progress.add_task(description, total=total if total and total > 0 else None)

    def update(self, delta: int) -> None:
        if self.progress is not None and self.task_id is not None:
            self.progress.update(self.task_id, advance=delta)

    def finish(self) -> None:
        if self.progress is not None:
            self.progress.stop()
            self.progress = None


class SimpleProgressReporter(ProgressReporter):
    def __init__(self, file_name: str, stream: Any = None):
        self.file_name = file_name
        self.stream = stream or sys.stdout
        self.description = file_name
        self.done = 0
        self.total: Optional[int] = None

    def start(self, description: str, total: Optional[int] = None) -> None:
        self.description = description
        self.total = total
        self._render()

    def update(self, delta: int) -> None:
        self.done += delta
        self._render()

    def _render(self) -> None:
        if self.total and self.total > 0:
            pct = (self.done / self.total) * 100.0
            s = f"{pct:.1f}% ({U.human_bytes(self.done)}/{U.human_bytes(self.total)})"
        else:
            s = f"{U.human_bytes(self.done)} (size unknown)"
        self.stream.write(f"{self.description}: {s}   \r")
        self.stream.flush()

    def finish(self) -> None:
        self.stream.write("\n")
        self.stream.flush()


class LoggingProgressReporter(ProgressReporter):
    def __init__(self, logger: logging.Logger, log_every_bytes: int = 64 * 1024 * 1024):
        self.logger = logger
        self.log_every_bytes = max(1, int(log_every_bytes))
        self.description = ""
        self.done = 0
        self.total: Optional[int] = None
        self.last_log_mark = 0

    def start(self, description: str, total: Optional[int] = None) -> None:
        self.description = description
        self.total = total
        self.logger.info("%s (%s)", description, U.human_bytes(total) if total and total > 0 else "size unknown")

    def update(self, delta: int) -> None:
        self.done += delta
        if self.done - self.last_log_mark < self.log_every_bytes:
            return
        self.last_log_mark = self.done
        if self.total and self.total > 0:
            self.logger.info(
                "%s: %s / %s (%.1f%%)",
                self.description,
                U.human_bytes(self.done),
                U.human_bytes(self.total),
                (self.done / self.total) * 100.0,
            )
        else:
            self.logger.info("%s: %s", self.description, U.human_bytes(self.done))

    def finish(self) -> None:
        self.logger.info("%s: done, %s", self.description, U.human_bytes(self.done))


class NoopProgressReporter(ProgressReporter):
    def start(self, description: str, total: Optional[int] = None) -> None:
        pass

    def update(self, delta: int) -> None:
        pass

    def finish(self) -> None:
        pass


def create_progress_reporter(
    options: Optional[ProgressOptions],
    file_name: str,
    logger: logging.Logger,
) -> ProgressReporter:
    """
    1. show_progress=False -> Noop
    2. TTY -> Rich
    3. TTY without a usable console -> Simple (if enabled)
    4. otherwise -> Logging
    """
    opt = options or ProgressOptions()
    if not opt.show_progress:
        return NoopProgressReporter()

    if is_tty():
        con = create_console()
        if con is not None:
            return RichProgressReporter(con, opt.progress_refresh_hz)
        if opt.simple_progress:
            return SimpleProgressReporter(file_name)

    return LoggingProgressReporter(logger, opt.log_every_bytes)


def reporter_callback(reporter: ProgressReporter) -> Callable[[int, int], None]:
    """Adapt a reporter to the (transferred, total) callback shape."""
    last = [0]

    def _cb(transferred: int, total: int) -> None:
        delta = int(transferred) - last[0]
        if delta > 0:
            reporter.update(delta)
            last[0] = int(transferred)

    return _cb
