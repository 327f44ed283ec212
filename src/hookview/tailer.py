"""Offset-tracking tailer for the append-only hook event log.

Remembers the byte length of the log as of the last check. Each check reads
only the bytes appended since then, parses them and hands the new records
to a callback, so every appended line is delivered once.

A file that shrinks has been truncated or rotated: the offset is reset to
the new length and nothing is replayed. Clients that need the full content
re-read the file instead.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from hookview.records import parse_records

logger = logging.getLogger(__name__)

RecordsCallback = Callable[[list[dict]], None]


@dataclass
class WatchState:
    """Tail progress for one watched file."""
    known_length: int = 0


class LogTailer:
    """Polls a log file and emits records appended since the last check.

    ``check_for_changes`` may be called from the poll task, from a file
    notification thread, or directly in tests; checks on one tailer are
    serialized so the delta window is never computed from a stale offset.

    The poll task runs each check in a worker thread so file I/O never blocks
    the event loop. Once started, ``on_records`` always runs on the loop that
    called ``start()``: checks made off that loop hand their batch over with
    ``call_soon_threadsafe``, in the order the checks completed.
    """

    def __init__(
        self,
        path: Path,
        on_records: RecordsCallback,
        poll_interval: float = 0.5,
    ) -> None:
        self.path = Path(path)
        self.on_records = on_records
        self.poll_interval = poll_interval
        self.state = WatchState()
        self._lock = threading.Lock()
        self._task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._started = False
        self._last_error: str | None = None
        self._missing_logged = False

    @property
    def known_length(self) -> int:
        return self.state.known_length

    @property
    def running(self) -> bool:
        return self._started

    def start(self) -> None:
        """Record the current file size and begin polling.

        Must be called with a running event loop. Calling it twice is a no-op.
        """
        if self._started:
            return
        with self._lock:
            self.state.known_length = self._current_size() or 0
        self._started = True
        self._loop = asyncio.get_running_loop()
        self._task = self._loop.create_task(self._poll_loop())
        logger.info(
            f"Watching {self.path} from byte {self.state.known_length} "
            f"(every {self.poll_interval}s)"
        )

    def stop(self) -> None:
        """Stop polling. Safe to call more than once."""
        if not self._started:
            return
        self._started = False
        if self._task is not None:
            self._task.cancel()
        logger.info(f"Stopped watching {self.path}")

    async def aclose(self) -> None:
        """Stop polling and wait for the poll task to finish."""
        task = self._task
        self.stop()
        self._task = None
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _poll_loop(self) -> None:
        while self._started:
            await asyncio.sleep(self.poll_interval)
            if not self._started:
                break
            try:
                await asyncio.to_thread(self.check_for_changes)
            except Exception:
                logger.exception(f"Log tail tick failed for {self.path}")

    def check_for_changes(self) -> list[dict]:
        """Compare the file size with the last known length and emit growth.

        Safe to call from any thread. Batches reach ``on_records`` in the
        order their checks ran.

        Returns:
            The records parsed from the newly appended bytes (empty when the
            file did not grow).
        """
        with self._lock:
            current = self._current_size()
            if current is None:
                return []

            known = self.state.known_length
            if current == known:
                return []

            if current < known:
                logger.info(
                    f"{self.path} shrank from {known} to {current} bytes "
                    f"(truncated or rotated), resetting offset"
                )
                self.state.known_length = current
                return []

            chunk = self._read_range(known, current)
            if chunk is None:
                return []
            self._last_error = None

            self.state.known_length = known + len(chunk)
            records = parse_records(chunk.decode("utf-8", errors="replace"))
            self._deliver(records)
            return records

    def _deliver(self, records: list[dict]) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            self._emit(records)
            return
        try:
            on_loop = asyncio.get_running_loop() is loop
        except RuntimeError:
            on_loop = False
        if on_loop:
            self._emit(records)
            return
        try:
            loop.call_soon_threadsafe(self._emit, records)
        except RuntimeError:
            # Loop closed between the check above and the handoff
            logger.debug(f"Dropped {len(records)} record(s) from {self.path}: loop closed")

    def _emit(self, records: list[dict]) -> None:
        try:
            self.on_records(records)
        except Exception:
            logger.exception(f"Record callback failed for {self.path}")

    def _current_size(self) -> int | None:
        """Size of the watched file; 0 when it does not exist yet, None on error."""
        try:
            size = self.path.stat().st_size
        except FileNotFoundError:
            if not self._missing_logged:
                logger.debug(f"{self.path} does not exist yet, treating as empty")
                self._missing_logged = True
            return 0
        except OSError as e:
            self._report_error(f"Could not stat {self.path}: {e}")
            return None
        self._missing_logged = False
        return size

    def _read_range(self, start: int, end: int) -> bytes | None:
        try:
            with open(self.path, "rb") as f:
                f.seek(start)
                return f.read(end - start)
        except OSError as e:
            self._report_error(f"Could not read {self.path}: {e}")
            return None

    def _report_error(self, message: str) -> None:
        # Repeated identical failures on every tick go to DEBUG
        if message != self._last_error:
            logger.warning(message)
            self._last_error = message
        else:
            logger.debug(message)
