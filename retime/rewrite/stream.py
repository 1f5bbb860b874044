"""Run a child process while draining its output concurrently.

The child's stdout and stderr are each read by a daemon thread for the
whole life of the process, so a chatty child can never fill a pipe and
stall. Progress markers (``PROGRESS:<n>`` lines on stdout) are handed to
the consumer through a bounded queue. When the queue is full the oldest
marker is discarded: only the most recent count matters, and the reader
thread must never block.
"""

from __future__ import annotations

import logging
import queue
import re
import subprocess
import threading
from collections import deque
from pathlib import Path
from typing import Callable, Iterator

log = logging.getLogger(__name__)

PROGRESS_RE = re.compile(r"^PROGRESS:(\d+)\s*$")

_POLL_SECONDS = 0.1


class StreamedProcess:
    """A spawned child whose output is streamed to a progress consumer.

    Parameters
    ----------
    cmd:
        Command and arguments.
    cwd:
        Working directory for the child.
    max_pending:
        Capacity of the progress marker queue.
    stderr_lines:
        Number of trailing stderr lines kept for error reports.
    """

    def __init__(
        self,
        cmd: list[str],
        cwd: Path | None = None,
        max_pending: int = 64,
        stderr_lines: int = 50,
    ) -> None:
        self.cmd = cmd
        self.cwd = cwd
        self._markers: queue.Queue[int] = queue.Queue(maxsize=max_pending)
        self._stderr_tail: deque[str] = deque(maxlen=stderr_lines)
        self._stdout_tail: deque[str] = deque(maxlen=stderr_lines)
        self._proc: subprocess.Popen[str] | None = None
        self._readers: list[threading.Thread] = []
        self.dropped_markers = 0

    def start(self) -> None:
        log.debug("Spawning: %s", " ".join(self.cmd))
        self._proc = subprocess.Popen(
            self.cmd,
            cwd=str(self.cwd) if self.cwd else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
        )
        if self._proc.stdout is None or self._proc.stderr is None:
            raise RuntimeError("Child process pipes were not created")
        self._readers = [
            threading.Thread(target=self._pump_stdout, args=(self._proc.stdout,), daemon=True),
            threading.Thread(target=self._pump_stderr, args=(self._proc.stderr,), daemon=True),
        ]
        for t in self._readers:
            t.start()

    def _offer(self, value: int) -> None:
        while True:
            try:
                self._markers.put_nowait(value)
                return
            except queue.Full:
                try:
                    self._markers.get_nowait()
                    self.dropped_markers += 1
                except queue.Empty:
                    pass

    def _pump_stdout(self, stream) -> None:
        with stream:
            for line in stream:
                m = PROGRESS_RE.match(line.strip())
                if m:
                    self._offer(int(m.group(1)))
                elif line.strip():
                    self._stdout_tail.append(line.rstrip("\n"))
                    log.debug("[rewrite] %s", line.rstrip())

    def _pump_stderr(self, stream) -> None:
        with stream:
            for line in stream:
                text = line.rstrip("\n")
                if text.strip():
                    self._stderr_tail.append(text)
                    log.debug("[rewrite:stderr] %s", text)

    def _readers_alive(self) -> bool:
        return any(t.is_alive() for t in self._readers)

    def markers(self) -> Iterator[int]:
        """Yield progress markers until the child exits and output is drained."""
        if self._proc is None:
            raise RuntimeError("Process not started")
        while True:
            try:
                yield self._markers.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                if self._proc.poll() is not None and not self._readers_alive():
                    break
        # Anything queued between the last get and the readers finishing
        while True:
            try:
                yield self._markers.get_nowait()
            except queue.Empty:
                break

    def wait(self) -> int:
        """Wait for the child and the reader threads; return the exit code."""
        if self._proc is None:
            raise RuntimeError("Process not started")
        rc = self._proc.wait()
        for t in self._readers:
            t.join()
        return rc

    def cancel(self) -> None:
        """Kill the child. Its snapshot is left in an indeterminate state."""
        if self._proc is not None and self._proc.poll() is None:
            log.warning("Killing rewrite process %d", self._proc.pid)
            self._proc.kill()

    @property
    def stderr_tail(self) -> str:
        return "\n".join(self._stderr_tail)

    @property
    def stdout_tail(self) -> str:
        return "\n".join(self._stdout_tail)

    def run(self, on_marker: Callable[[int], None] | None = None) -> int:
        """Start, forward every marker to *on_marker*, and return the exit code.

        A ``KeyboardInterrupt`` while waiting kills the child before
        re-raising.
        """
        self.start()
        try:
            for value in self.markers():
                if on_marker is not None:
                    on_marker(value)
        except BaseException:
            self.cancel()
            self.wait()
            raise
        return self.wait()
