"""
Asynchronous invocation of external media programs (ffmpeg, renderer CLI).

The invoker owns the child process for the duration of one call:

- stdin is closed, stdout and stderr are drained concurrently so the child
  never blocks on a full pipe
- stderr lines are kept in a bounded tail for error reports
- status lines are parsed into ``ProgressEvent`` objects and yielded in order
- cancelling the consuming task terminates the child (kill after a grace period)
"""

import asyncio
import codecs
import logging
import time
from collections import deque
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field

from dramagen.config import get_settings
from dramagen.exceptions import ProcessExitError, ProcessLaunchError
from dramagen.render.progress import (
    EncoderProgress,
    LineParser,
    ProgressParser,
    compute_percent,
    split_lines,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, float, float | None], None]
LineCallback = Callable[[str, str], None]


@dataclass
class ProgressEvent:
    """Progress of a running process, derived from one status line."""

    percent: float
    elapsed_sec: float
    total_sec: float | None
    progress: EncoderProgress


@dataclass
class EncodeResult:
    returncode: int
    wall_time_ms: int
    diagnostic_tail: list[str] = field(default_factory=list)


class EncodeSession:
    """A single process run; iterate it to drive the process to completion.

    ``result`` is populated once iteration finishes without error.
    """

    def __init__(
        self,
        argv: list[str],
        parser: LineParser,
        total_duration_sec: float | None,
        tail_lines: int,
        terminate_grace_sec: float,
        on_line: LineCallback | None = None,
    ):
        self.argv = argv
        self.parser = parser
        self.total_duration_sec = total_duration_sec
        self.tail_lines = tail_lines
        self.terminate_grace_sec = terminate_grace_sec
        self.on_line = on_line
        self.result: EncodeResult | None = None
        self._tail: deque[str] = deque(maxlen=tail_lines)

    @property
    def program(self) -> str:
        return self.argv[0]

    @property
    def diagnostic_tail(self) -> list[str]:
        return list(self._tail)

    def require_result(self) -> EncodeResult:
        """Result of a finished run; raises if iteration stopped early."""
        if self.result is None:
            raise RuntimeError(f"{self.program} run has not finished")
        return self.result

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self._events()

    async def _events(self) -> AsyncIterator[ProgressEvent]:
        started = time.monotonic()
        logger.info(f"[ENCODE] Starting: {' '.join(self.argv)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"[ENCODE] Failed to launch {self.program}: {e}")
            raise ProcessLaunchError(self.program, e) from e

        queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        readers = [
            asyncio.create_task(self._pump(proc.stdout, "stdout", queue)),
            asyncio.create_task(self._pump(proc.stderr, "stderr", queue)),
        ]

        try:
            open_streams = len(readers)
            while open_streams:
                event = await queue.get()
                if event is None:
                    open_streams -= 1
                    continue
                yield event
            returncode = await proc.wait()
        except (asyncio.CancelledError, GeneratorExit):
            logger.warning(f"[ENCODE] Cancelled, terminating {self.program} (pid={proc.pid})")
            await self._terminate(proc)
            raise
        finally:
            for reader in readers:
                reader.cancel()
            await asyncio.gather(*readers, return_exceptions=True)

        wall_time_ms = int((time.monotonic() - started) * 1000)
        if returncode != 0:
            logger.error(
                f"[ENCODE] {self.program} exited with code {returncode} after {wall_time_ms}ms; "
                f"last output: {self.diagnostic_tail[-3:]}"
            )
            raise ProcessExitError(self.program, returncode, self.diagnostic_tail)

        logger.info(f"[ENCODE] {self.program} finished in {wall_time_ms}ms")
        self.result = EncodeResult(
            returncode=returncode,
            wall_time_ms=wall_time_ms,
            diagnostic_tail=self.diagnostic_tail,
        )

    async def _pump(
        self,
        stream: asyncio.StreamReader,
        name: str,
        queue: "asyncio.Queue[ProgressEvent | None]",
    ) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = ""
        try:
            while True:
                chunk = await stream.read(4096)
                if not chunk:
                    break
                buffer += decoder.decode(chunk)
                lines, buffer = split_lines(buffer)
                for line in lines:
                    self._handle_line(name, line, queue)
            buffer += decoder.decode(b"", final=True)
            if buffer.strip():
                self._handle_line(name, buffer, queue)
        finally:
            queue.put_nowait(None)

    def _handle_line(self, name: str, line: str, queue: "asyncio.Queue[ProgressEvent | None]") -> None:
        line = line.strip()
        if name == "stderr":
            self._tail.append(line)
        if self.on_line is not None:
            self.on_line(name, line)

        progress = self.parser.parse(line)
        if progress is None:
            return
        total = self.total_duration_sec or progress.total_sec
        queue.put_nowait(
            ProgressEvent(
                percent=compute_percent(progress.time_sec, total),
                elapsed_sec=progress.time_sec,
                total_sec=total,
                progress=progress,
            )
        )

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.terminate_grace_sec)
        except asyncio.TimeoutError:
            logger.warning(f"[ENCODE] {self.program} ignored SIGTERM, killing (pid={proc.pid})")
            proc.kill()
            await proc.wait()


class EncodeInvoker:
    """Runs an external program and reports its progress.

    Args:
        program: Executable to run; defaults to the configured ffmpeg binary
        base_args: Arguments always placed before the per-call arguments
        parser: Status line parser; defaults to the ffmpeg ``ProgressParser``
        tail_lines: Number of trailing stderr lines kept for error reports
        terminate_grace_sec: Time allowed after SIGTERM before SIGKILL
    """

    def __init__(
        self,
        program: str | None = None,
        *,
        base_args: Sequence[str] = (),
        parser: LineParser | None = None,
        tail_lines: int | None = None,
        terminate_grace_sec: float = 5.0,
    ):
        settings = get_settings()
        self.program = program or settings.ffmpeg_path
        self.base_args = list(base_args)
        self.parser = parser or ProgressParser()
        self.tail_lines = tail_lines or settings.diagnostic_tail_lines
        self.terminate_grace_sec = terminate_grace_sec

    def stream(
        self,
        args: Sequence[str],
        total_duration_sec: float | None = None,
        on_line: LineCallback | None = None,
    ) -> EncodeSession:
        """Prepare a run; the process starts when the session is iterated."""
        return EncodeSession(
            argv=[self.program, *self.base_args, *args],
            parser=self.parser,
            total_duration_sec=total_duration_sec,
            tail_lines=self.tail_lines,
            terminate_grace_sec=self.terminate_grace_sec,
            on_line=on_line,
        )

    async def run(
        self,
        args: Sequence[str],
        total_duration_sec: float | None = None,
        on_progress: ProgressCallback | None = None,
        on_line: LineCallback | None = None,
    ) -> EncodeResult:
        """Run to completion, calling ``on_progress(percent, elapsed, total)`` per status line.

        Raises:
            ProcessLaunchError: If the program cannot be started
            ProcessExitError: If the program exits non-zero
        """
        session = self.stream(args, total_duration_sec, on_line=on_line)
        async with aclosing(aiter(session)) as events:
            async for event in events:
                if on_progress is not None:
                    on_progress(event.percent, event.elapsed_sec, event.total_sec)
        return session.require_result()
