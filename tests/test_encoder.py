"""Tests for external process invocation.

A small Python script stands in for ffmpeg so the process handling can be
exercised without media.
"""

import asyncio
import os
import time

import pytest

from dramagen.exceptions import ProcessExitError, ProcessLaunchError
from dramagen.render.encoder import EncodeInvoker

PROGRESS_SCRIPT = r"""
import sys
for second in (1, 2, 3, 4):
    sys.stderr.write(f"frame={second * 25} fps=25 size=  {second * 100}kB time=00:00:0{second}.00 bitrate=800.0kbits/s\r")
    sys.stderr.flush()
sys.stdout.write("done\n")
"""


class TestEncodeInvoker:
    """Tests for EncodeInvoker."""

    @pytest.mark.asyncio
    async def test_progress_events_in_order(self, fake_program):
        program, base_args = fake_program(PROGRESS_SCRIPT)
        invoker = EncodeInvoker(program, base_args=base_args)

        session = invoker.stream([], total_duration_sec=4.0)
        events = [event async for event in session]

        assert [e.percent for e in events] == [25.0, 50.0, 75.0, 100.0]
        assert [e.progress.frame for e in events] == [25, 50, 75, 100]
        assert session.result is not None
        assert session.result.returncode == 0
        assert session.result.wall_time_ms >= 0

    @pytest.mark.asyncio
    async def test_run_reports_progress_callback(self, fake_program):
        program, base_args = fake_program(PROGRESS_SCRIPT)
        invoker = EncodeInvoker(program, base_args=base_args)
        seen = []

        result = await invoker.run(
            [], total_duration_sec=8.0, on_progress=lambda p, elapsed, total: seen.append((p, elapsed, total))
        )

        assert result.returncode == 0
        assert seen[0] == (12.5, 1.0, 8.0)
        assert seen[-1] == (50.0, 4.0, 8.0)

    @pytest.mark.asyncio
    async def test_on_line_receives_both_streams(self, fake_program):
        program, base_args = fake_program(PROGRESS_SCRIPT)
        invoker = EncodeInvoker(program, base_args=base_args)
        lines = []

        await invoker.run([], on_line=lambda stream, line: lines.append((stream, line)))

        assert ("stdout", "done") in lines
        assert sum(1 for stream, _ in lines if stream == "stderr") == 4

    @pytest.mark.asyncio
    async def test_unknown_total_reports_zero_percent(self, fake_program):
        program, base_args = fake_program(PROGRESS_SCRIPT)
        invoker = EncodeInvoker(program, base_args=base_args)

        events = [event async for event in invoker.stream([])]

        assert all(e.percent == 0.0 for e in events)
        assert events[-1].elapsed_sec == 4.0

    @pytest.mark.asyncio
    async def test_nonzero_exit_carries_diagnostic_tail(self, fake_program):
        program, base_args = fake_program(
            """
            import sys
            for i in range(30):
                print(f"line {i}", file=sys.stderr)
            print("in.mp4: Invalid data found when processing input", file=sys.stderr)
            sys.exit(1)
            """
        )
        invoker = EncodeInvoker(program, base_args=base_args, tail_lines=5)

        with pytest.raises(ProcessExitError) as exc_info:
            await invoker.run([])

        error = exc_info.value
        assert error.returncode == 1
        assert len(error.diagnostic_tail) == 5
        assert error.diagnostic_tail[-1] == "in.mp4: Invalid data found when processing input"
        assert "Invalid data found" in str(error)
        assert not error.retryable

    @pytest.mark.asyncio
    async def test_missing_program_raises_launch_error(self):
        invoker = EncodeInvoker("/nonexistent/dramagen-ffmpeg")

        with pytest.raises(ProcessLaunchError) as exc_info:
            await invoker.run(["-version"])

        assert exc_info.value.program == "/nonexistent/dramagen-ffmpeg"
        assert exc_info.value.code == "PROCESS_LAUNCH_FAILED"

    @pytest.mark.asyncio
    async def test_large_output_on_both_pipes_does_not_block(self, fake_program):
        program, base_args = fake_program(
            """
            import sys
            chunk = "x" * 1023 + "\\n"
            for _ in range(1024):
                sys.stdout.write(chunk)
                sys.stderr.write(chunk)
            """
        )
        invoker = EncodeInvoker(program, base_args=base_args)

        result = await asyncio.wait_for(invoker.run([]), timeout=30)

        assert result.returncode == 0

    @pytest.mark.asyncio
    async def test_invalid_utf8_is_replaced(self, fake_program):
        program, base_args = fake_program(
            """
            import sys
            sys.stderr.buffer.write(b"bad \\xff\\xfe bytes\\n")
            """
        )
        invoker = EncodeInvoker(program, base_args=base_args)
        lines = []

        await invoker.run([], on_line=lambda stream, line: lines.append(line))

        assert lines == ["bad \ufffd\ufffd bytes"]

    @pytest.mark.asyncio
    async def test_stdin_is_closed(self, fake_program):
        program, base_args = fake_program(
            """
            import sys
            data = sys.stdin.read()
            print(f"read {len(data)}")
            """
        )
        invoker = EncodeInvoker(program, base_args=base_args)
        lines = []

        await asyncio.wait_for(invoker.run([], on_line=lambda s, line: lines.append(line)), timeout=10)

        assert lines == ["read 0"]

    @pytest.mark.asyncio
    async def test_cancel_terminates_child(self, fake_program, tmp_path):
        pid_file = tmp_path / "pid"
        program, base_args = fake_program(
            f"""
            import os, sys, time
            open({str(pid_file)!r}, "w").write(str(os.getpid()))
            sys.stderr.write("time=00:00:01.00\\r")
            sys.stderr.flush()
            time.sleep(60)
            """
        )
        invoker = EncodeInvoker(program, base_args=base_args, terminate_grace_sec=2.0)
        started = asyncio.Event()

        task = asyncio.create_task(
            invoker.run([], total_duration_sec=10, on_progress=lambda *_: started.set())
        )
        await asyncio.wait_for(started.wait(), timeout=10)
        cancelled_at = time.monotonic()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert time.monotonic() - cancelled_at < 5
        pid = int(pid_file.read_text())
        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)

    @pytest.mark.asyncio
    async def test_breaking_out_of_stream_terminates_child(self, fake_program):
        program, base_args = fake_program(
            """
            import sys, time
            for i in range(1, 100):
                sys.stderr.write(f"time=00:00:{i % 60:02d}.00\\r")
                sys.stderr.flush()
                time.sleep(0.05)
            """
        )
        invoker = EncodeInvoker(program, base_args=base_args, terminate_grace_sec=2.0)
        session = invoker.stream([], total_duration_sec=100)

        events = aiter(session)
        first = await anext(events)
        await events.aclose()

        assert first.elapsed_sec == 1.0
        assert session.result is None
        with pytest.raises(RuntimeError):
            session.require_result()
