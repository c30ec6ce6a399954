"""Tests for joining segments."""

from pathlib import Path

import pytest

from dramagen.exceptions import EmptySegmentListError, OutputExistsError
from dramagen.render import concat
from dramagen.render.concat import batch_concat_videos, concat_videos
from dramagen.render.filter_graph import RenderConfig
from dramagen.schemas.timeline import Segment, TransitionSpec
from dramagen.services import video_trimmer
from dramagen.utils.media_info import get_media_duration, has_audio_track


class RecordingInvoker:
    """Captures arguments and the concat list file contents."""

    def __init__(self):
        self.calls = []
        self.listings = []

    async def run(self, args, total_duration_sec=None, on_progress=None, on_line=None):
        args = list(args)
        self.calls.append((args, total_duration_sec))
        if "concat" in args:
            self.listings.append(Path(args[args.index("-i") + 1]).read_text())


@pytest.fixture
def clips(tmp_path, monkeypatch):
    paths = []
    for name in ("a.mp4", "b.mp4"):
        path = tmp_path / name
        path.write_bytes(b"\x00")
        paths.append(path)
    monkeypatch.setattr(concat, "has_audio_track", lambda p: True)
    monkeypatch.setattr(
        video_trimmer, "get_media_info", lambda p: {"duration_ms": 4000, "width": 1080, "height": 1920}
    )
    return paths


def probe(path):
    return 4000


class TestConcatStrategies:
    """Tests for strategy selection with a recording encoder."""

    @pytest.mark.asyncio
    async def test_no_transition_uses_stream_copy_list(self, clips, tmp_path):
        invoker = RecordingInvoker()

        result = await concat_videos(
            [Segment(path=str(p)) for p in clips], str(tmp_path / "out.mp4"), invoker=invoker, probe=probe
        )

        assert result.strategy == "list"
        assert result.duration_sec == pytest.approx(8.0)
        assert invoker.listings == [f"file '{clips[0]}'\nfile '{clips[1]}'\n"]
        args, total = invoker.calls[-1]
        assert args[args.index("-c") + 1] == "copy"
        assert total == pytest.approx(8.0)

    @pytest.mark.asyncio
    async def test_list_strategy_pretrims_windowed_segments(self, clips, tmp_path):
        invoker = RecordingInvoker()
        segments = [Segment(path=str(clips[0]), start_ms=1000, duration_ms=2000), Segment(path=str(clips[1]))]

        result = await concat_videos(segments, str(tmp_path / "out.mp4"), invoker=invoker, probe=probe)

        assert result.duration_sec == pytest.approx(6.0)
        trim_args, _ = invoker.calls[0]
        assert trim_args[trim_args.index("-ss") + 1] == "00:00:01.000"
        assert trim_args[trim_args.index("-t") + 1] == "00:00:02.000"
        listing = invoker.listings[0].splitlines()
        assert listing[0].endswith("segment_000.mp4'")
        assert listing[1] == f"file '{clips[1]}'"

    @pytest.mark.asyncio
    async def test_transition_uses_filter_graph(self, clips, tmp_path):
        invoker = RecordingInvoker()

        result = await concat_videos(
            [Segment(path=str(p)) for p in clips],
            str(tmp_path / "out.mp4"),
            TransitionSpec(kind="slide", duration_ms=500),
            config=RenderConfig(width=720, height=1280, fps=24),
            invoker=invoker,
            probe=probe,
        )

        assert result.strategy == "graph"
        assert result.duration_sec == pytest.approx(7.5)
        args, _ = invoker.calls[0]
        graph = args[args.index("-filter_complex") + 1]
        assert "xfade=transition=slideleft:duration=0.5:offset=3.500[vout]" in graph
        assert "scale=720:1280" in graph
        assert "fps=24" in graph

    @pytest.mark.asyncio
    async def test_validation_happens_before_encoding(self, tmp_path):
        invoker = RecordingInvoker()

        with pytest.raises(EmptySegmentListError):
            await concat_videos([], str(tmp_path / "out.mp4"), invoker=invoker, probe=probe)

        assert invoker.calls == []

    @pytest.mark.asyncio
    async def test_existing_output_refused(self, clips, tmp_path):
        output = tmp_path / "out.mp4"
        output.write_bytes(b"keep")

        with pytest.raises(OutputExistsError):
            await concat_videos([Segment(path=str(clips[0]))], str(output), invoker=RecordingInvoker(), probe=probe)

    @pytest.mark.asyncio
    async def test_batch_runs_in_order_and_stops_at_first_failure(self, clips, tmp_path):
        invoker = RecordingInvoker()
        (tmp_path / "second.mp4").write_bytes(b"keep")
        segments = [Segment(path=str(p)) for p in clips]
        jobs = [
            (segments, str(tmp_path / name), TransitionSpec(kind="none", duration_ms=0))
            for name in ("first.mp4", "second.mp4", "third.mp4")
        ]

        with pytest.raises(OutputExistsError):
            await batch_concat_videos(jobs, invoker=invoker, probe=probe)

        outputs = [args[-1] for args, _ in invoker.calls]
        assert outputs == [str(tmp_path / "first.mp4")]

    @pytest.mark.asyncio
    async def test_batch_returns_results_in_input_order(self, clips, tmp_path):
        segments = [Segment(path=str(p)) for p in clips]
        jobs = [
            (segments, str(tmp_path / name), TransitionSpec(kind="none", duration_ms=0))
            for name in ("b.out.mp4", "a.out.mp4")
        ]

        results = await batch_concat_videos(jobs, invoker=RecordingInvoker(), probe=probe)

        assert [r.output_path for r in results] == [j[1] for j in jobs]


@pytest.mark.requires_ffmpeg
class TestConcatIntegration:
    """Joining real media."""

    @pytest.mark.asyncio
    async def test_copy_concat_of_identical_inputs(self, test_video_with_audio, temp_output_dir):
        output = temp_output_dir / "joined.mp4"

        result = await concat_videos(
            [Segment(path=str(test_video_with_audio)), Segment(path=str(test_video_with_audio))],
            str(output),
        )

        assert result.strategy == "list"
        assert abs(get_media_duration(str(output)) - 8000) < 400

    @pytest.mark.asyncio
    async def test_fade_between_mixed_inputs(self, test_video_with_audio, test_video_no_audio, temp_output_dir):
        output = temp_output_dir / "faded.mp4"

        result = await concat_videos(
            [Segment(path=str(test_video_with_audio)), Segment(path=str(test_video_no_audio))],
            str(output),
            TransitionSpec(kind="fade", duration_ms=500),
            config=RenderConfig(width=320, height=240, fps=25, crf=30),
        )

        assert result.strategy == "graph"
        assert result.duration_sec == pytest.approx(6.5)
        assert abs(get_media_duration(str(output)) - 6500) < 400
        assert has_audio_track(str(output))
