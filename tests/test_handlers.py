"""Tests for job kind dispatch."""

import pytest

from dramagen.exceptions import UnknownJobKindError
from dramagen.jobs import handlers
from dramagen.jobs.handlers import HANDLERS, JobServices, execute_payload
from dramagen.jobs.queue import JOB_KINDS, decode_payload
from dramagen.schemas.render import ConcatResult, SamplingResult, ShotDetectionResult
from dramagen.schemas.shot import Shot


def no_progress(*_):
    pass


class TestExecutePayload:
    """Tests for execute_payload."""

    def test_every_kind_has_a_handler(self):
        assert set(HANDLERS) == JOB_KINDS

    @pytest.mark.asyncio
    async def test_concat_payload_reaches_concat_videos(self, monkeypatch):
        captured = {}

        async def fake_concat(segments, output_path, transition, **kwargs):
            captured.update(segments=segments, output_path=output_path, transition=transition, **kwargs)
            return ConcatResult(
                output_path=output_path, duration_sec=7.5, size_bytes=10, segment_count=2, strategy="graph"
            )

        monkeypatch.setattr(handlers, "concat_videos", fake_concat)
        payload = decode_payload(
            "concat",
            {
                "segments": [{"path": "a.mp4"}, {"path": "b.mp4", "start_ms": 500}],
                "output_path": "out.mp4",
                "transition": {"kind": "fade", "duration_ms": 500},
                "width": 720,
                "overwrite": True,
            },
        )
        services = JobServices()

        result = await execute_payload(payload, services, no_progress)

        assert result == {
            "output_path": "out.mp4",
            "duration_sec": 7.5,
            "size_bytes": 10,
            "segment_count": 2,
            "strategy": "graph",
        }
        assert [s.start_ms for s in captured["segments"]] == [None, 500]
        assert captured["transition"].kind == "fade"
        assert captured["config"].width == 720
        assert captured["overwrite"] is True
        assert captured["invoker"] is services.invoker

    @pytest.mark.asyncio
    async def test_detect_shots_wraps_shots(self, monkeypatch):
        async def fake_detect(self, video_path, **kwargs):
            assert kwargs["policy"] == "merge"
            assert kwargs["overwrite"] is True
            return [Shot(id="v-0", start_ms=0, end_ms=2500)]

        monkeypatch.setattr(handlers.ShotBoundaryDetector, "detect", fake_detect)
        payload = decode_payload("detect_shots", {"video_path": "a.mp4", "short_shot_policy": "merge", "overwrite": True})

        result = await execute_payload(payload, JobServices(), no_progress)

        parsed = ShotDetectionResult.model_validate(result)
        assert parsed.threshold == 0.3
        assert parsed.shots[0].end_ms == 2500

    @pytest.mark.asyncio
    async def test_sample_keyframes_passes_overwrite(self, monkeypatch):
        captured = {}

        async def fake_sample(self, video_path, output_dir, **kwargs):
            captured.update(kwargs)
            return SamplingResult(frames=[], strategy="uniform", total_frames=0, output_dir=output_dir)

        monkeypatch.setattr(handlers.KeyframeSampler, "sample", fake_sample)
        payload = decode_payload(
            "sample_keyframes", {"video_path": "a.mp4", "output_dir": "frames", "overwrite": True}
        )

        await execute_payload(payload, JobServices(), no_progress)

        assert captured["overwrite"] is True
        assert captured["include_cover"] is False

    @pytest.mark.asyncio
    async def test_missing_handler(self):
        payload = decode_payload("trim", {"input_path": "in.mp4", "output_path": "out.mp4"})

        with pytest.raises(UnknownJobKindError):
            await execute_payload(payload, JobServices(), no_progress, handlers={"concat": HANDLERS["concat"]})
