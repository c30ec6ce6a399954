"""One handler per job kind, each turning a typed payload into a result."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from dramagen.exceptions import UnknownJobKindError
from dramagen.render.audio_mix import mix_audio_multitrack
from dramagen.render.concat import concat_videos
from dramagen.render.encoder import EncodeInvoker, ProgressCallback
from dramagen.render.filter_graph import RenderConfig
from dramagen.render.renderer import CompositionRenderer, RendererBundle, render_captioned_video
from dramagen.schemas.job import (
    CaptionedVideoPayload,
    ConcatPayload,
    DetectShotsPayload,
    JobPayload,
    MixAudioPayload,
    RenderCompositionPayload,
    SampleKeyframesPayload,
    TrimPayload,
)
from dramagen.schemas.render import ShotDetectionResult
from dramagen.services.keyframe_sampler import KeyframeSampler
from dramagen.services.shot_detector import ShotBoundaryDetector
from dramagen.services.video_trimmer import TrimConfig, VideoTrimmer


@dataclass
class JobServices:
    """Components shared by the handlers of one orchestrator."""

    invoker: EncodeInvoker = field(default_factory=EncodeInvoker)
    bundle: RendererBundle = field(default_factory=RendererBundle)

    def trimmer(self, config: RenderConfig | None = None) -> VideoTrimmer:
        return VideoTrimmer(self.invoker, config)

    def detector(self) -> ShotBoundaryDetector:
        return ShotBoundaryDetector(self.invoker)

    def sampler(self, proxy_width: int | None = None, jpeg_quality: int | None = None) -> KeyframeSampler:
        return KeyframeSampler(
            self.invoker, self.detector(), proxy_width=proxy_width, jpeg_quality=jpeg_quality
        )

    def renderer(self) -> CompositionRenderer:
        return CompositionRenderer(self.bundle)


Handler = Callable[[Any, JobServices, ProgressCallback], Awaitable[BaseModel]]


async def handle_trim(payload: TrimPayload, services: JobServices, on_progress: ProgressCallback) -> BaseModel:
    config = TrimConfig(
        start_ms=payload.start_ms,
        end_ms=payload.end_ms,
        crf=payload.crf,
        width=payload.width,
        height=payload.height,
    )
    return await services.trimmer().trim(
        payload.input_path,
        payload.output_path,
        config,
        overwrite=payload.overwrite,
        on_progress=on_progress,
    )


async def handle_concat(payload: ConcatPayload, services: JobServices, on_progress: ProgressCallback) -> BaseModel:
    config = RenderConfig.from_settings(width=payload.width, height=payload.height, fps=payload.fps)
    return await concat_videos(
        payload.segments,
        payload.output_path,
        payload.transition,
        config=config,
        overwrite=payload.overwrite,
        invoker=services.invoker,
        on_progress=on_progress,
    )


async def handle_mix_audio(payload: MixAudioPayload, services: JobServices, on_progress: ProgressCallback) -> BaseModel:
    return await mix_audio_multitrack(
        payload.video_path,
        payload.tracks,
        payload.output_path,
        include_original=payload.include_original,
        overwrite=payload.overwrite,
        invoker=services.invoker,
        on_progress=on_progress,
    )


async def handle_detect_shots(
    payload: DetectShotsPayload, services: JobServices, on_progress: ProgressCallback
) -> BaseModel:
    detector = services.detector()
    shots = await detector.detect(
        payload.video_path,
        threshold=payload.threshold,
        min_shot_duration_ms=payload.min_shot_duration_ms,
        thumbnail_dir=payload.thumbnail_dir,
        policy=payload.short_shot_policy,
        close_tail=payload.close_tail,
        overwrite=payload.overwrite,
        on_progress=on_progress,
    )
    threshold = payload.threshold if payload.threshold is not None else detector.threshold
    return ShotDetectionResult(video_path=payload.video_path, threshold=threshold, shots=shots)


async def handle_sample_keyframes(
    payload: SampleKeyframesPayload, services: JobServices, on_progress: ProgressCallback
) -> BaseModel:
    sampler = services.sampler(payload.proxy_width, payload.jpeg_quality)
    return await sampler.sample(
        payload.video_path,
        payload.output_dir,
        strategy=payload.strategy,
        frame_count=payload.frame_count,
        interval_seconds=payload.interval_seconds,
        threshold=payload.threshold,
        include_cover=payload.include_cover,
        overwrite=payload.overwrite,
        on_progress=on_progress,
    )


async def handle_render_composition(
    payload: RenderCompositionPayload, services: JobServices, on_progress: ProgressCallback
) -> BaseModel:
    return await services.renderer().render(
        payload.composition_id,
        payload.input_props,
        payload.output_path,
        width=payload.width,
        height=payload.height,
        fps=payload.fps,
        overwrite=payload.overwrite,
        on_progress=on_progress,
    )


async def handle_captioned_video(
    payload: CaptionedVideoPayload, services: JobServices, on_progress: ProgressCallback
) -> BaseModel:
    return await render_captioned_video(
        services.renderer(),
        payload.video_path,
        payload.cues,
        payload.output_path,
        style=payload.style,
        overwrite=payload.overwrite,
        on_progress=on_progress,
    )


HANDLERS: dict[str, Handler] = {
    "trim": handle_trim,
    "concat": handle_concat,
    "mix_audio": handle_mix_audio,
    "detect_shots": handle_detect_shots,
    "sample_keyframes": handle_sample_keyframes,
    "render_composition": handle_render_composition,
    "captioned_video": handle_captioned_video,
}


async def execute_payload(
    payload: JobPayload,
    services: JobServices,
    on_progress: ProgressCallback,
    handlers: dict[str, Handler] | None = None,
) -> dict[str, Any]:
    """Run the handler for ``payload.kind`` and return its result as plain data."""
    handler = (handlers or HANDLERS).get(payload.kind)
    if handler is None:
        raise UnknownJobKindError(f"No handler for job kind: {payload.kind}")
    result = await handler(payload, services, on_progress)
    return result.model_dump(mode="json")
