from dramagen.render.audio_mix import mix_audio_multitrack
from dramagen.render.encoder import EncodeInvoker, EncodeResult, ProgressEvent
from dramagen.render.filter_graph import FilterGraph, RenderConfig
from dramagen.render.progress import EncoderProgress, FrameProgressParser, ProgressParser
from dramagen.render.renderer import CompositionRenderer, RendererBundle
from dramagen.render.timeline import Timeline

__all__ = [
    "EncodeInvoker",
    "EncodeResult",
    "ProgressEvent",
    "EncoderProgress",
    "ProgressParser",
    "FrameProgressParser",
    "FilterGraph",
    "RenderConfig",
    "Timeline",
    "mix_audio_multitrack",
    "CompositionRenderer",
    "RendererBundle",
]
