from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Compositions read their props in camelCase
CAMEL_CASE = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubtitleWord(BaseModel):
    """Individual word with timing information."""
    model_config = CAMEL_CASE

    text: str
    start_ms: int
    end_ms: int


class SubtitleCue(BaseModel):
    model_config = CAMEL_CASE

    start_ms: int
    end_ms: int
    text: str
    words: list[SubtitleWord] = Field(default_factory=list)


class CaptionStyle(BaseModel):
    """Caption appearance passed through to the composition as input props."""
    model_config = CAMEL_CASE

    font_family: str = "Noto Sans JP"
    font_size: int = 60
    font_color: str = "white"
    highlight_color: str = "#FFE600"
    outline_color: str = "black"
    outline_size: int = 5
    subtitle_y: int = 80  # percent from top
    animation: Literal["none", "pop", "karaoke"] = "karaoke"
    watermark_url: str | None = None
