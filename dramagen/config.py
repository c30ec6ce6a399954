from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "dramagen"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Composition renderer (Remotion CLI)
    renderer_command: list[str] = ["npx", "remotion"]
    renderer_entry_point: str = "remotion/index.ts"
    renderer_concurrency: int = 2

    # Render settings
    render_width: int = 1080
    render_height: int = 1920
    render_fps: int = 30
    render_crf: int = 18
    render_preset: str = "ultrafast"
    render_video_codec: str = "libx264"
    render_audio_codec: str = "aac"
    render_audio_bitrate: str = "192k"
    render_audio_sample_rate: int = 48000

    # Transitions
    transition_duration_ms: int = 500

    # Shot detection
    shot_threshold: float = 0.3
    min_shot_duration_ms: int = 2000

    # Keyframe sampling
    sample_frame_count: int = 30
    sample_interval_seconds: float = 3.0
    proxy_width: int = 640
    sample_jpeg_quality: int = 5

    # Process diagnostics: number of trailing stderr lines kept for errors
    diagnostic_tail_lines: int = 20

    # Queue / worker
    redis_url: str = "redis://localhost:6379/0"
    worker_concurrency: int = 3
    job_max_attempts: int = 3
    job_initial_delay_ms: int = 5000
    job_max_delay_ms: int = 60000
    job_backoff_multiplier: float = 2.0


@lru_cache
def get_settings() -> Settings:
    return Settings()
