"""
Pytest fixtures for dramagen tests.

Media fixtures are generated with ffmpeg's lavfi sources so no test data
has to be checked in.

CI/CD Note:
Tests that spawn ffmpeg are marked with @pytest.mark.requires_ffmpeg and are
skipped when ffmpeg/ffprobe are not on PATH.
Run `pytest -m "not requires_ffmpeg"` to skip them explicitly.
"""

import shutil
import subprocess
import sys
import tempfile
import textwrap
from pathlib import Path

import pytest

from dramagen.config import get_settings


def pytest_configure(config):
    """Register custom markers for CI/CD test filtering."""
    config.addinivalue_line(
        "markers",
        "requires_ffmpeg: mark test as requiring ffmpeg and ffprobe binaries",
    )


def _ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


def pytest_collection_modifyitems(config, items):
    """Skip tests marked requires_ffmpeg when the binaries are missing."""
    if _ffmpeg_available():
        return
    skip = pytest.mark.skip(reason="ffmpeg/ffprobe not available")
    for item in items:
        if "requires_ffmpeg" in item.keywords:
            item.add_marker(skip)


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Settings are cached per process; tests that patch env vars need a fresh copy."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def temp_output_dir():
    """Temporary directory for test outputs."""
    with tempfile.TemporaryDirectory(prefix="dramagen_test_") as tmpdir:
        yield Path(tmpdir)


def _generate(args: list[str], output: Path) -> Path:
    subprocess.run(
        ["ffmpeg", "-y", "-hide_banner", "-loglevel", "error", *args, str(output)],
        capture_output=True,
        check=True,
    )
    return output


@pytest.fixture(scope="session")
def media_dir(tmp_path_factory) -> Path:
    return tmp_path_factory.mktemp("media")


@pytest.fixture(scope="session")
def test_video_with_audio(media_dir) -> Path:
    """A 4 second 320x240 test pattern with a sine tone."""
    if not _ffmpeg_available():
        pytest.skip("ffmpeg/ffprobe not available")
    return _generate(
        [
            "-f", "lavfi", "-i", "testsrc=duration=4:size=320x240:rate=25",
            "-f", "lavfi", "-i", "sine=frequency=440:duration=4",
            "-c:v", "libx264", "-pix_fmt", "yuv420p",
            "-c:a", "aac",
            "-shortest",
        ],
        media_dir / "with_audio.mp4",
    )


@pytest.fixture(scope="session")
def test_video_no_audio(media_dir) -> Path:
    """A 3 second 640x360 test pattern without an audio stream."""
    if not _ffmpeg_available():
        pytest.skip("ffmpeg/ffprobe not available")
    return _generate(
        [
            "-f", "lavfi", "-i", "testsrc2=duration=3:size=640x360:rate=30",
            "-c:v", "libx264", "-pix_fmt", "yuv420p",
        ],
        media_dir / "no_audio.mp4",
    )


@pytest.fixture(scope="session")
def test_audio(media_dir) -> Path:
    """A 2 second mono WAV tone."""
    if not _ffmpeg_available():
        pytest.skip("ffmpeg/ffprobe not available")
    return _generate(
        ["-f", "lavfi", "-i", "sine=frequency=880:duration=2", "-c:a", "pcm_s16le"],
        media_dir / "tone.wav",
    )


@pytest.fixture(scope="session")
def test_scene_cut_video(media_dir) -> Path:
    """Three 3 second solid-colour shots with hard cuts at 3s and 6s."""
    if not _ffmpeg_available():
        pytest.skip("ffmpeg/ffprobe not available")
    return _generate(
        [
            "-f", "lavfi", "-i", "color=c=red:size=320x240:duration=3:rate=25",
            "-f", "lavfi", "-i", "color=c=green:size=320x240:duration=3:rate=25",
            "-f", "lavfi", "-i", "color=c=blue:size=320x240:duration=3:rate=25",
            "-filter_complex", "[0:v][1:v][2:v]concat=n=3:v=1:a=0[v]",
            "-map", "[v]",
            "-c:v", "libx264", "-pix_fmt", "yuv420p",
        ],
        media_dir / "scene_cuts.mp4",
    )


@pytest.fixture
def fake_program(tmp_path):
    """Build a stand-in executable from a Python snippet.

    Returns a function ``(source) -> (program, base_args)`` suitable for
    ``EncodeInvoker(program, base_args=base_args)``.
    """

    def build(source: str) -> tuple[str, list[str]]:
        script = tmp_path / f"fake_{len(list(tmp_path.glob('fake_*.py')))}.py"
        script.write_text(textwrap.dedent(source))
        return sys.executable, [str(script)]

    return build
