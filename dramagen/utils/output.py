"""Output path handling shared by every operation that writes media."""

import os
from pathlib import Path

from dramagen.exceptions import OutputExistsError


def prepare_output_path(output_path: str, overwrite: bool = False) -> Path:
    """Refuse to clobber an existing file and create the parent directory.

    Raises:
        OutputExistsError: If the file exists and ``overwrite`` is False
    """
    path = Path(output_path)
    if path.exists() and not overwrite:
        raise OutputExistsError(str(path))
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def file_size(path: str | Path) -> int:
    return os.path.getsize(path) if os.path.exists(path) else 0
