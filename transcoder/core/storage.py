"""Local filesystem storage for uploaded and transcoded files."""

import os
import re
import secrets
import shutil
import time
from pathlib import Path
from typing import BinaryIO

_UNSAFE_CHARS = re.compile(r"[^\w.-]+")
_MAX_STEM_LENGTH = 100


def _safe_stem(name: str) -> str:
    stem = _UNSAFE_CHARS.sub("_", Path(name).stem).strip("._")
    return stem[:_MAX_STEM_LENGTH] or "video"


def _unique_suffix() -> str:
    """Millisecond timestamp plus 64 random bits."""
    return f"{int(time.time() * 1000)}_{secrets.token_hex(8)}"


def generate_unique_filename(original_name: str) -> str:
    """Build a collision-resistant stored name for an uploaded file.

    Format: ``<stem>_<epoch-millis>_<random>.<ext>``
    """
    extension = _UNSAFE_CHARS.sub("", Path(original_name).suffix.lower())
    return f"{_safe_stem(original_name)}_{_unique_suffix()}{extension}"


def generate_output_filename(source_filename: str, fmt: str) -> str:
    """Build a collision-resistant name for a transcoded output.

    Format: ``<stem>_transcoded_<epoch-millis>_<random>.<format>``
    """
    return f"{_safe_stem(source_filename)}_transcoded_{_unique_suffix()}.{fmt.lower()}"


class LocalDirectory:
    """A flat directory of files addressed by bare filename."""

    def __init__(self, base_path: str):
        self.base_path = Path(base_path)

    def ensure(self) -> None:
        """Create the directory if it does not exist."""
        self.base_path.mkdir(parents=True, exist_ok=True)

    def is_present(self) -> bool:
        return self.base_path.is_dir()

    def path_for(self, filename: str) -> Path:
        """Resolve a bare filename inside the directory.

        Raises:
            ValueError: If the name contains path components
        """
        if not filename or Path(filename).name != filename or filename in (".", ".."):
            raise ValueError(f"Invalid filename: {filename!r}")
        return self.base_path / filename

    def exists(self, filename: str) -> bool:
        try:
            return self.path_for(filename).is_file()
        except ValueError:
            return False

    def save_fileobj(self, fileobj: BinaryIO, filename: str) -> int:
        """Write a file object into the directory and return its size in bytes."""
        self.ensure()
        dest_path = self.path_for(filename)
        with open(dest_path, "wb") as f:
            shutil.copyfileobj(fileobj, f)
        return dest_path.stat().st_size

    def delete_if_exists(self, filename: str) -> bool:
        """Delete a file; a missing file is not an error.

        Returns:
            True if a file was removed, False if there was nothing to remove
        """
        path = self.path_for(filename)
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            return False
