"""Script file access: reading source units and atomic in-place rewrites."""

import logging
import os
import shutil
import tempfile
from pathlib import Path

from script_idiom_checker.core.exceptions import SourceReadError, SourceWriteError
from script_idiom_checker.core.models import SourceUnit

logger = logging.getLogger(__name__)


class SecureFileHandler:
    """File operations used by the checker and the fix applier.

    Files are read and written with ``newline=""`` so that line endings are
    preserved exactly and character offsets match the text on disk.
    """

    @staticmethod
    def read_source(path: Path) -> SourceUnit:
        """Load a script file as a SourceUnit.

        Args:
            path: Path of the script file.

        Returns:
            SourceUnit: The file text with its display path.

        Raises:
            SourceReadError: If the file cannot be read or is not valid UTF-8.
        """
        try:
            with open(path, encoding="utf-8", newline="") as f:
                return SourceUnit(path=str(path), text=f.read())
        except (OSError, UnicodeDecodeError) as e:
            raise SourceReadError(str(path), e) from e

    @staticmethod
    def atomic_write(file_path: Path, content: str) -> None:
        """Replace a file's content atomically.

        The new content is written to a temporary file in the same directory,
        given the original file's permission bits, and moved over the original.
        On failure the original file is left untouched and the temporary file is
        removed.

        Args:
            file_path: Path to the file to write.
            content: New file content.

        Raises:
            SourceWriteError: If the file cannot be written.

        Example:
            >>> SecureFileHandler.atomic_write(Path("main.lua"), "x = 1\\n")
        """
        try:
            fd, temp_name = tempfile.mkstemp(
                prefix=f".{file_path.name}.", suffix=".tmp", dir=file_path.parent
            )
        except OSError as e:
            raise SourceWriteError(str(file_path), e) from e
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            if file_path.exists():
                shutil.copymode(file_path, temp_path)
            temp_path.replace(file_path)
        except OSError as e:
            try:
                temp_path.unlink(missing_ok=True)
            except OSError as cleanup_error:
                logger.error(f"Failed to remove temporary file {temp_path}: {cleanup_error}")
            raise SourceWriteError(str(file_path), e) from e
        logger.debug(f"Atomically rewrote {file_path}")
