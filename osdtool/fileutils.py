"""File system helpers."""

from __future__ import annotations

import logging
import os

log = logging.getLogger(__name__)


class ArgError(Exception):
    """A function's argument was passed incorrectly."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"Argument error: {self.message}"


class MissingFileError(Exception):
    """A required file does not exist."""

    def __init__(self, file_path: str) -> None:
        super().__init__(file_path)
        self.file_path = file_path

    def __str__(self) -> str:
        return f"file {self.file_path} not found"


def _exists(path: str | os.PathLike, is_dir: bool) -> bool:
    if not os.fspath(path):
        log.debug("Path is empty")
        return False
    try:
        info = os.stat(path)
    except (FileNotFoundError, NotADirectoryError, PermissionError):
        return False
    return is_dir == os.path.isdir(path) if info else False


def folder_exists(path: str | os.PathLike) -> bool:
    """Report whether ``path`` is an existing directory."""
    return _exists(path, True)


def file_exists(path: str | os.PathLike) -> bool:
    """Report whether ``path`` is an existing non-directory file."""
    return _exists(path, False)


def create_file(filepath: str | os.PathLike) -> None:
    """Create an empty file with any missing parents; refuse to overwrite."""
    path = os.path.normpath(os.fspath(filepath))
    if file_exists(path):
        raise FileExistsError(f"file {path} already exists")

    directory = os.path.dirname(path) or "."
    if not folder_exists(directory):
        try:
            os.makedirs(directory)
        except OSError as exc:
            raise OSError(f"failed to create directory {directory}") from exc

    try:
        with open(path, "w", encoding="utf-8"):
            pass
    except OSError as exc:
        raise OSError(f"failed to create file {path}: {exc}") from exc