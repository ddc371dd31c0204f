"""Filesystem helpers for the working copy (placeholders, sizes, hidden files)."""

import ctypes
import logging
import os
from pathlib import Path

from .path_codec import PLACEHOLDER_NAME

logger = logging.getLogger(__name__)

_FILE_ATTRIBUTE_HIDDEN = 0x02

# Directories that don't count towards the working copy size
_SIZE_EXCLUDED_DIRS = (".git", "rebase-apply")


def hide_file(path: Path) -> None:
    """Hide a file on Windows; dot files are already hidden elsewhere."""
    if os.name != "nt" or not path.exists():
        return
    if not ctypes.windll.kernel32.SetFileAttributesW(str(path), _FILE_ATTRIBUTE_HIDDEN):
        logger.info("Could not hide %s", path)


def fill_empty_directories(root: Path) -> None:
    """Put a placeholder in every empty directory so git can track it.

    Nested repositories are neutralized by renaming their HEAD file, which
    keeps them from being picked up as submodules.
    """
    _fill_empty_directories(root, root)


def _fill_empty_directories(root: Path, directory: Path) -> None:
    try:
        for child in directory.iterdir():
            if not child.is_dir() or child.is_symlink():
                continue

            if child.name == ".git":
                if child != root / ".git":
                    head = child / "HEAD"
                    if head.exists():
                        head.rename(child / "HEAD.backup")
                        logger.info("Renamed %s", head)
                continue

            _fill_empty_directories(root, child)

        if directory != root and not any(directory.iterdir()):
            placeholder = directory / PLACEHOLDER_NAME
            try:
                placeholder.write_text("I'm a folder!")
                hide_file(placeholder)
            except OSError:
                logger.info("Failed adding empty folder %s", directory)

    except OSError as e:
        logger.info("Failed preparing directory %s: %s", directory, e)


def calculate_size(directory: Path) -> int:
    """Recursively add up file sizes in bytes, skipping symlinks and git internals."""
    size = 0

    try:
        children = list(directory.iterdir())
    except OSError as e:
        logger.info("Error calculating size of %s: %s", directory, e)
        return 0

    for child in children:
        try:
            if child.is_symlink():
                continue
            if child.is_dir():
                if child.name not in _SIZE_EXCLUDED_DIRS:
                    size += calculate_size(child)
            elif child.name == PLACEHOLDER_NAME:
                hide_file(child)
            else:
                size += child.stat().st_size
        except OSError as e:
            logger.info("Error calculating size of %s: %s", child, e)

    return size
