"""Archive extraction and directory copying for plugin staging.

Both helpers preserve relative paths and permission bits. Neither is atomic:
a failure leaves the destination partially populated.
"""

from __future__ import annotations

import os
import shutil
import stat
import zipfile
from pathlib import Path
from typing import List, Tuple, Union

import structlog

from agen.utils.exceptions import ExtractError

logger = structlog.get_logger(__name__)

ARCHIVE_EXTENSIONS = (".zip",)

DEFAULT_FILE_MODE = 0o644
DEFAULT_DIR_MODE = 0o755


def is_supported_archive(filename: str) -> bool:
    return filename.lower().endswith(ARCHIVE_EXTENSIONS)


def strip_archive_extension(filename: str) -> str:
    """Return ``filename`` without its recognized archive extension."""
    for ext in ARCHIVE_EXTENSIONS:
        if filename.lower().endswith(ext):
            return filename[: -len(ext)]
    return filename


def _safe_target(dest: Path, member: str) -> Path:
    target = (dest / member).resolve()
    root = dest.resolve()
    if target != root and root not in target.parents:
        raise ExtractError(f"Archive entry escapes destination: {member}", file_path=member)
    return target


def extract_archive(archive_path: Union[str, Path], dest: Union[str, Path]) -> Path:
    """Extract a ZIP archive into ``dest``.

    Directories are created with the entry's recorded permission bits (always
    keeping the owner's rwx so the tree stays writable), files are written
    with their recorded bits and overwrite existing files. Entries without
    recorded Unix permissions fall back to 0644 / 0755. Symbolic link entries
    are skipped with a warning.

    Args:
        archive_path: Path to the ZIP file
        dest: Destination directory, created if absent

    Returns:
        The destination directory

    Raises:
        ExtractError: If the archive is unreadable, an entry escapes the
            destination, or the destination cannot be written
    """
    archive_path = Path(archive_path)
    dest = Path(dest)

    try:
        dest.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive_path, "r") as zf:
            for info in zf.infolist():
                unix_mode = info.external_attr >> 16
                target = _safe_target(dest, info.filename)

                if stat.S_ISLNK(unix_mode):
                    logger.warning("archive_symlink_skipped", entry=info.filename, archive=str(archive_path))
                    continue

                permissions = stat.S_IMODE(unix_mode)
                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    os.chmod(target, (permissions or DEFAULT_DIR_MODE) | stat.S_IRWXU)
                    continue

                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info, "r") as src, open(target, "wb") as out:
                    shutil.copyfileobj(src, out)
                os.chmod(target, permissions or DEFAULT_FILE_MODE)
    except ExtractError:
        raise
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, ValueError, EOFError) as e:
        raise ExtractError(f"Failed to extract archive {archive_path}: {e}", file_path=str(archive_path)) from e

    logger.debug("archive_extracted", archive=str(archive_path), dest=str(dest))
    return dest


def copy_tree(src: Union[str, Path], dest: Union[str, Path]) -> Path:
    """Recursively copy ``src`` into ``dest``, preserving permission bits.

    Existing files under ``dest`` are overwritten; other existing files are
    left alone. Symbolic links (to files or directories) and special files
    such as FIFOs or sockets are not copied; each one is logged as a warning.
    Directory permission bits are applied after their contents are copied so
    read-only directories can still be populated.

    Raises:
        ExtractError: If the source cannot be read or the destination written
    """
    src = Path(src)
    dest = Path(dest)
    directory_modes: List[Tuple[Path, int]] = []

    try:
        dest.mkdir(parents=True, exist_ok=True)
        directory_modes.append((dest, stat.S_IMODE(src.stat().st_mode)))

        for root, dirnames, filenames in os.walk(src, followlinks=False):
            root_path = Path(root)
            rel_root = root_path.relative_to(src)

            for dirname in list(dirnames):
                entry = root_path / dirname
                if entry.is_symlink():
                    logger.warning("symlink_skipped", path=str(entry))
                    dirnames.remove(dirname)
                    continue
                target = dest / rel_root / dirname
                target.mkdir(parents=True, exist_ok=True)
                directory_modes.append((target, stat.S_IMODE(entry.stat().st_mode)))

            for filename in filenames:
                entry = root_path / filename
                entry_stat = entry.lstat()
                if stat.S_ISLNK(entry_stat.st_mode):
                    logger.warning("symlink_skipped", path=str(entry))
                    continue
                if not stat.S_ISREG(entry_stat.st_mode):
                    logger.warning("special_file_skipped", path=str(entry))
                    continue
                shutil.copy2(entry, dest / rel_root / filename)

        for directory, mode in reversed(directory_modes):
            os.chmod(directory, mode | stat.S_IRWXU)
    except OSError as e:
        raise ExtractError(f"Failed to copy {src} to {dest}: {e}", file_path=str(src)) from e

    logger.debug("tree_copied", src=str(src), dest=str(dest))
    return dest
