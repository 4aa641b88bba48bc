from __future__ import annotations

import logging
import shutil
import zipfile
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional

from ..domain.errors import ArchiveError

logger = logging.getLogger("addon_manager.addons.file_ops")


def _safe_member_path(name: str) -> Optional[PurePosixPath]:
    """
    Normalize a zip member name to a destination-relative path.

    Returns None for directory entries. Raises ArchiveError on entries that
    would land outside the destination folder.
    """
    norm = name.replace("\\", "/")
    if norm.endswith("/"):
        return None
    rel = PurePosixPath(norm)
    if rel.is_absolute() or ".." in rel.parts or (rel.parts and ":" in rel.parts[0]):
        raise ArchiveError(f"Archive entry escapes destination folder: {name}")
    return rel


def extract_archive(archive_path: Path, dest_folder: Path) -> List[str]:
    """
    Extract every file of a zip archive into dest_folder.

    - Creates dest_folder if needed and overwrites files at the same path.
    - Returns the written paths relative to dest_folder (posix separators),
      in archive-entry order.
    """
    archive_path = Path(archive_path)
    dest_folder = Path(dest_folder)
    logger.debug("Extracting %s into %s", archive_path, dest_folder)

    written: List[str] = []
    try:
        with zipfile.ZipFile(archive_path, "r") as zf:
            dest_folder.mkdir(parents=True, exist_ok=True)
            for info in zf.infolist():
                rel = _safe_member_path(info.filename)
                if rel is None:
                    continue
                target = dest_folder.joinpath(*rel.parts)
                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info, "r") as src, target.open("wb") as dst:
                    shutil.copyfileobj(src, dst)
                written.append(rel.as_posix())
    except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
        raise ArchiveError(f"Not a valid zip archive: {archive_path} ({e})") from e
    except FileNotFoundError as e:
        raise ArchiveError(f"Archive not found: {archive_path}") from e

    logger.info("Extracted %d file(s) from %s", len(written), archive_path.name)
    return written


def _prune_empty_dirs(start: Path, base: Path) -> None:
    current = start
    while current != base and base in current.parents:
        try:
            current.rmdir()
        except OSError:
            # not empty (or already gone)
            if current.exists():
                return
        logger.debug("Removed empty directory %s", current)
        current = current.parent


def remove_files(paths: Iterable[str | Path], base_folder: Optional[Path] = None) -> None:
    """
    Delete each path if present. Relative paths resolve against base_folder.

    When base_folder is given, directories emptied by the deletions are
    removed walking upward, stopping at the first non-empty directory or at
    base_folder itself (which is never removed).
    """
    base = Path(base_folder) if base_folder is not None else None
    touched_dirs: List[Path] = []

    for raw in paths:
        p = Path(raw)
        if not p.is_absolute():
            if base is None:
                raise ValueError(f"Relative path without a base folder: {raw}")
            p = base / p
        if p.is_file() or p.is_symlink():
            p.unlink()
            logger.debug("Deleted file %s", p)
            touched_dirs.append(p.parent)

    if base is None:
        return

    # deepest first so parents see their children already pruned
    for d in sorted(set(touched_dirs), key=lambda x: len(x.parts), reverse=True):
        _prune_empty_dirs(d, base)
