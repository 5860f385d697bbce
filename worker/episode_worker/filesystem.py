"""
Local Filesystem Gateway

Provides the local file operations the episode job needs:
- Working directory creation with path traversal prevention
- Filename sanitization for episode names
- File and directory tree removal
- Depth-first file listing for uploads

Tree walks use an explicit stack instead of recursion.
"""

import os
import re
from pathlib import Path
from typing import Iterator, List, Tuple, Union
from uuid import uuid4

from .errors import FilesystemError

PathLike = Union[str, Path]


def sanitize_filename(filename: str) -> str:
    """
    Sanitize a filename to prevent path traversal and other security issues.

    - Strips directory components (basename only)
    - Removes null bytes
    - Removes characters that are problematic on various filesystems
    - Limits filename length to 100 characters (excluding extension)

    Args:
        filename: Original filename to sanitize

    Returns:
        str: Sanitized filename safe for filesystem use

    Example:
        >>> sanitize_filename("../../../etc/passwd")
        'passwd'
        >>> sanitize_filename("my<episode>.mp4")
        'myepisode.mp4'
    """
    # Get only the base filename (prevents ../.. attacks)
    filename = os.path.basename(filename.replace("\\", "/"))

    # Remove null bytes (can bypass security checks)
    filename = filename.replace("\x00", "")

    # < > : " / \ | ? * are forbidden on Windows, plus control characters
    filename = re.sub(r'[<>:"/\\|?*\x00-\x1f]', "", filename)

    name, ext = os.path.splitext(filename)
    name = name.strip(". ")
    name = name[:100]

    # If name is empty after sanitization, generate a random one
    if not name:
        name = uuid4().hex[:8]

    return f"{name}{ext}"


def episode_work_dir(root: PathLike, episode: str) -> Path:
    """
    Build the scratch directory for one episode.

    The path is structured as {root}/{sanitized_episode}.

    Args:
        root: Worker scratch root
        episode: Episode name as received in the job

    Returns:
        Path: Absolute path inside root

    Raises:
        FilesystemError: If the resolved path escapes root
    """
    resolved_root = Path(root).resolve()
    path = (resolved_root / sanitize_filename(episode)).resolve()

    if not str(path).startswith(str(resolved_root) + os.sep):
        raise FilesystemError("Path traversal detected: path escapes work directory")

    return path


def create_dir(directory: PathLike) -> Path:
    """
    Create a directory and all missing parents.

    Existing directories are left untouched.

    Raises:
        FilesystemError: If the directory cannot be created
    """
    path = Path(directory)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"Cannot create directory {path}: {e}") from e
    return path


def remove(target: PathLike) -> None:
    """
    Remove a file, or a directory together with everything below it.

    Directories are emptied depth-first with an explicit stack: a directory
    is pushed back after its children so it is removed once they are gone.
    Symlinks are unlinked, never followed.

    Args:
        target: File or directory to remove

    Raises:
        FilesystemError: If target is missing or anything cannot be removed
    """
    path = Path(target)
    try:
        if not path.is_dir() or path.is_symlink():
            path.unlink()
            return

        # (directory, children_already_scheduled)
        stack: List[Tuple[Path, bool]] = [(path, False)]
        while stack:
            current, expanded = stack.pop()
            if expanded:
                current.rmdir()
                continue

            stack.append((current, True))
            for child in current.iterdir():
                if child.is_dir() and not child.is_symlink():
                    stack.append((child, False))
                else:
                    child.unlink()
    except OSError as e:
        raise FilesystemError(f"Cannot remove {path}: {e}") from e


def walk_files(directory: PathLike) -> Iterator[Tuple[Path, str]]:
    """
    Yield every regular file below a directory.

    Traversal is depth-first with an explicit stack; entries within a
    directory are visited in name order so results are stable.

    Args:
        directory: Root of the tree to list

    Yields:
        (absolute_path, relative_posix_path) tuples

    Raises:
        FilesystemError: If the tree cannot be read
    """
    root = Path(directory)
    stack: List[Path] = [root]
    try:
        while stack:
            current = stack.pop()
            entries = sorted(current.iterdir(), key=lambda p: p.name)
            # Push directories in reverse so they pop in name order
            for entry in reversed([e for e in entries if e.is_dir()]):
                stack.append(entry)
            for entry in entries:
                if entry.is_file():
                    yield entry, entry.relative_to(root).as_posix()
    except OSError as e:
        raise FilesystemError(f"Cannot list {root}: {e}") from e
