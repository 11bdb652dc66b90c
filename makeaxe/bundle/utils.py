"""File system and source-control helpers used while building bundles."""

from __future__ import annotations

import errno
import hashlib
import os
import stat
import subprocess
from pathlib import Path
from typing import Optional, Union


def exists_file(path: Union[str, Path]) -> bool:
    """Check whether a regular file exists at ``path``.

    Unlike :meth:`pathlib.Path.exists`, errors other than "not found" are
    raised instead of being reported as a missing file.

    Raises:
        OSError: If the existence of the file cannot be determined
    """
    try:
        st = os.stat(path)
    except OSError as e:
        if e.errno in (errno.ENOENT, errno.ENOTDIR):
            return False
        raise
    return not stat.S_ISDIR(st.st_mode)


def exists_dir(path: Union[str, Path]) -> bool:
    """Check whether a directory exists at ``path``.

    Raises:
        OSError: If the existence of the directory cannot be determined
    """
    try:
        st = os.stat(path)
    except OSError as e:
        if e.errno in (errno.ENOENT, errno.ENOTDIR):
            return False
        raise
    return stat.S_ISDIR(st.st_mode)


def md5sum(path: Union[str, Path]) -> str:
    """Calculate the MD5 hex digest of a file.

    Args:
        path: Path to the file

    Returns:
        32 character lowercase hex digest
    """
    hasher = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(4096), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def git_revision(directory: Union[str, Path]) -> Optional[str]:
    """Return the short revision hash of the git checkout containing ``directory``.

    Returns:
        The abbreviated ``HEAD`` hash, or None when git is unavailable or
        ``directory`` is not inside a repository
    """
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            cwd=str(directory),
            check=True,
            capture_output=True,
            text=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return None

    revision = result.stdout.strip()
    return revision or None
