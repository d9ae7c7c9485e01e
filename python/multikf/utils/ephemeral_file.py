"""
multikf/utils/ephemeral_file.py

Provides an async context manager for a short-lived file: a private temporary
directory is created, a path inside it is yielded, and everything is removed
on exit. Used to hand kubectl a kubeconfig without leaving credentials behind.
"""

import os
import tempfile
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional


@asynccontextmanager
async def ephemeral_manager(
    single_file_name: str,
    *,
    prefix: str = "ephemeral-",
    parent_dir: Optional[str] = None,
) -> AsyncGenerator[str, None]:
    """
    Create an ephemeral directory and yield the path of `single_file_name` in it.

    The file itself is not created; the caller writes it. On exit the file (and
    anything else the caller put there) and the directory are removed.

    Args:
        single_file_name: The ephemeral filename.
        prefix: Prefix for the ephemeral directory name.
        parent_dir: Where to place the ephemeral directory. Uses `/dev/shm` when it
            exists (memory-backed), else the system temp directory.

    Yields:
        str: The ephemeral file path.

    Raises:
        ValueError: If `single_file_name` is empty or contains a path separator.
    """
    if not single_file_name or os.sep in single_file_name:
        raise ValueError(f"Invalid ephemeral file name: {single_file_name!r}")

    if parent_dir is None and os.path.isdir("/dev/shm"):
        parent_dir = "/dev/shm"

    ephemeral_dir = tempfile.mkdtemp(dir=parent_dir, prefix=prefix)

    try:
        yield os.path.join(ephemeral_dir, single_file_name)
    finally:
        if os.path.isdir(ephemeral_dir):
            for item in os.listdir(ephemeral_dir):
                item_path = os.path.join(ephemeral_dir, item)
                if os.path.isfile(item_path) or os.path.islink(item_path):
                    os.remove(item_path)
            os.rmdir(ephemeral_dir)
