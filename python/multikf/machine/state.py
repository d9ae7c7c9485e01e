"""
multikf/machine/state.py

On-disk state: one directory per guest machine under a root directory,
`<root>/<name>/`, holding the rendered configuration and exported
credentials. The existence of the directory is the record that the machine
exists; nothing else is persisted.
"""

from __future__ import annotations

import os
import shutil
import logging
from typing import List

import aiofiles

from multikf.errors import ConfigurationError, StateConflictError
from multikf.models.machine import validate_machine_name

logger = logging.getLogger(__name__)

KUBECONFIG_FILENAME = "kubeconfig"


class StateDirectory:
    """The state directory of one machine. Paths only; nothing is cached."""

    def __init__(self, root_dir: str, name: str) -> None:
        self.root_dir = root_dir
        self.name = name
        self.path = os.path.join(root_dir, name)

    def file(self, filename: str) -> str:
        return os.path.join(self.path, filename)

    @property
    def kubeconfig_path(self) -> str:
        return self.file(KUBECONFIG_FILENAME)

    def exists(self) -> bool:
        return os.path.isdir(self.path)

    def create(self) -> None:
        os.makedirs(self.path, exist_ok=True)

    def remove(self) -> None:
        if self.exists():
            logger.debug("removing state directory %s", self.path)
            shutil.rmtree(self.path)

    async def write_file(self, filename: str, content: str, *, overwrite: bool) -> str:
        """
        Write `content` to `filename` inside the directory.

        Raises:
            StateConflictError: If the file exists and `overwrite` is False.
        """
        target = self.file(filename)
        await write_guarded(target, content, overwrite=overwrite)
        return target


async def write_guarded(path: str, content: str, *, overwrite: bool) -> None:
    """
    Write `content` to `path`, refusing to replace an existing file unless
    `overwrite` is set.

    Raises:
        StateConflictError: If `path` exists and `overwrite` is False.
    """
    if os.path.exists(path) and not overwrite:
        raise StateConflictError(f"{path} already exists, use force to overwrite it")
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    async with aiofiles.open(path, "w") as f:
        await f.write(content)


def list_machine_names(root_dir: str) -> List[str]:
    """
    Names of the immediate subdirectories of `root_dir`, sorted.

    Entries that are not directories, or whose names are not valid machine
    names, are skipped. A missing root means no machines.
    """
    if not os.path.isdir(root_dir):
        return []

    def _is_machine_dir(entry: os.DirEntry) -> bool:
        if not entry.is_dir():
            return False
        try:
            validate_machine_name(entry.name)
        except ConfigurationError:
            logger.warning("ignoring %s: not a valid machine name", entry.path)
            return False
        return True

    with os.scandir(root_dir) as entries:
        return sorted(e.name for e in entries if _is_machine_dir(e))
