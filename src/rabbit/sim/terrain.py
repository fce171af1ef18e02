from __future__ import annotations

import os
import random
from pathlib import Path

from rabbit.sim.rng import rand_range


def list_dirs(path: str) -> list[str]:
    """Absolute paths of the visible child directories of ``path``, sorted."""
    if not os.path.isabs(path):
        raise ValueError(f"cannot list dirs on non-absolute path: {path}")
    try:
        entries = list(os.scandir(path))
    except OSError:
        return []
    dirs: list[str] = []
    for entry in entries:
        if entry.name.startswith("."):
            continue
        try:
            if entry.is_dir(follow_symlinks=False):
                dirs.append(os.path.join(path, entry.name))
        except OSError:
            continue
    return sorted(dirs)


class DirectoryTerrain:
    """Directory hierarchy below ``root``. Every call is a fresh filesystem query."""

    def __init__(self, root: str | Path) -> None:
        self.root = str(Path(root).expanduser().resolve())

    def exists(self, location: str | None) -> bool:
        if not location:
            return False
        return os.path.isdir(location)

    def children(self, location: str) -> list[str]:
        return list_dirs(location)

    def can_descend(self, location: str) -> bool:
        return bool(self.children(location))

    def can_ascend(self, location: str) -> bool:
        # The root is as high as a rabbit may go.
        current = Path(location)
        if str(current) == self.root:
            return False
        return current.parent.is_relative_to(self.root)

    def ascend(self, location: str) -> str:
        return str(Path(location).parent)

    def random_descent(self, rng: random.Random, location: str) -> str:
        dirs = self.children(location)
        if not dirs:
            raise ValueError(f"tried to descend from a location with no children: {location}")
        return dirs[rand_range(rng, 0, len(dirs) - 1)]
