from __future__ import annotations

import gzip
import json
import logging
import os
import random
import time
import zlib
from collections.abc import Callable
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

from rabbit.content.schema import validate_save_payload
from rabbit.sim.forest import Forest, ForestConfig
from rabbit.sim.hash import save_hash
from rabbit.sim.terrain import DirectoryTerrain

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
SAVE_FILE_NAME = ".rabbit"
CANONICAL_JSON_INDENT = 2
CANONICAL_JSON_SEPARATORS = (",", ": ")


def default_save_path() -> Path:
    return Path.home() / SAVE_FILE_NAME


def _build_save_payload(forest: Forest) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "forest_state": forest.to_dict(),
    }
    payload["save_hash"] = save_hash(payload)
    return payload


def _canonical_json(payload: dict[str, Any]) -> str:
    return json.dumps(
        payload,
        indent=CANONICAL_JSON_INDENT,
        separators=CANONICAL_JSON_SEPARATORS,
        sort_keys=True,
    )


def _write_atomic_gzip_json(path: str | Path, payload: dict[str, Any]) -> None:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    compressed = gzip.compress(_canonical_json(payload).encode("utf-8"))

    temp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="wb",
            dir=destination.parent,
            delete=False,
            suffix=".tmp",
        ) as temp_file:
            temp_file.write(compressed)
            temp_file.flush()
            os.fsync(temp_file.fileno())
            temp_path = Path(temp_file.name)
        os.replace(temp_path, destination)
    except Exception:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        raise


def _read_gzip_json(path: Path) -> Any:
    try:
        raw = gzip.decompress(path.read_bytes())
    except (OSError, EOFError, zlib.error) as exc:
        raise ValueError(f"save file is not readable gzip data: {path} ({exc})") from exc
    try:
        return json.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as exc:
        raise ValueError(f"save file is not utf-8 json: {path}") from exc


def save_forest(path: str | Path, forest: Forest) -> None:
    payload = _build_save_payload(forest)
    validate_save_payload(payload)
    _write_atomic_gzip_json(path, payload)
    logger.debug(f"saved {len(forest.rabbits)} rabbits to {path}")


def load_forest(
    path: str | Path,
    terrain: DirectoryTerrain,
    config: ForestConfig | None = None,
    *,
    rng: random.Random | None = None,
    clock: Callable[[], float] = time.time,
    locate: Callable[[], str] = os.getcwd,
) -> Forest:
    """Load the forest saved at ``path``, or a fresh one when nothing was saved yet."""
    save_path = Path(path)
    if not save_path.exists():
        logger.debug(f"no save at {save_path}; starting a fresh forest")
        return Forest(terrain, config, rng=rng, clock=clock, locate=locate)

    payload = _read_gzip_json(save_path)
    validate_save_payload(payload)

    expected_hash = payload.get("save_hash")
    actual_hash = save_hash(payload)
    if expected_hash != actual_hash:
        raise ValueError(
            f"save_hash mismatch while loading save (stored={expected_hash}, recomputed={actual_hash})"
        )

    return Forest.from_dict(payload["forest_state"], terrain, config, rng=rng, clock=clock, locate=locate)
