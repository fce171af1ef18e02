from __future__ import annotations

import hashlib
import json
from typing import Any

from rabbit.sim.forest import Forest


def _digest(payload: dict[str, Any]) -> str:
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def forest_hash(forest: Forest) -> str:
    return _digest(forest.to_dict())


def save_hash(payload: dict[str, Any]) -> str:
    hash_payload = {
        "schema_version": payload["schema_version"],
        "forest_state": payload["forest_state"],
    }
    return _digest(hash_payload)
