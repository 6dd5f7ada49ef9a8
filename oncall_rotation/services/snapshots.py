# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Service: assignment snapshot hashing (pure computation)."""

import hashlib
import json
from typing import Mapping, Optional


def compute_snapshot_hash(assignments: Mapping[str, Optional[str]]) -> str:
    """Stable SHA-256 of the role -> user map, independent of key order."""
    serialized = json.dumps(dict(sorted(assignments.items())), separators=(",", ":"))
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()
