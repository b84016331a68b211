"""Deterministic hashing of generated documents for change detection.

Two documents that differ only in mapping key order hash identically;
sequence order is significant.
"""

import hashlib
import json
from typing import Any


def stable_serialize(document: Any) -> str:
    """Serialize *document* with mapping keys sorted at every level."""
    if document is None:
        return "null"
    if isinstance(document, dict):
        parts = [
            json.dumps(str(key)) + ":" + stable_serialize(document[key])
            for key in sorted(document, key=str)
        ]
        return "{" + ",".join(parts) + "}"
    if isinstance(document, (list, tuple)):
        return "[" + ",".join(stable_serialize(item) for item in document) + "]"
    return json.dumps(document)


def hash_content(document: Any) -> str:
    """SHA-256 lowercase hex digest of the stable serialization."""
    return hashlib.sha256(stable_serialize(document).encode("utf-8")).hexdigest()


def contents_match(a: Any, b: Any) -> bool:
    return hash_content(a) == hash_content(b)
