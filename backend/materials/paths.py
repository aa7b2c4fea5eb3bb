"""One-or-many storage path field.

Submissions originally stored a single path string; the column now holds a
JSON list. Both shapes are read through parse_storage_paths() and only the
list shape is ever written.
"""

import json


def parse_storage_paths(raw: str | None) -> list[str]:
    """Return the storage paths held in a path column value.

    Args:
        raw: None, a JSON-encoded list of paths, or a legacy single path.

    Returns:
        Paths in stored order. Non-string list items are dropped.
    """
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except ValueError:
        return [raw]
    if isinstance(parsed, list):
        return [item for item in parsed if isinstance(item, str) and item]
    # Valid JSON but not a list (e.g. a bare quoted string) is a legacy path
    if isinstance(parsed, str) and parsed:
        return [parsed]
    return [raw]


def serialize_storage_paths(paths: list[str]) -> str | None:
    """Encode paths for a path column. An empty list is stored as NULL."""
    if not paths:
        return None
    return json.dumps(list(paths))
