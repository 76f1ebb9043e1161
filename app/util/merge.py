"""JSON merge-patch (RFC 7396) used to fold the per-endpoint fragments into one document."""

from typing import Any


def merge_patch(target: Any, patch: Any) -> Any:
    """Apply `patch` over `target` and return the result.

    - an object patch merges key by key, recursing into nested objects
    - a `None` (JSON null) value in an object patch removes the key
    - anything else (arrays, scalars) replaces the target value wholesale

    Neither argument is modified.
    """
    if not isinstance(patch, dict):
        return patch

    merged = dict(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = merge_patch(merged.get(key), value)
    return merged
