"""Structural field-level diff of version payloads."""

from typing import Any

from beartype import beartype

from ...models.versioning import FieldChange


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


@beartype
def diff_payloads(left: Any, right: Any, path: str = "") -> list[FieldChange]:
    """Compare two JSON-like documents.

    Mappings are compared key by key (dotted paths), lists position by
    position (``[i]`` suffixes). Anything else is compared by equality.
    """
    if isinstance(left, dict) and isinstance(right, dict):
        changes: list[FieldChange] = []
        for key in sorted(set(left) | set(right), key=str):
            child = _join(path, str(key))
            if key not in right:
                changes.append(FieldChange(path=child, change="removed", left=left[key]))
            elif key not in left:
                changes.append(FieldChange(path=child, change="added", right=right[key]))
            else:
                changes.extend(diff_payloads(left[key], right[key], child))
        return changes

    if isinstance(left, list) and isinstance(right, list):
        changes = []
        for index in range(max(len(left), len(right))):
            child = f"{path}[{index}]"
            if index >= len(right):
                changes.append(FieldChange(path=child, change="removed", left=left[index]))
            elif index >= len(left):
                changes.append(FieldChange(path=child, change="added", right=right[index]))
            else:
                changes.extend(diff_payloads(left[index], right[index], child))
        return changes

    if left != right or type(left) is not type(right):
        return [FieldChange(path=path or "<root>", change="changed", left=left, right=right)]
    return []
