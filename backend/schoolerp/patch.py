from typing import Any, Iterable, List, Mapping

# A patch is the mapping of fields the caller actually sent. A key that is
# absent leaves the field alone; a key mapped to None clears it.
Patch = Mapping[str, Any]


def apply_patch(instance, changes: Patch, fields: Iterable[str]) -> List[str]:
    """Set every allowed field present in ``changes``; return the names changed."""
    changed = []
    for name in fields:
        if name not in changes:
            continue
        value = changes[name]
        if getattr(instance, name) != value:
            setattr(instance, name, value)
            changed.append(name)
    return changed
