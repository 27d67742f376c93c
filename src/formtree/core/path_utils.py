"""
Path utilities for addressing values inside a bound entity.

Field, list and dependency paths are dot paths with optional list indexes,
e.g. ``address.street`` or ``addresses[0].street``. This module parses those
paths and reads/writes values through nested mappings and sequences.
"""

import re
from typing import Any

from formtree.exceptions import InvalidPathError

PathSegment = str | int

_SEGMENT_PATTERN = re.compile(r"([^.\[\]]+)|\[(\d+)\]")
_VALID_PATH = re.compile(r"^[A-Za-z_][\w-]*(\[\d+\])*(\.[A-Za-z_][\w-]*(\[\d+\])*)*$")

MISSING = object()


def validate_path_format(path: str, path_type: str = "path") -> None:
    """
    Validate basic path format requirements.

    Params:
        path: Path string to validate
        path_type: Type description for error messages

    Raises:
        ValueError: If path format is invalid
    """
    if not path or not isinstance(path, str):
        raise ValueError(f"{path_type} must be a non-empty string")

    if path.strip() != path:
        raise ValueError(f"{path_type} must not have leading or trailing whitespace")

    if not _VALID_PATH.match(path):
        raise ValueError(
            f"{path_type} '{path}' must be dot-separated identifiers with optional [index] suffixes"
        )


def parse_path(path: str) -> list[PathSegment]:
    """
    Parse a path string into segments.

    Params:
        path: Path such as "addresses[0].street"

    Returns:
        Segments with list indexes as ints, e.g. ["addresses", 0, "street"]

    Raises:
        InvalidPathError: If the path is empty or malformed
    """
    try:
        validate_path_format(path)
    except ValueError as e:
        raise InvalidPathError(str(path), str(e)) from e

    segments: list[PathSegment] = []
    for match in _SEGMENT_PATTERN.finditer(path):
        if match.group(1) is not None:
            segments.append(match.group(1))
        else:
            segments.append(int(match.group(2)))
    return segments


def format_path(segments: list[PathSegment]) -> str:
    """Inverse of ``parse_path``."""
    parts: list[str] = []
    for segment in segments:
        if isinstance(segment, int):
            parts.append(f"[{segment}]")
        elif parts:
            parts.append(f".{segment}")
        else:
            parts.append(segment)
    return "".join(parts)


def join_path(prefix: str | None, path: str) -> str:
    """
    Join a scope prefix and a relative path.

    Examples:
        join_path("address", "street") -> "address.street"
        join_path("items[0]", "name") -> "items[0].name"
        join_path(None, "name") -> "name"
    """
    if not prefix:
        return path
    if not path:
        return prefix
    return f"{prefix}.{path}"


def item_path(list_path: str, index: int) -> str:
    """Path of one list item, e.g. ``item_path("items", 2) -> "items[2]"``."""
    return f"{list_path}[{index}]"


def is_related(path_a: str, path_b: str) -> bool:
    """
    Check whether two paths address the same value or one contains the other.

    Examples:
        is_related("address", "address.street") -> True
        is_related("items[0].qty", "items") -> True
        is_related("address", "addresses") -> False
    """
    if path_a == path_b:
        return True
    shorter, longer = sorted((path_a, path_b), key=len)
    return longer.startswith(shorter) and longer[len(shorter)] in ".["


def same_value(old: Any, new: Any) -> bool:
    """Equality that also tells ``True`` from ``1`` and ``1.0`` from ``1``."""
    return type(old) is type(new) and old == new


def get_by_path(data: Any, path: str, default: Any = None) -> Any:
    """
    Read a nested value.

    Mappings are traversed by key, sequences by index and any other object by
    attribute. Missing keys, out-of-range indexes and ``None`` containers
    yield ``default``.

    Params:
        data: Root container
        path: Path to read
        default: Value returned when any segment is missing

    Returns:
        The addressed value or ``default``
    """
    current = data
    for segment in parse_path(path):
        if current is None:
            return default
        if isinstance(segment, int):
            if not isinstance(current, (list, tuple)) or segment >= len(current):
                return default
            current = current[segment]
        elif isinstance(current, dict):
            if segment not in current:
                return default
            current = current[segment]
        else:
            current = getattr(current, segment, MISSING)
            if current is MISSING:
                return default
    return current


def has_path(data: Any, path: str) -> bool:
    """Check whether every segment of ``path`` exists in ``data``."""
    return get_by_path(data, path, MISSING) is not MISSING


def set_by_path(data: dict, path: str, value: Any) -> None:
    """
    Write a nested value, creating intermediate mappings as needed.

    Params:
        data: Root mapping (mutated in place)
        path: Path to write
        value: New value

    Raises:
        InvalidPathError: If an index segment is out of range or a segment
            traverses a value that is neither a mapping nor a list
    """
    segments = parse_path(path)
    current: Any = data
    for position, segment in enumerate(segments[:-1]):
        next_segment = segments[position + 1]
        if isinstance(segment, int):
            if not isinstance(current, list) or segment >= len(current):
                raise InvalidPathError(path, f"index {segment} does not exist")
            if current[segment] is None:
                current[segment] = [] if isinstance(next_segment, int) else {}
            current = current[segment]
        else:
            if not isinstance(current, dict):
                raise InvalidPathError(
                    path, f"segment '{segment}' is inside a {type(current).__name__}, not a mapping"
                )
            if current.get(segment) is None:
                current[segment] = [] if isinstance(next_segment, int) else {}
            current = current[segment]

    last = segments[-1]
    if isinstance(last, int):
        if not isinstance(current, list) or last >= len(current):
            raise InvalidPathError(path, f"index {last} does not exist")
        current[last] = value
    else:
        if not isinstance(current, dict):
            raise InvalidPathError(
                path, f"segment '{last}' is inside a {type(current).__name__}, not a mapping"
            )
        current[last] = value


def remap_item_paths(
    keyed: dict[str, Any], list_path: str, mapping: dict[int, int | None]
) -> dict[str, Any]:
    """
    Re-index entries keyed by list item paths after a list reorder.

    Keys under ``list_path[i]`` move to ``list_path[mapping[i]]``; items
    mapped to ``None`` are dropped. Other keys are kept unchanged.

    Params:
        keyed: Mapping keyed by absolute paths (errors, visibility states)
        list_path: Path of the reordered list
        mapping: Old index -> new index (None when the item was removed)

    Returns:
        A new mapping with re-indexed keys

    Examples:
        remap_item_paths({"items[2].qty": 1}, "items", {2: 1}) -> {"items[1].qty": 1}
    """
    prefix = f"{list_path}["
    result: dict[str, Any] = {}
    for key, value in keyed.items():
        if not key.startswith(prefix):
            result[key] = value
            continue
        index_text, _, rest = key[len(prefix):].partition("]")
        if not index_text.isdigit():
            result[key] = value
            continue
        old_index = int(index_text)
        new_index = mapping.get(old_index, old_index)
        if new_index is None:
            continue
        result[f"{prefix}{new_index}]{rest}"] = value
    return result
