"""Path lookup and template helpers shared by filters, transforms and references."""

import json
import math
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .errors import ConfigurationError

TEMPLATE_PATTERN = re.compile(r"\$\{([^}]+)\}")
_INDEX_PATTERN = re.compile(r"\[(\d+)\]")


def split_path(path: str) -> List[str]:
    """Split 'a.b[0].c' into ['a', 'b', '0', 'c']."""
    return [p for p in _INDEX_PATTERN.sub(r".\1", path).split(".") if p]


def get_by_path(data: Any, path: Optional[str]) -> Any:
    """
    Get a nested value using dot notation.

    Supports "a.b.c", "items[0].name" and "items.0.name". Any missing
    intermediate segment yields None.
    """
    if not path or not isinstance(path, str):
        return None

    value = data
    for part in split_path(path):
        if value is None:
            return None
        if isinstance(value, dict):
            value = value.get(part)
        elif isinstance(value, (list, tuple)) and part.isdigit():
            idx = int(part)
            value = value[idx] if idx < len(value) else None
        else:
            return None

    return value


def stringify(value: Any) -> str:
    """Render a value the way it appears inside templates and text predicates."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    return str(value)


def is_empty(value: Any) -> bool:
    """True for None and blank strings."""
    return value is None or stringify(value).strip() == ""


def first_non_empty(values: Iterable[Any]) -> Any:
    """Return the first value that is not None or blank."""
    for value in values:
        if not is_empty(value):
            return value
    return None


def render_template(template: str, record: Dict[str, Any]) -> str:
    """Replace ${path} placeholders with values from the record ('' when missing)."""
    return TEMPLATE_PATTERN.sub(
        lambda m: stringify(get_by_path(record, m.group(1).strip())),
        str(template),
    )


def render_value(template: Any, record: Dict[str, Any]) -> Any:
    """
    Render a templated value.

    A string made of exactly one placeholder returns the referenced value
    with its original type; other strings are rendered as text; non-string
    values are returned unchanged.
    """
    if not isinstance(template, str):
        return template
    match = TEMPLATE_PATTERN.fullmatch(template)
    if match:
        return get_by_path(record, match.group(1).strip())
    if TEMPLATE_PATTERN.search(template):
        return render_template(template, record)
    return template


def chunk(items: List[Any], size: int) -> List[List[Any]]:
    """Split a list into consecutive slices of at most `size` items."""
    return [items[i:i + size] for i in range(0, len(items), size)]


def read_json(file_path: Union[str, Path]) -> Any:
    """Load a JSON file, tolerating a UTF-8 byte order mark."""
    try:
        with open(file_path, "r", encoding="utf-8-sig") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON at {file_path}: {e}")
    except OSError as e:
        raise ConfigurationError(f"Cannot read {file_path}: {e}")
