"""
JSON helpers backed by orjson
=============================

Thin wrapper used for dataset status files. Exposes the familiar
dumps/loads names so callers can `import json_utils as json`.
"""

from pathlib import Path
from typing import Any, Callable, Optional, Union

import orjson


def dumps(obj: Any, indent: Optional[int] = None, default: Optional[Callable[[Any], Any]] = None) -> str:
    """
    Serialize obj to a JSON string.

    Args:
        obj: Object to serialize
        indent: Any non-None value pretty prints with two-space indentation
        default: Callable for objects orjson cannot serialize natively

    Returns:
        JSON string (orjson itself returns bytes)
    """
    option = orjson.OPT_SORT_KEYS
    if indent is not None:
        option |= orjson.OPT_INDENT_2
    return orjson.dumps(obj, default=default, option=option).decode("utf-8")


def loads(s: Union[str, bytes]) -> Any:
    """Deserialize a JSON document."""
    return orjson.loads(s)


def write_file(path: Union[str, Path], obj: Any) -> None:
    """Write obj to path atomically (temporary file + rename)."""
    target = Path(path)
    tmp = target.with_name(target.name + ".tmp")
    tmp.write_text(dumps(obj, indent=2), encoding="utf-8")
    tmp.replace(target)


def read_file(path: Union[str, Path]) -> Any:
    return loads(Path(path).read_bytes())


JSONDecodeError = orjson.JSONDecodeError
