"""Serialization helpers for deterministic JSON outputs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

try:  # pragma: no cover - optional speed-up
    import orjson
except ImportError:  # pragma: no cover - fallback to stdlib
    orjson = None  # type: ignore[assignment]


def dumps(data: Any) -> str:
    if orjson is not None:
        return orjson.dumps(
            data,
            option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS,
        ).decode()
    return json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False)


def dump_to_path(path: Path | str, data: Any) -> Path:
    """Write ``data`` as JSON atomically and return the target path."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_suffix(target.suffix + ".tmp")
    tmp.write_text(dumps(data), encoding="utf-8")
    tmp.replace(target)
    return target
