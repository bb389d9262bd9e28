from __future__ import annotations

import json


def loads(text: str | None, default=None):
    """Decode a JSON text column; empty or corrupt values read as `default` ({} if unset)."""
    if not text:
        return {} if default is None else default
    try:
        return json.loads(text)
    except ValueError:
        return {} if default is None else default


def dumps(value) -> str:
    return json.dumps(value, ensure_ascii=False)
