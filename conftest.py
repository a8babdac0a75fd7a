"""Root conftest: seeds the environment before ``relay_service.config`` is imported."""
from __future__ import annotations

import os
from pathlib import Path


def _read_env_file(path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    if not path.exists():
        return values
    for raw in path.read_text().splitlines():
        entry = raw.strip()
        if entry and not entry.startswith("#") and "=" in entry:
            key, _, value = entry.partition("=")
            values[key.strip()] = value.strip()
    return values


for _key, _value in _read_env_file(Path(__file__).resolve().parent / ".env.test").items():
    os.environ.setdefault(_key, _value)
