"""Helpers for loading config defaults from .env/.env.defaults.

Lookup order for every key is: process environment, then `.env`, then
`.env.defaults`. The files are a last-resort fallback when environment
variables are not set (local runs, tests, the CLI).
"""
from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Dict, List

ENV_FILES = (".env.defaults", ".env")


def _search_dirs() -> List[Path]:
    """Project root (where setup.py lives), then the working directory."""
    project_root = Path(__file__).resolve().parents[2]
    dirs = [project_root]
    try:
        cwd = Path.cwd().resolve()
    except OSError:
        # working directory was deleted
        return dirs
    if cwd != project_root:
        dirs.append(cwd)
    return dirs


@lru_cache(maxsize=1)
def load_defaults() -> Dict[str, str]:
    """Merge every `.env.defaults`, then overlay every `.env`.

    `.env.defaults` is the version-controlled catalog; `.env` holds local
    overrides and may list any subset of keys. An empty dict is returned
    when neither file exists, as in deployments configured purely through
    the environment.
    """
    merged: Dict[str, str] = {}
    dirs = _search_dirs()
    for filename in ENV_FILES:
        for directory in dirs:
            path = directory / filename
            if path.is_file():
                merged.update(_parse_env_file(path))
    return merged


def get_default(key: str, fallback: str | None = None) -> str | None:
    """Return the configured value for a key (environment wins), or fallback."""
    value = os.environ.get(key)
    if value is not None and value != "":
        return value
    return load_defaults().get(key, fallback)


def get_int(key: str, fallback: int) -> int:
    value = get_default(key)
    if value is None:
        return fallback
    try:
        return int(value)
    except ValueError:
        raise RuntimeError(f"Config '{key}' must be an integer, got {value!r}")


def get_float(key: str, fallback: float) -> float:
    value = get_default(key)
    if value is None:
        return fallback
    try:
        return float(value)
    except ValueError:
        raise RuntimeError(f"Config '{key}' must be a number, got {value!r}")


def get_list(key: str, fallback: str = "") -> list[str]:
    """Comma-separated value as a list of stripped, non-empty items."""
    raw = get_default(key, fallback) or ""
    return [item.strip() for item in raw.split(",") if item.strip()]


def _parse_env_file(path: Path) -> Dict[str, str]:
    """Parse KEY=VALUE lines; `export` prefixes and matching quotes are stripped."""
    values: Dict[str, str] = {}
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        values[key.strip()] = value
    return values
