from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger("persona_gateway.prompts")

_CACHE: dict[str, tuple[int | None, dict[str, Any]]] = {}


def prompt_overrides_path(filename: str) -> Path:
    custom_dir = os.getenv("PROMPTS_DIR", "").strip()
    base = Path(custom_dir).expanduser() if custom_dir else Path(__file__).with_name("data")
    return base / filename


def _mtime_ns(path: Path) -> int | None:
    try:
        return path.stat().st_mtime_ns
    except OSError:
        return None


def load_prompt_json(filename: str, defaults: dict[str, Any]) -> dict[str, Any]:
    """Return `defaults` with string overrides from `<prompts dir>/<filename>` applied.

    Only keys already present in `defaults` are taken from the file; the result is
    cached until the file's mtime changes.
    """
    path = prompt_overrides_path(filename)
    cache_key = str(path)
    mtime_ns = _mtime_ns(path)

    cached = _CACHE.get(cache_key)
    if cached is not None and cached[0] == mtime_ns:
        return copy.deepcopy(cached[1])

    merged = copy.deepcopy(defaults)
    if mtime_ns is not None:
        try:
            payload = json.loads(path.read_text(encoding="utf-8-sig"))
        except (OSError, ValueError) as exc:
            logger.warning("Failed to parse prompt JSON %s (%s). Using defaults.", path, exc)
            payload = {}
        if not isinstance(payload, dict):
            logger.warning("Prompt JSON root must be an object: %s (using defaults)", path)
            payload = {}
        for key, value in payload.items():
            if key not in merged:
                logger.warning("Ignoring unknown prompt key %r in %s", key, path)
                continue
            if isinstance(value, str) and value.strip():
                merged[key] = value

    _CACHE[cache_key] = (mtime_ns, copy.deepcopy(merged))
    return merged
