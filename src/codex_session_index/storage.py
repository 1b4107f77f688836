"""Atomic JSON persistence for the cache directory."""

import asyncio
import contextlib
import logging
import os
import uuid
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _write_atomic(path: Path, data: str) -> None:
    """
    Write data to path so that readers see either the old or the new file.

    Uses temp file + atomic rename; the temp file is removed if anything fails.
    """
    temp_file = path.with_name(f"{path.name}.tmp.{os.getpid()}.{uuid.uuid4().hex[:8]}")
    try:
        with open(temp_file, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(temp_file, path)
    except OSError:
        with contextlib.suppress(OSError):
            temp_file.unlink()
        raise


def _read_text(path: Path) -> str:
    with open(path, encoding="utf-8") as f:
        return f.read()


async def ensure_dir(path: Path) -> None:
    """Create a directory and its parents if they do not exist yet."""
    await asyncio.to_thread(path.mkdir, parents=True, exist_ok=True)


async def write_model(path: Path, model: BaseModel) -> None:
    """Persist a model as pretty-printed JSON."""
    data = model.model_dump_json(indent=2)
    await asyncio.to_thread(_write_atomic, path, data)


async def read_model(path: Path, model_type: type[ModelT]) -> ModelT | None:
    """
    Load a persisted model.

    Returns None on any failure (missing file, unreadable, invalid content).
    """
    try:
        raw = await asyncio.to_thread(_read_text, path)
    except (OSError, UnicodeDecodeError):
        return None
    try:
        return model_type.model_validate_json(raw)
    except ValidationError as e:
        logger.debug(f"Ignoring invalid {model_type.__name__} in {path}: {e.error_count()} errors")
        return None
