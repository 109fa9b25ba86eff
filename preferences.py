"""
Small persistent key-value settings, kept in a JSON file next to the memo store.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import PositiveInt, TypeAdapter, ValidationError

import config
from database import LazyHandle
from errors import PreferencesUnavailable
from models import AppContext, FontSettings

logger = logging.getLogger(__name__)

_FONT_SIZE = TypeAdapter(PositiveInt)


class PreferenceFile:
    """
    An open preference file. Reads and writes go to memory;
    flush() makes them durable.
    """

    def __init__(self, path: Path, values: dict[str, Any]):
        self.path = path
        self._values = values

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def put(self, key: str, value: Any) -> None:
        self._values[key] = value

    def clear(self) -> None:
        self._values.clear()

    async def flush(self) -> None:
        await asyncio.to_thread(self._write, dict(self._values))

    def _write(self, values: dict[str, Any]) -> None:
        # atomic swap; readers see the old file or the new one
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(values, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)


def _read_values(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        values = json.load(f)
    if not isinstance(values, dict):
        raise ValueError(f"expected a JSON object, got {type(values).__name__}")
    return values


def _read_size(prefs: PreferenceFile, key: str, default: int) -> int:
    # each key falls back to its own default
    try:
        return _FONT_SIZE.validate_python(prefs.get(key, default))
    except ValidationError as e:
        logger.error("Load font sizes failed for %s, using %s: %s", key, default, e)
        return default


class PreferenceStore:
    """
    Font size settings on top of a lazily opened preference file.

    Saving is best effort: a failed save is logged and dropped so it never
    interrupts the caller. Loading falls back to the default sizes on any
    failure.
    """

    def __init__(self, file_name: str = config.PREF_FILE_NAME):
        self.file_name = file_name
        self._lazy: LazyHandle[PreferenceFile] = LazyHandle(self._open, f"preferences {file_name}")

    async def get_handle(self, context: AppContext) -> PreferenceFile:
        """
        Returns the open preference file, opening it on first use.
        Raises PreferencesUnavailable if it cannot be read.
        """
        return await self._lazy.get(context)

    async def save_font_sizes(self, context: AppContext, title_size: int, content_size: int) -> None:
        try:
            settings = FontSettings(title_size=title_size, content_size=content_size)
            prefs = await self.get_handle(context)
            prefs.put(config.KEY_TITLE_FONT_SIZE, settings.title_size)
            logger.info("Saving %s: %s", config.KEY_TITLE_FONT_SIZE, title_size)
            prefs.put(config.KEY_CONTENT_FONT_SIZE, settings.content_size)
            logger.info("Saving %s: %s", config.KEY_CONTENT_FONT_SIZE, content_size)
            await prefs.flush()
            logger.info("Font sizes saved and flushed.")
        except (PreferencesUnavailable, ValidationError, OSError, TypeError, ValueError) as e:
            logger.error("Save font sizes failed: %s", e)

    async def load_font_sizes(self, context: AppContext) -> FontSettings:
        try:
            prefs = await self.get_handle(context)
            settings = FontSettings(
                title_size=_read_size(prefs, config.KEY_TITLE_FONT_SIZE, config.DEFAULT_TITLE_FONT_SIZE),
                content_size=_read_size(prefs, config.KEY_CONTENT_FONT_SIZE, config.DEFAULT_CONTENT_FONT_SIZE),
            )
        except PreferencesUnavailable as e:
            logger.error("Load font sizes failed: %s", e)
            return FontSettings()

        logger.info(
            "Loaded font sizes: %s=%s, %s=%s",
            config.KEY_TITLE_FONT_SIZE,
            settings.title_size,
            config.KEY_CONTENT_FONT_SIZE,
            settings.content_size,
        )
        return settings

    async def clear_settings(self, context: AppContext) -> None:
        try:
            prefs = await self.get_handle(context)
            prefs.clear()
            await prefs.flush()
            logger.info("Settings cleared.")
        except (PreferencesUnavailable, OSError) as e:
            logger.error("Clear settings failed: %s", e)

    async def _open(self, context: AppContext) -> PreferenceFile:
        path = context.path_for(f"{self.file_name}.json")
        try:
            values = await asyncio.to_thread(_read_values, path)
        except (OSError, ValueError) as e:
            logger.error("Get preferences failed: %s", e)
            raise PreferencesUnavailable(f"Failed to open preferences at {path}: {e}") from e
        return PreferenceFile(path, values)
