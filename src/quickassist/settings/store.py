import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..llm.models import LLMProviderType
from .models import AppSettings, LlmSettings

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.json"
HISTORY_FILENAME = "history.db"

# Environment fallbacks used when no key is stored in settings
API_KEY_ENV_VARS = {
    LLMProviderType.GEMINI: "GEMINI_API_KEY",
    LLMProviderType.OPENAI: "OPENAI_API_KEY",
    LLMProviderType.ANTHROPIC: "ANTHROPIC_API_KEY",
    LLMProviderType.CUSTOM: "CUSTOM_API_KEY",
}


class SettingsError(Exception):
    """Settings could not be read, validated or written."""


def get_data_dir() -> Path:
    """Directory holding settings and history.

    Environment variables:
        QUICKASSIST_HOME: Data directory (default: ~/.quickassist)
    """
    return Path(os.getenv("QUICKASSIST_HOME", str(Path.home() / ".quickassist")))


def resolve_api_key(llm: LlmSettings) -> str:
    """Stored API key, or the provider's environment variable when none is stored."""
    if llm.api_key:
        return llm.api_key
    return os.getenv(API_KEY_ENV_VARS[llm.provider], "")


def apply_setting(settings: AppSettings, dotted_key: str, value: str) -> AppSettings:
    """Return a copy of ``settings`` with one dotted key (e.g. 'llm.model') replaced.

    Raises:
        SettingsError: If the key does not exist or the value does not validate
    """
    data = settings.model_dump(mode="json")
    section_name, _, field_name = dotted_key.partition(".")
    section = data.get(section_name)
    if not field_name or not isinstance(section, dict) or field_name not in section:
        raise SettingsError(f"Unknown setting: {dotted_key}")

    section[field_name] = None if value == "" and field_name == "base_url" else value
    try:
        return AppSettings.model_validate(data)
    except ValidationError as e:
        raise SettingsError(f"Invalid value for {dotted_key}: {value!r}") from e


class SettingsStore:
    """JSON-file settings persistence.

    Reads return defaults while no file exists. Writes go to a temporary file
    that then replaces the original, so a crash never leaves half a file.
    """

    def __init__(self, path: str | Path | None = None):
        self._path = Path(path) if path is not None else get_data_dir() / SETTINGS_FILENAME

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> AppSettings:
        if not self._path.exists():
            return AppSettings()
        try:
            raw: Any = json.loads(self._path.read_text(encoding="utf-8"))
            return AppSettings.model_validate(raw)
        except (OSError, ValueError) as e:
            raise SettingsError(f"Could not read settings from {self._path}: {e}") from e

    def _write(self, settings: AppSettings) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(".tmp")
            tmp_path.write_text(settings.model_dump_json(indent=2), encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError as e:
            raise SettingsError(f"Could not write settings to {self._path}: {e}") from e

    async def get_settings(self) -> AppSettings:
        return await asyncio.to_thread(self._read)

    async def update_settings(self, settings: AppSettings) -> None:
        await asyncio.to_thread(self._write, settings)
        logger.info("Settings saved to %s", self._path)

    async def reset_settings(self) -> AppSettings:
        defaults = AppSettings()
        await self.update_settings(defaults)
        return defaults
