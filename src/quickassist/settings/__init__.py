from .models import PROVIDER_DEFAULT_MODELS, AppSettings, GeneralSettings, LlmSettings, ShortcutSettings, Theme
from .store import (
    SettingsError,
    SettingsStore,
    apply_setting,
    get_data_dir,
    resolve_api_key,
)

__all__ = [
    "PROVIDER_DEFAULT_MODELS",
    "AppSettings",
    "GeneralSettings",
    "LlmSettings",
    "ShortcutSettings",
    "Theme",
    "SettingsError",
    "SettingsStore",
    "apply_setting",
    "get_data_dir",
    "resolve_api_key",
]
