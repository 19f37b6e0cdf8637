"""Application settings models.

AppSettings
├── GeneralSettings   (auto_startup, theme)
├── ShortcutSettings  (toggle_launcher)
└── LlmSettings       (provider, api_key, model, base_url, system_prompt)

Missing fields in a stored file fall back to their defaults.
"""

from enum import Enum

from pydantic import BaseModel, Field

from ..llm.models import LLMProviderType, ProviderConfig
from ..prompts import get_default_system_prompt

DEFAULT_MODEL = "gemini-2.0-flash"
# Used when switching provider without naming a model. Custom endpoints have no default.
PROVIDER_DEFAULT_MODELS: dict[LLMProviderType, str] = {
    LLMProviderType.GEMINI: DEFAULT_MODEL,
    LLMProviderType.OPENAI: "gpt-4o-mini",
    LLMProviderType.ANTHROPIC: "claude-3-5-haiku-latest",
}
DEFAULT_TOGGLE_SHORTCUT = "Alt+Shift+Space"


class Theme(str, Enum):
    DARK = "dark"
    LIGHT = "light"
    SYSTEM = "system"


class GeneralSettings(BaseModel):
    auto_startup: bool = Field(default=False, description="Start at system login")
    theme: Theme = Field(default=Theme.DARK, description="UI color theme")


class ShortcutSettings(BaseModel):
    toggle_launcher: str = Field(
        default=DEFAULT_TOGGLE_SHORTCUT,
        description="Global hotkey, e.g. 'Alt+Shift+Space'",
    )


class LlmSettings(BaseModel):
    provider: LLMProviderType = Field(default=LLMProviderType.GEMINI)
    api_key: str = Field(default="", description="Stored locally only")
    model: str = Field(default=DEFAULT_MODEL)
    base_url: str | None = Field(default=None, description="Endpoint for custom providers")
    system_prompt: str = Field(default_factory=get_default_system_prompt)

    def to_provider_config(self, api_key: str | None = None) -> ProviderConfig:
        """Build the per-call provider configuration.

        Args:
            api_key: Key to use instead of the stored one (e.g. from the environment)
        """
        return ProviderConfig(
            provider=self.provider,
            api_key=self.api_key if api_key is None else api_key,
            model=self.model,
            base_url=self.base_url or None,
        )


class AppSettings(BaseModel):
    general: GeneralSettings = Field(default_factory=GeneralSettings)
    shortcuts: ShortcutSettings = Field(default_factory=ShortcutSettings)
    llm: LlmSettings = Field(default_factory=LlmSettings)
