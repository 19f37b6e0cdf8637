"""Component factory functions for CLI.

Centralizes creation of the settings store, history store, provider registry
and the chat session. Hides configuration details from command implementations.
"""

import os

from rich.console import Console

from ..chat import ChatSession
from ..history import HistoryStore, create_history_store
from ..llm import ProviderConfig, ProviderRegistry, create_provider_registry, parse_provider_type
from ..settings import PROVIDER_DEFAULT_MODELS, AppSettings, SettingsStore, get_data_dir, resolve_api_key
from ..settings.store import HISTORY_FILENAME

# Default console for output
_console = Console()


def get_settings_store() -> SettingsStore:
    """Create the settings store.

    Environment variables:
        QUICKASSIST_HOME: Data directory (default: ~/.quickassist)
    """
    return SettingsStore()


def get_history_store() -> HistoryStore:
    """Create the history store from environment variables.

    Environment variables:
        QUICKASSIST_HISTORY_BACKEND: 'sqlite' or 'memory' (default: sqlite)
        QUICKASSIST_HOME: Directory holding history.db (default: ~/.quickassist)
    """
    backend = os.getenv("QUICKASSIST_HISTORY_BACKEND", "sqlite").lower()
    if backend == "sqlite":
        return create_history_store("sqlite", path=get_data_dir() / HISTORY_FILENAME)
    return create_history_store(backend)


def get_registry() -> ProviderRegistry:
    """Create the provider registry shared by every command."""
    return create_provider_registry()


def build_session(registry: ProviderRegistry, history: HistoryStore) -> ChatSession:
    """Create the single long-lived chat session for this process."""
    return ChatSession(registry=registry, history=history)


def get_provider_config(
    settings: AppSettings,
    provider: str | None = None,
    model: str | None = None,
    base_url: str | None = None,
    console: Console | None = None,
) -> ProviderConfig:
    """Build the per-call provider configuration from settings and CLI overrides.

    Args:
        settings: Current application settings
        provider: Provider override ('gemini', 'openai', 'anthropic', 'custom')
        model: Model override
        base_url: Endpoint override
        console: Optional Rich console for output

    Returns:
        ProviderConfig for the next send

    Raises:
        ValueError: If the provider override is not supported, or switches to
            the custom provider without a model

    Environment variables:
        GEMINI_API_KEY / OPENAI_API_KEY / ANTHROPIC_API_KEY / CUSTOM_API_KEY:
            Used when no key is stored in settings for the selected provider
    """
    con = console or _console
    llm = settings.llm.model_copy()
    if provider:
        requested = parse_provider_type(provider)
        if requested != llm.provider:
            # The stored key, endpoint and model belong to the stored provider
            llm.provider = requested
            llm.api_key = ""
            llm.base_url = None
            if not model:
                if requested not in PROVIDER_DEFAULT_MODELS:
                    raise ValueError(f"--model is required with --provider {requested.value}")
                llm.model = PROVIDER_DEFAULT_MODELS[requested]
    if model:
        llm.model = model
    if base_url:
        llm.base_url = base_url

    api_key = resolve_api_key(llm)
    config = llm.to_provider_config(api_key=api_key)
    if not api_key and not config.base_url:
        con.print(
            f"[yellow]Warning: no API key configured for {llm.provider.value}. "
            f"Run 'quickassist config set llm.api_key <key>'.[/yellow]"
        )
    return config
