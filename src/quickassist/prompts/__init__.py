"""Prompt text shipped with quickassist.

Prompts live in ``.txt`` files next to this module. A user can override any
of them without touching the install by dropping a file with the same name
into ``./prompts/`` or ``$QUICKASSIST_HOME/prompts/``.
"""

import os
from functools import lru_cache
from pathlib import Path

_PACKAGE_DIR = Path(__file__).parent
_TITLE_PLACEHOLDER = "{user_message}"


def _search_dirs() -> list[Path]:
    """Override directories first, bundled prompts last."""
    dirs = [Path.cwd() / "prompts"]
    home = os.getenv("QUICKASSIST_HOME")
    if home:
        dirs.append(Path(home) / "prompts")
    dirs.append(_PACKAGE_DIR)
    return dirs


@lru_cache(maxsize=8)
def load_prompt(name: str) -> str:
    """Read prompt ``name`` from the first directory that has ``{name}.txt``.

    The trailing newline that editors add is dropped.

    Raises:
        FileNotFoundError: If no directory has the prompt
    """
    candidates = [directory / f"{name}.txt" for directory in _search_dirs()]
    for path in candidates:
        if path.is_file():
            return path.read_text(encoding="utf-8").rstrip("\n")

    searched = "\n".join(f"  - {path}" for path in candidates)
    raise FileNotFoundError(f"Prompt '{name}' not found. Searched:\n{searched}")


def get_default_system_prompt() -> str:
    """System prompt that new settings start with."""
    return load_prompt("system")


def get_title_prompt(user_message: str) -> str:
    """Title instruction for a conversation's opening message."""
    return load_prompt("title").replace(_TITLE_PLACEHOLDER, user_message)


def clear_cache() -> None:
    load_prompt.cache_clear()


__all__ = [
    "load_prompt",
    "get_default_system_prompt",
    "get_title_prompt",
    "clear_cache",
]
