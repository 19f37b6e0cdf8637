import asyncio
from abc import ABC, abstractmethod

import pyperclip


class Clipboard(ABC):
    """System clipboard write access."""

    @abstractmethod
    async def write_text(self, text: str) -> None:
        """Copy text to the clipboard. May raise if no clipboard is available."""


class PyperclipClipboard(Clipboard):
    """Clipboard backed by pyperclip, run off the event loop."""

    async def write_text(self, text: str) -> None:
        await asyncio.to_thread(pyperclip.copy, text)
