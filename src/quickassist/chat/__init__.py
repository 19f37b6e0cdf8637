from .clipboard import Clipboard, PyperclipClipboard
from .session import BestEffortResult, ChatSession

__all__ = ["BestEffortResult", "ChatSession", "Clipboard", "PyperclipClipboard"]
