"""Factory for creating conversation history backends."""

from typing import Any

from .base import HistoryStore


def create_history_store(
    backend: str = "sqlite",
    **kwargs: Any
) -> HistoryStore:
    """Create a conversation history backend.

    Args:
        backend: Backend type ("memory" or "sqlite")
        **kwargs: Backend-specific configuration
            For sqlite:
                - path: str | Path (default: './history.db')
            For both:
                - clock: Callable[[], int] returning ms since epoch

    Returns:
        HistoryStore instance

    Raises:
        ValueError: If backend type is not supported
    """
    if backend == "memory":
        from .in_memory import InMemoryHistoryStore
        return InMemoryHistoryStore(**kwargs)

    elif backend == "sqlite":
        from .sqlite import SQLiteHistoryStore
        return SQLiteHistoryStore(**kwargs)

    raise ValueError(
        f"Unsupported history backend: {backend}. "
        f"Supported backends: memory, sqlite"
    )
