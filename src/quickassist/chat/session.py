"""Chat session state machine.

Owns the in-memory transcript and drives one provider stream at a time:
send -> stream -> persist -> title. States are ``idle`` and ``streaming``;
a send while streaming is ignored.

Persistence is best-effort. Writes run as background tasks chained in issue
order (conversation, user message, assistant message, title) so the UI never
waits on storage; failures are logged and reported as BestEffortResult
values, never surfaced to the user. ``wait_for_pending`` awaits them.

Reset and load bump a generation counter and cancel the active stream's
token. Callbacks compare the generation captured at send time before
touching state, so a stream abandoned by a reset cannot write into the new
transcript.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from functools import partial
from typing import Any

from ..history.base import HistoryStore
from ..history.models import HistoryMessage
from ..llm.base import UNKNOWN_ERROR_MESSAGE
from ..llm.factory import ProviderRegistry
from ..llm.models import (
    CancelToken,
    Message,
    MessageRole,
    ProviderConfig,
    StreamCallbacks,
    generate_id,
)
from ..llm.titles import TitleGenerator
from .clipboard import Clipboard, PyperclipClipboard

logger = logging.getLogger(__name__)

PROVISIONAL_TITLE_LENGTH = 50

Listener = Callable[[], None]


@dataclass(frozen=True)
class BestEffortResult:
    """Outcome of a fire-and-forget operation."""

    label: str
    ok: bool
    error: str | None = None


class ChatSession:
    """The single active conversation shown by the UI.

    Observable state: ``messages``, ``is_streaming``, ``stream_error``,
    ``has_messages``. Views register a listener to re-render on change.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        history: HistoryStore,
        title_generator: TitleGenerator | None = None,
        clipboard: Clipboard | None = None,
    ):
        self._registry = registry
        self._history = history
        self._titles = title_generator or TitleGenerator(registry)
        self._clipboard = clipboard or PyperclipClipboard()

        self.messages: list[Message] = []
        self.is_streaming = False
        self.stream_error: str | None = None
        self.current_conversation_id: str | None = None

        self._generation = 0
        self._cancel_token: CancelToken | None = None
        self._pending: list[asyncio.Task[BestEffortResult]] = []
        self._finished: list[BestEffortResult] = []
        self._last_write: asyncio.Task[BestEffortResult] | None = None
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def has_messages(self) -> bool:
        return bool(self.messages)

    @property
    def last_assistant_message(self) -> Message | None:
        for message in reversed(self.messages):
            if message.role == MessageRole.ASSISTANT:
                return message
        return None

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    # ------------------------------------------------------------------
    # Best-effort background work
    # ------------------------------------------------------------------

    async def _best_effort(
        self,
        label: str,
        operation: Callable[[], Awaitable[Any]],
    ) -> BestEffortResult:
        try:
            await operation()
        except Exception as e:
            logger.exception("Failed to %s", label)
            return BestEffortResult(label=label, ok=False, error=str(e) or type(e).__name__)
        return BestEffortResult(label=label, ok=True)

    def _schedule_write(
        self,
        label: str,
        operation: Callable[[], Awaitable[Any]],
    ) -> asyncio.Task[BestEffortResult]:
        """Queue a storage write behind the previously queued one."""
        previous = self._last_write

        async def run() -> BestEffortResult:
            if previous is not None:
                await asyncio.wait({previous})
            return await self._best_effort(label, operation)

        task = asyncio.create_task(run())
        self._last_write = task
        self._track(task)
        return task

    def _track(self, task: asyncio.Task[BestEffortResult]) -> None:
        """Remember a background task, keeping only the results of finished ones."""
        running = []
        for pending in self._pending:
            if pending.done():
                self._finished.append(pending.result())
            else:
                running.append(pending)
        running.append(task)
        self._pending = running

    async def wait_for_pending(self) -> list[BestEffortResult]:
        """Wait for all background work, including work scheduled meanwhile."""
        results: list[BestEffortResult] = self._finished
        self._finished = []
        while self._pending:
            batch, self._pending = self._pending, []
            results.extend(await asyncio.gather(*batch))
        return results

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def send_message(
        self,
        text: str,
        config: ProviderConfig,
        system_prompt: str | None = None,
    ) -> None:
        """Send a user message and stream the assistant's reply into the transcript.

        Args:
            text: User input; ignored when blank or while a stream is active
            config: Provider configuration built from current settings
            system_prompt: Optional system instructions
        """
        content = text.strip()
        if not content or self.is_streaming:
            return

        self.stream_error = None
        is_first_message = not self.messages

        if is_first_message:
            self.current_conversation_id = generate_id()
            self._schedule_write(
                "create conversation",
                partial(
                    self._history.create_conversation,
                    self.current_conversation_id,
                    content[:PROVISIONAL_TITLE_LENGTH],
                ),
            )

        conversation_id = self.current_conversation_id

        user_message = Message(role=MessageRole.USER, content=content)
        self.messages.append(user_message)
        if conversation_id:
            self._schedule_write(
                "save user message",
                partial(
                    self._history.add_message,
                    user_message.id, conversation_id, MessageRole.USER.value, content,
                ),
            )

        placeholder = Message(role=MessageRole.ASSISTANT, content="")
        self.messages.append(placeholder)
        self.is_streaming = True

        generation = self._generation
        cancel_token = CancelToken()
        self._cancel_token = cancel_token
        history = list(self.messages[:-1])
        self._notify()

        accumulated = ""

        def is_current() -> bool:
            return generation == self._generation

        def on_token(token: str) -> None:
            nonlocal accumulated
            if not is_current():
                return
            accumulated += token
            placeholder.content = accumulated
            self._notify()

        def on_complete() -> None:
            if not is_current():
                return
            self.is_streaming = False
            self._cancel_token = None

            if conversation_id and placeholder.content:
                self._schedule_write(
                    "save assistant message",
                    partial(
                        self._history.add_message,
                        placeholder.id, conversation_id, MessageRole.ASSISTANT.value,
                        placeholder.content,
                    ),
                )

            if conversation_id and is_first_message and len(self.messages) == 2:
                self._start_title_generation(config, conversation_id, content)

            self._notify()

        def on_error(message: str) -> None:
            if not is_current():
                return
            self.is_streaming = False
            self._cancel_token = None
            self.stream_error = message
            # Don't leave a blank assistant bubble behind
            if self.messages and self.messages[-1] is placeholder and not placeholder.content:
                self.messages.pop()
            self._notify()

        provider = self._registry.resolve(config.provider)
        try:
            await provider.stream_chat(
                config,
                history,
                StreamCallbacks(on_token=on_token, on_complete=on_complete, on_error=on_error),
                system_prompt=system_prompt,
                cancel_token=cancel_token,
            )
        finally:
            if is_current() and self.is_streaming:
                logger.error("Provider %s ended without a terminal callback", config.provider.value)
                on_error(UNKNOWN_ERROR_MESSAGE)

    def _start_title_generation(
        self,
        config: ProviderConfig,
        conversation_id: str,
        user_message: str,
    ) -> None:
        async def generate() -> None:
            title = await self._titles.generate_title(config, config.provider, user_message)
            if title:
                self._schedule_write(
                    "update conversation title",
                    partial(self._history.update_conversation_title, conversation_id, title),
                )

        task = asyncio.create_task(self._best_effort("generate title", generate))
        self._track(task)

    def reset_chat(self) -> None:
        """Clear all session state. Safe in any state, including mid-stream."""
        if self._cancel_token is not None:
            self._cancel_token.cancel()
            self._cancel_token = None
        self._generation += 1
        self.messages = []
        self.is_streaming = False
        self.stream_error = None
        self.current_conversation_id = None
        self._notify()

    def load_conversation(
        self,
        conversation_id: str,
        history_messages: Sequence[HistoryMessage],
    ) -> None:
        """Replace the transcript with a stored conversation."""
        self.reset_chat()
        self.current_conversation_id = conversation_id
        self.messages = [
            Message(id=m.id, role=m.role, content=m.content, timestamp=m.created_at)
            for m in history_messages
        ]
        self._notify()

    async def copy_last_response(self) -> bool:
        """Copy the most recent assistant reply to the clipboard.

        Returns:
            True if something was copied
        """
        last = self.last_assistant_message
        if last is None or not last.content:
            return False
        try:
            await self._clipboard.write_text(last.content)
        except Exception as e:
            logger.warning("Clipboard copy failed: %s", e)
            return False
        return True

    def dismiss_error(self) -> None:
        self.stream_error = None
        self._notify()
