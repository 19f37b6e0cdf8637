"""Main CLI application using Typer."""
import asyncio
from datetime import datetime

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..chat import ChatSession
from ..history import GroupedHistory, HistoryBrowser, group_conversations
from ..llm import MessageRole, ProviderConfig
from ..logging_config import configure_logging
from ..settings import AppSettings, SettingsError, apply_setting
from .providers import (
    build_session,
    get_history_store,
    get_provider_config,
    get_registry,
    get_settings_store,
)

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="quickassist",
    help="Ask an AI from the terminal, with streamed answers and searchable history",
    no_args_is_help=True,
    add_completion=True,
)
history_app = typer.Typer(help="Browse, search and delete stored conversations", no_args_is_help=True)
config_app = typer.Typer(help="Show and change settings", no_args_is_help=True)
app.add_typer(history_app, name="history")
app.add_typer(config_app, name="config")

# Console for rich output
console = Console()

CHAT_HELP = (
    "[bold]Commands[/bold]\n"
    "  /new            start a new conversation\n"
    "  /copy           copy the last answer to the clipboard\n"
    "  /history \\[q]    list conversations, optionally filtered by title\n"
    "  /load ID        continue a stored conversation\n"
    "  /delete ID      delete a stored conversation\n"
    "  /quit           leave"
)


@app.callback()
def main(
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Logging level (default: $QUICKASSIST_LOG_LEVEL or WARNING)"
    )
):
    """Quick Assist command line."""
    configure_logging(log_level)


def _format_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


def _print_grouped(grouped: GroupedHistory) -> None:
    sections = grouped.sections()
    if not sections:
        console.print("[yellow]No conversations found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Title")
    table.add_column("Updated", style="green", width=16)

    for label, conversations in sections:
        table.add_section()
        table.add_row(f"[bold]{label}[/bold]", "", "")
        for conversation in conversations:
            table.add_row(conversation.id, escape(conversation.title), _format_ms(conversation.updated_at))

    console.print(table)


def _print_transcript(session: ChatSession) -> None:
    for message in session.messages:
        if message.role == MessageRole.USER:
            console.print(f"[bold cyan]> {escape(message.content)}[/bold cyan]")
        else:
            console.print(Markdown(message.content))
        console.print()


async def _stream_reply(
    session: ChatSession,
    text: str,
    config: ProviderConfig,
    system_prompt: str | None,
) -> None:
    """Send a message, rendering the reply as Markdown while it streams."""
    with Live(Markdown(""), console=console, refresh_per_second=12, vertical_overflow="visible") as live:
        def render() -> None:
            tail = session.messages[-1] if session.messages else None
            content = tail.content if tail and tail.role == MessageRole.ASSISTANT else ""
            live.update(Markdown(content))

        session.add_listener(render)
        try:
            await session.send_message(text, config, system_prompt or None)
        finally:
            session.remove_listener(render)

    if session.stream_error:
        console.print(f"[red]Error: {escape(session.stream_error)}[/red]")
        session.dismiss_error()


async def _load_settings() -> AppSettings:
    try:
        return await get_settings_store().get_settings()
    except SettingsError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question to ask"),
    provider: str | None = typer.Option(
        None,
        "--provider",
        "-p",
        help="Provider override: gemini, openai, anthropic or custom"
    ),
    model: str | None = typer.Option(
        None,
        "--model",
        "-m",
        help="Model override"
    ),
):
    """Ask a single question and stream the answer."""
    async def _ask():
        settings = await _load_settings()
        try:
            config = get_provider_config(settings, provider=provider, model=model, console=console)
        except ValueError as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            raise typer.Exit(code=1)

        history = get_history_store()
        registry = get_registry()
        await history.connect()
        session = build_session(registry, history)
        try:
            await _stream_reply(session, question, config, settings.llm.system_prompt)
            failed = session.stream_error is not None or not session.last_assistant_message
        finally:
            await session.wait_for_pending()
            await registry.close()
            await history.disconnect()

        if failed:
            raise typer.Exit(code=1)

    asyncio.run(_ask())


async def _handle_command(line: str, session: ChatSession, browser: HistoryBrowser) -> bool:
    """Run a slash command. Returns False when the loop should stop."""
    command, _, argument = line.partition(" ")
    argument = argument.strip()

    if command in ("/quit", "/exit"):
        return False

    if command == "/new":
        session.reset_chat()
        browser.start_new_conversation()
        console.print("[dim]Started a new conversation.[/dim]")
    elif command == "/copy":
        if await session.copy_last_response():
            console.print("[green]Copied to clipboard[/green]")
        else:
            console.print("[yellow]Nothing to copy[/yellow]")
    elif command == "/history":
        if argument:
            await browser.search(argument)
        else:
            await browser.open()
        _print_grouped(browser.grouped())
    elif command == "/load":
        messages = await browser.load_messages(argument) if argument else []
        if not messages:
            console.print(f"[yellow]No messages found for '{argument}'[/yellow]")
        else:
            session.load_conversation(argument, messages)
            _print_transcript(session)
    elif command == "/delete":
        if argument and await browser.delete_conversation(argument):
            if session.current_conversation_id == argument:
                session.reset_chat()
            console.print(f"[green]Deleted {argument}[/green]")
        else:
            console.print(f"[yellow]Could not delete '{argument}'[/yellow]")
    else:
        console.print(CHAT_HELP)
    return True


@app.command()
def chat(
    provider: str | None = typer.Option(
        None,
        "--provider",
        "-p",
        help="Provider override: gemini, openai, anthropic or custom"
    ),
    model: str | None = typer.Option(
        None,
        "--model",
        "-m",
        help="Model override"
    ),
):
    """Interactive chat with streamed answers. Type /help for commands."""
    async def _chat():
        store = get_settings_store()
        history = get_history_store()
        registry = get_registry()
        await history.connect()
        session = build_session(registry, history)
        browser = HistoryBrowser(history)

        console.print(Panel(CHAT_HELP, title="Quick Assist", border_style="cyan"))
        try:
            while True:
                try:
                    line = await asyncio.to_thread(console.input, "[bold cyan]> [/bold cyan]")
                except (EOFError, KeyboardInterrupt):
                    break

                text = line.strip()
                if not text:
                    continue
                if text.startswith("/"):
                    if not await _handle_command(text, session, browser):
                        break
                    continue

                # Settings are re-read for every send so edits apply immediately
                try:
                    settings = await store.get_settings()
                    config = get_provider_config(settings, provider=provider, model=model, console=console)
                except (SettingsError, ValueError) as e:
                    console.print(f"[red]Error: {escape(str(e))}[/red]")
                    continue
                await _stream_reply(session, text, config, settings.llm.system_prompt)
        finally:
            await session.wait_for_pending()
            await registry.close()
            await history.disconnect()

    asyncio.run(_chat())


@history_app.command("list")
def history_list(
    search: str | None = typer.Option(
        None,
        "--search",
        "-s",
        help="Only show conversations whose title contains this text"
    ),
    limit: int = typer.Option(
        50,
        "--limit",
        "-l",
        help="Maximum number of conversations"
    ),
):
    """List conversations grouped by recency."""
    async def _list():
        history = get_history_store()
        await history.connect()
        try:
            if search and search.strip():
                conversations = await history.search_conversations(search.strip())
            else:
                conversations = await history.get_conversations(limit=limit)
        finally:
            await history.disconnect()

        _print_grouped(group_conversations(conversations[:limit]))

    asyncio.run(_list())


@history_app.command("show")
def history_show(
    conversation_id: str = typer.Argument(..., help="Conversation ID")
):
    """Print a stored conversation."""
    async def _show():
        history = get_history_store()
        await history.connect()
        try:
            messages = await history.get_messages(conversation_id)
        finally:
            await history.disconnect()

        if not messages:
            console.print(f"[yellow]No messages found for '{conversation_id}'[/yellow]")
            raise typer.Exit(code=1)

        for message in messages:
            if message.role == MessageRole.USER:
                console.print(f"[bold cyan]> {escape(message.content)}[/bold cyan]")
            else:
                console.print(Markdown(message.content))
            console.print()

    asyncio.run(_show())


@history_app.command("delete")
def history_delete(
    conversation_id: str = typer.Argument(..., help="Conversation ID"),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip confirmation prompt"
    ),
):
    """Delete a conversation and its messages."""
    if not yes and not typer.confirm(f"Delete conversation {conversation_id}?"):
        console.print("[dim]Aborted.[/dim]")
        return

    async def _delete():
        history = get_history_store()
        await history.connect()
        try:
            await history.delete_conversation(conversation_id)
        finally:
            await history.disconnect()
        console.print(f"[green]Deleted {conversation_id}[/green]")

    asyncio.run(_delete())


@config_app.command("show")
def config_show():
    """Show current settings (the API key is masked)."""
    async def _show():
        settings = await _load_settings()

        table = Table(show_header=False, box=None)
        table.add_column("Setting", style="bold cyan")
        table.add_column("Value")

        data = settings.model_dump(mode="json")
        for section, values in data.items():
            for key, value in values.items():
                if key == "api_key" and value:
                    value = f"{value[:4]}...{value[-4:]}" if len(value) > 12 else "****"
                elif key == "system_prompt":
                    value = value.splitlines()[0] + " ..." if value else ""
                table.add_row(f"{section}.{key}", "" if value is None else str(value))

        console.print(table)
        console.print(f"[dim]{get_settings_store().path}[/dim]")

    asyncio.run(_show())


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Dotted setting name, e.g. llm.provider"),
    value: str = typer.Argument(..., help="New value"),
):
    """Change one setting."""
    async def _set():
        store = get_settings_store()
        settings = await _load_settings()
        try:
            updated = apply_setting(settings, key, value)
            await store.update_settings(updated)
        except SettingsError as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            raise typer.Exit(code=1)
        console.print(f"[green]Set {key}[/green]")

    asyncio.run(_set())


@config_app.command("reset")
def config_reset(
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip confirmation prompt"
    ),
):
    """Restore default settings."""
    if not yes and not typer.confirm("Reset all settings to defaults?"):
        console.print("[dim]Aborted.[/dim]")
        return

    async def _reset():
        try:
            await get_settings_store().reset_settings()
        except SettingsError as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            raise typer.Exit(code=1)
        console.print("[green]Settings reset to defaults[/green]")

    asyncio.run(_reset())


if __name__ == "__main__":
    app()
