"""Rich console rendering of conversation messages and status."""

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from parley.models import FACILITATOR_ID, Bot, BotBank, ConversationState, Message, ModelInfo

console = Console(legacy_windows=False)

_BOT_STYLES = ("cyan", "magenta")


def _author(message: Message, bots: list[Bot], facilitator_name: str) -> tuple[str, str]:
    """Return (label, border style) for a message."""
    if message.bot_id == FACILITATOR_ID:
        return facilitator_name, "yellow"
    for index, bot in enumerate(bots):
        if bot.id == message.bot_id:
            return bot.name, _BOT_STYLES[index % len(_BOT_STYLES)]
    if message.role == "user":
        return "You", "green"
    return "System", "dim"


def _subtitle(message: Message) -> str | None:
    meta = message.metadata
    if meta is None:
        return None
    parts: list[str] = []
    if meta.response_time_ms is not None:
        parts.append(f"{meta.response_time_ms / 1000:.1f}s")
    if meta.tokens:
        parts.append(f"{meta.tokens} tokens")
    if meta.facilitator_decision:
        parts.append(f"facilitator: {meta.facilitator_decision}")
    return " | ".join(parts) or None


def print_message(message: Message, bots: list[Bot], facilitator_name: str = "Facilitator") -> None:
    """Print one message as a panel titled with its author."""
    label, style = _author(message, bots, facilitator_name)
    if message.role == "system" and message.bot_id is None:
        console.print(Text(message.content, style="dim italic"))
        return
    console.print(
        Panel(
            Markdown(message.content),
            title=f"[bold]{label}[/bold]",
            subtitle=_subtitle(message),
            border_style=style,
        )
    )


def print_status(state: ConversationState) -> None:
    settings = state.shared_settings
    status = "ended" if state.conversation_ended else "open"
    console.print(
        Text(
            f"Quota: {state.remaining_quota} | "
            f"Model: {settings.provider}/{settings.model_id} | "
            f"Max words: {settings.max_response_length} | "
            f"Conversation: {status}",
            style="dim",
        )
    )


def print_inspections(state: ConversationState) -> None:
    """Print every facilitator assessment next to the message it judged."""
    console.print(Rule("[bold yellow]Facilitator Assessments[/bold yellow]"))
    if not state.inspection_results:
        console.print(Text("No assessments yet.", style="dim"))
        return
    positions = {m.id: i + 1 for i, m in enumerate(state.messages)}
    for result in state.inspection_results:
        where = positions.get(result.message_id)
        title = f"message #{where}" if where else "message (rewound)"
        body = result.assessment or "(forced end, no assessment)"
        console.print(Panel(body, title=title, border_style="yellow"))


def print_models(models: list[ModelInfo]) -> None:
    table = Table(title="Available models")
    table.add_column("Provider")
    table.add_column("Model")
    table.add_column("Description", style="dim")
    for info in models:
        table.add_row(info.provider, info.id, info.description or "")
    console.print(table)


def print_bank(state: ConversationState, bank: BotBank) -> None:
    """Print the seated bots and the saved templates they can be swapped for."""
    seated = Table(title="Seated bots")
    seated.add_column("Slot")
    seated.add_column("Name")
    seated.add_column("Temp")
    seated.add_column("Template", style="dim")
    for bot in state.bots:
        seated.add_row(bot.id, bot.name, f"{bot.temperature:.1f}", bot.uid or "(unsaved)")
    console.print(seated)

    saved = Table(title="Bot bank")
    saved.add_column("Template")
    saved.add_column("Name")
    saved.add_column("Temp")
    saved.add_column("Description", style="dim")
    for template in bank.templates:
        saved.add_row(template.uid, template.name, f"{template.temperature:.1f}", template.description or "")
    console.print(saved)
