"""Click CLI: loads config, builds providers, and runs an interactive debate."""

import asyncio
import logging
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Any

import click
from dotenv import load_dotenv
from rich.logging import RichHandler

from parley.backup import BackupError, load_backup, save_backup
from parley.bank import clear_bank, delete_from_bank, find_template, from_template, save_to_bank
from parley.catalog import list_available_models
from parley.config.config_loader import AppConfig, load_config
from parley.conversation import Conversation
from parley.gateway import GenerationGateway
from parley.models import BotBank, ConversationState, Message
from parley.output import (
    console,
    print_bank,
    print_inspections,
    print_message,
    print_models,
    print_status,
)
from parley.providers.base import AIProvider
from parley.providers.ollama import OllamaProvider
from parley.providers.openai_provider import OpenAIProvider
from parley.scenario import ScenarioError, parse_scenario
from parley.store import ConversationStore, initial_state

logger = logging.getLogger(__name__)

# Keyed by the "sdk" field of each provider in settings.yaml.
PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "openai": OpenAIProvider,
    "ollama": OllamaProvider,
}

_HELP = """Commands:
  /end              end the conversation now
  /resume           let the bots continue after an end
  /restart N        rewind to message N and branch from there
  /reset            clear the log and restore the starting quota
  /backup           save a JSON backup
  /restore PATH     load a JSON backup
  /bank             list seated bots and saved templates
  /bank save SLOT   save a seated bot (bot1/bot2) as a template
  /bank load UID SLOT
                    seat a saved template in a slot
  /bank delete UID  remove a template
  /bank clear       remove every template
  /inspect          show facilitator assessments
  /status           show quota and settings
  /quit             leave (an empty line also quits)
  @facilitator ...  ask the facilitator directly
Any other line is sent to the debate, even while the bots are talking."""


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_all_providers(config: AppConfig) -> dict[str, AIProvider]:
    """Build all available providers. Returns dict keyed by name."""
    providers: dict[str, AIProvider] = {}
    for name in sorted(config.available_providers):
        provider_cfg = config.providers[name]
        if provider_cfg.sdk not in PROVIDER_CLASSES:
            logging.warning("Provider '%s' uses unknown sdk '%s', skipping", name, provider_cfg.sdk)
            continue
        try:
            providers[name] = PROVIDER_CLASSES[provider_cfg.sdk](provider_cfg)
        except Exception as exc:
            logging.warning("Failed to instantiate provider '%s': %s", name, exc)
    return providers


def _settings_overrides(
    provider: str | None,
    model: str | None,
    max_words: int | None,
) -> dict[str, object]:
    overrides: dict[str, object] = {}
    if provider:
        overrides["provider"] = provider
    if model:
        overrides["model_id"] = model
    if max_words is not None:
        overrides["max_response_length"] = max_words
    return overrides


def _build_store(config: AppConfig, restore_path: Path | None, quota: int | None) -> ConversationStore:
    """Fresh store from config defaults, or one restored from a backup file."""
    defaults = config.defaults
    if restore_path is not None:
        state, bank = load_backup(
            restore_path,
            defaults=defaults.shared_settings(),
            initial_quota=defaults.initial_quota,
        )
    else:
        state = initial_state(
            config.templates,
            defaults.shared_settings(),
            quota=defaults.initial_quota,
        )
        bank = BotBank(templates=list(config.templates))
    if quota is not None:
        state.quota.reset(quota)
    return ConversationStore(state, bank, initial_quota=defaults.initial_quota)


class _Printer:
    """Store listener that prints each message the first time it appears."""

    def __init__(self, facilitator_name: str) -> None:
        self._facilitator_name = facilitator_name
        self._seen: set[str] = set()

    def __call__(self, state: ConversationState) -> None:
        for message in state.messages:
            if message.id in self._seen:
                continue
            self._seen.add(message.id)
            print_message(message, state.bots, self._facilitator_name)


def _message_at(messages: list[Message], position: str) -> Message | None:
    try:
        index = int(position) - 1
    except ValueError:
        return None
    if 0 <= index < len(messages):
        return messages[index]
    return None


def _bank_command(store: ConversationStore, arg: str) -> None:
    """Handle ``/bank [save SLOT | load UID SLOT | delete UID | clear]``."""
    action, _, rest = arg.partition(" ")
    parts = rest.split()
    bank = store.bank

    if not action:
        print_bank(store.state, bank)
    elif action == "save" and len(parts) == 1:
        try:
            bot = store.bot(parts[0])
        except KeyError:
            console.print(f"[red]No bot in slot {parts[0]}[/red]")
            return
        saved = save_to_bank(bank, bot)
        if saved.uid != bot.uid:
            store.update_bot(bot.id, uid=saved.uid)
        console.print(f"[dim]Saved {bot.name} as template {saved.uid}[/dim]")
    elif action == "load" and len(parts) == 2:
        uid, slot = parts
        template = find_template(bank, uid)
        if template is None:
            console.print(f"[red]No template {uid} in the bank[/red]")
            return
        try:
            store.bot(slot)
        except KeyError:
            console.print(f"[red]No bot in slot {slot}[/red]")
            return
        seated = from_template(template, slot)
        store.update_bot(
            slot,
            uid=seated.uid,
            name=seated.name,
            system_prompt=seated.system_prompt,
            temperature=seated.temperature,
            description=seated.description,
        )
        console.print(f"[dim]{seated.name} now sits in {slot}[/dim]")
    elif action == "delete" and len(parts) == 1:
        if not delete_from_bank(bank, parts[0]):
            console.print(f"[red]No template {parts[0]} in the bank[/red]")
            return
        _forget_templates(store, {parts[0]})
        console.print(f"[dim]Deleted template {parts[0]}[/dim]")
    elif action == "clear" and not parts:
        uids = {t.uid for t in bank.templates}
        clear_bank(bank)
        _forget_templates(store, uids)
        console.print("[dim]Bot bank cleared[/dim]")
    else:
        console.print("[red]Usage: /bank [save SLOT | load UID SLOT | delete UID | clear][/red]")


def _forget_templates(store: ConversationStore, uids: set[str]) -> None:
    # Seated bots must not point at templates that are gone.
    for bot in store.state.bots:
        if bot.uid in uids:
            store.update_bot(bot.id, uid=None)


class _Session:
    """Interactive front end over one conversation.

    Conversation steps run as background tasks so the prompt stays live.
    New input supersedes whatever the bots are doing through the gateway.
    """

    def __init__(self, conversation: Conversation, config: AppConfig, backup_dir: Path) -> None:
        self.conversation = conversation
        self._config = config
        self._backup_dir = backup_dir
        self._tasks: set[asyncio.Task] = set()

    @property
    def store(self) -> ConversationStore:
        return self.conversation.store

    def launch(self, step: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(step)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Conversation step failed: %s", task.exception())

    async def drain(self) -> None:
        """Wait until no conversation step is running."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.drain()

    async def say(self, text: str) -> None:
        await self.conversation.send_message(text)
        if self.conversation.state.conversation_ended:
            console.print("[dim]Conversation is ended. Use /resume to let the bots continue.[/dim]")

    def handle(self, text: str) -> bool:
        """Act on one line of input. Returns False when the user quits."""
        text = text.strip()
        if not text or text == "/quit":
            return False
        if text.startswith("/"):
            self._command(text)
        else:
            self.launch(self.say(text))
        return True

    def _command(self, text: str) -> None:
        command, _, arg = text.partition(" ")
        arg = arg.strip()
        conversation = self.conversation
        store = self.store

        if command == "/end":
            conversation.end("The conversation was ended by the user.")
        elif command == "/resume":
            self.launch(conversation.resume())
        elif command == "/restart":
            target = _message_at(conversation.state.messages, arg)
            if target is None:
                console.print(f"[red]No message #{arg or '?'}[/red]")
                return
            self.launch(conversation.restart_from(target.id))
        elif command == "/reset":
            conversation.end()
            store.reset()
            console.print("[dim]Started over with a fresh quota.[/dim]")
        elif command == "/backup":
            saved = save_backup(store.state, store.bank, self._backup_dir)
            console.print(f"[dim]Saved to: {saved}[/dim]")
        elif command == "/restore":
            self._restore(arg)
        elif command == "/bank":
            _bank_command(store, arg)
        elif command == "/inspect":
            print_inspections(conversation.state)
        elif command == "/status":
            print_status(conversation.state)
        else:
            console.print(_HELP)

    def _restore(self, arg: str) -> None:
        if not arg:
            console.print("[red]Usage: /restore PATH[/red]")
            return
        try:
            state, bank = load_backup(
                Path(arg),
                defaults=self._config.defaults.shared_settings(),
                initial_quota=self._config.defaults.initial_quota,
            )
        except BackupError as exc:
            console.print(f"[bold red]Failed to restore backup:[/bold red] {exc}")
            return
        self.conversation.end()
        self.store.restore(state, bank)
        console.print(f"[dim]Restored {len(state.messages)} messages from {arg}[/dim]")


async def _run_session(
    conversation: Conversation,
    config: AppConfig,
    topic: str | None,
    backup_dir: Path,
) -> None:
    """Read human input while the conversation runs in the background."""
    session = _Session(conversation, config, backup_dir)
    print_status(conversation.state)
    if topic:
        session.launch(session.say(topic))
    try:
        while True:
            try:
                text = await asyncio.to_thread(click.prompt, "You", default="", show_default=False)
            except click.Abort:
                break
            if not session.handle(text):
                break
    finally:
        await session.close()


@click.command()
@click.argument("topic", required=False)
@click.option("--file", "scenario_file", type=click.Path(exists=True, path_type=Path),
              help="Read the opening message (and frontmatter overrides) from a .md file")
@click.option("--provider", type=click.Choice(sorted(PROVIDER_CLASSES)), default=None,
              help="Generation provider (default: from config)")
@click.option("--model", default=None, help="Model id (default: from config)")
@click.option("--max-words", type=int, default=None, help="Word limit per bot turn")
@click.option("--quota", type=click.IntRange(0, 100), default=None, help="Starting turn budget")
@click.option("--restore", "restore_path", type=click.Path(exists=True, path_type=Path), default=None,
              help="Resume from a JSON backup")
@click.option("--backup-dir", default=None, help="Directory for /backup (default: from config)")
@click.option("--list-models", is_flag=True, help="List available models and exit")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    topic: str | None,
    scenario_file: Path | None,
    provider: str | None,
    model: str | None,
    max_words: int | None,
    quota: int | None,
    restore_path: Path | None,
    backup_dir: str | None,
    list_models: bool,
    verbose: bool,
) -> None:
    """Parley -- two bots debate, a facilitator referees, you steer.

    \b
    Examples:
      parley "Is a hot dog a sandwich?"
      parley "Tabs or spaces?" --provider ollama --model llama3.1
      parley --file scenario.md --quota 20
      parley --restore backups/debate-backup-2026-10-19.json
      parley --list-models
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    all_providers = _build_all_providers(config)
    if not all_providers:
        console.print("[bold red]Error:[/bold red] No providers available. Check API keys in .env.")
        sys.exit(1)

    if list_models:
        print_models(asyncio.run(list_available_models(all_providers, provider)))
        return

    opening = topic
    if scenario_file is not None:
        try:
            scenario = parse_scenario(scenario_file)
        except ScenarioError as exc:
            console.print(f"[bold red]Scenario error:[/bold red] {exc}")
            sys.exit(1)
        opening = scenario.topic
        # CLI flags win; frontmatter only fills in what the CLI left unset
        provider = provider or scenario.provider
        model = model or scenario.model_id
        max_words = max_words if max_words is not None else scenario.max_words
        quota = quota if quota is not None else scenario.quota

    try:
        store = _build_store(config, restore_path, quota)
    except BackupError as exc:
        console.print(f"[bold red]Failed to restore backup:[/bold red] {exc}")
        sys.exit(1)

    overrides = _settings_overrides(provider, model, max_words)
    if overrides:
        store.update_settings(**overrides)

    active = store.state.shared_settings.provider
    if active not in all_providers:
        console.print(f"[bold red]Error:[/bold red] Provider '{active}' is not available.")
        sys.exit(1)

    printer = _Printer(config.facilitator.name)
    store.subscribe(printer)
    printer(store.state)

    conversation = Conversation(
        store,
        GenerationGateway(all_providers),
        config.prompts,
        config.facilitator,
        history_limit=config.defaults.history_limit,
    )

    bots = " vs ".join(b.name for b in store.state.bots)
    console.print(f"\n[bold cyan]Parley[/bold cyan]: {bots}, refereed by {config.facilitator.name}")
    console.print("[dim]Type /help for commands.[/dim]\n")

    asyncio.run(
        _run_session(
            conversation,
            config,
            opening,
            Path(backup_dir) if backup_dir else config.defaults.backup_dir,
        )
    )


if __name__ == "__main__":
    main()
