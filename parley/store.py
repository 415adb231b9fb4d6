"""Conversation state store: the only place conversation state is mutated."""

import logging
from collections.abc import Callable
from dataclasses import replace

from parley.bank import from_template
from parley.models import (
    BOT_SLOTS,
    Bot,
    BotBank,
    BotTemplate,
    ConversationState,
    Decision,
    InspectionResult,
    Message,
    MessageMetadata,
    SharedSettings,
    Speaker,
)
from parley.quota import INITIAL_QUOTA, QuotaGovernor

logger = logging.getLogger(__name__)

Listener = Callable[[ConversationState], None]


def initial_state(
    templates: list[BotTemplate],
    settings: SharedSettings | None = None,
    quota: int = INITIAL_QUOTA,
) -> ConversationState:
    """Fresh state with the first two templates seated in the bot slots."""
    if len(templates) < len(BOT_SLOTS):
        raise ValueError(f"Need {len(BOT_SLOTS)} bot templates, got {len(templates)}")
    return ConversationState(
        bots=[from_template(t, slot) for t, slot in zip(templates, BOT_SLOTS)],
        shared_settings=settings or SharedSettings(),
        quota=QuotaGovernor(quota),
    )


class ConversationStore:
    """Owns one ConversationState and a bot bank; notifies listeners on every change.

    The message log is append-only. The one sanctioned edit to an existing
    message is annotate_decision(), which records a facilitator verdict.
    """

    def __init__(
        self,
        state: ConversationState,
        bank: BotBank | None = None,
        initial_quota: int = INITIAL_QUOTA,
    ) -> None:
        self.state = state
        self.bank = bank if bank is not None else BotBank()
        self._initial_quota = initial_quota
        self._listeners: list[Listener] = []

    # --- notifications ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self.state)

    # --- message log ---

    def append(self, message: Message) -> None:
        self.state.messages.append(message)
        self._notify()

    def annotate_decision(self, message_id: str, decision: Decision) -> Message | None:
        """Record the facilitator's verdict on an existing message."""
        for index, msg in enumerate(self.state.messages):
            if msg.id == message_id:
                metadata = replace(msg.metadata or MessageMetadata(), facilitator_decision=decision)
                annotated = replace(msg, metadata=metadata)
                self.state.messages[index] = annotated
                self._notify()
                return annotated
        logger.warning("Cannot annotate unknown message %s", message_id)
        return None

    def record_inspection(self, result: InspectionResult) -> None:
        self.state.inspection_results.append(result)
        self._notify()

    # --- participants ---

    def bot(self, bot_id: str) -> Bot:
        for b in self.state.bots:
            if b.id == bot_id:
                return b
        raise KeyError(f"Unknown bot: {bot_id}")

    def update_bot(self, bot_id: str, **changes) -> Bot:
        updated = replace(self.bot(bot_id), **changes)
        self.state.bots = [updated if b.id == bot_id else b for b in self.state.bots]
        self._notify()
        return updated

    def activate(self, bot_id: str) -> None:
        """Mark one bot active; every other bot goes inactive."""
        self.bot(bot_id)
        self.state.bots = [replace(b, is_active=(b.id == bot_id)) for b in self.state.bots]
        self._notify()

    def deactivate(self, bot_id: str) -> None:
        self.update_bot(bot_id, is_active=False)

    def deactivate_all(self) -> None:
        self.state.bots = [replace(b, is_active=False) for b in self.state.bots]
        self._notify()

    # --- flags and settings ---

    def set_typing(self, typing: bool) -> None:
        self.state.is_typing = typing
        self._notify()

    def set_last_speaker(self, speaker: Speaker | None) -> None:
        self.state.last_speaker = speaker
        self._notify()

    def set_ended(self, ended: bool) -> None:
        self.state.conversation_ended = ended
        self._notify()

    def add_quota(self, delta: int) -> int:
        remaining = self.state.quota.add(delta)
        self._notify()
        return remaining

    def update_settings(self, **changes) -> SharedSettings:
        self.state.shared_settings = replace(self.state.shared_settings, **changes)
        self._notify()
        return self.state.shared_settings

    # --- bulk transitions ---

    def rewind(self, messages: list[Message]) -> None:
        """Replace the log with a retained prefix and clear all turn flags."""
        self.state.messages = list(messages)
        self.state.bots = [replace(b, is_active=False) for b in self.state.bots]
        self.state.conversation_ended = False
        self.state.is_typing = False
        self.state.last_speaker = None
        self._notify()

    def reset(self, messages: list[Message] | None = None) -> None:
        """Start over: rewind and restore the initial quota."""
        self.state.quota.reset(self._initial_quota)
        self.rewind(messages or [])

    def restore(self, state: ConversationState, bank: BotBank) -> None:
        """Swap in a restored state and bank wholesale."""
        self.state = state
        self.bank = bank
        self._notify()
