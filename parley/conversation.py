"""Conversation orchestration: bot turns, facilitator reviews, human input.

Every step re-reads the live state from the store after each await; nothing
captured before a generation call is trusted once the call returns.
"""

import logging
import time
from collections.abc import Callable

from parley.config.config_loader import FacilitatorConfig, PromptsConfig
from parley.facilitator import FacilitatorJudge, Verdict, format_roster
from parley.gateway import GenerationGateway, truncate_words
from parley.models import (
    FACILITATOR,
    FACILITATOR_ID,
    HUMAN,
    Bot,
    BotSpeaker,
    ConversationState,
    InspectionResult,
    Message,
    MessageMetadata,
    RoleConfig,
    new_message,
)
from parley.providers.base import GenerationCancelled, ProviderError
from parley.quota import BOT_RESPONSE_COST, USER_MESSAGE_BONUS
from parley.scheduler import TurnScheduler, TurnState, bot_messages, other_bot
from parley.store import ConversationStore
from parley.views import is_facilitator_mention, prepare_messages, recent_history

logger = logging.getLogger(__name__)

QUOTA_EXHAUSTED_MESSAGE = "The conversation has ended due to insufficient quota."

# At or below this many remaining turns, bots are told to wrap up.
_CLOSING_QUOTA = 3


def _elapsed_ms(start: float, clock: Callable[[], float]) -> int:
    return int((clock() - start) * 1000)


class Conversation:
    """Drives one conversation between two bots, a facilitator and a human."""

    def __init__(
        self,
        store: ConversationStore,
        gateway: GenerationGateway,
        prompts: PromptsConfig,
        facilitator: FacilitatorConfig,
        *,
        scheduler: TurnScheduler | None = None,
        history_limit: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self._gateway = gateway
        self._prompts = prompts
        self._judge = FacilitatorJudge(gateway, facilitator, prompts)
        self._scheduler = scheduler or TurnScheduler()
        self._history_limit = history_limit
        self._clock = clock

    @property
    def state(self) -> ConversationState:
        return self.store.state

    # --- human-facing actions ---

    async def send_message(self, content: str, *, resume: bool = False) -> Message:
        """Accept a human message and let the conversation react to it.

        Args:
            content: Message text. ``@facilitator ...`` goes straight to the facilitator.
            resume: Reopen an ended conversation. By default an ended
                conversation records the message but stays silent until resume().
        """
        text = content.strip()
        if not text:
            raise ValueError("Message is empty")

        self.store.add_quota(USER_MESSAGE_BONUS)
        if resume:
            self.store.set_ended(False)

        user_message = new_message("user", text)
        self.store.append(user_message)
        self.store.set_last_speaker(HUMAN)

        if is_facilitator_mention(text):
            await self._answer_facilitator_question()
        elif not self.state.conversation_ended:
            await self.advance(human_trigger=True)
        else:
            logger.info("Conversation is ended; message recorded without a reply")
        return user_message

    async def restart_from(self, message_id: str) -> bool:
        """Rewind the log to a message (inclusive) and branch from there.

        Refunds one quota unit per retained human message.

        Returns:
            False if the message id is unknown.
        """
        messages = self.state.messages
        index = next((i for i, m in enumerate(messages) if m.id == message_id), None)
        if index is None:
            logger.warning("Restart requested from unknown message %s", message_id)
            return False

        self._gateway.cancel()
        retained = messages[: index + 1]
        humans = sum(1 for m in retained if m.role == "user")
        self.store.rewind(retained)
        self.store.add_quota(humans * USER_MESSAGE_BONUS)
        logger.info("Restarted from message %d, refunded %d quota", index + 1, humans)

        await self.advance()
        return True

    def end(self, message: str | None = None) -> None:
        """Stop the conversation now, cancelling any pending request."""
        self._gateway.cancel()
        self.store.set_ended(True)
        self.store.set_typing(False)
        self.store.set_last_speaker(None)
        self.store.deactivate_all()
        if message:
            self.store.append(new_message("system", message))

    async def resume(self) -> None:
        """Reopen an ended conversation; the next bot speaks without a review."""
        if not self.state.conversation_ended:
            return
        self.store.set_ended(False)
        await self.advance(skip_assessment=True)

    # --- scheduling loop ---

    async def advance(self, *, skip_assessment: bool = False, human_trigger: bool = False) -> None:
        """Run scheduler decisions until the conversation waits on an outside event."""
        skip = skip_assessment
        human = human_trigger
        while True:
            decision = self._scheduler.decide(self.state, skip_assessment=skip, human_trigger=human)
            logger.debug("Scheduler decision: %s", decision)
            human = False

            if decision.state is TurnState.ENDED:
                if decision.forced:
                    await self._end_for_quota()
                return
            if decision.state is TurnState.IDLE:
                return
            if decision.state is TurnState.FACILITATOR_REVIEW:
                if not await self._review():
                    return
                skip = True
                continue

            if not await self._take_turn(decision.bot_id):
                return
            skip = False

    # --- bot turns ---

    def _turn_instruction(self, bot: Bot) -> Message:
        state = self.state
        messages = state.messages
        last = messages[-1] if messages else None
        last_human = next((m for m in reversed(messages) if m.role == "user"), None)
        other = other_bot(state.bots, bot.id)

        if last is None or last.role == "user":
            responding_to = "the user"
        elif last.bot_id == FACILITATOR_ID:
            responding_to = "the facilitator"
        elif last.role == "assistant" and last.bot_id and last.bot_id != bot.id:
            responding_to = "the other bot"
        else:
            responding_to = "the conversation"

        quota_prompt = (
            self._prompts.quota_open
            if state.remaining_quota > _CLOSING_QUOTA
            else self._prompts.quota_closing
        )
        content = self._prompts.bot_turn.format(
            max_words=state.shared_settings.max_response_length,
            bot_name=bot.name,
            bot_id=bot.id,
            focus=last_human.content if last_human else "",
            roster=format_roster(state.bots),
            persona=bot.system_prompt,
            quota_prompt=quota_prompt,
            other_name=other.name if other else "",
            responding_to=responding_to,
        )
        return new_message("system", content)

    async def _take_turn(self, bot_id: str) -> bool:
        """Generate one bot turn. Returns True when a reply was appended."""
        bot = self.store.bot(bot_id)
        self.store.activate(bot.id)
        self.store.add_quota(-BOT_RESPONSE_COST)
        self.store.set_typing(True)
        self.store.set_last_speaker(BotSpeaker(bot.id))

        settings = self.state.shared_settings
        instruction = self._turn_instruction(bot)
        history = recent_history(self.state.messages, self._history_limit)
        view = prepare_messages([instruction, *history], bot.id)
        role = RoleConfig(provider=settings.provider, model_id=settings.model_id, temperature=bot.temperature)

        logger.info("%s (%s) is responding, %d quota left", bot.name, bot.id, self.state.remaining_quota)
        start = self._clock()
        try:
            result = await self._gateway.generate(role, view)
        except GenerationCancelled:
            logger.info("Bot response cancelled: %s", bot.id)
            self._settle(bot.id)
            return False
        except ProviderError as exc:
            logger.error("Error generating %s response: %s", bot.name, exc)
            self._settle(bot.id)
            self._hand_turn_from(bot.id)
            return False

        if self.state.conversation_ended:
            logger.info("Conversation ended while %s was responding; reply dropped", bot.id)
            self._settle(bot.id)
            return False

        max_words = self.state.shared_settings.max_response_length
        self.store.append(
            new_message(
                "assistant",
                truncate_words(result.content, max_words),
                name=bot.name,
                bot_id=bot.id,
                metadata=MessageMetadata(
                    tokens=result.tokens,
                    response_time_ms=_elapsed_ms(start, self._clock),
                    temperature=bot.temperature,
                ),
            )
        )
        self._settle(bot.id)
        return True

    def _settle(self, bot_id: str | None = None) -> None:
        """Clear typing/activity after a call, unless a newer call now owns them."""
        if self._gateway.busy:
            return
        self.store.set_typing(False)
        if bot_id is not None:
            self.store.deactivate(bot_id)

    def _hand_turn_from(self, bot_id: str | None) -> None:
        nxt = other_bot(self.state.bots, bot_id)
        if nxt is not None:
            self.store.activate(nxt.id)

    # --- facilitator ---

    async def _review(self, *, forced: bool = False) -> bool:
        """Run one facilitator review.

        Returns:
            True if the debate continues and the next bot should speak now.
        """
        messages = list(self.state.messages)
        authored = bot_messages(messages)
        if not authored:
            logger.warning("No bot messages found for assessment")
            self._settle()
            return False
        last_bot = authored[-1]

        try:
            if forced:
                verdict = self._judge.forced_end()
            else:
                self._gateway.cancel()
                self.store.deactivate_all()
                self.store.set_typing(True)
                self.store.set_last_speaker(FACILITATOR)
                verdict = await self._judge.assess(messages, self.state.shared_settings)

            logger.info("Facilitator decision: %s", verdict.decision)
            self._record(last_bot, verdict)

            if verdict.decision == "end":
                await self._close(messages, forced=forced)
                return False

            self.store.set_typing(False)
            self.store.set_last_speaker(None)
            self._hand_turn_from(last_bot.bot_id)
            return True
        except GenerationCancelled:
            logger.info("Facilitator assessment cancelled")
            self._settle()
            return False
        except ProviderError as exc:
            logger.error("Facilitator assessment error: %s", exc)
            self._settle()
            self._hand_turn_from(last_bot.bot_id)
            return False

    def _record(self, last_bot: Message, verdict: Verdict) -> None:
        self.store.record_inspection(InspectionResult(message_id=last_bot.id, assessment=verdict.assessment))
        self.store.annotate_decision(last_bot.id, verdict.decision)

    async def _close(self, messages: list[Message], *, forced: bool) -> None:
        """Append the closing summary and end the conversation."""
        self.store.set_typing(True)
        self.store.set_last_speaker(FACILITATOR)
        start = self._clock()
        try:
            summary = await self._judge.summarize(messages, self.state.shared_settings)
        except ProviderError as exc:
            if not forced:
                raise
            # Out of quota: end regardless of whether the recap could be written.
            logger.error("Closing summary failed: %s", exc)
            summary = None

        if summary is not None and not self.state.conversation_ended:
            self.store.append(
                new_message(
                    "system",
                    f"Final Summary:\n{summary.content}",
                    name=self._judge.config.name,
                    bot_id=FACILITATOR_ID,
                    metadata=MessageMetadata(
                        tokens=summary.tokens,
                        response_time_ms=_elapsed_ms(start, self._clock),
                        temperature=self._judge.config.temperature,
                    ),
                )
            )
        self.end()

    async def _end_for_quota(self) -> None:
        logger.info("Out of quota, ending conversation")
        self._gateway.cancel()
        self.store.deactivate_all()
        self.store.set_typing(False)
        self.store.append(new_message("system", QUOTA_EXHAUSTED_MESSAGE))
        await self._review(forced=True)
        # Nothing to review (or the recap was superseded): still end, unless
        # a newer request has taken over the conversation.
        if not self.state.conversation_ended and not self._gateway.busy:
            self.end()

    async def _answer_facilitator_question(self) -> None:
        self.store.set_typing(True)
        self.store.set_last_speaker(FACILITATOR)
        start = self._clock()
        try:
            result = await self._judge.answer(
                self.state.messages,
                self.state.bots,
                self.state.shared_settings,
            )
        except GenerationCancelled:
            logger.info("Facilitator reply cancelled")
            self._settle()
            return
        except ProviderError as exc:
            logger.error("Facilitator reply error: %s", exc)
            self._settle()
            return

        self.store.append(
            new_message(
                "assistant",
                result.content,
                name=self._judge.config.name,
                bot_id=FACILITATOR_ID,
                metadata=MessageMetadata(
                    tokens=result.tokens,
                    response_time_ms=_elapsed_ms(start, self._clock),
                    temperature=self._judge.config.temperature,
                ),
            )
        )
        self._settle()
