"""Turn-taking state machine: given the current state, who acts next."""

import logging
import random
from dataclasses import dataclass
from enum import Enum

from parley.models import FACILITATOR_ID, Bot, ConversationState, Message

logger = logging.getLogger(__name__)


class TurnState(str, Enum):
    AWAITING_FIRST_TURN = "awaiting_first_turn"
    BOT_TURN = "bot_turn"
    FACILITATOR_REVIEW = "facilitator_review"
    ENDED = "ended"
    # A complete exchange already answered by the facilitator; wait for the next event.
    IDLE = "idle"


@dataclass(frozen=True)
class TurnDecision:
    state: TurnState
    bot_id: str | None = None
    forced: bool = False     # ENDED because the quota ran out


def bot_messages(messages: list[Message]) -> list[Message]:
    """Assistant turns authored by a participant. Untagged and facilitator turns don't count."""
    return [
        m for m in messages
        if m.role == "assistant" and m.bot_id and m.bot_id != FACILITATOR_ID
    ]


def is_complete_exchange(authored: list[Message]) -> bool:
    return len(authored) >= 2 and authored[-1].bot_id != authored[-2].bot_id


def other_bot(bots: list[Bot], bot_id: str | None) -> Bot | None:
    return next((b for b in bots if b.id != bot_id), None)


class TurnScheduler:
    """Decides the next step after every change to the conversation."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def decide(
        self,
        state: ConversationState,
        *,
        skip_assessment: bool = False,
        human_trigger: bool = False,
    ) -> TurnDecision:
        """Pick the next action from the current state.

        Args:
            state: Live conversation state; read, never mutated.
            skip_assessment: Let the next bot speak without facilitator review.
            human_trigger: The triggering event is a fresh human message.
        """
        if state.conversation_ended and not human_trigger:
            return TurnDecision(TurnState.ENDED)

        if state.quota.exhausted:
            return TurnDecision(TurnState.ENDED, forced=True)

        authored = bot_messages(state.messages)
        if not authored:
            first = self._rng.choice(state.bots)
            return TurnDecision(TurnState.AWAITING_FIRST_TURN, bot_id=first.id)

        complete = is_complete_exchange(authored)
        last = state.messages[-1]
        if complete and not skip_assessment:
            if last.bot_id == FACILITATOR_ID:
                return TurnDecision(TurnState.IDLE)
            return TurnDecision(TurnState.FACILITATOR_REVIEW)

        nxt = other_bot(state.bots, authored[-1].bot_id)
        if nxt is None:
            logger.warning("No participant available to answer %s", authored[-1].bot_id)
            return TurnDecision(TurnState.IDLE)
        return TurnDecision(TurnState.BOT_TURN, bot_id=nxt.id)
