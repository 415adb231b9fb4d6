"""Facilitator: judges whether the debate continues, and writes the closing recap."""

import logging
from dataclasses import dataclass

from parley.config.config_loader import FacilitatorConfig, PromptsConfig
from parley.gateway import GenerationGateway
from parley.models import (
    FACILITATOR_ID,
    Bot,
    Decision,
    GenerationResult,
    Message,
    RoleConfig,
    SharedSettings,
    new_message,
)
from parley.scheduler import bot_messages
from parley.views import prepare_messages

logger = logging.getLogger(__name__)

END_TOKEN = "END"


@dataclass(frozen=True)
class Verdict:
    decision: Decision
    assessment: str
    exchanges: int = 0


def count_exchanges(messages: list[Message]) -> int:
    """Count complete exchanges, pairing bot turns greedily in encounter order.

    A repeat turn from a bot whose slot in the current pair is already filled
    is skipped, so no message is ever counted twice.
    """
    exchanges = 0
    pending: set[str] = set()
    for msg in bot_messages(messages):
        if msg.bot_id in pending:
            continue
        pending.add(msg.bot_id)
        if len(pending) == 2:
            exchanges += 1
            pending.clear()
    return exchanges


def classify_verdict(text: str) -> Decision:
    """Lenient: any occurrence of END ends the debate; everything else continues."""
    return "end" if END_TOKEN in text else "continue"


def format_roster(bots: list[Bot]) -> str:
    return "\n".join(f"- ID: {b.id} Name: {b.name}" for b in bots)


class FacilitatorJudge:
    """Generation-side half of the facilitator. Holds no conversation state."""

    def __init__(
        self,
        gateway: GenerationGateway,
        config: FacilitatorConfig,
        prompts: PromptsConfig,
    ) -> None:
        self._gateway = gateway
        self._config = config
        self._prompts = prompts

    @property
    def config(self) -> FacilitatorConfig:
        return self._config

    def _role(self, settings: SharedSettings) -> RoleConfig:
        return RoleConfig(
            provider=settings.provider,
            model_id=settings.model_id,
            temperature=self._config.temperature,
        )

    @staticmethod
    def forced_end() -> Verdict:
        """Verdict used when the quota runs out: no generation, no assessment."""
        return Verdict(decision="end", assessment="")

    async def assess(self, messages: list[Message], settings: SharedSettings) -> Verdict:
        """Ask the facilitator whether the debate should continue.

        Raises:
            GenerationCancelled: If superseded by a newer request.
            ProviderError: If the backend fails.
        """
        exchanges = count_exchanges(messages)
        instruction = new_message(
            "system",
            f"{self._prompts.facilitator}\n\nCurrent complete exchanges: {exchanges}",
        )
        view = prepare_messages([instruction, *messages], FACILITATOR_ID)

        logger.info("Facilitator reviewing after %d complete exchanges", exchanges)
        result = await self._gateway.generate(self._role(settings), view)

        return Verdict(
            decision=classify_verdict(result.content),
            assessment=f'Exchange counts: {{"completeExchanges": {exchanges}}}\n\n{result.content}',
            exchanges=exchanges,
        )

    async def summarize(self, messages: list[Message], settings: SharedSettings) -> GenerationResult:
        """Request the 2-3 sentence closing recap."""
        request = new_message("user", self._prompts.summary_request, name=FACILITATOR_ID)
        view = [*prepare_messages(messages, FACILITATOR_ID), request]

        logger.info("Facilitator writing closing summary")
        return await self._gateway.generate(self._role(settings), view)

    async def answer(
        self,
        messages: list[Message],
        bots: list[Bot],
        settings: SharedSettings,
    ) -> GenerationResult:
        """Answer a human question addressed to the facilitator with @facilitator."""
        instruction = new_message(
            "system",
            self._prompts.facilitator_question.format(roster=format_roster(bots)),
        )
        view = prepare_messages([instruction, *messages], FACILITATOR_ID)
        return await self._gateway.generate(self._role(settings), view)
