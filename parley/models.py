"""Dataclasses for the Parley conversation engine, plus the message factory."""

import time
import uuid
from dataclasses import dataclass, field
from typing import Literal

from parley.quota import QuotaGovernor

Role = Literal["system", "user", "assistant"]
Decision = Literal["continue", "end"]

FACILITATOR_ID = "facilitator"
BOT_SLOTS = ("bot1", "bot2")


@dataclass
class MessageMetadata:
    tokens: int | None = None
    response_time_ms: int | None = None
    temperature: float | None = None
    facilitator_decision: Decision | None = None


@dataclass(frozen=True)
class Message:
    id: str
    role: Role
    content: str
    timestamp: int                 # epoch milliseconds
    name: str | None = None
    bot_id: str | None = None      # author slot, or FACILITATOR_ID
    metadata: MessageMetadata | None = None


@dataclass(frozen=True)
class HumanSpeaker:
    pass


@dataclass(frozen=True)
class BotSpeaker:
    bot_id: str


@dataclass(frozen=True)
class FacilitatorSpeaker:
    pass


Speaker = HumanSpeaker | BotSpeaker | FacilitatorSpeaker

HUMAN = HumanSpeaker()
FACILITATOR = FacilitatorSpeaker()


@dataclass
class Bot:
    id: str                        # "bot1" or "bot2"
    name: str
    system_prompt: str
    temperature: float = 0.7
    description: str | None = None
    uid: str | None = None         # bank template this bot was loaded from
    is_active: bool = False


@dataclass
class BotTemplate:
    uid: str
    name: str
    system_prompt: str
    temperature: float = 0.7
    description: str | None = None


@dataclass
class BotBank:
    templates: list[BotTemplate] = field(default_factory=list)


@dataclass
class SharedSettings:
    provider: str = "openai"       # "openai" or "ollama"
    model_id: str = "gpt-4o-mini"
    max_response_length: int = 100  # words


@dataclass(frozen=True)
class InspectionResult:
    message_id: str
    assessment: str


@dataclass
class ConversationState:
    bots: list[Bot]
    shared_settings: SharedSettings = field(default_factory=SharedSettings)
    messages: list[Message] = field(default_factory=list)
    quota: QuotaGovernor = field(default_factory=QuotaGovernor)
    conversation_ended: bool = False
    is_typing: bool = False
    last_speaker: Speaker | None = None
    inspection_results: list[InspectionResult] = field(default_factory=list)

    @property
    def remaining_quota(self) -> int:
        return self.quota.remaining


@dataclass(frozen=True)
class RoleConfig:
    provider: str
    model_id: str
    temperature: float


@dataclass(frozen=True)
class GenerationResult:
    content: str
    tokens: int | None = None


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    provider: str
    description: str | None = None


def new_message(
    role: Role,
    content: str,
    *,
    name: str | None = None,
    bot_id: str | None = None,
    metadata: MessageMetadata | None = None,
) -> Message:
    """Create a message with a fresh id and the current timestamp."""
    return Message(
        id=uuid.uuid4().hex,
        role=role,
        content=content,
        timestamp=int(time.time() * 1000),
        name=name,
        bot_id=bot_id,
        metadata=metadata,
    )
