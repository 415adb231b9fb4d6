"""JSON backup and restore of a conversation together with its bot bank."""

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any

from parley.bank import find_template
from parley.models import (
    Bot,
    BotBank,
    BotTemplate,
    ConversationState,
    Message,
    MessageMetadata,
    SharedSettings,
)
from parley.quota import INITIAL_QUOTA, QuotaGovernor

logger = logging.getLogger(__name__)

_ROLES = ("system", "user", "assistant")
_DECISIONS = ("continue", "end")


class BackupError(Exception):
    """Raised when a backup file cannot be restored."""


# --- encoding ---

def _metadata_to_dict(metadata: MessageMetadata) -> dict[str, Any]:
    raw = {
        "tokens": metadata.tokens,
        "responseTime": metadata.response_time_ms,
        "temperature": metadata.temperature,
        "facilitatorDecision": metadata.facilitator_decision,
    }
    return {k: v for k, v in raw.items() if v is not None}


def _message_to_dict(message: Message) -> dict[str, Any]:
    raw: dict[str, Any] = {
        "id": message.id,
        "role": message.role,
        "content": message.content,
        "timestamp": message.timestamp,
    }
    if message.name:
        raw["name"] = message.name
    if message.bot_id:
        raw["botId"] = message.bot_id
    if message.metadata is not None:
        raw["metadata"] = _metadata_to_dict(message.metadata)
    return raw


def _bot_to_dict(bot: Bot) -> dict[str, Any]:
    raw: dict[str, Any] = {
        "id": bot.id,
        "name": bot.name,
        "modelConfig": {"temperature": bot.temperature},
        "systemPrompt": bot.system_prompt,
        "isActive": bot.is_active,
    }
    if bot.uid:
        raw["uid"] = bot.uid
    if bot.description is not None:
        raw["description"] = bot.description
    return raw


def _template_to_dict(template: BotTemplate) -> dict[str, Any]:
    raw: dict[str, Any] = {
        "uid": template.uid,
        "name": template.name,
        "modelConfig": {"temperature": template.temperature},
        "systemPrompt": template.system_prompt,
    }
    if template.description is not None:
        raw["description"] = template.description
    return raw


def dump_backup(state: ConversationState, bank: BotBank) -> dict[str, Any]:
    """Serialize state and bank to the backup document shape."""
    return {
        "messages": [_message_to_dict(m) for m in state.messages],
        "bots": [_bot_to_dict(b) for b in state.bots],
        "sharedSettings": {
            "provider": state.shared_settings.provider,
            "modelId": state.shared_settings.model_id,
            "maxResponseLength": state.shared_settings.max_response_length,
        },
        "remainingQuota": state.remaining_quota,
        "conversationEnded": state.conversation_ended,
        "botBank": {"templates": [_template_to_dict(t) for t in bank.templates]},
    }


def save_backup(
    state: ConversationState,
    bank: BotBank,
    output_dir: Path,
    today: date | None = None,
) -> Path:
    """Write a backup file named debate-backup-YYYY-MM-DD.json.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    stamp = (today or date.today()).isoformat()
    filepath = output_dir / f"debate-backup-{stamp}.json"
    filepath.write_text(json.dumps(dump_backup(state, bank), indent=2), encoding="utf-8")
    logger.info("Backup saved to: %s", filepath)
    return filepath


# --- decoding ---

def _temperature(raw: dict[str, Any]) -> float:
    return float(raw.get("modelConfig", {}).get("temperature", 0.7))


def _parse_metadata(raw: dict[str, Any] | None) -> MessageMetadata | None:
    if raw is None:
        return None
    decision = raw.get("facilitatorDecision")
    if decision is not None and decision not in _DECISIONS:
        raise BackupError(f"Unknown facilitator decision: {decision!r}")
    return MessageMetadata(
        tokens=raw.get("tokens"),
        response_time_ms=raw.get("responseTime"),
        temperature=raw.get("temperature"),
        facilitator_decision=decision,
    )


def _parse_message(raw: dict[str, Any]) -> Message:
    role = raw["role"]
    if role not in _ROLES:
        raise BackupError(f"Unknown message role: {role!r}")
    return Message(
        id=str(raw["id"]),
        role=role,
        content=str(raw["content"]),
        timestamp=int(raw.get("timestamp", 0)),
        name=raw.get("name"),
        bot_id=raw.get("botId"),
        metadata=_parse_metadata(raw.get("metadata")),
    )


def _parse_template(raw: dict[str, Any]) -> BotTemplate:
    return BotTemplate(
        uid=str(raw["uid"]),
        name=str(raw["name"]),
        system_prompt=str(raw.get("systemPrompt", "")),
        temperature=_temperature(raw),
        description=raw.get("description"),
    )


def _parse_bot(raw: dict[str, Any], bank: BotBank) -> Bot:
    # Nobody is mid-turn in a restored conversation.
    uid = raw.get("uid")
    if uid and find_template(bank, uid) is None:
        logger.info("Dropping dangling template reference %s on %s", uid, raw.get("id"))
        uid = None
    return Bot(
        id=str(raw["id"]),
        uid=uid,
        name=str(raw["name"]),
        system_prompt=str(raw.get("systemPrompt", "")),
        temperature=_temperature(raw),
        description=raw.get("description"),
        is_active=False,
    )


def parse_backup(
    raw: Any,
    defaults: SharedSettings | None = None,
    initial_quota: int = INITIAL_QUOTA,
) -> tuple[ConversationState, BotBank]:
    """Rebuild state and bank from a decoded backup document.

    The bank is rebuilt first; bot template references that do not resolve
    in it are dropped rather than rejected.

    Raises:
        BackupError: If the document is malformed.
    """
    if not isinstance(raw, dict) or not raw.get("bots") or not raw.get("sharedSettings"):
        raise BackupError("Invalid backup file format")

    defaults = defaults or SharedSettings()
    try:
        bank = BotBank(
            templates=[_parse_template(t) for t in (raw.get("botBank") or {}).get("templates", [])]
        )
        bots = [_parse_bot(b, bank) for b in raw["bots"]]
        settings_raw = raw["sharedSettings"]
        settings = SharedSettings(
            provider=str(settings_raw.get("provider", defaults.provider)),
            model_id=str(settings_raw.get("modelId", defaults.model_id)),
            max_response_length=int(settings_raw.get("maxResponseLength", defaults.max_response_length)),
        )
        messages = [_parse_message(m) for m in raw.get("messages") or []]
        quota_raw = raw.get("remainingQuota")
        quota = initial_quota if quota_raw is None else int(quota_raw)
    except BackupError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise BackupError(f"Invalid backup file format: {exc}") from exc

    if len(bots) != 2:
        raise BackupError(f"Backup must contain exactly 2 bots, found {len(bots)}")

    state = ConversationState(
        bots=bots,
        shared_settings=settings,
        messages=messages,
        quota=QuotaGovernor(quota),
        conversation_ended=bool(raw.get("conversationEnded", False)),
    )
    return state, bank


def load_backup(
    path: Path,
    defaults: SharedSettings | None = None,
    initial_quota: int = INITIAL_QUOTA,
) -> tuple[ConversationState, BotBank]:
    """Read and restore a backup file.

    Raises:
        BackupError: If the file is unreadable, not JSON, or malformed.
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise BackupError(f"Cannot read backup {path}: {exc}") from exc
    return parse_backup(raw, defaults=defaults, initial_quota=initial_quota)
