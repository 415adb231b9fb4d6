"""Role-relative views of the shared conversation log.

Every participant reads the same log, but each must see it from its own
side: its own turns stay ``assistant``, everyone else's become ``user``.
Views are rebuilt from the log on every call and never write back to it.
"""

from dataclasses import replace

from parley.models import FACILITATOR_ID, Message

FACILITATOR_MENTION = "@facilitator"


def is_facilitator_mention(content: str) -> bool:
    """True when a human message is addressed to the facilitator directly."""
    return content.strip().lower().startswith(FACILITATOR_MENTION)


def last_redirect_index(messages: list[Message]) -> int | None:
    """Index of the latest human message not aimed at the facilitator."""
    for index in range(len(messages) - 1, -1, -1):
        msg = messages[index]
        if msg.role == "user" and not msg.bot_id and FACILITATOR_MENTION not in msg.content:
            return index
    return None


def truncate_history(messages: list[Message]) -> list[Message]:
    """Drop bot chatter that predates the human's latest redirection.

    System messages before the redirection are kept as standing context.
    """
    cut = last_redirect_index(messages)
    if cut is None:
        return list(messages)
    primer = [m for m in messages[:cut] if m.role == "system"]
    return primer + list(messages[cut:])


def recent_history(messages: list[Message], limit: int = 10) -> list[Message]:
    return list(messages[-limit:]) if limit > 0 else []


def _seen_as_external(message: Message, viewer: str | None) -> bool:
    if message.role != "assistant" or not message.bot_id:
        return False
    if viewer == FACILITATOR_ID:
        return message.bot_id != FACILITATOR_ID
    if viewer is None:
        return False
    return message.bot_id not in (viewer, FACILITATOR_ID)


def _prepare_one(message: Message, viewer: str | None) -> Message:
    # Bot turns carry their author slot as a name hint, relabeled or not.
    name = message.bot_id if message.bot_id and message.role != "system" else None
    role = "user" if _seen_as_external(message, viewer) else message.role
    if name == message.name and role == message.role:
        return message
    return replace(message, name=name, role=role)


def prepare_messages(messages: list[Message], viewer: str | None = None) -> list[Message]:
    """Build the message list a given viewer submits for generation.

    Args:
        messages: Full chronological log (may be prefixed with an instruction).
        viewer: Bot slot id, FACILITATOR_ID, or None for the human-facing view.

    Returns:
        A new list; the input log is left untouched.
    """
    return [_prepare_one(m, viewer) for m in truncate_history(messages)]
