"""Bot bank: saved participant templates and Bot <-> BotTemplate packing."""

import logging
import uuid
from dataclasses import replace

from parley.models import Bot, BotBank, BotTemplate

logger = logging.getLogger(__name__)


def new_uid() -> str:
    return uuid.uuid4().hex[:12]


def to_template(bot: Bot, uid: str | None = None) -> BotTemplate:
    """Project a seated bot onto a template. Slot id and activity are dropped."""
    return BotTemplate(
        uid=uid or bot.uid or new_uid(),
        name=bot.name,
        system_prompt=bot.system_prompt,
        temperature=bot.temperature,
        description=bot.description,
    )


def from_template(template: BotTemplate, slot_id: str) -> Bot:
    """Seat a template in a bot slot, keeping a reference back to it."""
    return Bot(
        id=slot_id,
        uid=template.uid,
        name=template.name,
        system_prompt=template.system_prompt,
        temperature=template.temperature,
        description=template.description,
        is_active=False,
    )


def find_template(bank: BotBank, uid: str | None) -> BotTemplate | None:
    if not uid:
        return None
    return next((t for t in bank.templates if t.uid == uid), None)


def save_to_bank(bank: BotBank, bot: Bot) -> Bot:
    """Store a bot's configuration in the bank.

    A bot whose uid is already in the bank updates that template in place;
    any other bot becomes a new template (reusing its uid if it has one).

    Returns:
        The bot, carrying the uid of the template it now points at.
    """
    existing = find_template(bank, bot.uid)
    if existing is not None:
        template = to_template(bot, uid=existing.uid)
        bank.templates = [template if t.uid == existing.uid else t for t in bank.templates]
        logger.debug("Updated template %s (%s)", template.uid, template.name)
        return bot

    template = to_template(bot)
    bank.templates.append(template)
    logger.debug("Saved new template %s (%s)", template.uid, template.name)
    if bot.uid == template.uid:
        return bot
    return replace(bot, uid=template.uid)


def delete_from_bank(bank: BotBank, uid: str) -> bool:
    before = len(bank.templates)
    bank.templates = [t for t in bank.templates if t.uid != uid]
    return len(bank.templates) < before


def clear_bank(bank: BotBank) -> None:
    bank.templates = []
