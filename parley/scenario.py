"""Scenario files: an opening message with optional YAML frontmatter overrides."""

from dataclasses import dataclass
from pathlib import Path

import frontmatter


class ScenarioError(Exception):
    """Raised when a scenario file cannot be used."""


@dataclass
class Scenario:
    topic: str
    source: str
    provider: str | None = None
    model_id: str | None = None
    max_words: int | None = None
    quota: int | None = None


def _optional_int(metadata: dict, key: str) -> int | None:
    if key not in metadata or metadata[key] is None:
        return None
    try:
        return int(metadata[key])
    except (TypeError, ValueError) as exc:
        raise ScenarioError(f"'{key}' must be an integer, got {metadata[key]!r}") from exc


def parse_scenario(file_path: Path) -> Scenario:
    """Parse a markdown scenario file.

    Frontmatter keys (all optional): provider, model, max_words, quota.
    The body is the opening human message.

    Raises:
        ScenarioError: If the body is empty or a numeric key is not a number.
    """
    post = frontmatter.load(str(file_path))
    topic = post.content.strip()
    if not topic:
        raise ScenarioError(f"Scenario has no opening message: {file_path}")
    metadata = dict(post.metadata)
    return Scenario(
        topic=topic,
        source=str(file_path),
        provider=str(metadata["provider"]) if metadata.get("provider") else None,
        model_id=str(metadata["model"]) if metadata.get("model") else None,
        max_words=_optional_int(metadata, "max_words"),
        quota=_optional_int(metadata, "quota"),
    )
