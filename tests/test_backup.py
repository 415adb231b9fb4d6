"""Tests for parley/backup.py."""

import json
from datetime import date

import pytest

from parley.backup import BackupError, dump_backup, load_backup, parse_backup, save_backup
from parley.models import BotBank, MessageMetadata, new_message


@pytest.fixture
def populated(store):
    store.append(new_message("user", "Topic"))
    store.append(
        new_message(
            "assistant",
            "Point",
            name="Axiom",
            bot_id="bot1",
            metadata=MessageMetadata(tokens=12, response_time_ms=800, temperature=0.3, facilitator_decision="end"),
        )
    )
    store.add_quota(-4)
    return store


def test_dump_uses_wire_field_names(populated):
    doc = dump_backup(populated.state, populated.bank)
    assert set(doc) == {
        "messages", "bots", "sharedSettings", "remainingQuota", "conversationEnded", "botBank",
    }
    reply = doc["messages"][1]
    assert reply["botId"] == "bot1"
    assert reply["metadata"] == {
        "tokens": 12, "responseTime": 800, "temperature": 0.3, "facilitatorDecision": "end",
    }
    assert doc["bots"][0]["modelConfig"] == {"temperature": 0.3}
    assert doc["sharedSettings"]["modelId"] == "mock-model"
    assert doc["remainingQuota"] == 6


def test_save_names_file_by_date(populated, tmp_path):
    path = save_backup(populated.state, populated.bank, tmp_path / "backups", today=date(2026, 10, 19))
    assert path.name == "debate-backup-2026-10-19.json"
    assert json.loads(path.read_text(encoding="utf-8"))["remainingQuota"] == 6


def test_save_then_load_restores_conversation(populated, tmp_path):
    path = save_backup(populated.state, populated.bank, tmp_path)
    state, bank = load_backup(path)

    assert [m.id for m in state.messages] == [m.id for m in populated.state.messages]
    assert state.messages[1].metadata.facilitator_decision == "end"
    assert state.remaining_quota == 6
    assert [b.uid for b in state.bots] == ["axiom-1", "eris-1"]
    assert [t.uid for t in bank.templates] == ["axiom-1", "eris-1"]


def test_dangling_template_reference_is_dropped(populated):
    doc = dump_backup(populated.state, BotBank())
    state, bank = parse_backup(doc)
    assert bank.templates == []
    assert all(b.uid is None for b in state.bots)


def test_missing_quota_falls_back_to_initial(populated):
    doc = dump_backup(populated.state, populated.bank)
    del doc["remainingQuota"]
    state, _ = parse_backup(doc, initial_quota=10)
    assert state.remaining_quota == 10


def test_zero_quota_stays_zero(populated):
    doc = dump_backup(populated.state, populated.bank)
    doc["remainingQuota"] = 0
    state, _ = parse_backup(doc)
    assert state.remaining_quota == 0


def test_quota_is_clamped_on_restore(populated):
    doc = dump_backup(populated.state, populated.bank)
    doc["remainingQuota"] = 400
    state, _ = parse_backup(doc)
    assert state.remaining_quota == 100


@pytest.mark.parametrize("raw", [None, [], {"bots": []}, {"bots": [{"id": "bot1"}]}])
def test_invalid_shapes_rejected(raw):
    with pytest.raises(BackupError):
        parse_backup(raw)


def test_unknown_role_rejected(populated):
    doc = dump_backup(populated.state, populated.bank)
    doc["messages"][0]["role"] = "wizard"
    with pytest.raises(BackupError, match="role"):
        parse_backup(doc)


def test_wrong_bot_count_rejected(populated):
    doc = dump_backup(populated.state, populated.bank)
    doc["bots"] = doc["bots"][:1]
    with pytest.raises(BackupError, match="exactly 2 bots"):
        parse_backup(doc)


def test_missing_field_wrapped(populated):
    doc = dump_backup(populated.state, populated.bank)
    del doc["bots"][0]["name"]
    with pytest.raises(BackupError):
        parse_backup(doc)


def test_load_rejects_non_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(BackupError, match="Cannot read backup"):
        load_backup(path)


def test_restored_bots_are_inactive(populated):
    doc = dump_backup(populated.state, populated.bank)
    for bot in doc["bots"]:
        bot["isActive"] = True
    state, _ = parse_backup(doc)
    assert not any(b.is_active for b in state.bots)
