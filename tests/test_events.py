"""
Tests for the event log and the events emitted by registry operations.
"""
import json

import pytest

from agent_registry import (
    AgentIdentityRegistry, AlreadyDeactivatingError, EventLog, EventType, RegistryConfig,
    StakeTooLowError, TransferFailedError,
)
from conftest import COOLDOWN, MIN_STAKE, START_TIME


def test_operations_emit_ordered_events(registry, clock, alice, bob, rotated_signer, alice_identity):
    registry.link_platform(alice.address, "github:alice")
    registry.update_signing_key(alice.address, rotated_signer.address)
    registry.vouch(bob.address, alice_identity, 500_000)
    registry.withdraw_vouch(bob.address, alice_identity)
    registry.deactivate(alice.address)
    registry.reactivate(alice.address)
    registry.deactivate(alice.address)
    clock.advance(COOLDOWN)
    registry.withdraw_stake(alice.address)

    assert [e.event_type for e in registry.events] == [
        EventType.IDENTITY_REGISTERED,
        EventType.PLATFORM_LINKED,
        EventType.SIGNING_KEY_UPDATED,
        EventType.VOUCHED,
        EventType.VOUCH_WITHDRAWN,
        EventType.IDENTITY_DEACTIVATED,
        EventType.IDENTITY_REACTIVATED,
        EventType.IDENTITY_DEACTIVATED,
        EventType.STAKE_WITHDRAWN,
    ]
    assert [e.sequence for e in registry.events] == list(range(1, 10))
    assert all(e.identity_key == alice_identity for e in registry.events)


def test_registered_event_payload(registry, alice, signer, alice_identity):
    event = registry.events.last

    assert event.event_type == EventType.IDENTITY_REGISTERED
    assert event.timestamp == START_TIME
    assert event.data["owner"] == alice.address
    assert event.data["name"] == "alice"
    assert event.data["stakedAmount"] == MIN_STAKE


def test_vouch_event_payload(registry, bob, alice_identity):
    registry.vouch(bob.address, alice_identity, 500_000)
    event = registry.events.last

    assert event.data == {"voucher": bob.address, "amount": 500_000}


def test_rejected_operation_emits_nothing(registry, alice, bob, signer, alice_identity):
    before = len(registry.events)

    with pytest.raises(StakeTooLowError):
        registry.register(bob.address, "bob", "", signer.address, 1)
    registry.deactivate(alice.address)
    with pytest.raises(AlreadyDeactivatingError):
        registry.deactivate(alice.address)

    assert len(registry.events) == before + 1


def test_failed_transfer_truncates_events(registry, token, bob, alice_identity):
    token.approve(bob.address, 0)
    before = len(registry.events)

    with pytest.raises(TransferFailedError):
        registry.vouch(bob.address, alice_identity, 500_000)

    assert len(registry.events) == before


def test_queries(registry, alice, bob, carol, signer, alice_identity):
    bob_identity = registry.register(bob.address, "bob", "", signer.address, MIN_STAKE)
    registry.vouch(carol.address, bob_identity, 10)

    assert [e.sequence for e in registry.events.for_identity(bob_identity)] == [2, 3]
    assert len(registry.events.of_type(EventType.IDENTITY_REGISTERED)) == 2
    assert [e.sequence for e in registry.events.since(1)] == [2, 3]
    assert registry.events.since(3) == []


class TestEventLog:

    def test_empty_log(self):
        log = EventLog()
        assert len(log) == 0
        assert log.last is None
        assert log.as_dicts() == []

    def test_sequence_numbers_are_gapless(self):
        log = EventLog()
        first = log.append(EventType.MIN_STAKE_UPDATED, None, 1, oldValue=1, newValue=2)
        second = log.append(EventType.MIN_STAKE_UPDATED, None, 2, oldValue=2, newValue=3)

        assert (first.sequence, second.sequence) == (1, 2)

    def test_truncate(self):
        log = EventLog()
        for i in range(5):
            log.append(EventType.PLATFORM_LINKED, "0x" + "11" * 32, i, platform=f"p{i}")

        log.truncate(2)
        assert len(log) == 2
        assert log.append(EventType.PLATFORM_LINKED, None, 9).sequence == 3

        log.truncate(10)
        assert len(log) == 3

    def test_as_dicts_uses_wire_names(self):
        log = EventLog()
        log.append(EventType.VOUCHED, "0x" + "11" * 32, 5, voucher="0xabc", amount=1)

        entry = log.as_dicts()[0]
        assert entry["eventType"] == "Vouched"
        assert entry["identityKey"] == "0x" + "11" * 32
        assert entry["data"] == {"voucher": "0xabc", "amount": 1}

    def test_file_log_survives_restart(self, tmp_path):
        path = tmp_path / "events" / "events.jsonl"
        log = EventLog(path)
        log.append(EventType.PLATFORM_LINKED, "0x" + "11" * 32, 1, platform="github:a")
        log.append(EventType.PLATFORM_LINKED, "0x" + "11" * 32, 2, platform="github:b")

        reloaded = EventLog(path)
        assert len(reloaded) == 2
        assert reloaded.last.data["platform"] == "github:b"
        assert reloaded.append(EventType.IDENTITY_DEACTIVATED, "0x" + "11" * 32, 3).sequence == 3

        lines = path.read_text().splitlines()
        assert len(lines) == 3
        assert json.loads(lines[0])["eventType"] == "PlatformLinked"

    def test_file_truncate_rewrites(self, tmp_path):
        path = tmp_path / "events.jsonl"
        log = EventLog(path)
        for i in range(3):
            log.append(EventType.PLATFORM_LINKED, None, i)

        log.truncate(1)

        assert len(path.read_text().splitlines()) == 1
        assert len(EventLog(path)) == 1

    def test_shared_file_keeps_one_sequence(self, tmp_path):
        path = tmp_path / "events.jsonl"
        first = EventLog(path)
        second = EventLog(path)

        assert first.append(EventType.PLATFORM_LINKED, None, 1, platform="a").sequence == 1
        assert second.append(EventType.PLATFORM_LINKED, None, 2, platform="b").sequence == 2
        assert first.append(EventType.PLATFORM_LINKED, None, 3, platform="c").sequence == 3
        assert [json.loads(line)["sequence"] for line in path.read_text().splitlines()] == [1, 2, 3]

    def test_stale_log_truncate_keeps_other_writers(self, tmp_path):
        path = tmp_path / "events.jsonl"
        first = EventLog(path)
        second = EventLog(path)
        first.append(EventType.PLATFORM_LINKED, None, 1, platform="a")
        second.append(EventType.PLATFORM_LINKED, None, 2, platform="b")

        first.truncate(2)
        assert len(path.read_text().splitlines()) == 2

        second.truncate(1)
        first.reload()
        assert [e.data["platform"] for e in first] == ["a"]

    def test_registry_with_file_log(self, tmp_path, token, clock, alice, signer):
        config = RegistryConfig(min_stake=MIN_STAKE, event_log_path=tmp_path / "events.jsonl")
        registry = AgentIdentityRegistry.from_config(config, token, clock=clock)
        identity_key = registry.register(alice.address, "alice", "", signer.address, MIN_STAKE)

        reloaded = EventLog(tmp_path / "events.jsonl")
        assert reloaded.last.identity_key == identity_key
