"""Tests for the two-phase confirmation gate."""

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from hatchery.confirmation import (
    ConfirmationStore,
    compute_command_hash,
    format_follow_up,
    generate_token,
    require_confirmation,
)
from hatchery.errors import (
    AuthorizationRequiredError,
    ConfirmationExpiredError,
    ConfirmationMismatchError,
    ConfirmationNotFoundError,
    ConfirmationTooYoungError,
    StoreCorruptError,
)

ARGS = {"project": "demo"}


class Clock:
    def __init__(self) -> None:
        self.current = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def store(tmp_path: Path, clock: Clock) -> ConfirmationStore:
    return ConfirmationStore(tmp_path / "pending.json", now=clock)


class TestHashing:
    def test_hash_is_key_order_independent(self) -> None:
        a = compute_command_hash("clean", {"feature": "x", "project": "p"})
        b = compute_command_hash("clean", {"project": "p", "feature": "x"})
        assert a == b
        assert len(a) == 16

    def test_hash_changes_with_arguments(self) -> None:
        assert compute_command_hash("destroy", {"project": "a"}) != compute_command_hash(
            "destroy", {"project": "b"}
        )

    def test_token_is_eight_hex(self) -> None:
        token = generate_token()
        assert len(token) == 8
        int(token, 16)


class TestFollowUp:
    def test_positional_and_flags(self) -> None:
        line = format_follow_up(
            "clean",
            {"feature": "login", "project": "demo", "forget": "true"},
            "abcd1234",
            positional=("feature",),
            flags=("forget",),
        )
        assert line == "hatchery clean login --project demo --forget --confirm abcd1234"

    def test_values_are_shell_quoted(self) -> None:
        line = format_follow_up(
            "harden",
            {"branch": "main", "path": "/home/me/my project; rm -rf ~"},
            "abcd1234",
        )
        assert line == (
            "hatchery harden --branch main --path '/home/me/my project; rm -rf ~' --confirm abcd1234"
        )


class TestConfirmationLifecycle:
    async def test_too_young_then_accepted_once(self, store: ConfirmationStore, clock: Clock) -> None:
        entry = await store.issue("destroy", ARGS, "Destroy demo")

        clock.advance(5)
        with pytest.raises(ConfirmationTooYoungError):
            await store.consume("destroy", ARGS, entry.token)

        clock.advance(10)
        consumed = await store.consume("destroy", ARGS, entry.token)
        assert consumed.summary == "Destroy demo"

        with pytest.raises(ConfirmationNotFoundError):
            await store.consume("destroy", ARGS, entry.token)

    async def test_expired_after_ttl(self, store: ConfirmationStore, clock: Clock) -> None:
        entry = await store.issue("destroy", ARGS, "Destroy demo")
        clock.advance(301)
        with pytest.raises(ConfirmationExpiredError):
            await store.consume("destroy", ARGS, entry.token)

    async def test_wrong_token_is_mismatch(self, store: ConfirmationStore, clock: Clock) -> None:
        await store.issue("destroy", ARGS, "Destroy demo")
        clock.advance(15)
        with pytest.raises(ConfirmationMismatchError):
            await store.consume("destroy", ARGS, "00000000")

    async def test_token_bound_to_arguments(self, store: ConfirmationStore, clock: Clock) -> None:
        entry = await store.issue("destroy", ARGS, "Destroy demo")
        clock.advance(15)
        with pytest.raises(ConfirmationNotFoundError):
            await store.consume("destroy", {"project": "other"}, entry.token)

    async def test_reissue_replaces_pending_entry(self, store: ConfirmationStore, clock: Clock) -> None:
        first = await store.issue("destroy", ARGS, "Destroy demo")
        second = await store.issue("destroy", ARGS, "Destroy demo")
        clock.advance(15)
        if first.token != second.token:
            with pytest.raises(ConfirmationMismatchError):
                await store.consume("destroy", ARGS, first.token)
        await store.consume("destroy", ARGS, second.token)

    async def test_expired_entries_are_pruned_on_load(
        self, store: ConfirmationStore, clock: Clock, tmp_path: Path
    ) -> None:
        await store.issue("destroy", ARGS, "Destroy demo")
        clock.advance(400)
        await store.issue("clean", {"feature": "x", "project": "demo"}, "Clean x")

        document = json.loads((tmp_path / "pending.json").read_text())
        assert document["version"] == 1
        assert len(document["confirmations"]) == 1

    async def test_corrupt_file_is_not_repaired(self, store: ConfirmationStore, tmp_path: Path) -> None:
        (tmp_path / "pending.json").write_text("{not json")
        with pytest.raises(StoreCorruptError):
            await store.issue("destroy", ARGS, "Destroy demo")
        assert (tmp_path / "pending.json").read_text() == "{not json"


class TestRequireConfirmation:
    async def test_no_mode_is_refused(self, store: ConfirmationStore) -> None:
        with pytest.raises(AuthorizationRequiredError):
            await require_confirmation("destroy", ARGS, "Destroy demo", store=store)

    async def test_force_requires_interactive_terminal(self, store: ConfirmationStore) -> None:
        with pytest.raises(AuthorizationRequiredError):
            await require_confirmation(
                "destroy", ARGS, "Destroy demo", store=store, force=True, is_interactive=lambda: False
            )

    async def test_force_on_terminal_proceeds(self, store: ConfirmationStore) -> None:
        result = await require_confirmation(
            "destroy", ARGS, "Destroy demo", store=store, force=True, is_interactive=lambda: True
        )
        assert result.proceed

    async def test_dry_run_then_confirm(self, store: ConfirmationStore, clock: Clock) -> None:
        shown: list[str] = []
        dry = await require_confirmation(
            "destroy",
            ARGS,
            "Destroy demo",
            store=store,
            dry_run=True,
            prompt="original prompt",
            details=lambda: shown.append("details"),
            positional=("project",),
        )
        assert not dry.proceed
        assert shown == ["details"]
        assert dry.follow_up == f"hatchery destroy demo --confirm {dry.token}"

        clock.advance(11)
        confirmed = await require_confirmation(
            "destroy", ARGS, "Destroy demo", store=store, confirm_token=dry.token
        )
        assert confirmed.proceed
        assert confirmed.stored_prompt == "original prompt"
