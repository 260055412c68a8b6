"""Unit tests for the JSONL backend."""

import json
from pathlib import Path

import pytest

from beatline.backends.jsonl import JsonlBackend, generate_beat_id, reset_cache
from beatline.backends.records import issues_path
from beatline.core.errors import BackendErrorCode
from beatline.core.models import (
    BeatListFilters,
    BeatStatus,
    CreateBeatInput,
    DependencyListOptions,
    PollPromptOptions,
    TakePromptOptions,
    UpdateBeatInput,
)


def _read_lines(repo: Path) -> list[dict]:
    text = issues_path(repo).read_text(encoding="utf-8")
    return [json.loads(line) for line in text.splitlines() if line.strip()]


class TestIds:
    def test_generated_id_shape(self) -> None:
        beat_id = generate_beat_id()
        prefix, stamp, suffix = beat_id.split("-")
        assert prefix == "beads"
        assert stamp.isalnum()
        assert len(suffix) == 4


class TestCreateAndRead:
    """Tests for create, get and list."""

    @pytest.mark.asyncio
    async def test_create_defaults(self, jsonl_backend: JsonlBackend) -> None:
        result = await jsonl_backend.create(CreateBeatInput(title="Write docs"))

        assert result.ok
        beat = result.data
        assert beat.profile_id == "autopilot"
        assert beat.state == "ready_for_planning"
        assert beat.status == BeatStatus.OPEN
        assert beat.is_agent_claimable is True
        assert "wf:state:ready_for_planning" in beat.labels
        assert "wf:profile:autopilot" in beat.labels

    @pytest.mark.asyncio
    async def test_create_with_profile(self, jsonl_backend: JsonlBackend) -> None:
        beat = (
            await jsonl_backend.create(
                CreateBeatInput(title="Skip planning", profile_id="semiauto_no_planning")
            )
        ).data
        assert beat.state == "ready_for_implementation"

    @pytest.mark.asyncio
    async def test_create_unknown_profile(self, jsonl_backend: JsonlBackend) -> None:
        result = await jsonl_backend.create(
            CreateBeatInput(title="x", profile_id="nonexistent-profile")
        )
        assert not result.ok
        assert result.error.code == BackendErrorCode.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_returned_beats_are_copies(self, jsonl_backend: JsonlBackend) -> None:
        created = (await jsonl_backend.create(CreateBeatInput(title="Original"))).data
        created.title = "mutated"

        fetched = (await jsonl_backend.get(created.id)).data
        assert fetched.title == "Original"

    @pytest.mark.asyncio
    async def test_list_filters(self, jsonl_backend: JsonlBackend) -> None:
        await jsonl_backend.create(CreateBeatInput(title="a", labels=["ui"]))
        await jsonl_backend.create(CreateBeatInput(title="b"))

        hits = (await jsonl_backend.list(BeatListFilters(label="ui"))).data
        assert [b.title for b in hits] == ["a"]

    @pytest.mark.asyncio
    async def test_get_missing(self, jsonl_backend: JsonlBackend) -> None:
        result = await jsonl_backend.get("nope")
        assert result.error.code == BackendErrorCode.NOT_FOUND
        assert result.error.message == "Beat nope not found"


class TestUpdate:
    """Tests for update and close."""

    @pytest.mark.asyncio
    async def test_profile_update(self, jsonl_backend: JsonlBackend) -> None:
        created = (await jsonl_backend.create(CreateBeatInput(title="x"))).data

        updated = (
            await jsonl_backend.update(created.id, UpdateBeatInput(profile_id="semiauto"))
        ).data

        assert updated.profile_id == "semiauto"
        assert "wf:profile:semiauto" in updated.labels
        assert "wf:profile:autopilot" not in updated.labels

    @pytest.mark.asyncio
    async def test_state_update(self, jsonl_backend: JsonlBackend) -> None:
        created = (await jsonl_backend.create(CreateBeatInput(title="x"))).data

        updated = (await jsonl_backend.update(created.id, UpdateBeatInput(state="shipped"))).data

        assert updated.state == "shipped"
        assert updated.status == BeatStatus.CLOSED
        assert updated.closed is not None

    @pytest.mark.asyncio
    async def test_update_unknown_profile(self, jsonl_backend: JsonlBackend) -> None:
        created = (await jsonl_backend.create(CreateBeatInput(title="x"))).data

        result = await jsonl_backend.update(
            created.id, UpdateBeatInput(profile_id="nonexistent-profile")
        )

        assert result.error.code == BackendErrorCode.INVALID_INPUT
        assert (await jsonl_backend.get(created.id)).data.profile_id == "autopilot"

    @pytest.mark.asyncio
    async def test_close_reason_survives_reload(
        self, repo_path: Path, jsonl_backend: JsonlBackend
    ) -> None:
        created = (await jsonl_backend.create(CreateBeatInput(title="x"))).data
        await jsonl_backend.close(created.id, "done")

        reset_cache(repo_path)
        fetched = (await JsonlBackend(repo_path).get(created.id)).data

        assert fetched.status == BeatStatus.CLOSED
        assert fetched.state == "shipped"
        assert fetched.metadata["close_reason"] == "done"

    @pytest.mark.asyncio
    async def test_disk_status_matches_state(
        self, repo_path: Path, jsonl_backend: JsonlBackend
    ) -> None:
        created = (await jsonl_backend.create(CreateBeatInput(title="x"))).data
        await jsonl_backend.update(created.id, UpdateBeatInput(state="implementation"))

        [record] = _read_lines(repo_path)
        assert record["status"] == "in_progress"
        assert "wf:state:implementation" in record["labels"]


class TestDependencies:
    """Tests for dependency management."""

    @pytest.mark.asyncio
    async def test_dependencies_persist(self, repo_path: Path, jsonl_backend: JsonlBackend) -> None:
        blocker = (await jsonl_backend.create(CreateBeatInput(title="Blocker"))).data
        blocked = (await jsonl_backend.create(CreateBeatInput(title="Blocked"))).data
        assert (await jsonl_backend.add_dependency(blocker.id, blocked.id)).ok

        reset_cache(repo_path)
        backend = JsonlBackend(repo_path)

        deps = (await backend.list_dependencies(blocked.id)).data
        assert [(d.source, d.target) for d in deps] == [(blocker.id, blocked.id)]
        ready = {b.id for b in (await backend.list_ready()).data}
        assert ready == {blocker.id}

    @pytest.mark.asyncio
    async def test_closing_blocker_unblocks(self, jsonl_backend: JsonlBackend) -> None:
        blocker = (await jsonl_backend.create(CreateBeatInput(title="Blocker"))).data
        blocked = (await jsonl_backend.create(CreateBeatInput(title="Blocked"))).data
        await jsonl_backend.add_dependency(blocker.id, blocked.id)

        await jsonl_backend.close(blocker.id)

        ready = {b.id for b in (await jsonl_backend.list_ready()).data}
        assert ready == {blocked.id}

    @pytest.mark.asyncio
    async def test_dependency_errors(self, jsonl_backend: JsonlBackend) -> None:
        a = (await jsonl_backend.create(CreateBeatInput(title="a"))).data
        b = (await jsonl_backend.create(CreateBeatInput(title="b"))).data

        assert (await jsonl_backend.add_dependency(a.id, a.id)).error.code == (
            BackendErrorCode.INVALID_INPUT
        )
        assert (await jsonl_backend.add_dependency(a.id, "ghost")).error.code == (
            BackendErrorCode.NOT_FOUND
        )
        assert (await jsonl_backend.add_dependency(a.id, b.id)).ok
        assert (await jsonl_backend.add_dependency(a.id, b.id)).error.code == (
            BackendErrorCode.ALREADY_EXISTS
        )
        assert (await jsonl_backend.remove_dependency(b.id, a.id)).error.code == (
            BackendErrorCode.NOT_FOUND
        )

    @pytest.mark.asyncio
    async def test_type_filter(self, jsonl_backend: JsonlBackend) -> None:
        a = (await jsonl_backend.create(CreateBeatInput(title="a"))).data
        b = (await jsonl_backend.create(CreateBeatInput(title="b"))).data
        await jsonl_backend.add_dependency(a.id, b.id)

        other = await jsonl_backend.list_dependencies(b.id, DependencyListOptions(type="parent-child"))
        assert other.data == []

    @pytest.mark.asyncio
    async def test_delete_drops_edges(self, jsonl_backend: JsonlBackend) -> None:
        a = (await jsonl_backend.create(CreateBeatInput(title="a"))).data
        b = (await jsonl_backend.create(CreateBeatInput(title="b"))).data
        await jsonl_backend.add_dependency(a.id, b.id)

        await jsonl_backend.delete(a.id)

        assert (await jsonl_backend.list_dependencies(b.id)).data == []


class TestPersistence:
    @pytest.mark.asyncio
    async def test_malformed_lines_are_tolerated(self, repo_path: Path) -> None:
        issues_path(repo_path).write_text(
            '{"id": "bd-1", "title": "Good", "status": "open"}\n'
            "{broken\n"
            '{"id": "bd-2", "title": "Also good", "status": "in_progress"}\n',
            encoding="utf-8",
        )

        beats = (await JsonlBackend(repo_path).list()).data

        assert [b.id for b in beats] == ["bd-1", "bd-2"]
        assert beats[1].status == BeatStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_unusable_records_are_skipped(self, repo_path: Path) -> None:
        issues_path(repo_path).write_text(
            '{"id": "bd-1", "title": "Good", "labels": [7, "ui"]}\n'
            '{"id": "bd-2", "title": "Bad", "description": 7}\n'
            '{"id": "bd-3", "title": "Bad deps", "dependencies": 5}\n',
            encoding="utf-8",
        )
        backend = JsonlBackend(repo_path)

        listed = await backend.list()
        assert listed.ok
        assert [b.id for b in listed.data] == ["bd-1", "bd-3"]
        assert "ui" in listed.data[0].labels

        missing = await backend.get("bd-2")
        assert missing.error.code == BackendErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_failed_write_leaves_no_trace(
        self, repo_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        backend = JsonlBackend(repo_path)
        kept = (await backend.create(CreateBeatInput(title="Kept"))).data

        def fail_write(path, records) -> None:
            raise OSError("No space left on device")

        with monkeypatch.context() as patched:
            patched.setattr("beatline.backends.jsonl.write_records", fail_write)
            created = await backend.create(CreateBeatInput(title="Lost"))
            renamed = await backend.update(kept.id, UpdateBeatInput(title="Renamed"))

        assert created.error.code == BackendErrorCode.INTERNAL
        assert renamed.error.code == BackendErrorCode.INTERNAL

        beats = (await backend.list()).data
        assert [b.id for b in beats] == [kept.id]
        assert beats[0].title == "Kept"

    @pytest.mark.asyncio
    async def test_missing_file_lists_empty(self, repo_path: Path) -> None:
        assert (await JsonlBackend(repo_path).list()).data == []


class TestPrompts:
    @pytest.mark.asyncio
    async def test_take_prompt_fills_children(self, repo_path: Path) -> None:
        issues_path(repo_path).write_text(
            '{"id": "bd-3", "title": "Parent"}\n'
            '{"id": "bd-3.1", "title": "Child"}\n'
            '{"id": "bd-3.2", "title": "Done child", "status": "closed"}\n',
            encoding="utf-8",
        )
        backend = JsonlBackend(repo_path)

        result = await backend.build_take_prompt("bd-3", TakePromptOptions(is_parent=True))

        assert result.ok
        assert result.data.prompt.endswith("Open child beat IDs:\n- bd-3.1")

    @pytest.mark.asyncio
    async def test_take_prompt_missing_beat(self, jsonl_backend: JsonlBackend) -> None:
        result = await jsonl_backend.build_take_prompt("nope")
        assert result.error.code == BackendErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_poll_prompt(self, jsonl_backend: JsonlBackend) -> None:
        assert (await jsonl_backend.build_poll_prompt()).error.code == BackendErrorCode.UNAVAILABLE

        created = (await jsonl_backend.create(CreateBeatInput(title="Pick me", priority=0))).data
        result = await jsonl_backend.build_poll_prompt(PollPromptOptions(agent_name="w1"))

        assert result.data.claimed_id == created.id
        assert result.data.prompt.startswith("Agent: w1\n")
