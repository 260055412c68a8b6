"""
Behavioural contract suite every backend must pass.

Subclass :class:`BackendContractSuite` in a test module and provide a
``contract_backend`` fixture returning a fresh backend. Each test checks the
backend's capability flags first and skips when the operation is not
supported, so one suite serves full, read-only and stub backends alike.

Example:
    >>> class TestJsonlContract(BackendContractSuite):
    ...     @pytest.fixture
    ...     def contract_backend(self, tmp_path):
    ...         return JsonlBackend(tmp_path)
"""

import pytest

from beatline.backends.capabilities import has_capability
from beatline.backends.port import BackendPort
from beatline.core.errors import BackendErrorCode, BackendResult
from beatline.core.models import (
    Beat,
    BeatStatus,
    BeatType,
    CreateBeatInput,
    UpdateBeatInput,
)
from beatline.workflows.states import map_workflow_state_to_compat_status

VALID_ERROR_CODES = {code.value for code in BackendErrorCode}

# Capability flag -> a call exercising it with throwaway arguments.
_GATED_CALLS = {
    "can_create": lambda b: b.create(CreateBeatInput(title="gated")),
    "can_update": lambda b: b.update("missing-id", UpdateBeatInput(title="gated")),
    "can_delete": lambda b: b.delete("missing-id"),
    "can_close": lambda b: b.close("missing-id"),
    "can_manage_dependencies": lambda b: b.add_dependency("missing-a", "missing-b"),
}


def sample_input(**overrides) -> CreateBeatInput:
    """The beat the suite creates unless a test needs something else."""
    fields = {
        "title": "Contract test beat",
        "type": BeatType.TASK,
        "priority": 2,
        "labels": ["contract-test"],
    }
    fields.update(overrides)
    return CreateBeatInput(**fields)


def require(backend: BackendPort, *flags: str) -> None:
    """Skip the current test unless every flag is enabled."""
    for flag in flags:
        if not has_capability(backend.capabilities, flag):
            pytest.skip(f"backend lacks {flag}")


def assert_ok(result: BackendResult):
    assert result.ok, f"expected success, got {result.error}"
    return result.data


def assert_error(result: BackendResult, code: BackendErrorCode) -> None:
    assert not result.ok
    assert result.error is not None
    assert result.error.code == code, f"expected {code}, got {result.error}"


def assert_consistent(beat: Beat) -> None:
    assert beat.status == map_workflow_state_to_compat_status(beat.state)


class BackendContractSuite:
    """Shared tests; subclasses supply the ``contract_backend`` fixture."""

    @pytest.fixture
    def contract_backend(self) -> BackendPort:
        raise NotImplementedError("Subclasses must provide contract_backend")

    async def _create(self, backend: BackendPort, **overrides) -> Beat:
        return assert_ok(await backend.create(sample_input(**overrides)))

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @pytest.mark.asyncio
    async def test_list_returns_array(self, contract_backend: BackendPort) -> None:
        """list succeeds with a list even when the store is empty."""
        beats = assert_ok(await contract_backend.list())
        assert isinstance(beats, list)

    @pytest.mark.asyncio
    async def test_listed_beats_have_required_fields(self, contract_backend: BackendPort) -> None:
        require(contract_backend, "can_create")
        await self._create(contract_backend)

        beats = assert_ok(await contract_backend.list())
        assert beats
        for beat in beats:
            assert beat.id
            assert isinstance(beat.title, str)
            assert beat.type in BeatType
            assert 0 <= beat.priority <= 4
            assert beat.status in BeatStatus
            assert isinstance(beat.labels, list)
            assert_consistent(beat)

    @pytest.mark.asyncio
    async def test_get_missing_is_not_found(self, contract_backend: BackendPort) -> None:
        result = await contract_backend.get("definitely-missing-beat")
        assert_error(result, BackendErrorCode.NOT_FOUND)

    @pytest.mark.asyncio
    async def test_list_workflows(self, contract_backend: BackendPort) -> None:
        workflows = assert_ok(await contract_backend.list_workflows())
        assert {"autopilot", "semiauto"} <= {w.id for w in workflows}

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    @pytest.mark.asyncio
    async def test_create_returns_id(self, contract_backend: BackendPort) -> None:
        require(contract_backend, "can_create")
        created = await self._create(contract_backend)
        assert created.id

    @pytest.mark.asyncio
    async def test_create_then_get_roundtrips(self, contract_backend: BackendPort) -> None:
        require(contract_backend, "can_create")
        created = await self._create(contract_backend, type=BeatType.BUG)

        fetched = assert_ok(await contract_backend.get(created.id))
        assert fetched.id == created.id
        assert fetched.title == "Contract test beat"
        assert fetched.type == BeatType.BUG
        assert "contract-test" in fetched.labels
        assert_consistent(fetched)

    @pytest.mark.asyncio
    async def test_update_changes_fields(self, contract_backend: BackendPort) -> None:
        require(contract_backend, "can_create", "can_update")
        created = await self._create(contract_backend)

        assert_ok(
            await contract_backend.update(
                created.id, UpdateBeatInput(title="Updated title", priority=0)
            )
        )
        fetched = assert_ok(await contract_backend.get(created.id))
        assert fetched.title == "Updated title"
        assert fetched.priority == 0
        assert_consistent(fetched)

    @pytest.mark.asyncio
    async def test_update_labels_are_additive_and_removable(
        self, contract_backend: BackendPort
    ) -> None:
        require(contract_backend, "can_create", "can_update", "can_manage_labels")
        created = await self._create(contract_backend)

        assert_ok(
            await contract_backend.update(
                created.id,
                UpdateBeatInput(labels=["extra"], remove_labels=["contract-test"]),
            )
        )
        fetched = assert_ok(await contract_backend.get(created.id))
        assert "extra" in fetched.labels
        assert "contract-test" not in fetched.labels

    @pytest.mark.asyncio
    async def test_update_missing_is_not_found(self, contract_backend: BackendPort) -> None:
        require(contract_backend, "can_update")
        result = await contract_backend.update("definitely-missing-beat", UpdateBeatInput(title="x"))
        assert_error(result, BackendErrorCode.NOT_FOUND)

    @pytest.mark.asyncio
    async def test_close_with_reason(self, contract_backend: BackendPort) -> None:
        require(contract_backend, "can_create", "can_close")
        created = await self._create(contract_backend)

        assert_ok(await contract_backend.close(created.id, "done"))
        fetched = assert_ok(await contract_backend.get(created.id))
        assert fetched.status == BeatStatus.CLOSED
        assert fetched.metadata.get("close_reason") == "done"
        assert_consistent(fetched)

    @pytest.mark.asyncio
    async def test_close_without_reason(self, contract_backend: BackendPort) -> None:
        require(contract_backend, "can_create", "can_close")
        created = await self._create(contract_backend)

        assert_ok(await contract_backend.close(created.id))
        fetched = assert_ok(await contract_backend.get(created.id))
        assert fetched.status == BeatStatus.CLOSED
        assert "close_reason" not in fetched.metadata

    @pytest.mark.asyncio
    async def test_delete_then_get_is_not_found(self, contract_backend: BackendPort) -> None:
        require(contract_backend, "can_create", "can_delete")
        created = await self._create(contract_backend)

        assert_ok(await contract_backend.delete(created.id))
        assert_error(await contract_backend.get(created.id), BackendErrorCode.NOT_FOUND)

    # -------------------------------------------------------------------------
    # Search and query
    # -------------------------------------------------------------------------

    @pytest.mark.asyncio
    async def test_search_finds_text(self, contract_backend: BackendPort) -> None:
        require(contract_backend, "can_create", "can_search")
        match = await self._create(contract_backend, title="Find the needle alpha")
        await self._create(contract_backend, title="Haystack only")

        hits = assert_ok(await contract_backend.search("needle alpha"))
        assert [b.id for b in hits] == [match.id]

    @pytest.mark.asyncio
    async def test_query_by_type(self, contract_backend: BackendPort) -> None:
        require(contract_backend, "can_create", "can_query")
        await self._create(contract_backend, type=BeatType.TASK)
        await self._create(contract_backend, type=BeatType.BUG)

        hits = assert_ok(await contract_backend.query("type:task"))
        assert hits
        assert all(b.type == BeatType.TASK for b in hits)

    @pytest.mark.asyncio
    async def test_query_unknown_field_matches_everything(
        self, contract_backend: BackendPort
    ) -> None:
        require(contract_backend, "can_query")
        if has_capability(contract_backend.capabilities, "can_create"):
            await self._create(contract_backend)
            await self._create(contract_backend, type=BeatType.BUG)

        everything = assert_ok(await contract_backend.list())
        hits = assert_ok(await contract_backend.query("foo:bar"))
        assert {b.id for b in hits} == {b.id for b in everything}

    # -------------------------------------------------------------------------
    # Dependencies
    # -------------------------------------------------------------------------

    @pytest.mark.asyncio
    async def test_dependency_lifecycle(self, contract_backend: BackendPort) -> None:
        require(contract_backend, "can_create", "can_manage_dependencies")
        blocker = await self._create(contract_backend, title="Blocker")
        blocked = await self._create(contract_backend, title="Blocked")

        assert_ok(await contract_backend.add_dependency(blocker.id, blocked.id))

        from_blocked = assert_ok(await contract_backend.list_dependencies(blocked.id))
        assert [(d.id, d.source, d.target) for d in from_blocked] == [
            (blocker.id, blocker.id, blocked.id)
        ]
        from_blocker = assert_ok(await contract_backend.list_dependencies(blocker.id))
        assert [(d.id, d.source, d.target) for d in from_blocker] == [
            (blocked.id, blocker.id, blocked.id)
        ]

        assert_ok(await contract_backend.remove_dependency(blocker.id, blocked.id))
        assert assert_ok(await contract_backend.list_dependencies(blocked.id)) == []

    @pytest.mark.asyncio
    async def test_blocked_beat_is_not_ready(self, contract_backend: BackendPort) -> None:
        require(contract_backend, "can_create", "can_manage_dependencies", "can_list_ready")
        blocker = await self._create(contract_backend, title="Blocker")
        blocked = await self._create(contract_backend, title="Blocked")
        assert_ok(await contract_backend.add_dependency(blocker.id, blocked.id))

        ready_ids = {b.id for b in assert_ok(await contract_backend.list_ready())}
        assert blocker.id in ready_ids
        assert blocked.id not in ready_ids

    # -------------------------------------------------------------------------
    # Error contract
    # -------------------------------------------------------------------------

    @pytest.mark.asyncio
    async def test_error_shape(self, contract_backend: BackendPort) -> None:
        result = await contract_backend.get("definitely-missing-beat")
        assert not result.ok
        assert result.error is not None
        assert result.error.code.value in VALID_ERROR_CODES
        assert isinstance(result.error.message, str)
        assert isinstance(result.error.retryable, bool)

    @pytest.mark.asyncio
    async def test_disabled_capabilities_report_unavailable(
        self, contract_backend: BackendPort
    ) -> None:
        disabled = [
            flag for flag in _GATED_CALLS if not has_capability(contract_backend.capabilities, flag)
        ]
        if not disabled:
            pytest.skip("every gated capability is enabled")
        for flag in disabled:
            result = await _GATED_CALLS[flag](contract_backend)
            assert_error(result, BackendErrorCode.UNAVAILABLE)
