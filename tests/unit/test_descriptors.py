"""Unit tests for the workflow descriptor registry."""

import pytest

from beatline.core.models import OwnerKind, WorkflowMode
from beatline.workflows.descriptors import (
    ACTION_STATES,
    DEFAULT_PROFILE_ID,
    WorkflowDescriptor,
    build_external_descriptor,
    builtin_profile_descriptor,
    builtin_workflow_descriptors,
    default_workflow_descriptor,
    infer_final_cut_state,
    infer_retake_state,
    infer_workflow_mode,
    is_supported_profile_id,
    normalize_profile_id,
    workflow_descriptor_by_id,
)

PROFILE_IDS = [
    "autopilot",
    "autopilot_with_pr",
    "semiauto",
    "autopilot_no_planning",
    "autopilot_with_pr_no_planning",
    "semiauto_no_planning",
]


class TestBuiltinProfiles:
    """Tests for the built-in profile catalog."""

    def test_catalog_order(self) -> None:
        assert [w.id for w in builtin_workflow_descriptors()] == PROFILE_IDS

    @pytest.mark.parametrize("profile_id", PROFILE_IDS)
    def test_structural_invariants(self, profile_id: str) -> None:
        """Initial and terminal states belong to the profile; queue/action pairs match."""
        wf = builtin_profile_descriptor(profile_id)

        assert wf.initial_state in wf.states
        assert set(wf.terminal_states) <= set(wf.states)
        assert wf.retake_state in wf.states
        for action in ACTION_STATES:
            assert (f"ready_for_{action}" in wf.states) == (action in wf.states)
        for transition in wf.transitions:
            assert transition.from_state == "*" or transition.from_state in wf.states
            assert transition.to_state in wf.states

    def test_autopilot_shape(self) -> None:
        wf = builtin_profile_descriptor("autopilot")

        assert wf.initial_state == "ready_for_planning"
        assert wf.terminal_states == ["shipped", "abandoned"]
        assert wf.action_states == list(ACTION_STATES)
        assert wf.retake_state == "ready_for_implementation"
        assert wf.final_cut_state is None
        assert wf.mode == WorkflowMode.GRANULAR_AUTONOMOUS
        assert wf.human_queue_states == []
        assert wf.label == "Workflow (autopilot)"
        assert wf.prompt_profile_id == "autopilot"
        assert wf.review_queue_states == [
            "ready_for_plan_review",
            "ready_for_implementation_review",
            "ready_for_shipment_review",
        ]

    def test_semiauto_is_human_gated(self) -> None:
        wf = builtin_profile_descriptor("semiauto")

        assert wf.mode == WorkflowMode.COARSE_HUMAN_GATED
        assert wf.owners.plan_review == OwnerKind.HUMAN
        assert wf.owners.implementation_review == OwnerKind.HUMAN
        assert wf.owners.shipment_review == OwnerKind.AGENT
        assert wf.human_queue_states == [
            "ready_for_plan_review",
            "ready_for_implementation_review",
        ]
        assert wf.final_cut_state == "ready_for_plan_review"

    def test_no_planning_profiles_skip_planning(self) -> None:
        wf = builtin_profile_descriptor("semiauto_no_planning")

        assert wf.initial_state == "ready_for_implementation"
        assert "planning" not in wf.states
        assert "ready_for_plan_review" not in wf.states
        assert wf.action_states[0] == "implementation"
        assert wf.final_cut_state == "ready_for_implementation_review"
        assert wf.planning_mode == "skipped"

    def test_pr_output(self) -> None:
        assert builtin_profile_descriptor("autopilot_with_pr").output == "pr"
        assert builtin_profile_descriptor("autopilot").output == "remote_main"

    def test_transitions(self) -> None:
        wf = builtin_profile_descriptor("autopilot")

        assert wf.can_transition("ready_for_planning", "planning")
        assert wf.can_transition("shipment_review", "shipped")
        assert wf.can_transition("implementation", "deferred")
        assert not wf.can_transition("ready_for_planning", "shipped")

        no_planning = builtin_profile_descriptor("autopilot_no_planning")
        assert not no_planning.can_transition("ready_for_planning", "planning")


class TestProfileLookup:
    """Tests for alias resolution and fallback."""

    @pytest.mark.parametrize(
        ("alias", "expected"),
        [
            ("beads-coarse", "autopilot"),
            ("knots-granular", "autopilot"),
            ("knots-granular-autonomous", "autopilot"),
            ("beads-coarse-human-gated", "semiauto"),
            ("knots-coarse", "semiauto"),
            ("knots-coarse-human-gated", "semiauto"),
            ("  SemiAuto ", "semiauto"),
        ],
    )
    def test_aliases(self, alias: str, expected: str) -> None:
        assert normalize_profile_id(alias) == expected
        assert builtin_profile_descriptor(alias).id == expected

    def test_blank_profile_id(self) -> None:
        assert normalize_profile_id("   ") is None
        assert normalize_profile_id(None) is None

    def test_unknown_falls_back_to_default(self) -> None:
        assert builtin_profile_descriptor("no-such-profile").id == DEFAULT_PROFILE_ID
        assert builtin_profile_descriptor(None).id == DEFAULT_PROFILE_ID
        assert default_workflow_descriptor().id == DEFAULT_PROFILE_ID

    def test_is_supported_profile_id(self) -> None:
        assert is_supported_profile_id("autopilot_with_pr")
        assert is_supported_profile_id("knots-coarse")
        assert not is_supported_profile_id("nonexistent-profile")
        assert not is_supported_profile_id("")

    def test_returns_independent_copies(self) -> None:
        first = builtin_profile_descriptor("autopilot")
        first.states.append("mutated")
        first.label = "changed"

        second = builtin_profile_descriptor("autopilot")
        assert "mutated" not in second.states
        assert second.label == "Workflow (autopilot)"

    def test_descriptor_index(self) -> None:
        index = workflow_descriptor_by_id(builtin_workflow_descriptors())

        assert index["autopilot"].id == "autopilot"
        assert index["beads-coarse"].id == "autopilot"
        assert index["knots-granular-autonomous"].id == "autopilot"
        assert index["knots-coarse-human-gated"].id == "semiauto"
        assert index["semiauto_no_planning"].id == "semiauto_no_planning"

    def test_index_skips_aliases_without_target(self) -> None:
        index = workflow_descriptor_by_id([builtin_profile_descriptor("semiauto")])
        assert "beads-coarse" not in index
        assert index["knots-coarse"].id == "semiauto"


class TestInference:
    """Tests for inference helpers used with external workflows."""

    def test_infer_mode(self) -> None:
        assert infer_workflow_mode("knots-coarse") == WorkflowMode.COARSE_HUMAN_GATED
        assert infer_workflow_mode("flow", "ships a pull request") == WorkflowMode.COARSE_HUMAN_GATED
        assert infer_workflow_mode("flow-pr") == WorkflowMode.COARSE_HUMAN_GATED
        assert infer_workflow_mode("granular") == WorkflowMode.GRANULAR_AUTONOMOUS
        assert infer_workflow_mode("prototype") == WorkflowMode.GRANULAR_AUTONOMOUS

    def test_infer_final_cut(self) -> None:
        assert infer_final_cut_state(["open", "reviewing", "verification"]) == "verification"
        assert infer_final_cut_state(["open", "closed"]) is None

    def test_infer_retake(self) -> None:
        assert infer_retake_state(["open", "retry", "rejected"], "open") == "retry"
        assert infer_retake_state(["open", "closed"], "open") == "open"

    def test_build_external_descriptor(self) -> None:
        wf = build_external_descriptor(
            "knots-coarse-custom",
            ["Open", "ready_for_implementation", "implementation", "verification", "done"],
            terminal_states=["done"],
        )

        assert isinstance(wf, WorkflowDescriptor)
        assert wf.initial_state == "open"
        assert wf.terminal_states == ["done"]
        assert wf.mode == WorkflowMode.COARSE_HUMAN_GATED
        assert wf.retake_state == "ready_for_implementation"
        assert wf.final_cut_state == "verification"
        assert wf.action_states == ["implementation"]

    def test_build_external_descriptor_requires_states(self) -> None:
        with pytest.raises(ValueError):
            build_external_descriptor("empty", [])
