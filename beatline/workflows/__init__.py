"""Workflows module - profile registry, state derivation and label codec."""

from beatline.workflows.descriptors import (
    DEFAULT_PROFILE_ID,
    StepPhase,
    WorkflowDescriptor,
    WorkflowStep,
    builtin_profile_descriptor,
    builtin_workflow_descriptors,
    default_workflow_descriptor,
    is_supported_profile_id,
    normalize_profile_id,
    workflow_descriptor_by_id,
)
from beatline.workflows.labels import (
    extract_workflow_profile_label,
    extract_workflow_state_label,
    with_workflow_profile_label,
    with_workflow_state_label,
)
from beatline.workflows.review import reject_beat_fields, verify_beat_fields
from beatline.workflows.states import (
    ResolvedStep,
    WorkflowRuntimeState,
    derive_profile_id,
    derive_workflow_runtime_state,
    derive_workflow_state,
    map_status_to_default_workflow_state,
    map_workflow_state_to_compat_status,
    normalize_state_for_workflow,
    resolve_step,
)

__all__ = [
    "DEFAULT_PROFILE_ID",
    "ResolvedStep",
    "StepPhase",
    "WorkflowDescriptor",
    "WorkflowRuntimeState",
    "WorkflowStep",
    "builtin_profile_descriptor",
    "builtin_workflow_descriptors",
    "default_workflow_descriptor",
    "derive_profile_id",
    "derive_workflow_runtime_state",
    "derive_workflow_state",
    "extract_workflow_profile_label",
    "extract_workflow_state_label",
    "is_supported_profile_id",
    "map_status_to_default_workflow_state",
    "map_workflow_state_to_compat_status",
    "normalize_profile_id",
    "normalize_state_for_workflow",
    "reject_beat_fields",
    "resolve_step",
    "verify_beat_fields",
    "with_workflow_profile_label",
    "with_workflow_state_label",
    "workflow_descriptor_by_id",
]
