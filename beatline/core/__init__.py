"""Core module - errors, models, configuration and logging."""

from beatline.core.config import Settings, clear_settings_cache, get_settings
from beatline.core.errors import (
    BackendError,
    BackendErrorCode,
    BackendFailure,
    BackendResult,
    BeatlineError,
    classify_error_message,
)
from beatline.core.logging import configure_logging
from beatline.core.models import (
    Beat,
    BeatDependency,
    BeatListFilters,
    BeatStatus,
    BeatType,
    CreateBeatInput,
    OwnerKind,
    UpdateBeatInput,
    WorkflowMode,
)

__all__ = [
    "BackendError",
    "BackendErrorCode",
    "BackendFailure",
    "BackendResult",
    "Beat",
    "BeatDependency",
    "BeatListFilters",
    "BeatStatus",
    "BeatType",
    "BeatlineError",
    "CreateBeatInput",
    "OwnerKind",
    "Settings",
    "UpdateBeatInput",
    "WorkflowMode",
    "classify_error_message",
    "clear_settings_cache",
    "configure_logging",
    "get_settings",
]
