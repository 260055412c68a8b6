"""Capability descriptors declaring which port operations a backend supports."""

from pydantic import BaseModel, ConfigDict, Field

from beatline.core.errors import BackendError, unavailable


class BackendCapabilities(BaseModel):
    """Static, immutable capability flags of a backend instance."""

    model_config = ConfigDict(frozen=True)

    can_create: bool = False
    can_update: bool = False
    can_delete: bool = False
    can_close: bool = False
    can_search: bool = False
    can_query: bool = False
    can_list_ready: bool = False
    can_manage_dependencies: bool = False
    can_manage_labels: bool = False
    can_sync: bool = False
    max_concurrency: int = Field(default=0, ge=0, description="0 means unlimited")


FULL_CAPABILITIES = BackendCapabilities(
    can_create=True,
    can_update=True,
    can_delete=True,
    can_close=True,
    can_search=True,
    can_query=True,
    can_list_ready=True,
    can_manage_dependencies=True,
    can_manage_labels=True,
    can_sync=True,
    max_concurrency=0,
)

READ_ONLY_CAPABILITIES = BackendCapabilities(
    can_search=True,
    can_query=True,
    can_list_ready=True,
)

# A single local file; one writer at a time and nothing to sync with.
JSONL_CAPABILITIES = FULL_CAPABILITIES.model_copy(
    update={"can_sync": False, "max_concurrency": 1}
)

CLI_CAPABILITIES = FULL_CAPABILITIES.model_copy(update={"max_concurrency": 1})

STUB_CAPABILITIES = READ_ONLY_CAPABILITIES


def has_capability(capabilities: BackendCapabilities, flag: str) -> bool:
    """Whether ``flag`` is enabled; numeric flags count when positive.

    Raises:
        ValueError: If ``flag`` is not a capability field.
    """
    if flag not in BackendCapabilities.model_fields:
        raise ValueError(f"Unknown capability: {flag}")
    value = getattr(capabilities, flag)
    if isinstance(value, bool):
        return value
    return value > 0


def require_capability(
    capabilities: BackendCapabilities,
    flag: str,
    operation: str,
) -> BackendError | None:
    """Return an UNAVAILABLE error when ``flag`` is off, else ``None``."""
    if has_capability(capabilities, flag):
        return None
    return unavailable(f"Backend does not support {operation} ({flag} is disabled)")
