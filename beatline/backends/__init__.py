"""Backends module - the port contract and its adapters."""

from beatline.backends.capabilities import (
    CLI_CAPABILITIES,
    FULL_CAPABILITIES,
    JSONL_CAPABILITIES,
    READ_ONLY_CAPABILITIES,
    STUB_CAPABILITIES,
    BackendCapabilities,
    has_capability,
    require_capability,
)
from beatline.backends.cli import CliBackend
from beatline.backends.factory import BackendEntry, create_backend
from beatline.backends.jsonl import JsonlBackend, reset_cache
from beatline.backends.port import BackendPort, port_operation
from beatline.backends.runner import (
    AsyncioProcessRunner,
    CommandResult,
    ProcessRunner,
    WriteSerializer,
)
from beatline.backends.stub import StubBackend

__all__ = [
    "AsyncioProcessRunner",
    "BackendCapabilities",
    "BackendEntry",
    "BackendPort",
    "CLI_CAPABILITIES",
    "CliBackend",
    "CommandResult",
    "FULL_CAPABILITIES",
    "JSONL_CAPABILITIES",
    "JsonlBackend",
    "ProcessRunner",
    "READ_ONLY_CAPABILITIES",
    "STUB_CAPABILITIES",
    "StubBackend",
    "WriteSerializer",
    "create_backend",
    "has_capability",
    "port_operation",
    "require_capability",
    "reset_cache",
]
