"""Backend selection from settings."""

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from loguru import logger

from beatline.backends.capabilities import BackendCapabilities
from beatline.backends.cli import CliBackend
from beatline.backends.jsonl import JsonlBackend
from beatline.backends.port import BackendPort
from beatline.backends.records import issues_path
from beatline.backends.runner import ProcessRunner
from beatline.backends.stub import StubBackend
from beatline.core.config import Settings, get_settings

BackendKind = Literal["auto", "jsonl", "cli", "stub"]


@dataclass(frozen=True)
class BackendEntry:
    """A constructed backend together with its capabilities."""

    kind: str
    port: BackendPort
    capabilities: BackendCapabilities


def detect_backend_kind(repo_path: Path, binary: str = "bd") -> str:
    """Pick a concrete kind for ``auto``.

    A ``bd`` binary on PATH wins; otherwise an existing JSONL file selects
    the JSONL backend; otherwise the stub.
    """
    if shutil.which(binary):
        return "cli"
    if issues_path(repo_path).exists():
        return "jsonl"
    return "stub"


def create_backend(
    kind: BackendKind | str | None = None,
    repo_path: str | Path | None = None,
    settings: Settings | None = None,
    runner: ProcessRunner | None = None,
) -> BackendEntry:
    """Build a backend for a repository.

    Args:
        kind: Backend kind; defaults to ``settings.beatline_backend``.
        repo_path: Repository; defaults to ``settings.beatline_repo_path``.
        settings: Settings; defaults to the cached settings.
        runner: Process runner for the CLI backend.

    Returns:
        The backend entry.

    Raises:
        ValueError: If ``kind`` is not a known backend kind.
    """
    settings = settings or get_settings()
    path = Path(repo_path or settings.beatline_repo_path)
    resolved = kind or settings.beatline_backend
    if resolved == "auto":
        resolved = detect_backend_kind(path, settings.bd_bin)
        logger.debug(f"Auto-selected {resolved} backend for {path}")

    port: BackendPort
    if resolved == "jsonl":
        port = JsonlBackend(path)
    elif resolved == "cli":
        port = CliBackend(
            path,
            runner=runner,
            binary=settings.bd_bin,
            db_path=settings.bd_db,
            timeout_seconds=settings.beatline_command_timeout,
        )
    elif resolved == "stub":
        port = StubBackend()
    else:
        raise ValueError(f"Unknown backend kind: {resolved}")

    return BackendEntry(kind=resolved, port=port, capabilities=port.capabilities)
