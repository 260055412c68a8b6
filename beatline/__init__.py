"""
Beatline - workflow engine and backend adapters for tracking beats.

Maps workflow profiles onto a six-step pipeline and exposes one async port
over JSONL files, the ``bd`` CLI and a stub store.
"""

__version__ = "0.1.0"
__author__ = "Beatline Team"

from beatline.backends.port import BackendPort
from beatline.core.errors import BackendError, BackendErrorCode, BackendResult
from beatline.core.models import Beat

__all__ = [
    "BackendError",
    "BackendErrorCode",
    "BackendPort",
    "BackendResult",
    "Beat",
    "__version__",
]
