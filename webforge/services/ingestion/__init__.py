"""Reference ingestion service."""

from .network import assert_safe_remote, is_blocked_address
from .service import ReferenceIngestionService, reference_confidence

__all__ = [
    "ReferenceIngestionService",
    "assert_safe_remote",
    "is_blocked_address",
    "reference_confidence",
]
