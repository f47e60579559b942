# Services package
from .availability_cache import AvailabilityCacheStore
from .conflict_detector import (
    DetectedConflict,
    detect_double_bookings,
    detect_pricing_mismatches,
    detect_availability_conflicts,
    detect_all
)
from .sync_orchestrator import SyncOrchestrator, validate_sync_request
from .conflict_resolution import ConflictResolutionEngine
from .sync_jobs import (
    SyncJobProcessor,
    enqueue_sync_job,
    request_cancel,
    get_job
)
from .remote_availability import RemoteAvailabilityClient, RemoteAvailabilityError, get_remote_availability_client

__all__ = [
    "AvailabilityCacheStore",
    "DetectedConflict", "detect_double_bookings", "detect_pricing_mismatches",
    "detect_availability_conflicts", "detect_all",
    "SyncOrchestrator", "validate_sync_request",
    "ConflictResolutionEngine",
    "SyncJobProcessor", "enqueue_sync_job", "request_cancel", "get_job",
    "RemoteAvailabilityClient", "RemoteAvailabilityError", "get_remote_availability_client",
]
