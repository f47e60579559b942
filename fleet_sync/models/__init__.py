# Models package
from .vehicle import Vehicle
from .booking import Booking, BookingStatus, OCCUPYING_STATUSES
from .pricing import PricingRule
from .availability_cache import AvailabilityCacheEntry, CacheSource, PINNED_SOURCES
from .sync_run import (
    SyncRun,
    SyncRunVehicle,
    SyncConflict,
    SyncRunStatus,
    VehicleSyncStatus,
    ConflictType,
    NEVER_SYNCED
)
from .conflict_resolution import ConflictResolution, ResolutionSide
from .notification import Notification, NotificationType, NOTIFICATION_TITLES
from .sync_job import SyncJob, SyncJobStatus, TERMINAL_JOB_STATUSES

__all__ = [
    "Vehicle",
    "Booking", "BookingStatus", "OCCUPYING_STATUSES",
    "PricingRule",
    "AvailabilityCacheEntry", "CacheSource", "PINNED_SOURCES",
    "SyncRun", "SyncRunVehicle", "SyncConflict",
    "SyncRunStatus", "VehicleSyncStatus", "ConflictType", "NEVER_SYNCED",
    "ConflictResolution", "ResolutionSide",
    "Notification", "NotificationType", "NOTIFICATION_TITLES",
    "SyncJob", "SyncJobStatus", "TERMINAL_JOB_STATUSES",
]
