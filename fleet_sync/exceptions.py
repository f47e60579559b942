"""
Domain errors for the availability sync service.

Services raise these; ``main.py`` renders them as
``{"detail": ..., "code": ...}`` with the matching HTTP status.
"""

from typing import Optional


class FleetSyncError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(FleetSyncError):
    """Missing or invalid vehicleIds, conflictId, resolution value, date range..."""
    status_code = 400
    code = "validation_error"


class AuthorizationError(FleetSyncError):
    status_code = 403
    code = "forbidden"


class NotFoundError(FleetSyncError):
    status_code = 404
    code = "not_found"


class ConflictTypeError(FleetSyncError):
    status_code = 400
    code = "unknown_conflict_type"


class AlreadyResolvedError(FleetSyncError):
    status_code = 409
    code = "conflict_already_resolved"


class PersistenceError(FleetSyncError):
    status_code = 500
    code = "persistence_error"
