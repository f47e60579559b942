"""
Sync / Resolution Log

Append-only history: sync runs (with their per-vehicle rows) and conflict
resolutions. Used by status queries and the resolution listing endpoint.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models.conflict_resolution import ConflictResolution
from ..models.sync_run import SyncRunVehicle


def record_resolution(
    db: Session,
    conflict,
    resolution: str,
    resolved_by: Optional[str],
    resolution_data: Optional[Dict[str, Any]] = None,
    user_metadata: Optional[Dict[str, Any]] = None
) -> ConflictResolution:
    """Add the audit row for a resolution. Committed with the resolution itself."""
    return ConflictResolution.record(
        db,
        conflict,
        resolution=resolution,
        resolved_by=resolved_by,
        resolution_data=resolution_data,
        user_metadata=user_metadata,
    )


def list_resolutions(
    db: Session,
    vehicle_id: Optional[str] = None,
    limit: int = 10
) -> List[ConflictResolution]:
    """Most recent resolutions first"""
    query = db.query(ConflictResolution)
    if vehicle_id:
        query = query.filter(ConflictResolution.vehicle_id == vehicle_id)
    return query.order_by(
        ConflictResolution.created_at.desc(),
        ConflictResolution.id.desc()
    ).limit(limit).all()


def resolution_to_dict(entry: ConflictResolution) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "conflictId": entry.conflict_id,
        "conflictType": entry.conflict_type,
        "vehicleId": entry.vehicle_id,
        "resolution": entry.resolution,
        "resolvedBy": entry.resolved_by,
        "resolvedAt": entry.created_at,
        "resolutionData": entry.resolution_data or {},
    }


def get_latest_vehicle_run(db: Session, vehicle_id: str) -> Optional[SyncRunVehicle]:
    """Most recent per-vehicle sync row; `.sync_run` gives the run"""
    return db.query(SyncRunVehicle).filter(
        SyncRunVehicle.vehicle_id == vehicle_id
    ).order_by(
        SyncRunVehicle.created_at.desc(),
        SyncRunVehicle.id.desc()
    ).first()
