"""
Availability Sync Router

- POST /api/availability/sync          - sync a batch of vehicles
- GET  /api/availability/sync          - last sync status of one vehicle
- GET  /api/availability/cache/{id}    - cached daily availability
- GET  /api/availability/conflicts     - detected conflicts
"""
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date

from ..config import settings
from ..database import get_db
from ..exceptions import ValidationError
from ..schemas.sync import (
    SyncRequest, SyncResponse, SyncStatusResponse, ConflictListResponse,
    CacheRangeResponse, CacheDay
)
from ..services.availability_cache import AvailabilityCacheStore
from ..services.sync_orchestrator import SyncOrchestrator, default_date_range, validate_sync_request
from ..utils.dependencies import require_fleet_manager
from ..utils.rate_limiter import limiter, get_rate_limit
from ..utils.security import CallerIdentity

router = APIRouter(prefix="/api/availability", tags=["Availability Sync"])


@router.post("/sync", response_model=SyncResponse)
@limiter.limit(get_rate_limit("sync"))
def trigger_sync(
    request: Request,
    payload: SyncRequest,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_fleet_manager)
):
    """Sync availability for up to SYNC_MAX_VEHICLES_PER_REQUEST vehicles"""
    date_range = payload.date_range.as_tuple() if payload.date_range else None
    vehicle_ids, date_range = validate_sync_request(
        payload.vehicle_ids, date_range, max_vehicles=settings.sync_max_vehicles_per_request
    )

    orchestrator = SyncOrchestrator(db)
    return orchestrator.sync_vehicles(
        vehicle_ids,
        full_sync=payload.full_sync,
        date_range=date_range,
        remote_availability=payload.remote_availability,
        triggered_by=current_user.user_id,
    )


@router.get("/sync", response_model=SyncStatusResponse)
@limiter.limit(get_rate_limit("status"))
def get_sync_status(
    request: Request,
    vehicle_id: Optional[str] = Query(None, alias="vehicleId"),
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_fleet_manager)
):
    return SyncOrchestrator(db).get_sync_status(vehicle_id)


@router.get("/cache/{vehicle_id}", response_model=CacheRangeResponse)
@limiter.limit(get_rate_limit("status"))
def get_cached_availability(
    request: Request,
    vehicle_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_fleet_manager)
):
    default_start, default_end = default_date_range()
    start = start or default_start
    end = end or default_end
    if end <= start:
        raise ValidationError("end must be after start")

    entries = AvailabilityCacheStore(db).list_entries(vehicle_id, start, end)
    return CacheRangeResponse(
        vehicle_id=vehicle_id,
        start=start,
        end=end,
        days=[CacheDay.model_validate(entry) for entry in entries],
    )


@router.get("/conflicts", response_model=ConflictListResponse)
@limiter.limit(get_rate_limit("list"))
def list_conflicts(
    request: Request,
    vehicle_id: Optional[str] = Query(None, alias="vehicleId"),
    resolved: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_fleet_manager)
):
    conflicts = SyncOrchestrator(db).list_conflicts(vehicle_id, resolved, limit)
    return {"conflicts": conflicts, "total": len(conflicts)}
