from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from typing import Optional

from ..database import get_db
from ..schemas.conflict import ResolveConflictRequest, ResolveConflictResponse, ResolutionListResponse
from ..services.conflict_resolution import ConflictResolutionEngine
from ..utils.dependencies import require_fleet_manager
from ..utils.rate_limiter import limiter, get_rate_limit
from ..utils.security import CallerIdentity

router = APIRouter(prefix="/api/availability", tags=["Conflict Resolution"])


@router.post("/resolve-conflict", response_model=ResolveConflictResponse)
@limiter.limit(get_rate_limit("resolve"))
def resolve_conflict(
    request: Request,
    payload: ResolveConflictRequest,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_fleet_manager)
):
    """Apply the local or remote side of a conflict. 409 if already resolved."""
    engine = ConflictResolutionEngine(db)
    return engine.resolve(
        payload.conflict_id,
        payload.resolution,
        resolved_by=current_user.user_id,
        metadata=payload.metadata,
    )


@router.get("/resolve-conflict", response_model=ResolutionListResponse)
@limiter.limit(get_rate_limit("list"))
def list_resolutions(
    request: Request,
    vehicle_id: Optional[str] = Query(None, alias="vehicleId"),
    limit: int = Query(10, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_fleet_manager)
):
    """Resolution history, newest first"""
    return {"resolutions": ConflictResolutionEngine(db).list_resolutions(vehicle_id, limit)}
