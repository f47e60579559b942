"""
Sync Jobs Router

Asynchronous batch syncs: enqueue, poll progress, cancel.
"""
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.sync_job import SyncJobCreate, SyncJobResponse
from ..services import sync_jobs
from ..utils.dependencies import require_fleet_manager
from ..utils.rate_limiter import limiter, get_rate_limit
from ..utils.security import CallerIdentity

router = APIRouter(prefix="/api/availability/sync-jobs", tags=["Sync Jobs"])


@router.post("", response_model=SyncJobResponse, status_code=status.HTTP_202_ACCEPTED)
@limiter.limit(get_rate_limit("sync_job"))
def create_sync_job(
    request: Request,
    payload: SyncJobCreate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_fleet_manager)
):
    job = sync_jobs.enqueue_sync_job(
        db,
        payload.vehicle_ids,
        full_sync=payload.full_sync,
        date_range=payload.date_range.as_tuple() if payload.date_range else None,
        requested_by=current_user.user_id,
    )
    return sync_jobs.job_to_dict(job)


@router.get("/{job_id}", response_model=SyncJobResponse)
@limiter.limit(get_rate_limit("status"))
def get_sync_job(
    request: Request,
    job_id: str,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_fleet_manager)
):
    return sync_jobs.job_to_dict(sync_jobs.get_job(db, job_id))


@router.post("/{job_id}/cancel", response_model=SyncJobResponse)
@limiter.limit(get_rate_limit("sync_job"))
def cancel_sync_job(
    request: Request,
    job_id: str,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(require_fleet_manager)
):
    return sync_jobs.job_to_dict(sync_jobs.request_cancel(db, job_id))
