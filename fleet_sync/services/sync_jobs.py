"""
Sync Job Queue

Database-backed queue for batch syncs that are too large for one request.

Flow:
- enqueue_sync_job() stores a pending job and returns its id
- SyncJobProcessor (in-process worker loop or worker.py) claims pending jobs,
  runs the orchestrator with a progress callback and a cancellation check
- request_cancel() cancels a pending job at once, or flags a running one so
  it stops before the next vehicle
- A running job with no progress for SYNC_JOB_STALE_AFTER_SECONDS is claimed
  again, or failed once its attempts are used up
"""

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ..config import settings
from ..exceptions import NotFoundError
from ..models.conflict_resolution import _serialize_for_json
from ..models.sync_job import SyncJob, SyncJobStatus
from ..utils.db_helpers import compare_and_set, get_pending_with_skip_locked
from ..utils.logging_config import get_logger, job_id_var
from .sync_orchestrator import SyncOrchestrator, validate_sync_request

logger = logging.getLogger(__name__)
structured_logger = get_logger(__name__)


class SyncJobProcessor:
    """
    Processes pending sync jobs.

    Should be run periodically by the in-process worker or worker.py.
    """

    def __init__(self, db: Session, orchestrator: Optional[SyncOrchestrator] = None):
        self.db = db
        self.orchestrator = orchestrator or SyncOrchestrator(db)

    def _stale_cutoff(self) -> datetime:
        return datetime.utcnow() - timedelta(seconds=settings.sync_job_stale_after_seconds)

    def get_pending_jobs(self, limit: int = 5) -> List[SyncJob]:
        """
        Oldest claimable jobs first.

        Claimable means pending, or running with no progress since the stale
        cutoff (its worker died). Uses skip_locked on PostgreSQL so several
        workers never claim the same job.
        """
        return get_pending_with_skip_locked(
            self.db,
            SyncJob,
            and_(
                or_(
                    SyncJob.status == SyncJobStatus.PENDING.value,
                    and_(
                        SyncJob.status == SyncJobStatus.RUNNING.value,
                        SyncJob.updated_at < self._stale_cutoff(),
                    ),
                ),
                SyncJob.attempts < SyncJob.max_attempts,
            ),
            order_by=SyncJob.created_at,
            limit=limit,
        )

    def fail_stale_jobs(self) -> int:
        """Mark abandoned running jobs with no attempts left as failed"""
        now = datetime.utcnow()
        count = self.db.query(SyncJob).filter(
            SyncJob.status == SyncJobStatus.RUNNING.value,
            SyncJob.updated_at < self._stale_cutoff(),
            SyncJob.attempts >= SyncJob.max_attempts,
        ).update({
            "status": SyncJobStatus.FAILED.value,
            "last_error": "Worker stopped before the job finished",
            "completed_at": now,
            "updated_at": now,
        }, synchronize_session=False)
        self.db.commit()
        if count:
            logger.warning(f"Marked {count} abandoned sync jobs as failed")
        return count

    def process_job(self, job: SyncJob) -> bool:
        """
        Run one job to completion, cancellation or failure.

        Returns True if the orchestrator finished (completed or cancelled).
        """
        job_id = job.id
        if job.status == SyncJobStatus.RUNNING.value:
            logger.warning(f"Reclaiming stale sync job {job_id} (attempt {(job.attempts or 0) + 1})")

        # Mark as running
        job.status = SyncJobStatus.RUNNING.value
        job.attempts = (job.attempts or 0) + 1
        job.started_at = datetime.utcnow()
        job.total_count = len(job.vehicle_ids or [])
        job.processed_count = 0
        job.last_error = None
        self.db.commit()

        vehicle_ids = list(job.vehicle_ids or [])
        full_sync = bool(job.full_sync)
        date_range = (job.date_start, job.date_end) if job.date_start and job.date_end else None
        requested_by = job.requested_by

        def on_progress(processed: int, total: int):
            self.db.query(SyncJob).filter(SyncJob.id == job_id).update(
                {"processed_count": processed, "updated_at": datetime.utcnow()},
                synchronize_session=False,
            )
            self.db.commit()
            structured_logger.job_progress(job_id, processed, total)

        def cancel_requested() -> bool:
            return bool(
                self.db.query(SyncJob.cancel_requested).filter(SyncJob.id == job_id).scalar()
            )

        try:
            result = self.orchestrator.sync_vehicles(
                vehicle_ids,
                full_sync=full_sync,
                date_range=date_range,
                triggered_by=requested_by,
                progress_callback=on_progress,
                should_cancel=cancel_requested,
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"Sync job {job_id} failed: {e}")
            try:
                run = self.orchestrator.record_failed_run(
                    vehicle_ids, str(e), full_sync=full_sync,
                    date_range=date_range, triggered_by=requested_by,
                )
                job.sync_run_id = run.id
            except Exception as record_error:
                self.db.rollback()
                logger.error(f"Could not record failed run for job {job_id}: {record_error}")
            self._handle_failure(job, str(e))
            self.db.commit()
            return False

        self.db.refresh(job)
        job.sync_run_id = result["syncRunId"]
        job.processed_count = result["stats"]["totalVehicles"]
        job.result = _serialize_for_json({
            "status": result["status"],
            "stats": result["stats"],
            "updatedCount": result["updatedCount"],
            "syncedAt": result["syncedAt"],
            "conflictIds": [c["id"] for c in result["conflicts"]],
        })
        job.status = (
            SyncJobStatus.CANCELLED.value if result["cancelled"]
            else SyncJobStatus.COMPLETED.value
        )
        job.completed_at = datetime.utcnow()
        self.db.commit()

        logger.info(
            f"Sync job {job_id} {job.status}: {job.processed_count}/{job.total_count} vehicles, "
            f"run {job.sync_run_id}"
        )
        return True

    def _handle_failure(self, job: SyncJob, error: str):
        """Back to pending until attempts run out"""
        job.last_error = error[:1000]
        if job.attempts >= job.max_attempts:
            job.status = SyncJobStatus.FAILED.value
            job.completed_at = datetime.utcnow()
            logger.error(f"Sync job {job.id} permanently failed after {job.attempts} attempts")
        else:
            job.status = SyncJobStatus.PENDING.value
            logger.warning(f"Sync job {job.id} will retry (attempt {job.attempts}/{job.max_attempts})")

    def process_batch(self, limit: int = 5) -> Tuple[int, int]:
        """
        Process a batch of pending jobs.

        Returns: (success_count, failure_count)
        """
        success_count = 0
        failure_count = 0
        self.fail_stale_jobs()
        for job in self.get_pending_jobs(limit):
            token = job_id_var.set(job.id)
            try:
                if self.process_job(job):
                    success_count += 1
                else:
                    failure_count += 1
            finally:
                job_id_var.reset(token)
        return success_count, failure_count


# ==================
# Job API
# ==================

def enqueue_sync_job(
    db: Session,
    vehicle_ids: List[str],
    full_sync: bool = False,
    date_range: Optional[Tuple[date, date]] = None,
    requested_by: Optional[str] = None
) -> SyncJob:
    """Validate and store a pending sync job"""
    vehicle_ids, (start, end) = validate_sync_request(vehicle_ids, date_range)

    job = SyncJob(
        vehicle_ids=vehicle_ids,
        full_sync=full_sync,
        date_start=start,
        date_end=end,
        requested_by=requested_by,
        status=SyncJobStatus.PENDING.value,
        total_count=len(vehicle_ids),
        max_attempts=settings.sync_job_max_attempts,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    logger.info(f"Enqueued sync job {job.id} for {len(vehicle_ids)} vehicles")
    return job


def get_job(db: Session, job_id: str) -> SyncJob:
    job = db.query(SyncJob).filter(SyncJob.id == job_id).first()
    if not job:
        raise NotFoundError(f"Sync job {job_id} not found")
    return job


def request_cancel(db: Session, job_id: str) -> SyncJob:
    """
    Cancel a job.

    Pending jobs are cancelled immediately. Running jobs get a flag the
    processor checks between vehicles. Finished jobs are returned unchanged.
    """
    job = get_job(db, job_id)
    if job.is_terminal:
        return job

    now = datetime.utcnow()
    cancelled = compare_and_set(
        db,
        SyncJob,
        SyncJob.id == job_id,
        expected={"status": SyncJobStatus.PENDING.value},
        values={
            "status": SyncJobStatus.CANCELLED.value,
            "cancel_requested": True,
            "completed_at": now,
        },
    )
    if not cancelled:
        # Claimed by a worker in the meantime
        db.query(SyncJob).filter(SyncJob.id == job_id).update(
            {"cancel_requested": True}, synchronize_session=False
        )
    db.commit()
    db.refresh(job)
    logger.info(f"Cancellation requested for sync job {job_id} (status={job.status})")
    return job


def job_to_dict(job: SyncJob) -> dict:
    return {
        "id": job.id,
        "status": job.status,
        "vehicleIds": job.vehicle_ids or [],
        "fullSync": bool(job.full_sync),
        "dateRange": (
            {"start": job.date_start, "end": job.date_end}
            if job.date_start and job.date_end else None
        ),
        "totalCount": job.total_count or 0,
        "processedCount": job.processed_count or 0,
        "cancelRequested": bool(job.cancel_requested),
        "attempts": job.attempts or 0,
        "syncRunId": job.sync_run_id,
        "result": job.result,
        "lastError": job.last_error,
        "requestedBy": job.requested_by,
        "createdAt": job.created_at,
        "startedAt": job.started_at,
        "completedAt": job.completed_at,
    }
