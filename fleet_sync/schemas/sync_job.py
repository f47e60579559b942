from pydantic import Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from .sync import CamelModel, DateRange


class SyncJobCreate(CamelModel):
    vehicle_ids: List[str] = Field(default_factory=list)
    full_sync: bool = False
    date_range: Optional[DateRange] = None


class SyncJobResponse(CamelModel):
    id: str
    status: str
    vehicle_ids: List[str]
    full_sync: bool
    date_range: Optional[DateRange] = None
    total_count: int
    processed_count: int
    cancel_requested: bool
    attempts: int
    sync_run_id: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    last_error: Optional[str] = None
    requested_by: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
