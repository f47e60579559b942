from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any
from datetime import datetime, date


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys, like the rest of the rental API"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class DateRange(CamelModel):
    start: date
    end: date  # exclusive

    def as_tuple(self):
        return self.start, self.end


class SyncRequest(CamelModel):
    vehicle_ids: List[str] = Field(default_factory=list)
    full_sync: bool = False
    date_range: Optional[DateRange] = None
    # vehicleId -> {date: available}
    remote_availability: Optional[Dict[str, Dict[date, bool]]] = None


class VehicleAvailabilityItem(CamelModel):
    vehicle_id: str
    vehicle_name: Optional[str] = None
    last_updated: datetime
    sync_status: str
    conflict_count: int = 0
    booking_count: int = 0
    available_days: int = 0
    revenue: float = 0
    error: Optional[str] = None


class ConflictOut(CamelModel):
    id: str
    sync_run_id: str
    vehicle_id: str
    conflict_type: str
    date: date
    description: Optional[str] = None
    local_value: Optional[Dict[str, Any]] = None
    remote_value: Optional[Dict[str, Any]] = None
    fingerprint: str
    resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None


class SyncStats(CamelModel):
    total_vehicles: int
    successful_syncs: int
    conflict_count: int
    error_count: int


class SyncResponse(CamelModel):
    success: bool = True
    sync_run_id: str
    status: str
    vehicle_availability: List[VehicleAvailabilityItem]
    conflicts: List[ConflictOut]
    updated_count: int
    synced_at: datetime
    stats: SyncStats
    cancelled: bool = False


class BookingSummary(CamelModel):
    id: str
    customer_id: Optional[str] = None
    start_date: date
    end_date: date
    status: str
    total_amount: float


class SyncStatusResponse(CamelModel):
    vehicle_id: str
    vehicle_name: str
    last_sync: Optional[datetime] = None
    last_sync_run_id: Optional[str] = None
    sync_status: str
    vehicle_sync_status: Optional[str] = None
    upcoming_bookings: int = 0
    upcoming_booking_list: List[BookingSummary] = []
    next_booking: Optional[BookingSummary] = None


class ConflictListResponse(CamelModel):
    conflicts: List[ConflictOut]
    total: int


class CacheDay(CamelModel):
    date: date
    available: bool
    source: str
    is_pinned: bool = False
    generation: int
    last_updated: datetime


class CacheRangeResponse(CamelModel):
    vehicle_id: str
    start: date
    end: date
    days: List[CacheDay]
