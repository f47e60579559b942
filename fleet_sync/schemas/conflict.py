from typing import Optional, List, Dict, Any
from datetime import datetime

from .sync import CamelModel


class ResolveConflictRequest(CamelModel):
    # Checked by the resolution engine so bad values get a 400 validation_error
    conflict_id: Optional[str] = None
    resolution: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class ResolveConflictResponse(CamelModel):
    success: bool = True
    conflict_id: str
    resolution: str
    resolution_id: str
    resolution_result: Dict[str, Any]
    resolved_at: datetime


class ResolutionItem(CamelModel):
    id: str
    conflict_id: str
    conflict_type: str
    vehicle_id: str
    resolution: str
    resolved_by: Optional[str] = None
    resolved_at: datetime
    resolution_data: Dict[str, Any] = {}


class ResolutionListResponse(CamelModel):
    resolutions: List[ResolutionItem]
