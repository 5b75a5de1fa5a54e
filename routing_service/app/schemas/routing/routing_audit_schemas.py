from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel
from shared.core.schemas import CommonQueryParams


class AuditEntryOut(BaseModel):
    id: int
    action_type: str
    related_type: str
    related_id: str
    before_values: Optional[Dict[str, Any]] = None
    after_values: Dict[str, Any]
    performed_by: str
    change_reason: Optional[str] = None
    performed_at: datetime

    model_config = {"from_attributes": True}


class AuditLogRequest(CommonQueryParams):
    action_type: Optional[str] = None
    related_type: Optional[str] = None
    related_id: Optional[str] = None


class AuditLogListResponse(BaseModel):
    audit_logs: List[AuditEntryOut]
    total: int

    model_config = {"from_attributes": True}
