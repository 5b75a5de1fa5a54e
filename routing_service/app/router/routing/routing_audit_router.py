from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shared.auth import validate_current_token
from shared.core.database import get_routing_db as get_db
from shared.core.schemas import UserToken
from ...crud.routing import routing_audit_crud as crud
from ...enum.routing_enum import AuditRelatedType
from ...schemas.routing.routing_audit_schemas import AuditEntryOut, AuditLogListResponse, AuditLogRequest

router = APIRouter(prefix="/api/routing-audit-logs", tags=["Routing Audit Trail"])


# ---------------- List Audit Logs ----------------
@router.get("/all", response_model=AuditLogListResponse)
def get_audit_logs_endpoint(
    params: AuditLogRequest = Depends(),
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token)
):
    return crud.get_audit_logs(db, params)


# ---------------- Entity History ----------------
@router.get("/history/{related_type}/{related_id}", response_model=List[AuditEntryOut])
def get_entity_history_endpoint(
    related_type: AuditRelatedType,
    related_id: str,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token)
):
    return [AuditEntryOut.model_validate(entry) for entry in crud.history(db, related_type, related_id)]
