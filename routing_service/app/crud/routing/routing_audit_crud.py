import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.orm import Session

from ...core.errors import AuditWriteFailed
from ...enum.routing_enum import AuditActionType, AuditRelatedType
from ...models.routing.routing_audit_logs import RoutingAuditLog
from ...schemas.routing.routing_audit_schemas import AuditEntryOut, AuditLogRequest, AuditLogListResponse

logger = logging.getLogger(__name__)

HISTORY_BATCH_SIZE = 200


def _json_safe(value: Any):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def snapshot(row: Any, fields: Iterable[str]) -> Dict[str, Any]:
    """JSON-safe copy of the named attributes of a row or model."""
    return {name: _json_safe(getattr(row, name)) for name in fields}


def diff(before: Dict[str, Any], after: Dict[str, Any]):
    changed = [k for k in after if before.get(k) != after.get(k)]
    return {k: before.get(k) for k in changed}, {k: after[k] for k in changed}


# ----------------- Record -----------------
def record(
    db: Session,
    action_type: AuditActionType,
    related_type: AuditRelatedType,
    related_id: Any,
    after_values: Dict[str, Any],
    performed_by: str,
    before_values: Optional[Dict[str, Any]] = None,
    change_reason: Optional[str] = None,
) -> RoutingAuditLog:
    """Append one audit entry to the current unit of work.

    The entry is flushed, not committed; it becomes durable together with
    the change it describes. Storage outages surface as AuditWriteFailed;
    errors caused by the entry itself (DataError, IntegrityError) propagate
    unchanged, since retrying them cannot succeed.
    """
    entry = RoutingAuditLog(
        action_type=AuditActionType(action_type).value,
        related_type=AuditRelatedType(related_type).value,
        related_id=str(related_id),
        before_values=_json_safe(before_values) if before_values is not None else None,
        after_values=_json_safe(after_values),
        performed_by=performed_by,
        change_reason=change_reason,
    )
    try:
        db.add(entry)
        db.flush()
    except DBAPIError as e:
        if not (isinstance(e, (OperationalError, InterfaceError)) or e.connection_invalidated):
            raise
        raise AuditWriteFailed(
            f"Could not write {entry.action_type} audit entry for {entry.related_type} {entry.related_id}: {e}",
            related_type=entry.related_type, related_id=entry.related_id,
        ) from e
    logger.debug(f"Audit {entry.action_type} recorded for {entry.related_type} {entry.related_id}")
    return entry


# ----------------- History -----------------
class AuditHistory:
    """Time-ordered audit trail of one entity.

    Lazy and restartable: every iteration runs a fresh query and streams
    rows in batches, so it always reflects what is persisted at that moment.
    """

    def __init__(self, db: Session, related_type: AuditRelatedType, related_id: Any):
        self._db = db
        self.related_type = AuditRelatedType(related_type).value
        self.related_id = str(related_id)

    def _query(self):
        return self._db.query(RoutingAuditLog).filter(
            RoutingAuditLog.related_type == self.related_type,
            RoutingAuditLog.related_id == self.related_id,
        )

    def __iter__(self) -> Iterator[RoutingAuditLog]:
        return iter(
            self._query()
            .order_by(RoutingAuditLog.id.asc())
            .yield_per(HISTORY_BATCH_SIZE)
        )

    def count(self) -> int:
        return self._query().with_entities(func.count(RoutingAuditLog.id)).scalar()


def history(db: Session, related_type: AuditRelatedType, related_id: Any) -> AuditHistory:
    return AuditHistory(db, related_type, related_id)


# ----------------- Build Filters -----------------
def build_audit_filters(params: AuditLogRequest):
    filters = []

    if params.action_type and params.action_type.lower() != "all":
        filters.append(RoutingAuditLog.action_type == params.action_type.lower())

    if params.related_type and params.related_type.lower() != "all":
        filters.append(RoutingAuditLog.related_type == params.related_type.lower())

    if params.related_id:
        filters.append(RoutingAuditLog.related_id == params.related_id)

    if params.search:
        search_term = f"%{params.search}%"
        filters.append(RoutingAuditLog.change_reason.ilike(search_term))
    return filters


# ----------------- Get All Audit Logs -----------------
def get_audit_logs(db: Session, params: AuditLogRequest) -> AuditLogListResponse:
    base_query = db.query(RoutingAuditLog).filter(*build_audit_filters(params))
    total = base_query.with_entities(func.count(RoutingAuditLog.id)).scalar()

    # Newest first, as the audit tab shows them
    logs = (
        base_query
        .order_by(RoutingAuditLog.id.desc())
        .offset(params.skip)
        .limit(params.limit)
        .all()
    )

    return {"audit_logs": [AuditEntryOut.model_validate(log) for log in logs], "total": total}
