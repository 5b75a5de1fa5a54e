from datetime import datetime, timezone
from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, event
from sqlalchemy.dialects.postgresql import JSONB
from shared.core.database import Base

JsonType = JSON().with_variant(JSONB(), "postgresql")


class AuditImmutableError(RuntimeError):
    pass


class RoutingAuditLog(Base):
    __tablename__ = "routing_audit_logs"

    # Monotonic: doubles as the write order of the trail
    id = Column(Integer, primary_key=True, autoincrement=True)
    # rule_created|rule_updated|override_applied|booking_resolved
    action_type = Column(String(32), nullable=False)
    # platform_rule|property_override|booking_override|booking
    related_type = Column(String(32), nullable=False)
    related_id = Column(String(64), nullable=False)
    before_values = Column(JsonType)
    after_values = Column(JsonType, nullable=False)
    performed_by = Column(String(128), nullable=False)
    change_reason = Column(Text)
    performed_at = Column(DateTime(timezone=True), nullable=False,
                          default=lambda: datetime.now(timezone.utc))


# Append-only: no code path may rewrite or drop history
@event.listens_for(RoutingAuditLog, "before_update")
def reject_audit_update(mapper, connection, target):
    raise AuditImmutableError(
        f"Audit entry {target.id} is immutable and cannot be updated")


@event.listens_for(RoutingAuditLog, "before_delete")
def reject_audit_delete(mapper, connection, target):
    raise AuditImmutableError(
        f"Audit entry {target.id} is immutable and cannot be deleted")
