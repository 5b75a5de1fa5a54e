import logging
import time
from decimal import Decimal
from typing import Any, Callable, Optional, Tuple, Type, TypeVar, Union
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from shared.core.config import Settings, settings as default_settings
from ...core.errors import AuditWriteFailed, ConcurrentBookingOverride, EmptyJustification, InvalidIdentifier
from ...crud.routing import booking_routing_crud, platform_rules_crud, property_rules_crud, routing_audit_crud
from ...crud.routing.booking_routing_crud import BOOKING_OVERRIDE_FIELDS
from ...crud.routing.routing_audit_crud import AuditHistory, snapshot
from ...enum.routing_enum import AuditActionType, AuditRelatedType, DriftRecipient
from ...models.routing.booking_platform_routing import BookingPlatformRouting
from ...models.routing.platform_routing_rules import PlatformRoutingRule
from ...models.routing.property_platform_rules import PropertyPlatformRule
from ...models.routing.routing_audit_logs import RoutingAuditLog
from ...schemas.routing.booking_routing_schemas import ResolvedRouting
from ...schemas.routing.platform_rules_schemas import PlatformRuleCreate, PlatformRuleUpdate
from ...schemas.routing.property_rules_schemas import PropertyRuleUpsert
from . import resolution_engine
from .resolution_engine import RuleCandidates

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

T = TypeVar("T")


def check_length(value: Any, label: str, column) -> str:
    """Reject identifiers that do not fit the column they are stored in."""
    value = str(value)
    limit = column.type.length
    if not value.strip() or len(value) > limit:
        raise InvalidIdentifier(
            f"{label} must be 1 to {limit} characters, got {len(value)}",
            field=label, max_length=limit,
        )
    return value


class RoutingFacade:
    """Single entry point for revenue routing.

    Each public method is one unit of work: the change (or resolution) and
    its audit entry are committed together or not at all. If the audit
    write keeps failing after the configured attempts, the operation fails
    with AuditWriteFailed and nothing is returned to the caller.

    Usage:
        facade = RoutingFacade(db)
        resolved = facade.resolve_booking("BK-1001", "villa-aruna", "airbnb", Decimal("1000.00"))
    """

    def __init__(
        self,
        db: Session,
        audit_recorder: Callable[..., Any] = routing_audit_crud.record,
        settings: Settings = default_settings,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.db = db
        self._audit = audit_recorder
        self._settings = settings
        self._sleep = sleep

    # ----------------- Unit of work -----------------
    def _run_unit(
        self,
        operation: str,
        work: Callable[[], T],
        retry_on: Tuple[Type[Exception], ...] = (),
    ) -> T:
        attempts = max(1, int(self._settings.AUDIT_WRITE_ATTEMPTS))
        backoff = float(self._settings.AUDIT_RETRY_BACKOFF_SECONDS)
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                result = work()
                self.db.commit()
                return result
            except (AuditWriteFailed, OperationalError) + retry_on as e:
                self.db.rollback()
                last_error = e
                logger.warning(f"{operation}: attempt {attempt}/{attempts} could not be persisted: {e}")
                if attempt < attempts:
                    self._sleep(backoff * (2 ** (attempt - 1)))
            except Exception:
                self.db.rollback()
                raise

        logger.error(f"{operation}: giving up after {attempts} attempts, nothing was committed")
        if isinstance(last_error, retry_on):
            raise last_error
        raise AuditWriteFailed(
            f"{operation} was not committed: its audit entry could not be persisted after {attempts} attempts",
            operation=operation, attempts=attempts,
        ) from last_error

    # ----------------- Resolution -----------------
    def resolve_booking(
        self,
        booking_id: str,
        property_id: str,
        channel: str,
        net_payout_amount: Union[Decimal, str, int],
        currency: Optional[str] = None,
        performed_by: str = SYSTEM_ACTOR,
    ) -> ResolvedRouting:
        check_length(booking_id, "booking_id", RoutingAuditLog.__table__.c.related_id)
        check_length(performed_by, "performed_by", RoutingAuditLog.__table__.c.performed_by)
        currency = (currency or self._settings.DEFAULT_CURRENCY).upper()
        channel = platform_rules_crud.normalize_channel(channel)
        drift_recipient = DriftRecipient(self._settings.ROUNDING_DRIFT_RECIPIENT)

        def work() -> ResolvedRouting:
            rule, property_override = platform_rules_crud.get_effective_candidates(
                self.db, property_id, channel)
            booking_override = booking_routing_crud.get_active_booking_override(self.db, booking_id)

            resolved = resolution_engine.resolve(
                RuleCandidates(rule, property_override, booking_override),
                booking_id=booking_id,
                property_id=property_id,
                channel=channel,
                net_payout_amount=net_payout_amount,
                currency=currency,
                drift_recipient=drift_recipient,
            )
            self._audit(
                self.db,
                AuditActionType.booking_resolved,
                AuditRelatedType.booking,
                booking_id,
                after_values=resolved.model_dump(mode="json"),
                performed_by=performed_by,
                change_reason=f"Resolved {channel} payout of {resolved.net_payout_amount} {currency}",
            )
            return resolved

        resolved = self._run_unit("resolve_booking", work)
        logger.info(
            f"Booking {booking_id} resolved via {channel}: owner {resolved.owner_amount}, "
            f"management {resolved.management_amount}, fee {resolved.platform_fee_amount} {currency}")
        return resolved

    # ----------------- Booking overrides -----------------
    def apply_booking_override(
        self,
        booking_id: str,
        owner_pct: Union[Decimal, str, int],
        management_pct: Union[Decimal, str, int],
        routing_type: str,
        justification: Optional[str],
        performed_by: str,
    ) -> BookingPlatformRouting:
        reason = (justification or "").strip()
        if not reason:
            raise EmptyJustification(
                f"A justification is required to override routing for booking {booking_id}",
                booking_id=booking_id,
            )
        check_length(booking_id, "booking_id", BookingPlatformRouting.__table__.c.booking_id)
        check_length(performed_by, "performed_by", BookingPlatformRouting.__table__.c.applied_by)
        owner, management, rtype = resolution_engine.check_split(owner_pct, management_pct, routing_type)

        def work() -> BookingPlatformRouting:
            db_override, previous = booking_routing_crud.store_booking_override(
                self.db, booking_id, owner, management, rtype, reason, performed_by)
            before = None
            if previous is not None:
                before = {"id": str(previous.id), **snapshot(previous, BOOKING_OVERRIDE_FIELDS)}
            self._audit(
                self.db,
                AuditActionType.override_applied,
                AuditRelatedType.booking_override,
                booking_id,
                before_values=before,
                after_values={"id": str(db_override.id), **snapshot(db_override, BOOKING_OVERRIDE_FIELDS)},
                performed_by=performed_by,
                change_reason=reason,
            )
            return db_override

        # A concurrent apply for the same booking is superseded on the rerun
        db_override = self._run_unit(
            "apply_booking_override", work, retry_on=(ConcurrentBookingOverride,))
        logger.info(f"Booking {booking_id} routing overridden to {rtype.value} by {performed_by}")
        return db_override

    # ----------------- Rules -----------------
    def upsert_platform_rule(
        self,
        rule: Union[PlatformRuleCreate, PlatformRuleUpdate],
        performed_by: str,
        change_reason: Optional[str] = None,
    ) -> PlatformRoutingRule:
        check_length(performed_by, "performed_by", RoutingAuditLog.__table__.c.performed_by)
        return self._run_unit(
            "upsert_platform_rule",
            lambda: platform_rules_crud.upsert_platform_rule(
                self.db, rule, performed_by, change_reason, audit=self._audit),
        )

    def upsert_property_override(
        self,
        override: PropertyRuleUpsert,
        performed_by: str,
        change_reason: Optional[str] = None,
    ) -> PropertyPlatformRule:
        check_length(performed_by, "performed_by", RoutingAuditLog.__table__.c.performed_by)
        return self._run_unit(
            "upsert_property_override",
            lambda: property_rules_crud.upsert_property_override(
                self.db, override, performed_by, change_reason, audit=self._audit),
        )

    def deactivate_platform_rule(
        self,
        rule_id: UUID,
        performed_by: str,
        cascade: bool = False,
        version: Optional[int] = None,
        change_reason: Optional[str] = None,
    ) -> PlatformRoutingRule:
        check_length(performed_by, "performed_by", RoutingAuditLog.__table__.c.performed_by)
        return self._run_unit(
            "deactivate_platform_rule",
            lambda: platform_rules_crud.deactivate_platform_rule(
                self.db, rule_id, performed_by, cascade=cascade, version=version,
                change_reason=change_reason, audit=self._audit),
        )

    # ----------------- Audit trail -----------------
    def history(self, related_type: AuditRelatedType, related_id: Any) -> AuditHistory:
        return routing_audit_crud.history(self.db, related_type, related_id)
