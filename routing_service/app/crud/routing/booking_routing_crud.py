from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...core.errors import ConcurrentBookingOverride
from ...enum.routing_enum import RoutingType
from ...models.routing.booking_platform_routing import BookingPlatformRouting
from ...schemas.routing.booking_routing_schemas import (
    BookingOverrideListResponse, BookingOverrideOut, BookingOverrideRequest
)

BOOKING_OVERRIDE_FIELDS = (
    "booking_id",
    "actual_owner_percentage",
    "actual_management_percentage",
    "actual_routing_type",
    "override_reason",
    "applied_by",
)


# ----------------- Build Filters -----------------
def build_booking_override_filters(params: BookingOverrideRequest):
    filters = []

    if params.booking_id:
        filters.append(BookingPlatformRouting.booking_id == params.booking_id)

    if params.is_active is not None:
        filters.append(BookingPlatformRouting.is_active == params.is_active)

    if params.search:
        search_term = f"%{params.search}%"
        filters.append(
            or_(
                BookingPlatformRouting.booking_id.ilike(search_term),
                BookingPlatformRouting.override_reason.ilike(search_term),
            )
        )
    return filters


# ----------------- Get All Booking Overrides -----------------
def get_booking_overrides(db: Session, params: BookingOverrideRequest) -> BookingOverrideListResponse:
    base_query = db.query(BookingPlatformRouting).filter(*build_booking_override_filters(params))
    total = base_query.with_entities(func.count(BookingPlatformRouting.id)).scalar()

    overrides = (
        base_query
        .order_by(BookingPlatformRouting.created_at.desc())
        .offset(params.skip)
        .limit(params.limit)
        .all()
    )

    return {"booking_overrides": [BookingOverrideOut.model_validate(o) for o in overrides], "total": total}


# ----------------- Get Active Booking Override -----------------
def get_active_booking_override(db: Session, booking_id: str) -> Optional[BookingPlatformRouting]:
    return db.query(BookingPlatformRouting).filter(
        BookingPlatformRouting.booking_id == booking_id,
        BookingPlatformRouting.is_active.is_(True),
    ).first()


# ----------------- Store Booking Override -----------------
def store_booking_override(
    db: Session,
    booking_id: str,
    owner_pct: Decimal,
    management_pct: Decimal,
    routing_type: RoutingType,
    reason: str,
    applied_by: str,
) -> Tuple[BookingPlatformRouting, Optional[BookingPlatformRouting]]:
    """Stage a new override for the booking, superseding the active one.

    Returns ``(new, superseded)``. The caller validates and audits; the old
    row stays in the table, inactive. If another session activated an
    override for the booking in the meantime, the unique index rejects this
    one and ConcurrentBookingOverride is raised; rerunning supersedes it.
    """
    previous = get_active_booking_override(db, booking_id)
    if previous:
        previous.is_active = False
        previous.superseded_at = datetime.now(timezone.utc)
        db.flush()

    db_override = BookingPlatformRouting(
        booking_id=booking_id,
        actual_owner_percentage=owner_pct,
        actual_management_percentage=management_pct,
        actual_routing_type=routing_type.value,
        override_reason=reason,
        applied_by=applied_by,
        created_at=datetime.now(timezone.utc),
    )
    db.add(db_override)
    try:
        db.flush()
    except IntegrityError as e:
        raise ConcurrentBookingOverride(
            f"Booking {booking_id} received another override while this one was applied",
            booking_id=booking_id,
        ) from e
    return db_override, previous
