from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shared.auth import validate_current_token
from shared.core.database import get_routing_db as get_db
from shared.core.schemas import JsonOutResult, UserToken
from shared.helpers.json_response_helper import success_response
from shared.utils.app_status_code import AppStatusCode
from ...crud.routing import booking_routing_crud as crud
from ...schemas.routing.booking_routing_schemas import (
    BookingOverrideCreate,
    BookingOverrideListResponse,
    BookingOverrideOut,
    BookingOverrideRequest,
    ResolveBookingRequest,
    ResolvedRouting,
)
from ...services.routing.routing_facade import RoutingFacade
from .dependencies import get_routing_facade

router = APIRouter(prefix="/api/booking-platform-routing", tags=["Booking Platform Routing"])


# ---------------- List Booking Overrides ----------------
@router.get("/all", response_model=BookingOverrideListResponse)
def get_booking_overrides_endpoint(
    params: BookingOverrideRequest = Depends(),
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token)
):
    return crud.get_booking_overrides(db, params)


# ----------------- Apply Booking Override -----------------
@router.post("/", response_model=JsonOutResult[BookingOverrideOut])
def apply_booking_override_route(
    override: BookingOverrideCreate,
    facade: RoutingFacade = Depends(get_routing_facade),
    current_user: UserToken = Depends(validate_current_token)
):
    result = facade.apply_booking_override(
        override.booking_id,
        override.actual_owner_percentage,
        override.actual_management_percentage,
        override.actual_routing_type,
        override.override_reason,
        current_user.actor,
    )
    return success_response(
        data=BookingOverrideOut.model_validate(result),
        message="Booking override applied successfully",
        status_code=AppStatusCode.CREATED_SUCCESSFULLY
    )


# ----------------- Resolve Booking -----------------
@router.post("/resolve", response_model=JsonOutResult[ResolvedRouting])
def resolve_booking_route(
    request: ResolveBookingRequest,
    facade: RoutingFacade = Depends(get_routing_facade),
    current_user: UserToken = Depends(validate_current_token)
):
    result = facade.resolve_booking(
        request.booking_id,
        request.property_id,
        request.channel,
        request.net_payout_amount,
        currency=request.currency,
        performed_by=current_user.actor,
    )
    return success_response(data=result, message="Booking routing resolved successfully")
