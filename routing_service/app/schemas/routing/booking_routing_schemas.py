from datetime import datetime
from decimal import Decimal
from uuid import UUID
from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from shared.core.schemas import CommonQueryParams
from shared.wrappers.empty_string_model_wrapper import EmptyStringModel


# ----------------- Booking Override -----------------
class BookingOverrideCreate(EmptyStringModel):
    booking_id: str = Field(max_length=64)
    actual_owner_percentage: Decimal
    actual_management_percentage: Decimal
    actual_routing_type: str = Field(max_length=24)
    # Blank input arrives as None and is rejected by the facade
    override_reason: Optional[str] = None


class BookingOverrideOut(BaseModel):
    id: UUID
    booking_id: str
    actual_owner_percentage: Decimal
    actual_management_percentage: Decimal
    actual_routing_type: str
    override_reason: str
    applied_by: Optional[str] = None
    is_active: bool
    superseded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BookingOverrideRequest(CommonQueryParams):
    booking_id: Optional[str] = None
    is_active: Optional[bool] = None


class BookingOverrideListResponse(BaseModel):
    booking_overrides: List[BookingOverrideOut]
    total: int

    model_config = {"from_attributes": True}


# ----------------- Resolution -----------------
class ResolveBookingRequest(EmptyStringModel):
    booking_id: str = Field(max_length=64)
    property_id: str = Field(max_length=64)
    channel: str = Field(max_length=32)
    net_payout_amount: Decimal
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class ResolvedRouting(BaseModel):
    """Effective split for one booking.

    Carries no timestamps or generated ids, so identical inputs serialize
    to identical bytes.
    """
    booking_id: str
    property_id: str
    channel: str
    currency: str
    net_payout_amount: Decimal

    owner_percentage: Decimal
    management_percentage: Decimal
    routing_type: str
    platform_fee_percentage: Decimal
    payment_method: Optional[str] = None

    owner_amount: Decimal
    management_amount: Decimal
    platform_fee_amount: Decimal

    platform_rule_id: UUID
    property_override_id: Optional[UUID] = None
    booking_override_id: Optional[UUID] = None
    # field name -> platform|property|booking
    provenance: Dict[str, str]

    model_config = {"frozen": True}
