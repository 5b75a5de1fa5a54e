from datetime import datetime
from decimal import Decimal
from uuid import UUID
from typing import List, Optional
from pydantic import BaseModel, Field
from shared.core.schemas import CommonQueryParams
from shared.wrappers.empty_string_model_wrapper import EmptyStringModel


# ----------------- Base -----------------
class PlatformRuleBase(EmptyStringModel):
    platform_name: str = Field(max_length=32)
    platform_display_name: str = Field(max_length=128)
    default_owner_percentage: Decimal
    default_management_percentage: Decimal
    # Validated against RoutingType by the rule store, not here
    routing_type: str = Field("split_payout", max_length=24)
    payment_method: Optional[str] = Field("automatic", max_length=24)
    platform_fee_percentage: Decimal = Decimal("0.00")
    supports_split_payout: bool = False
    admin_notes: Optional[str] = None


# ----------------- Create -----------------
class PlatformRuleCreate(PlatformRuleBase):
    pass


# ----------------- Update -----------------
class PlatformRuleUpdate(PlatformRuleBase):
    id: UUID
    # Version the caller read; a mismatch means someone else edited first
    version: int


# ----------------- Out -----------------
class PlatformRuleOut(PlatformRuleBase):
    id: UUID
    is_active: bool
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ----------------- Deactivate -----------------
class PlatformRuleDeactivate(BaseModel):
    version: Optional[int] = None
    cascade: bool = False
    reason: Optional[str] = None


# ----------------- Request -----------------
class PlatformRuleRequest(CommonQueryParams):
    routing_type: Optional[str] = None
    is_active: Optional[bool] = None


# ----------------- List Response -----------------
class PlatformRuleListResponse(BaseModel):
    platform_rules: List[PlatformRuleOut]
    total: int

    model_config = {"from_attributes": True}
