from datetime import datetime
from decimal import Decimal
from uuid import UUID
from typing import List, Optional
from pydantic import BaseModel, Field
from shared.core.schemas import CommonQueryParams
from shared.wrappers.empty_string_model_wrapper import EmptyStringModel


# ----------------- Base -----------------
class PropertyRuleBase(EmptyStringModel):
    property_id: str = Field(max_length=64)
    platform_rule_id: UUID
    # None = inherit from the platform rule
    override_owner_percentage: Optional[Decimal] = None
    override_management_percentage: Optional[Decimal] = None
    override_routing_type: Optional[str] = Field(None, max_length=24)
    special_instructions: Optional[str] = None


# ----------------- Upsert -----------------
class PropertyRuleUpsert(PropertyRuleBase):
    # Both required to edit an existing override
    id: Optional[UUID] = None
    version: Optional[int] = None


# ----------------- Out -----------------
class PropertyRuleOut(PropertyRuleBase):
    id: UUID
    is_active: bool
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ----------------- Request -----------------
class PropertyRuleRequest(CommonQueryParams):
    property_id: Optional[str] = None
    platform_rule_id: Optional[UUID] = None
    is_active: Optional[bool] = None


# ----------------- List Response -----------------
class PropertyRuleListResponse(BaseModel):
    property_rules: List[PropertyRuleOut]
    total: int

    model_config = {"from_attributes": True}
