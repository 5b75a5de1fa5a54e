from typing import List
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shared.auth import validate_current_token
from shared.core.database import get_routing_db as get_db
from shared.core.schemas import JsonOutResult, Lookup, UserToken
from shared.helpers.json_response_helper import success_response
from shared.utils.app_status_code import AppStatusCode
from ...crud.routing import platform_rules_crud as crud
from ...schemas.routing.platform_rules_schemas import (
    PlatformRuleCreate,
    PlatformRuleDeactivate,
    PlatformRuleListResponse,
    PlatformRuleOut,
    PlatformRuleRequest,
    PlatformRuleUpdate,
)
from ...services.routing.routing_facade import RoutingFacade
from .dependencies import get_routing_facade

router = APIRouter(prefix="/api/platform-routing-rules", tags=["Platform Routing Rules"])


# ---------------- List Platform Rules ----------------
@router.get("/all", response_model=PlatformRuleListResponse)
def get_platform_rules_endpoint(
    params: PlatformRuleRequest = Depends(),
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token)
):
    return crud.get_platform_rules(db, params)


# ----------------- Create Platform Rule -----------------
@router.post("/", response_model=JsonOutResult[PlatformRuleOut])
def create_platform_rule_route(
    rule: PlatformRuleCreate,
    facade: RoutingFacade = Depends(get_routing_facade),
    current_user: UserToken = Depends(validate_current_token)
):
    result = facade.upsert_platform_rule(rule, current_user.actor)
    return success_response(
        data=PlatformRuleOut.model_validate(result),
        message="Platform rule created successfully",
        status_code=AppStatusCode.CREATED_SUCCESSFULLY
    )


# ----------------- Update Platform Rule -----------------
@router.put("/", response_model=JsonOutResult[PlatformRuleOut])
def update_platform_rule_route(
    rule: PlatformRuleUpdate,
    facade: RoutingFacade = Depends(get_routing_facade),
    current_user: UserToken = Depends(validate_current_token)
):
    result = facade.upsert_platform_rule(rule, current_user.actor)
    return success_response(
        data=PlatformRuleOut.model_validate(result),
        message="Platform rule updated successfully",
        status_code=AppStatusCode.UPDATED_SUCCESSFULLY
    )


# ---------------- Deactivate Platform Rule ----------------
@router.post("/{rule_id}/deactivate", response_model=JsonOutResult[PlatformRuleOut])
def deactivate_platform_rule_route(
    rule_id: UUID,
    payload: PlatformRuleDeactivate = PlatformRuleDeactivate(),
    facade: RoutingFacade = Depends(get_routing_facade),
    current_user: UserToken = Depends(validate_current_token)
):
    result = facade.deactivate_platform_rule(
        rule_id,
        current_user.actor,
        cascade=payload.cascade,
        version=payload.version,
        change_reason=payload.reason,
    )
    return success_response(
        data=PlatformRuleOut.model_validate(result),
        message="Platform rule deactivated successfully",
        status_code=AppStatusCode.UPDATED_SUCCESSFULLY
    )


# ----------------channel Lookup by enum ----------------
@router.get("/channel-lookup", response_model=List[Lookup])
def platform_channel_lookup(
    current_user: UserToken = Depends(validate_current_token)
):
    return crud.platform_channel_lookup()


# ----------------routing type Lookup by enum ----------------
@router.get("/routing-type-lookup", response_model=List[Lookup])
def routing_type_lookup(
    current_user: UserToken = Depends(validate_current_token)
):
    return crud.routing_type_lookup()


# ----------------payment method Lookup by enum ----------------
@router.get("/payment-method-lookup", response_model=List[Lookup])
def payment_method_lookup(
    current_user: UserToken = Depends(validate_current_token)
):
    return crud.payment_method_lookup()
