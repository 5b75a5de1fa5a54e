from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shared.auth import validate_current_token
from shared.core.database import get_routing_db as get_db
from shared.core.schemas import JsonOutResult, UserToken
from shared.helpers.json_response_helper import success_response
from shared.utils.app_status_code import AppStatusCode
from ...crud.routing import property_rules_crud as crud
from ...schemas.routing.property_rules_schemas import (
    PropertyRuleListResponse,
    PropertyRuleOut,
    PropertyRuleRequest,
    PropertyRuleUpsert,
)
from ...services.routing.routing_facade import RoutingFacade
from .dependencies import get_routing_facade

router = APIRouter(prefix="/api/property-platform-rules", tags=["Property Platform Rules"])


# ---------------- List Property Overrides ----------------
@router.get("/all", response_model=PropertyRuleListResponse)
def get_property_rules_endpoint(
    params: PropertyRuleRequest = Depends(),
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token)
):
    return crud.get_property_rules(db, params)


# ----------------- Create Property Override -----------------
@router.post("/", response_model=JsonOutResult[PropertyRuleOut])
def create_property_rule_route(
    override: PropertyRuleUpsert,
    facade: RoutingFacade = Depends(get_routing_facade),
    current_user: UserToken = Depends(validate_current_token)
):
    result = facade.upsert_property_override(override, current_user.actor)
    return success_response(
        data=PropertyRuleOut.model_validate(result),
        message="Property rule saved successfully",
        status_code=AppStatusCode.CREATED_SUCCESSFULLY
    )


# ----------------- Update Property Override -----------------
@router.put("/", response_model=JsonOutResult[PropertyRuleOut])
def update_property_rule_route(
    override: PropertyRuleUpsert,
    facade: RoutingFacade = Depends(get_routing_facade),
    current_user: UserToken = Depends(validate_current_token)
):
    result = facade.upsert_property_override(override, current_user.actor)
    return success_response(
        data=PropertyRuleOut.model_validate(result),
        message="Property rule updated successfully",
        status_code=AppStatusCode.UPDATED_SUCCESSFULLY
    )
