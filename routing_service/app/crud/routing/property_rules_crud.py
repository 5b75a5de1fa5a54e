import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...core.errors import InvalidPercentageSplit, PropertyOverrideConflict, RuleNotFound
from ...enum.routing_enum import AuditActionType, AuditRelatedType, RoutingType
from ...models.routing.property_platform_rules import PropertyPlatformRule
from ...schemas.routing.property_rules_schemas import (
    PropertyRuleListResponse, PropertyRuleOut, PropertyRuleRequest, PropertyRuleUpsert
)
from ...services.routing.resolution_engine import check_percentage, check_split, parse_routing_type
from . import routing_audit_crud
from .platform_rules_crud import AuditRecorder, ensure_version, flush_versioned, get_platform_rule
from .routing_audit_crud import diff, snapshot

logger = logging.getLogger(__name__)

PROPERTY_RULE_FIELDS = (
    "property_id",
    "platform_rule_id",
    "override_owner_percentage",
    "override_management_percentage",
    "override_routing_type",
    "special_instructions",
    "is_active",
)


def pair_conflict(property_id: str, platform_rule) -> PropertyOverrideConflict:
    # Raised when the unique index catches a concurrent create
    return PropertyOverrideConflict(
        f"Property {property_id} already has an active override of {platform_rule.platform_name}",
        property_id=property_id, platform_rule_id=str(platform_rule.id),
    )


# ----------------- Validation -----------------
def validate_property_override(override: PropertyRuleUpsert, platform_rule) -> dict:
    """Check the fields the override sets; unset fields inherit and are
    checked at resolution time against the merged result."""
    values = override.model_dump(exclude={"id", "version"})
    values["property_id"] = values["property_id"].strip()

    routing_type = None
    if values["override_routing_type"] is not None:
        routing_type = parse_routing_type(values["override_routing_type"])
        values["override_routing_type"] = routing_type.value
    effective_type = routing_type or parse_routing_type(platform_rule.routing_type)

    owner = values["override_owner_percentage"]
    management = values["override_management_percentage"]
    if owner is not None and management is not None:
        owner, management, _ = check_split(owner, management, effective_type)
    else:
        if owner is not None:
            owner = check_percentage(owner, "Owner percentage")
            if effective_type == RoutingType.full_to_management and owner != 0:
                raise InvalidPercentageSplit(
                    f"Owner percentage must be 0 for full_to_management, got {owner}%")
        if management is not None:
            management = check_percentage(management, "Management percentage")
            if effective_type == RoutingType.full_to_owner and management != 0:
                raise InvalidPercentageSplit(
                    f"Management percentage must be 0 for full_to_owner, got {management}%")

    values["override_owner_percentage"] = owner
    values["override_management_percentage"] = management
    return values


# ----------------- Build Filters -----------------
def build_property_rule_filters(params: PropertyRuleRequest):
    filters = []

    if params.property_id:
        filters.append(PropertyPlatformRule.property_id == params.property_id)

    if params.platform_rule_id:
        filters.append(PropertyPlatformRule.platform_rule_id == params.platform_rule_id)

    if params.is_active is not None:
        filters.append(PropertyPlatformRule.is_active == params.is_active)

    if params.search:
        search_term = f"%{params.search}%"
        filters.append(PropertyPlatformRule.special_instructions.ilike(search_term))
    return filters


# ----------------- Get All Property Overrides -----------------
def get_property_rules(db: Session, params: PropertyRuleRequest) -> PropertyRuleListResponse:
    base_query = db.query(PropertyPlatformRule).filter(*build_property_rule_filters(params))
    total = base_query.with_entities(func.count(PropertyPlatformRule.id)).scalar()

    rules = (
        base_query
        .order_by(PropertyPlatformRule.property_id.asc(), PropertyPlatformRule.created_at.desc())
        .offset(params.skip)
        .limit(params.limit)
        .all()
    )

    return {"property_rules": [PropertyRuleOut.model_validate(r) for r in rules], "total": total}


# ----------------- Get Single Property Override -----------------
def get_property_rule(db: Session, override_id: UUID) -> Optional[PropertyPlatformRule]:
    return db.query(PropertyPlatformRule).filter(PropertyPlatformRule.id == override_id).first()


def get_active_property_rule(db: Session, property_id: str, platform_rule_id: UUID) -> Optional[PropertyPlatformRule]:
    return db.query(PropertyPlatformRule).filter(
        PropertyPlatformRule.property_id == property_id,
        PropertyPlatformRule.platform_rule_id == platform_rule_id,
        PropertyPlatformRule.is_active.is_(True),
    ).first()


# ----------------- Upsert Property Override -----------------
def upsert_property_override(
    db: Session,
    override: PropertyRuleUpsert,
    performed_by: str,
    change_reason: Optional[str] = None,
    audit: AuditRecorder = routing_audit_crud.record,
) -> PropertyPlatformRule:
    platform_rule = get_platform_rule(db, override.platform_rule_id)
    if not platform_rule or not platform_rule.is_active:
        raise RuleNotFound(
            f"Active platform routing rule {override.platform_rule_id} not found",
            id=str(override.platform_rule_id),
        )

    values = validate_property_override(override, platform_rule)
    existing = get_active_property_rule(db, values["property_id"], platform_rule.id)

    if override.id is None:
        # A second override for the same pair must be an explicit edit
        if existing:
            raise PropertyOverrideConflict(
                f"Property {values['property_id']} already overrides {platform_rule.platform_name} "
                f"(override {existing.id}); pass its id to edit it",
                id=str(existing.id),
            )
        db_override = PropertyPlatformRule(**values)
        db.add(db_override)
        flush_versioned(db, db_override, "Property override",
                        conflict=lambda: pair_conflict(values["property_id"], platform_rule))
        audit(
            db,
            AuditActionType.rule_created,
            AuditRelatedType.property_override,
            db_override.id,
            after_values=snapshot(db_override, PROPERTY_RULE_FIELDS),
            performed_by=performed_by,
            change_reason=change_reason or values.get("special_instructions")
            or f"Property override for {platform_rule.platform_name}",
        )
        logger.info(
            f"Property override created for {db_override.property_id}/{platform_rule.platform_name} by {performed_by}")
        return db_override

    db_override = get_property_rule(db, override.id)
    if not db_override:
        raise RuleNotFound(f"Property override {override.id} not found", id=str(override.id))
    ensure_version(db_override, override.version, "Property override")
    if existing and existing.id != db_override.id:
        raise PropertyOverrideConflict(
            f"Property {values['property_id']} already overrides {platform_rule.platform_name} "
            f"(override {existing.id})",
            id=str(existing.id),
        )

    before = snapshot(db_override, PROPERTY_RULE_FIELDS)
    for key, value in values.items():
        setattr(db_override, key, value)
    flush_versioned(db, db_override, "Property override",
                    conflict=lambda: pair_conflict(values["property_id"], platform_rule))

    before_diff, after_diff = diff(before, snapshot(db_override, PROPERTY_RULE_FIELDS))
    audit(
        db,
        AuditActionType.rule_updated,
        AuditRelatedType.property_override,
        db_override.id,
        before_values=before_diff,
        after_values=after_diff,
        performed_by=performed_by,
        change_reason=change_reason or f"Updated property override for {platform_rule.platform_name}",
    )
    logger.info(f"Property override {db_override.id} updated by {performed_by}: {sorted(after_diff)}")
    return db_override
