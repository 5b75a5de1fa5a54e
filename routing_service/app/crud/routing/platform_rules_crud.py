import logging
from typing import Callable, List, Optional, Tuple, Union
from uuid import UUID

from sqlalchemy import Text, cast, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from shared.core.schemas import Lookup
from ...core.errors import PlatformRuleConflict, RuleInUse, RuleNotFound, StaleRuleVersion
from ...enum.routing_enum import AuditActionType, AuditRelatedType, BookingPlatform, PaymentMethod, RoutingType
from ...models.routing.platform_routing_rules import PlatformRoutingRule
from ...models.routing.property_platform_rules import PropertyPlatformRule
from ...schemas.routing.platform_rules_schemas import (
    PlatformRuleCreate, PlatformRuleListResponse, PlatformRuleOut, PlatformRuleRequest, PlatformRuleUpdate
)
from ...services.routing.resolution_engine import check_percentage, check_split
from . import routing_audit_crud
from .routing_audit_crud import diff, snapshot

logger = logging.getLogger(__name__)

PLATFORM_RULE_FIELDS = (
    "platform_name",
    "platform_display_name",
    "default_owner_percentage",
    "default_management_percentage",
    "routing_type",
    "payment_method",
    "platform_fee_percentage",
    "supports_split_payout",
    "admin_notes",
    "is_active",
)

AuditRecorder = Callable[..., object]


def normalize_channel(channel: str) -> str:
    return channel.strip().lower()


def flush_versioned(db: Session, row, label: str, conflict: Optional[Callable[[], Exception]] = None):
    """Flush pending changes, translating concurrent edits into typed errors.

    ``conflict`` builds the error raised when an active-row unique index
    rejects the write, i.e. another session committed the same row first.
    """
    try:
        db.flush()
    except StaleDataError as e:
        raise StaleRuleVersion(
            f"{label} {row.id} was modified by someone else; reload and try again",
            id=str(row.id),
        ) from e
    except IntegrityError as e:
        if conflict is None:
            raise
        raise conflict() from e


def ensure_version(row, expected: Optional[int], label: str):
    if expected is not None and row.version != expected:
        raise StaleRuleVersion(
            f"{label} {row.id} is at version {row.version}, update was based on version {expected}",
            id=str(row.id), current_version=row.version, expected_version=expected,
        )


def channel_conflict(platform_name: str) -> PlatformRuleConflict:
    return PlatformRuleConflict(
        f"An active routing rule for '{platform_name}' already exists",
        platform_name=platform_name,
    )


# ----------------- Validation -----------------
def validate_platform_rule(rule: Union[PlatformRuleCreate, PlatformRuleUpdate]) -> dict:
    values = rule.model_dump(exclude={"id", "version"})
    values["platform_name"] = normalize_channel(values["platform_name"])

    owner, management, routing_type = check_split(
        values["default_owner_percentage"],
        values["default_management_percentage"],
        values["routing_type"],
    )
    values["default_owner_percentage"] = owner
    values["default_management_percentage"] = management
    values["routing_type"] = routing_type.value
    values["platform_fee_percentage"] = check_percentage(
        values["platform_fee_percentage"], "Platform fee percentage")
    if values.get("payment_method"):
        values["payment_method"] = values["payment_method"].strip().lower()
    return values


# ----------------- Lookups by Enum -----------------
def platform_channel_lookup():
    return [
        Lookup(id=channel.value, name=channel.name.replace("_", " ").title())
        for channel in BookingPlatform
    ]


def routing_type_lookup():
    return [
        Lookup(id=rtype.value, name=rtype.name.replace("_", " ").title())
        for rtype in RoutingType
    ]


def payment_method_lookup():
    return [
        Lookup(id=method.value, name=method.name.replace("_", " ").title())
        for method in PaymentMethod
    ]


# ----------------- Build Filters -----------------
def build_platform_rule_filters(params: PlatformRuleRequest):
    filters = []

    if params.routing_type and params.routing_type.lower() != "all":
        filters.append(PlatformRoutingRule.routing_type == params.routing_type.lower())

    if params.is_active is not None:
        filters.append(PlatformRoutingRule.is_active == params.is_active)

    if params.search:
        search_term = f"%{params.search}%"
        filters.append(
            or_(
                PlatformRoutingRule.platform_name.ilike(search_term),
                PlatformRoutingRule.platform_display_name.ilike(search_term),
                cast(PlatformRoutingRule.id, Text).ilike(search_term),
            )
        )
    return filters


# ----------------- Get All Platform Rules -----------------
def get_platform_rules(db: Session, params: PlatformRuleRequest) -> PlatformRuleListResponse:
    base_query = db.query(PlatformRoutingRule).filter(*build_platform_rule_filters(params))
    total = base_query.with_entities(func.count(PlatformRoutingRule.id)).scalar()

    rules = (
        base_query
        .order_by(PlatformRoutingRule.platform_name.asc())
        .offset(params.skip)
        .limit(params.limit)
        .all()
    )

    return {"platform_rules": [PlatformRuleOut.model_validate(r) for r in rules], "total": total}


# ----------------- Get Single Platform Rule -----------------
def get_platform_rule(db: Session, rule_id: UUID) -> Optional[PlatformRoutingRule]:
    return db.query(PlatformRoutingRule).filter(PlatformRoutingRule.id == rule_id).first()


def get_active_rule_for_channel(db: Session, channel: str) -> Optional[PlatformRoutingRule]:
    return db.query(PlatformRoutingRule).filter(
        PlatformRoutingRule.platform_name == normalize_channel(channel),
        PlatformRoutingRule.is_active.is_(True),
    ).first()


def get_effective_candidates(
    db: Session, property_id: str, channel: str
) -> Tuple[PlatformRoutingRule, Optional[PropertyPlatformRule]]:
    """Gather the active platform rule for the channel and the property's
    override of it, if any. No merging happens here."""
    rule = get_active_rule_for_channel(db, channel)
    if not rule:
        raise RuleNotFound(
            f"No active platform routing rule for channel '{channel}'", channel=channel)

    override = db.query(PropertyPlatformRule).filter(
        PropertyPlatformRule.property_id == property_id,
        PropertyPlatformRule.platform_rule_id == rule.id,
        PropertyPlatformRule.is_active.is_(True),
    ).first()
    return rule, override


# ----------------- Upsert Platform Rule -----------------
def upsert_platform_rule(
    db: Session,
    rule: Union[PlatformRuleCreate, PlatformRuleUpdate],
    performed_by: str,
    change_reason: Optional[str] = None,
    audit: AuditRecorder = routing_audit_crud.record,
) -> PlatformRoutingRule:
    values = validate_platform_rule(rule)
    rule_id = getattr(rule, "id", None)

    if rule_id is None:
        if get_active_rule_for_channel(db, values["platform_name"]):
            raise channel_conflict(values["platform_name"])
        db_rule = PlatformRoutingRule(**values)
        db.add(db_rule)
        flush_versioned(db, db_rule, "Platform routing rule",
                        conflict=lambda: channel_conflict(values["platform_name"]))
        audit(
            db,
            AuditActionType.rule_created,
            AuditRelatedType.platform_rule,
            db_rule.id,
            after_values=snapshot(db_rule, PLATFORM_RULE_FIELDS),
            performed_by=performed_by,
            change_reason=change_reason or f"Created routing rule for {db_rule.platform_name}",
        )
        logger.info(f"Platform routing rule created for {db_rule.platform_name} by {performed_by}")
        return db_rule

    db_rule = get_platform_rule(db, rule_id)
    if not db_rule:
        raise RuleNotFound(f"Platform routing rule {rule_id} not found", id=str(rule_id))
    ensure_version(db_rule, rule.version, "Platform routing rule")

    if db_rule.is_active and values["platform_name"] != db_rule.platform_name:
        clash = get_active_rule_for_channel(db, values["platform_name"])
        if clash and clash.id != db_rule.id:
            raise channel_conflict(values["platform_name"])

    before = snapshot(db_rule, PLATFORM_RULE_FIELDS)
    for key, value in values.items():
        setattr(db_rule, key, value)
    flush_versioned(db, db_rule, "Platform routing rule",
                    conflict=lambda: channel_conflict(values["platform_name"]))

    before_diff, after_diff = diff(before, snapshot(db_rule, PLATFORM_RULE_FIELDS))
    audit(
        db,
        AuditActionType.rule_updated,
        AuditRelatedType.platform_rule,
        db_rule.id,
        before_values=before_diff,
        after_values=after_diff,
        performed_by=performed_by,
        change_reason=change_reason or f"Updated routing rule for {db_rule.platform_name}",
    )
    logger.info(f"Platform routing rule {db_rule.id} updated by {performed_by}: {sorted(after_diff)}")
    return db_rule


# ----------------- Deactivate Platform Rule -----------------
def deactivate_platform_rule(
    db: Session,
    rule_id: UUID,
    performed_by: str,
    cascade: bool = False,
    version: Optional[int] = None,
    change_reason: Optional[str] = None,
    audit: AuditRecorder = routing_audit_crud.record,
) -> PlatformRoutingRule:
    """Soft-deactivate a rule. Rules are never deleted, the audit trail
    keeps pointing at them."""
    db_rule = get_platform_rule(db, rule_id)
    if not db_rule:
        raise RuleNotFound(f"Platform routing rule {rule_id} not found", id=str(rule_id))
    ensure_version(db_rule, version, "Platform routing rule")

    if not db_rule.is_active:
        return db_rule

    dependents: List[PropertyPlatformRule] = db.query(PropertyPlatformRule).filter(
        PropertyPlatformRule.platform_rule_id == db_rule.id,
        PropertyPlatformRule.is_active.is_(True),
    ).all()

    if dependents and not cascade:
        raise RuleInUse(
            f"Platform routing rule {db_rule.platform_name} is referenced by "
            f"{len(dependents)} active property override(s); deactivate them or cascade",
            id=str(db_rule.id),
            property_override_ids=[str(o.id) for o in dependents],
        )

    reason = change_reason or f"Deactivated routing rule for {db_rule.platform_name}"
    for override in dependents:
        override.is_active = False
        flush_versioned(db, override, "Property override")
        audit(
            db,
            AuditActionType.rule_updated,
            AuditRelatedType.property_override,
            override.id,
            before_values={"is_active": True},
            after_values={"is_active": False},
            performed_by=performed_by,
            change_reason=f"{reason} (cascade)",
        )

    db_rule.is_active = False
    flush_versioned(db, db_rule, "Platform routing rule")
    audit(
        db,
        AuditActionType.rule_updated,
        AuditRelatedType.platform_rule,
        db_rule.id,
        before_values={"is_active": True},
        after_values={"is_active": False},
        performed_by=performed_by,
        change_reason=reason,
    )
    logger.info(
        f"Platform routing rule {db_rule.platform_name} deactivated by {performed_by}"
        f" ({len(dependents)} property override(s) cascaded)")
    return db_rule
